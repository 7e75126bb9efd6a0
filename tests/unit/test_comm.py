"""In-process communicator and SPMD runner."""

import pytest

from kdweave import CommunicationError, make_inprocess_group, run_spmd


def test_point_to_point_exchange_is_matched_by_tag():
    def exchange(comm):
        peer = 1 - comm.rank
        comm.send(10 + comm.rank, peer, tag=1)
        comm.send(20 + comm.rank, peer, tag=2)
        # Receive out of send order; tags keep the streams apart.
        second = comm.recv(peer, tag=2)
        first = comm.recv(peer, tag=1)
        return first, second

    assert run_spmd(2, exchange, timeout=5.0) == [(11, 21), (10, 20)]


def test_barrier_releases_all_ranks():
    def meet(comm):
        comm.barrier()
        return comm.rank

    assert run_spmd(4, meet, timeout=5.0) == [0, 1, 2, 3]


def test_recv_times_out_without_sender():
    (comm,) = make_inprocess_group(1, timeout=0.2)
    with pytest.raises(CommunicationError, match="timed out"):
        comm.recv(0)


def test_failure_on_one_rank_aborts_its_peers():
    def fail_or_wait(comm):
        if comm.rank == 0:
            raise RuntimeError("rank 0 exploded")
        return comm.recv(0)

    with pytest.raises(RuntimeError, match="rank 0 exploded"):
        run_spmd(3, fail_or_wait, timeout=5.0)


def test_abort_breaks_barrier_and_blocks_sends():
    comms = make_inprocess_group(2, timeout=5.0)
    comms[1].abort()
    with pytest.raises(CommunicationError):
        comms[0].barrier()
    with pytest.raises(CommunicationError):
        comms[0].send(1, 1)


def test_invalid_peers_and_group_sizes_are_rejected():
    (comm,) = make_inprocess_group(1)
    with pytest.raises(ValueError):
        comm.send(1, 3)
    with pytest.raises(ValueError):
        make_inprocess_group(0)
    with pytest.raises(ValueError):
        run_spmd(2, lambda comm: None, comms=make_inprocess_group(3))
