"""In-process communicators for running every rank inside one process.

Each rank runs on its own thread and exchanges integers through per
``(source, dest, tag)`` queues. Blocking receives time out instead of hanging
forever, and a failure on any rank aborts the whole group so its peers stop
waiting. ``kdweave.mpi`` provides the same interface over ``mpi4py``.
"""

from __future__ import annotations

import logging
import queue
import threading
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Callable, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

_DEFAULT_TIMEOUT = 60.0
_POLL_INTERVAL = 0.05


class CommunicationError(RuntimeError):
    """A blocking exchange failed, timed out, or was cancelled."""


class _InProcessGroup:
    """State shared by all ranks of one in-process world."""

    def __init__(self, world_size: int, timeout: float):
        self.world_size = world_size
        self.timeout = timeout
        self._channels: dict[tuple[int, int, int], queue.Queue] = {}
        self._lock = threading.Lock()
        self._barrier = threading.Barrier(world_size)
        self._aborted = threading.Event()

    def channel(self, source: int, dest: int, tag: int) -> queue.Queue:
        with self._lock:
            return self._channels.setdefault((source, dest, tag), queue.Queue())

    @property
    def aborted(self) -> bool:
        return self._aborted.is_set()

    def abort(self) -> None:
        self._aborted.set()
        self._barrier.abort()

    def barrier(self) -> None:
        try:
            self._barrier.wait(timeout=self.timeout)
        except threading.BrokenBarrierError as exc:
            raise CommunicationError("barrier broken by a failed or aborted peer") from exc


class InProcessCommunicator:
    """One rank's endpoint into an in-process world."""

    def __init__(self, group: _InProcessGroup, rank: int):
        self._group = group
        self.rank = rank
        self.world_size = group.world_size

    def _check_peer(self, peer: int) -> None:
        if not 0 <= peer < self.world_size:
            raise ValueError(
                f"peer rank must be in [0, {self.world_size}), received {peer}"
            )

    def send(self, value: int, dest: int, tag: int = 0) -> None:
        self._check_peer(dest)
        if self._group.aborted:
            raise CommunicationError(f"rank {self.rank}: send to {dest} after abort")
        self._group.channel(self.rank, dest, tag).put(int(value))

    def recv(self, source: int, tag: int = 0) -> int:
        self._check_peer(source)
        channel = self._group.channel(source, self.rank, tag)
        deadline = time.monotonic() + self._group.timeout
        while True:
            if self._group.aborted:
                raise CommunicationError(
                    f"rank {self.rank}: receive from {source} cancelled by abort"
                )
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                raise CommunicationError(
                    f"rank {self.rank}: receive from {source} (tag {tag}) timed out"
                )
            try:
                return channel.get(timeout=min(_POLL_INTERVAL, remaining))
            except queue.Empty:
                continue

    def barrier(self) -> None:
        self._group.barrier()

    def abort(self) -> None:
        """Fail every pending and future exchange in this world."""

        self._group.abort()


def make_inprocess_group(
    world_size: int,
    *,
    timeout: float = _DEFAULT_TIMEOUT,
) -> list[InProcessCommunicator]:
    """Return one connected communicator per rank, in rank order."""

    if world_size < 1:
        raise ValueError(f"world_size must be >= 1, received {world_size}")
    if timeout <= 0:
        raise ValueError(f"timeout must be > 0, received {timeout}")
    group = _InProcessGroup(world_size, float(timeout))
    return [InProcessCommunicator(group, rank) for rank in range(world_size)]


def run_spmd(
    world_size: int,
    fn: Callable[[InProcessCommunicator], T],
    *,
    timeout: float = _DEFAULT_TIMEOUT,
    comms: Optional[list[InProcessCommunicator]] = None,
) -> list[T]:
    """Run ``fn(comm)`` on every rank concurrently and collect the results.

    The first failure aborts the group and is re-raised once every rank has
    stopped; failures it caused on other ranks are only logged.
    """

    group = comms if comms is not None else make_inprocess_group(world_size, timeout=timeout)
    if len(group) != world_size:
        raise ValueError(
            f"expected {world_size} communicators, received {len(group)}"
        )

    results: list[Optional[T]] = [None] * world_size
    first_error: Optional[BaseException] = None
    with ThreadPoolExecutor(
        max_workers=world_size, thread_name_prefix="kdweave-rank"
    ) as pool:
        futures = {pool.submit(fn, comm): comm.rank for comm in group}
        for future in as_completed(futures):
            rank = futures[future]
            error = future.exception()
            if error is None:
                results[rank] = future.result()
            elif first_error is None:
                first_error = error
                group[0].abort()
            else:
                logger.debug("rank %d failed after abort: %s", rank, error)

    if first_error is not None:
        raise first_error
    return results  # type: ignore[return-value]


__all__ = [
    "CommunicationError",
    "InProcessCommunicator",
    "make_inprocess_group",
    "run_spmd",
]
