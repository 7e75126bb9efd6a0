"""``mpi4py`` binding of the communicator interface.

Import this module only in programs launched under an MPI runtime, e.g.::

    mpirun -n 4 python -m my_build_script
"""

from __future__ import annotations

from typing import Optional

from mpi4py import MPI

from .comm import CommunicationError


class MPICommunicator:
    """Lightweight wrapper around an MPI communicator."""

    def __init__(self, comm: MPI.Comm):
        self.comm = comm
        self.rank = comm.Get_rank()
        self.world_size = comm.Get_size()

    @classmethod
    def world(cls) -> "MPICommunicator":
        return cls(MPI.COMM_WORLD)

    def send(self, value: int, dest: int, tag: int = 0) -> None:
        try:
            self.comm.send(int(value), dest=dest, tag=tag)
        except MPI.Exception as exc:
            raise CommunicationError(
                f"rank {self.rank}: send to {dest} failed: {exc}"
            ) from exc

    def recv(self, source: int, tag: int = 0) -> int:
        status = MPI.Status()
        try:
            value: Optional[int] = self.comm.recv(source=source, tag=tag, status=status)
        except MPI.Exception as exc:
            raise CommunicationError(
                f"rank {self.rank}: receive from {source} failed: {exc}"
            ) from exc
        if status.Is_cancelled():
            raise CommunicationError(f"rank {self.rank}: receive from {source} cancelled")
        return int(value)

    def barrier(self) -> None:
        try:
            self.comm.Barrier()
        except MPI.Exception as exc:
            raise CommunicationError(f"rank {self.rank}: barrier failed: {exc}") from exc


__all__ = ["MPICommunicator"]
