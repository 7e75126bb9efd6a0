"""Structural protocols for the collaborators a distributed build talks to."""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from .types import TreeInfo, TreeSnapshot


class Communicator(Protocol):
    """Blocking point-to-point exchange of small integers plus a barrier."""

    rank: int
    world_size: int

    def send(self, value: int, dest: int, tag: int = 0) -> None: ...

    def recv(self, source: int, tag: int = 0) -> int: ...

    def barrier(self) -> None: ...


class TreeSink(Protocol):
    """Persistence collaborator receiving a finished tree."""

    def prepare(self, info: "TreeInfo") -> None:
        """Called once, on rank 0 only, before any rank writes."""

    def write(self, snapshot: "TreeSnapshot") -> None:
        """Called on every rank with that rank's share of the tree."""


__all__ = ["Communicator", "TreeSink"]
