"""Mutation results returned by Entry methods.

An Entry never talks to the disk. Each mutating call returns a ``Change``
naming what moved, and the owning Database applies the matching
persistence step before its own call returns.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class ChangeKind(str, Enum):
    """What part of an entry a mutation touched."""

    NONE = "none"
    DATA = "data"
    FILES = "files"


@dataclass(frozen=True)
class Change:
    """Result of a mutating Entry call. Falsy when nothing changed."""

    kind: ChangeKind
    entry_name: str = ""

    def __bool__(self) -> bool:
        return self.kind is not ChangeKind.NONE

    @classmethod
    def data(cls, entry_name: str) -> Change:
        return cls(ChangeKind.DATA, entry_name)

    @classmethod
    def files(cls, entry_name: str) -> Change:
        return cls(ChangeKind.FILES, entry_name)


NO_CHANGE = Change(ChangeKind.NONE)
