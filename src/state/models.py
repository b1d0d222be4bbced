from __future__ import annotations

from enum import Enum
from typing import Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, model_validator


class GifEntry(BaseModel):
    """One stored link and the base58 address of the wallet that submitted it."""

    model_config = ConfigDict(frozen=True)

    link: str
    submitted_by: str


class GifList(BaseModel):
    """
    Ordered mirror of the on-chain list.

    Fields
    - items: entries in chain append order (oldest first).
    - total: the program's `total_gifs` counter as stored on-chain.

    Notes
    - Never mutated locally. A newer view arrives only as a whole new
      `GifList` from a fetch.
    """

    model_config = ConfigDict(frozen=True)

    items: Tuple[GifEntry, ...] = Field(default_factory=tuple)
    total: int = 0

    @classmethod
    def empty(cls) -> "GifList":
        return cls()

    @property
    def links(self) -> Tuple[str, ...]:
        return tuple(e.link for e in self.items)

    def __len__(self) -> int:
        return len(self.items)

    def __getitem__(self, index: int) -> GifEntry:
        return self.items[index]


class AccountPhase(str, Enum):
    UNKNOWN = "unknown"
    UNINITIALIZED = "uninitialized"
    READY = "ready"


class AccountStatus(BaseModel):
    """
    Tri-state view of the list account: Unknown, Uninitialized or Ready(list).

    `gifs` is set if and only if the phase is READY.
    """

    model_config = ConfigDict(frozen=True)

    phase: AccountPhase = AccountPhase.UNKNOWN
    gifs: Optional[GifList] = None

    @model_validator(mode="after")
    def _gifs_only_when_ready(self) -> "AccountStatus":
        if (self.phase is AccountPhase.READY) != (self.gifs is not None):
            raise ValueError("gifs must be present exactly when phase is READY")
        return self

    @classmethod
    def unknown(cls) -> "AccountStatus":
        return cls()

    @classmethod
    def uninitialized(cls) -> "AccountStatus":
        return cls(phase=AccountPhase.UNINITIALIZED)

    @classmethod
    def ready(cls, gifs: GifList) -> "AccountStatus":
        return cls(phase=AccountPhase.READY, gifs=gifs)

    @property
    def is_ready(self) -> bool:
        return self.phase is AccountPhase.READY
