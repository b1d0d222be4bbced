"""
Account state for the GIF portal.

- models: GifEntry, GifList and the tri-state AccountStatus
- account: AccountStateMachine, the cached authoritative view of the
  on-chain list, plus the SingleFlight per-account guard
"""

from .models import AccountPhase, AccountStatus, GifEntry, GifList

__all__ = ["AccountPhase", "AccountStatus", "GifEntry", "GifList"]
