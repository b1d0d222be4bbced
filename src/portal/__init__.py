"""
Session wiring for the GIF portal.

- submission: SubmissionController (validate input, append, re-sync)
- session: PortalSession, which connects wallet, chain client and account
  state, and derives the view the renderer should draw
"""

from .session import PortalSession, PortalView, view_for
from .submission import SubmissionController

__all__ = ["PortalSession", "PortalView", "SubmissionController", "view_for"]
