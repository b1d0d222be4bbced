from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional


class PortalError(RuntimeError):
    """Base error for the GIF portal core."""

    code = "PortalError"


class WalletUnavailable(PortalError):
    """No recognized wallet capability is present."""

    code = "WalletUnavailable"


class ConnectionRejected(PortalError):
    """The user declined an interactive wallet connect."""

    code = "ConnectionRejected"


class SilentConnectFailed(PortalError):
    """A trusted (non-prompting) reconnect did not succeed."""

    code = "SilentConnectFailed"


class AccountNotFound(PortalError):
    """The program account does not exist on-chain yet."""

    code = "AccountNotFound"


class DeserializationFailure(PortalError):
    """Account bytes exist but do not match the expected account schema."""

    code = "DeserializationFailure"


class RpcFailure(PortalError):
    """Network, timeout or malformed-response failure talking to the RPC node."""

    code = "RpcFailure"


class RpcRateLimited(RpcFailure):
    """Local throttle refused to issue the request."""


class SubmissionRejected(PortalError):
    """The transaction was rejected by the program, the node or the signer."""

    code = "SubmissionRejected"


class EmptyInput(PortalError):
    """Submitted text was empty after trimming."""

    code = "EmptyInput"


class SessionClosed(PortalError):
    """A result arrived after the session was torn down and was discarded."""

    code = "SessionClosed"


USER_REJECTED_CODE = 4001


class WalletProviderError(Exception):
    """
    Raised by a wallet capability (extension or mock).

    Uses the EIP-1193 style numeric codes wallet extensions report;
    4001 means the user rejected the request.
    """

    def __init__(self, message: str, code: Optional[int] = None) -> None:
        super().__init__(message)
        self.code = code

    @property
    def user_rejected(self) -> bool:
        return self.code == USER_REJECTED_CODE


@dataclass(frozen=True)
class Outcome:
    """
    Caller-visible report of a core operation.

    Errors in the taxonomy never escape as exceptions from the session-level
    components; they come back here instead.
    """

    ok: bool
    error: Optional[PortalError] = None
    value: Any = None

    @classmethod
    def success(cls, value: Any = None) -> "Outcome":
        return cls(ok=True, value=value)

    @classmethod
    def failure(cls, error: PortalError) -> "Outcome":
        return cls(ok=False, error=error)

    @property
    def code(self) -> Optional[str]:
        return self.error.code if self.error is not None else None


__all__ = [
    "PortalError",
    "WalletUnavailable",
    "ConnectionRejected",
    "SilentConnectFailed",
    "AccountNotFound",
    "DeserializationFailure",
    "RpcFailure",
    "RpcRateLimited",
    "SubmissionRejected",
    "EmptyInput",
    "SessionClosed",
    "WalletProviderError",
    "USER_REJECTED_CODE",
    "Outcome",
]
