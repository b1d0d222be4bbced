from __future__ import annotations

import inspect
from dataclasses import dataclass
from typing import Any, Optional, Protocol, runtime_checkable

from common.errors import USER_REJECTED_CODE, WalletProviderError
from common.keys import Keypair, PublicKey
from common.transaction import SIGNATURE_LENGTH


@dataclass(frozen=True)
class ConnectResponse:
    public_key: PublicKey


@runtime_checkable
class WalletProvider(Protocol):
    """
    Injected wallet capability.

    `connect(only_if_trusted=True)` must never prompt; it succeeds only if the
    user already trusted this origin. Failures raise `WalletProviderError`.
    """

    async def connect(self, *, only_if_trusted: bool = False) -> ConnectResponse:
        ...

    async def sign_transaction(self, message: bytes) -> bytes:
        ...


async def _maybe_await(value: Any) -> Any:
    if inspect.isawaitable(value):
        return await value
    return value


class BrowserExtensionProvider:
    """
    Adapter over an extension-injected wallet object (e.g. `window.solana`
    reached through a JS bridge).

    The injected object is duck-typed: it must expose `isPhantom`,
    `connect({"onlyIfTrusted": bool})` returning something with `publicKey`,
    and `signTransaction(message_bytes)` returning a 64-byte signature.
    Errors it raises are converted to `WalletProviderError`, keeping their
    numeric `code` when present.
    """

    def __init__(self, injected: Any) -> None:
        self._injected = injected

    @classmethod
    def detect(cls, window: Any) -> Optional["BrowserExtensionProvider"]:
        """
        Return a provider if a recognized wallet is injected into `window`.

        Objects that are present but do not identify as a supported wallet
        count as absent.
        """
        injected = getattr(window, "solana", None)
        if injected is None and isinstance(window, dict):
            injected = window.get("solana")
        if injected is None:
            return None
        if not getattr(injected, "isPhantom", False):
            return None
        if not callable(getattr(injected, "connect", None)):
            return None
        return cls(injected)

    async def connect(self, *, only_if_trusted: bool = False) -> ConnectResponse:
        try:
            resp = await _maybe_await(self._injected.connect({"onlyIfTrusted": only_if_trusted}))
        except WalletProviderError:
            raise
        except Exception as exc:
            raise WalletProviderError(str(exc) or "connect failed", getattr(exc, "code", None)) from exc

        pk = getattr(resp, "publicKey", None)
        if pk is None and isinstance(resp, dict):
            pk = resp.get("publicKey")
        if pk is None:
            raise WalletProviderError("Wallet returned no public key")
        try:
            return ConnectResponse(public_key=PublicKey.from_string(str(pk)))
        except ValueError as exc:
            raise WalletProviderError(f"Wallet returned an invalid public key: {exc}") from exc

    async def sign_transaction(self, message: bytes) -> bytes:
        try:
            sig = bytes(await _maybe_await(self._injected.signTransaction(message)))
        except WalletProviderError:
            raise
        except Exception as exc:
            raise WalletProviderError(str(exc) or "signing failed", getattr(exc, "code", None)) from exc
        if len(sig) != SIGNATURE_LENGTH:
            raise WalletProviderError(f"Wallet returned a {len(sig)}-byte signature")
        return sig


class MockProvider:
    """
    Deterministic in-process wallet for tests and local runs.

    - `trusted`: whether a silent (`only_if_trusted`) connect succeeds.
    - `reject_connect` / `reject_signing`: simulate the user clicking "Cancel".
    Records every call for assertions.
    """

    def __init__(
        self,
        keypair: Optional[Keypair] = None,
        *,
        trusted: bool = False,
        reject_connect: bool = False,
        reject_signing: bool = False,
    ) -> None:
        self.keypair = keypair or Keypair.generate()
        self.trusted = trusted
        self.reject_connect = reject_connect
        self.reject_signing = reject_signing
        self.connect_calls: list[bool] = []
        self.signed: list[bytes] = []

    @property
    def public_key(self) -> PublicKey:
        return self.keypair.public_key

    async def connect(self, *, only_if_trusted: bool = False) -> ConnectResponse:
        self.connect_calls.append(only_if_trusted)
        if only_if_trusted:
            if not self.trusted:
                raise WalletProviderError("Origin not trusted", USER_REJECTED_CODE)
        elif self.reject_connect:
            raise WalletProviderError("User rejected the request.", USER_REJECTED_CODE)
        else:
            self.trusted = True
        return ConnectResponse(public_key=self.keypair.public_key)

    async def sign_transaction(self, message: bytes) -> bytes:
        if self.reject_signing:
            raise WalletProviderError("User rejected the request.", USER_REJECTED_CODE)
        self.signed.append(message)
        return self.keypair.sign(message)


__all__ = [
    "ConnectResponse",
    "WalletProvider",
    "BrowserExtensionProvider",
    "MockProvider",
]
