from __future__ import annotations

import logging
from typing import Awaitable, Callable, List, Optional

from common.errors import (
    ConnectionRejected,
    Outcome,
    SilentConnectFailed,
    WalletProviderError,
    WalletUnavailable,
)

from .providers import ConnectResponse, WalletProvider


logger = logging.getLogger(__name__)

AddressListener = Callable[[str], Awaitable[None]]


class WalletSession:
    """
    Owns the connected wallet address for one session.

    `address` starts as None, is set by `check_existing()` or `connect()`,
    and is never cleared (there is no disconnect). Listeners registered via
    `on_address` run only when the address goes from None to a value.
    """

    def __init__(self, provider: Optional[WalletProvider]) -> None:
        self._provider = provider
        self._address: Optional[str] = None
        self._listeners: List[AddressListener] = []

    @property
    def address(self) -> Optional[str]:
        return self._address

    def on_address(self, listener: AddressListener) -> None:
        self._listeners.append(listener)

    async def check_existing(self) -> Outcome:
        """Silent reconnect; never prompts the user."""
        if self._provider is None:
            err = WalletUnavailable("Solana object not found! Get a Phantom wallet")
            logger.warning("%s", err)
            return Outcome.failure(err)
        try:
            resp = await self._provider.connect(only_if_trusted=True)
        except Exception as exc:
            err = SilentConnectFailed(f"Trusted reconnect failed: {exc}")
            logger.info("%s", err)
            return Outcome.failure(err)
        return await self._accept(resp)

    async def connect(self) -> Outcome:
        """Interactive connect; always prompts through the wallet."""
        if self._provider is None:
            err = WalletUnavailable("No wallet capability to connect to")
            logger.warning("%s", err)
            return Outcome.failure(err)
        try:
            resp = await self._provider.connect(only_if_trusted=False)
        except WalletProviderError as exc:
            if exc.user_rejected:
                logger.warning("Wallet connect rejected: %s", exc)
                return Outcome.failure(ConnectionRejected(str(exc)))
            logger.warning("Wallet connect failed (code=%s): %s", exc.code, exc)
            return Outcome.failure(WalletUnavailable(f"Wallet could not connect: {exc}"))
        return await self._accept(resp)

    async def _accept(self, resp: ConnectResponse) -> Outcome:
        address = str(resp.public_key)
        was_absent = self._address is None
        self._address = address
        logger.info("Connected with Public Key: %s", address)
        if was_absent:
            for listener in list(self._listeners):
                await listener(address)
        return Outcome.success(address)


__all__ = ["WalletSession"]
