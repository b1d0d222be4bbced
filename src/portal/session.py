from __future__ import annotations

import logging
from enum import Enum
from typing import Optional

import httpx

from common.chain_client import ChainClient
from common.config import PortalConfig
from common.errors import Outcome, WalletProviderError, WalletUnavailable
from state.account import AccountStateMachine, SingleFlight
from state.models import AccountPhase, AccountStatus
from wallet.providers import WalletProvider
from wallet.session import WalletSession

from .submission import SubmissionController


logger = logging.getLogger(__name__)


class PortalView(str, Enum):
    """Which screen the renderer should show for the current state."""

    NOT_CONNECTED = "not_connected"
    LOADING = "loading"
    NEEDS_INITIALIZATION = "needs_initialization"
    READY = "ready"


def view_for(address: Optional[str], status: AccountStatus) -> PortalView:
    if address is None:
        return PortalView.NOT_CONNECTED
    if status.phase is AccountPhase.UNINITIALIZED:
        return PortalView.NEEDS_INITIALIZATION
    if status.phase is AccountPhase.READY:
        return PortalView.READY
    return PortalView.LOADING


class _Unsigned:
    async def sign_transaction(self, message: bytes) -> bytes:
        raise WalletProviderError("No wallet capability to sign with")


class PortalSession:
    """
    One user's session: wallet, chain client, account state and submissions.

    Wiring
    - WalletSession address goes None -> value: AccountStateMachine.fetch().
    - SubmissionController success: AccountStateMachine.append_succeeded().
    - All chain traffic for the base account shares one SingleFlight guard.

    Usage
    - `session = PortalSession.create(config, provider)`
    - `await session.start()` on page load (silent reconnect)
    - `await session.connect()`, `await session.initialize()`,
      `await session.submit(text)` on user actions
    - `session.view()` tells the renderer what to draw
    - `await session.aclose()` on teardown
    """

    def __init__(
        self,
        *,
        wallet: WalletSession,
        client: ChainClient,
        machine: AccountStateMachine,
        submissions: SubmissionController,
    ) -> None:
        self.wallet = wallet
        self.client = client
        self.machine = machine
        self.submissions = submissions
        self.wallet.on_address(self._on_address)

    @classmethod
    def create(
        cls,
        config: PortalConfig,
        provider: Optional[WalletProvider],
        *,
        http_client: Optional[httpx.AsyncClient] = None,
    ) -> "PortalSession":
        guard = SingleFlight()
        wallet = WalletSession(provider)
        client = ChainClient(config, provider or _Unsigned(), client=http_client)
        machine = AccountStateMachine(client, config.base_account_id, guard=guard)
        submissions = SubmissionController(client, machine, lambda: wallet.address, guard=guard)
        return cls(wallet=wallet, client=client, machine=machine, submissions=submissions)

    async def _on_address(self, address: str) -> None:
        if self.machine.closed:
            return
        logger.info("Fetching GIF list for %s...", address)
        await self.machine.fetch()

    # -------- User actions --------
    async def start(self) -> Outcome:
        return await self.wallet.check_existing()

    async def connect(self) -> Outcome:
        return await self.wallet.connect()

    async def initialize(self) -> Outcome:
        address = self.wallet.address
        if address is None:
            return Outcome.failure(WalletUnavailable("Connect a wallet before initializing"))
        return await self.machine.initialize(address)

    async def refresh(self) -> Outcome:
        return await self.machine.fetch()

    async def submit(self, text: Optional[str]) -> Outcome:
        return await self.submissions.submit(text)

    # -------- Read side --------
    @property
    def status(self) -> AccountStatus:
        return self.machine.status

    def view(self) -> PortalView:
        return view_for(self.wallet.address, self.machine.status)

    async def aclose(self) -> None:
        self.machine.close()
        await self.client.aclose()

    async def __aenter__(self) -> "PortalSession":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()


__all__ = ["PortalSession", "PortalView", "view_for"]
