from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, AsyncIterator, Dict, Hashable

from common.errors import (
    AccountNotFound,
    DeserializationFailure,
    Outcome,
    PortalError,
    SessionClosed,
)
from common.keys import PublicKey

from .models import AccountStatus, GifList

if TYPE_CHECKING:
    from common.chain_client import ChainClient


logger = logging.getLogger(__name__)


class SingleFlight:
    """
    Per-key asyncio lock registry.

    Serializes appends, fetches and initialization that target the same
    account. Locks are not reentrant; release before triggering a follow-up.
    """

    def __init__(self) -> None:
        self._locks: Dict[Hashable, asyncio.Lock] = {}

    def lock_for(self, key: Hashable) -> asyncio.Lock:
        lock = self._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[key] = lock
        return lock

    @asynccontextmanager
    async def hold(self, key: Hashable) -> AsyncIterator[None]:
        async with self.lock_for(key):
            yield

    def busy(self, key: Hashable) -> bool:
        lock = self._locks.get(key)
        return lock is not None and lock.locked()


class AccountStateMachine:
    """
    Authoritative cached view of the on-chain list account.

    States: Unknown -> (fetch) -> Ready(list) | Uninitialized.
    Uninitialized -> (initialize) -> Ready([]).
    Ready -> (append_succeeded) -> re-fetch, list replaced wholesale.

    Expected first-run conditions (account missing or not yet laid out) move
    the machine to Uninitialized. Any other failure leaves the state as it
    was and is returned in the Outcome. Nothing is retried here.
    """

    def __init__(
        self,
        client: "ChainClient",
        account_id: PublicKey,
        *,
        guard: "SingleFlight | None" = None,
    ) -> None:
        self._client = client
        self._account_id = account_id
        self._guard = guard or SingleFlight()
        self._status = AccountStatus.unknown()
        self._closed = False

    @property
    def account_id(self) -> PublicKey:
        return self._account_id

    @property
    def status(self) -> AccountStatus:
        return self._status

    @property
    def closed(self) -> bool:
        return self._closed

    def close(self) -> None:
        """Tear down; fetches that resolve after this are discarded."""
        self._closed = True

    def _apply(self, status: AccountStatus) -> bool:
        if self._closed:
            logger.debug("Discarding %s result for closed session", status.phase.value)
            return False
        self._status = status
        return True

    async def fetch(self) -> Outcome:
        logger.info("Fetching GIF list from %s", self._account_id)
        async with self._guard.hold(self._account_id):
            try:
                gifs = await self._client.fetch_account(self._account_id)
            except (AccountNotFound, DeserializationFailure) as e:
                logger.info("BaseAccount not initialized (%s): %s", e.code, e)
                self._apply(AccountStatus.uninitialized())
                return Outcome.failure(e)
            except PortalError as e:
                logger.warning("Error fetching GIF list: %s", e)
                return Outcome.failure(e)
        if not self._apply(AccountStatus.ready(gifs)):
            return Outcome.failure(SessionClosed("Fetch resolved after the session closed"))
        logger.info("Got the account: %d gifs", len(gifs))
        return Outcome.success(gifs)

    async def initialize(self, user_address: str) -> Outcome:
        async with self._guard.hold(self._account_id):
            try:
                signature = await self._client.initialize_account(self._account_id, user_address)
            except PortalError as e:
                logger.warning("Error creating BaseAccount: %s", e)
                return Outcome.failure(e)
        # The account was just created empty; skip the confirming round trip
        if not self._apply(AccountStatus.ready(GifList.empty())):
            return Outcome.failure(SessionClosed(f"Account created (tx {signature}) after the session closed"))
        return Outcome.success(signature)

    async def append_succeeded(self) -> Outcome:
        # Replace from chain rather than appending locally, so the cache only
        # ever holds chain-confirmed lists
        return await self.fetch()


__all__ = ["AccountStateMachine", "SingleFlight"]
