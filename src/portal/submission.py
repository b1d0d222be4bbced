from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Callable, Optional

from common.errors import EmptyInput, Outcome, PortalError, WalletUnavailable
from state.account import AccountStateMachine, SingleFlight

if TYPE_CHECKING:
    from common.chain_client import ChainClient


logger = logging.getLogger(__name__)


def normalize_link(raw: Optional[str]) -> str:
    return (raw or "").strip()


class SubmissionController:
    """
    Validates user input and appends it to the list.

    One append per non-empty submit; on success the state machine re-fetches
    once. On failure the cached list is left as it was.
    """

    def __init__(
        self,
        client: "ChainClient",
        machine: AccountStateMachine,
        address: Callable[[], Optional[str]],
        *,
        guard: Optional[SingleFlight] = None,
    ) -> None:
        self._client = client
        self._machine = machine
        self._address = address
        self._guard = guard or SingleFlight()

    async def submit(self, raw_input: Optional[str]) -> Outcome:
        link = normalize_link(raw_input)
        if not link:
            logger.info("No gif link given!")
            return Outcome.failure(EmptyInput("No gif link given"))

        user = self._address()
        if user is None:
            err = WalletUnavailable("Connect a wallet before submitting")
            logger.warning("%s", err)
            return Outcome.failure(err)

        logger.info("Gif link: %s", link)
        account_id = self._machine.account_id
        async with self._guard.hold(account_id):
            try:
                signature = await self._client.append_entry(account_id, user, link)
            except PortalError as e:
                logger.warning("Error sending GIF: %s", e)
                return Outcome.failure(e)
        logger.info("GIF successfully sent to program: %s", link)

        # Lock released above; the re-fetch takes it again
        refreshed = await self._machine.append_succeeded()
        if not refreshed.ok:
            logger.warning("GIF sent but re-fetch failed: %s", refreshed.error)
        return Outcome.success(signature)


__all__ = ["SubmissionController", "normalize_link"]
