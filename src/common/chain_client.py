from __future__ import annotations

import asyncio
import base64
import binascii
import itertools
import logging
from typing import Any, Dict, List, Optional, Protocol

import base58
import httpx

from state.models import GifEntry, GifList

from .config import Commitment, PortalConfig
from .errors import (
    AccountNotFound,
    DeserializationFailure,
    RpcFailure,
    RpcRateLimited,
    SubmissionRejected,
    WalletProviderError,
)
from .idl import IdlError
from .keys import SYSTEM_PROGRAM_ID, PublicKey
from .rate_limiter import RateLimitError, SlidingWindowRateLimiter
from .transaction import (
    SIGNATURE_LENGTH,
    AccountMeta,
    Instruction,
    compile_message,
    encode_wire,
    serialize_transaction,
)


logger = logging.getLogger(__name__)

ACCOUNT_NAME = "BaseAccount"
INIT_INSTRUCTION = "startStuffOff"
APPEND_INSTRUCTION = "addGif"

# JSON-RPC error codes that mean the node evaluated and refused the transaction
_REJECTION_CODES = {
    -32002,  # preflight simulation failed
    -32003,  # signature verification failure
}


class TransactionSigner(Protocol):
    """The user's signing capability (a connected wallet)."""

    async def sign_transaction(self, message: bytes) -> bytes:
        ...


class ChainClient:
    """
    Minimal Solana JSON-RPC client for the GIF program.

    Notes
    - Every call is a single logical round trip; sends are followed by
      polling signature status until the configured commitment is reached.
    - Account layout and instruction encoding come from the IDL in `config`.
    - Errors are raised as the portal taxonomy (`RpcFailure`,
      `SubmissionRejected`, `AccountNotFound`, `DeserializationFailure`);
      callers above this layer decide how to report them.
    """

    def __init__(
        self,
        config: PortalConfig,
        signer: TransactionSigner,
        *,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self._config = config
        self._signer = signer
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=config.http_timeout)
        self._ids = itertools.count(1)
        self._limiter = SlidingWindowRateLimiter(
            max_calls=config.max_requests_per_window,
            per_seconds=config.rate_window_seconds,
        )

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> "ChainClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()

    @property
    def commitment(self) -> Commitment:
        return self._config.commitment

    # --------------- Public API ---------------
    async def fetch_account(self, account_id: PublicKey) -> GifList:
        """
        Read and decode the list account.

        Raises AccountNotFound when no account exists at `account_id`, and
        DeserializationFailure when it exists but does not hold a BaseAccount
        owned by the configured program.
        """
        result = await self._rpc(
            "getAccountInfo",
            [str(account_id), {"encoding": "base64", "commitment": self.commitment.value}],
        )
        if not isinstance(result, dict) or "value" not in result:
            raise RpcFailure("Malformed getAccountInfo result")
        value = result["value"]
        if value is None:
            raise AccountNotFound(f"No account at {account_id}")
        if not isinstance(value, dict):
            raise DeserializationFailure("Account info is not an object")

        owner = value.get("owner")
        if owner != str(self._config.program_id):
            raise DeserializationFailure(
                f"Account {account_id} is owned by {owner}, not {self._config.program_id}"
            )
        data = value.get("data")
        if not (isinstance(data, list) and data and isinstance(data[0], str)):
            raise DeserializationFailure("Account data missing or not base64 encoded")
        try:
            raw = base64.b64decode(data[0], validate=True)
        except (binascii.Error, ValueError) as exc:
            raise DeserializationFailure("Account data is not valid base64") from exc

        try:
            decoded = self._config.idl.decode_account(ACCOUNT_NAME, raw)
        except IdlError as exc:
            raise DeserializationFailure(str(exc)) from exc
        return _to_gif_list(decoded)

    async def initialize_account(self, account_id: PublicKey, user_address: str) -> str:
        """Create the list account; co-signed by the user and the base account key pair."""
        self._require_base_account(account_id)
        user = PublicKey.from_string(user_address)
        ix = self._instruction(
            INIT_INSTRUCTION,
            {"baseAccount": account_id, "user": user, "systemProgram": SYSTEM_PROGRAM_ID},
            {},
        )
        signature = await self._send(user, ix)
        logger.info("Created BaseAccount %s (tx %s)", account_id, signature)
        return signature

    async def append_entry(self, account_id: PublicKey, user_address: str, link: str) -> str:
        """Submit `addGif(link)`; signed by the user only."""
        self._require_base_account(account_id)
        user = PublicKey.from_string(user_address)
        ix = self._instruction(
            APPEND_INSTRUCTION,
            {"baseAccount": account_id, "user": user},
            {"gifLink": link},
        )
        return await self._send(user, ix)

    # --------------- Internal ---------------
    def _require_base_account(self, account_id: PublicKey) -> None:
        if account_id != self._config.base_account_id:
            raise ValueError(f"Account {account_id} is not the configured base account")

    def _instruction(
        self, name: str, accounts: Dict[str, PublicKey], args: Dict[str, Any]
    ) -> Instruction:
        idl_ix = self._config.idl.instruction(name)
        metas: List[AccountMeta] = []
        for item in idl_ix.accounts:
            if item.name not in accounts:
                raise ValueError(f"Missing account {item.name!r} for {name}")
            metas.append(
                AccountMeta(pubkey=accounts[item.name], is_signer=item.isSigner, is_writable=item.isMut)
            )
        data = self._config.idl.encode_instruction(name, args)
        return Instruction(program_id=self._config.program_id, accounts=metas, data=data)

    async def _send(self, payer: PublicKey, ix: Instruction) -> str:
        blockhash = await self._latest_blockhash()
        message = compile_message(payer, [ix], blockhash)
        message_bytes = message.serialize()

        signatures: List[bytes] = []
        for key in message.signers:
            if key == self._config.base_account_id:
                signatures.append(self._config.base_account.sign(message_bytes))
            elif key == payer:
                try:
                    sig = await self._signer.sign_transaction(message_bytes)
                except WalletProviderError as exc:
                    raise SubmissionRejected(f"Wallet declined to sign: {exc}") from exc
                if not isinstance(sig, (bytes, bytearray)) or len(sig) != SIGNATURE_LENGTH:
                    raise SubmissionRejected("Wallet returned a malformed signature")
                signatures.append(bytes(sig))
            else:
                raise ValueError(f"No signer available for {key}")

        wire = encode_wire(serialize_transaction(signatures, message_bytes))
        signature = await self._rpc(
            "sendTransaction",
            [wire, {"encoding": "base64", "preflightCommitment": self.commitment.value}],
        )
        if not isinstance(signature, str):
            raise RpcFailure("sendTransaction returned no signature")
        await self._confirm(signature)
        return signature

    async def _latest_blockhash(self) -> str:
        result = await self._rpc("getLatestBlockhash", [{"commitment": self.commitment.value}])
        value = result.get("value") if isinstance(result, dict) else None
        blockhash = value.get("blockhash") if isinstance(value, dict) else None
        if not isinstance(blockhash, str):
            raise RpcFailure("getLatestBlockhash returned no blockhash")
        try:
            if len(base58.b58decode(blockhash)) != 32:
                raise ValueError("wrong length")
        except ValueError as exc:
            raise RpcFailure(f"Malformed blockhash from node: {blockhash!r}") from exc
        return blockhash

    async def _confirm(self, signature: str) -> None:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self._config.confirm_timeout
        target = self.commitment.rank
        while True:
            result = await self._rpc("getSignatureStatuses", [[signature]])
            statuses = result.get("value") if isinstance(result, dict) else None
            status = statuses[0] if isinstance(statuses, list) and statuses else None
            if isinstance(status, dict):
                if status.get("err") is not None:
                    raise SubmissionRejected(f"Transaction {signature} failed: {status['err']}")
                level = status.get("confirmationStatus")
                try:
                    reached = Commitment.parse(level).rank >= target if level else False
                except ValueError:
                    reached = False
                if reached:
                    return
            if loop.time() >= deadline:
                raise RpcFailure(f"Transaction {signature} not {self.commitment.value} in time")
            await asyncio.sleep(self._config.confirm_poll_interval)

    async def _rpc(self, method: str, params: List[Any]) -> Any:
        try:
            self._limiter.acquire()
        except RateLimitError as rl:
            raise RpcRateLimited("Local rate limiter prevented request") from rl

        body = {"jsonrpc": "2.0", "id": next(self._ids), "method": method, "params": params}
        try:
            resp = await self._client.post(self._config.cluster_url, json=body)
        except (httpx.TimeoutException, httpx.TransportError) as exc:
            raise RpcFailure(f"{method} failed: {exc}") from exc

        if resp.status_code != 200:
            raise RpcFailure(f"HTTP {resp.status_code} from RPC node: {resp.text[:200]}")
        try:
            payload = resp.json()
        except ValueError as exc:
            raise RpcFailure("Failed to parse JSON from RPC node") from exc
        if not isinstance(payload, dict):
            raise RpcFailure("Malformed JSON-RPC envelope")

        error = payload.get("error")
        if isinstance(error, dict):
            code = error.get("code")
            message = error.get("message") or "RPC error"
            if code in _REJECTION_CODES:
                raise SubmissionRejected(f"{message} (code={code})")
            raise RpcFailure(f"{method}: {message} (code={code})")
        if "result" not in payload:
            raise RpcFailure("Malformed JSON-RPC envelope")
        return payload["result"]


def _to_gif_list(decoded: Dict[str, Any]) -> GifList:
    try:
        items = [
            GifEntry(link=item["gifLink"], submitted_by=str(item["userAddress"]))
            for item in decoded["gifList"]
        ]
        return GifList(items=tuple(items), total=int(decoded["totalGifs"]))
    except (KeyError, TypeError, ValueError) as exc:
        raise DeserializationFailure(f"Unexpected BaseAccount layout: {exc}") from exc


__all__ = [
    "ChainClient",
    "TransactionSigner",
]
