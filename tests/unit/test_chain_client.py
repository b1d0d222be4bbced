from __future__ import annotations

import json

import httpx
import pytest

from common.chain_client import ChainClient
from common.errors import (
    AccountNotFound,
    DeserializationFailure,
    RpcFailure,
    RpcRateLimited,
    SubmissionRejected,
)
from common.keys import SYSTEM_PROGRAM_ID, Keypair
from common.idl import instruction_discriminator
from state.account import AccountStateMachine
from state.models import AccountPhase
from wallet.providers import MockProvider

from fakes import encode_base_account


@pytest.mark.asyncio
async def test_fetch_account_decodes_list_in_order(config, node, wallet_provider):
    u1, u2 = Keypair.generate().public_key, Keypair.generate().public_key
    node.create_account([("first.gif", u1), ("second.gif", u2)])

    async with ChainClient(config, wallet_provider, client=node.client()) as chain:
        gifs = await chain.fetch_account(config.base_account_id)

    assert gifs.links == ("first.gif", "second.gif")
    assert gifs.total == 2
    assert gifs[1].submitted_by == str(u2)
    assert node.calls == ["getAccountInfo"]


@pytest.mark.asyncio
async def test_fetch_request_uses_base64_and_commitment(config, wallet_provider):
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"jsonrpc": "2.0", "id": 1, "result": {"value": None}})

    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    async with ChainClient(config, wallet_provider, client=client) as chain:
        with pytest.raises(AccountNotFound):
            await chain.fetch_account(config.base_account_id)

    body = seen["body"]
    assert body["jsonrpc"] == "2.0"
    assert body["method"] == "getAccountInfo"
    assert body["params"] == [
        str(config.base_account_id),
        {"encoding": "base64", "commitment": "processed"},
    ]


@pytest.mark.asyncio
async def test_fetch_wrong_owner_is_deserialization_failure(config, node, wallet_provider):
    node.put_raw_account(encode_base_account([]), owner=SYSTEM_PROGRAM_ID)
    async with ChainClient(config, wallet_provider, client=node.client()) as chain:
        with pytest.raises(DeserializationFailure):
            await chain.fetch_account(config.base_account_id)


@pytest.mark.asyncio
async def test_fetch_garbage_bytes_is_deserialization_failure(config, node, wallet_provider):
    node.put_raw_account(b"\x01" * 40)
    async with ChainClient(config, wallet_provider, client=node.client()) as chain:
        with pytest.raises(DeserializationFailure):
            await chain.fetch_account(config.base_account_id)


@pytest.mark.asyncio
async def test_http_500_and_transport_errors_are_rpc_failures(config, node, wallet_provider):
    node.failures["getAccountInfo"] = 503
    async with ChainClient(config, wallet_provider, client=node.client()) as chain:
        with pytest.raises(RpcFailure):
            await chain.fetch_account(config.base_account_id)

        node.failures["getAccountInfo"] = httpx.ConnectError("connection refused")
        with pytest.raises(RpcFailure):
            await chain.fetch_account(config.base_account_id)

    # No automatic retries
    assert node.count("getAccountInfo") == 2


@pytest.mark.asyncio
async def test_jsonrpc_error_is_rpc_failure(config, node, wallet_provider):
    node.failures["getAccountInfo"] = {"code": -32005, "message": "Node is unhealthy"}
    async with ChainClient(config, wallet_provider, client=node.client()) as chain:
        with pytest.raises(RpcFailure) as ei:
            await chain.fetch_account(config.base_account_id)
    assert not isinstance(ei.value, SubmissionRejected)


@pytest.mark.asyncio
async def test_initialize_is_cosigned_by_user_and_base_account(config, node, wallet_provider):
    user = str(wallet_provider.public_key)
    async with ChainClient(config, wallet_provider, client=node.client()) as chain:
        sig = await chain.initialize_account(config.base_account_id, user)

    assert isinstance(sig, str) and sig
    assert node.calls == ["getLatestBlockhash", "sendTransaction", "getSignatureStatuses"]
    tx = node.sent[0]
    assert tx["signers"] == [wallet_provider.public_key, config.base_account_id]
    ix = tx["instructions"][0]
    assert ix["program"] == config.program_id
    assert ix["accounts"] == [config.base_account_id, wallet_provider.public_key, SYSTEM_PROGRAM_ID]
    assert ix["data"] == instruction_discriminator("startStuffOff")
    assert node.items == []


@pytest.mark.asyncio
async def test_initialize_twice_is_rejected_by_program(config, node, wallet_provider):
    node.create_account([])
    async with ChainClient(config, wallet_provider, client=node.client()) as chain:
        with pytest.raises(SubmissionRejected):
            await chain.initialize_account(config.base_account_id, str(wallet_provider.public_key))


@pytest.mark.asyncio
async def test_append_is_signed_by_user_only(config, node, wallet_provider):
    node.create_account([])
    link = "https://i.giphy.com/media/x/giphy.webp"
    async with ChainClient(config, wallet_provider, client=node.client()) as chain:
        await chain.append_entry(config.base_account_id, str(wallet_provider.public_key), link)

    tx = node.sent[0]
    assert tx["signers"] == [wallet_provider.public_key]
    assert len(wallet_provider.signed) == 1
    assert node.items == [(link, wallet_provider.public_key)]


@pytest.mark.asyncio
async def test_append_wallet_declines_signing(config, node, wallet_provider):
    node.create_account([])
    wallet_provider.reject_signing = True
    async with ChainClient(config, wallet_provider, client=node.client()) as chain:
        with pytest.raises(SubmissionRejected):
            await chain.append_entry(config.base_account_id, str(wallet_provider.public_key), "x.gif")
    assert "sendTransaction" not in node.calls


@pytest.mark.asyncio
async def test_failed_signature_status_is_rejection(config, node, wallet_provider):
    node.create_account([])
    node.status_err = {"InstructionError": [0, {"Custom": 3012}]}
    async with ChainClient(config, wallet_provider, client=node.client()) as chain:
        with pytest.raises(SubmissionRejected):
            await chain.append_entry(config.base_account_id, str(wallet_provider.public_key), "x.gif")


@pytest.mark.asyncio
async def test_confirmation_timeout_is_rpc_failure(keypair_file, node, wallet_provider):
    from common.config import PortalConfig

    cfg = PortalConfig.load(
        keypair_path=keypair_file,
        commitment="finalized",
        confirm_timeout=0.0,
        confirm_poll_interval=0.0,
    )
    node.create_account([])
    node.confirmation_status = "confirmed"
    async with ChainClient(cfg, wallet_provider, client=node.client()) as chain:
        with pytest.raises(RpcFailure):
            await chain.append_entry(cfg.base_account_id, str(wallet_provider.public_key), "x.gif")


@pytest.mark.asyncio
async def test_local_throttle_refuses_excess_requests(keypair_file, node, wallet_provider):
    from common.config import PortalConfig

    cfg = PortalConfig.load(keypair_path=keypair_file, max_requests_per_window=1, rate_window_seconds=60.0)
    node.create_account([])
    async with ChainClient(cfg, wallet_provider, client=node.client()) as chain:
        await chain.fetch_account(cfg.base_account_id)
        with pytest.raises(RpcRateLimited):
            await chain.fetch_account(cfg.base_account_id)
    assert node.count("getAccountInfo") == 1


@pytest.mark.asyncio
async def test_rejects_foreign_account_id(config, node, wallet_provider):
    async with ChainClient(config, wallet_provider, client=node.client()) as chain:
        with pytest.raises(ValueError):
            await chain.append_entry(Keypair.generate().public_key, str(wallet_provider.public_key), "x")


def _answering(result):
    def handler(request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        return httpx.Response(200, json={"jsonrpc": "2.0", "id": body["id"], "result": result})

    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


@pytest.mark.asyncio
@pytest.mark.parametrize("result", ["garbage", None, [], {"context": {"slot": 1}}])
async def test_malformed_account_info_result_is_rpc_failure(config, wallet_provider, result):
    async with ChainClient(config, wallet_provider, client=_answering(result)) as chain:
        with pytest.raises(RpcFailure):
            await chain.fetch_account(config.base_account_id)

        # A broken node reply is not evidence the account is missing
        machine = AccountStateMachine(chain, config.base_account_id)
        out = await machine.fetch()
    assert out.code == "RpcFailure"
    assert machine.status.phase is AccountPhase.UNKNOWN


@pytest.mark.asyncio
@pytest.mark.parametrize("value", [["oops"], "oops", 7])
async def test_non_object_account_value_is_deserialization_failure(config, wallet_provider, value):
    async with ChainClient(config, wallet_provider, client=_answering({"value": value})) as chain:
        with pytest.raises(DeserializationFailure):
            await chain.fetch_account(config.base_account_id)


class _ShortSigner(MockProvider):
    async def sign_transaction(self, message: bytes) -> bytes:
        self.signed.append(message)
        return b"\x00" * 10


@pytest.mark.asyncio
async def test_append_with_malformed_wallet_signature_is_not_sent(config, node):
    node.create_account([])
    signer = _ShortSigner()
    async with ChainClient(config, signer, client=node.client()) as chain:
        with pytest.raises(SubmissionRejected):
            await chain.append_entry(config.base_account_id, str(signer.public_key), "x.gif")
    assert len(signer.signed) == 1
    assert "sendTransaction" not in node.calls
