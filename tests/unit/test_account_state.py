from __future__ import annotations

import asyncio
from typing import Any, List, Optional

import pytest

from common.errors import (
    AccountNotFound,
    DeserializationFailure,
    RpcFailure,
    SubmissionRejected,
)
from common.keys import Keypair
from state.account import AccountStateMachine, SingleFlight
from state.models import AccountPhase, AccountStatus, GifEntry, GifList


ACCOUNT = Keypair.generate().public_key
USER = str(Keypair.generate().public_key)


def _gifs(*links: str) -> GifList:
    return GifList(items=tuple(GifEntry(link=l, submitted_by=USER) for l in links), total=len(links))


class _FakeChain:
    def __init__(self) -> None:
        self.fetch_plan: List[Any] = []
        self.init_error: Optional[Exception] = None
        self.calls: List[str] = []

    async def fetch_account(self, account_id):
        self.calls.append("fetch")
        outcome = self.fetch_plan.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    async def initialize_account(self, account_id, user_address):
        self.calls.append("init")
        if self.init_error is not None:
            raise self.init_error
        return "sig-init"


def test_status_invariant_enforced():
    with pytest.raises(ValueError):
        AccountStatus(phase=AccountPhase.READY)
    with pytest.raises(ValueError):
        AccountStatus(phase=AccountPhase.UNINITIALIZED, gifs=GifList.empty())


def test_initial_state_is_unknown():
    m = AccountStateMachine(_FakeChain(), ACCOUNT)
    assert m.status.phase is AccountPhase.UNKNOWN
    assert m.status.gifs is None


@pytest.mark.asyncio
async def test_fetch_success_is_ready():
    chain = _FakeChain()
    chain.fetch_plan = [_gifs("a", "b")]
    m = AccountStateMachine(chain, ACCOUNT)

    out = await m.fetch()
    assert out.ok
    assert m.status.is_ready
    assert m.status.gifs.links == ("a", "b")


@pytest.mark.asyncio
@pytest.mark.parametrize("prior", [[], [_gifs("a")], [AccountNotFound("x")]])
@pytest.mark.parametrize("err", [AccountNotFound("missing"), DeserializationFailure("bad")])
async def test_not_found_or_bad_layout_always_uninitialized(prior, err):
    chain = _FakeChain()
    chain.fetch_plan = list(prior) + [err]
    m = AccountStateMachine(chain, ACCOUNT)
    for _ in prior:
        await m.fetch()

    out = await m.fetch()
    assert not out.ok
    assert out.error is err
    assert m.status.phase is AccountPhase.UNINITIALIZED


@pytest.mark.asyncio
async def test_rpc_failure_keeps_prior_state():
    chain = _FakeChain()
    chain.fetch_plan = [_gifs("a"), RpcFailure("timeout")]
    m = AccountStateMachine(chain, ACCOUNT)
    await m.fetch()
    before = m.status

    out = await m.fetch()
    assert isinstance(out.error, RpcFailure)
    assert m.status == before


@pytest.mark.asyncio
async def test_initialize_success_is_ready_empty_without_fetch():
    chain = _FakeChain()
    chain.fetch_plan = [AccountNotFound("missing")]
    m = AccountStateMachine(chain, ACCOUNT)
    await m.fetch()
    assert m.status.phase is AccountPhase.UNINITIALIZED

    out = await m.initialize(USER)
    assert out.ok
    assert m.status == AccountStatus.ready(GifList.empty())
    assert chain.calls == ["fetch", "init"]


@pytest.mark.asyncio
async def test_initialize_failure_stays_uninitialized():
    chain = _FakeChain()
    chain.fetch_plan = [AccountNotFound("missing")]
    chain.init_error = SubmissionRejected("already in use")
    m = AccountStateMachine(chain, ACCOUNT)
    await m.fetch()

    out = await m.initialize(USER)
    assert isinstance(out.error, SubmissionRejected)
    assert m.status.phase is AccountPhase.UNINITIALIZED


@pytest.mark.asyncio
async def test_append_succeeded_replaces_list_wholesale():
    chain = _FakeChain()
    chain.fetch_plan = [_gifs("a"), _gifs("a", "b")]
    m = AccountStateMachine(chain, ACCOUNT)
    await m.fetch()

    await m.append_succeeded()
    assert m.status.gifs.links == ("a", "b")
    assert chain.calls == ["fetch", "fetch"]


@pytest.mark.asyncio
async def test_stale_fetch_after_close_is_discarded():
    chain = _FakeChain()
    chain.fetch_plan = [_gifs("a")]
    m = AccountStateMachine(chain, ACCOUNT)
    m.close()

    out = await m.fetch()
    assert not out.ok
    assert out.code == "SessionClosed"
    assert m.status.phase is AccountPhase.UNKNOWN


@pytest.mark.asyncio
async def test_initialize_resolving_after_close_is_not_success():
    chain = _FakeChain()
    m = AccountStateMachine(chain, ACCOUNT)
    m.close()

    out = await m.initialize(USER)
    assert not out.ok
    assert out.code == "SessionClosed"
    assert m.status.phase is AccountPhase.UNKNOWN


@pytest.mark.asyncio
async def test_single_flight_serializes_same_key():
    guard = SingleFlight()
    order: List[str] = []

    async def worker(name: str) -> None:
        async with guard.hold(ACCOUNT):
            order.append(f"{name}-in")
            await asyncio.sleep(0)
            order.append(f"{name}-out")

    await asyncio.gather(worker("a"), worker("b"))
    assert order == ["a-in", "a-out", "b-in", "b-out"]
    assert not guard.busy(ACCOUNT)
