from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest
from web3.exceptions import Web3RPCError

from fork_lp.adapters.impersonation_adapter.adapter import AccountImpersonator
from fork_lp.core.errors import UnsupportedOperationError
from fork_lp.core.utils.fork import ForkContext

WHALE = "0x47ac0Fb4F2D84898e4D9E7b4DaB3C24507a6D503"


class _Web3Ctx:
    def __init__(self, web3):
        self._web3 = web3

    async def __aenter__(self):
        return self._web3

    async def __aexit__(self, exc_type, exc, tb):
        return False


def _make(flavor: str | None = "anvil", coro_request=None):
    web3 = MagicMock()
    web3.manager.coro_request = coro_request or AsyncMock(return_value=None)
    ctx = ForkContext(rpc_url="http://127.0.0.1:8545", chain_id=1, flavor=flavor)
    ctx.web3 = lambda: _Web3Ctx(web3)
    return AccountImpersonator(ctx), ctx, web3.manager.coro_request


class TestAcquire:
    @pytest.mark.parametrize(
        "flavor,method",
        [("anvil", "anvil_impersonateAccount"), ("hardhat", "hardhat_impersonateAccount")],
    )
    async def test_uses_node_flavor_rpc(self, flavor, method):
        adapter, ctx, rpc = _make(flavor)

        ok, account = await adapter.acquire(WHALE.lower())

        assert ok is True
        assert account.address == WHALE
        assert account.node_signed
        rpc.assert_awaited_once_with(method, [WHALE])
        assert ctx.impersonations == {WHALE: 1}

    async def test_outside_test_network(self):
        adapter, ctx, rpc = _make(flavor=None)

        ok, error = await adapter.acquire(WHALE)

        assert ok is False
        assert isinstance(error, UnsupportedOperationError)
        assert error.step == "impersonate"
        rpc.assert_not_awaited()
        assert ctx.impersonations == {}

    async def test_node_rejects_rpc(self):
        adapter, ctx, _ = _make(
            coro_request=AsyncMock(side_effect=Web3RPCError("Method not found"))
        )

        ok, error = await adapter.acquire(WHALE)

        assert ok is False
        assert isinstance(error, UnsupportedOperationError)
        assert "anvil_impersonateAccount" in str(error)
        assert ctx.impersonations == {}

    async def test_nested_acquire_reuses_impersonation(self):
        adapter, ctx, rpc = _make()

        await adapter.acquire(WHALE)
        await adapter.acquire(WHALE)

        assert rpc.await_count == 1
        assert ctx.impersonations[WHALE] == 2


class TestRelease:
    async def test_stops_only_when_last_holder_releases(self):
        adapter, ctx, rpc = _make()
        await adapter.acquire(WHALE)
        await adapter.acquire(WHALE)

        assert await adapter.release(WHALE) == (True, None)
        assert rpc.await_count == 1
        assert ctx.is_impersonating(WHALE)

        assert await adapter.release(WHALE) == (True, None)
        rpc.assert_awaited_with("anvil_stopImpersonatingAccount", [WHALE])
        assert not ctx.is_impersonating(WHALE)
        assert WHALE not in ctx.impersonations

    async def test_release_without_acquire_is_a_defect(self):
        adapter, _, _ = _make()
        with pytest.raises(ValueError, match="not impersonated"):
            await adapter.release(WHALE)

    async def test_stop_rpc_failure_is_reported(self):
        rpc = AsyncMock(side_effect=[None, Web3RPCError("boom")])
        adapter, _, _ = _make(coro_request=rpc)
        await adapter.acquire(WHALE)

        ok, error = await adapter.release(WHALE)

        assert ok is False
        assert error.step == "release"

    async def test_contexts_are_independent(self):
        first, first_ctx, _ = _make()
        second, second_ctx, _ = _make()

        await first.acquire(WHALE)

        assert first_ctx.is_impersonating(WHALE)
        assert not second_ctx.is_impersonating(WHALE)
        with pytest.raises(ValueError):
            await second.release(WHALE)


async def _slow_rpc(method, params):
    await asyncio.sleep(0)


class TestConcurrentHolders:
    async def test_parallel_acquires_count_both_holders(self):
        adapter, ctx, rpc = _make(coro_request=AsyncMock(side_effect=_slow_rpc))

        results = await asyncio.gather(adapter.acquire(WHALE), adapter.acquire(WHALE))

        assert all(ok for ok, _ in results)
        assert ctx.impersonations == {WHALE: 2}
        assert rpc.await_count == 1

    async def test_acquire_during_last_release_keeps_impersonation(self):
        adapter, ctx, rpc = _make(coro_request=AsyncMock(side_effect=_slow_rpc))
        await adapter.acquire(WHALE)

        await asyncio.gather(adapter.release(WHALE), adapter.acquire(WHALE))

        assert ctx.impersonations == {WHALE: 1}
        assert ctx.is_impersonating(WHALE)
        assert [c.args[0] for c in rpc.await_args_list] == [
            "anvil_impersonateAccount",
            "anvil_stopImpersonatingAccount",
            "anvil_impersonateAccount",
        ]


class TestImpersonatedScope:
    async def test_releases_on_success(self):
        adapter, ctx, rpc = _make()

        async with adapter.impersonated(WHALE) as account:
            assert account.address == WHALE
            assert ctx.is_impersonating(WHALE)

        assert not ctx.is_impersonating(WHALE)
        assert [c.args[0] for c in rpc.await_args_list] == [
            "anvil_impersonateAccount",
            "anvil_stopImpersonatingAccount",
        ]

    async def test_releases_on_error(self):
        adapter, ctx, _ = _make()

        with pytest.raises(RuntimeError, match="mint blew up"):
            async with adapter.impersonated(WHALE):
                raise RuntimeError("mint blew up")

        assert not ctx.is_impersonating(WHALE)

    async def test_acquire_failure_raises(self):
        adapter, _, _ = _make(flavor=None)

        with pytest.raises(UnsupportedOperationError):
            async with adapter.impersonated(WHALE):
                pytest.fail("body must not run")

    async def test_body_error_wins_over_release_error(self):
        rpc = AsyncMock(side_effect=[None, Web3RPCError("stop failed")])
        adapter, _, _ = _make(coro_request=rpc)

        with pytest.raises(RuntimeError, match="mint blew up"):
            async with adapter.impersonated(WHALE):
                raise RuntimeError("mint blew up")

    async def test_release_error_raised_after_clean_body(self):
        rpc = AsyncMock(side_effect=[None, Web3RPCError("stop failed")])
        adapter, _, _ = _make(coro_request=rpc)

        with pytest.raises(UnsupportedOperationError, match="stop failed") as exc_info:
            async with adapter.impersonated(WHALE):
                pass

        assert exc_info.value.step == "release"
