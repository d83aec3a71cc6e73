from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

from eth_utils import to_checksum_address
from web3.exceptions import Web3RPCError

from fork_lp.core.adapters.BaseAdapter import BaseAdapter
from fork_lp.core.adapters.decorators import step_result
from fork_lp.core.errors import UnsupportedOperationError
from fork_lp.core.models import Account
from fork_lp.core.utils.fork import IMPERSONATION_METHODS, ForkContext


class AccountImpersonator(BaseAdapter):
    """Lends node-side signing for arbitrary addresses on a test fork."""

    adapter_type = "IMPERSONATION"

    def __init__(self, ctx: ForkContext, config: dict[str, Any] | None = None):
        super().__init__("impersonation_adapter", ctx, config)

    def _methods(self) -> tuple[str, str]:
        if not self.ctx.is_test_network:
            raise UnsupportedOperationError(
                f"Impersonation needs an Anvil or Hardhat fork; node at "
                f"{self.ctx.rpc_url} reports flavor={self.ctx.flavor or 'unknown'}"
            )
        return IMPERSONATION_METHODS[str(self.ctx.flavor)]

    async def _rpc(self, method: str, address: str, *, step: str) -> None:
        async with self.ctx.web3() as web3:
            try:
                await web3.manager.coro_request(method, [address])
            except Web3RPCError as exc:
                raise UnsupportedOperationError(
                    f"{method} rejected by node: {exc}", step=step
                ) from exc

    @step_result
    async def acquire(self, address: str) -> Account:
        start_method, _ = self._methods()
        checksum = to_checksum_address(address)

        async with self.ctx.lock:
            held = self.ctx.impersonations.get(checksum, 0)
            if held == 0:
                await self._rpc(start_method, checksum, step="impersonate")
                self.logger.info(f"Impersonating {checksum}")
            self.ctx.impersonations[checksum] = held + 1
        return Account(address=checksum, node_signed=True)

    @step_result
    async def release(self, address: str) -> None:
        checksum = to_checksum_address(address)
        async with self.ctx.lock:
            held = self.ctx.impersonations.get(checksum, 0)
            if held <= 0:
                raise ValueError(f"{checksum} is not impersonated on this fork context")

            if held == 1:
                _, stop_method = self._methods()
                await self._rpc(stop_method, checksum, step="release")
                del self.ctx.impersonations[checksum]
                self.logger.info(f"Stopped impersonating {checksum}")
            else:
                self.ctx.impersonations[checksum] = held - 1

    @asynccontextmanager
    async def impersonated(self, address: str) -> AsyncIterator[Account]:
        ok, account = await self.acquire(address)
        if not ok:
            raise account
        try:
            yield account
        except BaseException:
            released, error = await self.release(address)
            if not released:
                self.logger.error(f"Release after failure also failed: {error}")
            raise
        released, error = await self.release(address)
        if not released:
            raise error
