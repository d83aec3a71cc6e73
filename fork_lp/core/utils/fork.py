from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass, field

from eth_account import Account as LocalAccount
from loguru import logger

from fork_lp.core.models import Account
from fork_lp.core.utils.transaction import local_signing_callback
from fork_lp.core.utils.web3 import web3_from_rpc

# flavor -> (start impersonation RPC, stop impersonation RPC)
IMPERSONATION_METHODS: dict[str, tuple[str, str]] = {
    "anvil": ("anvil_impersonateAccount", "anvil_stopImpersonatingAccount"),
    "hardhat": ("hardhat_impersonateAccount", "hardhat_stopImpersonatingAccount"),
}


def detect_fork_flavor(client_version: str) -> str | None:
    text = str(client_version or "").lower()
    if "anvil" in text:
        return "anvil"
    if "hardhat" in text:
        return "hardhat"
    return None


@dataclass
class ForkContext:
    """Connection details and impersonation state for one forked network.

    Impersonations are reference counted here rather than in module state, so
    independent pipelines each carry their own context. ``lock`` serializes
    changes to the counts together with the node RPC that goes with them.
    """

    rpc_url: str
    chain_id: int
    flavor: str | None = None
    impersonations: dict[str, int] = field(default_factory=dict)
    lock: asyncio.Lock = field(
        default_factory=asyncio.Lock, repr=False, compare=False
    )

    @property
    def is_test_network(self) -> bool:
        return self.flavor in IMPERSONATION_METHODS

    def web3(self):
        return web3_from_rpc(self.rpc_url, self.chain_id)

    def is_impersonating(self, address: str) -> bool:
        return self.impersonations.get(address, 0) > 0


async def connect_fork(rpc_url: str) -> ForkContext:
    async with web3_from_rpc(rpc_url) as web3:
        chain_id = int(await web3.eth.chain_id)
        client_version = await web3.client_version
    flavor = detect_fork_flavor(client_version)
    logger.info(
        f"Connected to {client_version} (chain {chain_id}, flavor={flavor or 'unknown'})"
    )
    return ForkContext(rpc_url=rpc_url, chain_id=chain_id, flavor=flavor)


@asynccontextmanager
async def fork_context(rpc_url: str) -> AsyncIterator[ForkContext]:
    ctx = await connect_fork(rpc_url)
    try:
        yield ctx
    finally:
        leaked = {addr: n for addr, n in ctx.impersonations.items() if n > 0}
        if leaked:
            logger.warning(f"Fork context closed with impersonations still held: {leaked}")


async def node_account(ctx: ForkContext, index: int = 0) -> Account:
    """One of the node's unlocked dev accounts (eth_accounts)."""
    async with ctx.web3() as web3:
        accounts = await web3.eth.accounts
    if len(accounts) <= index:
        raise ValueError(
            f"Node at {ctx.rpc_url} exposes {len(accounts)} unlocked accounts; "
            f"index {index} is unavailable"
        )
    return Account(address=accounts[index], node_signed=True)


def key_account(private_key: str) -> Account:
    address = LocalAccount.from_key(private_key).address
    return Account(address=address, signing_callback=local_signing_callback(private_key))
