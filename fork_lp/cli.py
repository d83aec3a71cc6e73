from __future__ import annotations

import asyncio
import sys
from typing import Any

import click
from loguru import logger

from fork_lp.adapters.uniswap_adapter.adapter import PositionResolver
from fork_lp.core.config import (
    get_fork_rpc_url,
    get_provision_config,
    get_recipient_private_key,
    load_config,
)
from fork_lp.core.constants import CHAIN_CODE_TO_ID
from fork_lp.core.constants.contracts import (
    ETHEREUM_FUNDING_WHALE,
    ETHEREUM_USDC,
    ETHEREUM_WETH,
)
from fork_lp.core.models import Account, PositionRecord, TokenAmount
from fork_lp.core.utils.fork import ForkContext, fork_context, key_account, node_account
from fork_lp.core.utils.tokens import get_token_metadata
from fork_lp.core.utils.units import format_amount, to_erc20_raw
from fork_lp.core.utils.web3 import get_rpc_url
from fork_lp.pipeline import ProvisionPlan, ProvisionResult, provision_position

# 1 WETH + 2000 USDC out of a mainnet whale, full range at fee 3000.
DEFAULT_PROVISION: dict[str, Any] = {
    "source": ETHEREUM_FUNDING_WHALE,
    "token_a": ETHEREUM_WETH,
    "amount_a": "1",
    "token_b": ETHEREUM_USDC,
    "amount_b": "2000",
    "fee": 3000,
}

_CHAINS = click.Choice(sorted(CHAIN_CODE_TO_ID), case_sensitive=False)
_LOG_LEVELS = click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False)


def _configure_logging(log_level: str) -> None:
    logger.remove()
    logger.add(sys.stderr, level=str(log_level).upper())


def _load(config_path: str | None, rpc_url: str | None, chain: str) -> str:
    if config_path:
        try:
            load_config(config_path, require_exists=True)
        except (FileNotFoundError, ValueError) as exc:
            raise click.BadParameter(str(exc), param_hint="--config") from exc
    rpc = rpc_url or get_fork_rpc_url()
    if rpc:
        return rpc
    try:
        return get_rpc_url(CHAIN_CODE_TO_ID[chain])
    except ValueError as exc:
        raise click.UsageError(
            "No fork RPC: pass --rpc-url, set fork.rpc_url or strategy.rpc_urls "
            "in config.json, or export FORK_LP_FORK_RPC"
        ) from exc


def _merge(options: dict[str, Any]) -> dict[str, Any]:
    settings = {**DEFAULT_PROVISION, **get_provision_config()}
    settings.update({k: v for k, v in options.items() if v is not None})
    return settings


async def _to_raw(ctx: ForkContext, token: str, amount: Any) -> int:
    async with ctx.web3() as web3:
        _, decimals = await get_token_metadata(web3, token)
    return to_erc20_raw(amount, decimals)


async def _recipient(ctx: ForkContext) -> Account:
    private_key = get_recipient_private_key()
    if private_key:
        return key_account(private_key)
    return await node_account(ctx)


async def _position_lines(ctx: ForkContext, position: PositionRecord) -> list[str]:
    async with ctx.web3() as web3:
        symbol0, _ = await get_token_metadata(web3, position.token0)
        symbol1, _ = await get_token_metadata(web3, position.token1)
    return [
        f"Position {position.position_id}",
        f"  owner:      {position.owner}",
        f"  pair:       {symbol0}/{symbol1} ({position.token0}/{position.token1})",
        f"  fee:        {position.fee}",
        f"  ticks:      [{position.tick_lower}, {position.tick_upper}]",
        f"  liquidity:  {position.liquidity}",
        f"  owed:       {position.tokens_owed0} {symbol0}, {position.tokens_owed1} {symbol1}",
    ]


async def _balance_line(ctx: ForkContext, balance: TokenAmount) -> str:
    async with ctx.web3() as web3:
        symbol, decimals = await get_token_metadata(web3, balance.token)
    return f"  {format_amount(balance.amount, decimals, symbol)}"


async def _summary(ctx: ForkContext, result: ProvisionResult) -> list[str]:
    lines = [f"Recipient {result.request.recipient} balances after funding:"]
    for balance in result.balances:
        lines.append(await _balance_line(ctx, balance))
    lines.append(
        f"Mint tx {result.receipt.txn_hash} (block {result.receipt.block_number}, "
        f"gas {result.receipt.gas_used})"
    )
    lines.extend(await _position_lines(ctx, result.position))
    return lines


async def _provision(rpc_url: str, settings: dict[str, Any]) -> int:
    async with fork_context(rpc_url) as ctx:
        recipient = await _recipient(ctx)
        plan = ProvisionPlan(
            source=settings["source"],
            token_a=settings["token_a"],
            amount_a=await _to_raw(ctx, settings["token_a"], settings["amount_a"]),
            token_b=settings["token_b"],
            amount_b=await _to_raw(ctx, settings["token_b"], settings["amount_b"]),
            fee=settings["fee"],
            tick_lower=settings.get("tick_lower"),
            tick_upper=settings.get("tick_upper"),
            slippage_bps=settings["slippage_bps"],
            **{
                key: settings[key]
                for key in (
                    "deadline_seconds",
                    "position_manager",
                    "issuance_event",
                    "strict_events",
                    "receipt_timeout",
                )
                if settings.get(key) is not None
            },
        )

        ok, result = await provision_position(ctx, plan, recipient)
        if not ok:
            logger.error(f"Provisioning failed at step '{result.step}': {result}")
            return 1
        for line in await _summary(ctx, result):
            click.echo(line)
    return 0


async def _show_position(
    rpc_url: str, position_id: int, position_manager: str | None
) -> int:
    async with fork_context(rpc_url) as ctx:
        ok, position = await PositionResolver(ctx, position_manager).resolve(position_id)
        if not ok:
            logger.error(f"Lookup failed at step '{position.step}': {position}")
            return 1
        for line in await _position_lines(ctx, position):
            click.echo(line)
    return 0


def _run(coro) -> None:
    try:
        code = asyncio.run(coro)
    except Exception as exc:
        logger.error(f"{type(exc).__name__}: {exc}")
        code = 1
    sys.exit(code)


@click.group(
    name="fork-lp", help="Provision Uniswap v3 positions on a local mainnet fork."
)
def fork_lp_cli() -> None:
    pass


@fork_lp_cli.command(
    name="provision",
    help="Fund a recipient from an impersonated source, approve, mint and resolve.",
)
@click.option("--config", "config_path", type=click.Path(dir_okay=False), default=None)
@click.option("--rpc-url", default=None, help="Anvil/Hardhat fork JSON-RPC URL.")
@click.option("--chain", type=_CHAINS, default="ethereum", show_default=True)
@click.option("--source", default=None, help="Address to impersonate for funding.")
@click.option("--token-a", default=None)
@click.option("--amount-a", default=None, help="Human units, e.g. 1.5")
@click.option("--token-b", default=None)
@click.option("--amount-b", default=None, help="Human units, e.g. 2000")
@click.option("--fee", type=int, default=None)
@click.option("--tick-lower", type=int, default=None)
@click.option("--tick-upper", type=int, default=None)
@click.option(
    "--slippage-bps",
    type=click.IntRange(0, 10_000),
    default=None,
    help="Minimum-amount floor in bps below desired; 10000 accepts any outcome.",
)
@click.option("--deadline-seconds", type=int, default=None)
@click.option("--position-manager", default=None)
@click.option(
    "--issuance-event",
    type=click.Choice(["Transfer", "IncreaseLiquidity"]),
    default=None,
)
@click.option(
    "--strict-events/--first-event",
    default=None,
    help="Fail when a receipt holds more than one issuance event.",
)
@click.option("--receipt-timeout", type=float, default=None)
@click.option("--log-level", type=_LOG_LEVELS, default="INFO", show_default=True)
def provision_cmd(
    config_path: str | None,
    rpc_url: str | None,
    chain: str,
    log_level: str,
    **options: Any,
) -> None:
    _configure_logging(log_level)
    rpc = _load(config_path, rpc_url, chain.lower())
    settings = _merge(options)
    if settings.get("slippage_bps") is None:
        raise click.UsageError(
            "--slippage-bps is required (or provision.slippage_bps in config); "
            "use 10000 to accept any outcome"
        )
    _run(_provision(rpc, settings))


@fork_lp_cli.command(name="position", help="Print an existing position by token id.")
@click.argument("position_id", type=click.IntRange(min=1))
@click.option("--config", "config_path", type=click.Path(dir_okay=False), default=None)
@click.option("--rpc-url", default=None)
@click.option("--chain", type=_CHAINS, default="ethereum", show_default=True)
@click.option("--position-manager", default=None)
@click.option("--log-level", type=_LOG_LEVELS, default="INFO", show_default=True)
def position_cmd(
    position_id: int,
    config_path: str | None,
    rpc_url: str | None,
    chain: str,
    position_manager: str | None,
    log_level: str,
) -> None:
    _configure_logging(log_level)
    rpc = _load(config_path, rpc_url, chain.lower())
    _run(_show_position(rpc, position_id, position_manager))


def main():
    fork_lp_cli(standalone_mode=True)


if __name__ == "__main__":
    main()
