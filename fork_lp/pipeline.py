"""Fund, approve, mint and resolve a Uniswap v3 position on a fork.

Each step returns a ``(ok, value)`` tuple; the first failure is returned as-is
and nothing after it runs. The source account's impersonation is released on
every exit path.
"""

from __future__ import annotations

from typing import Literal, Self

from eth_utils import to_checksum_address
from loguru import logger
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from fork_lp.adapters.impersonation_adapter.adapter import AccountImpersonator
from fork_lp.adapters.token_adapter.adapter import AllowanceGrantor, TokenFunder
from fork_lp.adapters.uniswap_adapter.adapter import (
    PositionMinter,
    PositionResolver,
    position_manager_address,
)
from fork_lp.adapters.uniswap_adapter.receipts import ReceiptEventDecoder
from fork_lp.core.adapters.decorators import StepResult
from fork_lp.core.constants.base import (
    DEFAULT_DEADLINE_SECONDS,
    DEFAULT_TRANSACTION_TIMEOUT,
    MAX_BPS,
)
from fork_lp.core.errors import PositionMismatchError
from fork_lp.core.models import (
    Account,
    MintRequest,
    PositionRecord,
    TokenAmount,
    TransactionReceipt,
)
from fork_lp.core.utils.fork import ForkContext
from fork_lp.core.utils.tokens import get_token_metadata
from fork_lp.core.utils.uniswap_v3_math import deadline, full_range_ticks, slippage_min
from fork_lp.core.utils.units import format_amount


class ProvisionPlan(BaseModel):
    model_config = ConfigDict(frozen=True)

    source: str
    token_a: str
    amount_a: int = Field(ge=0)
    token_b: str
    amount_b: int = Field(ge=0)
    fee: int = 3000
    tick_lower: int | None = None
    tick_upper: int | None = None
    slippage_bps: int = Field(ge=0, le=MAX_BPS)
    deadline_seconds: int = DEFAULT_DEADLINE_SECONDS
    position_manager: str | None = None
    issuance_event: Literal["Transfer", "IncreaseLiquidity"] = "Transfer"
    strict_events: bool = False
    receipt_timeout: float = Field(default=DEFAULT_TRANSACTION_TIMEOUT, gt=0)

    @field_validator("source", "token_a", "token_b", mode="before")
    @classmethod
    def checksum_addresses(cls, value: str) -> str:
        return to_checksum_address(str(value))

    @model_validator(mode="after")
    def ticks_given_together(self) -> Self:
        if (self.tick_lower is None) != (self.tick_upper is None):
            raise ValueError("tick_lower and tick_upper must be given together")
        return self

    def ticks(self) -> tuple[int, int]:
        if self.tick_lower is None or self.tick_upper is None:
            return full_range_ticks(self.fee)
        return self.tick_lower, self.tick_upper


class ProvisionResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    request: MintRequest
    receipt: TransactionReceipt
    position: PositionRecord
    balances: tuple[TokenAmount, ...]


def check_position(request: MintRequest, position: PositionRecord) -> None:
    expected = (request.token0, request.token1, request.tick_lower, request.tick_upper)
    actual = (position.token0, position.token1, position.tick_lower, position.tick_upper)
    if expected != actual:
        raise PositionMismatchError(
            f"Position {position.position_id} reads back as {actual}, minted {expected}"
        )
    if position.owner is not None and position.owner != request.recipient:
        raise PositionMismatchError(
            f"Position {position.position_id} is owned by {position.owner}, "
            f"minted to {request.recipient}"
        )


async def _log_balance(ctx: ForkContext, wallet: str, balance: TokenAmount) -> None:
    async with ctx.web3() as web3:
        symbol, decimals = await get_token_metadata(web3, balance.token)
    logger.info(f"{wallet} holds {format_amount(balance.amount, decimals, symbol)}")


async def _provision(
    ctx: ForkContext, plan: ProvisionPlan, source: Account, recipient: Account
) -> StepResult[ProvisionResult]:
    config = {"receipt_timeout": plan.receipt_timeout}
    npm = position_manager_address(ctx.chain_id, plan.position_manager)
    legs = ((plan.token_a, plan.amount_a), (plan.token_b, plan.amount_b))

    funder = TokenFunder(ctx, config)
    balances: list[TokenAmount] = []
    for token, amount in legs:
        ok, funded = await funder.fund(token, source, recipient.address, amount)
        if not ok:
            return (False, funded)
        balances.append(funded)
        await _log_balance(ctx, recipient.address, funded)

    grantor = AllowanceGrantor(ctx, config)
    for token, amount in legs:
        ok, error = await grantor.approve(token, recipient, npm, amount)
        if not ok:
            return (False, error)

    tick_lower, tick_upper = plan.ticks()
    request = MintRequest.for_pair(
        token_a=plan.token_a,
        token_b=plan.token_b,
        amount_a=plan.amount_a,
        amount_b=plan.amount_b,
        amount_a_min=slippage_min(plan.amount_a, plan.slippage_bps),
        amount_b_min=slippage_min(plan.amount_b, plan.slippage_bps),
        fee=plan.fee,
        tick_lower=tick_lower,
        tick_upper=tick_upper,
        recipient=recipient.address,
        deadline=deadline(plan.deadline_seconds),
    )

    ok, receipt = await PositionMinter(ctx, recipient, npm, config).mint(request)
    if not ok:
        return (False, receipt)

    decoder = ReceiptEventDecoder(npm, plan.issuance_event, plan.strict_events)
    ok, position_id = decoder.decode_position_id(receipt)
    if not ok:
        return (False, position_id)

    ok, position = await PositionResolver(ctx, npm, config).resolve(position_id)
    if not ok:
        return (False, position)

    try:
        check_position(request, position)
    except PositionMismatchError as exc:
        logger.error(str(exc))
        return (False, exc)

    return (
        True,
        ProvisionResult(
            request=request,
            receipt=receipt,
            position=position,
            balances=tuple(balances),
        ),
    )


async def provision_position(
    ctx: ForkContext, plan: ProvisionPlan, recipient: Account
) -> StepResult[ProvisionResult]:
    impersonator = AccountImpersonator(ctx)
    ok, source = await impersonator.acquire(plan.source)
    if not ok:
        return (False, source)

    try:
        result = await _provision(ctx, plan, source, recipient)
    finally:
        released, release_error = await impersonator.release(plan.source)

    if not released and result[0]:
        return (False, release_error)
    return result
