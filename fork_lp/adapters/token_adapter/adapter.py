from __future__ import annotations

from typing import Any

from eth_utils import to_checksum_address
from web3 import AsyncWeb3

from fork_lp.core.adapters.BaseAdapter import BaseAdapter
from fork_lp.core.adapters.decorators import step_result
from fork_lp.core.constants.contracts import TOKENS_REQUIRING_APPROVAL_RESET
from fork_lp.core.errors import (
    ApprovalRevertedError,
    BalanceMismatchError,
    TransferRevertedError,
)
from fork_lp.core.models import Account, TokenAmount, TransactionReceipt
from fork_lp.core.utils.fork import ForkContext
from fork_lp.core.utils.tokens import (
    build_approve_transaction,
    build_transfer_transaction,
    get_token_allowance,
    get_token_balance,
    simulate_transfer,
)


class TokenFunder(BaseAdapter):
    adapter_type = "TOKEN"

    def __init__(self, ctx: ForkContext, config: dict[str, Any] | None = None):
        super().__init__("token_adapter", ctx, config)

    @step_result
    async def fund(
        self, token: str, from_account: Account, to: str, amount: int
    ) -> TokenAmount:
        """Move ``amount`` of ``token`` to ``to`` and return the new balance.

        The destination balance must grow by exactly ``amount``; tokens that
        skim a fee or run transfer hooks fail with ``BalanceMismatchError``.
        """
        token = to_checksum_address(token)
        to = to_checksum_address(to)
        amount = int(amount)
        if amount < 0:
            raise ValueError("amount must be non-negative")

        async with self.ctx.web3() as web3:
            before = await get_token_balance(web3, token, to)
            if amount == 0:
                return TokenAmount(token=token, amount=before)

            if not await simulate_transfer(
                web3, token, from_account.address, to, amount
            ):
                raise TransferRevertedError(
                    None,
                    message=(
                        f"transfer({to}, {amount}) from {from_account.address} "
                        f"on {token} would revert"
                    ),
                )

            transaction = build_transfer_transaction(
                web3,
                from_address=from_account.address,
                to_address=to,
                chain_id=self.chain_id,
                token_address=token,
                amount=amount,
            )
            await self._transact(
                web3,
                transaction,
                from_account,
                step="fund",
                reverted=TransferRevertedError,
            )

            after = await get_token_balance(web3, token, to)

        if after - before != amount:
            raise BalanceMismatchError(token, to, amount, after - before)
        self.logger.info(f"Funded {to} with {amount} of {token}; balance {after}")
        return TokenAmount(token=token, amount=after)


class AllowanceGrantor(BaseAdapter):
    adapter_type = "TOKEN"

    def __init__(self, ctx: ForkContext, config: dict[str, Any] | None = None):
        super().__init__("token_adapter", ctx, config)

    async def _send_approve(
        self, web3: AsyncWeb3, token: str, owner: Account, spender: str, amount: int
    ) -> TransactionReceipt:
        transaction = build_approve_transaction(
            web3,
            from_address=owner.address,
            chain_id=self.chain_id,
            token_address=token,
            spender_address=spender,
            amount=amount,
        )
        return await self._transact(
            web3, transaction, owner, step="approve", reverted=ApprovalRevertedError
        )

    @step_result
    async def approve(
        self, token: str, owner: Account, spender: str, amount: int
    ) -> None:
        token = to_checksum_address(token)
        spender = to_checksum_address(spender)

        async with self.ctx.web3() as web3:
            if (self.chain_id, token) in TOKENS_REQUIRING_APPROVAL_RESET:
                current = await get_token_allowance(web3, token, owner.address, spender)
                if current > 0:
                    self.logger.info(
                        f"Resetting {token} allowance for {spender} from {current} to 0"
                    )
                    await self._send_approve(web3, token, owner, spender, 0)

            receipt = await self._send_approve(web3, token, owner, spender, int(amount))
        self.logger.info(
            f"Approved {spender} for {amount} of {token}: {receipt.txn_hash}"
        )
