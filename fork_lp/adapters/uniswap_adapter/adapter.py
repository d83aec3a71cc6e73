from __future__ import annotations

from typing import Any

from eth_utils import to_checksum_address
from web3.exceptions import ContractLogicError

from fork_lp.adapters.uniswap_adapter.positions import (
    decode_positions_result,
    validate_layout,
)
from fork_lp.core.adapters.BaseAdapter import BaseAdapter
from fork_lp.core.adapters.decorators import step_result
from fork_lp.core.constants.contracts import UNISWAP_V3_NPM
from fork_lp.core.constants.uniswap_v3_abi import NONFUNGIBLE_POSITION_MANAGER_ABI
from fork_lp.core.errors import PositionNotFoundError
from fork_lp.core.models import (
    Account,
    MintRequest,
    PositionId,
    PositionRecord,
    TransactionReceipt,
)
from fork_lp.core.utils.fork import ForkContext
from fork_lp.core.utils.transaction import encode_call


def position_manager_address(chain_id: int, override: str | None = None) -> str:
    if override:
        return to_checksum_address(override)
    address = UNISWAP_V3_NPM.get(int(chain_id))
    if address is None:
        raise ValueError(
            f"No NonfungiblePositionManager known for chain {chain_id}; pass one explicitly"
        )
    return to_checksum_address(address)


class PositionMinter(BaseAdapter):
    adapter_type = "UNISWAP_V3"

    def __init__(
        self,
        ctx: ForkContext,
        account: Account,
        position_manager: str | None = None,
        config: dict[str, Any] | None = None,
    ):
        super().__init__("uniswap_adapter", ctx, config)
        self.account = account
        self.position_manager = position_manager_address(ctx.chain_id, position_manager)

    @step_result
    async def mint(self, request: MintRequest) -> TransactionReceipt:
        """Submit ``mint(params)`` and return the receipt once included.

        Ticks, ordering and the deadline are not checked here; the position
        manager rejects bad requests and that surfaces as a revert.
        """
        async with self.ctx.web3() as web3:
            transaction = await encode_call(
                web3,
                target=self.position_manager,
                abi=NONFUNGIBLE_POSITION_MANAGER_ABI,
                fn_name="mint",
                args=[request.to_params()],
                from_address=self.account.address,
            )
            receipt = await self._transact(
                web3, transaction, self.account, step="mint"
            )

        self.logger.info(
            f"Minted {request.token0}/{request.token1} fee={request.fee} "
            f"[{request.tick_lower}, {request.tick_upper}] in {receipt.txn_hash}"
        )
        return receipt


class PositionResolver(BaseAdapter):
    adapter_type = "UNISWAP_V3"

    def __init__(
        self,
        ctx: ForkContext,
        position_manager: str | None = None,
        config: dict[str, Any] | None = None,
    ):
        super().__init__("uniswap_adapter", ctx, config)
        self.position_manager = position_manager_address(ctx.chain_id, position_manager)

    @step_result
    async def resolve(self, position_id: PositionId) -> PositionRecord:
        validate_layout(NONFUNGIBLE_POSITION_MANAGER_ABI)
        token_id = int(position_id)

        async with self.ctx.web3() as web3:
            npm = web3.eth.contract(
                address=self.position_manager, abi=NONFUNGIBLE_POSITION_MANAGER_ABI
            )
            try:
                raw = await npm.functions.positions(token_id).call(
                    block_identifier="latest"
                )
                owner = await npm.functions.ownerOf(token_id).call(
                    block_identifier="latest"
                )
            except ContractLogicError as exc:
                raise PositionNotFoundError(
                    token_id, f"positions({token_id}) reverted: {exc}"
                ) from exc

        return decode_positions_result(raw, token_id, owner)
