from __future__ import annotations

from abc import ABC
from typing import Any

from loguru import logger
from web3 import AsyncWeb3

from fork_lp.core.constants.base import DEFAULT_TRANSACTION_TIMEOUT
from fork_lp.core.errors import NoReceiptError, TransactionRevertedError
from fork_lp.core.models import Account, TransactionReceipt
from fork_lp.core.utils.fork import ForkContext
from fork_lp.core.utils.transaction import send_transaction


class BaseAdapter(ABC):
    adapter_type: str | None = None

    def __init__(
        self, name: str, ctx: ForkContext, config: dict[str, Any] | None = None
    ):
        self.name = name
        self.ctx = ctx
        self.config = config or {}
        self.logger = logger.bind(adapter=self.__class__.__name__)

    @property
    def chain_id(self) -> int:
        return self.ctx.chain_id

    @property
    def receipt_timeout(self) -> float:
        return float(self.config.get("receipt_timeout") or DEFAULT_TRANSACTION_TIMEOUT)

    async def _transact(
        self,
        web3: AsyncWeb3,
        transaction: dict[str, Any],
        account: Account,
        *,
        step: str,
        reverted: type[TransactionRevertedError] = TransactionRevertedError,
    ) -> TransactionReceipt:
        """Send and wait for inclusion, tagging failures with ``step``."""
        try:
            return await send_transaction(
                web3, transaction, account, timeout=self.receipt_timeout
            )
        except TransactionRevertedError as exc:
            raise reverted(
                exc.txn_hash, exc.receipt, message=exc.args[0], step=step
            ) from exc
        except NoReceiptError as exc:
            raise NoReceiptError(exc.txn_hash, exc.timeout, step=step) from exc
