from __future__ import annotations

from typing import Any


class ProvisioningError(RuntimeError):
    """Base class for every failure a provisioning step can report.

    ``step`` names the pipeline step that produced the error so callers can
    report which stage aborted the run.
    """

    step: str = "pipeline"

    def __init__(self, message: str, *, step: str | None = None):
        if step is not None:
            self.step = step
        super().__init__(message)

    def __str__(self) -> str:
        return f"[{self.step}] {super().__str__()}"


class UnsupportedOperationError(ProvisioningError):
    step = "impersonate"


class TransactionRevertedError(ProvisioningError):
    step = "transaction"

    def __init__(
        self,
        txn_hash: str | None,
        receipt: dict[str, Any] | None = None,
        message: str | None = None,
        *,
        step: str | None = None,
    ):
        self.txn_hash = txn_hash
        self.receipt = receipt or {}
        super().__init__(message or f"Transaction reverted: {txn_hash}", step=step)


class NoReceiptError(ProvisioningError):
    step = "transaction"

    def __init__(self, txn_hash: str, timeout: float, *, step: str | None = None):
        self.txn_hash = txn_hash
        self.timeout = timeout
        super().__init__(
            f"No receipt for {txn_hash} after {timeout}s; "
            "the transaction may still be included later",
            step=step,
        )


class TransferRevertedError(TransactionRevertedError):
    step = "fund"


class BalanceMismatchError(ProvisioningError):
    step = "fund"

    def __init__(self, token: str, wallet: str, expected: int, actual: int):
        self.token = token
        self.wallet = wallet
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"Balance of {wallet} in {token} changed by {actual}, expected {expected} "
            "(fee-on-transfer or hooked token?)"
        )


class ApprovalRevertedError(TransactionRevertedError):
    step = "approve"


class EventNotFoundError(ProvisioningError):
    step = "decode"


class DecodeError(ProvisioningError):
    step = "decode"


class PositionMismatchError(DecodeError):
    step = "resolve"


class PositionNotFoundError(ProvisioningError):
    step = "resolve"

    def __init__(self, position_id: int, message: str | None = None):
        self.position_id = position_id
        super().__init__(message or f"Position {position_id} does not exist")
