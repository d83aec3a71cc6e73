import math
from typing import Any

from eth_account import Account as LocalAccount
from loguru import logger
from web3 import AsyncWeb3
from web3.exceptions import ContractLogicError, TimeExhausted

from fork_lp.core.constants.base import (
    DEFAULT_RECEIPT_POLL_INTERVAL,
    DEFAULT_TRANSACTION_TIMEOUT,
    GAS_BUFFER_MULTIPLIER,
    MAX_BASE_FEE_GROWTH_MULTIPLIER,
    SUGGESTED_PRIORITY_FEE_MULTIPLIER,
)
from fork_lp.core.errors import NoReceiptError, TransactionRevertedError
from fork_lp.core.models import Account, SigningCallback, TransactionReceipt, to_hex


def _revert_message(
    txn_hash: str, receipt: TransactionReceipt | None, transaction: dict[str, Any]
) -> str:
    gas_used = int(receipt.gas_used or 0) if receipt is not None else 0
    gas_limit = int(transaction.get("gas") or 0)

    oogs = bool(gas_used and gas_limit and gas_used >= gas_limit)
    suffix = (
        f" gasUsed={gas_used} gasLimit={gas_limit}"
        + (" (likely out of gas)" if oogs else "")
        if gas_used or gas_limit
        else ""
    )
    return f"Transaction reverted (status=0): {txn_hash}{suffix}"


def _get_transaction_from_address(transaction: dict) -> str:
    if "from" not in transaction:
        raise ValueError("Transaction does not contain from address")
    return AsyncWeb3.to_checksum_address(transaction["from"])


async def nonce_transaction(web3: AsyncWeb3, transaction: dict) -> dict:
    transaction = transaction.copy()
    from_address = _get_transaction_from_address(transaction)
    transaction["nonce"] = await web3.eth.get_transaction_count(
        from_address, block_identifier="pending"
    )
    return transaction


async def gas_price_transaction(web3: AsyncWeb3, transaction: dict) -> dict:
    transaction = transaction.copy()

    latest_block = await web3.eth.get_block("latest")
    base_fee = latest_block.get("baseFeePerGas")
    if base_fee is None:
        transaction["gasPrice"] = int(await web3.eth.gas_price)
        return transaction

    priority_fee = int(await web3.eth.max_priority_fee)
    transaction["maxFeePerGas"] = int(
        base_fee * MAX_BASE_FEE_GROWTH_MULTIPLIER
        + priority_fee * SUGGESTED_PRIORITY_FEE_MULTIPLIER
    )
    transaction["maxPriorityFeePerGas"] = int(
        priority_fee * SUGGESTED_PRIORITY_FEE_MULTIPLIER
    )
    return transaction


async def gas_limit_transaction(web3: AsyncWeb3, transaction: dict) -> dict:
    transaction = transaction.copy()

    # prevents RPCs from taking this as a serious limit
    transaction.pop("gas", None)

    try:
        gas_limit = await web3.eth.estimate_gas(
            dict(transaction), block_identifier="latest"
        )
    except ContractLogicError as exc:
        raise TransactionRevertedError(
            None, message=f"Transaction would revert: {exc}"
        ) from exc

    transaction["gas"] = int(math.ceil(gas_limit * GAS_BUFFER_MULTIPLIER))
    return transaction


async def broadcast_transaction(web3: AsyncWeb3, signed_transaction: bytes) -> str:
    tx_hash = await web3.eth.send_raw_transaction(signed_transaction)
    return to_hex(tx_hash)


async def wait_for_transaction_receipt(
    web3: AsyncWeb3,
    txn_hash: str,
    poll_interval: float = DEFAULT_RECEIPT_POLL_INTERVAL,
    timeout: float = DEFAULT_TRANSACTION_TIMEOUT,
) -> TransactionReceipt:
    txn_hash = to_hex(txn_hash)

    try:
        raw = await web3.eth.wait_for_transaction_receipt(
            txn_hash, poll_latency=poll_interval, timeout=timeout
        )
    except TimeExhausted as exc:
        raise NoReceiptError(txn_hash, timeout) from exc

    receipt = TransactionReceipt.from_web3(raw)
    if not receipt.succeeded:
        raise TransactionRevertedError(txn_hash, dict(raw))
    return receipt


async def _submit(web3: AsyncWeb3, transaction: dict, account: Account) -> str:
    if account.signing_callback is not None:
        transaction = await nonce_transaction(web3, transaction)
        transaction = await gas_price_transaction(web3, transaction)
        signed_transaction = await account.signing_callback(transaction)
        return await broadcast_transaction(web3, signed_transaction)

    # The node holds the key (impersonated or unlocked dev account) and signs.
    tx_hash = await web3.eth.send_transaction(transaction)
    return to_hex(tx_hash)


async def send_transaction(
    web3: AsyncWeb3,
    transaction: dict,
    account: Account,
    *,
    timeout: float = DEFAULT_TRANSACTION_TIMEOUT,
) -> TransactionReceipt:
    if not account.can_sign:
        raise ValueError(f"Account {account.address} has no signing capability")
    if _get_transaction_from_address(transaction) != account.address:
        raise ValueError(
            f"Transaction sender {transaction['from']} does not match {account.address}"
        )

    logger.info(f"Broadcasting transaction {transaction}...")
    transaction = await gas_limit_transaction(web3, transaction)
    try:
        txn_hash = await _submit(web3, transaction, account)
    except ContractLogicError as exc:
        raise TransactionRevertedError(
            None, message=f"Transaction rejected on submission: {exc}"
        ) from exc
    logger.info(f"Transaction broadcasted: {txn_hash}")

    try:
        receipt = await wait_for_transaction_receipt(web3, txn_hash, timeout=timeout)
    except TransactionRevertedError as exc:
        reverted = TransactionReceipt.from_web3(exc.receipt) if exc.receipt else None
        raise TransactionRevertedError(
            txn_hash,
            exc.receipt,
            message=_revert_message(txn_hash, reverted, transaction),
        ) from exc
    logger.info(f"Transaction {txn_hash} included in block {receipt.block_number}")
    return receipt


def local_signing_callback(private_key: str) -> SigningCallback:
    account = LocalAccount.from_key(private_key)

    async def sign_callback(tx: dict) -> bytes:
        signed = account.sign_transaction(tx)
        return signed.raw_transaction

    return sign_callback


async def encode_call(
    web3: AsyncWeb3,
    *,
    target: str,
    abi: list[dict[str, Any]],
    fn_name: str,
    args: list[Any],
    from_address: str,
    value: int = 0,
) -> dict[str, Any]:
    try:
        contract = web3.eth.contract(
            address=web3.to_checksum_address(target),
            abi=abi,
        )
        data = contract.encode_abi(fn_name, args)
    except (ValueError, TypeError) as exc:
        raise ValueError(f"Failed to encode {fn_name}: {exc}") from exc

    return {
        "chainId": int(await web3.eth.chain_id),
        "from": AsyncWeb3.to_checksum_address(from_address),
        "to": AsyncWeb3.to_checksum_address(target),
        "data": data,
        "value": int(value),
    }
