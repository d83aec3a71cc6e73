import math
from unittest.mock import AsyncMock, MagicMock, PropertyMock

import pytest
from web3 import AsyncWeb3
from web3.exceptions import ContractLogicError, TimeExhausted

from fork_lp.core.constants.base import (
    GAS_BUFFER_MULTIPLIER,
    MAX_BASE_FEE_GROWTH_MULTIPLIER,
    SUGGESTED_PRIORITY_FEE_MULTIPLIER,
)
from fork_lp.core.errors import NoReceiptError, TransactionRevertedError
from fork_lp.core.models import Account
from fork_lp.core.utils.transaction import (
    _get_transaction_from_address,
    encode_call,
    gas_limit_transaction,
    gas_price_transaction,
    local_signing_callback,
    nonce_transaction,
    send_transaction,
    wait_for_transaction_receipt,
)

RANDOM_USER_0 = "0x5aAeb6053F3E94C9b9A09f33669435E7Ef1BeAed"
RANDOM_USER_1 = "0xfB6916095ca1df60bB79Ce92cE3Ea74c37c5d359"
ANVIL_KEY_0 = "0xac0974bec39a17e36ba4a6b4d238ff944bacb478cbed5efcae784d7bf4f2ff80"
ANVIL_ADDRESS_0 = "0xf39Fd6e51aad88F6F4ce6aB8827279cffFb92266"
TX_HASH = "0x" + "ab" * 32


async def _value(v):
    return v


def _awaitable_property(mock, name: str, value) -> None:
    setattr(type(mock), name, PropertyMock(side_effect=lambda: _value(value)))


def _raw_receipt(status: int = 1, gas_used: int = 50_000) -> dict:
    return {
        "transactionHash": bytes.fromhex("ab" * 32),
        "status": status,
        "blockNumber": 10,
        "gasUsed": gas_used,
        "logs": [],
    }


@pytest.fixture
def mock_web3():
    web3 = MagicMock()
    web3.eth = MagicMock()
    web3.eth.get_transaction_count = AsyncMock(return_value=3)
    web3.eth.estimate_gas = AsyncMock(return_value=100_000)
    web3.eth.send_transaction = AsyncMock(return_value=bytes.fromhex("ab" * 32))
    web3.eth.send_raw_transaction = AsyncMock(return_value=bytes.fromhex("ab" * 32))
    web3.eth.wait_for_transaction_receipt = AsyncMock(return_value=_raw_receipt())
    web3.eth.get_block = AsyncMock(return_value={})
    _awaitable_property(web3.eth, "gas_price", 7)
    return web3


class TestGetFromAddress:
    def test_valid_checksum_address(self):
        result = _get_transaction_from_address({"from": RANDOM_USER_0})
        assert result == RANDOM_USER_0

    def test_lowercase_address_converted_to_checksum(self):
        result = _get_transaction_from_address({"from": RANDOM_USER_0.lower()})
        assert AsyncWeb3.is_checksum_address(result)
        assert result == RANDOM_USER_0

    def test_empty_transaction(self):
        with pytest.raises(
            ValueError, match="Transaction does not contain from address"
        ):
            _get_transaction_from_address({})


class TestNonceTransaction:
    async def test_nonce_uses_pending_count(self, mock_web3):
        result = await nonce_transaction(mock_web3, {"from": RANDOM_USER_0})
        assert result["nonce"] == 3
        mock_web3.eth.get_transaction_count.assert_awaited_once_with(
            RANDOM_USER_0, block_identifier="pending"
        )

    async def test_does_not_mutate_input(self, mock_web3):
        transaction = {"from": RANDOM_USER_0}
        await nonce_transaction(mock_web3, transaction)
        assert "nonce" not in transaction


class TestGasPriceTransaction:
    async def test_legacy_chain_uses_gas_price(self, mock_web3):
        result = await gas_price_transaction(mock_web3, {"from": RANDOM_USER_0})
        assert result["gasPrice"] == 7
        assert "maxFeePerGas" not in result

    async def test_eip1559_fees(self, mock_web3):
        mock_web3.eth.get_block = AsyncMock(return_value={"baseFeePerGas": 100})
        _awaitable_property(mock_web3.eth, "max_priority_fee", 10)

        result = await gas_price_transaction(mock_web3, {"from": RANDOM_USER_0})

        assert result["maxPriorityFeePerGas"] == int(
            10 * SUGGESTED_PRIORITY_FEE_MULTIPLIER
        )
        assert result["maxFeePerGas"] == int(
            100 * MAX_BASE_FEE_GROWTH_MULTIPLIER + 10 * SUGGESTED_PRIORITY_FEE_MULTIPLIER
        )
        assert "gasPrice" not in result


class TestGasLimitTransaction:
    async def test_applies_buffer_and_drops_existing_gas(self, mock_web3):
        estimated = []

        async def estimate(tx, **kwargs):
            estimated.append(dict(tx))
            return 100_000

        mock_web3.eth.estimate_gas = AsyncMock(side_effect=estimate)

        result = await gas_limit_transaction(
            mock_web3, {"from": RANDOM_USER_0, "gas": 1}
        )

        assert result["gas"] == int(math.ceil(100_000 * GAS_BUFFER_MULTIPLIER))
        assert estimated == [{"from": RANDOM_USER_0}]

    async def test_estimate_sees_its_own_copy(self, mock_web3):
        result = await gas_limit_transaction(mock_web3, {"from": RANDOM_USER_0})
        sent = mock_web3.eth.estimate_gas.await_args.args[0]
        assert sent is not result
        assert "gas" not in sent

    async def test_revert_during_estimation(self, mock_web3):
        mock_web3.eth.estimate_gas = AsyncMock(
            side_effect=ContractLogicError("execution reverted: Transaction too old")
        )
        with pytest.raises(TransactionRevertedError, match="Transaction too old"):
            await gas_limit_transaction(mock_web3, {"from": RANDOM_USER_0})


class TestWaitForTransactionReceipt:
    async def test_returns_parsed_receipt(self, mock_web3):
        receipt = await wait_for_transaction_receipt(mock_web3, TX_HASH)
        assert receipt.txn_hash == TX_HASH
        assert receipt.block_number == 10
        assert receipt.succeeded

    async def test_status_zero_raises(self, mock_web3):
        mock_web3.eth.wait_for_transaction_receipt = AsyncMock(
            return_value=_raw_receipt(status=0)
        )
        with pytest.raises(TransactionRevertedError) as exc_info:
            await wait_for_transaction_receipt(mock_web3, TX_HASH)
        assert exc_info.value.txn_hash == TX_HASH
        assert exc_info.value.receipt["status"] == 0

    async def test_timeout_raises_no_receipt(self, mock_web3):
        mock_web3.eth.wait_for_transaction_receipt = AsyncMock(
            side_effect=TimeExhausted("timed out")
        )
        with pytest.raises(NoReceiptError) as exc_info:
            await wait_for_transaction_receipt(mock_web3, TX_HASH, timeout=5)
        assert exc_info.value.timeout == 5
        assert "may still be included" in str(exc_info.value)


class TestSendTransaction:
    async def test_node_signed_account_uses_eth_send_transaction(self, mock_web3):
        account = Account(address=RANDOM_USER_0, node_signed=True)
        receipt = await send_transaction(
            mock_web3, {"from": RANDOM_USER_0, "to": RANDOM_USER_1}, account
        )

        assert receipt.txn_hash == TX_HASH
        assert receipt.block_number == 10
        mock_web3.eth.wait_for_transaction_receipt.assert_awaited_once()
        mock_web3.eth.send_transaction.assert_awaited_once()
        mock_web3.eth.send_raw_transaction.assert_not_awaited()
        sent = mock_web3.eth.send_transaction.await_args.args[0]
        assert sent["gas"] == int(math.ceil(100_000 * GAS_BUFFER_MULTIPLIER))

    async def test_local_key_signs_and_broadcasts(self, mock_web3):
        sign = AsyncMock(return_value=b"signed")
        account = Account(address=RANDOM_USER_0, signing_callback=sign)

        await send_transaction(
            mock_web3,
            {"from": RANDOM_USER_0, "to": RANDOM_USER_1},
            account,
        )

        signed_tx = sign.await_args.args[0]
        assert signed_tx["nonce"] == 3
        assert signed_tx["gasPrice"] == 7
        mock_web3.eth.send_raw_transaction.assert_awaited_once_with(b"signed")
        mock_web3.eth.send_transaction.assert_not_awaited()

    async def test_sender_mismatch_rejected(self, mock_web3):
        account = Account(address=RANDOM_USER_1, node_signed=True)
        with pytest.raises(ValueError, match="does not match"):
            await send_transaction(mock_web3, {"from": RANDOM_USER_0}, account)

    async def test_account_without_signer_rejected(self, mock_web3):
        account = Account(address=RANDOM_USER_0)
        with pytest.raises(ValueError, match="no signing capability"):
            await send_transaction(mock_web3, {"from": RANDOM_USER_0}, account)

    async def test_revert_on_submission(self, mock_web3):
        mock_web3.eth.send_transaction = AsyncMock(
            side_effect=ContractLogicError("execution reverted")
        )
        account = Account(address=RANDOM_USER_0, node_signed=True)
        with pytest.raises(TransactionRevertedError, match="rejected on submission"):
            await send_transaction(mock_web3, {"from": RANDOM_USER_0}, account)

    async def test_reverted_receipt_reports_gas(self, mock_web3):
        mock_web3.eth.wait_for_transaction_receipt = AsyncMock(
            return_value=_raw_receipt(status=0, gas_used=500_000)
        )
        account = Account(address=RANDOM_USER_0, node_signed=True)
        with pytest.raises(TransactionRevertedError) as exc_info:
            await send_transaction(mock_web3, {"from": RANDOM_USER_0}, account)
        assert exc_info.value.txn_hash == TX_HASH
        assert "likely out of gas" in str(exc_info.value)


async def test_local_signing_callback_signs_with_key():
    sign = local_signing_callback(ANVIL_KEY_0)
    raw = await sign(
        {
            "to": RANDOM_USER_1,
            "value": 0,
            "gas": 21_000,
            "gasPrice": 1,
            "nonce": 0,
            "chainId": 1,
        }
    )
    assert isinstance(raw, bytes)
    assert len(raw) > 0


async def test_encode_call_builds_transaction():
    web3 = MagicMock()
    contract = MagicMock()
    contract.encode_abi = MagicMock(return_value="0xdeadbeef")
    web3.eth.contract = MagicMock(return_value=contract)
    _awaitable_property(web3.eth, "chain_id", 1)
    web3.to_checksum_address = AsyncWeb3.to_checksum_address

    tx = await encode_call(
        web3,
        target=RANDOM_USER_1.lower(),
        abi=[],
        fn_name="mint",
        args=[(1, 2)],
        from_address=ANVIL_ADDRESS_0.lower(),
    )

    assert tx == {
        "chainId": 1,
        "from": ANVIL_ADDRESS_0,
        "to": RANDOM_USER_1,
        "data": "0xdeadbeef",
        "value": 0,
    }
    contract.encode_abi.assert_called_once_with("mint", [(1, 2)])


async def test_encode_call_wraps_encoding_errors():
    web3 = MagicMock()
    contract = MagicMock()
    contract.encode_abi = MagicMock(side_effect=TypeError("bad args"))
    web3.eth.contract = MagicMock(return_value=contract)
    web3.to_checksum_address = AsyncWeb3.to_checksum_address

    with pytest.raises(ValueError, match="Failed to encode mint"):
        await encode_call(
            web3,
            target=RANDOM_USER_1,
            abi=[],
            fn_name="mint",
            args=[],
            from_address=RANDOM_USER_0,
        )
