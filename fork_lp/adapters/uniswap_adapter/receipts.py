from __future__ import annotations

from typing import Literal, TypeAlias

from eth_abi import decode
from eth_abi.exceptions import DecodingError
from eth_utils import keccak, to_checksum_address
from loguru import logger

from fork_lp.core.adapters.decorators import step_result
from fork_lp.core.errors import DecodeError, EventNotFoundError
from fork_lp.core.models import LogEntry, PositionId, TransactionReceipt, to_hex

IssuanceEvent: TypeAlias = Literal["Transfer", "IncreaseLiquidity"]

EVENT_SIGNATURES: dict[str, str] = {
    "Transfer": "Transfer(address,address,uint256)",
    "IncreaseLiquidity": "IncreaseLiquidity(uint256,uint128,uint256,uint256)",
}

# indexed params + topic0
_EXPECTED_TOPICS = {"Transfer": 4, "IncreaseLiquidity": 2}


def event_topic(event: str) -> str:
    return to_hex(keccak(text=EVENT_SIGNATURES[event]))


def _topic_bytes(topic: str) -> bytes:
    return bytes.fromhex(topic.removeprefix("0x"))


def _decode_uint(topic: str) -> int:
    (value,) = decode(["uint256"], _topic_bytes(topic))
    return int(value)


class ReceiptEventDecoder:
    """Finds the position id a mint issued by scanning receipt logs.

    The default issuance event is the ERC-721 ``Transfer`` from the zero
    address; ``IncreaseLiquidity`` can be selected instead. When more than one
    log matches, ``strict`` makes that an error, otherwise the first one wins.
    """

    def __init__(
        self,
        position_manager: str,
        event: IssuanceEvent = "Transfer",
        strict: bool = False,
    ):
        if event not in EVENT_SIGNATURES:
            raise ValueError(
                f"Unknown issuance event {event!r}; expected one of {list(EVENT_SIGNATURES)}"
            )
        self.position_manager = to_checksum_address(position_manager)
        self.event = event
        self.strict = strict
        self.topic0 = event_topic(event)
        self.logger = logger.bind(adapter=self.__class__.__name__)

    def _is_candidate(self, log: LogEntry, *, lenient: bool = False) -> bool:
        if str(log.address).lower() != self.position_manager.lower():
            return False
        if not log.topics or log.topics[0].lower() != self.topic0:
            return False
        if len(log.topics) != _EXPECTED_TOPICS[self.event]:
            if lenient:
                return False
            raise DecodeError(
                f"{self.event} log {log.log_index} has {len(log.topics)} topics, "
                f"expected {_EXPECTED_TOPICS[self.event]}"
            )
        if self.event == "Transfer":
            try:
                return _decode_uint(log.topics[1]) == 0
            except (ValueError, DecodingError) as exc:
                if lenient:
                    return False
                raise DecodeError(
                    f"Malformed Transfer sender in log {log.log_index}: {exc}"
                ) from exc
        return True

    def _decode_id(self, log: LogEntry) -> PositionId:
        id_topic = log.topics[3] if self.event == "Transfer" else log.topics[1]
        try:
            position_id = _decode_uint(id_topic)
            if self.event == "IncreaseLiquidity":
                decode(["uint128", "uint256", "uint256"], _topic_bytes(log.data))
        except (ValueError, DecodingError) as exc:
            raise DecodeError(
                f"Malformed {self.event} payload in log {log.log_index}: {exc}"
            ) from exc
        if position_id <= 0:
            raise DecodeError(f"{self.event} log {log.log_index} carries token id 0")
        return position_id

    @step_result
    def decode_position_id(self, receipt: TransactionReceipt) -> PositionId:
        remaining = iter(receipt.logs)
        first = next((log for log in remaining if self._is_candidate(log)), None)
        if first is None:
            raise EventNotFoundError(
                f"No {self.event} issuance log from {self.position_manager} in "
                f"{receipt.txn_hash} ({len(receipt.logs)} logs)"
            )

        position_id = self._decode_id(first)
        # only strict mode lets a malformed later log fail the decode
        extra = sum(
            1 for log in remaining if self._is_candidate(log, lenient=not self.strict)
        )
        if extra and self.strict:
            raise DecodeError(
                f"{extra + 1} {self.event} issuance logs in {receipt.txn_hash}; "
                "expected exactly one"
            )
        if extra:
            self.logger.warning(
                f"{extra + 1} {self.event} issuance logs in {receipt.txn_hash}; "
                f"using the first (id {position_id})"
            )
        return position_id
