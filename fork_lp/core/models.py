from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

from eth_utils import to_checksum_address
from hexbytes import HexBytes
from pydantic import BaseModel, ConfigDict, Field, field_validator

SigningCallback = Callable[[dict], Awaitable[bytes]]
PositionId = int


def _checksum(value: Any) -> str:
    return to_checksum_address(str(value))


def to_hex(value: Any) -> str:
    """Normalise a bytes-like or hex string value to a lowercase 0x-prefixed string."""
    if isinstance(value, str):
        text = value.lower()
        return text if text.startswith("0x") else f"0x{text}"
    return HexBytes(value).to_0x_hex()


@dataclass(frozen=True)
class Account:
    """An address plus whatever lets us sign for it.

    ``signing_callback`` signs locally (private key). ``node_signed`` means the
    connected node signs on our behalf: an impersonated address or one of the
    node's unlocked dev accounts.
    """

    address: str
    signing_callback: SigningCallback | None = None
    node_signed: bool = False

    def __post_init__(self) -> None:
        object.__setattr__(self, "address", _checksum(self.address))

    @property
    def can_sign(self) -> bool:
        return self.signing_callback is not None or self.node_signed


class TokenAmount(BaseModel):
    model_config = ConfigDict(frozen=True)

    token: str
    amount: int = Field(ge=0)

    checksum_token = field_validator("token", mode="before")(_checksum)


class MintRequest(BaseModel):
    model_config = ConfigDict(frozen=True)

    token0: str
    token1: str
    fee: int
    tick_lower: int
    tick_upper: int
    amount0_desired: int = Field(ge=0)
    amount1_desired: int = Field(ge=0)
    amount0_min: int = Field(ge=0)
    amount1_min: int = Field(ge=0)
    recipient: str
    deadline: int

    checksum_addresses = field_validator(
        "token0", "token1", "recipient", mode="before"
    )(_checksum)

    @classmethod
    def for_pair(
        cls,
        *,
        token_a: str,
        token_b: str,
        amount_a: int,
        amount_b: int,
        fee: int,
        tick_lower: int,
        tick_upper: int,
        recipient: str,
        deadline: int,
        amount_a_min: int = 0,
        amount_b_min: int = 0,
    ) -> MintRequest:
        """Build a request for an unordered pair.

        The pool identifies tokens by ascending address, so the pair (and its
        amounts) is swapped when ``token_a`` sorts after ``token_b``. Ticks are
        always expressed in the pool's token0/token1 terms and are not touched.
        """
        t_a = _checksum(token_a)
        t_b = _checksum(token_b)
        if int(t_a, 16) > int(t_b, 16):
            t_a, t_b = t_b, t_a
            amount_a, amount_b = amount_b, amount_a
            amount_a_min, amount_b_min = amount_b_min, amount_a_min
        return cls(
            token0=t_a,
            token1=t_b,
            fee=fee,
            tick_lower=tick_lower,
            tick_upper=tick_upper,
            amount0_desired=amount_a,
            amount1_desired=amount_b,
            amount0_min=amount_a_min,
            amount1_min=amount_b_min,
            recipient=recipient,
            deadline=deadline,
        )

    def to_params(self) -> tuple:
        return (
            self.token0,
            self.token1,
            int(self.fee),
            int(self.tick_lower),
            int(self.tick_upper),
            int(self.amount0_desired),
            int(self.amount1_desired),
            int(self.amount0_min),
            int(self.amount1_min),
            self.recipient,
            int(self.deadline),
        )


class LogEntry(BaseModel):
    model_config = ConfigDict(frozen=True)

    address: str
    topics: tuple[str, ...] = ()
    data: str = "0x"
    log_index: int | None = None


class TransactionReceipt(BaseModel):
    model_config = ConfigDict(frozen=True)

    txn_hash: str
    status: int
    block_number: int | None = None
    gas_used: int | None = None
    logs: tuple[LogEntry, ...] = ()

    @property
    def succeeded(self) -> bool:
        return self.status == 1

    @classmethod
    def from_web3(cls, raw: Any) -> TransactionReceipt:
        logs = []
        for lg in raw.get("logs") or []:
            log_index = lg.get("logIndex")
            logs.append(
                LogEntry(
                    address=str(lg.get("address", "")),
                    topics=tuple(to_hex(t) for t in lg.get("topics") or []),
                    data=to_hex(lg.get("data") or b""),
                    log_index=int(log_index) if log_index is not None else None,
                )
            )
        block_number = raw.get("blockNumber")
        gas_used = raw.get("gasUsed")
        return cls(
            txn_hash=to_hex(raw.get("transactionHash") or b""),
            status=int(raw.get("status", 0)),
            block_number=int(block_number) if block_number is not None else None,
            gas_used=int(gas_used) if gas_used is not None else None,
            logs=tuple(logs),
        )


class PositionRecord(BaseModel):
    model_config = ConfigDict(frozen=True)

    position_id: PositionId
    token0: str
    token1: str
    fee: int
    tick_lower: int
    tick_upper: int
    liquidity: int = Field(ge=0)
    nonce: int = 0
    operator: str | None = None
    fee_growth_inside0_last_x128: int = 0
    fee_growth_inside1_last_x128: int = 0
    tokens_owed0: int = 0
    tokens_owed1: int = 0
    owner: str | None = None
