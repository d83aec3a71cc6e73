"""Mapping of the NonfungiblePositionManager ``positions()`` tuple.

The contract returns twelve unnamed-by-position values. Rather than indexing
into that tuple, the field order is declared once here, keyed by the ABI
output names, and checked against the ABI before it is used.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any

from eth_utils import to_checksum_address

from fork_lp.core.errors import DecodeError
from fork_lp.core.models import PositionRecord

POSITIONS_LAYOUT_VERSION = 1

# ABI output name -> PositionRecord field, in return order.
POSITIONS_LAYOUT_V1: tuple[tuple[str, str], ...] = (
    ("nonce", "nonce"),
    ("operator", "operator"),
    ("token0", "token0"),
    ("token1", "token1"),
    ("fee", "fee"),
    ("tickLower", "tick_lower"),
    ("tickUpper", "tick_upper"),
    ("liquidity", "liquidity"),
    ("feeGrowthInside0LastX128", "fee_growth_inside0_last_x128"),
    ("feeGrowthInside1LastX128", "fee_growth_inside1_last_x128"),
    ("tokensOwed0", "tokens_owed0"),
    ("tokensOwed1", "tokens_owed1"),
)

_ADDRESS_FIELDS = {"operator", "token0", "token1"}


def validate_layout(
    abi: list[dict[str, Any]],
    layout: Sequence[tuple[str, str]] = POSITIONS_LAYOUT_V1,
) -> None:
    entry = next(
        (
            item
            for item in abi
            if item.get("type") == "function" and item.get("name") == "positions"
        ),
        None,
    )
    if entry is None:
        raise DecodeError("ABI has no positions() function", step="resolve")

    abi_names = [out.get("name") for out in entry.get("outputs") or []]
    layout_names = [name for name, _ in layout]
    if abi_names != layout_names:
        raise DecodeError(
            f"positions() layout v{POSITIONS_LAYOUT_VERSION} does not match ABI "
            f"outputs: expected {layout_names}, got {abi_names}",
            step="resolve",
        )


def decode_positions_result(
    raw: Sequence[Any],
    position_id: int,
    owner: str | None = None,
    layout: Sequence[tuple[str, str]] = POSITIONS_LAYOUT_V1,
) -> PositionRecord:
    if len(raw) != len(layout):
        raise DecodeError(
            f"positions({position_id}) returned {len(raw)} values, "
            f"layout expects {len(layout)}",
            step="resolve",
        )

    fields: dict[str, Any] = {}
    for (_, field), value in zip(layout, raw, strict=True):
        if field in _ADDRESS_FIELDS:
            fields[field] = to_checksum_address(value)
        else:
            fields[field] = int(value)

    return PositionRecord(
        position_id=int(position_id),
        owner=to_checksum_address(owner) if owner else None,
        **fields,
    )
