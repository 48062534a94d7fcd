"""
Hex and unit conversion helpers for JSON-RPC payloads.

Every quantity on the wire is a 0x-prefixed hex string; wei amounts are
converted through web3's Decimal based unit helpers so fee sums stay exact.
"""

from datetime import datetime, timezone
from typing import Any

from web3 import Web3

ISO_FORMAT = "%Y-%m-%dT%H:%M:%S.000Z"


def hex_to_int(value: Any) -> int:
    """Convert a JSON-RPC quantity to int.

    Accepts hex strings, decimal strings, ints and empty values (which
    map to 0, matching how nodes omit optional quantities).
    """
    match value:
        case None | "" | "0x":
            return 0
        case bool():
            return int(value)
        case int():
            return value
        case str() if value.startswith(("0x", "0X")):
            return Web3.to_int(hexstr=value)
        case str():
            return int(value)
        case _:
            raise ValueError(f"Cannot interpret {value!r} as an integer quantity")


def int_to_hex(value: int) -> str:
    """Encode an int as a JSON-RPC quantity ("0x" prefixed, no padding)."""
    if value < 0:
        raise ValueError(f"Quantities cannot be negative, got {value}")
    return Web3.to_hex(value)


def wei_to_token(wei: int, places: int = 6) -> str:
    """Format a wei amount in whole native tokens (1e18 wei)."""
    return f"{Web3.from_wei(wei, 'ether'):.{places}f}"


def wei_to_gwei(wei: int, places: int = 4) -> str:
    """Format a wei amount in gwei (1e9 wei)."""
    return f"{Web3.from_wei(wei, 'gwei'):.{places}f}"


def timestamp_to_iso(timestamp: int) -> str:
    """Render a unix timestamp (seconds) as an ISO-8601 UTC string."""
    return datetime.fromtimestamp(timestamp, tz=timezone.utc).strftime(ISO_FORMAT)


def iso_to_timestamp(value: str) -> int:
    """Parse an ISO-8601 string (``Z`` or offset suffix) back to unix seconds."""
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return int(parsed.timestamp())
