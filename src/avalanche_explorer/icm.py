"""
Interchain Messaging (ICM) detection on EVM receipts.

A transaction is an ICM message when one of its logs carries a known
TeleporterMessenger or token bridge event as topic 0. Send and receive events
additionally carry the remote blockchain id as topic 2.
"""

from dataclasses import dataclass
from typing import Any

from .utils.hex_utility import int_to_hex

# TeleporterMessenger events
SEND_CROSS_CHAIN_MESSAGE = "0x2a211ad4a59ab9d003852404f9c57c690704ee755f3c79d2c2812ad32da99df8"
RECEIVE_CROSS_CHAIN_MESSAGE = "0x292ee90bbaf70b5d4936025e09d56ba08f3e421156b6a568cf3c2840d9343e34"
MESSAGE_EXECUTED = "0x34795cc6b122b9a0ae684946319f1e14a577b4e8f9b3dda9ac94c21a54d3188c"
RECEIPT_RECEIVED = "0xd13a7935f29af029349bed0a2097455b91fd06190a30478c575db3f31e00bf57"

# Token bridge events, identical across the ERC20/Native Home/Remote contracts
TOKENS_SENT = "0x93f19bf1ec58a15dc643b37e7e18a1c13e85e06cd11929e283154691ace9fb52"
TOKENS_AND_CALL_SENT = "0x5d76dff81bf773b908b050fa113d39f7d8135bb4175398f313ea19cd3a1a0b16"

CROSS_CHAIN_TOPICS: frozenset[str] = frozenset({
    SEND_CROSS_CHAIN_MESSAGE,
    RECEIVE_CROSS_CHAIN_MESSAGE,
    MESSAGE_EXECUTED,
    RECEIPT_RECEIVED,
    TOKENS_SENT,
    TOKENS_AND_CALL_SENT,
})


@dataclass(frozen=True, slots=True)
class IcmRoute:
    """Source and destination blockchain ids of a cross-chain message (hex, may be unknown)."""

    source: str | None = None
    destination: str | None = None


def _topic0(log: dict[str, Any]) -> str | None:
    topics = log.get("topics") or []
    if not topics or not topics[0]:
        return None
    return topics[0].lower()


def is_cross_chain_log(log: dict[str, Any]) -> bool:
    return _topic0(log) in CROSS_CHAIN_TOPICS


def is_cross_chain(receipt: dict[str, Any] | None) -> bool:
    """True if any log of the receipt carries a known ICM topic."""
    if not receipt:
        return False
    return any(is_cross_chain_log(log) for log in receipt.get("logs") or [])


def extract_route(logs: list[dict[str, Any]], current_blockchain_id: str | None) -> IcmRoute:
    """Derive the message route from send/receive logs.

    On a send the current chain is the source and topic 2 the destination;
    on a receive it is the reverse. Each side is overwritten by later
    matching logs, so the last one wins.
    """
    source: str | None = None
    destination: str | None = None

    for log in logs:
        topics = log.get("topics") or []
        match _topic0(log):
            case topic if topic == SEND_CROSS_CHAIN_MESSAGE:
                source = current_blockchain_id
                if len(topics) > 2:
                    destination = topics[2]
            case topic if topic == RECEIVE_CROSS_CHAIN_MESSAGE:
                destination = current_blockchain_id
                if len(topics) > 2:
                    source = topics[2]
            case _:
                continue

    return IcmRoute(source=source, destination=destination)


def icm_log_filter(from_block: int, to_block: int) -> dict[str, Any]:
    """``eth_getLogs`` filter for send/receive messages in a block range."""
    return {
        "fromBlock": int_to_hex(from_block),
        "toBlock": int_to_hex(to_block),
        "topics": [[SEND_CROSS_CHAIN_MESSAGE, RECEIVE_CROSS_CHAIN_MESSAGE]],
    }
