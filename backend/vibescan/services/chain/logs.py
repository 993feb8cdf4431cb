"""
Transfer log records and parsing of raw ``eth_getLogs`` entries.
"""

from dataclasses import dataclass
from typing import Iterable, Optional

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"
ZERO_TOPIC = "0x" + "0" * 64

# keccak256("Transfer(address,address,uint256)"), shared by ERC-20 and ERC-721
TRANSFER_TOPIC = "0xddf252ad1be2c89b69c2b068fc378daa952ba7f163c4a11628f55a4df523b3ef"

WEI_PER_TOKEN = 10 ** 18


@dataclass(frozen=True)
class Transfer:
    """One ERC-721 Transfer log. Never mutated once observed."""

    tx_hash: str
    block_number: int
    timestamp: int
    from_addr: str
    to_addr: str
    token_id: str
    log_index: Optional[int] = None

    @property
    def is_mint(self) -> bool:
        return self.from_addr == ZERO_ADDRESS

    @property
    def is_burn(self) -> bool:
        return self.to_addr == ZERO_ADDRESS


@dataclass(frozen=True)
class BurnTransaction:
    """Fungible-token transfer to the zero address. ``amount`` is in whole tokens."""

    tx_hash: str
    block_number: int
    timestamp: int
    amount: float
    burn_address: str = ZERO_ADDRESS
    log_index: Optional[int] = None


def hex_to_int(value) -> int:
    """Parse an RPC quantity ("0x1a", "26", 26). Empty values read as 0."""
    if value is None:
        return 0
    if isinstance(value, int):
        return value
    value = value.strip()
    if value in ("", "0x"):
        return 0
    if value.startswith(("0x", "0X")):
        return int(value, 16)
    return int(value)


def topic_to_address(topic: str) -> str:
    """Last 20 bytes of a 32-byte indexed topic, lowercased."""
    return ("0x" + topic[-40:]).lower()


def address_to_topic(address: str) -> str:
    return "0x" + address.lower().replace("0x", "").rjust(64, "0")


def parse_transfer_log(log: dict) -> Optional[Transfer]:
    """
    Build a Transfer from an ERC-721 log (tokenId is the third indexed topic).

    Returns None for logs that are not ERC-721 transfers.
    """
    topics = log.get("topics") or []
    if len(topics) < 4 or (topics[0] or "").lower() != TRANSFER_TOPIC:
        return None

    log_index = log.get("logIndex")
    return Transfer(
        tx_hash=(log.get("transactionHash") or "").lower(),
        block_number=hex_to_int(log.get("blockNumber")),
        timestamp=hex_to_int(log.get("timeStamp")),
        from_addr=topic_to_address(topics[1]),
        to_addr=topic_to_address(topics[2]),
        token_id=str(hex_to_int(topics[3])),
        log_index=hex_to_int(log_index) if log_index not in (None, "") else None,
    )


def parse_burn_log(log: dict) -> Optional[BurnTransaction]:
    """
    Build a BurnTransaction from an ERC-20 Transfer log to the zero address.

    The amount is not indexed; it is read from ``data`` and scaled by 1e18.
    """
    topics = log.get("topics") or []
    if len(topics) < 3:
        return None

    to_addr = topic_to_address(topics[2])
    if to_addr != ZERO_ADDRESS:
        return None

    log_index = log.get("logIndex")
    return BurnTransaction(
        tx_hash=(log.get("transactionHash") or "").lower(),
        block_number=hex_to_int(log.get("blockNumber")),
        timestamp=hex_to_int(log.get("timeStamp")),
        amount=hex_to_int(log.get("data")) / WEI_PER_TOKEN,
        burn_address=to_addr,
        log_index=hex_to_int(log_index) if log_index not in (None, "") else None,
    )


def filter_to_sales_only(transfers: Iterable[Transfer]) -> list[Transfer]:
    """Drop mints and burns; what remains can have changed hands for a price."""
    return [t for t in transfers if not t.is_mint and not t.is_burn]
