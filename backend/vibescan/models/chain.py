from datetime import datetime

from sqlalchemy import BigInteger, DateTime, Float, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from vibescan.models.base import Base


class ChainTransfer(Base):
    """
    One ERC-721 Transfer log touching the strategy contract.

    Rows are append-only; the ledger is rebuilt from the full table on
    every sync.
    """

    __tablename__ = "chain_transfers"

    tx_hash: Mapped[str] = mapped_column(String(66), primary_key=True)
    log_index: Mapped[int] = mapped_column(Integer, primary_key=True)
    block_number: Mapped[int] = mapped_column(BigInteger)
    timestamp: Mapped[int] = mapped_column(BigInteger)
    from_addr: Mapped[str] = mapped_column(String(42))
    to_addr: Mapped[str] = mapped_column(String(42))
    token_id: Mapped[str] = mapped_column(String(80))

    __table_args__ = (
        Index("ix_chain_transfers_block", "block_number"),
        Index("ix_chain_transfers_token", "token_id"),
    )


class TokenBurn(Base):
    """Strategy token transfer to the zero address."""

    __tablename__ = "token_burns"

    tx_hash: Mapped[str] = mapped_column(String(66), primary_key=True)
    log_index: Mapped[int] = mapped_column(Integer, primary_key=True)
    block_number: Mapped[int] = mapped_column(BigInteger)
    timestamp: Mapped[int] = mapped_column(BigInteger)
    amount: Mapped[float] = mapped_column(Float)
    burn_address: Mapped[str] = mapped_column(String(42))

    __table_args__ = (
        Index("ix_token_burns_timestamp", "timestamp"),
    )


class SyncState(Base):
    __tablename__ = "sync_state"

    contract_address: Mapped[str] = mapped_column(String(42), primary_key=True)
    last_synced_block: Mapped[int] = mapped_column(BigInteger, default=0)
    is_syncing: Mapped[bool] = mapped_column(default=False)
    last_error: Mapped[str | None] = mapped_column(Text, nullable=True)
    updated_at: Mapped[datetime] = mapped_column(DateTime)
