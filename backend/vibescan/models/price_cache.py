from datetime import datetime

from sqlalchemy import DateTime, Float, String
from sqlalchemy.orm import Mapped, mapped_column

from vibescan.models.base import Base


class PriceCacheEntry(Base):
    """
    Trade price recovered for one finalized transaction.

    Never expires: the price of a mined sale cannot change.
    """

    __tablename__ = "price_cache"

    tx_hash: Mapped[str] = mapped_column(String(66), primary_key=True)
    price_eth: Mapped[float] = mapped_column(Float)
    payment_symbol: Mapped[str] = mapped_column(String(20))
    marketplace: Mapped[str] = mapped_column(String(50))
    image_url: Mapped[str | None] = mapped_column(String(500), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime)
