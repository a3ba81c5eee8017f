import uuid

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Numeric,
    String,
    Text,
)
from sqlalchemy.sql import func

from app.db.base import Base

SALE_AVAILABLE = "available"
SALE_SOLD = "sold"


def _new_id() -> str:
    return str(uuid.uuid4())


class Coupon(Base):
    """Model for coupons table
    Example:
    {
        "id": "550e8400-e29b-41d4-a716-446655440000",
        "seller_address": "0x3f5ce5fbfe3e9af3971dd833d26ba9b5c936f0be",
        "title": "20% off sneakers",
        "brand": "Acme",
        "category": "Fashion",
        "currency": "USD",
        "code_encrypted": "<iv hex>:<tag hex>:<ciphertext hex>",
        "price_usd": 5.00,
        "expiry_date": "2025-01-01T00:00:00",
        "status": "unverified",
        "is_sold": false,
        "buyer_address": null,
        "purchased_at": null
    }
    buyer_address and purchased_at are set exactly when is_sold is true,
    and only by the settlement callback.
    """

    __tablename__ = "coupons"

    id = Column(String(36), primary_key=True, default=_new_id)
    seller_address = Column(String(42), ForeignKey("users.wallet_address"), nullable=False, index=True)
    title = Column(String(255), nullable=False)
    brand = Column(String(255), nullable=False)
    category = Column(String(100), nullable=False, default="Other")
    currency = Column(String(16), nullable=False, default="USD")
    description = Column(Text, nullable=True)
    terms = Column(Text, nullable=True)
    code_encrypted = Column(Text, nullable=False)
    price_usd = Column(Numeric(12, 2), nullable=False)
    expiry_date = Column(DateTime(timezone=True), nullable=True)
    status = Column(String(20), nullable=False, default="unverified")  # unverified, verified, invalid
    is_sold = Column(Boolean, nullable=False, default=False)
    buyer_address = Column(String(42), ForeignKey("users.wallet_address"), nullable=True, index=True)
    purchased_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    @property
    def sale_status(self) -> str:
        return SALE_SOLD if self.is_sold else SALE_AVAILABLE
