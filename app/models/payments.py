import uuid

from sqlalchemy import Column, DateTime, ForeignKey, Numeric, String
from sqlalchemy.sql import func

from app.db.base import Base

PAYMENT_STATUSES = ("pending", "verified", "settled", "failed")


class PaymentTransaction(Base):
    """Model for payment_transactions table, written only after settlement
    Example:
    {
        "id": "1b4e28ba-2fa1-11d2-883f-0016d3cca427",
        "coupon_id": "550e8400-e29b-41d4-a716-446655440000",
        "payer_address": "0x8ba1f109551bd432803012645ac136ddd64dba72",
        "amount_usd": 5.00,
        "transaction_hash": "0x9fc7...836d8b",
        "network": "eip155:84532",
        "status": "settled"
    }
    """

    __tablename__ = "payment_transactions"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    coupon_id = Column(String(36), ForeignKey("coupons.id"), nullable=False, index=True)
    payer_address = Column(String(42), nullable=False)
    amount_usd = Column(Numeric(12, 2), nullable=False)
    transaction_hash = Column(String(100), nullable=True)
    network = Column(String(50), nullable=False)
    status = Column(String(20), nullable=False, default="pending")
    created_at = Column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
