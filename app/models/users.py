from sqlalchemy import Column, DateTime, String
from sqlalchemy.sql import func

from app.db.base import Base


class User(Base):
    """Model for users table, one row per known wallet
    Example:
    {
        "wallet_address": "0x3f5ce5fbfe3e9af3971dd833d26ba9b5c936f0be",
        "created_at": "2024-01-01T12:00:00"
    }
    """

    __tablename__ = "users"

    wallet_address = Column(String(42), primary_key=True)
    created_at = Column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
