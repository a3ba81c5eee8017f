import base64
import json
import os
import time
from datetime import datetime, timezone
from decimal import Decimal
from typing import Generator, Optional

# secrets must exist before app.core.config is imported
os.environ.setdefault("ENCRYPTION_SECRET", "test-encryption-secret-0123456789abcdef")
os.environ.setdefault("JWT_SECRET", "test-jwt-secret-for-session-tokens")
os.environ["DATABASE_URL"] = "sqlite:///:memory:"
os.environ["REDIS_HOST"] = ""
os.environ["NETWORK"] = "base-sepolia"
os.environ["CORS_ORIGINS"] = "http://app.testserver"

import pytest
from eth_account import Account
from eth_account.messages import encode_defunct
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import StaticPool
from unittest.mock import Mock, patch

from main import app
from app.core.encryption import encrypt_coupon_code
from app.core.nonce_store import nonce_store
from app.core.session_auth import ADDRESS_HEADER, MESSAGE_HEADER, SIGNATURE_HEADER
from app.db.base import Base
from app.db.session import get_db
from app.models.coupons import Coupon
from app.services.facilitator import PaymentVerifier, SettleResult, VerifyResult, get_payment_verifier
from app.services.users import ensure_user


# Create in-memory SQLite database for testing
SQLALCHEMY_DATABASE_URL = "sqlite:///:memory:"
engine = create_engine(
    SQLALCHEMY_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

TEST_DOMAIN = "testserver"


def override_get_db() -> Generator:
    """Override database dependency for testing"""
    try:
        db = TestingSessionLocal()
        yield db
    finally:
        db.close()


class Wallet:
    """Throwaway Ethereum keypair that signs like a browser wallet (personal_sign)"""

    def __init__(self):
        self.account = Account.create()

    @property
    def address(self) -> str:
        return self.account.address

    @property
    def lower(self) -> str:
        return self.account.address.lower()

    def sign(self, message: str) -> str:
        signed = Account.sign_message(encode_defunct(text=message), self.account.key)
        return "0x" + bytes(signed.signature).hex()


def build_siwe_message(
    address: str,
    nonce: str,
    domain: str = TEST_DOMAIN,
    chain_id: int = 84532,
    issued_at: Optional[str] = None,
    expiration_time: Optional[str] = None,
    not_before: Optional[str] = None,
) -> str:
    issued_at = issued_at or datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")
    message = (
        f"{domain} wants you to sign in with your Ethereum account:\n"
        f"{address}\n"
        "\n"
        "Sign in to Promox\n"
        "\n"
        f"URI: http://{domain}\n"
        "Version: 1\n"
        f"Chain ID: {chain_id}\n"
        f"Nonce: {nonce}\n"
        f"Issued At: {issued_at}"
    )
    if expiration_time:
        message += f"\nExpiration Time: {expiration_time}"
    if not_before:
        message += f"\nNot Before: {not_before}"
    return message


def build_header_message(timestamp_ms: Optional[int] = None) -> str:
    timestamp_ms = timestamp_ms if timestamp_ms is not None else int(time.time() * 1000)
    return f"Promox API access\nTimestamp: {timestamp_ms}"


def signed_headers(wallet: Wallet, timestamp_ms: Optional[int] = None) -> dict:
    """X-Wallet-* headers; the multi-line message travels base64 encoded"""
    message = build_header_message(timestamp_ms)
    return {
        ADDRESS_HEADER: wallet.address,
        SIGNATURE_HEADER: wallet.sign(message),
        MESSAGE_HEADER: base64.b64encode(message.encode("utf-8")).decode(),
    }


def payment_header(payer: str = "0x0000000000000000000000000000000000000001") -> str:
    payload = {
        "x402Version": 1,
        "scheme": "exact",
        "network": "base-sepolia",
        "payload": {"signature": "0xdeadbeef", "authorization": {"from": payer}},
    }
    return base64.b64encode(json.dumps(payload).encode()).decode()


class FakeFacilitator(PaymentVerifier):
    """In-process stand-in for the x402 facilitator"""

    def __init__(self):
        self.payer: Optional[str] = None
        self.is_valid = True
        self.invalid_reason = "insufficient_funds"
        self.settles = True
        self.error_reason = "transaction_failed"
        self.transaction = "0x9fc76417374aa880d4449a1f7f31ec597f00b1f6f3dd2d66f4c9c6c445836d8b"
        self.error: Optional[Exception] = None
        self.verify_calls = []
        self.settle_calls = []

    def verify(self, payment_payload, requirements) -> VerifyResult:
        self.verify_calls.append((payment_payload, requirements))
        if self.error is not None:
            raise self.error
        if not self.is_valid:
            return VerifyResult(is_valid=False, invalid_reason=self.invalid_reason)
        return VerifyResult(is_valid=True, payer=self.payer)

    def settle(self, payment_payload, requirements) -> SettleResult:
        self.settle_calls.append((payment_payload, requirements))
        if not self.settles:
            return SettleResult(success=False, error_reason=self.error_reason)
        return SettleResult(
            success=True,
            payer=self.payer,
            transaction=self.transaction,
            network=requirements["network"],
        )


@pytest.fixture(autouse=True)
def offline_chain():
    """No RPC traffic from tests: every address is a plain account unless a test gives it code"""
    with patch("app.core.siwe_auth.Web3") as mock_web3:
        mock_web3.to_checksum_address.side_effect = lambda value: value
        mock_web3.return_value.eth.get_code.return_value = b""
        yield mock_web3


@pytest.fixture
def db_engine():
    """Fresh schema per test"""
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def db_session(db_engine) -> Generator:
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture
def facilitator() -> FakeFacilitator:
    return FakeFacilitator()


@pytest.fixture
def client(db_engine, facilitator) -> TestClient:
    """Create a test client for the FastAPI application"""
    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_payment_verifier] = lambda: facilitator
    nonce_store.clear()
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()
    nonce_store.clear()


@pytest.fixture
def seller() -> Wallet:
    return Wallet()


@pytest.fixture
def buyer() -> Wallet:
    return Wallet()


@pytest.fixture
def make_coupon(db_session):
    """Insert a listing straight into the database"""

    def _make(seller_address: str, code: str = "SAVE20", price: str = "5.00", **overrides) -> Coupon:
        values = dict(
            seller_address=ensure_user(db_session, seller_address),
            title="20% off sneakers",
            brand="Acme",
            category="Fashion",
            currency="USD",
            code_encrypted=encrypt_coupon_code(code),
            price_usd=Decimal(price),
        )
        values.update(overrides)
        coupon = Coupon(**values)
        db_session.add(coupon)
        db_session.commit()
        db_session.refresh(coupon)
        return coupon

    return _make


@pytest.fixture
def mock_db_session():
    """Create a mock database session"""
    return Mock(spec=Session)
