"""
Session Token Utilities

This module handles the session credential issued after a successful
Sign-In with Ethereum verification. The credential is a stateless HS256 JWT:
nothing is stored server-side, so a session ends only when the token expires
or the client discards the cookie.

Flow:
1. User verifies wallet signature -> create_access_token() generates JWT
2. JWT travels back in the HTTP-only auth cookie
3. Protected endpoints call verify_token() (through dependencies.py) to
   recover the wallet address

The JWT contains:
- sub: The authenticated wallet address, always lowercased
- iat: Issued at timestamp
- exp: Expiration timestamp (ACCESS_TOKEN_EXPIRE_SECONDS, 7 days by default)
"""

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

import jwt

from app.core.config import settings
from app.core.errors import ConfigurationError, Unauthenticated

MIN_SECRET_BYTES = 32  # HS256 key at least as long as its digest


def check_signing_secret(secret: Optional[str]) -> str:
    if not secret:
        raise ConfigurationError("JWT_SECRET (or ENCRYPTION_SECRET) is not configured")
    if len(secret.encode("utf-8")) < MIN_SECRET_BYTES:
        raise ConfigurationError(f"JWT_SECRET must be at least {MIN_SECRET_BYTES} bytes")
    return secret


check_signing_secret(settings.JWT_SECRET)


def create_access_token(wallet_address: str, extra_claims: Optional[Dict[str, Any]] = None) -> str:
    """
    Create a session token for a verified wallet address.

    Args:
        wallet_address: The wallet address whose signature was verified
        extra_claims: Optional additional claims to include in the JWT payload

    Returns:
        A signed JWT string

    Raises:
        ValueError: If wallet_address is empty
    """
    if not wallet_address:
        raise ValueError("wallet_address is required")

    now = datetime.now(timezone.utc)
    payload: Dict[str, Any] = {
        "sub": wallet_address.strip().lower(),
        "iat": int(now.timestamp()),
        "exp": int((now + timedelta(seconds=settings.ACCESS_TOKEN_EXPIRE_SECONDS)).timestamp()),
    }
    if extra_claims:
        payload.update(extra_claims)

    return jwt.encode(payload, settings.JWT_SECRET, algorithm=settings.ENCODE_ALGORITHM)


def verify_token(token: Optional[str]) -> str:
    """
    Validate a session token and return its normalized subject.

    Raises:
        Unauthenticated: If the token is missing, expired, forged or has no subject
    """
    if not token:
        raise Unauthenticated("No authentication token")

    try:
        payload = jwt.decode(token, settings.JWT_SECRET, algorithms=[settings.ENCODE_ALGORITHM])
    except jwt.ExpiredSignatureError:
        raise Unauthenticated("Session expired")
    except jwt.InvalidTokenError:
        raise Unauthenticated("Invalid or expired token")

    subject = payload.get("sub")
    if not subject or not isinstance(subject, str):
        raise Unauthenticated("Invalid token payload")

    return subject.lower()
