"""
Wallet Session Authenticator

Two ways for a caller to prove it controls a wallet:

- Cookie session: POST /session/nonce -> sign an EIP-4361 message that
  embeds the nonce -> POST /session/verify. The nonce lives server-side in
  the nonce store (5 minute TTL), keyed by an opaque context id held in an
  HTTP-only cookie, and is consumed on the first verification attempt.
  Success yields the 7-day session JWT in the auth cookie.

- Signed headers: machine clients send X-Wallet-Address, X-Wallet-Signature
  and X-Wallet-Message on every call. The message carries a
  `Timestamp: <epoch-ms>` marker and is refused once older than
  HEADER_AUTH_MAX_AGE_SECONDS. No nonce is involved, so a captured
  message/signature pair stays replayable inside that window; this scheme is
  reserved for machine clients.
"""

import base64
import binascii
import logging
import secrets
from abc import ABC, abstractmethod
from typing import Optional, Tuple

from fastapi import Request

from app.core.config import settings
from app.core.errors import (
    DomainMismatch,
    InvalidSignature,
    MalformedMessage,
    NonceInvalidOrExpired,
    Unauthenticated,
)
from app.core.jwt_utils import create_access_token, verify_token
from app.core.nonce_store import HybridNonceStore, nonce_store
from app.core.siwe_auth import (
    check_message_window,
    extract_message_timestamp,
    generate_nonce,
    is_address,
    is_timestamp_fresh,
    normalize_address,
    parse_siwe_message,
    verify_wallet_signature,
)

logger = logging.getLogger(__name__)

AUTH_COOKIE_NAME = "auth_token"
NONCE_CONTEXT_COOKIE_NAME = "siwe_nonce_ctx"

ADDRESS_HEADER = "X-Wallet-Address"
SIGNATURE_HEADER = "X-Wallet-Signature"
MESSAGE_HEADER = "X-Wallet-Message"


def new_nonce_context() -> str:
    return secrets.token_urlsafe(24)


def issue_nonce(context_id: str, store: HybridNonceStore = nonce_store) -> str:
    """Generate a nonce bound to the issuing context and remember it for NONCE_EXPIRY_SECONDS."""
    nonce = generate_nonce()
    store.put(context_id, nonce, settings.NONCE_EXPIRY_SECONDS)
    return nonce


def verify_sign_in(
    message: str,
    signature: str,
    expected_domain: str,
    context_id: Optional[str],
    store: HybridNonceStore = nonce_store,
) -> Tuple[str, str]:
    """
    Verify a signed EIP-4361 message and issue a session.

    Returns:
        Tuple of (normalized_address, session_token)

    Raises:
        MalformedMessage, NonceInvalidOrExpired, DomainMismatch, Unauthenticated, InvalidSignature
    """
    if not message or not signature:
        raise MalformedMessage("Missing message or signature")

    siwe = parse_siwe_message(message)

    # one-shot: the stored nonce is gone after this line whatever happens next
    stored_nonce = store.take(context_id) if context_id else None
    if not stored_nonce or not secrets.compare_digest(stored_nonce, siwe.nonce):
        raise NonceInvalidOrExpired()

    if siwe.domain != expected_domain:
        logger.warning("sign-in domain mismatch: got %s, expected %s", siwe.domain, expected_domain)
        raise DomainMismatch()

    check_message_window(siwe)

    if not verify_wallet_signature(siwe.address, message, signature):
        raise InvalidSignature()

    address = normalize_address(siwe.address)
    return address, create_access_token(address)


def check_session(token: Optional[str]) -> str:
    """Validate a session token and return the lowercased wallet address."""
    return verify_token(token)


def decode_message_header(value: str) -> str:
    """Header values cannot carry newlines, so multi-line messages arrive base64 encoded."""
    value = value.strip()
    if "Timestamp:" in value:
        return value
    try:
        return base64.b64decode(value, validate=True).decode("utf-8")
    except (binascii.Error, ValueError):
        return value


def verify_signed_headers(address: str, message: str, signature: str) -> str:
    """
    Stateless proof: signature over a message with a fresh embedded timestamp.

    Raises:
        MalformedMessage: If the address is invalid or the timestamp marker is missing
        Unauthenticated: If the timestamp is older than HEADER_AUTH_MAX_AGE_SECONDS
        InvalidSignature: If the signature does not match the address
    """
    if not is_address(address):
        raise MalformedMessage("Invalid wallet address header")
    timestamp_ms = extract_message_timestamp(message)
    if timestamp_ms is None:
        raise MalformedMessage("Missing timestamp in signed message")
    if not is_timestamp_fresh(timestamp_ms, settings.HEADER_AUTH_MAX_AGE_SECONDS):
        raise Unauthenticated("Signed message expired")
    if not verify_wallet_signature(address, message, signature):
        raise InvalidSignature()
    return normalize_address(address)


class WalletAuthenticator(ABC):
    """Authenticate a wallet-controlled caller from an inbound request."""

    @abstractmethod
    def applies(self, request: Request) -> bool:
        ...

    @abstractmethod
    def authenticate(self, request: Request) -> str:
        """Return the lowercased wallet address or raise an auth error."""


class HeaderSignatureAuthenticator(WalletAuthenticator):
    def applies(self, request: Request) -> bool:
        headers = request.headers
        return bool(headers.get(ADDRESS_HEADER) and headers.get(SIGNATURE_HEADER) and headers.get(MESSAGE_HEADER))

    def authenticate(self, request: Request) -> str:
        headers = request.headers
        return verify_signed_headers(
            headers[ADDRESS_HEADER],
            decode_message_header(headers[MESSAGE_HEADER]),
            headers[SIGNATURE_HEADER],
        )


class CookieSessionAuthenticator(WalletAuthenticator):
    def applies(self, request: Request) -> bool:
        return bool(request.cookies.get(AUTH_COOKIE_NAME))

    def authenticate(self, request: Request) -> str:
        return check_session(request.cookies.get(AUTH_COOKIE_NAME))


AUTHENTICATORS: Tuple[WalletAuthenticator, ...] = (
    HeaderSignatureAuthenticator(),
    CookieSessionAuthenticator(),
)


def authenticate_request(request: Request) -> str:
    for authenticator in AUTHENTICATORS:
        if authenticator.applies(request):
            return authenticator.authenticate(request)
    raise Unauthenticated("Please sign in")
