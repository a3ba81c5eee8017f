"""
Ethereum Wallet Authentication Utilities

This module handles the wallet-specific cryptography for Sign-In with Ethereum
(EIP-4361). It is shared by both authentication schemes: the cookie session
login and the stateless signed-header proof used by machine clients.

Authentication Flow:
1. Backend generates a random nonce -> generate_nonce()
2. Frontend builds an EIP-4361 message containing the nonce and signs it
   with the wallet (personal_sign)
3. Frontend sends: message, signature
4. Backend parses the message -> parse_siwe_message()
5. Backend verifies the signature -> verify_wallet_signature()
   - Plain accounts: recover the signer from the EIP-191 signature
   - Smart-contract accounts: ask the contract via EIP-1271 isValidSignature

The signature verification uses:
- eth-account for signer recovery
- web3 for the EIP-1271 contract call (RPC_URL, else the network's public RPC)
"""

import binascii
import logging
import re
import secrets
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, Optional

import requests
from eth_account import Account
from eth_account.messages import defunct_hash_message, encode_defunct
from web3 import Web3
from web3.exceptions import ContractLogicError, Web3Exception

from app.core.chain import get_rpc_url
from app.core.config import settings
from app.core.errors import MalformedMessage, Unauthenticated, UpstreamVerificationFailure

logger = logging.getLogger(__name__)

NONCE_NUM_BYTES = 16  # 16 bytes = 32 hex characters

EIP1271_MAGIC_VALUE = bytes.fromhex("1626ba7e")
EIP1271_ABI = [
    {
        "inputs": [
            {"name": "_hash", "type": "bytes32"},
            {"name": "_signature", "type": "bytes"},
        ],
        "name": "isValidSignature",
        "outputs": [{"name": "", "type": "bytes4"}],
        "stateMutability": "view",
        "type": "function",
    }
]

_HEADER_RE = re.compile(
    r"^(?:(?P<scheme>[a-zA-Z][a-zA-Z0-9+\-.]*)://)?(?P<domain>[^ ]+) "
    r"wants you to sign in with your Ethereum account:$"
)
_ADDRESS_RE = re.compile(r"^0x[0-9a-fA-F]{40}$")
_FIELD_RE = re.compile(
    r"^(?P<key>URI|Version|Chain ID|Nonce|Issued At|Expiration Time|Not Before|Request ID): (?P<value>.*)$"
)
_TIMESTAMP_RE = re.compile(r"Timestamp:\s*(\d+)")


@dataclass
class SiweMessage:
    domain: str
    address: str
    nonce: str
    issued_at: str
    statement: Optional[str] = None
    uri: Optional[str] = None
    version: Optional[str] = None
    chain_id: Optional[int] = None
    expiration_time: Optional[str] = None
    not_before: Optional[str] = None
    resources: list = field(default_factory=list)


def generate_nonce(num_bytes: int = NONCE_NUM_BYTES) -> str:
    """
    Generate a cryptographically secure random nonce for wallet sign-in.

    EIP-4361 requires an alphanumeric nonce of at least 8 characters;
    a hex string satisfies both.
    """
    if num_bytes <= 0:
        num_bytes = NONCE_NUM_BYTES
    return secrets.token_hex(num_bytes)


def is_address(value: Optional[str]) -> bool:
    return bool(value) and bool(_ADDRESS_RE.match(value.strip()))


def normalize_address(address: str) -> str:
    return address.strip().lower() if address else ""


def parse_siwe_message(message: str) -> SiweMessage:
    """
    Parse an EIP-4361 message.

    Raises:
        MalformedMessage: If the header, address, nonce or issued-at is missing
    """
    if not message or not isinstance(message, str):
        raise MalformedMessage("Missing sign-in message")

    lines = message.replace("\r\n", "\n").split("\n")
    header = _HEADER_RE.match(lines[0].strip())
    if not header:
        raise MalformedMessage("Missing domain in sign-in message")
    if len(lines) < 2 or not _ADDRESS_RE.match(lines[1].strip()):
        raise MalformedMessage("Missing address in sign-in message")

    fields: Dict[str, str] = {}
    statement = None
    resources = []
    in_resources = False
    for line in lines[2:]:
        stripped = line.strip()
        if in_resources and stripped.startswith("- "):
            resources.append(stripped[2:])
            continue
        in_resources = False
        if stripped == "Resources:":
            in_resources = True
            continue
        match = _FIELD_RE.match(stripped)
        if match:
            fields[match.group("key")] = match.group("value").strip()
        elif stripped and not fields and statement is None:
            statement = stripped

    nonce = fields.get("Nonce")
    issued_at = fields.get("Issued At")
    if not nonce:
        raise MalformedMessage("Missing nonce in sign-in message")
    if not issued_at:
        raise MalformedMessage("Missing issued-at timestamp in sign-in message")

    for key in ("Expiration Time", "Not Before"):
        if fields.get(key):
            _parse_message_time(fields[key], key.lower())

    chain_id = None
    if fields.get("Chain ID"):
        try:
            chain_id = int(fields["Chain ID"])
        except ValueError:
            raise MalformedMessage("Invalid chain id in sign-in message")

    return SiweMessage(
        domain=header.group("domain"),
        address=lines[1].strip(),
        nonce=nonce,
        issued_at=issued_at,
        statement=statement,
        uri=fields.get("URI"),
        version=fields.get("Version"),
        chain_id=chain_id,
        expiration_time=fields.get("Expiration Time"),
        not_before=fields.get("Not Before"),
        resources=resources,
    )


def _parse_message_time(value: str, label: str) -> datetime:
    try:
        parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
    except ValueError:
        raise MalformedMessage(f"Invalid {label} in sign-in message")
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def check_message_window(siwe: SiweMessage, now: Optional[datetime] = None) -> None:
    """
    Enforce the optional Expiration Time and Not Before bounds of a sign-in message.

    Raises:
        MalformedMessage: If either timestamp is not ISO 8601
        Unauthenticated: If the message has expired or is not valid yet
    """
    now = now or datetime.now(timezone.utc)
    if siwe.expiration_time and _parse_message_time(siwe.expiration_time, "expiration time") <= now:
        raise Unauthenticated("Sign-in message expired")
    if siwe.not_before and _parse_message_time(siwe.not_before, "not before") > now:
        raise Unauthenticated("Sign-in message not yet valid")


def extract_message_timestamp(message: str) -> Optional[int]:
    """Return the `Timestamp: <epoch-ms>` marker embedded in a signed message."""
    if not message:
        return None
    match = _TIMESTAMP_RE.search(message)
    if not match:
        return None
    return int(match.group(1))


def is_timestamp_fresh(timestamp_ms: int, max_age_seconds: int, now: Optional[float] = None) -> bool:
    current_ms = int((now if now is not None else time.time()) * 1000)
    return current_ms - timestamp_ms <= max_age_seconds * 1000


def _decode_signature(signature: str) -> bytes:
    value = signature.strip()
    if value.lower().startswith("0x"):
        value = value[2:]
    return binascii.unhexlify(value.encode())


def _eip191_digest(message: str) -> bytes:
    return bytes(defunct_hash_message(text=message))


def _recover_signer(message: str, signature: bytes) -> Optional[str]:
    try:
        return Account.recover_message(encode_defunct(text=message), signature=signature)
    except Exception:
        return None


def _verify_contract_signature(address: str, message: str, signature: bytes) -> bool:
    """
    Ask a smart-contract account whether it accepts the signature (EIP-1271).

    Returns False for plain accounts (no code) and when the contract rejects or
    reverts. Raises UpstreamVerificationFailure when the RPC node cannot be
    reached, so a timeout never reads as a bad signature.
    """
    w3 = Web3(Web3.HTTPProvider(get_rpc_url(), request_kwargs={"timeout": settings.RPC_TIMEOUT_SECONDS}))
    checksum = Web3.to_checksum_address(address)
    try:
        if not w3.eth.get_code(checksum):
            return False
        contract = w3.eth.contract(address=checksum, abi=EIP1271_ABI)
        result = contract.functions.isValidSignature(_eip191_digest(message), signature).call()
    except ContractLogicError:
        return False
    except (requests.RequestException, Web3Exception) as exc:
        logger.warning("EIP-1271 check failed for %s: %s", checksum, exc)
        raise UpstreamVerificationFailure("Signature verification unavailable")
    return bytes(result) == EIP1271_MAGIC_VALUE


def verify_wallet_signature(address: str, message: str, signature: str) -> bool:
    """
    Verify that `address` signed `message`.

    Tries signer recovery first (plain keypair accounts), then falls back to an
    EIP-1271 call for smart-contract accounts.

    Example:
        if verify_wallet_signature("0xAbc...", siwe_text, "0x1b2c..."):
            # issue a session for 0xabc...
    """
    if not is_address(address) or not message or not signature:
        return False
    try:
        signature_bytes = _decode_signature(signature)
    except (binascii.Error, ValueError):
        return False

    recovered = _recover_signer(message, signature_bytes)
    if recovered and recovered.lower() == address.strip().lower():
        return True

    return _verify_contract_signature(address.strip(), message, signature_bytes)
