"""
x402 facilitator client.

The facilitator is the external verifier that checks a client's payment
proof and settles it on-chain. This system never re-derives payment validity
itself: the facilitator's answer is ground truth.

Endpoints used (x402 v1):
    POST {FACILITATOR_URL}/verify  -> {"isValid": bool, "invalidReason": str, "payer": str}
    POST {FACILITATOR_URL}/settle  -> {"success": bool, "errorReason": str,
                                       "transaction": str, "network": str, "payer": str}
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

import requests

from app.core.config import settings
from app.core.errors import UpstreamVerificationFailure

logger = logging.getLogger(__name__)

X402_VERSION = 1


@dataclass
class VerifyResult:
    is_valid: bool
    payer: Optional[str] = None
    invalid_reason: Optional[str] = None


@dataclass
class SettleResult:
    success: bool
    payer: Optional[str] = None
    transaction: Optional[str] = None
    network: Optional[str] = None
    error_reason: Optional[str] = None
    raw: Dict[str, Any] = field(default_factory=dict)


class PaymentVerifier(ABC):
    """External payment verifier contract."""

    @abstractmethod
    def verify(self, payment_payload: Dict[str, Any], requirements: Dict[str, Any]) -> VerifyResult:
        ...

    @abstractmethod
    def settle(self, payment_payload: Dict[str, Any], requirements: Dict[str, Any]) -> SettleResult:
        ...


class HttpFacilitatorClient(PaymentVerifier):
    def __init__(self, base_url: str, timeout: float):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout

    def _post(self, path: str, payment_payload: Dict[str, Any], requirements: Dict[str, Any]) -> Dict[str, Any]:
        body = {
            "x402Version": payment_payload.get("x402Version", X402_VERSION),
            "paymentPayload": payment_payload,
            "paymentRequirements": requirements,
        }
        url = f"{self.base_url}{path}"
        try:
            response = requests.post(url, json=body, timeout=self.timeout)
        except requests.RequestException as exc:
            logger.error("facilitator %s unreachable: %s", path, exc)
            raise UpstreamVerificationFailure(f"Facilitator {path} unreachable")

        try:
            data = response.json()
        except ValueError:
            logger.error("facilitator %s returned non-JSON (%s)", path, response.status_code)
            raise UpstreamVerificationFailure(f"Facilitator {path} returned an invalid response")

        if not isinstance(data, dict):
            raise UpstreamVerificationFailure(f"Facilitator {path} returned an invalid response")
        if response.status_code >= 500:
            logger.error("facilitator %s failed: %s %s", path, response.status_code, data)
            raise UpstreamVerificationFailure(f"Facilitator {path} failed")
        return data

    def verify(self, payment_payload: Dict[str, Any], requirements: Dict[str, Any]) -> VerifyResult:
        data = self._post("/verify", payment_payload, requirements)
        return VerifyResult(
            is_valid=bool(data.get("isValid")),
            payer=data.get("payer"),
            invalid_reason=data.get("invalidReason"),
        )

    def settle(self, payment_payload: Dict[str, Any], requirements: Dict[str, Any]) -> SettleResult:
        data = self._post("/settle", payment_payload, requirements)
        return SettleResult(
            success=bool(data.get("success")),
            payer=data.get("payer"),
            transaction=data.get("transaction") or data.get("txHash"),
            network=data.get("network"),
            error_reason=data.get("errorReason"),
            raw=data,
        )


def get_payment_verifier() -> PaymentVerifier:
    """FastAPI dependency; tests override it with a fake facilitator."""
    return HttpFacilitatorClient(settings.FACILITATOR_URL, settings.FACILITATOR_TIMEOUT_SECONDS)
