"""
x402 payment gate.

Turns a normal resource into a "pay first" resource:

1. No X-PAYMENT header -> 402 with the payment requirements (price and payee
   resolved per request by the injected PaymentResolver).
2. X-PAYMENT header -> facilitator /verify -> run the protected handler into
   a buffered response -> facilitator /settle -> settlement callback ->
   return the buffered response with X-PAYMENT-RESPONSE.

The handler's body is only sent to the client after settlement is confirmed.
The gate knows nothing about coupons; resolvers and the settlement callback
carry the domain.
"""

import base64
import binascii
import json
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any, Callable, Dict, Optional

from fastapi import Request, status
from fastapi.responses import JSONResponse, Response

from app.core.chain import USDC_NAME, USDC_VERSION, get_network_name, get_usdc_address, usd_to_atomic
from app.core.config import settings
from app.core.errors import DataIntegrityViolation, MarketplaceError, PaymentResolutionError
from app.services.facilitator import PaymentVerifier, X402_VERSION

logger = logging.getLogger(__name__)

PAYMENT_HEADER = "X-PAYMENT"
PAYMENT_RESPONSE_HEADER = "X-PAYMENT-RESPONSE"


@dataclass
class SettlementContext:
    """What the settlement callback receives after the facilitator settles."""

    resource: str
    success: bool
    payer: Optional[str] = None
    transaction: Optional[str] = None
    network: Optional[str] = None


class PaymentResolver(ABC):
    """Strategy resolving price and payee for one protected resource path.

    Implementations must be side-effect free: clients retry, and the gate may
    resolve the same path many times.
    """

    @abstractmethod
    def resolve_price(self, path: str) -> str:
        """Return a currency-tagged amount such as "$5.00"."""

    @abstractmethod
    def resolve_pay_to(self, path: str) -> str:
        """Return the wallet address receiving the payment."""


def parse_money(price: str) -> Decimal:
    """Parse "$5.00" / "5.00" into a Decimal amount."""
    value = (price or "").strip().lstrip("$").strip()
    try:
        amount = Decimal(value)
    except InvalidOperation:
        raise PaymentResolutionError(f"Invalid price: {price!r}")
    if amount < 0:
        raise PaymentResolutionError(f"Negative price: {price!r}")
    return amount


def decode_payment_header(value: str) -> Dict[str, Any]:
    """X-PAYMENT carries base64-encoded JSON."""
    try:
        payload = json.loads(base64.b64decode(value, validate=True))
    except (binascii.Error, ValueError) as exc:
        raise ValueError(f"invalid payment header: {exc}") from exc
    if not isinstance(payload, dict):
        raise ValueError("invalid payment header: expected an object")
    return payload


def encode_payment_response(data: Dict[str, Any]) -> str:
    return base64.b64encode(json.dumps(data, separators=(",", ":")).encode()).decode()


class PaymentGate:
    def __init__(
        self,
        resolver: PaymentResolver,
        verifier: PaymentVerifier,
        on_settled: Optional[Callable[[SettlementContext], Any]] = None,
        description: str = "",
        mime_type: str = "application/json",
        network: Optional[str] = None,
        max_timeout_seconds: Optional[int] = None,
    ):
        self.resolver = resolver
        self.verifier = verifier
        self.on_settled = on_settled
        self.description = description
        self.mime_type = mime_type
        self.network = get_network_name(network)
        self.max_timeout_seconds = max_timeout_seconds or settings.PAYMENT_MAX_TIMEOUT_SECONDS

    def build_requirements(self, request: Request) -> Dict[str, Any]:
        path = request.url.path
        try:
            price = self.resolver.resolve_price(path)
            pay_to = self.resolver.resolve_pay_to(path)
        except DataIntegrityViolation:
            logger.error("[x402] corrupt listing behind %s: %s", path, "payee missing")
            raise
        except MarketplaceError as exc:
            logger.error("[x402] could not resolve payment for %s: %s", path, exc.detail)
            raise PaymentResolutionError() from exc

        amount = parse_money(price)
        return {
            "scheme": "exact",
            "network": self.network,
            "maxAmountRequired": str(usd_to_atomic(amount)),
            "resource": str(request.url),
            "description": self.description,
            "mimeType": self.mime_type,
            "payTo": pay_to,
            "maxTimeoutSeconds": self.max_timeout_seconds,
            "asset": get_usdc_address(self.network),
            "extra": {"name": USDC_NAME, "version": USDC_VERSION, "price": price},
        }

    def _payment_required(self, requirements: Dict[str, Any], error: str) -> JSONResponse:
        return JSONResponse(
            status_code=status.HTTP_402_PAYMENT_REQUIRED,
            content={"x402Version": X402_VERSION, "error": error, "accepts": [requirements]},
        )

    def process(self, request: Request, handler: Callable[[], Response]) -> Response:
        requirements = self.build_requirements(request)

        header = request.headers.get(PAYMENT_HEADER)
        if not header:
            return self._payment_required(requirements, "X-PAYMENT header is required")

        try:
            payment_payload = decode_payment_header(header)
        except ValueError as exc:
            logger.info("[x402] rejected payment header for %s: %s", request.url.path, exc)
            return self._payment_required(requirements, "Invalid or malformed payment header")

        verification = self.verifier.verify(payment_payload, requirements)
        if not verification.is_valid:
            return self._payment_required(requirements, verification.invalid_reason or "Payment verification failed")

        response = handler()
        if response.status_code >= 400:
            # nothing delivered, nothing charged
            return response

        settlement = self.verifier.settle(payment_payload, requirements)
        if not settlement.success:
            logger.warning(
                "[x402] settlement failed for %s: %s", request.url.path, settlement.error_reason
            )
            return self._payment_required(requirements, settlement.error_reason or "Payment settlement failed")

        if self.on_settled is not None:
            self.on_settled(
                SettlementContext(
                    resource=requirements["resource"],
                    success=settlement.success,
                    payer=settlement.payer or verification.payer,
                    transaction=settlement.transaction,
                    network=settlement.network or self.network,
                )
            )

        response.headers[PAYMENT_RESPONSE_HEADER] = encode_payment_response(
            {
                "success": True,
                "transaction": settlement.transaction,
                "network": settlement.network or self.network,
                "payer": settlement.payer or verification.payer,
            }
        )
        return response
