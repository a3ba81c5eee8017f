"""
Error taxonomy for the marketplace.

Every error carries the HTTP status it surfaces as. Client errors (4xx) keep
their message; internal errors (5xx) are logged with context and answered
with an opaque body so no secret material leaks to the caller.
"""

import logging

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class ConfigurationError(RuntimeError):
    """Fatal misconfiguration (missing or too-short secrets)."""


class MarketplaceError(Exception):
    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_detail: str = "Internal server error"

    def __init__(self, detail: str | None = None):
        self.detail = detail or self.default_detail
        super().__init__(self.detail)

    @property
    def is_internal(self) -> bool:
        return self.status_code >= 500


class MalformedMessage(MarketplaceError):
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = "Invalid sign-in message format"


class NonceInvalidOrExpired(MarketplaceError):
    status_code = status.HTTP_401_UNAUTHORIZED
    default_detail = "Invalid or expired nonce"


class DomainMismatch(MarketplaceError):
    status_code = status.HTTP_401_UNAUTHORIZED
    default_detail = "Domain mismatch"


class InvalidSignature(MarketplaceError):
    status_code = status.HTTP_401_UNAUTHORIZED
    default_detail = "Invalid signature"


class Unauthenticated(MarketplaceError):
    status_code = status.HTTP_401_UNAUTHORIZED
    default_detail = "Not authenticated"


class Forbidden(MarketplaceError):
    status_code = status.HTTP_403_FORBIDDEN
    default_detail = "Forbidden"


class NotFound(MarketplaceError):
    status_code = status.HTTP_404_NOT_FOUND
    default_detail = "Coupon not found"


class Conflict(MarketplaceError):
    status_code = status.HTTP_409_CONFLICT
    default_detail = "Coupon has already been sold"


class TamperedOrCorrupt(MarketplaceError):
    default_detail = "Encrypted value is tampered or corrupt"


class DataIntegrityViolation(MarketplaceError):
    default_detail = "Listing data is inconsistent"


class PaymentResolutionError(MarketplaceError):
    default_detail = "Could not resolve payment requirements"


class UpstreamVerificationFailure(MarketplaceError):
    status_code = status.HTTP_502_BAD_GATEWAY
    default_detail = "Payment verification unavailable"


async def _marketplace_error_handler(request: Request, exc: MarketplaceError) -> JSONResponse:
    if exc.is_internal:
        logger.error(
            "%s on %s %s: %s",
            type(exc).__name__,
            request.method,
            request.url.path,
            exc.detail,
        )
        detail = "Internal server error"
        if isinstance(exc, UpstreamVerificationFailure):
            detail = exc.default_detail
        return JSONResponse(status_code=exc.status_code, content={"detail": detail})
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail})


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(MarketplaceError, _marketplace_error_handler)
