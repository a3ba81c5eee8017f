from typing import List

from fastapi import APIRouter, Depends, Request
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse, Response
from sqlalchemy.orm import Session

from app.db.session import get_db
from app.schemas.coupon import SecretReleaseResponse
from app.services.coupons import CouponPaymentResolver, release_secret
from app.services.facilitator import PaymentVerifier, get_payment_verifier
from app.services.payment_gate import PaymentGate
from app.services.settlement import on_after_settle

router = APIRouter()
group_tags: List[str] = ["secret"]


@router.get(
    "/{coupon_id}",
    tags=group_tags,
    response_model=SecretReleaseResponse,
    responses={402: {"description": "Payment required (x402 requirements in the body)"}},
)
def get_secret(
    coupon_id: str,
    request: Request,
    db: Session = Depends(get_db),
    verifier: PaymentVerifier = Depends(get_payment_verifier),
) -> Response:
    """
    Buy a coupon code.

    Without an X-PAYMENT header: 402 with price and payee (the seller's wallet).
    With a valid payment: the decrypted code, returned once the facilitator
    confirms settlement. The coupon is marked sold by the settlement callback.
    """
    gate = PaymentGate(
        resolver=CouponPaymentResolver(db),
        verifier=verifier,
        on_settled=lambda context: on_after_settle(db, context),
        description="Purchase coupon code",
    )

    def handler() -> Response:
        secret = release_secret(db, coupon_id)
        return JSONResponse(content=jsonable_encoder(SecretReleaseResponse(success=True, coupon=secret)))

    return gate.process(request, handler)
