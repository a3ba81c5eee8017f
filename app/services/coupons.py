"""
Coupon listing service.

Owner-managed writes (create, edit, delete) go through the authorization
policies; none of them touch the sale fields (is_sold, buyer_address,
purchased_at), which belong to the settlement callback alone.

The secret release path and the buyer's purchased list are the only readers
of code_encrypted.
"""

import logging
import re
from datetime import datetime, timezone
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import or_
from sqlalchemy.orm import Session

from app.core.encryption import decrypt_coupon_code, encrypt_coupon_code
from app.core.errors import Conflict, DataIntegrityViolation, NotFound
from app.core.policies import require_owner, require_self_listing, require_unsold
from app.models.coupons import Coupon
from app.models.payments import PaymentTransaction
from app.schemas.coupon import (
    CouponCreateRequest,
    CouponPublic,
    CouponSecret,
    CouponTransaction,
    CouponUpdateRequest,
    PurchasedCoupon,
)
from app.services.payment_gate import PaymentResolver
from app.services.users import ensure_user

logger = logging.getLogger(__name__)

# secret release resource: /secret/{coupon_id}
_RESOURCE_RE = re.compile(r"/secret/([^/?#]+)")

EDITABLE_FIELDS = ("title", "price_usd", "description", "category", "expiry_date", "terms")
NOT_NULL_FIELDS = ("title", "price_usd", "category")


def extract_coupon_id(resource: str) -> Optional[str]:
    """Coupon id from a release path or full resource URL, None if the format doesn't match."""
    if not resource:
        return None
    match = _RESOURCE_RE.search(resource)
    return match.group(1) if match else None


def format_price(amount: Decimal) -> str:
    return f"${Decimal(amount).quantize(Decimal('0.01'))}"


def get_coupon(db: Session, coupon_id: str) -> Coupon:
    coupon = db.get(Coupon, coupon_id) if coupon_id else None
    if coupon is None:
        raise NotFound()
    return coupon


class CouponPaymentResolver(PaymentResolver):
    """Price and payee for /secret/{id}, read from the listing."""

    def __init__(self, db: Session):
        self.db = db

    def _coupon(self, path: str) -> Coupon:
        coupon_id = extract_coupon_id(path)
        if not coupon_id:
            raise NotFound("Could not extract coupon id from path")
        return get_coupon(self.db, coupon_id)

    def resolve_price(self, path: str) -> str:
        coupon = self._coupon(path)
        price = format_price(coupon.price_usd)
        logger.info("[x402] Price for %s: %s", coupon.id, price)
        return price

    def resolve_pay_to(self, path: str) -> str:
        coupon = self._coupon(path)
        if not coupon.seller_address:
            logger.error("[x402] Seller address missing for coupon %s", coupon.id)
            raise DataIntegrityViolation(f"Seller address missing for coupon {coupon.id}")
        return coupon.seller_address


def release_secret(db: Session, coupon_id: str) -> CouponSecret:
    """
    Decrypt the code for a paid request.

    Re-checks availability at serve time and leaves is_sold alone: the flag
    flips only when settlement is confirmed.
    """
    coupon = get_coupon(db, coupon_id)
    if coupon.is_sold:
        raise Conflict("Coupon already sold")

    code = decrypt_coupon_code(coupon.code_encrypted)
    logger.info("[release] code prepared for coupon %s, awaiting settlement", coupon_id)
    return CouponSecret.from_record(coupon, code=code)


def create_coupon(db: Session, wallet_address: str, body: CouponCreateRequest) -> Coupon:
    require_self_listing(wallet_address, body.seller_address)

    seller = ensure_user(db, body.seller_address)
    coupon = Coupon(
        seller_address=seller,
        title=body.title,
        brand=body.brand,
        category=body.category or "Other",
        currency=body.currency,
        code_encrypted=encrypt_coupon_code(body.code),
        price_usd=Decimal(str(body.price)).quantize(Decimal("0.01")),
        description=body.description or None,
        expiry_date=body.expiry_date,
        terms=body.terms or None,
    )
    db.add(coupon)
    db.commit()
    db.refresh(coupon)
    return coupon


def update_coupon(db: Session, wallet_address: str, coupon_id: str, body: CouponUpdateRequest) -> Coupon:
    coupon = get_coupon(db, coupon_id)
    require_owner(wallet_address, coupon.seller_address, "edit")
    require_unsold(coupon, "edit")

    updates = body.model_dump(exclude_unset=True)
    for name in EDITABLE_FIELDS:
        if name not in updates:
            continue
        value = updates[name]
        if value is None and name in NOT_NULL_FIELDS:
            continue
        if name == "price_usd":
            value = Decimal(str(value)).quantize(Decimal("0.01"))
        setattr(coupon, name, value)
    db.commit()
    db.refresh(coupon)
    return coupon


def delete_coupon(db: Session, wallet_address: str, coupon_id: str) -> None:
    coupon = get_coupon(db, coupon_id)
    require_owner(wallet_address, coupon.seller_address, "delete")
    require_unsold(coupon, "delete")
    db.delete(coupon)
    db.commit()


def get_coupon_detail(db: Session, coupon_id: str) -> CouponPublic:
    coupon = get_coupon(db, coupon_id)
    transaction = None
    if coupon.is_sold:
        record = (
            db.query(PaymentTransaction)
            .filter(
                PaymentTransaction.coupon_id == coupon_id,
                PaymentTransaction.status == "settled",
            )
            .first()
        )
        if record:
            transaction = CouponTransaction.from_record(record)
    return CouponPublic.from_record(coupon, transaction=transaction)


def list_available(
    db: Session,
    limit: int = 50,
    offset: int = 0,
    show_sold: bool = False,
    show_expired: bool = False,
) -> List[CouponPublic]:
    query = db.query(Coupon)
    if not show_sold:
        query = query.filter(Coupon.is_sold.is_(False))
    if not show_expired:
        now = datetime.now(timezone.utc)
        query = query.filter(or_(Coupon.expiry_date.is_(None), Coupon.expiry_date > now))
    coupons = query.order_by(Coupon.created_at.desc()).offset(offset).limit(limit).all()
    return [CouponPublic.from_record(coupon) for coupon in coupons]


def list_listed(db: Session, wallet_address: str) -> List[CouponPublic]:
    coupons = (
        db.query(Coupon)
        .filter(Coupon.seller_address == wallet_address.lower())
        .order_by(Coupon.created_at.desc())
        .all()
    )
    return [CouponPublic.from_record(coupon) for coupon in coupons]


def list_purchased(db: Session, wallet_address: str) -> List[PurchasedCoupon]:
    """Buyer's own purchases, with codes decrypted."""
    coupons = (
        db.query(Coupon)
        .filter(Coupon.buyer_address == wallet_address.lower(), Coupon.is_sold.is_(True))
        .order_by(Coupon.purchased_at.desc())
        .all()
    )
    return [
        PurchasedCoupon.from_record(coupon, code=decrypt_coupon_code(coupon.code_encrypted))
        for coupon in coupons
    ]
