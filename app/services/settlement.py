"""
Sale settlement.

on_after_settle() runs once the facilitator has settled a payment for
/secret/{id}. It is the only writer allowed to move a coupon from available
to sold:

    UPDATE coupons
       SET is_sold = true, buyer_address = :payer, purchased_at = now
     WHERE id = :coupon_id AND is_sold = false

Zero affected rows means another settlement won the race; this attempt is
logged and dropped. The buyer sees "sold" on the normal read path.

The callback never raises: the payment has already gone through, so a
failure here must not surface to the buyer as a protocol error.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.chain import find_network_name, get_network_id
from app.models.coupons import Coupon
from app.models.payments import PaymentTransaction
from app.services.coupons import extract_coupon_id
from app.services.payment_gate import SettlementContext
from app.services.users import ensure_user

logger = logging.getLogger(__name__)


@dataclass
class SettlementOutcome:
    sold: bool = False
    coupon_id: Optional[str] = None
    payment_id: Optional[str] = None
    reason: Optional[str] = None


def mark_coupon_sold(db: Session, coupon_id: str, buyer_address: str) -> int:
    """Conditional available -> sold transition; returns the affected row count."""
    result = db.execute(
        update(Coupon)
        .where(Coupon.id == coupon_id, Coupon.is_sold.is_(False))
        .values(
            is_sold=True,
            buyer_address=buyer_address,
            purchased_at=datetime.now(timezone.utc),
        )
        .execution_options(synchronize_session=False)
    )
    return result.rowcount


def settled_network_id(network: Optional[str]) -> str:
    """CAIP-2 id for the network the facilitator reported, the configured one when it is unrecognised"""
    name = find_network_name(network)
    if network and name is None:
        logger.warning("[settle] Unrecognised settlement network %r, recording the configured one", network)
    return get_network_id(name)


def on_after_settle(db: Session, context: SettlementContext) -> SettlementOutcome:
    if not context.success:
        return SettlementOutcome(reason="payment not successful")

    coupon_id = extract_coupon_id(context.resource)
    if not coupon_id:
        logger.error("[settle] Could not extract coupon ID from: %s", context.resource)
        return SettlementOutcome(reason="unknown resource")

    buyer_address = (context.payer or "").strip().lower()
    if not buyer_address:
        logger.error("[settle] Settlement for coupon %s reported no payer (tx %s)", coupon_id, context.transaction)
        return SettlementOutcome(coupon_id=coupon_id, reason="missing payer")

    logger.info("[settle] Payment settled for coupon %s by %s", coupon_id, buyer_address)

    try:
        # buyer_address references users.wallet_address
        ensure_user(db, buyer_address)

        if mark_coupon_sold(db, coupon_id, buyer_address) == 0:
            db.rollback()
            logger.warning("[settle] Coupon may have already been sold: %s (tx %s)", coupon_id, context.transaction)
            return SettlementOutcome(coupon_id=coupon_id, reason="already sold")

        price = db.query(Coupon.price_usd).filter(Coupon.id == coupon_id).scalar()
        payment = PaymentTransaction(
            coupon_id=coupon_id,
            payer_address=buyer_address,
            amount_usd=price,
            transaction_hash=context.transaction,
            network=settled_network_id(context.network),
            status="settled",
        )
        db.add(payment)
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        logger.exception("[settle] Failed to record sale of coupon %s (tx %s)", coupon_id, context.transaction)
        return SettlementOutcome(coupon_id=coupon_id, reason="database error")

    logger.info("[settle] Coupon %s marked as sold to %s", coupon_id, buyer_address)
    return SettlementOutcome(sold=True, coupon_id=coupon_id, payment_id=payment.id)
