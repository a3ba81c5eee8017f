"""
Authorization policies for owner-managed coupon operations.

Pure checks layered on top of the authenticated wallet address; callers
resolve the subject through dependencies.get_current_user first.
"""

from typing import Optional

from app.core.errors import Conflict, Forbidden
from app.models.coupons import Coupon


def _same_address(a: Optional[str], b: Optional[str]) -> bool:
    if not a or not b:
        return False
    return a.strip().lower() == b.strip().lower()


def require_owner(subject: str, owner_address: Optional[str], action: str = "manage") -> None:
    """The authenticated wallet must own the resource (case-insensitive)."""
    if not _same_address(subject, owner_address):
        raise Forbidden(f"You can only {action} your own coupons")


def require_unsold(coupon: Coupon, action: str = "modify") -> None:
    """Sold coupons are immutable."""
    if coupon.is_sold:
        raise Conflict(f"Cannot {action} a coupon that has already been sold")


def require_self_listing(subject: str, claimed_seller: Optional[str]) -> None:
    """A listing's payout address must be the wallet submitting it."""
    if not _same_address(subject, claimed_seller):
        raise Forbidden("You can only list coupons for your own address")
