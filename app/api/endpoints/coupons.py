from typing import List

from fastapi import Depends, APIRouter, HTTPException, Query, status
from sqlalchemy.orm import Session

from app.core.dependencies import get_current_user
from app.core.policies import require_self_listing
from app.db.session import get_db
from app.schemas.coupon import (
    CouponCreateRequest,
    CouponCreateResponse,
    CouponListResponse,
    CouponPublic,
    CouponUpdateRequest,
)
from app.schemas.my_base_model import Message
from app.services import coupons as coupon_service

router = APIRouter()
group_tags: List[str] = ["coupons"]


@router.get(
    "",
    tags=group_tags,
    response_model=CouponListResponse,
)
def list_coupons(
    limit: int = Query(default=50, ge=1, le=100, description="Maximum number of coupons to return, default: 50, max: 100"),
    offset: int = Query(default=0, ge=0, description="Number of coupons to skip for pagination, default: 0"),
    show_sold: bool = Query(default=False, description="Include sold coupons"),
    show_expired: bool = Query(default=False, description="Include expired coupons"),
    db: Session = Depends(get_db),
) -> CouponListResponse:
    """
    List coupons, newest first. Sold and expired coupons are hidden unless requested.
    """
    coupons = coupon_service.list_available(db, limit, offset, show_sold, show_expired)
    return CouponListResponse(coupons=coupons, limit=limit, offset=offset)


@router.post(
    "",
    tags=group_tags,
    response_model=CouponCreateResponse,
    status_code=status.HTTP_201_CREATED,
)
def create_coupon(
    body: CouponCreateRequest,
    wallet_address: str = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> CouponCreateResponse:
    """
    List a new coupon. The seller address must be the authenticated wallet;
    the code is encrypted before it is stored.
    """
    require_self_listing(wallet_address, body.seller_address)
    missing = body.missing_fields()
    if missing:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"Missing required fields: {', '.join(missing)}")
    if body.price < 0:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Price cannot be negative")

    coupon = coupon_service.create_coupon(db, wallet_address, body)
    return CouponCreateResponse(success=True, coupon=CouponPublic.from_record(coupon))


@router.get(
    "/{coupon_id}",
    tags=group_tags,
    response_model=CouponPublic,
)
def get_coupon(coupon_id: str, db: Session = Depends(get_db)) -> CouponPublic:
    """Public coupon details (never the code). Sold coupons include the settlement transaction."""
    return coupon_service.get_coupon_detail(db, coupon_id)


@router.put(
    "/{coupon_id}",
    tags=group_tags,
    response_model=CouponPublic,
)
def update_coupon(
    coupon_id: str,
    body: CouponUpdateRequest,
    wallet_address: str = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> CouponPublic:
    """Edit an unsold coupon you own."""
    coupon = coupon_service.update_coupon(db, wallet_address, coupon_id, body)
    return CouponPublic.from_record(coupon)


@router.delete(
    "/{coupon_id}",
    tags=group_tags,
    response_model=Message,
)
def delete_coupon(
    coupon_id: str,
    wallet_address: str = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> Message:
    """Delete an unsold coupon you own."""
    coupon_service.delete_coupon(db, wallet_address, coupon_id)
    return Message(message="deleted")
