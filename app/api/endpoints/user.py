from enum import Enum
from typing import List, Union

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.core.dependencies import get_current_user
from app.core.policies import require_owner
from app.db.session import get_db
from app.schemas.coupon import ListedCouponsResponse, PurchasedCouponsResponse
from app.services.coupons import list_listed, list_purchased

router = APIRouter()
group_tags: List[str | Enum] = ["user"]


class CouponListType(str, Enum):
    listed = "listed"
    purchased = "purchased"


"""
"My coupons" dashboard.

api:
- input: address, type (listed | purchased)
- output: coupons

Only the wallet itself may read its dashboard. Purchased coupons carry the
decrypted code: the buyer already paid for it.
"""


@router.get(
    "/coupons",
    tags=group_tags,
    response_model=None,
)
def get_user_coupons(
    address: str = Query(..., description="Wallet address"),
    type: CouponListType = Query(..., description="listed or purchased"),
    wallet_address: str = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> Union[ListedCouponsResponse, PurchasedCouponsResponse]:
    """
    Get the coupons a wallet listed or purchased.

    Query Parameters:
    - address: Wallet address, must be the authenticated wallet
    - type: "listed" (newest first) or "purchased" (most recent purchase first, with codes)
    """
    require_owner(wallet_address, address, "view")

    if type == CouponListType.listed:
        return ListedCouponsResponse(coupons=list_listed(db, address))
    return PurchasedCouponsResponse(coupons=list_purchased(db, address))
