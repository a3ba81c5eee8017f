from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from app.schemas.my_base_model import CustomBaseModel


class CouponCreateRequest(BaseModel):
    """Request model for a new listing - presence of required fields is checked by the endpoint"""

    model_config = ConfigDict(populate_by_name=True)

    seller_address: Optional[str] = Field(None, alias="sellerAddress")
    title: Optional[str] = None
    brand: Optional[str] = None
    category: Optional[str] = None
    currency: Optional[str] = None
    code: Optional[str] = None
    price: Optional[float] = Field(None, allow_inf_nan=False)
    description: Optional[str] = None
    expiry_date: Optional[datetime] = Field(None, alias="expiryDate")
    terms: Optional[str] = None

    def missing_fields(self) -> List[str]:
        missing = []
        for name, alias in (
            ("seller_address", "sellerAddress"),
            ("title", "title"),
            ("brand", "brand"),
            ("code", "code"),
        ):
            if not getattr(self, name):
                missing.append(alias)
        if self.price is None or self.price != self.price:  # NaN
            missing.append("price")
        if not self.currency:
            missing.append("currency")
        return missing


class CouponUpdateRequest(BaseModel):
    """Whitelisted editable fields; sale fields are not accepted here"""

    title: Optional[str] = None
    price_usd: Optional[float] = Field(None, ge=0, allow_inf_nan=False)
    description: Optional[str] = None
    category: Optional[str] = None
    expiry_date: Optional[datetime] = None
    terms: Optional[str] = None

    @field_validator("title", "price_usd", "category")
    @classmethod
    def _not_null(cls, value):
        # these columns are NOT NULL; omit the field to leave it unchanged
        if value is None:
            raise ValueError("may be omitted but not null")
        return value


class CouponTransaction(CustomBaseModel):
    transaction_hash: Optional[str] = None
    network: str = ""


class CouponPublic(CustomBaseModel):
    """Listing as shown to anyone - never carries the code"""

    id: str = ""
    seller_address: str = ""
    title: str = ""
    brand: str = ""
    category: str = ""
    currency: str = ""
    price_usd: float = 0.0
    description: Optional[str] = None
    terms: Optional[str] = None
    expiry_date: Optional[datetime] = None
    status: str = ""  # unverified, verified, invalid
    sale_status: str = ""  # available, sold
    is_sold: bool = False
    buyer_address: Optional[str] = None
    created_at: Optional[datetime] = None
    transaction: Optional[CouponTransaction] = None


class CouponListResponse(CustomBaseModel):
    coupons: List[CouponPublic] = Field(default_factory=list)
    limit: int = 50
    offset: int = 0


class CouponCreateResponse(CustomBaseModel):
    success: bool = True
    coupon: CouponPublic


class CouponSecret(CustomBaseModel):
    """Released after payment: the decrypted code"""

    id: str = ""
    title: str = ""
    brand: str = ""
    code: str = ""
    description: Optional[str] = None
    terms: Optional[str] = None
    expiry_date: Optional[datetime] = None


class SecretReleaseResponse(CustomBaseModel):
    success: bool = True
    coupon: CouponSecret


class PurchasedCoupon(CouponSecret):
    category: str = ""
    price_usd: float = 0.0
    purchased_at: Optional[datetime] = None


class ListedCouponsResponse(CustomBaseModel):
    coupons: List[CouponPublic] = Field(default_factory=list)


class PurchasedCouponsResponse(CustomBaseModel):
    coupons: List[PurchasedCoupon] = Field(default_factory=list)
