"""
Announcement and coupon creation schemas.
"""
from datetime import datetime
from typing import Literal, Optional
from pydantic import AliasChoices, BaseModel, Field, field_validator


class CreateAnnouncementRequest(BaseModel):
    title: str = Field(..., min_length=1, max_length=200)
    message: str = Field(..., min_length=1, max_length=2000)
    type: Literal["info", "offer", "alert"] = Field(default="info")
    active: bool = Field(default=True, validation_alias=AliasChoices("active", "is_active", "isActive"))


class CreateCouponRequest(BaseModel):
    code: str = Field(..., min_length=1, max_length=50)
    description: Optional[str] = Field(None, max_length=500)
    discount_type: Literal["percentage", "fixed"] = Field(
        default="percentage", validation_alias=AliasChoices("discount_type", "discountType")
    )
    discount_value: float = Field(..., gt=0, validation_alias=AliasChoices("discount_value", "discountValue"))
    min_order_amount: float = Field(
        default=0, ge=0, validation_alias=AliasChoices("min_order_amount", "minOrderAmount")
    )
    expires_at: Optional[datetime] = Field(None, validation_alias=AliasChoices("expires_at", "expiresAt"))
    is_active: bool = Field(default=True, validation_alias=AliasChoices("is_active", "isActive", "active"))

    @field_validator("code")
    @classmethod
    def normalize_code(cls, v):
        return v.strip().upper()
