"""
Payment API schemas for gateway checkout and verification requests.
"""
from typing import Any, Dict, Optional
from pydantic import AliasChoices, BaseModel, Field, field_validator

from .order import to_number


class CreateGatewayOrderRequest(BaseModel):
    """Razorpay checkout order; the amount is in rupees."""
    amount: float = Field(..., description="Amount in rupees")
    currency: str = Field(default="INR", description="ISO currency code")
    receipt: Optional[str] = Field(None, description="Merchant receipt reference")

    @field_validator("amount", mode="before")
    @classmethod
    def validate_amount(cls, v):
        number = to_number(v)
        if number is None or number <= 0:
            raise ValueError("Invalid amount")
        return number


class VerifyPaymentRequest(BaseModel):
    """Razorpay checkout callback fields."""
    razorpay_order_id: str = Field(..., min_length=1)
    razorpay_payment_id: str = Field(..., min_length=1)
    razorpay_signature: str = Field(..., min_length=1)


class CashfreeSessionRequest(BaseModel):
    amount: float = Field(..., description="Amount in rupees")
    currency: str = Field(default="INR")
    customer: Dict[str, Any] = Field(
        default_factory=dict,
        validation_alias=AliasChoices("customer", "customer_details", "customerDetails"),
        description="Customer name, email and phone",
    )
    order_id: Optional[str] = Field(
        None, validation_alias=AliasChoices("order_id", "orderId"), description="Merchant order id"
    )

    @field_validator("amount", mode="before")
    @classmethod
    def validate_amount(cls, v):
        number = to_number(v)
        if number is None or number <= 0:
            raise ValueError("Invalid amount")
        return number


class CashfreeVerifyRequest(BaseModel):
    order_id: str = Field(..., min_length=1, validation_alias=AliasChoices("order_id", "orderId"))
    payment_id: Optional[str] = Field(None, validation_alias=AliasChoices("payment_id", "paymentId"))
