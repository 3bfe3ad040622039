"""
Order API schemas for request validation.
Each request model is the typed command handed to the order service: loosely
typed client input is coerced here and malformed input never gets further.
"""
import math
from typing import Any, List, Literal, Optional
from pydantic import AliasChoices, BaseModel, Field, field_validator, model_validator
from bson import ObjectId

from ..models.order import OrderStatus, PaymentMethod

ADDRESS_FIELDS = ("name", "phone", "address", "city", "state", "pincode")

# Payment ids gateways substitute into redirect URLs before the real id is known
PLACEHOLDER_PAYMENT_IDS = ("{payment_id}", "placeholder")

PAYMENT_METHOD_ALIASES = {
    "cod": PaymentMethod.COD,
    "online": PaymentMethod.ONLINE,
    "card": PaymentMethod.ONLINE,
    "upi": PaymentMethod.ONLINE,
}


def to_number(value: Any) -> Optional[float]:
    """Loose numeric coercion; returns None for anything that isn't a finite number."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        try:
            number = float(value.strip())
        except ValueError:
            return None
    else:
        return None
    if math.isnan(number) or math.isinf(number):
        return None
    return number


def _money(value: Any) -> float:
    number = to_number(value)
    if number is None:
        return 0.0
    if number < 0:
        raise ValueError("Amount cannot be negative")
    return number


# Request Schemas

class OrderItemRequest(BaseModel):
    """One checkout line."""
    product_id: str = Field(
        ...,
        validation_alias=AliasChoices("product_id", "product", "productId"),
        description="Product ID",
    )
    name: str = Field("Product", description="Product name shown on the order")
    quantity: int = Field(1, description="Quantity ordered; non-numeric values count as 1")
    price: float = Field(0, description="Unit price")
    selected_price: float = Field(
        0,
        validation_alias=AliasChoices("selected_price", "selectedPrice"),
        description="Price of the selected variant",
    )
    size: Optional[str] = None
    image: Optional[str] = None

    @field_validator("product_id", mode="before")
    @classmethod
    def validate_product_id(cls, v):
        if v is None or not ObjectId.is_valid(str(v)):
            raise ValueError("Invalid product ID format")
        return str(v)

    @field_validator("name", mode="before")
    @classmethod
    def default_name(cls, v):
        return v or "Product"

    @field_validator("quantity", mode="before")
    @classmethod
    def coerce_quantity(cls, v):
        number = to_number(v)
        if not number:
            return 1
        if number < 0 or number != int(number):
            raise ValueError("Quantity must be a positive whole number")
        return int(number)

    @field_validator("price", "selected_price", mode="before")
    @classmethod
    def coerce_price(cls, v):
        return _money(v)

    @model_validator(mode="after")
    def fill_prices(self):
        if not self.price:
            self.price = self.selected_price
        if not self.selected_price:
            self.selected_price = self.price
        return self


class ShippingAddressRequest(BaseModel):
    """Delivery address; every field must be present and non-blank."""
    type: Literal["home", "work", "other"] = "home"
    name: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    pincode: Optional[str] = None

    @field_validator("type", mode="before")
    @classmethod
    def default_type(cls, v):
        return v or "home"

    @model_validator(mode="after")
    def require_complete_address(self):
        missing = [field for field in ADDRESS_FIELDS if not (getattr(self, field) or "").strip()]
        if missing:
            raise ValueError(
                "Complete shipping address is required "
                f"(name, phone, address, city, state, pincode); missing: {', '.join(missing)}"
            )
        return self


class RazorpayRefRequest(BaseModel):
    order_id: Optional[str] = None
    payment_id: Optional[str] = None
    signature: Optional[str] = None


class CashfreeRefRequest(BaseModel):
    order_id: Optional[str] = None
    payment_id: Optional[str] = None
    payment_session_id: Optional[str] = None


class CouponRequest(BaseModel):
    code: str
    discount: float = 0


class CreateOrderRequest(BaseModel):
    """Checkout command."""
    order_items: List[OrderItemRequest] = Field(
        ...,
        min_length=1,
        validation_alias=AliasChoices("order_items", "items"),
        description="Items in the order",
    )
    shipping_address: ShippingAddressRequest
    payment_method: PaymentMethod = Field(..., description="cod or online (card/upi are aliases of online)")
    items_price: float = 0
    shipping_price: float = 0
    discount_price: float = 0
    total_price: float = 0
    coupon: Optional[CouponRequest] = None
    razorpay: Optional[RazorpayRefRequest] = None
    cashfree: Optional[CashfreeRefRequest] = None
    payment_gateway: Optional[Literal["razorpay", "cashfree"]] = None

    @field_validator("payment_method", mode="before")
    @classmethod
    def normalize_payment_method(cls, v):
        method = PAYMENT_METHOD_ALIASES.get(str(v).strip().lower()) if v else None
        if method is None:
            raise ValueError(f"Invalid payment method. Must be one of: {sorted(PAYMENT_METHOD_ALIASES)}")
        return method

    @field_validator("items_price", "shipping_price", "discount_price", "total_price", mode="before")
    @classmethod
    def coerce_money(cls, v):
        return _money(v)

    def gateway_payment_id(self) -> Optional[str]:
        """Payment id confirmed by a gateway, ignoring redirect placeholders."""
        for ref in (self.razorpay, self.cashfree):
            if ref is not None and ref.payment_id and ref.payment_id not in PLACEHOLDER_PAYMENT_IDS:
                return ref.payment_id
        return None


class CancelOrderRequest(BaseModel):
    reason: Optional[str] = Field(None, description="Why the customer wants to cancel")


class UpdateOrderStatusRequest(BaseModel):
    """Admin status transition."""
    order_status: OrderStatus = Field(
        ...,
        validation_alias=AliasChoices("order_status", "status"),
        description="New order status",
    )

    @field_validator("order_status", mode="before")
    @classmethod
    def lower_status(cls, v):
        return v.strip().lower() if isinstance(v, str) else v


class CancellationDecisionRequest(BaseModel):
    """Admin decision on a cancellation request."""
    action: Literal["approve", "reject"]
    rejection_reason: Optional[str] = Field(
        None,
        validation_alias=AliasChoices("rejection_reason", "reason_for_rejection"),
    )


class ConfirmCODRequest(BaseModel):
    confirmed_amount: Optional[float] = Field(None, description="Cash actually collected")
