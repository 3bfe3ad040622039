"""
Order data models for database documents.
These represent the actual structure of documents stored in MongoDB.
"""
from enum import Enum
from typing import List, Optional
from datetime import datetime
from pydantic import BaseModel, ConfigDict, Field
from bson import ObjectId


class PaymentMethod(str, Enum):
    COD = "cod"
    ONLINE = "online"


class PaymentStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"
    REFUNDED = "refunded"


class OrderStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    PROCESSING = "processing"
    SHIPPED = "shipped"
    OUT_FOR_DELIVERY = "out-for-delivery"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


class CancellationStatus(str, Enum):
    NONE = "none"
    REQUESTED = "requested"
    APPROVED = "approved"
    REJECTED = "rejected"


class RevenueStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    EARNED = "earned"


class RefundStatus(str, Enum):
    NONE = "none"
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    PROCESSED = "processed"
    COMPLETED = "completed"


class PaymentGateway(str, Enum):
    RAZORPAY = "razorpay"
    CASHFREE = "cashfree"


# Self-service cancellation is closed once an order reaches one of these
NON_CANCELLABLE_STATUSES = (
    OrderStatus.SHIPPED, OrderStatus.OUT_FOR_DELIVERY, OrderStatus.DELIVERED, OrderStatus.CANCELLED
)

# A refund in one of these states is final
FINAL_REFUND_STATUSES = (RefundStatus.PROCESSED, RefundStatus.COMPLETED)


class OrderItemDocument(BaseModel):
    """Order item snapshot; immutable once the order is created."""
    product: ObjectId = Field(..., description="Product reference")
    name: str = Field(..., description="Product name at time of order")
    quantity: int = Field(..., ge=1, description="Quantity ordered")
    price: float = Field(..., ge=0, description="Unit price at time of order")
    selected_price: float = Field(..., ge=0, description="Price of the selected size/variant")
    size: Optional[str] = Field(None, description="Selected size")
    image: Optional[str] = Field(None, description="Image URL at time of order")

    model_config = ConfigDict(arbitrary_types_allowed=True)


class ShippingAddress(BaseModel):
    """Denormalized delivery address captured at order time."""
    type: str = Field(default="home", description="Address label: home, work or other")
    name: str = Field(..., description="Recipient name")
    phone: str = Field(..., description="Recipient phone")
    address: str = Field(..., description="Street address")
    city: str = Field(..., description="City")
    state: str = Field(..., description="State/Province")
    pincode: str = Field(..., description="Postal code")


class TrackingMilestone(BaseModel):
    """A single entry of the customer-facing shipment checklist."""
    status: str = Field(..., description="Milestone name")
    date: Optional[datetime] = Field(None, description="When the milestone was reached")
    description: str = Field(..., description="Customer-facing description")
    completed: bool = Field(default=False, description="Whether the milestone was reached")


class RazorpayRef(BaseModel):
    order_id: Optional[str] = None
    payment_id: Optional[str] = None
    signature: Optional[str] = None


class CashfreeRef(BaseModel):
    order_id: Optional[str] = None
    payment_id: Optional[str] = None
    payment_session_id: Optional[str] = None


class CouponSnapshot(BaseModel):
    code: str
    discount: float = 0


class OrderDocument(BaseModel):
    """
    Order document model representing the MongoDB document structure.
    This matches how orders are stored in the database.
    """
    user_id: ObjectId = Field(..., description="User who placed the order")
    order_number: str = Field(..., description="Customer-facing order number")
    tracking_number: str = Field(..., description="Shipment tracking number")
    order_items: List[OrderItemDocument] = Field(..., min_length=1, description="Order items")
    shipping_address: ShippingAddress

    payment_method: PaymentMethod
    payment_status: PaymentStatus = PaymentStatus.PENDING
    order_status: OrderStatus = OrderStatus.PENDING
    tracking_history: List[TrackingMilestone] = Field(default_factory=list)

    cancellation_status: CancellationStatus = CancellationStatus.NONE
    cancellation_reason: Optional[str] = None
    cancellation_rejection_reason: Optional[str] = None
    cancelled_at: Optional[datetime] = None
    cancellation_approved_by: Optional[str] = None
    stock_restored: bool = False

    items_price: float = Field(default=0, ge=0)
    shipping_price: float = Field(default=0, ge=0)
    discount_price: float = Field(default=0, ge=0)
    total_price: float = Field(default=0, ge=0)
    coupon: Optional[CouponSnapshot] = None

    revenue_status: RevenueStatus = RevenueStatus.PENDING
    revenue_amount: Optional[float] = None
    refund_status: RefundStatus = RefundStatus.NONE
    refund_amount: float = 0
    refund_processed_at: Optional[datetime] = None
    refund_processed_by: Optional[str] = None
    cod_confirmed_at: Optional[datetime] = None
    cod_confirmed_by: Optional[str] = None

    razorpay: Optional[RazorpayRef] = None
    cashfree: Optional[CashfreeRef] = None
    payment_gateway: PaymentGateway = PaymentGateway.RAZORPAY

    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(arbitrary_types_allowed=True, use_enum_values=True, validate_default=True)

    def to_mongo(self) -> dict:
        """Plain dict ready for insert_one (enums as their string values)."""
        return self.model_dump(mode="python")
