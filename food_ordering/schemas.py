"""
Pydantic Schemas for Request/Response Validation

Wire format is camelCase (``orderNumber``, ``deliveryFee``); Python code
and the stored JSON documents use snake_case. Every model accepts both.

All responses are wrapped in ``ApiResponse``:
    {"success": bool, "message": str, "data": ..., "error": ...}
"""

import re
from datetime import datetime
from typing import Any, Generic, List, Optional, TypeVar, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from food_ordering.models import OrderStatus, PaymentMethod, PaymentStatus

T = TypeVar("T")

# Values allowed in an item's customizations map
CustomizationValue = Union[bool, int, float, str]


class CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
        str_strip_whitespace=True,
    )


# =============================================================================
# ORDER DOCUMENT PARTS (request and response)
# =============================================================================

class OrderItem(CamelModel):
    """Single line item, copied by value into the order."""
    menu_item_id: str = Field(..., min_length=1, examples=["64f1c0ffee"])
    name: str = Field(..., min_length=1, max_length=100, examples=["Jollof Rice"])
    price: float = Field(..., ge=0, examples=[3500])
    quantity: int = Field(..., ge=1, examples=[1])
    customizations: dict[str, CustomizationValue] = Field(default_factory=dict)

    @property
    def line_total(self) -> float:
        return round(self.price * self.quantity, 2)


class Pricing(CamelModel):
    subtotal: float = Field(..., ge=0)
    delivery_fee: float = Field(..., ge=0)
    service_fee: float = Field(..., ge=0)
    tax: float = Field(..., ge=0)
    total: float = Field(..., ge=0)

    @property
    def computed_total(self) -> float:
        return round(self.subtotal + self.delivery_fee + self.service_fee + self.tax, 2)


class Coordinates(CamelModel):
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)


class DeliveryAddress(CamelModel):
    name: str = Field(..., min_length=1, max_length=100)
    street: str = Field(..., min_length=1, max_length=255)
    city: str = Field(..., min_length=1, max_length=100)
    state: str = Field(..., min_length=1, max_length=100)
    zip_code: Optional[str] = Field(None, max_length=20)
    coordinates: Optional[Coordinates] = None
    instructions: Optional[str] = Field(None, max_length=500)


# =============================================================================
# REQUEST SCHEMAS
# =============================================================================

class OrderCreate(CamelModel):
    """Request schema for placing an order."""
    restaurant_id: int = Field(..., ge=1)
    items: List[OrderItem] = Field(..., min_length=1)
    delivery_address: DeliveryAddress
    pricing: Pricing
    special_instructions: Optional[str] = Field(None, max_length=500)


class StatusUpdate(CamelModel):
    status: OrderStatus
    note: Optional[str] = Field(None, max_length=500)


class PaymentUpdate(CamelModel):
    payment_reference: str = Field(..., min_length=1, max_length=100)
    status: PaymentStatus

    @field_validator("status")
    @classmethod
    def validate_status(cls, v: PaymentStatus) -> PaymentStatus:
        if v == PaymentStatus.REFUNDED:
            raise ValueError("Invalid payment status")
        return v


class BankTransferRequest(CamelModel):
    order_number: str = Field(..., min_length=1, max_length=40)
    amount: float = Field(..., ge=0)
    reference: str = Field(..., min_length=1, max_length=100)
    bank_account: str = Field(..., min_length=1, max_length=64)
    customer_email: Optional[str] = Field(None, examples=["ada@example.com"])

    @field_validator("customer_email")
    @classmethod
    def validate_email(cls, v: Optional[str]) -> Optional[str]:
        if v is None or v == "":
            return None
        if not re.match(r'^[\w\.+-]+@[\w\.-]+\.\w+$', v):
            raise ValueError("Valid customer email is required")
        return v.lower()


class PaymentConfirmRequest(CamelModel):
    order_id: int = Field(..., ge=1)


# =============================================================================
# RESPONSE SCHEMAS
# =============================================================================

class TimelineEntry(CamelModel):
    status: str
    timestamp: datetime
    note: Optional[str] = None
    updated_by: Optional[str] = None


class BankTransfer(CamelModel):
    amount: float
    reference: str
    confirmed: bool = False
    transfer_date: datetime
    confirmation_date: Optional[datetime] = None
    confirmed_by: Optional[str] = None


class Payment(CamelModel):
    method: PaymentMethod = PaymentMethod.BANK_TRANSFER
    status: PaymentStatus = PaymentStatus.PENDING
    reference: Optional[str] = None
    bank_transfer: Optional[BankTransfer] = None


class OrderResponse(CamelModel):
    """Full order document."""
    id: int
    order_number: str
    customer_id: str
    restaurant_id: int
    items: List[OrderItem]
    pricing: Pricing
    delivery_address: DeliveryAddress
    payment: Payment
    status: OrderStatus
    special_instructions: Optional[str] = None
    timeline: List[TimelineEntry]
    estimated_delivery_time: Optional[datetime] = None
    actual_delivery_time: Optional[datetime] = None
    cancel_reason: Optional[str] = None
    created_at: datetime
    updated_at: Optional[datetime] = None


class OrderData(CamelModel):
    order: OrderResponse


class PaginationInfo(CamelModel):
    page: int
    limit: int
    total: int
    total_pages: int
    has_next: bool
    has_prev: bool


class OrderListData(CamelModel):
    orders: List[OrderResponse]
    pagination: PaginationInfo


class BankTransferReceipt(CamelModel):
    reference: str
    order_number: str
    amount: float
    customer_email: Optional[str] = None


class MenuItem(CamelModel):
    id: str
    name: str
    description: Optional[str] = None
    price: float
    category: str
    is_available: bool = True
    preparation_time: int = 15


class RestaurantSummary(CamelModel):
    """List view of a restaurant, without its menu."""
    id: int
    name: str
    slug: str
    description: Optional[str] = None
    cuisine: List[str]
    operating_hours: dict[str, Any]
    is_active: bool


class RestaurantResponse(RestaurantSummary):
    menu: List[MenuItem]


class RestaurantData(CamelModel):
    restaurant: RestaurantResponse


class RestaurantListData(CamelModel):
    restaurants: List[RestaurantSummary]
    pagination: PaginationInfo


class DashboardStats(CamelModel):
    total_orders: int
    total_restaurants: int
    total_revenue: float


class DashboardData(CamelModel):
    stats: DashboardStats
    recent_orders: List[OrderResponse]


class ApiResponse(CamelModel, Generic[T]):
    """Standard response envelope."""
    success: bool = True
    message: str = ""
    data: Optional[T] = None
    error: Optional[str] = None


class ErrorResponse(CamelModel):
    """Standard error response."""
    success: bool = False
    message: str
    error: Optional[str] = None
    errors: Optional[List[dict[str, Any]]] = None


class HealthResponse(CamelModel):
    """Health check response."""
    status: str
    database: str
    environment: str
    timestamp: datetime
