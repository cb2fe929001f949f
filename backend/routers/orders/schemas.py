from pydantic import BaseModel, Field
from typing import Optional, List, Dict, Any
from datetime import datetime
from enum import Enum


class OrderStatus(str, Enum):
    DRAFT = "draft"
    PENDING = "pending"
    QUOTED = "quoted"
    CONFIRMED = "confirmed"
    PROCESSING = "processing"
    PACKED = "packed"
    SHIPPED = "shipped"
    IN_TRANSIT = "in_transit"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"
    RETURNED = "returned"


class OrderPriority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


class PaymentStatus(str, Enum):
    PENDING = "pending"
    ADVANCE_PAID = "advance_paid"
    PARTIALLY_PAID = "partially_paid"
    PAID = "paid"
    REFUNDED = "refunded"


class ItemUnit(str, Enum):
    KG = "kg"
    G = "g"
    L = "l"
    ML = "ml"
    PIECES = "pieces"
    PACKETS = "packets"


class ItemQuality(str, Enum):
    PREMIUM = "premium"
    STANDARD = "standard"
    ECONOMY = "economy"


class OrderItemCreate(BaseModel):
    name: str = Field(min_length=1, max_length=100)
    description: Optional[str] = None
    category: str = Field(min_length=1, max_length=50)
    quantity: float = Field(ge=0.1, le=10000)
    unit: ItemUnit
    quality: ItemQuality = ItemQuality.STANDARD
    estimated_price: float = Field(ge=0, le=100000, description="Price per unit")
    is_substitutable: bool = True
    brand: Optional[str] = None
    specifications: Optional[Dict[str, Any]] = None

    class Config:
        use_enum_values = True
        validate_default = True


class OrderCreate(BaseModel):
    order_id: Optional[str] = Field(
        default=None, min_length=8, max_length=64,
        description="Client-assigned id; retrying with the same id never creates a second order"
    )
    group_id: str
    group_name: Optional[str] = None
    items: List[OrderItemCreate] = Field(min_length=1)
    priority: OrderPriority = OrderPriority.MEDIUM
    delivery_date: Optional[datetime] = None
    delivery_location: str = Field(min_length=1, max_length=200)
    delivery_address: Optional[str] = None
    delivery_instructions: Optional[str] = None
    notes: Optional[str] = Field(default=None, max_length=1000)
    is_urgent: bool = False
    requires_approval: bool = False
    tags: List[str] = []

    class Config:
        use_enum_values = True
        validate_default = True


class StatusUpdateOptions(BaseModel):
    note: Optional[str] = Field(default=None, max_length=1000)
    attachments: List[str] = []
    location: Optional[str] = None
    estimated_time: Optional[datetime] = None
    quoted_amount: Optional[float] = Field(default=None, ge=0)
    final_amount: Optional[float] = Field(default=None, ge=0)
    cost: Optional[float] = Field(default=None, ge=0)
    is_public: bool = True


class OrderStatusUpdate(StatusUpdateOptions):
    status: OrderStatus

    class Config:
        use_enum_values = True


class OrderFilters(BaseModel):
    user_id: Optional[str] = None
    role: Optional[str] = None
    status: Optional[OrderStatus] = None
    group_id: Optional[str] = None
    unassigned: bool = False
    limit: int = Field(default=20, ge=1, le=100)
    offset: int = Field(default=0, ge=0)

    class Config:
        use_enum_values = True


class OrderItemResponse(BaseModel):
    id: str
    name: str
    description: Optional[str] = None
    category: str
    quantity: float
    unit: str
    quality: str
    estimated_price: float
    quoted_price: Optional[float] = None
    final_price: Optional[float] = None
    is_substitutable: bool
    brand: Optional[str] = None
    specifications: Optional[Dict[str, Any]] = None


class TimelineEntryResponse(BaseModel):
    id: str
    status: str
    timestamp: datetime
    note: Optional[str] = None
    updated_by: str
    updated_by_name: str
    updated_by_role: str
    attachments: List[str] = []
    location: Optional[str] = None
    estimated_time: Optional[datetime] = None
    cost: Optional[float] = None
    is_public: bool = True
    notification_sent: bool = False


class OrderResponse(BaseModel):
    id: str
    order_number: str
    group_id: str
    group_name: Optional[str] = None
    vendor_id: str
    vendor_name: str
    vendor_phone: Optional[str] = None
    supplier_id: Optional[str] = None
    supplier_name: Optional[str] = None
    supplier_phone: Optional[str] = None
    items: List[OrderItemResponse]
    status: str
    priority: str
    total_amount: float
    quoted_amount: Optional[float] = None
    final_amount: Optional[float] = None
    delivery_date: Optional[datetime] = None
    delivery_location: str
    delivery_address: Optional[str] = None
    delivery_instructions: Optional[str] = None
    actual_delivery_time: Optional[datetime] = None
    notes: Optional[str] = None
    payment_status: str
    is_urgent: bool = False
    requires_approval: bool = False
    tags: List[str] = []
    attachments: List[str] = []
    timeline: List[TimelineEntryResponse]
    created_at: datetime
    updated_at: datetime


class OrderListResponse(BaseModel):
    orders: List[OrderResponse]
    page: int
    limit: int
    total: int
    has_more: bool
