from pydantic import BaseModel, Field
from typing import Optional, List
from datetime import datetime
from enum import Enum


class SurplusStatus(str, Enum):
    AVAILABLE = "available"
    RESERVED = "reserved"
    PARTIALLY_SOLD = "partially_sold"
    SOLD = "sold"
    EXPIRED = "expired"
    WITHDRAWN = "withdrawn"


class SurplusUnit(str, Enum):
    KG = "kg"
    G = "g"
    L = "l"
    ML = "ml"
    PIECES = "pieces"
    PACKETS = "packets"


class SurplusQuality(str, Enum):
    PREMIUM = "premium"
    STANDARD = "standard"
    ECONOMY = "economy"


class SurplusItemCreate(BaseModel):
    name: str = Field(min_length=1, max_length=100)
    description: Optional[str] = Field(default=None, max_length=300)
    category: str = Field(min_length=1, max_length=50)
    quality: SurplusQuality = SurplusQuality.STANDARD
    quantity: float = Field(ge=0.1, le=1000)
    unit: SurplusUnit
    price: float = Field(ge=0, le=10000, description="Price per unit")
    original_price: Optional[float] = Field(default=None, gt=0, le=10000)
    min_quantity: Optional[float] = Field(default=None, gt=0)
    max_quantity: Optional[float] = Field(default=None, gt=0)
    expiry_date: datetime
    location: str = Field(min_length=5, max_length=200)
    address: Optional[str] = None
    pickup_instructions: Optional[str] = None
    tags: List[str] = []
    reason_for_surplus: Optional[str] = None
    is_negotiable: bool = True
    delivery_available: bool = False
    delivery_charge: float = Field(default=0, ge=0)
    payment_methods: List[str] = ["cash", "upi"]

    class Config:
        use_enum_values = True
        validate_default = True


class ReservationRequest(BaseModel):
    quantity: float
    hold_minutes: int = Field(default=30, ge=1, le=24 * 60)


class SurplusFilters(BaseModel):
    location: Optional[str] = None
    category: Optional[str] = None
    status: Optional[SurplusStatus] = None
    vendor_id: Optional[str] = None
    min_price: Optional[float] = Field(default=None, ge=0)
    max_price: Optional[float] = Field(default=None, ge=0)
    expiring_within_days: Optional[int] = Field(default=None, ge=1)
    limit: int = Field(default=20, ge=1, le=100)
    offset: int = Field(default=0, ge=0)

    class Config:
        use_enum_values = True


class ReservationResponse(BaseModel):
    id: str
    buyer_id: str
    buyer_name: str
    quantity: float
    reserved_at: datetime
    expires_at: datetime


class SurplusItemResponse(BaseModel):
    id: str
    vendor_id: str
    vendor_name: str
    vendor_phone: Optional[str] = None
    vendor_location: Optional[str] = None
    name: str
    description: Optional[str] = None
    category: str
    quality: str
    unit: str
    quantity: float
    original_quantity: float
    remaining_quantity: float
    price: float
    original_price: float
    discount_percentage: int
    min_quantity: float
    max_quantity: float
    location: str
    address: Optional[str] = None
    pickup_instructions: Optional[str] = None
    images: List[str] = []
    status: str
    reservations: List[ReservationResponse] = []
    interested_buyers: List[str] = []
    tags: List[str] = []
    reason_for_surplus: Optional[str] = None
    is_negotiable: bool = True
    delivery_available: bool = False
    delivery_charge: float = 0
    delivery_radius: float = 5
    payment_methods: List[str] = []
    expiry_date: datetime
    expires_at: datetime
    created_at: datetime
    updated_at: datetime


class SurplusListResponse(BaseModel):
    items: List[SurplusItemResponse]
    page: int
    limit: int
    total: int
    has_more: bool


class ExpireSweepResponse(BaseModel):
    message: str
    expired: int
