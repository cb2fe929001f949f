from pydantic import BaseModel, Field
from typing import Optional, List, Dict
from datetime import datetime
from enum import Enum


class GroupCategory(str, Enum):
    VEGETABLES = "vegetables"
    SPICES = "spices"
    OIL = "oil"
    GRAINS = "grains"
    DAIRY = "dairy"
    MIXED = "mixed"


class GroupStatus(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"
    FULL = "full"
    ARCHIVED = "archived"


class OrderFrequency(str, Enum):
    WEEKLY = "weekly"
    BIWEEKLY = "biweekly"
    MONTHLY = "monthly"


class MemberRole(str, Enum):
    OWNER = "owner"
    MEMBER = "member"


class GroupCreate(BaseModel):
    name: str = Field(min_length=3, max_length=100)
    description: Optional[str] = Field(default=None, max_length=1000)
    location: str = Field(min_length=1, max_length=200)
    address: Optional[str] = None
    category: GroupCategory
    max_members: int = Field(default=10, ge=2, le=50)
    order_frequency: OrderFrequency = OrderFrequency.WEEKLY
    minimum_order: float = Field(default=500, ge=0)
    rules: Optional[List[str]] = None
    tags: List[str] = []
    images: List[str] = []
    delivery_radius: float = Field(default=5, gt=0)
    preferred_suppliers: List[str] = []
    payment_terms: str = "Cash on Delivery"

    class Config:
        use_enum_values = True
        validate_default = True


class GroupStatusUpdate(BaseModel):
    status: GroupStatus

    class Config:
        use_enum_values = True


class GroupFilters(BaseModel):
    location: Optional[str] = None
    category: Optional[GroupCategory] = None
    status: Optional[GroupStatus] = None
    member_id: Optional[str] = None
    limit: int = Field(default=20, ge=1, le=100)
    offset: int = Field(default=0, ge=0)

    class Config:
        use_enum_values = True


class MemberDetail(BaseModel):
    name: str
    phone: Optional[str] = None
    joined_at: datetime
    role: MemberRole


class GroupResponse(BaseModel):
    id: str
    name: str
    description: Optional[str] = None
    location: str
    address: Optional[str] = None
    category: str
    owner_id: str
    owner_name: str
    owner_phone: Optional[str] = None
    members: List[str]
    member_details: Dict[str, MemberDetail]
    max_members: int
    status: str
    order_frequency: str
    minimum_order: float
    total_orders: int = 0
    total_savings: float = 0
    average_savings: float = 0
    rules: List[str] = []
    tags: List[str] = []
    images: List[str] = []
    delivery_radius: float
    preferred_suppliers: List[str] = []
    payment_terms: str
    is_verified: bool = False
    rating: float = 0
    review_count: int = 0
    created_at: datetime
    updated_at: datetime


class GroupListResponse(BaseModel):
    groups: List[GroupResponse]
    page: int
    limit: int
    total: int
    has_more: bool


class GroupActionResponse(BaseModel):
    message: str
    group_id: str
