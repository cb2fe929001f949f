from pydantic import BaseModel, Field
from typing import Optional, List, Dict, Any
from datetime import datetime
from enum import Enum


class NotificationType(str, Enum):
    ORDER = "order"
    GROUP = "group"
    SURPLUS = "surplus"
    PAYMENT = "payment"
    SYSTEM = "system"
    PROMOTION = "promotion"
    ALERT = "alert"
    REMINDER = "reminder"


class NotificationCategory(str, Enum):
    INFO = "info"
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"
    URGENT = "urgent"


class NotificationPriority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


class NotificationChannel(str, Enum):
    APP = "app"
    EMAIL = "email"
    SMS = "sms"
    WHATSAPP = "whatsapp"
    PUSH = "push"


class NotificationCreate(BaseModel):
    user_id: str
    user_role: Optional[str] = None
    type: NotificationType
    category: NotificationCategory = NotificationCategory.INFO
    title: str = Field(min_length=1, max_length=200)
    message: str = Field(min_length=1, max_length=1000)
    data: Dict[str, Any] = {}
    action_url: Optional[str] = None
    priority: NotificationPriority = NotificationPriority.MEDIUM
    channels: List[NotificationChannel] = [NotificationChannel.APP]
    related_entity_id: Optional[str] = None
    related_entity_type: Optional[str] = None

    class Config:
        use_enum_values = True
        validate_default = True


class NotificationFilters(BaseModel):
    type: Optional[NotificationType] = None
    read: Optional[bool] = None
    include_archived: bool = False
    limit: int = Field(default=50, ge=1, le=100)
    offset: int = Field(default=0, ge=0)

    class Config:
        use_enum_values = True


class NotificationResponse(BaseModel):
    id: str
    user_id: str
    user_role: Optional[str] = None
    type: str
    category: str
    title: str
    message: str
    data: Dict[str, Any] = {}
    action_url: Optional[str] = None
    priority: str
    channels: List[str]
    read: bool
    archived: bool = False
    read_at: Optional[datetime] = None
    related_entity_id: Optional[str] = None
    related_entity_type: Optional[str] = None
    created_at: datetime


class NotificationListResponse(BaseModel):
    notifications: List[NotificationResponse]
    page: int
    limit: int
    total: int
    has_more: bool
    unread_count: int


class MarkAllReadResponse(BaseModel):
    message: str
    updated: int
