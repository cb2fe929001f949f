from pydantic import BaseModel, EmailStr, Field
from typing import Optional, List
from datetime import datetime


class UserPreferences(BaseModel):
    notifications: bool = True
    whatsapp_updates: bool = True
    email_updates: bool = True
    language: str = "en"


class UserProfileUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    email: Optional[EmailStr] = None
    business_name: Optional[str] = Field(default=None, max_length=200)
    location: Optional[str] = Field(default=None, max_length=200)
    address: Optional[str] = Field(default=None, max_length=500)
    category: Optional[str] = None
    gst_number: Optional[str] = Field(default=None, pattern=r"^[0-9A-Z]{15}$")
    pan_number: Optional[str] = Field(default=None, pattern=r"^[A-Z]{5}[0-9]{4}[A-Z]$")
    preferences: Optional[UserPreferences] = None


class UserProfileResponse(BaseModel):
    id: str
    phone: str
    role: str
    name: str = ""
    email: str = ""
    business_name: str = ""
    location: str = ""
    address: Optional[str] = None
    category: Optional[str] = None
    gst_number: Optional[str] = None
    pan_number: Optional[str] = None
    avatar_url: Optional[str] = None
    preferences: UserPreferences = UserPreferences()
    is_verified: bool = False
    is_active: bool = True
    profile_completeness: int = 0
    created_at: datetime
    updated_at: datetime
    last_login_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class AvatarUploadResponse(BaseModel):
    message: str
    avatar_url: str


class SupplierListResponse(BaseModel):
    suppliers: List[UserProfileResponse]
    page: int
    limit: int
    total: int
    has_more: bool


class UserRoleUpdateRequest(BaseModel):
    new_role: str = Field(pattern="^(vendor|supplier|admin)$")


class UserRoleUpdateResponse(BaseModel):
    success: bool
    message: str
    user_id: str
    new_role: str
    old_role: str
    updated_in_supabase: bool
