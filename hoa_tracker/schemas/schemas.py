from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator

SubscriptionStatus = Literal["trial", "active", "inactive", "pending"]
ViolationStatus = Literal["pending", "under_review", "resolved", "dismissed"]
UserRole = Literal["hoa_admin", "super_admin"]


class OnboardingRequest(BaseModel):
    """Self-service sign-up form. Presence is checked by the onboarding workflow."""

    hoa_name: str = ""
    hoa_address: str = ""
    hoa_city: str = ""
    hoa_state: str = ""
    hoa_zip: str = ""
    hoa_phone: str = ""
    admin_first_name: str = ""
    admin_last_name: str = ""
    # Plain str: address syntax is judged by the auth service.
    admin_email: str = ""
    admin_password: str = ""
    violation_types: Optional[List[str]] = None
    additional_emails: List[EmailStr] = []
    primary_color: Optional[str] = Field(default=None, pattern=r"^#[0-9A-Fa-f]{6}$")
    logo_url: Optional[str] = None


class OnboardingResponse(BaseModel):
    tenant_slug: str
    principal_id: str
    admin_url: str


class SlugAvailability(BaseModel):
    name: str
    base_slug: str
    slug: str
    available: bool


class Branding(BaseModel):
    primary_color: str
    logo_url: str = ""


class BrandingUpdate(BaseModel):
    primary_color: Optional[str] = Field(default=None, pattern=r"^#[0-9A-Fa-f]{6}$")
    logo_url: Optional[str] = None


class TenantPublic(BaseModel):
    id: str
    name: str
    slug: str
    violation_types: List[str]
    branding: Branding
    accepting_reports: bool


class TenantRead(TenantPublic):
    address: str
    city: str
    state: str
    zip: str
    phone: str
    admin_email: str
    admin_uid: Optional[str] = None
    additional_emails: List[str] = []
    subscription_status: SubscriptionStatus
    subscription_id: Optional[str] = None
    trial_ends_at: Optional[str] = None
    created_at: datetime
    updated_at: datetime


class TenantCreate(BaseModel):
    name: str = Field(min_length=1)
    address: str = ""
    city: str = ""
    state: str = ""
    zip: str = ""
    phone: str = ""
    admin_email: EmailStr
    additional_emails: List[EmailStr] = []
    violation_types: Optional[List[str]] = None
    subscription_status: Optional[SubscriptionStatus] = None


class TenantSettingsUpdate(BaseModel):
    name: Optional[str] = None
    address: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    zip: Optional[str] = None
    phone: Optional[str] = None
    admin_email: Optional[EmailStr] = None
    additional_emails: Optional[List[EmailStr]] = None
    violation_types: Optional[List[str]] = None
    branding: Optional[BrandingUpdate] = None


class TenantStatusUpdate(BaseModel):
    subscription_status: SubscriptionStatus
    subscription_id: Optional[str] = None


class SubscriptionEmailRequest(BaseModel):
    type: Literal["welcome", "payment_failed", "subscription_cancelled"]


class EmailDispatchRead(BaseModel):
    success: bool
    backend: str
    message: str


class UserRead(BaseModel):
    id: str
    email: str
    first_name: str = ""
    last_name: str = ""
    role: UserRole
    hoa_id: Optional[str] = None
    created_at: datetime


class UserCreate(BaseModel):
    email: EmailStr
    password: str
    first_name: str = ""
    last_name: str = ""
    role: UserRole = "hoa_admin"
    hoa_id: Optional[str] = None


class UserUpdate(BaseModel):
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    role: Optional[UserRole] = None
    hoa_id: Optional[str] = None


class Token(BaseModel):
    access_token: str
    token_type: str = "bearer"
    role: str
    hoa_id: Optional[str] = None


class SessionContextRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    principal_id: str
    email: str
    role: str
    hoa_id: Optional[str] = None
    first_name: str = ""
    last_name: str = ""


class ViolationRead(BaseModel):
    id: str
    hoa_id: str
    type: str
    address: str
    description: str
    photos: List[str] = []
    reporter_email: Optional[str] = None
    reporter_phone: Optional[str] = None
    status: ViolationStatus
    admin_notes: str = ""
    created_at: datetime
    updated_at: datetime


class ViolationUpdate(BaseModel):
    status: Optional[ViolationStatus] = None
    admin_notes: Optional[str] = None


class ResidentNotice(BaseModel):
    recipient_email: EmailStr
    subject: Optional[str] = None
    message: str = Field(min_length=1)

    @field_validator("message")
    @classmethod
    def not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("must not be blank")
        return value
