"""Typed entity shapes and validated inputs for every record kind.

Entities mirror what the store holds (one model per table); ``Create*`` and
``Update*`` models validate caller input before anything is written.
"""

import re
from datetime import date, datetime
from enum import Enum
from typing import Any, Dict, List, Literal, Optional, Tuple

from pydantic import BaseModel, Field, field_validator

UserRole = Literal["resident", "collector", "admin"]
PickupStatus = Literal["requested", "scheduled", "picked_up", "missed"]
PaymentMethod = Literal["cash", "transfer", "card"]
PaymentStatus = Literal["pending", "completed", "failed"]
ComplaintStatus = Literal["open", "in_progress", "resolved", "closed"]
ComplaintPriority = Literal["low", "medium", "high"]
SubscriptionPlanType = Literal["weekly", "bi-weekly", "on-demand"]
SubscriptionStatus = Literal["active", "paused", "cancelled"]
NotificationType = Literal[
    "pickup_status_change",
    "complaint_update",
    "payment_received",
    "new_pickup_assigned",
    "system_alert",
]
AuditAction = Literal[
    "user_created", "user_updated", "user_deleted", "user_suspended", "user_activated",
    "subscription_created", "subscription_updated", "subscription_cancelled",
    "pickup_created", "pickup_updated", "pickup_completed", "pickup_missed",
    "payment_created", "payment_updated", "payment_completed", "payment_deleted",
    "complaint_created", "complaint_updated", "complaint_resolved",
    "login_success", "login_failed", "logout",
    "password_changed", "password_reset_requested", "password_reset_completed",
    "admin_action", "data_export", "system_config_changed",
]
AuditEntityType = Literal["user", "subscription", "pickup_request", "payment", "complaint", "system"]

PHONE_PATTERN = re.compile(r"^(\+234|0)[789]\d{9}$")
EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
URL_PATTERN = re.compile(r"^https?://\S+$")
IP_PATTERN = re.compile(
    r"^(?:[0-9]{1,3}\.){3}[0-9]{1,3}$|^(?:[0-9a-fA-F]{1,4}:){7}[0-9a-fA-F]{1,4}$"
)

MetadataValue = str | int | float | bool


class NotificationAudience(str, Enum):
    """Who a notification is addressed to.

    SYSTEM notifications are admin broadcasts and carry no user id.
    """
    USER = "user"
    SYSTEM = "system"


# Entities


class Location(BaseModel):
    area: str = ""
    street: str = ""
    house_number: str = ""
    coordinates: Optional[Tuple[float, float]] = None  # (lng, lat)


class User(BaseModel):
    id: str
    email: Optional[str] = None
    phone: str
    name: str
    role: UserRole
    location: Location
    is_active: bool = True
    created_at: datetime
    updated_at: datetime


class PickupRequest(BaseModel):
    id: str
    user_id: str
    collector_id: Optional[str] = None
    scheduled_date: date
    status: PickupStatus
    notes: Optional[str] = None
    completed_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime
    location: Location


class Payment(BaseModel):
    id: str
    user_id: str
    amount: float
    currency: str
    payment_method: PaymentMethod
    reference: str
    status: PaymentStatus
    created_at: datetime
    metadata: Optional[Dict[str, Any]] = None


class Complaint(BaseModel):
    id: str
    user_id: str
    pickup_id: str
    description: str
    photo_url: Optional[str] = None
    status: ComplaintStatus
    priority: ComplaintPriority
    created_at: datetime
    resolved_at: Optional[datetime] = None
    admin_notes: Optional[str] = None


class SubscriptionPricing(BaseModel):
    amount: float
    currency: str
    billing_cycle: str


class Subscription(BaseModel):
    id: str
    user_id: str
    plan_type: SubscriptionPlanType
    status: SubscriptionStatus
    start_date: date
    end_date: Optional[date] = None
    pricing: SubscriptionPricing
    created_at: datetime
    updated_at: datetime


class AuditLog(BaseModel):
    id: str
    user_id: str
    action: str
    entity_type: str
    entity_id: Optional[str] = None
    old_data: Optional[Dict[str, Any]] = None
    new_data: Optional[Dict[str, Any]] = None
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    timestamp: datetime
    metadata: Optional[Dict[str, Any]] = None


class Notification(BaseModel):
    id: str
    audience: NotificationAudience = NotificationAudience.USER
    user_id: Optional[str] = None
    type: str
    title: str
    message: str
    data: Optional[Dict[str, Any]] = None
    read: bool = False
    created_at: datetime


# Inputs


class LocationInput(BaseModel):
    area: str = Field(min_length=1)
    street: str = Field(min_length=1)
    house_number: str = Field(min_length=1)
    coordinates: Optional[Tuple[float, float]] = None

    @field_validator("area", "street", "house_number")
    @classmethod
    def _strip(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("must not be blank")
        return value


class CreateUserInput(BaseModel):
    email: Optional[str] = None
    phone: str
    name: str = Field(min_length=2)
    role: UserRole
    location: LocationInput

    @field_validator("email")
    @classmethod
    def _email(cls, value: Optional[str]) -> Optional[str]:
        if value is not None and not EMAIL_PATTERN.match(value):
            raise ValueError("Invalid email format")
        return value

    @field_validator("phone")
    @classmethod
    def _phone(cls, value: str) -> str:
        if not PHONE_PATTERN.match(value):
            raise ValueError("Invalid Nigerian phone number format")
        return value


class CreatePickupRequestInput(BaseModel):
    user_id: str
    scheduled_date: date
    notes: Optional[str] = Field(default=None, max_length=500)
    location: Optional[LocationInput] = None

    @field_validator("scheduled_date")
    @classmethod
    def _future(cls, value: date) -> date:
        if value <= date.today():
            raise ValueError("Scheduled date must be in the future")
        return value


class UpdatePickupStatusInput(BaseModel):
    status: PickupStatus
    collector_id: Optional[str] = None
    notes: Optional[str] = Field(default=None, max_length=500)


class CreatePaymentInput(BaseModel):
    user_id: str
    amount: float = Field(gt=0)
    currency: Optional[str] = Field(default=None, min_length=3, max_length=3)
    payment_method: PaymentMethod
    reference: Optional[str] = Field(default=None, min_length=1)
    status: PaymentStatus = "completed"
    metadata: Optional[Dict[str, MetadataValue]] = None

    @field_validator("amount")
    @classmethod
    def _two_decimals(cls, value: float) -> float:
        return round(value, 2)


class UpdatePaymentInput(BaseModel):
    amount: Optional[float] = Field(default=None, gt=0)
    currency: Optional[str] = Field(default=None, min_length=3, max_length=3)
    payment_method: Optional[PaymentMethod] = None
    reference: Optional[str] = Field(default=None, min_length=1)
    status: Optional[PaymentStatus] = None
    metadata: Optional[Dict[str, MetadataValue]] = None

    @field_validator("amount")
    @classmethod
    def _two_decimals(cls, value: Optional[float]) -> Optional[float]:
        return round(value, 2) if value is not None else None


class CreateComplaintInput(BaseModel):
    user_id: str
    pickup_id: str
    description: str = Field(min_length=10, max_length=1000)
    photo_url: Optional[str] = None
    priority: ComplaintPriority = "medium"

    @field_validator("photo_url")
    @classmethod
    def _url(cls, value: Optional[str]) -> Optional[str]:
        if value is not None and not URL_PATTERN.match(value):
            raise ValueError("Invalid photo URL")
        return value


class UpdateComplaintInput(BaseModel):
    status: Optional[ComplaintStatus] = None
    priority: Optional[ComplaintPriority] = None
    admin_notes: Optional[str] = Field(default=None, max_length=500)


class SubscriptionPricingInput(BaseModel):
    amount: float = Field(gt=0)
    currency: str = Field(min_length=3, max_length=3)
    billing_cycle: str = Field(min_length=1)


class CreateSubscriptionInput(BaseModel):
    user_id: str
    plan_type: SubscriptionPlanType
    pricing: SubscriptionPricingInput
    start_date: date = Field(default_factory=date.today)


class CreateAuditLogInput(BaseModel):
    user_id: str
    action: AuditAction
    entity_type: AuditEntityType
    entity_id: Optional[str] = None
    old_data: Optional[Dict[str, Any]] = None
    new_data: Optional[Dict[str, Any]] = None
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None

    @field_validator("ip_address")
    @classmethod
    def _ip(cls, value: Optional[str]) -> Optional[str]:
        if value is not None and not IP_PATTERN.match(value):
            raise ValueError("Invalid IP address")
        return value


class SendNotificationInput(BaseModel):
    user_id: str = Field(min_length=1)
    type: NotificationType
    title: str = Field(min_length=1)
    message: str = Field(min_length=1)
    data: Optional[Dict[str, Any]] = None


class BroadcastNotificationInput(BaseModel):
    type: NotificationType = "system_alert"
    title: str = Field(min_length=1)
    message: str = Field(min_length=1)
    data: Optional[Dict[str, Any]] = None


# Forward-only complaint lifecycle: open -> in_progress -> resolved | closed
COMPLAINT_TRANSITIONS: Dict[str, frozenset] = {
    "open": frozenset({"in_progress", "resolved", "closed"}),
    "in_progress": frozenset({"resolved", "closed"}),
    "resolved": frozenset({"closed"}),
    "closed": frozenset(),
}

PENDING_PICKUP_STATUSES: List[str] = ["requested", "scheduled"]
