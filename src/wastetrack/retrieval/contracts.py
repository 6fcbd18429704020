"""Filter, sort and pagination shapes shared by every list query.

Filters are partial: every field is optional and an unset field means "no
constraint". The only validation applied to paging is clamping.
"""

import math
from datetime import date, datetime
from typing import Generic, List, Literal, Optional, TypeVar

from pydantic import BaseModel, Field, field_validator, model_validator

from wastetrack.domain.models import (
    Complaint,
    ComplaintPriority,
    ComplaintStatus,
    Payment,
    PaymentMethod,
    PaymentStatus,
    PickupRequest,
    PickupStatus,
    Subscription,
    User,
    UserRole,
)

DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 1000  # protects the store from oversized reads

T = TypeVar("T")


class PaginationOptions(BaseModel):
    """Requested page; page is clamped to >= 1 and limit to [1, MAX_PAGE_SIZE]."""
    page: int = 1
    limit: int = DEFAULT_PAGE_SIZE

    @field_validator("page", mode="before")
    @classmethod
    def _clamp_page(cls, value) -> int:
        return max(1, int(value))

    @field_validator("limit", mode="before")
    @classmethod
    def _clamp_limit(cls, value) -> int:
        return min(max(1, int(value)), MAX_PAGE_SIZE)

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit

    @property
    def end(self) -> int:
        """Inclusive index of the last row on this page."""
        return self.offset + self.limit - 1


class SortOptions(BaseModel):
    field: str = "created_at"
    direction: Literal["asc", "desc"] = "desc"

    @property
    def ascending(self) -> bool:
        return self.direction == "asc"


class DateRangeFilter(BaseModel):
    start_date: Optional[datetime | date] = None
    end_date: Optional[datetime | date] = None


class PickupRequestFilters(DateRangeFilter):
    user_id: Optional[str] = None
    collector_id: Optional[str] = None
    status: Optional[List[PickupStatus]] = None
    area: Optional[str] = None
    search_term: Optional[str] = None


class PaymentFilters(DateRangeFilter):
    user_id: Optional[str] = None
    payment_method: Optional[List[PaymentMethod]] = None
    status: Optional[List[PaymentStatus]] = None
    min_amount: Optional[float] = None
    max_amount: Optional[float] = None
    search_term: Optional[str] = None


class ComplaintFilters(DateRangeFilter):
    user_id: Optional[str] = None
    pickup_id: Optional[str] = None
    status: Optional[List[ComplaintStatus]] = None
    priority: Optional[List[ComplaintPriority]] = None
    search_term: Optional[str] = None


class UserFilters(BaseModel):
    role: Optional[List[UserRole]] = None
    is_active: Optional[bool] = None
    area: Optional[str] = None
    search_term: Optional[str] = None


class AuditLogFilters(DateRangeFilter):
    user_id: Optional[str] = None
    action: Optional[str] = None
    entity_type: Optional[str] = None
    entity_id: Optional[str] = None


class PaginationInfo(BaseModel):
    page: int
    limit: int
    total: int
    total_pages: int
    has_next: bool
    has_prev: bool


class PaginatedResponse(BaseModel, Generic[T]):
    data: List[T] = Field(default_factory=list)
    pagination: PaginationInfo

    @model_validator(mode="after")
    def _page_fits_limit(self):
        if len(self.data) > self.pagination.limit:
            raise ValueError("page holds more rows than its limit")
        return self


class CustomerDetails(User):
    """A resident enriched with subscription, payment and pickup statistics for one collector."""
    subscription: Optional[Subscription] = None
    total_payments: float = 0.0
    last_payment_date: Optional[datetime] = None
    pickup_count: int = 0
    last_pickup_date: Optional[datetime] = None
    completion_rate: float = 0.0


class GlobalSearchResults(BaseModel):
    pickups: List[PickupRequest] = Field(default_factory=list)
    payments: List[Payment] = Field(default_factory=list)
    complaints: List[Complaint] = Field(default_factory=list)
    users: List[User] = Field(default_factory=list)


def calculate_pagination(page: int, limit: int, total: int) -> PaginationInfo:
    """
    Pagination envelope for a page of ``limit`` rows out of ``total``.

    total_pages = ceil(total / limit), has_next = page < total_pages,
    has_prev = page > 1.
    """
    total_pages = math.ceil(total / limit) if limit > 0 else 0
    return PaginationInfo(
        page=page,
        limit=limit,
        total=total,
        total_pages=total_pages,
        has_next=page < total_pages,
        has_prev=page > 1,
    )


def empty_page(pagination: PaginationOptions, total: int = 0) -> PaginatedResponse:
    return PaginatedResponse(data=[], pagination=calculate_pagination(pagination.page, pagination.limit, total))
