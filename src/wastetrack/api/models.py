"""Composition DTOs for reporting surfaces.

Thin aggregates over counts and rates; entity shapes live in
``wastetrack.domain.models`` and are reused rather than copied.
"""

from typing import Dict, List

from pydantic import BaseModel, Field


class CollectorStats(BaseModel):
    """Status counts for one collector over a trailing window."""
    collector_id: str
    days: int
    total: int = 0
    picked_up: int = 0
    missed: int = 0
    pending: int = 0
    completion_rate: float = 0.0  # percent of total


class AreaMetrics(BaseModel):
    area: str
    pickups: int = 0
    picked_up: int = 0
    open_complaints: int = 0
    completion_rate: float = 0.0


class AdminMetrics(BaseModel):
    """Operator dashboard snapshot."""
    users_by_role: Dict[str, int] = Field(default_factory=dict)
    active_users: int = 0
    pickups_by_status: Dict[str, int] = Field(default_factory=dict)
    open_complaints: int = 0
    completed_revenue: float = 0.0
    generated_at_utc: str


class AreaMetricsReport(BaseModel):
    areas: List[AreaMetrics] = Field(default_factory=list)
    generated_at_utc: str
