"""
Dashboard, analytics and admin schemas.
"""
from pydantic import BaseModel


class DashboardStats(BaseModel):
    """Dashboard summary counters."""
    entities: int
    users: int
    upcoming_meetings: int
    pending_tasks: int


class DailyCount(BaseModel):
    date: str
    count: int


class AnalyticsSummary(BaseModel):
    """Aggregated analytics for a period."""
    period: str
    tasks_by_status: dict[str, int]
    total_tasks: int
    completion_rate: float
    meetings: int
    communications: int
    public_hearings: int
    users_by_role: dict[str, int]
    activity_by_day: list[DailyCount]


class EntityAnalytics(BaseModel):
    """Per-entity counters."""
    entity_id: str
    name: str
    type: str
    users: int
    tasks: int
    completed_tasks: int
    public_hearings: int


class ActivityAnalytics(BaseModel):
    """Activity log counts."""
    period: str
    by_action: dict[str, int]
    by_day: list[DailyCount]


class ChannelAnalytics(BaseModel):
    """Communication counts per channel."""
    period: str
    by_channel: dict[str, int]
    total_recipients: int
    read_recipients: int
    read_rate: float


class DatabaseStats(BaseModel):
    """Row count per table."""
    tables: dict[str, int]
    total_rows: int
