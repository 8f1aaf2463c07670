"""
Data models for the Analytics Aggregator.

Wei totals are summed as ints and exposed as decimal strings with a display
string alongside.
"""

import logging
from datetime import datetime, timedelta
from enum import Enum
from typing import Dict, List, Optional, Union

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)


class Timeframe(str, Enum):
    LAST_24_HOURS = "24h"
    LAST_7_DAYS = "7d"
    LAST_30_DAYS = "30d"
    LAST_90_DAYS = "90d"
    LAST_YEAR = "1y"

    @property
    def duration(self) -> timedelta:
        return _TIMEFRAME_DURATIONS[self]


_TIMEFRAME_DURATIONS = {
    Timeframe.LAST_24_HOURS: timedelta(hours=24),
    Timeframe.LAST_7_DAYS: timedelta(days=7),
    Timeframe.LAST_30_DAYS: timedelta(days=30),
    Timeframe.LAST_90_DAYS: timedelta(days=90),
    Timeframe.LAST_YEAR: timedelta(days=365),
}


class GroupBy(str, Enum):
    HOUR = "hour"
    DAY = "day"
    WEEK = "week"
    MONTH = "month"

    def label(self, timestamp: datetime) -> str:
        """Bucket label for a timestamp."""
        return timestamp.strftime(_BUCKET_FORMATS[self])


_BUCKET_FORMATS = {
    GroupBy.HOUR: "%Y-%m-%dT%H:00",
    GroupBy.DAY: "%Y-%m-%d",
    GroupBy.WEEK: "%G-W%V",
    GroupBy.MONTH: "%Y-%m",
}


def resolve_timeframe(value: Union[str, Timeframe, None]) -> Timeframe:
    """Parse a timeframe, falling back to 30 days for anything unknown."""
    if isinstance(value, Timeframe):
        return value
    try:
        return Timeframe(value)
    except ValueError:
        if value is not None:
            logger.warning(f"Unknown timeframe {value!r}, using 30d")
        return Timeframe.LAST_30_DAYS


def resolve_group_by(value: Union[str, GroupBy, None]) -> GroupBy:
    """Parse a grouping, falling back to daily buckets for anything unknown."""
    if isinstance(value, GroupBy):
        return value
    try:
        return GroupBy(value)
    except ValueError:
        if value is not None:
            logger.warning(f"Unknown group_by {value!r}, using day")
        return GroupBy.DAY


class UsageBucket(BaseModel):
    """Usage of one tool within one time bucket."""
    tool_id: str
    tool_name: str
    bucket: str
    total_calls: int = 0
    successful_calls: int = 0
    failed_calls: int = 0
    paid_calls: int = 0
    success_rate: float = 0.0
    billed_wei: str = "0"
    revenue_wei: str = "0"
    billed_display: str = "0 wei"
    revenue_display: str = "0 wei"
    avg_execution_time_ms: float = 0.0
    min_execution_time_ms: int = 0
    max_execution_time_ms: int = 0
    unique_callers: int = 0


class UsageTotals(BaseModel):
    total_calls: int = 0
    successful_calls: int = 0
    failed_calls: int = 0
    paid_calls: int = 0
    success_rate: float = 0.0
    billed_wei: str = "0"
    revenue_wei: str = "0"
    billed_display: str = "0 wei"
    revenue_display: str = "0 wei"
    unique_callers: int = 0
    tools_used: int = 0


class UsageSummary(BaseModel):
    owner_id: str
    timeframe: Timeframe
    group_by: GroupBy
    since: datetime
    buckets: List[UsageBucket] = Field(default_factory=list)
    totals: UsageTotals = Field(default_factory=UsageTotals)


class ToolRevenue(BaseModel):
    tool_id: str
    tool_name: str
    paid_calls: int = 0
    revenue_wei: str = "0"
    revenue_display: str = "0 wei"


class DailyRevenue(BaseModel):
    date: str
    revenue_wei: str = "0"
    revenue_display: str = "0 wei"
    by_tool: Dict[str, str] = Field(default_factory=dict)


class RevenueReport(BaseModel):
    owner_id: str
    timeframe: Timeframe
    since: datetime
    total_revenue_wei: str = "0"
    total_revenue_display: str = "0 wei"
    paid_calls: int = 0
    tools: List[ToolRevenue] = Field(default_factory=list)
    daily: List[DailyRevenue] = Field(default_factory=list)


class HealthStatus(str, Enum):
    HEALTHY = "healthy"
    WARNING = "warning"
    CRITICAL = "critical"


class LatencyStats(BaseModel):
    avg_ms: float = 0.0
    min_ms: int = 0
    max_ms: int = 0
    p50_ms: float = 0.0
    p95_ms: float = 0.0
    p99_ms: float = 0.0


class ToolPerformance(BaseModel):
    tool_id: str
    tool_name: str
    total_calls: int = 0
    successful_calls: int = 0
    failed_calls: int = 0
    validation_failures: int = 0
    success_rate: float = 0.0
    latency: LatencyStats = Field(default_factory=LatencyStats)
    status_codes: Dict[str, int] = Field(default_factory=dict)
    health: HealthStatus = HealthStatus.CRITICAL


class PerformanceReport(BaseModel):
    owner_id: str
    timeframe: Timeframe
    since: datetime
    tool_id: Optional[str] = None
    tools: List[ToolPerformance] = Field(default_factory=list)
