"""
Analytics Aggregator component.

Usage, revenue and performance reports for tool owners.
"""

from toolmarket.analytics.aggregator import AnalyticsAggregator, classify_health, latency_stats
from toolmarket.analytics.models import (
    DailyRevenue,
    GroupBy,
    HealthStatus,
    LatencyStats,
    PerformanceReport,
    RevenueReport,
    Timeframe,
    ToolPerformance,
    ToolRevenue,
    UsageBucket,
    UsageSummary,
    UsageTotals,
    resolve_group_by,
    resolve_timeframe,
)

__all__ = [
    "AnalyticsAggregator",
    "classify_health",
    "latency_stats",
    "DailyRevenue",
    "GroupBy",
    "HealthStatus",
    "LatencyStats",
    "PerformanceReport",
    "RevenueReport",
    "Timeframe",
    "ToolPerformance",
    "ToolRevenue",
    "UsageBucket",
    "UsageSummary",
    "UsageTotals",
    "resolve_group_by",
    "resolve_timeframe",
]
