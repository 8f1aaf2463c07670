"""
Analytics Aggregator implementation.

Read-only reports over the usage ledger, scoped to one owner's active tools.
"""

import logging
from collections import defaultdict
from datetime import datetime, timezone
from typing import Dict, List, Optional, Tuple, Union

import numpy as np

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
from toolmarket.tool_registry import ToolDefinition, ToolFilter, ToolRegistry
from toolmarket.usage_ledger import UsageLedger, UsageRecord
from toolmarket.utils.error_handling import ValidationFailed, timer
from toolmarket.utils.eth import format_wei

logger = logging.getLogger(__name__)


def classify_health(success_rate: float, avg_latency_ms: float) -> HealthStatus:
    """
    Classify a tool's health from its success rate and mean latency.

    Args:
        success_rate: Fraction of successful calls, 0 to 1
        avg_latency_ms: Mean execution time in milliseconds

    Returns:
        healthy, warning or critical
    """
    if success_rate >= 0.95 and avg_latency_ms < 5000:
        return HealthStatus.HEALTHY
    if success_rate >= 0.85 and avg_latency_ms < 10000:
        return HealthStatus.WARNING
    return HealthStatus.CRITICAL


def _rate(part: int, whole: int) -> float:
    return part / whole if whole else 0.0


def latency_stats(latencies: List[int]) -> LatencyStats:
    """Mean, extremes and percentiles of execution times."""
    if not latencies:
        return LatencyStats()
    values = np.asarray(latencies, dtype=float)
    p50, p95, p99 = np.percentile(values, [50, 95, 99])
    return LatencyStats(
        avg_ms=float(values.mean()),
        min_ms=int(values.min()),
        max_ms=int(values.max()),
        p50_ms=float(p50),
        p95_ms=float(p95),
        p99_ms=float(p99)
    )


class AnalyticsAggregator:
    """
    Builds usage, revenue and performance reports for tool owners.
    """

    def __init__(self, registry: ToolRegistry, ledger: UsageLedger):
        """
        Initialize the Analytics Aggregator.

        Args:
            registry: Tool registry, to resolve the owner's tools
            ledger: Usage ledger to aggregate
        """
        self.registry = registry
        self.ledger = ledger

    async def _owner_usage(self,
                           owner_id: str,
                           timeframe: Timeframe,
                           now: Optional[datetime],
                           tool_id: Optional[str] = None
                           ) -> Tuple[Dict[str, ToolDefinition], List[UsageRecord], datetime]:
        tools = await self.registry.list_by_criteria(ToolFilter(owner_id=owner_id, is_active=True))
        by_id = {tool.tool_id: tool for tool in tools}
        if tool_id is not None:
            by_id = {k: v for k, v in by_id.items() if k == tool_id}

        since = (now or datetime.now(timezone.utc)) - timeframe.duration
        records = await self.ledger.query_by_tool_ids(by_id.keys(), since=since) if by_id else []
        return by_id, records, since

    @timer("analytics")
    async def summary_for(self,
                          owner_id: str,
                          timeframe: Union[str, Timeframe, None] = None,
                          group_by: Union[str, GroupBy, None] = None,
                          now: Optional[datetime] = None) -> UsageSummary:
        """
        Usage of an owner's tools, grouped by tool and time bucket.

        Args:
            owner_id: Tool owner
            timeframe: 24h, 7d, 30d, 90d or 1y (unknown values mean 30d)
            group_by: hour, day, week or month (unknown values mean day)
            now: Reference time, defaults to the current time

        Returns:
            Per-bucket statistics and overall totals
        """
        timeframe = resolve_timeframe(timeframe)
        group_by = resolve_group_by(group_by)
        tools, records, since = await self._owner_usage(owner_id, timeframe, now)

        grouped: Dict[Tuple[str, str], List[UsageRecord]] = defaultdict(list)
        for record in records:
            grouped[(record.tool_id, group_by.label(record.timestamp))].append(record)

        buckets = []
        for (tool_id, label), bucket_records in sorted(grouped.items(), key=lambda item: (item[0][1], item[0][0])):
            buckets.append(self._bucket(tools[tool_id], label, bucket_records))

        summary = UsageSummary(
            owner_id=owner_id,
            timeframe=timeframe,
            group_by=group_by,
            since=since,
            buckets=buckets,
            totals=self._totals(records)
        )
        logger.info(f"Usage summary for {owner_id}: {summary.totals.total_calls} calls in {len(buckets)} buckets")
        return summary

    def _bucket(self, tool: ToolDefinition, label: str, records: List[UsageRecord]) -> UsageBucket:
        successful = sum(1 for r in records if r.response.success)
        paid = [r for r in records if r.billing.paid]
        billed = sum(r.billing.cost_wei for r in records)
        revenue = sum(r.billing.cost_wei for r in paid)
        latencies = [r.response.execution_time_ms for r in records]

        return UsageBucket(
            tool_id=tool.tool_id,
            tool_name=tool.name,
            bucket=label,
            total_calls=len(records),
            successful_calls=successful,
            failed_calls=len(records) - successful,
            paid_calls=len(paid),
            success_rate=_rate(successful, len(records)),
            billed_wei=str(billed),
            revenue_wei=str(revenue),
            billed_display=format_wei(billed),
            revenue_display=format_wei(revenue),
            avg_execution_time_ms=sum(latencies) / len(latencies),
            min_execution_time_ms=min(latencies),
            max_execution_time_ms=max(latencies),
            unique_callers=len({r.caller_id for r in records})
        )

    def _totals(self, records: List[UsageRecord]) -> UsageTotals:
        if not records:
            return UsageTotals()

        successful = sum(1 for r in records if r.response.success)
        paid = [r for r in records if r.billing.paid]
        billed = sum(r.billing.cost_wei for r in records)
        revenue = sum(r.billing.cost_wei for r in paid)

        return UsageTotals(
            total_calls=len(records),
            successful_calls=successful,
            failed_calls=len(records) - successful,
            paid_calls=len(paid),
            success_rate=_rate(successful, len(records)),
            billed_wei=str(billed),
            revenue_wei=str(revenue),
            billed_display=format_wei(billed),
            revenue_display=format_wei(revenue),
            unique_callers=len({r.caller_id for r in records}),
            tools_used=len({r.tool_id for r in records})
        )

    @timer("analytics")
    async def revenue_for(self,
                          owner_id: str,
                          timeframe: Union[str, Timeframe, None] = None,
                          now: Optional[datetime] = None) -> RevenueReport:
        """
        Settled revenue of an owner's tools.

        Only paid records count. Tools are ordered by revenue, highest first;
        the daily breakdown is chronological.
        """
        timeframe = resolve_timeframe(timeframe)
        tools, records, since = await self._owner_usage(owner_id, timeframe, now)
        paid = [r for r in records if r.billing.paid]

        per_tool: Dict[str, int] = defaultdict(int)
        per_tool_calls: Dict[str, int] = defaultdict(int)
        per_day: Dict[str, Dict[str, int]] = defaultdict(lambda: defaultdict(int))
        for record in paid:
            per_tool[record.tool_id] += record.billing.cost_wei
            per_tool_calls[record.tool_id] += 1
            per_day[GroupBy.DAY.label(record.timestamp)][record.tool_id] += record.billing.cost_wei

        tool_revenue = [
            ToolRevenue(
                tool_id=tool_id,
                tool_name=tools[tool_id].name,
                paid_calls=per_tool_calls[tool_id],
                revenue_wei=str(amount),
                revenue_display=format_wei(amount)
            )
            for tool_id, amount in sorted(per_tool.items(), key=lambda item: item[1], reverse=True)
        ]

        daily = []
        for day in sorted(per_day):
            day_total = sum(per_day[day].values())
            daily.append(DailyRevenue(
                date=day,
                revenue_wei=str(day_total),
                revenue_display=format_wei(day_total),
                by_tool={tool_id: str(amount) for tool_id, amount in per_day[day].items()}
            ))

        total = sum(per_tool.values())
        return RevenueReport(
            owner_id=owner_id,
            timeframe=timeframe,
            since=since,
            total_revenue_wei=str(total),
            total_revenue_display=format_wei(total),
            paid_calls=len(paid),
            tools=tool_revenue,
            daily=daily
        )

    @timer("analytics")
    async def performance_for(self,
                              owner_id: str,
                              tool_id: Optional[str] = None,
                              timeframe: Union[str, Timeframe, None] = None,
                              now: Optional[datetime] = None) -> PerformanceReport:
        """
        Reliability and latency of an owner's tools.

        Every active tool of the owner is reported, including tools with no
        calls in the timeframe (which classify as critical).

        Args:
            owner_id: Tool owner
            tool_id: Optionally report a single tool
            timeframe: Reporting window (unknown values mean 30d)
            now: Reference time, defaults to the current time
        """
        timeframe = resolve_timeframe(timeframe)
        tools, records, since = await self._owner_usage(owner_id, timeframe, now, tool_id=tool_id)

        by_tool: Dict[str, List[UsageRecord]] = defaultdict(list)
        for record in records:
            by_tool[record.tool_id].append(record)

        report = [self._performance(tool, by_tool.get(tool.tool_id, [])) for tool in tools.values()]
        report.sort(key=lambda p: p.total_calls, reverse=True)

        return PerformanceReport(owner_id=owner_id, timeframe=timeframe, since=since, tool_id=tool_id,
                                 tools=report)

    def _performance(self, tool: ToolDefinition, records: List[UsageRecord]) -> ToolPerformance:
        successful = sum(1 for r in records if r.response.success)
        validation_failures = sum(1 for r in records if r.response.error_type == ValidationFailed.__name__)
        success_rate = _rate(successful, len(records))
        latency = latency_stats([r.response.execution_time_ms for r in records])

        status_codes: Dict[str, int] = defaultdict(int)
        for record in records:
            if record.response.status_code is not None:
                status_codes[str(record.response.status_code)] += 1

        return ToolPerformance(
            tool_id=tool.tool_id,
            tool_name=tool.name,
            total_calls=len(records),
            successful_calls=successful,
            failed_calls=len(records) - successful,
            validation_failures=validation_failures,
            success_rate=success_rate,
            latency=latency,
            status_codes=dict(status_codes),
            health=classify_health(success_rate, latency.avg_ms)
        )
