"""
Usage Ledger component.

Append-only record of every tool execution and its billing state.
"""

from toolmarket.usage_ledger.ledger import UsageLedger
from toolmarket.usage_ledger.models import Billing, UsageRecord, UsageResponse

__all__ = ["UsageLedger", "Billing", "UsageRecord", "UsageResponse"]
