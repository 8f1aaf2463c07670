"""
Data models for the Usage Ledger component.
"""

import uuid
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field, field_validator

from toolmarket.utils.eth import is_valid_wei


class UsageResponse(BaseModel):
    """Terminal outcome of one execution."""
    success: bool
    data: Any = None
    error: Optional[str] = None
    error_type: Optional[str] = None  # ValidationFailed, ExecutionFailed or ExecutionCancelled
    status_code: Optional[int] = None
    execution_time_ms: int = 0
    attempts: int = 0


class Billing(BaseModel):
    """
    Intended charge for one execution.

    ``paid``, ``transaction_hash`` and ``payment_timestamp`` are only ever
    written by the settlement process through UsageLedger.record_settlement.
    """
    cost_in_wei: str
    paid: bool = False
    transaction_hash: Optional[str] = None
    payment_timestamp: Optional[datetime] = None

    @field_validator("cost_in_wei", mode="before")
    @classmethod
    def integer_wei(cls, v):
        if not is_valid_wei(v):
            raise ValueError("Cost must be a valid wei amount (non-negative integer)")
        return str(int(v))

    @property
    def cost_wei(self) -> int:
        return int(self.cost_in_wei)


class UsageRecord(BaseModel):
    """One record per execute call, whatever the outcome."""
    record_id: str = Field(default_factory=lambda: f"usage_{uuid.uuid4().hex}")
    tool_id: str
    caller_id: str
    session_id: str
    parameters: Dict[str, Any] = Field(default_factory=dict)
    response: UsageResponse
    billing: Billing
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
