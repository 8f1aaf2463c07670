"""
Usage Ledger implementation.

An append-only log of execution outcomes. The execution engine appends; the
analytics aggregator and discovery read; the external settlement process is
the only writer allowed to touch a record after it exists.
"""

import logging
from datetime import datetime, timezone
from typing import Iterable, List, Optional

from toolmarket.storage import DocumentStore, USAGE_COLLECTION
from toolmarket.usage_ledger.models import UsageRecord
from toolmarket.utils.error_handling import NotFound


logger = logging.getLogger(__name__)


class UsageLedger:
    """
    Append-only store of per-invocation usage records.
    """

    def __init__(self, store: DocumentStore):
        """
        Initialize the Usage Ledger.

        Args:
            store: Document store holding the ``usage`` collection
        """
        self.store = store

    async def append(self, record: UsageRecord) -> UsageRecord:
        """
        Insert a usage record. No de-duplication, no update.

        Args:
            record: The record to store

        Returns:
            The stored record
        """
        await self.store.insert(USAGE_COLLECTION, record.record_id, record.model_dump(mode="json"))
        logger.debug(f"Appended usage record {record.record_id} for tool {record.tool_id}")
        return record

    async def get(self, record_id: str) -> UsageRecord:
        """
        Retrieve a usage record by ID.

        Raises:
            NotFound: If the record does not exist
        """
        document = await self.store.get(USAGE_COLLECTION, record_id)
        if document is None:
            raise NotFound(f"Usage record '{record_id}' not found", component="usage_ledger",
                           details={"record_id": record_id})
        return UsageRecord.model_validate(document)

    async def query_by_tool_ids(self,
                                tool_ids: Iterable[str],
                                since: Optional[datetime] = None,
                                tool_id: Optional[str] = None) -> List[UsageRecord]:
        """
        Read the usage of a set of tools.

        Args:
            tool_ids: Tools whose records to return
            since: Only records at or after this time
            tool_id: Optionally narrow the set to a single tool

        Returns:
            Matching records, oldest first
        """
        wanted = set(tool_ids)
        if tool_id is not None:
            wanted &= {tool_id}
        if not wanted:
            return []

        documents = await self.store.find(
            USAGE_COLLECTION,
            lambda document: document.get("tool_id") in wanted
        )
        records = [UsageRecord.model_validate(document) for document in documents]
        if since is not None:
            records = [record for record in records if record.timestamp >= since]

        records.sort(key=lambda record: record.timestamp)
        return records

    async def record_settlement(self,
                                record_id: str,
                                transaction_hash: str,
                                paid_at: Optional[datetime] = None) -> UsageRecord:
        """
        Mark a record as paid. Called by the external settlement process once
        a payment for the execution has been confirmed.

        Args:
            record_id: The usage record that was paid for
            transaction_hash: Settlement transaction reference
            paid_at: When the payment settled (defaults to now)

        Returns:
            The updated record

        Raises:
            NotFound: If the record does not exist
        """
        record = await self.get(record_id)
        record.billing.paid = True
        record.billing.transaction_hash = transaction_hash
        record.billing.payment_timestamp = paid_at or datetime.now(timezone.utc)

        await self.store.replace(USAGE_COLLECTION, record_id, record.model_dump(mode="json"))
        logger.info(f"Recorded settlement {transaction_hash} for usage record {record_id}")
        return record
