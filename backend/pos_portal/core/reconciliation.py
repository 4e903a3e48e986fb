"""
Reconciliation & persistence.

Matches per-shift results from the push API back to the units that were sent
(result i belongs to unit i; the API has no correlation id) and stores the receipts
of every shift that came back with ReturnCode "200".

The push API has already committed by the time this runs, so local writes are
best-effort: each write is attempted, failures are logged and counted, nothing is
raised to the caller.
"""
import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Tuple

from ..models import SubmissionResult
from ..services.database.receipt_store import ReceiptStore
from ..services.retailers.registry import RetailerConfig
from .structures import SubmissionUnit, WireReceipt

logger = logging.getLogger(__name__)


@dataclass
class ReconciliationSummary:
    """Outcome of one reconciliation pass."""
    persisted_count: int = 0
    failed_writes: int = 0
    succeeded_shifts: List[str] = field(default_factory=list)
    failed_shifts: List[str] = field(default_factory=list)
    unmatched_units: int = 0


def build_document(receipt: WireReceipt, unit: SubmissionUnit, retailer: RetailerConfig) -> Dict[str, Any]:
    """Row stored for one accepted receipt. Wire date strings are kept verbatim."""
    return {
        "receipt_id": receipt.Id,
        "receipt_no": receipt.ReceiptNo,
        "receipt_date": receipt.ReceiptDate,
        "shift_day": unit.shift_day_wire,
        "total": receipt.Total,
        "tax": receipt.Tax,
        "gross": receipt.Gross,
        "type": receipt.Type,
        "sale_channel": receipt.SaleChannel,
        "retailer_key": retailer.key,
        "retailer_name": retailer.display_name,
        "mall": retailer.mall,
        "brand": retailer.brand,
        "unit": retailer.unit,
    }


class Reconciler:
    """Persists receipts of the shifts the push API accepted."""

    def __init__(self, store: ReceiptStore):
        self.store = store

    async def reconcile(
        self,
        units: List[SubmissionUnit],
        result: SubmissionResult,
        retailer: RetailerConfig
    ) -> ReconciliationSummary:
        """
        Persist receipts from successful shifts.

        Args:
            units: Units in the order they were sent
            result: Decoded push API response
            retailer: Retailer whose collection receives the documents

        Returns:
            ReconciliationSummary
        """
        summary = ReconciliationSummary()
        shift_results = result.shift_results
        documents: List[Tuple[str, Dict[str, Any]]] = []
        collection = retailer.collection_name

        for index, shift_result in enumerate(shift_results):
            logger.info(f"Processing Shift Result at index {index}: ReturnCode='{shift_result.return_code}'")
            if index >= len(units):
                logger.warning(
                    f"API returned result at index {index}, but only {len(units)} shifts sent."
                )
                continue

            unit = units[index]
            if not shift_result.succeeded:
                logger.info(
                    f"Shift at index {index} did not succeed (Code {shift_result.return_code}). Skipping save."
                )
                summary.failed_shifts.append(unit.shift_day_wire)
                continue

            summary.succeeded_shifts.append(unit.shift_day_wire)
            for receipt in unit.receipts:
                documents.append((receipt.ReceiptNo, build_document(receipt, unit, retailer)))

        if len(shift_results) < len(units):
            summary.unmatched_units = len(units) - len(shift_results)
            logger.warning(
                f"API returned {len(shift_results)} shift results for {len(units)} shifts sent; "
                f"{summary.unmatched_units} shifts left unreconciled."
            )

        if not documents:
            logger.info("No successful shifts found in the API response to save.")
            return summary

        logger.info(f"Attempting to save {len(documents)} receipts to {collection}...")
        outcomes = await self._write_all(collection, [doc for _, doc in documents])

        for (receipt_no, _), outcome in zip(documents, outcomes):
            if isinstance(outcome, Exception):
                summary.failed_writes += 1
                logger.error(f"Failed to save receipt {receipt_no} for retailer {retailer.key}: {outcome}")
            else:
                summary.persisted_count += 1

        logger.info(
            f"Save completed for retailer {retailer.key}: {summary.persisted_count} saved, "
            f"{summary.failed_writes} failed."
        )
        return summary

    async def _write_all(self, collection: str, documents: List[Dict[str, Any]]) -> List[Any]:
        """Dispatch one write per document concurrently; exceptions are returned, not raised."""
        loop = asyncio.get_running_loop()
        tasks = [
            loop.run_in_executor(None, self.store.add, collection, document)
            for document in documents
        ]
        return await asyncio.gather(*tasks, return_exceptions=True)
