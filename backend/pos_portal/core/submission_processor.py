"""
Submission Processor: runs one batch through the whole pipeline.

Normalize -> group by shift-day -> push to external API -> reconcile & persist.
"""
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from ..config import Settings
from ..errors import ConfigurationError, ValidationError
from ..models import SubmissionResult
from ..services.external.push_client import PushClient
from ..services.retailers.registry import RetailerRegistry
from .normalizer import normalize_batch
from .reconciliation import Reconciler, ReconciliationSummary
from .shift_grouper import group
from .structures import InputSource

logger = logging.getLogger(__name__)


@dataclass
class SubmissionOutcome:
    """What the caller gets back: the push API result plus local persistence stats."""
    result: SubmissionResult
    summary: ReconciliationSummary
    shifts_sent: int

    def to_response(self) -> Dict[str, Any]:
        body = self.result.to_response()
        body["PersistedCount"] = self.summary.persisted_count
        return body


def business_timezone(settings: Settings) -> ZoneInfo:
    """Resolve BUSINESS_TIMEZONE."""
    try:
        return ZoneInfo(settings.business_timezone)
    except (ZoneInfoNotFoundError, ValueError):
        raise ConfigurationError(f"Unknown BUSINESS_TIMEZONE: {settings.business_timezone}")


async def process_sales_submission(
    raw_records: List[Dict[str, Any]],
    source: InputSource,
    retailer_key: str,
    registry: RetailerRegistry,
    push_client: PushClient,
    reconciler: Optional[Reconciler],
    settings: Settings,
    now: Optional[datetime] = None
) -> SubmissionOutcome:
    """
    Submit a batch of raw receipts for one retailer.

    Validation happens before anything leaves the process: a single malformed record
    rejects the batch and no external call is made.

    Args:
        raw_records: Records keyed by push API field names
        source: Input surface the records came from
        retailer_key: Selected retailer
        registry: Retailer registry
        push_client: External push API client
        reconciler: Persists accepted receipts; required
        settings: Application settings
        now: Clock override for manual shift-day defaults (tests)

    Returns:
        SubmissionOutcome

    Raises:
        ConfigurationError, RetailerNotFoundError, ValidationError,
        TransportError, ExternalRejection
    """
    retailer = registry.resolve(retailer_key)

    if reconciler is None:
        raise ConfigurationError("Receipt store is not configured (SUPABASE_URL / SUPABASE_ANON_KEY).")

    if not raw_records:
        raise ValidationError("No receipt data provided.")

    tz = business_timezone(settings)
    receipts = normalize_batch(
        raw_records, source, tz, shift_hour=settings.default_shift_hour, now=now
    )

    units = group(receipts, retailer)
    if not units:
        logger.warning("No valid receipts found after basic date format validation.")
        raise ValidationError("No valid receipts found after processing dates. Please check formats.")

    result = await push_client.submit(units, retailer)

    try:
        summary = await reconciler.reconcile(units, result, retailer)
    except Exception as e:
        # The push API already accepted the data; its answer is what the caller gets
        logger.error(f"Receipt persistence failed for retailer {retailer.key}: {e}", exc_info=True)
        summary = ReconciliationSummary()

    return SubmissionOutcome(result=result, summary=summary, shifts_sent=len(units))
