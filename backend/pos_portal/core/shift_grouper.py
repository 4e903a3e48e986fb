"""
Shift Grouper: partitions canonical receipts into one SubmissionUnit per shift-day.

The grouping key is the wire-format ShiftDay *string*. Two receipts whose instants
are equal but whose strings differ (e.g. different offset suffixes) stay apart.
Units come out in first-seen order; nothing is sorted by date.
"""
import logging
import uuid
from typing import Callable, Dict, Iterable, List

from ..services.retailers.registry import RetailerConfig
from . import wire_dates
from .structures import CanonicalReceipt, SubmissionUnit, WireReceipt

logger = logging.getLogger(__name__)


def _new_id() -> str:
    return str(uuid.uuid4())


def to_wire_receipt(receipt: CanonicalReceipt, receipt_id: str) -> WireReceipt:
    """Project a canonical receipt onto the PushReceipts payload shape."""
    return WireReceipt(
        Id=receipt_id,
        ReceiptDate=receipt.receipt_date,
        ReceiptNo=receipt.receipt_number,
        Tax=float(receipt.tax),
        Total=float(receipt.total),
        Type=int(receipt.type),
        Gross=float(receipt.gross) if receipt.gross is not None else None,
        SaleChannel=receipt.sale_channel,
    )


def group(
    receipts: Iterable[CanonicalReceipt],
    retailer: RetailerConfig,
    id_factory: Callable[[], str] = _new_id
) -> List[SubmissionUnit]:
    """
    Group receipts by shift-day.

    Receipts without the wire envelope on ReceiptDate or ShiftDay are skipped with
    a warning instead of failing the batch.

    Args:
        receipts: Canonical receipts in input order
        retailer: Supplies Mall / Retailer / Brand / Unit for every unit
        id_factory: Generates the per-receipt Id (uuid4 by default)

    Returns:
        SubmissionUnits in first-occurrence order of their shift-day
    """
    units: Dict[str, SubmissionUnit] = {}

    for index, receipt in enumerate(receipts):
        if not wire_dates.is_wire_date(receipt.shift_day) or not wire_dates.is_wire_date(receipt.receipt_date):
            label = receipt.receipt_number or f"at index {index}"
            logger.warning(f"Skipping receipt {label} due to unexpected date string format.")
            continue

        unit = units.get(receipt.shift_day)
        if unit is None:
            unit = SubmissionUnit(
                mall=retailer.mall,
                retailer_name=retailer.display_name,
                brand=retailer.brand,
                unit=retailer.unit,
                shift_day_wire=receipt.shift_day,
            )
            units[receipt.shift_day] = unit
        unit.receipts.append(to_wire_receipt(receipt, id_factory()))

    return list(units.values())
