"""
CSV Exporter: Converts persisted receipt rows to a downloadable CSV.

CSV Format:
- Receipt No
- Receipt Date, Shift Day (business timezone, yyyy-MM-dd HH:mm:ss)
- Type (Sale / Return)
- Total (Net), Tax (VAT), Gross Total (2 decimals)
- Submitted At (row creation time)
- Internal ID (receipt Id sent to the push API)
"""
import csv
import io
import logging
import re
from datetime import datetime, tzinfo
from typing import Any, Dict, List, Optional

from ..core import wire_dates
from ..core.normalizer import MONTH_ABBREVIATIONS

logger = logging.getLogger(__name__)

CSV_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def sanitize_filename(name: str) -> str:
    """Lowercase, anything outside [a-z0-9] becomes an underscore."""
    return re.sub(r"[^a-z0-9]", "_", name, flags=re.IGNORECASE).lower()


def _local_wire_date(value: Optional[str], tz: tzinfo) -> Optional[datetime]:
    if not value:
        return None
    parsed = wire_dates.parse(value)
    if parsed is None:
        return None
    return parsed.astimezone(tz)


def _parse_created_at(value: Any, tz: tzinfo) -> Optional[datetime]:
    if isinstance(value, datetime):
        created = value
    elif isinstance(value, str) and value:
        try:
            created = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return None
    else:
        return None
    if created.tzinfo is None:
        return created
    return created.astimezone(tz)


def _money(value: Any) -> str:
    if value is None or value == "":
        return ""
    return f"{float(value):.2f}"


def convert_receipt_to_csv_row(row: Dict[str, Any], tz: tzinfo) -> Dict[str, Any]:
    """
    Convert one stored receipt row to a CSV row.

    Args:
        row: Receipt row as stored (snake_case columns)
        tz: Business timezone used to render wire dates

    Returns:
        Dictionary keyed by CSV header
    """
    receipt_date = _local_wire_date(row.get("receipt_date"), tz)
    shift_day = _local_wire_date(row.get("shift_day"), tz)
    created_at = _parse_created_at(row.get("created_at"), tz)

    return {
        "Receipt No": row.get("receipt_no", ""),
        "Receipt Date": receipt_date.strftime(CSV_DATE_FORMAT) if receipt_date else "Invalid Date String",
        "Shift Day": shift_day.strftime(CSV_DATE_FORMAT) if shift_day else "Invalid Date String",
        "Type": "Return" if row.get("type") == 1 else "Sale",
        "Total (Net)": _money(row.get("total")),
        "Tax (VAT)": _money(row.get("tax")),
        "Gross Total": _money(row.get("gross")),
        "Submitted At": created_at.strftime(CSV_DATE_FORMAT) if created_at else "Invalid Date",
        "Internal ID": row.get("receipt_id", ""),
    }


def filter_by_period(
    rows: List[Dict[str, Any]],
    tz: tzinfo,
    month: Optional[int] = None,
    year: Optional[int] = None
) -> List[Dict[str, Any]]:
    """
    Keep rows whose receipt date falls in the given month and/or year.

    Rows with an unreadable receipt date never match a filter.
    """
    if month is None and year is None:
        return list(rows)

    matched = []
    for row in rows:
        receipt_date = _local_wire_date(row.get("receipt_date"), tz)
        if receipt_date is None:
            continue
        if month is not None and receipt_date.month != month:
            continue
        if year is not None and receipt_date.year != year:
            continue
        matched.append(row)

    logger.info(f"Filtered {len(rows)} receipts to {len(matched)} for month={month} year={year}")
    return matched


def export_filename(retailer_name: str, month: Optional[int] = None, year: Optional[int] = None) -> str:
    """receipts_<retailer>_<year>-<Mon>.csv, or receipts_<retailer>_All.csv when unfiltered."""
    safe_name = sanitize_filename(retailer_name)
    if month is None and year is None:
        return f"receipts_{safe_name}_All.csv"
    month_str = MONTH_ABBREVIATIONS[month - 1] if month is not None else "All"
    year_str = str(year) if year is not None else "AllYears"
    return f"receipts_{safe_name}_{year_str}-{month_str}.csv"


def write_csv(rows: List[Dict[str, Any]], tz: tzinfo) -> str:
    """
    Render stored receipt rows as CSV text (header always written).

    Args:
        rows: Receipt rows as stored
        tz: Business timezone

    Returns:
        CSV document as a string
    """
    buffer = io.StringIO()
    writer = csv.DictWriter(buffer, fieldnames=get_csv_headers())
    writer.writeheader()
    for row in rows:
        writer.writerow(convert_receipt_to_csv_row(row, tz))
    logger.info(f"Rendered {len(rows)} receipts to CSV")
    return buffer.getvalue()


def get_csv_headers() -> List[str]:
    """Get CSV column headers in the correct order."""
    return [
        "Receipt No",
        "Receipt Date",
        "Shift Day",
        "Type",
        "Total (Net)",
        "Tax (VAT)",
        "Gross Total",
        "Submitted At",
        "Internal ID"
    ]
