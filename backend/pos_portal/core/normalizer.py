"""
Receipt Normalizer: turns raw input records into CanonicalReceipt objects.

Raw records come from three places (CSV rows, the manual entry form, pasted
spreadsheet rows) and use the push API's field names:
ReceiptNo, ReceiptDate, ShiftDay, Total, Tax, Type, Gross, SaleChannel.

Dates arrive either human-readable ("20 Oct 2025 02:30 PM", read in the business
timezone) or already in wire format from an earlier round-trip. Wire values are
detected first and passed through untouched; only human-readable values are parsed.
Every date leaves the normalizer in wire format.
"""
import logging
import re
import uuid
from datetime import datetime, time
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Iterable, List, Optional
from zoneinfo import ZoneInfo

from ..errors import ValidationError
from . import wire_dates
from .structures import (
    DEFAULT_SALE_CHANNEL,
    CanonicalReceipt,
    InputSource,
    ReceiptType,
)

logger = logging.getLogger(__name__)

HUMAN_DATE_EXAMPLE = "20 Oct 2025 02:30 PM"

# Raw record key -> field name reported in validation errors
FIELD_NAMES = {
    "ReceiptNo": "receiptNumber",
    "ReceiptDate": "receiptDate",
    "ShiftDay": "shiftDay",
    "Total": "total",
    "Tax": "tax",
    "Type": "type",
    "Gross": "gross",
}
REQUIRED_FIELDS = ("ReceiptNo", "ReceiptDate", "ShiftDay", "Total", "Tax", "Type")

# Formatting allowed around an amount: whitespace, grouping commas, currency signs
_AMOUNT_FORMATTING = re.compile(r"[\s,$€£¥₹]")
_CURRENCY_CODE = re.compile(r"^(?:AED|USD|EUR|GBP|SAR|د\.إ)|(?:AED|USD|EUR|GBP|SAR|د\.إ)$", re.IGNORECASE)
_PLAIN_DECIMAL = re.compile(r"^-?(?:\d+(?:\.\d*)?|\.\d+)$")
MAX_INTEGER_DIGITS = 12

MONTH_ABBREVIATIONS = [
    "Jan", "Feb", "Mar", "Apr", "May", "Jun",
    "Jul", "Aug", "Sep", "Oct", "Nov", "Dec"
]
# English month names regardless of the process locale
_MONTH_NUMBERS = {name.lower(): number for number, name in enumerate(MONTH_ABBREVIATIONS, start=1)}
_HUMAN_DATE = re.compile(r"^(\d{1,2}) ([A-Za-z]{3}) (\d{4}) (\d{1,2}):(\d{2}) ([AP]M)$", re.IGNORECASE)
_WHITESPACE = re.compile(r"\s+")


def _is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and value.strip() == "")


def parse_amount(value: Any, field: str, position: int) -> Decimal:
    """
    Parse a money amount.

    Strings may carry whitespace, grouping commas and a currency sign or code
    ("AED 1,234.50"). What remains must be a plain decimal: no exponents,
    no accounting parentheses, no other letters.

    Raises:
        ValidationError: if the value is not a plain decimal or has more than
            MAX_INTEGER_DIGITS integer digits
    """
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be a number.", field=field, position=position)
    if isinstance(value, (int, float, Decimal)):
        text = str(value)
    else:
        text = _CURRENCY_CODE.sub("", _AMOUNT_FORMATTING.sub("", str(value)))
        if not _PLAIN_DECIMAL.match(text):
            raise ValidationError(
                f"{field} must be a number, got {value!r}.", field=field, position=position
            )
    try:
        amount = Decimal(text)
    except InvalidOperation:
        raise ValidationError(
            f"{field} must be a number, got {value!r}.", field=field, position=position
        )
    if not amount.is_finite():
        raise ValidationError(f"{field} must be a finite number.", field=field, position=position)
    if abs(amount) >= Decimal(10) ** MAX_INTEGER_DIGITS:
        raise ValidationError(
            f"{field} is too large, got {value!r}.", field=field, position=position
        )
    return amount


def parse_type(value: Any, position: int) -> ReceiptType:
    """Accept "0"/0 (Sale) or "1"/1 (Return)."""
    text = str(value).strip() if not isinstance(value, bool) else ""
    if text == "0":
        return ReceiptType.SALE
    if text == "1":
        return ReceiptType.RETURN
    raise ValidationError(
        f"type must be 0 (Sale) or 1 (Return), got {value!r}.", field="type", position=position
    )


def to_wire_date(value: Any, field: str, position: int, tz: ZoneInfo) -> str:
    """
    Convert a date value to wire format.

    Wire-format strings are returned verbatim. Datetimes are encoded directly
    (naive ones are taken to be in ``tz``). Other strings go through parse_human_date.
    """
    if isinstance(value, datetime):
        moment = value if value.tzinfo is not None else value.replace(tzinfo=tz)
        return wire_dates.encode(moment)

    text = str(value).strip()
    if wire_dates.is_wire_date(text):
        return text

    try:
        parsed = parse_human_date(text)
    except ValueError:
        raise ValidationError(
            f'Invalid date "{text}" for {field}. Please use format like "{HUMAN_DATE_EXAMPLE}".',
            field=field,
            position=position,
        )
    return wire_dates.encode(parsed.replace(tzinfo=tz))


def parse_human_date(text: str) -> datetime:
    """
    Parse "20 Oct 2025 02:30 PM" into a naive datetime.

    Month names and AM/PM are matched case-insensitively against English
    abbreviations, so the result does not depend on LC_TIME.

    Raises:
        ValueError: if the text does not match or names an impossible date/time
    """
    match = _HUMAN_DATE.match(_WHITESPACE.sub(" ", text.strip()))
    if not match:
        raise ValueError(f"Not a human-readable date: {text!r}")
    day, month_name, year, hour, minute, meridiem = match.groups()

    month = _MONTH_NUMBERS.get(month_name.lower())
    hour_12 = int(hour)
    if month is None or not 1 <= hour_12 <= 12:
        raise ValueError(f"Not a human-readable date: {text!r}")
    hour_24 = hour_12 % 12 + (12 if meridiem.upper() == "PM" else 0)
    return datetime(int(year), month, int(day), hour_24, int(minute))


def default_shift_day(tz: ZoneInfo, shift_hour: int, now: Optional[datetime] = None) -> str:
    """Today's shift-day (``shift_hour``:00 in the business timezone) in wire format."""
    current = now.astimezone(tz) if now is not None else datetime.now(tz)
    shift_start = datetime.combine(current.date(), time(hour=shift_hour), tzinfo=tz)
    return wire_dates.encode(shift_start)


def normalize(
    raw: Dict[str, Any],
    source: InputSource,
    position: int,
    tz: ZoneInfo,
    shift_hour: int = 9,
    now: Optional[datetime] = None
) -> CanonicalReceipt:
    """
    Normalize one raw record.

    Args:
        raw: Record keyed by push API field names
        source: Which input surface produced the record
        position: 1-based position of the record in its batch
        tz: Business timezone used for human-readable dates
        shift_hour: Shift start hour for manual entries without a ShiftDay
        now: Clock override (tests)

    Returns:
        CanonicalReceipt with wire-format dates

    Raises:
        ValidationError: on a missing field, bad number, bad type code or bad date
    """
    if not isinstance(raw, dict):
        raise ValidationError("Expected an object with receipt fields.", position=position)

    record = dict(raw)
    if source is InputSource.MANUAL:
        # The manual form fixes the shift-day to today's shift and defaults to a Sale
        if _is_blank(record.get("ShiftDay")):
            record["ShiftDay"] = default_shift_day(tz, shift_hour, now)
        if _is_blank(record.get("Type")):
            record["Type"] = "0"

    for key in REQUIRED_FIELDS:
        if _is_blank(record.get(key)):
            field = FIELD_NAMES[key]
            raise ValidationError(f'Missing a value for "{field}".', field=field, position=position)

    total = parse_amount(record["Total"], "total", position)
    if total <= 0:
        raise ValidationError("total must be a positive number.", field="total", position=position)

    tax = parse_amount(record["Tax"], "tax", position)
    if tax < 0:
        raise ValidationError("tax cannot be negative.", field="tax", position=position)

    if _is_blank(record.get("Gross")):
        gross = max(Decimal("0"), total + tax)
    else:
        gross = parse_amount(record["Gross"], "gross", position)
        if gross < 0:
            raise ValidationError("gross cannot be negative.", field="gross", position=position)

    receipt_type = parse_type(record["Type"], position)

    receipt_date = to_wire_date(record["ReceiptDate"], "receiptDate", position, tz)
    shift_day = to_wire_date(record["ShiftDay"], "shiftDay", position, tz)

    sale_channel = record.get("SaleChannel")
    if _is_blank(sale_channel):
        sale_channel = DEFAULT_SALE_CHANNEL

    return CanonicalReceipt(
        id=str(uuid.uuid4()),
        receipt_number=str(record["ReceiptNo"]).strip(),
        receipt_date=receipt_date,
        shift_day=shift_day,
        total=total,
        tax=tax,
        gross=gross,
        type=receipt_type,
        sale_channel=str(sale_channel).strip(),
    )


def normalize_batch(
    raws: Iterable[Dict[str, Any]],
    source: InputSource,
    tz: ZoneInfo,
    shift_hour: int = 9,
    now: Optional[datetime] = None
) -> List[CanonicalReceipt]:
    """
    Normalize a whole batch. The first malformed record rejects the batch.

    Raises:
        ValidationError: with the 1-based position of the offending record
    """
    receipts = [
        normalize(raw, source, position, tz, shift_hour=shift_hour, now=now)
        for position, raw in enumerate(raws, start=1)
    ]
    logger.info(f"Normalized {len(receipts)} {source.value} records")
    return receipts
