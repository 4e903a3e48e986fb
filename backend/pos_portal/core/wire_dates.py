"""
Wire date codec.

The push API exchanges timestamps as ``/Date(<ms since epoch>)/``, optionally with a
signed offset suffix (``/Date(1760952600000+0400)/``). The suffix is tolerated when
parsing and never written. Values already in this form are passed along verbatim.
"""
import re
from datetime import datetime, timedelta, timezone
from typing import Optional

WIRE_DATE_PATTERN = re.compile(r"^/Date\((-?\d+)([+-]\d{1,4})?\)/$")

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def is_wire_date(value: object) -> bool:
    """True if ``value`` is a string carrying the wire envelope."""
    return isinstance(value, str) and WIRE_DATE_PATTERN.match(value.strip()) is not None


def encode(moment: datetime) -> str:
    """
    Encode an aware datetime as a wire date string.

    Raises:
        ValueError: if ``moment`` is naive (no instant can be derived)
    """
    if moment.tzinfo is None or moment.tzinfo.utcoffset(moment) is None:
        raise ValueError("Cannot encode a naive datetime to wire format")
    delta = moment - _EPOCH
    millis = (delta.days * 86_400 + delta.seconds) * 1000 + delta.microseconds // 1000
    return f"/Date({millis})/"


def parse_millis(value: str) -> Optional[int]:
    """Return the epoch milliseconds in a wire date string, or None if malformed."""
    if not isinstance(value, str):
        return None
    match = WIRE_DATE_PATTERN.match(value.strip())
    if not match:
        return None
    return int(match.group(1))


def parse(value: str) -> Optional[datetime]:
    """Decode a wire date string into a UTC datetime (None if malformed)."""
    millis = parse_millis(value)
    if millis is None:
        return None
    return _EPOCH + timedelta(milliseconds=millis)
