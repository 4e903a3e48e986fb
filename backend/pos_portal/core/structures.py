"""
Receipt pipeline data structures.

CanonicalReceipt  - normalized receipt, dates already in wire format
WireReceipt       - one PushReceipts entry as sent to the push API
SubmissionUnit    - one shift's worth of receipts (one PushReceiptShifts entry)
"""
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum, IntEnum
from typing import Any, Dict, List, Optional

DEFAULT_SALE_CHANNEL = "Store-sales"


class ReceiptType(IntEnum):
    """Transaction type code expected by the push API."""
    SALE = 0
    RETURN = 1


class InputSource(Enum):
    """Where a raw record came from."""
    CSV_ROW = "csv"
    MANUAL = "manual"
    PASTED = "paste"


@dataclass(frozen=True)
class CanonicalReceipt:
    """A validated receipt ready for grouping."""
    id: str
    receipt_number: str
    receipt_date: str  # wire format
    shift_day: str  # wire format
    total: Decimal
    tax: Decimal
    gross: Optional[Decimal]
    type: ReceiptType
    sale_channel: str = DEFAULT_SALE_CHANNEL


@dataclass(frozen=True)
class WireReceipt:
    """Receipt projected to the PushReceipts payload shape."""
    Id: str
    ReceiptDate: str
    ReceiptNo: str
    Tax: float
    Total: float
    Type: int
    Gross: Optional[float]
    SaleChannel: str

    def to_payload(self) -> Dict[str, Any]:
        return {
            "Id": self.Id,
            "ReceiptDate": self.ReceiptDate,
            "ReceiptNo": self.ReceiptNo,
            "Tax": self.Tax,
            "Total": self.Total,
            "Type": self.Type,
            "Gross": self.Gross,
            "SaleChannel": self.SaleChannel,
        }


@dataclass
class SubmissionUnit:
    """All receipts of one shift-day within a batch."""
    mall: str
    retailer_name: str
    brand: str
    unit: str
    shift_day_wire: str
    receipts: List[WireReceipt] = field(default_factory=list)

    def to_payload(self) -> Dict[str, Any]:
        """Serialize as a PushReceiptShifts entry."""
        return {
            "Mall": self.mall,
            "Retailer": self.retailer_name,
            "Brand": self.brand,
            "Unit": self.unit,
            "ShiftDay": self.shift_day_wire,
            "PushReceipts": [r.to_payload() for r in self.receipts],
        }
