"""
Readers turning uploaded CSV text and pasted spreadsheet text into raw records.

The records are plain dicts keyed by push API field names and are handed to the
normalizer unchanged.
"""
import csv
import io
import logging
from typing import Dict, List

from ..errors import ValidationError
from .structures import DEFAULT_SALE_CHANNEL

logger = logging.getLogger(__name__)

CSV_REQUIRED_COLUMNS = ["ReceiptNo", "ReceiptDate", "ShiftDay", "Total", "Tax", "Type"]

# Column order when copying rows out of Excel / Google Sheets
PASTE_COLUMNS = [
    "ReceiptDate", "ReceiptNo", "ShiftDay", "Tax", "Total", "Type", "Gross", "SaleChannel"
]


def read_csv_text(text: str) -> List[Dict[str, str]]:
    """
    Read a CSV upload with a header row. Blank lines are skipped.

    Raises:
        ValidationError: empty file or a required column is absent
    """
    reader = csv.DictReader(io.StringIO(text.lstrip("\ufeff")))
    headers = [h.strip() for h in (reader.fieldnames or [])]
    if not headers:
        raise ValidationError("CSV file is empty.")

    missing = [c for c in CSV_REQUIRED_COLUMNS if c not in headers]
    if missing:
        raise ValidationError(
            f"CSV is missing required column(s): {', '.join(missing)}.", field=missing[0]
        )

    rows = []
    for raw_row in reader:
        row = {(k or "").strip(): (v or "").strip() for k, v in raw_row.items() if k is not None}
        if not any(row.values()):
            continue
        rows.append(row)

    logger.info(f"Read {len(rows)} rows from CSV upload")
    return rows


def read_pasted_rows(text: str, max_rows: int = 50) -> List[Dict[str, str]]:
    """
    Read tab-separated rows pasted from a spreadsheet (no header row).

    Cells are assigned by PASTE_COLUMNS order; missing cells become "".
    Rows past ``max_rows`` are dropped with a warning.
    """
    reader = csv.reader(io.StringIO(text), delimiter="\t")
    rows: List[Dict[str, str]] = []
    total_seen = 0
    for cells in reader:
        if not any(cell.strip() for cell in cells):
            continue
        total_seen += 1
        if len(rows) >= max_rows:
            continue
        row = {key: (cells[i].strip() if i < len(cells) else "") for i, key in enumerate(PASTE_COLUMNS)}
        if not row["Type"]:
            row["Type"] = "0"
        if not row["SaleChannel"]:
            row["SaleChannel"] = DEFAULT_SALE_CHANNEL
        rows.append(row)

    if total_seen > max_rows:
        logger.warning(f"Too many pasted rows ({total_seen}). Keeping the first {max_rows} only.")
    return rows
