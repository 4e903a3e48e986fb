"""
Pydantic models for API request/response schemas and the push API response.
"""
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


# ==================== Push API response ====================

SHIFT_SUCCESS_CODE = "200"


def _code_to_str(v: Any) -> Any:
    """Result codes are strings on the wire, but tolerate bare numbers."""
    if isinstance(v, int) and not isinstance(v, bool):
        return str(v)
    return v


class ShiftResult(BaseModel):
    """One PushShiftReturnResult entry; positionally matches the shift that was sent."""
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    return_code: str = Field(alias="ReturnCode")
    error_message: Optional[str] = Field(default=None, alias="ErrorMessage")
    error_details: Optional[str] = Field(default=None, alias="ErrorDetails")
    shift_day: Optional[str] = Field(default=None, alias="ShiftDay")
    asset: Optional[str] = Field(default=None, alias="Asset")
    brand: Optional[str] = Field(default=None, alias="Brand")
    retailer: Optional[str] = Field(default=None, alias="Retailer")
    unit: Optional[str] = Field(default=None, alias="Unit")

    @field_validator("return_code", mode="before")
    @classmethod
    def coerce_return_code(cls, v: Any) -> Any:
        return _code_to_str(v)

    @property
    def succeeded(self) -> bool:
        """True when the push API accepted (and committed) this shift."""
        return self.return_code == SHIFT_SUCCESS_CODE


class SubmissionResult(BaseModel):
    """Decoded push API response."""
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    overall_result_code: str = Field(alias="ResultCode")
    overall_message: Optional[str] = Field(default=None, alias="ReturnMessage")
    return_error: Optional[str] = Field(default=None, alias="ReturnError")
    per_shift_results: Optional[List[ShiftResult]] = Field(
        default=None, alias="PushShiftReturnResult"
    )

    @field_validator("overall_result_code", mode="before")
    @classmethod
    def coerce_result_code(cls, v: Any) -> Any:
        return _code_to_str(v)

    @property
    def shift_results(self) -> List[ShiftResult]:
        return self.per_shift_results or []

    def to_response(self) -> Dict[str, Any]:
        """Body echoed back to the portal UI (push API field names)."""
        return self.model_dump(by_alias=True, exclude_none=False)


# ==================== Requests ====================

class UploadSalesRequest(BaseModel):
    """Receipts submitted from the CSV uploader, manual form or spreadsheet grid."""
    retailer_key: Optional[str] = Field(default=None, alias="retailerKey")
    receipts: List[Dict[str, Any]] = Field(default_factory=list)
    source: Literal["csv", "manual", "paste"] = "csv"

    model_config = ConfigDict(
        populate_by_name=True,
        json_schema_extra={
            "example": {
                "retailerKey": "R001",
                "source": "manual",
                "receipts": [
                    {
                        "ReceiptNo": "INV-1001",
                        "ReceiptDate": "20 Oct 2025 02:30 PM",
                        "ShiftDay": "20 Oct 2025 09:00 AM",
                        "Total": "100.00",
                        "Tax": "5.00",
                        "Type": "0"
                    }
                ]
            }
        }
    )


class PasteSalesRequest(BaseModel):
    """Tab-separated rows pasted from a spreadsheet."""
    retailer_key: Optional[str] = Field(default=None, alias="retailerKey")
    paste_data: Optional[str] = Field(default=None, alias="pasteData")

    model_config = ConfigDict(populate_by_name=True)


class DeleteReceiptRequest(BaseModel):
    """Request model for deleting one persisted receipt."""
    retailer_key: Optional[str] = Field(default=None, alias="retailerKey")
    doc_id: Optional[str] = Field(default=None, alias="docId")

    model_config = ConfigDict(populate_by_name=True)


# ==================== Responses ====================

class RetailerInfo(BaseModel):
    """Public retailer listing entry (no credentials)."""
    key: str
    name: str


class PersistedReceiptResponse(BaseModel):
    """Persisted receipt as returned by the query surface."""
    id: str
    receiptId: Optional[str] = None
    receiptNo: str
    receiptDate: str
    shiftDay: str
    total: float
    tax: float
    gross: Optional[float] = None
    type: int
    saleChannel: Optional[str] = None
    retailerKey: Optional[str] = None
    retailerName: Optional[str] = None
    mall: Optional[str] = None
    brand: Optional[str] = None
    unit: Optional[str] = None
    createdAt: Optional[str] = None


class DeleteReceiptResponse(BaseModel):
    success: bool
    docId: str
