"""
FastAPI application for the POS receipt submission portal.

Run instructions:
1. Create virtual environment:
   python -m venv venv
   source venv/bin/activate  # On Windows: venv\\Scripts\\activate

2. Install the package:
   pip install -e ".[test]"

3. Copy and configure environment:
   cp backend/.env.example backend/.env
   # Edit .env with RETAILERS_CONFIG, EXTERNAL_API_URL, credentials and Supabase keys

4. Run server:
   python backend/run_backend.py

Example curl request:
curl -X POST "http://127.0.0.1:8000/api/upload-sales/csv" \
  -F "retailerKey=R001" -F "file=@/path/to/sales.csv"
"""
import logging
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any, Dict, List, Optional

from fastapi import Depends, FastAPI, File, Form, Query, Request, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response

from .config import Settings, get_settings
from .core.input_readers import read_csv_text, read_pasted_rows
from .core.reconciliation import Reconciler
from .core.structures import InputSource
from .core.submission_processor import business_timezone, process_sales_submission
from .errors import (
    ConfigurationError,
    ExternalRejection,
    RetailerNotFoundError,
    TransportError,
    ValidationError,
)
from .exporters.csv_exporter import export_filename, filter_by_period, write_csv
from .models import (
    DeleteReceiptRequest,
    DeleteReceiptResponse,
    PasteSalesRequest,
    PersistedReceiptResponse,
    RetailerInfo,
    UploadSalesRequest,
)
from .services.database.receipt_store import ReceiptStore, create_receipt_store
from .services.external.push_client import PushClient
from .services.retailers.registry import RetailerRegistry

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Build the long-lived collaborators once and keep them on app.state."""
    settings = get_settings()
    logging.basicConfig(level=getattr(logging, settings.log_level.upper(), logging.INFO))
    app.state.settings = settings
    app.state.registry = RetailerRegistry.from_json(settings.retailers_config)
    app.state.push_client = PushClient(settings.external_api_url, timeout=settings.external_api_timeout)
    try:
        app.state.store = create_receipt_store(settings)
    except ConfigurationError as e:
        logger.error(f"Receipt store unavailable: {e}")
        app.state.store = None
    logger.info(f"POS portal started (env={settings.env})")
    yield


app = FastAPI(
    title="POS Receipt Portal",
    description="Collects retailer sales receipts and pushes them to the mall sales API",
    version="1.0.0",
    lifespan=lifespan
)

# CORS configuration - allow common development ports
# In production, should restrict to specific domains
app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        "http://localhost:3000",
        "http://localhost:3001",
        "http://localhost:8000",
        "http://127.0.0.1:3000",
        "http://127.0.0.1:3001",
        "http://127.0.0.1:8000",
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ==================== Dependencies ====================

def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_registry(request: Request) -> RetailerRegistry:
    return request.app.state.registry


def get_push_client(request: Request) -> PushClient:
    return request.app.state.push_client


def get_store(request: Request) -> Optional[ReceiptStore]:
    return request.app.state.store


def get_reconciler(store: Optional[ReceiptStore] = Depends(get_store)) -> Optional[Reconciler]:
    if store is None:
        return None
    return Reconciler(store)


def require_store(store: Optional[ReceiptStore] = Depends(get_store)) -> ReceiptStore:
    if store is None:
        raise ConfigurationError("Receipt store is not configured (SUPABASE_URL / SUPABASE_ANON_KEY).")
    return store


# ==================== Error handlers ====================

@app.exception_handler(ConfigurationError)
async def configuration_error_handler(request: Request, exc: ConfigurationError):
    logger.error(f"[API {request.url.path}] Server configuration error: {exc}")
    return JSONResponse(status_code=500, content={"error": ConfigurationError.public_message})


@app.exception_handler(RetailerNotFoundError)
async def retailer_not_found_handler(request: Request, exc: RetailerNotFoundError):
    logger.warning(f"[API {request.url.path}] {exc}")
    return JSONResponse(status_code=400, content={"error": str(exc)})


@app.exception_handler(ValidationError)
async def validation_error_handler(request: Request, exc: ValidationError):
    logger.warning(f"[API {request.url.path}] Validation failed: {exc}")
    return JSONResponse(
        status_code=400,
        content={"error": str(exc), "field": exc.field, "position": exc.position}
    )


@app.exception_handler(TransportError)
async def transport_error_handler(request: Request, exc: TransportError):
    logger.error(f"[API {request.url.path}] External API transport failure: {exc}")
    return JSONResponse(status_code=502, content={"error": str(exc)})


@app.exception_handler(ExternalRejection)
async def external_rejection_handler(request: Request, exc: ExternalRejection):
    status_code = exc.status_code if 400 <= exc.status_code < 600 else 502
    return JSONResponse(status_code=status_code, content={"error": exc.message})


# ==================== Routes ====================

@app.get("/health", tags=["System"])
async def health():
    """Health check endpoint."""
    return {"status": "ok"}


@app.get("/api/retailers", response_model=List[RetailerInfo], tags=["Retailers"])
async def list_retailers(registry: RetailerRegistry = Depends(get_registry)):
    """Public retailer list for the selection dropdowns (key and display name only)."""
    retailers = registry.list_public()
    logger.info(f"[API /retailers] Returning {len(retailers)} retailers")
    return retailers


async def _submit(
    raw_records: List[Dict[str, Any]],
    source: InputSource,
    retailer_key: str,
    registry: RetailerRegistry,
    push_client: PushClient,
    reconciler: Optional[Reconciler],
    settings: Settings
) -> Dict[str, Any]:
    logger.info(f"[API /upload-sales] Received {len(raw_records)} {source.value} receipts for retailer {retailer_key}")
    outcome = await process_sales_submission(
        raw_records,
        source,
        retailer_key,
        registry=registry,
        push_client=push_client,
        reconciler=reconciler,
        settings=settings,
    )
    logger.info(
        f"[API /upload-sales] Result for {retailer_key}: ResultCode={outcome.result.overall_result_code}, "
        f"persisted={outcome.summary.persisted_count}/{len(raw_records)}"
    )
    return outcome.to_response()


@app.post("/api/upload-sales", tags=["Sales"])
async def upload_sales(
    request: UploadSalesRequest,
    registry: RetailerRegistry = Depends(get_registry),
    push_client: PushClient = Depends(get_push_client),
    reconciler: Optional[Reconciler] = Depends(get_reconciler),
    settings: Settings = Depends(get_app_settings)
):
    """
    Submit receipts from the CSV uploader, manual form or spreadsheet grid.

    Returns the push API response body (ResultCode, ReturnMessage, PushShiftReturnResult)
    plus PersistedCount, the number of receipts stored locally.
    """
    if not request.receipts:
        raise ValidationError("No receipt data provided.", field="receipts")
    if not request.retailer_key:
        raise ValidationError("No retailer selected.", field="retailerKey")

    return await _submit(
        request.receipts,
        InputSource(request.source),
        request.retailer_key,
        registry,
        push_client,
        reconciler,
        settings,
    )


@app.post("/api/upload-sales/csv", tags=["Sales"])
async def upload_sales_csv(
    retailerKey: Optional[str] = Form(None),
    file: UploadFile = File(...),
    registry: RetailerRegistry = Depends(get_registry),
    push_client: PushClient = Depends(get_push_client),
    reconciler: Optional[Reconciler] = Depends(get_reconciler),
    settings: Settings = Depends(get_app_settings)
):
    """
    Submit a CSV file with a header row.

    Required columns: ReceiptNo, ReceiptDate, ShiftDay, Total, Tax, Type.
    Optional columns: Gross, SaleChannel.
    """
    if not retailerKey:
        raise ValidationError("No retailer selected.", field="retailerKey")

    contents = await file.read()
    if len(contents) == 0:
        raise ValidationError("Empty file.", field="file")

    try:
        text = contents.decode("utf-8-sig")
    except UnicodeDecodeError:
        raise ValidationError("CSV file must be UTF-8 encoded.", field="file")

    rows = read_csv_text(text)
    if not rows:
        raise ValidationError("No receipt data provided.", field="file")

    logger.info(f"[API /upload-sales/csv] Parsed {len(rows)} rows from {file.filename}")
    return await _submit(rows, InputSource.CSV_ROW, retailerKey, registry, push_client, reconciler, settings)


@app.post("/api/upload-sales/paste", tags=["Sales"])
async def upload_sales_paste(
    request: PasteSalesRequest,
    registry: RetailerRegistry = Depends(get_registry),
    push_client: PushClient = Depends(get_push_client),
    reconciler: Optional[Reconciler] = Depends(get_reconciler),
    settings: Settings = Depends(get_app_settings)
):
    """
    Submit tab-separated rows copied from a spreadsheet (no header row).

    Column order: ReceiptDate, ReceiptNo, ShiftDay, Tax, Total, Type, Gross, SaleChannel.
    """
    if not request.retailer_key:
        raise ValidationError("No retailer selected.", field="retailerKey")

    rows = read_pasted_rows(request.paste_data or "", max_rows=settings.max_paste_rows)
    if not rows:
        raise ValidationError("No receipt data provided.", field="pasteData")

    return await _submit(
        rows, InputSource.PASTED, request.retailer_key, registry, push_client, reconciler, settings
    )


def _to_receipt_response(row: Dict[str, Any]) -> Dict[str, Any]:
    """Stored snake_case row -> camelCase payload for the data table."""
    created_at = row.get("created_at")
    if isinstance(created_at, datetime):
        created_at = created_at.isoformat()

    return PersistedReceiptResponse(
        id=str(row["id"]),
        receiptId=row.get("receipt_id"),
        receiptNo=row.get("receipt_no", ""),
        receiptDate=row.get("receipt_date", ""),
        shiftDay=row.get("shift_day", ""),
        total=row.get("total") or 0,
        tax=row.get("tax") or 0,
        gross=row.get("gross"),
        type=row.get("type") or 0,
        saleChannel=row.get("sale_channel"),
        retailerKey=row.get("retailer_key"),
        retailerName=row.get("retailer_name"),
        mall=row.get("mall"),
        brand=row.get("brand"),
        unit=row.get("unit"),
        createdAt=created_at,
    ).model_dump()


@app.get("/api/get-receipts", response_model=List[PersistedReceiptResponse], tags=["Receipts"])
def get_receipts(
    retailerKey: Optional[str] = Query(None),
    registry: RetailerRegistry = Depends(get_registry),
    store: ReceiptStore = Depends(require_store)
):
    """Persisted receipts of one retailer, newest first."""
    if not retailerKey:
        raise ValidationError("Missing retailerKey query parameter.", field="retailerKey")
    retailer = registry.resolve(retailerKey)

    logger.info(f"[API /get-receipts] Fetching receipts for {retailer.collection_name}")
    try:
        rows = store.query(retailer.collection_name)
    except Exception as e:
        logger.error(f"[API /get-receipts] Error fetching receipts for {retailerKey}: {e}", exc_info=True)
        return JSONResponse(status_code=500, content={"error": "Failed to fetch receipts data."})

    return [_to_receipt_response(row) for row in rows]


@app.post("/api/delete-receipt", response_model=DeleteReceiptResponse, tags=["Receipts"])
def delete_receipt(
    request: DeleteReceiptRequest,
    registry: RetailerRegistry = Depends(get_registry),
    store: ReceiptStore = Depends(require_store)
):
    """
    Delete one persisted receipt by its document id.

    Only the local copy is removed; the push API is not told.
    """
    if not request.retailer_key or not request.doc_id:
        raise ValidationError(
            "Missing retailerKey or docId.",
            field="retailerKey" if not request.retailer_key else "docId"
        )
    retailer = registry.resolve(request.retailer_key)

    logger.info(f"[API /delete-receipt] Deleting {request.doc_id} from {retailer.collection_name}")
    try:
        store.delete(retailer.collection_name, request.doc_id)
    except Exception as e:
        logger.error(f"[API /delete-receipt] Error deleting {request.doc_id}: {e}", exc_info=True)
        return JSONResponse(status_code=500, content={"error": "Failed to delete receipt."})

    return DeleteReceiptResponse(success=True, docId=request.doc_id)


@app.get("/api/export-receipts", tags=["Receipts"])
def export_receipts(
    retailerKey: Optional[str] = Query(None),
    month: Optional[int] = Query(None, ge=1, le=12),
    year: Optional[int] = Query(None, ge=1970),
    registry: RetailerRegistry = Depends(get_registry),
    store: ReceiptStore = Depends(require_store),
    settings: Settings = Depends(get_app_settings)
):
    """
    Download persisted receipts as CSV, optionally filtered by receipt month/year.

    Dates are rendered in the business timezone.
    """
    if not retailerKey:
        raise ValidationError("Missing retailerKey query parameter.", field="retailerKey")
    retailer = registry.resolve(retailerKey)
    tz = business_timezone(settings)

    try:
        rows = store.query(retailer.collection_name)
    except Exception as e:
        logger.error(f"[API /export-receipts] Error fetching receipts for {retailerKey}: {e}", exc_info=True)
        return JSONResponse(status_code=500, content={"error": "Failed to fetch receipts data."})

    rows = filter_by_period(rows, tz, month=month, year=year)
    filename = export_filename(retailer.display_name, month=month, year=year)
    logger.info(f"[API /export-receipts] Exporting {len(rows)} receipts as {filename}")

    return Response(
        content=write_csv(rows, tz),
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'}
    )
