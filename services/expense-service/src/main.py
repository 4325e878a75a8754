"""
Expense Service turns receipt photos into guarded expense drafts and computes the
spending summaries shown on the dashboard. It never reads or writes the expense
store itself: callers pass the reference lists and rows they already loaded.
"""

from __future__ import annotations

import datetime
import logging
import os
import sys
from datetime import date
from pathlib import Path
from typing import Any, Callable, List, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field
from typing_extensions import Literal

# Path wiring so the service can import the shared package when launched via
# `uvicorn main:app --app-dir services/expense-service/src`.
SERVICE_SRC = Path(__file__).resolve().parent
SERVICE_SRC_STR = str(SERVICE_SRC)
if SERVICE_SRC_STR not in sys.path:
    sys.path.append(SERVICE_SRC_STR)

SERVICES_ROOT = SERVICE_SRC.parents[1]
SERVICES_ROOT_STR = str(SERVICES_ROOT)
if SERVICES_ROOT_STR not in sys.path:
    sys.path.append(SERVICES_ROOT_STR)

from shared.observability.telemetry import install_request_context, setup_telemetry  # noqa: E402

from date_ranges import resolve_range  # noqa: E402
from draft_extraction import DraftExtractionService  # noqa: E402
from draft_model import DraftExpense, ReferenceAccount, ReferenceCategory  # noqa: E402
from draft_settings import DraftGuardrails, load_draft_guardrails, load_receipt_provider_settings  # noqa: E402
from errors import ConfigurationError, DraftExtractionError  # noqa: E402
from expense_filters import filter_expenses  # noqa: E402
from receipt_inputs import parse_receipt_image  # noqa: E402
from receipt_provider import build_receipt_provider  # noqa: E402
from spending_model import ExpenseRecord, RangeOption, SpendingBucket, SpendingSummary, TrendPoint  # noqa: E402
from spending_summary import compute_spending_summary, sum_amounts  # noqa: E402

SERVICE_NAME = "expense-service"

app = FastAPI(title="Expense Service")
setup_telemetry(app, service_name=SERVICE_NAME)
install_request_context(app)
logger = logging.getLogger(__name__)

DEFAULT_CORS_ORIGINS: List[str] = [
    "http://localhost:3000",
    "http://127.0.0.1:3000",
]

CORS_ENV_KEYS = (
    "EXPENSE_SERVICE_CORS_ORIGINS",
    "CORS_ALLOWED_ORIGINS",
)


def _resolve_cors_origins() -> List[str]:
    """
    Determine which origins may call the service.

    A comma-separated list can be provided via any env var in `CORS_ENV_KEYS`;
    otherwise the local Next.js dev server origins are allowed.
    """

    for key in CORS_ENV_KEYS:
        raw_value = os.getenv(key)
        if not raw_value:
            continue
        origins = [origin.strip() for origin in raw_value.split(",") if origin.strip()]
        if origins:
            if any(origin == "*" for origin in origins):
                return ["*"]
            return origins
    return DEFAULT_CORS_ORIGINS


app.add_middleware(
    CORSMiddleware,
    allow_origins=_resolve_cors_origins(),
    allow_methods=["GET", "POST"],
    allow_headers=["*"],
    allow_credentials=False,
)


def build_extraction_service(guardrails: DraftGuardrails) -> DraftExtractionService:
    """
    Build a request-scoped extraction service from the current environment.

    Raises:
        ConfigurationError: when the provider (or its credential) is not configured.
    """

    settings = load_receipt_provider_settings()
    try:
        provider = build_receipt_provider(settings.provider_name, settings=settings)
    except (ValueError, FileNotFoundError) as exc:
        raise ConfigurationError(f"Receipt draft provider is not configured: {exc}") from exc
    return DraftExtractionService(provider, guardrails)


DraftServiceFactory = Callable[[DraftGuardrails], DraftExtractionService]
app.state.draft_service_factory = build_extraction_service


def _log_event(event: str, request: Request, **extra: Any) -> None:
    logger.info(
        {
            "event": event,
            "request_id": getattr(request.state, "request_id", None),
            **extra,
        }
    )


@app.exception_handler(DraftExtractionError)
async def draft_extraction_error_handler(request: Request, exc: DraftExtractionError) -> JSONResponse:
    log = logger.warning if exc.status_code < 500 else logger.error
    log(
        {
            "event": "receipt_draft_failed",
            "request_id": getattr(request.state, "request_id", None),
            "kind": exc.kind,
            "status_code": exc.status_code,
        }
    )
    return JSONResponse(status_code=exc.status_code, content=exc.to_payload())


@app.exception_handler(RequestValidationError)
async def request_validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    # Only locations and messages are echoed; inputs may contain image data.
    problems = [
        f"{'.'.join(str(part) for part in error.get('loc', ()) if part != 'body') or 'body'}: {error.get('msg', 'invalid')}"
        for error in exc.errors()
    ]
    return JSONResponse(status_code=400, content={"error": "Invalid JSON body: " + "; ".join(problems)})


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    # Message and payload stay out of the response; the traceback goes to the log.
    logger.exception(
        {
            "event": "unhandled_error",
            "request_id": getattr(request.state, "request_id", None),
            "error_type": type(exc).__name__,
            "path": request.url.path,
        }
    )
    return JSONResponse(status_code=500, content={"error": "Server error"})


class ParseReceiptPayload(BaseModel):
    # Left loosely typed: image checks and reference-list coercion happen in the
    # pipeline so that malformed lists degrade to empty instead of failing.
    imageDataUrl: Any = None
    categories: Any = None
    accounts: Any = None


class DraftExpenseModel(BaseModel):
    amount: Optional[int] = None
    expense_date: Optional[str] = None
    description: Optional[str] = None
    category_id: Optional[str] = None
    account_id: Optional[str] = None
    confidence: Literal["high", "medium", "low"] = "low"
    warnings: List[str] = Field(default_factory=list)

    @classmethod
    def from_dataclass(cls, draft: DraftExpense) -> "DraftExpenseModel":
        return cls(**draft.to_dict())


class ParseReceiptResponseModel(BaseModel):
    draft: DraftExpenseModel


class CategoryModel(BaseModel):
    id: str
    name: str = ""

    def to_dataclass(self) -> ReferenceCategory:
        return ReferenceCategory(id=self.id, name=self.name)


class AccountModel(BaseModel):
    id: str
    name: str = ""
    type: str = ""

    def to_dataclass(self) -> ReferenceAccount:
        return ReferenceAccount(id=self.id, name=self.name, type=self.type)


class ExpenseModel(BaseModel):
    id: str
    amount: float
    expense_date: date
    category_id: Optional[str] = None
    account_id: Optional[str] = None
    description: Optional[str] = None

    def to_dataclass(self) -> ExpenseRecord:
        return ExpenseRecord(
            id=self.id,
            amount=self.amount,
            expense_date=self.expense_date,
            category_id=self.category_id,
            account_id=self.account_id,
            description=self.description,
        )

    @classmethod
    def from_dataclass(cls, expense: ExpenseRecord) -> "ExpenseModel":
        return cls(
            id=expense.id,
            amount=expense.amount,
            expense_date=expense.expense_date,
            category_id=expense.category_id,
            account_id=expense.account_id,
            description=expense.description,
        )


class SpendingSummaryRequestModel(BaseModel):
    range: RangeOption = "this_month"
    today: Optional[date] = None
    top_n: Optional[int] = Field(default=None, ge=0)
    expenses: List[ExpenseModel] = Field(default_factory=list)
    categories: List[CategoryModel] = Field(default_factory=list)
    accounts: List[AccountModel] = Field(default_factory=list)


class SpendingBucketModel(BaseModel):
    key: str
    label: str
    total: float

    @classmethod
    def from_dataclass(cls, bucket: SpendingBucket) -> "SpendingBucketModel":
        return cls(key=bucket.key, label=bucket.label, total=bucket.total)


class TrendPointModel(BaseModel):
    date: datetime.date
    total: float

    @classmethod
    def from_dataclass(cls, point: TrendPoint) -> "TrendPointModel":
        return cls(date=point.date, total=point.total)


class SpendingSummaryResponseModel(BaseModel):
    range_label: str
    total_spend: float
    transaction_count: int
    days_in_range: Optional[int] = None
    average_per_day: Optional[float] = None
    by_category: List[SpendingBucketModel] = Field(default_factory=list)
    by_account: List[SpendingBucketModel] = Field(default_factory=list)
    others_total: float = 0.0
    trend: List[TrendPointModel] = Field(default_factory=list)
    recent_trend: List[TrendPointModel] = Field(default_factory=list)

    @classmethod
    def from_dataclass(cls, summary: SpendingSummary) -> "SpendingSummaryResponseModel":
        return cls(
            range_label=summary.range_label,
            total_spend=summary.total_spend,
            transaction_count=summary.transaction_count,
            days_in_range=summary.days_in_range,
            average_per_day=summary.average_per_day,
            by_category=[SpendingBucketModel.from_dataclass(bucket) for bucket in summary.by_category],
            by_account=[SpendingBucketModel.from_dataclass(bucket) for bucket in summary.by_account],
            others_total=summary.others_total,
            trend=[TrendPointModel.from_dataclass(point) for point in summary.trend],
            recent_trend=[TrendPointModel.from_dataclass(point) for point in summary.recent_trend],
        )


class ExpenseFilterRequestModel(BaseModel):
    expenses: List[ExpenseModel] = Field(default_factory=list)
    accounts: List[AccountModel] = Field(default_factory=list)
    category_tokens: List[str] = Field(default_factory=list)
    search: str = ""


class ExpenseFilterResponseModel(BaseModel):
    expenses: List[ExpenseModel] = Field(default_factory=list)
    count: int
    total: float


@app.get("/health")
def health_check() -> dict:
    """
    Report overall service health; expects no payload.
    Returns a minimal status object for uptime probes and orchestrators.
    """
    return {"status": "ok", "service": SERVICE_NAME}


@app.post("/expenses/parse", response_model=ParseReceiptResponseModel)
def parse_receipt(payload: ParseReceiptPayload, request: Request) -> ParseReceiptResponseModel:
    """
    Extract a draft expense from a receipt photo.
    Expects `{imageDataUrl, categories, accounts}`; the image is validated before any
    configuration is loaded or any outbound call is made.
    Returns `{draft}`; the draft is a suggestion only and is never stored.
    """
    guardrails = load_draft_guardrails()
    image = parse_receipt_image(payload.imageDataUrl, guardrails.max_image_bytes)

    factory: DraftServiceFactory = app.state.draft_service_factory
    service = factory(guardrails)
    try:
        _log_event(
            "receipt_draft_started",
            request,
            provider=service.provider_name,
            image_bytes=image.byte_size,
        )
        draft = service.extract_from_image(image, payload.categories, payload.accounts)
    finally:
        service.close()

    _log_event(
        "receipt_draft_completed",
        request,
        provider=service.provider_name,
        confidence=draft.confidence,
        warning_count=len(draft.warnings),
    )
    return ParseReceiptResponseModel(draft=DraftExpenseModel.from_dataclass(draft))


@app.post("/dashboard/summary", response_model=SpendingSummaryResponseModel)
def dashboard_summary(payload: SpendingSummaryRequestModel, request: Request) -> SpendingSummaryResponseModel:
    """
    Compute dashboard figures (totals, per-day average, buckets, daily trend) for a range.
    Expects the caller's expense rows plus categories/accounts used for labels.
    """
    today = payload.today or date.today()
    bounds = resolve_range(payload.range, today)

    summary = compute_spending_summary(
        [expense.to_dataclass() for expense in payload.expenses],
        [category.to_dataclass() for category in payload.categories],
        [account.to_dataclass() for account in payload.accounts],
        bounds,
        today,
        top_n=payload.top_n,
    )
    _log_event(
        "dashboard_summary_computed",
        request,
        range=payload.range,
        transaction_count=summary.transaction_count,
    )
    return SpendingSummaryResponseModel.from_dataclass(summary)


@app.post("/expenses/filter", response_model=ExpenseFilterResponseModel)
def filter_expense_list(payload: ExpenseFilterRequestModel) -> ExpenseFilterResponseModel:
    """
    Apply the expense list filters (category tokens, free-text search).
    Returns the matching rows with their count and total.
    """
    matches = filter_expenses(
        [expense.to_dataclass() for expense in payload.expenses],
        [account.to_dataclass() for account in payload.accounts],
        category_tokens=payload.category_tokens,
        search=payload.search,
    )
    return ExpenseFilterResponseModel(
        expenses=[ExpenseModel.from_dataclass(expense) for expense in matches],
        count=len(matches),
        total=sum_amounts(matches),
    )
