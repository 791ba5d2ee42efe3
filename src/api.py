"""
api.py

REST API layer for the Project Portal dashboard.

Framework : FastAPI
Session   : No real authentication.  POST /api/v1/session records the
            signed-in email and user type in the same storage the store
            uses; the store reads that email to stamp report authors.

Structure
---------
  Routers (all prefixed under /api/v1)
  ├── /session      - sign in / current session / sign out
  ├── /dashboard    - every collection, the stats and the profile
  ├── /stats        - dashboard statistics
  ├── /reports      - search, create, update status
  ├── /invoices     - search (+ summary), create, update status
  ├── /providers    - search, create, update
  ├── /files        - list, upload metadata (with derivation), delete
  └── /profile      - read, get-or-create, update

Error handling
--------------
  NotFoundError      → 404
  ApplicationError   → 422
  ValueError         → 422
  Unhandled          → 500 (FastAPI default)

Response envelope
-----------------
  Success  : { "data": <payload> }
  Error    : { "detail": "<message>" }

Running
-------
  uvicorn main:app --reload
"""

from __future__ import annotations

import dataclasses
import datetime
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, FastAPI, Path, Query, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi_mcp import FastApiMCP
from pydantic import BaseModel, EmailStr, Field, field_validator

from application import (
    # Exceptions
    ApplicationError,
    NotFoundError,
    # Commands
    AddInvoiceCommand,
    AddReportCommand,
    AddServiceProviderCommand,
    LoginCommand,
    # Store & session use cases
    DashboardStore,
    GetSessionUseCase,
    LoginUseCase,
    LogoutUseCase,
)
from infrastructure import build_store
from model import (
    InvoiceStatus,
    ProviderStatus,
    ReportStatus,
    ReportType,
    Theme,
    UploadedFile,
    UserType,
)
from service import UNKNOWN_AUTHOR
from settings import get_settings


# ---------------------------------------------------------------------------
# App bootstrap
# ---------------------------------------------------------------------------

_settings = get_settings()

app = FastAPI(
    title=f"{_settings.app_name} API",
    version=_settings.api_version,
    description=(
        "Project dashboard API: reports, invoices, service providers, "
        "uploaded files with record derivation, and the user profile."
    ),
    docs_url="/docs",
    redoc_url="/redoc",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ---------------------------------------------------------------------------
# Global exception handlers
# ---------------------------------------------------------------------------

@app.exception_handler(NotFoundError)
async def not_found_handler(request, exc: NotFoundError):
    return JSONResponse(status_code=404, content={"detail": str(exc)})


@app.exception_handler(ApplicationError)
async def application_error_handler(request, exc: ApplicationError):
    return JSONResponse(status_code=422, content={"detail": str(exc)})


@app.exception_handler(ValueError)
async def value_error_handler(request, exc: ValueError):
    return JSONResponse(status_code=422, content={"detail": str(exc)})


# ---------------------------------------------------------------------------
# Dependencies
# ---------------------------------------------------------------------------

def get_store(request: Request) -> DashboardStore:
    """
    Returns the store for this process, built from settings on first use.
    main.py (and the tests) override this dependency with an explicit store.
    """
    store = getattr(request.app.state, "store", None)
    if store is None:
        settings = get_settings()
        store = build_store(settings.storage_path, settings.default_timezone)
        request.app.state.store = store
    return store


# ---------------------------------------------------------------------------
# Envelope helper
# ---------------------------------------------------------------------------

def _ok(data: Any) -> Dict:
    """Wrap a record or list of records in the standard success envelope."""
    if dataclasses.is_dataclass(data):
        return {"data": dataclasses.asdict(data)}
    if isinstance(data, list):
        return {
            "data": [
                dataclasses.asdict(item) if dataclasses.is_dataclass(item) else item
                for item in data
            ]
        }
    return {"data": data}


def _check_choice(value: Optional[str], enum_cls) -> Optional[str]:
    if value is None:
        return value
    valid = {e.value for e in enum_cls}
    if value not in valid:
        raise ValueError(f"must be one of: {sorted(valid)}")
    return value


# ===========================================================================
# REQUEST BODY SCHEMAS  (Pydantic v2)
# ===========================================================================

# ---------------------------------------------------------------------------
# Session schemas
# ---------------------------------------------------------------------------

class LoginRequest(BaseModel):
    email: EmailStr
    user_type: str = Field(default=UserType.SHAREHOLDER.value, description="shareholder or team")

    @field_validator("user_type")
    @classmethod
    def validate_user_type(cls, v: str) -> str:
        return _check_choice(v, UserType)


# ---------------------------------------------------------------------------
# Report schemas
# ---------------------------------------------------------------------------

class CreateReportRequest(BaseModel):
    title: str = Field(..., min_length=1, max_length=300)
    date: Optional[datetime.date] = None
    author: Optional[str] = Field(
        default=None, description="Defaults to the signed-in email."
    )
    status: str = Field(default=ReportStatus.PENDING.value)
    type: str = Field(default=ReportType.MILESTONE.value)
    size: str = Field(default="")
    file_name: str = Field(default="")
    file_id: str = Field(default="")
    description: str = Field(default="")

    @field_validator("status")
    @classmethod
    def validate_status(cls, v: str) -> str:
        return _check_choice(v, ReportStatus)

    @field_validator("type")
    @classmethod
    def validate_type(cls, v: str) -> str:
        return _check_choice(v, ReportType)


class UpdateReportRequest(BaseModel):
    title: Optional[str] = Field(default=None, min_length=1, max_length=300)
    status: Optional[str] = None
    type: Optional[str] = None
    description: Optional[str] = None

    @field_validator("status")
    @classmethod
    def validate_status(cls, v: Optional[str]) -> Optional[str]:
        return _check_choice(v, ReportStatus)

    @field_validator("type")
    @classmethod
    def validate_type(cls, v: Optional[str]) -> Optional[str]:
        return _check_choice(v, ReportType)


# ---------------------------------------------------------------------------
# Invoice schemas
# ---------------------------------------------------------------------------

class CreateInvoiceRequest(BaseModel):
    number: str = Field(..., min_length=1, max_length=50)
    vendor: str = Field(..., min_length=1, max_length=200)
    amount: float = Field(..., ge=0.0)
    date: Optional[datetime.date] = None
    due_date: Optional[datetime.date] = None
    status: str = Field(default=InvoiceStatus.PENDING.value)
    category: str = Field(default="Other")
    file_name: str = Field(default="")
    file_id: str = Field(default="")
    description: str = Field(default="")

    @field_validator("status")
    @classmethod
    def validate_status(cls, v: str) -> str:
        return _check_choice(v, InvoiceStatus)


class UpdateInvoiceRequest(BaseModel):
    vendor: Optional[str] = Field(default=None, min_length=1, max_length=200)
    amount: Optional[float] = Field(default=None, ge=0.0)
    due_date: Optional[datetime.date] = None
    status: Optional[str] = None
    category: Optional[str] = None
    description: Optional[str] = None

    @field_validator("status")
    @classmethod
    def validate_status(cls, v: Optional[str]) -> Optional[str]:
        return _check_choice(v, InvoiceStatus)


# ---------------------------------------------------------------------------
# Service provider schemas
# ---------------------------------------------------------------------------

class CreateServiceProviderRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    company: str = Field(..., min_length=1, max_length=200)
    category: str = Field(..., min_length=1, max_length=100)
    email: EmailStr
    phone: str = Field(default="")
    location: str = Field(default="")
    rating: float = Field(default=0.0, ge=0.0, le=5.0)
    status: str = Field(default=ProviderStatus.ACTIVE.value)
    description: str = Field(default="")
    avatar: Optional[str] = None

    @field_validator("status")
    @classmethod
    def validate_status(cls, v: str) -> str:
        return _check_choice(v, ProviderStatus)


class UpdateServiceProviderRequest(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=200)
    company: Optional[str] = Field(default=None, min_length=1, max_length=200)
    category: Optional[str] = None
    email: Optional[EmailStr] = None
    phone: Optional[str] = None
    location: Optional[str] = None
    rating: Optional[float] = Field(default=None, ge=0.0, le=5.0)
    status: Optional[str] = None
    description: Optional[str] = None
    avatar: Optional[str] = None

    @field_validator("status")
    @classmethod
    def validate_status(cls, v: Optional[str]) -> Optional[str]:
        return _check_choice(v, ProviderStatus)


# ---------------------------------------------------------------------------
# File schemas
# ---------------------------------------------------------------------------

class UploadFileRequest(BaseModel):
    id: Optional[str] = Field(default=None, description="Generated when omitted.")
    name: str = Field(..., min_length=1, max_length=255)
    size: int = Field(..., ge=0, description="Size in bytes.")
    type: str = Field(default="application/octet-stream")
    category: str = Field(
        default="general",
        description="'report' and 'invoice' derive a record; anything else is stored only.",
    )
    title: str = Field(default="")
    description: str = Field(default="")
    upload_date: Optional[datetime.date] = None


# ---------------------------------------------------------------------------
# Profile schemas
# ---------------------------------------------------------------------------

class CreateProfileRequest(BaseModel):
    email: Optional[EmailStr] = Field(
        default=None, description="Defaults to the signed-in email."
    )
    timezone: Optional[str] = None


class NotificationsPatch(BaseModel):
    email: Optional[bool] = None
    push: Optional[bool] = None
    reports: Optional[bool] = None
    invoices: Optional[bool] = None


class PreferencesPatch(BaseModel):
    theme: Optional[str] = None
    language: Optional[str] = None
    date_format: Optional[str] = None

    @field_validator("theme")
    @classmethod
    def validate_theme(cls, v: Optional[str]) -> Optional[str]:
        return _check_choice(v, Theme)


class UpdateProfileRequest(BaseModel):
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    phone: Optional[str] = None
    role: Optional[str] = None
    department: Optional[str] = None
    avatar: Optional[str] = None
    bio: Optional[str] = Field(default=None, max_length=2000)
    timezone: Optional[str] = None
    notifications: Optional[NotificationsPatch] = None
    preferences: Optional[PreferencesPatch] = None


# ===========================================================================
# ROUTERS
# ===========================================================================

api_v1 = APIRouter(prefix="/api/v1")


# ---------------------------------------------------------------------------
# Session
# ---------------------------------------------------------------------------

session_router = APIRouter(prefix="/session", tags=["Session"])


@session_router.post(
    "",
    status_code=status.HTTP_201_CREATED,
    summary="Sign in with an email address",
)
def login(
    body: LoginRequest,
    store: DashboardStore = Depends(get_store),
):
    cmd = LoginCommand(email=str(body.email), user_type=body.user_type)
    result = LoginUseCase().execute(cmd, store.uow)
    return _ok(result)


@session_router.get("", summary="Get the signed-in user")
def current_session(store: DashboardStore = Depends(get_store)):
    result = GetSessionUseCase().execute(store.uow)
    return _ok(result)


@session_router.delete(
    "",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Sign out",
)
def logout(store: DashboardStore = Depends(get_store)):
    LogoutUseCase().execute(store.uow)


# ---------------------------------------------------------------------------
# Dashboard
# ---------------------------------------------------------------------------

dashboard_router = APIRouter(tags=["Dashboard"])


@dashboard_router.get("/dashboard", summary="Everything the dashboard renders")
def get_dashboard(store: DashboardStore = Depends(get_store)):
    """
    Entering the dashboard creates the signed-in user's profile if it does
    not exist yet.
    """
    email = store.uow.session.get_email()
    profile = store.get_or_create_user_profile(email) if email else store.user_profile
    return _ok({
        "reports": [dataclasses.asdict(r) for r in store.reports],
        "invoices": [dataclasses.asdict(i) for i in store.invoices],
        "service_providers": [dataclasses.asdict(p) for p in store.service_providers],
        "uploaded_files": [dataclasses.asdict(f) for f in store.uploaded_files],
        "stats": dataclasses.asdict(store.dashboard_stats),
        "profile": dataclasses.asdict(profile) if profile else None,
    })


@dashboard_router.get("/stats", summary="Dashboard header statistics")
def get_stats(store: DashboardStore = Depends(get_store)):
    return _ok(store.dashboard_stats)


# ---------------------------------------------------------------------------
# Reports
# ---------------------------------------------------------------------------

report_router = APIRouter(prefix="/reports", tags=["Reports"])


@report_router.get("", summary="Search reports")
def list_reports(
    q: Optional[str] = Query(default=None, description="Matches title or author"),
    type: Optional[str] = Query(default=None, description="weekly, monthly, milestone or all"),
    status_filter: Optional[str] = Query(default=None, alias="status"),
    store: DashboardStore = Depends(get_store),
):
    return _ok(store.search_reports(q, type, status_filter))


@report_router.post(
    "",
    status_code=status.HTTP_201_CREATED,
    summary="Submit a report",
)
def create_report(
    body: CreateReportRequest,
    store: DashboardStore = Depends(get_store),
):
    cmd = AddReportCommand(
        title=body.title,
        date=body.date or datetime.date.today(),
        author=body.author or store.uow.session.get_email() or UNKNOWN_AUTHOR,
        status=body.status,
        type=body.type,
        size=body.size,
        file_name=body.file_name,
        file_id=body.file_id,
        description=body.description,
    )
    return _ok(store.add_report(cmd))


@report_router.patch("/{report_id}", summary="Update a report (typically its status)")
def update_report(
    body: UpdateReportRequest,
    report_id: str = Path(...),
    store: DashboardStore = Depends(get_store),
):
    result = store.update_report(report_id, **body.model_dump(exclude_unset=True))
    if result is None:
        raise NotFoundError(f"Report {report_id} not found.")
    return _ok(result)


# ---------------------------------------------------------------------------
# Invoices
# ---------------------------------------------------------------------------

invoice_router = APIRouter(prefix="/invoices", tags=["Invoices"])


@invoice_router.get("", summary="Search invoices, with totals for the matches")
def list_invoices(
    q: Optional[str] = Query(default=None, description="Matches number or vendor"),
    status_filter: Optional[str] = Query(default=None, alias="status"),
    category: Optional[str] = Query(default=None),
    store: DashboardStore = Depends(get_store),
):
    invoices = store.search_invoices(q, status_filter, category)
    summary = store.invoice_summary(invoices)
    return _ok({
        "invoices": [dataclasses.asdict(i) for i in invoices],
        "summary": dataclasses.asdict(summary),
    })


@invoice_router.post(
    "",
    status_code=status.HTTP_201_CREATED,
    summary="Record an invoice",
)
def create_invoice(
    body: CreateInvoiceRequest,
    store: DashboardStore = Depends(get_store),
):
    cmd = AddInvoiceCommand(
        number=body.number,
        vendor=body.vendor,
        amount=body.amount,
        date=body.date or datetime.date.today(),
        due_date=body.due_date,
        status=body.status,
        category=body.category,
        file_name=body.file_name,
        file_id=body.file_id,
        description=body.description,
    )
    return _ok(store.add_invoice(cmd))


@invoice_router.patch("/{invoice_id}", summary="Update an invoice (e.g. mark it paid)")
def update_invoice(
    body: UpdateInvoiceRequest,
    invoice_id: str = Path(...),
    store: DashboardStore = Depends(get_store),
):
    result = store.update_invoice(invoice_id, **body.model_dump(exclude_unset=True))
    if result is None:
        raise NotFoundError(f"Invoice {invoice_id} not found.")
    return _ok(result)


# ---------------------------------------------------------------------------
# Service providers
# ---------------------------------------------------------------------------

provider_router = APIRouter(prefix="/providers", tags=["Service Providers"])


@provider_router.get("", summary="Search service providers")
def list_providers(
    q: Optional[str] = Query(default=None, description="Matches name or company"),
    category: Optional[str] = Query(default=None),
    status_filter: Optional[str] = Query(default=None, alias="status"),
    store: DashboardStore = Depends(get_store),
):
    return _ok(store.search_service_providers(q, category, status_filter))


@provider_router.post(
    "",
    status_code=status.HTTP_201_CREATED,
    summary="Add a service provider",
)
def create_provider(
    body: CreateServiceProviderRequest,
    store: DashboardStore = Depends(get_store),
):
    cmd = AddServiceProviderCommand(
        name=body.name,
        company=body.company,
        category=body.category,
        email=str(body.email),
        phone=body.phone,
        location=body.location,
        rating=body.rating,
        status=body.status,
        description=body.description,
        avatar=body.avatar,
    )
    return _ok(store.add_service_provider(cmd))


@provider_router.patch("/{provider_id}", summary="Update a service provider")
def update_provider(
    body: UpdateServiceProviderRequest,
    provider_id: str = Path(...),
    store: DashboardStore = Depends(get_store),
):
    changes = body.model_dump(exclude_unset=True)
    if changes.get("email") is not None:
        changes["email"] = str(changes["email"])
    result = store.update_service_provider(provider_id, **changes)
    if result is None:
        raise NotFoundError(f"Service provider {provider_id} not found.")
    return _ok(result)


# ---------------------------------------------------------------------------
# Files
# ---------------------------------------------------------------------------

file_router = APIRouter(prefix="/files", tags=["Files"])


@file_router.get("", summary="List uploaded files")
def list_files(store: DashboardStore = Depends(get_store)):
    return _ok(store.uploaded_files)


@file_router.post(
    "",
    status_code=status.HTTP_201_CREATED,
    summary="Register an uploaded file and derive its record",
)
def upload_file(
    body: UploadFileRequest,
    store: DashboardStore = Depends(get_store),
):
    file = UploadedFile(
        id=body.id or "",
        name=body.name,
        size=body.size,
        type=body.type,
        category=body.category,
        title=body.title or body.name,
        description=body.description,
        upload_date=body.upload_date,
    )
    derived = store.add_uploaded_file(file)
    return _ok({
        "file": dataclasses.asdict(file),
        "derived": dataclasses.asdict(derived) if derived is not None else None,
    })


@file_router.delete(
    "/{file_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete a file and every record derived from it",
)
def delete_file(
    file_id: str = Path(...),
    store: DashboardStore = Depends(get_store),
):
    store.delete_file(file_id)


# ---------------------------------------------------------------------------
# Profile
# ---------------------------------------------------------------------------

profile_router = APIRouter(prefix="/profile", tags=["Profile"])


@profile_router.get("", summary="Get the user profile")
def get_profile(store: DashboardStore = Depends(get_store)):
    profile = store.user_profile
    if profile is None:
        raise NotFoundError("Profile not found. Please sign in again.")
    return _ok(profile)


@profile_router.post(
    "",
    summary="Get the profile, creating a default one if none exists",
)
def ensure_profile(
    body: CreateProfileRequest,
    store: DashboardStore = Depends(get_store),
):
    email = str(body.email) if body.email else store.uow.session.get_email()
    if not email:
        raise ApplicationError("An email is required when nobody is signed in.")
    return _ok(store.get_or_create_user_profile(email, body.timezone))


@profile_router.patch("", summary="Update profile fields, notifications or preferences")
def update_profile(
    body: UpdateProfileRequest,
    store: DashboardStore = Depends(get_store),
):
    result = store.update_user_profile(**body.model_dump(exclude_unset=True))
    if result is None:
        raise NotFoundError("Profile not found. Please sign in again.")
    return _ok(result)


# ===========================================================================
# REGISTER ROUTERS
# ===========================================================================

api_v1.include_router(session_router)
api_v1.include_router(dashboard_router)
api_v1.include_router(report_router)
api_v1.include_router(invoice_router)
api_v1.include_router(provider_router)
api_v1.include_router(file_router)
api_v1.include_router(profile_router)

app.include_router(api_v1)


# ===========================================================================
# HEALTH CHECK
# ===========================================================================

@app.get("/health", tags=["Health"], summary="Service health check")
def health():
    return {"status": "ok"}


# ---------------------------------------------------------------------------
# MCP Server - exposes all API routes as MCP tools
# Accessible at: http://localhost:8000/mcp
# ---------------------------------------------------------------------------
mcp = FastApiMCP(app)
mcp.mount()
