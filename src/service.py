"""
service.py

Service layer for the Project Portal dashboard.

Responsibilities
----------------
Each service class encapsulates the business logic for its slice of the
domain.  Services receive and return domain model instances (from model.py).
No persistence is handled here - the DashboardStore in application.py owns
the collections and hands records to the repositories.

Services
--------
- RecordService           – construction and partial-field merge of records
- FileDerivationService   – builds a Report / Invoice from an UploadedFile
- ProfileService          – default profile creation and profile updates
- StatsService            – dashboard statistics and invoice summaries
- SearchService           – list filtering used by the section views

Design notes
------------
- Identifiers are `<kind>-<epoch millis>-<random suffix>`; the suffix keeps
  ids unique when several records are created within the same millisecond.
- Business rule violations raise a ValueError with a descriptive message.
- File derivation is text-sniffing over the file's title and description.
  The structured creation path (RecordService.create_*) is the primary
  way to add records; derivation is kept for uploaded documents.
"""

from __future__ import annotations

import dataclasses
import logging
import math
import re
import time
import typing
import uuid
from datetime import date, datetime, timedelta
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Dict, Iterable, List, Optional, Union

from model import (
    DashboardStats,
    FileCategory,
    Invoice,
    InvoiceStatus,
    InvoiceSummary,
    NotificationSettings,
    Preferences,
    ProviderStatus,
    Report,
    ReportStatus,
    ReportType,
    ServiceProvider,
    Theme,
    UploadedFile,
    UserProfile,
)

logger = logging.getLogger(__name__)

UNKNOWN_AUTHOR = "Unknown User"
DEFAULT_INVOICE_AMOUNT = 1000.0
DEFAULT_VENDOR = "New Vendor"
INVOICE_DUE_DAYS = 30

# First currency-like number in a title, e.g. "$2,500.00" or "1200"
_AMOUNT_RE = re.compile(r"\$?([\d,]+(?:\.\d{2})?)")

# Checked in order; first substring hit wins.
_INVOICE_CATEGORY_KEYWORDS = (
    ("software", "Software"),
    ("material", "Materials"),
    ("service", "Services"),
)

# Fields whose string values are coerced to enumerations on merge.
_ENUM_FIELDS: Dict[type, Dict[str, type]] = {
    Report: {"status": ReportStatus, "type": ReportType},
    Invoice: {"status": InvoiceStatus},
    ServiceProvider: {"status": ProviderStatus},
    Preferences: {"theme": Theme},
}


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------

def new_id(prefix: str) -> str:
    """Return a fresh record id such as ``report-1718000000000-3f9a1c``."""
    return f"{prefix}-{int(time.time() * 1000)}-{uuid.uuid4().hex[:6]}"


def _today() -> date:
    return date.today()


_nullable_fields: Dict[type, set] = {}


def _nullable(record_type: type) -> set:
    """Names of the fields of `record_type` whose annotation admits None."""
    if record_type not in _nullable_fields:
        hints = typing.get_type_hints(record_type)
        _nullable_fields[record_type] = {
            name for name, hint in hints.items()
            if type(None) in typing.get_args(hint)
        }
    return _nullable_fields[record_type]


def _merge(record: Any, changes: Dict[str, Any]) -> Any:
    """
    Return a copy of `record` with `changes` applied.

    Raises ValueError for unknown field names, for an attempt to change
    the id, for None on a field that is not optional, and for values
    outside a closed enumeration.
    """
    names = {f.name for f in dataclasses.fields(record)}
    unknown = sorted(set(changes) - names)
    if unknown:
        raise ValueError(
            f"Unknown field(s) for {type(record).__name__}: {unknown}."
        )
    if "id" in changes and changes["id"] != getattr(record, "id", None):
        raise ValueError(f"The id of a {type(record).__name__} cannot be changed.")

    nullable = _nullable(type(record))
    required = sorted(n for n, v in changes.items() if v is None and n not in nullable)
    if required:
        raise ValueError(
            f"Field(s) of {type(record).__name__} cannot be null: {required}."
        )

    enum_fields = _ENUM_FIELDS.get(type(record), {})
    coerced = {}
    for name, value in changes.items():
        enum_cls = enum_fields.get(name)
        if enum_cls is not None and value is not None:
            value = enum_cls(value)
        coerced[name] = value
    return dataclasses.replace(record, **coerced)


# ---------------------------------------------------------------------------
# RecordService
# ---------------------------------------------------------------------------

class RecordService:
    """
    Builds new records and applies partial updates.

    No validation of field contents is performed beyond the closed status
    enumerations; the HTTP request schemas are where input gets checked.
    """

    def create_report(
        self,
        title: str,
        date: Optional[date],
        author: str,
        status: Union[ReportStatus, str],
        type: Union[ReportType, str],
        size: str = "",
        file_name: str = "",
        file_id: str = "",
        description: str = "",
    ) -> Report:
        """Create and return a new Report (unsaved)."""
        return Report(
            id=new_id("report"),
            title=title,
            date=date,
            author=author,
            status=ReportStatus(status),
            type=ReportType(type),
            size=size,
            file_name=file_name,
            file_id=file_id,
            description=description,
        )

    def create_invoice(
        self,
        number: str,
        vendor: str,
        amount: float,
        date: Optional[date],
        due_date: Optional[date],
        status: Union[InvoiceStatus, str],
        category: str,
        file_name: str = "",
        file_id: str = "",
        description: str = "",
    ) -> Invoice:
        """Create and return a new Invoice (unsaved).  `amount` is not range-checked."""
        return Invoice(
            id=new_id("invoice"),
            number=number,
            vendor=vendor,
            amount=float(amount),
            date=date,
            due_date=due_date,
            status=InvoiceStatus(status),
            category=category,
            file_name=file_name,
            file_id=file_id,
            description=description,
        )

    def create_service_provider(
        self,
        name: str,
        company: str,
        category: str,
        email: str,
        phone: str = "",
        location: str = "",
        rating: float = 0.0,
        status: Union[ProviderStatus, str] = ProviderStatus.ACTIVE,
        description: str = "",
        avatar: Optional[str] = None,
    ) -> ServiceProvider:
        """Create a provider stamped with today's date as added_date."""
        return ServiceProvider(
            id=new_id("provider"),
            name=name,
            company=company,
            category=category,
            email=email,
            phone=phone,
            location=location,
            rating=float(rating),
            status=ProviderStatus(status),
            description=description,
            added_date=_today(),
            avatar=avatar,
        )

    def merge(self, record: Any, changes: Dict[str, Any]) -> Any:
        """Apply field-level updates to a Report, Invoice or ServiceProvider."""
        return _merge(record, changes)


# ---------------------------------------------------------------------------
# FileDerivationService
# ---------------------------------------------------------------------------

class FileDerivationService:
    """
    Turns an uploaded document into the record it describes.

    Branches on the file's category tag:

    report   – pending Report, type guessed from the title, size in MB,
               authored by the session email.
    invoice  – pending Invoice with a generated number, amount and vendor
               parsed from the title, category guessed from the
               description, due 30 days after upload.
    other    – nothing is derived.
    """

    # --- heuristics ---------------------------------------------------------

    @staticmethod
    def infer_report_type(title: str) -> ReportType:
        lowered = title.lower()
        if "weekly" in lowered:
            return ReportType.WEEKLY
        if "monthly" in lowered:
            return ReportType.MONTHLY
        return ReportType.MILESTONE

    @staticmethod
    def format_megabytes(size_bytes: int) -> str:
        return f"{size_bytes / (1024 * 1024):.1f} MB"

    @staticmethod
    def extract_amount(title: str) -> float:
        """
        First currency-like number in `title`, commas stripped.
        Falls back to DEFAULT_INVOICE_AMOUNT when nothing usable is found.
        """
        match = _AMOUNT_RE.search(title)
        if match is None:
            return DEFAULT_INVOICE_AMOUNT
        try:
            return float(match.group(1).replace(",", ""))
        except ValueError:
            # a run of bare commas matches the pattern but is not a number
            return DEFAULT_INVOICE_AMOUNT

    @staticmethod
    def parse_vendor(title: str) -> str:
        if " - " in title:
            return title.split(" - ")[1]
        return DEFAULT_VENDOR

    @staticmethod
    def infer_invoice_category(description: str) -> str:
        lowered = description.lower()
        for keyword, category in _INVOICE_CATEGORY_KEYWORDS:
            if keyword in lowered:
                return category
        return "Other"

    @staticmethod
    def invoice_number(year: int, existing_count: int) -> str:
        return f"INV-{year}-{existing_count + 1:03d}"

    # --- derivation ---------------------------------------------------------

    def derive(
        self,
        file: UploadedFile,
        existing_invoice_count: int,
        author: Optional[str],
        now: Optional[datetime] = None,
    ) -> Optional[Union[Report, Invoice]]:
        """Return the derived Report / Invoice (unsaved), or None."""
        now = now or datetime.now()
        if file.category == FileCategory.REPORT.value:
            return self._derive_report(file, author)
        if file.category == FileCategory.INVOICE.value:
            return self._derive_invoice(file, existing_invoice_count, now)
        logger.debug("No derivation for file %s with category %r", file.id, file.category)
        return None

    def _derive_report(self, file: UploadedFile, author: Optional[str]) -> Report:
        return Report(
            id=new_id("report"),
            title=file.title,
            date=file.upload_date,
            author=author or UNKNOWN_AUTHOR,
            status=ReportStatus.PENDING,
            type=self.infer_report_type(file.title),
            size=self.format_megabytes(file.size),
            file_name=file.name,
            file_id=file.id,
            description=file.description,
        )

    def _derive_invoice(
        self, file: UploadedFile, existing_invoice_count: int, now: datetime
    ) -> Invoice:
        uploaded_on = file.upload_date or now.date()
        return Invoice(
            id=new_id("invoice"),
            number=self.invoice_number(now.year, existing_invoice_count),
            vendor=self.parse_vendor(file.title),
            amount=self.extract_amount(file.title),
            date=file.upload_date,
            due_date=uploaded_on + timedelta(days=INVOICE_DUE_DAYS),
            status=InvoiceStatus.PENDING,
            category=self.infer_invoice_category(file.description),
            file_name=file.name,
            file_id=file.id,
            description=file.description,
        )


# ---------------------------------------------------------------------------
# ProfileService
# ---------------------------------------------------------------------------

class ProfileService:
    """Creates the default profile for a session email and applies edits."""

    def create_profile(self, email: str, timezone: str) -> UserProfile:
        return UserProfile(
            id=new_id("user"),
            email=email,
            role="Team Member",
            join_date=_today(),
            timezone=timezone,
            notifications=NotificationSettings(),
            preferences=Preferences(),
        )

    def update_profile(self, profile: UserProfile, changes: Dict[str, Any]) -> UserProfile:
        """
        Merge `changes` into `profile`.

        `notifications` and `preferences` may be given as partial dicts,
        which are merged onto the current values.  The email is immutable.
        """
        changes = dict(changes)
        if "email" in changes and changes["email"] != profile.email:
            raise ValueError("The profile email cannot be changed.")

        for name in ("notifications", "preferences"):
            value = changes.get(name)
            if isinstance(value, dict):
                changes[name] = _merge(getattr(profile, name), value)
        return _merge(profile, changes)


# ---------------------------------------------------------------------------
# StatsService
# ---------------------------------------------------------------------------

def format_currency(amount: float) -> str:
    """
    US-dollar display string: grouped thousands, at most three fraction
    digits with halves rounded away from zero, trailing zeros dropped
    ("$5,250", "$1,234.5", "$0.063" for 0.0625).
    """
    rounded = Decimal(amount).quantize(Decimal("0.001"), rounding=ROUND_HALF_UP)
    text = f"{rounded:,.3f}".rstrip("0").rstrip(".")
    return f"${text}"


class StatsService:
    """
    Derived dashboard figures.  Recomputed on every read; nothing is cached.

    The change strings compare current counts against fixed baselines
    (3 reports, 1 pending invoice, 2 projects, 1 active provider).
    """

    def dashboard_stats(
        self,
        reports: List[Report],
        invoices: List[Invoice],
        providers: List[ServiceProvider],
    ) -> DashboardStats:
        pending = [i for i in invoices if i.status == InvoiceStatus.PENDING]
        active_providers = sum(1 for p in providers if p.status == ProviderStatus.ACTIVE)
        active_projects = math.ceil(len(reports) / 3)

        return DashboardStats(
            total_reports=len(reports),
            pending_invoices=format_currency(sum(i.amount for i in pending)),
            active_projects=active_projects,
            team_members=active_providers,
            reports_change=f"+{max(0, len(reports) - 3)}",
            invoices_change=f"+{max(0, len(pending) - 1)}",
            projects_change=f"+{max(0, active_projects - 2)}",
            members_change=f"{active_providers - 1}",
        )

    def invoice_summary(self, invoices: Iterable[Invoice]) -> InvoiceSummary:
        invoices = list(invoices)
        return InvoiceSummary(
            count=len(invoices),
            total_amount=sum(i.amount for i in invoices),
            pending_amount=sum(
                i.amount for i in invoices if i.status == InvoiceStatus.PENDING
            ),
        )


# ---------------------------------------------------------------------------
# SearchService
# ---------------------------------------------------------------------------

def _matches_term(term: Optional[str], *values: str) -> bool:
    if not term:
        return True
    needle = term.lower()
    return any(needle in (v or "").lower() for v in values)


def _matches_choice(choice: Optional[str], value: Any) -> bool:
    # "all" is what the section views send for an unset dropdown
    if choice is None or choice == "all":
        return True
    return value == choice


class SearchService:
    """Case-insensitive search plus exact-match dropdown filters."""

    def filter_reports(
        self,
        reports: Iterable[Report],
        term: Optional[str] = None,
        type: Optional[str] = None,
        status: Optional[str] = None,
    ) -> List[Report]:
        return [
            r for r in reports
            if _matches_term(term, r.title, r.author)
            and _matches_choice(type, r.type)
            and _matches_choice(status, r.status)
        ]

    def filter_invoices(
        self,
        invoices: Iterable[Invoice],
        term: Optional[str] = None,
        status: Optional[str] = None,
        category: Optional[str] = None,
    ) -> List[Invoice]:
        return [
            i for i in invoices
            if _matches_term(term, i.number, i.vendor)
            and _matches_choice(status, i.status)
            and _matches_choice(category, i.category)
        ]

    def filter_providers(
        self,
        providers: Iterable[ServiceProvider],
        term: Optional[str] = None,
        category: Optional[str] = None,
        status: Optional[str] = None,
    ) -> List[ServiceProvider]:
        return [
            p for p in providers
            if _matches_term(term, p.name, p.company)
            and _matches_choice(category, p.category)
            and _matches_choice(status, p.status)
        ]
