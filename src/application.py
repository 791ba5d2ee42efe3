"""
application.py

Application layer for the Project Portal dashboard.

Overview
--------
The application layer sits between the presentation layer (API / views)
and the domain / service layer.  It is responsible for:

  1. Declaring the key-value storage abstraction and the abstract
     Repository interfaces, so that the store stays persistence-agnostic
     (implementations live in infrastructure.py).
  2. Declaring the UnitOfWork abstraction that groups the repositories.
  3. Providing the DashboardStore - the single in-memory authority for all
     domain collections and the current user's profile.  One store is
     constructed per session and passed by reference to its consumers.
  4. Implementing the session use cases (sign in / sign out / current
     session), which touch the ambient identity keys but not the store.

Structure
---------
Storage
    AbstractStorage

Repository interfaces
    AbstractCollectionRepository
    AbstractProfileRepository
    AbstractSessionRepository

Unit of Work
    AbstractUnitOfWork

Commands
    AddReportCommand, AddInvoiceCommand, AddServiceProviderCommand,
    LoginCommand

Store
    DashboardStore

Use Cases
    LoginUseCase, LogoutUseCase, GetSessionUseCase

Design notes
------------
- Every collection mutation is written through to storage immediately by
  the repository; commit() has nothing left to flush.
- Update-by-id on a missing id is a silent no-op that returns None.
- A cascade delete performs three independent collection writes.
- Errors bubble up as ApplicationError (business) or ValueError (validation).
"""

from __future__ import annotations

import abc
import dataclasses
import logging
import threading
from dataclasses import dataclass
from datetime import date
from typing import Any, Callable, List, Optional, Union

import tzlocal

from model import (
    DashboardStats,
    Invoice,
    InvoiceStatus,
    InvoiceSummary,
    ProviderStatus,
    Report,
    ReportStatus,
    ReportType,
    ServiceProvider,
    Session,
    UploadedFile,
    UserProfile,
    UserType,
)
from service import (
    FileDerivationService,
    ProfileService,
    RecordService,
    SearchService,
    StatsService,
    new_id,
)

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------

class ApplicationError(Exception):
    """Raised when an operation cannot complete due to a business rule violation."""


class NotFoundError(ApplicationError):
    """Raised when a requested entity does not exist."""


# ---------------------------------------------------------------------------
# Storage keys
# ---------------------------------------------------------------------------

REPORTS_KEY = "dashboard-reports"
INVOICES_KEY = "dashboard-invoices"
PROVIDERS_KEY = "dashboard-providers"
FILES_KEY = "dashboard-files"
PROFILE_KEY = "user-profile"

SESSION_EMAIL_KEY = "userEmail"
SESSION_USER_TYPE_KEY = "userType"


# ---------------------------------------------------------------------------
# Seed data
# ---------------------------------------------------------------------------

def seed_reports() -> List[Report]:
    return [
        Report(
            id="1",
            title="Weekly Progress Report #24",
            date=date(2024, 1, 15),
            author="System",
            status=ReportStatus.APPROVED,
            type=ReportType.WEEKLY,
            size="2.4 MB",
            file_name="weekly-report-24.pdf",
            file_id="file-1",
            description="Weekly progress update for project milestones",
        )
    ]


def seed_invoices() -> List[Invoice]:
    return [
        Invoice(
            id="1",
            number="INV-2024-001",
            vendor="TechCorp Solutions",
            amount=5250.0,
            date=date(2024, 1, 15),
            due_date=date(2024, 2, 15),
            status=InvoiceStatus.PENDING,
            category="Software",
            file_name="invoice-techcorp-001.pdf",
            file_id="file-2",
            description="Software licensing and development services",
        )
    ]


def seed_service_providers() -> List[ServiceProvider]:
    return [
        ServiceProvider(
            id="1",
            name="John Construction",
            company="BuildRight LLC",
            category="Construction",
            email="john@buildright.com",
            phone="+1 (555) 123-4567",
            location="New York, NY",
            rating=4.8,
            status=ProviderStatus.ACTIVE,
            description="Specialized in commercial construction and renovation projects.",
            added_date=date(2024, 1, 1),
        )
    ]


# ===========================================================================
# STORAGE & REPOSITORY INTERFACES
# ===========================================================================

class AbstractStorage(abc.ABC):
    """A string key-value medium (the browser-local storage analogue)."""

    @abc.abstractmethod
    def get_item(self, key: str) -> Optional[str]: ...
    @abc.abstractmethod
    def set_item(self, key: str, value: str) -> None: ...
    @abc.abstractmethod
    def remove_item(self, key: str) -> None: ...


class AbstractCollectionRepository(abc.ABC):
    """
    An ordered collection of records of one type.

    Every mutating method writes the whole collection back to storage.
    """

    @abc.abstractmethod
    def list_all(self) -> List[Any]: ...
    @abc.abstractmethod
    def get(self, record_id: str) -> Optional[Any]: ...
    @abc.abstractmethod
    def add_first(self, record: Any) -> None: ...
    @abc.abstractmethod
    def add_last(self, record: Any) -> None: ...
    @abc.abstractmethod
    def replace(self, record: Any) -> bool: ...
    @abc.abstractmethod
    def remove_where(self, predicate: Callable[[Any], bool]) -> List[Any]: ...


class AbstractProfileRepository(abc.ABC):
    @abc.abstractmethod
    def get(self) -> Optional[UserProfile]: ...
    @abc.abstractmethod
    def save(self, profile: UserProfile) -> None: ...


class AbstractSessionRepository(abc.ABC):
    @abc.abstractmethod
    def get(self) -> Optional[Session]: ...
    @abc.abstractmethod
    def get_email(self) -> Optional[str]: ...
    @abc.abstractmethod
    def save(self, session: Session) -> None: ...
    @abc.abstractmethod
    def clear(self) -> None: ...


# ===========================================================================
# UNIT OF WORK
# ===========================================================================

class AbstractUnitOfWork(abc.ABC):
    """
    Groups all repositories under a single boundary.
    Use as a context manager:

        with uow:
            uow.reports.add_first(report)
            uow.commit()
    """
    reports: AbstractCollectionRepository
    invoices: AbstractCollectionRepository
    providers: AbstractCollectionRepository
    files: AbstractCollectionRepository
    profile: AbstractProfileRepository
    session: AbstractSessionRepository

    def __enter__(self) -> "AbstractUnitOfWork":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        if exc_type:
            self.rollback()
        else:
            self.commit()

    @abc.abstractmethod
    def commit(self) -> None: ...

    @abc.abstractmethod
    def rollback(self) -> None: ...


# ===========================================================================
# SERVICE SINGLETONS
# ===========================================================================

_record_svc = RecordService()
_derivation_svc = FileDerivationService()
_profile_svc = ProfileService()
_stats_svc = StatsService()
_search_svc = SearchService()


def _local_timezone_name() -> str:
    """IANA name of the host zone (e.g. "Europe/Paris"), or "UTC" if it cannot be resolved."""
    try:
        return tzlocal.get_localzone_name() or "UTC"
    except (LookupError, ValueError) as exc:
        logger.warning("Could not resolve the local timezone, using UTC: %s", exc)
        return "UTC"


# ===========================================================================
# COMMANDS
# ===========================================================================

@dataclass
class AddReportCommand:
    title: str
    date: Optional[date]
    author: str
    status: Union[ReportStatus, str] = ReportStatus.PENDING
    type: Union[ReportType, str] = ReportType.MILESTONE
    size: str = ""
    file_name: str = ""
    file_id: str = ""
    description: str = ""


@dataclass
class AddInvoiceCommand:
    number: str
    vendor: str
    amount: float
    date: Optional[date]
    due_date: Optional[date]
    status: Union[InvoiceStatus, str] = InvoiceStatus.PENDING
    category: str = "Other"
    file_name: str = ""
    file_id: str = ""
    description: str = ""


@dataclass
class AddServiceProviderCommand:
    name: str
    company: str
    category: str
    email: str
    phone: str = ""
    location: str = ""
    rating: float = 0.0
    status: Union[ProviderStatus, str] = ProviderStatus.ACTIVE
    description: str = ""
    avatar: Optional[str] = None


@dataclass
class LoginCommand:
    email: str
    user_type: Union[UserType, str] = UserType.SHAREHOLDER


# ===========================================================================
# SHARED DATA STORE
# ===========================================================================

class DashboardStore:
    """
    Holds the reports, invoices, service providers, uploaded files and the
    user profile for one session, and derives the dashboard statistics.

    Reads always reflect the most recent completed mutation.  The store
    reads the session email (to stamp authors) but never writes it.

    One store serves every request of the process, and the HTTP layer runs
    handlers on worker threads, so each operation holds `_lock` for its
    whole read-modify-write.
    """

    def __init__(self, uow: AbstractUnitOfWork, default_timezone: Optional[str] = None):
        self.uow = uow
        self._default_timezone = default_timezone
        self._lock = threading.RLock()

    # --- collections --------------------------------------------------------

    @property
    def reports(self) -> List[Report]:
        return self.uow.reports.list_all()

    @property
    def invoices(self) -> List[Invoice]:
        return self.uow.invoices.list_all()

    @property
    def service_providers(self) -> List[ServiceProvider]:
        return self.uow.providers.list_all()

    @property
    def uploaded_files(self) -> List[UploadedFile]:
        return self.uow.files.list_all()

    @property
    def user_profile(self) -> Optional[UserProfile]:
        return self.uow.profile.get()

    @property
    def dashboard_stats(self) -> DashboardStats:
        with self._lock:
            return _stats_svc.dashboard_stats(
                self.reports, self.invoices, self.service_providers
            )

    # --- creation -----------------------------------------------------------

    def add_report(self, cmd: AddReportCommand) -> Report:
        with self._lock, self.uow:
            report = _record_svc.create_report(**dataclasses.asdict(cmd))
            self.uow.reports.add_first(report)
            self.uow.commit()
        logger.info("Added report %s (%s)", report.id, report.title)
        return report

    def add_invoice(self, cmd: AddInvoiceCommand) -> Invoice:
        with self._lock, self.uow:
            invoice = _record_svc.create_invoice(**dataclasses.asdict(cmd))
            self.uow.invoices.add_first(invoice)
            self.uow.commit()
        logger.info("Added invoice %s (%s)", invoice.id, invoice.number)
        return invoice

    def add_service_provider(self, cmd: AddServiceProviderCommand) -> ServiceProvider:
        with self._lock, self.uow:
            provider = _record_svc.create_service_provider(**dataclasses.asdict(cmd))
            self.uow.providers.add_first(provider)
            self.uow.commit()
        logger.info("Added service provider %s (%s)", provider.id, provider.name)
        return provider

    # --- updates ------------------------------------------------------------

    def _update(self, repo: AbstractCollectionRepository, record_id: str, changes: dict):
        with self._lock, self.uow:
            current = repo.get(record_id)
            if current is None:
                logger.debug("Update ignored: no record with id %s", record_id)
                return None
            updated = _record_svc.merge(current, changes)
            repo.replace(updated)
            self.uow.commit()
            return updated

    def update_report(self, report_id: str, **changes: Any) -> Optional[Report]:
        return self._update(self.uow.reports, report_id, changes)

    def update_invoice(self, invoice_id: str, **changes: Any) -> Optional[Invoice]:
        return self._update(self.uow.invoices, invoice_id, changes)

    def update_service_provider(
        self, provider_id: str, **changes: Any
    ) -> Optional[ServiceProvider]:
        return self._update(self.uow.providers, provider_id, changes)

    # --- uploaded files -----------------------------------------------------

    def add_uploaded_file(self, file: UploadedFile) -> Optional[Union[Report, Invoice]]:
        """
        Append `file` and run file derivation on it.

        Returns the derived Report / Invoice, or None for categories that
        derive nothing.
        """
        if not file.id:
            file.id = new_id("file")
        if file.upload_date is None:
            file.upload_date = date.today()
        with self._lock, self.uow:
            self.uow.files.add_last(file)
            self.uow.commit()
        logger.info("Stored uploaded file %s (%s)", file.id, file.name)
        return self.process_uploaded_file(file)

    def process_uploaded_file(self, file: UploadedFile) -> Optional[Union[Report, Invoice]]:
        with self._lock, self.uow:
            derived = _derivation_svc.derive(
                file,
                existing_invoice_count=len(self.uow.invoices.list_all()),
                author=self.uow.session.get_email(),
            )
            if isinstance(derived, Report):
                self.uow.reports.add_first(derived)
            elif isinstance(derived, Invoice):
                self.uow.invoices.add_first(derived)
            self.uow.commit()
        if derived is not None:
            logger.info(
                "Derived %s %s from file %s", type(derived).__name__, derived.id, file.id
            )
        return derived

    def delete_file(self, file_id: str) -> Optional[UploadedFile]:
        """
        Remove a file and every Report / Invoice that references it.
        Returns the removed file, or None if no file had that id.
        """
        with self._lock, self.uow:
            removed = self.uow.files.remove_where(lambda f: f.id == file_id)
            reports = self.uow.reports.remove_where(lambda r: r.file_id == file_id)
            invoices = self.uow.invoices.remove_where(lambda i: i.file_id == file_id)
            self.uow.commit()
        logger.info(
            "Deleted file %s (cascade: %d reports, %d invoices)",
            file_id, len(reports), len(invoices),
        )
        return removed[0] if removed else None

    # --- profile ------------------------------------------------------------

    def create_user_profile(self, email: str, timezone: Optional[str] = None) -> UserProfile:
        """
        Build and store a fresh default profile for `email`.

        Replaces any existing profile; use get_or_create_user_profile to
        keep an existing one.
        """
        tz = timezone or self._default_timezone or _local_timezone_name()
        with self._lock, self.uow:
            profile = _profile_svc.create_profile(email, tz)
            self.uow.profile.save(profile)
            self.uow.commit()
        logger.info("Created profile %s for %s", profile.id, email)
        return profile

    def get_or_create_user_profile(
        self, email: str, timezone: Optional[str] = None
    ) -> UserProfile:
        with self._lock:
            existing = self.user_profile
            if existing is not None:
                return existing
            return self.create_user_profile(email, timezone)

    def update_user_profile(self, **changes: Any) -> Optional[UserProfile]:
        with self._lock, self.uow:
            profile = self.uow.profile.get()
            if profile is None:
                logger.debug("Profile update ignored: no profile exists")
                return None
            profile = _profile_svc.update_profile(profile, changes)
            self.uow.profile.save(profile)
            self.uow.commit()
            return profile

    # --- queries ------------------------------------------------------------

    def search_reports(
        self,
        term: Optional[str] = None,
        type: Optional[str] = None,
        status: Optional[str] = None,
    ) -> List[Report]:
        return _search_svc.filter_reports(self.reports, term, type, status)

    def search_invoices(
        self,
        term: Optional[str] = None,
        status: Optional[str] = None,
        category: Optional[str] = None,
    ) -> List[Invoice]:
        return _search_svc.filter_invoices(self.invoices, term, status, category)

    def search_service_providers(
        self,
        term: Optional[str] = None,
        category: Optional[str] = None,
        status: Optional[str] = None,
    ) -> List[ServiceProvider]:
        return _search_svc.filter_providers(self.service_providers, term, category, status)

    def invoice_summary(self, invoices: Optional[List[Invoice]] = None) -> InvoiceSummary:
        return _stats_svc.invoice_summary(self.invoices if invoices is None else invoices)


# ===========================================================================
# USE CASES - SESSION
# ===========================================================================

class LoginUseCase:
    """
    Record who is signed in.  There is no credential check: the portal
    trusts the email it is given.
    """

    def execute(self, cmd: LoginCommand, uow: AbstractUnitOfWork) -> Session:
        email = cmd.email.strip()
        if not email:
            raise ApplicationError("An email address is required to sign in.")
        session = Session(email=email, user_type=UserType(cmd.user_type))
        with uow:
            uow.session.save(session)
            uow.commit()
        logger.info("Signed in %s as %s", session.email, session.user_type.value)
        return session


class LogoutUseCase:
    def execute(self, uow: AbstractUnitOfWork) -> None:
        with uow:
            uow.session.clear()
            uow.commit()


class GetSessionUseCase:
    def execute(self, uow: AbstractUnitOfWork) -> Session:
        session = uow.session.get()
        if session is None:
            raise NotFoundError("No user is signed in.")
        return session
