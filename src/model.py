"""
model.py

Domain models for the Project Portal dashboard.

Entities
--------
- Report
- Invoice
- ServiceProvider
- UploadedFile
- UserProfile (with NotificationSettings and Preferences)
- Session

Derived values
--------------
- DashboardStats
- InvoiceSummary

All models use Python dataclasses for clean, framework-agnostic definitions.
Identifiers are strings generated by the caller (see service.new_id); the
records carry no behaviour of their own.
"""

from __future__ import annotations

import datetime
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional


# ---------------------------------------------------------------------------
# Enumerations
# ---------------------------------------------------------------------------


class ReportStatus(str, Enum):
    """Review status of a submitted report."""
    APPROVED = "approved"
    PENDING = "pending"
    REVISION = "revision"


class ReportType(str, Enum):
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    MILESTONE = "milestone"


class InvoiceStatus(str, Enum):
    """Payment status of an invoice."""
    PAID = "paid"
    PENDING = "pending"
    OVERDUE = "overdue"


class ProviderStatus(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"


class Theme(str, Enum):
    LIGHT = "light"
    DARK = "dark"
    SYSTEM = "system"


class UserType(str, Enum):
    """Which side of the portal the signed-in user belongs to."""
    SHAREHOLDER = "shareholder"
    TEAM = "team"


class FileCategory(str, Enum):
    """
    Category tags that drive file derivation.

    Only REPORT and INVOICE produce a derived record; any other tag
    (including free-form values) is stored with the file and ignored.
    """
    REPORT = "report"
    INVOICE = "invoice"
    GENERAL = "general"


# ---------------------------------------------------------------------------
# Records
# ---------------------------------------------------------------------------


@dataclass
class Report:
    """
    A project report, either submitted through the creation form or
    derived from an uploaded file.

    Only `status` is expected to change after creation.
    """
    id: str = ""
    title: str = ""
    date: Optional[datetime.date] = None
    author: str = ""
    status: ReportStatus = ReportStatus.PENDING
    type: ReportType = ReportType.MILESTONE
    size: str = ""              # display string, e.g. "2.4 MB"
    file_name: str = ""
    file_id: str = ""           # id of the source UploadedFile, if any
    description: str = ""


@dataclass
class Invoice:
    """
    A vendor invoice.

    `number` is a display string and is not enforced unique.
    `amount` is expected to be non-negative; the store does not check it.
    """
    id: str = ""
    number: str = ""
    vendor: str = ""
    amount: float = 0.0
    date: Optional[datetime.date] = None
    due_date: Optional[datetime.date] = None
    status: InvoiceStatus = InvoiceStatus.PENDING
    category: str = "Other"
    file_name: str = ""
    file_id: str = ""
    description: str = ""


@dataclass
class ServiceProvider:
    """An external contractor or vendor. `rating` of 0 means unrated."""
    id: str = ""
    name: str = ""
    company: str = ""
    category: str = ""
    email: str = ""
    phone: str = ""
    location: str = ""
    rating: float = 0.0
    status: ProviderStatus = ProviderStatus.ACTIVE
    description: str = ""
    added_date: Optional[datetime.date] = None
    avatar: Optional[str] = None


@dataclass
class UploadedFile:
    """
    Metadata for an uploaded document.

    Files are staging records: adding one feeds it into file derivation,
    and deleting one removes every Report / Invoice whose file_id matches.
    """
    id: str = ""
    name: str = ""
    size: int = 0               # bytes
    type: str = ""              # MIME type
    category: str = FileCategory.GENERAL.value
    title: str = ""
    description: str = ""
    upload_date: Optional[datetime.date] = None


@dataclass
class NotificationSettings:
    email: bool = True
    push: bool = True
    reports: bool = True
    invoices: bool = True


@dataclass
class Preferences:
    theme: Theme = Theme.SYSTEM
    language: str = "en"
    date_format: str = "MM/DD/YYYY"


@dataclass
class UserProfile:
    """
    The signed-in user's profile.  One per session email.

    `email` and `id` never change after creation.
    """
    id: str = ""
    first_name: str = ""
    last_name: str = ""
    email: str = ""
    phone: str = ""
    role: str = "Team Member"
    department: str = ""
    avatar: Optional[str] = None
    bio: str = ""
    join_date: Optional[datetime.date] = None
    timezone: str = "UTC"
    notifications: NotificationSettings = field(default_factory=NotificationSettings)
    preferences: Preferences = field(default_factory=Preferences)


@dataclass
class Session:
    """Ambient identity written at login and read by the store."""
    email: str = ""
    user_type: UserType = UserType.SHAREHOLDER


# ---------------------------------------------------------------------------
# Derived values (never persisted)
# ---------------------------------------------------------------------------


@dataclass
class DashboardStats:
    """
    Summary figures shown on the dashboard header cards.

    The *_change fields are display heuristics against fixed baselines,
    not historical deltas.
    """
    total_reports: int = 0
    pending_invoices: str = "$0"
    active_projects: int = 0
    team_members: int = 0
    reports_change: str = "+0"
    invoices_change: str = "+0"
    projects_change: str = "+0"
    members_change: str = "0"


@dataclass
class InvoiceSummary:
    count: int = 0
    total_amount: float = 0.0
    pending_amount: float = 0.0
