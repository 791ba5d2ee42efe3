import json
import logging
from datetime import date

import pytest

from application import (
    INVOICES_KEY,
    PROFILE_KEY,
    REPORTS_KEY,
    SESSION_EMAIL_KEY,
    SESSION_USER_TYPE_KEY,
    AddReportCommand,
)
from infrastructure import (
    InMemoryStorage,
    JsonFileStorage,
    StorageSessionRepository,
    StorageUnitOfWork,
    build_storage,
    build_store,
    decode_collection,
    unwrap,
    wrap,
)
from model import Report, ReportStatus, Session, UserType


LEGACY_REPORT = {
    "id": "report-1700000000000",
    "title": "Legacy monthly",
    "date": "2023-11-14",
    "author": "old@site.com",
    "status": "revision",
    "type": "monthly",
    "size": "1.2 MB",
    "fileName": "legacy.pdf",
    "fileId": "file-1700000000000",
    "description": "",
}


# ---------------------------------------------------------------------------
# Envelope codec
# ---------------------------------------------------------------------------

class TestCodec:
    def test_written_value_is_versioned_camel_case(self, storage, store):
        store.add_report(AddReportCommand(
            title="T", date=date(2025, 1, 1), author="a", file_name="t.pdf",
        ))
        payload = json.loads(storage.get_item(REPORTS_KEY))

        assert payload["version"] == 1
        first = payload["data"][0]
        assert first["fileName"] == "t.pdf"
        assert first["date"] == "2025-01-01"
        assert first["status"] == "pending"
        assert "file_name" not in first

    def test_unversioned_value_is_migrated(self):
        assert unwrap(json.dumps([1, 2])) == [1, 2]
        assert unwrap(wrap({"a": 1})) == {"a": 1}

    def test_newer_version_is_rejected(self):
        with pytest.raises(ValueError, match="Unsupported schema version"):
            unwrap(json.dumps({"version": 99, "data": []}))

    def test_invalid_records_are_dropped(self, caplog):
        raw = json.dumps([LEGACY_REPORT, {"id": "bad", "status": "bogus"}, "junk"])
        with caplog.at_level(logging.WARNING, logger="infrastructure"):
            records = decode_collection(raw, Report, REPORTS_KEY)

        assert [r.id for r in records] == [LEGACY_REPORT["id"]]
        assert len(caplog.records) == 2

    def test_collection_must_be_a_list(self):
        with pytest.raises(ValueError):
            decode_collection(wrap({"id": "x"}), Report)


# ---------------------------------------------------------------------------
# Loading persisted state
# ---------------------------------------------------------------------------

class TestLoad:
    def test_legacy_browser_data_replaces_seed(self):
        storage = InMemoryStorage({REPORTS_KEY: json.dumps([LEGACY_REPORT])})
        reports = StorageUnitOfWork(storage).reports.list_all()

        assert len(reports) == 1
        assert reports[0].file_name == "legacy.pdf"
        assert reports[0].status is ReportStatus.REVISION
        assert reports[0].date == date(2023, 11, 14)

    def test_empty_stored_list_replaces_seed(self):
        storage = InMemoryStorage({INVOICES_KEY: wrap([])})
        assert StorageUnitOfWork(storage).invoices.list_all() == []

    def test_malformed_json_keeps_seed(self, caplog):
        storage = InMemoryStorage({REPORTS_KEY: "{not json"})
        with caplog.at_level(logging.WARNING, logger="infrastructure"):
            reports = StorageUnitOfWork(storage).reports.list_all()

        assert [r.id for r in reports] == ["1"]
        assert "Keeping defaults" in caplog.text

    def test_malformed_profile_is_ignored(self):
        storage = InMemoryStorage({PROFILE_KEY: wrap({"email": "a@b.com", "notifications": 5})})
        assert StorageUnitOfWork(storage).profile.get() is None

    def test_legacy_profile_loads(self):
        raw = json.dumps({
            "id": "user-1", "firstName": "Ada", "email": "ada@b.com",
            "preferences": {"theme": "dark", "language": "en", "dateFormat": "DD/MM/YYYY"},
        })
        profile = StorageUnitOfWork(InMemoryStorage({PROFILE_KEY: raw})).profile.get()

        assert profile.first_name == "Ada"
        assert profile.preferences.date_format == "DD/MM/YYYY"
        assert profile.notifications.push is True


# ---------------------------------------------------------------------------
# Storage media
# ---------------------------------------------------------------------------

class TestJsonFileStorage:
    def test_values_survive_reopen(self, tmp_path):
        path = tmp_path / "nested" / "store.json"
        JsonFileStorage(path).set_item("k", "v")

        reopened = JsonFileStorage(path)
        assert reopened.get_item("k") == "v"
        reopened.remove_item("k")
        assert JsonFileStorage(path).get_item("k") is None

    def test_unreadable_file_starts_empty(self, tmp_path):
        path = tmp_path / "store.json"
        path.write_text("garbage", encoding="utf-8")
        assert JsonFileStorage(path).get_item("k") is None

    def test_store_round_trip_through_file(self, tmp_path):
        path = tmp_path / "portal.json"
        first = build_store(path, default_timezone="UTC")
        first.add_report(AddReportCommand(title="On disk", date=None, author="a"))

        second = build_store(path)
        assert second.reports == first.reports
        assert second.reports[0].title == "On disk"

    def test_build_storage_picks_medium(self, tmp_path):
        assert isinstance(build_storage(None), InMemoryStorage)
        assert isinstance(build_storage(tmp_path / "s.json"), JsonFileStorage)


# ---------------------------------------------------------------------------
# Session identity
# ---------------------------------------------------------------------------

class TestSessionRepository:
    def test_round_trip_uses_raw_keys(self):
        storage = InMemoryStorage()
        repo = StorageSessionRepository(storage)
        repo.save(Session(email="a@b.com", user_type=UserType.TEAM))

        assert storage.get_item(SESSION_EMAIL_KEY) == "a@b.com"
        assert storage.get_item(SESSION_USER_TYPE_KEY) == "team"
        assert repo.get() == Session(email="a@b.com", user_type=UserType.TEAM)

        repo.clear()
        assert repo.get() is None
        assert storage.keys() == []

    def test_email_alone_is_not_a_session(self):
        repo = StorageSessionRepository(InMemoryStorage({SESSION_EMAIL_KEY: "a@b.com"}))
        assert repo.get_email() == "a@b.com"
        assert repo.get() is None

    def test_unknown_user_type(self):
        storage = InMemoryStorage({SESSION_EMAIL_KEY: "a@b.com", SESSION_USER_TYPE_KEY: "admin"})
        assert StorageSessionRepository(storage).get() is None
