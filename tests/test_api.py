import pytest

from application import DashboardStore
from infrastructure import StorageUnitOfWork

API = "/api/v1"


def _reload(storage):
    return DashboardStore(StorageUnitOfWork(storage), default_timezone="UTC")


def _login(client, email="alice@buildright.com", user_type="team"):
    return client.post(f"{API}/session", json={"email": email, "user_type": user_type})


def test_health(client):
    assert client.get("/health").json() == {"status": "ok"}


# ---------------------------------------------------------------------------
# Session
# ---------------------------------------------------------------------------

class TestSession:
    def test_login_and_read_back(self, client):
        resp = _login(client)
        assert resp.status_code == 201
        assert resp.json()["data"] == {"email": "alice@buildright.com", "user_type": "team"}

        assert client.get(f"{API}/session").json()["data"]["user_type"] == "team"

    def test_no_session_is_404(self, client):
        resp = client.get(f"{API}/session")
        assert resp.status_code == 404
        assert "detail" in resp.json()

    def test_invalid_login(self, client):
        assert _login(client, email="not-an-email").status_code == 422
        assert _login(client, user_type="admin").status_code == 422

    def test_logout(self, client):
        _login(client)
        assert client.delete(f"{API}/session").status_code == 204
        assert client.get(f"{API}/session").status_code == 404


# ---------------------------------------------------------------------------
# Dashboard
# ---------------------------------------------------------------------------

class TestDashboard:
    def test_dashboard_creates_profile_for_session(self, client, store):
        _login(client)
        data = client.get(f"{API}/dashboard").json()["data"]

        assert data["profile"]["email"] == "alice@buildright.com"
        assert data["stats"]["pending_invoices"] == "$5,250"
        assert [r["id"] for r in data["reports"]] == ["1"]
        assert data["uploaded_files"] == []
        assert store.user_profile is not None

    def test_dashboard_without_session(self, client):
        data = client.get(f"{API}/dashboard").json()["data"]
        assert data["profile"] is None

    def test_stats(self, client):
        stats = client.get(f"{API}/stats").json()["data"]
        assert stats["total_reports"] == 1
        assert stats["members_change"] == "0"


# ---------------------------------------------------------------------------
# Records
# ---------------------------------------------------------------------------

class TestReports:
    def test_create_uses_session_author(self, client):
        _login(client)
        resp = client.post(f"{API}/reports", json={"title": "Pour schedule", "type": "weekly"})

        assert resp.status_code == 201
        report = resp.json()["data"]
        assert report["author"] == "alice@buildright.com"
        assert report["status"] == "pending"
        assert client.get(f"{API}/reports").json()["data"][0]["id"] == report["id"]

    def test_create_rejects_bad_type(self, client):
        resp = client.post(f"{API}/reports", json={"title": "x", "type": "daily"})
        assert resp.status_code == 422

    def test_update_status(self, client):
        resp = client.patch(f"{API}/reports/1", json={"status": "revision"})
        assert resp.status_code == 200
        assert resp.json()["data"]["status"] == "revision"
        assert resp.json()["data"]["title"] == "Weekly Progress Report #24"

    def test_update_missing_is_404(self, client):
        assert client.patch(f"{API}/reports/nope", json={"status": "approved"}).status_code == 404

    def test_filters(self, client):
        assert len(client.get(f"{API}/reports", params={"type": "monthly"}).json()["data"]) == 0
        assert len(client.get(f"{API}/reports", params={"status": "approved"}).json()["data"]) == 1
        assert len(client.get(f"{API}/reports", params={"q": "progress"}).json()["data"]) == 1


class TestInvoices:
    def test_list_includes_summary(self, client):
        body = client.get(f"{API}/invoices", params={"status": "pending"}).json()["data"]
        assert [i["number"] for i in body["invoices"]] == ["INV-2024-001"]
        assert body["summary"] == {"count": 1, "total_amount": 5250.0, "pending_amount": 5250.0}

    def test_negative_amount_rejected(self, client):
        resp = client.post(
            f"{API}/invoices", json={"number": "INV-1", "vendor": "V", "amount": -1}
        )
        assert resp.status_code == 422

    def test_create_and_mark_paid(self, client):
        created = client.post(
            f"{API}/invoices",
            json={"number": "INV-7", "vendor": "Acme", "amount": 300, "due_date": "2025-04-01"},
        ).json()["data"]
        assert created["due_date"] == "2025-04-01"

        paid = client.patch(f"{API}/invoices/{created['id']}", json={"status": "paid"})
        assert paid.json()["data"]["status"] == "paid"
        assert client.get(f"{API}/stats").json()["data"]["pending_invoices"] == "$5,250"

    def test_update_missing_is_404(self, client):
        assert client.patch(f"{API}/invoices/nope", json={"status": "paid"}).status_code == 404


class TestProviders:
    def test_create_and_search(self, client):
        resp = client.post(f"{API}/providers", json={
            "name": "Sue", "company": "Sparks Ltd", "category": "Electrical",
            "email": "sue@sparks.com", "rating": 4.5,
        })
        assert resp.status_code == 201
        assert resp.json()["data"]["added_date"] is not None

        found = client.get(f"{API}/providers", params={"q": "sparks"}).json()["data"]
        assert [p["name"] for p in found] == ["Sue"]

    def test_rating_out_of_range(self, client):
        resp = client.post(f"{API}/providers", json={
            "name": "Sue", "company": "S", "category": "E", "email": "sue@sparks.com", "rating": 6,
        })
        assert resp.status_code == 422

    def test_deactivate(self, client):
        resp = client.patch(f"{API}/providers/1", json={"status": "inactive"})
        assert resp.json()["data"]["status"] == "inactive"
        assert client.get(f"{API}/stats").json()["data"]["team_members"] == 0


# ---------------------------------------------------------------------------
# Files
# ---------------------------------------------------------------------------

class TestFiles:
    def test_upload_derives_invoice_and_delete_cascades(self, client):
        resp = client.post(f"{API}/files", json={
            "name": "acme.pdf", "size": 2048, "type": "application/pdf",
            "category": "invoice", "title": "Consulting - Acme Corp",
            "description": "monthly service fee",
        })
        assert resp.status_code == 201
        body = resp.json()["data"]
        file_id = body["file"]["id"]
        assert body["derived"]["vendor"] == "Acme Corp"
        assert body["derived"]["category"] == "Services"
        assert body["derived"]["amount"] == 1000.0
        assert body["derived"]["file_id"] == file_id

        assert client.delete(f"{API}/files/{file_id}").status_code == 204
        numbers = [i["number"] for i in client.get(f"{API}/invoices").json()["data"]["invoices"]]
        assert numbers == ["INV-2024-001"]
        assert client.get(f"{API}/files").json()["data"] == []

    def test_general_file_derives_nothing(self, client):
        body = client.post(f"{API}/files", json={"name": "site.jpg", "size": 10}).json()["data"]
        assert body["derived"] is None
        assert body["file"]["title"] == "site.jpg"

    def test_delete_unknown_file_is_idempotent(self, client):
        assert client.delete(f"{API}/files/missing").status_code == 204


# ---------------------------------------------------------------------------
# Profile
# ---------------------------------------------------------------------------

class TestProfile:
    def test_missing_profile(self, client):
        assert client.get(f"{API}/profile").status_code == 404
        assert client.patch(f"{API}/profile", json={"bio": "x"}).status_code == 404

    def test_ensure_requires_an_email(self, client):
        assert client.post(f"{API}/profile", json={}).status_code == 422

    def test_ensure_then_update(self, client):
        created = client.post(
            f"{API}/profile", json={"email": "ada@b.com", "timezone": "Europe/London"}
        ).json()["data"]
        assert created["timezone"] == "Europe/London"
        assert created["preferences"]["theme"] == "system"

        again = client.post(f"{API}/profile", json={"email": "ada@b.com"}).json()["data"]
        assert again["id"] == created["id"]

        updated = client.patch(f"{API}/profile", json={
            "first_name": "Ada", "preferences": {"theme": "dark"},
            "notifications": {"email": False},
        }).json()["data"]
        assert updated["first_name"] == "Ada"
        assert updated["preferences"] == {"theme": "dark", "language": "en", "date_format": "MM/DD/YYYY"}
        assert updated["notifications"]["email"] is False
        assert updated["notifications"]["push"] is True

    def test_bad_theme(self, client):
        client.post(f"{API}/profile", json={"email": "ada@b.com"})
        assert client.patch(f"{API}/profile", json={"preferences": {"theme": "neon"}}).status_code == 422


# ---------------------------------------------------------------------------
# Explicit nulls and persistence after PATCH
# ---------------------------------------------------------------------------

class TestPatchNulls:
    @pytest.mark.parametrize("path, body", [
        ("/reports/1", {"status": None}),
        ("/reports/1", {"title": None}),
        ("/invoices/1", {"amount": None}),
        ("/invoices/1", {"status": None}),
        ("/providers/1", {"email": None}),
        ("/providers/1", {"rating": None}),
    ])
    def test_null_on_required_field_is_rejected(self, client, storage, store, path, body):
        before = (store.reports, store.invoices, store.service_providers)

        assert client.patch(f"{API}{path}", json=body).status_code == 422

        assert client.get(f"{API}/stats").status_code == 200
        fresh = _reload(storage)
        assert (fresh.reports, fresh.invoices, fresh.service_providers) == before

    @pytest.mark.parametrize("body", [
        {"notifications": None},
        {"preferences": None},
        {"notifications": {"push": None}},
        {"bio": None},
    ])
    def test_null_profile_fields_are_rejected(self, client, storage, store, body):
        client.post(f"{API}/profile", json={"email": "ada@b.com"})
        before = store.user_profile

        assert client.patch(f"{API}/profile", json=body).status_code == 422
        assert _reload(storage).user_profile == before

    def test_null_clears_optional_fields(self, client, storage, store):
        resp = client.patch(f"{API}/invoices/1", json={"due_date": None})
        assert resp.status_code == 200
        assert resp.json()["data"]["due_date"] is None

        assert client.patch(f"{API}/providers/1", json={"avatar": None}).status_code == 200
        fresh = _reload(storage)
        assert fresh.invoices == store.invoices
        assert fresh.invoices[0].due_date is None
        assert fresh.service_providers == store.service_providers

    def test_patches_survive_reload(self, client, storage, store):
        client.post(f"{API}/profile", json={"email": "ada@b.com"})
        client.patch(f"{API}/reports/1", json={"status": "revision", "description": "redo"})
        client.patch(f"{API}/invoices/1", json={"status": "paid", "amount": 5300.5})
        client.patch(f"{API}/providers/1", json={"rating": 3.5, "location": "Boston, MA"})
        client.patch(f"{API}/profile", json={
            "last_name": "Lovelace", "notifications": {"invoices": False},
            "preferences": {"language": "fr"},
        })

        fresh = _reload(storage)
        assert fresh.reports == store.reports
        assert fresh.invoices == store.invoices
        assert fresh.service_providers == store.service_providers
        assert fresh.user_profile == store.user_profile
        assert fresh.invoices[0].amount == 5300.5
        assert fresh.user_profile.preferences.language == "fr"
