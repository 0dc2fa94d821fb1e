import json
from concurrent.futures import ThreadPoolExecutor
from datetime import date, datetime
from zoneinfo import ZoneInfo

import pytest
from fastapi import Depends, FastAPI
from fastapi.testclient import TestClient

from src.cherished.auth import get_basic_auth_dependency
from src.cherished.db import SQLiteFriendRequestRepository, SQLiteRepository
from src.cherished.generate_openapi import generate_openapi
from src.cherished.main import app
from src.cherished.recurrence import InvalidDateFormat, RecurrenceKind
from src.cherished.repositories import (
    DateQuery,
    FriendLinkExists,
    InMemoryFriendRequestRepository,
    InMemoryRepository,
    get_repository,
)
from src.cherished.schemas import TrackedDateCreate, TrackedDateUpdate
from src.cherished.settings import get_settings
from src.cherished.utils import resolve_today


def payload(title, date_value, kind):
    return TrackedDateCreate(title=title, date=date_value, type=kind)


class TestSettings:
    def test_defaults(self, monkeypatch):
        for name in ["PERSISTENCE_BACKEND", "APP_TIMEZONE", "DEFAULT_USER_ID", "LOG_LEVEL", "ENABLE_BASIC_AUTH"]:
            monkeypatch.delenv(name, raising=False)
        settings = get_settings()
        assert settings.persistence_backend == "memory"
        assert settings.app_timezone == "UTC"
        assert settings.default_user_id == "local"
        assert settings.log_level == "INFO"
        assert settings.enable_basic_auth is False
        assert settings.basic_auth_username is None

    def test_invalid_values_fall_back(self, monkeypatch):
        monkeypatch.setenv("PERSISTENCE_BACKEND", "postgres")
        monkeypatch.setenv("APP_TIMEZONE", "Mars/Olympus_Mons")
        monkeypatch.setenv("LOG_LEVEL", "loud")
        settings = get_settings()
        assert settings.persistence_backend == "memory"
        assert settings.app_timezone == "UTC"
        assert settings.log_level == "INFO"

    def test_explicit_values(self, monkeypatch):
        monkeypatch.setenv("APP_TIMEZONE", "Asia/Shanghai")
        monkeypatch.setenv("DEFAULT_USER_ID", "family")
        monkeypatch.setenv("CORS_ALLOW_ORIGINS", "https://a.example, https://b.example")
        settings = get_settings()
        assert settings.app_timezone == "Asia/Shanghai"
        assert settings.default_user_id == "family"
        assert settings.cors_allow_origins == ["https://a.example", "https://b.example"]


class TestResolveToday:
    def test_explicit_day_wins(self):
        assert resolve_today("2024-02-29", "Pacific/Kiritimati") == date(2024, 2, 29)

    def test_invalid_explicit_day(self):
        with pytest.raises(InvalidDateFormat):
            resolve_today("29/02/2024", "UTC")

    def test_defaults_to_wall_clock_day_in_zone(self):
        zone = ZoneInfo("Pacific/Kiritimati")
        before = datetime.now(zone).date()
        today = resolve_today(None, "Pacific/Kiritimati")
        after = datetime.now(zone).date()
        assert today in (before, after)


class TestBasicAuth:
    def _client(self) -> TestClient:
        guarded = FastAPI()

        @guarded.get("/", dependencies=[Depends(get_basic_auth_dependency())])
        def index():
            return {"ok": True}

        return TestClient(guarded)

    def test_disabled_is_noop(self, monkeypatch):
        monkeypatch.delenv("ENABLE_BASIC_AUTH", raising=False)
        assert self._client().get("/").status_code == 200

    def test_enabled_requires_credentials(self, monkeypatch):
        monkeypatch.setenv("ENABLE_BASIC_AUTH", "true")
        monkeypatch.setenv("BASIC_AUTH_USERNAME", "keeper")
        monkeypatch.setenv("BASIC_AUTH_PASSWORD", "s3cret")
        client = self._client()
        assert client.get("/", auth=("keeper", "s3cret")).status_code == 200
        res_bad = client.get("/", auth=("keeper", "wrong"))
        assert res_bad.status_code == 401
        assert res_bad.json()["detail"] == "Invalid authentication credentials"
        res_none = client.get("/")
        assert res_none.status_code == 401
        assert res_none.headers["WWW-Authenticate"] == "Basic"

    def test_enabled_without_configured_credentials(self, monkeypatch):
        monkeypatch.setenv("ENABLE_BASIC_AUTH", "1")
        monkeypatch.delenv("BASIC_AUTH_USERNAME", raising=False)
        monkeypatch.delenv("BASIC_AUTH_PASSWORD", raising=False)
        res = self._client().get("/", auth=("keeper", "s3cret"))
        assert res.status_code == 401
        assert res.json()["detail"] == "Server authentication not configured"


class TestInMemoryRepository:
    def test_owner_scoping_filters_and_paging(self):
        repo = InMemoryRepository()
        repo.create("alice", payload("Rent", "2024-01-01", RecurrenceKind.MONTHLY))
        repo.create("alice", payload("Birthday", "1990-05-05", RecurrenceKind.YEARLY))
        repo.create("alice", payload("Anniversary", "2015-06-20", RecurrenceKind.YEARLY))
        repo.create("bob", payload("Bob's thing", "2020-01-01", RecurrenceKind.ONE_TIME))

        items, total = repo.list(DateQuery(owner_id="alice", type="yearly", sort="title"))
        assert total == 2
        assert [t["title"] for t in items] == ["Anniversary", "Birthday"]

        items, total = repo.list(DateQuery(owner_id="alice", sort="-title", limit=1, offset=1))
        assert total == 3
        assert [t["title"] for t in items] == ["Birthday"]

        items, total = repo.list(DateQuery(owner_id="alice", limit=None))
        assert total == 3
        assert len(items) == 3

    def test_returned_entities_are_copies(self):
        repo = InMemoryRepository()
        created = repo.create("alice", payload("Rent", "2024-01-01", RecurrenceKind.MONTHLY))
        created["title"] = "mutated"
        assert repo.get(created["id"])["title"] == "Rent"

    def test_search_is_a_literal_substring(self):
        repo = InMemoryRepository()
        for title in ["100% done", "1000 days", "a_b", "axb"]:
            repo.create("alice", payload(title, "2024-01-01", RecurrenceKind.ONE_TIME))
        items, _ = repo.list(DateQuery(owner_id="alice", search="0%", limit=None))
        assert [t["title"] for t in items] == ["100% done"]
        items, _ = repo.list(DateQuery(owner_id="alice", search="_", limit=None))
        assert [t["title"] for t in items] == ["a_b"]


class TestInMemoryFriendRequestRepository:
    def test_concurrent_sends_create_a_single_request(self):
        repo = InMemoryFriendRequestRepository()

        def send(i):
            sender, recipient = ("alice", "bob") if i % 2 else ("bob", "alice")
            try:
                return repo.create(sender, recipient)
            except FriendLinkExists:
                return None

        with ThreadPoolExecutor(max_workers=8) as pool:
            results = list(pool.map(send, range(32)))
        assert len([r for r in results if r is not None]) == 1
        assert len(repo.find_between("alice", "bob")) == 1

    def test_create_reports_the_blocking_status(self):
        repo = InMemoryFriendRequestRepository()
        first = repo.create("alice", "bob")
        with pytest.raises(FriendLinkExists) as excinfo:
            repo.create("bob", "alice")
        assert excinfo.value.status == "pending"
        repo.set_status(first["id"], "accepted")
        with pytest.raises(FriendLinkExists) as excinfo:
            repo.create("alice", "bob")
        assert excinfo.value.status == "accepted"

    def test_rejected_link_does_not_block(self):
        repo = InMemoryFriendRequestRepository()
        first = repo.create("alice", "bob")
        repo.set_status(first["id"], "rejected")
        assert repo.create("alice", "bob")["status"] == "pending"

    def test_conditional_transition_applies_once(self):
        repo = InMemoryFriendRequestRepository()
        request = repo.create("alice", "bob")
        assert repo.set_status(request["id"], "accepted", expected_status="pending")["status"] == "accepted"
        assert repo.set_status(request["id"], "rejected", expected_status="pending") is None
        assert repo.get(request["id"])["status"] == "accepted"
        assert repo.set_status("missing", "accepted", expected_status="pending") is None


class TestSQLiteRepository:
    def test_crud_and_listing(self, tmp_path):
        repo = SQLiteRepository(str(tmp_path / "nested" / "dates.db"))
        rent = repo.create("alice", payload("Rent", "2024-01-31", RecurrenceKind.MONTHLY))
        repo.create("alice", payload("birthday", "1990-05-05", RecurrenceKind.YEARLY))
        repo.create("bob", payload("Bob's", "2020-01-01", RecurrenceKind.ONE_TIME))

        fetched = repo.get(rent["id"])
        assert fetched["date"] == "2024-01-31"
        assert fetched["type"] == "monthly"
        assert isinstance(fetched["created_at"], datetime)

        items, total = repo.list(DateQuery(owner_id="alice", sort="title"))
        assert total == 2
        assert [t["title"] for t in items] == ["birthday", "Rent"]

        items, total = repo.list(DateQuery(owner_id="alice", search="REN", limit=None))
        assert total == 1
        assert items[0]["id"] == rent["id"]

        updated = repo.update(rent["id"], TrackedDateUpdate(date="2024-02-01"))
        assert updated["date"] == "2024-02-01"
        assert updated["title"] == "Rent"
        assert repo.update("missing", TrackedDateUpdate(title="x")) is None

        assert repo.delete(rent["id"]) is True
        assert repo.delete(rent["id"]) is False
        assert repo.get(rent["id"]) is None

    def test_search_is_a_literal_substring(self, tmp_path):
        repo = SQLiteRepository(str(tmp_path / "dates.db"))
        for title in ["100% done", "1000 days", "a_b", "axb", "back\\slash"]:
            repo.create("alice", payload(title, "2024-01-01", RecurrenceKind.ONE_TIME))
        items, _ = repo.list(DateQuery(owner_id="alice", search="0%", limit=None))
        assert [t["title"] for t in items] == ["100% done"]
        items, _ = repo.list(DateQuery(owner_id="alice", search="_", limit=None))
        assert [t["title"] for t in items] == ["a_b"]
        items, _ = repo.list(DateQuery(owner_id="alice", search="k\\s", limit=None))
        assert [t["title"] for t in items] == ["back\\slash"]

    def test_friend_requests(self, tmp_path):
        repo = SQLiteFriendRequestRepository(str(tmp_path / "friends.db"))
        first = repo.create("alice", "bob")
        repo.create("carol", "alice")

        assert [r["id"] for r in repo.find_between("bob", "alice")] == [first["id"]]
        assert len(repo.list_for_user("alice")) == 2
        assert [r["from_user_id"] for r in repo.list_for_user("alice", direction="incoming")] == ["carol"]

        accepted = repo.set_status(first["id"], "accepted")
        assert accepted["status"] == "accepted"
        assert [r["id"] for r in repo.list_for_user("bob", status="accepted")] == [first["id"]]
        assert repo.set_status("missing", "accepted") is None
        with pytest.raises(ValueError):
            repo.set_status(first["id"], "maybe")

    def test_friend_request_create_and_transition_are_guarded(self, tmp_path):
        repo = SQLiteFriendRequestRepository(str(tmp_path / "friends.db"))
        request = repo.create("alice", "bob")
        with pytest.raises(FriendLinkExists) as excinfo:
            repo.create("bob", "alice")
        assert excinfo.value.status == "pending"
        assert len(repo.find_between("alice", "bob")) == 1

        assert repo.set_status(request["id"], "rejected", expected_status="pending")["status"] == "rejected"
        assert repo.set_status(request["id"], "accepted", expected_status="pending") is None
        assert repo.get(request["id"])["status"] == "rejected"
        assert repo.create("bob", "alice")["status"] == "pending"

    def test_app_runs_on_sqlite_backend(self, tmp_path, monkeypatch):
        monkeypatch.setenv("PERSISTENCE_BACKEND", "sqlite")
        monkeypatch.setenv("SQLITE_DB_PATH", str(tmp_path / "app.db"))
        get_repository.cache_clear()
        assert isinstance(get_repository(), SQLiteRepository)

        client = TestClient(app)
        res = client.post(
            "/api/v1/dates/?today=2024-06-09",
            json={"title": "Graduation", "date": "2023-06-10", "type": "yearly"},
        )
        assert res.status_code == 201
        assert res.json()["status"]["label"] == "Tomorrow"
        listed = client.get("/api/v1/dates/?today=2024-06-10").json()
        assert listed["total"] == 1
        assert listed["items"][0]["status"]["label"] == "Today"


class TestOpenAPI:
    def test_generate_openapi_writes_schema(self, tmp_path):
        out = generate_openapi(str(tmp_path / "interfaces" / "openapi.json"))
        with open(out, encoding="utf-8") as f:
            schema = json.load(f)
        assert "/api/v1/dates/" in schema["paths"]
        assert "/api/v1/friends/requests" in schema["paths"]
        assert {t["name"] for t in schema["tags"]} >= {"health", "dates", "friends"}
