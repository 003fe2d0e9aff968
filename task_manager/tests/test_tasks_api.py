from datetime import datetime

import pytest
from fastapi.testclient import TestClient

from src.api.errors import InternalError
from src.api.main import create_app
from src.api.repositories import InMemoryTaskStore

BASE = "/api/tasks"


def parse_wire_dt(value: str) -> datetime:
    # Pydantic renders UTC as a trailing 'Z'
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


def create_task(client: TestClient, title="Test Task") -> dict:
    res = client.post(BASE, json={"title": title})
    assert res.status_code == 201, res.text
    return res.json()["data"]


def assert_task_shape(task: dict):
    assert set(task.keys()) == {"id", "title", "status", "createdAt", "updatedAt"}
    assert isinstance(task["id"], str) and len(task["id"]) == 24
    int(task["id"], 16)
    assert isinstance(task["title"], str)
    assert task["status"] in ("open", "done")
    # Timestamps are ISO8601 strings
    assert parse_wire_dt(task["updatedAt"]) >= parse_wire_dt(task["createdAt"])


def assert_error(res, status_code: int, error: str = None):
    assert res.status_code == status_code
    body = res.json()
    assert body["success"] is False
    assert "data" not in body
    if error is not None:
        assert body["error"] == error
    return body


class TestHealth:
    def test_health_check_reports_task_count(self, client):
        create_task(client, "one")
        create_task(client, "two")
        res = client.get("/api/health")
        assert res.status_code == 200
        body = res.json()
        assert body["success"] is True
        assert body["data"]["status"] == "healthy"
        assert body["data"]["services"] == {"database": "connected", "api": "operational"}
        assert body["data"]["info"]["tasksCount"] == 2

    def test_simple_health(self, client):
        res = client.get("/api/health/simple")
        assert res.status_code == 200
        assert res.json()["data"]["status"] == "healthy"


class TestTasksCRUD:
    def test_list_empty(self, client):
        res = client.get(BASE)
        assert res.status_code == 200
        assert res.json() == {"success": True, "data": []}

    def test_create_trims_title(self, client):
        res = client.post(BASE, json={"title": "  Buy milk  "})
        assert res.status_code == 201
        body = res.json()
        assert body["success"] is True
        task = body["data"]
        assert_task_shape(task)
        assert task["title"] == "Buy milk"
        assert task["status"] == "open"
        assert task["createdAt"] == task["updatedAt"]

    def test_create_accepts_200_chars_after_trim(self, client):
        title = "x" * 200
        task = create_task(client, f"   {title}   ")
        assert task["title"] == title

    def test_get_task_and_not_found(self, client):
        task = create_task(client, "Read book")
        tid = task["id"]

        res_get = client.get(f"{BASE}/{tid}")
        assert res_get.status_code == 200
        fetched = res_get.json()["data"]
        assert fetched == task

        assert_error(client.get(f"{BASE}/{'0' * 24}"), 404, "Task not found")

    def test_patch_status_and_title(self, client):
        tid = create_task(client, "Partial")["id"]

        res = client.patch(f"{BASE}/{tid}", json={"status": "done"})
        assert res.status_code == 200
        patched = res.json()["data"]
        assert patched["status"] == "done"
        assert patched["title"] == "Partial"
        assert parse_wire_dt(patched["updatedAt"]) > parse_wire_dt(patched["createdAt"])

        res = client.patch(f"{BASE}/{tid}", json={"title": "  Renamed "})
        assert res.status_code == 200
        renamed = res.json()["data"]
        assert renamed["title"] == "Renamed"
        assert renamed["status"] == "done"
        assert renamed["createdAt"] == patched["createdAt"]
        assert parse_wire_dt(renamed["updatedAt"]) > parse_wire_dt(patched["updatedAt"])

    def test_patch_not_found(self, client):
        assert_error(client.patch(f"{BASE}/{'a' * 24}", json={"title": "Nope"}), 404, "Task not found")

    def test_delete_task(self, client):
        tid = create_task(client, "ToDelete")["id"]

        res_del = client.delete(f"{BASE}/{tid}")
        assert res_del.status_code == 204
        assert res_del.content == b""

        # Every later operation on the id is a 404
        assert_error(client.get(f"{BASE}/{tid}"), 404)
        assert_error(client.patch(f"{BASE}/{tid}", json={"status": "done"}), 404)
        assert_error(client.delete(f"{BASE}/{tid}"), 404, "Task not found")

    def test_list_newest_first(self, client):
        ids = [create_task(client, f"Task {i}")["id"] for i in range(5)]
        res = client.get(BASE)
        items = res.json()["data"]
        assert [t["id"] for t in items] == list(reversed(ids))
        created = [parse_wire_dt(t["createdAt"]) for t in items]
        assert created == sorted(created, reverse=True)

    def test_end_to_end_lifecycle(self, client):
        res = client.post(BASE, json={"title": "  Buy milk  "})
        assert res.status_code == 201
        task = res.json()["data"]
        assert task["title"] == "Buy milk"
        assert task["status"] == "open"

        res = client.patch(f"{BASE}/{task['id']}", json={"status": "done"})
        assert res.status_code == 200
        data = res.json()["data"]
        assert data["status"] == "done"
        assert parse_wire_dt(data["updatedAt"]) > parse_wire_dt(data["createdAt"])

        assert client.delete(f"{BASE}/{task['id']}").status_code == 204
        assert_error(client.get(f"{BASE}/{task['id']}"), 404)


class TestStats:
    def test_stats_report_every_status(self, client):
        res = client.get(f"{BASE}/stats")
        assert res.status_code == 200
        assert res.json()["data"] == [{"status": "open", "count": 0}, {"status": "done", "count": 0}]

    def test_stats_sum_to_total(self, client):
        ids = [create_task(client, f"T{i}")["id"] for i in range(4)]
        client.patch(f"{BASE}/{ids[0]}", json={"status": "done"})
        client.patch(f"{BASE}/{ids[1]}", json={"status": "done"})
        client.delete(f"{BASE}/{ids[2]}")

        stats = client.get(f"{BASE}/stats").json()["data"]
        assert stats == [{"status": "open", "count": 1}, {"status": "done", "count": 2}]
        total = len(client.get(BASE).json()["data"])
        assert sum(s["count"] for s in stats) == total


class TestValidationErrors:
    @pytest.mark.parametrize("title", ["", "   ", "\t\n"])
    def test_create_empty_title(self, client, title):
        body = assert_error(client.post(BASE, json={"title": title}), 400, "Title cannot be empty")
        assert body["details"]["field"] == "title"
        # nothing persisted
        assert client.get(BASE).json()["data"] == []

    def test_create_title_too_long(self, client):
        assert_error(client.post(BASE, json={"title": "y" * 201}), 400, "Title cannot exceed 200 characters")
        assert client.get(BASE).json()["data"] == []

    @pytest.mark.parametrize("payload", [{}, {"title": None}, {"title": 42}, {"name": "x"}])
    def test_create_missing_or_mistyped_title(self, client, payload):
        body = assert_error(client.post(BASE, json=payload), 400, "Validation failed")
        assert isinstance(body["details"], list)
        assert body["details"][0]["loc"][-1] == "title"

    def test_create_malformed_json(self, client):
        res = client.post(BASE, content=b"{not json", headers={"Content-Type": "application/json"})
        assert_error(res, 400, "Validation failed")

    def test_patch_invalid_status(self, client):
        tid = create_task(client, "Status")["id"]
        body = assert_error(
            client.patch(f"{BASE}/{tid}", json={"status": "archived"}), 400, "Status must be either open or done"
        )
        assert body["details"]["allowed"] == ["open", "done"]

    def test_patch_empty_body(self, client):
        tid = create_task(client, "Nothing")["id"]
        assert_error(client.patch(f"{BASE}/{tid}", json={}), 400)

    def test_patch_is_all_or_nothing(self, client):
        task = create_task(client, "Original")
        assert_error(client.patch(f"{BASE}/{task['id']}", json={"title": "New", "status": "bogus"}), 400)
        assert_error(client.patch(f"{BASE}/{task['id']}", json={"title": "   ", "status": "done"}), 400)
        assert client.get(f"{BASE}/{task['id']}").json()["data"] == task


class TestMalformedIds:
    @pytest.mark.parametrize(
        "method,kwargs",
        [("get", {}), ("patch", {"json": {"status": "done"}}), ("delete", {})],
    )
    def test_malformed_id_is_400(self, client, method, kwargs):
        res = getattr(client, method)(f"{BASE}/not-an-id", **kwargs)
        assert_error(res, 400, "Invalid task ID format")

    def test_uppercase_hex_id_is_accepted(self, client):
        tid = create_task(client, "Case")["id"]
        res = client.get(f"{BASE}/{tid.upper()}")
        assert res.status_code == 200
        assert res.json()["data"]["id"] == tid


class TestFallbackHandlers:
    def test_unknown_route_uses_envelope(self, client):
        assert_error(client.get("/api/unknown"), 404, "Endpoint not found")

    def test_method_not_allowed_uses_envelope(self, client):
        assert_error(client.put(f"{BASE}/{'0' * 24}", json={"title": "x"}), 405)

    def test_unexpected_error_shows_detail_in_development(self, settings_factory):
        class ExplodingStore(InMemoryTaskStore):
            def find_all(self):
                raise RuntimeError("disk on fire")

        app = create_app(settings_factory(environment="development"), store=ExplodingStore())
        with TestClient(app, raise_server_exceptions=False) as c:
            assert_error(c.get(BASE), 500, "disk on fire")

    def test_unexpected_error_hides_detail_in_production(self, settings_factory):
        class ExplodingStore(InMemoryTaskStore):
            def find_all(self):
                raise RuntimeError("disk on fire")

        app = create_app(settings_factory(environment="production"), store=ExplodingStore())
        with TestClient(app, raise_server_exceptions=False) as c:
            assert_error(c.get(BASE), 500, "Internal server error")

    def test_internal_store_error_is_500(self, settings_factory):
        class BrokenStore(InMemoryTaskStore):
            def count_by_status(self):
                raise InternalError("database unavailable")

        app = create_app(settings_factory(environment="production"), store=BrokenStore())
        with TestClient(app) as c:
            assert_error(c.get(f"{BASE}/stats"), 500, "Internal server error")


class TestLifespan:
    def test_app_opens_and_closes_configured_store(self, settings_factory, tmp_path):
        settings = settings_factory(persistence_backend="sqlite", sqlite_db_path=str(tmp_path / "db" / "tasks.db"))
        app = create_app(settings)
        with TestClient(app) as c:
            tid = create_task(c, "persisted")["id"]
            store = app.state.store
        assert app.state.store is None
        # closed handle reports unhealthy storage
        assert store.ping() is False

        # data survives a restart on the same file
        app2 = create_app(settings)
        with TestClient(app2) as c:
            assert c.get(f"{BASE}/{tid}").json()["data"]["title"] == "persisted"
