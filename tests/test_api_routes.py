import logging
import unittest
from types import SimpleNamespace

logging.disable(logging.CRITICAL)


class _FakeOutbound:
    def __init__(self):
        self.created = []
        self.tag_calls = []

    async def create_task(self, data):
        self.created.append(data)
        if data.title == "explode":
            return {"status": "failed", "success": False, "error": "backend rejected task"}
        return {"status": "success", "success": True, "task": {"task_id": 1}, "clickup_id": "cu1", "linked": True}

    async def update_task(self, task_id, data):
        if task_id == 404:
            return {"status": "not_found", "success": False, "error": "Task 404 not found"}
        return {"status": "success", "success": True, "mirrored": True}

    async def delete_task(self, task_id):
        return {"status": "success", "success": True, "mirrored": False}

    async def sync_tags(self, external_id, tags):
        self.tag_calls.append((external_id, tags))
        return {"added": tags, "removed": [], "failed": []}

    async def fetch_task_tags(self, tasks=None):
        return {"cu1": ["dev"]}


class _FakeLookup:
    def __init__(self, tasks):
        self.tasks = tasks

    async def by_internal_id(self, internal_id):
        return self.tasks.get(internal_id)


class _FakeMapper:
    def __init__(self):
        self.refreshed = 0

    async def resolve(self, external_id):
        return {"555": 7}.get(external_id)

    async def resolve_reverse(self, internal_id):
        return {7: "555"}.get(internal_id)

    async def refresh(self):
        self.refreshed += 1

    async def report(self):
        return {"total_mappings": 1}

    async def persist_backlinks(self):
        return {"updated": 0, "failed": 0, "already_linked": 1}


def _client():
    from fastapi import FastAPI
    from fastapi.testclient import TestClient

    from tasksync.api import debug, kpi, tasks
    from tasksync.schemas import InternalTask
    from tasksync.services.cache import TTLCache
    from tasksync.services.kpi import TeamKPI

    class _FakeKPI:
        async def get_team_kpis(self):
            return {"dev": TeamKPI(team_name="dev", total_tasks=3)}

        def invalidate(self):
            pass

    app = FastAPI()
    for module in (tasks, debug, kpi):
        app.include_router(module.router)
    services = SimpleNamespace(
        settings=SimpleNamespace(placeholder_prefix="PENDING_"),
        outbound=_FakeOutbound(),
        lookup=_FakeLookup(
            {
                1: InternalTask(internal_id=1, external_id="cu1"),
                2: InternalTask(internal_id=2, external_id="PENDING_x"),
            }
        ),
        mapper=_FakeMapper(),
        cache=TTLCache(),
        kpi=_FakeKPI(),
        webhooks=SimpleNamespace(stats=lambda: {"queued": 0}),
    )
    app.state.services = services
    return TestClient(app), services


class TaskRouteTests(unittest.TestCase):
    def test_create(self):
        client, services = _client()

        resp = client.post("/api/tasks/", json={"title": "Plan", "status": "Pending"})

        self.assertEqual(resp.status_code, 201)
        self.assertEqual(resp.json()["clickup_id"], "cu1")
        self.assertEqual(services.outbound.created[0].status, "Pending")

    def test_create_requires_title(self):
        client, _ = _client()

        self.assertEqual(client.post("/api/tasks/", json={"status": "Pending"}).status_code, 400)

    def test_create_failure_is_502(self):
        client, _ = _client()

        resp = client.post("/api/tasks/", json={"title": "explode"})

        self.assertEqual(resp.status_code, 502)
        self.assertIn("backend rejected", resp.json()["detail"])

    def test_update_unknown_is_404(self):
        client, _ = _client()

        self.assertEqual(client.put("/api/tasks/404", json={"title": "x"}).status_code, 404)
        self.assertEqual(client.put("/api/tasks/1", json={"title": "x"}).status_code, 200)

    def test_progress_is_validated(self):
        client, _ = _client()

        self.assertEqual(client.put("/api/tasks/1", json={"progress_percentage": 150}).status_code, 422)

    def test_delete(self):
        client, _ = _client()

        self.assertTrue(client.delete("/api/tasks/1").json()["success"])

    def test_set_tags(self):
        client, services = _client()

        self.assertEqual(client.put("/api/tasks/1/tags", json={"tags": ["dev"]}).status_code, 200)
        self.assertEqual(services.outbound.tag_calls, [("cu1", ["dev"])])
        self.assertEqual(client.put("/api/tasks/2/tags", json={"tags": ["dev"]}).status_code, 409)
        self.assertEqual(client.put("/api/tasks/3/tags", json={"tags": ["dev"]}).status_code, 404)

    def test_list_tags(self):
        client, _ = _client()

        self.assertEqual(client.get("/api/tasks/tags").json(), {"cu1": ["dev"]})


class DebugRouteTests(unittest.TestCase):
    def test_lookups(self):
        client, _ = _client()

        self.assertEqual(
            client.get("/api/debug/map-to-internal/555").json(),
            {"external_id": "555", "internal_id": 7, "found": True},
        )
        self.assertEqual(
            client.get("/api/debug/map-to-external/8").json(),
            {"internal_id": 8, "external_id": None, "found": False},
        )

    def test_refresh_and_report(self):
        client, services = _client()

        self.assertEqual(client.post("/api/debug/refresh-mapping").json(), {"total_mappings": 1})
        self.assertEqual(services.mapper.refreshed, 1)
        self.assertEqual(client.get("/api/debug/user-mapping").json(), {"total_mappings": 1})

    def test_clear_cache_and_health(self):
        client, _ = _client()

        self.assertEqual(client.post("/api/debug/clear-cache").json()["cleared"], [])
        health = client.get("/api/debug/health").json()
        self.assertEqual(health["status"], "healthy")
        self.assertEqual(health["webhook_queue"], {"queued": 0})


class KPIRouteTests(unittest.TestCase):
    def test_kpis(self):
        client, _ = _client()

        self.assertEqual(client.get("/api/kpi/").json()["dev"]["total_tasks"], 3)
        self.assertEqual(client.get("/api/kpi/?team=DEV").json()["team_name"], "dev")
        self.assertEqual(client.get("/api/kpi/?team=ops").status_code, 404)
        self.assertIn("dev", client.post("/api/kpi/refresh").json())


if __name__ == "__main__":
    unittest.main()
