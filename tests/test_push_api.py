import logging
import unittest
from types import SimpleNamespace

logging.disable(logging.CRITICAL)


class _FakeRelay:
    def __init__(self):
        self.pushed = []
        self.statuses = []

    async def push_task(self, push):
        from tasksync.models.sync_log import SyncStatus
        from tasksync.services.audit import SyncResult

        self.pushed.append(push)
        if push.name == "explode":
            return SyncResult(SyncStatus.FAILED, "backend 500", external_task_id=push.task_id)
        return SyncResult(SyncStatus.SUCCESS, "Created internal task", push.task_id, 12)

    async def push_delete(self, external_id):
        from tasksync.models.sync_log import SyncStatus
        from tasksync.services.audit import SyncResult

        if external_id == "known":
            return SyncResult(SyncStatus.SUCCESS, "Deleted internal task", external_id, 3)
        return SyncResult(SyncStatus.SKIPPED, "No linked internal task", external_id)

    async def push_status(self, external_id, status):
        from tasksync.models.sync_log import SyncStatus
        from tasksync.services.audit import SyncResult

        self.statuses.append((external_id, status))
        return SyncResult(SyncStatus.SUCCESS, "Status set to Completed", external_id, 3)


class _FakeRecorder:
    def __init__(self):
        self.rows = []

    async def record(self, direction, event_type, result):
        self.rows.append((direction, event_type, result))


class _FakeClickUp:
    def __init__(self, fail=False):
        self.fail = fail
        self.lists = []

    async def get_list_tasks(self, list_id=None):
        self.lists.append(list_id)
        if self.fail:
            raise RuntimeError("clickup down")
        return [{"id": "a"}, {"id": "b"}]


class _FakeNotifier:
    def __init__(self):
        self.messages = []

    async def send_message(self, text):
        self.messages.append(text)
        return True


def _client(*, notifier=None, list_id="L1", clickup=None, notify_middleware=False):
    from fastapi import FastAPI
    from fastapi.testclient import TestClient

    from tasksync.api import task_push, telegram, webhook
    from tasksync.notifications import ApiChangeNotifyMiddleware

    app = FastAPI()
    if notify_middleware:
        app.add_middleware(ApiChangeNotifyMiddleware)
    for module in (task_push, telegram, webhook):
        app.include_router(module.router)
    services = SimpleNamespace(
        settings=SimpleNamespace(clickup_list_id=list_id, clickup_webhook_secret=None),
        relay=_FakeRelay(),
        recorder=_FakeRecorder(),
        clickup=clickup or _FakeClickUp(),
        notifier=notifier,
        webhooks=SimpleNamespace(),
    )
    app.state.services = services
    return TestClient(app), services


class TaskPushRouteTests(unittest.TestCase):
    def test_sync_accepts_clickup_field_names(self):
        from tasksync.models.sync_log import SyncDirection

        client, services = _client()

        resp = client.post(
            "/api/tasks-sync/sync",
            json={"taskId": 9, "name": "Report", "dueDate": 1700000000000, "assignees": [555]},
        )

        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json()["taskId"], "9")
        self.assertEqual(resp.json()["internalTaskId"], 12)
        push = services.relay.pushed[0]
        self.assertEqual(push.due_date, "1700000000000")
        self.assertEqual(push.assignees, ["555"])
        self.assertEqual(services.recorder.rows[0][0], SyncDirection.INBOUND)
        self.assertEqual(services.recorder.rows[0][1], "push")

    def test_sync_requires_task_id(self):
        client, _ = _client()

        self.assertEqual(client.post("/api/tasks-sync/sync", json={"name": "x"}).status_code, 422)

    def test_sync_failure_is_502(self):
        client, services = _client()

        resp = client.post("/api/tasks-sync/sync", json={"taskId": "cu1", "name": "explode"})

        self.assertEqual(resp.status_code, 502)
        self.assertEqual(len(services.recorder.rows), 1)

    def test_delete_by_clickup_id(self):
        client, _ = _client()

        self.assertTrue(client.delete("/api/tasks-sync/known").json()["success"])
        self.assertEqual(client.delete("/api/tasks-sync/unknown").status_code, 404)

    def test_status_by_clickup_id(self):
        client, services = _client()

        resp = client.patch("/api/tasks-sync/cu1/status", json={"status": "complete"})

        self.assertEqual(resp.status_code, 200)
        self.assertEqual(services.relay.statuses, [("cu1", "complete")])


class ManualSyncRouteTests(unittest.TestCase):
    def test_uses_query_list_id(self):
        client, services = _client()

        resp = client.post("/api/clickup/sync?listId=L9")

        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json()["count"], 2)
        self.assertEqual(services.clickup.lists, ["L9"])

    def test_falls_back_to_configured_list(self):
        client, services = _client()

        client.post("/api/clickup/sync")

        self.assertEqual(services.clickup.lists, ["L1"])

    def test_list_id_required(self):
        client, _ = _client(list_id="")

        self.assertEqual(client.post("/api/clickup/sync").status_code, 400)

    def test_clickup_failure_is_502(self):
        client, _ = _client(clickup=_FakeClickUp(fail=True))

        self.assertEqual(client.post("/api/clickup/sync?listId=L1").status_code, 502)


class TelegramTests(unittest.TestCase):
    def test_log_forwards_message(self):
        notifier = _FakeNotifier()
        client, _ = _client(notifier=notifier)

        resp = client.post("/api/telegram/log", json={"source": "Web", "action": "login", "message": "ok"})

        self.assertEqual(resp.json(), {"success": True})
        self.assertEqual(notifier.messages, ["*Web Log*\nAction: login\nok"])

    def test_log_without_notifier_is_503(self):
        client, _ = _client()

        self.assertEqual(client.post("/api/telegram/log", json={}).status_code, 503)

    def test_middleware_announces_mutating_api_calls(self):
        notifier = _FakeNotifier()
        client, _ = _client(notifier=notifier, notify_middleware=True)

        client.delete("/api/tasks-sync/unknown")
        client.get("/api/clickup/test")
        client.post("/api/clickup/webhook", json={"event": "taskUpdated"})

        self.assertEqual(len(notifier.messages), 1)
        self.assertIn("Path: `/api/tasks-sync/unknown`", notifier.messages[0])
        self.assertIn("Method: DELETE", notifier.messages[0])
        self.assertIn("Status: 404", notifier.messages[0])

    def test_middleware_is_silent_without_notifier(self):
        client, _ = _client(notify_middleware=True)

        self.assertEqual(client.delete("/api/tasks-sync/known").status_code, 200)


if __name__ == "__main__":
    unittest.main()
