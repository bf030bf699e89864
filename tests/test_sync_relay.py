import logging
import unittest
from datetime import datetime, timedelta

logging.disable(logging.CRITICAL)


class _FakeBackend:
    def __init__(self, tasks=None):
        self.tasks = list(tasks or [])
        self.updates = []
        self.deletes = []
        self.creates = []
        self.fail_updates = False

    async def list_tasks(self, params=None):
        if params:
            return [t for t in self.tasks if t.get("clickup_id") == params.get("clickup_id")]
        return list(self.tasks)

    async def update_task(self, task_id, data):
        if self.fail_updates:
            raise RuntimeError("backend 500")
        self.updates.append((task_id, data))
        return {"id": task_id, **data}

    async def delete_task(self, task_id):
        self.deletes.append(task_id)

    async def create_task(self, data):
        self.creates.append(data)
        return data

    @property
    def mutations(self):
        return len(self.updates) + len(self.deletes) + len(self.creates)


class _FakeClickUp:
    def __init__(self, tasks=None):
        self.tasks = tasks or {}
        self.fetched = []

    async def get_task_or_none(self, task_id):
        self.fetched.append(task_id)
        return self.tasks.get(task_id)


class _FakeMapper:
    def __init__(self, forward=None):
        self.forward = forward or {}

    async def resolve(self, external_id):
        return self.forward.get(str(external_id))


class _FakeCache:
    def __init__(self):
        self.invalidated = []

    def invalidate(self, key):
        self.invalidated.append(key)
        return True


def _relay(backend, clickup=None, mapper=None, cache=None, **kwargs):
    from tasksync.services.relay import SyncRelay
    from tasksync.models.sync_log import utcnow
    from tasksync.services.tasks import TaskLookup

    kwargs.setdefault("lookup_delay_seconds", 0)
    lookup = TaskLookup(backend, clock=kwargs.pop("clock", None) or utcnow)
    return SyncRelay(backend, clickup or _FakeClickUp(), mapper or _FakeMapper(), lookup, cache, **kwargs)


def _event(payload):
    from tasksync.schemas import WebhookEvent

    return WebhookEvent.model_validate(payload)


class StatusChangedTests(unittest.IsolatedAsyncioTestCase):
    async def test_status_from_history_puts_status_and_progress_only(self):
        from tasksync.models.sync_log import SyncStatus

        backend = _FakeBackend([{"task_id": 42, "clickup_id": "abc"}])
        clickup = _FakeClickUp()
        relay = _relay(backend, clickup)

        result = await relay.handle_event(
            _event({"event": "taskStatusUpdated", "task_id": "abc", "history_items": [{"after": {"status": "complete"}}]})
        )

        self.assertEqual(result.status, SyncStatus.SUCCESS)
        self.assertEqual(backend.updates, [(42, {"status": "Completed", "progress_percentage": 100})])
        self.assertEqual(clickup.fetched, [])

    async def test_bare_string_history_and_latest_item_wins(self):
        backend = _FakeBackend([{"task_id": 42, "clickup_id": "abc"}])
        relay = _relay(backend)

        await relay.handle_event(
            _event(
                {
                    "event": "taskStatusUpdated",
                    "task_id": "abc",
                    "history_items": [
                        {"field": "status", "after": "to do"},
                        {"field": "status", "after": "in progress"},
                        {"field": "assignee_add", "after": {"id": 1}},
                    ],
                }
            )
        )

        self.assertEqual(backend.updates, [(42, {"status": "In Progress", "progress_percentage": 50})])

    async def test_falls_back_to_fetching_task(self):
        backend = _FakeBackend([{"task_id": 42, "clickup_id": "abc"}])
        clickup = _FakeClickUp({"abc": {"id": "abc", "status": {"status": "review"}}})
        relay = _relay(backend, clickup)

        await relay.handle_event(_event({"event": "taskStatusUpdated", "task_id": "abc"}))

        self.assertEqual(backend.updates, [(42, {"status": "In Progress", "progress_percentage": 75})])

    async def test_kpi_cache_invalidated_after_success(self):
        backend = _FakeBackend([{"task_id": 42, "clickup_id": "abc"}])
        cache = _FakeCache()
        relay = _relay(backend, cache=cache)

        await relay.handle_event(
            _event({"event": "taskStatusUpdated", "task_id": "abc", "history_items": [{"after": "complete"}]})
        )

        self.assertIn("kpi", cache.invalidated)


class DeletedTests(unittest.IsolatedAsyncioTestCase):
    async def test_deleted_without_match_makes_no_mutating_call(self):
        from tasksync.models.sync_log import SyncStatus

        backend = _FakeBackend([{"task_id": 1, "clickup_id": "other"}])
        relay = _relay(backend)

        result = await relay.handle_event(_event({"event": "taskDeleted", "task_id": "missing"}))

        self.assertEqual(result.status, SyncStatus.SKIPPED)
        self.assertEqual(backend.mutations, 0)

    async def test_deleted_with_match_deletes(self):
        backend = _FakeBackend([{"task_id": 9, "clickup_id": "abc"}])
        relay = _relay(backend)

        result = await relay.handle_event(_event({"event": "taskDeleted", "task_id": "abc"}))

        self.assertTrue(result.ok)
        self.assertEqual(backend.deletes, [9])


class UpdatedTests(unittest.IsolatedAsyncioTestCase):
    def _clickup_task(self, **overrides):
        task = {
            "id": "abc",
            "name": "Write report",
            "description": "Quarterly",
            "status": {"status": "in progress"},
            "assignees": [{"id": 555}, {"id": 556}],
            "due_date": "1700000000000",
        }
        task.update(overrides)
        return task

    async def test_updated_maps_fields_and_first_assignee(self):
        backend = _FakeBackend([{"task_id": 42, "clickup_id": "abc"}])
        clickup = _FakeClickUp({"abc": self._clickup_task()})
        relay = _relay(backend, clickup, _FakeMapper({"555": 7, "556": 8}))

        await relay.handle_event(_event({"event": "taskUpdated", "task_id": "abc"}))

        self.assertEqual(
            backend.updates,
            [
                (
                    42,
                    {
                        "title": "Write report",
                        "description": "Quarterly",
                        "deadline": "2023-11-14T22:13:20.000Z",
                        "status": "In Progress",
                        "progress_percentage": 50,
                        "assignee_id": 7,
                    },
                )
            ],
        )

    async def test_unmapped_assignee_is_omitted(self):
        backend = _FakeBackend([{"task_id": 42, "clickup_id": "abc"}])
        clickup = _FakeClickUp({"abc": self._clickup_task(description=None)})
        relay = _relay(backend, clickup, _FakeMapper())

        await relay.handle_event(_event({"event": "taskAssigneeUpdated", "task_id": "abc"}))

        _, payload = backend.updates[0]
        self.assertNotIn("assignee_id", payload)
        self.assertEqual(payload["description"], "Synced from ClickUp - Status: in progress")

    async def test_unmapped_assignee_uses_default_when_configured(self):
        backend = _FakeBackend([{"task_id": 42, "clickup_id": "abc"}])
        clickup = _FakeClickUp({"abc": self._clickup_task()})
        relay = _relay(backend, clickup, _FakeMapper(), default_assignee_id=1)

        await relay.handle_event(_event({"event": "taskUpdated", "task_id": "abc"}))

        self.assertEqual(backend.updates[0][1]["assignee_id"], 1)

    async def test_updated_without_internal_task_is_skipped(self):
        from tasksync.models.sync_log import SyncStatus

        backend = _FakeBackend([])
        clickup = _FakeClickUp({"abc": self._clickup_task()})
        relay = _relay(backend, clickup)

        result = await relay.handle_event(_event({"event": "taskUpdated", "task_id": "abc"}))

        self.assertEqual(result.status, SyncStatus.SKIPPED)
        self.assertEqual(backend.mutations, 0)
        self.assertEqual(clickup.fetched, [])

    async def test_backend_failure_is_returned_not_raised(self):
        from tasksync.models.sync_log import SyncStatus

        backend = _FakeBackend([{"task_id": 42, "clickup_id": "abc"}])
        backend.fail_updates = True
        clickup = _FakeClickUp({"abc": self._clickup_task()})
        cache = _FakeCache()
        relay = _relay(backend, clickup, cache=cache)

        result = await relay.handle_event(_event({"event": "taskUpdated", "task_id": "abc"}))

        self.assertEqual(result.status, SyncStatus.FAILED)
        self.assertIn("backend 500", result.message)
        self.assertEqual(cache.invalidated, [])


class CreatedTests(unittest.IsolatedAsyncioTestCase):
    async def test_created_never_creates_internal_tasks(self):
        from tasksync.models.sync_log import SyncStatus

        backend = _FakeBackend([])
        clickup = _FakeClickUp({"new": {"id": "new", "name": "From ClickUp"}})
        relay = _relay(backend, clickup)

        result = await relay.handle_event(_event({"event": "taskCreated", "task_id": "new"}))

        self.assertEqual(result.status, SyncStatus.SKIPPED)
        self.assertEqual(backend.mutations, 0)

    async def test_created_already_linked_is_noop(self):
        from tasksync.models.sync_log import SyncStatus

        backend = _FakeBackend([{"task_id": 3, "clickup_id": "new"}])
        relay = _relay(backend)

        result = await relay.handle_event(_event({"event": "taskCreated", "task_id": "new"}))

        self.assertEqual(result.status, SyncStatus.SKIPPED)
        self.assertEqual(result.internal_task_id, 3)
        self.assertEqual(backend.mutations, 0)

    async def test_created_links_recent_placeholder(self):
        now = datetime(2025, 1, 1, 12, 0, 0)
        backend = _FakeBackend(
            [
                {
                    "task_id": 11,
                    "title": "Draft",
                    "clickup_id": "PENDING_1",
                    "created_at": (now - timedelta(seconds=3)).isoformat(),
                },
                {
                    "task_id": 12,
                    "title": "Launch",
                    "clickup_id": "PENDING_2",
                    "created_at": (now - timedelta(seconds=2)).isoformat(),
                },
            ]
        )
        clickup = _FakeClickUp(
            {"new": {"id": "new", "name": "Draft", "status": {"status": "to do"}, "assignees": [{"id": 555}]}}
        )
        relay = _relay(backend, clickup, _FakeMapper({"555": 7}), clock=lambda: now)

        await relay.handle_event(_event({"event": "taskCreated", "task_id": "new"}))

        self.assertEqual(
            backend.updates,
            [(11, {"status": "Pending", "progress_percentage": 0, "clickup_id": "new", "assignee_id": 7})],
        )

    async def test_created_ignores_stale_placeholder(self):
        now = datetime(2025, 1, 1, 12, 0, 0)
        backend = _FakeBackend(
            [{"task_id": 11, "clickup_id": "PENDING_1", "created_at": (now - timedelta(minutes=5)).isoformat()}]
        )
        clickup = _FakeClickUp({"new": {"id": "new", "name": "Anything"}})
        relay = _relay(backend, clickup, clock=lambda: now)

        await relay.handle_event(_event({"event": "taskCreated", "task_id": "new"}))

        self.assertEqual(backend.mutations, 0)


class MiscEventTests(unittest.IsolatedAsyncioTestCase):
    async def test_unknown_event_is_skipped(self):
        from tasksync.models.sync_log import SyncStatus

        backend = _FakeBackend([])
        result = await _relay(backend).handle_event(_event({"event": "taskCommentPosted", "task_id": "x"}))

        self.assertEqual(result.status, SyncStatus.SKIPPED)
        self.assertEqual(backend.mutations, 0)

    async def test_tag_event_invalidates_tag_and_kpi_caches(self):
        cache = _FakeCache()
        result = await _relay(_FakeBackend(), cache=cache).handle_event(
            _event({"event": "taskTagUpdated", "task_id": "x"})
        )

        self.assertTrue(result.ok)
        self.assertEqual(sorted(cache.invalidated), ["kpi", "task_tags"])

    async def test_missing_task_id_is_skipped(self):
        from tasksync.models.sync_log import SyncStatus

        result = await _relay(_FakeBackend()).handle_event(_event({"event": "taskUpdated"}))

        self.assertEqual(result.status, SyncStatus.SKIPPED)


class PushTests(unittest.IsolatedAsyncioTestCase):
    def _push(self, **fields):
        from tasksync.schemas import TaskPush

        return TaskPush.model_validate({"taskId": "cu9", "name": "Report", **fields})

    async def test_push_creates_missing_task(self):
        backend = _FakeBackend()
        cache = _FakeCache()
        relay = _relay(backend, mapper=_FakeMapper({"555": 7}), cache=cache)

        result = await relay.push_task(
            self._push(status="in progress", priority="high", assignees=["555", "556"], dueDate="1700000000000")
        )

        self.assertTrue(result.ok)
        created = backend.creates[0]
        self.assertEqual(created["clickup_id"], "cu9")
        self.assertEqual(created["title"], "Report")
        self.assertEqual(created["status"], "In Progress")
        self.assertEqual(created["progress_percentage"], 50)
        self.assertEqual(created["assignee_id"], 7)
        self.assertTrue(created["deadline"].startswith("2023-11-14T22:13:20"))
        self.assertIn("Priority: high", created["description"])
        self.assertIn("Assignees: 555, 556", created["description"])
        self.assertIn("kpi", cache.invalidated)

    async def test_repeated_push_updates_instead_of_duplicating(self):
        backend = _FakeBackend([{"task_id": 3, "clickup_id": "cu9"}])

        result = await _relay(backend).push_task(self._push(status="complete"))

        self.assertEqual(result.internal_task_id, 3)
        self.assertEqual(backend.creates, [])
        self.assertEqual(backend.updates[0][0], 3)
        self.assertEqual(backend.updates[0][1]["status"], "Completed")
        self.assertNotIn("clickup_id", backend.updates[0][1])

    async def test_push_failure_is_reported(self):
        from tasksync.models.sync_log import SyncStatus

        backend = _FakeBackend([{"task_id": 3, "clickup_id": "cu9"}])
        backend.fail_updates = True

        result = await _relay(backend).push_task(self._push())

        self.assertEqual(result.status, SyncStatus.FAILED)
        self.assertIn("backend 500", result.message)

    async def test_push_status_and_delete_by_clickup_id(self):
        from tasksync.models.sync_log import SyncStatus

        backend = _FakeBackend([{"task_id": 3, "clickup_id": "cu9"}])
        relay = _relay(backend)

        status = await relay.push_status("cu9", "review")
        deleted = await relay.push_delete("cu9")
        missing = await relay.push_delete("nope")

        self.assertEqual(backend.updates, [(3, {"status": "In Progress", "progress_percentage": 75})])
        self.assertEqual(status.status, SyncStatus.SUCCESS)
        self.assertEqual(deleted.status, SyncStatus.SUCCESS)
        self.assertEqual(backend.deletes, [3])
        self.assertEqual(missing.status, SyncStatus.SKIPPED)


if __name__ == "__main__":
    unittest.main()
