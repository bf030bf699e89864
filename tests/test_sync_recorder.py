import logging
import threading
import unittest
from datetime import timedelta

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

logging.disable(logging.CRITICAL)


def _session_factory():
    from tasksync.models import Base

    engine = create_engine(
        "sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool
    )
    Base.metadata.create_all(bind=engine)
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


class SyncRecorderTests(unittest.IsolatedAsyncioTestCase):
    async def test_record_persists_row(self):
        from tasksync.models import SyncLog
        from tasksync.models.sync_log import SyncDirection, SyncStatus
        from tasksync.services.audit import SyncRecorder, SyncResult

        factory = _session_factory()
        recorder = SyncRecorder(factory)

        await recorder.record(
            SyncDirection.INBOUND,
            "taskDeleted",
            SyncResult(SyncStatus.SUCCESS, "Deleted internal task", external_task_id="abc", internal_task_id=9),
        )

        db = factory()
        rows = db.query(SyncLog).all()
        self.assertEqual(len(rows), 1)
        self.assertEqual(rows[0].direction, SyncDirection.INBOUND)
        self.assertEqual(rows[0].status, SyncStatus.SUCCESS)
        self.assertEqual(rows[0].external_task_id, "abc")
        self.assertEqual(rows[0].internal_task_id, 9)
        db.close()

    async def test_record_failure_is_swallowed(self):
        from tasksync.models.sync_log import SyncDirection, SyncStatus
        from tasksync.services.audit import SyncRecorder, SyncResult

        class _BrokenSession:
            def __init__(self):
                self.rolled_back = False

            def add(self, obj):
                raise RuntimeError("db locked")

            def rollback(self):
                self.rolled_back = True

            def close(self):
                pass

        session = _BrokenSession()
        await SyncRecorder(lambda: session).record(
            SyncDirection.OUTBOUND, "create", SyncResult(SyncStatus.FAILED, "x")
        )

        self.assertTrue(session.rolled_back)

    async def test_record_writes_off_the_event_loop_thread(self):
        from tasksync.models.sync_log import SyncDirection, SyncStatus
        from tasksync.services.audit import SyncRecorder, SyncResult

        factory = _session_factory()
        threads = []

        def tracking_factory():
            threads.append(threading.get_ident())
            return factory()

        await SyncRecorder(tracking_factory).record(
            SyncDirection.OUTBOUND, "update", SyncResult(SyncStatus.SUCCESS)
        )

        self.assertEqual(len(threads), 1)
        self.assertNotEqual(threads[0], threading.get_ident())

    def test_prune_removes_old_rows(self):
        from tasksync.models import SyncLog
        from tasksync.models.sync_log import SyncDirection, SyncStatus, utcnow
        from tasksync.services.audit import SyncRecorder

        factory = _session_factory()
        now = utcnow()
        db = factory()
        db.add(SyncLog(direction=SyncDirection.INBOUND, status=SyncStatus.SUCCESS, created_at=now - timedelta(days=40)))
        db.add(SyncLog(direction=SyncDirection.INBOUND, status=SyncStatus.SUCCESS, created_at=now - timedelta(days=1)))
        db.commit()
        db.close()

        removed = SyncRecorder(factory).prune(30, now=now)

        db = factory()
        self.assertEqual(removed, 1)
        self.assertEqual(db.query(SyncLog).count(), 1)
        db.close()

    def test_result_ok(self):
        from tasksync.models.sync_log import SyncStatus
        from tasksync.services.audit import SyncResult

        self.assertTrue(SyncResult(SyncStatus.SKIPPED).ok)
        self.assertFalse(SyncResult(SyncStatus.DROPPED).ok)


if __name__ == "__main__":
    unittest.main()
