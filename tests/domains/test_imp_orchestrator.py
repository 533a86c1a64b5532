# tests/domains/test_imp_orchestrator.py

"""
BatchOrchestrator 단위 테스트입니다. 실제 DB 대신 트랜잭션 호출을 기록하는 가짜 세션을 사용합니다.
"""

from types import SimpleNamespace

import pytest

from app.domains.imp.error_tracker import BatchErrorTracker
from app.domains.imp.errors import ConnectionFailureError, RowValidationError
from app.domains.imp.orchestrator import CREATED, UPDATED, BatchOrchestrator


class _Savepoint:
    def __init__(self, session: "FakeSession"):
        self.session = session

    async def __aenter__(self):
        self.session.savepoints += 1
        return self

    async def __aexit__(self, exc_type, exc, tb):
        if exc_type is not None:
            self.session.savepoint_rollbacks += 1
        return False


class FakeSession:
    def __init__(self):
        self.savepoints = 0
        self.savepoint_rollbacks = 0
        self.commits = 0
        self.rollbacks = 0

    def begin_nested(self):
        return _Savepoint(self)

    async def commit(self):
        self.commits += 1

    async def rollback(self):
        self.rollbacks += 1


def _rows(count: int):
    return [SimpleNamespace(row_number=i + 2, entity_id=None) for i in range(count)]


async def test_rows_are_committed_per_batch():
    db = FakeSession()
    progress = []

    async def handler(session, row):
        return UPDATED if row.row_number % 2 else CREATED

    orchestrator = BatchOrchestrator(
        db, BatchErrorTracker(), batch_size=2, entity_type="specimen",
        progress=lambda done, total: progress.append((done, total)),
    )
    result = await orchestrator.run(_rows(5), handler)

    assert result.processed == 5
    assert result.created == 3
    assert result.updated == 2
    assert result.batches == 3
    assert result.aborted is False
    assert db.savepoints == 5
    assert db.commits == 3
    assert db.rollbacks == 0
    assert progress == [(2, 5), (4, 5), (5, 5)]


async def test_row_failure_rolls_back_only_that_row():
    db = FakeSession()
    tracker = BatchErrorTracker()

    async def handler(session, row):
        if row.row_number == 3:
            raise RowValidationError("Row 3: Missing tube_id", code="missing_field")
        return CREATED

    result = await BatchOrchestrator(db, tracker, batch_size=10).run(_rows(4), handler)

    assert result.processed == 3
    assert [e.row for e in result.errors] == [3]
    assert db.savepoint_rollbacks == 1
    assert db.commits == 1
    assert tracker.total_attempted == 4
    assert tracker.total_failed == 1


async def test_critical_error_rolls_back_batch_and_propagates():
    db = FakeSession()
    tracker = BatchErrorTracker()
    handled = []

    async def handler(session, row):
        if row.row_number == 4:
            raise ConnectionResetError("connection reset by peer")
        handled.append(row.row_number)
        return CREATED

    orchestrator = BatchOrchestrator(db, tracker, batch_size=2)
    with pytest.raises(ConnectionFailureError) as exc_info:
        await orchestrator.run(_rows(6), handler)

    assert exc_info.value.code == "ECONNRESET"
    assert exc_info.value.row == 4
    # 첫 배치(2, 3행)는 커밋, 두 번째 배치는 롤백 후 중단
    assert handled == [2, 3]
    assert db.commits == 1
    assert db.rollbacks == 1
    assert len(tracker.critical_failures) == 1


async def test_high_failure_rate_stops_later_batches():
    db = FakeSession()
    tracker = BatchErrorTracker(max_failure_rate=0.2, min_attempts=10)
    seen = []

    async def handler(session, row):
        seen.append(row.row_number)
        if row.row_number % 2 == 0:
            raise RowValidationError("bad value")
        return CREATED

    result = await BatchOrchestrator(db, tracker, batch_size=10).run(_rows(30), handler)

    assert result.aborted is True
    assert result.abort_reason.startswith("High failure rate detected")
    assert result.batches == 1
    assert len(seen) == 10
    assert result.processed == 5
    assert db.commits == 1


def test_batch_size_must_be_positive():
    with pytest.raises(ValueError):
        BatchOrchestrator(FakeSession(), BatchErrorTracker(), batch_size=0)


async def test_before_commit_runs_inside_each_batch():
    events = []

    class RecordingSession(FakeSession):
        async def commit(self):
            events.append("commit")
            await super().commit()

        async def rollback(self):
            events.append("rollback")
            await super().rollback()

    async def before_commit(session):
        events.append("hook")

    async def handler(session, row):
        if row.row_number == 6:
            raise ConnectionResetError("connection reset by peer")
        return CREATED

    db = RecordingSession()
    orchestrator = BatchOrchestrator(db, BatchErrorTracker(), batch_size=2, before_commit=before_commit)
    with pytest.raises(ConnectionFailureError):
        await orchestrator.run(_rows(6), handler)

    # 세 번째 배치는 훅 전에 중단되어 롤백됩니다.
    assert events == ["hook", "commit", "hook", "commit", "rollback"]


async def test_before_commit_failure_rolls_back_batch():
    async def before_commit(session):
        raise ConnectionResetError("connection reset by peer")

    async def handler(session, row):
        return CREATED

    db = FakeSession()
    with pytest.raises(ConnectionResetError):
        await BatchOrchestrator(db, BatchErrorTracker(), batch_size=5, before_commit=before_commit).run(
            _rows(3), handler
        )

    assert db.commits == 0
    assert db.rollbacks == 1
