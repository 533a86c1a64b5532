# tests/domains/test_imp_service.py

"""
가져오기 서비스의 실패 처리 단위 테스트입니다.

실제 DB 대신 flush/commit/rollback 호출을 기록하는 가짜 세션을 사용하고,
자연키 조회와 번호 발급은 monkeypatch 로 대체합니다.
"""

import itertools
from types import SimpleNamespace
from typing import Callable, List, Optional

import pytest
from fastapi import status
from httpx import ASGITransport, AsyncClient
from sqlalchemy.exc import OperationalError

from app.main import app as main_app
from app.core import dependencies as deps
from app.domains.ids.crud import allocator
from app.domains.imp import service as imp_service
from app.domains.imp.errors import ConnectionFailureError, HighFailureRateError
from app.domains.lims import crud as lims_crud
from app.domains.lims.models import EntityType


class _Savepoint:
    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        return False


class FakeSession:
    def __init__(
        self,
        *,
        flush_error: Optional[Callable[[object], Optional[Exception]]] = None,
        execute_error: Optional[Exception] = None,
    ):
        self.events: List[str] = []
        self.added: List[object] = []
        self.flush_error = flush_error
        self.execute_error = execute_error
        self._ids = itertools.count(1)

    def begin_nested(self):
        return _Savepoint()

    def add(self, obj):
        self.added.append(obj)

    async def flush(self):
        obj = self.added[-1]
        if self.flush_error is not None:
            error = self.flush_error(obj)
            if error is not None:
                raise error
        if obj.id is None:
            obj.id = next(self._ids)

    async def get(self, model, ident):
        return None

    async def execute(self, statement):
        if self.execute_error is not None:
            raise self.execute_error
        raise AssertionError(f"unexpected query: {statement}")

    async def commit(self):
        self.events.append("commit")

    async def rollback(self):
        self.events.append("rollback")


@pytest.fixture
def no_existing_collaborators(monkeypatch):
    async def get_by_keys(db, *, fields, keys):
        return []

    async def get_by_numbers(db, *, numbers):
        return []

    monkeypatch.setattr(lims_crud.collaborator, "get_by_keys", get_by_keys)
    monkeypatch.setattr(lims_crud.collaborator, "get_by_numbers", get_by_numbers)


@pytest.fixture
def sequence(monkeypatch):
    counter = itertools.count(1000)

    async def allocate(db, entity_type, *, generated_by=None, record=True):
        return next(counter)

    monkeypatch.setattr(allocator, "allocate", allocate)


def _csv(lines: List[str]) -> bytes:
    return ("\n".join(lines) + "\n").encode("utf-8")


# =============================================================================
# 1. 쓰기 전 거부 행과 배치별 중단 판단
# =============================================================================
async def test_rejected_rows_do_not_abort_later_batches(no_existing_collaborators, sequence):
    # 20행 중 8행은 PI 이름이 없어 검증 단계에서 거부됩니다.
    lines = ["PI_Name,PI_Institute"]
    lines += [f"PI {i},Institute {i}" for i in range(12)]
    lines += [f",Institute {i}" for i in range(8)]
    db = FakeSession()

    result = await imp_service.execute_import(
        db, EntityType.COLLABORATOR, "collaborators.csv", _csv(lines), batch_size=5
    )

    assert result["processed"] == 12
    assert result["created"] == 12
    assert result["batches"] == 3
    assert result["aborted"] is False
    assert db.events == ["commit", "commit", "commit"]
    assert len(result["errors"]) == 8
    assert {e["code"] for e in result["errors"]} == {"missing_field"}
    # 거부된 행은 최종 요약에는 포함됩니다.
    assert result["error_summary"]["total_attempted"] == 20
    assert result["error_summary"]["total_failed"] == 8


async def test_rejections_count_toward_final_failure_rate(no_existing_collaborators, sequence):
    lines = ["PI_Name,PI_Institute"]
    lines += [f"Good {i},Institute" for i in range(8)]
    lines += [f"Bad {i},Institute" for i in range(6)]
    lines += [",Institute" for _ in range(6)]

    def reject_bad(obj):
        return ValueError("value rejected by storage") if obj.pi_name.startswith("Bad") else None

    db = FakeSession(flush_error=reject_bad)

    # 배치 안에서는 6/14 로 임계값 이하지만, 거부 행을 합친 최종 실패율은 12/20 입니다.
    with pytest.raises(HighFailureRateError) as exc_info:
        await imp_service.execute_import(
            db, EntityType.COLLABORATOR, "collaborators.csv", _csv(lines), batch_size=20
        )

    error = exc_info.value
    assert error.code == "high_failure_rate"
    assert "60.0%" in error.message
    assert "(12/20)" in error.message
    assert error.summary["processed"] == 8
    assert error.summary["aborted"] is False
    assert db.events == ["commit"]


# =============================================================================
# 2. 이관(preserve) 모드 시퀀스 동기화
# =============================================================================
async def test_preserve_mode_syncs_sequence_before_each_commit(monkeypatch, no_existing_collaborators):
    mappings = []

    async def sync(db, entity_type):
        db.events.append(f"sync:{EntityType(entity_type).value}")
        return 5003

    async def create_mapping(db, **kwargs):
        mappings.append(kwargs["legacy_id"])

    monkeypatch.setattr(allocator, "sync", sync)
    monkeypatch.setattr(lims_crud.legacy_mapping, "create_mapping", create_mapping)

    def lose_connection(obj):
        return ConnectionResetError("connection reset by peer") if obj.collaborator_number == 5002 else None

    db = FakeSession(flush_error=lose_connection)
    lines = ["ID,PI_Name,PI_Institute", "5000,Kim,Seoul", "5001,Lee,Busan", "5002,Park,Daegu"]

    with pytest.raises(ConnectionFailureError) as exc_info:
        await imp_service.execute_import(
            db, EntityType.COLLABORATOR, "legacy.csv", _csv(lines), preserve_ids=True, batch_size=2
        )

    assert exc_info.value.row == 4
    # 커밋된 첫 배치의 번호는 같은 트랜잭션 안에서 시퀀스에 반영됩니다.
    assert db.events == ["sync:collaborator", "commit", "rollback"]
    assert mappings == ["5000", "5001"]


async def test_generate_mode_does_not_sync_sequence(monkeypatch, no_existing_collaborators, sequence):
    async def sync(db, entity_type):
        raise AssertionError("sequence sync is only needed for preserved numbers")

    monkeypatch.setattr(allocator, "sync", sync)
    db = FakeSession()

    result = await imp_service.execute_import(
        db, EntityType.COLLABORATOR, "collaborators.csv", _csv(["PI_Name,PI_Institute", "Kim,Seoul"]),
    )

    assert result["created"] == 1
    assert db.events == ["commit"]


# =============================================================================
# 3. 번호 발급 실패 → 503
# =============================================================================
async def test_allocation_failure_returns_503_and_rolls_back(no_existing_collaborators):
    db = FakeSession(
        execute_error=OperationalError("SELECT lims.get_next_number($1)", {}, ConnectionResetError("reset")),
    )

    def override_get_session():
        yield db

    original_overrides = main_app.dependency_overrides.copy()
    try:
        main_app.dependency_overrides[deps.get_db_session] = override_get_session
        main_app.dependency_overrides[deps.get_current_active_user] = (
            lambda: SimpleNamespace(username="importer", is_active=True)
        )
        transport = ASGITransport(app=main_app)
        async with AsyncClient(transport=transport, base_url="http://test") as client:
            response = await client.post(
                "/api/v1/imports/collaborator/execute",
                files={"file": ("collaborators.csv", _csv(["PI_Name,PI_Institute", "Kim,Seoul"]), "text/csv")},
            )
    finally:
        main_app.dependency_overrides.clear()
        main_app.dependency_overrides.update(original_overrides)

    assert response.status_code == status.HTTP_503_SERVICE_UNAVAILABLE, response.text
    assert response.json()["detail"].startswith("Failed to allocate collaborator number")
    assert db.events == ["rollback"]
