# tests/domains/test_ids_allocator.py

"""
IdAllocator 의 실패 경로 단위 테스트입니다. 저장소 오류는 기본값 없이 AllocationFailedError 가 되어야 합니다.
"""

import pytest
from sqlalchemy.exc import OperationalError

from app.domains.ids.crud import IdAllocator
from app.domains.imp.errors import AllocationFailedError, is_critical
from app.domains.lims.models import EntityType


class _Result:
    def __init__(self, value):
        self.value = value

    def scalar_one_or_none(self):
        return self.value


class FakeSession:
    def __init__(self, *, error=None, value=None):
        self.error = error
        self.value = value
        self.statements = []

    async def execute(self, statement):
        self.statements.append(statement)
        if self.error is not None:
            raise self.error
        return _Result(self.value)


async def test_storage_error_raises_allocation_failed():
    db = FakeSession(error=OperationalError("SELECT lims.get_next_number($1)", {}, ConnectionResetError("reset")))

    with pytest.raises(AllocationFailedError) as exc_info:
        await IdAllocator().allocate(db, EntityType.SPECIMEN)

    error = exc_info.value
    assert error.kind == "allocation"
    assert error.code == "allocation_failed"
    assert error.entity_type == "specimen"
    assert error.message.startswith("Failed to allocate specimen number")
    assert is_critical(error)
    assert isinstance(error.__cause__, OperationalError)


@pytest.mark.parametrize("value", [None, 0, -5])
async def test_missing_or_invalid_number_raises_allocation_failed(value):
    with pytest.raises(AllocationFailedError) as exc_info:
        await IdAllocator().allocate(FakeSession(value=value), EntityType.PROJECT, record=False)

    assert exc_info.value.kind == "allocation"
    assert f"storage returned {value!r}" in exc_info.value.message


async def test_allocate_returns_number_without_history():
    db = FakeSession(value=42)
    assert await IdAllocator().allocate(db, "collaborator", record=False) == 42
    assert len(db.statements) == 1


async def test_unknown_entity_type_is_rejected():
    with pytest.raises(ValueError):
        await IdAllocator().allocate(FakeSession(value=1), "freezer")
