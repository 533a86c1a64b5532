# tests/domains/test_ids_n.py

"""
'ids' 도메인 (식별번호 발급) API 및 발급기에 대한 통합 테스트입니다.

시퀀스는 트랜잭션 롤백과 무관하게 진행되므로 번호는 항상 테스트 시작 시점의 peek 값을 기준으로 검증합니다.
"""

import asyncio

import pytest
from httpx import AsyncClient
from sqlmodel.ext.asyncio.session import AsyncSession

from app.domains.ids.crud import allocator
from app.domains.lims import models as lims_models
from app.domains.usr import models as usr_models

pytestmark = pytest.mark.asyncio(loop_scope="session")


# =============================================================================
# 1. 발급 / 조회
# =============================================================================
async def test_allocate_returns_consecutive_numbers(authorized_client: AsyncClient):
    peek = await authorized_client.get("/api/v1/ids/specimen/peek")
    assert peek.status_code == 200
    assert peek.headers["cache-control"] == "no-store"
    expected = peek.json()["next_id"]

    first = await authorized_client.post("/api/v1/ids/specimen/next")
    second = await authorized_client.post("/api/v1/ids/specimen/next")

    assert first.status_code == 200
    assert first.json() == {"entity_type": "specimen", "id": expected, "next_id": expected + 1}
    assert second.json()["id"] == expected + 1


async def test_peek_does_not_consume(db_session: AsyncSession):
    before = await allocator.peek(db_session, lims_models.EntityType.PROJECT)
    again = await allocator.peek(db_session, "project")

    assert again == before
    assert await allocator.allocate(db_session, "project", record=False) == before
    assert await allocator.peek(db_session, "project") == before + 1


async def test_sequences_are_independent_per_type(db_session: AsyncSession):
    collaborator_next = await allocator.peek(db_session, "collaborator")
    await allocator.allocate(db_session, "inventory", record=False)

    assert await allocator.peek(db_session, "collaborator") == collaborator_next


async def test_invalid_entity_type(authorized_client: AsyncClient, db_session: AsyncSession):
    response = await authorized_client.post("/api/v1/ids/sample/next")
    assert response.status_code == 422

    with pytest.raises(ValueError, match="Invalid entity type: sample"):
        await allocator.allocate(db_session, "sample")


async def test_concurrent_allocations_are_unique(session_factory):
    """
    서로 다른 연결에서 동시에 발급해도 번호가 중복되거나 빠지지 않아야 합니다.
    """
    async def allocate_many(count: int):
        async with session_factory() as session:
            return [await allocator.allocate(session, "patient", record=False) for _ in range(count)]

    results = await asyncio.gather(*(allocate_many(5) for _ in range(8)))
    numbers = sorted(n for chunk in results for n in chunk)

    assert len(set(numbers)) == 40
    assert numbers == list(range(numbers[0], numbers[0] + 40))


# =============================================================================
# 2. 이력 / 사용 여부
# =============================================================================
async def test_history_records_requesting_user(authorized_client: AsyncClient, test_user: usr_models.User):
    allocated = (await authorized_client.post("/api/v1/ids/collaborator/next")).json()["id"]

    response = await authorized_client.get("/api/v1/ids/collaborator/history", params={"limit": 5})

    assert response.status_code == 200
    latest = response.json()[0]
    assert latest["entity_type"] == "collaborator"
    assert latest["generated_id"] == allocated
    assert latest["generated_by"] == test_user.username


async def test_check_number_in_use(
    authorized_client: AsyncClient, test_collaborator: lims_models.Collaborator
):
    number = test_collaborator.collaborator_number

    used = await authorized_client.get(f"/api/v1/ids/collaborator/check/{number}")
    unused = await authorized_client.get(f"/api/v1/ids/collaborator/check/{number + 100000}")

    assert used.json() == {"entity_type": "collaborator", "number": number, "in_use": True}
    assert unused.json()["in_use"] is False


# =============================================================================
# 3. 시퀀스 재설정 (관리자)
# =============================================================================
async def test_reset_sequence_admin(admin_client: AsyncClient):
    current = (await admin_client.get("/api/v1/ids/inventory/peek")).json()["next_id"]
    target = current + 1000

    response = await admin_client.post("/api/v1/ids/inventory/reset", json={"next_value": target})

    assert response.status_code == 200
    assert response.json() == {"entity_type": "inventory", "next_id": target}
    assert (await admin_client.get("/api/v1/ids/inventory/peek")).json()["next_id"] == target
    assert (await admin_client.post("/api/v1/ids/inventory/next")).json()["id"] == target


async def test_reset_cannot_reuse_existing_number(
    admin_client: AsyncClient, test_collaborator: lims_models.Collaborator
):
    response = await admin_client.post(
        "/api/v1/ids/collaborator/reset",
        json={"next_value": test_collaborator.collaborator_number},
    )

    assert response.status_code == 400
    assert "would reuse an existing collaborator number" in response.json()["detail"]


async def test_reset_rejects_non_positive_value(admin_client: AsyncClient):
    response = await admin_client.post("/api/v1/ids/project/reset", json={"next_value": 0})
    assert response.status_code == 422


async def test_reset_requires_admin(authorized_client: AsyncClient):
    response = await authorized_client.post("/api/v1/ids/project/reset", json={"next_value": 999999})

    assert response.status_code == 403
    assert response.json()["detail"] == "Not enough permissions. Admin role required."
