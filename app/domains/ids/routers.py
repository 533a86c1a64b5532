# app/domains/ids/routers.py

"""
식별번호 발급 API 엔드포인트를 정의하는 모듈입니다.
"""

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status
from sqlmodel.ext.asyncio.session import AsyncSession

from app.core import dependencies as deps
from app.core.config import settings
from app.domains.usr import models as usr_models
from app.domains.lims.models import EntityType
from app.domains.imp.errors import AllocationFailedError

from .crud import allocator
from . import schemas as ids_schemas

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

router = APIRouter(
    tags=["Identifier Allocation (식별번호 발급)"],
    responses={404: {"description": "Not found"}},
)


@router.post("/{entity_type}/next", response_model=ids_schemas.AllocatedId, summary="다음 식별번호 발급")
async def allocate_next_id(
    entity_type: EntityType,
    db: AsyncSession = Depends(deps.get_db_session),
    current_user: usr_models.User = Depends(deps.get_current_active_user),
):
    try:
        number = await allocator.allocate(db, entity_type, generated_by=current_user.username)
        await db.commit()
    except AllocationFailedError as e:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=e.message)
    logger.info("식별번호 발급: %s=%d (by %s)", entity_type.value, number, current_user.username)
    return ids_schemas.AllocatedId(entity_type=entity_type, id=number, next_id=number + 1)


@router.get("/{entity_type}/peek", response_model=ids_schemas.PeekedId, summary="다음 식별번호 조회 (발급하지 않음)")
async def peek_next_id(
    entity_type: EntityType,
    response: Response,
    db: AsyncSession = Depends(deps.get_db_session),
    current_user: usr_models.User = Depends(deps.get_current_active_user),
):
    # 조회 결과는 예약이 아니므로 캐시되지 않아야 합니다.
    response.headers["Cache-Control"] = "no-store"
    try:
        number = await allocator.peek(db, entity_type)
    except AllocationFailedError as e:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=e.message)
    return ids_schemas.PeekedId(entity_type=entity_type, next_id=number)


@router.get("/{entity_type}/history", response_model=List[ids_schemas.IdGenerationLogRead], summary="식별번호 발급 이력")
async def read_generation_history(
    entity_type: EntityType,
    limit: Optional[int] = Query(None, ge=1, le=1000),
    db: AsyncSession = Depends(deps.get_db_session),
    current_user: usr_models.User = Depends(deps.get_current_active_user),
):
    return await allocator.history(db, entity_type, limit=limit or settings.ID_HISTORY_DEFAULT_LIMIT)


@router.get("/{entity_type}/check/{number}", response_model=ids_schemas.IdInUse, summary="식별번호 사용 여부 확인")
async def check_id_in_use(
    entity_type: EntityType,
    number: int,
    db: AsyncSession = Depends(deps.get_db_session),
    current_user: usr_models.User = Depends(deps.get_current_active_user),
):
    in_use = await allocator.is_in_use(db, entity_type, number)
    return ids_schemas.IdInUse(entity_type=entity_type, number=number, in_use=in_use)


@router.post("/{entity_type}/reset", response_model=ids_schemas.SequenceResetResult, summary="시퀀스 재설정 (관리자)")
async def reset_sequence(
    entity_type: EntityType,
    reset_in: ids_schemas.SequenceReset,
    db: AsyncSession = Depends(deps.get_db_session),
    current_admin_user: usr_models.User = Depends(deps.get_current_admin_user),
):
    """
    다음 발급 번호를 지정합니다. 이미 사용된 번호 이하로 되돌리는 요청은 400으로 거부됩니다.
    """
    value = await allocator.reset(db, entity_type, reset_in.next_value)
    logger.warning("시퀀스 재설정 by %s: %s -> %d", current_admin_user.username, entity_type.value, value)
    return ids_schemas.SequenceResetResult(entity_type=entity_type, next_id=value)
