# app/domains/ids/crud.py

"""
엔티티 유형별 식별번호 발급기(IdAllocator)를 정의하는 모듈입니다.

- allocate: lims.get_next_number() 로 시퀀스를 원자적으로 진행시키고 번호를 받습니다.
- peek: lims.peek_next_number() 로 다음 번호를 조회만 합니다 (예약 아님).
- 저장소 오류는 AllocationFailedError 로 변환되며 기본값으로 대체되지 않습니다.
"""

import logging
from typing import List, Optional, Union

from fastapi import HTTPException, status
from sqlalchemy import func
from sqlalchemy.exc import DBAPIError, SQLAlchemyError
from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession

from app.domains.lims import models as lims_models
from app.domains.imp.errors import AllocationFailedError, classify_exception

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

# 잘못된 인자(22023: invalid_parameter_value)를 나타내는 SQLSTATE
INVALID_PARAMETER_SQLSTATE = "22023"


def _entity_type(entity_type: Union[lims_models.EntityType, str]) -> lims_models.EntityType:
    try:
        return lims_models.EntityType(entity_type)
    except ValueError:
        valid = ", ".join(t.value for t in lims_models.EntityType)
        raise ValueError(f"Invalid entity type: {entity_type}. Must be one of: {valid}")


class IdAllocator:
    """PostgreSQL 시퀀스 기반 식별번호 발급기."""

    async def allocate(
        self,
        db: AsyncSession,
        entity_type: Union[lims_models.EntityType, str],
        *,
        generated_by: Optional[str] = None,
        record: bool = True,
    ) -> int:
        """
        다음 번호를 발급합니다. 발급된 번호는 트랜잭션이 롤백되어도 재사용되지 않습니다.
        `record=True` 이면 lims.id_generation_log 에 발급 이력을 남깁니다.
        """
        entity = _entity_type(entity_type)
        try:
            result = await db.execute(select(func.lims.get_next_number(entity.value)))
            number = result.scalar_one_or_none()
        except (SQLAlchemyError, OSError) as e:
            logger.error("식별번호 발급 실패: entity_type=%s", entity.value, exc_info=True)
            cause = classify_exception(e, entity_type=entity.value)
            raise AllocationFailedError(
                f"Failed to allocate {entity.value} number: {cause.message}",
                entity_type=entity.value,
                severity=cause.severity,
            ) from e

        if number is None or number < 1:
            raise AllocationFailedError(
                f"Failed to allocate {entity.value} number: storage returned {number!r}",
                entity_type=entity.value,
            )

        if record:
            await self._record(db, entity, number, generated_by)
        return int(number)

    async def _record(
        self, db: AsyncSession, entity: lims_models.EntityType, number: int, generated_by: Optional[str]
    ) -> None:
        # 이력 기록 실패가 발급 자체를 실패시키지 않도록 SAVEPOINT 안에서 기록합니다.
        try:
            async with db.begin_nested():
                db.add(lims_models.IdGenerationLog(
                    entity_type=entity.value,
                    generated_id=number,
                    generated_by=generated_by or "system",
                ))
        except SQLAlchemyError as e:
            logger.warning("발급 이력 기록 실패: entity_type=%s number=%s (%s)", entity.value, number, e)

    async def peek(self, db: AsyncSession, entity_type: Union[lims_models.EntityType, str]) -> int:
        """다음 allocate() 가 반환할 번호를 시퀀스를 진행시키지 않고 조회합니다."""
        entity = _entity_type(entity_type)
        try:
            result = await db.execute(select(func.lims.peek_next_number(entity.value)))
            number = result.scalar_one_or_none()
        except (SQLAlchemyError, OSError) as e:
            logger.error("다음 식별번호 조회 실패: entity_type=%s", entity.value, exc_info=True)
            raise AllocationFailedError(
                f"Failed to peek next {entity.value} number: {classify_exception(e).message}",
                entity_type=entity.value,
            ) from e
        if number is None:
            raise AllocationFailedError(f"Failed to peek next {entity.value} number", entity_type=entity.value)
        return int(number)

    async def sync(self, db: AsyncSession, entity_type: Union[lims_models.EntityType, str]) -> int:
        """
        저장된 최대 번호보다 시퀀스가 뒤처져 있으면 앞당깁니다. 다음 발급 번호를 반환합니다.
        이관(preserve) 모드 가져오기 후에 호출됩니다.
        """
        entity = _entity_type(entity_type)
        try:
            result = await db.execute(select(func.lims.sync_number_sequence(entity.value)))
        except (SQLAlchemyError, OSError) as e:
            raise AllocationFailedError(
                f"Failed to synchronize {entity.value} sequence: {classify_exception(e).message}",
                entity_type=entity.value,
            ) from e
        next_number = int(result.scalar_one())
        logger.info("시퀀스 동기화: entity_type=%s next=%d", entity.value, next_number)
        return next_number

    async def reset(
        self, db: AsyncSession, entity_type: Union[lims_models.EntityType, str], next_value: int
    ) -> int:
        """
        다음 발급 번호를 지정합니다 (관리자 전용). 이미 사용된 번호 이하로는 되돌릴 수 없습니다.
        """
        entity = _entity_type(entity_type)
        if next_value < 1:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Value must be a positive integer")
        try:
            result = await db.execute(select(func.lims.reset_number_sequence(entity.value, next_value)))
            value = int(result.scalar_one())
        except DBAPIError as e:
            await db.rollback()
            sqlstate = getattr(getattr(e.orig, "__cause__", None), "sqlstate", None) or getattr(e.orig, "sqlstate", None)
            if sqlstate == INVALID_PARAMETER_SQLSTATE:
                cause = getattr(e.orig, "__cause__", None) or e.orig
                detail = getattr(cause, "message", None) or str(cause)
                raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=detail)
            raise
        await db.commit()
        logger.warning("시퀀스 재설정: entity_type=%s next=%d", entity.value, value)
        return value

    async def history(
        self, db: AsyncSession, entity_type: Union[lims_models.EntityType, str], *, limit: int = 100
    ) -> List[lims_models.IdGenerationLog]:
        """발급 이력을 최신순으로 조회합니다."""
        entity = _entity_type(entity_type)
        statement = (
            select(lims_models.IdGenerationLog)
            .where(lims_models.IdGenerationLog.entity_type == entity.value)
            .order_by(lims_models.IdGenerationLog.generated_at.desc(), lims_models.IdGenerationLog.id.desc())
            .limit(limit)
        )
        result = await db.execute(statement)
        return result.scalars().all()

    async def is_in_use(self, db: AsyncSession, entity_type: Union[lims_models.EntityType, str], number: int) -> bool:
        """해당 번호를 가진 엔티티가 이미 존재하는지 확인합니다."""
        entity = _entity_type(entity_type)
        model = lims_models.ENTITY_MODELS[entity]
        column = getattr(model, lims_models.NUMBER_FIELDS[entity])
        result = await db.execute(select(func.count()).select_from(model).where(column == number))
        return result.scalar_one() > 0


allocator = IdAllocator()
