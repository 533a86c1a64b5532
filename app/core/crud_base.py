# app/core/crud_base.py

"""
공통 CRUD(Create, Read, Update) 작업을 위한 기본 클래스 모듈입니다.
모든 메서드는 비동기(async) 세션을 사용합니다.
"""

import logging
from typing import Generic, Iterable, List, Optional, Sequence, Tuple, Type, TypeVar, Any, Dict

from sqlalchemy import and_, or_, tuple_
from sqlmodel import SQLModel, select
from sqlmodel.ext.asyncio.session import AsyncSession
from pydantic import BaseModel

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

ModelType = TypeVar("ModelType", bound=SQLModel)
CreateSchemaType = TypeVar("CreateSchemaType", bound=BaseModel)
UpdateSchemaType = TypeVar("UpdateSchemaType", bound=BaseModel)


class CRUDBase(Generic[ModelType, CreateSchemaType, UpdateSchemaType]):
    """
    모든 CRUD 작업에 대한 기본 클래스를 정의합니다.
    """
    def __init__(self, model: Type[ModelType]):
        self.model = model

    async def get(self, db: AsyncSession, id: Any) -> Optional[ModelType]:
        """ID를 기준으로 단일 레코드를 조회합니다."""
        return await db.get(self.model, id)

    async def get_multi(
        self, db: AsyncSession, *, skip: int = 0, limit: int = 100, **kwargs: Any
    ) -> List[ModelType]:
        """
        여러 레코드를 조회합니다. 필터링을 위한 키워드 인자를 지원합니다.
        """
        query = select(self.model)

        for field, value in kwargs.items():
            if value is None:
                continue
            if hasattr(self.model, field):
                query = query.where(getattr(self.model, field) == value)
            else:
                logger.warning("Model %s has no attribute '%s'", self.model.__name__, field)

        if hasattr(self.model, "id"):
            query = query.order_by(self.model.id)
        query = query.offset(skip).limit(limit)

        result = await db.execute(query)
        return result.scalars().all()

    async def get_by_attribute(
        self, db: AsyncSession, *, attribute: str, value: Any
    ) -> Optional[ModelType]:
        """
        단일 속성 값으로 레코드를 조회합니다. 여러 건이 일치하면 id가 가장 작은 레코드를 반환합니다.
        """
        statement = select(self.model).where(getattr(self.model, attribute) == value)
        if hasattr(self.model, "id"):
            statement = statement.order_by(self.model.id)
        response = await db.execute(statement.limit(1))
        return response.scalars().first()

    async def get_by_keys(
        self,
        db: AsyncSession,
        *,
        fields: Sequence[str],
        keys: Iterable[Tuple[Any, ...]],
    ) -> List[ModelType]:
        """
        여러 자연키(natural key)에 해당하는 레코드를 한 번의 쿼리로 조회합니다.

        `fields`는 키를 구성하는 컬럼 이름 목록이고 `keys`는 같은 순서의 값 튜플 목록입니다.
        NULL이 포함된 키는 `IS NULL` 조건으로 비교합니다.
        """
        unique_keys = list(dict.fromkeys(tuple(key) for key in keys))
        if not unique_keys:
            return []

        columns = [getattr(self.model, name) for name in fields]
        complete = [key for key in unique_keys if all(v is not None for v in key)]
        partial = [key for key in unique_keys if any(v is None for v in key)]

        conditions = []
        if complete:
            if len(columns) == 1:
                conditions.append(columns[0].in_([key[0] for key in complete]))
            else:
                conditions.append(tuple_(*columns).in_(complete))
        for key in partial:
            conditions.append(and_(*[
                column.is_(None) if value is None else column == value
                for column, value in zip(columns, key)
            ]))

        statement = select(self.model).where(or_(*conditions))
        if hasattr(self.model, "id"):
            statement = statement.order_by(self.model.id)
        result = await db.execute(statement)
        return result.scalars().all()

    async def get_filtered(
        self,
        db: AsyncSession,
        *,
        filters: Optional[Dict[str, Any]] = None,  # 다중 속성 필터: {"attribute_name": "value"}
        order_by_field: Optional[str] = None,      # 정렬할 필드 (예: "specimen_number")
        order_desc: bool = False,
        skip: int = 0,
        limit: int = 100
    ) -> List[ModelType]:
        """
        다중 속성 필터와 정렬을 적용한 다중 조회.
        """
        query = select(self.model)
        conditions = []

        if filters:
            for attribute, value in filters.items():
                if value is None:
                    continue
                if hasattr(self.model, attribute):
                    conditions.append(getattr(self.model, attribute) == value)
                else:
                    logger.warning("Model %s has no attribute '%s'", self.model.__name__, attribute)

        if conditions:
            query = query.where(*conditions)

        if order_by_field and hasattr(self.model, order_by_field):
            column = getattr(self.model, order_by_field)
            query = query.order_by(column.desc() if order_desc else column)
        elif hasattr(self.model, 'id'):
            query = query.order_by(self.model.id.desc() if order_desc else self.model.id)

        query = query.offset(skip).limit(limit)
        result = await db.execute(query)
        return result.scalars().all()

    async def create(self, db: AsyncSession, *, obj_in: CreateSchemaType, **extra: Any) -> ModelType:
        """
        새로운 레코드를 생성합니다. `extra`로 스키마에 없는 컬럼(예: 발급된 번호)을 지정할 수 있습니다.
        """
        db_obj = self.model.model_validate(obj_in.model_dump(), update=extra or None)
        db.add(db_obj)
        await db.commit()
        await db.refresh(db_obj)
        return db_obj

    async def update(
        self, db: AsyncSession, *, db_obj: ModelType, obj_in: UpdateSchemaType
    ) -> ModelType:
        """
        기존 레코드를 업데이트합니다.
        """
        update_data = obj_in.model_dump(exclude_unset=True)
        for key, value in update_data.items():
            setattr(db_obj, key, value)

        db.add(db_obj)
        await db.commit()
        await db.refresh(db_obj)
        return db_obj
