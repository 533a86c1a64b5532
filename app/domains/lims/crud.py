# app/domains/lims/crud.py

"""
'lims' 도메인의 CRUD 로직을 담당하는 모듈입니다.

API로 생성되는 공동연구자/프로젝트는 가져오기와 같은 식별번호 발급기를 사용하므로
API 생성 엔티티와 가져오기 엔티티는 구분되지 않습니다.
"""

from typing import Dict, Iterable, List, Optional

from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession

from fastapi import HTTPException, status

from app.core.crud_base import CRUDBase

from . import models as lims_models
from . import schemas as lims_schemas


class _NumberedCRUD(CRUDBase):
    """일련번호 컬럼을 가진 엔티티의 공통 조회 로직."""
    number_field: str = ""

    async def get_by_number(self, db: AsyncSession, *, number: int):
        return await self.get_by_attribute(db, attribute=self.number_field, value=number)

    async def get_by_numbers(self, db: AsyncSession, *, numbers: Iterable[int]) -> List:
        return await self.get_by_keys(db, fields=[self.number_field], keys=[(n,) for n in numbers])


# =============================================================================
# 1. 공동연구자 (Collaborator) CRUD
# =============================================================================
class CRUDCollaborator(_NumberedCRUD):
    number_field = "collaborator_number"

    def __init__(self):
        super().__init__(model=lims_models.Collaborator)

    async def get_by_natural_key(
        self, db: AsyncSession, *, pi_name: str, pi_institute: str
    ) -> Optional[lims_models.Collaborator]:
        statement = select(self.model).where(self.model.pi_name == pi_name, self.model.pi_institute == pi_institute)
        result = await db.execute(statement)
        return result.scalars().one_or_none()

    async def create(self, db: AsyncSession, *, obj_in: lims_schemas.CollaboratorCreate) -> lims_models.Collaborator:
        """PI 이름/기관 중복을 확인하고 번호를 발급받아 생성합니다."""
        from app.domains.ids.crud import allocator

        if await self.get_by_natural_key(db, pi_name=obj_in.pi_name, pi_institute=obj_in.pi_institute):
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Collaborator with this PI name and institute already exists."
            )
        number = await allocator.allocate(db, lims_models.EntityType.COLLABORATOR, record=False)
        return await super().create(db, obj_in=obj_in, collaborator_number=number)


collaborator = CRUDCollaborator()


# =============================================================================
# 2. 프로젝트 (Project) CRUD
# =============================================================================
class CRUDProject(_NumberedCRUD):
    number_field = "project_number"

    def __init__(self):
        super().__init__(model=lims_models.Project)

    async def create(self, db: AsyncSession, *, obj_in: lims_schemas.ProjectCreate) -> lims_models.Project:
        """공동연구자 존재 여부를 확인하고 번호를 발급받아 생성합니다."""
        from app.domains.ids.crud import allocator

        if not await collaborator.get(db, id=obj_in.collaborator_id):
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Collaborator not found.")
        number = await allocator.allocate(db, lims_models.EntityType.PROJECT, record=False)
        return await super().create(db, obj_in=obj_in, project_number=number)


project = CRUDProject()


# =============================================================================
# 3. 환자 / 검체 / 재고 CRUD
# =============================================================================
class CRUDPatient(_NumberedCRUD):
    number_field = "patient_number"

    def __init__(self):
        super().__init__(model=lims_models.Patient)


class CRUDSpecimen(_NumberedCRUD):
    number_field = "specimen_number"

    def __init__(self):
        super().__init__(model=lims_models.Specimen)


class CRUDInventoryItem(_NumberedCRUD):
    number_field = "inventory_id"

    def __init__(self):
        super().__init__(model=lims_models.InventoryItem)


patient = CRUDPatient()
specimen = CRUDSpecimen()
inventory_item = CRUDInventoryItem()


# =============================================================================
# 4. 레거시 ID 매핑 (LegacyIdMapping) CRUD
# =============================================================================
class CRUDLegacyIdMapping(CRUDBase):
    def __init__(self):
        super().__init__(model=lims_models.LegacyIdMapping)

    async def get_current_ids(
        self, db: AsyncSession, *, table_name: str, legacy_ids: Iterable[str]
    ) -> Dict[str, int]:
        """레거시 식별자 목록을 내부 레코드 ID로 한 번에 변환합니다."""
        legacy_ids = [str(v) for v in legacy_ids if v is not None and str(v) != ""]
        if not legacy_ids:
            return {}
        statement = select(self.model).where(
            self.model.table_name == table_name,
            self.model.legacy_id.in_(legacy_ids),
        )
        result = await db.execute(statement)
        return {m.legacy_id: m.current_id for m in result.scalars().all()}

    async def create_mapping(
        self,
        db: AsyncSession,
        *,
        table_name: str,
        legacy_id: str,
        current_id: int,
        import_batch_id: Optional[str] = None,
        imported_from: Optional[str] = None,
    ) -> lims_models.LegacyIdMapping:
        """
        매핑을 생성합니다. 같은 (table_name, legacy_id) 매핑이 이미 있으면 기존 행을 반환합니다.
        커밋은 호출자(배치 트랜잭션)가 담당합니다.
        """
        statement = select(self.model).where(
            self.model.table_name == table_name,
            self.model.legacy_id == str(legacy_id),
        )
        existing = (await db.execute(statement)).scalars().first()
        if existing:
            return existing

        mapping = lims_models.LegacyIdMapping(
            table_name=table_name,
            legacy_id=str(legacy_id),
            current_id=current_id,
            import_batch_id=import_batch_id,
            imported_from=imported_from,
        )
        db.add(mapping)
        await db.flush()
        return mapping


legacy_mapping = CRUDLegacyIdMapping()


ENTITY_CRUDS = {
    lims_models.EntityType.COLLABORATOR: collaborator,
    lims_models.EntityType.PROJECT: project,
    lims_models.EntityType.PATIENT: patient,
    lims_models.EntityType.SPECIMEN: specimen,
    lims_models.EntityType.INVENTORY: inventory_item,
}


def crud_for(entity_type: lims_models.EntityType) -> _NumberedCRUD:
    return ENTITY_CRUDS[lims_models.EntityType(entity_type)]
