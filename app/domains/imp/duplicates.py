# app/domains/imp/duplicates.py

"""
검증된 행을 기존 레코드와 대조하는 중복 판별기(DuplicateResolver)입니다.

- 참조 해석: 프로젝트 → 공동연구자, 검체 → 프로젝트/환자 (레거시 매핑 테이블, 일련번호 순).
- 자연키(natural key) 집합마다 한 번의 조회로 전체 행을 `existing` / `new` 로 분류합니다.
- 같은 파일 안에서 자연키가 겹치는 행은 앞선 행이 만든 레코드를 업데이트하도록 표시합니다.
- 이관(preserve) 모드에서는 지정된 번호가 DB나 파일의 앞선 행과 충돌하는지 검사합니다.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Set, Tuple

from sqlmodel.ext.asyncio.session import AsyncSession

from app.domains.lims import crud as lims_crud
from app.domains.lims.models import ENTITY_MODELS, NUMBER_FIELDS, EntityType

from .errors import DuplicateIdentifierError, ImportEngineError, RowValidationError

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

NEW = "new"
EXISTING = "existing"

# 행 값에서 참조로 해석된 뒤 제거되는 컬럼
REFERENCE_FIELDS = ("collaborator_reference", "project_reference", "patient_reference")


@dataclass
class ImportRow:
    row_number: int
    values: Dict[str, Any]
    status: str = NEW
    existing_id: Optional[int] = None
    duplicate_of: Optional[int] = None
    key_fields: Tuple[str, ...] = ()
    key: Optional[Tuple[Any, ...]] = None
    number: Optional[int] = None
    legacy_id: Optional[str] = None
    entity_id: Optional[int] = None

    @property
    def is_duplicate(self) -> bool:
        return self.status == EXISTING or self.duplicate_of is not None

    @property
    def identity(self) -> Optional[Tuple[Tuple[str, ...], Tuple[Any, ...]]]:
        if self.key is None:
            return None
        return self.key_fields, self.key


@dataclass
class Resolution:
    rows: List[ImportRow] = field(default_factory=list)
    errors: List[ImportEngineError] = field(default_factory=list)

    @property
    def new_count(self) -> int:
        return sum(1 for r in self.rows if not r.is_duplicate)

    @property
    def existing_count(self) -> int:
        return sum(1 for r in self.rows if r.status == EXISTING)

    @property
    def in_file_duplicate_count(self) -> int:
        return sum(1 for r in self.rows if r.status != EXISTING and r.duplicate_of is not None)

    @property
    def duplicates(self) -> List[ImportRow]:
        return [r for r in self.rows if r.is_duplicate]


class DuplicateResolver:
    def __init__(
        self,
        entity_type: EntityType,
        *,
        preserve_ids: bool = False,
        project_id: Optional[int] = None,
        collaborator_id: Optional[int] = None,
    ):
        self.entity_type = EntityType(entity_type)
        self.preserve_ids = preserve_ids
        self.project_id = project_id
        self.collaborator_id = collaborator_id
        self.number_field = NUMBER_FIELDS[self.entity_type]
        self.crud = lims_crud.crud_for(self.entity_type)

    async def resolve(self, db: AsyncSession, rows: List[ImportRow]) -> Resolution:
        """읽기 전용. 참조 해석 → 번호 추출 → 자연키 대조 → 부모 확인 → 번호 충돌 검사 순으로 처리합니다."""
        resolution = Resolution()
        rows = await self._resolve_references(db, rows, resolution.errors)
        for row in rows:
            self._extract_number(row)
            self._assign_key(row)
        await self._match_existing(db, rows)
        rows = self._require_parents(rows, resolution.errors)
        if self.preserve_ids:
            rows = await self._check_preserved_numbers(db, rows, resolution.errors)
        resolution.rows = rows
        resolution.errors.sort(key=lambda e: e.row or 0)
        logger.info(
            "중복 판별 완료: entity_type=%s new=%d existing=%d in_file=%d errors=%d",
            self.entity_type.value, resolution.new_count, resolution.existing_count,
            resolution.in_file_duplicate_count, len(resolution.errors),
        )
        return resolution

    # -------------------------------------------------------------------------
    # 참조 해석
    # -------------------------------------------------------------------------
    async def _lookup_references(
        self, db: AsyncSession, target: EntityType, refs: Iterable[str], *, extra_attribute: Optional[str] = None
    ) -> Dict[str, int]:
        """레거시 식별자 → 일련번호 → (선택) 추가 속성 순으로 참조를 내부 ID로 변환합니다."""
        refs = sorted(set(refs))
        if not refs:
            return {}
        model = ENTITY_MODELS[target]
        target_crud = lims_crud.crud_for(target)

        resolved = await lims_crud.legacy_mapping.get_current_ids(db, table_name=model.__tablename__, legacy_ids=refs)

        numbers = {int(r): r for r in refs if r not in resolved and r.isdigit()}
        if numbers:
            for entity in await target_crud.get_by_numbers(db, numbers=numbers.keys()):
                resolved.setdefault(numbers[getattr(entity, target_crud.number_field)], entity.id)

        pending = [r for r in refs if r not in resolved]
        if extra_attribute and pending:
            for entity in await target_crud.get_by_keys(db, fields=[extra_attribute], keys=[(r,) for r in pending]):
                resolved.setdefault(getattr(entity, extra_attribute), entity.id)
        return resolved

    async def _resolve_references(
        self, db: AsyncSession, rows: List[ImportRow], errors: List[ImportEngineError]
    ) -> List[ImportRow]:
        plans: List[Tuple[str, str, EntityType, Optional[int], Optional[str]]] = []
        if self.entity_type == EntityType.PROJECT:
            plans.append(("collaborator_reference", "collaborator_id", EntityType.COLLABORATOR, self.collaborator_id, None))
        elif self.entity_type == EntityType.SPECIMEN:
            plans.append(("project_reference", "project_id", EntityType.PROJECT, self.project_id, None))
            plans.append(("patient_reference", "patient_id", EntityType.PATIENT, None, "external_id"))

        row_refs: Dict[int, Dict[str, Optional[str]]] = {}
        for row in rows:
            row_refs[row.row_number] = {name: row.values.pop(name, None) for name in REFERENCE_FIELDS}

        for reference, target_field, target, fixed_id, extra_attribute in plans:
            if fixed_id is not None:
                for row in rows:
                    row.values[target_field] = fixed_id
                continue

            refs = [row_refs[row.row_number][reference] for row in rows]
            resolved = await self._lookup_references(
                db, target, [r for r in refs if r], extra_attribute=extra_attribute
            )
            kept: List[ImportRow] = []
            for row in rows:
                ref = row_refs[row.row_number][reference]
                if not ref:
                    kept.append(row)
                    continue
                if ref not in resolved:
                    errors.append(RowValidationError(
                        f"Row {row.row_number}: Unknown {target.value} reference '{ref}'",
                        row=row.row_number, entity_type=self.entity_type.value,
                        code=RowValidationError.UNRESOLVED_REFERENCE,
                    ))
                    continue
                row.values[target_field] = resolved[ref]
                kept.append(row)
            rows = kept
        return rows

    # -------------------------------------------------------------------------
    # 번호 / 자연키
    # -------------------------------------------------------------------------
    def _extract_number(self, row: ImportRow) -> None:
        # 생성(generate) 모드에서는 외부에서 지정한 번호를 무시합니다.
        value = row.values.pop(self.number_field, None)
        if self.preserve_ids and value is not None:
            row.number = int(value)
            row.legacy_id = str(row.number)

    def _assign_key(self, row: ImportRow) -> None:
        values = row.values
        if self.entity_type == EntityType.COLLABORATOR:
            fields = ("pi_name", "pi_institute")
        elif self.entity_type == EntityType.PROJECT:
            if self.preserve_ids and row.number is not None:
                row.key_fields, row.key = (self.number_field,), (row.number,)
                return
            fields = ("collaborator_id", "disease", "source")
        elif self.entity_type == EntityType.SPECIMEN:
            fields = ("project_id", "tube_id") if self.project_id is not None else ("tube_id",)
        elif self.entity_type == EntityType.INVENTORY:
            fields = ("name", "lot_number")
        else:
            fields = ("external_id",)

        key = tuple(values.get(name) for name in fields)
        # 키를 구성할 값이 하나도 없으면 항상 신규로 취급합니다.
        if all(v is None for v in key):
            return
        row.key_fields, row.key = fields, key

    async def _match_existing(self, db: AsyncSession, rows: List[ImportRow]) -> None:
        groups: Dict[Tuple[str, ...], List[ImportRow]] = {}
        for row in rows:
            if row.key is not None:
                groups.setdefault(row.key_fields, []).append(row)

        for key_fields, members in groups.items():
            found = await self.crud.get_by_keys(db, fields=key_fields, keys=[r.key for r in members])
            index: Dict[Tuple[Any, ...], int] = {}
            for entity in found:
                # 결과는 id 오름차순이므로 같은 키가 여러 건이면 가장 먼저 생성된 레코드가 선택됩니다.
                index.setdefault(tuple(getattr(entity, name) for name in key_fields), entity.id)
            for row in members:
                if row.key in index:
                    row.status = EXISTING
                    row.existing_id = index[row.key]

        first_seen: Dict[Tuple[Tuple[str, ...], Tuple[Any, ...]], int] = {}
        for row in rows:
            identity = row.identity
            if identity is None:
                continue
            if identity in first_seen:
                if row.status != EXISTING:
                    row.duplicate_of = first_seen[identity]
            else:
                first_seen[identity] = row.row_number

    def _require_parents(self, rows: List[ImportRow], errors: List[ImportEngineError]) -> List[ImportRow]:
        parent = {
            EntityType.PROJECT: ("collaborator_id", "collaborator"),
            EntityType.SPECIMEN: ("project_id", "project"),
        }.get(self.entity_type)
        if parent is None:
            return rows

        parent_field, parent_name = parent
        kept: List[ImportRow] = []
        for row in rows:
            if row.status != EXISTING and row.values.get(parent_field) is None:
                errors.append(RowValidationError(
                    f"Row {row.row_number}: No {parent_name} could be resolved for this {self.entity_type.value}",
                    row=row.row_number, entity_type=self.entity_type.value,
                    code=RowValidationError.UNRESOLVED_REFERENCE,
                ))
                continue
            kept.append(row)
        return kept

    async def _check_preserved_numbers(
        self, db: AsyncSession, rows: List[ImportRow], errors: List[ImportEngineError]
    ) -> List[ImportRow]:
        numbers: Set[int] = {row.number for row in rows if row.number is not None}
        owners: Dict[int, int] = {}
        if numbers:
            for entity in await self.crud.get_by_numbers(db, numbers=numbers):
                owners[getattr(entity, self.number_field)] = entity.id

        seen: Dict[int, ImportRow] = {}
        kept: List[ImportRow] = []
        for row in rows:
            if row.number is None:
                kept.append(row)
                continue

            owner = owners.get(row.number)
            if owner is not None and owner != row.existing_id:
                errors.append(DuplicateIdentifierError(
                    f"Row {row.row_number}: {self.number_field} {row.number} is already in use",
                    row=row.row_number, entity_type=self.entity_type.value,
                ))
                continue

            earlier = seen.get(row.number)
            if earlier is not None and (earlier.identity is None or earlier.identity != row.identity):
                errors.append(DuplicateIdentifierError(
                    f"Row {row.row_number}: {self.number_field} {row.number} is already used by row "
                    f"{earlier.row_number} of this file",
                    row=row.row_number, entity_type=self.entity_type.value,
                ))
                continue

            seen.setdefault(row.number, row)
            kept.append(row)
        return kept
