# app/domains/imp/service.py

"""
일괄 가져오기 서비스 계층입니다. 라우터와 CLI 스크립트가 함께 사용합니다.

파이프라인: 디코딩 → 컬럼 매핑 → 행 검증 → 중복 판별 → (신규 행) 번호 발급 → 배치 기록 → 요약
"""

import csv
import io
import logging
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from fastapi import HTTPException, status
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel.ext.asyncio.session import AsyncSession

from app.core.config import settings
from app.domains.ids.crud import allocator
from app.domains.lims import crud as lims_crud
from app.domains.lims.models import ENTITY_MODELS, NUMBER_FIELDS, EntityType

from . import field_maps
from .column_mapper import ColumnMapping, map_columns
from .decoder import DecodedSheet, decode_upload
from .duplicates import DuplicateResolver, ImportRow, Resolution
from .error_tracker import BatchErrorTracker
from .errors import (
    DuplicateRecordsError,
    HighFailureRateError,
    ImportEngineError,
    classify_exception,
)
from .orchestrator import CREATED, UPDATED, BatchOrchestrator, ProgressCallback
from .validator import build_record, validate_row

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

LOCATION_PARTS = (
    "position_freezer", "position_rack", "position_box", "position_dimension_one", "position_dimension_two",
)


@dataclass
class PreparedImport:
    entity_type: EntityType
    sheet: DecodedSheet
    mapping: ColumnMapping
    rows: List[ImportRow] = field(default_factory=list)
    errors: List[ImportEngineError] = field(default_factory=list)
    invalid_rows: int = 0


def _supports_preserve(entity_type: EntityType) -> bool:
    # 재고 번호는 항상 새로 발급합니다.
    return entity_type != EntityType.INVENTORY


def split_location(values: Dict[str, Any], mapped_fields: List[str]) -> None:
    """'F1/R1/B1' 형태의 위치 값을 냉동고/랙/박스/좌표로 나눕니다. 세부 위치 컬럼이 없을 때만 적용됩니다."""
    if "position_freezer" not in mapped_fields or any(name in mapped_fields for name in LOCATION_PARTS[1:]):
        return
    location = values.get("position_freezer")
    if not isinstance(location, str) or "/" not in location:
        return
    parts = [part.strip() or None for part in location.split("/")]
    for name, part in zip(LOCATION_PARTS, parts):
        values[name] = part


def prepare_import(
    entity_type: EntityType, filename: str, content: bytes, *, preserve_ids: bool = False
) -> PreparedImport:
    """파일을 디코딩하고 매핑/검증합니다. DB에 접근하지 않습니다."""
    entity = EntityType(entity_type)
    sheet = decode_upload(filename, content)
    mapping = map_columns(entity, sheet.headers)
    prepared = PreparedImport(entity_type=entity, sheet=sheet, mapping=mapping)
    mapped_fields = mapping.fields

    for decoded in sheet.rows:
        values = mapping.apply(decoded.values)
        if entity == EntityType.SPECIMEN:
            split_location(values, mapped_fields)
        row_errors = validate_row(entity, values, decoded.row_number, preserve_ids=preserve_ids)
        if row_errors:
            prepared.invalid_rows += 1
            prepared.errors.extend(row_errors)
            continue
        prepared.rows.append(ImportRow(row_number=decoded.row_number, values=build_record(entity, values)))

    logger.info(
        "파일 준비 완료: entity_type=%s file=%s rows=%d valid=%d invalid=%d",
        entity.value, filename, sheet.total_rows, len(prepared.rows), prepared.invalid_rows,
    )
    return prepared


async def _check_targets(db: AsyncSession, *, project_id: Optional[int], collaborator_id: Optional[int]) -> None:
    if project_id is not None and not await lims_crud.project.get(db, id=project_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Project not found.")
    if collaborator_id is not None and not await lims_crud.collaborator.get(db, id=collaborator_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Collaborator not found.")


async def _resolve(db: AsyncSession, resolver: DuplicateResolver, rows: List[ImportRow]) -> Resolution:
    try:
        return await resolver.resolve(db, rows)
    except (SQLAlchemyError, OSError) as e:
        logger.error("중복 판별 중 저장소 오류", exc_info=True)
        raise classify_exception(e, entity_type=resolver.entity_type.value) from e


# =============================================================================
# 미리보기 (Preview)
# =============================================================================
async def preview_import(
    db: AsyncSession,
    entity_type: EntityType,
    filename: str,
    content: bytes,
    *,
    preserve_ids: bool = False,
    project_id: Optional[int] = None,
    collaborator_id: Optional[int] = None,
) -> Dict[str, Any]:
    """
    쓰기 없이 가져오기 결과를 예측합니다.
    신규 행의 예상 번호는 peek 값에 순서 오프셋을 더한 것으로, 예약되지 않습니다.
    """
    entity = EntityType(entity_type)
    preserve_ids = preserve_ids and _supports_preserve(entity)
    await _check_targets(db, project_id=project_id, collaborator_id=collaborator_id)

    prepared = prepare_import(entity, filename, content, preserve_ids=preserve_ids)
    resolver = DuplicateResolver(
        entity, preserve_ids=preserve_ids, project_id=project_id, collaborator_id=collaborator_id
    )
    resolution = await _resolve(db, resolver, prepared.rows)
    next_number = await allocator.peek(db, entity)

    errors = sorted(prepared.errors + resolution.errors, key=lambda e: e.row or 0)
    max_errors = settings.IMPORT_PREVIEW_MAX_ERRORS

    sample: List[Dict[str, Any]] = []
    offset = 0
    for row in resolution.rows:
        preview_number = None
        if row.is_duplicate:
            row_status = "existing" if row.existing_id is not None else "duplicate_in_file"
        else:
            row_status = "new"
            if row.number is not None:
                preview_number = row.number
            else:
                preview_number = next_number + offset
                offset += 1
        if len(sample) < settings.IMPORT_PREVIEW_ROWS:
            sample.append({
                "row": row.row_number,
                "status": row_status,
                "preview_number": preview_number,
                "existing_id": row.existing_id,
                "data": row.values,
            })

    return {
        "entity_type": entity.value,
        "total_rows": prepared.sheet.total_rows,
        "valid_rows": len(resolution.rows),
        "invalid_rows": prepared.sheet.total_rows - len(resolution.rows),
        "counts": {
            "new": resolution.new_count,
            "existing": resolution.existing_count,
            "in_file_duplicates": resolution.in_file_duplicate_count,
        },
        "next_number": next_number,
        "errors": [e.to_dict() for e in errors[:max_errors]],
        "has_more_errors": len(errors) > max_errors,
        "sample": sample,
        "mapping": prepared.mapping.feedback,
    }


# =============================================================================
# 실행 (Execute)
# =============================================================================
class EntityWriter:
    """행 하나를 신규 생성하거나 기존 레코드에 반영합니다. 오케스트레이터의 행 처리기입니다."""

    def __init__(
        self,
        entity_type: EntityType,
        *,
        preserve_ids: bool = False,
        import_batch_id: Optional[str] = None,
        imported_from: Optional[str] = None,
    ):
        self.entity_type = EntityType(entity_type)
        self.model = ENTITY_MODELS[self.entity_type]
        self.number_field = NUMBER_FIELDS[self.entity_type]
        self.preserve_ids = preserve_ids
        self.import_batch_id = import_batch_id
        self.imported_from = imported_from
        self.created_by_key: Dict[Any, int] = {}
        self.preserved = 0
        self._unsynced = False

    def _fields(self, row: ImportRow) -> Dict[str, Any]:
        excluded = {"id", "created_at", "updated_at", self.number_field}
        return {
            name: value for name, value in row.values.items()
            if name in self.model.model_fields and name not in excluded
        }

    async def __call__(self, db: AsyncSession, row: ImportRow) -> str:
        target_id = row.existing_id
        if target_id is None and row.identity is not None:
            # 같은 파일의 앞선 행이 만든 레코드
            target_id = self.created_by_key.get(row.identity)

        if target_id is not None:
            entity = await db.get(self.model, target_id)
            if entity is not None:
                for name, value in self._fields(row).items():
                    if value is not None:
                        setattr(entity, name, value)
                db.add(entity)
                await db.flush()
                row.entity_id = entity.id
                return UPDATED

        if self.preserve_ids and row.number is not None:
            number = row.number
        else:
            number = await allocator.allocate(db, self.entity_type, record=False)

        values = {name: value for name, value in self._fields(row).items() if value is not None}
        values[self.number_field] = number
        if self.entity_type == EntityType.INVENTORY and not values.get("barcode"):
            values["barcode"] = f"LAB-{number:03d}"

        entity = self.model(**values)
        db.add(entity)
        await db.flush()

        if self.preserve_ids and row.number is not None:
            await lims_crud.legacy_mapping.create_mapping(
                db,
                table_name=self.model.__tablename__,
                legacy_id=row.legacy_id,
                current_id=entity.id,
                import_batch_id=self.import_batch_id,
                imported_from=self.imported_from,
            )
            self.preserved += 1
            self._unsynced = True

        if row.identity is not None:
            self.created_by_key[row.identity] = entity.id
        row.entity_id = entity.id
        return CREATED

    async def sync_sequence(self, db: AsyncSession) -> None:
        """
        보존된 번호가 생긴 배치는 커밋 직전에 시퀀스를 저장된 최대 번호 뒤로 당깁니다.
        이후 배치가 critical 오류로 롤백되어도 이미 커밋된 번호는 다시 발급되지 않습니다.
        """
        if not self._unsynced:
            return
        await allocator.sync(db, self.entity_type)
        self._unsynced = False


def _record_rejections(tracker: BatchErrorTracker, errors: List[ImportEngineError]) -> None:
    """쓰기 전에 걸러진 행을 행 단위로 한 번씩 실패로 기록합니다."""
    seen_rows = set()
    for error in errors:
        if error.row in seen_rows:
            continue
        seen_rows.add(error.row)
        tracker.record_attempt()
        tracker.record_failure(error, row=error.row)


async def execute_import(
    db: AsyncSession,
    entity_type: EntityType,
    filename: str,
    content: bytes,
    *,
    preserve_ids: bool = False,
    skip_duplicates: bool = False,
    update_duplicates: bool = True,
    batch_size: Optional[int] = None,
    project_id: Optional[int] = None,
    collaborator_id: Optional[int] = None,
    progress: Optional[ProgressCallback] = None,
) -> Dict[str, Any]:
    """
    파일을 가져와 DB에 기록하고 결과 요약을 반환합니다.

    실패 시 예외:
    - HighFailureRateError: 검증 단계에서 너무 많은 행이 거부됐거나, 처리된 행이 없거나, 실패율이 임계값을 넘은 경우
    - DuplicateRecordsError: 중복 행이 있으나 건너뛰기/업데이트가 모두 허용되지 않은 경우
    - ConnectionFailureError / AllocationFailedError: critical 인프라 오류 (진행 중인 배치는 롤백됨)
    """
    entity = EntityType(entity_type)
    preserve_ids = preserve_ids and _supports_preserve(entity)
    batch_size = min(batch_size or settings.IMPORT_BATCH_SIZE, settings.IMPORT_MAX_BATCH_SIZE)
    threshold = settings.IMPORT_MAX_FAILURE_RATE
    await _check_targets(db, project_id=project_id, collaborator_id=collaborator_id)

    prepared = prepare_import(entity, filename, content, preserve_ids=preserve_ids)
    total_rows = prepared.sheet.total_rows

    tracker = BatchErrorTracker(
        f"{entity.value}-import",
        max_failure_rate=threshold,
        min_attempts=settings.IMPORT_MIN_ATTEMPTS_BEFORE_ABORT,
    )
    # 쓰기 전 검증 단계의 거부율 판단
    screen = BatchErrorTracker(
        f"{entity.value}-validation",
        max_failure_rate=threshold,
        min_attempts=settings.IMPORT_MIN_ATTEMPTS_BEFORE_ABORT,
    )
    screen.total_attempted = total_rows
    screen.total_failed = prepared.invalid_rows
    should_abort, reason, _ = screen.should_abort_operation()
    if not prepared.rows or should_abort:
        message = reason or f"All {total_rows} rows failed validation"
        raise HighFailureRateError(
            f"Validation rejected too many rows: {message}",
            code="validation_too_broad",
            summary={
                "total_rows": total_rows,
                "errors": [e.to_dict() for e in prepared.errors],
                "mapping": prepared.mapping.feedback,
            },
        )

    resolver = DuplicateResolver(
        entity, preserve_ids=preserve_ids, project_id=project_id, collaborator_id=collaborator_id
    )
    resolution = await _resolve(db, resolver, prepared.rows)

    duplicates = resolution.duplicates
    rows = resolution.rows
    duplicates_skipped = 0
    if duplicates:
        if skip_duplicates:
            rows = [row for row in rows if not row.is_duplicate]
            duplicates_skipped = len(duplicates)
        elif not update_duplicates:
            raise DuplicateRecordsError(
                f"{len(duplicates)} row(s) match existing records. "
                "Enable skip_duplicates or update_duplicates to continue.",
                duplicates=[
                    {"row": row.row_number, "existing_id": row.existing_id, "duplicate_of_row": row.duplicate_of}
                    for row in duplicates
                ],
            )

    import_batch_id = uuid.uuid4().hex
    writer = EntityWriter(
        entity, preserve_ids=preserve_ids, import_batch_id=import_batch_id, imported_from=filename
    )
    orchestrator = BatchOrchestrator(
        db, tracker, batch_size=batch_size, entity_type=entity.value, progress=progress,
        before_commit=writer.sync_sequence if preserve_ids else None,
    )
    # 배치별 중단 판단은 실제로 기록을 시도한 행만으로 합니다.
    outcome = await orchestrator.run(rows, writer)
    # 쓰기 전에 거부된 행은 최종 실패율과 요약에만 포함합니다.
    _record_rejections(tracker, prepared.errors + resolution.errors)

    errors = sorted(prepared.errors + resolution.errors + outcome.errors, key=lambda e: e.row or 0)
    result = {
        "entity_type": entity.value,
        "import_batch_id": import_batch_id,
        "processed": outcome.processed,
        "created": outcome.created,
        "updated": outcome.updated,
        "errors": [e.to_dict() for e in errors],
        "duplicates_skipped": duplicates_skipped,
        "total_rows": total_rows,
        "batches": outcome.batches,
        "aborted": outcome.aborted,
        "warning": tracker.validate_operation_success()["warning"],
        "error_summary": tracker.get_summary(),
        "mapping": prepared.mapping.feedback,
    }
    logger.info(
        "가져오기 완료: entity_type=%s processed=%d created=%d updated=%d failed=%d skipped=%d",
        entity.value, outcome.processed, outcome.created, outcome.updated,
        tracker.total_failed, duplicates_skipped,
    )

    if outcome.aborted:
        raise HighFailureRateError(outcome.abort_reason, summary=result)
    if outcome.processed == 0 and total_rows - duplicates_skipped > 0:
        raise HighFailureRateError(
            f"No rows were imported ({tracker.total_failed} failed)", code="no_rows_processed", summary=result
        )
    if tracker.failure_rate > threshold:
        raise HighFailureRateError(
            f"Import failure rate {tracker.failure_rate * 100:.1f}% exceeds the allowed "
            f"{threshold * 100:.1f}% ({tracker.total_failed}/{tracker.total_attempted})",
            summary=result,
        )
    return result


# =============================================================================
# 매핑 정보 / 템플릿
# =============================================================================
def describe_mappings(entity_type: EntityType) -> List[Dict[str, Any]]:
    return [
        {
            "field": spec.name,
            "label": spec.display_name,
            "kind": spec.kind,
            "required": spec.required,
            "persisted": spec.persisted,
            "choices": list(spec.choices),
            "aliases": list(spec.aliases),
        }
        for spec in field_maps.get_field_map(entity_type)
    ]


def build_template(entity_type: EntityType) -> str:
    buffer = io.StringIO()
    csv.writer(buffer).writerow(field_maps.template_headers(entity_type))
    return buffer.getvalue()
