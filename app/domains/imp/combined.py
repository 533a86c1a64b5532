# app/domains/imp/combined.py

"""
한 파일에서 공동연구자 → 프로젝트 → 검체를 함께 가져오는 통합 가져오기(combined import)입니다.

헤더는 `collaborator:PI_Name`, `project:Disease`, `specimen:Tube ID` 처럼 엔티티 접두사를 붙입니다.
접두사를 뗀 나머지는 각 엔티티의 별칭 테이블로 매핑됩니다.

- 같은 값을 가진 공동연구자/프로젝트 컬럼은 하나의 레코드로 합쳐지고, 처음 나온 행 번호로 보고됩니다.
- 단계마다 기존 DuplicateResolver / EntityWriter / BatchOrchestrator 를 그대로 사용하고,
  앞 단계에서 기록(또는 기존 레코드로 연결)된 ID를 다음 단계의 부모 ID로 넘깁니다.
- 부모 레코드가 기록되지 못한 행은 하위 엔티티도 가져오지 않고 오류로 보고합니다.
- 기존 공동연구자/프로젝트는 재사용되며, update_duplicates 가 켜져 있을 때만 파일 값으로 갱신됩니다.
  중복 정책(건너뛰기/업데이트/409 거부)은 검체 행에 적용됩니다.
"""

import csv
import io
import logging
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple

from sqlmodel.ext.asyncio.session import AsyncSession

from app.core.config import settings
from app.domains.lims.models import EntityType

from . import field_maps
from .column_mapper import ColumnMapping, map_columns
from .decoder import DecodedSheet, decode_upload
from .duplicates import EXISTING, DuplicateResolver, ImportRow, Resolution
from .error_tracker import BatchErrorTracker
from .errors import (
    DuplicateRecordsError,
    FileDecodeError,
    HighFailureRateError,
    ImportEngineError,
    RowValidationError,
)
from .orchestrator import BatchOrchestrator, OrchestratorResult, ProgressCallback
from .service import EntityWriter, _resolve, split_location
from .validator import build_record, validate_row

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

COMBINED_ENTITIES = (EntityType.COLLABORATOR, EntityType.PROJECT, EntityType.SPECIMEN)
PREFIX_SEPARATOR = ":"

# 하위 엔티티 → (부모 ID 컬럼, 부모 엔티티)
PARENTS = {
    EntityType.PROJECT: ("collaborator_id", EntityType.COLLABORATOR),
    EntityType.SPECIMEN: ("project_id", EntityType.PROJECT),
}

# 부모는 접두사 그룹으로 연결되므로 파일의 참조 컬럼은 사용하지 않습니다.
IGNORED_REFERENCES = ("collaborator_reference", "project_reference")


@dataclass
class CombinedImport:
    sheet: DecodedSheet
    mappings: Dict[EntityType, ColumnMapping]
    unmatched: List[str] = field(default_factory=list)
    # 엔티티 → {대표 행 번호: 레코드}
    records: Dict[EntityType, Dict[int, Dict[str, Any]]] = field(default_factory=dict)
    # 하위 엔티티 → {대표 행 번호: 부모의 대표 행 번호}
    parents: Dict[EntityType, Dict[int, int]] = field(default_factory=dict)
    errors: List[ImportEngineError] = field(default_factory=list)
    invalid_rows: int = 0

    @property
    def valid_rows(self) -> int:
        return len(self.records.get(EntityType.SPECIMEN, {}))


def split_headers(headers: Sequence[Any]) -> Tuple[Dict[EntityType, List[str]], List[str]]:
    """
    접두사별로 헤더를 나눕니다. 반환되는 목록은 원본과 길이가 같고, 다른 엔티티의 컬럼 자리는 빈 문자열입니다.
    접두사가 없거나 알 수 없는 헤더는 두 번째 값으로 돌려줍니다.
    """
    aligned: Dict[EntityType, List[str]] = {entity: [] for entity in COMBINED_ENTITIES}
    unmatched: List[str] = []
    for raw in headers:
        header = str(raw).strip() if raw is not None else ""
        prefix, separator, rest = header.partition(PREFIX_SEPARATOR)
        target: Optional[EntityType] = None
        if separator and rest.strip():
            try:
                target = EntityType(prefix.strip().lower())
            except ValueError:
                target = None
        if target not in aligned:
            target = None
        for entity in COMBINED_ENTITIES:
            aligned[entity].append(rest.strip() if entity == target else "")
        if target is None and header:
            unmatched.append(header)
    return aligned, unmatched


def _record_key(record: Dict[str, Any]) -> Tuple[Any, ...]:
    return tuple(sorted(record.items()))


def prepare_combined_import(filename: str, content: bytes, *, preserve_ids: bool = False) -> CombinedImport:
    """파일을 디코딩하고 접두사 그룹마다 매핑/검증합니다. DB에 접근하지 않습니다."""
    sheet = decode_upload(filename, content)
    aligned, unmatched = split_headers(sheet.headers)
    missing = [entity.value for entity in COMBINED_ENTITIES if not any(aligned[entity])]
    if missing:
        raise FileDecodeError(
            f"Missing column group(s): {', '.join(missing)}. "
            "Prefix headers with 'collaborator:', 'project:' and 'specimen:'.",
            code="missing_entity_columns",
        )

    mappings = {entity: map_columns(entity, aligned[entity]) for entity in COMBINED_ENTITIES}
    prepared = CombinedImport(sheet=sheet, mappings=mappings, unmatched=unmatched)
    prepared.records = {entity: {} for entity in COMBINED_ENTITIES}
    prepared.parents = {EntityType.PROJECT: {}, EntityType.SPECIMEN: {}}

    collaborator_rows: Dict[Tuple[Any, ...], int] = {}
    project_rows: Dict[Tuple[Any, ...], int] = {}
    for decoded in sheet.rows:
        records: Dict[EntityType, Dict[str, Any]] = {}
        row_errors: List[ImportEngineError] = []
        for entity in COMBINED_ENTITIES:
            values = mappings[entity].apply(decoded.values)
            for name in IGNORED_REFERENCES:
                values.pop(name, None)
            if entity == EntityType.SPECIMEN:
                split_location(values, mappings[entity].fields)
            row_errors.extend(validate_row(entity, values, decoded.row_number, preserve_ids=preserve_ids))
            records[entity] = build_record(entity, values)
        if row_errors:
            prepared.invalid_rows += 1
            prepared.errors.extend(row_errors)
            continue

        row_number = decoded.row_number
        collaborator_row = collaborator_rows.setdefault(_record_key(records[EntityType.COLLABORATOR]), row_number)
        if collaborator_row == row_number:
            prepared.records[EntityType.COLLABORATOR][row_number] = records[EntityType.COLLABORATOR]

        project_key = (collaborator_row, _record_key(records[EntityType.PROJECT]))
        project_row = project_rows.setdefault(project_key, row_number)
        if project_row == row_number:
            prepared.records[EntityType.PROJECT][row_number] = records[EntityType.PROJECT]
            prepared.parents[EntityType.PROJECT][row_number] = collaborator_row

        prepared.records[EntityType.SPECIMEN][row_number] = records[EntityType.SPECIMEN]
        prepared.parents[EntityType.SPECIMEN][row_number] = project_row

    logger.info(
        "통합 파일 준비 완료: file=%s rows=%d valid=%d invalid=%d collaborators=%d projects=%d",
        filename, sheet.total_rows, prepared.valid_rows, prepared.invalid_rows,
        len(prepared.records[EntityType.COLLABORATOR]), len(prepared.records[EntityType.PROJECT]),
    )
    return prepared


def _stage_rows(
    prepared: CombinedImport,
    entity: EntityType,
    parent_ids: Dict[int, int],
    errors: List[ImportEngineError],
) -> List[ImportRow]:
    """단계 입력 행을 새로 만듭니다. 부모가 연결되지 않은 행은 오류로 보고하고 제외합니다."""
    parent = PARENTS.get(entity)
    rows: List[ImportRow] = []
    for row_number, record in prepared.records[entity].items():
        values = dict(record)
        if parent is not None:
            parent_field, parent_entity = parent
            parent_id = parent_ids.get(prepared.parents[entity][row_number])
            if parent_id is None:
                errors.append(RowValidationError(
                    f"Row {row_number}: The {parent_entity.value} for this {entity.value} was not imported",
                    row=row_number, entity_type=entity.value, code=RowValidationError.UNRESOLVED_REFERENCE,
                ))
                continue
            values[parent_field] = parent_id
        rows.append(ImportRow(row_number=row_number, values=values))
    return rows


def _linked_ids(rows: List[ImportRow], *, placeholders: bool = False) -> Dict[int, int]:
    """
    대표 행 번호 → 레코드 ID. 기록된 ID, 기존 레코드 ID, 같은 파일의 앞선 행 ID 순으로 찾습니다.
    `placeholders`가 켜져 있으면 아직 없는 신규 레코드에 음수 임시 ID를 줍니다 (미리보기 전용).
    """
    ids: Dict[int, int] = {}
    for row in rows:
        entity_id = row.entity_id or row.existing_id
        if entity_id is None and placeholders and row.duplicate_of is None:
            entity_id = -row.row_number
        if entity_id is not None:
            ids[row.row_number] = entity_id
    for row in rows:
        if row.row_number not in ids and row.duplicate_of in ids:
            ids[row.row_number] = ids[row.duplicate_of]
    return ids


def _row_status(row: ImportRow) -> str:
    if row.status == EXISTING:
        return "existing"
    if row.duplicate_of is not None:
        return "duplicate_in_file"
    return "new"


async def _plan(
    db: AsyncSession, prepared: CombinedImport, *, preserve_ids: bool
) -> Tuple[Dict[EntityType, Resolution], List[ImportEngineError]]:
    """쓰기 없이 세 단계를 모두 판별합니다. 신규 부모에는 임시 ID가 연결됩니다."""
    resolutions: Dict[EntityType, Resolution] = {}
    errors: List[ImportEngineError] = []
    parent_ids: Dict[int, int] = {}
    for entity in COMBINED_ENTITIES:
        rows = _stage_rows(prepared, entity, parent_ids, errors)
        resolution = await _resolve(db, DuplicateResolver(entity, preserve_ids=preserve_ids), rows)
        resolutions[entity] = resolution
        errors.extend(resolution.errors)
        parent_ids = _linked_ids(resolution.rows, placeholders=True)
    return resolutions, errors


def _entity_feedback(prepared: CombinedImport) -> Dict[str, Any]:
    return {entity.value: prepared.mappings[entity].feedback for entity in COMBINED_ENTITIES}


# =============================================================================
# 미리보기 (Preview)
# =============================================================================
async def preview_combined_import(
    db: AsyncSession, filename: str, content: bytes, *, preserve_ids: bool = False
) -> Dict[str, Any]:
    """엔티티별 신규/기존 수와 행별 상태를 예측합니다. DB에 쓰지 않습니다."""
    prepared = prepare_combined_import(filename, content, preserve_ids=preserve_ids)
    resolutions, plan_errors = await _plan(db, prepared, preserve_ids=preserve_ids)

    errors = sorted(prepared.errors + plan_errors, key=lambda e: e.row or 0)
    max_errors = settings.IMPORT_PREVIEW_MAX_ERRORS

    statuses = {
        entity: {row.row_number: _row_status(row) for row in resolutions[entity].rows}
        for entity in COMBINED_ENTITIES
    }
    sample: List[Dict[str, Any]] = []
    for row in resolutions[EntityType.SPECIMEN].rows[:settings.IMPORT_PREVIEW_ROWS]:
        project_row = prepared.parents[EntityType.SPECIMEN][row.row_number]
        collaborator_row = prepared.parents[EntityType.PROJECT][project_row]
        sample.append({
            "row": row.row_number,
            "collaborator": statuses[EntityType.COLLABORATOR].get(collaborator_row),
            "project": statuses[EntityType.PROJECT].get(project_row),
            "specimen": _row_status(row),
            "data": row.values,
        })

    valid_rows = len(resolutions[EntityType.SPECIMEN].rows)
    return {
        "total_rows": prepared.sheet.total_rows,
        "valid_rows": valid_rows,
        "invalid_rows": prepared.sheet.total_rows - valid_rows,
        "counts": {
            entity.value: {
                "new": resolutions[entity].new_count,
                "existing": resolutions[entity].existing_count,
                "in_file_duplicates": resolutions[entity].in_file_duplicate_count,
            }
            for entity in COMBINED_ENTITIES
        },
        "errors": [e.to_dict() for e in errors[:max_errors]],
        "has_more_errors": len(errors) > max_errors,
        "sample": sample,
        "unmatched": prepared.unmatched,
        "mapping": _entity_feedback(prepared),
    }


# =============================================================================
# 실행 (Execute)
# =============================================================================
async def _write_stage(
    db: AsyncSession,
    entity: EntityType,
    rows: List[ImportRow],
    tracker: BatchErrorTracker,
    *,
    preserve_ids: bool,
    batch_size: int,
    import_batch_id: str,
    filename: str,
    progress: Optional[ProgressCallback],
) -> OrchestratorResult:
    writer = EntityWriter(entity, preserve_ids=preserve_ids, import_batch_id=import_batch_id, imported_from=filename)
    orchestrator = BatchOrchestrator(
        db, tracker, batch_size=batch_size, entity_type=entity.value, progress=progress,
        before_commit=writer.sync_sequence if preserve_ids else None,
    )
    return await orchestrator.run(rows, writer)


async def execute_combined_import(
    db: AsyncSession,
    filename: str,
    content: bytes,
    *,
    preserve_ids: bool = False,
    skip_duplicates: bool = False,
    update_duplicates: bool = True,
    batch_size: Optional[int] = None,
    progress: Optional[ProgressCallback] = None,
) -> Dict[str, Any]:
    """
    공동연구자 → 프로젝트 → 검체 순으로 기록하고 엔티티별 결과를 반환합니다.

    예외는 단일 엔티티 가져오기와 같습니다. 중복 거부(409)와 검증 거부는 어떤 쓰기보다 먼저 판단됩니다.
    최종 실패율은 하나 이상의 오류가 보고된 파일 행 수 / 전체 행 수 입니다.
    """
    batch_size = min(batch_size or settings.IMPORT_BATCH_SIZE, settings.IMPORT_MAX_BATCH_SIZE)
    threshold = settings.IMPORT_MAX_FAILURE_RATE
    prepared = prepare_combined_import(filename, content, preserve_ids=preserve_ids)
    total_rows = prepared.sheet.total_rows

    screen = BatchErrorTracker(
        "combined-validation", max_failure_rate=threshold, min_attempts=settings.IMPORT_MIN_ATTEMPTS_BEFORE_ABORT,
    )
    screen.total_attempted = total_rows
    screen.total_failed = prepared.invalid_rows
    should_abort, reason, _ = screen.should_abort_operation()
    if not prepared.valid_rows or should_abort:
        message = reason or f"All {total_rows} rows failed validation"
        raise HighFailureRateError(
            f"Validation rejected too many rows: {message}",
            code="validation_too_broad",
            summary={
                "total_rows": total_rows,
                "errors": [e.to_dict() for e in prepared.errors],
                "mapping": _entity_feedback(prepared),
            },
        )

    # 쓰기 전에 검체 중복 정책을 판단합니다.
    planned, _ = await _plan(db, prepared, preserve_ids=preserve_ids)
    duplicates = planned[EntityType.SPECIMEN].duplicates
    if duplicates and not skip_duplicates and not update_duplicates:
        raise DuplicateRecordsError(
            f"{len(duplicates)} specimen row(s) match existing records. "
            "Enable skip_duplicates or update_duplicates to continue.",
            duplicates=[
                {"row": row.row_number, "existing_id": row.existing_id, "duplicate_of_row": row.duplicate_of}
                for row in duplicates
            ],
        )

    tracker = BatchErrorTracker(
        "combined-import", max_failure_rate=threshold, min_attempts=settings.IMPORT_MIN_ATTEMPTS_BEFORE_ABORT,
    )
    import_batch_id = uuid.uuid4().hex
    errors: List[ImportEngineError] = list(prepared.errors)
    entities: Dict[str, Dict[str, int]] = {}
    outcomes: Dict[EntityType, OrchestratorResult] = {}
    duplicates_skipped = 0
    parent_ids: Dict[int, int] = {}

    for entity in COMBINED_ENTITIES:
        stage_errors: List[ImportEngineError] = []
        rows = _stage_rows(prepared, entity, parent_ids, stage_errors)
        resolution = await _resolve(db, DuplicateResolver(entity, preserve_ids=preserve_ids), rows)
        stage_errors.extend(resolution.errors)

        if entity == EntityType.SPECIMEN:
            write_existing = not skip_duplicates
            if skip_duplicates:
                duplicates_skipped = len(resolution.duplicates)
        else:
            write_existing = update_duplicates and not skip_duplicates
        to_write = resolution.rows if write_existing else [r for r in resolution.rows if not r.is_duplicate]

        outcome = await _write_stage(
            db, entity, to_write, tracker,
            preserve_ids=preserve_ids, batch_size=batch_size,
            import_batch_id=import_batch_id, filename=filename, progress=progress,
        )
        outcomes[entity] = outcome
        stage_errors.extend(outcome.errors)
        errors.extend(stage_errors)
        entities[entity.value] = {
            "created": outcome.created,
            "updated": outcome.updated,
            "existing": resolution.existing_count,
            "failed": len({e.row for e in stage_errors}),
        }
        if outcome.aborted:
            break
        parent_ids = _linked_ids(resolution.rows)

    errors.sort(key=lambda e: e.row or 0)
    failed_rows = {e.row for e in errors if e.row is not None}
    specimens = outcomes.get(EntityType.SPECIMEN)
    aborted = next((o for o in outcomes.values() if o.aborted), None)
    result = {
        "import_batch_id": import_batch_id,
        "total_rows": total_rows,
        "processed": specimens.processed if specimens else 0,
        "entities": entities,
        "errors": [e.to_dict() for e in errors],
        "failed_rows": len(failed_rows),
        "duplicates_skipped": duplicates_skipped,
        "aborted": aborted is not None,
        "error_summary": tracker.get_summary(),
        "unmatched": prepared.unmatched,
        "mapping": _entity_feedback(prepared),
    }
    logger.info(
        "통합 가져오기 완료: rows=%d failed_rows=%d entities=%s skipped=%d",
        total_rows, len(failed_rows), entities, duplicates_skipped,
    )

    if aborted is not None:
        raise HighFailureRateError(aborted.abort_reason, summary=result)
    if result["processed"] == 0 and total_rows - duplicates_skipped > 0:
        raise HighFailureRateError(
            f"No specimen rows were imported ({len(failed_rows)} failed)", code="no_rows_processed", summary=result
        )
    rate = len(failed_rows) / total_rows if total_rows else 0.0
    if rate > threshold:
        raise HighFailureRateError(
            f"Import failure rate {rate * 100:.1f}% exceeds the allowed "
            f"{threshold * 100:.1f}% ({len(failed_rows)}/{total_rows})",
            summary=result,
        )
    return result


def build_combined_template() -> str:
    headers: List[str] = []
    for entity in COMBINED_ENTITIES:
        for spec in field_maps.get_field_map(entity):
            if spec.persisted and spec.name not in IGNORED_REFERENCES:
                headers.append(f"{entity.value}{PREFIX_SEPARATOR}{spec.aliases[0]}")
    buffer = io.StringIO()
    csv.writer(buffer).writerow(headers)
    return buffer.getvalue()
