# app/domains/imp/exporter.py

"""
저장된 레코드를 가져오기 템플릿과 같은 헤더의 CSV / Excel 파일로 내보내는 모듈입니다.

헤더는 `field_maps.template_headers()` 와 같으므로 내보낸 파일은 그대로 다시 가져올 수 있습니다.
참조 컬럼(프로젝트의 Collaborator, 검체의 Project/Patient)에는 참조 대상의 일련번호가 들어갑니다.
"""

import csv
import io
import logging
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional, Tuple

from openpyxl import Workbook
from openpyxl.styles import Font, PatternFill
from openpyxl.utils import get_column_letter
from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession

from app.domains.lims.models import ENTITY_MODELS, NUMBER_FIELDS, EntityType

from .field_maps import FieldSpec, get_field_map

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"

# 참조 컬럼 → (참조 대상 엔티티, 외래키 컬럼)
EXPORT_REFERENCES: Dict[EntityType, Dict[str, Tuple[EntityType, str]]] = {
    EntityType.PROJECT: {
        "collaborator_reference": (EntityType.COLLABORATOR, "collaborator_id"),
    },
    EntityType.SPECIMEN: {
        "project_reference": (EntityType.PROJECT, "project_id"),
        "patient_reference": (EntityType.PATIENT, "patient_id"),
    },
}

SHEET_TITLES = {
    EntityType.COLLABORATOR: "Collaborators",
    EntityType.PROJECT: "Projects",
    EntityType.PATIENT: "Patients",
    EntityType.SPECIMEN: "Specimens",
    EntityType.INVENTORY: "Inventory",
}


def export_columns(entity_type: EntityType) -> List[FieldSpec]:
    return [spec for spec in get_field_map(entity_type) if spec.persisted]


def export_headers(entity_type: EntityType) -> List[str]:
    return [spec.aliases[0] for spec in export_columns(entity_type)]


async def _numbers_by_id(db: AsyncSession, target: EntityType, ids: Iterable[int]) -> Dict[int, int]:
    ids = sorted(set(ids))
    if not ids:
        return {}
    model = ENTITY_MODELS[target]
    number_column = getattr(model, NUMBER_FIELDS[target])
    result = await db.execute(select(model.id, number_column).where(model.id.in_(ids)))
    return {entity_id: number for entity_id, number in result.all()}


async def fetch_export_rows(
    db: AsyncSession,
    entity_type: EntityType,
    *,
    project_id: Optional[int] = None,
    collaborator_id: Optional[int] = None,
    limit: int = 10000,
) -> List[List[Any]]:
    """
    내보낼 레코드를 일련번호 순으로 조회해 헤더 순서의 값 목록으로 돌려줍니다.
    `project_id`는 검체, `collaborator_id`는 프로젝트에만 적용됩니다.
    """
    entity = EntityType(entity_type)
    model = ENTITY_MODELS[entity]
    number_column = getattr(model, NUMBER_FIELDS[entity])

    statement = select(model)
    if entity == EntityType.SPECIMEN and project_id is not None:
        statement = statement.where(model.project_id == project_id)
    if entity == EntityType.PROJECT and collaborator_id is not None:
        statement = statement.where(model.collaborator_id == collaborator_id)
    statement = statement.order_by(number_column, model.id).limit(limit)
    records = (await db.execute(statement)).scalars().all()

    references = EXPORT_REFERENCES.get(entity, {})
    numbers: Dict[str, Dict[int, int]] = {}
    for name, (target, foreign_key) in references.items():
        ids = [getattr(record, foreign_key) for record in records if getattr(record, foreign_key) is not None]
        numbers[name] = await _numbers_by_id(db, target, ids)

    columns = export_columns(entity)
    rows: List[List[Any]] = []
    for record in records:
        row = []
        for spec in columns:
            if spec.name in references:
                foreign_key = references[spec.name][1]
                row.append(numbers[spec.name].get(getattr(record, foreign_key)))
            else:
                row.append(getattr(record, spec.name, None))
        rows.append(row)

    logger.info("내보내기 조회: entity_type=%s rows=%d", entity.value, len(rows))
    return rows


def _csv_cell(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    return str(value)


def _xlsx_cell(value: Any) -> Any:
    if isinstance(value, Decimal):
        return float(value)
    return value


def render_csv(headers: List[str], rows: List[List[Any]]) -> str:
    buffer = io.StringIO()
    writer = csv.writer(buffer)
    writer.writerow(headers)
    for row in rows:
        writer.writerow([_csv_cell(value) for value in row])
    return buffer.getvalue()


def render_xlsx(entity_type: EntityType, headers: List[str], rows: List[List[Any]]) -> bytes:
    """첫 시트에 굵은 헤더 행과 데이터 행을 쓴 .xlsx 바이트를 반환합니다. 날짜/숫자/불리언은 셀 타입 그대로 저장됩니다."""
    workbook = Workbook()
    sheet = workbook.active
    sheet.title = SHEET_TITLES[EntityType(entity_type)]

    sheet.append(headers)
    header_font = Font(bold=True)
    header_fill = PatternFill(start_color="E0E0E0", end_color="E0E0E0", fill_type="solid")
    for cell in sheet[1]:
        cell.font = header_font
        cell.fill = header_fill
    sheet.freeze_panes = "A2"

    for row in rows:
        sheet.append([_xlsx_cell(value) for value in row])

    for index, header in enumerate(headers, start=1):
        sheet.column_dimensions[get_column_letter(index)].width = max(12, len(header) + 2)

    buffer = io.BytesIO()
    workbook.save(buffer)
    workbook.close()
    return buffer.getvalue()


def export_filename(entity_type: EntityType, extension: str) -> str:
    return f"{EntityType(entity_type).value}_export_{date.today().isoformat()}.{extension}"
