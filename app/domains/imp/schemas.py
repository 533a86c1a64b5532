# app/domains/imp/schemas.py

"""
'imp' 도메인의 API 응답 스키마를 정의하는 모듈입니다.
"""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field as PydanticField

from app.domains.lims.models import EntityType


class ImportCounts(BaseModel):
    new: int = 0
    existing: int = 0
    in_file_duplicates: int = 0


class ImportPreviewRow(BaseModel):
    row: int
    status: str = PydanticField(..., description="new / existing / duplicate_in_file")
    preview_number: Optional[int] = PydanticField(None, description="예상 번호 (예약 아님)")
    existing_id: Optional[int] = None
    data: Dict[str, Any]


class ImportPreviewResponse(BaseModel):
    entity_type: EntityType
    total_rows: int
    valid_rows: int
    invalid_rows: int
    counts: ImportCounts
    next_number: int
    errors: List[Dict[str, Any]]
    has_more_errors: bool
    sample: List[ImportPreviewRow]
    mapping: Dict[str, Any]


class ImportExecuteResponse(BaseModel):
    entity_type: EntityType
    import_batch_id: str
    processed: int
    created: int
    updated: int
    errors: List[Dict[str, Any]]
    duplicates_skipped: int
    total_rows: int
    batches: int
    aborted: bool = False
    warning: Optional[str] = None
    error_summary: Dict[str, Any]
    mapping: Dict[str, Any]


class FieldMappingRead(BaseModel):
    field: str
    label: str
    kind: str
    required: bool
    persisted: bool
    choices: List[str] = []
    aliases: List[str]


# --- 통합 가져오기 (공동연구자 → 프로젝트 → 검체) ---
class CombinedPreviewRow(BaseModel):
    row: int
    collaborator: Optional[str] = None
    project: Optional[str] = None
    specimen: str
    data: Dict[str, Any]


class CombinedPreviewResponse(BaseModel):
    total_rows: int
    valid_rows: int
    invalid_rows: int
    counts: Dict[str, ImportCounts]
    errors: List[Dict[str, Any]]
    has_more_errors: bool
    sample: List[CombinedPreviewRow]
    unmatched: List[str]
    mapping: Dict[str, Dict[str, Any]]


class CombinedEntityResult(BaseModel):
    created: int = 0
    updated: int = 0
    existing: int = 0
    failed: int = 0


class CombinedExecuteResponse(BaseModel):
    import_batch_id: str
    total_rows: int
    processed: int
    entities: Dict[str, CombinedEntityResult]
    errors: List[Dict[str, Any]]
    failed_rows: int
    duplicates_skipped: int
    aborted: bool = False
    error_summary: Dict[str, Any]
    unmatched: List[str]
    mapping: Dict[str, Dict[str, Any]]
