# app/domains/imp/routers.py

"""
일괄 가져오기(Import) API 엔드포인트를 정의하는 모듈입니다.

엔진 오류는 여기서 HTTP 응답으로 변환됩니다.
- FileDecodeError, HighFailureRateError → 400
- DuplicateRecordsError → 409
- critical 오류 (연결 실패, 번호 발급 실패) → 503
"""

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, Query, Response, UploadFile, status
from sqlmodel.ext.asyncio.session import AsyncSession

from app.core import dependencies as deps
from app.core.config import settings
from app.domains.usr import models as usr_models
from app.domains.lims.models import EntityType

from . import combined as imp_combined
from . import exporter as imp_exporter
from . import schemas as imp_schemas
from . import service as imp_service
from .errors import (
    DuplicateRecordsError,
    FileDecodeError,
    HighFailureRateError,
    ImportEngineError,
    is_critical,
)

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

router = APIRouter(
    tags=["Bulk Import (일괄 가져오기)"],
    responses={404: {"description": "Not found"}},
)


async def _read_upload(file: UploadFile) -> bytes:
    content = await file.read()
    max_bytes = settings.IMPORT_MAX_FILE_SIZE_MB * 1024 * 1024
    if len(content) > max_bytes:
        raise HTTPException(
            status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
            detail=f"File exceeds the maximum size of {settings.IMPORT_MAX_FILE_SIZE_MB} MB",
        )
    return content


def _to_http_exception(e: ImportEngineError) -> HTTPException:
    if isinstance(e, FileDecodeError):
        return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail={"message": e.message, "code": e.code})
    if isinstance(e, DuplicateRecordsError):
        return HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail={"message": e.message, "code": e.code, "duplicates": e.duplicates},
        )
    if isinstance(e, HighFailureRateError):
        return HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"message": e.message, "code": e.code, **e.summary},
        )
    if is_critical(e):
        return HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=e.message)
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=e.message)


# -----------------------------------------------------------------------------
# 통합 가져오기: 경로 매개변수 라우트보다 먼저 등록되어야 합니다.
# -----------------------------------------------------------------------------
@router.post("/combined/preview", response_model=imp_schemas.CombinedPreviewResponse, summary="통합 가져오기 미리보기")
async def preview_combined_import(
    file: UploadFile = File(...),
    preserve_ids: bool = Form(False),
    db: AsyncSession = Depends(deps.get_db_session),
    current_user: usr_models.User = Depends(deps.get_current_active_user),
):
    """
    `collaborator:`, `project:`, `specimen:` 접두사 헤더를 가진 파일을 검증하고 엔티티별 신규/기존 수를 반환합니다.
    """
    content = await _read_upload(file)
    try:
        return await imp_combined.preview_combined_import(
            db, file.filename or "", content, preserve_ids=preserve_ids
        )
    except ImportEngineError as e:
        raise _to_http_exception(e)


@router.post("/combined/execute", response_model=imp_schemas.CombinedExecuteResponse, summary="통합 가져오기 실행")
async def execute_combined_import(
    file: UploadFile = File(...),
    preserve_ids: bool = Form(False),
    skip_duplicates: bool = Form(False),
    update_duplicates: bool = Form(True),
    batch_size: Optional[int] = Form(None, ge=1),
    db: AsyncSession = Depends(deps.get_db_session),
    current_user: usr_models.User = Depends(deps.get_current_active_user),
):
    if batch_size is not None and batch_size > settings.IMPORT_MAX_BATCH_SIZE:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"batch_size must not exceed {settings.IMPORT_MAX_BATCH_SIZE}",
        )
    content = await _read_upload(file)
    logger.info("통합 가져오기 요청: file=%s by %s", file.filename, current_user.username)
    try:
        return await imp_combined.execute_combined_import(
            db, file.filename or "", content,
            preserve_ids=preserve_ids,
            skip_duplicates=skip_duplicates,
            update_duplicates=update_duplicates,
            batch_size=batch_size,
        )
    except ImportEngineError as e:
        raise _to_http_exception(e)


@router.get("/combined/template", summary="통합 가져오기 CSV 템플릿")
async def download_combined_template(
    current_user: usr_models.User = Depends(deps.get_current_active_user),
):
    return Response(
        content=imp_combined.build_combined_template(),
        media_type="text/csv",
        headers={"Content-Disposition": 'attachment; filename="combined_import_template.csv"'},
    )


@router.post("/{entity_type}/preview", response_model=imp_schemas.ImportPreviewResponse, summary="가져오기 미리보기")
async def preview_import(
    entity_type: EntityType,
    file: UploadFile = File(...),
    preserve_ids: bool = Form(False),
    project_id: Optional[int] = Form(None),
    collaborator_id: Optional[int] = Form(None),
    db: AsyncSession = Depends(deps.get_db_session),
    current_user: usr_models.User = Depends(deps.get_current_active_user),
):
    """
    파일을 검증하고 신규/기존 행 수, 오류 목록, 예상 번호를 반환합니다. DB에 쓰지 않습니다.
    """
    content = await _read_upload(file)
    try:
        return await imp_service.preview_import(
            db, entity_type, file.filename or "", content,
            preserve_ids=preserve_ids, project_id=project_id, collaborator_id=collaborator_id,
        )
    except ImportEngineError as e:
        raise _to_http_exception(e)


@router.post("/{entity_type}/execute", response_model=imp_schemas.ImportExecuteResponse, summary="가져오기 실행")
async def execute_import(
    entity_type: EntityType,
    file: UploadFile = File(...),
    preserve_ids: bool = Form(False),
    skip_duplicates: bool = Form(False),
    update_duplicates: bool = Form(True),
    batch_size: Optional[int] = Form(None, ge=1),
    project_id: Optional[int] = Form(None),
    collaborator_id: Optional[int] = Form(None),
    db: AsyncSession = Depends(deps.get_db_session),
    current_user: usr_models.User = Depends(deps.get_current_active_user),
):
    """
    파일을 가져옵니다. 배치마다 커밋되며 실패한 행은 해당 행만 되돌려집니다.
    """
    if batch_size is not None and batch_size > settings.IMPORT_MAX_BATCH_SIZE:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"batch_size must not exceed {settings.IMPORT_MAX_BATCH_SIZE}",
        )
    content = await _read_upload(file)
    logger.info("가져오기 요청: entity_type=%s file=%s by %s", entity_type.value, file.filename, current_user.username)
    try:
        return await imp_service.execute_import(
            db, entity_type, file.filename or "", content,
            preserve_ids=preserve_ids,
            skip_duplicates=skip_duplicates,
            update_duplicates=update_duplicates,
            batch_size=batch_size,
            project_id=project_id,
            collaborator_id=collaborator_id,
        )
    except ImportEngineError as e:
        raise _to_http_exception(e)


@router.get("/{entity_type}/mappings", response_model=List[imp_schemas.FieldMappingRead], summary="컬럼 별칭 목록")
async def read_field_mappings(
    entity_type: EntityType,
    current_user: usr_models.User = Depends(deps.get_current_active_user),
):
    return imp_service.describe_mappings(entity_type)


@router.get("/{entity_type}/template", summary="CSV 템플릿 다운로드")
async def download_template(
    entity_type: EntityType,
    current_user: usr_models.User = Depends(deps.get_current_active_user),
):
    return Response(
        content=imp_service.build_template(entity_type),
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{entity_type.value}_import_template.csv"'},
    )


# =============================================================================
# 내보내기 (Export)
# =============================================================================
export_router = APIRouter(
    tags=["Export (내보내기)"],
    responses={404: {"description": "Not found"}},
)


async def _export_rows(
    db: AsyncSession,
    entity_type: EntityType,
    *,
    project_id: Optional[int],
    collaborator_id: Optional[int],
    limit: int,
):
    rows = await imp_exporter.fetch_export_rows(
        db, entity_type, project_id=project_id, collaborator_id=collaborator_id, limit=limit
    )
    if not rows:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="No records found for export.")
    return rows


@export_router.get("/{entity_type}/csv", summary="CSV 내보내기")
async def export_csv(
    entity_type: EntityType,
    project_id: Optional[int] = Query(None, description="검체만: 프로젝트로 필터"),
    collaborator_id: Optional[int] = Query(None, description="프로젝트만: 공동연구자로 필터"),
    limit: int = Query(settings.EXPORT_MAX_ROWS, ge=1, le=settings.EXPORT_MAX_ROWS),
    db: AsyncSession = Depends(deps.get_db_session),
    current_user: usr_models.User = Depends(deps.get_current_active_user),
):
    """
    가져오기 템플릿과 같은 헤더의 CSV 파일을 내려받습니다. 내려받은 파일은 그대로 다시 가져올 수 있습니다.
    """
    rows = await _export_rows(db, entity_type, project_id=project_id, collaborator_id=collaborator_id, limit=limit)
    logger.info("CSV 내보내기: entity_type=%s rows=%d by %s", entity_type.value, len(rows), current_user.username)
    return Response(
        content=imp_exporter.render_csv(imp_exporter.export_headers(entity_type), rows),
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{imp_exporter.export_filename(entity_type, "csv")}"'},
    )


@export_router.get("/{entity_type}/excel", summary="Excel 내보내기")
async def export_excel(
    entity_type: EntityType,
    project_id: Optional[int] = Query(None, description="검체만: 프로젝트로 필터"),
    collaborator_id: Optional[int] = Query(None, description="프로젝트만: 공동연구자로 필터"),
    limit: int = Query(settings.EXPORT_MAX_ROWS, ge=1, le=settings.EXPORT_MAX_ROWS),
    db: AsyncSession = Depends(deps.get_db_session),
    current_user: usr_models.User = Depends(deps.get_current_active_user),
):
    rows = await _export_rows(db, entity_type, project_id=project_id, collaborator_id=collaborator_id, limit=limit)
    logger.info("Excel 내보내기: entity_type=%s rows=%d by %s", entity_type.value, len(rows), current_user.username)
    return Response(
        content=imp_exporter.render_xlsx(entity_type, imp_exporter.export_headers(entity_type), rows),
        media_type=imp_exporter.XLSX_MEDIA_TYPE,
        headers={"Content-Disposition": f'attachment; filename="{imp_exporter.export_filename(entity_type, "xlsx")}"'},
    )
