# app/domains/lims/routers.py

"""
'lims' 도메인 (공동연구자, 프로젝트, 환자, 검체, 재고) 관련 API 엔드포인트를 정의하는 모듈입니다.
가져오기로 생성된 데이터를 확인하기 위한 조회 API와 공동연구자/프로젝트 생성 API를 제공합니다.
"""
from typing import List, Optional
from sqlmodel.ext.asyncio.session import AsyncSession
from fastapi import APIRouter, Depends, HTTPException, status, Query

from app.core import dependencies as deps
from app.domains.usr import models as usr_models
from app.domains.imp.errors import AllocationFailedError

from . import crud as lims_crud
from . import schemas as lims_schemas

router = APIRouter(
    tags=["Laboratory Information Management (실험실 정보 관리)"],
    responses={404: {"description": "Not found"}},
)


# =============================================================================
# 1. 공동연구자 (Collaborator) 라우터
# =============================================================================
@router.post("/collaborators", response_model=lims_schemas.CollaboratorResponse, status_code=status.HTTP_201_CREATED, summary="새 공동연구자 생성")
async def create_collaborator(
    collaborator_in: lims_schemas.CollaboratorCreate,
    db: AsyncSession = Depends(deps.get_db_session),
    current_user: usr_models.User = Depends(deps.get_current_active_user),
):
    """새 공동연구자를 생성하고 collaborator_number를 발급합니다."""
    try:
        return await lims_crud.collaborator.create(db=db, obj_in=collaborator_in)
    except AllocationFailedError as e:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=e.message)


@router.get("/collaborators", response_model=List[lims_schemas.CollaboratorResponse], summary="공동연구자 목록 조회")
async def read_collaborators(
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=1000),
    db: AsyncSession = Depends(deps.get_db_session),
    current_user: usr_models.User = Depends(deps.get_current_active_user),
):
    return await lims_crud.collaborator.get_filtered(db, order_by_field="collaborator_number", skip=skip, limit=limit)


@router.get("/collaborators/{collaborator_id}", response_model=lims_schemas.CollaboratorResponse, summary="특정 공동연구자 조회")
async def read_collaborator(
    collaborator_id: int,
    db: AsyncSession = Depends(deps.get_db_session),
    current_user: usr_models.User = Depends(deps.get_current_active_user),
):
    db_obj = await lims_crud.collaborator.get(db=db, id=collaborator_id)
    if not db_obj:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Collaborator not found")
    return db_obj


# =============================================================================
# 2. 프로젝트 (Project) 라우터
# =============================================================================
@router.post("/projects", response_model=lims_schemas.ProjectResponse, status_code=status.HTTP_201_CREATED, summary="새 프로젝트 생성")
async def create_project(
    project_in: lims_schemas.ProjectCreate,
    db: AsyncSession = Depends(deps.get_db_session),
    current_user: usr_models.User = Depends(deps.get_current_active_user),
):
    try:
        return await lims_crud.project.create(db=db, obj_in=project_in)
    except AllocationFailedError as e:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=e.message)


@router.get("/projects", response_model=List[lims_schemas.ProjectResponse], summary="프로젝트 목록 조회")
async def read_projects(
    collaborator_id: Optional[int] = None,
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=1000),
    db: AsyncSession = Depends(deps.get_db_session),
    current_user: usr_models.User = Depends(deps.get_current_active_user),
):
    return await lims_crud.project.get_filtered(
        db, filters={"collaborator_id": collaborator_id}, order_by_field="project_number", skip=skip, limit=limit
    )


@router.get("/projects/{project_id}", response_model=lims_schemas.ProjectResponse, summary="특정 프로젝트 조회")
async def read_project(
    project_id: int,
    db: AsyncSession = Depends(deps.get_db_session),
    current_user: usr_models.User = Depends(deps.get_current_active_user),
):
    db_obj = await lims_crud.project.get(db=db, id=project_id)
    if not db_obj:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Project not found")
    return db_obj


# =============================================================================
# 3. 환자 (Patient) 라우터
# =============================================================================
@router.get("/patients", response_model=List[lims_schemas.PatientResponse], summary="환자 목록 조회")
async def read_patients(
    external_id: Optional[str] = None,
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=1000),
    db: AsyncSession = Depends(deps.get_db_session),
    current_user: usr_models.User = Depends(deps.get_current_active_user),
):
    return await lims_crud.patient.get_filtered(
        db, filters={"external_id": external_id}, order_by_field="patient_number", skip=skip, limit=limit
    )


@router.get("/patients/{patient_id}", response_model=lims_schemas.PatientResponse, summary="특정 환자 조회")
async def read_patient(
    patient_id: int,
    db: AsyncSession = Depends(deps.get_db_session),
    current_user: usr_models.User = Depends(deps.get_current_active_user),
):
    db_obj = await lims_crud.patient.get(db=db, id=patient_id)
    if not db_obj:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Patient not found")
    return db_obj


# =============================================================================
# 4. 검체 (Specimen) 라우터
# =============================================================================
@router.get("/specimens", response_model=List[lims_schemas.SpecimenResponse], summary="검체 목록 조회")
async def read_specimens(
    project_id: Optional[int] = None,
    tube_id: Optional[str] = None,
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=1000),
    db: AsyncSession = Depends(deps.get_db_session),
    current_user: usr_models.User = Depends(deps.get_current_active_user),
):
    """`project_id`, `tube_id`로 필터링할 수 있습니다. specimen_number 순으로 정렬됩니다."""
    return await lims_crud.specimen.get_filtered(
        db,
        filters={"project_id": project_id, "tube_id": tube_id},
        order_by_field="specimen_number",
        skip=skip,
        limit=limit,
    )


@router.get("/specimens/{specimen_id}", response_model=lims_schemas.SpecimenResponse, summary="특정 검체 조회")
async def read_specimen(
    specimen_id: int,
    db: AsyncSession = Depends(deps.get_db_session),
    current_user: usr_models.User = Depends(deps.get_current_active_user),
):
    db_obj = await lims_crud.specimen.get(db=db, id=specimen_id)
    if not db_obj:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Specimen not found")
    return db_obj


# =============================================================================
# 5. 재고 (Inventory) 라우터
# =============================================================================
@router.get("/inventory", response_model=List[lims_schemas.InventoryItemResponse], summary="재고 목록 조회")
async def read_inventory_items(
    category: Optional[str] = None,
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=1000),
    db: AsyncSession = Depends(deps.get_db_session),
    current_user: usr_models.User = Depends(deps.get_current_active_user),
):
    return await lims_crud.inventory_item.get_filtered(
        db, filters={"category": category}, order_by_field="inventory_id", skip=skip, limit=limit
    )


@router.get("/inventory/{item_id}", response_model=lims_schemas.InventoryItemResponse, summary="특정 재고 조회")
async def read_inventory_item(
    item_id: int,
    db: AsyncSession = Depends(deps.get_db_session),
    current_user: usr_models.User = Depends(deps.get_current_active_user),
):
    db_obj = await lims_crud.inventory_item.get(db=db, id=item_id)
    if not db_obj:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Inventory item not found")
    return db_obj


# =============================================================================
# 6. 레거시 ID 매핑 라우터
# =============================================================================
@router.get("/legacy-mappings", response_model=List[lims_schemas.LegacyIdMappingResponse], summary="레거시 ID 매핑 조회")
async def read_legacy_mappings(
    table_name: Optional[str] = None,
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=1000),
    db: AsyncSession = Depends(deps.get_db_session),
    current_user: usr_models.User = Depends(deps.get_current_active_user),
):
    return await lims_crud.legacy_mapping.get_filtered(
        db, filters={"table_name": table_name}, skip=skip, limit=limit
    )
