# app/domains/lims/schemas.py

"""
'lims' 도메인 (가져오기 대상 엔티티)의 Pydantic 스키마를 정의하는 모듈입니다.

일련번호(collaborator_number 등)는 생성 스키마에 포함되지 않습니다.
번호는 항상 식별번호 발급기(IdAllocator)가 부여합니다.
"""

from typing import Optional
from datetime import date, datetime
from pydantic import BaseModel, Field as PydanticField  # SQLModel Field와 충돌 방지


# =============================================================================
# 1. 공동연구자 (Collaborator) 스키마
# =============================================================================
class CollaboratorBase(BaseModel):
    irb_id: Optional[str] = PydanticField(default=None, max_length=50, description="IRB 승인 번호")
    pi_name: str = PydanticField(..., min_length=1, max_length=255, description="책임연구자(PI) 이름")
    pi_institute: str = PydanticField(..., min_length=1, max_length=255, description="책임연구자 소속 기관")
    pi_email: Optional[str] = PydanticField(default=None, max_length=255)
    pi_phone: Optional[str] = PydanticField(default=None, max_length=50)
    pi_fax: Optional[str] = PydanticField(default=None, max_length=50)
    internal_contact: Optional[str] = PydanticField(default=None, max_length=255)
    comments: Optional[str] = None


class CollaboratorCreate(CollaboratorBase):
    pass


class CollaboratorResponse(CollaboratorBase):
    id: int
    collaborator_number: Optional[int] = PydanticField(None, description="공동연구자 일련번호")
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


# =============================================================================
# 2. 프로젝트 (Project) 스키마
# =============================================================================
class ProjectBase(BaseModel):
    collaborator_id: int = PydanticField(..., description="공동연구자 ID (FK)")
    disease: Optional[str] = PydanticField(default=None, max_length=255)
    specimen_type: Optional[str] = PydanticField(default=None, max_length=255)
    source: Optional[str] = PydanticField(default=None, max_length=255)
    date_received: Optional[date] = None
    feedback_date: Optional[date] = None
    comments: Optional[str] = None


class ProjectCreate(ProjectBase):
    pass


class ProjectResponse(ProjectBase):
    id: int
    project_number: Optional[int] = PydanticField(None, description="프로젝트 일련번호")
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


# =============================================================================
# 3. 환자 (Patient) 스키마
# =============================================================================
class PatientResponse(BaseModel):
    id: int
    patient_number: Optional[int] = None
    external_id: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    date_of_birth: Optional[str] = None
    diagnosis: Optional[str] = None
    physician_first_name: Optional[str] = None
    physician_last_name: Optional[str] = None
    comments: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


# =============================================================================
# 4. 검체 (Specimen) 스키마
# =============================================================================
class SpecimenResponse(BaseModel):
    id: int
    specimen_number: Optional[int] = PydanticField(None, description="검체 일련번호")
    project_id: int
    patient_id: Optional[int] = None
    tube_id: Optional[str] = None
    extracted: bool = False
    initial_quantity: Optional[float] = None
    position_freezer: Optional[str] = None
    position_rack: Optional[str] = None
    position_box: Optional[str] = None
    position_dimension_one: Optional[str] = None
    position_dimension_two: Optional[str] = None
    activity_status: Optional[str] = None
    date_collected: Optional[date] = None
    collection_category: Optional[str] = None
    extraction_method: Optional[str] = None
    nucleated_cells: Optional[str] = None
    cell_numbers: Optional[int] = None
    percentage_segs: Optional[float] = None
    csf_protein: Optional[float] = None
    csf_gluc: Optional[float] = None
    used_up: bool = False
    specimen_site: Optional[str] = None
    run_number: Optional[str] = None
    comments: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


# =============================================================================
# 5. 재고 (InventoryItem) 스키마
# =============================================================================
class InventoryItemResponse(BaseModel):
    id: int
    inventory_id: Optional[int] = PydanticField(None, description="재고 일련번호")
    name: str
    category: str
    description: Optional[str] = None
    supplier: Optional[str] = None
    catalog_number: Optional[str] = None
    current_quantity: float
    unit_of_measure: Optional[str] = None
    lot_number: Optional[str] = None
    expiration_date: Optional[date] = None
    storage_location: Optional[str] = None
    storage_conditions: Optional[str] = None
    minimum_stock_level: Optional[float] = None
    cost_per_unit: Optional[float] = None
    barcode: Optional[str] = None
    notes: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


# =============================================================================
# 6. 레거시 ID 매핑 (LegacyIdMapping) 스키마
# =============================================================================
class LegacyIdMappingResponse(BaseModel):
    table_name: str
    legacy_id: str
    current_id: int
    import_batch_id: Optional[str] = None
    imported_from: Optional[str] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True
