# app/domains/lims/models.py

"""
'lims' 도메인 (PostgreSQL 'lims' 스키마)의 데이터베이스 ORM 모델을 정의하는 모듈입니다.

일괄 가져오기(Import) 엔진이 생성/수정하는 엔티티(공동연구자, 프로젝트, 환자, 검체, 재고)와
식별번호 발급 로그, 레거시 ID 매핑 테이블을 포함합니다.
모든 엔티티는 유형별 PostgreSQL 시퀀스에서 발급된 양의 정수 일련번호를 가집니다.
"""

from enum import Enum
from typing import Optional, List, Dict
from datetime import datetime, date, UTC

from sqlalchemy import CheckConstraint, Numeric, Sequence, UniqueConstraint
from sqlalchemy.sql import func
from sqlalchemy.types import TIMESTAMP

from sqlmodel import Field, Relationship, SQLModel, Column


# =============================================================================
# 엔티티 유형 및 식별번호 시퀀스
# =============================================================================
class EntityType(str, Enum):
    """
    식별번호를 발급받는 엔티티 유형입니다.
    값은 lims.get_next_number() 함수의 인자로 그대로 사용됩니다.
    """
    COLLABORATOR = "collaborator"
    PROJECT = "project"
    SPECIMEN = "specimen"
    INVENTORY = "inventory"
    PATIENT = "patient"


# 유형별 시퀀스. metadata에 등록되어 create_all 시 함께 생성됩니다.
NUMBER_SEQUENCES: Dict[EntityType, Sequence] = {
    entity_type: Sequence(f"{entity_type.value}_number_seq", schema="lims", metadata=SQLModel.metadata)
    for entity_type in EntityType
}


def _created_at_field():
    return Field(
        default_factory=lambda: datetime.now(UTC),
        sa_column=Column(TIMESTAMP(timezone=True), server_default=func.now()),
        description="레코드 생성 일시"
    )


def _updated_at_field():
    return Field(
        default_factory=lambda: datetime.now(UTC),
        sa_column=Column(TIMESTAMP(timezone=True), server_default=func.now(), onupdate=func.now()),
        description="레코드 마지막 업데이트 일시"
    )


# =============================================================================
# 1. lims.collaborators 테이블 모델
# =============================================================================
class CollaboratorBase(SQLModel):
    collaborator_number: Optional[int] = Field(default=None, sa_column_kwargs={"unique": True}, description="공동연구자 일련번호")
    irb_id: Optional[str] = Field(default=None, max_length=50, description="IRB 승인 번호")
    pi_name: str = Field(max_length=255, description="책임연구자(PI) 이름")
    pi_institute: str = Field(max_length=255, description="책임연구자 소속 기관")
    pi_email: Optional[str] = Field(default=None, max_length=255)
    pi_phone: Optional[str] = Field(default=None, max_length=50)
    pi_fax: Optional[str] = Field(default=None, max_length=50)
    internal_contact: Optional[str] = Field(default=None, max_length=255, description="내부 담당자")
    comments: Optional[str] = Field(default=None)


class Collaborator(CollaboratorBase, table=True):
    __tablename__ = "collaborators"
    __table_args__ = (
        UniqueConstraint("pi_name", "pi_institute", name="uq_collaborators_pi_name_institute"),
        CheckConstraint("collaborator_number > 0", name="ck_collaborators_number_positive"),
        {'schema': 'lims'},
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    created_at: Optional[datetime] = _created_at_field()
    updated_at: Optional[datetime] = _updated_at_field()

    projects: List["Project"] = Relationship(back_populates="collaborator")


# =============================================================================
# 2. lims.projects 테이블 모델
# =============================================================================
class ProjectBase(SQLModel):
    project_number: Optional[int] = Field(default=None, sa_column_kwargs={"unique": True}, description="프로젝트 일련번호")
    collaborator_id: int = Field(foreign_key="lims.collaborators.id", description="공동연구자 ID (FK)")
    disease: Optional[str] = Field(default=None, max_length=255, description="질환명")
    specimen_type: Optional[str] = Field(default=None, max_length=255, description="검체 유형")
    source: Optional[str] = Field(default=None, max_length=255, description="검체 출처")
    date_received: Optional[date] = Field(default=None, description="접수일")
    feedback_date: Optional[date] = Field(default=None, description="피드백 일자")
    comments: Optional[str] = Field(default=None)


class Project(ProjectBase, table=True):
    __tablename__ = "projects"
    __table_args__ = (
        CheckConstraint("project_number > 0", name="ck_projects_number_positive"),
        {'schema': 'lims'},
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    created_at: Optional[datetime] = _created_at_field()
    updated_at: Optional[datetime] = _updated_at_field()

    collaborator: Optional[Collaborator] = Relationship(back_populates="projects")
    specimens: List["Specimen"] = Relationship(back_populates="project")


# =============================================================================
# 3. lims.patients 테이블 모델
# =============================================================================
class PatientBase(SQLModel):
    patient_number: Optional[int] = Field(default=None, sa_column_kwargs={"unique": True}, description="환자 일련번호")
    external_id: Optional[str] = Field(default=None, max_length=255, sa_column_kwargs={"unique": True}, description="외부 환자 식별자")
    first_name: Optional[str] = Field(default=None, max_length=255)
    last_name: Optional[str] = Field(default=None, max_length=255)
    date_of_birth: Optional[str] = Field(default=None, max_length=255, description="생년월일 (원본 표기 유지)")
    diagnosis: Optional[str] = Field(default=None, max_length=255)
    physician_first_name: Optional[str] = Field(default=None, max_length=255)
    physician_last_name: Optional[str] = Field(default=None, max_length=255)
    comments: Optional[str] = Field(default=None)


class Patient(PatientBase, table=True):
    __tablename__ = "patients"
    __table_args__ = (
        CheckConstraint("patient_number > 0", name="ck_patients_number_positive"),
        {'schema': 'lims'},
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    created_at: Optional[datetime] = _created_at_field()
    updated_at: Optional[datetime] = _updated_at_field()

    specimens: List["Specimen"] = Relationship(back_populates="patient")


# =============================================================================
# 4. lims.specimens 테이블 모델
# =============================================================================
class SpecimenBase(SQLModel):
    specimen_number: Optional[int] = Field(default=None, sa_column_kwargs={"unique": True}, description="검체 일련번호")
    project_id: int = Field(foreign_key="lims.projects.id", description="프로젝트 ID (FK)")
    patient_id: Optional[int] = Field(default=None, foreign_key="lims.patients.id", description="환자 ID (FK)")
    tube_id: Optional[str] = Field(default=None, max_length=255, description="튜브(검체) 식별자")
    extracted: bool = Field(default=False, description="추출 여부")
    initial_quantity: Optional[float] = Field(default=None, sa_column=Column(Numeric(10, 2)), description="초기 수량")
    position_freezer: Optional[str] = Field(default=None, max_length=100)
    position_rack: Optional[str] = Field(default=None, max_length=100)
    position_box: Optional[str] = Field(default=None, max_length=100)
    position_dimension_one: Optional[str] = Field(default=None, max_length=10)
    position_dimension_two: Optional[str] = Field(default=None, max_length=10)
    activity_status: Optional[str] = Field(default="active", max_length=50, description="활성 상태")
    date_collected: Optional[date] = Field(default=None, description="채취일")
    collection_category: Optional[str] = Field(default=None, max_length=255)
    extraction_method: Optional[str] = Field(default=None, max_length=255)
    nucleated_cells: Optional[str] = Field(default=None)
    cell_numbers: Optional[int] = Field(default=None)
    percentage_segs: Optional[float] = Field(default=None, sa_column=Column(Numeric(5, 2)))
    csf_protein: Optional[float] = Field(default=None, sa_column=Column(Numeric(10, 2)))
    csf_gluc: Optional[float] = Field(default=None, sa_column=Column(Numeric(10, 2)))
    used_up: bool = Field(default=False, description="소진 여부")
    specimen_site: Optional[str] = Field(default=None, max_length=255)
    run_number: Optional[str] = Field(default=None, max_length=50)
    comments: Optional[str] = Field(default=None)


class Specimen(SpecimenBase, table=True):
    __tablename__ = "specimens"
    __table_args__ = (
        UniqueConstraint("project_id", "tube_id", name="uq_specimens_project_tube"),
        CheckConstraint("specimen_number > 0", name="ck_specimens_number_positive"),
        {'schema': 'lims'},
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    created_at: Optional[datetime] = _created_at_field()
    updated_at: Optional[datetime] = _updated_at_field()

    project: Optional[Project] = Relationship(back_populates="specimens")
    patient: Optional[Patient] = Relationship(back_populates="specimens")


# =============================================================================
# 5. lims.inventory 테이블 모델
# =============================================================================
class InventoryItemBase(SQLModel):
    inventory_id: Optional[int] = Field(default=None, sa_column_kwargs={"unique": True}, description="재고 일련번호")
    name: str = Field(max_length=255, description="품목명")
    category: str = Field(max_length=100, description="품목 분류")
    description: Optional[str] = Field(default=None)
    supplier: Optional[str] = Field(default=None, max_length=255)
    catalog_number: Optional[str] = Field(default=None, max_length=100)
    current_quantity: float = Field(default=0, sa_column=Column(Numeric(10, 2), nullable=False, server_default="0"))
    unit_of_measure: Optional[str] = Field(default=None, max_length=50)
    lot_number: Optional[str] = Field(default=None, max_length=100)
    expiration_date: Optional[date] = Field(default=None)
    storage_location: Optional[str] = Field(default=None, max_length=255)
    storage_conditions: Optional[str] = Field(default=None, max_length=255)
    minimum_stock_level: Optional[float] = Field(default=0, sa_column=Column(Numeric(10, 2), server_default="0"))
    cost_per_unit: Optional[float] = Field(default=None, sa_column=Column(Numeric(10, 2)))
    barcode: Optional[str] = Field(default=None, max_length=255, description="상용 바코드 또는 LAB-### 형식의 내부 바코드")
    notes: Optional[str] = Field(default=None)


class InventoryItem(InventoryItemBase, table=True):
    __tablename__ = "inventory"
    __table_args__ = (
        UniqueConstraint("name", "lot_number", name="uq_inventory_name_lot"),
        CheckConstraint("inventory_id > 0", name="ck_inventory_number_positive"),
        {'schema': 'lims'},
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    created_at: Optional[datetime] = _created_at_field()
    updated_at: Optional[datetime] = _updated_at_field()


# =============================================================================
# 6. lims.id_generation_log 테이블 모델
# =============================================================================
class IdGenerationLog(SQLModel, table=True):
    """식별번호 발급 API를 통해 발급된 번호의 이력입니다."""
    __tablename__ = "id_generation_log"
    __table_args__ = {'schema': 'lims'}

    id: Optional[int] = Field(default=None, primary_key=True)
    entity_type: str = Field(max_length=50, index=True, description="엔티티 유형")
    generated_id: int = Field(description="발급된 번호")
    generated_by: Optional[str] = Field(default=None, max_length=255, description="발급 요청 사용자명")
    generated_at: Optional[datetime] = Field(
        default_factory=lambda: datetime.now(UTC),
        sa_column=Column(TIMESTAMP(timezone=True), server_default=func.now()),
        description="발급 일시"
    )


# =============================================================================
# 7. lims.legacy_id_mappings 테이블 모델
# =============================================================================
class LegacyIdMapping(SQLModel, table=True):
    """
    이관(preserve) 모드에서 외부 시스템의 식별자와 내부 레코드 ID를 연결합니다.
    이후 가져오기에서 다른 엔티티가 레거시 번호로 참조할 때 사용됩니다.
    """
    __tablename__ = "legacy_id_mappings"
    __table_args__ = (
        UniqueConstraint("table_name", "legacy_id", name="uq_legacy_id_mappings_legacy"),
        UniqueConstraint("table_name", "current_id", name="uq_legacy_id_mappings_current"),
        {'schema': 'lims'},
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    table_name: str = Field(max_length=50, description="대상 테이블명 (예: specimens)")
    legacy_id: str = Field(max_length=255, description="외부 시스템 식별자")
    current_id: int = Field(description="내부 레코드 ID")
    import_batch_id: Optional[str] = Field(default=None, max_length=64, description="가져오기 작업 ID")
    imported_from: Optional[str] = Field(default=None, max_length=255, description="원본 파일명")
    created_at: Optional[datetime] = _created_at_field()


# =============================================================================
# 엔티티 유형별 모델 / 번호 컬럼 매핑
# =============================================================================
ENTITY_MODELS: Dict[EntityType, type] = {
    EntityType.COLLABORATOR: Collaborator,
    EntityType.PROJECT: Project,
    EntityType.SPECIMEN: Specimen,
    EntityType.INVENTORY: InventoryItem,
    EntityType.PATIENT: Patient,
}

NUMBER_FIELDS: Dict[EntityType, str] = {
    EntityType.COLLABORATOR: "collaborator_number",
    EntityType.PROJECT: "project_number",
    EntityType.SPECIMEN: "specimen_number",
    EntityType.INVENTORY: "inventory_id",
    EntityType.PATIENT: "patient_number",
}
