# app/domains/imp/field_maps.py

"""
엔티티 유형별 컬럼 별칭(alias) 테이블입니다.

각 표준 필드는 우선순위 순서의 헤더 표기 목록을 가집니다 (대소문자 변형도 명시적으로 나열).
헤더 하나는 테이블 순서상 처음 일치하는 필드 하나에만 매핑되며,
같은 필드에 여러 헤더가 일치하면 별칭 목록에서 앞선 표기가 선택됩니다.
`persisted=False` 필드는 인식되지만 저장되지 않는 컬럼(unsupported)입니다.
"""

from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

from app.domains.lims.models import EntityType


# 필드 종류
TEXT = "text"
INTEGER = "integer"
DECIMAL = "decimal"
DATE = "date"
BOOLEAN = "boolean"
ENUM = "enum"
IDENTIFIER = "identifier"   # 엔티티 일련번호 (preserve 모드에서만 사용)
REFERENCE = "reference"     # 다른 엔티티의 레거시 번호 참조

ACTIVITY_STATUS_CHOICES = ("active", "inactive", "qc_failed", "on_hold")
INVENTORY_CATEGORY_CHOICES = (
    "reagents", "enzymes", "kits", "consumables", "antibodies", "primers", "media", "other",
)


@dataclass(frozen=True)
class FieldSpec:
    name: str
    aliases: Tuple[str, ...]
    kind: str = TEXT
    required: bool = False
    choices: Tuple[str, ...] = ()
    label: Optional[str] = None
    description: Optional[str] = None
    persisted: bool = True
    strict: bool = False
    min_value: Optional[float] = None

    @property
    def display_name(self) -> str:
        return self.label or self.name.replace("_", " ").title()


# =============================================================================
# 1. Collaborator
# =============================================================================
COLLABORATOR_FIELDS: Tuple[FieldSpec, ...] = (
    FieldSpec("collaborator_number", ("ID", "id", "collaborator_number", "Collaborator Number", "Collaborator_Number",
                                      "collaborator number"),
              kind=IDENTIFIER, label="ID"),
    FieldSpec("irb_id", ("IRB_ID", "irb_id", "IRB ID", "irb id", "IRB"), label="IRB ID"),
    FieldSpec("pi_name", ("PI_Name", "pi_name", "PI Name", "pi name", "Principal Investigator", "PI"),
              required=True, label="PI Name"),
    FieldSpec("pi_institute", ("PI_Institute", "pi_institute", "PI Institute", "pi institute", "Institute",
                               "Institution"),
              required=True, label="PI Institute"),
    FieldSpec("pi_email", ("PI_Email", "pi_email", "PI Email", "pi email", "Email"), label="PI Email"),
    FieldSpec("pi_phone", ("PI_Phone", "pi_phone", "PI Phone", "pi phone", "Phone"), label="PI Phone"),
    FieldSpec("pi_fax", ("PI_Fax", "pi_fax", "PI Fax", "pi fax", "Fax"), label="PI Fax"),
    FieldSpec("internal_contact", ("Internal_Contact", "internal_contact", "Internal Contact", "internal contact"),
              label="Internal Contact"),
    FieldSpec("comments", ("Comments", "comments", "Notes", "notes")),
)

# =============================================================================
# 2. Project
# =============================================================================
PROJECT_FIELDS: Tuple[FieldSpec, ...] = (
    FieldSpec("project_number", ("ID", "id", "project_number", "Project Number", "Project_Number", "project number"),
              kind=IDENTIFIER, label="ID"),
    FieldSpec("collaborator_reference", ("Collaborator", "collaborator", "Collaborator_ID", "Collaborator ID",
                                         "collaborator_id", "collaborator_number", "Collaborator Number"),
              kind=REFERENCE, label="Collaborator"),
    FieldSpec("disease", ("Disease", "disease", "Diagnosis"), required=True),
    FieldSpec("specimen_type", ("Specimen_Type", "specimen_type", "Specimen Type", "specimen type"),
              label="Specimen Type"),
    FieldSpec("source", ("Source", "source")),
    FieldSpec("date_received", ("Date_Received", "date_received", "Date Received", "date received"),
              kind=DATE, label="Date Received"),
    FieldSpec("feedback_date", ("Feedback_Date", "feedback_date", "Feedback Date", "feedback date"),
              kind=DATE, label="Feedback Date"),
    FieldSpec("comments", ("Comments", "comments", "Notes", "notes")),
    FieldSpec("custom_field_1", ("Custom_Field_1", "custom_field_1"), persisted=False),
    FieldSpec("specimen_reference", ("Specimen", "specimen"), kind=REFERENCE, persisted=False),
    FieldSpec("collaborator_name", ("Collaborator_Name", "collaborator_name", "Collaborator Name"), persisted=False),
)

# =============================================================================
# 3. Patient
# =============================================================================
PATIENT_FIELDS: Tuple[FieldSpec, ...] = (
    FieldSpec("patient_number", ("ID", "id", "patient_number", "Patient Number", "Patient_Number", "patient number"),
              kind=IDENTIFIER, label="ID"),
    FieldSpec("external_id", ("External_ID", "external_id", "External ID", "external id", "MRN"),
              label="External ID"),
    FieldSpec("first_name", ("First_Name", "first_name", "First Name", "first name"), label="First Name"),
    FieldSpec("last_name", ("Last_Name", "last_name", "Last Name", "last name"), label="Last Name"),
    FieldSpec("date_of_birth", ("Date_of_Birth", "date_of_birth", "Date of Birth", "date of birth", "DOB"),
              label="Date of Birth"),
    FieldSpec("diagnosis", ("Diagnosis", "diagnosis")),
    FieldSpec("physician_first_name", ("Physician_First_Name", "physician_first_name", "Physician First Name"),
              label="Physician First Name"),
    FieldSpec("physician_last_name", ("Physician_Last_Name", "physician_last_name", "Physician Last Name"),
              label="Physician Last Name"),
    FieldSpec("comments", ("Comments", "comments", "Notes", "notes")),
    FieldSpec("status", ("Status", "status"), persisted=False),
)

# =============================================================================
# 4. Specimen
# =============================================================================
SPECIMEN_FIELDS: Tuple[FieldSpec, ...] = (
    FieldSpec("tube_id", (
        "tube_id", "specimen_id", "sample_id", "Sample_ID", "Specimen_ID", "Tube_ID",
        "Sample ID", "Specimen ID", "Tube ID", "sample id", "specimen id", "tube id",
        "TubeID", "SampleID", "SpecimenID", "identifier", "Identifier",
    ), required=True, label="Tube ID", description="specimen identifier"),
    FieldSpec("specimen_number", (
        "ID", "id", "specimen_number", "Specimen Number", "specimen number", "Specimen_Number",
        "spec_number", "Spec Number", "sample_number", "Sample Number",
    ), kind=IDENTIFIER, label="Specimen Number"),
    FieldSpec("project_reference", (
        "Project", "project", "Project_ID", "Project ID", "project_id", "project_number", "Project Number",
    ), kind=REFERENCE, label="Project"),
    FieldSpec("patient_reference", (
        "Patient", "patient", "Patient_ID", "Patient ID", "patient_id", "patient_number", "Patient Number",
    ), kind=REFERENCE, label="Patient"),
    FieldSpec("date_collected", (
        "date_collected", "collection_date", "Collection_Date", "Collection Date",
        "Date Collected", "date collected", "collection date", "CollectionDate", "Date_Collected",
        "date", "Date", "sample_date", "Sample Date", "collection", "Collection",
    ), kind=DATE, label="Date Collected"),
    FieldSpec("position_freezer", (
        "position_freezer", "freezer", "Location", "location", "Storage_Location",
        "Storage Location", "storage location", "storage_location", "Freezer",
        "freezer_location", "Freezer Location", "storage", "Storage", "Position_Freezer",
    ), label="Freezer"),
    FieldSpec("position_rack", (
        "position_rack", "rack", "Rack", "rack_position", "Rack Position",
        "RackPosition", "shelf", "Shelf", "Position_Rack",
    ), label="Rack"),
    FieldSpec("position_box", (
        "position_box", "box", "Box", "container", "Container", "box_position",
        "Box Position", "BoxPosition", "Position_Box",
    ), label="Box"),
    FieldSpec("position_dimension_one", (
        "position_dimension_one", "dimension_one", "Dimension One",
        "position1", "Position 1", "pos1", "Pos1", "row", "Row", "Position_Dimension_One",
    ), label="Position 1"),
    FieldSpec("position_dimension_two", (
        "position_dimension_two", "dimension_two", "Dimension Two",
        "position2", "Position 2", "pos2", "Pos2", "column", "Column", "col", "Col", "Position_Dimension_Two",
    ), label="Position 2"),
    FieldSpec("specimen_site", (
        "specimen_site", "site", "Sample_Type", "sample_type", "Type", "type",
        "specimen type", "sample type", "Site", "SpecimenSite", "specimen_source",
        "source", "Source", "body_site", "Body Site", "Specimen_Site",
    ), label="Specimen Site"),
    FieldSpec("activity_status", (
        "activity_status", "status", "Status", "Sample_Status", "sample_status",
        "sample status", "ActivityStatus", "activity", "Activity", "state", "State", "Activity_Status",
    ), kind=ENUM, choices=ACTIVITY_STATUS_CHOICES, label="Activity Status"),
    FieldSpec("comments", (
        "comments", "specimen_comments", "notes", "Notes", "Note", "note",
        "specimen comments", "Comments", "description",
        "Description", "remarks", "Remarks", "observations", "Observations",
    )),
    FieldSpec("initial_quantity", (
        "initial_quantity", "quantity", "Quantity", "Initial Quantity", "initial quantity",
        "InitialQuantity", "volume", "Volume", "amount", "Amount", "Initial_Quantity",
    ), kind=DECIMAL, label="Initial Quantity", min_value=0),
    FieldSpec("extracted", (
        "extracted", "Extracted", "is_extracted", "Is Extracted", "extraction_status",
        "Extraction Status", "extracted_status", "Extracted Status",
    ), kind=BOOLEAN),
    FieldSpec("used_up", ("used_up", "Used_Up", "used up", "Used Up", "UsedUp"), kind=BOOLEAN, label="Used Up"),
    FieldSpec("run_number", (
        "run_number", "Run Number", "run number", "Run_Number",
        "run", "Run", "sequencing_run", "Sequencing Run",
    ), label="Run Number"),
    FieldSpec("collection_category", ("Collection_Category", "collection_category", "Collection Category"),
              label="Collection Category"),
    FieldSpec("extraction_method", ("Extraction_Method", "extraction_method", "Extraction Method"),
              label="Extraction Method"),
    FieldSpec("nucleated_cells", ("Nucleated_Cells", "nucleated_cells", "Nucleated Cells"), label="Nucleated Cells"),
    FieldSpec("cell_numbers", ("Cell_Numbers", "cell_numbers", "Cell Numbers"), kind=INTEGER, label="Cell Numbers"),
    FieldSpec("percentage_segs", ("Percentage_Segs", "percentage_segs", "Percentage Segs", "% Segs"),
              kind=DECIMAL, label="Percentage Segs"),
    FieldSpec("csf_protein", ("CSF_Protein", "csf_protein", "CSF Protein"), kind=DECIMAL, label="CSF Protein"),
    FieldSpec("csf_gluc", ("CSF_Gluc", "csf_gluc", "CSF Gluc", "CSF Glucose"), kind=DECIMAL, label="CSF Gluc"),
    FieldSpec("analysis_method", ("Analysis_Method", "analysis_method", "Analysis Method"), persisted=False),
    # 인식은 하지만 현재 스키마에 저장되지 않는 시퀀싱 컬럼
    FieldSpec("sequencing_run_id", (
        "sequencing_run_id", "Sequencing Run ID", "sequencing run id", "Sequencing_Run_ID",
        "run_id", "Run ID", "seq_run_id", "Seq Run ID",
    ), persisted=False),
    FieldSpec("fastq_location", (
        "fastq_location", "FASTQ Location", "fastq location", "FASTQ_Location",
        "fastq_path", "FASTQ Path", "sequence_location", "Sequence Location",
    ), persisted=False),
    FieldSpec("analysis_status", (
        "analysis_status", "Analysis Status", "analysis status", "Analysis_Status",
        "seq_status", "Sequencing Status", "processing_status", "Processing Status",
    ), persisted=False),
    FieldSpec("results_location", (
        "results_location", "Results Location", "results location", "Results_Location",
        "results_path", "Results Path", "output_location", "Output Location",
    ), persisted=False),
    FieldSpec("sequencing_notes", (
        "sequencing_notes", "Sequencing Notes", "sequencing notes", "Sequencing_Notes",
        "seq_notes", "Seq Notes", "processing_notes", "Processing Notes",
    ), persisted=False),
)

# =============================================================================
# 5. Inventory
# =============================================================================
INVENTORY_FIELDS: Tuple[FieldSpec, ...] = (
    FieldSpec("inventory_id", ("Inventory ID", "inventory_id", "Inventory_ID", "inventory id", "ID", "id"),
              kind=IDENTIFIER, label="Inventory ID"),
    FieldSpec("barcode", ("Barcode", "barcode", "Commercial Barcode")),
    FieldSpec("name", ("Name", "name", "Item Name", "item_name", "Product Name"), required=True),
    FieldSpec("category", ("Category", "category"), kind=ENUM, required=True, choices=INVENTORY_CATEGORY_CHOICES),
    FieldSpec("description", ("Description", "description")),
    FieldSpec("supplier", ("Supplier", "supplier", "Vendor", "vendor")),
    FieldSpec("catalog_number", ("Catalog Number", "catalog_number", "Catalog_Number", "Catalog #", "Cat No"),
              label="Catalog Number"),
    FieldSpec("lot_number", ("Lot Number", "lot_number", "Lot_Number", "Lot #", "Lot"), label="Lot Number"),
    FieldSpec("current_quantity", ("Current Quantity", "current_quantity", "Current_Quantity", "Quantity", "quantity"),
              kind=DECIMAL, required=True, label="Current Quantity", min_value=0),
    FieldSpec("unit_of_measure", ("Unit", "unit", "Unit of Measure", "unit_of_measure", "Unit_of_Measure", "UOM"),
              label="Unit of Measure"),
    FieldSpec("minimum_stock_level", ("Min Stock Level", "Minimum Stock Level", "minimum_stock_level",
                                      "Minimum_Stock_Level", "min_stock_level"),
              kind=DECIMAL, label="Minimum Stock Level", min_value=0),
    FieldSpec("cost_per_unit", ("Cost per Unit", "cost_per_unit", "Cost_per_Unit", "Cost Per Unit", "Unit Cost"),
              kind=DECIMAL, label="Cost per Unit", min_value=0),
    FieldSpec("expiration_date", ("Expiration Date", "expiration_date", "Expiration_Date", "Expiry Date", "Expiry"),
              kind=DATE, label="Expiration Date"),
    FieldSpec("storage_location", ("Storage Location", "storage_location", "Storage_Location", "Location"),
              label="Storage Location"),
    FieldSpec("storage_conditions", ("Storage Conditions", "storage_conditions", "Storage_Conditions"),
              label="Storage Conditions"),
    FieldSpec("notes", ("Notes", "notes", "Comments", "comments")),
)


FIELD_MAPS: Dict[EntityType, Tuple[FieldSpec, ...]] = {
    EntityType.COLLABORATOR: COLLABORATOR_FIELDS,
    EntityType.PROJECT: PROJECT_FIELDS,
    EntityType.PATIENT: PATIENT_FIELDS,
    EntityType.SPECIMEN: SPECIMEN_FIELDS,
    EntityType.INVENTORY: INVENTORY_FIELDS,
}


def get_field_map(entity_type: EntityType) -> Tuple[FieldSpec, ...]:
    return FIELD_MAPS[EntityType(entity_type)]


def get_field_spec(entity_type: EntityType, name: str) -> Optional[FieldSpec]:
    for spec in get_field_map(entity_type):
        if spec.name == name:
            return spec
    return None


def unsupported_fields(entity_type: EntityType) -> List[str]:
    """인식되지만 저장되지 않는 필드 목록 (deny-list)."""
    return [spec.name for spec in get_field_map(entity_type) if not spec.persisted]


def template_headers(entity_type: EntityType) -> List[str]:
    """CSV 템플릿 헤더: 저장되는 필드마다 가장 우선순위가 높은 별칭."""
    return [spec.aliases[0] for spec in get_field_map(entity_type) if spec.persisted]
