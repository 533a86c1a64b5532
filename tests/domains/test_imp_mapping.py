# tests/domains/test_imp_mapping.py

"""
컬럼 별칭 테이블과 컬럼 매핑에 대한 단위 테스트입니다. DB를 사용하지 않습니다.
"""

import pytest

from app.domains.imp import field_maps
from app.domains.imp import column_mapper
from app.domains.imp.column_mapper import map_columns
from app.domains.imp.field_maps import FieldSpec
from app.domains.lims.models import EntityType


def test_basic_specimen_headers():
    mapping = map_columns(EntityType.SPECIMEN, ["Tube ID", "Date Collected", "Location"])

    assert mapping.columns == {0: "tube_id", 1: "date_collected", 2: "position_freezer"}
    assert mapping.feedback["mapped"] == {
        "Tube ID": "tube_id",
        "Date Collected": "date_collected",
        "Location": "position_freezer",
    }
    assert mapping.feedback["conflicts"] == []
    assert mapping.feedback["summary"]["mapped_count"] == 3
    assert mapping.feedback["summary"]["missing_required"] == []


def test_conflicting_headers_choose_highest_priority_alias():
    for headers in (["Specimen_ID", "specimen id"], ["specimen id", "Specimen_ID"]):
        mapping = map_columns(EntityType.SPECIMEN, headers)

        assert list(mapping.columns.values()) == ["tube_id"]
        assert mapping.feedback["mapped"] == {"Specimen_ID": "tube_id"}
        [conflict] = mapping.feedback["conflicts"]
        assert conflict["field"] == "tube_id"
        assert conflict["chosen"] == "Specimen_ID"
        assert conflict["headers"] == headers
        assert conflict["losers"] == ["specimen id"]
        assert "Using \"Specimen_ID\"" in conflict["message"]


def test_conflict_report_is_deterministic():
    headers = ["Specimen_ID", "specimen id", "Notes", "Comments"]
    assert map_columns(EntityType.SPECIMEN, headers).feedback == map_columns(EntityType.SPECIMEN, headers).feedback


def test_case_insensitive_fallback():
    mapping = map_columns(EntityType.SPECIMEN, ["TUBE ID", "date COLLECTED"])
    assert mapping.columns == {0: "tube_id", 1: "date_collected"}


def test_unmatched_and_unsupported_columns():
    mapping = map_columns(EntityType.SPECIMEN, ["Tube ID", "Favorite Color", "FASTQ Location"])
    feedback = mapping.feedback

    assert mapping.columns == {0: "tube_id"}
    assert feedback["unmatched"] == ["Favorite Color"]
    assert feedback["unsupported"] == ["FASTQ Location"]

    warnings = {w["type"]: w for w in feedback["warnings"]}
    assert warnings["unmatched_columns"]["severity"] == "info"
    assert warnings["unmatched_columns"]["columns"] == ["Favorite Color"]
    assert warnings["unsupported_columns"]["severity"] == "warning"
    assert feedback["summary"]["unmapped_count"] == 1
    assert feedback["summary"]["total_columns"] == 3


def test_empty_headers_are_ignored():
    mapping = map_columns(EntityType.SPECIMEN, ["Tube ID", "", None, "  "])
    assert mapping.columns == {0: "tube_id"}
    assert mapping.feedback["summary"]["total_columns"] == 1
    assert mapping.feedback["unmatched"] == []


def test_missing_required_fields_are_reported():
    mapping = map_columns(EntityType.COLLABORATOR, ["PI_Name", "IRB_ID"])
    assert mapping.feedback["summary"]["missing_required"] == ["pi_institute"]


def test_legacy_export_headers_map_to_numbers_and_references():
    mapping = map_columns(EntityType.PROJECT, ["ID", "Collaborator", "Disease", "Date_Received"])
    assert mapping.columns == {
        0: "project_number",
        1: "collaborator_reference",
        2: "disease",
        3: "date_received",
    }


def test_apply_builds_field_dict():
    mapping = map_columns(EntityType.INVENTORY, ["Name", "Ignored", "Category", "Current Quantity"])
    assert mapping.apply(["Taq", "x", "Enzymes", 3]) == {"name": "Taq", "category": "Enzymes", "current_quantity": 3}


@pytest.mark.parametrize("entity_type", list(EntityType))
def test_every_entity_has_a_field_map(entity_type):
    specs = field_maps.get_field_map(entity_type)
    names = [spec.name for spec in specs]
    assert len(names) == len(set(names))
    # 템플릿 헤더는 저장되는 필드마다 하나씩이며 같은 엔티티의 매핑으로 되돌아옵니다.
    headers = field_maps.template_headers(entity_type)
    mapping = map_columns(entity_type, headers)
    assert mapping.fields == [spec.name for spec in specs if spec.persisted]


def test_conflict_lists_every_losing_header():
    mapping = map_columns(EntityType.SPECIMEN, ["tube id", "Sample ID", "tube_id"])

    [conflict] = mapping.feedback["conflicts"]
    assert conflict["chosen"] == "tube_id"
    assert conflict["headers"] == ["tube id", "Sample ID", "tube_id"]
    # 별칭 우선순위 순서
    assert conflict["losers"] == ["Sample ID", "tube id"]
    [warning] = [w for w in mapping.feedback["warnings"] if w["type"] == "column_conflict"]
    assert warning["columns"] == ["tube id", "Sample ID", "tube_id"]


def test_exact_alias_beats_earlier_case_insensitive_match(monkeypatch):
    specs = (
        FieldSpec("label", ("Label", "label")),
        FieldSpec("label_code", ("LABEL",)),
    )
    monkeypatch.setattr(column_mapper, "get_field_map", lambda entity_type: specs)

    assert map_columns(EntityType.SPECIMEN, ["LABEL"]).columns == {0: "label_code"}
    # 정확히 일치하는 별칭이 없으면 테이블 순서상 첫 필드로 대소문자 무시 매핑
    assert map_columns(EntityType.SPECIMEN, ["LaBeL"]).columns == {0: "label"}
