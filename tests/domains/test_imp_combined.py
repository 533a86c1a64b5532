# tests/domains/test_imp_combined.py

"""
통합 가져오기(공동연구자 → 프로젝트 → 검체)의 파일 준비 단계 단위 테스트입니다. DB를 사용하지 않습니다.
"""

import pytest

from app.domains.imp.combined import build_combined_template, prepare_combined_import, split_headers
from app.domains.imp.errors import FileDecodeError
from app.domains.lims.models import EntityType

COMBINED_CSV = (
    "collaborator:PI_Name,collaborator:PI_Institute,project:Disease,project:Source,specimen:Tube ID,Freezer Note\n"
    "Kim,Seoul,AML,Blood,T-1,x\n"
    "Kim,Seoul,AML,Blood,T-2,\n"
    "Kim,Seoul,CLL,Marrow,T-3,\n"
    "Lee,Busan,AML,Blood,T-4,\n"
)


def _prepare(text: str):
    return prepare_combined_import("combined.csv", text.encode("utf-8"))


def test_split_headers_by_prefix():
    aligned, unmatched = split_headers(["collaborator:PI_Name", "Project: Disease", "specimen:Tube ID", "Notes", "patient:MRN"])

    assert aligned[EntityType.COLLABORATOR] == ["PI_Name", "", "", "", ""]
    assert aligned[EntityType.PROJECT] == ["", "Disease", "", "", ""]
    assert aligned[EntityType.SPECIMEN] == ["", "", "Tube ID", "", ""]
    assert unmatched == ["Notes", "patient:MRN"]


def test_parent_records_are_merged_by_value():
    prepared = _prepare(COMBINED_CSV)

    assert prepared.invalid_rows == 0
    assert prepared.unmatched == ["Freezer Note"]
    # 같은 값의 공동연구자/프로젝트는 처음 나온 행 번호 하나로 합쳐집니다.
    assert sorted(prepared.records[EntityType.COLLABORATOR]) == [2, 5]
    assert sorted(prepared.records[EntityType.PROJECT]) == [2, 4, 5]
    assert prepared.parents[EntityType.PROJECT] == {2: 2, 4: 2, 5: 5}
    assert prepared.parents[EntityType.SPECIMEN] == {2: 2, 3: 2, 4: 4, 5: 5}
    assert prepared.records[EntityType.SPECIMEN][3]["tube_id"] == "T-2"


def test_invalid_row_rejects_every_entity_of_that_row():
    prepared = _prepare(COMBINED_CSV + ",Daegu,AML,Blood,T-5,\n")

    assert prepared.invalid_rows == 1
    assert [(e.row, e.entity_type, e.code) for e in prepared.errors] == [(6, "collaborator", "missing_field")]
    assert 6 not in prepared.records[EntityType.SPECIMEN]


def test_missing_entity_group_is_rejected():
    with pytest.raises(FileDecodeError) as exc_info:
        _prepare("collaborator:PI_Name,collaborator:PI_Institute,specimen:Tube ID\nKim,Seoul,T-1\n")

    assert exc_info.value.code == "missing_entity_columns"
    assert "project" in exc_info.value.message


def test_template_headers_round_trip():
    headers = build_combined_template().strip().split(",")
    aligned, unmatched = split_headers(headers)

    assert unmatched == []
    assert "collaborator:PI_Name" in headers
    assert "specimen:tube_id" in headers
    assert not any(h.endswith(":Collaborator") or h.endswith(":Project") for h in headers)
    assert all(any(aligned[entity]) for entity in aligned)
