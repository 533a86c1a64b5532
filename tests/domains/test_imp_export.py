# tests/domains/test_imp_export.py

"""
내보내기 렌더러 단위 테스트입니다. 내보낸 파일이 가져오기 디코더/매퍼로 그대로 읽히는지 확인합니다.
"""

from datetime import date, datetime
from decimal import Decimal

import openpyxl
import io

from app.domains.imp import exporter
from app.domains.imp.column_mapper import map_columns
from app.domains.imp.decoder import decode_upload
from app.domains.imp.field_maps import template_headers
from app.domains.lims.models import EntityType


def test_export_headers_match_import_template():
    for entity_type in EntityType:
        headers = exporter.export_headers(entity_type)
        assert headers == template_headers(entity_type)
        assert map_columns(entity_type, headers).feedback["conflicts"] == []


def test_render_csv_formats_values():
    text = exporter.render_csv(
        ["Tube ID", "Date Collected", "Extracted", "Initial Quantity", "Comments"],
        [["T-1", date(2024, 1, 15), True, Decimal("12.50"), None]],
    )

    assert text.splitlines() == [
        "Tube ID,Date Collected,Extracted,Initial Quantity,Comments",
        "T-1,2024-01-15,true,12.50,",
    ]


def test_rendered_csv_is_importable():
    headers = exporter.export_headers(EntityType.COLLABORATOR)
    row = [7, "IRB-1", "Kim, Jisoo", "Seoul Univ", None, None, None, None, "multi\nline"]
    sheet = decode_upload("collaborators.csv", exporter.render_csv(headers, [row]).encode("utf-8"))

    assert sheet.headers == headers
    mapping = map_columns(EntityType.COLLABORATOR, sheet.headers)
    values = mapping.apply(sheet.rows[0].values)
    assert values["collaborator_number"] == "7"
    assert values["pi_name"] == "Kim, Jisoo"
    assert values["comments"] == "multi\nline"


def test_render_xlsx_keeps_native_cell_types():
    headers = ["Name", "Category", "Current Quantity", "Expiration Date"]
    content = exporter.render_xlsx(
        EntityType.INVENTORY, headers, [["Taq", "enzymes", Decimal("3.50"), date(2025, 6, 30)]],
    )

    workbook = openpyxl.load_workbook(io.BytesIO(content))
    sheet = workbook.active
    assert sheet.title == "Inventory"
    assert sheet["A1"].font.bold is True
    assert sheet.freeze_panes == "A2"

    decoded = decode_upload("inventory.xlsx", content)
    assert decoded.headers == headers
    name, category, quantity, expiration = decoded.rows[0].values
    assert (name, category, quantity) == ("Taq", "enzymes", 3.5)
    assert isinstance(expiration, datetime)
    assert expiration.date() == date(2025, 6, 30)


def test_export_filename():
    name = exporter.export_filename(EntityType.SPECIMEN, "csv")
    assert name.startswith("specimen_export_")
    assert name.endswith(".csv")
