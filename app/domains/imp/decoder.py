# app/domains/imp/decoder.py

"""
업로드된 CSV/XLSX 파일을 헤더 목록과 데이터 행 목록으로 변환하는 모듈입니다.

- 첫 행은 헤더, 이후 행은 데이터입니다.
- 빈 행은 건너뛰지만 행 번호는 다시 매기지 않습니다 (스프레드시트 행 번호 = 데이터 인덱스 + 2).
- XLSX 셀 값은 가능한 한 원래 타입(날짜, 숫자)을 유지하여 검증기에 전달합니다.
"""

import csv
import io
import os
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Iterable, List, Sequence

import openpyxl

from .errors import FileDecodeError

SUPPORTED_EXTENSIONS = (".csv", ".xlsx")


@dataclass
class DecodedRow:
    row_number: int          # 1부터 시작하는 스프레드시트 행 번호 (헤더가 1행)
    values: List[Any]


@dataclass
class DecodedSheet:
    headers: List[str]
    rows: List[DecodedRow] = field(default_factory=list)

    @property
    def total_rows(self) -> int:
        return len(self.rows)


def _normalize_cell(value: Any) -> Any:
    if value is None:
        return None
    if isinstance(value, str):
        value = value.strip()
        return value or None
    if isinstance(value, bool):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, (datetime, date, int, float)):
        return value
    return str(value)


def _is_blank(values: Sequence[Any]) -> bool:
    return all(v is None for v in values)


def _build_sheet(raw_rows: Iterable[Sequence[Any]]) -> DecodedSheet:
    iterator = iter(raw_rows)
    try:
        header_row = next(iterator)
    except StopIteration:
        raise FileDecodeError("File appears to be empty", code="empty_file")

    headers = ["" if cell is None else str(cell).strip() for cell in header_row]
    while headers and not headers[-1]:
        headers.pop()
    if not any(headers):
        raise FileDecodeError("No column headers found", code="no_headers")

    rows: List[DecodedRow] = []
    for index, raw in enumerate(iterator):
        values = [_normalize_cell(cell) for cell in raw][:len(headers)]
        values.extend([None] * (len(headers) - len(values)))
        if _is_blank(values):
            continue
        rows.append(DecodedRow(row_number=index + 2, values=values))

    if not rows:
        raise FileDecodeError("File contains headers but no data rows", code="no_data_rows")
    return DecodedSheet(headers=headers, rows=rows)


def decode_csv(content: bytes) -> DecodedSheet:
    """UTF-8 CSV(BOM 허용)를 해석합니다."""
    if not content or not content.strip():
        raise FileDecodeError("File appears to be empty", code="empty_file")
    try:
        text = content.decode("utf-8-sig")
    except UnicodeDecodeError as e:
        raise FileDecodeError(f"File is not valid UTF-8 text: {e}", code="invalid_encoding")
    reader = csv.reader(io.StringIO(text, newline=""))
    return _build_sheet(reader)


def decode_xlsx(content: bytes) -> DecodedSheet:
    """첫 번째 워크시트를 해석합니다."""
    if not content:
        raise FileDecodeError("File appears to be empty", code="empty_file")
    try:
        workbook = openpyxl.load_workbook(
            io.BytesIO(content),
            read_only=True,
            data_only=True,
            keep_links=False,
        )
    except Exception as e:  # openpyxl은 손상된 파일에 대해 다양한 예외를 던집니다.
        raise FileDecodeError(f"Unable to read Excel workbook: {e}", code="invalid_workbook")
    try:
        if not workbook.sheetnames:
            raise FileDecodeError("File appears to be empty", code="empty_file")
        sheet = workbook[workbook.sheetnames[0]]
        return _build_sheet(sheet.iter_rows(values_only=True))
    finally:
        workbook.close()


def decode_upload(filename: str, content: bytes) -> DecodedSheet:
    """파일 확장자에 따라 CSV 또는 XLSX 해석기를 선택합니다."""
    extension = os.path.splitext(filename or "")[1].lower()
    if extension == ".csv":
        return decode_csv(content)
    if extension == ".xlsx":
        return decode_xlsx(content)
    raise FileDecodeError(
        f"Unsupported file type '{extension or filename}'. Supported types: {', '.join(SUPPORTED_EXTENSIONS)}",
        code="unsupported_file_type",
    )
