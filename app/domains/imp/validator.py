# app/domains/imp/validator.py

"""
매핑된 행을 엔티티 규칙에 따라 검증하는 모듈입니다.

`validate_row()`는 열거형 값과 날짜를 표준 형식으로 고쳐 쓰는 것 외에는 부작용이 없으며,
행 번호가 포함된 RowValidationError 목록을 반환합니다.
`build_record()`는 검증된 행을 모델에 넣을 파이썬 값으로 변환합니다.
"""

import re
from datetime import date, datetime, timedelta
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Optional

from app.domains.lims.models import EntityType

from . import field_maps
from .errors import RowValidationError
from .field_maps import FieldSpec

TRUE_VALUES = {"yes", "true", "1", "y"}
FALSE_VALUES = {"no", "false", "0", "n"}

# 스프레드시트 날짜 일련번호 (1900 날짜 체계)
EXCEL_EPOCH = date(1899, 12, 30)
EXCEL_SERIAL_MIN = 25569         # 1970-01-01
EXCEL_SERIAL_MAX = 2958465       # 9999-12-31

DATE_FORMATS = (
    "%Y-%m-%d",
    "%m/%d/%Y",
    "%Y/%m/%d",
    "%m/%d/%y",
    "%m-%d-%Y",
    "%d-%b-%Y",
    "%b %d, %Y",
    "%B %d, %Y",
)


def is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and value.strip() == "")


def _normalize_choice(value: str) -> str:
    return re.sub(r"[\s_\-]+", "_", value.strip().lower())


def canonical_choice(value: Any, choices) -> Optional[str]:
    """대소문자/공백/밑줄 차이를 무시하고 허용값 중 일치하는 표준 표기를 찾습니다."""
    normalized = _normalize_choice(str(value))
    for choice in choices:
        if _normalize_choice(choice) == normalized:
            return choice
    return None


def parse_date(value: Any) -> Optional[date]:
    """여러 표기의 날짜를 date로 변환합니다. 해석할 수 없으면 None."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        if EXCEL_SERIAL_MIN < value <= EXCEL_SERIAL_MAX:
            return EXCEL_EPOCH + timedelta(days=int(value))
        return None

    text = str(value).strip()
    if not text:
        return None
    if re.fullmatch(r"\d+(\.\d+)?", text):
        return parse_date(float(text))
    try:
        return datetime.fromisoformat(text.replace("Z", "+00:00")).date()
    except ValueError:
        pass
    for fmt in DATE_FORMATS:
        try:
            return datetime.strptime(text, fmt).date()
        except ValueError:
            continue
    return None


def parse_boolean(value: Any) -> Optional[bool]:
    """인식 가능한 불리언 표기면 bool, 아니면 None."""
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)) and value in (0, 1):
        return bool(value)
    text = str(value).strip().lower()
    if text in TRUE_VALUES:
        return True
    if text in FALSE_VALUES:
        return False
    return None


def parse_number(value: Any, *, integer: bool = False):
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = Decimal(str(value))
    else:
        try:
            number = Decimal(str(value).strip().replace(",", ""))
        except InvalidOperation:
            return None
    if not number.is_finite():
        return None
    if integer:
        if number != number.to_integral_value():
            return None
        return int(number)
    return float(number)


def _check(spec: FieldSpec, value: Any, row_number: int, *, preserve_ids: bool):
    """단일 필드를 검증합니다. (표준화된 값, 오류) 튜플을 반환합니다."""
    label = spec.display_name

    if spec.kind == field_maps.ENUM:
        canonical = canonical_choice(value, spec.choices)
        if canonical is None:
            return value, RowValidationError(
                f"Row {row_number}: Invalid {spec.name} '{value}'. Allowed values: {', '.join(spec.choices)}",
                row=row_number, code=RowValidationError.INVALID_ENUM,
            )
        return canonical, None

    if spec.kind == field_maps.DATE:
        parsed = parse_date(value)
        if parsed is None:
            return value, RowValidationError(
                f"Row {row_number}: Invalid date format for {label}: '{value}'",
                row=row_number, code=RowValidationError.INVALID_DATE,
            )
        return parsed.isoformat(), None

    if spec.kind == field_maps.BOOLEAN:
        parsed = parse_boolean(value)
        if parsed is None:
            if spec.strict:
                return value, RowValidationError(
                    f"Row {row_number}: Invalid boolean for {label}: '{value}'",
                    row=row_number, code=RowValidationError.INVALID_BOOLEAN,
                )
            parsed = False
        return parsed, None

    if spec.kind in (field_maps.INTEGER, field_maps.DECIMAL) or (
        spec.kind == field_maps.IDENTIFIER and preserve_ids
    ):
        integer = spec.kind != field_maps.DECIMAL
        parsed = parse_number(value, integer=integer)
        if parsed is None or (spec.kind == field_maps.IDENTIFIER and parsed < 1):
            expected = "positive integer" if spec.kind == field_maps.IDENTIFIER else "number"
            return value, RowValidationError(
                f"Row {row_number}: Invalid {expected} for {label}: '{value}'",
                row=row_number, code=RowValidationError.INVALID_NUMBER,
            )
        if spec.min_value is not None and parsed < spec.min_value:
            return value, RowValidationError(
                f"Row {row_number}: {label} must be at least {spec.min_value:g}, got '{value}'",
                row=row_number, code=RowValidationError.INVALID_NUMBER,
            )
        return parsed, None

    return value, None


def validate_row(
    entity_type: EntityType,
    row: Dict[str, Any],
    row_number: int,
    *,
    preserve_ids: bool = False,
) -> List[RowValidationError]:
    """
    매핑된 행 하나를 검증합니다.

    `row`의 열거형/날짜/불리언/숫자 값은 표준 형식으로 고쳐 쓰입니다.
    `row_number`는 스프레드시트 기준 행 번호입니다 (헤더가 1행).
    """
    errors: List[RowValidationError] = []
    entity = EntityType(entity_type)

    for spec in field_maps.get_field_map(entity):
        if not spec.persisted:
            continue
        value = row.get(spec.name)
        if is_blank(value):
            if spec.required:
                detail = f" ({spec.description})" if spec.description else ""
                errors.append(RowValidationError(
                    f"Row {row_number}: Missing {spec.name}{detail}",
                    row=row_number, entity_type=entity.value, code=RowValidationError.MISSING_FIELD,
                ))
            elif spec.name in row:
                row[spec.name] = None
            continue

        canonical, error = _check(spec, value, row_number, preserve_ids=preserve_ids)
        if error is not None:
            error.entity_type = entity.value
            errors.append(error)
        else:
            row[spec.name] = canonical
    return errors


def _to_text(value: Any) -> str:
    if isinstance(value, (datetime, date)):
        return value.date().isoformat() if isinstance(value, datetime) else value.isoformat()
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def build_record(entity_type: EntityType, row: Dict[str, Any]) -> Dict[str, Any]:
    """검증된 행을 모델 필드 값으로 변환합니다. 참조/식별번호 컬럼도 그대로 포함됩니다."""
    record: Dict[str, Any] = {}
    for spec in field_maps.get_field_map(entity_type):
        if not spec.persisted or spec.name not in row:
            continue
        value = row[spec.name]
        if value is None:
            record[spec.name] = None
        elif spec.kind == field_maps.DATE:
            record[spec.name] = value if isinstance(value, date) else date.fromisoformat(str(value))
        elif spec.kind in (field_maps.TEXT, field_maps.REFERENCE):
            record[spec.name] = _to_text(value)
        else:
            record[spec.name] = value
    return record
