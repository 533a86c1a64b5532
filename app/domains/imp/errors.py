# app/domains/imp/errors.py

"""
일괄 가져오기 엔진의 오류 계층을 정의하는 모듈입니다.

모든 오류는 `ImportEngineError`를 상속하며 `kind` 태그로 분류됩니다.
오류 추적기(BatchErrorTracker)는 이 태그와 `code`만 보고 실패를 집계합니다.
데이터베이스 드라이버 예외는 `classify_exception()`을 통해 이 계층으로 변환됩니다.
"""

import asyncio
import socket
from typing import Any, Dict, Optional

from sqlalchemy.exc import DBAPIError, IntegrityError, InterfaceError, OperationalError


# 연결 계열 오류 코드 (critical + retryable)
CONNECTION_ERROR_CODES = ("ECONNRESET", "ETIMEDOUT", "ENOTFOUND")
CONNECTION_FAILURE_CODE = "connection_failure"


# =============================================================================
# 1. 오류 계층
# =============================================================================
class ImportEngineError(Exception):
    """가져오기 엔진 오류의 기반 클래스입니다."""
    kind = "engine"

    def __init__(
        self,
        message: str,
        *,
        row: Optional[int] = None,
        entity_type: Optional[str] = None,
        code: Optional[str] = None,
        constraint: Optional[str] = None,
        severity: Optional[str] = None,
    ):
        super().__init__(message)
        self.message = message
        self.row = row
        self.entity_type = entity_type
        self.code = code
        self.constraint = constraint
        self.severity = severity

    def to_dict(self) -> Dict[str, Any]:
        data = {"kind": self.kind, "message": self.message}
        if self.row is not None:
            data["row"] = self.row
        if self.code:
            data["code"] = self.code
        if self.constraint:
            data["constraint"] = self.constraint
        return data

    def __repr__(self) -> str:
        return f"{type(self).__name__}(kind={self.kind!r}, code={self.code!r}, row={self.row!r}, message={self.message!r})"


class RowValidationError(ImportEngineError):
    """필수값 누락, 허용되지 않은 값, 날짜/숫자 파싱 실패 등 행 단위 검증 오류."""
    kind = "validation"

    MISSING_FIELD = "missing_field"
    INVALID_ENUM = "invalid_enum"
    INVALID_DATE = "invalid_date"
    INVALID_BOOLEAN = "invalid_boolean"
    INVALID_NUMBER = "invalid_number"
    UNRESOLVED_REFERENCE = "unresolved_reference"


class DuplicateIdentifierError(ImportEngineError):
    """이관(preserve) 모드에서 지정한 번호가 이미 사용 중인 경우."""
    kind = "duplicate_identifier"

    def __init__(self, message: str, **kwargs):
        kwargs.setdefault("code", "duplicate_identifier")
        super().__init__(message, **kwargs)


class ConstraintViolationError(ImportEngineError):
    """저장소가 보고한 unique/foreign key/not null 등의 제약 조건 위반."""
    kind = "constraint"


class AllocationFailedError(ImportEngineError):
    """식별번호 발급 실패. 기본값으로 대체하지 않고 배치를 중단시킵니다."""
    kind = "allocation"

    def __init__(self, message: str, **kwargs):
        kwargs.setdefault("code", "allocation_failed")
        super().__init__(message, **kwargs)


class ConnectionFailureError(ImportEngineError):
    """연결 재설정, 시간 초과, 호스트 조회 실패 등 인프라 수준 오류."""
    kind = "connection"

    def __init__(self, message: str, **kwargs):
        kwargs.setdefault("code", CONNECTION_FAILURE_CODE)
        super().__init__(message, **kwargs)


class HighFailureRateError(ImportEngineError):
    """실패율이 허용치를 넘어 작업 전체를 실패로 처리해야 하는 경우."""
    kind = "high_failure_rate"

    def __init__(self, message: str, *, summary: Optional[Dict[str, Any]] = None, **kwargs):
        kwargs.setdefault("code", "high_failure_rate")
        super().__init__(message, **kwargs)
        self.summary = summary or {}


class DuplicateRecordsError(ImportEngineError):
    """기존 레코드와 중복되는 행이 있지만 건너뛰기/업데이트가 모두 허용되지 않은 경우."""
    kind = "duplicate_records"

    def __init__(self, message: str, *, duplicates: Optional[list] = None, **kwargs):
        kwargs.setdefault("code", "duplicate_records")
        super().__init__(message, **kwargs)
        self.duplicates = duplicates or []


class FileDecodeError(ImportEngineError):
    """업로드 파일을 헤더/행으로 해석할 수 없는 경우."""
    kind = "decode"


def is_critical(error: ImportEngineError) -> bool:
    """작업 전체를 즉시 중단해야 하는 오류인지 판단합니다."""
    if isinstance(error, (ConnectionFailureError, AllocationFailedError)):
        return True
    if error.code in CONNECTION_ERROR_CODES or error.code == CONNECTION_FAILURE_CODE:
        return True
    return (error.severity or "").upper() == "FATAL"


def is_retryable(error: ImportEngineError) -> bool:
    return error.code in CONNECTION_ERROR_CODES


# =============================================================================
# 2. 예외 변환
# =============================================================================
def _driver_error(exc: BaseException) -> Optional[BaseException]:
    """SQLAlchemy 래퍼 안쪽의 asyncpg 예외를 찾습니다."""
    orig = getattr(exc, "orig", None)
    if orig is None:
        return None
    # AsyncAdapt_asyncpg_dbapi.Error 는 원본 asyncpg 예외를 __cause__ 로 가집니다.
    return getattr(orig, "__cause__", None) or orig


def _connection_code(exc: BaseException) -> str:
    if isinstance(exc, ConnectionResetError):
        return "ECONNRESET"
    if isinstance(exc, (TimeoutError, asyncio.TimeoutError)):
        return "ETIMEDOUT"
    if isinstance(exc, socket.gaierror):
        return "ENOTFOUND"
    return CONNECTION_FAILURE_CODE


def classify_exception(
    exc: BaseException,
    *,
    row: Optional[int] = None,
    entity_type: Optional[str] = None,
) -> ImportEngineError:
    """
    임의의 예외를 가져오기 엔진 오류 계층으로 변환합니다.

    - 이미 ImportEngineError 이면 행 번호만 보충해 그대로 반환합니다.
    - IntegrityError 는 제약 조건 이름으로 분류된 ConstraintViolationError 가 됩니다.
    - 연결 계열 오류(OSError, 시간 초과, 연결 무효화)는 ConnectionFailureError 가 됩니다.
    - 심각도가 FATAL 인 저장소 오류는 critical 로 취급됩니다.
    """
    if isinstance(exc, ImportEngineError):
        if exc.row is None:
            exc.row = row
        if exc.entity_type is None:
            exc.entity_type = entity_type
        return exc

    if isinstance(exc, IntegrityError):
        driver = _driver_error(exc)
        constraint = getattr(driver, "constraint_name", None)
        sqlstate = getattr(driver, "sqlstate", None) or getattr(exc.orig, "sqlstate", None)
        detail = getattr(driver, "detail", None) or str(driver or exc.orig or exc)
        message = f"Constraint violation ({constraint or sqlstate or 'unknown'}): {detail}"
        return ConstraintViolationError(
            message, row=row, entity_type=entity_type,
            code=sqlstate, constraint=constraint,
            severity=getattr(driver, "severity", None),
        )

    if isinstance(exc, DBAPIError):
        driver = _driver_error(exc)
        severity = getattr(driver, "severity", None)
        if exc.connection_invalidated or isinstance(exc, (OperationalError, InterfaceError)) \
                or isinstance(driver, (OSError, asyncio.TimeoutError)):
            code = _connection_code(driver) if driver is not None else CONNECTION_FAILURE_CODE
            return ConnectionFailureError(
                f"Database connection failure: {driver or exc}",
                row=row, entity_type=entity_type, code=code, severity=severity,
            )
        return ImportEngineError(
            f"Database error: {driver or exc}",
            row=row, entity_type=entity_type,
            code=getattr(driver, "sqlstate", None),
            constraint=getattr(driver, "constraint_name", None),
            severity=severity,
        )

    if isinstance(exc, (OSError, asyncio.TimeoutError)):
        return ConnectionFailureError(
            f"Connection failure: {exc}", row=row, entity_type=entity_type, code=_connection_code(exc),
        )

    return ImportEngineError(str(exc) or type(exc).__name__, row=row, entity_type=entity_type)
