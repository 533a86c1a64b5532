# app/domains/imp/error_tracker.py

"""
가져오기 작업의 시도/실패를 집계하고 작업 중단 여부를 판단하는 추적기입니다.
"""

import logging
from datetime import datetime, UTC
from typing import Any, Dict, List, Optional, Tuple

from .errors import ImportEngineError, is_critical, is_retryable

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


class BatchErrorTracker:
    def __init__(self, operation: str = "import", *, max_failure_rate: float = 0.2, min_attempts: int = 10):
        self.operation = operation
        self.max_failure_rate = max_failure_rate
        self.min_attempts = min_attempts

        self.total_attempted = 0
        self.total_failed = 0
        self.errors: List[Dict[str, Any]] = []
        self.critical_failures: List[Dict[str, Any]] = []
        self.failures_by_type: Dict[str, int] = {}
        self.last_successful_record: Optional[Dict[str, Any]] = None

    @property
    def failure_rate(self) -> float:
        if self.total_attempted == 0:
            return 0.0
        return self.total_failed / self.total_attempted

    def record_attempt(self) -> None:
        self.total_attempted += 1

    def record_success(self, entity_type: str, entity_id: Any, number: Optional[int] = None) -> None:
        self.last_successful_record = {
            "type": entity_type,
            "id": entity_id,
            "number": number,
            "timestamp": datetime.now(UTC).isoformat(),
        }

    def record_failure(
        self,
        error: ImportEngineError,
        *,
        entity_type: Optional[str] = None,
        entity_id: Any = None,
        row: Optional[int] = None,
    ) -> Tuple[bool, str]:
        """
        실패 한 건을 기록합니다. (critical 여부, 분류) 튜플을 반환합니다.
        분류는 오류 코드, 없으면 제약 조건 이름, 둘 다 없으면 'unknown' 입니다.
        """
        self.total_failed += 1
        error_type = error.code or error.constraint or "unknown"
        self.failures_by_type[error_type] = self.failures_by_type.get(error_type, 0) + 1

        critical = is_critical(error)
        details = {
            "entity_type": entity_type or error.entity_type,
            "entity_id": entity_id,
            "row": row if row is not None else error.row,
            "kind": error.kind,
            "message": error.message,
            "error_code": error.code,
            "constraint": error.constraint,
            "severity": error.severity or "ERROR",
            "critical": critical,
            "retryable": is_retryable(error),
            "timestamp": datetime.now(UTC).isoformat(),
        }
        if critical:
            self.critical_failures.append(details)
            logger.error("[%s] critical failure: %s", self.operation, error.message)
        else:
            logger.warning("[%s] row %s failed (%s): %s", self.operation, details["row"], error_type, error.message)
        self.errors.append(details)
        return critical, error_type

    def should_abort_operation(self) -> Tuple[bool, Optional[str], Optional[str]]:
        """(중단 여부, 사유, 유형). critical 실패는 즉시, 그 외에는 최소 시도 수 이후 실패율로 판단합니다."""
        if self.critical_failures:
            return True, f"Critical error detected: {self.critical_failures[0]['message']}", "critical_error"

        if self.total_attempted >= self.min_attempts and self.failure_rate > self.max_failure_rate:
            reason = (
                f"High failure rate detected: {self.failure_rate * 100:.1f}% of operations failed "
                f"({self.total_failed}/{self.total_attempted})"
            )
            return True, reason, "high_failure_rate"
        return False, None, None

    def validate_operation_success(self, min_success_rate: float = 0.8) -> Dict[str, Any]:
        """성공률이 기준 미만이면 경고 정보를 반환합니다."""
        if self.total_attempted == 0:
            return {"success": True, "warning": None}
        success_rate = 1 - self.failure_rate
        if success_rate < min_success_rate:
            return {
                "success": False,
                "warning": (
                    f"Operation completed with a low success rate: {success_rate * 100:.1f}% "
                    f"({self.total_attempted - self.total_failed}/{self.total_attempted})"
                ),
            }
        return {"success": True, "warning": None}

    def get_summary(self) -> Dict[str, Any]:
        success_rate = (
            "%.2f%%" % ((self.total_attempted - self.total_failed) / self.total_attempted * 100)
            if self.total_attempted else "0.00%"
        )
        return {
            "operation": self.operation,
            "total_attempted": self.total_attempted,
            "total_failed": self.total_failed,
            "success_rate": success_rate,
            "failures_by_type": dict(self.failures_by_type),
            "critical_failures": len(self.critical_failures),
            "last_successful_record": self.last_successful_record,
            "errors": list(self.errors),
        }
