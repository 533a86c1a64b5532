# tests/domains/test_imp_tracker.py

"""
BatchErrorTracker 와 예외 분류(classify_exception)에 대한 단위 테스트입니다.
"""

import pytest

from app.domains.imp.error_tracker import BatchErrorTracker
from app.domains.imp.errors import (
    AllocationFailedError,
    ConnectionFailureError,
    ConstraintViolationError,
    ImportEngineError,
    RowValidationError,
    classify_exception,
    is_critical,
    is_retryable,
)


def _fail(tracker: BatchErrorTracker, error: ImportEngineError, times: int = 1):
    for _ in range(times):
        tracker.record_attempt()
        tracker.record_failure(error)


def _succeed(tracker: BatchErrorTracker, times: int = 1):
    for i in range(times):
        tracker.record_attempt()
        tracker.record_success("specimen", i + 1, number=i + 1)


def test_failure_rate_is_zero_without_attempts():
    tracker = BatchErrorTracker()
    assert tracker.failure_rate == 0.0
    assert tracker.should_abort_operation() == (False, None, None)
    assert tracker.validate_operation_success() == {"success": True, "warning": None}


def test_no_abort_below_min_attempts():
    tracker = BatchErrorTracker(min_attempts=10)
    _fail(tracker, RowValidationError("bad", code=RowValidationError.INVALID_DATE), times=5)

    assert tracker.failure_rate == 1.0
    assert tracker.should_abort_operation()[0] is False


def test_abort_on_high_failure_rate():
    tracker = BatchErrorTracker(max_failure_rate=0.2, min_attempts=10)
    _succeed(tracker, times=7)
    _fail(tracker, ConstraintViolationError("too long", code="22001"), times=3)

    should_abort, reason, abort_type = tracker.should_abort_operation()
    assert should_abort is True
    assert abort_type == "high_failure_rate"
    assert "30.0%" in reason
    assert "(3/10)" in reason


def test_rate_at_threshold_does_not_abort():
    tracker = BatchErrorTracker(max_failure_rate=0.2, min_attempts=10)
    _succeed(tracker, times=8)
    _fail(tracker, RowValidationError("bad"), times=2)
    assert tracker.should_abort_operation()[0] is False


def test_critical_failure_aborts_immediately():
    tracker = BatchErrorTracker()
    tracker.record_attempt()
    critical, error_type = tracker.record_failure(ConnectionFailureError("connection reset", code="ECONNRESET"))

    assert critical is True
    assert error_type == "ECONNRESET"
    should_abort, reason, abort_type = tracker.should_abort_operation()
    assert should_abort is True
    assert abort_type == "critical_error"
    assert reason == "Critical error detected: connection reset"


def test_failures_grouped_by_code_then_constraint():
    tracker = BatchErrorTracker()
    _fail(tracker, RowValidationError("a", code=RowValidationError.MISSING_FIELD), times=2)
    _fail(tracker, ConstraintViolationError("b", constraint="uq_specimen_tube_id"))
    _fail(tracker, ImportEngineError("c"))

    assert tracker.failures_by_type == {
        "missing_field": 2,
        "uq_specimen_tube_id": 1,
        "unknown": 1,
    }


def test_summary_shape():
    tracker = BatchErrorTracker("specimen_import")
    _succeed(tracker, times=3)
    _fail(tracker, RowValidationError("Row 5: Missing tube_id", row=5, code="missing_field"))

    summary = tracker.get_summary()
    assert summary["operation"] == "specimen_import"
    assert summary["total_attempted"] == 4
    assert summary["total_failed"] == 1
    assert summary["success_rate"] == "75.00%"
    assert summary["critical_failures"] == 0
    assert summary["last_successful_record"]["number"] == 3
    [error] = summary["errors"]
    assert error["row"] == 5
    assert error["message"] == "Row 5: Missing tube_id"
    assert error["critical"] is False


def test_low_success_rate_warning():
    tracker = BatchErrorTracker()
    _succeed(tracker, times=7)
    _fail(tracker, RowValidationError("bad"), times=3)

    result = tracker.validate_operation_success(0.8)
    assert result["success"] is False
    assert "70.0%" in result["warning"]


@pytest.mark.parametrize(
    "error, critical",
    [
        (ConnectionFailureError("down"), True),
        (AllocationFailedError("sequence missing"), True),
        (ImportEngineError("timeout", code="ETIMEDOUT"), True),
        (ImportEngineError("fatal", severity="FATAL"), True),
        (ConstraintViolationError("dup", code="23505"), False),
        (RowValidationError("bad"), False),
    ],
)
def test_is_critical(error, critical):
    assert is_critical(error) is critical


def test_retryable_only_for_connection_codes():
    assert is_retryable(ImportEngineError("x", code="ENOTFOUND")) is True
    assert is_retryable(ConnectionFailureError("x")) is False


def test_classify_plain_exceptions():
    reset = classify_exception(ConnectionResetError("peer reset"), row=4)
    assert isinstance(reset, ConnectionFailureError)
    assert reset.code == "ECONNRESET"
    assert reset.row == 4

    timeout = classify_exception(TimeoutError())
    assert timeout.code == "ETIMEDOUT"

    other = classify_exception(ValueError("boom"), row=2, entity_type="project")
    assert type(other) is ImportEngineError
    assert other.message == "boom"
    assert is_critical(other) is False


def test_classify_keeps_engine_errors_and_fills_row():
    error = RowValidationError("bad")
    assert classify_exception(error, row=9) is error
    assert error.row == 9
