# app/domains/imp/orchestrator.py

"""
행 목록을 고정 크기 배치로 나누어 트랜잭션 단위로 기록하는 배치 오케스트레이터입니다.

- 배치 하나가 트랜잭션 하나입니다. 배치가 끝나면 커밋합니다.
- 각 행은 SAVEPOINT 안에서 처리되어 실패한 행만 되돌려지고 배치는 계속 진행됩니다.
- critical 오류는 배치 전체를 롤백하고 호출자에게 전파됩니다.
- `before_commit(db)` 훅은 배치마다 커밋 직전에 같은 트랜잭션 안에서 호출됩니다.
- 배치마다 오류 추적기에 중단 여부를 묻고, 실패율이 높으면 이후 배치를 처리하지 않습니다.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, List, Optional, Sequence

from sqlmodel.ext.asyncio.session import AsyncSession

from .error_tracker import BatchErrorTracker
from .errors import ImportEngineError, classify_exception, is_critical

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

CREATED = "created"
UPDATED = "updated"

RowHandler = Callable[[AsyncSession, Any], Awaitable[str]]
ProgressCallback = Callable[[int, int], None]
CommitHook = Callable[[AsyncSession], Awaitable[None]]


@dataclass
class OrchestratorResult:
    processed: int = 0
    created: int = 0
    updated: int = 0
    batches: int = 0
    errors: List[ImportEngineError] = field(default_factory=list)
    aborted: bool = False
    abort_reason: Optional[str] = None


class BatchOrchestrator:
    def __init__(
        self,
        db: AsyncSession,
        tracker: BatchErrorTracker,
        *,
        batch_size: int = 500,
        entity_type: Optional[str] = None,
        progress: Optional[ProgressCallback] = None,
        before_commit: Optional[CommitHook] = None,
    ):
        if batch_size < 1:
            raise ValueError("batch_size must be a positive integer")
        self.db = db
        self.tracker = tracker
        self.batch_size = batch_size
        self.entity_type = entity_type
        self.progress = progress
        self.before_commit = before_commit

    async def run(self, rows: Sequence[Any], handler: RowHandler) -> OrchestratorResult:
        """
        `handler(db, row)`는 CREATED 또는 UPDATED를 반환해야 합니다.
        각 행 객체는 `row_number` 속성을 가져야 합니다.
        """
        result = OrchestratorResult()
        total = len(rows)

        for start in range(0, total, self.batch_size):
            batch = rows[start:start + self.batch_size]
            batch_no = result.batches + 1
            created = updated = processed = 0
            batch_errors: List[ImportEngineError] = []

            try:
                for row in batch:
                    self.tracker.record_attempt()
                    try:
                        async with self.db.begin_nested():
                            outcome = await handler(self.db, row)
                    except Exception as e:
                        error = classify_exception(e, row=row.row_number, entity_type=self.entity_type)
                        self.tracker.record_failure(error, entity_type=self.entity_type, row=row.row_number)
                        if is_critical(error):
                            raise error from e
                        batch_errors.append(error)
                        continue

                    processed += 1
                    if outcome == CREATED:
                        created += 1
                    else:
                        updated += 1
                    self.tracker.record_success(self.entity_type, getattr(row, "entity_id", None))

                if self.before_commit is not None:
                    await self.before_commit(self.db)
                await self.db.commit()
            except Exception:
                logger.error("배치 %d 롤백 (rows %d-%d)", batch_no, start + 1, start + len(batch), exc_info=True)
                await self.db.rollback()
                raise

            result.batches = batch_no
            result.processed += processed
            result.created += created
            result.updated += updated
            result.errors.extend(batch_errors)
            logger.info(
                "배치 %d 커밋: processed=%d created=%d updated=%d failed=%d (%d/%d)",
                batch_no, processed, created, updated, len(batch_errors), start + len(batch), total,
            )
            if self.progress is not None:
                self.progress(start + len(batch), total)

            should_abort, reason, _ = self.tracker.should_abort_operation()
            if should_abort:
                logger.warning("가져오기 중단: %s", reason)
                result.aborted = True
                result.abort_reason = reason
                break

        return result
