# scripts/run_import.py

"""
셸에서 CSV/Excel 파일을 미리보기하거나 가져오는 스크립트입니다.
API와 같은 서비스 계층(app.domains.imp.service)을 사용합니다.

    python -m scripts.run_import preview specimen samples.csv --project-id 3
    python -m scripts.run_import execute project legacy_projects.xlsx --preserve-ids
"""

import asyncio
import json
import logging
from pathlib import Path
from typing import Optional

import typer
from fastapi import HTTPException

from app.core.database import get_async_session_context
from app.domains.imp import service as imp_service
from app.domains.imp.errors import DuplicateRecordsError, HighFailureRateError, ImportEngineError
from app.domains.lims.models import EntityType

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

cli = typer.Typer(help="LIMS 일괄 가져오기 도구")


def _read(path: Path) -> bytes:
    if not path.is_file():
        typer.echo(f"오류: 파일을 찾을 수 없습니다: {path}")
        raise typer.Exit(code=2)
    return path.read_bytes()


def _print(data) -> None:
    typer.echo(json.dumps(data, indent=2, ensure_ascii=False, default=str))


@cli.command()
def preview(
    entity_type: EntityType = typer.Argument(..., help="엔티티 유형"),
    path: Path = typer.Argument(..., help="CSV 또는 XLSX 파일 경로"),
    preserve_ids: bool = typer.Option(False, "--preserve-ids", help="파일의 번호를 그대로 사용"),
    project_id: Optional[int] = typer.Option(None, "--project-id"),
    collaborator_id: Optional[int] = typer.Option(None, "--collaborator-id"),
):
    """파일을 검증하고 예상 결과를 출력합니다. DB에 쓰지 않습니다."""
    content = _read(path)

    async def _run():
        async with get_async_session_context() as db:
            return await imp_service.preview_import(
                db, entity_type, path.name, content,
                preserve_ids=preserve_ids, project_id=project_id, collaborator_id=collaborator_id,
            )

    try:
        _print(asyncio.run(_run()))
    except (ImportEngineError, HTTPException) as e:
        typer.echo(f"오류: {getattr(e, 'message', None) or getattr(e, 'detail', e)}")
        raise typer.Exit(code=1)


@cli.command()
def execute(
    entity_type: EntityType = typer.Argument(..., help="엔티티 유형"),
    path: Path = typer.Argument(..., help="CSV 또는 XLSX 파일 경로"),
    preserve_ids: bool = typer.Option(False, "--preserve-ids", help="파일의 번호를 그대로 사용"),
    skip_duplicates: bool = typer.Option(False, "--skip-duplicates"),
    update_duplicates: bool = typer.Option(True, "--update-duplicates/--no-update-duplicates"),
    batch_size: Optional[int] = typer.Option(None, "--batch-size", min=1),
    project_id: Optional[int] = typer.Option(None, "--project-id"),
    collaborator_id: Optional[int] = typer.Option(None, "--collaborator-id"),
):
    """파일을 가져옵니다. 실패율이 임계값을 넘으면 종료 코드 1로 끝납니다."""
    content = _read(path)

    def _progress(done: int, total: int) -> None:
        typer.echo(f"  {done}/{total} rows")

    async def _run():
        async with get_async_session_context() as db:
            return await imp_service.execute_import(
                db, entity_type, path.name, content,
                preserve_ids=preserve_ids,
                skip_duplicates=skip_duplicates,
                update_duplicates=update_duplicates,
                batch_size=batch_size,
                project_id=project_id,
                collaborator_id=collaborator_id,
                progress=_progress,
            )

    try:
        result = asyncio.run(_run())
    except HighFailureRateError as e:
        typer.echo(f"가져오기 실패: {e.message}")
        if e.summary:
            _print({k: v for k, v in e.summary.items() if k != "error_summary"})
        raise typer.Exit(code=1)
    except DuplicateRecordsError as e:
        typer.echo(f"중복 레코드: {e.message}")
        raise typer.Exit(code=1)
    except (ImportEngineError, HTTPException) as e:
        typer.echo(f"오류: {getattr(e, 'message', None) or getattr(e, 'detail', e)}")
        raise typer.Exit(code=1)

    _print({k: v for k, v in result.items() if k != "error_summary"})


if __name__ == "__main__":
    cli()
