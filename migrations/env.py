# migrations/env.py

import os
import sys
import asyncio
from logging.config import fileConfig

from alembic import context
from alembic_utils.replaceable_entity import register_entities

from sqlalchemy import pool, text
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine
from sqlmodel import SQLModel

# --- 1. 프로젝트 루트 경로 설정 ---
# env.py가 어디에서 실행되든 'app', 'pgsql_scripts' 모듈을 찾을 수 있게 합니다.
project_root = os.path.abspath(os.path.join(os.path.dirname(__file__), '..'))
if project_root not in sys.path:
    sys.path.insert(0, project_root)

# --- 2. 애플리케이션 설정 및 모든 모델 임포트 ---
from app.core.config import settings        # noqa: E402
from app.core.database import SCHEMA        # noqa: E402

# pgsql_scripts에서 자동으로 탐색된 식별번호 함수(PGFunction) 목록
from pgsql_scripts import all_db_objects    # noqa: E402

# 모든 SQLModel 클래스와 식별번호 시퀀스가 SQLModel.metadata에 등록되도록 임포트합니다.
import app.domains.lims.models              # noqa: F401, E402
import app.domains.usr.models               # noqa: F401, E402

# --- 3. Alembic 기본 설정 ---
config = context.config

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

# lims.get_next_number() 등 PL/pgSQL 함수를 autogenerate 비교 대상에 등록합니다.
# 함수 본문이 lims 스키마의 테이블/시퀀스를 참조하므로 테이블 생성 리비전이 먼저 적용되어야 합니다.
register_entities(all_db_objects)

target_metadata = SQLModel.metadata

if config.get_main_option("sqlalchemy.url") is None:
    config.set_main_option("sqlalchemy.url", settings.DATABASE_URL.get_secret_value())


def include_object(object, name, type_, reflected, compare_to):
    if type_ == "table" and name == "alembic_version":
        return False
    return True


def do_run_migrations(connection) -> None:
    """
    실제 마이그레이션을 실행하는 동기 로직입니다.
    """
    context.configure(
        connection=connection,
        target_metadata=target_metadata,
        include_schemas=True,  # usr, lims 스키마를 모두 비교
        version_table_schema='public',
        include_object=include_object,
    )

    with context.begin_transaction():
        context.run_migrations()


def run_migrations_offline() -> None:
    """오프라인 모드는 지원하지 않습니다."""
    raise NotImplementedError("Offline mode is not supported in this configuration.")


async def run_migrations_online() -> None:
    """'온라인' 모드에서 마이그레이션을 실행합니다."""
    engine: AsyncEngine = create_async_engine(
        settings.DATABASE_URL.get_secret_value(),
        echo=settings.DEBUG_MODE,
        future=True,
        poolclass=pool.NullPool,  # 마이그레이션 시에는 풀을 사용하지 않음
    )

    # --- 1단계: 스키마 생성 전용 연결 ---
    async with engine.connect() as connection:
        print("--- Ensuring schemas exist before migration... ---")
        async with connection.begin():
            for schema_name in SCHEMA:
                await connection.execute(text(f"CREATE SCHEMA IF NOT EXISTS {schema_name}"))
        print("--- Schema check/creation complete. ---")

    # --- 2단계: Alembic 마이그레이션 전용 연결 ---
    async with engine.connect() as connection:
        print("\n--- Running Alembic migrations... ---")
        await connection.run_sync(do_run_migrations)

    await engine.dispose()
    print("\n--- Alembic migrations finished. ---")


if context.is_offline_mode():
    print("Offline mode is not supported.")
else:
    asyncio.run(run_migrations_online())
