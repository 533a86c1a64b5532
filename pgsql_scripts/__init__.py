# pgsql_scripts/__init__.py
"""
Alembic/alembic_utils로 관리되는 PostgreSQL 함수 정의 패키지입니다.

주요 파일:
- `functions.py`: 식별번호 발급 함수 (get_next_number, peek_next_number 등) 정의

이 패키지 안에 정의된 alembic_utils 객체는 아래 자동 탐색 로직에 의해
`all_db_objects` 리스트로 수집되어 Alembic(migrations/env.py)과
개발용 초기화(app.core.database.create_db_and_tables), 테스트(conftest.py)에서 공통으로 사용됩니다.
"""

__title__ = "LIMS PL/pgSQL scripts"
__description__ = "Database functions managed by alembic_utils."
__version__ = "0.1.0"
__all__ = ["all_db_objects"]

import pkgutil
import importlib
import inspect

# ⭐️ PGFunction, PGTrigger 등을 부모 클래스인 ReplaceableEntity로 한 번에 확인합니다.
from alembic_utils.replaceable_entity import ReplaceableEntity

# Alembic과 Pytest에서 공통으로 사용할 객체 리스트 (자동 탐색으로 채워집니다)
all_db_objects = []

# --- 자동 탐색 로직 ---
# 'pgsql_scripts' 패키지 안의 모든 모듈을 순회하며 ReplaceableEntity 객체를 수집합니다.
for loader, module_name, is_pkg in pkgutil.iter_modules(__path__):
    module = importlib.import_module(f".{module_name}", __package__)

    for name, obj in inspect.getmembers(module):
        if isinstance(obj, ReplaceableEntity):
            all_db_objects.append(obj)
