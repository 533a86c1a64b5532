# app/domains/ids/__init__.py

"""
식별번호(일련번호) 발급 도메인 패키지입니다.

엔티티 유형별 PostgreSQL 시퀀스를 감싸는 `IdAllocator`와 그 API 엔드포인트를 포함합니다.
번호는 항상 저장소의 원자적 함수(lims.get_next_number)로 발급되며
프로세스 내부 카운터를 사용하지 않습니다.

주요 서브모듈:
- `crud.py`: IdAllocator (allocate / peek / history / is_in_use / reset / sync).
- `schemas.py`: 응답 스키마.
- `routers.py`: /ids/{entity_type}/... 엔드포인트.
"""

__title__ = "LIMS Identifier Domain"
__description__ = "Allocates collision-free sequential numbers per entity type."
__version__ = "0.1.0"
__all__ = []
