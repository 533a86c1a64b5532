# app/domains/imp/__init__.py

"""
일괄 가져오기(Import) 도메인 패키지입니다.

CSV/Excel 파일을 읽어 엔티티별 별칭 테이블로 컬럼을 매핑하고, 행을 검증한 뒤
기존 레코드와 대조하여 배치 트랜잭션으로 기록합니다.

주요 서브모듈:
- `decoder.py`: 파일 → 헤더/행 배열.
- `field_maps.py`, `column_mapper.py`: 컬럼 별칭 테이블과 매핑.
- `validator.py`: 행 단위 검증과 값 표준화.
- `duplicates.py`: 자연키 기반 중복 판별, 참조 해석, 이관 번호 검사.
- `orchestrator.py`, `error_tracker.py`: 배치 기록과 실패 집계.
- `service.py`: preview / execute 파이프라인.
- `routers.py`: /imports/{entity_type}/... 엔드포인트.
"""

__title__ = "LIMS Bulk Import Domain"
__description__ = "Imports spreadsheets into LIMS entities with per-row isolation."
__version__ = "0.1.0"
__all__ = []
