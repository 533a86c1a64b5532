# app/domains/lims/__init__.py

"""
FastAPI 애플리케이션의 'lims' 도메인 패키지입니다.

PostgreSQL의 'lims' 스키마에 해당하는 데이터 모델과 조회/생성 API를 포함합니다.
공동연구자(Collaborator), 프로젝트(Project), 환자(Patient), 검체(Specimen),
재고(InventoryItem)와 식별번호 발급 로그, 레거시 ID 매핑을 관리합니다.

주요 서브모듈:
- `models.py`: 'lims' 스키마의 테이블과 식별번호 시퀀스 정의.
- `schemas.py`: 요청 및 응답 Pydantic 모델.
- `crud.py`: 비동기 CRUD 로직 (자연키/번호 조회, 레거시 매핑).
- `routers.py`: 'lims' 데이터 조회/생성 API 엔드포인트.
"""

__title__ = "LIMS Core Entities Domain"
__description__ = "Collaborators, projects, patients, specimens and inventory imported into the LIMS."
__version__ = "0.1.0"
__all__ = []
