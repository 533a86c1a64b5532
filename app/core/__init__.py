# app/core/__init__.py

"""
LIMS Import API의 핵심 구성 요소 패키지입니다.

주요 서브모듈:
- `config.py`: 환경 변수 기반 설정 (Pydantic Settings), 가져오기 튜닝 값 포함.
- `database.py`: 비동기 엔진, 세션 팩토리, 스키마/테이블/PL/pgSQL 함수 초기화.
- `crud_base.py`: 도메인 CRUD 클래스가 상속하는 공통 비동기 CRUD (자연키 일괄 조회 포함).
- `security.py`: 비밀번호 해싱, JWT 발급/검증, 역할 기반 의존성.
- `dependencies.py`: 라우터에서 사용하는 공통 의존성 함수.
"""

__title__ = "LIMS Core"
__description__ = "Core components for the LIMS Import API."
__version__ = "0.1.0"
__all__ = []
