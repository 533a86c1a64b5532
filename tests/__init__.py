# tests/__init__.py

"""
LIMS Import API의 테스트 스위트 패키지입니다.

- `conftest.py`: 테스트 DB, 세션, 사용자, 인증 클라이언트, LIMS 엔티티 픽스처.
- `test_main.py`: 루트/헬스 체크 엔드포인트.
- `domains/`: 도메인별 테스트. `_n` 접미사가 붙은 모듈은 PostgreSQL 테스트 DB가 필요하며,
  DB에 연결할 수 없으면 건너뜁니다. 나머지는 DB 없이 실행되는 단위 테스트입니다.
"""

__title__ = "LIMS Import API Tests"
__description__ = "Test suite for the LIMS Import API."
__version__ = "0.1.0"
__all__ = []
