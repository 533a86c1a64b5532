# tests/domains/__init__.py

"""
도메인별 테스트 모듈 패키지입니다.

- `test_auth_n.py`, `test_usr_n.py`: 'usr' 도메인 (인증, 사용자 관리).
- `test_lims_n.py`: 'lims' 도메인 (엔티티 조회/생성).
- `test_ids_n.py`: 'ids' 도메인 (식별번호 발급, 시퀀스 재설정).
- `test_imp_*.py`: 'imp' 도메인 (디코더, 컬럼 매핑, 검증, 오류 추적, 배치 오케스트레이터, 가져오기 API).
"""

__title__ = "LIMS Domain Tests"
__description__ = "Per-domain tests for the LIMS Import API."
__version__ = "0.1.0"
__all__ = []
