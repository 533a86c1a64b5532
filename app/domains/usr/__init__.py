# app/domains/usr/__init__.py

"""
FastAPI 애플리케이션의 'usr' 도메인 패키지입니다.

PostgreSQL의 'usr' 스키마에 해당하는 사용자 모델과 인증(OAuth2 + JWT) 관련
로직 및 API 엔드포인트를 포함합니다.

주요 서브모듈:
- `models.py`: 'usr' 스키마의 테이블에 매핑되는 SQLModel 정의.
- `schemas.py`: 요청/응답 유효성 검사 및 인증 토큰 스키마.
- `crud.py`: 사용자 CRUD 및 인증 로직.
- `routers.py`: 로그인, 사용자 관리 API 엔드포인트.
"""

__title__ = "LIMS User Domain"
__description__ = "Manages users and handles authentication."
__version__ = "0.1.0"
__all__ = []
