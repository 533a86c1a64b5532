# app/domains/models/__init__.py

"""
모든 도메인의 SQLModel 모델들을 한 곳에서 중앙 관리하여,
다른 모듈(Alembic env.py, 테스트)에서 쉽게 임포트할 수 있도록 하는 역할을 합니다.
SQLModel.metadata가 모든 테이블과 식별번호 시퀀스를 인식하도록 보장합니다.
"""

# usr (User)
from app.domains.usr.models import User, UserRole

# lims (가져오기 대상 엔티티, 발급 로그, 레거시 매핑)
from app.domains.lims.models import (
    EntityType, NUMBER_SEQUENCES,
    Collaborator, Project, Patient, Specimen, InventoryItem,
    IdGenerationLog, LegacyIdMapping,
)


__all__ = [
    # usr
    "User", "UserRole",
    # lims
    "EntityType", "NUMBER_SEQUENCES",
    "Collaborator", "Project", "Patient", "Specimen", "InventoryItem",
    "IdGenerationLog", "LegacyIdMapping",
]
