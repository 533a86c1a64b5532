# app/domains/ids/schemas.py

"""
'ids' 도메인의 API 응답/요청 스키마를 정의하는 모듈입니다.
"""

from typing import Optional
from datetime import datetime

from pydantic import BaseModel, Field as PydanticField

from app.domains.lims.models import EntityType


class AllocatedId(BaseModel):
    entity_type: EntityType
    id: int = PydanticField(..., description="발급된 번호")
    next_id: int = PydanticField(..., description="표시용 다음 번호 (예약 아님)")


class PeekedId(BaseModel):
    entity_type: EntityType
    next_id: int = PydanticField(..., description="다음 발급 예정 번호 (참고용)")


class IdInUse(BaseModel):
    entity_type: EntityType
    number: int
    in_use: bool


class SequenceReset(BaseModel):
    next_value: int = PydanticField(..., ge=1, description="다음에 발급될 번호")


class SequenceResetResult(BaseModel):
    entity_type: EntityType
    next_id: int


class IdGenerationLogRead(BaseModel):
    entity_type: str
    generated_id: int
    generated_by: Optional[str] = None
    generated_at: Optional[datetime] = None

    class Config:
        from_attributes = True
