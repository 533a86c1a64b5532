# app/domains/usr/schemas.py

"""
'usr' 도메인 (사용자 관리 및 인증)의 API 데이터 전송 객체(DTO)를 정의하는 모듈입니다.
"""

from typing import Optional
from datetime import datetime
from sqlmodel import SQLModel, Field
from pydantic import BaseModel, EmailStr

from . import models as usr_models


# =============================================================================
# 1. 사용자 (User) 스키마
# =============================================================================
class UserBase(SQLModel):
    """사용자 정보의 기본 필드를 정의하는 스키마"""
    username: str = Field(..., max_length=50)
    email: Optional[EmailStr] = Field(None, max_length=100)
    full_name: Optional[str] = Field(None, max_length=100)
    role: usr_models.UserRole = Field(default=usr_models.UserRole.GENERAL_USER, description="사용자 역할")
    is_active: bool = True


class UserCreate(UserBase):
    """사용자 생성을 위한 스키마"""
    password: str = Field(..., min_length=8)


class UserUpdate(SQLModel):
    """사용자 정보 수정을 위한 스키마"""
    email: Optional[EmailStr] = None
    full_name: Optional[str] = None
    role: Optional[usr_models.UserRole] = None
    is_active: Optional[bool] = None


class UserRead(UserBase):
    """
    사용자 정보 조회 스키마. 비밀번호 해시값은 제외됩니다.
    """
    id: int
    created_at: datetime = Field(..., description="레코드 생성 일시")
    updated_at: datetime = Field(..., description="레코드 마지막 업데이트 일시")


# =============================================================================
# 2. 인증 토큰 (Token) 스키마
# =============================================================================
class Token(BaseModel):
    """JWT 토큰 응답 스키마"""
    access_token: str
    token_type: str


class TokenData(BaseModel):
    """JWT 토큰에 담길 데이터 스키마"""
    username: Optional[str] = None
