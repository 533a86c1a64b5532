# app/core/config.py

from typing import Any
from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict
import os

# 프로젝트의 루트 디렉토리 경로를 계산합니다.
BASE_DIR = os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))


class Settings(BaseSettings):
    """
    애플리케이션의 모든 설정을 정의하는 Pydantic BaseSettings 모델입니다.
    환경 변수 및 .env 파일에서 값을 자동으로 로드합니다.
    """

    # --- Pydantic Settings 설정 ---
    model_config = SettingsConfigDict(
        env_file=os.path.join(BASE_DIR, '.env'),  # 프로젝트 루트의 .env 파일을 명시적으로 지정
        env_file_encoding='utf-8',           # .env 파일 인코딩
        extra='ignore',                      # .env 파일에 정의되었지만 모델에 없는 변수는 무시
        case_sensitive=True                  # 환경 변수 이름 대소문자 구분
    )

    # --- 애플리케이션 기본 설정 ---
    APP_NAME: str = "LIMS Import API"
    APP_VERSION: str = "0.1.0"
    APP_DESCRIPTION: str = "Laboratory Information Management System (LIMS) bulk import and identifier API"
    # 애플리케이션 환경 (예: "development", "production", "testing")
    APP_ENV: str = Field("development", description="Application environment (e.g., development, production, testing)")
    # 디버그 모드 활성화 여부
    DEBUG_MODE: bool = Field(False, description="Enable debug mode for detailed logging and error messages")

    # --- 데이터베이스 설정 ---
    # 시작 시 스키마/테이블/함수를 직접 생성할지 여부 (개발 환경 전용, 운영은 Alembic 사용)
    DB_AUTO_CREATE: bool = Field(False, description="Create schemas, tables and id functions on startup (development only)")
    DATABASE_URL: SecretStr = Field(..., description="PostgreSQL database connection URL")

    # --- JWT (JSON Web Token) 설정 ---
    SECRET_KEY: SecretStr = Field(..., description="Secret key for JWT token signing. Keep this highly secure!")
    ALGORITHM: str = Field("HS256", description="Algorithm used for JWT signing (e.g., HS256)")
    ACCESS_TOKEN_EXPIRE_MINUTES: int = Field(30, description="Access token expiration time in minutes")

    # --- 일괄 가져오기(Import) 설정 ---
    IMPORT_BATCH_SIZE: int = Field(500, ge=1, description="Rows written per database transaction")
    IMPORT_MAX_BATCH_SIZE: int = Field(5000, ge=1, description="Upper bound accepted for a caller supplied batch size")
    IMPORT_PREVIEW_ROWS: int = Field(20, ge=1, description="Rows validated and sampled by the preview endpoint")
    IMPORT_PREVIEW_MAX_ERRORS: int = Field(50, ge=1, description="Maximum validation errors returned by preview")
    IMPORT_MAX_FAILURE_RATE: float = Field(0.5, gt=0, le=1, description="Failure rate above which an import is rejected")
    IMPORT_MIN_ATTEMPTS_BEFORE_ABORT: int = Field(10, ge=1, description="Attempts required before the failure rate is evaluated")
    IMPORT_MAX_FILE_SIZE_MB: int = Field(10, ge=1, description="Maximum accepted upload size in megabytes")
    EXPORT_MAX_ROWS: int = Field(10000, ge=1, description="Maximum number of records written to one export file")

    # --- 식별번호(ID) 설정 ---
    ID_HISTORY_DEFAULT_LIMIT: int = Field(100, ge=1, description="Default number of generation log rows returned")

    # Post-initialization validation (Pydantic v2 BaseSettings)
    def model_post_init(self, __context: Any) -> None:  # noqa: ANN001
        # 배치 기본값이 허용 최대치를 넘지 않도록 맞춥니다.
        if self.IMPORT_BATCH_SIZE > self.IMPORT_MAX_BATCH_SIZE:
            self.IMPORT_BATCH_SIZE = self.IMPORT_MAX_BATCH_SIZE


settings = Settings()
