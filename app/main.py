# app/main.py

import logging
from typing import AsyncGenerator
from contextlib import asynccontextmanager

from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession
from fastapi import FastAPI, Depends, HTTPException, status
from fastapi.middleware.cors import CORSMiddleware

from app import API_PREFIX
from app.core.config import settings
from app.core.database import engine, get_session, create_db_and_tables

from app.domains.usr.routers import router as usr_router
from app.domains.lims.routers import router as lims_router
from app.domains.ids.routers import router as ids_router
from app.domains.imp.routers import router as imp_router, export_router

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


# -- 애플리케이션 수명 주기 이벤트 핸들러 --
@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    애플리케이션 시작/종료 시 실행될 작업을 정의합니다.
    스키마와 식별번호 함수는 Alembic 마이그레이션으로 관리하며, DB_AUTO_CREATE가 켜져 있으면 직접 생성합니다.
    """
    logger.info("%s 시작 (env=%s)", settings.APP_NAME, settings.APP_ENV)
    if settings.DB_AUTO_CREATE:
        await create_db_and_tables()

    yield  # 애플리케이션 실행

    logger.info("%s 종료 중...", settings.APP_NAME)
    await engine.dispose()
    logger.info("데이터베이스 연결 풀 종료 완료.")


# -- FastAPI 애플리케이션 인스턴스 생성 --
app = FastAPI(
    title=settings.APP_NAME,
    description=settings.APP_DESCRIPTION,
    version=settings.APP_VERSION,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan
)

# -- CORS 미들웨어 설정 --
# 프로덕션에서는 'allow_origins'를 실제 프론트엔드 도메인으로 제한해야 합니다.
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# -- 도메인 라우터 포함 --
app.include_router(usr_router, prefix=f"{API_PREFIX}/usr", tags=["User Management (사용자 관리)"])
app.include_router(lims_router, prefix=f"{API_PREFIX}/lims", tags=["Laboratory Information Management (실험실 정보 관리)"])
app.include_router(ids_router, prefix=f"{API_PREFIX}/ids", tags=["Identifier Allocation (식별번호 발급)"])
app.include_router(imp_router, prefix=f"{API_PREFIX}/imports", tags=["Bulk Import (일괄 가져오기)"])
app.include_router(export_router, prefix=f"{API_PREFIX}/exports", tags=["Export (내보내기)"])


# -- 루트 엔드포인트 --
@app.get("/", summary="API Root", response_description="Welcome message and documentation link.")
async def read_root():
    """
    LIMS Import API의 루트 엔드포인트입니다.
    API의 시작점을 알리고 문서 링크를 제공합니다.
    """
    return {"message": f"Welcome to {settings.APP_NAME}. Visit /docs for interactive API documentation."}


# -- 헬스 체크 엔드포인트 --
@app.get("/health-check", summary="Health Check", response_description="Status of the application and database connection.")
async def health_check(session: AsyncSession = Depends(get_session)):
    """
    데이터베이스 연결을 테스트하여 서비스의 정상 작동 여부를 확인합니다.
    """
    try:
        result = await session.exec(select(1))
        if result.first():
            return {"status": "ok", "database_connection": "successful"}
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Database health check failed: No result from test query"
        )
    except HTTPException:
        raise
    except Exception as e:
        logger.error("헬스 체크 중 데이터베이스 오류: %s", e)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Database connection error during health check: {e}"
        )
