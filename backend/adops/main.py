"""
FastAPI application entry point.

벤처스퀘어 광고 관리 시스템 - magic-link login and 전자세금계산서 발행
"""

from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.middleware.sessions import SessionMiddleware

from adops.api import api_router
from adops.config import get_settings
from adops.database import close_db, init_db, session_scope
from adops.exceptions import AdOpsError
from adops.scheduler import SchedulerService
from adops.services.session_gate import seed_bootstrap_admin
from adops.utils.logging import setup_logging

logger = structlog.get_logger(__name__)

settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    # Startup
    setup_logging()
    logger.info("app_starting")

    await init_db()
    async with session_scope() as session:
        await seed_bootstrap_admin(session)
    logger.info("database_initialized")

    if settings.uses_default_session_secret():
        logger.warning("session_secret_is_default")

    scheduler = SchedulerService()
    scheduler.start()

    yield

    # Shutdown
    logger.info("app_stopping")
    scheduler.stop()
    await close_db()
    logger.info("database_closed")


app = FastAPI(
    title="AdOps Console",
    description="""
    벤처스퀘어 광고 관리 시스템 백엔드

    ## Features
    - **Auth**: 이메일 매직 링크 로그인 (일회용, 15분 유효)
    - **Invoices**: 세금계산서 작성 / 발행 / 상태조회 / 취소
    - **Reconcile**: 발행 중 통신 장애 후 외부 상태와 동기화
    - **Fiscal**: 사업자 휴폐업 조회
    - **Users**: 운영자 및 권한 관리
    """,
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.add_middleware(
    SessionMiddleware,
    secret_key=settings.session_secret,
    max_age=settings.session_max_age_seconds,
    same_site="lax",
    https_only=False,
)


@app.exception_handler(AdOpsError)
async def adops_error_handler(request: Request, exc: AdOpsError):
    return JSONResponse(status_code=exc.status_code, content={"error": exc.message})


# Include API router
app.include_router(api_router)


@app.get("/")
async def root():
    """Root endpoint - health check."""
    return {
        "status": "healthy",
        "app": "AdOps Console",
        "version": "1.0.0",
    }


@app.get("/health")
async def health():
    """Health check endpoint."""
    return {"status": "ok"}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("adops.main:app", host="0.0.0.0", port=5000, reload=True)
