# app/main.py
from contextlib import asynccontextmanager
from typing import Optional
import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.engine import Engine

from app.core.config import settings
from app.core.exceptions import RateLimitError, ServiceError
from app.db.session import create_db_engine, init_db
from app.routers import appointment_router, worker_visit_router, sms_router
from app.schemas.common.common import ErrorResponse

logger = logging.getLogger(__name__)

# Every ServiceError is rendered with the same envelope
ERROR_RESPONSES = {
    code: {"model": ErrorResponse} for code in (400, 403, 404, 409, 429, 502)
}


def create_app(engine: Optional[Engine] = None) -> FastAPI:
    """
    Build the API. Pass an engine to run against an existing database
    (tests use in-memory SQLite); otherwise one is created from DATABASE_URL
    and disposed on shutdown.
    """
    logging.basicConfig(
        level=settings.LOG_LEVEL,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        owns_engine = engine is None
        app.state.engine = engine if engine is not None else create_db_engine(settings.DATABASE_URL)
        init_db(app.state.engine)
        logger.info("Concreexpo API started")
        yield
        if owns_engine:
            app.state.engine.dispose()
        logger.info("Concreexpo API stopped")

    app = FastAPI(
        title="Concreexpo API",
        version="1.0.0",
        description="Back office API for site appointments and worker-count visits",
        lifespan=lifespan,
    )

    origins = [o.strip() for o in settings.FRONTEND_URL.split(",") if o.strip()]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(ServiceError)
    async def service_error_handler(request: Request, exc: ServiceError):
        headers = None
        if isinstance(exc, RateLimitError):
            headers = {"Retry-After": str(exc.retry_after)}
        if exc.status_code >= 500:
            logger.error(f"{request.method} {request.url.path} failed: {exc.message} {exc.data}")
        return JSONResponse(
            status_code=exc.status_code,
            content=ErrorResponse(message=exc.message, data=exc.to_data()).model_dump(),
            headers=headers,
        )

    app.include_router(
        appointment_router.router, prefix="/api/appointments", tags=["Appointments"], responses=ERROR_RESPONSES
    )
    app.include_router(
        worker_visit_router.router, prefix="/api/worker-visits", tags=["Worker Visits"], responses=ERROR_RESPONSES
    )
    app.include_router(
        sms_router.router, prefix="/api/sms", tags=["SMS"], responses=ERROR_RESPONSES
    )

    @app.get("/health", tags=["Health"])
    def health():
        return {"status": "ok", "sms_provider": settings.SMS_PROVIDER_NAME}

    return app


app = create_app()
