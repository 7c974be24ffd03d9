import os

import structlog
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from prometheus_fastapi_instrumentator import Instrumentator
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from slowapi.util import get_remote_address
from sqlalchemy import inspect

from .config import settings
from .db import Base, engine
from .logging import setup_logging, RequestIdMiddleware
from .routes.approvals import router as approvals_router
from .routes.files import router as files_router
from .routes.locations import router as locations_router
from .routes.reports import router as reports_router
from .routes.wizard import router as wizard_router
from .services.records import RecordNotFound
from .workflow.errors import WorkflowError

logger = structlog.get_logger(__name__)


async def workflow_error_handler(request: Request, exc: WorkflowError):
    level = logger.warning if exc.status_code >= 500 else logger.info
    level(
        "workflow_error",
        error=type(exc).__name__,
        status_code=exc.status_code,
        detail=exc.message,
        path=request.url.path,
    )
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


async def record_not_found_handler(request: Request, exc: RecordNotFound):
    return JSONResponse(status_code=404, content={"detail": "Report not found"})


def create_app() -> FastAPI:
    setup_logging()
    app = FastAPI(title=settings.app_name)

    # Middlewares
    app.add_middleware(RequestIdMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    limiter = Limiter(key_func=get_remote_address, default_limits=[settings.rate_limit])
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
    app.add_middleware(SlowAPIMiddleware)

    app.add_exception_handler(WorkflowError, workflow_error_handler)
    app.add_exception_handler(RecordNotFound, record_not_found_handler)

    # Routers
    app.include_router(wizard_router)
    app.include_router(reports_router)
    app.include_router(approvals_router)
    app.include_router(locations_router)
    app.include_router(files_router)

    # Metrics
    Instrumentator().instrument(app).expose(app)

    @app.get("/health")
    def health():
        return {"status": "ok", "environment": settings.environment}

    @app.on_event("startup")
    def _startup():
        logger.info("startup", environment=settings.environment)
        # Ensure local SQLite directory exists
        if settings.database_url.startswith("sqlite:///./"):
            os.makedirs("var", exist_ok=True)
        if settings.auto_create_db:
            existing_tables = set(inspect(engine).get_table_names())
            missing = set(Base.metadata.tables.keys()) - existing_tables
            if missing:
                logger.info("creating_tables", tables=sorted(missing))
                Base.metadata.create_all(bind=engine)

    return app


app = create_app()
