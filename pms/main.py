import os

import structlog
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from prometheus_fastapi_instrumentator import Instrumentator
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from slowapi.util import get_remote_address
from sqlalchemy.orm.exc import StaleDataError

from .config import settings
from .db import Base, engine
from .errors import INVALID_REQUEST, PROJECT_VERSION_CONFLICT
from .logging import setup_logging, RequestIdMiddleware
from .auth.router import router as auth_router
from .routes.files import router as files_router
from .routes.users import router as users_router
from .routes.roles import router as roles_router
from .routes.customers import router as customers_router
from .routes.companies import router as companies_router
from .routes.projects import router as projects_router
from .routes.project_tasks import router as project_tasks_router
from .routes.project_reports import router as project_reports_router
from .routes.overview import router as overview_router


log = structlog.get_logger(__name__)


async def validation_exception_handler(request: Request, exc: RequestValidationError):
    log.info("request_rejected", path=request.url.path, errors=len(exc.errors()))
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"detail": INVALID_REQUEST, "errors": jsonable_errors(exc)},
    )


async def stale_data_handler(request: Request, exc: StaleDataError):
    log.warning("project_version_conflict", path=request.url.path)
    return JSONResponse(status_code=status.HTTP_409_CONFLICT, content={"detail": PROJECT_VERSION_CONFLICT})


def jsonable_errors(exc: RequestValidationError) -> list:
    return [{"loc": list(e.get("loc", ())), "msg": e.get("msg"), "type": e.get("type")} for e in exc.errors()]


def create_app() -> FastAPI:
    setup_logging()
    app = FastAPI(title=settings.app_name)
    prefix = "/" + settings.base_path.strip("/") if settings.base_path.strip("/") else ""

    # Middlewares
    app.add_middleware(RequestIdMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[o.strip() for o in settings.client_url.split(",")],
        allow_credentials=settings.client_url != "*",
        allow_methods=["*"],
        allow_headers=["*"],
    )

    limiter = Limiter(key_func=get_remote_address, default_limits=[settings.rate_limit])
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
    app.add_middleware(SlowAPIMiddleware)

    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(StaleDataError, stale_data_handler)

    # Routers; login/refresh must be matched before /users/{user_id}
    app.include_router(auth_router, prefix=prefix)
    app.include_router(users_router, prefix=prefix)
    app.include_router(roles_router, prefix=prefix)
    app.include_router(customers_router, prefix=prefix)
    app.include_router(companies_router, prefix=prefix)
    app.include_router(projects_router, prefix=prefix)
    app.include_router(project_tasks_router, prefix=prefix)
    app.include_router(project_reports_router, prefix=prefix)
    app.include_router(overview_router, prefix=prefix)
    app.include_router(files_router, prefix=prefix)

    # Metrics
    Instrumentator().instrument(app).expose(app)

    @app.on_event("startup")
    def _startup():
        if settings.database_url.startswith("sqlite:///./"):
            os.makedirs("var", exist_ok=True)
        os.makedirs(settings.files_dir, exist_ok=True)
        if settings.auto_create_db:
            Base.metadata.create_all(bind=engine)
        log.info("startup_complete", environment=settings.environment, base_path=settings.base_path)

    return app


app = create_app()
