import logging
import time
from urllib.parse import urlparse
from uuid import uuid4

from bemestar.settings import settings

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from bemestar.api.router import api_router
from bemestar.db import get_database_url
from bemestar.domain.errors import NotAuthenticated, ProfileMissing, StoreUnavailable
from bemestar.logging_config import configure_logging, request_id_var, scope_label_var

configure_logging(level=settings.log_level, log_file=settings.log_file)
http_logger = logging.getLogger("bemestar.http")
http_logger.setLevel(logging.INFO)
startup_logger = logging.getLogger("bemestar.startup")


def _describe_database_url(database_url: str) -> str:
    database_url = (database_url or "").strip()
    if not database_url:
        return "sqlite:///./bemestar.db"
    if database_url.startswith("sqlite"):
        return database_url
    parsed = urlparse(database_url)
    host = parsed.hostname or "-"
    port = parsed.port or "-"
    database = parsed.path.lstrip("/") or "-"
    scheme = parsed.scheme or "db"
    return f"{scheme}://{host}:{port}/{database}"


startup_logger.info("Database target: %s", _describe_database_url(get_database_url()))

app = FastAPI(title="Bem-Estar API", version="0.1.0")


@app.middleware("http")
async def http_request_logger(request, call_next):
    request_id = request.headers.get("X-Request-ID") or str(uuid4())
    token = request_id_var.set(request_id)
    scope_token = scope_label_var.set(None)
    started = time.perf_counter()
    try:
        response = await call_next(request)
        response.headers["X-Request-ID"] = request_id
        if settings.log_http_requests:
            http_logger.info(
                "%s %s -> %s (%.1fms)",
                request.method,
                request.url.path,
                response.status_code,
                (time.perf_counter() - started) * 1000,
            )
        return response
    except Exception:
        http_logger.exception("%s %s -> unhandled exception", request.method, request.url.path)
        raise
    finally:
        scope_label_var.reset(scope_token)
        request_id_var.reset(token)


@app.exception_handler(NotAuthenticated)
async def not_authenticated_handler(request: Request, exc: NotAuthenticated) -> JSONResponse:
    return JSONResponse(
        status_code=401,
        content={"detail": str(exc) or "not authenticated"},
        headers={"WWW-Authenticate": "Bearer"},
    )


@app.exception_handler(ProfileMissing)
async def profile_missing_handler(request: Request, exc: ProfileMissing) -> JSONResponse:
    http_logger.error("profile missing for caller=%s", exc.caller_id)
    return JSONResponse(status_code=403, content={"detail": "profile not configured"})


@app.exception_handler(StoreUnavailable)
async def store_unavailable_handler(request: Request, exc: StoreUnavailable) -> JSONResponse:
    return JSONResponse(
        status_code=503,
        content={"detail": "database unavailable", "operation": exc.operation},
    )


app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(api_router)
