import logging

import uvicorn
from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import inspect, text
from sqlalchemy.engine.url import make_url
from sqlalchemy.exc import OperationalError

from cms.api.v1.deps import get_db
from cms.api.v1.routers.auth import router as auth_router
from cms.api.v1.routers.storage import router as storage_router
from cms.api.v1.routers.users import router as users_router
from cms.api.v1.utils import PlainTextHTTPError, plain_text_error_handler
from cms.common.config import get_settings
from cms.common.logging import STARTUP_LOGGER, setup_logging
from cms.infra.db.alembic_support import get_head_revision, upgrade_to_head
from cms.infra.db.session import get_engine
from cms.infra.observability.metrics import metrics_app
from cms.infra.observability.middleware import MetricsMiddleware
from cms.infra.storage import BucketRegistry

ERROR_CODE_BY_STATUS = {
    400: "bad_request",
    401: "unauthorized",
    403: "forbidden",
    404: "not_found",
    405: "method_not_allowed",
    409: "conflict",
    413: "payload_too_large",
    415: "unsupported_media_type",
    429: "too_many_requests",
    500: "internal_error",
    502: "bad_gateway",
    503: "service_unavailable",
}


def _normalize_detail(detail):
    if isinstance(detail, dict):
        maybe_code = detail.get("error_code")
        cleaned = {k: v for k, v in detail.items() if k != "error_code"}
        if len(cleaned) == 1 and "message" in cleaned:
            cleaned = cleaned["message"]
        if not cleaned:
            cleaned = None
        return cleaned, maybe_code if isinstance(maybe_code, str) else None
    return detail, None


def _resolve_error_code(status_code: int, override: str | None = None) -> str:
    if override:
        return override
    if status_code == 422:
        return "validation_error"
    return ERROR_CODE_BY_STATUS.get(status_code, "unknown_error")


def _describe_db_target(db_url: str) -> str:
    try:
        url = make_url(db_url)
    except Exception:
        return "<invalid DB_URL>"

    if url.drivername.startswith("sqlite"):
        return f"{url.drivername}:///{url.database or ':memory:'}"
    user = url.username or "?"
    host = url.host or "?"
    port = f":{url.port}" if url.port else ""
    database = f"/{url.database}" if url.database else ""
    return f"{url.drivername}://{user}@{host}{port}{database}"


def create_app(*, bucket_registry: BucketRegistry | None = None) -> FastAPI:
    settings = get_settings()
    setup_logging()
    app = FastAPI(
        title="CMS Service",
        version="v1.0",
        description="Content management service: accounts, admin directory and storage browser",
    )
    app.state.bucket_registry = bucket_registry or BucketRegistry.from_settings(settings)

    # Optional CORS
    if settings.CORS_ENABLED:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=settings.CORS_ORIGINS or ["*"],
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    # Routers
    app.include_router(auth_router, prefix="/api", tags=["auth"])
    app.include_router(users_router, prefix="/api", tags=["admin"])
    app.include_router(storage_router, prefix="/api", tags=["storage"])

    # Metrics
    if settings.ENABLE_METRICS:
        app.add_middleware(MetricsMiddleware)
        app.mount("/metrics", metrics_app)

    @app.on_event("startup")
    def on_startup() -> None:
        startup_logger = logging.getLogger(STARTUP_LOGGER)
        if settings.AUTO_APPLY_MIGRATIONS:
            db_target = _describe_db_target(settings.DB_URL)
            startup_logger.info(
                "正在执行数据库迁移前的连接检查。[event=auto_migration_precheck] (db_target=%s)",
                db_target,
            )
            try:
                engine = get_engine()
                with engine.connect() as connection:
                    connection.execute(text("SELECT 1"))
            except OperationalError as exc:
                startup_logger.error(
                    "无法连接数据库，应用启动中断，请检查 DB_URL、账号密码或网络配置。"
                    " [event=auto_migration_connection_failed] (db_target=%s，error=%s)",
                    db_target,
                    exc,
                )
                raise
            try:
                upgrade_to_head()
            except Exception as exc:
                startup_logger.exception(
                    "自动执行数据库迁移失败，请检查数据库权限与迁移脚本。"
                    " [event=auto_migration_failed] (db_target=%s，error=%s)",
                    db_target,
                    exc,
                )
                raise
            startup_logger.info(
                "数据库迁移完成。[event=auto_migration_succeeded] (db_target=%s)",
                db_target,
            )

        if settings.STORAGE_VERIFY_ON_STARTUP:
            startup_logger.info(
                "正在检查对象存储连通性。[event=storage_check_begin] (aliases=%s)",
                ",".join(app.state.bucket_registry.aliases) or "-",
            )
            app.state.bucket_registry.verify_connectivity(
                fail_fast=settings.FAIL_ON_STARTUP_S3
            )

    app.add_exception_handler(PlainTextHTTPError, plain_text_error_handler)

    @app.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException):
        logger = logging.getLogger("http")
        normalized_detail, code_override = _normalize_detail(exc.detail)
        logger.log(
            logging.WARNING if exc.status_code < 500 else logging.ERROR,
            "http_exception status=%s detail=%s method=%s path=%s request_id=%s",
            exc.status_code,
            normalized_detail,
            request.method,
            request.url.path,
            request.headers.get("X-Request-Id"),
            extra={
                "extra": {
                    "status": exc.status_code,
                    "detail": normalized_detail,
                    "method": request.method,
                    "route": request.url.path,
                    "request_id": request.headers.get("X-Request-Id"),
                }
            },
        )
        return JSONResponse(
            status_code=exc.status_code,
            media_type="application/problem+json",
            headers=getattr(exc, "headers", None),
            content={
                "type": "about:blank",
                "title": "HTTP Error",
                "status": exc.status_code,
                "detail": normalized_detail,
                "error_code": _resolve_error_code(exc.status_code, code_override),
                "instance": str(request.url),
                "request_id": request.headers.get("X-Request-Id"),
            },
        )

    @app.exception_handler(RequestValidationError)
    async def request_validation_exception_handler(
        request: Request, exc: RequestValidationError
    ):
        return JSONResponse(
            status_code=422,
            media_type="application/problem+json",
            content={
                "type": "about:blank",
                "title": "Validation Error",
                "status": 422,
                # 确保可序列化
                "detail": jsonable_encoder(exc.errors()),
                "error_code": _resolve_error_code(422),
                "instance": str(request.url),
                "request_id": request.headers.get("X-Request-Id"),
            },
        )

    @app.get("/health")
    async def health():
        return {"status": "ok"}

    @app.get("/ready")
    def ready(db=Depends(get_db)):
        try:
            bind = db.get_bind()
            db.execute(text("SELECT 1"))
            tables = set(inspect(bind).get_table_names())
            detail: dict[str, object] = {}
            if "users" not in tables:
                detail["missing_tables"] = ["users"]

            head = get_head_revision()
            try:
                current = db.execute(
                    text("SELECT version_num FROM alembic_version")
                ).scalar_one_or_none()
            except Exception as exc:  # pragma: no cover - version table missing
                detail["migrations"] = {
                    "status": "version_table_missing",
                    "expected": head,
                    "detail": str(exc),
                }
            else:
                if head and current != head:
                    detail["migrations"] = {
                        "status": "out_of_date",
                        "current": current,
                        "expected": head,
                    }

            if detail:
                return {"status": "not_ready", "detail": detail}
            return {"status": "ready"}
        except OperationalError as exc:
            return {"status": "not_ready", "detail": {"db": str(exc)}}

    return app


app = create_app()

if __name__ == "__main__":
    uvicorn.run("cms.main:app", host="0.0.0.0", port=8000, reload=True)
