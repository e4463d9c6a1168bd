from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Generator

from fastapi import Depends, Header, HTTPException, Request

from cms.api.v1.utils import PlainTextHTTPError
from cms.app.services.storage_service import StorageBrowserService
from cms.common.auth import AuthenticationError, Authenticator, Principal
from cms.common.config import get_settings
from cms.infra.db.session import get_session_factory
from cms.infra.storage.registry import BucketRegistry

logger = logging.getLogger("http")

DEV_ONLY_MESSAGE = "Forbidden: dev-only endpoint"


def get_db() -> Generator:
    session_factory = get_session_factory()
    db = session_factory()
    try:
        yield db
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


def get_bucket_registry(request: Request) -> BucketRegistry:
    registry = getattr(request.app.state, "bucket_registry", None)
    if registry is None:
        raise PlainTextHTTPError(500, "Error: storage registry is not initialised")
    return registry


def get_storage_service(
    registry: BucketRegistry = Depends(get_bucket_registry),
) -> StorageBrowserService:
    return StorageBrowserService(registry)


def require_dev_mode() -> None:
    if get_settings().is_production:
        raise PlainTextHTTPError(403, DEV_ONLY_MESSAGE)


def get_current_principal(
    request: Request,
    authorization: str | None = Header(default=None),
) -> Principal:
    settings = get_settings()
    authenticator = Authenticator(settings)
    try:
        return authenticator.authenticate(
            authorization_header=authorization,
            session_cookie=request.cookies.get(settings.AUTH_SESSION_COOKIE),
        )
    except AuthenticationError as exc:
        raise HTTPException(
            status_code=401,
            detail={
                "message": str(exc),
                "error_code": "unauthenticated",
            },
        ) from exc


def require_roles(*roles: str) -> Callable[[], None]:
    if not roles:
        raise ValueError("At least one role must be provided")

    def dependency(principal: Principal = Depends(get_current_principal)) -> None:
        if not principal.has_any_role(roles):
            logger.warning(
                "role_denied user_id=%s role=%s required=%s",
                principal.user_id,
                principal.role,
                ",".join(roles),
            )
            raise HTTPException(
                status_code=403,
                detail={
                    "message": "Missing required role",
                    "required_roles": list(roles),
                    "error_code": "insufficient_roles",
                },
            )

    return dependency


def require_role(role: str) -> Callable[[], None]:
    return require_roles(role)
