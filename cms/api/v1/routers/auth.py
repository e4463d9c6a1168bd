from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Request, Response, status
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from cms.api.v1.deps import get_current_principal, get_db
from cms.api.v1.schemas.auth import (
    LoginOut,
    LoginRequest,
    PrincipalOut,
    RegisterOut,
    RegisterRequest,
)
from cms.app.services import (
    RegistrationData,
    RegistrationError,
    UsernameTakenError,
    get_service_bundle,
)
from cms.common.auth import Principal, issue_session_token
from cms.common.config import get_settings

router = APIRouter()
logger = logging.getLogger("auth")


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message})


@router.post(
    "/login",
    response_model=LoginOut,
    openapi_extra={
        "requestBody": {
            "required": True,
            "content": {"application/json": {"schema": LoginRequest.model_json_schema()}},
        }
    },
)
async def login(request: Request, db: Session = Depends(get_db)):
    try:
        body = await request.json()
    except ValueError:
        logger.warning("login_rejected reason=invalid_json")
        return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, "Internal server error")

    try:
        payload = LoginRequest.model_validate(body if isinstance(body, dict) else {})
    except ValidationError:
        return _error(status.HTTP_400_BAD_REQUEST, "Missing credentials")
    username = (payload.username or "").strip()
    password = payload.password or ""
    if not username or not password:
        return _error(status.HTTP_400_BAD_REQUEST, "Missing credentials")

    settings = get_settings()
    try:
        user = await run_in_threadpool(
            get_service_bundle(db).user().authenticate, username, password
        )
        if user is None:
            return _error(status.HTTP_401_UNAUTHORIZED, "Invalid username or password")
        token = issue_session_token(
            settings, user_id=user.id, username=user.username, role=user.role
        )
    except Exception:
        logger.exception("login_failed username=%s", username)
        return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, "Internal server error")

    response = JSONResponse(
        content=LoginOut(id=user.id, username=user.username, role=user.role).model_dump()
    )
    response.set_cookie(
        settings.AUTH_SESSION_COOKIE,
        token,
        max_age=settings.AUTH_SESSION_TTL_MINUTES * 60,
        httponly=True,
        samesite="lax",
        secure=settings.is_production,
    )
    logger.info("login_succeeded user_id=%s role=%s", user.id, user.role)
    return response


@router.post("/register", response_model=RegisterOut, status_code=201)
def register(payload: RegisterRequest, db: Session = Depends(get_db)):
    service = get_service_bundle(db).user()
    data = RegistrationData(
        username=payload.username,
        password=payload.password,
        confirm_password=payload.confirm_password,
    )
    try:
        user = service.register(data)
    except RegistrationError as exc:
        raise HTTPException(
            status_code=400,
            detail={"message": str(exc), "error_code": "registration_invalid"},
        ) from exc
    except UsernameTakenError as exc:
        raise HTTPException(
            status_code=409,
            detail={"message": str(exc), "error_code": "username_taken"},
        ) from exc
    return user


@router.post("/logout", status_code=204)
def logout() -> Response:
    response = Response(status_code=204)
    response.delete_cookie(get_settings().AUTH_SESSION_COOKIE)
    return response


@router.get("/me", response_model=PrincipalOut)
def me(principal: Principal = Depends(get_current_principal)):
    return PrincipalOut(
        user_id=principal.user_id,
        username=principal.username,
        role=principal.role,
        source=principal.source,
    )
