from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from cms.api.v1.deps import get_db, require_role
from cms.api.v1.schemas.users import (
    RoleStats,
    UserCreate,
    UserCreatedOut,
    UserOut,
    UsersPage,
)
from cms.app.services import (
    InvalidUserOperationError,
    UserCreateData,
    UsernameTakenError,
    get_service_bundle,
)
from cms.common.permissions import Roles

router = APIRouter(dependencies=[Depends(require_role(Roles.ADMIN))])


@router.get("/admin/users", response_model=UsersPage)
def list_users(
    query: str | None = Query(default=None),
    role: str | None = Query(default=None, pattern="^(admin|creator|user|guest)$"),
    page: int = Query(default=1, ge=1),
    size: int = Query(default=20, ge=1, le=100),
    db: Session = Depends(get_db),
):
    """分页列出账号，附带按角色统计。"""
    service = get_service_bundle(db).user()
    items, total = service.list_users(
        page=page, size=size, search_query=query, role=role
    )
    return UsersPage(
        page=page,
        size=size,
        total=total,
        items=[UserOut.model_validate(item) for item in items],
        stats=RoleStats(**service.role_stats()),
    )


@router.post("/admin/users", response_model=UserCreatedOut, status_code=201)
def create_user(payload: UserCreate, db: Session = Depends(get_db)):
    service = get_service_bundle(db).user()
    try:
        created = service.create_user(
            UserCreateData(
                username=payload.username,
                role=payload.role,
                password=payload.password,
                email=payload.email,
            )
        )
    except InvalidUserOperationError as exc:
        raise HTTPException(
            status_code=400,
            detail={"message": str(exc), "error_code": "invalid_user"},
        ) from exc
    except UsernameTakenError as exc:
        raise HTTPException(
            status_code=409,
            detail={"message": str(exc), "error_code": "username_taken"},
        ) from exc
    return UserCreatedOut(
        user=UserOut.model_validate(created.user),
        generated_password=created.generated_password,
    )
