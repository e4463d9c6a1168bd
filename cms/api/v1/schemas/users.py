from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from cms.common.permissions import Roles


class UserOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    username: str
    email: str
    role: str
    created_at: datetime | None = None
    updated_at: datetime | None = None


class RoleStats(BaseModel):
    total: int = 0
    admin: int = 0
    creator: int = 0
    user: int = 0
    guest: int = 0


class UsersPage(BaseModel):
    page: int
    size: int
    total: int
    items: list[UserOut]
    stats: RoleStats


class UserCreate(BaseModel):
    username: str = Field(min_length=1, max_length=64)
    role: str = Field(default=Roles.DEFAULT, pattern="^(admin|creator|user|guest)$")
    password: str | None = None
    email: str | None = None


class UserCreatedOut(BaseModel):
    user: UserOut
    generated_password: str | None = None
