from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class LoginRequest(BaseModel):
    username: str | None = None
    password: str | None = None


class LoginOut(BaseModel):
    id: int
    username: str
    role: str


class RegisterRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    username: str = ""
    password: str = ""
    confirm_password: str = Field(default="", alias="confirmPassword")


class RegisterOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    username: str
    email: str
    role: str


class PrincipalOut(BaseModel):
    user_id: str
    username: str
    role: str
    source: str
