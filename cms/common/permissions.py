from __future__ import annotations


class Roles:
    ADMIN = "admin"
    CREATOR = "creator"
    USER = "user"
    GUEST = "guest"

    ALL: tuple[str, ...] = (ADMIN, CREATOR, USER, GUEST)
    DEFAULT = USER

    @classmethod
    def is_valid(cls, role: str | None) -> bool:
        return role in cls.ALL


__all__ = ["Roles"]
