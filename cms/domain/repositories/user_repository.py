"""User repository for data access operations."""

from __future__ import annotations

from sqlalchemy import func, or_, select
from sqlalchemy.orm import Session

from cms.infra.db.models import User


class UserRepository:
    """Repository for User entity database operations."""

    def __init__(self, session: Session) -> None:
        self._session = session

    def get(self, user_id: int) -> User | None:
        return self._session.get(User, user_id)

    def get_by_username(self, username: str) -> User | None:
        stmt = select(User).where(User.username == username)
        return self._session.execute(stmt).scalar_one_or_none()

    def exists(self, *, username: str, email: str | None = None) -> bool:
        condition = User.username == username
        if email:
            condition = or_(condition, User.email == email)
        stmt = select(func.count()).select_from(User).where(condition)
        return self._session.execute(stmt).scalar_one() > 0

    def add(self, user: User) -> User:
        self._session.add(user)
        self._session.flush()
        return user

    def paginate_users(
        self,
        page: int,
        size: int,
        *,
        search_query: str | None = None,
        role: str | None = None,
    ) -> tuple[list[User], int]:
        """Paginate users, newest first.

        Args:
            page: Page number (1-based).
            size: Number of items per page.
            search_query: Optional case-insensitive username/email fragment.
            role: Optional exact role filter.

        Returns:
            Tuple of (list of users, total count).
        """
        base_stmt = select(User)
        count_stmt = select(func.count()).select_from(User)

        if role is not None:
            base_stmt = base_stmt.where(User.role == role)
            count_stmt = count_stmt.where(User.role == role)

        if search_query:
            pattern = f"%{search_query}%"
            condition = or_(User.username.ilike(pattern), User.email.ilike(pattern))
            base_stmt = base_stmt.where(condition)
            count_stmt = count_stmt.where(condition)

        base_stmt = base_stmt.order_by(User.created_at.desc(), User.id.desc())
        base_stmt = base_stmt.offset((page - 1) * size).limit(size)

        items = list(self._session.execute(base_stmt).scalars())
        total = self._session.execute(count_stmt).scalar_one()
        return items, total

    def count_by_role(self) -> dict[str, int]:
        stmt = select(User.role, func.count()).group_by(User.role)
        return {role: int(count) for role, count in self._session.execute(stmt).all()}
