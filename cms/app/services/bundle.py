from __future__ import annotations

from dataclasses import dataclass, field

from sqlalchemy.orm import Session

from cms.domain.repositories import UserRepository

from .user_service import UserService


@dataclass
class ServiceBundle:
    """Lazily constructs application services sharing the same session."""

    session: Session
    _user: UserService | None = field(default=None, init=False, repr=False)

    def user(self) -> UserService:
        if self._user is None:
            self._user = UserService(
                self.session, repository=UserRepository(self.session)
            )
        return self._user


def get_service_bundle(session: Session) -> ServiceBundle:
    return ServiceBundle(session=session)
