"""Account service: login, registration and the admin user directory."""

from __future__ import annotations

import logging
import string
from dataclasses import dataclass

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from cms.common.config import Settings, get_settings
from cms.common.permissions import Roles
from cms.common.security import generate_friendly_password, hash_password, verify_password
from cms.domain.repositories.user_repository import UserRepository
from cms.infra.db.models import User

from .base import BaseService, ServiceError

logger = logging.getLogger("auth")

USERNAME_MIN_LENGTH = 3
USERNAME_MAX_LENGTH = 32
PASSWORD_MIN_LENGTH = 6
_SPECIAL_CHARACTERS = frozenset(string.punctuation + " ")


class RegistrationError(ServiceError):
    """Raised when registration input violates the account policy."""


class UsernameTakenError(ServiceError):
    """Raised when the username (or its derived email) already exists."""


class InvalidUserOperationError(ServiceError):
    """Raised for malformed admin user operations."""


@dataclass(frozen=True, slots=True)
class RegistrationData:
    username: str
    password: str
    confirm_password: str


@dataclass(frozen=True, slots=True)
class UserCreateData:
    username: str
    role: str = Roles.DEFAULT
    password: str | None = None
    email: str | None = None


@dataclass(frozen=True, slots=True)
class CreatedUser:
    user: User
    generated_password: str | None


def normalize_username(username: str | None) -> str:
    return (username or "").strip().lower()


def password_policy_violations(password: str, policy: str) -> list[str]:
    """Return human-readable reasons ``password`` fails ``policy``."""
    problems: list[str] = []
    if len(password) < PASSWORD_MIN_LENGTH:
        problems.append(f"Password must be at least {PASSWORD_MIN_LENGTH} characters")
    if policy != "strict":
        return problems
    if not any(ch.isdigit() for ch in password):
        problems.append("Password must contain a digit")
    if not any(ch.islower() for ch in password):
        problems.append("Password must contain a lowercase letter")
    if not any(ch.isupper() for ch in password):
        problems.append("Password must contain an uppercase letter")
    if not any(ch in _SPECIAL_CHARACTERS for ch in password):
        problems.append("Password must contain a special character")
    return problems


class UserService(BaseService):
    def __init__(
        self,
        session: Session,
        *,
        repository: UserRepository | None = None,
        settings: Settings | None = None,
    ) -> None:
        super().__init__(session)
        self._repo = repository or UserRepository(session)
        self._settings = settings or get_settings()

    def synthetic_email(self, username: str) -> str:
        return f"{username}@{self._settings.AUTH_EMAIL_DOMAIN}"

    def authenticate(self, username: str, password: str) -> User | None:
        """Return the account when the password matches, otherwise ``None``.

        Unknown usernames and wrong passwords are indistinguishable to callers.
        """
        user = self._repo.get_by_username(normalize_username(username))
        if user is None or not verify_password(password, user.password_hash):
            logger.info("login_rejected username=%s", normalize_username(username))
            return None
        return user

    def validate_registration(self, data: RegistrationData) -> str:
        """Check registration input without touching the account store.

        Returns:
            The normalized username.

        Raises:
            RegistrationError: On the first policy violation.
        """
        username = normalize_username(data.username)
        if not USERNAME_MIN_LENGTH <= len(username) <= USERNAME_MAX_LENGTH:
            raise RegistrationError(
                f"Username must be between {USERNAME_MIN_LENGTH} and "
                f"{USERNAME_MAX_LENGTH} characters"
            )
        problems = password_policy_violations(
            data.password or "", self._settings.AUTH_PASSWORD_POLICY
        )
        if problems:
            raise RegistrationError(problems[0])
        if data.password != data.confirm_password:
            raise RegistrationError("Passwords do not match")
        return username

    def register(self, data: RegistrationData) -> User:
        username = self.validate_registration(data)
        created = self._insert(
            username=username,
            email=self.synthetic_email(username),
            password=data.password,
            role=Roles.DEFAULT,
        )
        logger.info("user_registered username=%s id=%s", created.username, created.id)
        return created

    def create_user(self, data: UserCreateData) -> CreatedUser:
        """Admin path: create an account with an explicit role.

        A friendly password is generated when none is supplied and returned
        once in the result.
        """
        username = normalize_username(data.username)
        if not USERNAME_MIN_LENGTH <= len(username) <= USERNAME_MAX_LENGTH:
            raise InvalidUserOperationError(
                f"Username must be between {USERNAME_MIN_LENGTH} and "
                f"{USERNAME_MAX_LENGTH} characters"
            )
        if not Roles.is_valid(data.role):
            raise InvalidUserOperationError(f"Unknown role '{data.role}'")

        generated = None
        password = data.password
        if not password:
            generated = password = generate_friendly_password()
        elif len(password) < PASSWORD_MIN_LENGTH:
            raise InvalidUserOperationError(
                f"Password must be at least {PASSWORD_MIN_LENGTH} characters"
            )

        email = (data.email or "").strip().lower() or self.synthetic_email(username)
        user = self._insert(
            username=username, email=email, password=password, role=data.role
        )
        return CreatedUser(user=user, generated_password=generated)

    def _insert(self, *, username: str, email: str, password: str, role: str) -> User:
        if self._repo.exists(username=username, email=email):
            raise UsernameTakenError("Username is already taken")
        user = User(
            username=username,
            email=email,
            password_hash=hash_password(password),
            role=role,
        )
        try:
            self._repo.add(user)
            self._commit()
        except IntegrityError as exc:
            raise UsernameTakenError("Username is already taken") from exc
        self.session.refresh(user)
        return user

    def get_user(self, user_id: int) -> User | None:
        return self._repo.get(user_id)

    def list_users(
        self,
        *,
        page: int,
        size: int,
        search_query: str | None = None,
        role: str | None = None,
    ) -> tuple[list[User], int]:
        query = (search_query or "").strip() or None
        return self._repo.paginate_users(page, size, search_query=query, role=role)

    def role_stats(self) -> dict[str, int]:
        counts = self._repo.count_by_role()
        stats = {role: counts.get(role, 0) for role in Roles.ALL}
        stats["total"] = sum(counts.values())
        return stats
