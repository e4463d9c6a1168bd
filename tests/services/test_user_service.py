"""UserService 的注册、登录与管理员目录行为。"""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest

from cms.app.services import (
    InvalidUserOperationError,
    RegistrationData,
    RegistrationError,
    UserCreateData,
    UsernameTakenError,
    UserService,
)
from cms.common.config import Settings
from cms.common.permissions import Roles
from cms.common.security import verify_password


def _settings(**overrides) -> Settings:
    return Settings(DB_URL="sqlite://", **overrides)


@pytest.fixture
def service(db_session) -> UserService:
    return UserService(db_session, settings=_settings())


class TestRegistrationValidation:
    """校验在访问账户存储之前完成。"""

    @pytest.mark.parametrize(
        "data, message",
        [
            (RegistrationData("ab", "secret1", "secret1"), "Username must be"),
            (RegistrationData("alice", "short", "short"), "at least 6"),
            (RegistrationData("alice", "secret1", "secret2"), "do not match"),
        ],
    )
    def test_rejects_without_touching_store(self, data, message):
        repo = MagicMock()
        service = UserService(MagicMock(), repository=repo, settings=_settings())

        with pytest.raises(RegistrationError, match=message):
            service.register(data)

        repo.exists.assert_not_called()
        repo.add.assert_not_called()

    def test_strict_policy_requires_character_classes(self):
        service = UserService(
            MagicMock(),
            repository=MagicMock(),
            settings=_settings(AUTH_PASSWORD_POLICY="strict"),
        )
        with pytest.raises(RegistrationError, match="digit"):
            service.validate_registration(
                RegistrationData("alice", "abcdefG!", "abcdefG!")
            )
        assert (
            service.validate_registration(
                RegistrationData("alice", "abcd3fG!", "abcd3fG!")
            )
            == "alice"
        )

    def test_username_is_trimmed_and_lowercased(self):
        service = UserService(MagicMock(), repository=MagicMock(), settings=_settings())
        assert (
            service.validate_registration(
                RegistrationData("  Alice ", "secret1", "secret1")
            )
            == "alice"
        )


def test_register_creates_user_with_synthetic_email(service):
    user = service.register(RegistrationData(" Bob ", "secret1", "secret1"))

    assert user.id is not None
    assert user.username == "bob"
    assert user.email == "bob@users.local"
    assert user.role == Roles.USER
    assert user.password_hash != "secret1"
    assert verify_password("secret1", user.password_hash)


def test_register_duplicate_username(service):
    service.register(RegistrationData("carol", "secret1", "secret1"))
    with pytest.raises(UsernameTakenError):
        service.register(RegistrationData("CAROL", "secret2", "secret2"))


def test_authenticate(service):
    service.register(RegistrationData("dave", "secret1", "secret1"))

    assert service.authenticate("Dave", "secret1").username == "dave"
    assert service.authenticate("dave", "wrong") is None
    assert service.authenticate("nobody", "secret1") is None


def test_admin_create_generates_password(service):
    created = service.create_user(UserCreateData(username="erin", role=Roles.CREATOR))

    assert created.generated_password
    assert created.user.role == Roles.CREATOR
    assert verify_password(created.generated_password, created.user.password_hash)


def test_admin_create_keeps_explicit_password(service):
    created = service.create_user(
        UserCreateData(username="frank", role=Roles.ADMIN, password="hunter22")
    )
    assert created.generated_password is None
    assert service.authenticate("frank", "hunter22") is not None


def test_admin_create_rejects_unknown_role(service):
    with pytest.raises(InvalidUserOperationError):
        service.create_user(UserCreateData(username="gina", role="owner"))


def test_list_users_filters_and_stats(service):
    service.create_user(UserCreateData(username="henry", role=Roles.ADMIN))
    service.create_user(UserCreateData(username="ivy", role=Roles.USER))
    service.create_user(
        UserCreateData(username="jack", role=Roles.USER, email="jack@example.com")
    )

    items, total = service.list_users(page=1, size=10, search_query="EXAMPLE")
    assert total == 1
    assert [u.username for u in items] == ["jack"]

    items, total = service.list_users(page=1, size=10, role=Roles.USER)
    assert total == 2
    assert {u.username for u in items} == {"ivy", "jack"}

    items, total = service.list_users(page=2, size=2)
    assert total == 3
    assert len(items) == 1

    stats = service.role_stats()
    assert stats == {"admin": 1, "creator": 0, "user": 2, "guest": 0, "total": 3}
