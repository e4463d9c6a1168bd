#!/usr/bin/env python3
"""Create an account directly in the database.

Usage:
  .venv/bin/python scripts/create_user.py admin --role admin
  .venv/bin/python scripts/create_user.py writer --role creator --password 's3cret!'

Without --password a friendly password is generated and printed once.
"""

from __future__ import annotations

import argparse
import sys

from sqlalchemy.orm import Session

from cms.app.services import (
    InvalidUserOperationError,
    UserCreateData,
    UsernameTakenError,
    get_service_bundle,
)
from cms.common.permissions import Roles
from cms.infra.db.session import get_engine


def create_user(
    username: str, *, role: str, password: str | None = None, email: str | None = None
) -> tuple[int, str, str | None]:
    engine = get_engine()
    with Session(engine, autoflush=False, autocommit=False) as session:
        created = get_service_bundle(session).user().create_user(
            UserCreateData(username=username, role=role, password=password, email=email)
        )
        return created.user.id, created.user.username, created.generated_password


def main() -> None:
    parser = argparse.ArgumentParser(description="Create a CMS account")
    parser.add_argument("username")
    parser.add_argument("--role", choices=Roles.ALL, default=Roles.DEFAULT)
    parser.add_argument("--password", default=None)
    parser.add_argument("--email", default=None)
    args = parser.parse_args()

    try:
        user_id, username, generated = create_user(
            args.username, role=args.role, password=args.password, email=args.email
        )
    except (InvalidUserOperationError, UsernameTakenError) as exc:
        print(f"error: {exc}", file=sys.stderr)
        sys.exit(1)

    print(f"Created user id={user_id} username={username} role={args.role}")
    if generated:
        print(f"Generated password: {generated}")


if __name__ == "__main__":
    main()
