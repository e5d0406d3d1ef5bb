"""Shared fixtures: an isolated SQLite store, app config, API client and accounts."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable

import pytest
from fastapi.testclient import TestClient

from tutorhub.config.app_config import AppConfig, AuthConfig, DatabaseConfig
from tutorhub.core import accounts
from tutorhub.core.auth import Principal, hash_password, issue_token
from tutorhub.db.database import Database, new_id
from tutorhub.utils.time_utils import utc_now
from tutorhub.web.api import create_app

PASSWORD = "Secret123!"


@dataclass
class Account:
    """A registered user plus a ready-to-use bearer token."""

    id: str
    email: str
    role: str
    token: str

    @property
    def headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self.token}"}

    @property
    def principal(self) -> Principal:
        return Principal(id=self.id, role=self.role, email=self.email)


@pytest.fixture
def config(tmp_path) -> AppConfig:
    """App config pointing at a temp database, with cheap password hashing."""
    return AppConfig(
        database=DatabaseConfig(path=str(tmp_path / "tutorhub.db")),
        auth=AuthConfig(secret="test-secret", bcrypt_rounds=4),
    )


@pytest.fixture
def database(config):
    """Open store with the full schema."""
    db = Database(config.database.path)
    db.open()
    yield db
    db.close()


@pytest.fixture
def client(config, database):
    """API client sharing the `database` fixture."""
    with TestClient(create_app(config, database)) as test_client:
        yield test_client


@pytest.fixture
def make_account(config, database) -> Callable[..., Account]:
    """Factory: register a user through the service layer.

    Tutors are approved unless `approved=False`. Admins are inserted
    directly since they cannot self-register.
    """
    counter = {"n": 0}

    def factory(role: str = "student", email: str | None = None, approved: bool = True,
                full_name: str | None = None) -> Account:
        counter["n"] += 1
        email = email or f"{role}{counter['n']}@example.com"
        full_name = full_name or f"{role.title()} {counter['n']}"

        if role == "admin":
            user_id = new_id()
            now = utc_now()
            with database.transaction() as tx:
                tx.execute(
                    """
                    INSERT INTO users (id, email, password_hash, full_name, role, is_verified,
                                       created_at, updated_at)
                    VALUES (?, ?, ?, ?, 'admin', 1, ?, ?)
                    """,
                    (user_id, email, hash_password(PASSWORD, 4), full_name, now, now),
                )
                tx.execute("INSERT INTO user_settings (user_id) VALUES (?)", (user_id,))
            token = issue_token({"id": user_id, "email": email, "role": "admin"}, config.auth)
            return Account(id=user_id, email=email, role="admin", token=token)

        result = accounts.register(database, config.auth, email, PASSWORD, full_name, role)
        user_id = result["user"]["id"]
        if approved and role in ("tutor", "both"):
            with database.transaction() as tx:
                tx.execute(
                    "UPDATE tutor_profiles SET status = 'approved', hourly_rate = 30 WHERE user_id = ?",
                    (user_id,),
                )
        return Account(id=user_id, email=email, role=role, token=result["token"])

    return factory


@pytest.fixture
def student(make_account) -> Account:
    return make_account("student")


@pytest.fixture
def tutor(make_account) -> Account:
    return make_account("tutor")


@pytest.fixture
def admin(make_account) -> Account:
    return make_account("admin")
