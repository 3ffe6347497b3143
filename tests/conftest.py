"""Shared pytest fixtures: one app per test, parametrised over both backends."""

from typing import Any, Dict, Iterator

import mongomock
import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from auth import create_token, hash_password
from database import DatabaseType, MongoConnection, SQLConnection
from dependencies import Repositories, mongo_repositories, sql_repositories
from main import create_app
from schemas import User, UserRole
from settings import Settings

DEFAULT_PASSWORD = "s3cret-pass"


def build_sql_repositories() -> Repositories:
    repos = sql_repositories(SQLConnection("sqlite://"))
    repos.prepare()
    return repos


def build_mongo_repositories() -> Repositories:
    connection = MongoConnection(
        "mongodb://localhost:27017/commerce_test",
        client_factory=mongomock.MongoClient,
    )
    repos = mongo_repositories(connection)
    repos.prepare()
    return repos


BUILDERS = {
    DatabaseType.POSTGRESQL: build_sql_repositories,
    DatabaseType.MONGODB: build_mongo_repositories,
}


@pytest.fixture(params=[DatabaseType.POSTGRESQL, DatabaseType.MONGODB], ids=lambda t: t.value)
def repositories(request) -> Iterator[Repositories]:
    repos = BUILDERS[request.param]()
    yield repos
    repos.close()


@pytest.fixture()
def settings(repositories: Repositories) -> Settings:
    return Settings(
        _env_file=None,
        database_type=repositories.backend,
        jwt_secret="test-secret",
        payment_success_rate=1.0,
    )


@pytest.fixture()
def app(settings: Settings, repositories: Repositories) -> FastAPI:
    return create_app(settings, repositories)


@pytest.fixture()
def client(app: FastAPI) -> Iterator[TestClient]:
    with TestClient(app) as test_client:
        yield test_client


def make_user(
    repos: Repositories,
    email: str,
    role: UserRole = UserRole.USER,
    verified: bool = True,
    password: str = DEFAULT_PASSWORD,
) -> Dict[str, Any]:
    user = User(
        email=email,
        name=email.split("@")[0].title(),
        phone="+15550100",
        password_hash=hash_password(password),
        role=role,
        is_verified=verified,
    )
    return repos.users.create(user)


def auth_headers(user: Dict[str, Any], settings: Settings) -> Dict[str, str]:
    return {"Authorization": f"Bearer {create_token(user, settings)}"}


@pytest.fixture()
def customer(repositories: Repositories) -> Dict[str, Any]:
    return make_user(repositories, "carol@example.com")


@pytest.fixture()
def admin(repositories: Repositories) -> Dict[str, Any]:
    return make_user(repositories, "admin@example.com", role=UserRole.ADMIN)
