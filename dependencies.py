"""Backend selection and FastAPI dependencies for the repository bundle."""
import logging
from dataclasses import dataclass
from typing import Union

from fastapi import Request

from database import DatabaseType, MongoConnection, SQLConnection
from mongo_repository import MongoOrderRepository, MongoPaymentRepository, MongoUserRepository
from repositories import OrderRepository, PaymentRepository, UserRepository
from settings import Settings
from sql_repository import SQLOrderRepository, SQLPaymentRepository, SQLUserRepository

logger = logging.getLogger(__name__)

Connection = Union[MongoConnection, SQLConnection]


@dataclass
class Repositories:
    """The repositories of one backend plus the connection they share."""

    backend: DatabaseType
    connection: Connection
    users: UserRepository
    orders: OrderRepository
    payments: PaymentRepository

    def prepare(self) -> None:
        for repository in (self.users, self.orders, self.payments):
            repository.prepare()

    def close(self) -> None:
        self.connection.close()


def mongo_repositories(connection: MongoConnection) -> Repositories:
    return Repositories(
        backend=DatabaseType.MONGODB,
        connection=connection,
        users=MongoUserRepository(connection),
        orders=MongoOrderRepository(connection),
        payments=MongoPaymentRepository(connection),
    )


def sql_repositories(connection: SQLConnection) -> Repositories:
    return Repositories(
        backend=DatabaseType.POSTGRESQL,
        connection=connection,
        users=SQLUserRepository(connection),
        orders=SQLOrderRepository(connection),
        payments=SQLPaymentRepository(connection),
    )


def build_repositories(settings: Settings) -> Repositories:
    """Build the repository bundle for the configured backend only."""
    logger.info("Using %s backend", settings.database_type.value)
    if settings.database_type is DatabaseType.MONGODB:
        return mongo_repositories(MongoConnection(settings.mongodb_uri))
    return sql_repositories(
        SQLConnection(
            settings.sqlalchemy_url,
            pool_size=settings.database_pool_size,
            echo=settings.database_echo,
        )
    )


def get_settings_dep(request: Request) -> Settings:
    return request.app.state.settings


def get_repositories(request: Request) -> Repositories:
    return request.app.state.repositories
