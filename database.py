"""
Database connections for the commerce API

Two backends are supported, selected once per process by DATABASE_TYPE:

- mongodb     -> MongoConnection (pymongo client, one database)
- postgresql  -> SQLConnection (SQLAlchemy engine with a connection pool)

Both connection objects are created explicitly by the application, opened
on first use and closed at shutdown. Clients are thread-safe and shared by
every request.
"""
import logging
from enum import Enum
from typing import Any, Callable, Dict, Optional

from pymongo import MongoClient
from pymongo.database import Database
from pymongo.errors import PyMongoError
from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.pool import StaticPool

logger = logging.getLogger(__name__)

DEFAULT_DATABASE_NAME = "microservice_db"


class DatabaseType(str, Enum):
    POSTGRESQL = "postgresql"
    MONGODB = "mongodb"


class MongoConnection:
    """Lazily created MongoDB client bound to the URI's default database."""

    backend = DatabaseType.MONGODB

    def __init__(self, uri: str, client_factory: Callable[..., Any] = MongoClient):
        self.uri = uri
        self._client_factory = client_factory
        self._client: Optional[Any] = None
        self._db: Optional[Database] = None

    def open(self) -> Database:
        if self._db is not None:
            return self._db
        try:
            client = self._client_factory(self.uri)
            db = client.get_default_database(default=DEFAULT_DATABASE_NAME)
        except PyMongoError:
            logger.exception("Failed to connect to MongoDB")
            raise
        self._client, self._db = client, db
        logger.info("Connected to MongoDB database %s", db.name)
        return db

    @property
    def db(self) -> Database:
        return self.open()

    def ping(self) -> None:
        try:
            self.db.command("ping")
        except PyMongoError:
            logger.exception("MongoDB ping failed")
            raise

    def close(self) -> None:
        if self._client is not None:
            self._client.close()
            logger.info("Closed MongoDB connection")
        self._client = None
        self._db = None


class SQLConnection:
    """Lazily created SQLAlchemy engine (PostgreSQL in production)."""

    backend = DatabaseType.POSTGRESQL

    def __init__(self, url: str, pool_size: int = 20, echo: bool = False):
        self.url = url
        self.pool_size = pool_size
        self.echo = echo
        self._engine: Optional[Engine] = None

    def _engine_options(self) -> Dict[str, Any]:
        if self.url.startswith("sqlite"):
            # In-memory SQLite must share one connection across threads.
            return {
                "poolclass": StaticPool,
                "connect_args": {"check_same_thread": False},
            }
        return {
            "pool_size": self.pool_size,
            "max_overflow": 0,
            "pool_recycle": 30,
            "pool_pre_ping": True,
            "connect_args": {"connect_timeout": 2},
        }

    def open(self) -> Engine:
        if self._engine is not None:
            return self._engine
        try:
            engine = create_engine(self.url, echo=self.echo, **self._engine_options())
        except SQLAlchemyError:
            logger.exception("Failed to create PostgreSQL engine")
            raise
        self._engine = engine
        logger.info("Created database engine for %s", engine.url.render_as_string(hide_password=True))
        return engine

    @property
    def engine(self) -> Engine:
        return self.open()

    def ping(self) -> None:
        try:
            with self.engine.connect() as conn:
                conn.execute(text("SELECT 1"))
        except SQLAlchemyError:
            logger.exception("Database ping failed")
            raise

    def close(self) -> None:
        if self._engine is not None:
            self._engine.dispose()
            logger.info("Disposed database engine")
        self._engine = None
