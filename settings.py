"""Application settings loaded from environment variables and .env."""
import json
import logging
from functools import lru_cache
from typing import Annotated, List, Literal

from pydantic import Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

from database import DatabaseType

LogLevel = Literal["CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"]

logger = logging.getLogger(__name__)

_POSTGRES_SCHEMES = ("postgresql://", "postgres://")


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False, extra="ignore")

    app_name: str = Field(default="Commerce API", description="Human readable API name.")
    log_level: LogLevel = Field(default="INFO", description="Root log level.")
    cors_origins: Annotated[List[str], NoDecode] = Field(
        default_factory=lambda: ["*"],
        description="Allowed CORS origins, comma separated or a JSON list.",
    )

    database_type: DatabaseType = Field(
        default=DatabaseType.POSTGRESQL,
        description="Storage backend: 'postgresql' or 'mongodb'; anything else selects postgresql.",
    )
    database_url: str = Field(
        default="postgresql://localhost:5432/microservice_db",
        description="PostgreSQL connection string.",
    )
    database_pool_size: int = Field(default=20, ge=1)
    database_echo: bool = False
    mongodb_uri: str = Field(default="mongodb://localhost:27017/microservice_db")

    jwt_secret: SecretStr = Field(default=SecretStr("dev-secret-change-me"))
    jwt_algorithm: str = "HS256"
    jwt_expires_hours: int = Field(default=24, gt=0)

    otp_code: str = Field(default="123456", description="Accepted one-time code.")
    payment_success_rate: float = Field(default=0.9, ge=0, le=1)

    @field_validator("database_type", mode="before")
    @classmethod
    def _normalise_database_type(cls, value):
        if isinstance(value, DatabaseType) or value is None:
            return value
        normalised = str(value).strip().lower()
        if normalised not in {member.value for member in DatabaseType}:
            logger.warning("Unknown DATABASE_TYPE %r, using %s", value, DatabaseType.POSTGRESQL.value)
            return DatabaseType.POSTGRESQL
        return normalised

    @field_validator("cors_origins", mode="before")
    @classmethod
    def _split_cors_origins(cls, value):
        if isinstance(value, str):
            value = value.strip()
            if value.startswith("["):
                return json.loads(value)
            return [origin.strip() for origin in value.split(",") if origin.strip()]
        return value

    @property
    def sqlalchemy_url(self) -> str:
        """DATABASE_URL rewritten to use the psycopg driver."""
        for scheme in _POSTGRES_SCHEMES:
            if self.database_url.startswith(scheme):
                return "postgresql+psycopg://" + self.database_url[len(scheme):]
        return self.database_url


@lru_cache
def get_settings() -> Settings:
    return Settings()
