from __future__ import annotations

import logging
import os
import secrets
from typing import Literal

from common.utils import split_csv
from pydantic import BaseModel, Field, field_validator

LOGGER = logging.getLogger("jobportal.config")

ENV_DEVELOPMENT = "development"
ENV_PRODUCTION = "production"
ENVIRONMENTS = (ENV_DEVELOPMENT, ENV_PRODUCTION)

DEFAULT_MONGO_URI = "mongodb://localhost:27017"
DEFAULT_DB_NAME = "jobPortalDB"
DEFAULT_TOKEN_TTL_SECONDS = 5 * 60 * 60
DEFAULT_CORS_ORIGINS = "http://localhost:5173"
DEFAULT_REQUEST_TIMEOUT_SECONDS = 10.0

SameSite = Literal["lax", "strict", "none"]


class CookiePolicy(BaseModel):
    secure: bool
    samesite: SameSite


def default_cookie_policy(environment: str) -> CookiePolicy:
    if environment == ENV_PRODUCTION:
        return CookiePolicy(secure=True, samesite="none")
    return CookiePolicy(secure=False, samesite="strict")


def parse_bool(raw: str) -> bool:
    value = raw.strip().lower()
    if value in ("1", "true", "yes", "on"):
        return True
    if value in ("0", "false", "no", "off"):
        return False
    raise ValueError(f"Expected a boolean value, got {raw!r}.")


class Settings(BaseModel):
    environment: Literal["development", "production"] = ENV_DEVELOPMENT
    mongo_uri: str = DEFAULT_MONGO_URI
    db_name: str = Field(default=DEFAULT_DB_NAME, min_length=1)
    jwt_secret: str = Field(default_factory=lambda: secrets.token_urlsafe(32), min_length=1)
    token_ttl_seconds: int = Field(default=DEFAULT_TOKEN_TTL_SECONDS, gt=0)
    cors_origins: list[str] = Field(default_factory=lambda: [DEFAULT_CORS_ORIGINS])
    cookie_secure: bool | None = None
    cookie_samesite: SameSite | None = None
    request_timeout_seconds: float = Field(default=DEFAULT_REQUEST_TIMEOUT_SECONDS, gt=0)

    @field_validator("cookie_samesite", mode="before")
    @classmethod
    def normalize_samesite(cls, value: object) -> object:
        if isinstance(value, str):
            return value.strip().lower() or None
        return value

    @property
    def cookie_policy(self) -> CookiePolicy:
        policy = default_cookie_policy(self.environment)
        if self.cookie_secure is not None:
            policy.secure = self.cookie_secure
        if self.cookie_samesite is not None:
            policy.samesite = self.cookie_samesite
        return policy

    @classmethod
    def from_env(cls) -> Settings:
        values: dict[str, object] = {
            "environment": os.getenv("JOBPORTAL_ENV", ENV_DEVELOPMENT).strip().lower(),
            "mongo_uri": os.getenv("JOBPORTAL_MONGO_URI", DEFAULT_MONGO_URI).strip(),
            "db_name": os.getenv("JOBPORTAL_DB_NAME", DEFAULT_DB_NAME).strip(),
            "token_ttl_seconds": int(
                os.getenv("JOBPORTAL_TOKEN_TTL_SECONDS", str(DEFAULT_TOKEN_TTL_SECONDS))
            ),
            "cors_origins": split_csv(os.getenv("JOBPORTAL_CORS_ORIGINS", DEFAULT_CORS_ORIGINS)),
            "request_timeout_seconds": float(
                os.getenv(
                    "JOBPORTAL_REQUEST_TIMEOUT_SECONDS",
                    str(DEFAULT_REQUEST_TIMEOUT_SECONDS),
                )
            ),
        }

        jwt_secret = os.getenv("JOBPORTAL_JWT_SECRET", "").strip()
        if jwt_secret:
            values["jwt_secret"] = jwt_secret
        else:
            LOGGER.warning(
                "JOBPORTAL_JWT_SECRET is not set; using a random secret, "
                "tokens will not survive a restart"
            )

        raw_secure = os.getenv("JOBPORTAL_COOKIE_SECURE", "").strip()
        if raw_secure:
            values["cookie_secure"] = parse_bool(raw_secure)
        raw_samesite = os.getenv("JOBPORTAL_COOKIE_SAMESITE", "").strip()
        if raw_samesite:
            values["cookie_samesite"] = raw_samesite

        return cls(**values)
