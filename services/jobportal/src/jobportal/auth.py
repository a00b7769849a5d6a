from __future__ import annotations

import json
import logging
from collections.abc import Callable
from datetime import UTC, datetime, timedelta

import jwt
from common.utils import now_utc
from fastapi import HTTPException, Request, Response
from pydantic import BaseModel

from jobportal.config import CookiePolicy

TOKEN_COOKIE_NAME = "token"
TOKEN_ALGORITHM = "HS256"
LOGGER = logging.getLogger("jobportal.auth")


class InvalidTokenError(Exception):
    """Raised for any token that cannot be trusted: malformed, tampered or expired."""


class IdentityClaim(BaseModel):
    email: str
    expires_at: datetime


class TokenService:
    """Issues and verifies signed, time-limited identity tokens.

    Tokens are stateless HS256 JWTs; validity depends only on the signature
    and the ``exp`` claim, so rotating the secret invalidates every token
    that was issued before.
    """

    def __init__(
        self,
        secret: str,
        *,
        ttl_seconds: int,
        clock: Callable[[], datetime] = now_utc,
    ) -> None:
        if not secret:
            raise ValueError("Token secret must be a non-empty string.")
        self._secret = secret
        self.ttl = timedelta(seconds=ttl_seconds)
        self._clock = clock

    def issue(self, email: str) -> str:
        issued_at = self._clock()
        payload = {
            "email": email,
            "iat": issued_at,
            "exp": issued_at + self.ttl,
        }
        return jwt.encode(payload, self._secret, algorithm=TOKEN_ALGORITHM)

    def verify(self, token: str) -> IdentityClaim:
        try:
            claims = jwt.decode(
                token,
                self._secret,
                algorithms=[TOKEN_ALGORITHM],
                options={"require": ["exp", "email"]},
            )
        except jwt.InvalidTokenError as exc:
            raise InvalidTokenError(str(exc)) from exc

        email = claims["email"]
        if not isinstance(email, str) or not email:
            raise InvalidTokenError("email claim must be a non-empty string")
        return IdentityClaim(
            email=email,
            expires_at=datetime.fromtimestamp(int(claims["exp"]), tz=UTC),
        )


def set_token_cookie(
    response: Response,
    token: str,
    *,
    policy: CookiePolicy,
    max_age: int,
) -> None:
    response.set_cookie(
        key=TOKEN_COOKIE_NAME,
        value=token,
        max_age=max_age,
        httponly=True,
        secure=policy.secure,
        samesite=policy.samesite,
    )


def clear_token_cookie(response: Response, *, policy: CookiePolicy) -> None:
    response.delete_cookie(
        key=TOKEN_COOKIE_NAME,
        httponly=True,
        secure=policy.secure,
        samesite=policy.samesite,
    )


def log_auth_failure(request: Request, *, status: str, message: str) -> None:
    LOGGER.warning(
        json.dumps(
            {
                "event": "auth_failure",
                "request_id": getattr(request.state, "request_id", None),
                "method": request.method,
                "path": request.url.path,
                "status": status,
                "message": message,
            }
        )
    )


async def require_identity(request: Request) -> IdentityClaim:
    token = request.cookies.get(TOKEN_COOKIE_NAME)
    if not token:
        log_auth_failure(request, status="unauthorized", message="missing token cookie")
        raise HTTPException(status_code=401, detail="Unauthorized")

    token_service: TokenService = request.app.state.token_service
    try:
        identity = token_service.verify(token)
    except InvalidTokenError as exc:
        log_auth_failure(request, status="unauthorized", message=f"invalid token: {exc}")
        raise HTTPException(status_code=401, detail="Unauthorized") from exc

    request.state.identity = identity
    return identity


def ensure_owner(request: Request, identity: IdentityClaim, email: str | None) -> None:
    if email is None or identity.email != email:
        log_auth_failure(request, status="forbidden", message="identity does not own resource")
        raise HTTPException(status_code=403, detail="Forbidden")
