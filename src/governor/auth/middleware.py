"""
Authentication middleware for JWT validation.

The dashboard forwards its session token as a bearer token; the
``account_id`` claim selects the account every dialer operation acts on.

This module exposes:
- JWTTokenValidator
- CurrentAccount
- get_current_account
- CurrentAccountDep (FastAPI dependency, wrapper-based for test patching)
"""

from __future__ import annotations

import inspect
from typing import Annotated, Any
from uuid import UUID

import jwt
from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pydantic import BaseModel, ConfigDict, Field

from governor.config import Settings, get_settings
from governor.shared.exceptions import InvalidTokenError, TokenExpiredError
from governor.shared.logging import get_logger

logger = get_logger(__name__)
security = HTTPBearer(auto_error=False)


class CurrentAccount(BaseModel):
    """Account (and user) the request acts for."""

    model_config = ConfigDict(frozen=True)

    account_id: UUID = Field(..., description="Account ID")
    user_id: str = Field(default="", description="Token subject")
    email: str = Field(default="", description="User email")


class JWTTokenValidator:
    """JWT token validator."""

    def __init__(self, settings: Settings | None = None) -> None:
        self._settings = settings or get_settings()

    def validate_access_token(self, token: str) -> dict[str, Any]:
        try:
            payload = jwt.decode(
                token,
                self._settings.jwt_secret_key,
                algorithms=[self._settings.jwt_algorithm],
            )
        except jwt.ExpiredSignatureError as e:
            raise TokenExpiredError() from e
        except jwt.InvalidTokenError as e:
            raise InvalidTokenError(message="Invalid token", details={"error": str(e)}) from e

        token_type = payload.get("type")
        if token_type is not None and token_type != "access":
            raise InvalidTokenError(
                message="Invalid token type",
                details={"expected": "access", "got": token_type},
            )
        return payload


def _unauthorized(code: str, message: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail={"code": code, "message": message},
        headers={"WWW-Authenticate": "Bearer"},
    )


async def get_current_account(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None,
    settings: Settings,
) -> CurrentAccount:
    """Extract and validate the current account from the bearer token."""
    if credentials is None:
        logger.warning(
            "Missing authentication credentials",
            extra={
                "endpoint": str(request.url.path),
                "method": request.method,
                "client_ip": request.client.host if request.client else "unknown",
            },
        )
        raise _unauthorized("MISSING_CREDENTIALS", "Authentication credentials required")

    try:
        payload = JWTTokenValidator(settings).validate_access_token(credentials.credentials)

        raw_account_id = payload.get("account_id")
        if raw_account_id is None:
            raise InvalidTokenError(
                message="Token missing account_id",
                details={"payload_keys": list(payload.keys())},
            )
        try:
            account_id = UUID(str(raw_account_id))
        except ValueError as e:
            raise InvalidTokenError(message="Malformed account_id") from e

        return CurrentAccount(
            account_id=account_id,
            user_id=str(payload.get("sub", "") or ""),
            email=payload.get("email", "") or "",
        )

    except TokenExpiredError:
        logger.info(
            "Token expired",
            extra={"endpoint": str(request.url.path), "method": request.method},
        )
        raise _unauthorized("TOKEN_EXPIRED", "Token has expired")
    except InvalidTokenError as e:
        logger.warning(
            "Invalid token",
            extra={
                "endpoint": str(request.url.path),
                "method": request.method,
                "error": e.message,
            },
        )
        raise _unauthorized("INVALID_TOKEN", e.message)


async def _get_current_account_dep(
    request: Request,
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(security)] = None,
    settings: Settings = Depends(get_settings),
) -> CurrentAccount:
    """
    Wrapper dependency that resolves get_current_account at runtime.

    Tests patch ``governor.auth.middleware.get_current_account``; FastAPI
    depends on this wrapper, which picks up the patched function.
    """
    result = get_current_account(request=request, credentials=credentials, settings=settings)
    if inspect.isawaitable(result):
        return await result
    return result  # type: ignore[return-value]


CurrentAccountDep = Annotated[CurrentAccount, Depends(_get_current_account_dep)]
