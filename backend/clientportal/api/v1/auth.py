"""Session authentication and role guards.

Session tokens are JWTs issued by the identity provider and signed with the
shared secret. The ``sub`` claim identifies the user; ``email`` and ``name``
seed the local user row on first sight, and ``sts`` carries the provider's
session status (``pending`` sessions are not signed in yet).
"""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Annotated, Any

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt
from pydantic import BaseModel
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from clientportal.config import get_settings
from clientportal.db.session import get_db_session
from clientportal.models.client import Client
from clientportal.models.user import PM_ROLES, User
from clientportal.services.access_control import (
    Authorized,
    Loading,
    UnauthorizedReason,
    evaluate_access,
)

router = APIRouter()
logger = structlog.get_logger()
settings = get_settings()
security = HTTPBearer(auto_error=False)


@dataclass
class SessionContext:
    """Outcome of reading the bearer token."""

    user: User | None = None
    pending: bool = False


class SessionStateResponse(BaseModel):
    """Access decision for the caller, used by the UI's page guards."""

    status: str  # authorized, unauthorized, loading
    reason: str | None = None
    role: str | None = None


def create_access_token(
    external_id: str,
    email: str,
    name: str | None = None,
    session_status: str = "active",
    expires_delta: timedelta | None = None,
) -> str:
    """Mint a session token the way the identity provider does.

    Used for local development and tests; production tokens come from the
    provider itself.
    """
    expire = datetime.now(timezone.utc) + (
        expires_delta or timedelta(minutes=settings.jwt_access_token_expire_minutes)
    )
    to_encode: dict[str, Any] = {
        "sub": external_id,
        "email": email,
        "exp": expire,
        "sts": session_status,
    }
    if name:
        to_encode["name"] = name
    return jwt.encode(
        to_encode,
        settings.jwt_secret_key.get_secret_value(),
        algorithm=settings.jwt_algorithm,
    )


def decode_session_token(token: str) -> dict[str, Any]:
    """Verify and decode a session token. Raises JWTError when invalid."""
    claims = jwt.decode(
        token,
        settings.jwt_secret_key.get_secret_value(),
        algorithms=[settings.jwt_algorithm],
    )
    if not claims.get("sub"):
        raise JWTError("Token has no subject")
    return claims


async def _link_client_record(db: AsyncSession, user: User) -> None:
    """Attach a new client-role user to the unclaimed client with their email."""
    if user.role != "client" or not user.email:
        return
    result = await db.execute(
        select(Client)
        .where(
            func.lower(Client.contact_email) == user.email.lower(),
            Client.user_id.is_(None),
        )
        .order_by(Client.created_at.asc())
        .limit(1)
    )
    client = result.scalar_one_or_none()
    if client is not None:
        client.user_id = user.id
        logger.info("client_login_linked", client_id=str(client.id), user_id=str(user.id))


async def upsert_user_from_claims(db: AsyncSession, claims: dict[str, Any]) -> User:
    """Return the user for ``claims['sub']``, creating it on first sign-in."""
    external_id = str(claims["sub"])
    result = await db.execute(select(User).where(User.external_auth_id == external_id))
    user = result.scalar_one_or_none()
    if user is not None:
        return user

    email = claims.get("email") or ""
    user = User(
        external_auth_id=external_id,
        email=email,
        name=claims.get("name") or email or external_id,
        role="client",
    )
    db.add(user)
    try:
        await db.flush()
        await _link_client_record(db, user)
        await db.commit()
    except IntegrityError:
        # Another request for the same first sign-in won the insert
        await db.rollback()
        result = await db.execute(select(User).where(User.external_auth_id == external_id))
        return result.scalar_one()

    logger.info("user_created_on_sign_in", user_id=str(user.id), external_auth_id=external_id)
    return user


async def get_or_create_dev_user(db: AsyncSession) -> User:
    """Local admin used with the development bypass token."""
    result = await db.execute(select(User).where(User.email == settings.dev_user_email))
    user = result.scalar_one_or_none()
    if user is None:
        user = User(
            external_auth_id="dev-user",
            email=settings.dev_user_email,
            name="Dev User",
            role="admin",
        )
        db.add(user)
        await db.commit()
        logger.info("dev_user_created", user_id=str(user.id))
    return user


async def get_session(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(security)],
    db: AsyncSession = Depends(get_db_session),
) -> SessionContext:
    """Resolve the caller's session from the bearer token."""
    if not credentials:
        return SessionContext()

    token = credentials.credentials
    if settings.environment == "development" and token == settings.dev_token:
        return SessionContext(user=await get_or_create_dev_user(db))

    try:
        claims = decode_session_token(token)
    except JWTError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token",
            headers={"WWW-Authenticate": "Bearer"},
        )

    if claims.get("sts") == "pending":
        return SessionContext(pending=True)

    return SessionContext(user=await upsert_user_from_claims(db, claims))


def require_roles(*roles: str):
    """Dependency factory admitting signed-in users with one of ``roles``.

    No roles means any signed-in user.
    """
    allowed = roles or None

    async def dependency(session: Annotated[SessionContext, Depends(get_session)]) -> User:
        decision = evaluate_access(session.user, allowed, session_pending=session.pending)
        if isinstance(decision, Authorized):
            return decision.user
        if isinstance(decision, Loading):
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Session pending",
            )
        if decision.reason is UnauthorizedReason.NOT_SIGNED_IN:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Not authenticated",
                headers={"WWW-Authenticate": "Bearer"},
            )
        logger.warning(
            "role_check_failed",
            user_id=str(session.user.id) if session.user else None,
            allowed_roles=list(roles),
        )
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Insufficient role",
        )

    return dependency


# Type aliases for dependency injection
CurrentUser = Annotated[User, Depends(require_roles())]
StaffUser = Annotated[User, Depends(require_roles(*PM_ROLES))]
AdminUser = Annotated[User, Depends(require_roles("admin"))]


@router.get("/session", response_model=SessionStateResponse)
async def get_session_state(
    session: Annotated[SessionContext, Depends(get_session)],
    roles: list[str] | None = Query(None),
) -> SessionStateResponse:
    """Report the access decision for the caller without failing."""
    decision = evaluate_access(session.user, roles, session_pending=session.pending)
    if isinstance(decision, Authorized):
        return SessionStateResponse(status="authorized", role=decision.user.role)
    if isinstance(decision, Loading):
        return SessionStateResponse(status="loading")
    return SessionStateResponse(
        status="unauthorized",
        reason=decision.reason.value,
        role=session.user.role if session.user else None,
    )
