from __future__ import annotations

import ipaddress

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.database import get_session
from app.models.user import User
from app.services.audit import AuditTrail
from app.services.auth import AuthError, decode_token
from app.services.login import LoginFlow
from app.services.rate_limit import LoginThrottle
from app.services.sessions import SessionManager
from app.services.users import UserStore

security = HTTPBearer()


async def get_request_ip(request: Request) -> str | None:
    def _valid_ip(raw: str | None) -> str | None:
        if not raw:
            return None
        try:
            return str(ipaddress.ip_address(raw.strip()))
        except ValueError:
            return None

    if settings.TRUST_PROXY_HEADERS:
        forwarded = request.headers.get("x-forwarded-for")
        if forwarded:
            for candidate in forwarded.split(","):
                parsed = _valid_ip(candidate)
                if parsed:
                    return parsed
        real_ip = _valid_ip(request.headers.get("x-real-ip"))
        if real_ip:
            return real_ip

    if request.client:
        return _valid_ip(request.client.host)
    return None


async def get_throttle_identity(request: Request, email: str) -> str:
    ip = await get_request_ip(request)
    if ip:
        return ip
    if request.client and request.client.host:
        return request.client.host
    # Blank emails cannot authenticate, so sharing one bucket costs nothing.
    return email.strip().lower() or "anonymous"


def get_user_store(session: AsyncSession = Depends(get_session)) -> UserStore:
    return UserStore(session)


def get_session_manager(session: AsyncSession = Depends(get_session)) -> SessionManager:
    return SessionManager(session)


async def get_audit_trail(
    request: Request,
    session: AsyncSession = Depends(get_session),
) -> AuditTrail:
    return AuditTrail(
        session,
        ip=await get_request_ip(request),
        user_agent=request.headers.get("user-agent"),
    )


def get_login_throttle(request: Request) -> LoginThrottle:
    throttle = getattr(request.app.state, "login_throttle", None)
    if throttle is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Login throttle not initialised",
        )
    return throttle


def get_login_flow(
    throttle: LoginThrottle = Depends(get_login_throttle),
    users: UserStore = Depends(get_user_store),
    sessions: SessionManager = Depends(get_session_manager),
    audit: AuditTrail = Depends(get_audit_trail),
) -> LoginFlow:
    return LoginFlow(
        throttle,
        users,
        sessions,
        audit,
        fail_open=settings.LOGIN_THROTTLE_FAIL_OPEN,
    )


async def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    users: UserStore = Depends(get_user_store),
) -> User:
    try:
        payload = decode_token(credentials.credentials)
    except AuthError as exc:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=str(exc)) from exc

    try:
        user_id = int(payload.get("sub"))
    except (TypeError, ValueError) as exc:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token") from exc

    user = await users.get(user_id)
    if not user or not user.is_active:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Inactive user")
    return user
