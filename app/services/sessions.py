from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.models.refresh_token import RefreshToken
from app.models.user import User
from app.services.auth import (
    AuthError,
    create_access_token,
    create_refresh_token,
    hash_refresh_token,
)
from app.utils.time import utc_now


@dataclass(frozen=True)
class SessionTokens:
    access_token: str
    refresh_token: str


class SessionManager:
    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    def _issue(self, user: User, ip: str | None, user_agent: str | None) -> SessionTokens:
        refresh_token = create_refresh_token()
        self.session.add(
            RefreshToken(
                user_id=user.id,
                token_hash=hash_refresh_token(refresh_token),
                expires_at=utc_now() + timedelta(days=settings.REFRESH_TOKEN_EXPIRE_DAYS),
                ip=ip,
                user_agent=user_agent[:255] if user_agent else None,
            )
        )
        return SessionTokens(
            access_token=create_access_token(str(user.id)),
            refresh_token=refresh_token,
        )

    async def _find(self, refresh_token: str) -> RefreshToken | None:
        result = await self.session.execute(
            select(RefreshToken).where(
                RefreshToken.token_hash == hash_refresh_token(refresh_token)
            )
        )
        return result.scalars().first()

    async def open(
        self, user: User, ip: str | None = None, user_agent: str | None = None
    ) -> SessionTokens:
        user.last_login_at = utc_now()
        tokens = self._issue(user, ip, user_agent)
        await self.session.commit()
        return tokens

    async def refresh(
        self, refresh_token: str, ip: str | None = None, user_agent: str | None = None
    ) -> SessionTokens:
        record = await self._find(refresh_token)
        if not record or record.revoked_at or record.expires_at < utc_now():
            raise AuthError("Invalid refresh token")

        user = await self.session.get(User, record.user_id)
        if not user or not user.is_active:
            raise AuthError("Invalid refresh token")

        record.revoked_at = utc_now()
        record.last_used_at = utc_now()
        tokens = self._issue(user, ip, user_agent)
        await self.session.commit()
        return tokens

    async def close(self, refresh_token: str) -> None:
        record = await self._find(refresh_token)
        if not record or record.revoked_at:
            return
        record.revoked_at = utc_now()
        await self.session.commit()
