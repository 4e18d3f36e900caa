from __future__ import annotations

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.user import User
from app.services.auth import hash_password, verify_password


class DuplicateUserError(Exception):
    def __init__(self, field: str) -> None:
        super().__init__(f"An account with this {field} already exists")
        self.field = field


def normalize_email(email: str) -> str:
    return email.strip().lower()


class UserStore:
    """Credential lookups and account writes over the ``users`` table."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def get_by_email(self, email: str) -> User | None:
        result = await self.session.execute(
            select(User).where(func.lower(User.email) == normalize_email(email))
        )
        return result.scalars().first()

    async def get_by_username(self, username: str) -> User | None:
        result = await self.session.execute(select(User).where(User.username == username))
        return result.scalars().first()

    async def get(self, user_id: int) -> User | None:
        return await self.session.get(User, user_id)

    async def verify_credentials(self, email: str, password: str) -> User | None:
        user = await self.get_by_email(email)
        if not user or not user.is_active:
            return None
        if not verify_password(password, user.hashed_password):
            return None
        return user

    async def _ensure_unique(
        self, email: str, username: str | None, exclude_id: int | None = None
    ) -> None:
        existing = await self.get_by_email(email)
        if existing and existing.id != exclude_id:
            raise DuplicateUserError("email")
        if username:
            existing = await self.get_by_username(username)
            if existing and existing.id != exclude_id:
                raise DuplicateUserError("username")

    async def create(self, email: str, password: str, username: str | None = None) -> User:
        await self._ensure_unique(email, username)
        user = User(
            email=normalize_email(email),
            username=username,
            hashed_password=hash_password(password),
            is_active=True,
        )
        self.session.add(user)
        try:
            await self.session.commit()
        except IntegrityError as exc:
            await self.session.rollback()
            raise DuplicateUserError("email or username") from exc
        await self.session.refresh(user)
        return user

    async def update_account(
        self,
        user: User,
        email: str,
        username: str | None,
        password: str | None = None,
    ) -> User:
        await self._ensure_unique(email, username, exclude_id=user.id)
        if password:
            user.hashed_password = hash_password(password)
        user.email = normalize_email(email)
        user.username = username
        try:
            await self.session.commit()
        except IntegrityError as exc:
            await self.session.rollback()
            raise DuplicateUserError("email or username") from exc
        await self.session.refresh(user)
        return user
