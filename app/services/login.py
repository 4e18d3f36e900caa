from __future__ import annotations

from typing import Protocol

import structlog

from app.models.user import User
from app.services.rate_limit import LoginThrottle, ThrottleDecision
from app.services.sessions import SessionTokens
from app.services.throttle_store import StoreUnavailableError

logger = structlog.get_logger(__name__)

INVALID_CREDENTIALS_MESSAGE = "Your email/password combination was incorrect."


class RateLimitedError(Exception):
    def __init__(self, identity: str) -> None:
        super().__init__("Too many login attempts")
        self.identity = identity


class InvalidCredentialsError(Exception):
    def __init__(self, email: str) -> None:
        super().__init__(INVALID_CREDENTIALS_MESSAGE)
        self.email = email


class CredentialVerifier(Protocol):
    async def verify_credentials(self, email: str, password: str) -> User | None: ...


class SessionOpener(Protocol):
    async def open(
        self, user: User, ip: str | None = None, user_agent: str | None = None
    ) -> SessionTokens: ...


class RateLimitAuditor(Protocol):
    async def rate_limited(self, identity: str, email: str | None) -> None: ...


class LoginFlow:
    """Gate credential checks behind the login throttle.

    A blocked identity is rejected before any credential lookup and its
    counter is left untouched. Failed checks are recorded; successful ones
    are not, and do not clear earlier failures either.

    With ``fail_open`` set, an unreachable throttle store is logged and
    treated as "allowed"; otherwise ``StoreUnavailableError`` propagates.
    """

    def __init__(
        self,
        throttle: LoginThrottle,
        users: CredentialVerifier,
        sessions: SessionOpener,
        audit: RateLimitAuditor,
        *,
        fail_open: bool = False,
    ) -> None:
        self.throttle = throttle
        self.users = users
        self.sessions = sessions
        self.audit = audit
        self.fail_open = fail_open

    async def _check(self, identity: str) -> ThrottleDecision:
        try:
            return await self.throttle.check_limit(identity)
        except StoreUnavailableError:
            if not self.fail_open:
                raise
            logger.warning("throttle_store_unavailable", op="check", identity=identity)
            return ThrottleDecision.ALLOW

    async def _record_failure(self, identity: str) -> None:
        try:
            count = await self.throttle.record_failure(identity)
        except StoreUnavailableError:
            if not self.fail_open:
                raise
            logger.warning("throttle_store_unavailable", op="record", identity=identity)
            return
        logger.info("login_failed", identity=identity, failures=count)

    async def login(
        self,
        identity: str,
        email: str,
        password: str,
        ip: str | None = None,
        user_agent: str | None = None,
    ) -> SessionTokens:
        if await self._check(identity) is ThrottleDecision.BLOCKED:
            await self.audit.rate_limited(identity, email)
            raise RateLimitedError(identity)

        user = await self.users.verify_credentials(email, password)
        if user is None:
            await self._record_failure(identity)
            raise InvalidCredentialsError(email)

        tokens = await self.sessions.open(user, ip=ip, user_agent=user_agent)
        logger.info("login_succeeded", identity=identity, user_id=user.id)
        return tokens
