from __future__ import annotations

from datetime import date, datetime
from enum import Enum
from uuid import UUID

import structlog
from sqlalchemy.exc import NoInspectionAvailable
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.inspection import inspect

from app.models.audit_log import AuditLog

logger = structlog.get_logger(__name__)

# Never copied into audit payloads.
SENSITIVE_FIELDS = {"hashed_password", "password"}


def _serialize(value: object) -> object:
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, UUID):
        return str(value)
    if isinstance(value, (list, tuple, set)):
        return [_serialize(item) for item in value]
    if isinstance(value, dict):
        return {
            key: _serialize(val)
            for key, val in value.items()
            if key not in SENSITIVE_FIELDS
        }
    return value


def _to_dict(value: object | None) -> dict | None:
    if value is None:
        return None
    if isinstance(value, dict):
        return _serialize(value)
    if hasattr(value, "model_dump"):
        return _serialize(value.model_dump(mode="json"))
    try:
        mapper = inspect(value)
    except NoInspectionAvailable:
        payload = {
            key: val for key, val in vars(value).items() if not key.startswith("_")
        }
        return _serialize(payload)
    payload = {attr.key: getattr(value, attr.key) for attr in mapper.mapper.column_attrs}
    return _serialize(payload)


async def record_audit(
    session: AsyncSession,
    user_id: int | None,
    entity: str,
    action: str,
    before: object | None,
    after: object | None,
    ip: str | None,
    user_agent: str | None,
) -> None:
    log = AuditLog(
        user_id=user_id,
        entity=entity,
        action=action,
        before_json=_to_dict(before),
        after_json=_to_dict(after),
        ip=ip,
        user_agent=user_agent,
    )
    session.add(log)
    await session.commit()


class AuditTrail:
    """Audit sink bound to one request's session and client metadata."""

    def __init__(
        self,
        session: AsyncSession,
        ip: str | None = None,
        user_agent: str | None = None,
    ) -> None:
        self.session = session
        self.ip = ip
        self.user_agent = user_agent

    async def rate_limited(self, identity: str, email: str | None) -> None:
        logger.error(
            "login_rate_limited",
            identity=identity,
            ip=self.ip,
            email=email,
        )
        await record_audit(
            self.session,
            user_id=None,
            entity="login",
            action="rate_limited",
            before=None,
            after={"identity": identity, "email": email},
            ip=self.ip,
            user_agent=self.user_agent,
        )

    async def account_changed(
        self, user_id: int, action: str, before: object | None, after: object | None
    ) -> None:
        await record_audit(
            self.session,
            user_id=user_id,
            entity="user",
            action=action,
            before=before,
            after=after,
            ip=self.ip,
            user_agent=self.user_agent,
        )
