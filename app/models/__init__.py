from app.models.audit_log import AuditLog
from app.models.base import Base, TimestampMixin
from app.models.refresh_token import RefreshToken
from app.models.user import User

__all__ = [
    "AuditLog",
    "Base",
    "RefreshToken",
    "TimestampMixin",
    "User",
]
