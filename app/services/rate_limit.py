from __future__ import annotations

from enum import Enum

from app.services.throttle_store import ThrottleStore

DEFAULT_KEY_PREFIX = "loginThrottle"


class ThrottleDecision(str, Enum):
    ALLOW = "allow"
    BLOCKED = "blocked"


def throttle_key(identity: str, prefix: str = DEFAULT_KEY_PREFIX) -> str:
    if not identity:
        raise ValueError("Throttle identity must be a non-empty string")
    return f"{prefix}:{identity}"


class LoginThrottle:
    """Counts failed logins per identity within a sliding expiry window.

    An identity is blocked once its recorded failures strictly exceed
    ``max_requests``. Every recorded failure pushes the expiry out to
    ``window_seconds`` from now, so the counter only resets after a full
    quiet window.

    By default a failure is recorded as ``get`` followed by ``set``, which can
    lose updates when two failures for the same identity interleave. Pass
    ``atomic_increment=True`` to use the store's ``incr_with_ttl`` instead.
    """

    def __init__(
        self,
        store: ThrottleStore,
        max_requests: int = 15,
        window_seconds: int = 15,
        *,
        key_prefix: str = DEFAULT_KEY_PREFIX,
        atomic_increment: bool = False,
    ) -> None:
        self.store = store
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self.key_prefix = key_prefix
        self.atomic_increment = atomic_increment

    def key(self, identity: str) -> str:
        return throttle_key(identity, self.key_prefix)

    async def attempts(self, identity: str) -> int:
        return await self.store.get(self.key(identity)) or 0

    async def check_limit(self, identity: str) -> ThrottleDecision:
        if await self.attempts(identity) > self.max_requests:
            return ThrottleDecision.BLOCKED
        return ThrottleDecision.ALLOW

    async def record_failure(self, identity: str) -> int:
        key = self.key(identity)
        if self.atomic_increment:
            return await self.store.incr_with_ttl(key, self.window_seconds)

        await self.store.set_if_absent(key, 0, self.window_seconds)
        count = (await self.store.get(key) or 0) + 1
        # Rewriting the entry also restarts its expiry.
        await self.store.set(key, count, self.window_seconds)
        return count
