"""
BizModelAI — Single-flight guard for the generation pipeline.

At most one generation may run per answer profile: the lock key is
derived from the content-cache key, so identical submissions collapse
onto one run while different users proceed independently.  The lock
value records when it was taken; a holder older than
``GENERATION_LOCK_STALE_SECONDS`` is presumed dead and is taken over by
the next acquirer via compare-and-set.  Release deletes the key only
while it still holds this holder's token.
"""

from __future__ import annotations

import json
import time
import uuid
from typing import Callable

import structlog

from app.config import get_settings
from app.utils.storage import KeyValueStore

logger = structlog.get_logger(__name__)


class GenerationLock:
    KEY_PREFIX = "ai-generation-in-progress"

    def __init__(
        self,
        store: KeyValueStore,
        key: str | None = None,
        clock: Callable[[], float] = time.time,
        stale_after_seconds: float | None = None,
    ) -> None:
        settings = get_settings()
        self._store = store
        self.key = key or self.KEY_PREFIX
        self._clock = clock
        self._stale_after = (
            settings.GENERATION_LOCK_STALE_SECONDS
            if stale_after_seconds is None
            else stale_after_seconds
        )
        self._token: str | None = None

    @classmethod
    def key_for(cls, profile_key: str) -> str:
        return f"{cls.KEY_PREFIX}-{profile_key}"

    @property
    def held(self) -> bool:
        return self._token is not None

    def _since(self, raw: str) -> float | None:
        try:
            return float(json.loads(raw)["since"])
        except (ValueError, KeyError, TypeError):
            return None

    async def acquire(self) -> bool:
        """Try to take the lock; False when a fresh holder exists."""
        token = uuid.uuid4().hex
        value = json.dumps({"active": True, "since": self._clock(), "owner": token})

        if await self._store.set_if_absent(self.key, value):
            self._token = token
            logger.info("generation_lock_acquired", key=self.key)
            return True

        current = await self._store.get(self.key)
        if current is None:
            # Released between the two calls.
            if await self._store.set_if_absent(self.key, value):
                self._token = token
                logger.info("generation_lock_acquired")
                return True
            return False

        since = self._since(current)
        age = None if since is None else self._clock() - since
        if age is not None and age < self._stale_after:
            logger.info("generation_lock_busy", held_for_seconds=round(age, 3))
            return False

        if await self._store.compare_and_set(self.key, current, value):
            self._token = token
            logger.warning("generation_lock_stale_cleared", held_for_seconds=age)
            return True
        return False

    async def release(self) -> None:
        if self._token is None:
            return
        current = await self._store.get(self.key)
        if current is not None:
            try:
                owner = json.loads(current).get("owner")
            except (ValueError, AttributeError):
                owner = None
            if owner == self._token:
                if not await self._store.compare_and_delete(self.key, current):
                    logger.warning("generation_lock_lost", key=self.key)
        self._token = None
        logger.info("generation_lock_released", key=self.key)
