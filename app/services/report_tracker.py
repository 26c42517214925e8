"""
BizModelAI — Report view and unlock ledgers.

Views are recorded per quiz attempt and expire after
``REPORT_VIEW_RETENTION_DAYS``.  A view can also be matched by a hash of
the identifying quiz answers, optionally scoped to the viewer's email, so
a re-submitted attempt with the same answers is recognised.  Unlocks are
idempotent per (attempt, user) and never expire.
"""

from __future__ import annotations

import hashlib
import json
import time
from typing import Callable, Optional

import structlog

from app.config import get_settings
from app.schemas.quiz import QuizAnswers
from app.utils.storage import KeyValueStore

logger = structlog.get_logger(__name__)

# Answer fields that identify a quiz attempt for view matching.
VIEW_HASH_FIELDS: tuple[str, ...] = (
    "main_motivation",
    "success_income_goal",
    "weekly_time_commitment",
    "tech_skills_rating",
    "risk_comfort_level",
    "work_structure_preference",
    "decision_making_style",
)

SECONDS_PER_DAY = 24 * 60 * 60


def answers_hash(answers: QuizAnswers) -> str:
    projection = {field: getattr(answers, field) for field in VIEW_HASH_FIELDS}
    canonical = json.dumps(projection, sort_keys=True, separators=(",", ":"))
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()[:16]


class ReportViewTracker:
    VIEW_PREFIX = "viewed-report-"
    UNLOCK_PREFIX = "unlocked-report-"

    def __init__(
        self,
        store: KeyValueStore,
        clock: Callable[[], float] = time.time,
        retention_days: int | None = None,
    ) -> None:
        settings = get_settings()
        self._store = store
        self._clock = clock
        days = settings.REPORT_VIEW_RETENTION_DAYS if retention_days is None else retention_days
        self._retention = days * SECONDS_PER_DAY

    def _view_key(self, attempt_id: str) -> str:
        return f"{self.VIEW_PREFIX}{attempt_id}"

    def _unlock_key(self, attempt_id: str, user_id: str) -> str:
        return f"{self.UNLOCK_PREFIX}{attempt_id}-{user_id}"

    async def _load_view(self, key: str) -> Optional[dict]:
        raw = await self._store.get(key)
        if raw is None:
            return None
        try:
            record = json.loads(raw)
            viewed_at = float(record["viewed_at"])
        except (ValueError, KeyError, TypeError):
            logger.warning("report_view_record_corrupt", key=key)
            await self._store.delete(key)
            return None
        if self._clock() - viewed_at >= self._retention:
            await self._store.delete(key)
            return None
        return record

    # ══════════════════════════════════════════════════════════════════
    # Views
    # ══════════════════════════════════════════════════════════════════

    async def mark_viewed(
        self,
        attempt_id: str,
        answers: QuizAnswers,
        user_email: str | None = None,
    ) -> bool:
        """Record a view; returns False when the attempt was already recorded."""
        key = self._view_key(attempt_id)
        if await self._load_view(key) is not None:
            return False

        record = {
            "attempt_id": attempt_id,
            "user_email": user_email or None,
            "viewed_at": self._clock(),
            "answers_hash": answers_hash(answers),
        }
        await self._store.set(key, json.dumps(record), ttl_seconds=self._retention)
        logger.info("report_marked_viewed", attempt_id=attempt_id)
        return True

    async def has_viewed(
        self,
        attempt_id: str,
        answers: QuizAnswers | None = None,
        user_email: str | None = None,
    ) -> bool:
        """True when the attempt (or, given answers, an attempt with the same
        identifying answers for this email) was viewed within retention."""
        if await self._load_view(self._view_key(attempt_id)) is not None:
            return True
        if answers is None:
            return False

        wanted = answers_hash(answers)
        for key in await self._store.keys(self.VIEW_PREFIX):
            record = await self._load_view(key)
            if record is None or record.get("answers_hash") != wanted:
                continue
            if not user_email or record.get("user_email") == user_email:
                return True
        return False

    async def viewed_count(self) -> int:
        count = 0
        for key in await self._store.keys(self.VIEW_PREFIX):
            if await self._load_view(key) is not None:
                count += 1
        return count

    async def clear_views(self) -> int:
        keys = await self._store.keys(self.VIEW_PREFIX)
        removed = await self._store.delete(*keys)
        logger.info("report_views_cleared", removed=removed)
        return removed

    # ══════════════════════════════════════════════════════════════════
    # Unlocks
    # ══════════════════════════════════════════════════════════════════

    async def mark_unlocked(self, attempt_id: str, user_id: str) -> bool:
        """Idempotent; returns True only for the first unlock."""
        value = json.dumps({"unlocked_at": self._clock()})
        created = await self._store.set_if_absent(self._unlock_key(attempt_id, user_id), value)
        if created:
            logger.info("report_unlocked", attempt_id=attempt_id, user_id=user_id)
        return created

    async def has_unlocked(self, attempt_id: str, user_id: str) -> bool:
        return await self._store.get(self._unlock_key(attempt_id, user_id)) is not None
