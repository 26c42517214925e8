"""
BizModelAI — Time-boxed content cache for generated narrative content.

Entries are keyed by a hash of the subset of quiz answers that materially
shapes the generated insights.  An entry is served only while all of the
following hold:

  - its version equals the configured ``CACHE_VERSION``
  - its age is below ``CACHE_TTL_SECONDS``
  - it was created after the last global reset

Anything else (including an unparsable value) is deleted on lookup and
reported as a miss.  Writes are whole-value, last writer wins.
"""

from __future__ import annotations

import hashlib
import json
import time
from typing import Callable, Optional

import structlog
from pydantic import ValidationError

from app.config import get_settings
from app.schemas.quiz import QuizAnswers
from app.schemas.report import CachedPayload, CacheEntry, CacheStatus
from app.utils.storage import KeyValueStore

logger = structlog.get_logger(__name__)

# Answer fields that participate in the cache key.
CACHE_KEY_FIELDS: tuple[str, ...] = (
    "main_motivation",
    "success_income_goal",
    "weekly_time_commitment",
    "tech_skills_rating",
    "risk_comfort_level",
    "direct_communication_enjoyment",
    "social_media_interest",
)


class ContentCache:
    """Cache of ``{insights, analysis, top_model}`` payloads per quiz profile."""

    RESET_SUFFIX = "reset-timestamp"
    DEBOUNCE_SUFFIX = "reset-debounce"

    def __init__(
        self,
        store: KeyValueStore,
        clock: Callable[[], float] = time.time,
        ttl_seconds: float | None = None,
        version: str | None = None,
    ) -> None:
        settings = get_settings()
        self._store = store
        self._clock = clock
        self._prefix = settings.CACHE_KEY_PREFIX
        self._ttl = settings.CACHE_TTL_SECONDS if ttl_seconds is None else ttl_seconds
        self._version = settings.CACHE_VERSION if version is None else version
        self._debounce = settings.CACHE_RESET_DEBOUNCE_SECONDS

        logger.debug(
            "content_cache_initialised",
            prefix=self._prefix,
            ttl_seconds=self._ttl,
            version=self._version,
        )

    @property
    def reset_key(self) -> str:
        return f"{self._prefix}{self.RESET_SUFFIX}"

    # ══════════════════════════════════════════════════════════════════
    # Keys
    # ══════════════════════════════════════════════════════════════════

    def make_key(self, answers: QuizAnswers) -> str:
        """Deterministic key for ``answers``; equal projections share a key."""
        projection = {"version": self._version}
        for field in CACHE_KEY_FIELDS:
            projection[field] = getattr(answers, field)
        canonical = json.dumps(projection, sort_keys=True, separators=(",", ":"))
        digest = hashlib.sha256(canonical.encode("utf-8")).hexdigest()
        return f"{self._prefix}{digest}"

    @property
    def debounce_key(self) -> str:
        return f"{self._prefix}{self.DEBOUNCE_SUFFIX}"

    async def _entry_keys(self) -> list[str]:
        reserved = {self.reset_key, self.debounce_key}
        return [k for k in await self._store.keys(self._prefix) if k not in reserved]

    async def _reset_timestamp(self) -> float | None:
        raw = await self._store.get(self.reset_key)
        if raw is None:
            return None
        try:
            return float(raw)
        except ValueError:
            logger.warning("cache_reset_timestamp_corrupt", value=raw)
            return None

    # ══════════════════════════════════════════════════════════════════
    # Public API
    # ══════════════════════════════════════════════════════════════════

    async def get(self, answers: QuizAnswers) -> Optional[CacheEntry]:
        key = self.make_key(answers)
        log = logger.bind(cache_key=key)

        raw = await self._store.get(key)
        if raw is None:
            log.debug("cache_miss")
            return None

        try:
            entry = CacheEntry.model_validate_json(raw)
        except (ValidationError, ValueError) as exc:
            log.warning("cache_entry_corrupt", error=str(exc))
            await self._store.delete(key)
            return None

        reason = await self._invalid_reason(entry)
        if reason is not None:
            log.info("cache_entry_discarded", reason=reason)
            await self._store.delete(key)
            return None

        log.info("cache_hit", age_seconds=round(self._clock() - entry.created_at, 3))
        return entry

    async def _invalid_reason(self, entry: CacheEntry) -> str | None:
        if entry.version != self._version:
            return "version"
        if self._clock() - entry.created_at >= self._ttl:
            return "expired"
        reset_at = await self._reset_timestamp()
        if reset_at is not None and entry.created_at <= reset_at:
            return "reset"
        return None

    async def put(self, answers: QuizAnswers, payload: CachedPayload) -> CacheEntry:
        key = self.make_key(answers)
        entry = CacheEntry(
            key=key,
            version=self._version,
            created_at=self._clock(),
            payload=payload,
        )
        await self._store.set(key, entry.model_dump_json(), ttl_seconds=self._ttl)
        logger.info("cache_stored", cache_key=key)
        return entry

    async def invalidate_all(self) -> None:
        """Record a reset; existing entries become misses on next lookup."""
        now = self._clock()
        await self._store.set(self.reset_key, repr(now))
        logger.info("cache_invalidated", reset_at=now)

    async def clear_all(self) -> int:
        """Delete every entry immediately and record a reset."""
        await self.invalidate_all()
        keys = await self._entry_keys()
        removed = await self._store.delete(*keys)
        logger.info("cache_cleared", removed=removed)
        return removed

    async def force_reset(self) -> Optional[int]:
        """Debounced ``clear_all`` shared by every process on the store.

        Returns the number of removed entries, or ``None`` when another
        reset ran within ``CACHE_RESET_DEBOUNCE_SECONDS``.
        """
        if self._debounce > 0:
            first = await self._store.set_if_absent(
                self.debounce_key, repr(self._clock()), ttl_seconds=self._debounce
            )
            if not first:
                logger.info("cache_force_reset_debounced")
                return None
        return await self.clear_all()

    async def status(self) -> CacheStatus:
        count = 0
        total_size = 0
        oldest: float | None = None

        for key in await self._entry_keys():
            raw = await self._store.get(key)
            if raw is None:
                continue
            count += 1
            total_size += len(raw.encode("utf-8"))
            try:
                created_at = float(json.loads(raw)["created_at"])
            except (ValueError, KeyError, TypeError):
                continue
            if oldest is None or created_at < oldest:
                oldest = created_at

        return CacheStatus(count=count, total_size_bytes=total_size, oldest_timestamp=oldest)
