"""Quota ledger for rationed upstream calls.

Keeps an append-only log of usage records per endpoint class and derives
quota status from it on demand. Only ``real-success`` records count
against the daily and per-minute budgets; the other outcomes are kept
for statistics.

The log is persisted through a CacheBackend after every record so a
restart cannot reset the budget. Storage problems never surface to
callers: an unreadable log loads as empty and a failed write is logged.

Storage key format: {prefix}:usage:{endpoint_class}
"""

import json
import time
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Callable, Dict, List, Literal, Mapping, Optional

from routegate.app.core.cache import CacheBackend
from routegate.app.core.endpoints import EndpointClass, EndpointConfig
from routegate.app.core.logging import get_log_context, get_logger

logger = get_logger(__name__)

DAY_SECONDS = 24 * 60 * 60
MINUTE_SECONDS = 60


class Outcome(str, Enum):
    """What happened on one gateway attempt."""

    REAL_SUCCESS = "real-success"
    REAL_FAILURE = "real-failure"
    CACHE_HIT = "cache-hit"
    FALLBACK_SUCCESS = "fallback-success"
    FALLBACK_FAILURE = "fallback-failure"


@dataclass(frozen=True)
class UsageRecord:
    timestamp: float
    endpoint_class: EndpointClass
    outcome: Outcome

    def to_dict(self) -> dict:
        return {"timestamp": self.timestamp, "outcome": self.outcome.value}

    @classmethod
    def from_dict(cls, endpoint_class: EndpointClass, data: dict) -> "UsageRecord":
        return cls(
            timestamp=float(data["timestamp"]),
            endpoint_class=endpoint_class,
            outcome=Outcome(data["outcome"]),
        )


@dataclass(frozen=True)
class CanProceedResult:
    """Answer to "may a real call be made now?".

    Attributes:
        allowed: True when both budgets have room
        reason: Human-readable denial reason, None when allowed
        fallback_available: Static per-class flag, independent of current usage
    """

    allowed: bool
    reason: Optional[str]
    fallback_available: bool


@dataclass(frozen=True)
class QuotaStatus:
    endpoint_class: EndpointClass
    daily_limit: int
    daily_used: int
    daily_remaining: int
    minute_limit: int
    minute_used: int
    minute_remaining: int
    exceeded: bool

    def to_dict(self) -> dict:
        return {
            "endpoint_class": self.endpoint_class.value,
            "daily_limit": self.daily_limit,
            "daily_used": self.daily_used,
            "daily_remaining": self.daily_remaining,
            "minute_limit": self.minute_limit,
            "minute_used": self.minute_used,
            "minute_remaining": self.minute_remaining,
            "exceeded": self.exceeded,
        }


class QuotaLedger:
    """Per-class usage log with daily and per-minute budget checks.

    The daily window is either the trailing 24 hours (``"rolling"``) or
    the time since local midnight (``"calendar"``). Both are computed from
    the clock on every call, so the reset needs no timer.
    """

    STORAGE_TTL_SECONDS = DAY_SECONDS

    def __init__(
        self,
        configs: Mapping[EndpointClass, EndpointConfig],
        storage: Optional[CacheBackend] = None,
        storage_prefix: str = "routegate:v1",
        daily_window: Literal["rolling", "calendar"] = "rolling",
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Initialize the ledger.

        Args:
            configs: Immutable per-class configuration
            storage: Backend the log is persisted to; None keeps it in memory only
            storage_prefix: Namespace for storage keys
            daily_window: "rolling" or "calendar"
            clock: Returns the current time in epoch seconds
        """
        if daily_window not in ("rolling", "calendar"):
            raise ValueError(f"Unknown daily window: {daily_window}")
        self._configs = configs
        self._storage = storage
        self._prefix = storage_prefix
        self._daily_window = daily_window
        self._clock = clock
        self._records: Dict[EndpointClass, List[UsageRecord]] = {
            endpoint_class: [] for endpoint_class in configs
        }

    def _make_key(self, endpoint_class: EndpointClass) -> str:
        return f"{self._prefix}:usage:{endpoint_class.value}"

    def _config(self, endpoint_class: EndpointClass) -> EndpointConfig:
        try:
            return self._configs[endpoint_class]
        except KeyError:
            raise ValueError(f"Unconfigured endpoint class: {endpoint_class}") from None

    def _day_start(self, now: float) -> float:
        if self._daily_window == "calendar":
            midnight = datetime.fromtimestamp(now).replace(
                hour=0, minute=0, second=0, microsecond=0
            )
            return midnight.timestamp()
        return now - DAY_SECONDS

    def _count_successes(self, endpoint_class: EndpointClass, since: float) -> int:
        return sum(
            1
            for record in self._records.get(endpoint_class, ())
            if record.outcome is Outcome.REAL_SUCCESS and record.timestamp > since
        )

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def status(self, endpoint_class: EndpointClass) -> QuotaStatus:
        config = self._config(endpoint_class)
        now = self._clock()
        daily_used = self._count_successes(endpoint_class, self._day_start(now))
        minute_used = self._count_successes(endpoint_class, now - MINUTE_SECONDS)
        return QuotaStatus(
            endpoint_class=endpoint_class,
            daily_limit=config.daily_limit,
            daily_used=daily_used,
            daily_remaining=max(0, config.daily_limit - daily_used),
            minute_limit=config.per_minute_limit,
            minute_used=minute_used,
            minute_remaining=max(0, config.per_minute_limit - minute_used),
            exceeded=(
                daily_used >= config.daily_limit
                or minute_used >= config.per_minute_limit
            ),
        )

    def status_all(self) -> Dict[EndpointClass, QuotaStatus]:
        return {endpoint_class: self.status(endpoint_class) for endpoint_class in self._configs}

    def can_proceed(self, endpoint_class: EndpointClass) -> CanProceedResult:
        """Decide whether a real call for ``endpoint_class`` may be made now.

        Reads the log only; nothing is recorded. An unconfigured class is
        denied rather than raising.
        """
        config = self._configs.get(endpoint_class)
        if config is None:
            logger.warning(f"Quota check for unconfigured endpoint class: {endpoint_class}")
            return CanProceedResult(
                allowed=False,
                reason=f"Unconfigured endpoint class: {endpoint_class}",
                fallback_available=False,
            )
        status = self.status(endpoint_class)

        reason = None
        if status.daily_used >= config.daily_limit:
            reason = f"Daily quota exceeded ({status.daily_used}/{config.daily_limit})"
        elif status.minute_used >= config.per_minute_limit:
            reason = (
                f"Per-minute quota exceeded "
                f"({status.minute_used}/{config.per_minute_limit})"
            )

        return CanProceedResult(
            allowed=reason is None,
            reason=reason,
            fallback_available=config.has_fallback_provider,
        )

    def usage_stats(self) -> Dict[str, Dict[str, int]]:
        """Count records by outcome, per class and in total.

        Returns:
            {"directions": {"real-success": 3, ...}, ..., "total": {...}}
        """
        stats: Dict[str, Dict[str, int]] = {}
        total = {outcome.value: 0 for outcome in Outcome}
        for endpoint_class in self._configs:
            counts = {outcome.value: 0 for outcome in Outcome}
            for record in self._records.get(endpoint_class, ()):
                counts[record.outcome.value] += 1
                total[record.outcome.value] += 1
            stats[endpoint_class.value] = counts
        stats["total"] = total
        return stats

    # ------------------------------------------------------------------
    # Mutation and persistence
    # ------------------------------------------------------------------

    async def record(self, endpoint_class: EndpointClass, outcome: Outcome) -> None:
        """Append a usage record, prune old ones and persist the class log.

        Records for an unconfigured class are dropped with a warning.
        """
        if endpoint_class not in self._configs:
            logger.warning(
                f"Dropping usage record for unconfigured endpoint class: {endpoint_class}"
            )
            return
        try:
            outcome = Outcome(outcome)
        except ValueError:
            logger.warning(
                f"Dropping usage record with unknown outcome: {outcome}",
                extra=get_log_context(endpoint_class=endpoint_class.value),
            )
            return
        now = self._clock()
        records = self._records.setdefault(endpoint_class, [])
        records.append(UsageRecord(now, endpoint_class, outcome))
        cutoff = now - DAY_SECONDS
        if records[0].timestamp <= cutoff:
            records[:] = [r for r in records if r.timestamp > cutoff]

        await self._persist(endpoint_class)

    async def _persist(self, endpoint_class: EndpointClass) -> None:
        if self._storage is None:
            return
        payload = json.dumps(
            [r.to_dict() for r in self._records[endpoint_class]]
        ).encode("utf-8")
        try:
            await self._storage.set(
                self._make_key(endpoint_class), payload, ttl=self.STORAGE_TTL_SECONDS
            )
        except Exception as e:
            logger.warning(
                f"Failed to persist usage log: {type(e).__name__}: {e}",
                extra=get_log_context(endpoint_class=endpoint_class.value),
            )

    async def load(self) -> None:
        """Replace the in-memory log with the persisted one.

        Records older than 24 hours and entries that cannot be parsed are
        dropped. A class whose log cannot be read starts empty.
        """
        if self._storage is None:
            return
        cutoff = self._clock() - DAY_SECONDS
        for endpoint_class in self._configs:
            self._records[endpoint_class] = await self._load_class(endpoint_class, cutoff)

    async def _load_class(
        self, endpoint_class: EndpointClass, cutoff: float
    ) -> List[UsageRecord]:
        context = get_log_context(endpoint_class=endpoint_class.value)
        try:
            raw = await self._storage.get(self._make_key(endpoint_class))
        except Exception as e:
            logger.warning(
                f"Failed to read usage log, starting empty: {type(e).__name__}: {e}",
                extra=context,
            )
            return []
        if raw is None:
            return []

        try:
            items = json.loads(raw)
        except (json.JSONDecodeError, UnicodeDecodeError):
            logger.warning("Usage log is not valid JSON, starting empty", extra=context)
            return []
        if not isinstance(items, list):
            logger.warning("Usage log has unexpected shape, starting empty", extra=context)
            return []

        records = []
        for item in items:
            try:
                record = UsageRecord.from_dict(endpoint_class, item)
            except (KeyError, TypeError, ValueError):
                continue
            if record.timestamp > cutoff:
                records.append(record)
        records.sort(key=lambda r: r.timestamp)
        logger.debug(
            f"Loaded {len(records)} usage records", extra=context
        )
        return records
