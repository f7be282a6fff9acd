"""Enrichment / market-refresh counters.

Shared by every enrichment task, the refresh sweep, the stats logger and the
health endpoint. Guarded by a threading lock so readers always see a
consistent snapshot. One instance is created by the composition root.
"""

from dataclasses import dataclass, field
from datetime import datetime
from threading import Lock

from src.models.base import utcnow

MAX_LAST_ERRORS = 20
MAX_ERROR_LEN = 512


@dataclass
class EnrichmentStatsSnapshot:
    enrich_success: int = 0
    enrich_failure: int = 0
    refresh_success: int = 0
    refresh_failure: int = 0
    last_enrich_success_at: datetime | None = None
    last_enrich_failure_at: datetime | None = None
    last_refresh_at: datetime | None = None
    last_errors: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        def _iso(v: datetime | None) -> str | None:
            return v.isoformat() if v else None

        return {
            "enrich_success": self.enrich_success,
            "enrich_failure": self.enrich_failure,
            "refresh_success": self.refresh_success,
            "refresh_failure": self.refresh_failure,
            "last_enrich_success_at": _iso(self.last_enrich_success_at),
            "last_enrich_failure_at": _iso(self.last_enrich_failure_at),
            "last_refresh_at": _iso(self.last_refresh_at),
            "last_errors": list(self.last_errors),
        }


class EnrichmentStats:
    def __init__(self, max_errors: int = MAX_LAST_ERRORS) -> None:
        self._lock = Lock()
        self._max_errors = max_errors
        self._state = EnrichmentStatsSnapshot()

    def record_enrich_success(self) -> None:
        with self._lock:
            self._state.enrich_success += 1
            self._state.last_enrich_success_at = utcnow()

    def record_enrich_failure(self, error: BaseException | str) -> None:
        with self._lock:
            self._state.enrich_failure += 1
            self._state.last_enrich_failure_at = utcnow()
            self._push_error(error)

    def record_refresh_success(self) -> None:
        with self._lock:
            self._state.refresh_success += 1
            self._state.last_refresh_at = utcnow()

    def record_refresh_failure(self, error: BaseException | str) -> None:
        with self._lock:
            self._state.refresh_failure += 1
            self._state.last_refresh_at = utcnow()
            self._push_error(error)

    def _push_error(self, error: BaseException | str) -> None:
        message = str(error).strip()
        if not message:
            return
        errors = self._state.last_errors
        errors.append(message[:MAX_ERROR_LEN])
        if len(errors) > self._max_errors:
            del errors[: len(errors) - self._max_errors]

    def snapshot(self) -> EnrichmentStatsSnapshot:
        with self._lock:
            s = self._state
            return EnrichmentStatsSnapshot(
                enrich_success=s.enrich_success,
                enrich_failure=s.enrich_failure,
                refresh_success=s.refresh_success,
                refresh_failure=s.refresh_failure,
                last_enrich_success_at=s.last_enrich_success_at,
                last_enrich_failure_at=s.last_enrich_failure_at,
                last_refresh_at=s.last_refresh_at,
                last_errors=list(s.last_errors),
            )

    def format_stats_line(self) -> str:
        s = self.snapshot()
        return (
            f"enrich ok={s.enrich_success} fail={s.enrich_failure} | "
            f"refresh ok={s.refresh_success} fail={s.refresh_failure} | "
            f"recent_errors={len(s.last_errors)}"
        )
