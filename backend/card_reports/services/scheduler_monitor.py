"""Health tracking for the report delivery and recalculation workers."""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from threading import Lock
from typing import Dict, MutableMapping

JOB_REPORT_DELIVERY = "report_delivery"
JOB_REPORT_RECALCULATION = "report_recalculation"

MAX_RECENT_ERRORS = 10


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class JobStatus:
    """What the last cycles of one background job looked like."""

    enabled: bool = True
    last_tick: datetime | None = None
    last_success: datetime | None = None
    consecutive_failures: int = 0
    recent_errors: deque[str] = field(default_factory=lambda: deque(maxlen=MAX_RECENT_ERRORS))


class SchedulerMonitor:
    """Process-wide registry of job health, shared by the worker threads."""

    _lock = Lock()
    _jobs: Dict[str, JobStatus] = {}

    @classmethod
    def _status(cls, job_name: str) -> JobStatus:
        # Callers hold ``_lock``.
        return cls._jobs.setdefault(job_name, JobStatus())

    @classmethod
    def set_job_enabled(cls, job_name: str, enabled: bool) -> None:
        with cls._lock:
            cls._status(job_name).enabled = enabled

    @classmethod
    def record_tick(cls, job_name: str) -> None:
        with cls._lock:
            cls._status(job_name).last_tick = _utcnow()

    @classmethod
    def record_success(cls, job_name: str) -> None:
        with cls._lock:
            status = cls._status(job_name)
            status.last_success = _utcnow()
            status.consecutive_failures = 0

    @classmethod
    def record_error(cls, job_name: str, message: str) -> None:
        now = _utcnow()
        with cls._lock:
            status = cls._status(job_name)
            status.consecutive_failures += 1
            status.recent_errors.append(f"{now.isoformat()} - {message}")

    @classmethod
    def snapshot(cls) -> MutableMapping[str, dict[str, object]]:
        with cls._lock:
            return {
                name: {
                    "enabled": status.enabled,
                    "last_tick": status.last_tick,
                    "last_success": status.last_success,
                    "consecutive_failures": status.consecutive_failures,
                    "recent_errors": list(status.recent_errors),
                }
                for name, status in cls._jobs.items()
            }

    @classmethod
    def reset(cls) -> None:
        with cls._lock:
            cls._jobs.clear()
