"""Fixed-interval background jobs (sync and roaming loops).

Each job runs on its own daemon thread and calls a callable that reads
the dispatch service's current state when it fires, so no job ever
works from a stale snapshot.  ``stop`` wakes the threads immediately.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass
from typing import Callable

import structlog

logger = structlog.get_logger(__name__)


@dataclass
class _Job:
    name: str
    interval: float
    func: Callable[[], object]
    thread: threading.Thread | None = None
    runs: int = 0
    failures: int = 0


class PeriodicScheduler:
    """Runs registered callables every ``interval`` seconds until stopped."""

    def __init__(self) -> None:
        self._jobs: dict[str, _Job] = {}
        self._stop_event = threading.Event()
        self._lock = threading.Lock()

    def add_job(self, name: str, interval: float, func: Callable[[], object]) -> None:
        if interval <= 0:
            raise ValueError(f"Interval of job {name} must be positive.")
        with self._lock:
            if name in self._jobs:
                raise ValueError(f"Job {name} already registered.")
            self._jobs[name] = _Job(name=name, interval=interval, func=func)

    def start(self) -> None:
        with self._lock:
            self._stop_event.clear()
            for job in self._jobs.values():
                if job.thread is not None and job.thread.is_alive():
                    continue
                job.thread = threading.Thread(
                    target=self._run, args=(job,), name=f"dispatch-{job.name}", daemon=True
                )
                job.thread.start()
                logger.info("scheduler.job_started", job=job.name, interval=job.interval)

    def stop(self, timeout: float | None = 5.0) -> None:
        self._stop_event.set()
        with self._lock:
            threads = [j.thread for j in self._jobs.values() if j.thread is not None]
        for thread in threads:
            thread.join(timeout)
        logger.info("scheduler.stopped")

    @property
    def running(self) -> bool:
        with self._lock:
            return any(
                j.thread is not None and j.thread.is_alive() for j in self._jobs.values()
            )

    def stats(self) -> dict[str, dict[str, int]]:
        with self._lock:
            return {
                name: {"runs": job.runs, "failures": job.failures}
                for name, job in self._jobs.items()
            }

    def run_once(self, name: str) -> object:
        """Fire one job synchronously (management commands and tests)."""
        return self._fire(self._jobs[name])

    def _run(self, job: _Job) -> None:
        # wait() returns True as soon as stop() is called
        while not self._stop_event.wait(job.interval):
            self._fire(job)

    def _fire(self, job: _Job) -> object:
        try:
            result = job.func()
        except Exception as exc:
            # the next tick retries
            job.failures += 1
            logger.exception("scheduler.job_failed", job=job.name, error=str(exc))
            return None
        job.runs += 1
        return result
