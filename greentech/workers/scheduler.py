"""
Interval scheduler for the telemetry pipeline's background jobs.

Design Principles:
- Single scheduler loop thread
- Bounded worker pool for job execution (no unbounded thread creation)
- Fixed-rate interval jobs: the next run advances from the scheduled time,
  not from completion, and missed slots are skipped rather than piled up
- A failing job is logged and counted; it never stops the loop or other jobs

Unlike a process-wide singleton, each pipeline owns its scheduler so that
``stop()`` cancels exactly the jobs that pipeline registered.
"""

from __future__ import annotations

import heapq
import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Any, Callable

from greentech.utils.time import from_epoch_seconds

logger = logging.getLogger(__name__)


@dataclass
class IntervalJob:
    """A job that runs every ``interval_seconds``."""

    job_id: str
    func: Callable[..., Any]
    interval_seconds: float
    enabled: bool = True
    args: tuple = field(default_factory=tuple)
    kwargs: dict[str, Any] = field(default_factory=dict)

    # Execution tracking (epoch seconds)
    next_run: float | None = None
    last_run: float | None = None
    run_count: int = 0
    success_count: int = 0
    failure_count: int = 0
    skipped_overlaps: int = 0
    last_error: str | None = None
    running: bool = False

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary (for API responses)."""
        return {
            "job_id": self.job_id,
            "interval_seconds": self.interval_seconds,
            "enabled": self.enabled,
            "next_run": from_epoch_seconds(self.next_run).isoformat() if self.next_run else None,
            "last_run": from_epoch_seconds(self.last_run).isoformat() if self.last_run else None,
            "run_count": self.run_count,
            "success_count": self.success_count,
            "failure_count": self.failure_count,
            "skipped_overlaps": self.skipped_overlaps,
            "last_error": self.last_error,
        }


class IntervalScheduler:
    """
    Heap-ordered interval scheduler.

    Implementation note on the heap:
    - Entries are tuples ``(run_at_ts, seq, job_id)``; ``seq`` keeps ordering
      stable when timestamps match
    - Entries are never deleted in place; removed, disabled or rescheduled
      jobs leave stale entries that are skipped when popped
    """

    def __init__(
        self,
        check_interval_seconds: float = 0.5,
        max_workers: int = 2,
        *,
        clock: Callable[[], float] | None = None,
        name: str = "IntervalScheduler",
    ):
        """
        Args:
            check_interval_seconds: How often the loop looks for due jobs
            max_workers: Maximum number of concurrent job executions
            clock: Epoch-seconds clock (``time.time`` by default)
            name: Thread name prefix
        """
        self._check_interval = float(check_interval_seconds)
        self._max_workers = int(max_workers)
        self._clock = clock or time.time
        self._name = name

        self._jobs: dict[str, IntervalJob] = {}
        self._job_heap: list[tuple[float, int, str]] = []
        self._heap_seq = 0
        self._job_lock = threading.RLock()

        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None
        self._executor: ThreadPoolExecutor | None = None

    # ==================== Heap Helpers ====================

    def _push_heap(self, job: IntervalJob) -> None:
        if not job.enabled or job.next_run is None:
            return
        self._heap_seq += 1
        heapq.heappush(self._job_heap, (job.next_run, self._heap_seq, job.job_id))

    # ==================== Job Management ====================

    def add_interval_job(
        self,
        job_id: str,
        func: Callable[..., Any],
        interval_seconds: float,
        *,
        args: tuple = (),
        kwargs: dict[str, Any] | None = None,
        start_immediately: bool = False,
    ) -> IntervalJob:
        """Register ``func`` to run every ``interval_seconds``; replaces a job with the same id."""
        interval = float(interval_seconds)
        if interval <= 0:
            raise ValueError(f"interval_seconds must be positive, got {interval_seconds!r}")

        now = self._clock()
        job = IntervalJob(
            job_id=job_id,
            func=func,
            interval_seconds=interval,
            args=tuple(args),
            kwargs=dict(kwargs or {}),
            next_run=now if start_immediately else now + interval,
        )
        with self._job_lock:
            self._jobs[job_id] = job
            self._push_heap(job)
        logger.info("Scheduled interval job: %s (every %ss)", job_id, interval)
        return job

    def remove_job(self, job_id: str) -> bool:
        with self._job_lock:
            if self._jobs.pop(job_id, None) is not None:
                logger.info("Removed job: %s", job_id)
                return True
        return False

    def enable_job(self, job_id: str, enabled: bool = True) -> bool:
        with self._job_lock:
            job = self._jobs.get(job_id)
            if job is None:
                return False
            job.enabled = bool(enabled)
            if job.enabled:
                job.next_run = self._clock() + job.interval_seconds
                self._push_heap(job)
        logger.info("Job %s %s", job_id, "enabled" if enabled else "disabled")
        return True

    def get_job(self, job_id: str) -> IntervalJob | None:
        return self._jobs.get(job_id)

    def get_jobs(self) -> list[IntervalJob]:
        with self._job_lock:
            return list(self._jobs.values())

    def clear_jobs(self) -> None:
        with self._job_lock:
            self._jobs.clear()
            self._job_heap.clear()
            self._heap_seq = 0

    # ==================== Scheduler Control ====================

    def start(self) -> None:
        """Start the scheduler loop thread and worker pool."""
        if self.is_running():
            logger.warning("Scheduler already running")
            return

        self._stop_event = threading.Event()
        self._executor = ThreadPoolExecutor(
            max_workers=self._max_workers,
            thread_name_prefix=f"{self._name}Job",
        )
        self._thread = threading.Thread(target=self._run_loop, daemon=True, name=self._name)
        self._thread.start()
        logger.info("%s started with %s job(s)", self._name, len(self._jobs))

    def stop(self, wait: bool = True, timeout: float = 5.0) -> None:
        """
        Stop the loop, cancel queued executions and drop every job.

        Safe to call when not running.
        """
        self._stop_event.set()
        thread = self._thread
        self._thread = None
        if wait and thread is not None and thread is not threading.current_thread():
            thread.join(timeout=timeout)

        executor = self._executor
        self._executor = None
        if executor is not None:
            executor.shutdown(wait=wait, cancel_futures=True)

        self.clear_jobs()
        if thread is not None:
            logger.info("%s stopped", self._name)

    def shutdown(self, wait: bool = True, timeout: float = 5.0) -> None:
        """Alias for stop(); matches other services' shutdown() convention."""
        self.stop(wait=wait, timeout=timeout)

    def is_running(self) -> bool:
        thread = self._thread
        return thread is not None and thread.is_alive() and not self._stop_event.is_set()

    def _run_loop(self) -> None:
        stop_event = self._stop_event
        logger.debug("Scheduler loop started")
        while not stop_event.is_set():
            try:
                self._process_due_jobs(submit=True)
            except Exception as e:
                logger.error("Error in scheduler loop: %s", e, exc_info=True)
            stop_event.wait(self._check_interval)
        logger.debug("Scheduler loop ended")

    # ==================== Core Scheduling Logic ====================

    def run_pending(self) -> int:
        """
        Run every due job synchronously on the calling thread.

        Returns the number of jobs executed.
        """
        return self._process_due_jobs(submit=False)

    def _process_due_jobs(self, *, submit: bool) -> int:
        now = self._clock()
        due: list[IntervalJob] = []

        with self._job_lock:
            while self._job_heap:
                run_at, _seq, job_id = self._job_heap[0]
                if run_at > now:
                    break
                heapq.heappop(self._job_heap)

                job = self._jobs.get(job_id)
                if job is None or not job.enabled or job.next_run is None:
                    continue
                # Stale entry: job was rescheduled after this entry was pushed
                if abs(job.next_run - run_at) > 1e-6:
                    continue

                self._schedule_next_run(job, scheduled_time=run_at, now=now)
                self._push_heap(job)

                if job.running:
                    job.skipped_overlaps += 1
                    logger.debug("Job %s still running; skipping this slot", job.job_id)
                    continue
                job.running = True
                due.append(job)

        for job in due:
            if not submit:
                self._execute_job(job)
                continue
            executor = self._executor
            if executor is None:
                job.running = False
                logger.warning("Executor unavailable; skipping job %s", job.job_id)
                continue
            try:
                executor.submit(self._execute_job, job)
            except RuntimeError as e:
                # Executor shut down between the check and the submit
                job.running = False
                logger.debug("Could not submit job %s: %s", job.job_id, e)
        return len(due)

    def _execute_job(self, job: IntervalJob) -> None:
        started_at = self._clock()
        try:
            job.func(*job.args, **job.kwargs)
        except Exception as e:
            with self._job_lock:
                job.last_run = started_at
                job.run_count += 1
                job.failure_count += 1
                job.last_error = str(e)
                job.running = False
            logger.error("Job %s failed: %s", job.job_id, e, exc_info=True)
            return

        with self._job_lock:
            job.last_run = started_at
            job.run_count += 1
            job.success_count += 1
            job.last_error = None
            job.running = False

    def _schedule_next_run(self, job: IntervalJob, *, scheduled_time: float, now: float) -> None:
        """Fixed-rate: advance from the scheduled time and skip slots already in the past."""
        interval = job.interval_seconds
        next_run = scheduled_time + interval
        if next_run <= now:
            skips = int((now - next_run) // interval) + 1
            next_run += skips * interval
        job.next_run = next_run

    # ==================== Status ====================

    def get_status(self) -> dict[str, Any]:
        with self._job_lock:
            jobs = [job.to_dict() for job in self._jobs.values()]
        return {
            "running": self.is_running(),
            "job_count": len(jobs),
            "jobs": jobs,
        }
