"""
In-process job runner.

ThreadPoolDispatcher implements the Dispatcher protocol on top of two
bounded thread pools, one per queue, so a scheduler pass can run to
completion without a broker (cron, one-off maintenance, tests).
"""

import argparse
import logging
import threading
import time
from collections import Counter
from collections.abc import Callable
from concurrent.futures import Future, ThreadPoolExecutor, wait

from psycopg_pool import ConnectionPool
from tenacity import Retrying, retry_if_exception, stop_after_attempt, wait_exponential

from domainstack.bootstrap import Container, build_container
from domainstack.config.logging import setup_logging
from domainstack.config.settings import get_settings
from domainstack.domain.exceptions import is_retryable
from domainstack.domain.ownership import utcnow
from domainstack.domain.scheduler import RETRY_BASE_SECONDS, Job, JobContext

logger = logging.getLogger(__name__)

Handler = Callable[[str, int], dict]

VERIFICATION_QUEUE = "verification"
NOTIFICATIONS_QUEUE = "notifications"

JOB_QUEUES = {
    Job.VERIFY_PENDING: VERIFICATION_QUEUE,
    Job.REVERIFY_OWNERSHIP: VERIFICATION_QUEUE,
    Job.AUTO_VERIFY: VERIFICATION_QUEUE,
    Job.DOMAIN_EXPIRY: NOTIFICATIONS_QUEUE,
    Job.CERTIFICATE_EXPIRY: NOTIFICATIONS_QUEUE,
}


def build_local_handlers(container: Container, clock=utcnow) -> dict[Job, Handler]:
    """Map each job to a (tracked_domain_id, attempt) callable."""

    def unit(job: Job) -> JobContext:
        return JobContext.start(job.value, clock)

    return {
        Job.VERIFY_PENDING: lambda tid, attempt: container.jobs.verify_pending_domain(unit(Job.VERIFY_PENDING), tid),
        Job.REVERIFY_OWNERSHIP: lambda tid, attempt: container.jobs.reverify_ownership(
            unit(Job.REVERIFY_OWNERSHIP), tid
        ),
        Job.AUTO_VERIFY: lambda tid, attempt: container.jobs.auto_verify(unit(Job.AUTO_VERIFY), tid, attempt),
        Job.DOMAIN_EXPIRY: lambda tid, attempt: container.expiry.check_domain_expiry(tid).as_dict(),
        Job.CERTIFICATE_EXPIRY: lambda tid, attempt: container.expiry.check_certificate_expiry(tid).as_dict(),
    }


class ThreadPoolDispatcher:
    """
    Run jobs on per-queue thread pools with bounded retries.

    Retryable failures back off exponentially (10s, 20s, 40s by default),
    the same schedule the Celery tasks use.

    Delayed jobs (countdown) are held by a timer and submitted when it
    fires. drain() waits for everything queued so far, including jobs
    queued by running jobs.
    """

    def __init__(
        self,
        handlers: dict[Job, Handler],
        *,
        verification_concurrency: int = 5,
        notifications_concurrency: int = 10,
        max_retries: int = 3,
        retry_base_seconds: float = RETRY_BASE_SECONDS,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._handlers = handlers
        self._max_retries = max_retries
        self._retry_base_seconds = retry_base_seconds
        self._sleep = sleep
        self._executors = {
            VERIFICATION_QUEUE: ThreadPoolExecutor(
                max_workers=verification_concurrency, thread_name_prefix="verification"
            ),
            NOTIFICATIONS_QUEUE: ThreadPoolExecutor(
                max_workers=notifications_concurrency, thread_name_prefix="notifications"
            ),
        }
        self._lock = threading.Lock()
        self._futures: list[Future] = []
        self._timers: list[threading.Timer] = []
        self.outcomes: Counter = Counter()
        self.errors = 0

    def dispatch(
        self,
        job: Job,
        tracked_domain_id: str,
        *,
        attempt: int = 0,
        countdown: float | None = None,
    ) -> None:
        if countdown:
            timer = threading.Timer(countdown, self._submit, args=(job, tracked_domain_id, attempt))
            timer.daemon = True
            with self._lock:
                self._timers.append(timer)
            timer.start()
            return
        self._submit(job, tracked_domain_id, attempt)

    def _submit(self, job: Job, tracked_domain_id: str, attempt: int) -> None:
        executor = self._executors[JOB_QUEUES[job]]
        future = executor.submit(self._run, job, tracked_domain_id, attempt)
        with self._lock:
            self._futures.append(future)

    def _run(self, job: Job, tracked_domain_id: str, attempt: int) -> None:
        handler = self._handlers[job]
        tries = 0
        try:
            for call in Retrying(
                stop=stop_after_attempt(self._max_retries + 1),
                wait=wait_exponential(multiplier=self._retry_base_seconds),
                retry=retry_if_exception(is_retryable),
                before_sleep=lambda state: logger.warning(
                    "%s failed for %s, retrying in %.0fs: %s",
                    job.value,
                    tracked_domain_id,
                    state.next_action.sleep,
                    state.outcome.exception(),
                ),
                sleep=self._sleep,
                reraise=True,
            ):
                with call:
                    tries = call.retry_state.attempt_number
                    result = handler(tracked_domain_id, attempt)
        except Exception:
            logger.error(
                "%s failed for %s after %d attempt(s)",
                job.value,
                tracked_domain_id,
                tries,
                exc_info=True,
            )
            with self._lock:
                self.errors += 1
            return
        with self._lock:
            self.outcomes[result.get("outcome", "unknown")] += 1

    def drain(self, include_delayed: bool = False) -> dict:
        """
        Block until queued jobs finish; return outcome tallies.

        Args:
            include_delayed: Also wait for pending countdown timers
        """
        while True:
            with self._lock:
                futures = [f for f in self._futures if not f.done()]
                timers = [t for t in self._timers if t.is_alive()] if include_delayed else []
            if not futures and not timers:
                break
            for timer in timers:
                timer.join()
            wait(futures)
        with self._lock:
            return {"outcomes": dict(self.outcomes), "errors": self.errors}

    def shutdown(self) -> None:
        with self._lock:
            for timer in self._timers:
                timer.cancel()
        for executor in self._executors.values():
            executor.shutdown(wait=True)


PASSES = ("verification", "domain-expiry", "certificate-expiry", "cleanup")


def main(argv: list[str] | None = None) -> None:
    """Run one scheduler pass in-process and wait for its jobs."""
    parser = argparse.ArgumentParser(description="Run one domainstack scheduler pass without a broker")
    parser.add_argument("pass_name", choices=PASSES)
    args = parser.parse_args(argv)

    setup_logging()
    settings = get_settings()
    pool = ConnectionPool(
        conninfo=settings.database_url,
        min_size=settings.pool_min_size,
        max_size=settings.pool_max_size,
    )
    handlers: dict[Job, Handler] = {}
    dispatcher = ThreadPoolDispatcher(
        handlers,
        verification_concurrency=settings.verification_concurrency,
        notifications_concurrency=settings.expiry_concurrency,
        max_retries=settings.job_max_retries,
    )
    container = build_container(pool, settings, dispatcher=dispatcher)
    handlers.update(build_local_handlers(container))

    try:
        ctx = JobContext.start(args.pass_name.replace("-", "_"), utcnow)
        if args.pass_name == "cleanup":
            deleted = container.scheduler.cleanup_stale_unverified(ctx)
            ctx.logger.info("Cleanup finished: deleted=%d", deleted)
            return
        run = {
            "verification": container.scheduler.schedule_verification,
            "domain-expiry": container.scheduler.schedule_domain_expiry,
            "certificate-expiry": container.scheduler.schedule_certificate_expiry,
        }[args.pass_name]
        summary = run(ctx)
        tally = dispatcher.drain()
        ctx.logger.info("Pass finished: %s outcomes=%s", summary.as_dict(), tally)
    finally:
        dispatcher.shutdown()
        pool.close()


if __name__ == "__main__":
    main()
