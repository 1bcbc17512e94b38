"""
Celery tasks - thin wrappers around the domain jobs.

Each per-domain task retries up to job_max_retries with exponential
backoff when the failure is retryable; FatalError fails immediately.
Auto-verify never retries: its own delay schedule is the retry.
"""

import logging
import threading

from psycopg_pool import ConnectionPool

from domainstack.bootstrap import Container, build_container
from domainstack.config.settings import get_settings
from domainstack.domain.exceptions import is_retryable
from domainstack.domain.ownership import utcnow
from domainstack.domain.scheduler import RETRY_BASE_SECONDS, Job, JobContext
from domainstack.tasks.celery_app import celery_app

logger = logging.getLogger(__name__)

JOB_TASK_NAMES = {
    Job.VERIFY_PENDING: "domainstack.tasks.jobs.verify_pending_domain",
    Job.REVERIFY_OWNERSHIP: "domainstack.tasks.jobs.reverify_ownership",
    Job.DOMAIN_EXPIRY: "domainstack.tasks.jobs.check_domain_expiry",
    Job.CERTIFICATE_EXPIRY: "domainstack.tasks.jobs.check_certificate_expiry",
    Job.AUTO_VERIFY: "domainstack.tasks.jobs.auto_verify_pending_domain",
}

_MAX_RETRIES = get_settings().job_max_retries

_container: Container | None = None
_container_lock = threading.Lock()


class CeleryDispatcher:
    """Implements Dispatcher protocol by sending Celery tasks by name."""

    def __init__(self, app=celery_app) -> None:
        self._app = app

    def dispatch(
        self,
        job: Job,
        tracked_domain_id: str,
        *,
        attempt: int = 0,
        countdown: float | None = None,
    ) -> None:
        kwargs = {"tracked_domain_id": tracked_domain_id}
        if job == Job.AUTO_VERIFY:
            kwargs["attempt"] = attempt
        self._app.send_task(JOB_TASK_NAMES[job], kwargs=kwargs, countdown=countdown)


def get_container() -> Container:
    """Build the worker's services once per process."""
    global _container
    with _container_lock:
        if _container is None:
            settings = get_settings()
            pool = ConnectionPool(
                conninfo=settings.database_url,
                min_size=settings.pool_min_size,
                max_size=settings.pool_max_size,
            )
            _container = build_container(pool, settings, dispatcher=CeleryDispatcher())
        return _container


def retry_countdown(retries: int) -> int:
    """Exponential backoff: 10s, 20s, 40s, ..."""
    return RETRY_BASE_SECONDS * (2**retries)


def run_with_retry(task, fn, *args):
    """Run fn, retrying the bound task on retryable failures."""
    try:
        return fn(*args)
    except Exception as exc:
        if not is_retryable(exc):
            logger.error("%s failed permanently: %s", task.name, exc)
            raise
        logger.warning(
            "%s failed (attempt %d/%d), retrying: %s",
            task.name,
            task.request.retries + 1,
            task.max_retries + 1,
            exc,
        )
        raise task.retry(exc=exc, countdown=retry_countdown(task.request.retries)) from exc


@celery_app.task(bind=True, name=JOB_TASK_NAMES[Job.VERIFY_PENDING], max_retries=_MAX_RETRIES)
def verify_pending_domain(self, tracked_domain_id: str) -> dict:
    ctx = JobContext.start(Job.VERIFY_PENDING.value, utcnow)
    return run_with_retry(self, get_container().jobs.verify_pending_domain, ctx, tracked_domain_id)


@celery_app.task(bind=True, name=JOB_TASK_NAMES[Job.REVERIFY_OWNERSHIP], max_retries=_MAX_RETRIES)
def reverify_ownership(self, tracked_domain_id: str) -> dict:
    ctx = JobContext.start(Job.REVERIFY_OWNERSHIP.value, utcnow)
    return run_with_retry(self, get_container().jobs.reverify_ownership, ctx, tracked_domain_id)


@celery_app.task(bind=True, name=JOB_TASK_NAMES[Job.DOMAIN_EXPIRY], max_retries=_MAX_RETRIES)
def check_domain_expiry(self, tracked_domain_id: str) -> dict:
    result = run_with_retry(self, get_container().expiry.check_domain_expiry, tracked_domain_id)
    return result.as_dict()


@celery_app.task(bind=True, name=JOB_TASK_NAMES[Job.CERTIFICATE_EXPIRY], max_retries=_MAX_RETRIES)
def check_certificate_expiry(self, tracked_domain_id: str) -> dict:
    result = run_with_retry(self, get_container().expiry.check_certificate_expiry, tracked_domain_id)
    return result.as_dict()


@celery_app.task(name=JOB_TASK_NAMES[Job.AUTO_VERIFY], max_retries=0)
def auto_verify_pending_domain(tracked_domain_id: str, attempt: int = 0) -> dict:
    ctx = JobContext.start(Job.AUTO_VERIFY.value, utcnow)
    return get_container().jobs.auto_verify(ctx, tracked_domain_id, attempt)


def _run_pass(name: str, run) -> dict:
    ctx = JobContext.start(name, utcnow)
    ctx.logger.info("Starting %s", name)
    summary = run(ctx)
    ctx.logger.info("Finished %s: %s", name, summary.as_dict())
    return summary.as_dict()


@celery_app.task(name="domainstack.tasks.jobs.run_verification_pass")
def run_verification_pass() -> dict:
    return _run_pass("verification_pass", get_container().scheduler.schedule_verification)


@celery_app.task(name="domainstack.tasks.jobs.run_domain_expiry_pass")
def run_domain_expiry_pass() -> dict:
    return _run_pass("domain_expiry_pass", get_container().scheduler.schedule_domain_expiry)


@celery_app.task(name="domainstack.tasks.jobs.run_certificate_expiry_pass")
def run_certificate_expiry_pass() -> dict:
    return _run_pass("certificate_expiry_pass", get_container().scheduler.schedule_certificate_expiry)


@celery_app.task(name="domainstack.tasks.jobs.cleanup_stale_unverified")
def cleanup_stale_unverified() -> dict:
    ctx = JobContext.start("cleanup_stale_unverified", utcnow)
    deleted = get_container().scheduler.cleanup_stale_unverified(ctx)
    return {"deleted": deleted}
