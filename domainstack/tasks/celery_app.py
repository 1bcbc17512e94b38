"""
Celery application and beat schedule.

Per-domain units are routed to two queues whose worker concurrency is
the configured cap: "verification" for ownership checks and
"notifications" for expiry alerts. Scheduler passes run on the default
queue, one at a time per schedule.
"""

from celery import Celery
from celery.schedules import crontab

from domainstack.config.settings import get_settings

settings = get_settings()

celery_app = Celery(
    "domainstack",
    broker=settings.broker_url,
    backend=settings.result_backend,
    include=["domainstack.tasks.jobs"],
)

celery_app.conf.update(
    task_serializer="json",
    result_serializer="json",
    accept_content=["json"],
    timezone="UTC",
    enable_utc=True,
    task_acks_late=True,
    worker_prefetch_multiplier=1,
    task_routes={
        "domainstack.tasks.jobs.verify_pending_domain": {"queue": "verification"},
        "domainstack.tasks.jobs.reverify_ownership": {"queue": "verification"},
        "domainstack.tasks.jobs.auto_verify_pending_domain": {"queue": "verification"},
        "domainstack.tasks.jobs.check_domain_expiry": {"queue": "notifications"},
        "domainstack.tasks.jobs.check_certificate_expiry": {"queue": "notifications"},
    },
)

# Periodic tasks (beat). Requires worker with -B or separate beat service.
celery_app.conf.beat_schedule = {
    "verify-domains-twice-daily": {
        "task": "domainstack.tasks.jobs.run_verification_pass",
        "schedule": crontab(minute=0, hour="4,16"),
    },
    "check-domain-expiry-daily": {
        "task": "domainstack.tasks.jobs.run_domain_expiry_pass",
        "schedule": crontab(minute=0, hour=9),
    },
    "check-certificate-expiry-daily": {
        "task": "domainstack.tasks.jobs.run_certificate_expiry_pass",
        "schedule": crontab(minute=15, hour=9),
    },
    "cleanup-stale-unverified-daily": {
        "task": "domainstack.tasks.jobs.cleanup_stale_unverified",
        "schedule": crontab(minute=0, hour=3),
    },
}
