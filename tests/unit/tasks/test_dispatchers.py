"""
Unit tests for the job runners.

Covers the Celery dispatcher's task routing, the retry wrapper used by
the Celery tasks, and the in-process ThreadPoolDispatcher.
"""

import threading
import time
from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest

from domainstack.domain.exceptions import FatalError, RetryableError
from domainstack.domain.expiry import ExpiryCheckResult
from domainstack.domain.ports import NotificationType
from domainstack.domain.scheduler import Job
from domainstack.tasks import jobs
from domainstack.tasks.local import ThreadPoolDispatcher


class TestCeleryDispatcher:
    def test_sends_task_by_name(self) -> None:
        app = MagicMock()

        jobs.CeleryDispatcher(app).dispatch(Job.REVERIFY_OWNERSHIP, "td-1")

        app.send_task.assert_called_once_with(
            "domainstack.tasks.jobs.reverify_ownership",
            kwargs={"tracked_domain_id": "td-1"},
            countdown=None,
        )

    def test_auto_verify_carries_attempt_and_countdown(self) -> None:
        app = MagicMock()

        jobs.CeleryDispatcher(app).dispatch(Job.AUTO_VERIFY, "td-1", attempt=2, countdown=600)

        app.send_task.assert_called_once_with(
            "domainstack.tasks.jobs.auto_verify_pending_domain",
            kwargs={"tracked_domain_id": "td-1", "attempt": 2},
            countdown=600,
        )

    def test_every_job_has_a_registered_task(self) -> None:
        for name in jobs.JOB_TASK_NAMES.values():
            assert name in jobs.celery_app.tasks

    def test_per_domain_tasks_are_routed_to_queues(self) -> None:
        routes = jobs.celery_app.conf.task_routes
        assert routes[jobs.JOB_TASK_NAMES[Job.REVERIFY_OWNERSHIP]] == {"queue": "verification"}
        assert routes[jobs.JOB_TASK_NAMES[Job.DOMAIN_EXPIRY]] == {"queue": "notifications"}


class RetrySignal(Exception):
    pass


class FakeTask:
    name = "domainstack.tasks.jobs.check_domain_expiry"
    max_retries = 3

    def __init__(self, retries: int = 0) -> None:
        self.request = SimpleNamespace(retries=retries)
        self.retry_calls = []

    def retry(self, exc, countdown):
        self.retry_calls.append((exc, countdown))
        return RetrySignal()


class TestRunWithRetry:
    def test_success_passes_result_through(self) -> None:
        assert jobs.run_with_retry(FakeTask(), lambda tid: {"outcome": "sent"}, "td-1") == {"outcome": "sent"}

    def test_retryable_error_schedules_retry_with_backoff(self) -> None:
        task = FakeTask(retries=2)

        def boom(tid):
            raise RetryableError("provider down")

        with pytest.raises(RetrySignal):
            jobs.run_with_retry(task, boom, "td-1")

        assert task.retry_calls[0][1] == 40

    def test_fatal_error_is_not_retried(self) -> None:
        task = FakeTask()

        def boom(tid):
            raise FatalError("bad data")

        with pytest.raises(FatalError):
            jobs.run_with_retry(task, boom, "td-1")

        assert task.retry_calls == []


def test_expiry_task_returns_json_outcome(monkeypatch) -> None:
    result = ExpiryCheckResult(sent=True, notification_type=NotificationType.DOMAIN_EXPIRY_7D)
    container = SimpleNamespace(expiry=SimpleNamespace(check_domain_expiry=lambda tid: result))
    monkeypatch.setattr(jobs, "get_container", lambda: container)

    assert jobs.check_domain_expiry("td-1") == {"outcome": "sent", "type": "domain_expiry_7d"}


def test_verification_tasks_hand_each_unit_a_job_context(monkeypatch) -> None:
    seen = []

    def auto_verify(ctx, tid, attempt):
        seen.append((ctx.name, ctx.run_id, tid, attempt))
        return {"outcome": "still_pending"}

    container = SimpleNamespace(jobs=SimpleNamespace(auto_verify=auto_verify))
    monkeypatch.setattr(jobs, "get_container", lambda: container)

    jobs.auto_verify_pending_domain("td-1", 2)
    jobs.auto_verify_pending_domain("td-1", 3)

    assert [(name, tid, attempt) for name, _, tid, attempt in seen] == [
        ("auto_verify_pending_domain", "td-1", 2),
        ("auto_verify_pending_domain", "td-1", 3),
    ]
    assert seen[0][1] != seen[1][1]


class TestThreadPoolDispatcher:
    def test_runs_jobs_and_tallies_outcomes(self) -> None:
        seen = []
        lock = threading.Lock()

        def handler(tid, attempt):
            with lock:
                seen.append(tid)
            return {"outcome": "verified" if tid != "td-3" else "still_pending"}

        dispatcher = ThreadPoolDispatcher({Job.VERIFY_PENDING: handler}, verification_concurrency=2)
        for tid in ("td-1", "td-2", "td-3"):
            dispatcher.dispatch(Job.VERIFY_PENDING, tid)

        tally = dispatcher.drain()
        dispatcher.shutdown()

        assert sorted(seen) == ["td-1", "td-2", "td-3"]
        assert tally == {"outcomes": {"verified": 2, "still_pending": 1}, "errors": 0}

    def test_retries_retryable_failures(self) -> None:
        calls = []

        def handler(tid, attempt):
            calls.append(tid)
            if len(calls) < 3:
                raise RetryableError("flaky")
            return {"outcome": "sent"}

        sleeps = []
        dispatcher = ThreadPoolDispatcher({Job.DOMAIN_EXPIRY: handler}, max_retries=3, sleep=sleeps.append)
        dispatcher.dispatch(Job.DOMAIN_EXPIRY, "td-1")

        tally = dispatcher.drain()
        dispatcher.shutdown()

        assert len(calls) == 3
        assert sleeps == [10, 20]
        assert tally == {"outcomes": {"sent": 1}, "errors": 0}

    def test_fatal_failure_is_counted_once(self) -> None:
        calls = []

        def handler(tid, attempt):
            calls.append(tid)
            raise FatalError("bad")

        sleeps = []
        dispatcher = ThreadPoolDispatcher({Job.DOMAIN_EXPIRY: handler}, sleep=sleeps.append)
        dispatcher.dispatch(Job.DOMAIN_EXPIRY, "td-1")

        tally = dispatcher.drain()
        dispatcher.shutdown()

        assert calls == ["td-1"]
        assert tally["errors"] == 1
        assert sleeps == []

    def test_exhausted_retries_count_as_error(self) -> None:
        calls = []

        def handler(tid, attempt):
            calls.append(tid)
            raise RetryableError("still down")

        sleeps = []
        dispatcher = ThreadPoolDispatcher({Job.CERTIFICATE_EXPIRY: handler}, max_retries=2, sleep=sleeps.append)
        dispatcher.dispatch(Job.CERTIFICATE_EXPIRY, "td-1")

        assert dispatcher.drain()["errors"] == 1
        dispatcher.shutdown()
        assert len(calls) == 3
        assert sleeps == [10, 20]

    def test_backoff_actually_waits_between_attempts(self) -> None:
        called_at = []

        def handler(tid, attempt):
            called_at.append(time.monotonic())
            if len(called_at) < 3:
                raise RetryableError("flaky")
            return {"outcome": "sent"}

        dispatcher = ThreadPoolDispatcher({Job.DOMAIN_EXPIRY: handler}, retry_base_seconds=0.05)
        dispatcher.dispatch(Job.DOMAIN_EXPIRY, "td-1")

        tally = dispatcher.drain()
        dispatcher.shutdown()

        assert tally == {"outcomes": {"sent": 1}, "errors": 0}
        assert called_at[1] - called_at[0] >= 0.05
        assert called_at[2] - called_at[1] >= 0.1

    def test_countdown_delays_submission(self) -> None:
        ran_at = []

        def handler(tid, attempt):
            ran_at.append((time.monotonic(), attempt))
            return {"outcome": "still_pending"}

        dispatcher = ThreadPoolDispatcher({Job.AUTO_VERIFY: handler})
        started = time.monotonic()
        dispatcher.dispatch(Job.AUTO_VERIFY, "td-1", attempt=1, countdown=0.05)

        dispatcher.drain(include_delayed=True)
        dispatcher.shutdown()

        assert len(ran_at) == 1
        assert ran_at[0][0] - started >= 0.05
        assert ran_at[0][1] == 1
