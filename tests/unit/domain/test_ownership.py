"""
Unit tests for the ownership state machine.

Covers the pure transition decision and the service that persists
transitions and dispatches the failing/revoked alerts.
"""

from datetime import UTC, datetime, timedelta

import pytest

from domainstack.domain.exceptions import MailDeliveryError
from domainstack.domain.ownership import (
    FailureAction,
    decide_failure_action,
    difference_in_days,
)
from domainstack.domain.ports import NotificationPreferences, NotificationType, VerificationStatus

NOW = datetime(2026, 3, 10, 4, 0, tzinfo=UTC)


class TestDifferenceInDays:
    def test_truncates_partial_days(self) -> None:
        assert difference_in_days(NOW, NOW - timedelta(days=6, hours=23)) == 6

    def test_negative_spans_truncate_toward_zero(self) -> None:
        assert difference_in_days(NOW, NOW + timedelta(hours=30)) == -1


class TestDecideFailureAction:
    def test_verified_becomes_failing(self) -> None:
        assert decide_failure_action("verified", None, NOW) == FailureAction.MARKED_FAILING

    def test_failing_without_timestamp_is_restamped(self) -> None:
        assert decide_failure_action("failing", None, NOW) == FailureAction.MARKED_FAILING

    def test_exactly_seven_days_revokes(self) -> None:
        failed_at = NOW - timedelta(days=7)
        assert decide_failure_action("failing", failed_at, NOW) == FailureAction.REVOKED

    def test_six_days_twenty_three_hours_stays_in_grace(self) -> None:
        failed_at = NOW - timedelta(days=6, hours=23)
        assert decide_failure_action("failing", failed_at, NOW) == FailureAction.IN_GRACE_PERIOD

    def test_custom_grace_period(self) -> None:
        failed_at = NOW - timedelta(days=3)
        assert decide_failure_action("failing", failed_at, NOW, grace_period_days=3) == FailureAction.REVOKED


class TestHandleVerificationFailure:
    def test_first_failure_marks_failing_and_sends_warning(self, repository, ownership, mailer, clock) -> None:
        domain = repository.seed_verified("user-1", "example.com")

        action = ownership.handle_verification_failure(domain)

        assert action == FailureAction.MARKED_FAILING
        stored = repository.find_tracked_domain_by_id(domain.id)
        assert stored.verification_status == VerificationStatus.FAILING
        assert stored.verification_failed_at == clock.now
        assert stored.verified is True
        assert len(mailer.sent) == 1
        message, key = mailer.sent[0]
        assert message.subject == "⚠️ Verification failing for example.com"
        assert message.to == "owner@example.com"
        assert key == f"{domain.id}:verification_failing"

    def test_second_failure_within_grace_is_quiet(self, repository, ownership, mailer, clock) -> None:
        domain = repository.seed_verified("user-1", "example.com")
        ownership.handle_verification_failure(domain)
        first_failed_at = clock.now

        clock.now += timedelta(days=3)
        action = ownership.handle_verification_failure(repository.find_tracked_domain_with_domain_name(domain.id))

        assert action == FailureAction.IN_GRACE_PERIOD
        assert repository.find_tracked_domain_by_id(domain.id).verification_failed_at == first_failed_at
        assert len(mailer.sent) == 1

    def test_grace_elapsed_revokes_and_sends_revoked(self, repository, ownership, mailer, clock) -> None:
        domain = repository.seed_verified("user-1", "example.com")
        ownership.handle_verification_failure(domain)

        clock.now += timedelta(days=7)
        action = ownership.handle_verification_failure(repository.find_tracked_domain_with_domain_name(domain.id))

        assert action == FailureAction.REVOKED
        stored = repository.find_tracked_domain_by_id(domain.id)
        assert stored.verified is False
        assert stored.verification_method is None
        assert stored.verification_status == VerificationStatus.UNVERIFIED
        assert [m.subject for m, _ in mailer.sent][-1] == "🚨 Verification revoked for example.com"

    def test_mail_failure_leaves_state_untouched(self, repository, ownership, mailer, store) -> None:
        domain = repository.seed_verified("user-1", "example.com")
        mailer.fail_times = 1

        with pytest.raises(MailDeliveryError):
            ownership.handle_verification_failure(domain)

        stored = repository.find_tracked_domain_by_id(domain.id)
        assert stored.verification_status == VerificationStatus.VERIFIED
        assert not store.has_notification_been_sent(domain.id, NotificationType.VERIFICATION_FAILING)

        # Retried step redoes the transition and sends with the same key
        ownership.handle_verification_failure(domain)
        assert mailer.attempts == [f"{domain.id}:verification_failing"] * 2
        assert repository.find_tracked_domain_by_id(domain.id).verification_status == VerificationStatus.FAILING

    def test_disabled_preference_skips_email_but_still_transitions(
        self, repository, ownership, mailer, preferences
    ) -> None:
        domain = repository.seed_verified("user-1", "example.com")
        preferences.preferences["user-1"] = NotificationPreferences(verification_status=False)

        action = ownership.handle_verification_failure(domain)

        assert action == FailureAction.MARKED_FAILING
        assert mailer.sent == []

    def test_missing_owner_email_alerts_in_app_only(self, repository, ownership, mailer, store) -> None:
        repository.add_user("user-1", email="", name="Nobody")
        domain = repository.seed_verified("user-1", "example.com")

        ownership.handle_verification_failure(domain)

        assert mailer.attempts == []
        record = store.records[(domain.id, NotificationType.VERIFICATION_FAILING)]
        assert record.channels == ("in-app",)
        assert record.title == "Verification failing for example.com"

    def test_failing_record_carries_in_app_content(self, repository, ownership, store) -> None:
        domain = repository.seed_verified("user-1", "example.com")

        ownership.handle_verification_failure(domain)

        record = store.records[(domain.id, NotificationType.VERIFICATION_FAILING)]
        assert record.user_id == "user-1"
        assert record.channels == ("email", "in-app")
        assert "You have 7 days to fix it" in record.message
        assert record.data == {"domain_name": "example.com"}

    def test_disabled_preference_records_nothing(self, repository, ownership, preferences, store) -> None:
        domain = repository.seed_verified("user-1", "example.com")
        preferences.preferences["user-1"] = NotificationPreferences(verification_status=False)

        ownership.handle_verification_failure(domain)

        assert store.records == {}


class TestRecordSuccess:
    def test_recovery_clears_failure_silently(self, repository, ownership, mailer) -> None:
        domain = repository.seed_verified("user-1", "example.com")
        ownership.handle_verification_failure(domain)
        sent_before = len(mailer.sent)

        ownership.record_success(repository.find_tracked_domain_with_domain_name(domain.id))

        stored = repository.find_tracked_domain_by_id(domain.id)
        assert stored.verification_status == VerificationStatus.VERIFIED
        assert stored.verification_failed_at is None
        assert len(mailer.sent) == sent_before
