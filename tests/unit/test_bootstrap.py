"""Unit tests for object graph wiring."""

from unittest.mock import MagicMock

import pytest

from domainstack.adapters.mail.console import ConsoleMailer
from domainstack.adapters.mail.resend import ResendMailer
from domainstack.bootstrap import build_container, build_mailer
from domainstack.config.settings import Settings


class TestBuildMailer:
    def test_console_is_default(self) -> None:
        assert isinstance(build_mailer(Settings(mail_backend="console")), ConsoleMailer)

    def test_resend_requires_api_key(self) -> None:
        with pytest.raises(ValueError):
            build_mailer(Settings(mail_backend="resend", resend_api_key=""))

    def test_resend_backend(self) -> None:
        mailer = build_mailer(Settings(mail_backend="resend", resend_api_key="re_test"))
        assert isinstance(mailer, ResendMailer)


class TestBuildContainer:
    def test_scheduler_needs_a_dispatcher(self) -> None:
        container = build_container(MagicMock(), Settings())
        assert container.scheduler is None
        assert container.tracking.dispatcher is None

    def test_settings_flow_into_services(self) -> None:
        dispatcher = MagicMock()
        settings = Settings(max_tracked_domains=9, grace_period_days=3, app_base_url="https://app.test/")

        container = build_container(MagicMock(), settings, dispatcher=dispatcher)

        assert container.tracking.max_domains == 9
        assert container.ownership.grace_period_days == 3
        assert container.ownership.dashboard_url == "https://app.test/dashboard"
        assert container.scheduler.dispatcher is dispatcher
        assert container.jobs.dispatcher is dispatcher
