"""
Resend mailer adapter - Implements Mailer protocol over the Resend HTTP API.

Sends POST /emails with Bearer authentication. The idempotency key is
forwarded as the Idempotency-Key header so a retried job step cannot
produce a second message.
"""

import logging

import httpx

from domainstack.domain.ports import EmailMessage, SendResult

logger = logging.getLogger(__name__)


class ResendMailer:
    """Implements Mailer protocol via the Resend API."""

    def __init__(
        self,
        api_key: str,
        sender: str,
        base_url: str = "https://api.resend.com",
        client: httpx.Client | None = None,
        timeout: float = 10.0,
    ) -> None:
        self._api_key = api_key
        self._sender = sender
        self._base_url = base_url.rstrip("/")
        self._client = client or httpx.Client()
        self._timeout = timeout

    def send_pretty_email(self, message: EmailMessage, idempotency_key: str | None = None) -> SendResult:
        """
        Deliver an email through Resend.

        Provider and transport errors are returned in SendResult.error
        rather than raised; the notification engine decides on retries.
        """
        headers = {"Authorization": f"Bearer {self._api_key}"}
        if idempotency_key:
            headers["Idempotency-Key"] = idempotency_key
        payload = {
            "from": self._sender,
            "to": [message.to],
            "subject": message.subject,
            "html": message.html,
            "text": message.text,
        }

        try:
            response = self._client.post(
                f"{self._base_url}/emails", json=payload, headers=headers, timeout=self._timeout
            )
        except httpx.HTTPError as exc:
            logger.warning("Resend request failed: %s", exc)
            return SendResult(error=str(exc) or type(exc).__name__)

        if not response.is_success:
            try:
                detail = response.json().get("message") or response.text
            except ValueError:
                detail = response.text
            logger.warning("Resend rejected email (%s): %s", response.status_code, detail)
            return SendResult(error=f"{response.status_code}: {detail}")

        message_id = response.json().get("id")
        logger.info("Email sent via Resend to %s (id=%s)", message.to, message_id)
        return SendResult(message_id=message_id)
