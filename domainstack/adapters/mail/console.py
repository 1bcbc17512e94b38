"""
Console mailer adapter - Implements Mailer protocol.

This module provides a console-based implementation of the domain's
mailer port, logging alert emails instead of delivering them. Used in
development and whenever no mail provider is configured.
"""

import logging
import uuid

from domainstack.domain.ports import EmailMessage, SendResult

logger = logging.getLogger(__name__)


class ConsoleMailer:
    """
    Implements Mailer protocol via console logging.

    Uses structural subtyping - no explicit inheritance from Protocol.
    Remembers the idempotency keys it has seen so repeated sends with the
    same key return the original message id, like a real provider.
    """

    def __init__(self) -> None:
        self._sent: dict[str, str] = {}

    def send_pretty_email(self, message: EmailMessage, idempotency_key: str | None = None) -> SendResult:
        """
        Log the email (simulates delivery).

        Args:
            message: Rendered email
            idempotency_key: Provider-side deduplication key

        Returns:
            SendResult with a console-<uuid> message id
        """
        if idempotency_key and idempotency_key in self._sent:
            return SendResult(message_id=self._sent[idempotency_key])

        message_id = f"console-{uuid.uuid4()}"
        if idempotency_key:
            self._sent[idempotency_key] = message_id
        logger.info(
            "[EMAIL] To: %s Subject: %s Key: %s Id: %s",
            message.to,
            message.subject,
            idempotency_key,
            message_id,
        )
        return SendResult(message_id=message_id)
