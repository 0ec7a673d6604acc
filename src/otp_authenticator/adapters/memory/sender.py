"""In-memory sender for test assertions."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from ...exceptions import DeliveryFailedError
from ...ports.sender import INotificationSender, OtpMessage

logger = logging.getLogger("otp_authenticator.sender")


@dataclass
class SentMessage:
    """Record of a sent message for test assertions."""

    destination: str
    message: OtpMessage


class InMemoryNotificationSender(INotificationSender):
    """
    Test double (Fake) that stores messages in a list for assertions.

    Set ``fail_with`` to make the next sends fail with a given reason.
    """

    def __init__(self) -> None:
        self.sent_messages: list[SentMessage] = []
        self.fail_with: str | None = None

    async def send(self, destination: str, message: OtpMessage) -> None:
        if self.fail_with is not None:
            raise DeliveryFailedError(message.channel.value, destination, self.fail_with)
        self.sent_messages.append(SentMessage(destination, message))
        logger.debug("Captured %s message to %s", message.channel.value, destination)

    def last_code(self, destination: str) -> str | None:
        """Code of the most recent message sent to ``destination``."""
        for sent in reversed(self.sent_messages):
            if sent.destination == destination:
                return sent.message.code
        return None

    def assert_sent(self, destination: str, count: int = 1) -> None:
        """Helper for test assertions."""
        matches = [m for m in self.sent_messages if m.destination == destination]
        if len(matches) != count:
            raise AssertionError(
                f"Expected {count} messages to {destination}, but found {len(matches)}."
            )

    def clear(self) -> None:
        """Clear all sent messages."""
        self.sent_messages.clear()
