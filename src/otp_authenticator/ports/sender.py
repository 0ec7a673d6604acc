"""Notification sender port for out-of-band codes."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from datetime import datetime

    from ..domain import AuthenticatorType


@dataclass(frozen=True)
class OtpMessage:
    """Rendered message carrying a one-time code.

    Attributes:
        code: The one-time code.
        channel: SMS or EMAIL.
        body: Plain-text body.
        subject: Subject line (e-mail only).
        html_body: HTML body (e-mail only).
        expires_at: When the code stops verifying.
    """

    code: str
    channel: AuthenticatorType
    body: str
    subject: str | None = None
    html_body: str | None = None
    expires_at: datetime | None = None


@runtime_checkable
class INotificationSender(Protocol):
    """
    Port for delivering codes over SMS or e-mail.

    The package does NOT include an SMS or e-mail transport; the host wires
    in Twilio, SES, SMTP or anything else behind this protocol.

    Example:
        ```python
        class TwilioSender(INotificationSender):
            async def send(self, destination: str, message: OtpMessage) -> None:
                await twilio.messages.create(to=destination, body=message.body)
        ```
    """

    async def send(self, destination: str, message: OtpMessage) -> None:
        """Deliver ``message`` to ``destination``.

        Raises:
            DeliveryFailedError: If the provider rejected the message.
        """
        ...
