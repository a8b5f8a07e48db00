"""
Mailer adapters - implement the domain ``Mailer`` port.

``ConsoleMailer`` writes messages to the log for local development.
``SendGridMailer`` posts to the SendGrid v3 ``mail/send`` endpoint.
"""

from typing import Any

import httpx
import structlog

from transfer_service.domain.models import EmailMessage


logger = structlog.get_logger()


class MailerError(Exception):
    """Raised when the transport refuses or cannot accept a message."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        self.status_code = status_code
        super().__init__(message)


class ConsoleMailer:
    """Logs the plain-text body instead of sending it."""

    async def send(self, message: EmailMessage) -> None:
        logger.info(
            "console_mail",
            to=message.to,
            subject=message.subject,
            sender=message.sender.email,
            body=message.text,
        )


class SendGridMailer:
    """HTTP transport for the SendGrid v3 API."""

    def __init__(
        self,
        api_key: str,
        api_url: str = "https://api.sendgrid.com/v3/mail/send",
        client: httpx.AsyncClient | None = None,
    ) -> None:
        if not api_key:
            raise ValueError("SendGrid API key is required")
        self._api_url = api_url
        self._client = client or httpx.AsyncClient()
        self._headers = {
            "Authorization": f"Bearer {api_key}",
            "Content-Type": "application/json",
        }

    @staticmethod
    def build_payload(message: EmailMessage) -> dict[str, Any]:
        sender: dict[str, str] = {"email": message.sender.email}
        if message.sender.name:
            sender["name"] = message.sender.name
        return {
            "personalizations": [{"to": [{"email": message.to}]}],
            "from": sender,
            "subject": message.subject,
            # SendGrid requires text/plain before text/html
            "content": [
                {"type": "text/plain", "value": message.text},
                {"type": "text/html", "value": message.html},
            ],
        }

    async def send(self, message: EmailMessage) -> None:
        try:
            response = await self._client.post(
                self._api_url,
                json=self.build_payload(message),
                headers=self._headers,
            )
        except httpx.HTTPError as e:
            raise MailerError(f"SendGrid request failed: {e}") from e

        if response.status_code >= 400:
            raise MailerError(
                f"SendGrid rejected message with status {response.status_code}: {response.text[:200]}",
                status_code=response.status_code,
            )
        logger.debug("sendgrid_accepted", to=message.to, status_code=response.status_code)

    async def close(self) -> None:
        await self._client.aclose()
