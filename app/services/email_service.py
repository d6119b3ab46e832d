"""Digest email delivery through the Resend HTTP API."""

import logging

import httpx

from app.config import Settings
from app.middleware.logging import redact_pii
from app.services.interfaces import EmailSender, SendFailureError

logger = logging.getLogger(__name__)

RESEND_EMAILS_URL = "https://api.resend.com/emails"


class ResendEmailSender(EmailSender):
    """Send HTML emails via Resend."""

    def __init__(self, api_key: str, from_address: str, timeout: float = 10.0) -> None:
        self._api_key = api_key
        self._from = from_address
        self._timeout = timeout

    async def send(self, to: str, subject: str, html_body: str) -> None:
        if not self._api_key:
            raise SendFailureError("missing Resend API key")

        try:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                response = await client.post(
                    RESEND_EMAILS_URL,
                    headers={"Authorization": f"Bearer {self._api_key}"},
                    json={"from": self._from, "to": to, "subject": subject, "html": html_body},
                )
        except httpx.TimeoutException as e:
            raise SendFailureError("Resend request timed out") from e
        except httpx.HTTPError as e:
            raise SendFailureError(f"Resend request failed: {type(e).__name__}") from e

        if response.status_code >= 300:
            raise SendFailureError(_error_message(response))
        logger.info("Digest email sent to %s", redact_pii(to))


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return f"Resend returned {response.status_code}"
    if isinstance(body, dict):
        error = body.get("error") or body.get("message")
        if isinstance(error, dict):
            error = error.get("message")
        if error:
            return str(error)
    return f"Resend returned {response.status_code}"


def get_email_sender(settings: Settings) -> ResendEmailSender:
    return ResendEmailSender(
        api_key=settings.resend_api_key.get_secret_value(),
        from_address=settings.digest_from_address,
        timeout=settings.external_call_timeout_seconds,
    )
