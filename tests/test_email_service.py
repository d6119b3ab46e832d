"""Unit tests for the Resend email sender."""

from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest

from app.services.email_service import RESEND_EMAILS_URL, ResendEmailSender
from app.services.interfaces import SendFailureError


@pytest.fixture
def sender():
    return ResendEmailSender(api_key="re_test_key", from_address="Digestly <onboarding@resend.dev>")


class TestResendEmailSender:
    @pytest.mark.asyncio
    async def test_successful_send(self, sender):
        mock_client = AsyncMock()
        mock_client.post.return_value = MagicMock(status_code=200)

        with patch("app.services.email_service.httpx.AsyncClient") as mock_cls:
            mock_cls.return_value.__aenter__ = AsyncMock(return_value=mock_client)
            mock_cls.return_value.__aexit__ = AsyncMock(return_value=False)

            await sender.send("reader@example.com", "Your digest", "<p>hi</p>")

        call_args = mock_client.post.call_args
        assert call_args[0][0] == RESEND_EMAILS_URL
        assert call_args[1]["headers"]["Authorization"] == "Bearer re_test_key"
        assert call_args[1]["json"] == {
            "from": "Digestly <onboarding@resend.dev>",
            "to": "reader@example.com",
            "subject": "Your digest",
            "html": "<p>hi</p>",
        }

    @pytest.mark.asyncio
    async def test_missing_api_key(self):
        sender = ResendEmailSender(api_key="", from_address="x@example.com")
        with pytest.raises(SendFailureError) as exc_info:
            await sender.send("reader@example.com", "s", "<p></p>")
        assert exc_info.value.reason == "missing Resend API key"

    @pytest.mark.asyncio
    async def test_provider_error_message_is_surfaced(self, sender):
        mock_client = AsyncMock()
        mock_client.post.return_value = MagicMock(
            status_code=422,
            json=MagicMock(return_value={"statusCode": 422, "message": "Invalid `to` field"}),
        )

        with patch("app.services.email_service.httpx.AsyncClient") as mock_cls:
            mock_cls.return_value.__aenter__ = AsyncMock(return_value=mock_client)
            mock_cls.return_value.__aexit__ = AsyncMock(return_value=False)

            with pytest.raises(SendFailureError) as exc_info:
                await sender.send("not-an-email", "s", "<p></p>")

        assert exc_info.value.reason == "Invalid `to` field"

    @pytest.mark.asyncio
    async def test_non_json_error_body(self, sender):
        mock_client = AsyncMock()
        mock_client.post.return_value = MagicMock(
            status_code=500, json=MagicMock(side_effect=ValueError("not json"))
        )

        with patch("app.services.email_service.httpx.AsyncClient") as mock_cls:
            mock_cls.return_value.__aenter__ = AsyncMock(return_value=mock_client)
            mock_cls.return_value.__aexit__ = AsyncMock(return_value=False)

            with pytest.raises(SendFailureError) as exc_info:
                await sender.send("reader@example.com", "s", "<p></p>")

        assert exc_info.value.reason == "Resend returned 500"

    @pytest.mark.asyncio
    async def test_timeout(self, sender):
        mock_client = AsyncMock()
        mock_client.post.side_effect = httpx.TimeoutException("timed out")

        with patch("app.services.email_service.httpx.AsyncClient") as mock_cls:
            mock_cls.return_value.__aenter__ = AsyncMock(return_value=mock_client)
            mock_cls.return_value.__aexit__ = AsyncMock(return_value=False)

            with pytest.raises(SendFailureError) as exc_info:
                await sender.send("reader@example.com", "s", "<p></p>")

        assert "timed out" in exc_info.value.reason
