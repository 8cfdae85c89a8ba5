"""
Tests for the email (SendGrid) and SMS (HTTP gateway) transports.
"""

from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest

from hockey_backend.services import email_service, sms_service

GATEWAY_URL = "https://sms.example.com/api/send"


@pytest.mark.asyncio
async def test_email_skipped_without_api_key(monkeypatch):
    monkeypatch.setattr(email_service, "SENDGRID_API_KEY", None)
    with patch.object(email_service, "SendGridAPIClient") as client_cls:
        assert await email_service.send_email("a@example.com", "Hi", "Body") is True
    client_cls.assert_not_called()


@pytest.mark.asyncio
async def test_email_disabled_by_environment(monkeypatch):
    monkeypatch.setenv("ENABLE_EMAIL", "false")
    monkeypatch.setattr(email_service, "SENDGRID_API_KEY", "SG.test")
    with patch.object(email_service, "SendGridAPIClient") as client_cls:
        assert await email_service.send_email("a@example.com", "Hi", "Body") is True
    client_cls.assert_not_called()


@pytest.mark.asyncio
async def test_email_sent_through_sendgrid(monkeypatch):
    monkeypatch.setattr(email_service, "SENDGRID_API_KEY", "SG.test")
    with patch.object(email_service, "SendGridAPIClient") as client_cls:
        client_cls.return_value.send.return_value = MagicMock(status_code=202)
        assert await email_service.send_email("a@example.com", "Hi", "<p>Body</p>", is_html=True)
    client_cls.assert_called_once_with("SG.test")


@pytest.mark.asyncio
async def test_email_failure_reported_not_raised(monkeypatch):
    monkeypatch.setattr(email_service, "SENDGRID_API_KEY", "SG.test")
    with patch.object(email_service, "SendGridAPIClient") as client_cls:
        client_cls.return_value.send.side_effect = RuntimeError("network down")
        assert await email_service.send_email("a@example.com", "Hi", "Body") is False


def _configure_gateway(monkeypatch):
    monkeypatch.setattr(sms_service, "SMS_GATEWAY_URL", GATEWAY_URL)
    monkeypatch.setattr(sms_service, "SMS_GATEWAY_API_KEY", "secret")


@pytest.mark.asyncio
async def test_sms_skipped_without_gateway(monkeypatch):
    monkeypatch.setattr(sms_service, "SMS_GATEWAY_URL", None)
    with patch("httpx.AsyncClient.post", new_callable=AsyncMock) as post:
        assert await sms_service.send_sms("+420111", "Text") is True
    post.assert_not_called()


@pytest.mark.asyncio
async def test_sms_posted_to_gateway(monkeypatch):
    _configure_gateway(monkeypatch)
    response = httpx.Response(200, request=httpx.Request("POST", GATEWAY_URL))
    with patch("httpx.AsyncClient.post", new=AsyncMock(return_value=response)) as post:
        assert await sms_service.send_sms("+420111", "Text") is True

    kwargs = post.call_args.kwargs
    assert kwargs["headers"] == {"x-api-key": "secret"}
    assert kwargs["json"] == {"recipients": ["+420111"], "message": "Text"}


@pytest.mark.asyncio
async def test_sms_gateway_error(monkeypatch):
    _configure_gateway(monkeypatch)
    response = httpx.Response(500, text="boom", request=httpx.Request("POST", GATEWAY_URL))
    with patch("httpx.AsyncClient.post", new=AsyncMock(return_value=response)):
        assert await sms_service.send_sms("+420111", "Text") is False
