"""Tests for alert formatting and Resend delivery."""

import json
from datetime import datetime

import httpx
import pytest

from pricetracker.detect.price_change import PriceChange
from pricetracker.notify.email import EmailNotifier
from pricetracker.notify.formatters import format_price_change_email, format_subject

CHANGES = [
    PriceChange("OVHCLOUD", "SCALE-A1 (26scaleamd01)", "Beauharnois", 740.0, 851.0, 15.0),
    PriceChange("VULTR", "Vultr-EPYC-9254-384GB", "Frankfurt", 720.0, 864.0, 20.0),
    PriceChange("HETZNER", "AX102 <promo>", "Ashburn", 162.0, 129.6, -20.0),
]


def test_subject():
    assert format_subject(CHANGES) == "Price Alert: 3 competitor SKU(s) changed by >10%"
    assert format_subject(CHANGES[:1], 12.5) == "Price Alert: 1 competitor SKU(s) changed by >12.5%"


def test_email_body():
    html = format_price_change_email(CHANGES, generated_at=datetime(2025, 3, 1, 9, 0))

    assert "<h1>Competitor Price Alert</h1>" in html
    assert "<strong>2</strong> price increase(s)" in html
    assert "<strong>1</strong> price decrease(s)" in html
    # Largest increase first
    assert html.index("Vultr-EPYC-9254-384GB") < html.index("SCALE-A1")
    assert "+20.0%" in html
    assert "-20.0%" in html
    assert "$740.00" in html
    # Names are escaped
    assert "AX102 &lt;promo&gt;" in html
    assert "2025-03-01 09:00 UTC" in html


def test_email_body_omits_empty_sections():
    html = format_price_change_email(CHANGES[:2])
    assert "Price Increases" in html
    assert "Price Decreases" not in html


def _notifier(test_settings, handler):
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return EmailNotifier(config=test_settings, client=client)


@pytest.mark.asyncio
async def test_send_price_changes(test_settings):
    seen = []

    def handler(request):
        seen.append(request)
        return httpx.Response(200, json={"id": "email_123"})

    notifier = _notifier(test_settings, handler)
    assert await notifier.send_price_changes(CHANGES) is True
    await notifier.close()

    request = seen[0]
    assert str(request.url) == test_settings.resend_api_url
    assert request.headers["Authorization"] == "Bearer re_test"
    payload = json.loads(request.content)
    assert payload["to"] == ["pricing@example.com"]
    assert payload["subject"] == "Price Alert: 3 competitor SKU(s) changed by >10%"
    assert "Competitor Price Alert" in payload["html"]


@pytest.mark.asyncio
async def test_delivery_failure_returns_false(test_settings):
    notifier = _notifier(test_settings, lambda request: httpx.Response(422, json={"message": "bad"}))
    assert await notifier.send_price_changes(CHANGES) is False
    await notifier.close()


@pytest.mark.asyncio
async def test_skipped_without_key_or_recipients(test_settings):
    def handler(request):
        raise AssertionError("no request expected")

    unconfigured = _notifier(test_settings.model_copy(update={"resend_api_key": ""}), handler)
    assert await unconfigured.send_price_changes(CHANGES) is False

    notifier = _notifier(test_settings, handler)
    assert await notifier.send_price_changes(CHANGES, recipients=[]) is False
    # No changes, no email
    assert await notifier.send_price_changes([]) is False


@pytest.mark.asyncio
async def test_unreadable_success_body_returns_false(test_settings):
    notifier = _notifier(test_settings, lambda request: httpx.Response(200, text="<html>ok</html>"))
    assert await notifier.send_price_changes(CHANGES) is False
    await notifier.close()
