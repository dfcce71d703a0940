"""Email delivery through the Resend HTTP API."""

import logging
from typing import Optional, Sequence

import httpx

from pricetracker import metrics
from pricetracker.config import Settings, settings
from pricetracker.detect.price_change import PriceChange
from pricetracker.notify.formatters import format_price_change_email, format_subject

logger = logging.getLogger(__name__)


class EmailNotifier:
    """Resend client for price-change alerts."""

    def __init__(self, config: Settings = settings, client: Optional[httpx.AsyncClient] = None):
        self.config = config
        self._http_client = client
        self._owns_client = client is None

    @property
    def configured(self) -> bool:
        return bool(self.config.resend_api_key)

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(timeout=30.0)
        return self._http_client

    async def close(self):
        """Close HTTP client."""
        if self._http_client and self._owns_client:
            await self._http_client.aclose()
        self._http_client = None

    async def send(self, recipients: Sequence[str], subject: str, html: str) -> bool:
        """
        Send one HTML email.

        Delivery failures are logged and reported through the return value;
        they never raise.

        Args:
            recipients: Destination addresses
            subject: Subject line
            html: HTML body

        Returns:
            True if Resend accepted the message
        """
        if not self.configured:
            logger.warning("RESEND_API_KEY not set, skipping email")
            metrics.alerts_sent_total.labels(status="skipped").inc()
            return False
        if not recipients:
            logger.warning("No alert recipients configured, skipping email")
            metrics.alerts_sent_total.labels(status="skipped").inc()
            return False

        client = await self._get_client()
        payload = {
            "from": self.config.alert_from_address,
            "to": list(recipients),
            "subject": subject,
            "html": html,
        }

        try:
            response = await client.post(
                self.config.resend_api_url,
                json=payload,
                headers={"Authorization": f"Bearer {self.config.resend_api_key}"},
            )
            response.raise_for_status()
            message_id = response.json().get("id")
        except (httpx.HTTPError, ValueError, AttributeError) as e:
            logger.error(f"Failed to send email '{subject}': {e}")
            metrics.alerts_sent_total.labels(status="failed").inc()
            return False

        logger.info(f"Sent email '{subject}' to {len(recipients)} recipient(s) (id={message_id})")
        metrics.alerts_sent_total.labels(status="sent").inc()
        return True

    async def send_price_changes(
        self,
        changes: Sequence[PriceChange],
        recipients: Optional[Sequence[str]] = None,
        threshold_percent: Optional[float] = None,
    ) -> bool:
        """Send the price-change alert; no email when there are no changes."""
        if not changes:
            return False
        threshold = (
            threshold_percent
            if threshold_percent is not None
            else self.config.price_change_threshold_percent
        )
        recipients = recipients if recipients is not None else self.config.alert_recipients
        return await self.send(
            recipients,
            format_subject(changes, threshold),
            format_price_change_email(changes, threshold),
        )
