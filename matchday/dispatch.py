"""
Webhook delivery for processed event payloads.

Delivery happens after the event is committed, so a failed delivery is
logged and reported but never undoes the event. Replayed (skipped)
outcomes are not re-sent.
"""
import logging
from typing import Any, Dict, Optional

import requests
from tenacity import (
    Retrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from config.settings import Settings
from matchday.live_match.models import ProcessingOutcome

logger = logging.getLogger("matchday.dispatch")


class WebhookDeliveryError(Exception):
    """Retryable delivery failure (connection problem or 5xx)."""


class WebhookDispatcher:
    """POSTs payloads to one configured endpoint with bounded retries."""

    def __init__(
        self,
        url: str,
        timeout: float = 30.0,
        attempts: int = 3,
        session: Optional[requests.Session] = None,
        wait=None,
    ):
        self.url = url
        self.timeout = timeout
        self.attempts = attempts
        self._session = session or requests.Session()
        self._wait = wait if wait is not None else wait_exponential(multiplier=2, min=2, max=10)
        self.stats = {"delivered": 0, "failed": 0, "skipped": 0}

    @classmethod
    def from_settings(cls, settings: Settings) -> Optional["WebhookDispatcher"]:
        """Build a dispatcher, or None when no webhook URL is configured."""
        if not settings.webhook_url:
            return None
        return cls(
            url=settings.webhook_url,
            timeout=settings.webhook_timeout_seconds,
            attempts=settings.webhook_retry_attempts,
        )

    def dispatch(self, outcome: ProcessingOutcome) -> bool:
        """
        Deliver one outcome's payload.

        Returns:
            True if the endpoint accepted it, False if skipped or undeliverable
        """
        if outcome.skipped:
            self.stats["skipped"] += 1
            return False

        retrying = Retrying(
            stop=stop_after_attempt(self.attempts),
            wait=self._wait,
            retry=retry_if_exception_type(WebhookDeliveryError),
            reraise=True,
        )
        try:
            retrying(self._post, outcome.payload)
        except WebhookDeliveryError as e:
            logger.error(
                f"Webhook delivery of {outcome.event_type} for match {outcome.match_id} "
                f"failed after {self.attempts} attempts: {e}"
            )
            self.stats["failed"] += 1
            return False
        except requests.HTTPError as e:
            logger.error(f"Webhook rejected {outcome.event_type} for match {outcome.match_id}: {e}")
            self.stats["failed"] += 1
            return False

        logger.info(f"Delivered {outcome.event_type} for match {outcome.match_id}")
        self.stats["delivered"] += 1
        return True

    def _post(self, payload: Dict[str, Any]) -> None:
        try:
            response = self._session.post(self.url, json=payload, timeout=self.timeout)
        except (requests.ConnectionError, requests.Timeout) as e:
            logger.warning(f"Webhook connection error: {e}")
            raise WebhookDeliveryError(str(e)) from e

        if response.status_code >= 500:
            logger.warning(f"Webhook returned {response.status_code}, retrying")
            raise WebhookDeliveryError(f"HTTP {response.status_code}")
        # 4xx is not retryable
        response.raise_for_status()
