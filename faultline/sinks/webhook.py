"""Shared HTTP webhook delivery for chat-based sinks."""

import logging
import time
from abc import abstractmethod
from typing import Any, Dict, List, Optional
from urllib.parse import urlparse

import httpx

from ..config import ChannelConfig
from ..errors import SinkError
from ..models import Batch
from .base import AlertSink


logger = logging.getLogger(__name__)


class WebhookAlertSink(AlertSink):
    """Sink that POSTs one JSON payload per batch to an incoming webhook."""

    def __init__(self, channel: ChannelConfig, client: Optional[httpx.AsyncClient] = None):
        super().__init__(channel)
        self.webhook_url = channel.webhook_url or ""

        self._owns_client = client is None
        self.client = client or httpx.AsyncClient(
            timeout=httpx.Timeout(timeout=self.timeout_seconds, connect=5.0),
            limits=httpx.Limits(max_connections=5, max_keepalive_connections=2)
        )

    @abstractmethod
    def build_payload(self, batch: Batch) -> Dict[str, Any]:
        """Render the channel-specific JSON body for a batch."""
        pass

    def _check_response(self, response: httpx.Response) -> None:
        """Raise SinkError if the channel rejected the payload."""
        if not response.is_success:
            raise SinkError(
                f"{self.name} webhook returned HTTP {response.status_code}: {response.text[:200]}",
                sink_name=self.name
            )

    async def send(self, batch: Batch) -> Optional[Dict[str, Any]]:
        """POST the rendered batch to the webhook."""
        payload = self.build_payload(batch)
        start_time = time.time()

        try:
            response = await self.client.post(
                self.webhook_url,
                json=payload,
                headers={"User-Agent": "faultline-webhook/1.0"}
            )
        except httpx.RequestError as e:
            raise SinkError(f"{self.name} webhook request error: {e}", sink_name=self.name) from e

        self._check_response(response)

        response_time_ms = (time.time() - start_time) * 1000
        logger.info(f"Delivered batch of {len(batch)} entries to {self.name} ({response_time_ms:.0f}ms)")
        return {"status_code": response.status_code}

    def validate_config(self) -> List[str]:
        """Validate webhook URL."""
        errors = []

        parsed_url = urlparse(self.webhook_url)
        if not parsed_url.scheme or not parsed_url.netloc:
            errors.append("Invalid webhook URL format")
        elif parsed_url.scheme not in ['http', 'https']:
            errors.append("Webhook URL must use HTTP or HTTPS protocol")

        return errors

    async def close(self) -> None:
        """Close the HTTP client if this sink created it."""
        if self._owns_client:
            await self.client.aclose()
