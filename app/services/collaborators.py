"""Outbound collaborators: notification delivery and third-party integrations.

Delivery transports are outside this service.  The default
implementations hand the structured message to the logging pipeline,
which is where a transport (queue consumer, websocket fan-out, CRM
connector) picks it up.
"""

import logging
from typing import Any, Dict, List

logger = logging.getLogger(__name__)


class NotificationSink:
    """Fire-and-forget sink for notification/enrichment events."""

    def emit(self, message: Dict[str, Any]) -> None:
        """Publish *message* without waiting for delivery."""
        logger.info(
            "[NOTIFICATION] %s → %s: %s",
            message.get("type"),
            message.get("target") or message.get("recipients"),
            message.get("value") or message.get("message"),
            extra={"notification": message},
        )


class IntegrationGateway:
    """Entry point for integration workflow steps."""

    async def call(self, request: Dict[str, Any]) -> Dict[str, Any]:
        logger.info(
            "[INTEGRATION] %s (integration=%s)",
            request.get("action"),
            request.get("integration_id"),
            extra={"integration": request},
        )
        return {
            "integration_id": request.get("integration_id"),
            "action": request.get("action"),
            "data": request.get("data"),
        }


class RecordingNotificationSink(NotificationSink):
    """Sink that keeps every emitted message in memory (tests, dry runs)."""

    def __init__(self) -> None:
        self.messages: List[Dict[str, Any]] = []

    def emit(self, message: Dict[str, Any]) -> None:
        self.messages.append(message)
        super().emit(message)
