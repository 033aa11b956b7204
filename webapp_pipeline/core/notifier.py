"""
Build Notifier - outcome notifications for pipeline runs.

Provides:
- Status callbacks
- Webhook notifications
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional, Dict, Any, List, Callable, Awaitable
import json

import httpx

from .logger import get_logger


class BuildEventType(Enum):
    """Kinds of build events."""
    SUCCEEDED = "succeeded"
    FAILED = "failed"


@dataclass
class BuildEvent:
    """A build notification event."""
    build_number: str
    branch: str
    event: BuildEventType
    timestamp: datetime = field(default_factory=datetime.now)
    message: str = ""
    details: Dict[str, Any] = field(default_factory=dict)
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "build_number": self.build_number,
            "branch": self.branch,
            "event": self.event.value,
            "timestamp": self.timestamp.isoformat(),
            "message": self.message,
            "details": self.details,
            "error": self.error,
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict())


EventCallback = Callable[[BuildEvent], Awaitable[None]]


class Notifier:
    """
    Dispatches build events to callbacks and an optional webhook.

    Delivery problems are logged and never raised; a notification
    must not change a build's outcome.
    """

    def __init__(
        self,
        webhook_url: str = None,
        transport: httpx.AsyncBaseTransport = None,
    ):
        self.webhook_url = webhook_url
        self.transport = transport
        self.logger = get_logger("Notifier")
        self._callbacks: List[EventCallback] = []
        self._sent: List[BuildEvent] = []

    @property
    def sent(self) -> List[BuildEvent]:
        """Events dispatched so far."""
        return self._sent.copy()

    def add_callback(self, callback: EventCallback) -> None:
        self._callbacks.append(callback)

    def remove_callback(self, callback: EventCallback) -> None:
        if callback in self._callbacks:
            self._callbacks.remove(callback)

    async def notify(self, event: BuildEvent) -> None:
        """Log the event, run callbacks, then post to the webhook if set."""
        self._sent.append(event)

        log_msg = f"[build #{event.build_number} {event.event.value}] {event.message}"
        if event.error:
            self.logger.error(log_msg, error=event.error)
        else:
            self.logger.info(log_msg)

        for callback in self._callbacks:
            try:
                await callback(event)
            except Exception as e:
                self.logger.warning(f"Callback error: {e}")

        if self.webhook_url:
            await self._send_webhook(event)

    async def _send_webhook(self, event: BuildEvent) -> None:
        try:
            async with httpx.AsyncClient(timeout=10, transport=self.transport) as client:
                response = await client.post(
                    self.webhook_url,
                    json=event.to_dict(),
                    headers={"Content-Type": "application/json"},
                )

                if response.status_code >= 400:
                    self.logger.warning(f"Webhook failed: {response.status_code}")
        except httpx.HTTPError as e:
            self.logger.warning(f"Webhook error: {e}")

    async def succeeded(self, build_number: str, branch: str, details: Dict[str, Any] = None) -> None:
        await self.notify(BuildEvent(
            build_number=build_number,
            branch=branch,
            event=BuildEventType.SUCCEEDED,
            message="Build succeeded",
            details=details or {},
        ))

    async def failed(self, build_number: str, branch: str, error: str = None,
                     details: Dict[str, Any] = None) -> None:
        await self.notify(BuildEvent(
            build_number=build_number,
            branch=branch,
            event=BuildEventType.FAILED,
            message="Build failed",
            details=details or {},
            error=error,
        ))
