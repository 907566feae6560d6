"""
Run notification module for the fediverse explorer pipeline.

Reports the outcome of each run (published counts, or the error that aborted
it) to a webhook. Delivery is retried with exponential backoff; a delivery
failure is logged and never changes the outcome of the run.
"""

import asyncio
from abc import abstractmethod
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Optional, Protocol, runtime_checkable

import httpx

from .config import WebhookConfig
from .enums import LogLevel
from .exceptions import NotificationError
from .models import RunReport

if TYPE_CHECKING:
    from .audit_logger import AuditLogger


def format_run_time(time_ms: int) -> str:
    """Format an epoch-millisecond run time as an ISO 8601 string."""
    return datetime.fromtimestamp(time_ms / 1000, tz=timezone.utc).isoformat()


@dataclass
class RunPayload:
    """Payload describing one pipeline run."""

    status: str
    time: int
    instances: int
    communities: int
    fediverse: int
    error: Optional[str] = None

    @classmethod
    def from_report(cls, report: RunReport) -> "RunPayload":
        return cls(
            status=report.status.value,
            time=report.time,
            instances=report.instances,
            communities=report.communities,
            fediverse=report.fediverse,
            error=report.error,
        )

    def to_dict(self) -> dict:
        return {
            "status": self.status,
            "time": self.time,
            "time_formatted": format_run_time(self.time),
            "instances": self.instances,
            "communities": self.communities,
            "fediverse": self.fediverse,
            "error": self.error,
        }


@dataclass
class NotificationResult:
    """Outcome of delivering one payload to one channel."""

    channel: str
    success: bool
    error: Optional[str] = None
    attempts: int = 1


@runtime_checkable
class NotificationChannel(Protocol):
    """A destination for run payloads."""

    @abstractmethod
    async def send(self, payload: RunPayload) -> bool:
        """
        Deliver one payload.

        Returns:
            Whether the destination accepted it
        """
        ...

    @abstractmethod
    def get_name(self) -> str:
        ...


class WebhookChannel:
    """Posts the run payload as JSON to a configured URL."""

    name = "webhook"

    def __init__(self, config: WebhookConfig) -> None:
        self._config = config

    async def send(self, payload: RunPayload) -> bool:
        """
        POST the payload; any 2xx response counts as delivered.

        Raises:
            NotificationError: If the request cannot be delivered
        """
        request_headers = {"Content-Type": "application/json", **self._config.headers}

        try:
            async with httpx.AsyncClient(timeout=self._config.timeout_seconds) as client:
                response = await client.post(
                    self._config.url,
                    json=payload.to_dict(),
                    headers=request_headers,
                )
        except httpx.HTTPError as e:
            raise NotificationError(
                code="delivery_failed",
                message=f"Webhook request failed: {e}",
                details={"channel": self.name},
            )
        return response.is_success

    def get_name(self) -> str:
        return self.name


class RunNotifier:
    """
    Sends each run report to every registered channel.

    A channel gets ``max_retries + 1`` attempts, with delays doubling from
    ``base_delay_seconds`` up to ``max_delay_seconds`` between them.
    """

    def __init__(
        self,
        max_retries: int = 2,
        base_delay_seconds: float = 1.0,
        max_delay_seconds: float = 30.0,
        logger: Optional["AuditLogger"] = None,
    ) -> None:
        self._channels: list[NotificationChannel] = []
        self._max_retries = max_retries
        self._base_delay = base_delay_seconds
        self._max_delay = max_delay_seconds
        self._logger = logger

    @classmethod
    def from_webhook_config(
        cls,
        config: WebhookConfig,
        logger: Optional["AuditLogger"] = None,
    ) -> "RunNotifier":
        notifier = cls(
            max_retries=config.max_retries,
            base_delay_seconds=config.base_delay_seconds,
            logger=logger,
        )
        notifier.register_channel(WebhookChannel(config))
        return notifier

    def register_channel(self, channel: NotificationChannel) -> None:
        self._channels.append(channel)

    @property
    def channels(self) -> list[NotificationChannel]:
        return list(self._channels)

    async def notify(self, report: RunReport) -> list[NotificationResult]:
        """
        Deliver the run outcome to each channel in registration order.

        Failures are logged and returned, never raised.
        """
        payload = RunPayload.from_report(report)
        return [await self._deliver(channel, payload) for channel in self._channels]

    async def _deliver(self, channel: NotificationChannel, payload: RunPayload) -> NotificationResult:
        name = channel.get_name()
        total = self._max_retries + 1
        error: Optional[str] = None

        for attempt in range(1, total + 1):
            if attempt > 1:
                await asyncio.sleep(self._calculate_delay(attempt - 2))
            try:
                delivered = await channel.send(payload)
            except Exception as e:
                delivered, error = False, str(e)
            else:
                if not delivered:
                    error = "Channel returned failure"
            if delivered:
                return NotificationResult(channel=name, success=True, attempts=attempt)

        if self._logger:
            self._logger.log(
                LogLevel.ERROR,
                "RunNotifier",
                f"Giving up on channel '{name}' after {total} attempts",
                {
                    "channel": name,
                    "status": payload.status,
                    "total_attempts": total,
                    "error": error,
                },
            )

        return NotificationResult(channel=name, success=False, error=error, attempts=total)

    def _calculate_delay(self, attempt: int) -> float:
        return min(self._base_delay * (2 ** attempt), self._max_delay)
