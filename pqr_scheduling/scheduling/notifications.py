"""
Appointment notifications.

Lifecycle operations hand each event they produce to a ``publish`` callback;
the HTTP layer queues it as a background task that calls
``NotificationDispatcher.dispatch`` once the response is sent.
Delivery is best effort: a failed delivery is logged and never reaches the
caller, so the appointment change it describes stays committed.
"""

import logging
import time
from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Callable, Optional

import httpx

from pqr_scheduling.core import config

logger = logging.getLogger(__name__)

APPOINTMENT_SCHEDULED = "appointment.scheduled"
APPOINTMENT_CONFIRMED = "appointment.confirmed"
APPOINTMENT_CANCELLED = "appointment.cancelled"
APPOINTMENT_COMPLETED = "appointment.completed"


@dataclass(frozen=True)
class AppointmentEvent:
    event_type: str
    appointment_id: int
    appointment_number: str
    client_id: int
    branch_id: int
    appointment_type_id: int
    appointment_date: datetime
    reason: Optional[str] = None
    occurred_at: datetime = field(default_factory=datetime.utcnow)

    def to_payload(self) -> dict:
        payload = asdict(self)
        payload["appointment_date"] = self.appointment_date.isoformat()
        payload["occurred_at"] = self.occurred_at.isoformat()
        return payload


def appointment_event(event_type: str, appointment, reason: Optional[str] = None) -> AppointmentEvent:
    return AppointmentEvent(
        event_type=event_type,
        appointment_id=appointment.id,
        appointment_number=appointment.appointment_number,
        client_id=appointment.client_id,
        branch_id=appointment.branch_id,
        appointment_type_id=appointment.appointment_type_id,
        appointment_date=appointment.appointment_date,
        reason=reason,
    )


class NotificationDispatcher:
    """Posts appointment events to the notification service webhook."""

    def __init__(
        self,
        webhook_url: Optional[str] = None,
        max_retries: Optional[int] = None,
        base_delay: Optional[float] = None,
        timeout: Optional[float] = None,
        client: Optional[httpx.Client] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.webhook_url = config.NOTIFICATION_WEBHOOK_URL if webhook_url is None else webhook_url
        self.max_retries = max_retries or config.NOTIFICATION_MAX_RETRIES
        self.base_delay = config.NOTIFICATION_RETRY_BASE_DELAY if base_delay is None else base_delay
        self.timeout = timeout or config.NOTIFICATION_TIMEOUT_SECONDS
        self._client = client
        self._sleep = sleep

    def dispatch(self, event: AppointmentEvent) -> bool:
        """Deliver ``event``; returns whether the notification service accepted it."""
        if not self.webhook_url:
            logger.info(
                "Notification %s for %s not sent: NOTIFICATION_WEBHOOK_URL is not set",
                event.event_type,
                event.appointment_number,
            )
            return False

        payload = event.to_payload()
        for attempt in range(1, self.max_retries + 1):
            try:
                self._post(payload)
                logger.info("Notification %s sent for %s", event.event_type, event.appointment_number)
                return True
            except httpx.HTTPError as exc:
                if attempt == self.max_retries:
                    logger.error(
                        "Notification %s for %s failed after %s attempts: %s",
                        event.event_type,
                        event.appointment_number,
                        attempt,
                        exc,
                    )
                    return False
                delay = self.base_delay * (2 ** (attempt - 1))
                logger.warning(
                    "Notification attempt %s/%s for %s failed (%s), retrying in %.1fs",
                    attempt,
                    self.max_retries,
                    event.appointment_number,
                    exc,
                    delay,
                )
                self._sleep(delay)
        return False

    def dispatch_all(self, events: list[AppointmentEvent]) -> None:
        for event in events:
            self.dispatch(event)

    def _post(self, payload: dict) -> None:
        if self._client is not None:
            response = self._client.post(self.webhook_url, json=payload, timeout=self.timeout)
            response.raise_for_status()
            return

        with httpx.Client(timeout=self.timeout) as client:
            response = client.post(self.webhook_url, json=payload)
            response.raise_for_status()


def send_appointment_notifications(events: list[AppointmentEvent]) -> None:
    """Background-task entry point used by the routes."""
    NotificationDispatcher().dispatch_all(events)
