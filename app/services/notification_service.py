from typing import Optional, Protocol

import httpx
import structlog

from app.core.celery import celery_app
from app.core.config import settings
from app.services.lifecycle import NotificationIntent, NotificationKey
from app.utils.validation import format_local_time

logger = structlog.get_logger(__name__)

MESSAGES = {
    NotificationKey.ACCEPTED: (
        "Appointment confirmed",
        "Your appointment on {date} at {time} is confirmed. See you soon!",
    ),
    NotificationKey.NEW_SUGGESTION: (
        "New time suggested",
        "The barber suggested {date} at {time}. Open the app to accept or decline.",
    ),
    NotificationKey.REJECTED: (
        "Appointment declined",
        "Your request for {date} at {time} could not be accepted.",
    ),
}


def render_notification(intent: NotificationIntent) -> tuple[str, str]:
    """Build the (title, body) pair for a notification intent."""
    title, body = MESSAGES[intent.key]
    return title, body.format(
        date=intent.date.strftime("%d/%m/%Y"), time=format_local_time(intent.time)
    )


def deliver_push(target: str, title: str, body: str, client: Optional[httpx.Client] = None) -> None:
    """POST one message to the push gateway. Raises on delivery failure."""
    headers = {"Content-Type": "application/json"}
    if settings.PUSH_SERVER_KEY:
        headers["Authorization"] = f"key={settings.PUSH_SERVER_KEY.get_secret_value()}"
    payload = {"to": target, "notification": {"title": title, "body": body}}

    if client is None:
        with httpx.Client(timeout=settings.PUSH_TIMEOUT_SECONDS) as own_client:
            response = own_client.post(settings.PUSH_GATEWAY_URL, json=payload, headers=headers)
    else:
        response = client.post(settings.PUSH_GATEWAY_URL, json=payload, headers=headers)
    response.raise_for_status()


@celery_app.task(bind=True, max_retries=3, default_retry_delay=30)
def send_push_notification(self, target: str, title: str, body: str):
    """Deliver a push notification; retried a few times, then dropped."""
    try:
        deliver_push(target, title, body)
        logger.info("Push notification delivered", title=title)
    except httpx.HTTPError as e:
        logger.warning("Push notification failed", title=title, error=str(e))
        raise self.retry(exc=e)


class Notifier(Protocol):
    def notify(self, intent: NotificationIntent) -> None: ...


class PushNotifier:
    """Fire-and-forget notifier that queues delivery on Celery.

    Failures are logged and never propagate: the state change that produced
    the intent has already been committed.
    """

    def __init__(self, enabled: bool = None):
        self.enabled = settings.NOTIFICATIONS_ENABLED if enabled is None else enabled

    def notify(self, intent: NotificationIntent) -> None:
        if not self.enabled or not intent.target:
            return
        title, body = render_notification(intent)
        try:
            send_push_notification.delay(intent.target, title, body)
            logger.info(
                "Push notification queued",
                appointment_uuid=intent.appointment_uuid,
                key=intent.key.value,
            )
        except Exception as e:
            logger.warning(
                "Could not queue push notification",
                appointment_uuid=intent.appointment_uuid,
                key=intent.key.value,
                error=str(e),
            )


def dispatch(notifier: Notifier, intent: Optional[NotificationIntent]) -> None:
    """Hand ``intent`` to ``notifier`` without letting any failure escape."""
    if intent is None:
        return
    try:
        notifier.notify(intent)
    except Exception as e:
        logger.warning(
            "Notifier raised, ignoring",
            appointment_uuid=intent.appointment_uuid,
            error=str(e),
        )
