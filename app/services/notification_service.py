# app/services/notification_service.py
from kombu.exceptions import OperationalError

from app.celery_worker import celery_app
from app.utils.logging import get_logger

logger = get_logger(__name__)


class NotificationService:
    """
    Queues order notifications for the Celery worker.
    Called after commit, a broker outage never fails the request.
    """

    @staticmethod
    def send_order_notification(user_id: int, order_id: int, event: str):
        try:
            send_order_notification_task.delay(user_id, order_id, event)
        except OperationalError as e:
            logger.warning(f"Failed to queue '{event}' notification for order {order_id}: {e}")


@celery_app.task(name="app.services.notification_service.send_order_notification_task")
def send_order_notification_task(user_id: int, order_id: int, event: str):
    """
    In a real deployment this would hand off to an email/SMS/push gateway.
    For now it only logs.
    """
    logger.info(f"[NOTIFICATION] User {user_id}: order {order_id} {event}")

    return {"user_id": user_id, "order_id": order_id, "event": event, "status": "sent"}
