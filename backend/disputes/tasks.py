# backend/disputes/tasks.py

import logging

from celery import shared_task  # type: ignore
from django.apps import apps
from django.conf import settings

from core.notifications import send_notification
from .sweeper import DeadlineSweeper

logger = logging.getLogger(__name__)


# --- SCHEDULED TASKS ---

@shared_task(name="disputes.tasks.sweep_dispute_deadlines")
def task_sweep_dispute_deadlines():
    """
    Beat task (every 10 minutes via CELERY_BEAT_SCHEDULE). Errors propagate so
    Celery records the run as failed; the next run retries.
    """
    result = DeadlineSweeper().run()
    return {"escalated": result.escalated, "closed": result.closed}


@shared_task(name="disputes.tasks.check_expired_negotiations")
def task_check_expired_negotiations():
    return DeadlineSweeper().sweep_negotiations()


@shared_task(name="disputes.tasks.check_expired_arbitrations")
def task_check_expired_arbitrations():
    return DeadlineSweeper().sweep_arbitrations()


# --- NOTIFICATION TASKS ---

@shared_task(name="disputes.send_dispute_notification")
def task_send_dispute_notification(user_id, notification_type, title, body,
                                   related_id=None, related_type=None, link=None):
    """
    Deliver one dispute notification by e-mail/SMS. Delivery problems are
    logged; the dispute itself is already committed.
    """
    User = apps.get_model(settings.AUTH_USER_MODEL)
    try:
        user = User.objects.get(pk=user_id)
    except User.DoesNotExist:
        logger.warning(f"User with ID {user_id} not found for {notification_type} notification.")
        return False

    context = {
        "user": user,
        "notification_type": notification_type,
        "title": title,
        "body": body,
        "related_id": related_id,
        "related_type": related_type,
        "link_url": f"{settings.FRONTEND_URL}{link}" if link else None,
        "sms_text": f"{title}: {body}"[:160],
    }
    delivered = send_notification(user, title, "emails/dispute_notification", context)
    if delivered:
        logger.info(f"Sent {notification_type} notification to user {user_id} for dispute {related_id}")
    return delivered
