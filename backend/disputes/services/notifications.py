# backend/disputes/services/notifications.py

import logging
from functools import lru_cache

from django.conf import settings
from django.db import models, transaction
from django.utils.module_loading import import_string

logger = logging.getLogger(__name__)


class NotificationType(models.TextChoices):
    DISPUTE_SUBMITTED = 'dispute_submitted', 'Dispute submitted'
    DISPUTE_MESSAGE = 'dispute_message', 'New negotiation message'
    DISPUTE_PROPOSAL = 'dispute_proposal', 'Proposal update'
    DISPUTE_EVIDENCE = 'dispute_evidence', 'New evidence'
    DISPUTE_ESCALATED = 'dispute_escalated', 'Escalated to arbitration'
    DISPUTE_ARBITRATOR_ASSIGNED = 'dispute_arbitrator_assigned', 'Arbitrator assigned'
    DISPUTE_RESOLVED = 'dispute_resolved', 'Arbitration verdict'
    DISPUTE_CLOSED = 'dispute_closed', 'Dispute closed'


class NotificationDispatcher:
    """Fire-and-forget delivery of one notification to one user."""

    def send(self, user_id, type, title, body, related_id=None, related_type=None, link=None):
        raise NotImplementedError


class CeleryNotificationDispatcher(NotificationDispatcher):
    """Queues the e-mail/SMS task; the worker does the rendering and delivery."""

    def send(self, user_id, type, title, body, related_id=None, related_type=None, link=None):
        from disputes.tasks import task_send_dispute_notification

        task_send_dispute_notification.delay(
            user_id=user_id,
            notification_type=str(type),
            title=title,
            body=body,
            related_id=related_id,
            related_type=related_type,
            link=link,
        )


@lru_cache(maxsize=None)
def _load_dispatcher(path: str) -> NotificationDispatcher:
    return import_string(path)()


def get_notification_dispatcher() -> NotificationDispatcher:
    return _load_dispatcher(settings.DISPUTE_NOTIFICATION_DISPATCHER)


def dispute_link(dispute) -> str:
    return f"/disputes/{dispute.pk}"


def notify(user_ids, type, title, body, dispute):
    """
    Schedule one notification per recipient once the surrounding transaction
    commits. Recipients that are None are skipped.
    """
    recipients = [uid for uid in dict.fromkeys(user_ids) if uid is not None]
    if not recipients:
        return

    related_id = dispute.pk
    link = dispute_link(dispute)

    def _dispatch():
        dispatcher = get_notification_dispatcher()
        for user_id in recipients:
            try:
                dispatcher.send(
                    user_id, type, title, body,
                    related_id=related_id, related_type="dispute", link=link,
                )
            except Exception:
                logger.exception("Failed to dispatch %s notification to user %s for dispute %s",
                                 type, user_id, related_id)

    transaction.on_commit(_dispatch)
