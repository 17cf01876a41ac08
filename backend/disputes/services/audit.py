# backend/disputes/services/audit.py

import logging
from functools import lru_cache

from django.conf import settings
from django.db import transaction
from django.utils.module_loading import import_string

logger = logging.getLogger(__name__)


class AuditLogger:

    def record(self, operator_id, action, entity_type, entity_id, before=None, after=None):
        raise NotImplementedError


class DatabaseAuditLogger(AuditLogger):

    def record(self, operator_id, action, entity_type, entity_id, before=None, after=None):
        from disputes.models import AuditLogEntry

        AuditLogEntry.objects.create(
            operator_id=operator_id,
            action=str(action),
            entity_type=entity_type,
            entity_id=entity_id,
            before_state=before,
            after_state=after,
        )


@lru_cache(maxsize=None)
def _load_audit_logger(path: str) -> AuditLogger:
    return import_string(path)()


def get_audit_logger() -> AuditLogger:
    return _load_audit_logger(settings.DISPUTE_AUDIT_LOGGER)


def audit(operator_id, action, entity_type, entity_id, before=None, after=None):
    """Record one audit entry after commit. A failing logger never undoes the change."""

    def _record():
        try:
            get_audit_logger().record(operator_id, action, entity_type, entity_id, before, after)
        except Exception:
            logger.exception("Audit write failed: %s on %s #%s", action, entity_type, entity_id)

    transaction.on_commit(_record)
