# backend/disputes/sweeper.py
"""
Deadline sweeper: pushes disputes whose negotiation or arbitration window ran
out to their next state.

Each pass holds a short cache lock so only one worker sweeps at a time. The
passes themselves are idempotent; running one twice back to back changes
nothing the second time.
"""
import logging
import uuid
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Optional

from django.conf import settings
from django.core.cache import cache
from django.db import DatabaseError

from .services.cases import mark_expired_arbitrations, mark_expired_negotiations

logger = logging.getLogger(__name__)

NEGOTIATION_LOCK_KEY = "lock:dispute:check-expired-negotiations"
ARBITRATION_LOCK_KEY = "lock:dispute:check-expired-arbitrations"


@dataclass
class SweepResult:
    escalated: Optional[int] = None  # None when the pass was skipped
    closed: Optional[int] = None


class DeadlineSweeper:

    def __init__(self, lock_seconds=None):
        self.lock_seconds = lock_seconds or settings.DISPUTE_SWEEP_LOCK_SECONDS

    @contextmanager
    def _lock(self, key):
        token = uuid.uuid4().hex
        acquired = cache.add(key, token, self.lock_seconds)
        try:
            yield acquired
        finally:
            # Only release a lock we still own; an expired one may belong to another worker by now.
            if acquired and cache.get(key) == token:
                cache.delete(key)

    def sweep_negotiations(self, now=None) -> Optional[int]:
        with self._lock(NEGOTIATION_LOCK_KEY) as acquired:
            if not acquired:
                logger.info("Negotiation sweep skipped: another worker holds the lock")
                return None
            return mark_expired_negotiations(now)

    def sweep_arbitrations(self, now=None) -> Optional[int]:
        with self._lock(ARBITRATION_LOCK_KEY) as acquired:
            if not acquired:
                logger.info("Arbitration sweep skipped: another worker holds the lock")
                return None
            return mark_expired_arbitrations(now)

    def run(self, now=None) -> SweepResult:
        """Run both passes. A failing pass does not stop the other; the first error is re-raised."""
        result = SweepResult()
        error = None

        try:
            result.escalated = self.sweep_negotiations(now)
        except DatabaseError as exc:
            logger.exception("Negotiation sweep failed")
            error = exc

        try:
            result.closed = self.sweep_arbitrations(now)
        except DatabaseError as exc:
            logger.exception("Arbitration sweep failed")
            error = error or exc

        if error is not None:
            raise error
        logger.info("Deadline sweep finished: escalated=%s closed=%s", result.escalated, result.closed)
        return result
