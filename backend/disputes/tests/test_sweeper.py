# backend/disputes/tests/test_sweeper.py
from datetime import timedelta
from io import StringIO
from unittest import mock

import pytest
from django.core.cache import cache
from django.core.management import call_command
from django.db import DatabaseError
from django.utils import timezone

from disputes.models import AuditAction, AuditLogEntry, Dispute, DisputeStatus
from disputes.services import arbitration, cases
from disputes.services.cases import ARBITRATION_EXPIRED_REASON
from disputes.sweeper import ARBITRATION_LOCK_KEY, NEGOTIATION_LOCK_KEY, DeadlineSweeper
from disputes.tasks import task_sweep_dispute_deadlines

pytestmark = pytest.mark.django_db


@pytest.fixture(autouse=True)
def clear_locks():
    cache.delete_many([NEGOTIATION_LOCK_KEY, ARBITRATION_LOCK_KEY])
    yield
    cache.delete_many([NEGOTIATION_LOCK_KEY, ARBITRATION_LOCK_KEY])


def _expire_negotiation(dispute, past):
    Dispute.objects.filter(pk=dispute.pk).update(negotiation_deadline=past)


def _expire_arbitration(dispute, past):
    Dispute.objects.filter(pk=dispute.pk).update(arbitration_deadline=past)


class TestExpiredNegotiations:

    def test_expired_negotiation_escalates(self, negotiating_dispute, past):
        _expire_negotiation(negotiating_dispute, past)

        assert cases.mark_expired_negotiations() == 1

        negotiating_dispute.refresh_from_db()
        assert negotiating_dispute.status == DisputeStatus.PENDING_ARBITRATION
        assert negotiating_dispute.arbitration_deadline > timezone.now()

    def test_second_pass_finds_nothing(self, negotiating_dispute, past):
        _expire_negotiation(negotiating_dispute, past)
        assert cases.mark_expired_negotiations() == 1
        assert cases.mark_expired_negotiations() == 0

    def test_future_deadlines_untouched(self, negotiating_dispute):
        assert cases.mark_expired_negotiations() == 0
        negotiating_dispute.refresh_from_db()
        assert negotiating_dispute.status == DisputeStatus.NEGOTIATING

    def test_only_negotiating_disputes(self, dispute, past):
        # Still SUBMITTED: nobody has talked yet, so there is nothing to escalate.
        _expire_negotiation(dispute, past)
        assert cases.mark_expired_negotiations() == 0

    def test_bumps_updated_at(self, negotiating_dispute, past):
        _expire_negotiation(negotiating_dispute, past)
        now = timezone.now() + timedelta(seconds=5)
        cases.mark_expired_negotiations(now=now)
        negotiating_dispute.refresh_from_db()
        assert negotiating_dispute.updated_at == now

    def test_notifies_both_parties(self, negotiating_dispute, past, buyer, seller, notifications,
                                   django_capture_on_commit_callbacks):
        _expire_negotiation(negotiating_dispute, past)
        notifications.clear()
        with django_capture_on_commit_callbacks(execute=True):
            cases.mark_expired_negotiations()
        assert sorted(n.user_id for n in notifications) == [buyer.pk, seller.pk]

    def test_failed_write_leaves_every_row_untouched(self, make_order, buyer, past, notifications,
                                                     django_capture_on_commit_callbacks):
        disputes = []
        for note in ("first", "second"):
            dispute = cases.submit_dispute(make_order().pk, buyer.pk, "other", note)
            cases.begin_negotiation(dispute.pk)
            _expire_negotiation(dispute, past)
            disputes.append(dispute)
        notifications.clear()

        with django_capture_on_commit_callbacks(execute=True) as callbacks:
            with mock.patch.object(Dispute.objects, "bulk_update", side_effect=DatabaseError("disk full")):
                with pytest.raises(DatabaseError):
                    cases.mark_expired_negotiations()
        assert callbacks == []
        assert notifications == []
        assert not AuditLogEntry.objects.filter(action=AuditAction.DISPUTE_EXPIRE_NEGOTIATION).exists()
        for dispute in disputes:
            dispute.refresh_from_db()
            assert dispute.status == DisputeStatus.NEGOTIATING
            assert dispute.arbitration_deadline is None

        assert cases.mark_expired_negotiations() == 2
        assert set(
            Dispute.objects.filter(pk__in=[d.pk for d in disputes]).values_list("status", flat=True)
        ) == {DisputeStatus.PENDING_ARBITRATION}


class TestExpiredArbitrations:

    def test_expired_arbitration_closes(self, arbitrating_dispute, past):
        _expire_arbitration(arbitrating_dispute, past)

        assert cases.mark_expired_arbitrations() == 1
        arbitrating_dispute.refresh_from_db()
        assert arbitrating_dispute.status == DisputeStatus.CLOSED
        assert arbitrating_dispute.close_reason == ARBITRATION_EXPIRED_REASON
        assert arbitrating_dispute.closed_at is not None
        assert cases.mark_expired_arbitrations() == 0

    def test_pending_arbitration_is_not_closed(self, pending_arbitration_dispute, past):
        _expire_arbitration(pending_arbitration_dispute, past)
        assert cases.mark_expired_arbitrations() == 0


class TestDeadlineSweeper:

    def test_run_handles_both_passes(self, make_order, buyer, arbitrator, past):
        first = cases.submit_dispute(make_order().pk, buyer.pk, "other", "first")
        cases.begin_negotiation(first.pk)
        _expire_negotiation(first, past)

        second = cases.submit_dispute(make_order().pk, buyer.pk, "other", "second")
        cases.begin_negotiation(second.pk)
        cases.escalate_to_arbitration(second.pk)
        arbitration.assign_arbitrator(second.pk, arbitrator.pk)
        _expire_arbitration(second, past)

        result = DeadlineSweeper().run()
        assert (result.escalated, result.closed) == (1, 1)

        again = DeadlineSweeper().run()
        assert (again.escalated, again.closed) == (0, 0)

    def test_held_lock_skips_pass(self, negotiating_dispute, past):
        _expire_negotiation(negotiating_dispute, past)
        cache.add(NEGOTIATION_LOCK_KEY, "another-worker", 60)

        result = DeadlineSweeper().run()
        assert result.escalated is None
        assert result.closed == 0
        negotiating_dispute.refresh_from_db()
        assert negotiating_dispute.status == DisputeStatus.NEGOTIATING
        assert cache.get(NEGOTIATION_LOCK_KEY) == "another-worker"

    def test_lock_released_after_pass(self):
        DeadlineSweeper().sweep_negotiations()
        assert cache.get(NEGOTIATION_LOCK_KEY) is None

    def test_failure_in_one_pass_still_runs_the_other(self, arbitrating_dispute, past):
        _expire_arbitration(arbitrating_dispute, past)
        with mock.patch("disputes.sweeper.mark_expired_negotiations", side_effect=DatabaseError("boom")):
            with pytest.raises(DatabaseError):
                DeadlineSweeper().run()
        arbitrating_dispute.refresh_from_db()
        assert arbitrating_dispute.status == DisputeStatus.CLOSED
        assert cache.get(NEGOTIATION_LOCK_KEY) is None

    def test_celery_task(self, negotiating_dispute, past):
        _expire_negotiation(negotiating_dispute, past)
        assert task_sweep_dispute_deadlines.delay().get() == {"escalated": 1, "closed": 0}

    def test_management_command(self, negotiating_dispute, past):
        _expire_negotiation(negotiating_dispute, past)
        stdout = StringIO()
        call_command("sweep_dispute_deadlines", "--negotiations-only", stdout=stdout)
        out = stdout.getvalue()
        assert "Escalated: 1" in out
        assert "Closed" not in out
