# backend/disputes/tests/test_arbitration.py
from datetime import timedelta
from decimal import Decimal
from unittest import mock

import pytest
from django.utils import timezone

from disputes.exceptions import Conflict, Forbidden, InvalidArgument, InvalidState, NotFound
from disputes.models import Arbitration, ArbitrationResult, DisputeStatus
from disputes.services import arbitration, cases

pytestmark = pytest.mark.django_db


def _full_refund(dispute, arbitrator, amount=Decimal("100.00")):
    return arbitration.submit_arbitration(
        dispute.pk, arbitrator.pk, ArbitrationResult.FULL_REFUND, amount,
        "Photos show the item was damaged before shipping",
        buyer_analysis="Clear photos of the crack",
        seller_analysis="No packing evidence",
    )


class TestAssign:

    def test_assignment_starts_arbitration(self, pending_arbitration_dispute, arbitrator):
        dispute = arbitration.assign_arbitrator(pending_arbitration_dispute.pk, arbitrator.pk)
        assert dispute.status == DisputeStatus.ARBITRATING
        assert dispute.arbitrator_id == arbitrator.pk
        assert dispute.arbitration_deadline > timezone.now() + timedelta(hours=71)

    def test_only_once(self, arbitrating_dispute, staff_user):
        with pytest.raises(Conflict):
            arbitration.assign_arbitrator(arbitrating_dispute.pk, staff_user.pk)

    def test_needs_pending_arbitration(self, negotiating_dispute, arbitrator):
        with pytest.raises(InvalidState):
            arbitration.assign_arbitrator(negotiating_dispute.pk, arbitrator.pk)

    def test_regular_user_cannot_arbitrate(self, pending_arbitration_dispute, outsider):
        with pytest.raises(Forbidden):
            arbitration.assign_arbitrator(pending_arbitration_dispute.pk, outsider.pk)

    def test_party_cannot_arbitrate_own_dispute(self, pending_arbitration_dispute, buyer):
        buyer.is_arbitrator = True
        buyer.save()
        with pytest.raises(Forbidden):
            arbitration.assign_arbitrator(pending_arbitration_dispute.pk, buyer.pk)

    def test_inactive_arbitrator(self, pending_arbitration_dispute, arbitrator):
        arbitrator.is_active = False
        arbitrator.save()
        with pytest.raises(Forbidden):
            arbitration.assign_arbitrator(pending_arbitration_dispute.pk, arbitrator.pk)

    def test_missing_dispute(self, arbitrator):
        with pytest.raises(NotFound):
            arbitration.assign_arbitrator(8080, arbitrator.pk)

    def test_notifies_parties_and_arbitrator(self, pending_arbitration_dispute, buyer, seller, arbitrator,
                                             notifications, django_capture_on_commit_callbacks):
        notifications.clear()
        with django_capture_on_commit_callbacks(execute=True):
            arbitration.assign_arbitrator(pending_arbitration_dispute.pk, arbitrator.pk)
        assert sorted(n.user_id for n in notifications) == [buyer.pk, seller.pk, arbitrator.pk]
        assert {n.type for n in notifications} == {"dispute_arbitrator_assigned"}


class TestVerdict:

    def test_full_refund_completes_dispute(self, arbitrating_dispute, arbitrator):
        verdict = _full_refund(arbitrating_dispute, arbitrator)

        arbitrating_dispute.refresh_from_db()
        assert arbitrating_dispute.status == DisputeStatus.COMPLETED
        assert arbitrating_dispute.completed_at is not None
        assert verdict.refund_amount == Decimal("100.00")
        assert verdict.executed is False

        with pytest.raises(Conflict, match="arbitration record already exists"):
            _full_refund(arbitrating_dispute, arbitrator)
        assert Arbitration.objects.filter(dispute=arbitrating_dispute).count() == 1

    def test_reject_drops_amount(self, arbitrating_dispute, arbitrator):
        verdict = arbitration.submit_arbitration(
            arbitrating_dispute.pk, arbitrator.pk, ArbitrationResult.REJECT, Decimal("40"), "Item as described"
        )
        assert verdict.refund_amount is None
        assert verdict.requires_refund is False

    @pytest.mark.parametrize("amount", [None, Decimal("0"), Decimal("-5")])
    def test_partial_refund_needs_positive_amount(self, arbitrating_dispute, arbitrator, amount):
        with pytest.raises(InvalidArgument):
            arbitration.submit_arbitration(
                arbitrating_dispute.pk, arbitrator.pk, ArbitrationResult.PARTIAL_REFUND, amount, "Split"
            )

    def test_reason_required(self, arbitrating_dispute, arbitrator):
        with pytest.raises(InvalidArgument):
            arbitration.submit_arbitration(
                arbitrating_dispute.pk, arbitrator.pk, ArbitrationResult.REJECT, None, ""
            )

    def test_only_assigned_arbitrator(self, arbitrating_dispute, staff_user):
        with pytest.raises(Forbidden):
            _full_refund(arbitrating_dispute, staff_user)

    def test_dispute_must_be_under_arbitration(self, pending_arbitration_dispute, arbitrator):
        pending_arbitration_dispute.arbitrator = arbitrator
        pending_arbitration_dispute.save()
        with pytest.raises(InvalidState):
            _full_refund(pending_arbitration_dispute, arbitrator)

    def test_closed_dispute_takes_no_verdict(self, arbitrating_dispute, arbitrator):
        cases.close_dispute(arbitrating_dispute.pk, "parties settled", actor_id=arbitrator.pk)
        with pytest.raises(InvalidState):
            _full_refund(arbitrating_dispute, arbitrator)

    def test_racing_verdict_is_a_conflict(self, arbitrating_dispute, arbitrator):
        # A second verdict is written between our existence check and our insert.
        Arbitration.objects.create(
            dispute=arbitrating_dispute, arbitrator=arbitrator,
            result=ArbitrationResult.REJECT, reason="first verdict",
        )
        with mock.patch.object(Arbitration.objects, "filter", return_value=Arbitration.objects.none()):
            with pytest.raises(Conflict, match="arbitration record already exists"):
                _full_refund(arbitrating_dispute, arbitrator)
        arbitrating_dispute.refresh_from_db()
        assert arbitrating_dispute.status == DisputeStatus.ARBITRATING
        assert Arbitration.objects.get(dispute=arbitrating_dispute).reason == "first verdict"

    def test_verdict_notifies_both_parties(self, arbitrating_dispute, buyer, seller, arbitrator,
                                           notifications, django_capture_on_commit_callbacks):
        notifications.clear()
        with django_capture_on_commit_callbacks(execute=True):
            _full_refund(arbitrating_dispute, arbitrator)
        assert sorted(n.user_id for n in notifications) == [buyer.pk, seller.pk]
        assert "Full Refund of $100.00" in notifications[0].body


class TestQueriesAndExecution:

    def test_detail(self, arbitrating_dispute, arbitrator):
        assert arbitration.get_arbitration_detail(arbitrating_dispute.pk) is None
        verdict = _full_refund(arbitrating_dispute, arbitrator)
        assert arbitration.get_arbitration_detail(arbitrating_dispute.pk).pk == verdict.pk

    def test_pending_executions_oldest_first(self, make_order, buyer, seller, arbitrator):
        verdicts = []
        for _ in range(2):
            dispute = cases.submit_dispute(make_order().pk, buyer.pk, "other", "broken")
            cases.begin_negotiation(dispute.pk)
            cases.escalate_to_arbitration(dispute.pk)
            arbitration.assign_arbitrator(dispute.pk, arbitrator.pk)
            verdicts.append(_full_refund(dispute, arbitrator))
        Arbitration.objects.filter(pk=verdicts[1].pk).update(arbitrated_at=timezone.now() - timedelta(days=2))

        assert [a.pk for a in arbitration.get_pending_executions()] == [verdicts[1].pk, verdicts[0].pk]
        assert [a.pk for a in arbitration.get_arbitrator_cases(arbitrator.pk)] == [verdicts[0].pk, verdicts[1].pk]

        arbitration.mark_executed(verdicts[1].pk, "refund sent via PSP")
        assert [a.pk for a in arbitration.get_pending_executions()] == [verdicts[0].pk]

    def test_mark_executed_once(self, arbitrating_dispute, arbitrator):
        verdict = _full_refund(arbitrating_dispute, arbitrator)
        executed = arbitration.mark_executed(verdict.pk, "refund id R-1")
        assert executed.executed is True
        assert executed.executed_at is not None
        assert executed.execution_note == "refund id R-1"

        with pytest.raises(Conflict):
            arbitration.mark_executed(verdict.pk, "again")

    def test_mark_executed_missing(self):
        with pytest.raises(NotFound):
            arbitration.mark_executed(999999)
