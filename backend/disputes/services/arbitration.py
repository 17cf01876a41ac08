# backend/disputes/services/arbitration.py

import logging
from decimal import Decimal, InvalidOperation

from django.contrib.auth import get_user_model
from django.db import IntegrityError, transaction
from django.utils import timezone

from ..exceptions import Conflict, Forbidden, InvalidArgument, InvalidState, NotFound
from ..models import (
    Arbitration, ArbitrationResult, AuditAction, DisputeStatus, REFUND_RESULTS,
)
from ..roles import is_participant, party_ids
from .audit import audit
from .cases import arbitration_deadline_from, get_dispute, snapshot
from .notifications import NotificationType, notify

logger = logging.getLogger(__name__)


def assign_arbitrator(dispute_id, arbitrator_id):
    with transaction.atomic():
        dispute = get_dispute(dispute_id, for_update=True)

        if dispute.arbitrator_id is not None:
            raise Conflict(f"Dispute {dispute.code} already has an arbitrator")
        if dispute.status != DisputeStatus.PENDING_ARBITRATION:
            raise InvalidState(f"Dispute {dispute.code} is {dispute.status}, not awaiting arbitration")

        User = get_user_model()
        arbitrator = User.objects.arbitrators().filter(pk=arbitrator_id).first()
        if arbitrator is None:
            raise Forbidden(f"User {arbitrator_id} cannot arbitrate disputes")
        if is_participant(dispute, arbitrator_id):
            raise Forbidden("A party to the dispute cannot arbitrate it")

        before = snapshot(dispute)
        dispute.transition_to(DisputeStatus.ARBITRATING)
        dispute.arbitrator = arbitrator
        dispute.arbitration_deadline = arbitration_deadline_from(timezone.now())
        dispute.save(update_fields=["status", "arbitrator", "arbitration_deadline", "updated_at"])

        audit(None, AuditAction.ARBITRATOR_ASSIGN, "dispute", dispute.pk, before, snapshot(dispute))
        notify(
            party_ids(dispute), NotificationType.DISPUTE_ARBITRATOR_ASSIGNED,
            f"Arbitrator assigned to dispute {dispute.code}",
            f"An arbitrator is reviewing the case. A verdict is due by "
            f"{dispute.arbitration_deadline:%Y-%m-%d %H:%M} UTC.",
            dispute,
        )
        notify(
            [arbitrator_id], NotificationType.DISPUTE_ARBITRATOR_ASSIGNED,
            f"You were assigned dispute {dispute.code}",
            f"Please review the evidence and submit a verdict by {dispute.arbitration_deadline:%Y-%m-%d %H:%M} UTC.",
            dispute,
        )

    logger.info("Arbitrator %s assigned to dispute %s", arbitrator_id, dispute.code)
    return dispute


def _verdict_amount(result, refund_amount):
    if result not in ArbitrationResult.values:
        raise InvalidArgument(f"Unknown arbitration result: {result!r}")
    if result not in REFUND_RESULTS:
        return None
    if refund_amount is None:
        raise InvalidArgument(f"A {result} verdict needs a refund amount")
    try:
        amount = Decimal(str(refund_amount))
    except (InvalidOperation, ValueError):
        raise InvalidArgument(f"Invalid refund amount: {refund_amount!r}")
    if not amount.is_finite() or amount <= 0:
        raise InvalidArgument(f"Refund amount must be positive, got {refund_amount}")
    return amount.quantize(Decimal("0.01"))


def submit_arbitration(dispute_id, arbitrator_id, result, refund_amount, reason,
                       buyer_analysis="", seller_analysis="") -> Arbitration:
    """
    Record the binding verdict and complete the dispute. The amount is
    dropped for REJECT verdicts.
    """
    amount = _verdict_amount(result, refund_amount)
    if not reason or not str(reason).strip():
        raise InvalidArgument("A verdict needs a reason")

    with transaction.atomic():
        dispute = get_dispute(dispute_id, for_update=True)

        if Arbitration.objects.filter(dispute=dispute).exists():
            raise Conflict("arbitration record already exists")
        if dispute.arbitrator_id != arbitrator_id:
            raise Forbidden(f"User {arbitrator_id} is not the arbitrator of dispute {dispute.code}")
        if dispute.status != DisputeStatus.ARBITRATING:
            raise InvalidState(f"Dispute {dispute.code} is {dispute.status}, not under arbitration")

        now = timezone.now()
        try:
            with transaction.atomic():
                arbitration = Arbitration.objects.create(
                    dispute=dispute,
                    arbitrator_id=arbitrator_id,
                    result=result,
                    refund_amount=amount,
                    reason=reason,
                    buyer_evidence_analysis=buyer_analysis or "",
                    seller_evidence_analysis=seller_analysis or "",
                    arbitrated_at=now,
                )
        except IntegrityError:
            raise Conflict("arbitration record already exists")

        before = snapshot(dispute)
        dispute.transition_to(DisputeStatus.COMPLETED)
        dispute.completed_at = now
        dispute.save(update_fields=["status", "completed_at", "updated_at"])

        audit(arbitrator_id, AuditAction.ARBITRATION_SUBMIT, "arbitration", arbitration.pk, before,
              {**snapshot(dispute), "result": str(result), "refund_amount": str(amount) if amount is not None else None})
        outcome = arbitration.get_result_display()
        if amount is not None:
            outcome = f"{outcome} of ${amount}"
        notify(
            party_ids(dispute), NotificationType.DISPUTE_RESOLVED,
            f"Verdict on dispute {dispute.code}",
            f"The arbitrator decided: {outcome}. Reason: {reason}",
            dispute,
        )

    logger.info("Verdict %s submitted on dispute %s by %s", result, dispute.code, arbitrator_id)
    return arbitration


def get_arbitration_detail(dispute_id):
    return Arbitration.objects.select_related("dispute", "arbitrator").filter(dispute_id=dispute_id).first()


def get_arbitrator_cases(arbitrator_id):
    return list(
        Arbitration.objects.filter(arbitrator_id=arbitrator_id)
        .select_related("dispute").order_by("-arbitrated_at", "-id")
    )


def get_pending_executions():
    """Verdicts the settlement worker has not acted on yet, oldest first."""
    return list(
        Arbitration.objects.filter(executed=False)
        .select_related("dispute").order_by("arbitrated_at", "id")
    )


def mark_executed(arbitration_id, note="") -> Arbitration:
    with transaction.atomic():
        try:
            arbitration = Arbitration.objects.select_for_update().get(pk=arbitration_id)
        except Arbitration.DoesNotExist:
            raise NotFound(f"Arbitration {arbitration_id} does not exist")
        if arbitration.executed:
            raise Conflict(f"Arbitration {arbitration_id} was already executed")

        arbitration.executed = True
        arbitration.executed_at = timezone.now()
        arbitration.execution_note = note or ""
        arbitration.save(update_fields=["executed", "executed_at", "execution_note"])
        audit(None, AuditAction.ARBITRATION_EXECUTE, "arbitration", arbitration.pk,
              {"executed": False}, {"executed": True, "note": arbitration.execution_note})

    logger.info("Arbitration %s marked executed", arbitration_id)
    return arbitration
