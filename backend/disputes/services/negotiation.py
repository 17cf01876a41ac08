# backend/disputes/services/negotiation.py
"""
Messages and refund proposals exchanged by the two parties of a dispute.

Only one proposal may be PENDING per dispute. The partial unique constraint
on ``NegotiationMessage`` enforces that; the lookup below just gives a
friendlier error before hitting it.
"""
import logging
from decimal import Decimal, InvalidOperation

from django.db import IntegrityError, transaction
from django.utils import timezone

from ..exceptions import Conflict, Forbidden, InvalidArgument, InvalidState, NotFound
from ..models import (
    AuditAction, MessageType, NEGOTIABLE_STATUSES, NegotiationMessage, ProposalStatus,
)
from ..roles import counterpart_of, require_participant
from .audit import audit
from .cases import (
    NEGOTIATED_SETTLEMENT_REASON, begin_negotiation_in_transaction, close_in_transaction, get_dispute,
)
from .notifications import NotificationType, notify

logger = logging.getLogger(__name__)


def _lock_negotiable(dispute_id, user_id):
    dispute = get_dispute(dispute_id, for_update=True)
    role = require_participant(dispute, user_id)
    if dispute.status not in NEGOTIABLE_STATUSES:
        raise InvalidState(f"Dispute {dispute.code} is {dispute.status}; negotiation is over")
    begin_negotiation_in_transaction(dispute, user_id)
    return dispute, role


def _refund_amount(value) -> Decimal:
    if value is None:
        raise InvalidArgument("A proposal needs a refund amount")
    try:
        amount = Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise InvalidArgument(f"Invalid refund amount: {value!r}")
    if not amount.is_finite() or amount < 0:
        raise InvalidArgument(f"Refund amount must be zero or more, got {value}")
    return amount.quantize(Decimal("0.01"))


def send_text_message(dispute_id, sender_id, content) -> NegotiationMessage:
    if not content or not str(content).strip():
        raise InvalidArgument("Message content cannot be empty")

    with transaction.atomic():
        dispute, role = _lock_negotiable(dispute_id, sender_id)
        message = NegotiationMessage.objects.create(
            dispute=dispute,
            sender_id=sender_id,
            sender_role=role,
            message_type=MessageType.TEXT,
            content=content,
        )
        notify(
            [counterpart_of(dispute, sender_id)], NotificationType.DISPUTE_MESSAGE,
            f"New message on dispute {dispute.code}",
            content[:200],
            dispute,
        )
    return message


def propose_resolution(dispute_id, proposer_id, content, proposed_refund_amount) -> NegotiationMessage:
    amount = _refund_amount(proposed_refund_amount)

    with transaction.atomic():
        dispute, role = _lock_negotiable(dispute_id, proposer_id)

        if NegotiationMessage.objects.filter(dispute=dispute).pending().exists():
            logger.warning("Proposal on dispute %s rejected: one is already pending", dispute.code)
            raise Conflict("pending proposal exists")

        try:
            with transaction.atomic():
                proposal = NegotiationMessage.objects.create(
                    dispute=dispute,
                    sender_id=proposer_id,
                    sender_role=role,
                    message_type=MessageType.PROPOSAL,
                    content=content or "",
                    proposed_refund_amount=amount,
                    proposal_status=ProposalStatus.PENDING,
                )
        except IntegrityError:
            raise Conflict("pending proposal exists")

        audit(proposer_id, AuditAction.PROPOSAL_CREATE, "negotiation_message", proposal.pk,
              None, {"dispute_id": dispute.pk, "refund_amount": str(amount), "status": ProposalStatus.PENDING.value})
        notify(
            [counterpart_of(dispute, proposer_id)], NotificationType.DISPUTE_PROPOSAL,
            f"New proposal on dispute {dispute.code}",
            f"The other party proposes a refund of ${amount}. Please accept or reject it.",
            dispute,
        )

    logger.info("Proposal %s (refund %s) made on dispute %s by %s", proposal.pk, amount, dispute.code, role)
    return proposal


def respond_to_proposal(proposal_id, responder_id, accepted, note="") -> NegotiationMessage:
    """
    Accept or reject a pending proposal. Accepting it settles the dispute:
    the dispute is closed as a negotiated settlement in the same transaction.
    """
    with transaction.atomic():
        try:
            dispute_id = (
                NegotiationMessage.objects.proposals()
                .values_list("dispute_id", flat=True).get(pk=proposal_id)
            )
        except NegotiationMessage.DoesNotExist:
            raise NotFound(f"Proposal {proposal_id} does not exist")

        # Dispute first, then the proposal: same lock order as propose_resolution.
        dispute = get_dispute(dispute_id, for_update=True)
        proposal = NegotiationMessage.objects.select_for_update().get(pk=proposal_id)

        if proposal.proposal_status != ProposalStatus.PENDING:
            raise Conflict(f"Proposal {proposal_id} was already {proposal.proposal_status}")
        require_participant(dispute, responder_id)
        if proposal.sender_id == responder_id:
            raise Forbidden("You cannot respond to your own proposal")
        if dispute.status not in NEGOTIABLE_STATUSES:
            raise InvalidState(f"Dispute {dispute.code} is {dispute.status}; negotiation is over")

        proposal.proposal_status = ProposalStatus.ACCEPTED if accepted else ProposalStatus.REJECTED
        proposal.responded_by_id = responder_id
        proposal.responded_at = timezone.now()
        proposal.response_note = note or ""
        proposal.save(update_fields=["proposal_status", "responded_by", "responded_at", "response_note"])

        audit(responder_id, AuditAction.PROPOSAL_RESPOND, "negotiation_message", proposal.pk,
              {"status": ProposalStatus.PENDING.value}, {"status": str(proposal.proposal_status)})

        verdict = "accepted" if accepted else "rejected"
        notify(
            [proposal.sender_id], NotificationType.DISPUTE_PROPOSAL,
            f"Proposal {verdict} on dispute {dispute.code}",
            f"Your refund proposal of ${proposal.proposed_refund_amount} was {verdict}."
            + (f" Note: {note}" if note else ""),
            dispute,
        )

        if accepted:
            close_in_transaction(dispute, NEGOTIATED_SETTLEMENT_REASON, responder_id)

    logger.info("Proposal %s on dispute %s %s by user %s", proposal.pk, dispute.code, verdict, responder_id)
    return proposal


def get_negotiation_history(dispute_id):
    dispute = get_dispute(dispute_id)
    return list(NegotiationMessage.objects.filter(dispute=dispute).order_by("created_at", "id"))


def get_pending_proposal(dispute_id):
    return NegotiationMessage.objects.filter(dispute_id=dispute_id).pending().first()


def get_accepted_proposal(dispute_id):
    return (
        NegotiationMessage.objects.filter(dispute_id=dispute_id, proposal_status=ProposalStatus.ACCEPTED)
        .order_by("-responded_at", "-id").first()
    )
