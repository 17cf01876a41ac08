# backend/disputes/services/cases.py
"""
Dispute lifecycle: submission, negotiation start, escalation, closure, and the
two deadline passes used by the sweeper.

Every state change runs in one transaction with the dispute row locked.
Notifications and audit entries are queued with ``transaction.on_commit`` so a
rolled-back change never reaches anyone.
"""
import logging
from datetime import timedelta

from django.conf import settings
from django.contrib.auth import get_user_model
from django.db import IntegrityError, transaction
from django.utils import timezone

from ..exceptions import Conflict, Forbidden, InvalidArgument, NotFound
from ..models import AuditAction, Dispute, DisputeRole, DisputeStatus, DisputeType
from ..roles import is_participant, party_ids, role_of, PartyRole
from .audit import audit
from .notifications import NotificationType, notify
from .order_context import get_order_context_provider

logger = logging.getLogger(__name__)

NEGOTIATED_SETTLEMENT_REASON = "negotiated settlement"
ARBITRATION_EXPIRED_REASON = "arbitration period expired"

# Attempts at allocating a fresh DSP code when two submissions race for the same suffix.
CODE_ALLOCATION_ATTEMPTS = 3


def negotiation_deadline_from(start):
    return start + timedelta(hours=settings.DISPUTE_NEGOTIATION_DEADLINE_HOURS)


def arbitration_deadline_from(start):
    return start + timedelta(hours=settings.DISPUTE_ARBITRATION_DEADLINE_HOURS)


def _iso(value):
    return value.isoformat() if value else None


def snapshot(dispute: Dispute) -> dict:
    """JSON-safe view of the fields an audit entry cares about."""
    return {
        "code": dispute.code,
        "status": str(dispute.status),
        "negotiation_deadline": _iso(dispute.negotiation_deadline),
        "arbitration_deadline": _iso(dispute.arbitration_deadline),
        "arbitrator_id": dispute.arbitrator_id,
        "close_reason": dispute.close_reason or None,
    }


def get_dispute(dispute_id, for_update=False) -> Dispute:
    qs = Dispute.objects.all()
    if for_update:
        qs = qs.select_for_update()
    try:
        return qs.get(pk=dispute_id)
    except Dispute.DoesNotExist:
        raise NotFound(f"Dispute {dispute_id} does not exist")


# --- Submission ---

def submit_dispute(order_id, initiator_id, dispute_type, description) -> Dispute:
    if dispute_type not in DisputeType.values:
        raise InvalidArgument(f"Unknown dispute type: {dispute_type!r}")
    if not description or not str(description).strip():
        raise InvalidArgument("A dispute needs a description")

    if Dispute.objects.active().filter(order_id=order_id).exists():
        logger.warning("Rejected second dispute on order %s by user %s", order_id, initiator_id)
        raise Conflict("order already has a dispute")

    context = get_order_context_provider().resolve(order_id)
    if initiator_id == context.buyer_id:
        initiator_role, respondent_id = DisputeRole.BUYER, context.seller_id
    elif initiator_id == context.seller_id:
        initiator_role, respondent_id = DisputeRole.SELLER, context.buyer_id
    else:
        raise Forbidden(f"User {initiator_id} is neither buyer nor seller of order {context.order_no}")

    for attempt in range(1, CODE_ALLOCATION_ATTEMPTS + 1):
        try:
            with transaction.atomic():
                now = timezone.now()
                dispute = Dispute.objects.create(
                    order_id=order_id,
                    initiator_id=initiator_id,
                    initiator_role=initiator_role,
                    respondent_id=respondent_id,
                    dispute_type=dispute_type,
                    description=description,
                    status=DisputeStatus.SUBMITTED,
                    negotiation_deadline=negotiation_deadline_from(now),
                    created_at=now,
                )
                audit(initiator_id, AuditAction.DISPUTE_CREATE, "dispute", dispute.pk, None, snapshot(dispute))
                notify(
                    [respondent_id], NotificationType.DISPUTE_SUBMITTED,
                    f"Dispute {dispute.code} opened",
                    f"A {dispute.get_dispute_type_display().lower()} dispute was opened on order "
                    f"{context.order_no}. Please respond before {dispute.negotiation_deadline:%Y-%m-%d %H:%M} UTC.",
                    dispute,
                )
        except IntegrityError:
            if Dispute.objects.active().filter(order_id=order_id).exists():
                raise Conflict("order already has a dispute")
            if attempt == CODE_ALLOCATION_ATTEMPTS:
                raise Conflict(f"Could not allocate a dispute code for order {order_id}")
            logger.info("Dispute code collision on order %s, retrying (%s)", order_id, attempt)
            continue
        logger.info("Dispute %s submitted on order %s by %s %s",
                    dispute.code, order_id, initiator_role, initiator_id)
        return dispute


# --- Negotiation start ---

def begin_negotiation_in_transaction(dispute: Dispute, actor_id=None) -> bool:
    """
    SUBMITTED -> NEGOTIATING on an already locked dispute. Returns False when
    negotiation is already under way.
    """
    if dispute.status == DisputeStatus.NEGOTIATING:
        return False
    before = snapshot(dispute)
    dispute.transition_to(DisputeStatus.NEGOTIATING)
    dispute.save(update_fields=["status", "updated_at"])
    audit(actor_id, AuditAction.DISPUTE_NEGOTIATE, "dispute", dispute.pk, before, snapshot(dispute))
    logger.info("Dispute %s entered negotiation", dispute.code)
    return True


def begin_negotiation(dispute_id, actor_id=None) -> bool:
    with transaction.atomic():
        dispute = get_dispute(dispute_id, for_update=True)
        if actor_id is not None and not is_participant(dispute, actor_id):
            raise Forbidden(f"User {actor_id} is not a participant in dispute {dispute.code}")
        return begin_negotiation_in_transaction(dispute, actor_id)


# --- Escalation ---

def escalate_to_arbitration(dispute_id, actor_id=None) -> bool:
    """
    NEGOTIATING -> PENDING_ARBITRATION. Returns False without touching the row
    if the dispute already reached arbitration (e.g. the sweeper got there
    first).
    """
    with transaction.atomic():
        dispute = get_dispute(dispute_id, for_update=True)
        if actor_id is not None and not is_participant(dispute, actor_id):
            raise Forbidden(f"User {actor_id} is not a participant in dispute {dispute.code}")

        if dispute.status in (DisputeStatus.PENDING_ARBITRATION, DisputeStatus.ARBITRATING):
            logger.info("Dispute %s already in %s; escalation ignored", dispute.code, dispute.status)
            return False

        before = snapshot(dispute)
        dispute.transition_to(DisputeStatus.PENDING_ARBITRATION)
        dispute.arbitration_deadline = arbitration_deadline_from(timezone.now())
        dispute.save(update_fields=["status", "arbitration_deadline", "updated_at"])

        audit(actor_id, AuditAction.DISPUTE_ESCALATE, "dispute", dispute.pk, before, snapshot(dispute))
        notify(
            party_ids(dispute), NotificationType.DISPUTE_ESCALATED,
            f"Dispute {dispute.code} escalated",
            "The dispute has been escalated to arbitration. An arbitrator will be assigned shortly.",
            dispute,
        )

    logger.info("Dispute %s escalated to arbitration by %s", dispute.code, actor_id or "system")
    return True


# --- Closure ---

def close_in_transaction(dispute: Dispute, reason: str, operator_id=None) -> Dispute:
    before = snapshot(dispute)
    dispute.transition_to(DisputeStatus.CLOSED)
    dispute.close_reason = reason
    dispute.closed_at = timezone.now()
    dispute.save(update_fields=["status", "close_reason", "closed_at", "updated_at"])

    audit(operator_id, AuditAction.DISPUTE_CLOSE, "dispute", dispute.pk, before, snapshot(dispute))
    notify(
        party_ids(dispute) + [dispute.arbitrator_id], NotificationType.DISPUTE_CLOSED,
        f"Dispute {dispute.code} closed",
        f"The dispute was closed: {reason}.",
        dispute,
    )
    logger.info("Dispute %s closed (%s)", dispute.code, reason)
    return dispute


def _may_close(dispute: Dispute, actor_id) -> bool:
    if role_of(dispute, actor_id) is not PartyRole.NONE or dispute.arbitrator_id == actor_id:
        return True
    User = get_user_model()
    return User.objects.filter(pk=actor_id, is_active=True, is_staff=True).exists()


def close_dispute(dispute_id, reason, actor_id=None) -> Dispute:
    if not reason or not str(reason).strip():
        raise InvalidArgument("A close reason is required")

    with transaction.atomic():
        dispute = get_dispute(dispute_id, for_update=True)
        if actor_id is not None and not _may_close(dispute, actor_id):
            raise Forbidden(f"User {actor_id} may not close dispute {dispute.code}")
        return close_in_transaction(dispute, reason.strip(), actor_id)


# --- Deadline passes ---

def mark_expired_negotiations(now=None) -> int:
    """
    Escalate every NEGOTIATING dispute whose negotiation deadline has passed.
    Rows locked by a concurrent user action are skipped and picked up by the
    next pass.

    SUBMITTED disputes are not touched even when their deadline is past: a
    dispute nobody has written on stays SUBMITTED until a party sends a
    message or proposal, or until someone closes it. The deadline only takes
    effect once negotiation has started.
    """
    now = now or timezone.now()
    with transaction.atomic():
        expired = list(
            Dispute.objects.select_for_update(skip_locked=True)
            .filter(status=DisputeStatus.NEGOTIATING, negotiation_deadline__lt=now)
            .order_by("negotiation_deadline", "id")
        )
        if not expired:
            return 0

        deadline = arbitration_deadline_from(now)
        befores = {}
        for dispute in expired:
            befores[dispute.pk] = snapshot(dispute)
            dispute.transition_to(DisputeStatus.PENDING_ARBITRATION)
            dispute.arbitration_deadline = deadline
            dispute.updated_at = now

        Dispute.objects.bulk_update(expired, ["status", "arbitration_deadline", "updated_at"])

        for dispute in expired:
            audit(None, AuditAction.DISPUTE_EXPIRE_NEGOTIATION, "dispute", dispute.pk,
                  befores[dispute.pk], snapshot(dispute))
            notify(
                party_ids(dispute), NotificationType.DISPUTE_ESCALATED,
                f"Dispute {dispute.code} escalated",
                "The negotiation period ended without agreement; the dispute moved to arbitration.",
                dispute,
            )

    logger.info("Escalated %s dispute(s) with expired negotiation deadlines", len(expired))
    return len(expired)


def mark_expired_arbitrations(now=None) -> int:
    """Close every ARBITRATING dispute past its deadline that still has no verdict."""
    now = now or timezone.now()
    with transaction.atomic():
        expired = list(
            Dispute.objects.select_for_update(skip_locked=True, of=("self",))
            .filter(
                status=DisputeStatus.ARBITRATING,
                arbitration_deadline__lt=now,
                arbitration__isnull=True,
            )
            .order_by("arbitration_deadline", "id")
        )
        if not expired:
            return 0

        befores = {}
        for dispute in expired:
            befores[dispute.pk] = snapshot(dispute)
            dispute.transition_to(DisputeStatus.CLOSED)
            dispute.close_reason = ARBITRATION_EXPIRED_REASON
            dispute.closed_at = now
            dispute.updated_at = now

        Dispute.objects.bulk_update(expired, ["status", "close_reason", "closed_at", "updated_at"])

        for dispute in expired:
            audit(None, AuditAction.DISPUTE_EXPIRE_ARBITRATION, "dispute", dispute.pk,
                  befores[dispute.pk], snapshot(dispute))
            notify(
                party_ids(dispute) + [dispute.arbitrator_id], NotificationType.DISPUTE_CLOSED,
                f"Dispute {dispute.code} closed",
                "The arbitration period ended without a verdict; the dispute was closed.",
                dispute,
            )

    logger.info("Closed %s dispute(s) with expired arbitration deadlines", len(expired))
    return len(expired)


# --- Queries ---

def get_dispute_detail(dispute_id) -> Dispute:
    try:
        return Dispute.objects.select_related("initiator", "respondent", "arbitrator").get(pk=dispute_id)
    except Dispute.DoesNotExist:
        raise NotFound(f"Dispute {dispute_id} does not exist")


def get_user_disputes(user_id, status=None):
    qs = Dispute.objects.involving(user_id)
    if status:
        qs = qs.filter(status=status)
    return list(qs.order_by("-created_at", "-id"))


def get_arbitrator_disputes(arbitrator_id, status=None):
    qs = Dispute.objects.filter(arbitrator_id=arbitrator_id)
    if status:
        qs = qs.filter(status=status)
    return list(qs.order_by("-created_at", "-id"))
