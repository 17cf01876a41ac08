# backend/disputes/services/evidence.py

import logging
from dataclasses import dataclass
from typing import Optional

from django.contrib.auth import get_user_model
from django.db import transaction
from django.db.models import Count, Q
from django.utils import timezone

from ..exceptions import Conflict, Forbidden, InvalidArgument, InvalidState, NotFound
from ..models import AuditAction, DisputeRole, Evidence, EvidenceType, EvidenceValidity
from ..roles import counterpart_of, is_participant, require_participant
from .audit import audit
from .cases import get_dispute
from .notifications import NotificationType, notify

logger = logging.getLogger(__name__)


@dataclass
class EvidenceItem:
    file_url: str
    evidence_type: str = EvidenceType.OTHER
    file_name: str = ""
    file_size: Optional[int] = None
    description: str = ""


@dataclass
class EvidenceSummary:
    total: int = 0
    buyer: int = 0
    seller: int = 0
    valid: int = 0
    invalid: int = 0
    doubtful: int = 0
    unevaluated: int = 0


def upload_evidence(dispute_id, uploader_id, item: EvidenceItem) -> Evidence:
    if not item.file_url:
        raise InvalidArgument("Evidence needs a file URL")
    if item.evidence_type not in EvidenceType.values:
        raise InvalidArgument(f"Unknown evidence type: {item.evidence_type!r}")
    if item.file_size is not None and item.file_size < 0:
        raise InvalidArgument("File size cannot be negative")

    with transaction.atomic():
        dispute = get_dispute(dispute_id, for_update=True)
        role = require_participant(dispute, uploader_id)
        if dispute.is_terminal:
            raise InvalidState(f"Dispute {dispute.code} is {dispute.status}; evidence is closed")

        evidence = Evidence.objects.create(
            dispute=dispute,
            uploader_id=uploader_id,
            uploader_role=role,
            evidence_type=item.evidence_type,
            file_url=item.file_url,
            file_name=item.file_name or "",
            file_size=item.file_size,
            description=item.description or "",
        )
        audit(uploader_id, AuditAction.EVIDENCE_UPLOAD, "evidence", evidence.pk, None,
              {"dispute_id": dispute.pk, "evidence_type": str(evidence.evidence_type), "file_url": evidence.file_url})
        notify(
            [counterpart_of(dispute, uploader_id)], NotificationType.DISPUTE_EVIDENCE,
            f"New evidence on dispute {dispute.code}",
            f"The other party uploaded {evidence.get_evidence_type_display().lower()} evidence.",
            dispute,
        )

    logger.info("Evidence %s uploaded to dispute %s by %s", evidence.pk, dispute.code, role)
    return evidence


def _evidence_for(dispute_id, **filters):
    get_dispute(dispute_id)
    return list(Evidence.objects.filter(dispute_id=dispute_id, **filters).order_by("created_at", "id"))


def get_dispute_evidence(dispute_id):
    return _evidence_for(dispute_id)


def get_buyer_evidence(dispute_id):
    return _evidence_for(dispute_id, uploader_role=DisputeRole.BUYER)


def get_seller_evidence(dispute_id):
    return _evidence_for(dispute_id, uploader_role=DisputeRole.SELLER)


def get_unevaluated_evidence(dispute_id):
    return _evidence_for(dispute_id, validity__isnull=True)


def _may_evaluate(dispute, evaluator_id) -> bool:
    if dispute.arbitrator_id is not None and dispute.arbitrator_id == evaluator_id:
        return True
    if is_participant(dispute, evaluator_id):
        return False
    User = get_user_model()
    return User.objects.filter(pk=evaluator_id, is_active=True, is_staff=True).exists()


def evaluate_evidence(evidence_id, validity, reason, evaluator_id) -> Evidence:
    """
    Judge an evidence item once. The write only matches rows that are still
    unjudged, so of two racing evaluations exactly one succeeds.
    """
    if validity not in EvidenceValidity.values:
        raise InvalidArgument(f"Unknown validity: {validity!r}")

    try:
        evidence = Evidence.objects.select_related("dispute").get(pk=evidence_id)
    except Evidence.DoesNotExist:
        raise NotFound(f"Evidence {evidence_id} does not exist")

    if evidence.is_evaluated:
        raise Conflict("evidence already evaluated")
    if not _may_evaluate(evidence.dispute, evaluator_id):
        logger.warning("User %s tried to evaluate evidence %s without authority", evaluator_id, evidence_id)
        raise Forbidden(f"User {evaluator_id} may not evaluate evidence on dispute {evidence.dispute.code}")

    with transaction.atomic():
        now = timezone.now()
        updated = Evidence.objects.filter(pk=evidence_id, validity__isnull=True).update(
            validity=validity,
            validity_reason=reason or "",
            evaluated_by_id=evaluator_id,
            evaluated_at=now,
        )
        if not updated:
            raise Conflict("evidence already evaluated")
        audit(evaluator_id, AuditAction.EVIDENCE_EVALUATE, "evidence", evidence_id,
              {"validity": None}, {"validity": str(validity), "reason": reason or ""})

    evidence.refresh_from_db()
    logger.info("Evidence %s judged %s by %s", evidence_id, validity, evaluator_id)
    return evidence


def get_evidence_summary(dispute_id) -> EvidenceSummary:
    get_dispute(dispute_id)
    counts = Evidence.objects.filter(dispute_id=dispute_id).aggregate(
        total=Count("id"),
        buyer=Count("id", filter=Q(uploader_role=DisputeRole.BUYER)),
        seller=Count("id", filter=Q(uploader_role=DisputeRole.SELLER)),
        valid=Count("id", filter=Q(validity=EvidenceValidity.VALID)),
        invalid=Count("id", filter=Q(validity=EvidenceValidity.INVALID)),
        doubtful=Count("id", filter=Q(validity=EvidenceValidity.DOUBTFUL)),
        unevaluated=Count("id", filter=Q(validity__isnull=True)),
    )
    return EvidenceSummary(**counts)


def delete_evidence(evidence_id, requester_id) -> None:
    with transaction.atomic():
        try:
            evidence = Evidence.objects.select_for_update().get(pk=evidence_id)
        except Evidence.DoesNotExist:
            raise NotFound(f"Evidence {evidence_id} does not exist")

        if evidence.uploader_id != requester_id:
            raise Forbidden("Only the uploader can delete this evidence")
        if evidence.is_evaluated:
            raise Conflict("evidence already evaluated and cannot be deleted")

        deleted, _ = Evidence.objects.filter(pk=evidence_id, validity__isnull=True).delete()
        if not deleted:
            raise Conflict("evidence already evaluated and cannot be deleted")
        audit(requester_id, AuditAction.EVIDENCE_DELETE, "evidence", evidence_id,
              {"dispute_id": evidence.dispute_id, "file_url": evidence.file_url}, None)

    logger.info("Evidence %s deleted by uploader %s", evidence_id, requester_id)
