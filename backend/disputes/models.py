# backend/disputes/models.py
from django.conf import settings
from django.db import models, transaction
from django.db.models import Q
from django.utils import timezone

from .exceptions import InvalidState


# --- TextChoices for status/type fields ---
class DisputeStatus(models.TextChoices):
    SUBMITTED = 'submitted', 'Submitted'
    NEGOTIATING = 'negotiating', 'Negotiating'
    PENDING_ARBITRATION = 'pending_arbitration', 'Pending Arbitration'
    ARBITRATING = 'arbitrating', 'Arbitrating'
    COMPLETED = 'completed', 'Completed'
    CLOSED = 'closed', 'Closed'


class DisputeRole(models.TextChoices):
    BUYER = 'buyer', 'Buyer'
    SELLER = 'seller', 'Seller'


class DisputeType(models.TextChoices):
    GOODS_MISMATCH = 'goods_mismatch', 'Goods Not As Described'
    QUALITY_ISSUE = 'quality_issue', 'Quality Issue'
    NOT_RECEIVED = 'not_received', 'Item Not Received'
    LOGISTICS_DELAY = 'logistics_delay', 'Logistics Delay'
    OTHER = 'other', 'Other'


class MessageType(models.TextChoices):
    TEXT = 'text', 'Text'
    PROPOSAL = 'proposal', 'Proposal'


class ProposalStatus(models.TextChoices):
    PENDING = 'pending', 'Pending'
    ACCEPTED = 'accepted', 'Accepted'
    REJECTED = 'rejected', 'Rejected'


class EvidenceType(models.TextChoices):
    IMAGE = 'image', 'Image'
    VIDEO = 'video', 'Video'
    CHAT_RECORD = 'chat_record', 'Chat Record'
    DOCUMENT = 'document', 'Document'
    OTHER = 'other', 'Other'


class EvidenceValidity(models.TextChoices):
    VALID = 'valid', 'Valid'
    INVALID = 'invalid', 'Invalid'
    DOUBTFUL = 'doubtful', 'Doubtful'


class ArbitrationResult(models.TextChoices):
    FULL_REFUND = 'full_refund', 'Full Refund'
    PARTIAL_REFUND = 'partial_refund', 'Partial Refund'
    REJECT = 'reject', 'Reject'


class AuditAction(models.TextChoices):
    DISPUTE_CREATE = 'dispute.create', 'Dispute submitted'
    DISPUTE_NEGOTIATE = 'dispute.negotiate', 'Negotiation started'
    DISPUTE_ESCALATE = 'dispute.escalate', 'Escalated to arbitration'
    DISPUTE_CLOSE = 'dispute.close', 'Dispute closed'
    DISPUTE_EXPIRE_NEGOTIATION = 'dispute.expire_negotiation', 'Negotiation period expired'
    DISPUTE_EXPIRE_ARBITRATION = 'dispute.expire_arbitration', 'Arbitration period expired'
    ARBITRATOR_ASSIGN = 'arbitration.assign', 'Arbitrator assigned'
    ARBITRATION_SUBMIT = 'arbitration.submit', 'Verdict submitted'
    ARBITRATION_EXECUTE = 'arbitration.execute', 'Verdict executed'
    PROPOSAL_CREATE = 'proposal.create', 'Proposal made'
    PROPOSAL_RESPOND = 'proposal.respond', 'Proposal answered'
    EVIDENCE_UPLOAD = 'evidence.upload', 'Evidence uploaded'
    EVIDENCE_EVALUATE = 'evidence.evaluate', 'Evidence evaluated'
    EVIDENCE_DELETE = 'evidence.delete', 'Evidence deleted'


# Outgoing edges of the dispute state machine; terminal states have none.
ALLOWED_TRANSITIONS = {
    DisputeStatus.SUBMITTED: frozenset({DisputeStatus.NEGOTIATING, DisputeStatus.CLOSED}),
    DisputeStatus.NEGOTIATING: frozenset({DisputeStatus.PENDING_ARBITRATION, DisputeStatus.CLOSED}),
    DisputeStatus.PENDING_ARBITRATION: frozenset({DisputeStatus.ARBITRATING, DisputeStatus.CLOSED}),
    DisputeStatus.ARBITRATING: frozenset({DisputeStatus.COMPLETED, DisputeStatus.CLOSED}),
    DisputeStatus.COMPLETED: frozenset(),
    DisputeStatus.CLOSED: frozenset(),
}

TERMINAL_STATUSES = frozenset({DisputeStatus.COMPLETED, DisputeStatus.CLOSED})
NEGOTIABLE_STATUSES = frozenset({DisputeStatus.SUBMITTED, DisputeStatus.NEGOTIATING})
REFUND_RESULTS = frozenset({ArbitrationResult.FULL_REFUND, ArbitrationResult.PARTIAL_REFUND})


class DisputeQuerySet(models.QuerySet):

    def active(self):
        """Everything that still blocks a new dispute on the same order."""
        return self.exclude(status=DisputeStatus.CLOSED)

    def open(self):
        return self.exclude(status__in=TERMINAL_STATUSES)

    def involving(self, user_id):
        return self.filter(Q(initiator_id=user_id) | Q(respondent_id=user_id))


class Dispute(models.Model):
    code = models.CharField(max_length=32, unique=True, editable=False, db_index=True)
    # Orders live behind the order-context provider, so only the id is kept here.
    order_id = models.BigIntegerField(db_index=True)

    initiator = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.PROTECT, related_name="disputes_initiated")
    initiator_role = models.CharField(max_length=10, choices=DisputeRole.choices)
    respondent = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.PROTECT, related_name="disputes_received")

    dispute_type = models.CharField(max_length=30, choices=DisputeType.choices)
    description = models.TextField()

    status = models.CharField(
        max_length=30, choices=DisputeStatus.choices,
        default=DisputeStatus.SUBMITTED, db_index=True
    )
    negotiation_deadline = models.DateTimeField(null=True, blank=True)
    arbitration_deadline = models.DateTimeField(null=True, blank=True)
    arbitrator = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.PROTECT,
        null=True, blank=True, related_name="disputes_arbitrated"
    )

    close_reason = models.CharField(max_length=255, blank=True)
    closed_at = models.DateTimeField(null=True, blank=True)
    completed_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(default=timezone.now, db_index=True)
    updated_at = models.DateTimeField(auto_now=True)

    objects = DisputeQuerySet.as_manager()

    class Meta:
        ordering = ["-created_at"]
        constraints = [
            models.UniqueConstraint(
                fields=["order_id"],
                condition=~Q(status=DisputeStatus.CLOSED),
                name="uniq_active_dispute_per_order",
            ),
        ]
        indexes = [
            models.Index(fields=["status", "negotiation_deadline"], name="dispute_status_nego_idx"),
            models.Index(fields=["status", "arbitration_deadline"], name="dispute_status_arb_idx"),
        ]

    def save(self, *args, **kwargs):
        if not self.code:
            self.code = self._generate_code()
        super().save(*args, **kwargs)

    def _generate_code(self):
        prefix = f'DSP-{timezone.localdate().strftime("%Y%m%d")}-'
        with transaction.atomic():
            last_code = (
                Dispute.objects.filter(code__startswith=prefix)
                .order_by('code').values_list('code', flat=True).last()
            )
            if last_code:
                new_suffix = int(last_code.split('-')[-1]) + 1
            else:
                new_suffix = 1
            return f"{prefix}{new_suffix:06d}"

    @property
    def respondent_role(self):
        return DisputeRole.SELLER if self.initiator_role == DisputeRole.BUYER else DisputeRole.BUYER

    @property
    def buyer_id(self):
        return self.initiator_id if self.initiator_role == DisputeRole.BUYER else self.respondent_id

    @property
    def seller_id(self):
        return self.initiator_id if self.initiator_role == DisputeRole.SELLER else self.respondent_id

    @property
    def is_terminal(self):
        return self.status in TERMINAL_STATUSES

    def can_transition_to(self, new_status) -> bool:
        return new_status in ALLOWED_TRANSITIONS.get(self.status, frozenset())

    def transition_to(self, new_status):
        """Move to ``new_status`` in memory; the caller saves."""
        if not self.can_transition_to(new_status):
            raise InvalidState(
                f"Dispute {self.code} cannot move from {self.status} to {new_status}"
            )
        self.status = new_status

    def __str__(self) -> str:
        return f"{self.code} on order #{self.order_id} ({self.get_status_display()})"


class NegotiationMessageQuerySet(models.QuerySet):

    def proposals(self):
        return self.filter(message_type=MessageType.PROPOSAL)

    def pending(self):
        return self.filter(proposal_status=ProposalStatus.PENDING)


class NegotiationMessage(models.Model):
    """
    One entry in the append-only negotiation ledger of a dispute: either a
    free-text message or a structured refund proposal.
    """
    dispute = models.ForeignKey(Dispute, on_delete=models.PROTECT, related_name="negotiation_messages")
    sender = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.PROTECT, related_name="dispute_messages")
    sender_role = models.CharField(max_length=10, choices=DisputeRole.choices)
    message_type = models.CharField(max_length=10, choices=MessageType.choices, default=MessageType.TEXT)
    content = models.TextField()

    # Proposal-only fields
    proposed_refund_amount = models.DecimalField(max_digits=10, decimal_places=2, null=True, blank=True)
    proposal_status = models.CharField(max_length=10, choices=ProposalStatus.choices, null=True, blank=True)
    responded_by = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.PROTECT,
        null=True, blank=True, related_name="dispute_proposal_responses"
    )
    responded_at = models.DateTimeField(null=True, blank=True)
    response_note = models.TextField(blank=True)

    created_at = models.DateTimeField(default=timezone.now, db_index=True)

    objects = NegotiationMessageQuerySet.as_manager()

    class Meta:
        ordering = ["created_at", "id"]
        constraints = [
            models.UniqueConstraint(
                fields=["dispute"],
                condition=Q(proposal_status=ProposalStatus.PENDING),
                name="uniq_pending_proposal_per_dispute",
            ),
        ]

    @property
    def is_proposal(self):
        return self.message_type == MessageType.PROPOSAL

    def __str__(self):
        kind = "Proposal" if self.is_proposal else "Message"
        return f"{kind} #{self.pk} on dispute #{self.dispute_id} from {self.sender_role}"


class Evidence(models.Model):
    dispute = models.ForeignKey(Dispute, on_delete=models.PROTECT, related_name="evidence")
    uploader = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.PROTECT, related_name="dispute_evidence")
    uploader_role = models.CharField(max_length=10, choices=DisputeRole.choices)
    evidence_type = models.CharField(max_length=20, choices=EvidenceType.choices, default=EvidenceType.OTHER)
    file_url = models.URLField(max_length=500)
    file_name = models.CharField(max_length=255, blank=True)
    file_size = models.PositiveBigIntegerField(null=True, blank=True)
    description = models.TextField(blank=True)

    # Judgement; written once
    validity = models.CharField(max_length=10, choices=EvidenceValidity.choices, null=True, blank=True)
    validity_reason = models.TextField(blank=True)
    evaluated_by = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.PROTECT,
        null=True, blank=True, related_name="evaluated_evidence"
    )
    evaluated_at = models.DateTimeField(null=True, blank=True)

    created_at = models.DateTimeField(default=timezone.now, db_index=True)

    class Meta:
        ordering = ["created_at", "id"]
        verbose_name_plural = "evidence"

    @property
    def is_evaluated(self):
        return self.validity is not None

    def __str__(self) -> str:
        return f"Evidence #{self.pk} ({self.evidence_type}) for dispute #{self.dispute_id}"


class Arbitration(models.Model):
    """
    The single binding verdict on a dispute. Settlement happens outside the
    engine; ``executed`` only records that it did.
    """
    dispute = models.OneToOneField(Dispute, on_delete=models.PROTECT, related_name="arbitration")
    arbitrator = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.PROTECT, related_name="arbitrations")
    result = models.CharField(max_length=20, choices=ArbitrationResult.choices)
    refund_amount = models.DecimalField(max_digits=10, decimal_places=2, null=True, blank=True)
    reason = models.TextField()
    buyer_evidence_analysis = models.TextField(blank=True)
    seller_evidence_analysis = models.TextField(blank=True)

    executed = models.BooleanField(default=False, db_index=True)
    executed_at = models.DateTimeField(null=True, blank=True)
    execution_note = models.TextField(blank=True)

    arbitrated_at = models.DateTimeField(default=timezone.now)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["-arbitrated_at"]

    @property
    def requires_refund(self):
        return self.result in REFUND_RESULTS

    def __str__(self):
        amount = f" ${self.refund_amount}" if self.refund_amount is not None else ""
        return f"Arbitration #{self.pk} on dispute #{self.dispute_id}: {self.get_result_display()}{amount}"


class AuditLogEntry(models.Model):
    """Write-only trail of dispute state changes; the engine never reads it back."""
    operator_id = models.BigIntegerField(null=True, blank=True, db_index=True)  # None = system
    action = models.CharField(max_length=40, choices=AuditAction.choices, db_index=True)
    entity_type = models.CharField(max_length=40)
    entity_id = models.BigIntegerField(null=True, blank=True)
    before_state = models.JSONField(null=True, blank=True)
    after_state = models.JSONField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True, db_index=True)

    class Meta:
        ordering = ["-created_at", "-id"]
        verbose_name_plural = "audit log entries"
        indexes = [
            models.Index(fields=["entity_type", "entity_id"], name="audit_entity_idx"),
        ]

    def __str__(self):
        who = f"user #{self.operator_id}" if self.operator_id else "system"
        return f"{self.action} on {self.entity_type} #{self.entity_id} by {who}"
