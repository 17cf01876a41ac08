# backend/disputes/admin.py
from django.contrib import admin, messages

from .exceptions import DisputeError
from .models import Arbitration, AuditLogEntry, Dispute, Evidence, NegotiationMessage
from .services.arbitration import mark_executed
from .services.cases import close_dispute


class NegotiationMessageInline(admin.TabularInline):
    model = NegotiationMessage
    extra = 0
    can_delete = False
    fields = ("sender", "sender_role", "message_type", "content", "proposed_refund_amount",
              "proposal_status", "responded_at", "created_at")
    readonly_fields = fields


class EvidenceInline(admin.TabularInline):
    model = Evidence
    extra = 0
    can_delete = False
    fields = ("uploader_role", "evidence_type", "file_url", "validity", "evaluated_by", "created_at")
    readonly_fields = fields


@admin.register(Dispute)
class DisputeAdmin(admin.ModelAdmin):
    list_display = ("id", "code", "order_id", "dispute_type", "status", "initiator_role",
                    "arbitrator", "negotiation_deadline", "arbitration_deadline", "created_at")
    search_fields = ("code", "order_id", "initiator__email", "respondent__email")
    list_filter = ("status", "dispute_type", "initiator_role", "created_at")
    readonly_fields = ("code", "order_id", "initiator", "initiator_role", "respondent", "dispute_type",
                       "description", "status", "negotiation_deadline", "arbitration_deadline", "arbitrator",
                       "close_reason", "closed_at", "completed_at", "created_at", "updated_at")
    inlines = [NegotiationMessageInline, EvidenceInline]
    actions = ["action_close"]

    def has_delete_permission(self, request, obj=None):
        return False

    @admin.action(description="Close selected disputes (administrative)")
    def action_close(self, request, queryset):
        closed = 0
        for dispute in queryset:
            try:
                close_dispute(dispute.pk, "closed by administrator", actor_id=request.user.pk)
                closed += 1
            except DisputeError as e:
                self.message_user(request, f"{dispute.code}: {e}", level=messages.ERROR)
        if closed:
            self.message_user(request, f"Closed {closed} dispute(s).", level=messages.SUCCESS)


@admin.register(Evidence)
class EvidenceAdmin(admin.ModelAdmin):
    list_display = ("id", "dispute", "uploader_role", "evidence_type", "file_name", "validity", "created_at")
    list_filter = ("evidence_type", "validity", "uploader_role")
    search_fields = ("dispute__code", "file_name", "description")
    readonly_fields = ("dispute", "uploader", "uploader_role", "evidence_type", "file_url", "file_name",
                       "file_size", "description", "validity", "validity_reason", "evaluated_by",
                       "evaluated_at", "created_at")

    # Uploads and deletions go through the evidence service.
    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False


@admin.register(Arbitration)
class ArbitrationAdmin(admin.ModelAdmin):
    list_display = ("id", "dispute", "arbitrator", "result", "refund_amount", "executed", "arbitrated_at")
    list_filter = ("result", "executed")
    search_fields = ("dispute__code", "arbitrator__email")
    readonly_fields = ("dispute", "arbitrator", "result", "refund_amount", "reason",
                       "buyer_evidence_analysis", "seller_evidence_analysis",
                       "executed", "executed_at", "execution_note", "arbitrated_at", "created_at")
    actions = ["action_mark_executed"]

    def has_delete_permission(self, request, obj=None):
        return False

    @admin.action(description="Mark settlement as executed")
    def action_mark_executed(self, request, queryset):
        done = 0
        for arbitration in queryset:
            try:
                mark_executed(arbitration.pk, note=f"marked in admin by {request.user}")
                done += 1
            except DisputeError as e:
                self.message_user(request, f"Arbitration {arbitration.pk}: {e}", level=messages.ERROR)
        if done:
            self.message_user(request, f"Marked {done} verdict(s) executed.", level=messages.SUCCESS)


@admin.register(AuditLogEntry)
class AuditLogEntryAdmin(admin.ModelAdmin):
    list_display = ("id", "action", "entity_type", "entity_id", "operator_id", "created_at")
    list_filter = ("action", "entity_type")
    search_fields = ("entity_id", "operator_id")

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False
