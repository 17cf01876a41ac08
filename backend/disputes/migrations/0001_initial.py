# backend/disputes/migrations/0001_initial.py
from django.conf import settings
from django.db import migrations, models
import django.db.models.deletion
import django.utils.timezone

ROLE_CHOICES = [("buyer", "Buyer"), ("seller", "Seller")]


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="Dispute",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("code", models.CharField(db_index=True, editable=False, max_length=32, unique=True)),
                ("order_id", models.BigIntegerField(db_index=True)),
                ("initiator_role", models.CharField(choices=ROLE_CHOICES, max_length=10)),
                ("dispute_type", models.CharField(choices=[("goods_mismatch", "Goods Not As Described"), ("quality_issue", "Quality Issue"), ("not_received", "Item Not Received"), ("logistics_delay", "Logistics Delay"), ("other", "Other")], max_length=30)),
                ("description", models.TextField()),
                ("status", models.CharField(choices=[("submitted", "Submitted"), ("negotiating", "Negotiating"), ("pending_arbitration", "Pending Arbitration"), ("arbitrating", "Arbitrating"), ("completed", "Completed"), ("closed", "Closed")], db_index=True, default="submitted", max_length=30)),
                ("negotiation_deadline", models.DateTimeField(blank=True, null=True)),
                ("arbitration_deadline", models.DateTimeField(blank=True, null=True)),
                ("close_reason", models.CharField(blank=True, max_length=255)),
                ("closed_at", models.DateTimeField(blank=True, null=True)),
                ("completed_at", models.DateTimeField(blank=True, null=True)),
                ("created_at", models.DateTimeField(db_index=True, default=django.utils.timezone.now)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("arbitrator", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.PROTECT, related_name="disputes_arbitrated", to=settings.AUTH_USER_MODEL)),
                ("initiator", models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name="disputes_initiated", to=settings.AUTH_USER_MODEL)),
                ("respondent", models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name="disputes_received", to=settings.AUTH_USER_MODEL)),
            ],
            options={
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(fields=["status", "negotiation_deadline"], name="dispute_status_nego_idx"),
                    models.Index(fields=["status", "arbitration_deadline"], name="dispute_status_arb_idx"),
                ],
                "constraints": [
                    models.UniqueConstraint(condition=models.Q(("status", "closed"), _negated=True), fields=("order_id",), name="uniq_active_dispute_per_order"),
                ],
            },
        ),
        migrations.CreateModel(
            name="AuditLogEntry",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("operator_id", models.BigIntegerField(blank=True, db_index=True, null=True)),
                ("action", models.CharField(choices=[("dispute.create", "Dispute submitted"), ("dispute.negotiate", "Negotiation started"), ("dispute.escalate", "Escalated to arbitration"), ("dispute.close", "Dispute closed"), ("dispute.expire_negotiation", "Negotiation period expired"), ("dispute.expire_arbitration", "Arbitration period expired"), ("arbitration.assign", "Arbitrator assigned"), ("arbitration.submit", "Verdict submitted"), ("arbitration.execute", "Verdict executed"), ("proposal.create", "Proposal made"), ("proposal.respond", "Proposal answered"), ("evidence.upload", "Evidence uploaded"), ("evidence.evaluate", "Evidence evaluated"), ("evidence.delete", "Evidence deleted")], db_index=True, max_length=40)),
                ("entity_type", models.CharField(max_length=40)),
                ("entity_id", models.BigIntegerField(blank=True, null=True)),
                ("before_state", models.JSONField(blank=True, null=True)),
                ("after_state", models.JSONField(blank=True, null=True)),
                ("created_at", models.DateTimeField(auto_now_add=True, db_index=True)),
            ],
            options={
                "verbose_name_plural": "audit log entries",
                "ordering": ["-created_at", "-id"],
                "indexes": [models.Index(fields=["entity_type", "entity_id"], name="audit_entity_idx")],
            },
        ),
        migrations.CreateModel(
            name="Arbitration",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("result", models.CharField(choices=[("full_refund", "Full Refund"), ("partial_refund", "Partial Refund"), ("reject", "Reject")], max_length=20)),
                ("refund_amount", models.DecimalField(blank=True, decimal_places=2, max_digits=10, null=True)),
                ("reason", models.TextField()),
                ("buyer_evidence_analysis", models.TextField(blank=True)),
                ("seller_evidence_analysis", models.TextField(blank=True)),
                ("executed", models.BooleanField(db_index=True, default=False)),
                ("executed_at", models.DateTimeField(blank=True, null=True)),
                ("execution_note", models.TextField(blank=True)),
                ("arbitrated_at", models.DateTimeField(default=django.utils.timezone.now)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("arbitrator", models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name="arbitrations", to=settings.AUTH_USER_MODEL)),
                ("dispute", models.OneToOneField(on_delete=django.db.models.deletion.PROTECT, related_name="arbitration", to="disputes.dispute")),
            ],
            options={
                "ordering": ["-arbitrated_at"],
            },
        ),
        migrations.CreateModel(
            name="Evidence",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("uploader_role", models.CharField(choices=ROLE_CHOICES, max_length=10)),
                ("evidence_type", models.CharField(choices=[("image", "Image"), ("video", "Video"), ("chat_record", "Chat Record"), ("document", "Document"), ("other", "Other")], default="other", max_length=20)),
                ("file_url", models.URLField(max_length=500)),
                ("file_name", models.CharField(blank=True, max_length=255)),
                ("file_size", models.PositiveBigIntegerField(blank=True, null=True)),
                ("description", models.TextField(blank=True)),
                ("validity", models.CharField(blank=True, choices=[("valid", "Valid"), ("invalid", "Invalid"), ("doubtful", "Doubtful")], max_length=10, null=True)),
                ("validity_reason", models.TextField(blank=True)),
                ("evaluated_at", models.DateTimeField(blank=True, null=True)),
                ("created_at", models.DateTimeField(db_index=True, default=django.utils.timezone.now)),
                ("dispute", models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name="evidence", to="disputes.dispute")),
                ("evaluated_by", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.PROTECT, related_name="evaluated_evidence", to=settings.AUTH_USER_MODEL)),
                ("uploader", models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name="dispute_evidence", to=settings.AUTH_USER_MODEL)),
            ],
            options={
                "verbose_name_plural": "evidence",
                "ordering": ["created_at", "id"],
            },
        ),
        migrations.CreateModel(
            name="NegotiationMessage",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("sender_role", models.CharField(choices=ROLE_CHOICES, max_length=10)),
                ("message_type", models.CharField(choices=[("text", "Text"), ("proposal", "Proposal")], default="text", max_length=10)),
                ("content", models.TextField()),
                ("proposed_refund_amount", models.DecimalField(blank=True, decimal_places=2, max_digits=10, null=True)),
                ("proposal_status", models.CharField(blank=True, choices=[("pending", "Pending"), ("accepted", "Accepted"), ("rejected", "Rejected")], max_length=10, null=True)),
                ("responded_at", models.DateTimeField(blank=True, null=True)),
                ("response_note", models.TextField(blank=True)),
                ("created_at", models.DateTimeField(db_index=True, default=django.utils.timezone.now)),
                ("dispute", models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name="negotiation_messages", to="disputes.dispute")),
                ("responded_by", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.PROTECT, related_name="dispute_proposal_responses", to=settings.AUTH_USER_MODEL)),
                ("sender", models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name="dispute_messages", to=settings.AUTH_USER_MODEL)),
            ],
            options={
                "ordering": ["created_at", "id"],
                "constraints": [
                    models.UniqueConstraint(condition=models.Q(("proposal_status", "pending")), fields=("dispute",), name="uniq_pending_proposal_per_dispute"),
                ],
            },
        ),
    ]
