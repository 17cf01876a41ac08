# backend/disputes/services/statistics.py

from dataclasses import dataclass, field
from typing import Dict, Optional

from django.db.models import Count
from django.utils import timezone

from ..models import Arbitration, Dispute, DisputeStatus
from .cases import NEGOTIATED_SETTLEMENT_REASON


@dataclass
class DisputeStatistics:
    total: int = 0
    by_status: Dict[str, int] = field(default_factory=dict)
    by_type: Dict[str, int] = field(default_factory=dict)
    by_result: Dict[str, int] = field(default_factory=dict)
    avg_negotiation_hours: Optional[float] = None
    avg_resolution_hours: Optional[float] = None
    negotiation_success_rate: float = 0.0
    new_this_month: int = 0
    resolved_this_month: int = 0


def _avg_hours(deltas) -> Optional[float]:
    deltas = list(deltas)
    if not deltas:
        return None
    seconds = sum(d.total_seconds() for d in deltas) / len(deltas)
    return round(seconds / 3600, 2)


def _counts(qs, field_name) -> Dict[str, int]:
    return {
        row[field_name]: row["n"]
        for row in qs.values(field_name).annotate(n=Count("id")).order_by(field_name)
    }


def get_statistics(now=None) -> DisputeStatistics:
    now = now or timezone.now()
    month_start = timezone.localtime(now).replace(day=1, hour=0, minute=0, second=0, microsecond=0)

    by_status = {status: 0 for status in DisputeStatus.values}
    by_status.update(_counts(Dispute.objects.all(), "status"))
    total = sum(by_status.values())

    negotiating = Dispute.objects.filter(status=DisputeStatus.NEGOTIATING).values_list("created_at", flat=True)
    resolved = (
        Dispute.objects.filter(status=DisputeStatus.COMPLETED, completed_at__isnull=False)
        .values_list("created_at", "completed_at")
    )
    settled = Dispute.objects.filter(
        status=DisputeStatus.CLOSED, close_reason=NEGOTIATED_SETTLEMENT_REASON
    ).count()

    return DisputeStatistics(
        total=total,
        by_status=by_status,
        by_type=_counts(Dispute.objects.all(), "dispute_type"),
        by_result=_counts(Arbitration.objects.all(), "result"),
        avg_negotiation_hours=_avg_hours(now - created for created in negotiating),
        avg_resolution_hours=_avg_hours(completed - created for created, completed in resolved),
        negotiation_success_rate=round(settled * 100 / total, 2) if total else 0.0,
        new_this_month=Dispute.objects.filter(created_at__gte=month_start).count(),
        resolved_this_month=(
            Dispute.objects.filter(status=DisputeStatus.COMPLETED, completed_at__gte=month_start).count()
            + Dispute.objects.filter(status=DisputeStatus.CLOSED, closed_at__gte=month_start).count()
        ),
    )
