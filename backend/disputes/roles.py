# backend/disputes/roles.py
"""
Who is who on a dispute.

Every permission check in the services goes through ``role_of`` instead of
comparing user ids against ``initiator_id``/``respondent_id`` by hand.
"""
from enum import Enum
from typing import Optional

from .exceptions import Forbidden
from .models import Dispute, DisputeRole


class PartyRole(str, Enum):
    INITIATOR = "initiator"
    RESPONDENT = "respondent"
    NONE = "none"


def role_of(dispute: Dispute, user_id) -> PartyRole:
    if user_id is None:
        return PartyRole.NONE
    if user_id == dispute.initiator_id:
        return PartyRole.INITIATOR
    if user_id == dispute.respondent_id:
        return PartyRole.RESPONDENT
    return PartyRole.NONE


def is_participant(dispute: Dispute, user_id) -> bool:
    return role_of(dispute, user_id) is not PartyRole.NONE


def trade_role_of(dispute: Dispute, user_id) -> Optional[str]:
    """BUYER/SELLER for a participant, None for anyone else."""
    role = role_of(dispute, user_id)
    if role is PartyRole.INITIATOR:
        return dispute.initiator_role
    if role is PartyRole.RESPONDENT:
        return dispute.respondent_role
    return None


def counterpart_of(dispute: Dispute, user_id):
    role = role_of(dispute, user_id)
    if role is PartyRole.INITIATOR:
        return dispute.respondent_id
    if role is PartyRole.RESPONDENT:
        return dispute.initiator_id
    return None


def require_participant(dispute: Dispute, user_id) -> str:
    """Return the user's trade role or raise Forbidden."""
    trade_role = trade_role_of(dispute, user_id)
    if trade_role is None:
        raise Forbidden(f"User {user_id} is not a participant in dispute {dispute.code}")
    return trade_role


def party_ids(dispute: Dispute):
    return [dispute.initiator_id, dispute.respondent_id]


__all__ = [
    "PartyRole", "DisputeRole", "role_of", "is_participant", "trade_role_of",
    "counterpart_of", "require_participant", "party_ids",
]
