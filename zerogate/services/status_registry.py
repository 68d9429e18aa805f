"""
Legal status transitions per entity kind.

Every transition the executor performs is looked up here first; anything not
listed is refused, never coerced.
"""
from enum import Enum
from typing import Dict, Tuple

from zerogate.models.enums import AccountStatus, KycStatus, AssetStatus, CredentialStatus
from zerogate.services.errors import InvalidTransition


class EntityKind(str, Enum):
    BUSINESS_ACCOUNT = "account.business"
    CONSUMER_ACCOUNT = "account.consumer"  # graph runs over Account.kyc_status
    ASSET = "asset"
    CREDENTIAL = "credential"


Graph = Dict[Tuple[str, str], str]

TRANSITIONS: Dict[EntityKind, Graph] = {
    EntityKind.BUSINESS_ACCOUNT: {
        (AccountStatus.PENDING_ONBOARDING.value, "onboard"): AccountStatus.PENDING_KYB.value,
        (AccountStatus.PENDING_KYB.value, "approve"): AccountStatus.ACTIVE.value,
        # Rejection is recorded on the application; the account stays put
        (AccountStatus.PENDING_KYB.value, "reject"): AccountStatus.PENDING_KYB.value,
    },
    EntityKind.CONSUMER_ACCOUNT: {
        (KycStatus.NOT_STARTED.value, "submit"): KycStatus.PENDING.value,
        (KycStatus.PENDING.value, "approve"): KycStatus.APPROVED.value,
        (KycStatus.PENDING.value, "reject"): KycStatus.REJECTED.value,
        (KycStatus.REJECTED.value, "resubmit"): KycStatus.PENDING.value,
    },
    EntityKind.ASSET: {
        (AssetStatus.DRAFT.value, "submit_for_review"): AssetStatus.PENDING_REVIEW.value,
        (AssetStatus.PENDING_REVIEW.value, "authorize"): AssetStatus.AUTHORIZED.value,
        (AssetStatus.PENDING_REVIEW.value, "reject"): AssetStatus.REJECTED.value,
        # Admin desk entry point: approves/rejects drafts directly
        (AssetStatus.DRAFT.value, "authorize_draft"): AssetStatus.AUTHORIZED.value,
        (AssetStatus.DRAFT.value, "reject_draft"): AssetStatus.REJECTED.value,
    },
    EntityKind.CREDENTIAL: {
        (CredentialStatus.ACTIVE.value, "revoke"): CredentialStatus.DELETED.value,
        (CredentialStatus.ACTIVE.value, "soft_revoke"): CredentialStatus.REVOKED.value,
    },
}


def _value(status) -> str:
    return status.value if isinstance(status, Enum) else str(status)


class StatusRegistry:
    """Lookup over TRANSITIONS."""

    def __init__(self, transitions: Dict[EntityKind, Graph] = None):
        self.transitions = transitions or TRANSITIONS

    def allowed_transition(self, entity_kind: EntityKind, from_status, action: str) -> str:
        """
        Return the status `action` leads to from `from_status`.

        Raises InvalidTransition for any pair not in the graph.
        """
        graph = self.transitions.get(EntityKind(entity_kind), {})
        current = _value(from_status) if from_status is not None else None
        to_status = graph.get((current, action))
        if to_status is None:
            allowed = self.actions_from(entity_kind, current)
            raise InvalidTransition(
                f"Cannot {action} {EntityKind(entity_kind).value} in status '{current}'. "
                f"Allowed from this status: {', '.join(allowed) or 'none'}"
            )
        return to_status

    def actions_from(self, entity_kind: EntityKind, from_status) -> list:
        graph = self.transitions.get(EntityKind(entity_kind), {})
        current = _value(from_status) if from_status is not None else None
        return sorted(a for (s, a) in graph if s == current)
