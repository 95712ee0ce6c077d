"""Registration session states and the transitions allowed between them."""

from __future__ import annotations

from enum import Enum
from typing import Dict, FrozenSet


class RegistrationState(str, Enum):
    STAGED = "staged"
    EMAIL_VERIFICATION_PENDING = "email_verification_pending"
    EMAIL_VERIFIED = "email_verified"
    PENDING_APPROVAL = "pending_approval"
    APPROVED = "approved"
    REJECTED = "rejected"
    PROCESSING = "processing"
    ACCOUNT_CREATED = "account_created"
    ENTITIES_CREATING = "entities_creating"
    COMPLETED = "completed"
    FAILED = "failed"
    RETRY_PENDING = "retry_pending"
    EXPIRED = "expired"
    CANCELLED = "cancelled"


S = RegistrationState

TRANSITIONS: Dict[RegistrationState, FrozenSet[RegistrationState]] = {
    S.STAGED: frozenset({S.EMAIL_VERIFICATION_PENDING, S.PENDING_APPROVAL, S.FAILED, S.CANCELLED, S.EXPIRED}),
    S.EMAIL_VERIFICATION_PENDING: frozenset({S.EMAIL_VERIFIED, S.FAILED, S.CANCELLED, S.EXPIRED}),
    S.EMAIL_VERIFIED: frozenset({S.ACCOUNT_CREATED, S.PENDING_APPROVAL, S.APPROVED, S.FAILED, S.CANCELLED, S.EXPIRED}),
    S.ACCOUNT_CREATED: frozenset({S.ENTITIES_CREATING, S.FAILED}),
    S.ENTITIES_CREATING: frozenset({S.PENDING_APPROVAL, S.COMPLETED, S.FAILED}),
    S.PENDING_APPROVAL: frozenset({S.APPROVED, S.REJECTED, S.CANCELLED, S.EXPIRED}),
    S.APPROVED: frozenset({S.PROCESSING, S.COMPLETED, S.FAILED, S.CANCELLED}),
    S.PROCESSING: frozenset({S.COMPLETED, S.FAILED}),
    S.FAILED: frozenset({S.RETRY_PENDING, S.STAGED, S.CANCELLED}),
    S.RETRY_PENDING: frozenset({S.ENTITIES_CREATING, S.FAILED, S.CANCELLED}),
    S.EXPIRED: frozenset({S.STAGED, S.CANCELLED}),
    S.REJECTED: frozenset(),
    S.COMPLETED: frozenset(),
    S.CANCELLED: frozenset(),
}

PROGRESS: Dict[RegistrationState, int] = {
    S.STAGED: 10,
    S.EMAIL_VERIFICATION_PENDING: 20,
    S.EMAIL_VERIFIED: 30,
    S.ACCOUNT_CREATED: 40,
    S.ENTITIES_CREATING: 50,
    S.PENDING_APPROVAL: 60,
    S.APPROVED: 80,
    S.PROCESSING: 90,
    S.COMPLETED: 100,
}

def can_transition(current: RegistrationState, target: RegistrationState) -> bool:
    return target in TRANSITIONS.get(current, frozenset())


def is_terminal(state: RegistrationState) -> bool:
    return not TRANSITIONS.get(state)


def progress_for(state: RegistrationState) -> int:
    return PROGRESS.get(state, 0)
