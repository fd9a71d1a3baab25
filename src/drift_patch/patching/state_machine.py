"""
Patch status state machine.

CREATED -> VALIDATED -> APPLIED -> ROLLED_BACK, with CREATED|VALIDATED -> FAILED.
FAILED and ROLLED_BACK are terminal.
"""
from dataclasses import replace
from enum import Enum
from typing import Dict, FrozenSet, Tuple

from ..models import Patch, PatchStatus
from ..monitoring.metrics import record_transition
from ..utils import InvalidTransitionError


class PatchEvent(Enum):
    VALIDATION_PASSED = "validation_passed"
    VALIDATION_FAILED = "validation_failed"
    APPLY = "apply"
    ROLLBACK = "rollback"
    FAIL = "fail"


ALLOWED_TRANSITIONS: FrozenSet[Tuple[PatchStatus, PatchStatus]] = frozenset({
    (PatchStatus.CREATED, PatchStatus.VALIDATED),
    (PatchStatus.CREATED, PatchStatus.FAILED),
    (PatchStatus.VALIDATED, PatchStatus.APPLIED),
    (PatchStatus.VALIDATED, PatchStatus.FAILED),
    (PatchStatus.APPLIED, PatchStatus.ROLLED_BACK),
})

EVENT_TARGETS: Dict[PatchEvent, PatchStatus] = {
    PatchEvent.VALIDATION_PASSED: PatchStatus.VALIDATED,
    PatchEvent.VALIDATION_FAILED: PatchStatus.FAILED,
    PatchEvent.APPLY: PatchStatus.APPLIED,
    PatchEvent.ROLLBACK: PatchStatus.ROLLED_BACK,
    PatchEvent.FAIL: PatchStatus.FAILED,
}

TERMINAL_STATES = frozenset({PatchStatus.FAILED, PatchStatus.ROLLED_BACK})


def transition_to(current: PatchStatus, target: PatchStatus) -> PatchStatus:
    """
    Check a status pair against the allowed transitions.

    Raises:
        InvalidTransitionError: Pair not allowed
    """
    if (current, target) not in ALLOWED_TRANSITIONS:
        raise InvalidTransitionError(
            f"Cannot transition patch from {current.value} to {target.value}",
            details={"from": current.value, "to": target.value}
        )
    return target


def transition(current: PatchStatus, event: PatchEvent) -> PatchStatus:
    """Status reached from current on event."""
    return transition_to(current, EVENT_TARGETS[event])


def advance(patch: Patch, event: PatchEvent, **fields) -> Patch:
    """
    Produce the patch that results from event.

    Extra fields (timestamps, validation result, safety score) are set on the
    returned copy. The input patch is never modified.
    """
    target = transition(patch.status, event)
    record_transition(patch.model_id, patch.status.value, target.value)
    return replace(patch, status=target, **fields)
