"""Consent lifecycle decisions.

Every function here is pure: it takes the current state of a consent record
plus the intended action and returns a Decision describing the next state,
whether the item payload may be released and the audit entry to append.
Nothing is read from or written to the database in this module.

Expiry and exhaustion are detected lazily. An approved record whose
validity has lapsed, or whose counter has run out, is moved to the matching
terminal status the next time anybody tries to use it.
"""

import enum
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Optional

from consent_broker.errors import InvalidArgumentError, InvalidTransitionError
from consent_broker.models.consent import (
    ConsentAction, ConsentStatus, REREQUESTABLE_STATUSES, UNBOUNDED_VALIDITY
)
from consent_broker.models.data_item import DeliveryMode

SYSTEM_ACTOR = "system"

S = ConsentStatus
A = ConsentAction

# Every legal (from, action) pair and the statuses it may lead to
TRANSITIONS = {
    (S.PENDING, A.APPROVE): {S.APPROVED},
    (S.PENDING, A.REJECT): {S.REJECTED},
    (S.APPROVED, A.REVOKE): {S.REVOKED},
    (S.APPROVED, A.EXPIRE): {S.EXPIRED, S.EXHAUSTED},
    (S.APPROVED, A.ACCESS): {S.APPROVED, S.EXHAUSTED},
    (S.REJECTED, A.REQUEST): {S.PENDING},
    (S.REVOKED, A.REQUEST): {S.PENDING},
    (S.EXPIRED, A.REQUEST): {S.PENDING},
    (S.EXHAUSTED, A.REQUEST): {S.PENDING},
}


class Outcome(enum.Enum):
    PENDING = "pending"
    GRANTED = "granted"
    DENIED = "denied"


@dataclass(frozen=True)
class ConsentState:
    status: ConsentStatus
    access_count: int
    valid_until: datetime
    released_key_material: Optional[str] = None


@dataclass(frozen=True)
class AuditSpec:
    action: ConsentAction
    actor: str
    previous_status: Optional[ConsentStatus]
    new_status: ConsentStatus
    timestamp: datetime
    remarks: str = ""
    extra: str = ""


@dataclass(frozen=True)
class Decision:
    outcome: Outcome
    previous: Optional[ConsentState]
    state: ConsentState
    message: str
    audit: Optional[AuditSpec] = None
    release: bool = False

    @property
    def changed(self):
        return self.audit is not None


def initial_state():
    return ConsentState(
        status=S.PENDING, access_count=1, valid_until=UNBOUNDED_VALIDITY
    )


def _transition(previous, action, state, actor, now, remarks="", extra=""):
    """Build the audit entry for a move, refusing anything outside TRANSITIONS."""
    prev_status = previous.status if previous is not None else None
    if prev_status is not None and state.status not in TRANSITIONS.get((prev_status, action), ()):
        raise InvalidTransitionError(
            f"Cannot {action.value} a consent that is {prev_status.value}",
            current_status=prev_status,
        )
    return AuditSpec(
        action=action,
        actor=str(actor),
        previous_status=prev_status,
        new_status=state.status,
        timestamp=now,
        remarks=remarks,
        extra=extra,
    )


def request(actor, now):
    """First access attempt for an (item, requester) pair."""
    state = initial_state()
    audit = _transition(None, A.REQUEST, state, actor, now, remarks="New consent request")
    return Decision(Outcome.PENDING, None, state, "Access request sent", audit=audit)


def _lazy_terminal(state, now):
    """Expire or exhaust an approved record that can no longer be used."""
    if now > state.valid_until:
        new_state = replace(state, status=S.EXPIRED)
        audit = _transition(state, A.EXPIRE, new_state, SYSTEM_ACTOR, now, remarks="Validity expired")
        return Decision(Outcome.DENIED, state, new_state, "Validity expired", audit=audit)
    if state.access_count <= 0:
        new_state = replace(state, status=S.EXHAUSTED)
        audit = _transition(
            state, A.EXPIRE, new_state, SYSTEM_ACTOR, now, remarks="Access count exhausted"
        )
        return Decision(Outcome.DENIED, state, new_state, "Access count exhausted", audit=audit)
    return None


_DENIAL_MESSAGES = {
    S.REJECTED: "Request was rejected previously by owner",
    S.REVOKED: "Request was revoked by owner",
    S.EXPIRED: "Validity expired",
    S.EXHAUSTED: "Access count exhausted",
}


def _not_approved(state):
    if state.status == S.PENDING:
        return Decision(Outcome.PENDING, state, state, "Request already pending")
    # Re-observing a terminal status appends nothing
    return Decision(Outcome.DENIED, state, state, _DENIAL_MESSAGES[state.status])


def _consume(state, actor, now, remarks):
    remaining = state.access_count - 1
    new_state = replace(
        state,
        access_count=remaining,
        status=S.EXHAUSTED if remaining == 0 else S.APPROVED,
    )
    audit = _transition(
        state, A.ACCESS, new_state, actor, now,
        remarks=remarks, extra=f"Remaining Count: {remaining}",
    )
    return Decision(Outcome.GRANTED, state, new_state, "Access granted", audit=audit, release=True)


def check_access(state, actor, delivery_mode, now):
    """Access attempt against an existing record.

    Inline items are consumed here. Indirect items only release their
    reference; the counter moves when the retrieval is confirmed.
    """
    if state.status != S.APPROVED:
        return _not_approved(state)

    terminal = _lazy_terminal(state, now)
    if terminal is not None:
        return terminal

    if delivery_mode == DeliveryMode.INLINE:
        return _consume(state, actor, now, remarks="Item accessed")
    return Decision(Outcome.GRANTED, state, state, "Access granted", release=True)


def confirm_retrieval(state, actor, now):
    """Follow-on retrieval of an indirect item.

    The returned GRANTED decision must only be persisted once the content
    has actually been fetched.
    """
    if state.status != S.APPROVED:
        return _not_approved(state)

    terminal = _lazy_terminal(state, now)
    if terminal is not None:
        return terminal

    return _consume(state, actor, now, remarks="File accessed")


def approve(state, actor, now, count=None, valid_until=None, key_material=None):
    if state.status != S.PENDING:
        raise InvalidTransitionError(
            f"Only pending consents can be approved (current: {state.status.value})",
            current_status=state.status,
        )

    if count is None:
        count = 1
    if isinstance(count, bool) or not isinstance(count, int) or count <= 0:
        raise InvalidArgumentError("count must be a positive integer")
    if valid_until is not None and valid_until <= now:
        raise InvalidArgumentError("validUntil must be in the future")
    if key_material is not None and not isinstance(key_material, str):
        raise InvalidArgumentError("encrypted_key_for_seeker must be a string")

    new_state = replace(
        state,
        status=S.APPROVED,
        access_count=count,
        valid_until=valid_until or state.valid_until,
        released_key_material=key_material or state.released_key_material,
    )
    validity = valid_until.isoformat() if valid_until else "N/A"
    audit = _transition(
        state, A.APPROVE, new_state, actor, now,
        remarks="Action: approve", extra=f"Count: {count}, Validity: {validity}",
    )
    return Decision(Outcome.GRANTED, state, new_state, "Consent approved", audit=audit)


def reject(state, actor, now):
    if state.status != S.PENDING:
        raise InvalidTransitionError(
            f"Only pending consents can be rejected (current: {state.status.value})",
            current_status=state.status,
        )
    new_state = replace(state, status=S.REJECTED)
    audit = _transition(state, A.REJECT, new_state, actor, now, remarks="Action: reject")
    return Decision(Outcome.DENIED, state, new_state, "Consent rejected", audit=audit)


def revoke(state, actor, now):
    if state.status != S.APPROVED:
        raise InvalidTransitionError(
            f"Only approved consents can be revoked (current: {state.status.value})",
            current_status=state.status,
        )
    new_state = replace(state, status=S.REVOKED)
    audit = _transition(state, A.REVOKE, new_state, actor, now, remarks="Action: revoke")
    return Decision(Outcome.DENIED, state, new_state, "Consent revoked", audit=audit)


def re_request(state, actor, now):
    if state.status not in REREQUESTABLE_STATUSES:
        raise InvalidTransitionError(
            f"No valid consent to re-request (current: {state.status.value})",
            current_status=state.status,
        )
    new_state = ConsentState(
        status=S.PENDING,
        access_count=1,
        valid_until=UNBOUNDED_VALIDITY,
        released_key_material=None,
    )
    audit = _transition(state, A.REQUEST, new_state, actor, now, remarks="Re-requested access")
    return Decision(Outcome.PENDING, state, new_state, "Access re-requested", audit=audit)


OWNER_DECISIONS = {
    "approve": approve,
    "reject": reject,
    "revoke": revoke,
}
