from __future__ import annotations

from typing import Dict, FrozenSet, List

from quotation_engine.errors import InvalidTransitionError
from quotation_engine.ui_strings import status_label


DRAFT = "draft"
SUBMITTED = "submitted"
UNDER_REVIEW = "under_review"
APPROVED = "approved"
REJECTED = "rejected"
REVISION_REQUESTED = "revision_requested"
NEGOTIATING = "negotiating"

QUOTATION_STATUSES: tuple[str, ...] = (
    DRAFT,
    SUBMITTED,
    UNDER_REVIEW,
    APPROVED,
    REJECTED,
    REVISION_REQUESTED,
    NEGOTIATING,
)
TERMINAL_STATUSES: FrozenSet[str] = frozenset({APPROVED, REJECTED})
NON_TERMINAL_STATUSES: FrozenSet[str] = frozenset(QUOTATION_STATUSES) - TERMINAL_STATUSES

APPROVAL_PENDING = "pending"
APPROVAL_APPROVED = "approved"
APPROVAL_REJECTED = "rejected"
APPROVAL_STATUSES: tuple[str, ...] = (APPROVAL_PENDING, APPROVAL_APPROVED, APPROVAL_REJECTED)

# Triggers
VENDOR_SUBMITS = "vendor_submits"
APPROVERS_ASSIGNED = "approvers_assigned"
ALL_APPROVED = "all_approved"
PARTIALLY_APPROVED = "partially_approved"
APPROVAL_REJECTED_TRIGGER = "approval_rejected"
REVISION_REQUESTED_TRIGGER = "revision_requested"
REVISION_CREATED = "revision_created"


TRANSITIONS: Dict[str, Dict[str, object]] = {
    VENDOR_SUBMITS: {
        "from": frozenset({DRAFT, REVISION_REQUESTED, NEGOTIATING}),
        "to": SUBMITTED,
    },
    APPROVERS_ASSIGNED: {
        "from": frozenset({SUBMITTED}),
        "to": SUBMITTED,
    },
    ALL_APPROVED: {
        "from": frozenset({SUBMITTED, UNDER_REVIEW}),
        "to": APPROVED,
    },
    PARTIALLY_APPROVED: {
        "from": frozenset({SUBMITTED, UNDER_REVIEW}),
        "to": UNDER_REVIEW,
    },
    APPROVAL_REJECTED_TRIGGER: {
        "from": NON_TERMINAL_STATUSES,
        "to": REJECTED,
    },
    REVISION_REQUESTED_TRIGGER: {
        "from": NON_TERMINAL_STATUSES,
        "to": REVISION_REQUESTED,
    },
    REVISION_CREATED: {
        "from": NON_TERMINAL_STATUSES,
        "to": NEGOTIATING,
    },
}


TRIGGER_LABELS: Dict[str, str] = {
    VENDOR_SUBMITS: "Enviar para aprovacao",
    APPROVERS_ASSIGNED: "Atribuir aprovadores",
    ALL_APPROVED: "Aprovacao unanime",
    PARTIALLY_APPROVED: "Aprovacao parcial",
    APPROVAL_REJECTED_TRIGGER: "Rejeitar",
    REVISION_REQUESTED_TRIGGER: "Solicitar revisao",
    REVISION_CREATED: "Publicar nova versao",
}

# Triggers a client can start directly; the rest are derived from approval outcomes.
USER_TRIGGERS: tuple[str, ...] = (VENDOR_SUBMITS, REVISION_REQUESTED_TRIGGER, REVISION_CREATED)


def is_terminal(status: str | None) -> bool:
    return str(status or "") in TERMINAL_STATUSES


def can_transition(current: str | None, trigger: str) -> bool:
    rule = TRANSITIONS.get(trigger)
    if rule is None:
        return False
    return str(current or "") in rule["from"]


def transition(current: str | None, trigger: str) -> str:
    """Return the status reached from ``current`` through ``trigger``.

    Pure function: raises InvalidTransitionError for unknown triggers or
    source states outside the trigger's edge set, never touches storage.
    """
    rule = TRANSITIONS.get(trigger)
    if rule is None or str(current or "") not in rule["from"]:
        raise InvalidTransitionError(
            details=f"trigger '{trigger}' not allowed from status '{current}'",
            payload={"status": current, "trigger": trigger},
        )
    return str(rule["to"])


def allowed_triggers(status: str | None) -> List[str]:
    return [trigger for trigger in TRANSITIONS if can_transition(status, trigger)]


def trigger_label(trigger: str, fallback: str | None = None) -> str:
    label = TRIGGER_LABELS.get(trigger)
    if label:
        return label
    if fallback is not None:
        return fallback
    return trigger


def flow_meta(status: str | None) -> Dict[str, object]:
    return {
        "status": status,
        "status_label": status_label("quotation", status),
        "terminal": is_terminal(status),
        "allowed_actions": [trigger for trigger in USER_TRIGGERS if can_transition(status, trigger)],
    }


def frontend_bundle() -> Dict[str, object]:
    return {
        "statuses": list(QUOTATION_STATUSES),
        "terminal_statuses": sorted(TERMINAL_STATUSES),
        "transitions": {
            trigger: {"from": sorted(rule["from"]), "to": rule["to"], "label": trigger_label(trigger)}
            for trigger, rule in TRANSITIONS.items()
        },
        "user_triggers": list(USER_TRIGGERS),
    }
