from __future__ import annotations

import hashlib
import hmac
import logging
from typing import Any, Dict, List

from quotation_engine.core.event_bus import ApprovalDecided, ApprovalsAssigned, DomainEvent, EventBus, get_event_bus
from quotation_engine.domain.contracts import ApprovalDecisionInput, ListFilters, Principal
from quotation_engine.errors import (
    AlreadyDecidedError,
    ForbiddenError,
    InvalidTransitionError,
    NoApproversAvailableError,
    NotFoundError,
    ValidationError,
)
from quotation_engine.application.quotation_workflow import (
    QuotationTransitioner,
    ensure_can_view,
    load_quotation,
)
from quotation_engine.infrastructure.repositories import (
    ApprovalRepository,
    StatusEventRepository,
    UserDirectoryRepository,
)
from quotation_engine.infrastructure.repositories.base import utc_now_iso
from quotation_engine.observability import observe_workflow_transition
from quotation_engine.policies import require_roles
from quotation_engine.workflow.state_machine import (
    ALL_APPROVED,
    APPROVAL_APPROVED,
    APPROVAL_PENDING,
    APPROVAL_REJECTED,
    APPROVAL_REJECTED_TRIGGER,
    APPROVAL_STATUSES,
    APPROVERS_ASSIGNED,
    PARTIALLY_APPROVED,
    SUBMITTED,
)


LOGGER = logging.getLogger("quotation_engine.approvals")

DEFAULT_FAN_OUT = 2

# A rejection vetoes the quotation; sibling records keep their pending status.
REJECTION_CANCELS_PENDING_SIBLINGS = False

DECISIONS = {"approve": APPROVAL_APPROVED, "reject": APPROVAL_REJECTED}


def decision_digest(quotation_id: int, approver_id: int, decision: str, decided_at: str) -> str:
    raw = f"{int(quotation_id)}-{int(approver_id)}-{decision}-{decided_at}"
    return hashlib.sha256(raw.encode("utf-8")).hexdigest()


def verify_decision_digest(record: Dict[str, Any]) -> bool:
    stored = str(record.get("decision_digest") or "")
    status = str(record.get("status") or "")
    if not stored or status not in {APPROVAL_APPROVED, APPROVAL_REJECTED} or not record.get("decided_at"):
        return False
    expected = decision_digest(
        int(record["quotation_id"]),
        int(record["approver_id"]),
        status,
        str(record["decided_at"]),
    )
    return hmac.compare_digest(expected, stored)


def aggregate_trigger(records: List[Dict[str, Any]]) -> str:
    """Unanimous approval approves; one rejection vetoes; anything else stays in review."""
    statuses = [str(record["status"]) for record in records]
    if any(status == APPROVAL_REJECTED for status in statuses):
        return APPROVAL_REJECTED_TRIGGER
    if statuses and all(status == APPROVAL_APPROVED for status in statuses):
        return ALL_APPROVED
    return PARTIALLY_APPROVED


class ApprovalService:
    def __init__(
        self,
        approvals: ApprovalRepository | None = None,
        users: UserDirectoryRepository | None = None,
        status_events: StatusEventRepository | None = None,
        transitioner: QuotationTransitioner | None = None,
        event_bus: EventBus | None = None,
        *,
        fan_out: int = DEFAULT_FAN_OUT,
        enforce_level_order: bool = False,
        rejection_cancels_pending_siblings: bool = REJECTION_CANCELS_PENDING_SIBLINGS,
    ) -> None:
        self.approvals = approvals or ApprovalRepository()
        self.users = users or UserDirectoryRepository()
        self.status_events = status_events or StatusEventRepository()
        self.transitioner = transitioner or QuotationTransitioner(status_events=self.status_events)
        self.event_bus = event_bus
        self.fan_out = max(1, int(fan_out or DEFAULT_FAN_OUT))
        self.enforce_level_order = bool(enforce_level_order)
        self.rejection_cancels_pending_siblings = bool(rejection_cancels_pending_siblings)

    def _bus(self) -> EventBus:
        return self.event_bus or get_event_bus()

    def _publish(self, events: List[DomainEvent | None]) -> None:
        self._bus().publish_all(events)

    # Fan-out

    def assign_in_transaction(self, db, quotation: Dict[str, Any], *, actor_id: int | None) -> tuple[List[dict], List[DomainEvent]]:
        """Create the pending records for a submitted quotation.

        Existing records are returned untouched, so a resubmission after
        negotiation keeps the decisions already taken.
        """
        existing = self.approvals.list_for_quotation(db, int(quotation["id"]))
        if existing:
            return existing, []

        self.transitioner.apply(db, quotation, APPROVERS_ASSIGNED, actor_id=actor_id)
        approvers = self.users.list_eligible_approvers(db, limit=self.fan_out)
        records = [
            self.approvals.create(
                db,
                quotation_id=int(quotation["id"]),
                approver_id=int(approver["id"]),
                level=level,
            )
            for level, approver in enumerate(approvers, start=1)
        ]
        if not records:
            LOGGER.warning("approval_fan_out_empty", extra={"quotation_id": int(quotation["id"])})
            return [], []

        LOGGER.info(
            "approval_fan_out_created",
            extra={
                "quotation_id": int(quotation["id"]),
                "approver_ids": [record["approver_id"] for record in records],
            },
        )
        return records, [
            ApprovalsAssigned(
                quotation_id=int(quotation["id"]),
                quote_number=str(quotation["quote_number"]),
                approver_ids=tuple(int(record["approver_id"]) for record in records),
            )
        ]

    def on_submit(self, db, quotation_id: int, *, actor_id: int | None = None) -> List[dict]:
        with db.transaction():
            quotation = load_quotation(db, quotation_id)
            if quotation["status"] != SUBMITTED:
                raise InvalidTransitionError(
                    details=f"approvals are created for submitted quotations, got '{quotation['status']}'",
                    payload={"status": quotation["status"]},
                )
            records, events = self.assign_in_transaction(db, quotation, actor_id=actor_id)
        self._publish(events)
        if not records:
            raise NoApproversAvailableError(payload={"quotation_id": quotation_id, "status": SUBMITTED})
        return records

    def assign_approvers(self, db, principal: Principal, quotation_id: int) -> Dict[str, Any]:
        require_roles("admin", principal=principal)
        records = self.on_submit(db, quotation_id, actor_id=principal.user_id)
        return {"quotation_id": quotation_id, "approvals": records}

    # Decisions

    def decide(self, db, principal: Principal, decision_input: ApprovalDecisionInput) -> Dict[str, Any]:
        require_roles("approver", principal=principal)
        decision = DECISIONS.get(str(decision_input.decision or "").strip().lower())
        if decision is None:
            raise ValidationError(code="action_invalid", message_key="action_invalid")
        comments = str(decision_input.comments or "").strip() or None

        events: List[DomainEvent | None] = []
        with db.transaction():
            record = self.approvals.get_by_id(db, decision_input.approval_id)
            if not record:
                raise NotFoundError(message_key="approval_not_found", payload={"approval_id": decision_input.approval_id})
            if int(record["approver_id"]) != principal.user_id:
                raise ForbiddenError(details="approval assigned to another approver")
            if record["status"] != APPROVAL_PENDING:
                raise AlreadyDecidedError(payload={"approval_id": int(record["id"]), "status": record["status"]})
            if decision == APPROVAL_REJECTED and not comments:
                raise ValidationError(code="rejection_reason_required", message_key="rejection_reason_required")

            quotation = load_quotation(db, int(record["quotation_id"]))
            if decision == APPROVAL_APPROVED and self.enforce_level_order:
                self._ensure_lower_levels_approved(db, record)

            decided_at = utc_now_iso()
            digest = decision_digest(int(record["quotation_id"]), principal.user_id, decision, decided_at)
            if not self.approvals.decide(
                db,
                approval_id=int(record["id"]),
                status=decision,
                comments=comments,
                decided_at=decided_at,
                decision_digest=digest,
            ):
                raise AlreadyDecidedError(payload={"approval_id": int(record["id"])})
            self.status_events.record(
                db,
                entity="approval",
                entity_id=int(record["id"]),
                from_status=APPROVAL_PENDING,
                to_status=decision,
                reason=f"approval_{decision}",
                actor_user_id=principal.user_id,
            )

            if decision == APPROVAL_REJECTED and self.rejection_cancels_pending_siblings:
                self.approvals.reject_pending_siblings(
                    db,
                    quotation_id=int(record["quotation_id"]),
                    exclude_id=int(record["id"]),
                    reason="sibling_rejected",
                )

            records = self.approvals.list_for_quotation(db, int(record["quotation_id"]))
            trigger = aggregate_trigger(records)
            events.append(self.transitioner.apply(db, quotation, trigger, actor_id=principal.user_id))
            events.insert(
                0,
                ApprovalDecided(
                    quotation_id=int(record["quotation_id"]),
                    approval_id=int(record["id"]),
                    approver_id=principal.user_id,
                    decision=decision,
                    quotation_status=str(quotation["status"]),
                ),
            )

        observe_workflow_transition("approval", APPROVAL_PENDING, decision)
        LOGGER.info(
            "approval_decided",
            extra={
                "approval_id": int(record["id"]),
                "quotation_id": int(record["quotation_id"]),
                "decision": decision,
                "quotation_status": quotation["status"],
            },
        )
        self._publish(events)
        return {
            "approval_id": int(record["id"]),
            "quotation_id": int(record["quotation_id"]),
            "status": decision,
            "quotation_status": quotation["status"],
            "decision_digest": digest,
            "decided_at": decided_at,
        }

    def _ensure_lower_levels_approved(self, db, record: Dict[str, Any]) -> None:
        for sibling in self.approvals.list_for_quotation(db, int(record["quotation_id"])):
            if int(sibling["level"]) < int(record["level"]) and sibling["status"] != APPROVAL_APPROVED:
                raise InvalidTransitionError(
                    details=f"level {sibling['level']} must approve before level {record['level']}",
                    payload={"blocking_level": int(sibling["level"])},
                )

    # Reads

    @staticmethod
    def _with_digest_check(record: Dict[str, Any]) -> Dict[str, Any]:
        payload = dict(record)
        payload["digest_valid"] = verify_decision_digest(record) if record.get("decision_digest") else None
        return payload

    def list_pending(self, db, principal: Principal) -> List[dict]:
        require_roles("approver", principal=principal)
        return self.approvals.list_for_approver(db, approver_id=principal.user_id, status=APPROVAL_PENDING)

    def list_mine(self, db, principal: Principal, status: str | None = None) -> List[dict]:
        require_roles("approver", principal=principal)
        if status and status not in APPROVAL_STATUSES:
            raise ValidationError(code="status_invalid", message_key="status_invalid")
        return self.approvals.list_for_approver(db, approver_id=principal.user_id, status=status or None)

    def list_all(self, db, principal: Principal, filters: ListFilters) -> Dict[str, Any]:
        require_roles("admin", principal=principal)
        if filters.status and filters.status not in APPROVAL_STATUSES:
            raise ValidationError(code="status_invalid", message_key="status_invalid")
        items, total = self.approvals.list_all(db, status=filters.status, limit=filters.limit, offset=filters.offset)
        return {"items": items, "page": filters.page, "limit": filters.limit, "total": total}

    def get(self, db, principal: Principal, approval_id: int) -> Dict[str, Any]:
        require_roles("approver", "admin", principal=principal)
        record = self.approvals.get_by_id(db, approval_id)
        if not record:
            raise NotFoundError(message_key="approval_not_found", payload={"approval_id": approval_id})
        if principal.is_approver and int(record["approver_id"]) != principal.user_id:
            raise ForbiddenError(details="approval assigned to another approver")
        return self._with_digest_check(record)

    def history(self, db, principal: Principal, quotation_id: int) -> List[dict]:
        quotation = load_quotation(db, quotation_id)
        ensure_can_view(principal, quotation)
        return [self._with_digest_check(record) for record in self.approvals.list_for_quotation(db, quotation_id)]
