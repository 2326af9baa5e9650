from __future__ import annotations

import logging
from typing import Any, Dict, List

from quotation_engine.application.quotation_workflow import (
    QuotationTransitioner,
    ensure_owner_or_admin,
    load_quotation,
)
from quotation_engine.core.event_bus import (
    CommentAdded,
    DomainEvent,
    EventBus,
    RevisionCreated,
    RevisionRequested,
    get_event_bus,
)
from quotation_engine.domain.contracts import (
    CommentCreateInput,
    Principal,
    RevisionCreateInput,
    RevisionRequestInput,
)
from quotation_engine.envelope import signature as signature_service
from quotation_engine.envelope.codec import decode_line_items, encode_line_items
from quotation_engine.errors import EmptyCommentError, ForbiddenError, NotFoundError, ValidationError
from quotation_engine.infrastructure.repositories import CommentRepository, RevisionRepository
from quotation_engine.policies import require_roles
from quotation_engine.workflow.pricing import (
    compute_total,
    diff_line_items,
    diff_terms,
    format_amount,
    normalize_line_items,
    percentage_change,
    quantize_amount,
)
from quotation_engine.workflow.state_machine import REVISION_CREATED, REVISION_REQUESTED_TRIGGER, transition


LOGGER = logging.getLogger("quotation_engine.negotiation")

COMMENT_KINDS = ("general", "revision_request", "counter_offer", "clarification")
REVISION_REQUEST_KIND = "revision_request"


def revision_request_text(reason: str, suggested_changes: str | None) -> str:
    return f"{reason}\n\nSuggested changes: {suggested_changes or 'N/A'}"


def compare_revisions(old_revision: Dict[str, Any], new_revision: Dict[str, Any]) -> Dict[str, Any]:
    """Diff two stored revisions; ``percentage_change`` is None on a zero baseline."""
    old_amount = quantize_amount(old_revision["total_amount"])
    new_amount = quantize_amount(new_revision["total_amount"])
    percent = percentage_change(old_amount, new_amount)
    old_items = decode_line_items(old_revision["line_items"])
    new_items = decode_line_items(new_revision["line_items"])
    return {
        "version1": {**_revision_view(old_revision), "line_items": old_items},
        "version2": {**_revision_view(new_revision), "line_items": new_items},
        "amount_change": format_amount(new_amount - old_amount),
        "percentage_change": None if percent is None else format(percent, "f"),
        "line_item_changes": diff_line_items(old_items, new_items),
        "terms_changes": diff_terms(old_revision, new_revision),
    }


def _revision_view(revision: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "id": revision.get("id"),
        "version": int(revision["version"]),
        "total_amount": format_amount(revision["total_amount"]),
        "currency": revision.get("currency"),
        "delivery_time": revision.get("delivery_time"),
        "validity_period": revision.get("validity_period"),
        "notes": revision.get("notes"),
        "changed_by": revision.get("changed_by"),
        "change_reason": revision.get("change_reason"),
        "created_at": revision.get("created_at"),
    }


class NegotiationService:
    def __init__(
        self,
        revisions: RevisionRepository | None = None,
        comments: CommentRepository | None = None,
        transitioner: QuotationTransitioner | None = None,
        event_bus: EventBus | None = None,
    ) -> None:
        self.revisions = revisions or RevisionRepository()
        self.comments = comments or CommentRepository()
        self.transitioner = transitioner or QuotationTransitioner()
        self.event_bus = event_bus

    def _publish(self, events: List[DomainEvent | None]) -> None:
        (self.event_bus or get_event_bus()).publish_all(events)

    def create_revision(self, db, principal: Principal, revision_input: RevisionCreateInput) -> Dict[str, Any]:
        line_items = normalize_line_items(revision_input.line_items)
        total = compute_total(line_items)
        encoded = encode_line_items(line_items)

        events: List[DomainEvent | None] = []
        with db.transaction():
            quotation = load_quotation(db, revision_input.quotation_id)
            ensure_owner_or_admin(principal, quotation)
            transition(quotation["status"], REVISION_CREATED)

            terms: Dict[str, Any] = {"total_amount": format_amount(total), "line_items": encoded}
            if revision_input.signature:
                data = signature_service.canonical_data(
                    quotation["quote_number"], int(quotation["rfq_id"]), total, line_items
                )
                if not signature_service.verify(data, revision_input.signature, quotation["public_key"]):
                    raise ValidationError(code="signature_invalid", message_key="signature_invalid")
                terms["digital_signature"] = revision_input.signature

            version = self.revisions.next_version(db, int(quotation["id"]))
            revision = self.revisions.insert(
                db,
                fields={
                    "quotation_id": int(quotation["id"]),
                    "version": version,
                    "total_amount": format_amount(total),
                    "currency": quotation["currency"],
                    "line_items": encoded,
                    "delivery_time": revision_input.delivery_time,
                    "validity_period": revision_input.validity_period,
                    "notes": revision_input.notes,
                    "changed_by": principal.user_id,
                    "change_reason": revision_input.change_reason,
                },
            )
            events.append(
                self.transitioner.apply(db, quotation, REVISION_CREATED, actor_id=principal.user_id, terms=terms)
            )
            events.insert(
                0,
                RevisionCreated(
                    quotation_id=int(quotation["id"]),
                    version=version,
                    changed_by=principal.user_id,
                    total_amount=format_amount(total),
                ),
            )

        LOGGER.info(
            "revision_created",
            extra={"quotation_id": int(quotation["id"]), "version": version, "total_amount": format_amount(total)},
        )
        self._publish(events)
        return {
            "revision": {**_revision_view(revision), "line_items": line_items},
            "quotation_status": quotation["status"],
            "resigned": bool(revision_input.signature),
        }

    def list_revisions(self, db, principal: Principal, quotation_id: int) -> List[Dict[str, Any]]:
        quotation = load_quotation(db, quotation_id)
        if principal.is_vendor and int(quotation["vendor_id"]) != principal.user_id:
            raise ForbiddenError(details="vendor does not own quotation")
        return [
            {**_revision_view(revision), "line_items": decode_line_items(revision["line_items"])}
            for revision in self.revisions.list_for_quotation(db, quotation_id)
        ]

    def compare_versions(self, db, principal: Principal, quotation_id: int, version1, version2) -> Dict[str, Any]:
        try:
            v1 = int(version1)
            v2 = int(version2)
        except (TypeError, ValueError) as exc:
            raise ValidationError(code="version_required", message_key="version_required") from exc

        quotation = load_quotation(db, quotation_id)
        if principal.is_vendor and int(quotation["vendor_id"]) != principal.user_id:
            raise ForbiddenError(details="vendor does not own quotation")
        old_revision = self.revisions.get_version(db, quotation_id, v1)
        new_revision = self.revisions.get_version(db, quotation_id, v2)
        if not old_revision or not new_revision:
            raise NotFoundError(
                message_key="revision_not_found",
                payload={"version1_found": bool(old_revision), "version2_found": bool(new_revision)},
            )
        return compare_revisions(old_revision, new_revision)

    def add_comment(self, db, principal: Principal, comment_input: CommentCreateInput) -> Dict[str, Any]:
        body = str(comment_input.comment or "").strip()
        if not body:
            raise EmptyCommentError()
        comment_type = str(comment_input.comment_type or "general").strip() or "general"
        if comment_type not in COMMENT_KINDS:
            raise ValidationError(code="comment_kind_invalid", message_key="comment_kind_invalid")
        if comment_type == REVISION_REQUEST_KIND:
            require_roles("approver", "admin", principal=principal)

        events: List[DomainEvent | None] = []
        with db.transaction():
            quotation = load_quotation(db, comment_input.quotation_id)
            if principal.is_vendor and int(quotation["vendor_id"]) != principal.user_id:
                raise ForbiddenError(details="vendor does not own quotation")
            if comment_input.parent_comment_id is not None:
                parent = self.comments.get_by_id(db, int(comment_input.parent_comment_id))
                if not parent or int(parent["quotation_id"]) != int(quotation["id"]):
                    raise NotFoundError(
                        message_key="comment_not_found",
                        payload={"parent_comment_id": comment_input.parent_comment_id},
                    )

            if comment_type == REVISION_REQUEST_KIND:
                events.extend(self._request_revision_in_transaction(db, principal, quotation, body))

            comment = self.comments.insert(
                db,
                quotation_id=int(quotation["id"]),
                user_id=principal.user_id,
                comment=body,
                comment_type=comment_type,
                is_internal=bool(comment_input.is_internal),
                parent_comment_id=comment_input.parent_comment_id,
            )
            events.append(
                CommentAdded(
                    quotation_id=int(quotation["id"]),
                    comment_id=int(comment["id"]),
                    author_id=principal.user_id,
                    comment_type=comment_type,
                    is_internal=bool(comment_input.is_internal),
                )
            )

        self._publish(events)
        return {"comment": comment, "quotation_status": quotation["status"]}

    def list_comments(self, db, principal: Principal, quotation_id: int) -> List[Dict[str, Any]]:
        quotation = load_quotation(db, quotation_id)
        hide_internal = principal.is_vendor and int(quotation["vendor_id"]) != principal.user_id
        return self.comments.list_for_quotation(db, quotation_id, include_internal=not hide_internal)

    def request_revision(self, db, principal: Principal, request_input: RevisionRequestInput) -> Dict[str, Any]:
        require_roles("approver", "admin", principal=principal)
        reason = str(request_input.comment or "").strip()
        if not reason:
            raise ValidationError(code="reason_required", message_key="reason_required")
        suggested = str(request_input.suggested_changes or "").strip() or None

        events: List[DomainEvent | None] = []
        with db.transaction():
            quotation = load_quotation(db, request_input.quotation_id)
            events.extend(self._request_revision_in_transaction(db, principal, quotation, reason))
            comment = self.comments.insert(
                db,
                quotation_id=int(quotation["id"]),
                user_id=principal.user_id,
                comment=revision_request_text(reason, suggested),
                comment_type=REVISION_REQUEST_KIND,
                is_internal=False,
                parent_comment_id=None,
            )
            events.append(
                CommentAdded(
                    quotation_id=int(quotation["id"]),
                    comment_id=int(comment["id"]),
                    author_id=principal.user_id,
                    comment_type=REVISION_REQUEST_KIND,
                )
            )

        self._publish(events)
        return {"quotation_id": int(quotation["id"]), "status": quotation["status"], "comment": comment}

    def _request_revision_in_transaction(self, db, principal: Principal, quotation: Dict[str, Any], reason: str):
        status_event = self.transitioner.apply(db, quotation, REVISION_REQUESTED_TRIGGER, actor_id=principal.user_id)
        LOGGER.info(
            "revision_requested",
            extra={"quotation_id": int(quotation["id"]), "requested_by": principal.user_id},
        )
        return [
            status_event,
            RevisionRequested(
                quotation_id=int(quotation["id"]),
                vendor_id=int(quotation["vendor_id"]),
                requested_by=principal.user_id,
                reason=reason,
            ),
        ]
