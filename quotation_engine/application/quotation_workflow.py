from __future__ import annotations

import logging
from typing import Any, Dict

from quotation_engine.core.event_bus import QuotationStatusChanged
from quotation_engine.domain.contracts import Principal
from quotation_engine.errors import ConcurrentUpdateError, ForbiddenError, NotFoundError
from quotation_engine.infrastructure.repositories import QuotationRepository, StatusEventRepository
from quotation_engine.observability import observe_workflow_transition
from quotation_engine.workflow.state_machine import transition


LOGGER = logging.getLogger("quotation_engine.workflow")


def load_quotation(db, quotation_id: int, quotations: QuotationRepository | None = None) -> dict:
    quotation = (quotations or QuotationRepository()).get_by_id(db, quotation_id)
    if not quotation:
        raise NotFoundError(
            code="not_found",
            message_key="quotation_not_found",
            payload={"quotation_id": quotation_id},
        )
    return quotation


def ensure_can_view(principal: Principal, quotation: Dict[str, Any]) -> None:
    if principal.is_vendor and int(quotation["vendor_id"]) != principal.user_id:
        raise ForbiddenError(details="vendor does not own quotation")


def ensure_owner_or_admin(principal: Principal, quotation: Dict[str, Any]) -> None:
    if principal.is_admin:
        return
    if principal.is_vendor and int(quotation["vendor_id"]) == principal.user_id:
        return
    raise ForbiddenError(details="only the owning vendor or an admin may change the terms")


class QuotationTransitioner:
    """Applies a state-machine trigger to a stored quotation.

    The write is a compare-and-swap on ``row_version``; every applied change
    leaves a status_events row. Callers run this inside ``db.transaction()``
    and publish the returned event after commit.
    """

    def __init__(
        self,
        quotations: QuotationRepository | None = None,
        status_events: StatusEventRepository | None = None,
    ) -> None:
        self.quotations = quotations or QuotationRepository()
        self.status_events = status_events or StatusEventRepository()

    def apply(
        self,
        db,
        quotation: Dict[str, Any],
        trigger: str,
        *,
        actor_id: int | None,
        mark_submitted: bool = False,
        terms: Dict[str, Any] | None = None,
    ) -> QuotationStatusChanged | None:
        from_status = str(quotation["status"])
        to_status = transition(from_status, trigger)
        if from_status == to_status and not terms and not mark_submitted:
            return None

        expected_version = int(quotation["row_version"])
        if terms:
            updated = self.quotations.compare_and_set_terms(
                db,
                quotation_id=int(quotation["id"]),
                expected_row_version=expected_version,
                status=to_status,
                total_amount=terms["total_amount"],
                line_items=terms["line_items"],
                digital_signature=terms.get("digital_signature"),
            )
        else:
            updated = self.quotations.compare_and_set_status(
                db,
                quotation_id=int(quotation["id"]),
                expected_row_version=expected_version,
                status=to_status,
                mark_submitted=mark_submitted,
            )
        if not updated:
            raise ConcurrentUpdateError(
                details=f"quotation {quotation['id']} changed since row_version {expected_version}",
                payload={"quotation_id": int(quotation["id"])},
            )

        self.status_events.record(
            db,
            entity="quotation",
            entity_id=int(quotation["id"]),
            from_status=from_status,
            to_status=to_status,
            reason=trigger,
            actor_user_id=actor_id,
        )
        quotation["status"] = to_status
        quotation["row_version"] = expected_version + 1
        if terms:
            quotation.update(terms)

        observe_workflow_transition("quotation", from_status, to_status)
        LOGGER.info(
            "quotation_status_changed",
            extra={
                "quotation_id": int(quotation["id"]),
                "from_status": from_status,
                "to_status": to_status,
                "trigger": trigger,
                "actor_id": actor_id,
            },
        )
        if from_status == to_status:
            return None
        return QuotationStatusChanged(
            quotation_id=int(quotation["id"]),
            quote_number=str(quotation["quote_number"]),
            vendor_id=int(quotation["vendor_id"]),
            from_status=from_status,
            to_status=to_status,
            reason=trigger,
        )
