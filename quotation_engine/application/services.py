from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping

from flask import current_app

from quotation_engine.application.approval_service import REJECTION_CANCELS_PENDING_SIBLINGS, ApprovalService
from quotation_engine.application.negotiation_service import NegotiationService
from quotation_engine.application.quotation_service import QuotationService
from quotation_engine.application.quotation_workflow import QuotationTransitioner
from quotation_engine.core.event_bus import EventBus


EXTENSION_KEY = "quotation_engine.services"


@dataclass(frozen=True)
class WorkflowServices:
    quotations: QuotationService
    approvals: ApprovalService
    negotiation: NegotiationService


def build_services(config: Mapping[str, Any], event_bus: EventBus | None = None) -> WorkflowServices:
    transitioner = QuotationTransitioner()
    approvals = ApprovalService(
        transitioner=transitioner,
        event_bus=event_bus,
        fan_out=int(config.get("APPROVAL_FAN_OUT", 2) or 2),
        enforce_level_order=bool(config.get("APPROVAL_ENFORCE_LEVEL_ORDER", False)),
        rejection_cancels_pending_siblings=bool(
            config.get("REJECTION_CANCELS_PENDING_SIBLINGS", REJECTION_CANCELS_PENDING_SIBLINGS)
        ),
    )
    quotations = QuotationService(
        approval_service=approvals,
        transitioner=transitioner,
        event_bus=event_bus,
        default_currency=str(config.get("DEFAULT_CURRENCY") or "USD"),
    )
    negotiation = NegotiationService(transitioner=transitioner, event_bus=event_bus)
    return WorkflowServices(quotations=quotations, approvals=approvals, negotiation=negotiation)


def get_services() -> WorkflowServices:
    services = current_app.extensions.get(EXTENSION_KEY)
    if services is None:
        services = build_services(current_app.config)
        current_app.extensions[EXTENSION_KEY] = services
    return services
