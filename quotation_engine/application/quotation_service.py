from __future__ import annotations

import logging
import time
import uuid
from typing import Any, Dict, List

from quotation_engine.application.approval_service import ApprovalService
from quotation_engine.application.quotation_workflow import (
    QuotationTransitioner,
    ensure_can_view,
    load_quotation,
)
from quotation_engine.core.event_bus import DomainEvent, EventBus, QuotationSubmitted, get_event_bus
from quotation_engine.domain.contracts import ListFilters, Principal, QuotationCreateInput, ServiceOutput
from quotation_engine.envelope import codec
from quotation_engine.envelope import signature as signature_service
from quotation_engine.errors import ForbiddenError, NoApproversAvailableError, ValidationError
from quotation_engine.infrastructure.repositories import QuotationRepository, StatusEventRepository
from quotation_engine.observability import observe_signature_verification
from quotation_engine.policies import require_roles
from quotation_engine.ui_strings import success_message
from quotation_engine.workflow.pricing import compute_total, format_amount, normalize_line_items
from quotation_engine.workflow.state_machine import (
    DRAFT,
    QUOTATION_STATUSES,
    VENDOR_SUBMITS,
    flow_meta,
)


LOGGER = logging.getLogger("quotation_engine.quotations")

_HIDDEN_FIELDS = ("encrypted_data", "encryption_key_hash")


def generate_quote_number() -> str:
    return f"QT-{int(time.time() * 1000)}-{uuid.uuid4().hex[:8]}"


def _public_view(quotation: Dict[str, Any]) -> Dict[str, Any]:
    payload = {key: value for key, value in quotation.items() if key not in _HIDDEN_FIELDS}
    payload["has_sensitive_payload"] = bool(quotation.get("encrypted_data"))
    return payload


class QuotationService:
    def __init__(
        self,
        quotations: QuotationRepository | None = None,
        status_events: StatusEventRepository | None = None,
        approval_service: ApprovalService | None = None,
        transitioner: QuotationTransitioner | None = None,
        event_bus: EventBus | None = None,
        *,
        default_currency: str = "USD",
    ) -> None:
        self.quotations = quotations or QuotationRepository()
        self.status_events = status_events or StatusEventRepository()
        self.transitioner = transitioner or QuotationTransitioner(self.quotations, self.status_events)
        self.approval_service = approval_service or ApprovalService(transitioner=self.transitioner)
        self.event_bus = event_bus
        self.default_currency = (default_currency or "USD").strip().upper()

    def _publish(self, events: List[DomainEvent | None]) -> None:
        (self.event_bus or get_event_bus()).publish_all(events)

    def create_quotation(self, db, principal: Principal, create_input: QuotationCreateInput) -> ServiceOutput:
        require_roles("vendor", principal=principal)
        try:
            rfq_id = int(create_input.rfq_id)
        except (TypeError, ValueError):
            rfq_id = 0
        if rfq_id <= 0:
            raise ValidationError(code="rfq_id_required", message_key="rfq_id_required")

        line_items = normalize_line_items(create_input.line_items)
        total = compute_total(line_items)
        quote_number = generate_quote_number()
        currency = str(create_input.currency or "").strip().upper() or self.default_currency

        encryption_key = codec.generate_key()
        encrypted = codec.encrypt_json(
            {
                "costBreakdown": line_items,
                "profitMargin": create_input.profit_margin,
                "internalNotes": create_input.internal_notes,
            },
            encryption_key,
        )
        public_key, private_key = signature_service.generate_key_pair()
        signature = signature_service.sign(
            signature_service.canonical_data(quote_number, rfq_id, total, line_items),
            private_key,
        )

        with db.transaction():
            quotation_id = self.quotations.insert(
                db,
                fields={
                    "rfq_id": rfq_id,
                    "vendor_id": principal.user_id,
                    "quote_number": quote_number,
                    "total_amount": format_amount(total),
                    "currency": currency,
                    "line_items": codec.encode_line_items(line_items),
                    "terms_conditions": create_input.terms_conditions,
                    "encrypted_data": encrypted,
                    "encryption_key_hash": codec.key_digest(encryption_key),
                    "digital_signature": signature,
                    "public_key": public_key,
                    "status": DRAFT,
                },
            )
            self.status_events.record(
                db,
                entity="quotation",
                entity_id=quotation_id,
                from_status=None,
                to_status=DRAFT,
                reason="quotation_created",
                actor_user_id=principal.user_id,
            )

        LOGGER.info(
            "quotation_created",
            extra={"quotation_id": quotation_id, "quote_number": quote_number, "vendor_id": principal.user_id},
        )
        return ServiceOutput(
            payload={
                "message": success_message("quotation_created"),
                "quotation": {
                    "id": quotation_id,
                    "quote_number": quote_number,
                    "rfq_id": rfq_id,
                    "vendor_id": principal.user_id,
                    "total_amount": format_amount(total),
                    "currency": currency,
                    "status": DRAFT,
                    "line_items": line_items,
                    "public_key": public_key,
                    "digital_signature": signature,
                },
                "encryption_key": encryption_key,
                "private_key": private_key,
            },
            status_code=201,
        )

    def get_quotation(
        self,
        db,
        principal: Principal,
        quotation_id: int,
        *,
        encryption_key: str | None = None,
    ) -> Dict[str, Any]:
        quotation = load_quotation(db, quotation_id, self.quotations)
        ensure_can_view(principal, quotation)

        payload = _public_view(quotation)
        payload["line_items"] = codec.decode_line_items(quotation["line_items"])
        payload["signature_valid"] = signature_service.verify_quotation(quotation)
        payload["flow"] = flow_meta(quotation["status"])
        if encryption_key:
            payload["sensitive_data"] = codec.decrypt_with_digest_check(
                quotation.get("encrypted_data") or "",
                encryption_key,
                quotation.get("encryption_key_hash"),
            )
        return payload

    def list_quotations(self, db, principal: Principal, filters: ListFilters) -> Dict[str, Any]:
        if filters.status and filters.status not in QUOTATION_STATUSES:
            raise ValidationError(code="status_invalid", message_key="status_invalid")
        vendor_id = principal.user_id if principal.is_vendor else None
        items, total = self.quotations.list(
            db,
            vendor_id=vendor_id,
            rfq_id=filters.rfq_id,
            status=filters.status,
            limit=filters.limit,
            offset=filters.offset,
        )
        return {"items": items, "page": filters.page, "limit": filters.limit, "total": total}

    def submit_quotation(self, db, principal: Principal, quotation_id: int) -> Dict[str, Any]:
        require_roles("vendor", principal=principal)
        events: List[DomainEvent | None] = []
        with db.transaction():
            quotation = load_quotation(db, quotation_id, self.quotations)
            if int(quotation["vendor_id"]) != principal.user_id:
                raise ForbiddenError(details="only the owning vendor may submit")
            events.append(
                self.transitioner.apply(
                    db,
                    quotation,
                    VENDOR_SUBMITS,
                    actor_id=principal.user_id,
                    mark_submitted=True,
                )
            )
            events.append(
                QuotationSubmitted(
                    quotation_id=int(quotation["id"]),
                    quote_number=str(quotation["quote_number"]),
                    vendor_id=int(quotation["vendor_id"]),
                )
            )
            records, assigned_events = self.approval_service.assign_in_transaction(
                db, quotation, actor_id=principal.user_id
            )
            events.extend(assigned_events)

        self._publish(events)
        if not records:
            raise NoApproversAvailableError(payload={"quotation_id": quotation_id, "status": quotation["status"]})
        return {
            "message": success_message("quotation_submitted"),
            "quotation_id": int(quotation["id"]),
            "status": quotation["status"],
            "approvals": records,
        }

    def verify_signature(self, db, principal: Principal, quotation_id: int) -> Dict[str, Any]:
        quotation = load_quotation(db, quotation_id, self.quotations)
        ensure_can_view(principal, quotation)
        is_valid = signature_service.verify_quotation(quotation)
        observe_signature_verification(is_valid)
        LOGGER.info(
            "signature_verified",
            extra={"quotation_id": quotation_id, "signature_valid": is_valid},
        )
        return {
            "quotation_id": quotation_id,
            "quote_number": quotation["quote_number"],
            "is_valid": is_valid,
            "message": success_message("signature_valid" if is_valid else "signature_invalid"),
        }

    def status_history(self, db, principal: Principal, quotation_id: int) -> List[Dict[str, Any]]:
        quotation = load_quotation(db, quotation_id, self.quotations)
        ensure_can_view(principal, quotation)
        return self.status_events.list_for(db, entity="quotation", entity_id=quotation_id)

    def status_counts(self, db) -> Dict[str, int]:
        return self.quotations.status_counts(db)
