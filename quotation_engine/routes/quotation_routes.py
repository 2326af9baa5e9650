from __future__ import annotations

from typing import Any, Dict

from flask import Blueprint, current_app, jsonify, request

from quotation_engine.application.services import get_services
from quotation_engine.db import get_db
from quotation_engine.domain.contracts import (
    ApprovalDecisionInput,
    CommentCreateInput,
    ListFilters,
    QuotationCreateInput,
    RevisionCreateInput,
    RevisionRequestInput,
)
from quotation_engine.errors import ValidationError
from quotation_engine.policies import current_principal
from quotation_engine.ui_strings import frontend_bundle, success_message


quotation_bp = Blueprint("quotations", __name__)


def _json_body() -> Dict[str, Any]:
    payload = request.get_json(silent=True)
    return payload if isinstance(payload, dict) else {}


def _parse_optional_int(value) -> int | None:
    if value is None or value == "":
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _parse_bool(value) -> bool:
    if isinstance(value, bool):
        return value
    return str(value or "").strip().lower() in {"1", "true", "yes", "on"}


def _optional_text(payload: Dict[str, Any], field_name: str) -> str | None:
    value = payload.get(field_name)
    if value is None:
        return None
    if isinstance(value, (dict, list)):
        raise ValidationError(
            code="validation_error",
            details=f"{field_name} must be text",
            payload={"field": field_name},
        )
    return str(value).strip() or None


def _list_filters() -> ListFilters:
    max_limit = max(1, int(current_app.config.get("LIST_PAGE_LIMIT_MAX", 100) or 100))
    page = _parse_optional_int(request.args.get("page")) or 1
    limit = _parse_optional_int(request.args.get("limit")) or 20
    rfq_id = None
    if request.args.get("rfq_id") not in (None, ""):
        rfq_id = _parse_optional_int(request.args.get("rfq_id"))
        if rfq_id is None:
            raise ValidationError(code="validation_error", details="rfq_id must be an integer")
    return ListFilters(
        status=(request.args.get("status") or "").strip() or None,
        rfq_id=rfq_id,
        page=max(1, page),
        limit=min(max(1, limit), max_limit),
    )


# Quotations


@quotation_bp.route("/api/quotations", methods=["POST"])
def quotation_create_api():
    principal = current_principal()
    payload = _json_body()
    output = get_services().quotations.create_quotation(
        get_db(),
        principal,
        QuotationCreateInput(
            rfq_id=payload.get("rfq_id"),
            line_items=payload.get("line_items"),
            currency=payload.get("currency"),
            terms_conditions=_optional_text(payload, "terms_conditions"),
            profit_margin=payload.get("profit_margin"),
            internal_notes=payload.get("internal_notes"),
        ),
    )
    return jsonify(output.payload), output.status_code


@quotation_bp.route("/api/quotations", methods=["GET"])
def quotation_list_api():
    principal = current_principal()
    return jsonify(get_services().quotations.list_quotations(get_db(), principal, _list_filters())), 200


@quotation_bp.route("/api/quotations/<int:quotation_id>", methods=["GET"])
def quotation_detail_api(quotation_id: int):
    principal = current_principal()
    encryption_key = (request.args.get("encryption_key") or request.headers.get("X-Encryption-Key") or "").strip()
    quotation = get_services().quotations.get_quotation(
        get_db(),
        principal,
        quotation_id,
        encryption_key=encryption_key or None,
    )
    return jsonify({"quotation": quotation}), 200


@quotation_bp.route("/api/quotations/<int:quotation_id>/submit", methods=["POST"])
def quotation_submit_api(quotation_id: int):
    principal = current_principal()
    return jsonify(get_services().quotations.submit_quotation(get_db(), principal, quotation_id)), 200


@quotation_bp.route("/api/quotations/<int:quotation_id>/verify-signature", methods=["POST"])
def quotation_verify_signature_api(quotation_id: int):
    principal = current_principal()
    return jsonify(get_services().quotations.verify_signature(get_db(), principal, quotation_id)), 200


@quotation_bp.route("/api/quotations/<int:quotation_id>/status-events", methods=["GET"])
def quotation_status_events_api(quotation_id: int):
    principal = current_principal()
    events = get_services().quotations.status_history(get_db(), principal, quotation_id)
    return jsonify({"quotation_id": quotation_id, "items": events}), 200


@quotation_bp.route("/api/quotations/<int:quotation_id>/approvers", methods=["POST"])
def quotation_assign_approvers_api(quotation_id: int):
    principal = current_principal()
    result = get_services().approvals.assign_approvers(get_db(), principal, quotation_id)
    result["message"] = success_message("approvers_assigned")
    return jsonify(result), 200


# Approvals


@quotation_bp.route("/api/approvals/pending", methods=["GET"])
def approval_pending_api():
    principal = current_principal()
    return jsonify({"items": get_services().approvals.list_pending(get_db(), principal)}), 200


@quotation_bp.route("/api/approvals/mine", methods=["GET"])
def approval_mine_api():
    principal = current_principal()
    status = (request.args.get("status") or "").strip() or None
    return jsonify({"items": get_services().approvals.list_mine(get_db(), principal, status)}), 200


@quotation_bp.route("/api/approvals/all", methods=["GET"])
def approval_all_api():
    principal = current_principal()
    return jsonify(get_services().approvals.list_all(get_db(), principal, _list_filters())), 200


@quotation_bp.route("/api/approvals/history/<int:quotation_id>", methods=["GET"])
def approval_history_api(quotation_id: int):
    principal = current_principal()
    items = get_services().approvals.history(get_db(), principal, quotation_id)
    return jsonify({"quotation_id": quotation_id, "items": items}), 200


@quotation_bp.route("/api/approvals/<int:approval_id>", methods=["GET"])
def approval_detail_api(approval_id: int):
    principal = current_principal()
    return jsonify({"approval": get_services().approvals.get(get_db(), principal, approval_id)}), 200


def _decide(approval_id: int, decision: str, message_key: str):
    principal = current_principal()
    payload = _json_body()
    result = get_services().approvals.decide(
        get_db(),
        principal,
        ApprovalDecisionInput(approval_id=approval_id, decision=decision, comments=payload.get("comments")),
    )
    result["message"] = success_message(message_key)
    return jsonify(result), 200


@quotation_bp.route("/api/approvals/<int:approval_id>/approve", methods=["POST"])
def approval_approve_api(approval_id: int):
    return _decide(approval_id, "approve", "quotation_approved")


@quotation_bp.route("/api/approvals/<int:approval_id>/reject", methods=["POST"])
def approval_reject_api(approval_id: int):
    return _decide(approval_id, "reject", "quotation_rejected")


# Negotiation


@quotation_bp.route("/api/quotations/<int:quotation_id>/revisions", methods=["POST"])
def revision_create_api(quotation_id: int):
    principal = current_principal()
    payload = _json_body()
    validity_period = payload.get("validity_period")
    if validity_period not in (None, ""):
        validity_period = _parse_optional_int(validity_period)
        if validity_period is None or validity_period < 0:
            raise ValidationError(code="validation_error", details="validity_period must be a non-negative integer")
    else:
        validity_period = None
    result = get_services().negotiation.create_revision(
        get_db(),
        principal,
        RevisionCreateInput(
            quotation_id=quotation_id,
            line_items=payload.get("line_items"),
            delivery_time=_optional_text(payload, "delivery_time"),
            validity_period=validity_period,
            notes=_optional_text(payload, "notes"),
            change_reason=_optional_text(payload, "change_reason"),
            signature=(str(payload.get("signature") or "").strip() or None),
        ),
    )
    result["message"] = success_message("revision_created")
    return jsonify(result), 201


@quotation_bp.route("/api/quotations/<int:quotation_id>/revisions", methods=["GET"])
def revision_list_api(quotation_id: int):
    principal = current_principal()
    items = get_services().negotiation.list_revisions(get_db(), principal, quotation_id)
    return jsonify({"quotation_id": quotation_id, "items": items}), 200


@quotation_bp.route("/api/quotations/<int:quotation_id>/revisions/compare", methods=["GET"])
def revision_compare_api(quotation_id: int):
    principal = current_principal()
    version1 = request.args.get("version1")
    version2 = request.args.get("version2")
    if not version1 or not version2:
        raise ValidationError(code="version_required", message_key="version_required")
    result = get_services().negotiation.compare_versions(get_db(), principal, quotation_id, version1, version2)
    return jsonify(result), 200


@quotation_bp.route("/api/quotations/<int:quotation_id>/comments", methods=["POST"])
def comment_create_api(quotation_id: int):
    principal = current_principal()
    payload = _json_body()
    parent_comment_id = payload.get("parent_comment_id")
    if parent_comment_id not in (None, ""):
        parent_comment_id = _parse_optional_int(parent_comment_id)
        if parent_comment_id is None:
            raise ValidationError(code="validation_error", details="parent_comment_id must be an integer")
    else:
        parent_comment_id = None
    result = get_services().negotiation.add_comment(
        get_db(),
        principal,
        CommentCreateInput(
            quotation_id=quotation_id,
            comment=str(payload.get("comment") or ""),
            comment_type=str(payload.get("comment_type") or "general"),
            is_internal=_parse_bool(payload.get("is_internal")),
            parent_comment_id=parent_comment_id,
        ),
    )
    result["message"] = success_message("comment_added")
    return jsonify(result), 201


@quotation_bp.route("/api/quotations/<int:quotation_id>/comments", methods=["GET"])
def comment_list_api(quotation_id: int):
    principal = current_principal()
    items = get_services().negotiation.list_comments(get_db(), principal, quotation_id)
    return jsonify({"quotation_id": quotation_id, "items": items}), 200


@quotation_bp.route("/api/quotations/<int:quotation_id>/request-revision", methods=["POST"])
def revision_request_api(quotation_id: int):
    principal = current_principal()
    payload = _json_body()
    result = get_services().negotiation.request_revision(
        get_db(),
        principal,
        RevisionRequestInput(
            quotation_id=quotation_id,
            comment=str(payload.get("comment") or ""),
            suggested_changes=_optional_text(payload, "suggested_changes"),
        ),
    )
    result["message"] = success_message("revision_requested")
    return jsonify(result), 200


@quotation_bp.route("/api/workflow/meta", methods=["GET"])
def workflow_meta_api():
    return jsonify(frontend_bundle()), 200
