from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List


@dataclass(frozen=True)
class ServiceOutput:
    payload: Dict[str, Any]
    status_code: int = 200


@dataclass(frozen=True)
class Principal:
    user_id: int
    role: str

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"

    @property
    def is_vendor(self) -> bool:
        return self.role == "vendor"

    @property
    def is_approver(self) -> bool:
        return self.role == "approver"


@dataclass(frozen=True)
class QuotationCreateInput:
    rfq_id: int
    line_items: List[Dict[str, Any]]
    currency: str | None = None
    terms_conditions: str | None = None
    profit_margin: Any = None
    internal_notes: str | None = None


@dataclass(frozen=True)
class ApprovalDecisionInput:
    approval_id: int
    decision: str
    comments: str | None = None


@dataclass(frozen=True)
class RevisionCreateInput:
    quotation_id: int
    line_items: List[Dict[str, Any]]
    delivery_time: str | None = None
    validity_period: int | None = None
    notes: str | None = None
    change_reason: str | None = None
    signature: str | None = None


@dataclass(frozen=True)
class CommentCreateInput:
    quotation_id: int
    comment: str
    comment_type: str = "general"
    is_internal: bool = False
    parent_comment_id: int | None = None


@dataclass(frozen=True)
class RevisionRequestInput:
    quotation_id: int
    comment: str
    suggested_changes: str | None = None


@dataclass(frozen=True)
class ListFilters:
    status: str | None = None
    rfq_id: int | None = None
    page: int = 1
    limit: int = 20

    @property
    def offset(self) -> int:
        return (max(1, self.page) - 1) * max(1, self.limit)
