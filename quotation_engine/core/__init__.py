from quotation_engine.core.event_bus import (
    ApprovalDecided,
    ApprovalsAssigned,
    CommentAdded,
    DomainEvent,
    EventBus,
    QuotationStatusChanged,
    QuotationSubmitted,
    RevisionCreated,
    RevisionRequested,
    get_event_bus,
)

__all__ = [
    "DomainEvent",
    "EventBus",
    "QuotationSubmitted",
    "ApprovalsAssigned",
    "ApprovalDecided",
    "QuotationStatusChanged",
    "RevisionCreated",
    "RevisionRequested",
    "CommentAdded",
    "get_event_bus",
]
