"""Workflow domain events and the in-process bus that fans them out after commit."""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from threading import RLock
from typing import Callable, Dict, Iterable, List, Type

from quotation_engine.observability import observe_domain_event_emitted


LOGGER = logging.getLogger("quotation_engine.events")

EventHandler = Callable[["DomainEvent"], None]


@dataclass(frozen=True, kw_only=True)
class DomainEvent:
    event_id: str = field(default_factory=lambda: uuid.uuid4().hex)
    occurred_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def __post_init__(self) -> None:
        if self.occurred_at.tzinfo is None:
            object.__setattr__(self, "occurred_at", self.occurred_at.replace(tzinfo=timezone.utc))


@dataclass(frozen=True, kw_only=True)
class QuotationSubmitted(DomainEvent):
    quotation_id: int
    quote_number: str
    vendor_id: int


@dataclass(frozen=True, kw_only=True)
class ApprovalsAssigned(DomainEvent):
    quotation_id: int
    quote_number: str
    approver_ids: tuple[int, ...] = ()


@dataclass(frozen=True, kw_only=True)
class ApprovalDecided(DomainEvent):
    quotation_id: int
    approval_id: int
    approver_id: int
    decision: str
    quotation_status: str


@dataclass(frozen=True, kw_only=True)
class QuotationStatusChanged(DomainEvent):
    quotation_id: int
    quote_number: str
    vendor_id: int
    from_status: str | None
    to_status: str
    reason: str = ""


@dataclass(frozen=True, kw_only=True)
class RevisionCreated(DomainEvent):
    quotation_id: int
    version: int
    changed_by: int
    total_amount: str


@dataclass(frozen=True, kw_only=True)
class RevisionRequested(DomainEvent):
    quotation_id: int
    vendor_id: int
    requested_by: int
    reason: str


@dataclass(frozen=True, kw_only=True)
class CommentAdded(DomainEvent):
    quotation_id: int
    comment_id: int
    author_id: int
    comment_type: str
    is_internal: bool = False


class EventBus:
    """Synchronous fan-out.

    Handlers registered for a base class also receive its subclasses, so a
    ``DomainEvent`` subscriber sees everything. A failing handler is logged
    and skipped; the remaining handlers still run.
    """

    def __init__(self) -> None:
        self._lock = RLock()
        self._handlers: Dict[Type[DomainEvent], List[EventHandler]] = {}

    def subscribe(self, event_type: Type[DomainEvent], handler: EventHandler) -> None:
        with self._lock:
            registered = self._handlers.setdefault(event_type, [])
            if handler not in registered:
                registered.append(handler)

    def handlers_for(self, event_type: Type[DomainEvent]) -> List[EventHandler]:
        resolved: List[EventHandler] = []
        with self._lock:
            for klass in event_type.__mro__:
                for handler in self._handlers.get(klass, ()):
                    if handler not in resolved:
                        resolved.append(handler)
        return resolved

    def publish(self, event: DomainEvent) -> None:
        event_type = type(event).__name__
        observe_domain_event_emitted(event_type)
        for handler in self.handlers_for(type(event)):
            try:
                handler(event)
            except Exception:  # noqa: BLE001
                LOGGER.exception(
                    "event_handler_failed",
                    extra={
                        "event_type": event_type,
                        "event_id": event.event_id,
                        "handler": getattr(handler, "__qualname__", repr(handler)),
                    },
                )

    def publish_all(self, events: Iterable[DomainEvent | None]) -> None:
        for event in events:
            if event is not None:
                self.publish(event)


_DEFAULT_EVENT_BUS = EventBus()


def get_event_bus() -> EventBus:
    return _DEFAULT_EVENT_BUS
