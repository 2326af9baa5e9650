from __future__ import annotations

from quotation_engine.application.approval_service import ApprovalService
from quotation_engine.application.negotiation_service import NegotiationService
from quotation_engine.application.quotation_service import QuotationService
from quotation_engine.application.quotation_workflow import QuotationTransitioner
from quotation_engine.core.event_bus import EventBus
from quotation_engine.db import connect_database, init_db
from quotation_engine.domain.contracts import Principal, QuotationCreateInput
from quotation_engine.infrastructure.repositories import UserDirectoryRepository
from tests.helpers.temp_db import TempDbSandbox


VENDOR = Principal(user_id=1, role="vendor")
OTHER_VENDOR = Principal(user_id=2, role="vendor")
APPROVER_1 = Principal(user_id=3, role="approver")
APPROVER_2 = Principal(user_id=4, role="approver")
ADMIN = Principal(user_id=5, role="admin")

SCENARIO_LINE_ITEMS = [
    {"description": "Parafuso M8", "quantity": 2, "unit_price": 100},
    {"description": "Frete", "quantity": 1, "unit_price": 50},
]


def seed_directory(db, *, with_approvers: bool = True) -> None:
    users = UserDirectoryRepository()
    with db.transaction():
        users.create(db, email="vendor@acme.test", full_name="Vendor One", role="vendor")
        users.create(db, email="vendor2@acme.test", full_name="Vendor Two", role="vendor")
        if with_approvers:
            users.create(db, email="approver1@buyer.test", full_name="Approver One", role="approver")
            users.create(db, email="approver2@buyer.test", full_name="Approver Two", role="approver")
        else:
            users.create(db, email="ghost1@buyer.test", full_name="Inactive", role="approver", is_active=False)
            users.create(db, email="ghost2@buyer.test", full_name="Inactive", role="approver", is_active=False)
        users.create(db, email="admin@buyer.test", full_name="Admin", role="admin")


class WorkflowSandbox:
    """Temporary database plus wired services sharing one in-memory event bus."""

    def __init__(self, prefix: str, *, with_approvers: bool = True) -> None:
        self.temp_db = TempDbSandbox(prefix=prefix)
        self.db = connect_database(self.temp_db.db_path)
        init_db(self.db)
        seed_directory(self.db, with_approvers=with_approvers)

        self.bus = EventBus()
        self.events = []
        self.transitioner = QuotationTransitioner()
        self.approvals = ApprovalService(transitioner=self.transitioner, event_bus=self.bus)
        self.quotations = QuotationService(
            approval_service=self.approvals,
            transitioner=self.transitioner,
            event_bus=self.bus,
        )
        self.negotiation = NegotiationService(transitioner=self.transitioner, event_bus=self.bus)

    def record_events(self, *event_types) -> None:
        for event_type in event_types:
            self.bus.subscribe(event_type, self.events.append)

    def create_quotation(self, principal: Principal = VENDOR, line_items=None, **kwargs) -> dict:
        output = self.quotations.create_quotation(
            self.db,
            principal,
            QuotationCreateInput(
                rfq_id=kwargs.pop("rfq_id", 10),
                line_items=line_items or SCENARIO_LINE_ITEMS,
                **kwargs,
            ),
        )
        return output.payload

    def submitted_quotation(self) -> tuple[int, list[dict]]:
        created = self.create_quotation()
        quotation_id = created["quotation"]["id"]
        result = self.quotations.submit_quotation(self.db, VENDOR, quotation_id)
        return quotation_id, result["approvals"]

    def quotation_row(self, quotation_id: int) -> dict:
        return dict(self.db.execute("SELECT * FROM quotations WHERE id = ?", (quotation_id,)).fetchone())

    def close(self) -> None:
        self.db.close()
        self.temp_db.cleanup()
