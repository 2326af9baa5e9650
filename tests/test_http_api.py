import unittest

from quotation_engine import create_app
from quotation_engine.config import Config
from quotation_engine.db import close_db, get_db
from quotation_engine.ui_strings import error_message
from tests.helpers.temp_db import TempDbSandbox
from tests.helpers.workflow import SCENARIO_LINE_ITEMS, seed_directory


def _headers(user_id: int, role: str) -> dict:
    return {"X-User-Id": str(user_id), "X-User-Role": role}


VENDOR = _headers(1, "vendor")
OTHER_VENDOR = _headers(2, "vendor")
APPROVER_1 = _headers(3, "approver")
APPROVER_2 = _headers(4, "approver")
ADMIN = _headers(5, "admin")


class QuotationApiTest(unittest.TestCase):
    def setUp(self) -> None:
        self._temp_db = TempDbSandbox(prefix="http_api")
        self.app = create_app(self._temp_db.make_config(Config, TESTING=True, AUTH_ENABLED=True))
        with self.app.app_context():
            seed_directory(get_db())
            close_db()
        self.client = self.app.test_client()

    def tearDown(self) -> None:
        with self.app.app_context():
            close_db()
        self._temp_db.cleanup()

    def _create(self, headers=VENDOR, **overrides) -> dict:
        body = {
            "rfq_id": 10,
            "line_items": SCENARIO_LINE_ITEMS,
            "currency": "brl",
            "profit_margin": 18,
            "internal_notes": "fornecedor preferencial",
        }
        body.update(overrides)
        response = self.client.post("/api/quotations", headers=headers, json=body)
        self.assertEqual(response.status_code, 201, msg=response.get_data(as_text=True))
        return response.get_json()

    def _submit(self, quotation_id: int) -> dict:
        response = self.client.post(f"/api/quotations/{quotation_id}/submit", headers=VENDOR)
        self.assertEqual(response.status_code, 200, msg=response.get_data(as_text=True))
        return response.get_json()

    def test_create_returns_keys_once_and_hides_envelope_fields(self) -> None:
        created = self._create()
        quotation = created["quotation"]

        self.assertEqual(quotation["status"], "draft")
        self.assertEqual(quotation["total_amount"], "250.00")
        self.assertEqual(quotation["currency"], "BRL")
        self.assertTrue(quotation["quote_number"].startswith("QT-"))
        self.assertEqual(len(created["encryption_key"]), 64)
        self.assertIn("PRIVATE KEY", created["private_key"])

        detail = self.client.get(f"/api/quotations/{quotation['id']}", headers=VENDOR)
        self.assertEqual(detail.status_code, 200)
        payload = detail.get_json()["quotation"]
        self.assertNotIn("encrypted_data", payload)
        self.assertNotIn("encryption_key_hash", payload)
        self.assertNotIn("sensitive_data", payload)
        self.assertTrue(payload["has_sensitive_payload"])
        self.assertTrue(payload["signature_valid"])
        self.assertEqual(payload["line_items"], SCENARIO_LINE_ITEMS)
        self.assertIn("vendor_submits", payload["flow"]["allowed_actions"])

    def test_sensitive_payload_requires_the_matching_key(self) -> None:
        created = self._create()
        quotation_id = created["quotation"]["id"]

        unlocked = self.client.get(
            f"/api/quotations/{quotation_id}",
            headers={**VENDOR, "X-Encryption-Key": created["encryption_key"]},
        )
        self.assertEqual(unlocked.status_code, 200)
        sensitive = unlocked.get_json()["quotation"]["sensitive_data"]
        self.assertEqual(sensitive["profitMargin"], 18)
        self.assertEqual(sensitive["internalNotes"], "fornecedor preferencial")

        wrong = self.client.get(
            f"/api/quotations/{quotation_id}?encryption_key={'ab' * 32}",
            headers=VENDOR,
        )
        self.assertEqual(wrong.status_code, 400)
        self.assertEqual(wrong.get_json()["error"], "invalid_key")

    def test_create_validation_errors(self) -> None:
        missing_rfq = self.client.post(
            "/api/quotations",
            headers=VENDOR,
            json={"line_items": SCENARIO_LINE_ITEMS},
        )
        self.assertEqual(missing_rfq.status_code, 400)
        self.assertEqual(missing_rfq.get_json()["error"], "rfq_id_required")

        bad_items = self.client.post(
            "/api/quotations",
            headers=VENDOR,
            json={"rfq_id": 10, "line_items": [{"quantity": -2, "unit_price": 1}]},
        )
        self.assertEqual(bad_items.status_code, 400)
        self.assertEqual(bad_items.get_json()["error"], "line_item_invalid")

        approver_create = self.client.post(
            "/api/quotations",
            headers=APPROVER_1,
            json={"rfq_id": 10, "line_items": SCENARIO_LINE_ITEMS},
        )
        self.assertEqual(approver_create.status_code, 403)

    def test_full_unanimous_approval_flow(self) -> None:
        quotation_id = self._create()["quotation"]["id"]
        submitted = self._submit(quotation_id)
        self.assertEqual(submitted["status"], "submitted")
        approval_ids = {item["approver_id"]: item["id"] for item in submitted["approvals"]}
        self.assertEqual(set(approval_ids), {3, 4})

        pending = self.client.get("/api/approvals/pending", headers=APPROVER_1)
        self.assertEqual([item["id"] for item in pending.get_json()["items"]], [approval_ids[3]])

        first = self.client.post(f"/api/approvals/{approval_ids[3]}/approve", headers=APPROVER_1, json={})
        self.assertEqual(first.status_code, 200)
        self.assertEqual(first.get_json()["quotation_status"], "under_review")

        second = self.client.post(
            f"/api/approvals/{approval_ids[4]}/approve",
            headers=APPROVER_2,
            json={"comments": "dentro do orcamento"},
        )
        self.assertEqual(second.status_code, 200)
        self.assertEqual(second.get_json()["quotation_status"], "approved")

        again = self.client.post(f"/api/approvals/{approval_ids[4]}/approve", headers=APPROVER_2, json={})
        self.assertEqual(again.status_code, 409)
        self.assertEqual(again.get_json()["error"], "already_decided")

        history = self.client.get(f"/api/approvals/history/{quotation_id}", headers=VENDOR)
        self.assertEqual(history.status_code, 200)
        self.assertTrue(all(item["digest_valid"] for item in history.get_json()["items"]))

        events = self.client.get(f"/api/quotations/{quotation_id}/status-events", headers=ADMIN)
        transitions = [(item["from_status"], item["to_status"]) for item in events.get_json()["items"]]
        self.assertEqual(
            transitions,
            [(None, "draft"), ("draft", "submitted"), ("submitted", "under_review"), ("under_review", "approved")],
        )

    def test_rejection_requires_reason_and_vetoes(self) -> None:
        quotation_id = self._create()["quotation"]["id"]
        approvals = self._submit(quotation_id)["approvals"]
        first_id = approvals[0]["id"]

        no_reason = self.client.post(f"/api/approvals/{first_id}/reject", headers=APPROVER_1, json={})
        self.assertEqual(no_reason.status_code, 400)
        self.assertEqual(no_reason.get_json()["error"], "rejection_reason_required")

        rejected = self.client.post(
            f"/api/approvals/{first_id}/reject",
            headers=APPROVER_1,
            json={"comments": "preco fora da faixa"},
        )
        self.assertEqual(rejected.status_code, 200)
        self.assertEqual(rejected.get_json()["quotation_status"], "rejected")

        revise = self.client.post(
            f"/api/quotations/{quotation_id}/revisions",
            headers=VENDOR,
            json={"line_items": SCENARIO_LINE_ITEMS},
        )
        self.assertEqual(revise.status_code, 409)
        self.assertEqual(revise.get_json()["error"], "invalid_transition")

    def test_approval_by_wrong_approver_is_forbidden(self) -> None:
        quotation_id = self._create()["quotation"]["id"]
        approvals = self._submit(quotation_id)["approvals"]

        response = self.client.post(f"/api/approvals/{approvals[0]['id']}/approve", headers=APPROVER_2, json={})
        self.assertEqual(response.status_code, 403)

        missing = self.client.get("/api/approvals/9999", headers=ADMIN)
        self.assertEqual(missing.status_code, 404)
        self.assertEqual(missing.get_json()["message"], error_message("approval_not_found"))

    def test_negotiation_round_trip(self) -> None:
        quotation_id = self._create()["quotation"]["id"]
        self._submit(quotation_id)

        requested = self.client.post(
            f"/api/quotations/{quotation_id}/request-revision",
            headers=APPROVER_1,
            json={"comment": "Frete caro", "suggested_changes": "Frete gratis"},
        )
        self.assertEqual(requested.status_code, 200)
        self.assertEqual(requested.get_json()["status"], "revision_requested")

        for line_items in (SCENARIO_LINE_ITEMS, [{"description": "Parafuso M8", "quantity": 2, "unit_price": 150}]):
            revised = self.client.post(
                f"/api/quotations/{quotation_id}/revisions",
                headers=VENDOR,
                json={"line_items": line_items, "change_reason": "ajuste", "validity_period": "30"},
            )
            self.assertEqual(revised.status_code, 201, msg=revised.get_data(as_text=True))
            self.assertEqual(revised.get_json()["quotation_status"], "negotiating")

        compare = self.client.get(
            f"/api/quotations/{quotation_id}/revisions/compare?version1=1&version2=2",
            headers=APPROVER_1,
        )
        self.assertEqual(compare.status_code, 200)
        self.assertEqual(compare.get_json()["amount_change"], "50.00")
        self.assertEqual(compare.get_json()["percentage_change"], "20.00")

        missing_version = self.client.get(
            f"/api/quotations/{quotation_id}/revisions/compare?version1=1",
            headers=APPROVER_1,
        )
        self.assertEqual(missing_version.status_code, 400)

        comment = self.client.post(
            f"/api/quotations/{quotation_id}/comments",
            headers=VENDOR,
            json={"comment": "Frete removido na versao 2", "comment_type": "counter_offer"},
        )
        self.assertEqual(comment.status_code, 201)

        empty = self.client.post(f"/api/quotations/{quotation_id}/comments", headers=VENDOR, json={"comment": " "})
        self.assertEqual(empty.status_code, 400)
        self.assertEqual(empty.get_json()["error"], "empty_comment")

        comments = self.client.get(f"/api/quotations/{quotation_id}/comments", headers=APPROVER_1)
        kinds = [item["comment_type"] for item in comments.get_json()["items"]]
        self.assertEqual(kinds, ["revision_request", "counter_offer"])

        resubmitted = self._submit(quotation_id)
        self.assertEqual(resubmitted["status"], "submitted")

        verify = self.client.post(f"/api/quotations/{quotation_id}/verify-signature", headers=ADMIN)
        self.assertEqual(verify.status_code, 200)
        self.assertFalse(verify.get_json()["is_valid"])

    def test_vendor_listing_is_scoped_to_owner(self) -> None:
        self._create()
        self._create(headers=OTHER_VENDOR, rfq_id=11)

        own = self.client.get("/api/quotations", headers=VENDOR).get_json()
        everything = self.client.get("/api/quotations?limit=1&page=2", headers=ADMIN).get_json()

        self.assertEqual(own["total"], 1)
        self.assertEqual(everything["total"], 2)
        self.assertEqual(len(everything["items"]), 1)
        self.assertNotIn("line_items", everything["items"][0])

        by_rfq = self.client.get("/api/quotations?rfq_id=11", headers=ADMIN).get_json()
        self.assertEqual(by_rfq["total"], 1)

        bad_status = self.client.get("/api/quotations?status=lost", headers=ADMIN)
        self.assertEqual(bad_status.status_code, 400)

    def test_other_vendor_cannot_read_quotation(self) -> None:
        quotation_id = self._create()["quotation"]["id"]
        response = self.client.get(f"/api/quotations/{quotation_id}", headers=OTHER_VENDOR)
        self.assertEqual(response.status_code, 403)

    def test_workflow_meta_is_public(self) -> None:
        response = self.client.get("/api/workflow/meta")
        self.assertEqual(response.status_code, 200)
        bundle = response.get_json()
        self.assertIn("transitions", bundle["flow"])
        self.assertIn("status_groups", bundle)

    def test_free_text_fields_must_be_text(self) -> None:
        bad_create = self.client.post(
            "/api/quotations",
            headers=VENDOR,
            json={"rfq_id": 10, "line_items": SCENARIO_LINE_ITEMS, "terms_conditions": {"net": 30}},
        )
        self.assertEqual(bad_create.status_code, 400)
        self.assertEqual(bad_create.get_json()["error"], "validation_error")
        self.assertEqual(bad_create.get_json()["field"], "terms_conditions")

        quotation_id = self._create(terms_conditions="Pagamento em 30 dias")["quotation"]["id"]
        for field_name in ("delivery_time", "notes", "change_reason"):
            with self.subTest(field=field_name):
                response = self.client.post(
                    f"/api/quotations/{quotation_id}/revisions",
                    headers=VENDOR,
                    json={"line_items": SCENARIO_LINE_ITEMS, field_name: ["7", "dias"]},
                )
                self.assertEqual(response.status_code, 400)
                self.assertEqual(response.get_json()["field"], field_name)

        numeric = self.client.post(
            f"/api/quotations/{quotation_id}/revisions",
            headers=VENDOR,
            json={"line_items": SCENARIO_LINE_ITEMS, "delivery_time": 7, "notes": "  urgente  "},
        )
        self.assertEqual(numeric.status_code, 201, msg=numeric.get_data(as_text=True))
        revision = numeric.get_json()["revision"]
        self.assertEqual(revision["version"], 1)
        self.assertEqual(revision["delivery_time"], "7")
        self.assertEqual(revision["notes"], "urgente")

    def test_oversized_line_amount_is_rejected_not_crashed(self) -> None:
        response = self.client.post(
            "/api/quotations",
            headers=VENDOR,
            json={"rfq_id": 10, "line_items": [{"quantity": "1000000000000000", "unit_price": "1000000000000"}]},
        )
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.get_json()["error"], "line_item_invalid")
        self.assertEqual(response.get_json()["line"], 1)


class NoApproversApiTest(unittest.TestCase):
    def setUp(self) -> None:
        self._temp_db = TempDbSandbox(prefix="http_no_approvers")
        self.app = create_app(self._temp_db.make_config(Config, TESTING=True, AUTH_ENABLED=True))
        with self.app.app_context():
            seed_directory(get_db(), with_approvers=False)
            close_db()
        self.client = self.app.test_client()

    def tearDown(self) -> None:
        with self.app.app_context():
            close_db()
        self._temp_db.cleanup()

    def test_submit_reports_missing_approvers(self) -> None:
        created = self.client.post(
            "/api/quotations",
            headers=VENDOR,
            json={"rfq_id": 10, "line_items": SCENARIO_LINE_ITEMS},
        ).get_json()
        quotation_id = created["quotation"]["id"]

        response = self.client.post(f"/api/quotations/{quotation_id}/submit", headers=VENDOR)

        self.assertEqual(response.status_code, 422)
        payload = response.get_json()
        self.assertEqual(payload["error"], "no_approvers_available")
        self.assertEqual(payload["status"], "submitted")
        self.assertEqual(payload["quotation_id"], quotation_id)


if __name__ == "__main__":
    unittest.main()
