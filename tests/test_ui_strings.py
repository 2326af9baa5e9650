import unittest

from quotation_engine.ui_strings import COMMENT_KIND_LABELS, MESSAGES, STATUS_GROUPS, error_message, frontend_bundle
from quotation_engine.application.negotiation_service import COMMENT_KINDS
from quotation_engine.workflow import state_machine as sm


class UiStringsStatusGroupsTest(unittest.TestCase):
    def test_every_workflow_status_has_a_label(self) -> None:
        quotation_keys = {item["key"] for item in STATUS_GROUPS["quotation"]}
        approval_keys = {item["key"] for item in STATUS_GROUPS["approval"]}

        self.assertEqual(quotation_keys, set(sm.QUOTATION_STATUSES))
        self.assertEqual(approval_keys, set(sm.APPROVAL_STATUSES))

    def test_status_labels_and_descriptions_are_not_empty(self) -> None:
        for group_name, statuses in STATUS_GROUPS.items():
            for status in statuses:
                self.assertTrue((status.get("label") or "").strip(), f"label vazio em {group_name}:{status.get('key')}")
                self.assertTrue(
                    (status.get("description") or "").strip(),
                    f"descricao vazia em {group_name}:{status.get('key')}",
                )

    def test_comment_kinds_are_labelled(self) -> None:
        self.assertEqual(set(COMMENT_KIND_LABELS), set(COMMENT_KINDS))

    def test_error_codes_have_messages(self) -> None:
        for key in (
            "auth_required",
            "forbidden",
            "not_found",
            "invalid_transition",
            "already_decided",
            "concurrent_update",
            "invalid_key",
            "malformed_envelope",
            "empty_comment",
            "no_approvers_available",
            "unexpected_error",
        ):
            with self.subTest(key=key):
                self.assertIn(key, MESSAGES["error"])
        self.assertEqual(error_message("missing_key", "fallback"), "fallback")

    def test_frontend_bundle_includes_flow(self) -> None:
        bundle = frontend_bundle()
        self.assertIn("flow", bundle)
        self.assertIn("status_groups", bundle)


if __name__ == "__main__":
    unittest.main()
