import unittest
from decimal import Decimal

from quotation_engine.errors import ValidationError
from quotation_engine.workflow import pricing


class PricingTest(unittest.TestCase):
    def test_total_is_sum_of_quantity_times_unit_price(self) -> None:
        items = [
            {"description": "A", "quantity": 2, "unit_price": 100},
            {"description": "B", "quantity": 1, "unit_price": 50},
        ]
        self.assertEqual(pricing.compute_total(items), Decimal("250.00"))

    def test_total_avoids_float_drift(self) -> None:
        items = [{"quantity": 3, "unit_price": 0.1}]
        self.assertEqual(pricing.format_amount(pricing.compute_total(items)), "0.30")

    def test_normalize_rejects_empty_or_invalid_items(self) -> None:
        with self.assertRaises(ValidationError) as empty_ctx:
            pricing.normalize_line_items([])
        self.assertEqual(empty_ctx.exception.code, "line_items_required")

        invalid_cases = [
            [{"quantity": -1, "unit_price": 10}],
            [{"quantity": 1, "unit_price": "abc"}],
            [{"quantity": True, "unit_price": 1}],
            [{"quantity": 1}],
            ["not a dict"],
        ]
        for items in invalid_cases:
            with self.subTest(items=items):
                with self.assertRaises(ValidationError) as ctx:
                    pricing.normalize_line_items(items)
                self.assertEqual(ctx.exception.code, "line_item_invalid")

    def test_amounts_beyond_decimal_precision_are_rejected(self) -> None:
        too_large = [{"quantity": "1000000000000000", "unit_price": "1000000000000"}]
        too_precise = [{"quantity": "0.12345678901234567890", "unit_price": "0.12345678901234567890"}]
        for items in (too_large, too_precise):
            with self.subTest(items=items):
                with self.assertRaises(ValidationError) as ctx:
                    pricing.normalize_line_items(items)
                self.assertEqual(ctx.exception.code, "line_item_invalid")
                self.assertEqual(ctx.exception.payload, {"line": 1})
                with self.assertRaises(ValidationError):
                    pricing.compute_total(items)

    def test_sum_overflow_is_rejected_without_line(self) -> None:
        items = [
            {"quantity": "1", "unit_price": "9" * 26},
            {"quantity": "1", "unit_price": "9" * 26},
        ]
        self.assertEqual(len(pricing.normalize_line_items(items)), 2)
        with self.assertRaises(ValidationError) as ctx:
            pricing.compute_total(items)
        self.assertEqual(ctx.exception.code, "line_item_invalid")
        self.assertEqual(ctx.exception.payload, {})

    def test_large_but_representable_totals_are_exact(self) -> None:
        items = [{"quantity": "1000000", "unit_price": "12345678901234.56"}]
        self.assertEqual(pricing.format_amount(pricing.compute_total(items)), "12345678901234560000.00")

    def test_quantize_amount_rejects_garbage(self) -> None:
        with self.assertRaises(ValidationError) as ctx:
            pricing.quantize_amount("not-a-number")
        self.assertEqual(ctx.exception.code, "amount_invalid")

    def test_percentage_change_rounds_to_two_places(self) -> None:
        self.assertEqual(pricing.percentage_change("250.00", "300.00"), Decimal("20.00"))
        self.assertEqual(pricing.percentage_change("300", "250"), Decimal("-16.67"))

    def test_percentage_change_between_extreme_totals(self) -> None:
        self.assertEqual(pricing.percentage_change("0.01", "1" + "0" * 25 + ".00"), Decimal("9" * 27 + "00.00"))

    def test_percentage_change_is_none_on_zero_baseline(self) -> None:
        self.assertIsNone(pricing.percentage_change("0.00", "120.00"))

    def test_diff_line_items_by_description(self) -> None:
        old = [
            {"description": "Parafuso", "quantity": 2, "unit_price": 100},
            {"description": "Frete", "quantity": 1, "unit_price": 50},
        ]
        new = [
            {"description": "Parafuso", "quantity": 3, "unit_price": 100},
            {"description": "Instalacao", "quantity": 1, "unit_price": 0},
        ]
        diff = pricing.diff_line_items(old, new)

        self.assertEqual([item["description"] for item in diff["added"]], ["Instalacao"])
        self.assertEqual([item["description"] for item in diff["removed"]], ["Frete"])
        self.assertEqual(diff["changed"], [{"item": "Parafuso", "changes": {"quantity": {"from": 2, "to": 3}}}])

    def test_diff_terms_reports_scalar_changes(self) -> None:
        changes = pricing.diff_terms(
            {"delivery_time": "10 dias", "validity_period": 30, "notes": None},
            {"delivery_time": "7 dias", "validity_period": 30, "notes": "urgente"},
        )
        self.assertEqual(set(changes), {"delivery_time", "notes"})


if __name__ == "__main__":
    unittest.main()
