from __future__ import annotations

import sys
import unittest
from datetime import datetime
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent))

from report_builders import make_record

from surgery_reconciler.config import ProcessingConfig, config_from_mapping
from surgery_reconciler.payment import ALL_COLUMNS, aggregate_payments, split_column_key

START = datetime(2024, 3, 5, 8, 0)
END = datetime(2024, 3, 5, 10, 0)


class PaymentColumnTests(unittest.TestCase):
    def test_column_space(self):
        self.assertEqual(len(ALL_COLUMNS), 27)
        self.assertEqual(ALL_COLUMNS[:3], ("PĐB-Chính", "PĐB-Phụ", "PĐB-Giúp việc"))

    def test_split_on_first_dash(self):
        self.assertEqual(split_column_key("T1-Giúp việc"), ("T1", "Giúp việc"))


class AggregatePaymentsTests(unittest.TestCase):
    def setUp(self):
        self.config = ProcessingConfig()

    def test_anesthesiologist_paid_at_primary_rate(self):
        record = make_record(
            "1", START, END, procedure_type="P1",
            primary_surgeon="BS Hùng", anesthesiologist="BS Minh", auxiliary="Hộ lý Mai",
        )
        table = aggregate_payments([record], self.config)
        self.assertEqual(table.columns, ["P1-Chính", "P1-Giúp việc"])
        by_name = {row.name: row for row in table.rows}
        self.assertEqual(by_name["BS Hùng"].amounts["P1-Chính"], 125000)
        self.assertEqual(by_name["BS Minh"].amounts["P1-Chính"], 125000)
        self.assertEqual(by_name["Hộ lý Mai"].amounts["P1-Giúp việc"], 70000)
        self.assertEqual(table.grand_total, 320000)

    def test_no_zero_columns(self):
        records = [
            make_record("1", START, END, procedure_type="T2", quantity=0.5, assistant_surgeon="BS Lan"),
            make_record("2", START, END, procedure_type="P3", quantity=0.0, primary_surgeon="BS Lan"),
        ]
        table = aggregate_payments(records, self.config)
        self.assertEqual(table.columns, ["T2-Phụ"])
        self.assertTrue(all(total != 0 for total in table.column_totals.values()))

    def test_grand_total_equals_column_amounts(self):
        records = [
            make_record("1", START, END, procedure_type="P1", primary_surgeon="A", assistant_surgeon="B"),
            make_record("2", START, END, procedure_type="T1", quantity=0.5, primary_surgeon="A", auxiliary="C"),
            make_record("3", START, END, procedure_type="PĐB", anesthesia_technician="D"),
        ]
        table = aggregate_payments(records, self.config)
        self.assertAlmostEqual(table.grand_total, sum(table.column_amounts.values()))
        self.assertAlmostEqual(table.grand_total, sum(row.total_amount for row in table.rows))

    def test_untyped_records_are_excluded(self):
        records = [
            make_record("1", START, END, procedure_type="", primary_surgeon="Only Untyped"),
            make_record("2", START, END, procedure_type="P2", primary_surgeon="BS Hùng"),
        ]
        table = aggregate_payments(records, self.config)
        self.assertEqual([row.name for row in table.rows], ["BS Hùng"])

    def test_rows_follow_role_order_then_first_appearance(self):
        records = [
            make_record("1", START, END, primary_surgeon="A", anesthesiologist="B", auxiliary="C"),
            make_record("2", START, END, assistant_surgeon="D", primary_surgeon="E"),
        ]
        table = aggregate_payments(records, self.config)
        self.assertEqual([row.name for row in table.rows], ["A", "E", "D", "B", "C"])
        self.assertEqual([role.label for role, _ in table.groups()], ["PT Chính", "PT Phụ", "BS GM", "GV"])

    def test_first_seen_role_sets_the_group(self):
        records = [
            make_record("1", START, END, primary_surgeon="A"),
            make_record("2", START, END, assistant_surgeon="A"),
        ]
        table = aggregate_payments(records, self.config)
        self.assertEqual(len(table.rows), 1)
        row = table.rows[0]
        self.assertEqual(row.role_group.label, "PT Chính")
        self.assertEqual(row.values, {"P1-Chính": 1.0, "P1-Phụ": 1.0})
        self.assertEqual(row.total_amount, 125000 + 90000)

    def test_role_order_override(self):
        config = config_from_mapping({"role_order": {"GV": 0}})
        records = [make_record("1", START, END, primary_surgeon="A", auxiliary="C")]
        table = aggregate_payments(records, config)
        self.assertEqual([row.name for row in table.rows], ["C", "A"])

    def test_tied_role_ranks_keep_groups_contiguous(self):
        config = config_from_mapping({"role_order": {"GV": 1}})
        records = [
            make_record("1", START, END, primary_surgeon="A", auxiliary="C"),
            make_record("2", START, END, primary_surgeon="B"),
        ]
        table = aggregate_payments(records, config)
        self.assertEqual([row.name for row in table.rows], ["A", "B", "C"])
        self.assertEqual([role.label for role, _ in table.groups()], ["PT Chính", "GV"])

    def test_zero_priced_column_is_kept_when_it_has_quantity(self):
        records = [make_record("1", START, END, procedure_type="TKPL", primary_surgeon="A")]
        table = aggregate_payments(records, self.config)
        self.assertEqual(table.columns, ["TKPL-Chính"])
        self.assertEqual(table.unit_prices["TKPL-Chính"], 0.0)
        self.assertEqual(table.grand_total, 0)

    def test_custom_prices(self):
        config = config_from_mapping({"price_config": {"P1": {"Chính": 200000}}})
        table = aggregate_payments([make_record("1", START, END, primary_surgeon="A", assistant_surgeon="B")], config)
        self.assertEqual(table.unit_prices, {"P1-Chính": 200000.0, "P1-Phụ": 90000.0})

    def test_empty_input(self):
        table = aggregate_payments([], self.config)
        self.assertEqual((table.columns, table.rows, table.grand_total), ([], [], 0))


if __name__ == "__main__":
    unittest.main()
