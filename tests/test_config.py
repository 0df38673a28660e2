from __future__ import annotations

import json
import tempfile
import unittest
from pathlib import Path

from surgery_reconciler.config import (
    ConfigError,
    ProcessingConfig,
    config_from_mapping,
    default_config_payload,
    load_config,
)


class ProcessingConfigTests(unittest.TestCase):
    def test_defaults(self):
        config = ProcessingConfig()
        self.assertEqual(config.unit_price("P1", "Chính"), 125000)
        self.assertEqual(config.unit_price("T3", "Giúp việc"), 4500)
        self.assertEqual(config.unit_price("UNKNOWN", "Chính"), 0.0)
        self.assertEqual(config.time_rule("P1"), (120, 180))
        self.assertIsNone(config.time_rule("UNKNOWN"))

    def test_machine_exemption_is_case_sensitive_substring(self):
        config = ProcessingConfig(ignored_machine_names=("Gây mê",))
        self.assertTrue(config.is_machine_exempt("Gây mê tĩnh mạch"))
        self.assertFalse(config.is_machine_exempt("gây mê tĩnh mạch"))
        self.assertFalse(ProcessingConfig().is_machine_exempt("Gây mê tĩnh mạch"))


class ConfigFromMappingTests(unittest.TestCase):
    def test_partial_prices_merge_over_defaults(self):
        config = config_from_mapping({"price_config": {"P1": {"Chính": 150000}}})
        self.assertEqual(config.unit_price("P1", "Chính"), 150000)
        self.assertEqual(config.unit_price("P1", "Phụ"), 90000)
        self.assertEqual(config.unit_price("P2", "Chính"), 65000)

    def test_camel_case_and_legacy_keys(self):
        config = config_from_mapping({
            "priceConfig": {"T1": {"Phụ": 30000}},
            "timeRules": {"T1": {"min": 30, "max": 90}},
            "ignoredMachineCodes": [" Thay băng ", ""],
        })
        self.assertEqual(config.unit_price("T1", "Phụ"), 30000)
        self.assertEqual(config.time_rule("T1"), (30, 90))
        self.assertEqual(config.ignored_machine_names, ("Thay băng",))

    def test_rejects_non_numeric_price(self):
        with self.assertRaisesRegex(ConfigError, "must be a number"):
            config_from_mapping({"price_config": {"P1": {"Chính": "a lot"}}})

    def test_rejects_non_list_ignore(self):
        with self.assertRaises(ConfigError):
            config_from_mapping({"ignored_machine_names": "Gây mê"})

    def test_rejects_non_integer_role_rank(self):
        with self.assertRaisesRegex(ConfigError, "must be an integer"):
            config_from_mapping({"roleOrder": {"GV": "1"}})
        with self.assertRaises(ConfigError):
            config_from_mapping({"role_order": {"GV": True}})

    def test_rejects_unknown_role_label(self):
        with self.assertRaisesRegex(ConfigError, "not a staff role"):
            config_from_mapping({"role_order": {"Điều dưỡng": 1}})

    def test_role_order_merges_over_defaults(self):
        config = config_from_mapping({"role_order": {"GV": 0}})
        self.assertEqual(config.role_order["GV"], 0)
        self.assertEqual(config.role_order["PT Chính"], 1)

    def test_rejects_non_object_root(self):
        with self.assertRaises(ConfigError):
            config_from_mapping(["not", "an", "object"])


class LoadConfigTests(unittest.TestCase):
    def test_none_returns_defaults(self):
        self.assertEqual(load_config(None), ProcessingConfig())

    def test_round_trips_default_payload(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "config.json"
            path.write_text(json.dumps(default_config_payload(), ensure_ascii=False), encoding="utf-8")
            self.assertEqual(load_config(path).to_dict(), ProcessingConfig().to_dict())

    def test_missing_file(self):
        with self.assertRaisesRegex(ConfigError, "not found"):
            load_config("/nonexistent/surgery-reconciler.json")

    def test_wrong_suffix(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "config.yaml"
            path.write_text("price_config: {}\n", encoding="utf-8")
            with self.assertRaisesRegex(ConfigError, "Unsupported config format"):
                load_config(path)

    def test_invalid_json(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "config.json"
            path.write_text("{not json", encoding="utf-8")
            with self.assertRaisesRegex(ConfigError, "Invalid config JSON"):
                load_config(path)


if __name__ == "__main__":
    unittest.main()
