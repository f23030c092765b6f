# PATH: tests/unit/test_logging_contract.py
"""
Tests specifically for logging contract enforcement.

No kwargs to logger; only extra={"context": {...}} allowed.
"""

import ast
import json
import logging
import unittest
from pathlib import Path
from typing import Any, Dict, List

from core.logging import JSONFormatter, clear_global_context, get_logger, set_global_context

PROJECT_ROOT = Path(__file__).parent.parent.parent
SOURCE_PACKAGES = ["core", "config", "chains", "dex", "strategy", "ai", "execution", "data", "monitoring"]


class TestLoggingContractEnforcement(unittest.TestCase):
    """AST-based tests for logging contract."""

    ALLOWED_KWARGS = {"exc_info", "extra", "stack_info", "stacklevel"}

    def _find_logger_violations(self, source_code: str) -> List[Dict[str, Any]]:
        """Find logger calls with invalid kwargs using AST."""
        violations = []
        tree = ast.parse(source_code)

        for node in ast.walk(tree):
            if not isinstance(node, ast.Call) or not isinstance(node.func, ast.Attribute):
                continue

            method_name = node.func.attr
            if method_name not in ("debug", "info", "warning", "error", "critical", "exception"):
                continue

            obj = node.func.value
            if isinstance(obj, ast.Name):
                is_logger = "log" in obj.id.lower()
            elif isinstance(obj, ast.Attribute):
                is_logger = "log" in obj.attr.lower()
            else:
                is_logger = False
            if not is_logger:
                continue

            for kw in node.keywords:
                if kw.arg and kw.arg not in self.ALLOWED_KWARGS:
                    violations.append({
                        "line": node.lineno,
                        "method": method_name,
                        "invalid_kwarg": kw.arg,
                    })

        return violations

    def test_detector_catches_bad_call(self):
        violations = self._find_logger_violations('logger.info("x", route="A/B")\n')
        self.assertEqual(violations[0]["invalid_kwarg"], "route")

    def test_source_packages_have_no_invalid_kwargs(self):
        """Every module in the source packages logs through extra context only."""
        messages = []
        for package in SOURCE_PACKAGES:
            for filepath in sorted((PROJECT_ROOT / package).rglob("*.py")):
                source = filepath.read_text(encoding="utf-8")
                for v in self._find_logger_violations(source):
                    messages.append(
                        f"  {filepath.relative_to(PROJECT_ROOT)}:{v['line']}: "
                        f"logger.{v['method']}(..., {v['invalid_kwarg']}=...)"
                    )

        if messages:
            self.fail(f"Found {len(messages)} logging violations:\n" + "\n".join(messages))


class TestLoggingContextCapture(unittest.TestCase):
    """Tests that context is properly captured in log records."""

    def setUp(self):
        self.captured_records = []

        class CapturingHandler(logging.Handler):
            def __init__(self, records_list):
                super().__init__()
                self.records = records_list

            def emit(self, record):
                self.records.append(record)

        name = f"flarb.test_capture_{id(self)}"
        base = logging.getLogger(name)
        base.setLevel(logging.DEBUG)
        base.handlers = []
        base.propagate = False
        base.addHandler(CapturingHandler(self.captured_records))
        self.logger = get_logger(name, component="scanner")

    def tearDown(self):
        clear_global_context()

    def test_adapter_merges_default_and_call_context(self):
        self.logger.info("Route skipped", extra={"context": {"route": "LINK/WETH"}})

        record = self.captured_records[0]
        self.assertEqual(record.context, {"component": "scanner", "route": "LINK/WETH"})

    def test_json_formatter_output(self):
        set_global_context(simulation_mode=True)
        self.logger.warning("Scorer failed", extra={"context": {"stage": "score"}})

        entry = json.loads(JSONFormatter().format(self.captured_records[0]))

        self.assertEqual(entry["level"], "WARNING")
        self.assertEqual(entry["message"], "Scorer failed")
        self.assertEqual(entry["context"]["stage"], "score")
        self.assertTrue(entry["context"]["simulation_mode"])

    def test_exc_info_with_context(self):
        try:
            raise ValueError("Test error")
        except ValueError:
            self.logger.error("Caught error", exc_info=True, extra={"context": {"operation": "test"}})

        record = self.captured_records[0]
        self.assertIsNotNone(record.exc_info)
        entry = json.loads(JSONFormatter().format(record))
        self.assertIn("ValueError: Test error", entry["context"]["exception"])


if __name__ == "__main__":
    unittest.main()
