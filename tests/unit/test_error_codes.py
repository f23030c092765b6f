# PATH: tests/unit/test_error_codes.py
"""
Unit tests for ErrorCode contract.

Ensures every ErrorCode.XXXX referenced in source actually exists in the
enum, so a typo fails here instead of at runtime inside an except block.

Run: python -m pytest tests/unit/test_error_codes.py -v
"""

import re
import unittest
from pathlib import Path
from typing import Set

from core.exceptions import ErrorCode

PROJECT_ROOT = Path(__file__).parent.parent.parent


class TestErrorCodeContract(unittest.TestCase):
    """Test that all ErrorCode usages in codebase are valid."""

    # Files to scan for ErrorCode usage
    SCAN_PATTERNS = [
        "core/**/*.py",
        "chains/**/*.py",
        "dex/**/*.py",
        "strategy/**/*.py",
        "ai/**/*.py",
        "execution/**/*.py",
        "data/**/*.py",
        "monitoring/**/*.py",
    ]

    def find_errorcode_usages(self, filepath: Path) -> Set[str]:
        """Names referenced as ErrorCode.SOMETHING."""
        content = filepath.read_text(encoding="utf-8")
        return set(re.findall(r"ErrorCode\.([A-Z_]+)", content))

    def test_all_errorcode_enum_usages_exist(self):
        valid_names = {code.name for code in ErrorCode}

        all_usages = set()
        files_scanned = 0
        for pattern in self.SCAN_PATTERNS:
            for filepath in PROJECT_ROOT.glob(pattern):
                if "__pycache__" in str(filepath):
                    continue
                all_usages.update(self.find_errorcode_usages(filepath))
                files_scanned += 1

        invalid_usages = all_usages - valid_names
        self.assertEqual(
            invalid_usages,
            set(),
            f"Invalid ErrorCode usages found: {invalid_usages}\n"
            f"Valid codes: {sorted(valid_names)}"
        )
        self.assertGreater(files_scanned, 0, "No files scanned!")

    def test_no_duplicate_error_code_values(self):
        values = [code.value for code in ErrorCode]
        duplicates = [v for v in values if values.count(v) > 1]
        self.assertEqual(duplicates, [], f"Duplicate ErrorCode values: {set(duplicates)}")

    def test_errorcode_values_are_upper_snake_case(self):
        for code in ErrorCode:
            self.assertEqual(code.value, code.name)
            self.assertRegex(
                code.value,
                r"^[A-Z][A-Z0-9_]+$",
                f"ErrorCode.{code.name} value should be UPPER_SNAKE_CASE: {code.value}"
            )


class TestErrorCodeCompleteness(unittest.TestCase):
    """ErrorCode has the codes each fail-closed path reports."""

    def setUp(self):
        self.codes = {code.value for code in ErrorCode}

    def test_has_infrastructure_codes(self):
        for code in ("INFRA_RPC_ERROR", "INFRA_TIMEOUT", "INFRA_NO_ENDPOINTS"):
            self.assertIn(code, self.codes)

    def test_has_scorer_codes(self):
        for code in ("SCORER_ERROR", "SCORER_TIMEOUT", "SCORER_MALFORMED"):
            self.assertIn(code, self.codes)

    def test_has_dispatch_codes(self):
        for code in (
            "EXEC_GAS_ESTIMATE_FAILED",
            "EXEC_BROADCAST_FAILED",
            "EXEC_RECEIPT_TIMEOUT",
            "EXEC_REVERTED",
            "EXEC_SIMULATION_REVERTED",
            "RELAY_ERROR",
        ):
            self.assertIn(code, self.codes)

    def test_has_startup_codes(self):
        self.assertIn("STARTUP_MISSING_KEY", self.codes)
        self.assertIn("STARTUP_NO_ENDPOINTS", self.codes)


if __name__ == "__main__":
    unittest.main()
