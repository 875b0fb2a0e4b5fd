"""
Unit tests for result shaping
"""

import unittest
from datetime import date, datetime
from decimal import Decimal

from query_gateway.result_shaper import NULL_SENTINEL, display_value, shape


class TestResultShaper(unittest.TestCase):

    def test_columns_and_rows_in_engine_order(self):
        result = shape([
            {"name": "Ken Griffey Jr.", "year": 1989},
            {"name": "Derek Jeter", "year": 1993},
        ])

        self.assertEqual(result.columns, ["name", "year"])
        self.assertEqual(result.rows, [["Ken Griffey Jr.", "1989"], ["Derek Jeter", "1993"]])
        self.assertEqual(result.row_count, 2)

    def test_null_distinct_from_empty_string(self):
        result = shape([{"a": None, "b": ""}])

        self.assertEqual(result.rows, [[NULL_SENTINEL, ""]])
        self.assertNotEqual(result.rows[0][0], result.rows[0][1])

    def test_empty_result(self):
        result = shape([])
        self.assertEqual(result.columns, [])
        self.assertEqual(result.rows, [])
        self.assertEqual(result.row_count, 0)

    def test_value_rendering(self):
        self.assertEqual(display_value(True), "true")
        self.assertEqual(display_value(False), "false")
        self.assertEqual(display_value(3), "3")
        self.assertEqual(display_value(Decimal("1E+2")), "100")
        self.assertEqual(display_value(Decimal("19.99")), "19.99")
        self.assertEqual(display_value(date(2024, 1, 31)), "2024-01-31")
        self.assertEqual(display_value(datetime(2024, 1, 31, 8, 30)), "2024-01-31T08:30:00")
        self.assertEqual(display_value(b"\x00\x01"), "AAE=")

    def test_every_row_has_one_cell_per_column(self):
        result = shape([{"id": i, "grade": None if i % 2 else i * 1.5} for i in range(5)])
        for row in result.rows:
            self.assertEqual(len(row), len(result.columns))


if __name__ == '__main__':
    unittest.main()
