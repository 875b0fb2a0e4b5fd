"""
Converts dynamically shaped driver rows into a uniform, display-safe table.
"""
import base64
from dataclasses import dataclass
from datetime import date, datetime, time
from decimal import Decimal
from typing import Any, List, Sequence

NULL_SENTINEL = "null"


@dataclass(frozen=True)
class ShapedResult:
    columns: List[str]
    rows: List[List[str]]

    @property
    def row_count(self) -> int:
        return len(self.rows)


def display_value(value: Any) -> str:
    """Single stringification rule for every cell"""
    if value is None:
        return NULL_SENTINEL
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (datetime, date, time)):
        return value.isoformat()
    if isinstance(value, Decimal):
        return format(value, 'f')
    if isinstance(value, (bytes, bytearray, memoryview)):
        return base64.b64encode(bytes(value)).decode('ascii')
    return str(value)


def shape(raw_rows: Sequence[Any]) -> ShapedResult:
    """
    Column names come from the first row; an empty result is a valid, empty
    table. Rows may be asyncpg Records or plain mappings and are kept in the
    order the engine returned them.
    """
    if not raw_rows:
        return ShapedResult(columns=[], rows=[])

    columns = [str(name) for name in raw_rows[0].keys()]
    rows = [[display_value(value) for value in row.values()] for row in raw_rows]
    return ShapedResult(columns=columns, rows=rows)
