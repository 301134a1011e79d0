import os
import sqlite3
from datetime import date
from typing import Any, Iterable, List, Sequence

import anysqlite
import pytest

from varistore._utils import BaseClock

# Random or packed columns that would make snapshots unstable
HIDDEN_COLUMNS = frozenset({"id", "response_id", "data"})


def format_value(value: Any, col_name: str, col_type: str) -> str:
    """Format a value for display based on its type and column name."""

    if value is None:
        return "NULL"

    # Handle BLOB columns
    if col_type.upper() == "BLOB":
        if isinstance(value, bytes):
            try:
                decoded = value.decode("utf-8")
                # Show string if it's printable
                if all(32 <= ord(c) <= 126 or c in "\n\r\t" for c in decoded):
                    return f"(str) '{decoded}'"
            except UnicodeDecodeError:
                pass

            # Show hex representation for binary data
            hex_str = value.hex()
            if len(hex_str) > 64:
                return f"(bytes) 0x{hex_str[:60]}... ({len(value)} bytes)"
            return f"(bytes) 0x{hex_str} ({len(value)} bytes)"
        return repr(value)

    # Handle timestamps - ONLY show date, not the raw timestamp
    if col_name.endswith("_at") and isinstance(value, (int, float)):
        try:
            return date.fromtimestamp(value).isoformat()
        except (ValueError, OSError):
            return str(value)

    # Handle TEXT columns
    if col_type.upper() == "TEXT":
        return f"'{value}'"

    return str(value)


def _format_table(
    table_name: str, columns: Sequence[Any], rows: Sequence[Any], hidden: Iterable[str]
) -> List[str]:
    column_names = [col[1] for col in columns]
    column_types = {col[1]: col[2] for col in columns}
    hidden = set(hidden)

    output_lines = ["", f"TABLE: {table_name}", "-" * 80, f"Rows: {len(rows)}", ""]

    if not rows:
        output_lines.append("  (empty)")
        return output_lines

    for idx, row in enumerate(rows, 1):
        output_lines.append(f"  Row {idx}:")

        for col_name, value in zip(column_names, row):
            if col_name in hidden:
                continue
            formatted_value = format_value(value, col_name, column_types[col_name])
            output_lines.append(f"    {col_name:15} = {formatted_value}")

        if idx < len(rows):
            output_lines.append("")
    return output_lines


def _header() -> List[str]:
    return ["=" * 80, "DATABASE SNAPSHOT", "=" * 80]


def _footer() -> List[str]:
    return ["", "=" * 80]


def print_sqlite_state(conn: sqlite3.Connection, hidden: Iterable[str] = HIDDEN_COLUMNS) -> str:
    """
    Print all tables and their rows in a pretty format suitable for inline snapshots.

    Args:
        conn: SQLite database connection
        hidden: Columns left out of the output

    Returns:
        Formatted string representation of the database state
    """
    cursor = conn.cursor()

    cursor.execute("SELECT name FROM sqlite_master WHERE type='table' ORDER BY name")
    tables = [row[0] for row in cursor.fetchall()]

    output_lines = _header()
    for table_name in tables:
        cursor.execute(f"PRAGMA table_info({table_name})")
        columns = cursor.fetchall()
        cursor.execute(f"SELECT * FROM {table_name} ORDER BY rowid")
        rows = cursor.fetchall()
        output_lines.extend(_format_table(table_name, columns, rows, hidden))
    output_lines.extend(_footer())

    return "\n".join(output_lines)


async def aprint_sqlite_state(conn: anysqlite.Connection, hidden: Iterable[str] = HIDDEN_COLUMNS) -> str:
    """
    Print all tables and their rows in a pretty format suitable for inline snapshots.

    Args:
        conn: SQLite database connection
        hidden: Columns left out of the output

    Returns:
        Formatted string representation of the database state
    """
    cursor = await conn.cursor()

    await cursor.execute("SELECT name FROM sqlite_master WHERE type='table' ORDER BY name")
    tables = [row[0] for row in await cursor.fetchall()]

    output_lines = _header()
    for table_name in tables:
        await cursor.execute(f"PRAGMA table_info({table_name})")
        columns = await cursor.fetchall()
        await cursor.execute(f"SELECT * FROM {table_name} ORDER BY rowid")
        rows = await cursor.fetchall()
        output_lines.extend(_format_table(table_name, columns, rows, hidden))
    output_lines.extend(_footer())

    return "\n".join(output_lines)


@pytest.fixture()
def use_temp_dir(tmpdir):
    cur_dir = os.getcwd()
    os.chdir(tmpdir)
    yield
    os.chdir(cur_dir)


class FixedClock(BaseClock):
    def __init__(self, now: int) -> None:
        self.current = now

    def now(self) -> int:
        return self.current
