"""
Append-only result tables filled in by the finder and search scripts.

A table may be shared between threads; workers can also fill their own
table and have them merged once they are done.
"""

import threading
from dataclasses import asdict, dataclass, fields
from enum import Enum
from typing import Iterable

from columns_used import UsageRow


@dataclass(frozen=True)
class QueryRow:
    source_path: str
    query: str


@dataclass(frozen=True)
class FunctionRow:
    source_path: str
    function_name: str
    query: str


class DataTable:
    def __init__(self, name: str, description: str, row_type: type):
        self.name = name
        self.description = description
        self.row_type = row_type
        self._rows = []
        self._lock = threading.Lock()

    def insert_row(self, row) -> None:
        if not isinstance(row, self.row_type):
            raise TypeError(f"{self.name} holds {self.row_type.__name__} rows, got {type(row).__name__}")
        with self._lock:
            self._rows.append(row)

    @property
    def rows(self) -> list:
        with self._lock:
            return list(self._rows)

    @property
    def columns(self) -> list[str]:
        return [f.name for f in fields(self.row_type)]

    def __len__(self) -> int:
        with self._lock:
            return len(self._rows)

    def to_dicts(self) -> list[dict]:
        return [
            {key: value.value if isinstance(value, Enum) else value for key, value in asdict(row).items()}
            for row in self.rows
        ]


def database_columns_used() -> DataTable:
    return DataTable(
        "Database columns used",
        "Shows which database columns are read/written by a SQL statement.",
        UsageRow,
    )


def database_queries() -> DataTable:
    return DataTable("Database queries", "SQL queries matching a search.", QueryRow)


def database_functions() -> DataTable:
    return DataTable("Database functions", "SQL function calls matching a search.", FunctionRow)


def merge(tables: Iterable[DataTable]) -> DataTable:
    """Concatenate tables of the same kind, keeping their order."""
    tables = list(tables)
    if not tables:
        raise ValueError("Nothing to merge")

    first = tables[0]
    merged = DataTable(first.name, first.description, first.row_type)
    for table in tables:
        if table.row_type is not first.row_type:
            raise TypeError(f"Cannot merge {table.name} into {first.name}")
        for row in table.rows:
            merged.insert_row(row)
    return merged


def format_as_markdown(table: DataTable) -> str:
    """Format a table's rows as a Markdown table."""
    columns = table.columns
    lines = [f"## {table.name}\n"]
    lines.append("| " + " | ".join(columns) + " |")
    lines.append("|" + "|".join("---" for _ in columns) + "|")
    for row in table.to_dicts():
        cells = ["" if row[c] is None else str(row[c]).replace("|", "\\|").replace("\n", " ") for c in columns]
        lines.append("| " + " | ".join(cells) + " |")
    if not len(table):
        lines.append("")
        lines.append("_No rows._")
    return "\n".join(lines)
