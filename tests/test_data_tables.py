"""Tests for data_tables.py."""

import sys
import threading
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent / "skills" / "embedded-sql" / "scripts"))

from columns_used import Operation, UsageRow
from data_tables import (
    FunctionRow,
    QueryRow,
    database_columns_used,
    database_functions,
    database_queries,
    format_as_markdown,
    merge,
)


def usage_row(table: str, column: str | None = "a") -> UsageRow:
    return UsageRow("q.sql", 1, None, Operation.SELECT, table, column)


class TestDataTable:
    def test_insert_and_read(self):
        used = database_columns_used()
        used.insert_row(usage_row("t"))
        assert len(used) == 1
        assert used.rows == [usage_row("t")]

    def test_rows_of_the_wrong_type_are_rejected(self):
        used = database_columns_used()
        with pytest.raises(TypeError):
            used.insert_row(QueryRow("q.sql", "select 1"))

    def test_to_dicts_uses_enum_values(self):
        used = database_columns_used()
        used.insert_row(usage_row("t", None))
        assert used.to_dicts() == [{
            "source_path": "q.sql",
            "line_number": 1,
            "revision": None,
            "operation": "SELECT",
            "table": "t",
            "column": None,
        }]

    def test_columns(self):
        assert database_functions().columns == ["source_path", "function_name", "query"]
        assert database_queries().columns == ["source_path", "query"]

    def test_concurrent_inserts(self):
        used = database_columns_used()

        def worker(n):
            for i in range(100):
                used.insert_row(usage_row(f"t{n}", f"c{i}"))

        threads = [threading.Thread(target=worker, args=(n,)) for n in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert len(used) == 800


class TestMerge:
    def test_keeps_order(self):
        first = database_columns_used()
        first.insert_row(usage_row("t1"))
        second = database_columns_used()
        second.insert_row(usage_row("t2"))
        second.insert_row(usage_row("t3"))

        merged = merge([first, second])
        assert [row.table for row in merged.rows] == ["t1", "t2", "t3"]
        assert merged.name == first.name

    def test_nothing_to_merge(self):
        with pytest.raises(ValueError):
            merge([])

    def test_different_row_types(self):
        with pytest.raises(TypeError):
            merge([database_queries(), database_functions()])


class TestMarkdown:
    def test_rows(self):
        functions = database_functions()
        functions.insert_row(FunctionRow("q.sql", "nvl", "SELECT COALESCE(a, b) FROM t | x"))
        output = format_as_markdown(functions)
        assert output.startswith("## Database functions")
        assert "| source_path | function_name | query |" in output
        assert "| q.sql | nvl | SELECT COALESCE(a, b) FROM t \\| x |" in output

    def test_empty(self):
        assert "_No rows._" in format_as_markdown(database_queries())
