#!/usr/bin/env -S uv run --script
# /// script
# requires-python = ">=3.11"
# dependencies = [
#     "sqlglot[rs]>=26.0.0",
# ]
# ///
"""
Find calls to a SQL function by name.

The name is a case-insensitive glob: * matches any run of characters and ?
matches one character.

Usage:
    uv run find_function.py "select nvl(a, b) from t" --function nvl
    uv run find_function.py @query.sql --function "to_*" --format text
"""

import argparse
import json
import logging
import re
import sys
from dataclasses import dataclass

from columns_used import to_posix
from data_tables import DataTable, FunctionRow, QueryRow, database_functions, database_queries
from sql_query import HostNode, PlainText, SqlQuery, SqlSerializer, found, render

logger = logging.getLogger(__name__)


class GlobPattern:
    """Case-insensitive glob over function names."""

    def __init__(self, pattern: str):
        self.pattern = pattern
        regex = "".join(
            ".*" if c == "*" else "." if c == "?" else re.escape(c)
            for c in pattern
        )
        self._regex = re.compile(regex, re.IGNORECASE | re.DOTALL)

    def matches(self, name: str | None) -> bool:
        return name is not None and self._regex.fullmatch(name) is not None

    def __eq__(self, other) -> bool:
        if isinstance(other, GlobPattern):
            return self.pattern.lower() == other.pattern.lower()
        return NotImplemented

    def __hash__(self) -> int:
        return hash(self.pattern.lower())

    def __repr__(self) -> str:
        return f"GlobPattern({self.pattern!r})"


@dataclass(frozen=True)
class FunctionMatch:
    source_path: str
    function_name: str
    query_text: str


def as_pattern(pattern: str | GlobPattern) -> GlobPattern:
    return pattern if isinstance(pattern, GlobPattern) else GlobPattern(pattern)


def find_calls(query: SqlQuery, pattern: str | GlobPattern, source_path: str = "") -> list[FunctionMatch]:
    """One match per call to a function whose name matches pattern."""
    pattern = as_pattern(pattern)
    sites = [site for site in query.call_sites() if pattern.matches(site.name)]
    if not sites:
        return []

    query_text = query.map_sql(SqlSerializer())
    return [FunctionMatch(to_posix(source_path), site.name.lower(), query_text) for site in sites]


def find_function(
    node: HostNode,
    pattern: str | GlobPattern,
    queries: DataTable,
    functions: DataTable,
    dialect: str | None = None,
) -> HostNode:
    """Record every matching call in node and mark node when there is one."""
    query = SqlQuery.view_of(node, dialect)
    if query is None:
        return node

    matches = find_calls(query, pattern, node.source_path)
    for match in matches:
        logger.debug("Found %s() in %s", match.function_name, match.source_path)
        queries.insert_row(QueryRow(match.source_path, match.query_text))
        functions.insert_row(FunctionRow(match.source_path, match.function_name, match.query_text))

    return found(node) if matches else node


def read_input(value: str) -> str:
    """Read from file if value starts with @, otherwise return as-is."""
    if value.startswith("@"):
        try:
            with open(value[1:], "r", encoding="utf-8") as f:
                return f.read()
        except FileNotFoundError:
            sys.exit(f"Error: File not found: {value[1:]}")
        except Exception as e:
            sys.exit(f"Error reading file {value[1:]}: {e}")
    return value


def search(sql: str, function: str, source_path: str = "", dialect: str | None = None) -> dict:
    """Search one piece of SQL text for calls to function."""
    queries = database_queries()
    functions = database_functions()
    node = PlainText(sql, source_path)

    if SqlQuery.view_of(node, dialect) is None:
        return {
            "success": False,
            "error": "Input is not SQL that can be parsed",
            "hint": "Check SQL syntax and dialect setting.",
        }

    marked = find_function(node, function, queries, functions, dialect)
    return {
        "success": True,
        "function": function,
        "matches": functions.to_dicts(),
        "marked": render(marked),
    }


def main():
    parser = argparse.ArgumentParser(description="Find SQL function calls by name")
    parser.add_argument("sql", help="SQL query or @filepath")
    parser.add_argument("--function", "-n", required=True, help="Function name, glob patterns allowed")
    parser.add_argument("--dialect", "-d", default=None)
    parser.add_argument("--format", "-f", choices=["json", "text"], default="json")
    parser.add_argument("--verbose", "-v", action="store_true")

    args = parser.parse_args()
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    source_path = args.sql[1:] if args.sql.startswith("@") else ""
    result = search(read_input(args.sql), args.function, source_path, args.dialect)

    if args.format == "text" and result.get("success"):
        print(result["marked"])
    else:
        print(json.dumps(result, indent=2))

    sys.exit(0 if result.get("success") else 1)


if __name__ == "__main__":
    main()
