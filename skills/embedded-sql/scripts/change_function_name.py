#!/usr/bin/env -S uv run --script
# /// script
# requires-python = ">=3.11"
# dependencies = [
#     "sqlglot[rs]>=26.0.0",
# ]
# ///
"""
Rename a SQL function, changing nothing but the function name.

When migrating between dialects one name can often be substituted for
another, e.g. Oracle's NVL for Postgres' COALESCE. The new name follows the
casing of the name it replaces.

Usage:
    uv run change_function_name.py "select nvl(a, b) from t" --old nvl --new coalesce
    uv run change_function_name.py @query.sql --old "nvl*" --new coalesce --sql-only
"""

import argparse
import json
import logging
import sys

from change_tracking import ChangeTrackingSerializer, apply_change
from columns_used import to_posix
from data_tables import DataTable, QueryRow
from find_function import GlobPattern, as_pattern
from sql_query import CallSite, HostNode, PlainText, SqlQuery

logger = logging.getLogger(__name__)


def match_case(original: str, name: str) -> str:
    if original.isupper():
        return name.upper()
    if original.islower():
        return name.lower()
    return name


class FunctionRenamer(ChangeTrackingSerializer):
    def __init__(self, old_name: str | GlobPattern, new_name: str):
        self.pattern = as_pattern(old_name)
        self.new_name = new_name

    def replacement(self, call_site: CallSite) -> str | None:
        if self.pattern.matches(call_site.name):
            return match_case(call_site.name, self.new_name)
        return None


def change_function_name(
    node: HostNode,
    old_name: str | GlobPattern,
    new_name: str,
    queries: DataTable | None = None,
    dialect: str | None = None,
) -> HostNode:
    """Rename every call to old_name in node; node comes back as is when nothing matches."""
    query = SqlQuery.view_of(node, dialect)
    if query is None:
        return node

    renamer = FunctionRenamer(old_name, new_name)
    if queries is not None and any(renamer.pattern.matches(site.name) for site in query.call_sites()):
        queries.insert_row(QueryRow(to_posix(node.source_path), query.text))

    return query.rewrite(renamer)


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


def rename_function_in_sql(sql: str, old_name: str, new_name: str, dialect: str | None = None) -> dict:
    """Rename a function in one piece of SQL text."""
    query = SqlQuery.view_of(PlainText(sql), dialect)
    if query is None:
        return {
            "success": False,
            "error": "Input is not SQL that can be parsed",
            "hint": "Check SQL syntax and dialect setting.",
        }

    tracked = FunctionRenamer(old_name, new_name).render(query)
    return {
        "success": True,
        "original": sql,
        "renamed": apply_change(sql, tracked),
        "changes": [
            {"old": c.old, "new": c.new, "start": c.replaced.start, "end": c.replaced.end}
            for c in tracked.changes
        ],
    }


def main():
    parser = argparse.ArgumentParser(description="Rename a SQL function")
    parser.add_argument("sql", help="SQL query or @filepath")
    parser.add_argument("--old", required=True, help="Function to rename, case insensitive glob")
    parser.add_argument("--new", required=True, help="New function name")
    parser.add_argument("--dialect", "-d", default=None)
    parser.add_argument("--sql-only", action="store_true", help="Output only the renamed SQL")
    parser.add_argument("--in-place", action="store_true", help="Rewrite the @file instead of printing")
    parser.add_argument("--verbose", "-v", action="store_true")

    args = parser.parse_args()
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    if args.in_place and not args.sql.startswith("@"):
        sys.exit("Error: --in-place needs an @filepath")

    result = rename_function_in_sql(read_input(args.sql), args.old, args.new, args.dialect)

    if args.in_place and result.get("success"):
        if result["changes"]:
            with open(args.sql[1:], "w", encoding="utf-8") as f:
                f.write(result["renamed"])
            logger.info("Renamed %d call(s) in %s", len(result["changes"]), args.sql[1:])
        print(f"{len(result['changes'])} call(s) renamed in {args.sql[1:]}")
    elif args.sql_only and result.get("success"):
        print(result["renamed"], end="" if result["renamed"].endswith("\n") else "\n")
    else:
        print(json.dumps(result, indent=2))

    sys.exit(0 if result.get("success") else 1)


if __name__ == "__main__":
    main()
