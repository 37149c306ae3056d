#!/usr/bin/env -S uv run --script
# /// script
# requires-python = ">=3.11"
# dependencies = [
#     "sqlglot[rs]>=26.0.0",
# ]
# ///
"""
Format SQL with sqlglot's pretty printer.

Text blocks (triple-quoted string literals) holding SQL are formatted in
place and keep the indentation of the block they came from. Formatting
already formatted SQL changes nothing.

Usage:
    uv run format_sql.py "select a, b from t where x = 1"
    uv run format_sql.py @query.sql --dialect postgres --pad 4
    uv run format_sql.py @Query.java.txt --text-block --tab-size 4
"""

import argparse
import json
import logging
import sys
from dataclasses import dataclass

import sqlglot
from sqlglot.errors import SqlglotError

from reindent import IndentStyle
from sql_detector import is_sql
from sql_query import HostNode, StringLiteral, text_block_literal, with_sql

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FormatOptions:
    dialect: str | None = None
    pad: int = 2
    indent: int = 2
    max_text_width: int = 80
    leading_comma: bool = False
    # "upper", "lower" or False to keep function names as written
    normalize_functions: str | bool = "upper"


def format_sql(text: str, options: FormatOptions | None = None) -> str:
    """
    Pretty-print every statement in text.

    Statements are separated by ";" and a new line; a trailing ";" is kept.
    Raises sqlglot's errors when text does not parse.
    """
    options = options or FormatOptions()
    statements = [s for s in sqlglot.parse(text, read=options.dialect) if s is not None]

    formatted = ";\n".join(
        statement.sql(
            dialect=options.dialect,
            pretty=True,
            pad=options.pad,
            indent=options.indent,
            max_text_width=options.max_text_width,
            leading_comma=options.leading_comma,
            normalize_functions=options.normalize_functions,
        )
        for statement in statements
    )
    if statements and text.rstrip().endswith(";"):
        formatted += ";"
    return formatted


def format_text_block(
    node: HostNode,
    options: FormatOptions | None = None,
    style: IndentStyle | None = None,
) -> HostNode:
    """Format the SQL in a text block; any other node comes back unchanged."""
    if not isinstance(node, StringLiteral) or not node.is_text_block:
        return node

    options = options or FormatOptions()
    if not is_sql(node.value, options.dialect):
        return node

    try:
        formatted = format_sql(node.value, options)
    except SqlglotError as e:
        logger.warning("Could not format SQL in %s: %s", node.source_path or "<unknown>", e)
        return node

    if formatted == node.value:
        return node
    return with_sql(node, formatted, style)


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


def format_input(
    text: str,
    options: FormatOptions,
    text_block: bool = False,
    style: IndentStyle | None = None,
) -> dict:
    """Format SQL text, or a text block as written when text_block is set."""
    if text_block:
        try:
            node = text_block_literal(text.strip())
        except ValueError as e:
            return {"success": False, "error": str(e), "hint": 'Pass the literal including its """ delimiters.'}
        formatted = format_text_block(node, options, style)
        return {
            "success": True,
            "is_sql": is_sql(node.value, options.dialect),
            "changed": formatted is not node,
            "formatted": formatted.value_source,
        }

    try:
        formatted = format_sql(text, options)
    except SqlglotError as e:
        return {
            "success": False,
            "error": str(e),
            "hint": "Check SQL syntax and dialect setting.",
        }
    return {"success": True, "changed": formatted != text, "formatted": formatted}


def main():
    parser = argparse.ArgumentParser(description="Format SQL")
    parser.add_argument("sql", help="SQL query or @filepath")
    parser.add_argument("--dialect", "-d", default=None)
    parser.add_argument("--pad", type=int, default=2, help="Indentation of projections")
    parser.add_argument("--indent", type=int, default=2, help="Indentation of nested clauses")
    parser.add_argument("--max-text-width", type=int, default=80)
    parser.add_argument("--leading-comma", action="store_true")
    parser.add_argument(
        "--functions",
        choices=["upper", "lower", "keep"],
        default="upper",
        help="Case of function names",
    )
    parser.add_argument("--text-block", action="store_true", help='Input is a """ text block as written')
    parser.add_argument("--tab-size", type=int, default=4)
    parser.add_argument("--use-tabs", action="store_true")
    parser.add_argument("--json", action="store_true", help="Output a JSON result instead of the SQL")
    parser.add_argument("--verbose", "-v", action="store_true")

    args = parser.parse_args()
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    options = FormatOptions(
        dialect=args.dialect,
        pad=args.pad,
        indent=args.indent,
        max_text_width=args.max_text_width,
        leading_comma=args.leading_comma,
        normalize_functions=False if args.functions == "keep" else args.functions,
    )
    style = IndentStyle(args.tab_size, args.use_tabs)
    result = format_input(read_input(args.sql), options, args.text_block, style)

    if args.json or not result.get("success"):
        print(json.dumps(result, indent=2))
    else:
        print(result["formatted"])

    sys.exit(0 if result.get("success") else 1)


if __name__ == "__main__":
    main()
