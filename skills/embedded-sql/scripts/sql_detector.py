#!/usr/bin/env -S uv run --script
# /// script
# requires-python = ">=3.11"
# dependencies = [
#     "sqlglot[rs]>=26.0.0",
# ]
# ///
"""
Decide whether a piece of text is SQL.

A keyword heuristic rejects most text before sqlglot is asked to parse it.
Text that passes the heuristic but does not parse is treated as "not SQL"
and is never reported as an error.

Usage:
    uv run sql_detector.py "UPDATE tab SET x = y"
    uv run sql_detector.py @query.sql --dialect postgres
"""

import argparse
import json
import logging
import re
import sys
from dataclasses import dataclass

import sqlglot
from sqlglot import exp
from sqlglot.errors import SqlglotError

from columns_used import Location, UsageRow, extract

logger = logging.getLogger(__name__)

SIMPLE_SQL_HEURISTIC = re.compile(r"SELECT|UPDATE|DELETE|INSERT", re.IGNORECASE)
SIMPLE_DDL_HEURISTIC = re.compile(r"CREATE|ALTER|DROP|TRUNCATE", re.IGNORECASE)

# sqlglot happily parses a lone word as a column reference, so only these
# roots count as statements. exp.Command, sqlglot's fallback for text after
# CREATE, DROP or ALTER that it cannot parse, is not one of them.
STATEMENT_TYPES = (
    exp.Query,
    exp.DML,
    exp.Create,
    exp.Drop,
    exp.Alter,
    exp.TruncateTable,
)


@dataclass(frozen=True)
class ParseFailure:
    """Text that passed the heuristic but is not a statement sqlglot understands."""

    text: str
    error: str


def probably_sql(text: str | None) -> bool:
    return text is not None and SIMPLE_SQL_HEURISTIC.search(text) is not None


def probably_ddl(text: str | None) -> bool:
    return text is not None and SIMPLE_DDL_HEURISTIC.search(text) is not None


def parse(text: str, dialect: str | None = None) -> exp.Expression | ParseFailure:
    """Parse the first statement in text, or describe why it is not SQL."""
    expression = parse_expression(text, dialect)
    if isinstance(expression, ParseFailure) or isinstance(expression, STATEMENT_TYPES):
        return expression

    error = f"Expected a SQL statement, got {type(expression).__name__}"
    logger.debug(error)
    return ParseFailure(text, error)


def parse_expression(text: str, dialect: str | None = None) -> exp.Expression | ParseFailure:
    """Parse text as any SQL expression, a statement or a fragment such as a function call."""
    try:
        return sqlglot.parse_one(text, dialect=dialect)
    except SqlglotError as e:
        logger.debug("Not parseable as SQL: %s", e)
        return ParseFailure(text, str(e))


def parse_segments(text: str, dialect: str | None = None) -> list[exp.Expression | ParseFailure]:
    """Parse every non-blank ';' separated segment of text."""
    return [parse(segment, dialect) for segment in text.split(";") if segment.strip()]


def is_sql(text: str | None, dialect: str | None = None) -> bool:
    """
    Check that every ';' separated segment of text parses.

    A ';' inside a string literal or a procedural block splits the statement
    and usually makes this return False.
    """
    if not (probably_sql(text) or probably_ddl(text)):
        return False

    parsed = parse_segments(text, dialect)
    return bool(parsed) and not any(isinstance(p, ParseFailure) for p in parsed)


def rows(
    source_path: str,
    line_number: int,
    text: str | None,
    revision: str | None = None,
    dialect: str | None = None,
) -> list[UsageRow]:
    """Usage rows for text, or nothing when it is not SQL."""
    if not probably_sql(text):
        return []

    statement = parse(text, dialect)
    if isinstance(statement, ParseFailure):
        return []

    return extract(statement, Location(source_path, line_number, revision))


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


def detect(text: str, dialect: str | None = None) -> dict:
    """Summarize what the heuristics and the parser think of text."""
    gated = probably_sql(text) or probably_ddl(text)
    parsed = parse_segments(text, dialect) if gated else []
    failures = [p for p in parsed if isinstance(p, ParseFailure)]
    statements = [p for p in parsed if not isinstance(p, ParseFailure)]
    return {
        "success": True,
        "probably_sql": probably_sql(text),
        "probably_ddl": probably_ddl(text),
        "is_sql": bool(parsed) and not failures,
        "statement_type": type(statements[0]).__name__.upper() if statements else None,
        "error": failures[0].error if failures else None,
    }


def main():
    parser = argparse.ArgumentParser(description="Check whether text is SQL")
    parser.add_argument("sql", help="Text to check, or @filepath")
    parser.add_argument("--dialect", "-d", default=None)
    parser.add_argument("--verbose", "-v", action="store_true", help="Log parser diagnostics")

    args = parser.parse_args()
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    result = detect(read_input(args.sql), args.dialect)
    print(json.dumps(result, indent=2))

    sys.exit(0 if result["is_sql"] else 1)


if __name__ == "__main__":
    main()
