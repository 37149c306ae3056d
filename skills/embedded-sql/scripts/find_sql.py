#!/usr/bin/env -S uv run --script
# /// script
# requires-python = ">=3.11"
# dependencies = [
#     "sqlglot[rs]>=26.0.0",
# ]
# ///
"""
Find SQL in resource files and report the database columns it uses.

Every .sql file is read as one piece of text. Each SELECT, UPDATE and DELETE
yields one row per table/column it touches; text that is not SQL is skipped
silently.

Usage:
    uv run find_sql.py "SELECT name FROM users"
    uv run find_sql.py @schema/reports.sql --revision 3f2a9c1
    uv run find_sql.py --path src/main/resources --jobs 4 --format markdown
"""

import argparse
import json
import logging
import sys
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Iterable

from columns_used import to_posix
from data_tables import DataTable, database_columns_used, format_as_markdown, merge
from sql_detector import rows
from sql_query import HostNode, PlainText, found, line_number_of, render, text_of

logger = logging.getLogger(__name__)

SQL_SUFFIX = ".sql"


def find_sql(
    node: HostNode,
    used: DataTable,
    revision: str | None = None,
    dialect: str | None = None,
) -> HostNode:
    """Record the columns used by the SQL in node and mark node when there are any."""
    found_rows = rows(to_posix(node.source_path), line_number_of(node), text_of(node), revision, dialect)
    for row in found_rows:
        used.insert_row(row)
        node = found(node)
    return node


def scan_text(
    text: str,
    source_path: str = "",
    line_number: int = 1,
    revision: str | None = None,
    dialect: str | None = None,
) -> DataTable:
    """Columns used by one piece of SQL text starting at line_number."""
    used = database_columns_used()
    for row in rows(to_posix(source_path), line_number, text, revision, dialect):
        used.insert_row(row)
    return used


def scan_file(path: Path, revision: str | None = None, dialect: str | None = None) -> DataTable:
    """Columns used by one .sql file."""
    used = database_columns_used()
    try:
        text = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        logger.warning("Skipping %s: %s", path, e)
        return used

    marked = find_sql(PlainText(text, str(path)), used, revision, dialect)
    if marked.markers:
        logger.info("Found SQL in %s", path)
    return used


def sql_files(paths: Iterable[str | Path]) -> list[Path]:
    """The .sql files named by paths, directories searched recursively."""
    files = []
    for path in map(Path, paths):
        if path.is_dir():
            files.extend(sorted(p for p in path.rglob(f"*{SQL_SUFFIX}") if p.is_file()))
        elif path.suffix.lower() == SQL_SUFFIX:
            files.append(path)
        else:
            logger.debug("Skipping %s, not a %s file", path, SQL_SUFFIX)
    return files


def scan_files(
    paths: Iterable[str | Path],
    jobs: int = 1,
    revision: str | None = None,
    dialect: str | None = None,
) -> DataTable:
    """
    Scan .sql files, in parallel when jobs > 1.

    Each file is collected into its own table; the tables are merged in the
    order the files were given once every file has been scanned.
    """
    files = sql_files(paths)
    if not files:
        return database_columns_used()

    with ThreadPoolExecutor(max_workers=max(1, jobs)) as executor:
        tables = list(executor.map(lambda path: scan_file(path, revision, dialect), files))
    return merge(tables)


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


def main():
    parser = argparse.ArgumentParser(description="Find SQL and the database columns it uses")
    parser.add_argument("sql", nargs="*", help="SQL text or @filepath, repeatable")
    parser.add_argument("--path", "-p", action="append", default=[], help="A .sql file or a directory to search")
    parser.add_argument("--line", type=int, default=1, help="Line number the SQL text starts on")
    parser.add_argument("--revision", "-r", default=None, help="Revision recorded with each row")
    parser.add_argument("--dialect", "-d", default=None)
    parser.add_argument("--jobs", "-j", type=int, default=1)
    parser.add_argument("--format", "-f", choices=["json", "markdown", "text"], default="json")
    parser.add_argument("--verbose", "-v", action="store_true")

    args = parser.parse_args()
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    if not args.sql and not args.path:
        parser.error("give SQL text, an @filepath or --path")

    tables = []
    marked = []
    for value in args.sql:
        source_path = value[1:] if value.startswith("@") else ""
        text = read_input(value)
        tables.append(scan_text(text, source_path, args.line, args.revision, args.dialect))
        if args.format == "text":
            marked.append(render(find_sql(PlainText(text, source_path), database_columns_used(), dialect=args.dialect)))
    if args.path:
        tables.append(scan_files(args.path, args.jobs, args.revision, args.dialect))

    used = merge(tables)
    if args.format == "markdown":
        print(format_as_markdown(used))
    elif args.format == "text":
        print("\n".join(marked))
    else:
        print(json.dumps({"success": True, "count": len(used), "rows": used.to_dicts()}, indent=2))

    sys.exit(0)


if __name__ == "__main__":
    main()
