"""
Which database columns a SQL statement reads or writes.

Rows come out in the order the columns appear in the statement. Each
SELECT, including every nested one, is attributed to its own FROM table;
UPDATE reports the assigned columns and DELETE reports whole tables.
INSERT is a known gap: the operation exists but no rows are produced for it.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Iterator, NamedTuple

from sqlglot import exp


class Operation(str, Enum):
    SELECT = "SELECT"
    UPDATE = "UPDATE"
    INSERT = "INSERT"
    DELETE = "DELETE"


@dataclass(frozen=True)
class UsageRow:
    """One table/column touched by one statement."""

    source_path: str
    line_number: int
    revision: str | None
    operation: Operation
    table: str
    # None for a DELETE, which touches the whole table.
    column: str | None


class Location(NamedTuple):
    source_path: str
    line_number: int = 1
    revision: str | None = None


class Context(NamedTuple):
    operation: Operation
    table: str | None = None


def to_posix(path) -> str:
    return str(path).replace("\\", "/")


def extract(statement: exp.Expression, location: Location) -> list[UsageRow]:
    """Usage rows for a parsed statement, in order of appearance."""
    if isinstance(statement, exp.Update):
        return list(update_rows(statement, location))
    if isinstance(statement, exp.Delete):
        return list(delete_rows(statement, location))
    if isinstance(statement, exp.Query):
        return list(select_rows(statement, Context(Operation.SELECT), location))
    return []


def select_rows(node: exp.Expression, context: Context, location: Location) -> Iterator[UsageRow]:
    if isinstance(node, exp.Select):
        table = from_table(node)
        if table:
            scoped = context._replace(table=table)
            for projection in node.expressions:
                for column in projected_columns(projection):
                    yield make_row(location, scoped, column)

    # Every nested SELECT starts over from the outer context, so a table
    # bound here never leaks into a subquery or a set operation branch.
    for nested in nested_selects(node):
        yield from select_rows(nested, context, location)


def update_rows(update: exp.Update, location: Location) -> Iterator[UsageRow]:
    table = table_name(update.this)
    if not table:
        return

    context = Context(Operation.UPDATE, table)
    for assignment in update.expressions:
        target = assignment.this if isinstance(assignment, exp.EQ) else assignment
        for column in columns_outside_subqueries(target):
            if column.name:
                yield make_row(location, context, column.name)


def delete_rows(delete: exp.Delete, location: Location) -> Iterator[UsageRow]:
    # Multi-table deletes name their targets before FROM; the FROM table is
    # reported again after them.
    targets = list(delete.args.get("tables") or [])
    if delete.this is not None:
        targets.append(delete.this)

    context = Context(Operation.DELETE)
    for target in targets:
        table = table_name(target)
        if table:
            yield make_row(location, context._replace(table=table), None)


def from_table(select: exp.Select) -> str | None:
    """Name of the FROM source when it is a plain table."""
    from_expr = select.args.get("from") or select.args.get("from_")
    if isinstance(from_expr, exp.From):
        return table_name(from_expr.this)
    return None


def table_name(node: exp.Expression | None) -> str | None:
    if isinstance(node, exp.Table) and node.name:
        return node.name
    return None


def projected_columns(projection: exp.Expression) -> Iterator[str]:
    """Column names referenced by one projection, wildcards included."""
    if isinstance(projection, exp.Star):
        yield projection.sql()
        return
    if isinstance(projection, exp.Column) and isinstance(projection.this, exp.Star):
        yield projection.sql()
        return

    for column in columns_outside_subqueries(projection):
        if column.name and not isinstance(column.this, exp.Star):
            yield column.name


def columns_outside_subqueries(node: exp.Expression) -> Iterator[exp.Column]:
    if isinstance(node, exp.Column):
        yield node
        return
    for child in node.iter_expressions():
        if not isinstance(child, exp.Query):
            yield from columns_outside_subqueries(child)


def nested_selects(node: exp.Expression) -> Iterator[exp.Select]:
    """The closest SELECTs below node, without descending into them."""
    for child in node.iter_expressions():
        if isinstance(child, exp.Select):
            yield child
        else:
            yield from nested_selects(child)


def make_row(location: Location, context: Context, column: str | None) -> UsageRow:
    return UsageRow(
        source_path=to_posix(location.source_path),
        line_number=location.line_number,
        revision=location.revision,
        operation=context.operation,
        table=context.table,
        column=column,
    )
