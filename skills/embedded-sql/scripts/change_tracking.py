"""
Rewrite SQL text while keeping track of exactly what changed.

ChangeTrackingSerializer re-emits the query's own text, so whitespace,
comments and keyword casing survive untouched. Only the function names a
subclass chooses to replace are swapped, and the offsets of every swapped
name in the output are recorded next to the text.
"""

from typing import NamedTuple

from sql_query import CallSite, SqlQuery


class Span(NamedTuple):
    start: int
    end: int


class Change(NamedTuple):
    """A replaced name: where it was in the original and where it is now."""

    original: Span
    replaced: Span
    old: str
    new: str


class TrackedSql(NamedTuple):
    text: str
    changes: tuple[Change, ...] = ()

    @property
    def changed(self) -> bool:
        return bool(self.changes)

    def spans(self) -> list[Span]:
        return [change.replaced for change in self.changes]


class ChangeTrackingSerializer:
    def replacement(self, call_site: CallSite) -> str | None:
        """The new name for call_site, or None to leave it alone."""
        return None

    def render(self, query: SqlQuery) -> TrackedSql:
        parts = []
        changes = []
        position = 0
        length = 0

        for site in query.call_sites():
            new_name = self.replacement(site)
            if new_name is None:
                continue

            unchanged = query.text[position:site.start]
            parts.append(unchanged)
            length += len(unchanged)

            parts.append(new_name)
            changes.append(
                Change(Span(site.start, site.end), Span(length, length + len(new_name)), site.name, new_name)
            )
            length += len(new_name)
            position = site.end

        parts.append(query.text[position:])
        return TrackedSql("".join(parts), tuple(changes))

    def serialize(self, query: SqlQuery) -> str:
        return self.render(query).text


def apply_change(original: str, tracked: TrackedSql) -> str:
    """Splice tracked changes into original, the text they were computed from."""
    parts = []
    position = 0
    for change in tracked.changes:
        if original[change.original.start:change.original.end] != change.old:
            raise ValueError(f"{change.old!r} is not at {change.original} in the original text")
        parts.append(original[position:change.original.start])
        parts.append(change.new)
        position = change.original.end
    parts.append(original[position:])
    return "".join(parts)
