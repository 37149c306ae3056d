"""
Host document locations viewed as SQL queries.

Document adapters hand over the text-bearing parts of a document as host
nodes: a whole file, a configuration scalar or a string literal in program
source. A SqlQuery view exists only for nodes whose text looks like SQL and
parses. It keeps the parsed statement and knows how to put rewritten SQL back
into the node it came from without changing the node's kind.
"""

import dataclasses
import logging
import re
from dataclasses import dataclass
from typing import NamedTuple, Protocol

import sqlglot
from sqlglot import exp
from sqlglot.tokens import Token, TokenType

from reindent import IndentStyle, reindent
from sql_detector import ParseFailure, parse, parse_expression, probably_sql

logger = logging.getLogger(__name__)

TEXT_BLOCK_DELIMITER = '"""'


class SqlInvariantError(RuntimeError):
    """SQL that parsed once failed to parse again."""


@dataclass(frozen=True)
class SearchResult:
    description: str | None = None

    def __str__(self) -> str:
        return f"~~({self.description})~~>" if self.description else "~~>"


@dataclass(frozen=True)
class PlainText:
    """The whole text of a resource file."""

    text: str
    source_path: str = ""
    markers: tuple[SearchResult, ...] = ()


@dataclass(frozen=True)
class Scalar:
    """A configuration value, taken verbatim."""

    value: str
    source_path: str = ""
    line_number: int = 1
    markers: tuple[SearchResult, ...] = ()


@dataclass(frozen=True)
class StringLiteral:
    """A string literal in program source; value_source is the literal as written."""

    value: str
    value_source: str
    source_path: str = ""
    line_number: int = 1
    markers: tuple[SearchResult, ...] = ()

    @property
    def is_text_block(self) -> bool:
        return (
            len(self.value_source) >= 2 * len(TEXT_BLOCK_DELIMITER)
            and self.value_source.startswith(TEXT_BLOCK_DELIMITER)
            and self.value_source.endswith(TEXT_BLOCK_DELIMITER)
        )


HostNode = PlainText | Scalar | StringLiteral


def text_of(node: HostNode) -> str:
    if isinstance(node, PlainText):
        return node.text
    return node.value


def line_number_of(node: HostNode) -> int:
    return getattr(node, "line_number", 1)


def found(node: HostNode, description: str | None = None) -> HostNode:
    """Mark node as a search hit. Marking it again the same way is a no-op."""
    marker = SearchResult(description)
    if marker in node.markers:
        return node
    return dataclasses.replace(node, markers=node.markers + (marker,))


def render(node: HostNode) -> str:
    """Print a node the way it appears in its document, search markers included."""
    markers = "".join(str(m) for m in node.markers)
    if isinstance(node, PlainText):
        return markers + node.text
    source = node.value_source if isinstance(node, StringLiteral) else node.value
    return (f"/*{markers}*/" if markers else "") + source


_ESCAPES = {"\\": "\\\\", "\n": "\\n", "\r": "\\r", "\t": "\\t"}


def quote(value: str, quote_char: str = '"') -> str:
    escaped = "".join(_ESCAPES.get(c, "\\" + c if c == quote_char else c) for c in value)
    return f"{quote_char}{escaped}{quote_char}"


def with_sql(node: HostNode, sql: str, style: IndentStyle | None = None) -> HostNode:
    """A copy of node holding sql, encoded the way the node encodes text."""
    if isinstance(node, PlainText):
        return dataclasses.replace(node, text=sql)
    if isinstance(node, Scalar):
        return dataclasses.replace(node, value=sql)

    if node.is_text_block:
        style = style or IndentStyle()
        delimiter = TEXT_BLOCK_DELIMITER
        inner = node.value_source[len(delimiter):-len(delimiter)]
        escaped = sql.replace("\\", "\\\\").replace(delimiter, '\\"""')
        indented = reindent(inner, escaped, style.tab_size, style.use_tabs)
        return dataclasses.replace(node, value=sql, value_source=delimiter + indented + delimiter)

    quote_char = node.value_source[:1] if node.value_source[:1] in ("'", '"') else '"'
    return dataclasses.replace(node, value=sql, value_source=quote(sql, quote_char))


_TEXT_BLOCK_ESCAPES = re.compile(r'\\(\n|s|n|t|r|"|\'|\\)')
_TEXT_BLOCK_UNESCAPED = {"\n": "", "s": " ", "n": "\n", "t": "\t", "r": "\r"}


def text_block_literal(value_source: str, source_path: str = "", line_number: int = 1) -> StringLiteral:
    """
    Read a text block as written into a StringLiteral.

    Content starts on the line after the opening delimiter. The indentation
    shared by the content lines and the closing delimiter line is removed,
    trailing whitespace is stripped and escapes are interpreted, \\<newline>
    joining two lines.
    """
    delimiter = TEXT_BLOCK_DELIMITER
    if not (value_source.startswith(delimiter) and value_source.endswith(delimiter)) or len(value_source) < 6:
        raise ValueError("A text block starts and ends with \"\"\"")

    lines = value_source[len(delimiter):-len(delimiter)].split("\n")[1:]
    if not lines:
        raise ValueError("Text block content starts on a new line")

    significant = [line for line in lines[:-1] if line.strip()] + [lines[-1]]
    margin = min(len(line) - len(line.lstrip(" \t")) for line in significant)
    content = [line[margin:].rstrip(" \t") for line in lines[:-1]]
    content.append(lines[-1][margin:])

    value = _TEXT_BLOCK_ESCAPES.sub(
        lambda m: _TEXT_BLOCK_UNESCAPED.get(m.group(1), m.group(1)), "\n".join(content)
    )
    return StringLiteral(value, value_source, source_path, line_number)


class CallSite(NamedTuple):
    """A function call as written: its name and where the name sits in the text."""

    name: str
    start: int
    end: int


class SqlSerializer:
    """Regenerates SQL from the parsed statement."""

    def __init__(self, dialect: str | None = None, pretty: bool = False, **options):
        self.dialect = dialect
        self.pretty = pretty
        self.options = options

    def serialize(self, query: "SqlQuery") -> str:
        return query.statement.sql(
            dialect=self.dialect or query.dialect, pretty=self.pretty, **self.options
        )


class Serializer(Protocol):
    def serialize(self, query: "SqlQuery") -> str: ...


# A name after these is a table, even when a column list follows it.
TABLE_NAME_PRECEDERS = {TokenType.INTO, TokenType.TABLE}


def closing_paren(tokens: list[Token], opening: int) -> int | None:
    """Index of the parenthesis closing the one at tokens[opening]."""
    depth = 0
    for i in range(opening, len(tokens)):
        if tokens[i].token_type == TokenType.L_PAREN:
            depth += 1
        elif tokens[i].token_type == TokenType.R_PAREN:
            depth -= 1
            if depth == 0:
                return i
    return None


class SqlQuery:
    def __init__(self, node: HostNode, text: str, statement: exp.Expression | None, dialect: str | None = None):
        self.node = node
        self.text = text
        self.dialect = dialect
        self._statement = statement
        self._tokens = None
        self._call_sites = None

    @classmethod
    def view_of(cls, node: HostNode, dialect: str | None = None) -> "SqlQuery | None":
        """View node as a query, or None when its text is not SQL."""
        text = text_of(node)
        if not probably_sql(text):
            return None

        statement = parse(text, dialect)
        if isinstance(statement, ParseFailure):
            return None
        return cls(node, text, statement, dialect)

    @property
    def statement(self) -> exp.Expression:
        if self._statement is None:
            statement = parse(self.text, self.dialect)
            if isinstance(statement, ParseFailure):
                logger.error("SQL that parsed before no longer parses: %s", statement.error)
                raise SqlInvariantError(f"Failed to re-parse SQL: {statement.error}")
            self._statement = statement
        return self._statement

    def reparse(self) -> exp.Expression:
        """Drop the memoized statement and parse the text again."""
        self._statement = None
        self._call_sites = None
        return self.statement

    @property
    def tokens(self) -> list[Token]:
        if self._tokens is None:
            self._tokens = sqlglot.tokenize(self.text, read=self.dialect)
        return self._tokens

    def call_sites(self) -> list[CallSite]:
        """
        Every function call in the statement, in the order it is written.

        A name followed by an opening parenthesis is a call site only when the
        text up to the matching closing parenthesis parses as a function call
        that is also in the statement. Each call in the statement backs one
        site at most.
        """
        if self._call_sites is None:
            calls = list(self.statement.find_all(exp.Func, bfs=False))
            claimed = set()
            sites = []
            tokens = self.tokens
            for i, token in enumerate(tokens[:-1]):
                if tokens[i + 1].token_type != TokenType.L_PAREN:
                    continue
                if i > 0 and tokens[i - 1].token_type in TABLE_NAME_PRECEDERS:
                    continue
                written = self.text[token.start:token.end + 1]
                if written.upper() != token.text.upper():
                    continue

                close = closing_paren(tokens, i + 1)
                if close is None:
                    continue
                call = parse_expression(self.text[token.start:tokens[close].end + 1], self.dialect)
                if not isinstance(call, exp.Func):
                    continue

                for node in calls:
                    if id(node) not in claimed and node == call:
                        claimed.add(id(node))
                        sites.append(CallSite(written, token.start, token.end + 1))
                        break
            self._call_sites = sites
        return self._call_sites

    def map_sql(self, serializer: Serializer) -> str:
        return serializer.serialize(self)

    def rewrite(self, serializer: Serializer, style: IndentStyle | None = None) -> HostNode:
        """
        Re-serialize through serializer and embed the result in the node.

        Returns the original node when the SQL is unchanged or when the
        serializer fails.
        """
        try:
            sql = self.map_sql(serializer)
        except Exception:
            logger.warning("Leaving SQL in %s unchanged", self.node.source_path or "<unknown>", exc_info=True)
            return self.node

        if sql == self.text:
            return self.node
        return with_sql(self.node, sql, style)
