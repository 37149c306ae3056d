"""
Re-indent reformatted SQL so it can be spliced back into a multi-line
string literal (a block delimited by triple quotes).

Every line of the result is indented as deep as the shallowest line of the
original block. Trailing spaces are written as the \\s escape so that tools
trimming trailing whitespace leave them alone, and a block that did not end
with a newline gets a \\ line continuation so its closing delimiter still
sits on its own line.
"""

from dataclasses import dataclass

TRAILING_SPACE_ESCAPE = "\\s"
LINE_CONTINUATION = "\\"


@dataclass(frozen=True)
class IndentStyle:
    tab_size: int = 4
    use_tabs: bool = False


def shortest_indentation(text: str, tab_size: int = 4) -> tuple[int, int]:
    """
    Find the shallowest indentation of any line after the first.

    Returns (tabs, spaces). Tabs count as tab_size columns when comparing
    widths. Blank lines are ignored; whitespace at the very end of text (the
    indentation before a closing delimiter) counts when it is shallower.
    """
    shortest = None
    best = (0, 0)
    tabs = spaces = 0
    after_newline = False

    for char in text:
        if char == "\n":
            after_newline = True
            tabs = spaces = 0
        elif after_newline and char == " ":
            spaces += 1
        elif after_newline and char == "\t":
            tabs += 1
        else:
            if after_newline:
                width = tabs * tab_size + spaces
                if shortest is None or width < shortest:
                    shortest = width
                    best = (tabs, spaces)
            after_newline = False
            tabs = spaces = 0

    if after_newline and tabs + spaces > 0:
        width = tabs * tab_size + spaces
        if shortest is None or width < shortest:
            best = (tabs, spaces)

    return best


def render_indentation(tabs: int, spaces: int, style: IndentStyle) -> str:
    if style.use_tabs:
        return "\t" * tabs + " " * spaces
    return " " * (tabs * style.tab_size + spaces)


def reindent(original: str, formatted: str, tab_size: int = 4, use_tabs: bool = False) -> str:
    """
    Indent formatted the way the block original is indented.

    original is the raw text between the block's delimiters, formatted the
    canonical SQL that replaces it. The result starts with a newline and is
    ready to be put between the delimiters.
    """
    style = IndentStyle(tab_size, use_tabs)
    indentation = render_indentation(*shortest_indentation(original, tab_size), style)

    indented = formatted.replace(" \n", TRAILING_SPACE_ESCAPE + "\n")
    indented = indented.replace("\n", "\n" + indentation)
    indented = "\n" + indentation + indented

    if not original.endswith("\n") and not formatted.endswith("\n"):
        indented = indented + LINE_CONTINUATION + "\n" + indentation
    return indented
