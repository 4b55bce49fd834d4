from collections.abc import Iterator

from loguru import logger

from pypgsense.core.models import Document, StatementSpan

_TAG_CHARS = frozenset("abcdefghijklmnopqrstuvwxyzABCDEFGHIJKLMNOPQRSTUVWXYZ0123456789_")


def split_raw_segments(source: str) -> Iterator[tuple[int, int]]:
    """Yields (start, end) of every raw statement segment, in order.

    Segments tile the source: each ends just after a top-level `;` or at end of
    input. Quotes, `--` comments, nested `/* */` comments and `$tag$` blocks
    hide terminators. An unterminated state at end of input is treated as
    closed there.
    """
    length = len(source)
    statement_start = 0
    in_single_quote = False
    in_double_quote = False
    in_line_comment = False
    block_comment_depth = 0
    dollar_tag: str | None = None

    i = 0
    while i < length:
        char = source[i]
        nxt = source[i + 1] if i + 1 < length else ""

        if in_line_comment:
            if char == "\n":
                in_line_comment = False
            i += 1
            continue

        if block_comment_depth > 0:
            if char == "/" and nxt == "*":
                block_comment_depth += 1
                i += 2
            elif char == "*" and nxt == "/":
                block_comment_depth -= 1
                i += 2
            else:
                i += 1
            continue

        if dollar_tag is not None:
            if source.startswith(dollar_tag, i):
                i += len(dollar_tag)
                dollar_tag = None
            else:
                i += 1
            continue

        if in_single_quote:
            if char == "'":
                if nxt == "'":
                    i += 2
                    continue
                in_single_quote = False
            i += 1
            continue

        if in_double_quote:
            if char == '"':
                if nxt == '"':
                    i += 2
                    continue
                in_double_quote = False
            i += 1
            continue

        if char == "-" and nxt == "-":
            in_line_comment = True
            i += 2
            continue

        if char == "/" and nxt == "*":
            block_comment_depth = 1
            i += 2
            continue

        if char == "'":
            in_single_quote = True
        elif char == '"':
            in_double_quote = True
        elif char == "$" and (i == 0 or source[i - 1] not in _TAG_CHARS):
            # `$` inside an identifier (a$b$c) never opens a block
            tag = read_dollar_tag(source, i)
            if tag is not None:
                dollar_tag = tag
                i += len(tag)
                continue
        elif char == ";":
            yield statement_start, i + 1
            statement_start = i + 1

        i += 1

    if statement_start < length:
        yield statement_start, length


def read_dollar_tag(source: str, start: int) -> str | None:
    """Returns the `$tag$` opener starting at `start`, or None if there is none."""
    if not source.startswith("$", start):
        return None

    cursor = start + 1
    while cursor < len(source) and source[cursor] != "$":
        if source[cursor] not in _TAG_CHARS:
            return None
        cursor += 1

    if cursor >= len(source):
        return None

    return source[start : cursor + 1]


def strip_comments(text: str) -> str:
    """Removes `--` line comments and (nested) block comments."""
    out: list[str] = []
    depth = 0
    i = 0
    while i < len(text):
        pair = text[i : i + 2]
        if depth == 0 and pair == "--":
            newline = text.find("\n", i)
            if newline == -1:
                break
            i = newline
        elif pair == "/*":
            depth += 1
            i += 2
        elif depth > 0 and pair == "*/":
            depth -= 1
            i += 2
        else:
            if depth == 0:
                out.append(text[i])
            i += 1
    return "".join(out)


def has_executable_sql(content: str) -> bool:
    """False for chunks made only of comments, terminators and whitespace."""
    remainder = strip_comments(content)
    return any(not ch.isspace() and ch != ";" for ch in remainder)


def skip_leading_trivia(source: str, start: int, end: int) -> int:
    """Returns the first offset in [start, end) that is not whitespace or a comment."""
    i = start
    while i < end:
        if source[i].isspace():
            i += 1
        elif source.startswith("--", i, end):
            newline = source.find("\n", i, end)
            if newline == -1:
                return end
            i = newline + 1
        elif source.startswith("/*", i, end):
            depth = 0
            while i < end:
                if source.startswith("/*", i, end):
                    depth += 1
                    i += 2
                elif source.startswith("*/", i, end):
                    depth -= 1
                    i += 2
                    if depth == 0:
                        break
                else:
                    i += 1
        else:
            break
    return min(i, end)


def split_statements(source: str) -> list[StatementSpan]:
    """Splits raw SQL text into trimmed statements, dropping empty and comment-only ones.

    `content` starts at the statement's first token: whitespace and comments
    preceding it are trimmed, as is trailing whitespace.
    """
    spans: list[StatementSpan] = []
    for start, end in split_raw_segments(source):
        chunk = source[start:end]
        content_start = skip_leading_trivia(source, start, end)
        content_end = end - (len(chunk) - len(chunk.rstrip()))
        if content_end <= content_start:
            continue

        content = source[content_start:content_end]
        if not has_executable_sql(content):
            continue

        spans.append(
            StatementSpan(content_start=content_start, content_end=content_end, content=content)
        )
    return spans


class SqlStatementChunker:
    """
    Splits free-standing SQL documents into individual statements.
    Boundary detection only: no SQL grammar is involved.
    Implements the IChunker protocol.
    """

    @property
    def supported_extensions(self) -> list[str]:
        return [".sql"]

    def process(self, document: Document) -> Iterator[StatementSpan]:
        """Yields the statements of a raw SQL document."""
        spans = split_statements(document.content)
        logger.debug("Split {} into {} statements", document.uri, len(spans))
        yield from spans
