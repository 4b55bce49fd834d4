import re

from pypgsense.core.models import SqlCandidateGroup, SqlToken, SqlTokenType

SQL_HIGHLIGHT_KEYWORDS = frozenset(
    {
        "and", "as", "by", "cross", "delete", "distinct", "exists", "from", "full",
        "group", "having", "inner", "insert", "into", "in", "is", "join", "left",
        "limit", "not", "null", "offset", "on", "order", "or", "outer", "returning",
        "right", "select", "set", "update", "values", "where",
    }
)

# Lightweight lexer for coloring SQL inside extracted fragments
SQL_TOKEN_RE = re.compile(
    r"\b[a-z_][a-z0-9_]*\b|'(?:''|[^'])*'|\b\d+(?:\.\d+)?\b|[=<>!~]+|[(),.*;]",
    re.IGNORECASE,
)
_OPERATOR_RE = re.compile(r"^[=<>!~]+$|^[(),.*;]$")


def classify_sql_token(value: str) -> SqlTokenType:
    if value.lower() in SQL_HIGHLIGHT_KEYWORDS:
        return "keyword"
    if value.startswith("'"):
        return "string"
    if value[0].isdigit():
        return "number"
    if _OPERATOR_RE.match(value):
        return "operator"
    return "variable"


def tokenize_sql(text: str) -> list[SqlToken]:
    return [
        SqlToken(start=match.start(), value=match.group(0), type=classify_sql_token(match.group(0)))
        for match in SQL_TOKEN_RE.finditer(text)
    ]


def highlight_candidates(groups: list[SqlCandidateGroup]) -> list[SqlToken]:
    """Tokenizes every fragment of every group; token offsets index the host source."""
    tokens: list[SqlToken] = []
    for group in groups:
        for part in group.parts:
            for token in tokenize_sql(part.text):
                tokens.append(
                    SqlToken(start=part.start_offset + token.start, value=token.value, type=token.type)
                )
    return tokens
