"""Cheap, high-recall test for "does this string look like SQL?".

False positives are acceptable: the only consumers open an editable SQL view,
highlight tokens or offer completions.
"""

import re

SQL_START_RE = re.compile(r"\b(select|insert|update|delete|with|create|alter|drop)\b", re.IGNORECASE)
SQL_CONTEXT_RE = re.compile(
    r"\b(from|into|values|set|where|join|table|returning)\b", re.IGNORECASE
)
SELECT_FROM_RE = re.compile(r"\bselect\b[\s\S]+\bfrom\b", re.IGNORECASE)

_WHITESPACE_RE = re.compile(r"\s+")

MIN_SQL_LENGTH = 10


def looks_like_sql(text: str) -> bool:
    normalized = _WHITESPACE_RE.sub(" ", text).strip()
    if len(normalized) < MIN_SQL_LENGTH:
        return False
    if not SQL_START_RE.search(normalized):
        return False
    return bool(SQL_CONTEXT_RE.search(normalized) or SELECT_FROM_RE.search(normalized))
