"""Identifier normalization shared by the schema cache and the completion resolver.

Quoted and unquoted spellings of an identifier compare equal once normalized:
`"Users"`, `users` and ` USERS ` all become `users`.
"""

import re

_WRAPPING_QUOTES = re.compile(r'^"+|"+$')


def normalize_identifier(identifier: str) -> str:
    return _WRAPPING_QUOTES.sub("", identifier.strip()).lower()


def normalize_reference(reference: str) -> str:
    """Normalizes each dotted part of a (possibly schema-qualified) reference."""
    parts = (normalize_identifier(part) for part in reference.split("."))
    return ".".join(part for part in parts if part)
