"""Matching of NATS subjects against wildcard subjects."""

from __future__ import annotations

TOKEN_SEPARATOR = "."
FULL_WILDCARD = ">"
PARTIAL_WILDCARD = "*"


def tokenize_subject(subject: str) -> list[str]:
    """Split ``subject`` into its dot separated tokens, keeping empty ones."""
    return subject.split(TOKEN_SEPARATOR)


def _is_subset_match_tokenized(tokens: list[str], test: list[str]) -> bool:
    for position, wanted in enumerate(test):
        if position >= len(tokens):
            return False
        if not wanted:
            return False
        if wanted == FULL_WILDCARD:
            return True

        token = tokens[position]
        if not token or token == FULL_WILDCARD:
            return False

        if token == PARTIAL_WILDCARD:
            if wanted != PARTIAL_WILDCARD:
                return False
            continue

        if not wanted.startswith(PARTIAL_WILDCARD) and token != wanted:
            return False

    return len(tokens) == len(test)


def subject_is_subset_match(subject: str, test: str) -> bool:
    """Tell whether ``subject`` is matched by the wildcard subject ``test``.

    Both may hold wildcards: ``foo.*`` is a subset match of ``>``, ``*.*``
    and ``foo.*`` but not of ``foo.bar``.
    """
    return _is_subset_match_tokenized(tokenize_subject(subject), tokenize_subject(test))