"""Options that select which streams a stream query matches."""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import timedelta
from typing import Callable


class QueryError(Exception):
    """Raised when a stream query option is not acceptable."""


@dataclass
class QueryOptions:
    """The filters a stream query applies."""

    server: re.Pattern[str] | None = None
    cluster: re.Pattern[str] | None = None
    consumers_limit: int | None = None
    empty: bool | None = None
    idle_period: timedelta | None = None
    created_period: timedelta | None = None
    invert: bool = False
    subject: str = ""
    replicas: int = 0
    mirrored: bool = False
    sourced: bool = False
    expression: str = ""
    leader: str = ""


QueryOption = Callable[[QueryOptions], None]


def _non_negative(value: int, what: str) -> int:
    if value < 0:
        raise QueryError(f"{what} may not be negative")
    return value


def _compile(pattern: str) -> re.Pattern[str]:
    try:
        return re.compile(pattern)
    except re.error as exc:
        raise QueryError(f"invalid regular expression {pattern!r}: {exc}") from exc


def query_expression(expression: str) -> QueryOption:
    """Filter streams with a boolean expression."""

    def apply(options: QueryOptions) -> None:
        options.expression = expression

    return apply


def query_is_sourced() -> QueryOption:
    """Match streams that source data from other streams."""

    def apply(options: QueryOptions) -> None:
        options.sourced = True

    return apply


def query_is_mirror() -> QueryOption:
    """Match streams that mirror another stream."""

    def apply(options: QueryOptions) -> None:
        options.mirrored = True

    return apply


def query_replicas(count: int) -> QueryOption:
    """Match streams with ``count`` replicas or fewer."""

    def apply(options: QueryOptions) -> None:
        options.replicas = _non_negative(count, "replicas")

    return apply


def query_subject_wildcard(subject: str) -> QueryOption:
    """Match streams with subject interest matching a NATS wildcard."""

    def apply(options: QueryOptions) -> None:
        options.subject = subject

    return apply


def query_server_name(pattern: str) -> QueryOption:
    """Match streams on servers whose name matches a regular expression."""

    def apply(options: QueryOptions) -> None:
        if pattern:
            options.server = _compile(pattern)

    return apply


def query_cluster_name(pattern: str) -> QueryOption:
    """Match streams in clusters whose name matches a regular expression."""

    def apply(options: QueryOptions) -> None:
        if pattern:
            options.cluster = _compile(pattern)

    return apply


def query_fewer_consumers_than(count: int) -> QueryOption:
    """Match streams with ``count`` consumers or fewer."""

    def apply(options: QueryOptions) -> None:
        options.consumers_limit = _non_negative(count, "consumer limit")

    return apply


def query_without_messages() -> QueryOption:
    """Match streams holding no messages."""

    def apply(options: QueryOptions) -> None:
        options.empty = True

    return apply


def query_idle_longer_than(period: timedelta) -> QueryOption:
    """Match streams that received no messages for longer than ``period``."""

    def apply(options: QueryOptions) -> None:
        options.idle_period = period

    return apply


def query_older_than(period: timedelta) -> QueryOption:
    """Match streams created longer ago than ``period``."""

    def apply(options: QueryOptions) -> None:
        options.created_period = period

    return apply


def query_invert() -> QueryOption:
    """Invert the filters: older than becomes newer than and so forth."""

    def apply(options: QueryOptions) -> None:
        options.invert = True

    return apply


def query_leader_server(server: str) -> QueryOption:
    """Match clustered streams led by the named server."""

    def apply(options: QueryOptions) -> None:
        options.leader = server

    return apply


def build_query_options(*args: QueryOption) -> QueryOptions:
    """Apply the given options, in order, to fresh :class:`QueryOptions`."""
    options = QueryOptions()
    for option in args:
        option(options)
    return options