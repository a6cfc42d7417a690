"""Options that configure how a JetStream manager talks to the server."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable


@dataclass
class ManagerOptions:
    """Settings a manager uses when it sends API requests."""

    validator: Any = None
    trace: bool = False
    timeout: float | None = None
    api_prefix: str = ""
    event_prefix: str = ""
    domain: str = ""
    pedantic: bool = False


ManagerOption = Callable[[ManagerOptions], None]


def with_api_validation(validator: Any) -> ManagerOption:
    """Validate responses sent by the server using ``validator``."""

    def apply(options: ManagerOptions) -> None:
        options.validator = validator

    return apply


def with_trace() -> ManagerOption:
    """Log the JSON API requests and responses."""

    def apply(options: ManagerOptions) -> None:
        options.trace = True

    return apply


def with_timeout(timeout: float) -> ManagerOption:
    """Set the timeout, in seconds, for API requests."""

    def apply(options: ManagerOptions) -> None:
        options.timeout = timeout

    return apply


def with_api_prefix(prefix: str) -> ManagerOption:
    """Replace API subjects like ``$JS.API.STREAM.NAMES`` with ``prefix.STREAM.NAMES``."""

    def apply(options: ManagerOptions) -> None:
        options.api_prefix = prefix

    return apply


def with_event_prefix(prefix: str) -> ManagerOption:
    """Replace event subjects like ``$JS.EVENT.ADVISORY.API`` with ``prefix.ADVISORY``."""

    def apply(options: ManagerOptions) -> None:
        options.event_prefix = prefix

    return apply


def with_domain(domain: str) -> ManagerOption:
    """Set a JetStream domain; not meant to be combined with an API prefix."""

    def apply(options: ManagerOptions) -> None:
        options.domain = domain

    return apply


def with_pedantic_requests() -> ManagerOption:
    """Ask the server not to adjust user configuration while handling requests."""

    def apply(options: ManagerOptions) -> None:
        options.pedantic = True

    return apply


def build_manager_options(*args: ManagerOption) -> ManagerOptions:
    """Apply the given options, in order, to a fresh :class:`ManagerOptions`."""
    options = ManagerOptions()
    for option in args:
        option(options)
    return options