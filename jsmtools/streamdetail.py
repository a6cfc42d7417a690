"""Loading stream details exported by the server and finding gaps in deleted sequences."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Iterable, Iterator

from jsmtools.stream import Stream, StreamInfo


class StreamDetailError(Exception):
    """Raised when stream details cannot be loaded."""


@dataclass
class ConsumerDetail:
    """A consumer described in a stream detail document."""

    name: str
    stream: str
    config: dict[str, Any] = field(default_factory=dict)
    info: dict[str, Any] = field(default_factory=dict)


def _decode(data: bytes | str) -> dict[str, Any]:
    try:
        document = json.loads(data)
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise StreamDetailError(f"invalid stream details: {exc}") from exc
    if not isinstance(document, dict):
        raise StreamDetailError("invalid stream details, expected an object")
    return document


def load_from_stream_detail_bytes(data: bytes | str) -> tuple[Stream, list[ConsumerDetail]]:
    """Build a stream and its consumers from server stream details in JSON.

    The details should have been produced with configuration and consumers included.
    """
    document = _decode(data)

    try:
        info = StreamInfo.from_dict(document)
    except (ValueError, TypeError, AttributeError) as exc:
        raise StreamDetailError(f"invalid stream details: {exc}") from exc

    stream = Stream.from_info(info)
    if not stream.name:
        raise StreamDetailError("invalid stream details, ensure configuration is included")

    details = document.get("consumer_detail") or []
    if not isinstance(details, list):
        raise StreamDetailError("invalid stream details, consumer_detail must be a list")

    consumers = []
    for entry in details:
        if not isinstance(entry, dict):
            raise StreamDetailError("invalid stream details, consumer entries must be objects")
        consumers.append(
            ConsumerDetail(
                name=entry.get("name") or "",
                stream=stream.name,
                config=dict(entry.get("config") or {}),
                info=entry,
            )
        )

    return stream, consumers


def _gaps(deleted: list[int]) -> Iterator[tuple[int, int]]:
    if not deleted:
        return

    if len(deleted) == 1:
        yield deleted[0], deleted[0]
        return

    start = deleted[0]
    last_index = len(deleted) - 1
    for index, seq in enumerate(deleted):
        if index == last_index:
            if seq - 1 == deleted[index - 1]:
                yield start, seq
            else:
                yield seq, seq
            return

        following = deleted[index + 1]
        if following != seq + 1:
            yield start, seq
            start = following


def detect_deleted_gaps(deleted: Iterable[int]) -> list[tuple[int, int]]:
    """Group sorted deleted sequence numbers into inclusive ``(first, last)`` gaps."""
    return list(_gaps(list(deleted)))