"""A JetStream stream as seen through its configuration and last known information."""

from __future__ import annotations

import copy
import re
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any

from jsmtools.streamconfig import (
    Compression,
    DiscardPolicy,
    RePublish,
    RetentionPolicy,
    StorageType,
    StreamConfig,
    StreamConsumerLimits,
    StreamSource,
)

ADVISORY_PREFIX = "$JS.EVENT.ADVISORY"
METRIC_PREFIX = "$JS.EVENT.METRIC"
DIRECT_GET_PREFIX = "$JS.API.DIRECT.GET"

ZERO_TIME = datetime(1, 1, 1, tzinfo=timezone.utc)

_TIME_PATTERN = re.compile(
    r"^(\d{4}-\d{2}-\d{2})[Tt ](\d{2}:\d{2}:\d{2})(?:\.(\d+))?([Zz]|[+-]\d{2}:\d{2})$"
)


def _parse_time(value: str | None) -> datetime:
    if not value:
        return ZERO_TIME
    match = _TIME_PATTERN.match(value)
    if match is None:
        raise ValueError(f"invalid timestamp {value!r}")
    day, clock, fraction, zone = match.groups()
    micros = (fraction or "").ljust(6, "0")[:6]
    offset = "+00:00" if zone in ("Z", "z") else zone
    return datetime.fromisoformat(f"{day}T{clock}.{micros}{offset}")


def _format_time(value: datetime) -> str:
    moment = value.astimezone(timezone.utc)
    text = moment.strftime("%Y-%m-%dT%H:%M:%S")
    if moment.microsecond:
        text += "." + f"{moment.microsecond:06d}".rstrip("0")
    return text + "Z"


def _nanos_to_delta(value: int | None) -> timedelta:
    return timedelta(microseconds=(value or 0) // 1000)


def _delta_to_nanos(value: timedelta) -> int:
    return (value // timedelta(microseconds=1)) * 1000


@dataclass
class PeerInfo:
    """A member of a stream's RAFT group."""

    name: str = ""
    current: bool = False
    offline: bool = False
    active: timedelta = field(default_factory=timedelta)
    lag: int = 0

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "name": self.name,
            "current": self.current,
            "active": _delta_to_nanos(self.active),
        }
        if self.offline:
            result["offline"] = True
        if self.lag:
            result["lag"] = self.lag
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> PeerInfo:
        return cls(
            name=data.get("name") or "",
            current=bool(data.get("current")),
            offline=bool(data.get("offline")),
            active=_nanos_to_delta(data.get("active")),
            lag=data.get("lag") or 0,
        )


@dataclass
class ClusterInfo:
    """Where a clustered stream lives and who leads it."""

    name: str = ""
    leader: str = ""
    replicas: list[PeerInfo] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {}
        if self.name:
            result["name"] = self.name
        if self.leader:
            result["leader"] = self.leader
        if self.replicas:
            result["replicas"] = [peer.to_dict() for peer in self.replicas]
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ClusterInfo:
        return cls(
            name=data.get("name") or "",
            leader=data.get("leader") or "",
            replicas=[PeerInfo.from_dict(p) for p in data.get("replicas") or []],
        )


@dataclass
class StreamState:
    """Message counters and sequence bounds of a stream."""

    msgs: int = 0
    bytes: int = 0
    first_seq: int = 0
    first_time: datetime = ZERO_TIME
    last_seq: int = 0
    last_time: datetime = ZERO_TIME
    consumers: int = 0
    deleted: list[int] = field(default_factory=list)
    num_deleted: int = 0
    num_subjects: int = 0

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "messages": self.msgs,
            "bytes": self.bytes,
            "first_seq": self.first_seq,
            "first_ts": _format_time(self.first_time),
            "last_seq": self.last_seq,
            "last_ts": _format_time(self.last_time),
            "consumer_count": self.consumers,
        }
        if self.deleted:
            result["deleted"] = list(self.deleted)
        if self.num_deleted:
            result["num_deleted"] = self.num_deleted
        if self.num_subjects:
            result["num_subjects"] = self.num_subjects
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> StreamState:
        return cls(
            msgs=data.get("messages") or 0,
            bytes=data.get("bytes") or 0,
            first_seq=data.get("first_seq") or 0,
            first_time=_parse_time(data.get("first_ts")),
            last_seq=data.get("last_seq") or 0,
            last_time=_parse_time(data.get("last_ts")),
            consumers=data.get("consumer_count") or 0,
            deleted=list(data.get("deleted") or []),
            num_deleted=data.get("num_deleted") or 0,
            num_subjects=data.get("num_subjects") or 0,
        )


@dataclass
class StreamInfo:
    """What the server reports about a stream."""

    config: StreamConfig = field(default_factory=StreamConfig)
    created: datetime = ZERO_TIME
    state: StreamState = field(default_factory=StreamState)
    cluster: ClusterInfo | None = None
    timestamp: datetime = ZERO_TIME

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "config": self.config.to_dict(),
            "created": _format_time(self.created),
            "state": self.state.to_dict(),
        }
        if self.cluster is not None:
            result["cluster"] = self.cluster.to_dict()
        result["ts"] = _format_time(self.timestamp)
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> StreamInfo:
        cluster = data.get("cluster")
        return cls(
            config=StreamConfig.from_dict(data.get("config") or {}),
            created=_parse_time(data.get("created")),
            state=StreamState.from_dict(data.get("state") or {}),
            cluster=ClusterInfo.from_dict(cluster) if cluster is not None else None,
            timestamp=_parse_time(data.get("ts")),
        )


class Stream:
    """A stream's configuration together with its most recently known information."""

    def __init__(self, config: StreamConfig, info: StreamInfo | None = None) -> None:
        self.config = config
        self.info = info

    @classmethod
    def from_info(cls, info: StreamInfo) -> Stream:
        """Build a stream from server supplied information."""
        return cls(info.config, info)

    def __repr__(self) -> str:
        return f"Stream(name={self.name!r})"

    def configuration(self) -> StreamConfig:
        """Return a copy of the stream configuration."""
        return copy.deepcopy(self.config)

    def is_mirror(self) -> bool:
        """Tell whether this stream mirrors another."""
        return self.config.mirror is not None

    def is_sourced(self) -> bool:
        """Tell whether this stream sources data from other streams."""
        return len(self.config.sources) > 0

    def is_compressed(self) -> bool:
        """Tell whether stored messages are compressed."""
        return self.config.compression is not Compression.NONE

    def is_republishing(self) -> bool:
        """Tell whether stored messages are republished."""
        return self.config.republish is not None

    def is_template_managed(self) -> bool:
        """Tell whether the stream is managed by a template."""
        return self.config.template != ""

    def advisory_subject(self) -> str:
        """Wildcard subject receiving every advisory for this stream."""
        return f"{ADVISORY_PREFIX}.*.*.{self.name}.>"

    def metric_subject(self) -> str:
        """Wildcard subject receiving every metric for this stream."""
        return f"{METRIC_PREFIX}.*.*.{self.name}.*"

    def direct_subject(self) -> str:
        """Subject used for direct gets against this stream."""
        return f"{DIRECT_GET_PREFIX}.{self.name}"

    @property
    def name(self) -> str:
        return self.config.name

    @property
    def description(self) -> str:
        return self.config.description

    @property
    def subjects(self) -> list[str]:
        return self.config.subjects

    @property
    def retention(self) -> RetentionPolicy:
        return self.config.retention

    @property
    def discard_policy(self) -> DiscardPolicy:
        return self.config.discard

    @property
    def discard_new_per_subject(self) -> bool:
        return self.config.discard_new_per

    @property
    def max_consumers(self) -> int:
        return self.config.max_consumers

    @property
    def max_msgs(self) -> int:
        return self.config.max_msgs

    @property
    def max_msgs_per_subject(self) -> int:
        return self.config.max_msgs_per

    @property
    def max_bytes(self) -> int:
        return self.config.max_bytes

    @property
    def max_age(self) -> timedelta:
        return self.config.max_age

    @property
    def max_msg_size(self) -> int:
        return self.config.max_msg_size

    @property
    def storage(self) -> StorageType:
        return self.config.storage

    @property
    def replicas(self) -> int:
        return self.config.replicas

    @property
    def no_ack(self) -> bool:
        return self.config.no_ack

    @property
    def template(self) -> str:
        return self.config.template

    @property
    def duplicate_window(self) -> timedelta:
        return self.config.duplicates

    @property
    def mirror(self) -> StreamSource | None:
        return self.config.mirror

    @property
    def sources(self) -> list[StreamSource]:
        return self.config.sources

    @property
    def sealed(self) -> bool:
        return self.config.sealed

    @property
    def delete_allowed(self) -> bool:
        return not self.config.deny_delete

    @property
    def purge_allowed(self) -> bool:
        return not self.config.deny_purge

    @property
    def rollup_allowed(self) -> bool:
        return self.config.rollup_allowed

    @property
    def direct_allowed(self) -> bool:
        return self.config.allow_direct

    @property
    def mirror_direct_allowed(self) -> bool:
        return self.config.mirror_direct

    @property
    def republish(self) -> RePublish | None:
        return self.config.republish

    @property
    def metadata(self) -> dict[str, str]:
        return self.config.metadata

    @property
    def compression(self) -> Compression:
        return self.config.compression

    @property
    def first_sequence(self) -> int:
        return self.config.first_seq

    @property
    def consumer_limits(self) -> StreamConsumerLimits:
        return self.config.consumer_limits