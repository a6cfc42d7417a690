"""Stream configuration, its templates and the options that adjust it."""

from __future__ import annotations

import copy
import enum
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Any, Callable


class ConfigurationError(Exception):
    """Raised when a stream configuration is not acceptable."""


class RetentionPolicy(str, enum.Enum):
    """How long messages are kept in a stream."""

    LIMITS = "limits"
    INTEREST = "interest"
    WORK_QUEUE = "workqueue"


class DiscardPolicy(str, enum.Enum):
    """Which messages are dropped when a stream reaches its limits."""

    OLD = "old"
    NEW = "new"


class StorageType(str, enum.Enum):
    """Where a stream stores its messages."""

    FILE = "file"
    MEMORY = "memory"


class Compression(str, enum.Enum):
    """Compression applied to stored messages."""

    NONE = "none"
    S2 = "s2"


STREAM_DEFAULT_REPLICAS = 1

_NS_PER_MICROSECOND = 1000


def _to_nanos(value: timedelta) -> int:
    return (value // timedelta(microseconds=1)) * _NS_PER_MICROSECOND


def _from_nanos(value: int | None) -> timedelta:
    return timedelta(microseconds=(value or 0) // _NS_PER_MICROSECOND)


@dataclass
class Placement:
    """Where in a cluster a stream should be placed."""

    cluster: str = ""
    tags: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {"cluster": self.cluster}
        if self.tags:
            result["tags"] = list(self.tags)
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Placement:
        return cls(cluster=data.get("cluster") or "", tags=list(data.get("tags") or []))


@dataclass
class SubjectTransform:
    """Maps subjects matching ``source`` onto ``destination``."""

    source: str = ""
    destination: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {"src": self.source, "dest": self.destination}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SubjectTransform:
        return cls(source=data.get("src") or "", destination=data.get("dest") or "")


@dataclass
class StreamSource:
    """Another stream that this stream mirrors or sources from."""

    name: str = ""
    opt_start_seq: int = 0
    opt_start_time: str | None = None
    filter_subject: str = ""
    subject_transforms: list[SubjectTransform] = field(default_factory=list)
    external_api_prefix: str = ""
    external_deliver_prefix: str = ""

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {"name": self.name}
        if self.opt_start_seq:
            result["opt_start_seq"] = self.opt_start_seq
        if self.opt_start_time:
            result["opt_start_time"] = self.opt_start_time
        if self.filter_subject:
            result["filter_subject"] = self.filter_subject
        if self.subject_transforms:
            result["subject_transforms"] = [t.to_dict() for t in self.subject_transforms]
        if self.external_api_prefix or self.external_deliver_prefix:
            result["external"] = {
                "api": self.external_api_prefix,
                "deliver": self.external_deliver_prefix,
            }
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> StreamSource:
        external = data.get("external") or {}
        return cls(
            name=data.get("name") or "",
            opt_start_seq=data.get("opt_start_seq") or 0,
            opt_start_time=data.get("opt_start_time"),
            filter_subject=data.get("filter_subject") or "",
            subject_transforms=[
                SubjectTransform.from_dict(t) for t in data.get("subject_transforms") or []
            ],
            external_api_prefix=external.get("api") or "",
            external_deliver_prefix=external.get("deliver") or "",
        )


@dataclass
class RePublish:
    """Republishes stored messages to another subject."""

    source: str = ""
    destination: str = ""
    headers_only: bool = False

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {"dest": self.destination}
        if self.source:
            result["src"] = self.source
        if self.headers_only:
            result["headers_only"] = True
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> RePublish:
        return cls(
            source=data.get("src") or "",
            destination=data.get("dest") or "",
            headers_only=bool(data.get("headers_only")),
        )


@dataclass
class StreamConsumerLimits:
    """Limits applied to consumers created on a stream."""

    inactive_threshold: timedelta = field(default_factory=timedelta)
    max_ack_pending: int = 0

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {}
        if self.inactive_threshold:
            result["inactive_threshold"] = _to_nanos(self.inactive_threshold)
        if self.max_ack_pending:
            result["max_ack_pending"] = self.max_ack_pending
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> StreamConsumerLimits:
        return cls(
            inactive_threshold=_from_nanos(data.get("inactive_threshold")),
            max_ack_pending=data.get("max_ack_pending") or 0,
        )


@dataclass
class StreamConfig:
    """The configuration of a JetStream stream."""

    name: str = ""
    description: str = ""
    subjects: list[str] = field(default_factory=list)
    retention: RetentionPolicy = RetentionPolicy.LIMITS
    max_consumers: int = 0
    max_msgs: int = 0
    max_bytes: int = 0
    max_age: timedelta = field(default_factory=timedelta)
    max_msgs_per: int = 0
    max_msg_size: int = 0
    storage: StorageType = StorageType.FILE
    discard: DiscardPolicy = DiscardPolicy.OLD
    replicas: int = 0
    no_ack: bool = False
    template: str = ""
    duplicates: timedelta = field(default_factory=timedelta)
    placement: Placement | None = None
    mirror: StreamSource | None = None
    sources: list[StreamSource] = field(default_factory=list)
    sealed: bool = False
    deny_delete: bool = False
    deny_purge: bool = False
    rollup_allowed: bool = False
    allow_direct: bool = False
    mirror_direct: bool = False
    republish: RePublish | None = None
    discard_new_per: bool = False
    metadata: dict[str, str] = field(default_factory=dict)
    compression: Compression = Compression.NONE
    first_seq: int = 0
    subject_transform: SubjectTransform | None = None
    consumer_limits: StreamConsumerLimits = field(default_factory=StreamConsumerLimits)

    def to_dict(self) -> dict[str, Any]:
        """Return the configuration in the server's JSON layout."""
        result: dict[str, Any] = {"name": self.name}
        if self.description:
            result["description"] = self.description
        if self.subjects:
            result["subjects"] = list(self.subjects)
        result.update(
            retention=self.retention.value,
            max_consumers=self.max_consumers,
            max_msgs=self.max_msgs,
            max_bytes=self.max_bytes,
            max_age=_to_nanos(self.max_age),
            max_msgs_per_subject=self.max_msgs_per,
            max_msg_size=self.max_msg_size,
            discard=self.discard.value,
            storage=self.storage.value,
            num_replicas=self.replicas,
        )
        if self.no_ack:
            result["no_ack"] = True
        if self.template:
            result["template_owner"] = self.template
        if self.duplicates:
            result["duplicate_window"] = _to_nanos(self.duplicates)
        if self.placement is not None:
            result["placement"] = self.placement.to_dict()
        if self.mirror is not None:
            result["mirror"] = self.mirror.to_dict()
        if self.sources:
            result["sources"] = [s.to_dict() for s in self.sources]
        result.update(
            sealed=self.sealed,
            deny_delete=self.deny_delete,
            deny_purge=self.deny_purge,
            allow_rollup_hdrs=self.rollup_allowed,
            allow_direct=self.allow_direct,
            mirror_direct=self.mirror_direct,
        )
        if self.republish is not None:
            result["republish"] = self.republish.to_dict()
        if self.discard_new_per:
            result["discard_new_per_subject"] = True
        if self.metadata:
            result["metadata"] = dict(self.metadata)
        if self.compression is not Compression.NONE:
            result["compression"] = self.compression.value
        if self.first_seq:
            result["first_seq"] = self.first_seq
        if self.subject_transform is not None:
            result["subject_transform"] = self.subject_transform.to_dict()
        limits = self.consumer_limits.to_dict()
        if limits:
            result["consumer_limits"] = limits
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> StreamConfig:
        """Build a configuration from the server's JSON layout."""
        placement = data.get("placement")
        mirror = data.get("mirror")
        republish = data.get("republish")
        transform = data.get("subject_transform")
        return cls(
            name=data.get("name") or "",
            description=data.get("description") or "",
            subjects=list(data.get("subjects") or []),
            retention=RetentionPolicy(data.get("retention") or RetentionPolicy.LIMITS.value),
            max_consumers=data.get("max_consumers") or 0,
            max_msgs=data.get("max_msgs") or 0,
            max_bytes=data.get("max_bytes") or 0,
            max_age=_from_nanos(data.get("max_age")),
            max_msgs_per=data.get("max_msgs_per_subject") or 0,
            max_msg_size=data.get("max_msg_size") or 0,
            storage=StorageType(data.get("storage") or StorageType.FILE.value),
            discard=DiscardPolicy(data.get("discard") or DiscardPolicy.OLD.value),
            replicas=data.get("num_replicas") or 0,
            no_ack=bool(data.get("no_ack")),
            template=data.get("template_owner") or "",
            duplicates=_from_nanos(data.get("duplicate_window")),
            placement=Placement.from_dict(placement) if placement else None,
            mirror=StreamSource.from_dict(mirror) if mirror else None,
            sources=[StreamSource.from_dict(s) for s in data.get("sources") or []],
            sealed=bool(data.get("sealed")),
            deny_delete=bool(data.get("deny_delete")),
            deny_purge=bool(data.get("deny_purge")),
            rollup_allowed=bool(data.get("allow_rollup_hdrs")),
            allow_direct=bool(data.get("allow_direct")),
            mirror_direct=bool(data.get("mirror_direct")),
            republish=RePublish.from_dict(republish) if republish else None,
            discard_new_per=bool(data.get("discard_new_per_subject")),
            metadata=dict(data.get("metadata") or {}),
            compression=Compression(data.get("compression") or Compression.NONE.value),
            first_seq=data.get("first_seq") or 0,
            subject_transform=SubjectTransform.from_dict(transform) if transform else None,
            consumer_limits=StreamConsumerLimits.from_dict(data.get("consumer_limits") or {}),
        )


StreamOption = Callable[[StreamConfig], None]

_ONE_YEAR = timedelta(hours=24 * 365)


def default_stream() -> StreamConfig:
    """A template with limits retention and a one year maximum age.

    No storage type or subjects are set.
    """
    return StreamConfig(
        retention=RetentionPolicy.LIMITS,
        discard=DiscardPolicy.OLD,
        max_consumers=-1,
        max_msgs=-1,
        max_msgs_per=-1,
        max_bytes=-1,
        max_age=_ONE_YEAR,
        max_msg_size=-1,
        replicas=1,
        no_ack=False,
    )


def default_work_queue() -> StreamConfig:
    """A template with work queue retention and a one year maximum age.

    No storage type or subjects are set.
    """
    return StreamConfig(
        retention=RetentionPolicy.WORK_QUEUE,
        discard=DiscardPolicy.OLD,
        max_consumers=-1,
        max_msgs=-1,
        max_msgs_per=-1,
        max_bytes=-1,
        max_age=_ONE_YEAR,
        max_msg_size=-1,
        replicas=STREAM_DEFAULT_REPLICAS,
        no_ack=False,
    )


def new_stream_configuration(template: StreamConfig, *args: StreamOption) -> StreamConfig:
    """Return a copy of ``template`` adjusted by the given options."""
    cfg = copy.deepcopy(template)
    for option in args:
        option(cfg)
    return cfg


def check_ack_subjects(cfg: StreamConfig) -> None:
    """Refuse acknowledged streams that would ingest every subject."""
    if not cfg.no_ack and (">" in cfg.subjects or "*" in cfg.subjects):
        raise ConfigurationError(
            "configuration validation failed: streams with no_ack false "
            "may not have '>' or '*' as subjects"
        )


def _setter(attribute: str, value: Any) -> StreamOption:
    def apply(cfg: StreamConfig) -> None:
        setattr(cfg, attribute, value)

    return apply


def consumer_limits(limits: StreamConsumerLimits) -> StreamOption:
    """Set the limits applied to consumers of the stream."""
    return _setter("consumer_limits", limits)


def subjects(*args: str) -> StreamOption:
    """Set the subjects the stream listens on."""
    return _setter("subjects", list(args))


def stream_description(text: str) -> StreamOption:
    """Set a textual description of the stream."""
    return _setter("description", text)


def limits_retention() -> StreamOption:
    """Keep messages until limits are reached."""
    return _setter("retention", RetentionPolicy.LIMITS)


def interest_retention() -> StreamOption:
    """Keep messages while consumers are interested in them."""
    return _setter("retention", RetentionPolicy.INTEREST)


def work_queue_retention() -> StreamOption:
    """Keep messages until they are consumed."""
    return _setter("retention", RetentionPolicy.WORK_QUEUE)


def max_consumers(count: int) -> StreamOption:
    """Limit the number of consumers."""
    return _setter("max_consumers", count)


def max_messages(count: int) -> StreamOption:
    """Limit the number of messages."""
    return _setter("max_msgs", count)


def max_messages_per_subject(count: int) -> StreamOption:
    """Limit the number of messages kept per subject."""
    return _setter("max_msgs_per", count)


def max_bytes(count: int) -> StreamOption:
    """Limit the stream size in bytes."""
    return _setter("max_bytes", count)


def max_age(age: timedelta) -> StreamOption:
    """Limit how long messages are kept."""
    return _setter("max_age", age)


def max_message_size(size: int) -> StreamOption:
    """Limit the size of a single message."""
    return _setter("max_msg_size", size)


def file_storage() -> StreamOption:
    """Store messages on disk."""
    return _setter("storage", StorageType.FILE)


def memory_storage() -> StreamOption:
    """Store messages in memory."""
    return _setter("storage", StorageType.MEMORY)


def replicas(count: int) -> StreamOption:
    """Set the number of replicas."""
    return _setter("replicas", count)


def no_ack() -> StreamOption:
    """Do not acknowledge published messages."""
    return _setter("no_ack", True)


def discard_new() -> StreamOption:
    """Refuse new messages once limits are reached."""
    return _setter("discard", DiscardPolicy.NEW)


def discard_new_per_subject() -> StreamOption:
    """Refuse new messages per subject once limits are reached."""

    def apply(cfg: StreamConfig) -> None:
        cfg.discard = DiscardPolicy.NEW
        cfg.discard_new_per = True

    return apply


def discard_old() -> StreamOption:
    """Drop the oldest messages once limits are reached."""
    return _setter("discard", DiscardPolicy.OLD)


def duplicate_window(window: timedelta) -> StreamOption:
    """Set the window within which duplicate messages are detected."""
    return _setter("duplicates", window)


def placement_cluster(cluster: str) -> StreamOption:
    """Place the stream in a named cluster."""

    def apply(cfg: StreamConfig) -> None:
        if cfg.placement is None:
            cfg.placement = Placement()
        cfg.placement.cluster = cluster

    return apply


def placement_tags(*args: str) -> StreamOption:
    """Place the stream on servers carrying these tags."""

    def apply(cfg: StreamConfig) -> None:
        if cfg.placement is None:
            cfg.placement = Placement()
        cfg.placement.tags = list(args)

    return apply


def mirror(source: StreamSource | None) -> StreamOption:
    """Make the stream a mirror of ``source``."""
    return _setter("mirror", source)


def append_source(source: StreamSource) -> StreamOption:
    """Add one stream to source data from."""

    def apply(cfg: StreamConfig) -> None:
        cfg.sources.append(source)

    return apply


def sources(*args: StreamSource) -> StreamOption:
    """Replace the streams to source data from."""
    return _setter("sources", list(args))


def deny_delete() -> StreamOption:
    """Forbid deleting messages through the API."""
    return _setter("deny_delete", True)


def deny_purge() -> StreamOption:
    """Forbid purging the stream through the API."""
    return _setter("deny_purge", True)


def allow_rollup() -> StreamOption:
    """Allow rollup headers to purge messages."""
    return _setter("rollup_allowed", True)


def allow_direct() -> StreamOption:
    """Allow direct get requests."""
    return _setter("allow_direct", True)


def no_allow_direct() -> StreamOption:
    """Disallow direct get requests."""
    return _setter("allow_direct", False)


def mirror_direct() -> StreamOption:
    """Let a mirror answer direct gets for its origin."""
    return _setter("mirror_direct", True)


def no_mirror_direct() -> StreamOption:
    """Stop a mirror answering direct gets for its origin."""
    return _setter("mirror_direct", False)


def republish(config: RePublish | None) -> StreamOption:
    """Republish stored messages as described by ``config``."""
    return _setter("republish", config)


def stream_metadata(meta: dict[str, str]) -> StreamOption:
    """Attach metadata to the stream; keys may not be empty."""

    def apply(cfg: StreamConfig) -> None:
        if any(len(key) == 0 for key in meta):
            raise ConfigurationError("invalid empty string key in metadata")
        cfg.metadata = dict(meta)

    return apply


def compression(algorithm: Compression) -> StreamOption:
    """Set the compression algorithm for stored messages."""
    return _setter("compression", Compression(algorithm))


def first_sequence(seq: int) -> StreamOption:
    """Set the first sequence number of the stream."""
    return _setter("first_seq", seq)


def subject_transform(transform: SubjectTransform | None) -> StreamOption:
    """Transform the subjects of incoming messages."""
    return _setter("subject_transform", transform)