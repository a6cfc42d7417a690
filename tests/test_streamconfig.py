from datetime import timedelta

import pytest

from jsmtools.streamconfig import (
    Compression,
    ConfigurationError,
    DiscardPolicy,
    RePublish,
    RetentionPolicy,
    StorageType,
    StreamConfig,
    StreamConsumerLimits,
    StreamSource,
    SubjectTransform,
    allow_direct,
    allow_rollup,
    append_source,
    check_ack_subjects,
    compression,
    consumer_limits,
    default_stream,
    default_work_queue,
    deny_delete,
    deny_purge,
    discard_new,
    discard_new_per_subject,
    discard_old,
    duplicate_window,
    file_storage,
    first_sequence,
    interest_retention,
    limits_retention,
    max_age,
    max_bytes,
    max_consumers,
    max_message_size,
    max_messages,
    max_messages_per_subject,
    memory_storage,
    mirror,
    mirror_direct,
    new_stream_configuration,
    no_ack,
    no_allow_direct,
    no_mirror_direct,
    placement_cluster,
    placement_tags,
    replicas,
    republish,
    sources,
    stream_description,
    stream_metadata,
    subject_transform,
    subjects,
    work_queue_retention,
)


def test_default_stream_values():
    cfg = default_stream()
    assert cfg.retention is RetentionPolicy.LIMITS
    assert cfg.discard is DiscardPolicy.OLD
    assert cfg.max_consumers == -1
    assert cfg.max_msgs == -1
    assert cfg.max_msgs_per == -1
    assert cfg.max_bytes == -1
    assert cfg.max_msg_size == -1
    assert cfg.max_age == timedelta(hours=24 * 365)
    assert cfg.replicas == 1
    assert cfg.no_ack is False
    assert cfg.subjects == []


def test_default_work_queue_values():
    cfg = default_work_queue()
    assert cfg.retention is RetentionPolicy.WORK_QUEUE
    assert cfg.max_age == timedelta(hours=24 * 365)
    assert cfg.max_bytes == -1


def test_new_configuration_does_not_change_template():
    template = default_stream()
    cfg = new_stream_configuration(
        template, subjects("ORDERS.*"), memory_storage(), placement_tags("a", "b")
    )
    assert cfg.subjects == ["ORDERS.*"]
    assert cfg.storage is StorageType.MEMORY
    assert cfg.placement.tags == ["a", "b"]
    assert template.subjects == []
    assert template.storage is StorageType.FILE
    assert template.placement is None


def test_append_source_does_not_change_template():
    template = default_stream()
    template.sources.append(StreamSource(name="A"))
    cfg = new_stream_configuration(template, append_source(StreamSource(name="B")))
    assert [s.name for s in cfg.sources] == ["A", "B"]
    assert [s.name for s in template.sources] == ["A"]


def test_simple_options():
    cfg = new_stream_configuration(
        StreamConfig(),
        stream_description("orders"),
        max_consumers(10),
        max_messages(100),
        max_messages_per_subject(5),
        max_bytes(1024),
        max_age(timedelta(hours=1)),
        max_message_size(512),
        replicas(3),
        no_ack(),
        duplicate_window(timedelta(minutes=2)),
        deny_delete(),
        deny_purge(),
        allow_rollup(),
        allow_direct(),
        mirror_direct(),
        first_sequence(42),
        compression(Compression.S2),
    )
    assert cfg.description == "orders"
    assert cfg.max_consumers == 10
    assert cfg.max_msgs == 100
    assert cfg.max_msgs_per == 5
    assert cfg.max_bytes == 1024
    assert cfg.max_age == timedelta(hours=1)
    assert cfg.max_msg_size == 512
    assert cfg.replicas == 3
    assert cfg.no_ack is True
    assert cfg.duplicates == timedelta(minutes=2)
    assert cfg.deny_delete and cfg.deny_purge and cfg.rollup_allowed
    assert cfg.allow_direct and cfg.mirror_direct
    assert cfg.first_seq == 42
    assert cfg.compression is Compression.S2


def test_toggle_options_turn_off():
    cfg = new_stream_configuration(
        StreamConfig(), allow_direct(), mirror_direct(), no_allow_direct(), no_mirror_direct()
    )
    assert cfg.allow_direct is False
    assert cfg.mirror_direct is False


@pytest.mark.parametrize(
    "option, expected",
    [
        (limits_retention(), RetentionPolicy.LIMITS),
        (interest_retention(), RetentionPolicy.INTEREST),
        (work_queue_retention(), RetentionPolicy.WORK_QUEUE),
    ],
)
def test_retention_options(option, expected):
    assert new_stream_configuration(StreamConfig(), option).retention is expected


def test_storage_options():
    cfg = new_stream_configuration(StreamConfig(), memory_storage(), file_storage())
    assert cfg.storage is StorageType.FILE


def test_discard_options():
    per_subject = new_stream_configuration(StreamConfig(), discard_new_per_subject())
    assert per_subject.discard is DiscardPolicy.NEW
    assert per_subject.discard_new_per is True

    new = new_stream_configuration(StreamConfig(), discard_new())
    assert new.discard is DiscardPolicy.NEW
    assert new.discard_new_per is False

    old = new_stream_configuration(StreamConfig(), discard_new(), discard_old())
    assert old.discard is DiscardPolicy.OLD


def test_placement_cluster_and_tags_combine():
    cfg = new_stream_configuration(StreamConfig(), placement_cluster("east"), placement_tags("ssd"))
    assert cfg.placement.cluster == "east"
    assert cfg.placement.tags == ["ssd"]


def test_mirror_sources_republish_transform_limits():
    src = StreamSource(name="OTHER")
    rp = RePublish(source=">", destination="repub.>")
    st = SubjectTransform(source="in.>", destination="out.>")
    limits = StreamConsumerLimits(inactive_threshold=timedelta(seconds=30), max_ack_pending=10)
    cfg = new_stream_configuration(
        StreamConfig(),
        mirror(src),
        sources(StreamSource(name="X"), StreamSource(name="Y")),
        republish(rp),
        subject_transform(st),
        consumer_limits(limits),
    )
    assert cfg.mirror.name == "OTHER"
    assert [s.name for s in cfg.sources] == ["X", "Y"]
    assert cfg.republish.destination == "repub.>"
    assert cfg.subject_transform.destination == "out.>"
    assert cfg.consumer_limits.max_ack_pending == 10


def test_metadata_set_and_copied():
    meta = {"team": "orders"}
    cfg = new_stream_configuration(StreamConfig(), stream_metadata(meta))
    meta["team"] = "changed"
    assert cfg.metadata == {"team": "orders"}


def test_metadata_rejects_empty_key():
    with pytest.raises(ConfigurationError, match="invalid empty string key in metadata"):
        new_stream_configuration(StreamConfig(), stream_metadata({"": "x"}))


@pytest.mark.parametrize("subject", [">", "*"])
def test_ack_stream_may_not_ingest_everything(subject):
    cfg = new_stream_configuration(default_stream(), subjects(subject))
    with pytest.raises(ConfigurationError, match="no_ack false"):
        check_ack_subjects(cfg)


def test_no_ack_stream_may_ingest_everything():
    cfg = new_stream_configuration(default_stream(), subjects(">"), no_ack())
    check_ack_subjects(cfg)
    assert cfg.subjects == [">"]


def test_dict_round_trip():
    cfg = new_stream_configuration(
        default_stream(),
        subjects("ORDERS.*"),
        memory_storage(),
        placement_cluster("east"),
        mirror(StreamSource(name="OTHER", filter_subject="ORDERS.new")),
        republish(RePublish(source=">", destination="repub.>", headers_only=True)),
        stream_metadata({"k": "v"}),
        compression(Compression.S2),
        duplicate_window(timedelta(minutes=2)),
        consumer_limits(StreamConsumerLimits(timedelta(seconds=30), 10)),
        subject_transform(SubjectTransform("a.>", "b.>")),
    )
    cfg.name = "ORDERS"
    assert StreamConfig.from_dict(cfg.to_dict()) == cfg


def test_to_dict_wire_names():
    cfg = new_stream_configuration(default_stream(), replicas(3), allow_rollup())
    data = cfg.to_dict()
    assert data["num_replicas"] == 3
    assert data["allow_rollup_hdrs"] is True
    assert data["max_age"] == 365 * 24 * 3600 * 10**9
    assert data["max_msgs_per_subject"] == -1


def test_from_dict_defaults():
    cfg = StreamConfig.from_dict({"name": "S"})
    assert cfg == StreamConfig(name="S")