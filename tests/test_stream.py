from datetime import datetime, timedelta, timezone

import pytest

from jsmtools.stream import (
    ClusterInfo,
    PeerInfo,
    Stream,
    StreamInfo,
    StreamState,
)
from jsmtools.streamconfig import (
    Compression,
    RePublish,
    StorageType,
    StreamSource,
    compression,
    default_stream,
    deny_delete,
    memory_storage,
    mirror,
    new_stream_configuration,
    republish,
    sources,
    subjects,
)


def make_stream(*options):
    cfg = new_stream_configuration(default_stream(), *options)
    cfg.name = "ORDERS"
    return Stream(cfg)


def test_subject_helpers():
    stream = make_stream()
    assert stream.advisory_subject() == "$JS.EVENT.ADVISORY.*.*.ORDERS.>"
    assert stream.metric_subject() == "$JS.EVENT.METRIC.*.*.ORDERS.*"
    assert stream.direct_subject() == "$JS.API.DIRECT.GET.ORDERS"


def test_mirror_and_sourced_flags():
    plain = make_stream()
    assert not plain.is_mirror()
    assert not plain.is_sourced()

    mirrored = make_stream(mirror(StreamSource(name="OTHER")))
    assert mirrored.is_mirror()
    assert mirrored.mirror.name == "OTHER"

    sourced = make_stream(sources(StreamSource(name="OTHER")))
    assert sourced.is_sourced()
    assert [s.name for s in sourced.sources] == ["OTHER"]


def test_compression_republish_and_template_flags():
    stream = make_stream()
    assert not stream.is_compressed()
    assert not stream.is_republishing()
    assert not stream.is_template_managed()

    stream = make_stream(compression(Compression.S2), republish(RePublish(destination="out.>")))
    assert stream.is_compressed()
    assert stream.is_republishing()

    stream.config.template = "tmpl"
    assert stream.is_template_managed()


def test_configuration_returns_independent_copy():
    stream = make_stream(subjects("ORDERS.*"))
    cfg = stream.configuration()
    assert cfg == stream.config
    cfg.subjects.append("OTHER")
    cfg.name = "CHANGED"
    assert stream.subjects == ["ORDERS.*"]
    assert stream.name == "ORDERS"


def test_properties_reflect_configuration():
    stream = make_stream(memory_storage(), deny_delete())
    assert stream.storage is StorageType.MEMORY
    assert stream.delete_allowed is False
    assert stream.purge_allowed is True
    assert stream.replicas == stream.config.replicas
    assert stream.max_age == stream.config.max_age


def test_time_parsing_truncates_nanoseconds():
    state = StreamState.from_dict({"first_ts": "2024-01-02T03:04:05.123456789Z"})
    assert state.first_time == datetime(2024, 1, 2, 3, 4, 5, 123456, tzinfo=timezone.utc)


def test_invalid_timestamp_raises():
    with pytest.raises(ValueError):
        StreamState.from_dict({"first_ts": "yesterday"})


def test_from_info_uses_info_config():
    info = StreamInfo.from_dict({"config": {"name": "ORDERS", "subjects": ["ORDERS.*"]}})
    stream = Stream.from_info(info)
    assert stream.name == "ORDERS"
    assert stream.info is info
    assert stream.info.cluster is None
    assert stream.subjects == ["ORDERS.*"]