# jsmtools

Building blocks for working with NATS JetStream from Python, using only the
standard library:

- **Connection contexts** (`jsmtools.contextstore`, `jsmtools.natscontext`):
  named sets of connection settings stored as JSON files under
  `$XDG_CONFIG_HOME/nats/context` (or `~/.config/nats/context`), with one of
  them selected as the default.
- **Stream configuration** (`jsmtools.streamconfig`): templates and composable
  options for building stream configurations.
- **Streams and stream details** (`jsmtools.stream`, `jsmtools.streamdetail`):
  a stream's configuration together with its last known information, loading
  of exported stream details, and grouping of deleted sequences into gaps.
- **Manager options** (`jsmtools.options`): settings for timeouts, API and
  event prefixes, domains, tracing and pedantic requests.
- **Stream query options** (`jsmtools.queryoptions`): the filters a stream
  query would apply.
- **Subject matching** (`jsmtools.subjects`): NATS wildcard subset matching
  (`*` and `>`).

## Installation

```
pip install jsmtools
```

## Contexts

```python
from jsmtools.contextstore import (
    ContextError,
    known_contexts,
    selected_context,
    previous_context,
    select_context,
    unselect_context,
    delete_context,
)
from jsmtools.natscontext import load_context, load_context_from_file

print(known_contexts())        # sorted names of non-empty saved contexts
print(selected_context())      # the default context, "" when none is selected

select_context("staging")      # raises ContextError("unknown context") if not saved
print(previous_context())      # the context selected before

ctx = load_context("", True)   # load the selected context, if any
print(ctx.server_url())        # "nats://127.0.0.1:4222" when nothing is configured

override = load_context("", True, server_url="connect.example.com")

other = load_context_from_file("contexts/gotest.json")  # named "gotest"
other.validate()
other.save("gotest")
```

Keyword overrides accepted by `load_context`, `load_context_from_file` and
`Context.apply` include `server_url`, `user`, `password`, `creds`, `nkey`,
`token`, `certificate`, `key`, `ca`, `description`, `color_scheme`,
`nsc_url`, `js_api_prefix`, `js_event_prefix`, `js_domain`, `inbox_prefix`,
`user_jwt`, `socks_proxy`, `tls_handshake_first` and the Windows certificate
store settings. Empty values leave the current setting alone; a
`socks_proxy` of `"none"`, `"NONE"` or `"-"` clears the proxy.

A context may name at most one kind of credentials (user, creds file, nkey or
nsc lookup); `validate()` and `save()` raise `ContextError` otherwise. When a
context holds an `nsc` lookup, loading it runs `nsc generate profile` to
resolve credentials and server URLs.

`Context.nats_options()` returns a dictionary describing the connection
options the context asks for, and `Context.socks_dialer()` returns a
`SocksDialer` whose `dial()` opens TCP connections through a SOCKS5 proxy.

## Stream configuration

```python
from jsmtools.streamconfig import (
    default_stream,
    new_stream_configuration,
    check_ack_subjects,
    subjects,
    memory_storage,
    replicas,
)

cfg = new_stream_configuration(
    default_stream(),
    subjects("ORDERS.*"),
    memory_storage(),
    replicas(3),
)
check_ack_subjects(cfg)        # raises ConfigurationError for ">" or "*" without no_ack
print(cfg.to_dict())           # the server's JSON layout
```

Options are applied in order to a copy of the template; `stream_metadata`
raises `ConfigurationError` for an empty key.

## Streams and stream details

```python
from jsmtools.stream import Stream
from jsmtools.streamdetail import load_from_stream_detail_bytes, detect_deleted_gaps

stream, consumers = load_from_stream_detail_bytes(data)
print(stream.name, stream.replicas, stream.is_mirror())
print(stream.advisory_subject())   # "$JS.EVENT.ADVISORY.*.*.<name>.>"

detect_deleted_gaps([1, 2, 3, 5])  # [(1, 3), (5, 5)]
```

## Subject matching

```python
from jsmtools.subjects import subject_is_subset_match

subject_is_subset_match("in.q1", "in.*")        # True
subject_is_subset_match("in.q1.other", "in.>")  # True
subject_is_subset_match("in.q1", "in.*.*")      # False
```

## Options

```python
from jsmtools.options import build_manager_options, with_timeout, with_domain
from jsmtools.queryoptions import build_query_options, query_replicas, query_invert

manager = build_manager_options(with_timeout(1.0), with_domain("hub"))
query = build_query_options(query_replicas(2), query_invert())
```

Invalid regular expressions and negative counts given to the query options
raise `QueryError`.

## What this package does not do

It does not connect to a NATS server or send JetStream API requests: there is
no client, so streams cannot be created, loaded, updated or deleted from here,
and `nats_options()` only describes connection settings. Stream query options
are built and validated, but nothing in the package applies them to a list
of streams or evaluates query expressions.

## Running the tests

```
pip install "jsmtools[test]"
pytest
```