"""Named connection contexts: loading, overriding, validating and saving.

A context bundles everything needed to connect to a NATS server: URLs,
credentials, TLS material, JetStream prefixes and optional proxy settings.
Contexts live as JSON documents in the store managed by
:mod:`jsmtools.contextstore`.
"""

from __future__ import annotations

import json
import os
import re
import shutil
import socket
import subprocess
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, NamedTuple
from urllib.parse import unquote, urlsplit

from jsmtools.contextstore import (
    ContextError,
    config_parent_dir,
    context_dir,
    selected_context,
    valid_name,
)

DEFAULT_URL = "nats://127.0.0.1:4222"

_FILE_MODE = 0o600
_DIR_MODE = 0o700

_CERT_STORE_ALIASES = {
    "machine": "windowslocalmachine",
    "user": "windowscurrentuser",
}
_CERT_STORES = frozenset({"windowscurrentuser", "windowslocalmachine"})
_CERT_MATCH_BY = frozenset({"subject", "issuer"})

_ENV_REFERENCE = re.compile(r"\$(?:\{([^}]*)\}|([A-Za-z0-9_]+))")

_SOCKS_SCHEMES = frozenset({"socks5", "socks5h"})
_SOCKS_DEFAULT_PORT = 1080


def _json_key(name: str) -> dict[str, str]:
    return {"json": name}


@dataclass
class Settings:
    """The stored settings of a context, keyed by their JSON names."""

    name: str = field(default="", metadata=_json_key("name"))
    description: str = field(default="", metadata=_json_key("description"))
    url: str = field(default="", metadata=_json_key("url"))
    socks_proxy: str = field(default="", metadata=_json_key("socks_proxy"))
    token: str = field(default="", metadata=_json_key("token"))
    user: str = field(default="", metadata=_json_key("user"))
    password: str = field(default="", metadata=_json_key("password"))
    creds: str = field(default="", metadata=_json_key("creds"))
    nkey: str = field(default="", metadata=_json_key("nkey"))
    cert: str = field(default="", metadata=_json_key("cert"))
    key: str = field(default="", metadata=_json_key("key"))
    ca: str = field(default="", metadata=_json_key("ca"))
    nsc_lookup: str = field(default="", metadata=_json_key("nsc"))
    js_domain: str = field(default="", metadata=_json_key("jetstream_domain"))
    js_api_prefix: str = field(default="", metadata=_json_key("jetstream_api_prefix"))
    js_event_prefix: str = field(default="", metadata=_json_key("jetstream_event_prefix"))
    inbox_prefix: str = field(default="", metadata=_json_key("inbox_prefix"))
    user_jwt: str = field(default="", metadata=_json_key("user_jwt"))
    color_scheme: str = field(default="", metadata=_json_key("color_scheme"))
    tls_first: bool = field(default=False, metadata=_json_key("tls_first"))
    windows_cert_store: str = field(default="", metadata=_json_key("windows_cert_store"))
    windows_cert_match_by: str = field(default="", metadata=_json_key("windows_cert_match_by"))
    windows_cert_match: str = field(default="", metadata=_json_key("windows_cert_match"))
    windows_ca_certs_match: list[str] | None = field(
        default=None, metadata=_json_key("windows_ca_certs_match")
    )
    nsc_url: str = field(default="", repr=False)
    nsc_creds: str = field(default="", repr=False)

    def update_from_dict(self, data: dict[str, Any]) -> None:
        """Overwrite the settings present in a decoded JSON document."""
        for item in fields(self):
            key = item.metadata.get("json")
            if key is None or key not in data:
                continue
            value = data[key]
            if value is None:
                if item.name == "windows_ca_certs_match":
                    self.windows_ca_certs_match = None
                continue
            if item.name == "tls_first":
                if not isinstance(value, bool):
                    raise ContextError(f"invalid value for {key}: expected a boolean")
            elif item.name == "windows_ca_certs_match":
                if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
                    raise ContextError(f"invalid value for {key}: expected a list of strings")
                value = list(value)
            elif not isinstance(value, str):
                raise ContextError(f"invalid value for {key}: expected a string")
            setattr(self, item.name, value)

    def to_dict(self) -> dict[str, Any]:
        """Return the settings as a JSON-ready mapping in stored field order."""
        result: dict[str, Any] = {}
        for item in fields(self):
            key = item.metadata.get("json")
            if key is None:
                continue
            value = getattr(self, item.name)
            if key == "name" and not value:
                continue
            result[key] = list(value) if isinstance(value, list) else value
        return result


class ProxyEndpoint(NamedTuple):
    """Where a SOCKS5 proxy listens and how to authenticate to it."""

    host: str
    port: int
    username: str
    password: str


def _recv_exact(sock: socket.socket, count: int) -> bytes:
    data = bytearray()
    while len(data) < count:
        chunk = sock.recv(count - len(data))
        if not chunk:
            raise ContextError("proxy closed the connection unexpectedly")
        data.extend(chunk)
    return bytes(data)


def _split_host_port(address: str) -> tuple[str, int]:
    host, sep, port = address.rpartition(":")
    if not sep or not host:
        raise ContextError(f"address {address} is missing a port")
    try:
        number = int(port)
    except ValueError as exc:
        raise ContextError(f"invalid port in address {address}") from exc
    return host.strip("[]"), number


def _encode_destination(host: str, port: int) -> bytes:
    try:
        packed = socket.inet_pton(socket.AF_INET, host)
        encoded = b"\x01" + packed
    except OSError:
        try:
            packed = socket.inet_pton(socket.AF_INET6, host)
            encoded = b"\x04" + packed
        except OSError:
            raw = host.encode("idna")
            if len(raw) > 255:
                raise ContextError(f"host name too long: {host}") from None
            encoded = b"\x03" + bytes([len(raw)]) + raw
    return encoded + port.to_bytes(2, "big")


@dataclass(frozen=True)
class SocksDialer:
    """Opens TCP connections through the SOCKS5 proxy named by a URL."""

    proxy: str

    def endpoint(self) -> ProxyEndpoint:
        """Parse the proxy URL into its host, port and credentials."""
        parts = urlsplit(self.proxy)
        if parts.scheme not in _SOCKS_SCHEMES:
            raise ContextError(f"proxy: unknown scheme: {parts.scheme}")
        if not parts.hostname:
            raise ContextError(f"proxy: missing host in {self.proxy}")
        try:
            port = parts.port or _SOCKS_DEFAULT_PORT
        except ValueError as exc:
            raise ContextError(f"proxy: invalid port in {self.proxy}") from exc
        return ProxyEndpoint(
            host=parts.hostname,
            port=port,
            username=unquote(parts.username or ""),
            password=unquote(parts.password or ""),
        )

    def dial(self, network: str, address: str, timeout: float | None = None) -> socket.socket:
        """Connect to ``address`` (``host:port``) through the proxy."""
        if not network.startswith("tcp"):
            raise ContextError(f"proxy: network {network} is not supported")
        endpoint = self.endpoint()
        host, port = _split_host_port(address)

        sock = socket.create_connection((endpoint.host, endpoint.port), timeout)
        try:
            self._handshake(sock, endpoint, host, port)
        except BaseException:
            sock.close()
            raise
        return sock

    @staticmethod
    def _handshake(sock: socket.socket, endpoint: ProxyEndpoint, host: str, port: int) -> None:
        methods = b"\x00\x02" if endpoint.username else b"\x00"
        sock.sendall(b"\x05" + bytes([len(methods)]) + methods)
        version, method = _recv_exact(sock, 2)
        if version != 5:
            raise ContextError(f"proxy: unexpected protocol version {version}")

        if method == 0x02:
            user = endpoint.username.encode()
            secret = endpoint.password.encode()
            sock.sendall(b"\x01" + bytes([len(user)]) + user + bytes([len(secret)]) + secret)
            _, status = _recv_exact(sock, 2)
            if status != 0:
                raise ContextError("proxy: username/password authentication failed")
        elif method != 0x00:
            raise ContextError("proxy: no acceptable authentication methods")

        sock.sendall(b"\x05\x01\x00" + _encode_destination(host, port))
        reply = _recv_exact(sock, 4)
        if reply[1] != 0:
            raise ContextError(f"proxy: connect failed with code {reply[1]}")

        address_type = reply[3]
        if address_type == 0x01:
            _recv_exact(sock, 4)
        elif address_type == 0x04:
            _recv_exact(sock, 16)
        elif address_type == 0x03:
            (length,) = _recv_exact(sock, 1)
            _recv_exact(sock, length)
        else:
            raise ContextError(f"proxy: unknown address type {address_type}")
        _recv_exact(sock, 2)


def _expand_env(value: str) -> str:
    def replace(match: re.Match[str]) -> str:
        name = match.group(1) if match.group(1) is not None else match.group(2)
        return os.environ.get(name, "")

    return _ENV_REFERENCE.sub(replace, value)


def _parse_cert_store(value: str) -> str:
    store = _CERT_STORE_ALIASES.get(value, value).lower()
    if store not in _CERT_STORES:
        raise ContextError(f"unknown windows certificate store {value!r}")
    return store


def _parse_cert_match_by(value: str) -> str:
    match_by = value.lower()
    if match_by not in _CERT_MATCH_BY:
        raise ContextError(f"unknown windows certificate match type {value!r}")
    return match_by


def _set_if(attribute: str):
    def setter(settings: Settings, value: Any) -> None:
        if value:
            setattr(settings, attribute, value)

    return setter


def _set_nsc_url(settings: Settings, value: str) -> None:
    settings.nsc_lookup = value


def _set_socks_proxy(settings: Settings, value: str) -> None:
    if value in ("none", "NONE", "-"):
        settings.socks_proxy = ""
    elif value:
        settings.socks_proxy = value


def _set_tls_first(settings: Settings, value: bool) -> None:
    if value:
        settings.tls_first = True


def _set_ca_match(settings: Settings, value: Any) -> None:
    if value:
        settings.windows_ca_certs_match = [value] if isinstance(value, str) else list(value)


_OVERRIDES = {
    "server_url": _set_if("url"),
    "user": _set_if("user"),
    "password": _set_if("password"),
    "creds": _set_if("creds"),
    "nkey": _set_if("nkey"),
    "token": _set_if("token"),
    "certificate": _set_if("cert"),
    "key": _set_if("key"),
    "ca": _set_if("ca"),
    "description": _set_if("description"),
    "color_scheme": _set_if("color_scheme"),
    "nsc_url": _set_nsc_url,
    "js_api_prefix": _set_if("js_api_prefix"),
    "js_event_prefix": _set_if("js_event_prefix"),
    "js_domain": _set_if("js_domain"),
    "inbox_prefix": _set_if("inbox_prefix"),
    "user_jwt": _set_if("user_jwt"),
    "socks_proxy": _set_socks_proxy,
    "tls_handshake_first": _set_tls_first,
    "windows_cert_store": _set_if("windows_cert_store"),
    "windows_cert_store_match_by": _set_if("windows_cert_match_by"),
    "windows_cert_store_match": _set_if("windows_cert_match"),
    "windows_ca_certs_match": _set_ca_match,
}


class Context:
    """A named set of connection settings, optionally backed by a file."""

    def __init__(self, name: str = "", settings: Settings | None = None, path: str = "") -> None:
        self.name = name
        self.settings = settings if settings is not None else Settings()
        self.path = path

    def __repr__(self) -> str:
        return f"Context(name={self.name!r}, path={self.path!r})"

    def apply(self, **kwargs: Any) -> None:
        """Override settings; empty values leave the current setting alone."""
        unknown = sorted(set(kwargs) - set(_OVERRIDES))
        if unknown:
            raise TypeError(f"unknown context settings: {', '.join(unknown)}")
        for option, value in kwargs.items():
            _OVERRIDES[option](self.settings, value)

    def _configure(self, **kwargs: Any) -> None:
        self.apply(**kwargs)
        cfg = self.settings
        if not cfg.nsc_lookup and not cfg.url and not cfg.nsc_url:
            cfg.url = DEFAULT_URL

    def server_url(self) -> str:
        """The configured server URLs, the default URL when none is set."""
        return self.settings.url or self.settings.nsc_url or DEFAULT_URL

    def creds(self) -> str:
        """The credentials file path, falling back to one resolved through nsc."""
        return self.settings.creds or self.settings.nsc_creds

    def socks_dialer(self) -> SocksDialer:
        """A dialer that connects through the configured SOCKS5 proxy."""
        return SocksDialer(proxy=self.settings.socks_proxy)

    def nats_options(self) -> dict[str, Any]:
        """Describe the client connection options this context asks for."""
        cfg = self.settings
        options: dict[str, Any] = {}

        if cfg.user:
            options["user_info"] = (cfg.user, cfg.password)
        elif self.creds():
            options["user_credentials"] = self.creds()
        elif cfg.nkey:
            options["nkey_seed_file"] = cfg.nkey

        if cfg.token:
            options["token"] = cfg.token
        if cfg.cert and cfg.key:
            options["client_cert"] = (cfg.cert, cfg.key)
        if cfg.ca:
            options["root_cas"] = cfg.ca
        if cfg.socks_proxy:
            options["custom_dialer"] = self.socks_dialer()
        if cfg.inbox_prefix:
            options["inbox_prefix"] = cfg.inbox_prefix
        if cfg.tls_first:
            options["tls_handshake_first"] = True

        store = self._cert_store_options()
        if store is not None:
            options["windows_cert_store"] = store

        return options

    def _cert_store_options(self) -> dict[str, Any] | None:
        cfg = self.settings
        if not cfg.windows_cert_store:
            return None

        store = {
            "store": _parse_cert_store(cfg.windows_cert_store),
            "match_by": _parse_cert_match_by(cfg.windows_cert_match_by),
            "match": cfg.windows_cert_match,
            "ca_match": list(cfg.windows_ca_certs_match or []),
        }

        if not store["ca_match"] and cfg.ca:
            try:
                pem = Path(cfg.ca).read_text()
            except OSError as exc:
                raise ContextError(f"could not read {cfg.ca}: {exc}") from exc
            if "-----BEGIN CERTIFICATE-----" not in pem:
                raise ContextError(f"failed to append CA certificates from {cfg.ca}")
            store["root_cas_pem"] = pem

        return store

    def validate(self) -> None:
        """Raise :class:`ContextError` when the context cannot be stored."""
        cfg = self.settings
        if not valid_name(self.name):
            raise ContextError(f'invalid context name "{self.name}"')

        in_use = [value for value in (cfg.user, cfg.creds, cfg.nkey, cfg.nsc_lookup) if value]
        if len(in_use) > 1:
            raise ContextError(
                "too many types of credentials. Choose only one from "
                "'user/token', 'creds', 'nkey', 'nsc'"
            )

        if cfg.windows_cert_store:
            _parse_cert_store(cfg.windows_cert_store)
        if cfg.windows_cert_match_by:
            _parse_cert_match_by(cfg.windows_cert_match_by)
        if cfg.windows_cert_store and not cfg.windows_cert_match:
            raise ContextError("windows certificate store requires a matcher")

    def save(self, name: str = "") -> None:
        """Validate and write the context to the store, optionally renaming it."""
        if name:
            self.name = name
        self.validate()

        directory = context_dir(config_parent_dir())
        directory.mkdir(mode=_DIR_MODE, parents=True, exist_ok=True)

        self.settings.name = ""
        content = json.dumps(self.settings.to_dict(), indent=2)

        target = directory / f"{self.name}.json"
        fd = os.open(target, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, _FILE_MODE)
        with os.fdopen(fd, "w") as handle:
            handle.write(content)
        self.path = str(target)

    def to_json(self) -> str:
        """Serialize the settings, including the context name, as JSON."""
        self.settings.name = self.name
        return json.dumps(self.settings.to_dict(), indent=2)

    def _load(self) -> None:
        if not self.path:
            parent = config_parent_dir()
            if not self.name:
                self.name = selected_context()
                if not self.name:
                    return
            if not valid_name(self.name):
                raise ContextError(f"invalid context name {self.name}")
            target = context_dir(parent) / f"{self.name}.json"
            if not target.exists():
                raise ContextError(f'unknown context "{self.name}"')
            self.path = str(target)

        content = Path(self.path).read_text()
        try:
            data = json.loads(content)
        except json.JSONDecodeError as exc:
            raise ContextError(f"invalid context file {self.path}: {exc}") from exc
        if not isinstance(data, dict):
            raise ContextError(f"invalid context file {self.path}: expected an object")

        self.settings.update_from_dict(data)
        self.settings.creds = _expand_env(self.settings.creds)

        if self.settings.nsc_lookup:
            self._resolve_nsc_lookup()

    def _resolve_nsc_lookup(self) -> None:
        lookup = self.settings.nsc_lookup
        if not lookup:
            return

        nsc = shutil.which("nsc")
        if nsc is None:
            raise ContextError("cannot find 'nsc' in user path")

        result = subprocess.run(
            [nsc, "generate", "profile", lookup],
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            check=False,
        )
        output = result.stdout.decode(errors="replace")
        if result.returncode != 0:
            raise ContextError(f"nsc invoke failed: {output}")

        try:
            profile = json.loads(output)
        except json.JSONDecodeError as exc:
            raise ContextError(f"could not parse nsc output: {exc}") from exc

        user_creds = profile.get("user_creds") or ""
        if user_creds:
            self.settings.nsc_creds = user_creds

        services = (profile.get("operator") or {}).get("service") or []
        if services:
            self.settings.nsc_url = ",".join(services)


def load_context(name: str = "", load: bool = True, **kwargs: Any) -> Context:
    """Create a context, loading ``name`` (or the selected one) when ``load`` is true.

    Keyword arguments override loaded values, see :meth:`Context.apply`.
    """
    context = Context(name=name)
    if load:
        context._load()
    context._configure(**kwargs)
    return context


def load_context_from_file(filename: str | os.PathLike, **kwargs: Any) -> Context:
    """Load a context from an explicit file; its name is the file's stem."""
    path = Path(filename)
    context = Context(name=path.stem, path=str(filename))
    context._load()
    context._configure(**kwargs)
    return context