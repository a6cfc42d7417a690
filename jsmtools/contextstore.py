"""On-disk store of named connection contexts and the selected context.

Contexts are kept as JSON files below ``$XDG_CONFIG_HOME/nats/context`` or
``~/.config/nats/context``. The name of the selected context is kept in
``nats/context.txt``. The name of the one selected before it is kept in
``nats/previous-context.txt``.
"""

from __future__ import annotations

import os
from pathlib import Path

SELECTED_CONTEXT_FILE = "context.txt"
PREVIOUS_CONTEXT_FILE = "previous-context.txt"

_FILE_MODE = 0o600
_DIR_MODE = 0o700


class ContextError(Exception):
    """Raised when a context cannot be found, named or stored."""


def config_parent_dir() -> Path:
    """Return the directory that holds the ``nats`` configuration tree."""
    parent = os.environ.get("XDG_CONFIG_HOME", "")
    if parent:
        return Path(parent)

    try:
        home = Path.home()
    except (RuntimeError, KeyError) as exc:
        raise ContextError("cannot determine home directory") from exc

    if not str(home):
        raise ContextError("cannot determine home directory")

    return home / ".config"


def valid_name(name: str) -> bool:
    """Tell whether ``name`` can be used as a context name."""
    return bool(name) and ".." not in name and os.sep not in name


def context_dir(parent: os.PathLike | str) -> Path:
    """Return the directory that holds the context files below ``parent``."""
    return Path(parent) / "nats" / "context"


def _known_in(parent: Path, name: str) -> bool:
    if not valid_name(name):
        return False
    return (context_dir(parent) / f"{name}.json").exists()


def is_known(name: str) -> bool:
    """Tell whether a context with this name exists on disk."""
    if not valid_name(name):
        return False
    try:
        parent = config_parent_dir()
    except ContextError:
        return False
    return _known_in(parent, name)


def context_path(name: str) -> Path:
    """Return the path on disk where the context ``name`` is stored."""
    if not valid_name(name):
        raise ContextError(f"invalid context name {name!r}")
    return context_dir(config_parent_dir()) / f"{name}.json"


def known_contexts() -> list[str]:
    """Return the sorted names of all non-empty contexts on disk."""
    try:
        directory = context_dir(config_parent_dir())
        entries = list(directory.iterdir())
    except (ContextError, OSError):
        return []

    names = []
    for entry in entries:
        try:
            if entry.is_dir() or entry.stat().st_size == 0:
                continue
        except OSError:
            continue
        if entry.suffix != ".json":
            continue
        names.append(entry.stem)

    return sorted(names)


def _read_context_file(filename: str) -> str:
    try:
        path = config_parent_dir() / "nats" / filename
        return path.read_text().strip()
    except (ContextError, OSError):
        return ""


def selected_context() -> str:
    """Return the name of the selected context, empty when none is selected."""
    return _read_context_file(SELECTED_CONTEXT_FILE)


def previous_context() -> str:
    """Return the name of the previously selected context, empty if none."""
    return _read_context_file(PREVIOUS_CONTEXT_FILE)


def _write_private(path: Path, content: str) -> None:
    fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, _FILE_MODE)
    with os.fdopen(fd, "w") as handle:
        handle.write(content)


def _set_previous_context(parent: Path, name: str) -> None:
    if name:
        _write_private(parent / "nats" / PREVIOUS_CONTEXT_FILE, name)


def select_context(name: str) -> None:
    """Make ``name`` the selected context; it must already exist."""
    if not valid_name(name):
        raise ContextError(f"invalid context name {name!r}")

    if not is_known(name):
        raise ContextError("unknown context")

    parent = config_parent_dir()
    context_dir(parent).mkdir(mode=_DIR_MODE, parents=True, exist_ok=True)

    _set_previous_context(parent, selected_context())
    _write_private(parent / "nats" / SELECTED_CONTEXT_FILE, name)


def unselect_context() -> None:
    """Clear the selected context, remembering it as the previous one."""
    current = selected_context()
    if not current:
        return

    parent = config_parent_dir()
    _set_previous_context(parent, current)
    (parent / "nats" / SELECTED_CONTEXT_FILE).unlink()


def delete_context(name: str) -> None:
    """Delete the context ``name``.

    The selected context may only be deleted when it is the only one.
    """
    if not valid_name(name):
        raise ContextError(f"invalid context name {name!r}")

    known = known_contexts()
    selected = selected_context() == name

    if selected and len(known) > 1:
        raise ContextError("cannot remove the current active context")

    parent = config_parent_dir()
    cfile = context_dir(parent) / f"{name}.json"
    if not cfile.exists():
        return

    cfile.unlink()

    if selected:
        (parent / "nats" / SELECTED_CONTEXT_FILE).unlink()