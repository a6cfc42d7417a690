import json
import os

import pytest

from jsmtools.contextstore import (
    ContextError,
    config_parent_dir,
    context_dir,
    context_path,
    delete_context,
    is_known,
    known_contexts,
    previous_context,
    select_context,
    selected_context,
    unselect_context,
    valid_name,
)


@pytest.fixture
def store(tmp_path, monkeypatch):
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path))
    cdir = tmp_path / "nats" / "context"
    cdir.mkdir(parents=True)
    (cdir / "gotest.json").write_text(
        json.dumps({"url": "demo.nats.io", "token": "token"})
    )
    (cdir / "other.json").write_text(json.dumps({"url": "other.example.com"}))
    (tmp_path / "nats" / "context.txt").write_text("gotest\n")
    return tmp_path


def test_context_selection_flow(store):
    assert known_contexts() == ["gotest", "other"]
    assert selected_context() == "gotest"

    select_context("other")
    assert selected_context() == "other"

    unselect_context()
    assert selected_context() == ""
    unselect_context()
    assert selected_context() == ""

    with pytest.raises(ContextError) as exc:
        select_context("nonexisting")
    assert str(exc.value) == "unknown context"

    select_context("gotest")
    assert selected_context() == "gotest"
    assert previous_context() == "other"


def test_select_records_previous(store):
    select_context("other")
    assert previous_context() == "gotest"


def test_unselect_records_previous(store):
    unselect_context()
    assert previous_context() == "gotest"
    assert not (store / "nats" / "context.txt").exists()


@pytest.mark.parametrize("name", ["", "not..valid", f"{os.sep}aaaa", "a..b"])
def test_invalid_names(name):
    assert valid_name(name) is False


@pytest.mark.parametrize("name", ["gotest", "ngs.js", "a.b"])
def test_valid_names(name):
    assert valid_name(name) is True


def test_select_invalid_name_raises(store):
    with pytest.raises(ContextError):
        select_context("not..valid")


def test_known_contexts_skips_empty_non_json_and_dirs(store):
    cdir = store / "nats" / "context"
    (cdir / "empty.json").write_text("")
    (cdir / "notes.txt").write_text("hello")
    (cdir / "sub.json").mkdir()
    assert known_contexts() == ["gotest", "other"]


def test_known_contexts_missing_directory(tmp_path, monkeypatch):
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "nonexisting"))
    assert known_contexts() == []
    assert selected_context() == ""
    assert previous_context() == ""


def test_is_known(store):
    assert is_known("gotest") is True
    assert is_known("missing") is False
    assert is_known("..") is False


def test_context_path(store):
    assert context_path("gotest") == store / "nats" / "context" / "gotest.json"
    with pytest.raises(ContextError):
        context_path("bad..name")


def test_context_dir(tmp_path):
    assert context_dir(tmp_path) == tmp_path / "nats" / "context"


def test_config_parent_dir_from_env(tmp_path, monkeypatch):
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path))
    assert config_parent_dir() == tmp_path


def test_config_parent_dir_from_home(tmp_path, monkeypatch):
    monkeypatch.delenv("XDG_CONFIG_HOME", raising=False)
    monkeypatch.setenv("HOME", str(tmp_path))
    monkeypatch.setenv("USERPROFILE", str(tmp_path))
    assert config_parent_dir() == tmp_path / ".config"


def test_delete_selected_with_others_raises(store):
    with pytest.raises(ContextError) as exc:
        delete_context("gotest")
    assert str(exc.value) == "cannot remove the current active context"
    assert is_known("gotest") is True


def test_delete_unselected(store):
    delete_context("other")
    assert known_contexts() == ["gotest"]
    assert selected_context() == "gotest"


def test_delete_only_selected_clears_selection(store):
    delete_context("other")
    delete_context("gotest")
    assert known_contexts() == []
    assert selected_context() == ""


def test_delete_missing_is_quiet(store):
    delete_context("missing")
    assert known_contexts() == ["gotest", "other"]


def test_delete_invalid_name_raises(store):
    with pytest.raises(ContextError):
        delete_context("x..y")


def test_select_creates_tree(tmp_path, monkeypatch):
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path))
    cdir = tmp_path / "nats" / "context"
    cdir.mkdir(parents=True)
    (cdir / "solo.json").write_text("{}")
    select_context("solo")
    assert (tmp_path / "nats" / "context.txt").read_text() == "solo"
    assert previous_context() == ""