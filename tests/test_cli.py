"""Tests for the lightnotes CLI commands."""

import json
import os
import zipfile
from unittest.mock import patch

import pytest
from rich.console import Console

from lightnotes.cli import export_notes, import_notes, notes, reset, setup, status, sync
from lightnotes.config import ClientConfig
from lightnotes.store import DirectoryStore


@pytest.fixture(autouse=True)
def clean_env():
    with patch.dict(os.environ, {}, clear=False):
        for key in ("LIGHTNOTES_API_URL", "LIGHTNOTES_TOKEN", "LIGHTNOTES_HOME"):
            os.environ.pop(key, None)
        yield


@pytest.fixture
def home(tmp_path):
    return tmp_path / "home"


def test_setup_saves_config(home, capsys):
    """Test setup writes the endpoint and token."""
    setup("https://notes.test/", "secret", home=home)

    captured = capsys.readouterr()
    assert "Remote sync configured" in captured.out
    config = ClientConfig.load(home / "config.json")
    assert config.remote_url == "https://notes.test"
    assert config.auth_token == "secret"


def test_setup_reports_invalid_url(home, capsys):
    setup("notes.test", "secret", home=home)

    captured = capsys.readouterr()
    assert "looks wrong" in captured.out


def test_status_unconfigured(home, capsys):
    """Test status shows an unconfigured client and an empty queue."""
    status(home=home)

    captured = capsys.readouterr()
    assert "Configured" in captured.out
    assert "No" in captured.out
    assert "Queued operations" in captured.out


def test_notes_lists_local_notes(home, capsys):
    store = DirectoryStore(home / "data")
    store.init()
    store.index_file.write_text(json.dumps([{"id": "n1", "title": "Groceries"}]))

    notes(home=home)

    captured = capsys.readouterr()
    assert "Groceries" in captured.out


def test_sync_unconfigured_reports_offline(home, capsys):
    sync(home=home)

    captured = capsys.readouterr()
    assert "offline" in captured.out


def test_export_then_import(home, tmp_path, capsys):
    """Test a backup taken from one home restores into another."""
    store = DirectoryStore(home / "data")
    store.init()
    store.index_file.write_text(json.dumps([{"id": "n1", "title": "Groceries"}]))
    (store.notes_dir / "n1.html").write_text("<p>milk</p>")
    backup = tmp_path / "backup.zip"

    export_notes(backup, home=home)

    with zipfile.ZipFile(backup) as archive:
        assert "notes/n1.html" in archive.namelist()

    other_home = tmp_path / "other"
    import_notes(backup, home=other_home)

    captured = capsys.readouterr()
    assert "Imported 1 notes" in captured.out
    assert (other_home / "data" / "notes" / "n1.html").read_text() == "<p>milk</p>"


def test_import_invalid_backup(home, tmp_path, capsys):
    backup = tmp_path / "broken.zip"
    with zipfile.ZipFile(backup, "w") as archive:
        archive.writestr("notes/x.html", "<p>x</p>")

    import_notes(backup, home=home)

    captured = capsys.readouterr()
    assert "missing index.json" in captured.out


def test_reset_requires_confirmation(home, capsys):
    with patch.object(Console, "input", return_value="n"):
        reset(home=home)

    captured = capsys.readouterr()
    assert "Aborted" in captured.out
