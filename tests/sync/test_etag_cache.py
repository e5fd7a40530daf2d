"""Tests for the ETag cache and its key-value backing stores."""

import json

import pytest

from lightnotes.sync.etag_cache import ETagCache, normalize_etag
from lightnotes.sync.kv import InMemoryStore, JsonFileStore


class TestNormalizeEtag:
    @pytest.mark.parametrize(
        "raw",
        ['W/"abc"', '"abc"', "abc", '  "abc" ', 'W/abc'],
    )
    def test_representations_normalize_to_bare_tag(self, raw):
        """Weak prefix, quotes and whitespace are all stripped."""
        assert normalize_etag(raw) == "abc"

    def test_empty_values(self):
        assert normalize_etag(None) == ""
        assert normalize_etag("") == ""


class TestETagCache:
    def test_set_and_get(self):
        cache = ETagCache(InMemoryStore())
        cache.set("index.json", '"v1"')
        assert cache.get("index.json") == "v1"

    def test_missing_path_returns_empty(self):
        cache = ETagCache(InMemoryStore())
        assert cache.get("notes/nope.html") == ""

    def test_empty_tag_is_ignored(self):
        """Setting an empty tag must not wipe a known one."""
        cache = ETagCache(InMemoryStore())
        cache.set("index.json", "v1")
        cache.set("index.json", "")
        cache.set("index.json", None)
        assert cache.get("index.json") == "v1"

    def test_remove_and_clear(self):
        cache = ETagCache(InMemoryStore())
        cache.set("a", "1")
        cache.set("b", "2")

        cache.remove("a")
        cache.remove("missing")
        assert cache.all() == {"b": "2"}

        cache.clear()
        assert cache.all() == {}

    def test_persists_across_instances(self, tmp_path):
        """Tags written through a JsonFileStore survive a restart."""
        path = tmp_path / "sync" / "etags.json"
        ETagCache(JsonFileStore(path)).set("todos.json", 'W/"t1"')

        assert ETagCache(JsonFileStore(path)).get("todos.json") == "t1"


class TestJsonFileStore:
    def test_missing_file_loads_empty(self, tmp_path):
        assert JsonFileStore(tmp_path / "nope.json").load() == {}

    def test_corrupt_file_loads_empty(self, tmp_path):
        path = tmp_path / "state.json"
        path.write_text("{not json")
        assert JsonFileStore(path).load() == {}

    def test_non_object_root_loads_empty(self, tmp_path):
        path = tmp_path / "state.json"
        path.write_text(json.dumps(["a", "b"]))
        assert JsonFileStore(path).load() == {}

    def test_save_replaces_without_leftovers(self, tmp_path):
        """Atomic save leaves only the target file behind."""
        path = tmp_path / "state.json"
        store = JsonFileStore(path)
        store.save({"a": 1})
        store.save({"b": 2})

        assert store.load() == {"b": 2}
        assert [p.name for p in tmp_path.iterdir()] == ["state.json"]


class TestInMemoryStore:
    def test_load_returns_copy(self):
        """Mutating a loaded mapping does not change the store."""
        store = InMemoryStore({"ops": [1]})
        data = store.load()
        data["ops"].append(2)
        assert store.load() == {"ops": [1]}
