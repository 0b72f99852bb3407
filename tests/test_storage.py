"""
Test suite for storage and page loading.
"""

import json

import pytest
from venue_assistant.page_loader import load_pages
from venue_assistant.storage import JsonFileStore, MemoryStore


class TestJsonFileStore:
    """Test JsonFileStore class."""

    def test_set_get_remove(self, tmp_path):
        store = JsonFileStore(str(tmp_path / "nested" / "cache.json"))

        assert store.get("calendarCache") is None

        store.set("calendarCache", '{"events": []}')
        assert store.get("calendarCache") == '{"events": []}'

        store.remove("calendarCache")
        assert store.get("calendarCache") is None

    def test_persists_across_instances(self, tmp_path):
        path = str(tmp_path / "cache.json")
        JsonFileStore(path).set("lastSyncTimestamp", "2024-06-01T00:00:00Z")

        assert JsonFileStore(path).get("lastSyncTimestamp") == "2024-06-01T00:00:00Z"

    def test_corrupt_file_reads_empty(self, tmp_path):
        """Test an unreadable file behaves as an empty store and is overwritten on write."""
        path = tmp_path / "cache.json"
        path.write_text("{oops", encoding="utf-8")
        store = JsonFileStore(str(path))

        assert store.get("specifications") is None

        store.set("specifications", "{}")
        assert json.loads(path.read_text(encoding="utf-8")) == {"specifications": "{}"}


def test_memory_store():
    store = MemoryStore({"a": "1"})

    assert "a" in store
    store.remove("a")
    store.remove("a")
    assert store.get("a") is None


class TestLoadPages:
    """Test page loading from the supported layouts."""

    def test_json_list(self, tmp_path):
        path = tmp_path / "bible.json"
        path.write_text(json.dumps(["Page one", "Page two"]), encoding="utf-8")

        assert load_pages(str(path)) == ["Page one", "Page two"]

    def test_json_must_be_list_of_strings(self, tmp_path):
        path = tmp_path / "bible.json"
        path.write_text(json.dumps({"pages": 2}), encoding="utf-8")

        with pytest.raises(ValueError):
            load_pages(str(path))

    def test_directory(self, tmp_path):
        (tmp_path / "page_02.txt").write_text("Second", encoding="utf-8")
        (tmp_path / "page_01.txt").write_text("First", encoding="utf-8")
        (tmp_path / "notes.md").write_text("Ignored", encoding="utf-8")

        assert load_pages(str(tmp_path)) == ["First", "Second"]

    def test_form_feed_text(self, tmp_path):
        path = tmp_path / "bible.txt"
        path.write_text("One\fTwo\fThree", encoding="utf-8")

        assert load_pages(str(path)) == ["One", "Two", "Three"]
