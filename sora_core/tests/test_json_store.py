import os

import pytest

from sora_core.domain.exceptions import BusinessError
from sora_core.infrastructure.storage.json_store import JsonFileKeyValueStore, MemoryKeyValueStore


def test_json_store_persists_across_instances(tmp_path):
    store = JsonFileKeyValueStore(root=tmp_path / ".storage")
    store.set("chat_history:en", "[]")
    store.set("audio:en:m-1", "QUJD")
    store.set("audio:ja:m-2", "REVG")

    reopened = JsonFileKeyValueStore(root=tmp_path / ".storage")
    assert reopened.get("chat_history:en") == "[]"
    assert reopened.get("audio:ja:m-2") == "REVG"
    assert reopened.keys("audio:en:") == ["audio:en:m-1"]
    assert reopened.keys() == ["audio:en:m-1", "audio:ja:m-2", "chat_history:en"]
    assert list((tmp_path / ".storage").rglob("*.tmp")) == []


def test_history_write_leaves_audio_files_alone(tmp_path):
    store = JsonFileKeyValueStore(root=tmp_path)
    store.set("audio:en:m-1", "QUJD" * 1000)
    audio_file = next((tmp_path / "kv" / "audio").glob("*.json"))
    before = audio_file.stat().st_mtime_ns
    os.utime(audio_file, ns=(before - 10**9, before - 10**9))

    for n in range(5):
        store.set("chat_history:en", f'[{n}]')

    assert audio_file.stat().st_mtime_ns == before - 10**9
    assert store.get("chat_history:en") == "[4]"


def test_json_store_delete(tmp_path):
    store = JsonFileKeyValueStore(root=tmp_path)
    store.set("k", "v")
    store.set("audio:en:m-1", "x")
    store.delete("k")
    store.delete("audio:en:m-1")
    store.delete("missing")
    store.delete("audio:en:missing")
    assert store.get("k") is None
    assert store.keys() == []


def test_json_store_keys_with_odd_characters(tmp_path):
    store = JsonFileKeyValueStore(root=tmp_path)
    store.set("audio:ja:m/1 ?", "x")
    assert store.keys("audio:ja:") == ["audio:ja:m/1 ?"]
    assert store.get("audio:ja:m/1 ?") == "x"


def test_json_store_corrupt_entry(tmp_path):
    store = JsonFileKeyValueStore(root=tmp_path)
    store.set("chat_history:en", "[]")
    next((tmp_path / "kv" / "chat_history").glob("*.json")).write_text("{not json", encoding="utf-8")
    with pytest.raises(BusinessError) as exc:
        store.get("chat_history:en")
    assert exc.value.code == "STORE_READ_ERROR"


def test_failed_replace_removes_temp_file(tmp_path, monkeypatch):
    store = JsonFileKeyValueStore(root=tmp_path)
    store.set("chat_history:en", "[1]")

    def failing_replace(src, dst):
        raise OSError("disk full")

    monkeypatch.setattr(os, "replace", failing_replace)
    with pytest.raises(BusinessError) as exc:
        store.set("chat_history:en", "[2]")
    assert exc.value.code == "STORE_WRITE_ERROR"
    assert list(tmp_path.rglob("*.tmp")) == []
    monkeypatch.undo()
    assert store.get("chat_history:en") == "[1]"


def test_memory_store_prefix_keys():
    store = MemoryKeyValueStore({"a:1": "x", "a:2": "y", "b:1": "z"})
    assert store.keys("a:") == ["a:1", "a:2"]
    assert store.keys() == ["a:1", "a:2", "b:1"]
