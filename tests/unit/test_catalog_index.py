"""Tests for CatalogIndex — latest-manifest cache behind a readers/writer lock."""

from __future__ import annotations

import threading

import pytest

from gitops_squared.core.catalog_index import (
    CatalogIndex,
    ReadWriteLock,
    resource_key,
    split_key,
)


class TestCatalogIndex:
    def test_set_and_get(self):
        index = CatalogIndex()
        index.set("default", "web", b"m1")
        assert index.get("default", "web") == b"m1"
        assert "default/web" in index
        assert len(index) == 1

    def test_set_overwrites_without_history(self):
        index = CatalogIndex()
        index.set("default", "web", b"m1")
        index.set("default", "web", b"m2")
        assert index.snapshot() == {"default/web": b"m2"}

    def test_delete(self):
        index = CatalogIndex()
        index.set("default", "web", b"m1")
        assert index.delete("default", "web") is True
        assert index.delete("default", "web") is False
        assert index.get("default", "web") is None

    def test_snapshot_is_a_copy(self):
        index = CatalogIndex()
        index.set("default", "web", b"m1")
        snap = index.snapshot()
        index.set("default", "db", b"m2")
        snap["default/other"] = b"x"
        assert snap.keys() == {"default/web", "default/other"}
        assert index.keys() == ["default/db", "default/web"]

    def test_replace_all(self):
        index = CatalogIndex()
        index.set("default", "old", b"x")
        index.replace_all({"default/new": b"y"})
        assert index.snapshot() == {"default/new": b"y"}

    def test_concurrent_writers_on_distinct_keys(self):
        index = CatalogIndex()

        def write(worker: int) -> None:
            for i in range(200):
                index.set("default", f"w{worker}-{i}", f"{worker}:{i}".encode())

        threads = [threading.Thread(target=write, args=(w,)) for w in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        snap = index.snapshot()
        assert len(snap) == 8 * 200
        assert snap["default/w3-17"] == b"3:17"


class TestReadWriteLock:
    def test_readers_share(self):
        lock = ReadWriteLock()
        inside = threading.Barrier(2, timeout=5)

        def reader() -> None:
            with lock.read():
                inside.wait()

        threads = [threading.Thread(target=reader) for _ in range(2)]
        for t in threads:
            t.start()
        for t in threads:
            t.join(timeout=5)
        assert not any(t.is_alive() for t in threads)

    def test_writer_excludes_readers(self):
        lock = ReadWriteLock()
        events: list[str] = []
        writer_in = threading.Event()
        release = threading.Event()

        def writer() -> None:
            with lock.write():
                writer_in.set()
                release.wait(timeout=5)
                events.append("writer-done")

        def reader() -> None:
            with lock.read():
                events.append("reader")

        w = threading.Thread(target=writer)
        w.start()
        assert writer_in.wait(timeout=5)
        r = threading.Thread(target=reader)
        r.start()
        r.join(timeout=0.1)
        assert events == []
        release.set()
        w.join(timeout=5)
        r.join(timeout=5)
        assert events == ["writer-done", "reader"]


class TestKeys:
    def test_resource_key_round_trip(self):
        assert split_key(resource_key("default", "web")) == ("default", "web")

    @pytest.mark.parametrize("key", ["noslash", "/web", "default/", "a/b/c"])
    def test_split_key_rejects_malformed(self, key: str):
        with pytest.raises(ValueError):
            split_key(key)
