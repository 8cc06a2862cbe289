"""Tests for the filesystem storage layer."""

import os
import threading
import time

import pytest

from logrecv.s3.errors import DirectoryCreateFailed, ObjectWriteFailed, PartMissing


class TestObjects:

    def test_object_path(self, storage, tmp_path):
        assert storage.object_path("/20210503", "file.log") == tmp_path / "objects" / "20210503" / "file.log"
        assert storage.object_path("/", "file.log") == tmp_path / "objects" / "file.log"

    def test_write_object(self, storage):
        path = storage.write_object("/a/b", "c.log", b"hello")
        assert path.read_bytes() == b"hello"

    def test_write_object_replaces(self, storage):
        storage.write_object("/a", "c.log", b"first version")
        path = storage.write_object("/a", "c.log", b"second")
        assert path.read_bytes() == b"second"
        assert [p.name for p in path.parent.iterdir()] == ["c.log"]

    def test_failed_write_leaves_nothing(self, storage):
        with pytest.raises(RuntimeError):
            with storage.object_writer("/a", "c.log") as f:
                f.write(b"partial")
                raise RuntimeError("client went away")
        assert list(storage.bucket_path("/a").iterdir()) == []

    def test_make_bucket_over_file(self, storage):
        storage.write_object("/", "a", b"not a directory")
        with pytest.raises(DirectoryCreateFailed):
            storage.make_bucket("/a/b")

    def test_write_into_directory(self, storage):
        storage.make_bucket("/a/c.log")
        with pytest.raises(ObjectWriteFailed):
            storage.write_object("/a", "c.log", b"hello")

    def test_append_object(self, storage):
        storage.append_object("/a", "day.log", b"one\n")
        path = storage.append_object("/a", "day.log", b"two\n")
        assert path.read_bytes() == b"one\ntwo\n"

    def test_concurrent_appends_do_not_interleave(self, storage):
        lines = [(f"{i:02d}" * 5000).encode() + b"\n" for i in range(20)]
        threads = [
            threading.Thread(target=storage.append_object, args=("/a", "day.log", line))
            for line in lines
        ]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()
        stored = storage.object_path("/a", "day.log").read_bytes().splitlines(keepends=True)
        assert sorted(stored) == sorted(lines)


class TestParts:

    def test_part_path(self, storage, tmp_path):
        assert storage.part_path("abc", 7) == tmp_path / "staging" / "abc.7.part"

    def test_write_read_delete(self, storage):
        storage.write_part("abc", 1, b"part one")
        assert storage.has_part("abc", 1)
        assert storage.read_part("abc", 1) == b"part one"
        storage.delete_part("abc", 1)
        assert not storage.has_part("abc", 1)
        storage.delete_part("abc", 1)

    def test_iter_part_chunks(self, storage):
        storage.write_part("abc", 1, b"0123456789")
        assert list(storage.iter_part("abc", 1, chunk_size=4)) == [b"0123", b"4567", b"89"]

    def test_missing_part(self, storage):
        with pytest.raises(PartMissing):
            storage.read_part("abc", 3)

    def test_staged_parts(self, storage):
        assert storage.staged_parts("abc") == []
        storage.write_part("abc", 2, b"2")
        storage.write_part("abc", 1, b"1")
        storage.write_part("abcd", 1, b"other upload")
        assert [p.name for p in storage.staged_parts("abc")] == ["abc.1.part", "abc.2.part"]

    def test_stale_parts(self, storage):
        old = storage.write_part("old", 1, b"x")
        storage.write_part("new", 1, b"x")
        an_hour_ago = time.time() - 3600
        os.utime(old, (an_hour_ago, an_hour_ago))
        assert storage.stale_parts(time.time() - 60) == [old]

    def test_concurrent_part_writes_do_not_interleave(self, storage):
        payloads = [bytes([i]) * (1024 * 1024) for i in range(8)]
        barrier = threading.Barrier(len(payloads))

        def write(data):
            barrier.wait()
            storage.write_part("abc", 3, data)

        threads = [threading.Thread(target=write, args=(data,)) for data in payloads]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert storage.read_part("abc", 3) in payloads
        assert [p.name for p in storage.staging_dir.iterdir()] == ["abc.3.part"]

    def test_path_lock_is_stable(self, storage):
        path = storage.part_path("abc", 1)
        assert storage.path_lock(path) is storage.path_lock(storage.part_path("abc", 1))
        assert storage.part_lock("abc", 1) is storage.path_lock(path)
