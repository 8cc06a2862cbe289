"""Tests for whole-object uploads."""

from datetime import datetime, timedelta, timezone

import pytest

from logrecv.s3.errors import IncompleteBody, Md5Mismatch, MissingContentLength, MissingContentMD5
from logrecv.s3.handlers.object import ObjectHandler
from logrecv.s3.utils import md5_base64


class FakeClock:

    def __init__(self, now):
        self.now = now

    def __call__(self):
        return self.now


def put(handler, bucket, key, body, content_md5=None):
    if content_md5 is None:
        content_md5 = md5_base64(body)
    return handler.put_object(bucket, key, body, len(body), content_md5)


class TestPutObject:

    def test_plain(self, storage):
        stored = put(ObjectHandler(storage), "/20210503", "file.log", b"hello\n")
        assert stored.key == "file.log"
        assert stored.etag == md5_base64(b"hello\n")
        assert storage.object_path("/20210503", "file.log").read_bytes() == b"hello\n"

    def test_gzip_is_decompressed(self, storage, gzipped_hello):
        stored = put(ObjectHandler(storage), "/20210503", "file.log.gz", gzipped_hello)
        assert stored.key == "file.log"
        assert stored.size == 5
        assert storage.object_path("/20210503", "file.log").read_bytes() == b"hello"
        assert not storage.object_path("/20210503", "file.log.gz").exists()

    def test_invalid_gzip_stored_as_is(self, storage, caplog):
        stored = put(ObjectHandler(storage), "/20210503", "file.log.gz", b"not gzip")
        assert stored.key == "file.log.gz"
        assert storage.object_path("/20210503", "file.log.gz").read_bytes() == b"not gzip"
        assert "Error uncompressing" in caplog.text

    def test_overwrite(self, storage):
        handler = ObjectHandler(storage)
        put(handler, "/b", "k.log", b"first")
        put(handler, "/b", "k.log", b"second")
        assert storage.object_path("/b", "k.log").read_bytes() == b"second"

    def test_md5_mismatch_rejected(self, storage):
        with pytest.raises(Md5Mismatch):
            put(ObjectHandler(storage), "/b", "k.log", b"hello", content_md5=md5_base64(b"other"))
        assert not storage.object_path("/b", "k.log").exists()

    def test_md5_missing_rejected(self, storage):
        with pytest.raises(MissingContentMD5):
            put(ObjectHandler(storage), "/b", "k.log", b"hello", content_md5="")

    def test_md5_mismatch_warned(self, storage, caplog):
        handler = ObjectHandler(storage, strict_md5=False)
        declared = md5_base64(b"other")
        stored = put(handler, "/b", "k.log", b"hello", content_md5=declared)
        assert stored.etag == declared
        assert storage.object_path("/b", "k.log").read_bytes() == b"hello"
        assert "Invalid MD5" in caplog.text

    def test_length_mismatch(self, storage):
        with pytest.raises(IncompleteBody):
            ObjectHandler(storage).put_object("/b", "k.log", b"hel", 5, md5_base64(b"hel"))

    def test_length_missing(self, storage):
        with pytest.raises(MissingContentLength) as exc_info:
            ObjectHandler(storage).put_object("/b", "k.log", b"hello", None, md5_base64(b"hello"))
        assert exc_info.value.status_code == 411


class TestAggregate:

    def test_key_uses_utc_day(self, storage):
        local = timezone(timedelta(hours=-5))
        clock = FakeClock(datetime(2021, 5, 3, 22, 30, tzinfo=local))
        assert ObjectHandler(storage, aggregate=True, clock=clock).aggregate_key() == "20210504.log"

    def test_same_day_appends(self, storage, gzipped_hello):
        clock = FakeClock(datetime(2021, 5, 3, 10, 0, tzinfo=timezone.utc))
        handler = ObjectHandler(storage, aggregate=True, clock=clock)
        put(handler, "/20210503", "a.log.gz", gzipped_hello)
        stored = put(handler, "/20210503", "b.log", b" world")
        assert stored.key == "20210503.log"
        assert storage.object_path("/20210503", "20210503.log").read_bytes() == b"hello world"
        assert not storage.object_path("/20210503", "a.log").exists()

    def test_next_day_starts_new_file(self, storage):
        clock = FakeClock(datetime(2021, 5, 3, 23, 59, tzinfo=timezone.utc))
        handler = ObjectHandler(storage, aggregate=True, clock=clock)
        put(handler, "/logs", "a.log", b"late\n")
        clock.now += timedelta(minutes=2)
        put(handler, "/logs", "b.log", b"early\n")
        assert storage.object_path("/logs", "20210503.log").read_bytes() == b"late\n"
        assert storage.object_path("/logs", "20210504.log").read_bytes() == b"early\n"

    def test_buckets_aggregate_separately(self, storage):
        clock = FakeClock(datetime(2021, 5, 3, tzinfo=timezone.utc))
        handler = ObjectHandler(storage, aggregate=True, clock=clock)
        put(handler, "/zone-a", "x.log", b"a")
        put(handler, "/zone-b", "x.log", b"b")
        assert storage.object_path("/zone-a", "20210503.log").read_bytes() == b"a"
        assert storage.object_path("/zone-b", "20210503.log").read_bytes() == b"b"
