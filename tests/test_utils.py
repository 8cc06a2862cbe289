"""Tests for S3 helper functions."""

import gzip
import random

import pytest

from logrecv.s3.errors import GzipDecompressFailed, InvalidURI, Md5Mismatch, MissingContentMD5
from logrecv.s3.utils import (
    UPLOAD_ID_CHARSET,
    UPLOAD_ID_LENGTH,
    check_content_md5,
    encode_path,
    generate_upload_id,
    md5_base64,
    parse_bucket_and_key,
    uncompress,
)


class TestParseBucketAndKey:

    @pytest.mark.parametrize("path,expected", [
        ("/20210503/file.log.gz", ("/20210503", "file.log.gz")),
        ("/a/b/c.log", ("/a/b", "c.log")),
        ("/c.log", ("/", "c.log")),
        ("/logs/my file.log", ("/logs", "my file.log")),
    ])
    def test_split(self, path, expected):
        assert parse_bucket_and_key(path) == expected

    @pytest.mark.parametrize("path", [
        "/", "", "/bucket/", "/a//b.log", "/../etc/passwd", "/a/./b.log", "/a/..",
    ])
    def test_rejected(self, path):
        with pytest.raises(InvalidURI):
            parse_bucket_and_key(path)


class TestEncodePath:

    def test_safe_path_untouched(self):
        assert encode_path("/20210503/file-1_a.log~") == "/20210503/file-1_a.log~"

    def test_reserved_characters(self):
        assert encode_path("/logs/a b+c=d.log") == "/logs/a%20b%2Bc%3Dd.log"

    def test_utf8(self):
        assert encode_path("/logs/é.log") == "/logs/%C3%A9.log"


class TestContentMD5:
    DATA = b"hello"
    DIGEST = "XUFAKrxLKna5cZ2REBfFkg=="

    def test_md5_base64(self):
        assert md5_base64(self.DATA) == self.DIGEST

    def test_match(self):
        assert check_content_md5(self.DATA, self.DIGEST) == self.DIGEST

    def test_surrounding_whitespace(self):
        assert check_content_md5(self.DATA, f" {self.DIGEST} ") == self.DIGEST

    def test_mismatch_strict(self):
        with pytest.raises(Md5Mismatch) as exc_info:
            check_content_md5(b"hellO", self.DIGEST, resource="/b/k")
        assert exc_info.value.code == "BadDigest"
        assert exc_info.value.resource == "/b/k"

    def test_mismatch_lenient(self, caplog):
        assert check_content_md5(b"hellO", self.DIGEST, strict=False) == self.DIGEST
        assert "Invalid MD5" in caplog.text

    def test_missing_strict(self):
        with pytest.raises(MissingContentMD5):
            check_content_md5(self.DATA, None)

    def test_missing_lenient(self):
        assert check_content_md5(self.DATA, "", strict=False) == self.DIGEST


class TestUncompress:

    def test_valid(self):
        assert uncompress(gzip.compress(b"hello")) == b"hello"

    @pytest.mark.parametrize("data", [b"hello", gzip.compress(b"hello")[:-4]])
    def test_invalid(self, data):
        with pytest.raises(GzipDecompressFailed):
            uncompress(data)


class TestGenerateUploadId:

    def test_shape(self):
        upload_id = generate_upload_id(random.Random(1))
        assert len(upload_id) == UPLOAD_ID_LENGTH
        assert set(upload_id) <= set(UPLOAD_ID_CHARSET)

    def test_distinct(self):
        rng = random.SystemRandom()
        assert len({generate_upload_id(rng) for _ in range(100)}) == 100
