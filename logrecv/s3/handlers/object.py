# pylint: disable=C0116
#
#   Copyright 2024 getcarrier.io
#
#   Licensed under the Apache License, Version 2.0 (the "License");
#   you may not use this file except in compliance with the License.
#   You may obtain a copy of the License at
#
#       http://www.apache.org/licenses/LICENSE-2.0
#
#   Unless required by applicable law or agreed to in writing, software
#   distributed under the License is distributed on an "AS IS" BASIS,
#   WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
#   See the License for the specific language governing permissions and
#   limitations under the License.

""" S3 Object Operations Handler """

import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, NamedTuple, Optional

from hurry.filesize import size

from ..errors import GzipDecompressFailed, IncompleteBody, MissingContentLength
from ..storage import FileStorage
from ..utils import GZIP_SUFFIX, check_content_md5, uncompress

log = logging.getLogger(__name__)

AGGREGATE_SUFFIX = '.log'


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class StoredObject(NamedTuple):
    bucket: str
    key: str
    path: Path
    etag: str
    size: int


class ObjectHandler:
    """Handler for whole-body object uploads"""

    def __init__(self, storage: FileStorage, aggregate: bool = False,
                 strict_md5: bool = True,
                 clock: Callable[[], datetime] = utc_now):
        """
        Args:
            storage: Where objects are written
            aggregate: Append every upload to one file per bucket and UTC day
            strict_md5: Reject uploads whose Content-MD5 does not match
            clock: Source of the current UTC time, for the aggregate file name
        """
        self.storage = storage
        self.aggregate = aggregate
        self.strict_md5 = strict_md5
        self.clock = clock

    def aggregate_key(self) -> str:
        return self.clock().astimezone(timezone.utc).strftime('%Y%m%d') + AGGREGATE_SUFFIX

    def put_object(self, bucket: str, key: str, body: bytes,
                   content_length: Optional[int],
                   content_md5: Optional[str]) -> StoredObject:
        """
        Store an uploaded object.

        S3 Operation: PUT /{bucket}/{key}

        Gzip bodies under a '.gz' key are stored decompressed without the
        suffix; in aggregate mode the body is appended to the daily log.
        """
        resource = f'{bucket.rstrip("/")}/{key}'

        if content_length is None:
            raise MissingContentLength(resource=resource)
        if len(body) != content_length:
            raise IncompleteBody(
                f'Expected {content_length} bytes, received {len(body)}',
                resource=resource,
            )

        etag = check_content_md5(body, content_md5, strict=self.strict_md5, resource=resource)
        log.info("Received %s (%s)", resource, size(len(body)))

        if key.endswith(GZIP_SUFFIX) and len(key) > len(GZIP_SUFFIX):
            try:
                body = uncompress(body)
                key = key[:-len(GZIP_SUFFIX)]
            except GzipDecompressFailed as e:
                log.warning("Error uncompressing %s, storing it as is: %s", resource, e)

        if self.aggregate:
            key = self.aggregate_key()
            path = self.storage.append_object(bucket, key, body)
        else:
            path = self.storage.write_object(bucket, key, body)

        log.debug("Stored %s bytes at %s", len(body), path)
        return StoredObject(bucket=bucket, key=key, path=path, etag=etag, size=len(body))
