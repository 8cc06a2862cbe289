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

""" S3 Multipart Upload Operations Handler """

import hashlib
import logging
import secrets
import threading
from datetime import datetime, timedelta
from typing import Callable, Dict, List, Optional
from xml.etree.ElementTree import ParseError, fromstring

from hurry.filesize import size

from ...models.upload import (
    CompletedUpload,
    ManifestEntry,
    PartInfo,
    UploadSession,
    UploadState,
)
from ..errors import (
    InvalidArgument,
    MalformedXML,
    NoSuchUpload,
    PartETagMismatch,
    PartMissing,
)
from ..storage import FileStorage
from ..utils import check_content_md5, generate_upload_id, md5_base64
from .object import utc_now

log = logging.getLogger(__name__)

MAX_PART_NUMBER = 10000
MULTIPART_EXPIRE_SECONDS = 24 * 60 * 60  # 24 hours


def _local_name(tag: str) -> str:
    return tag.rsplit('}', 1)[-1]


def parse_complete_manifest(body: bytes) -> List[ManifestEntry]:
    """
    Parse a CompleteMultipartUpload request body into manifest entries,
    keeping the order in which the client listed the parts.

    <CompleteMultipartUpload>
        <Part><PartNumber>1</PartNumber><ETag>"etag"</ETag></Part>
        ...
    </CompleteMultipartUpload>
    """
    try:
        root = fromstring(body)
    except ParseError as e:
        raise MalformedXML() from e

    if _local_name(root.tag) != 'CompleteMultipartUpload':
        raise MalformedXML(f'Unexpected root element {_local_name(root.tag)}')

    entries = []
    for part in root:
        if _local_name(part.tag) != 'Part':
            continue
        fields = {_local_name(child.tag): (child.text or '').strip() for child in part}
        try:
            part_number = int(fields['PartNumber'])
        except (KeyError, ValueError) as e:
            raise MalformedXML('Every Part needs a numeric PartNumber') from e
        entries.append(ManifestEntry(part_number, fields.get('ETag', '').strip('"')))

    if not entries:
        raise MalformedXML('CompleteMultipartUpload lists no parts')
    return entries


class MultipartHandler:
    """
    Handler for S3 multipart upload operations

    Sessions are kept in memory and guarded by one lock; part bytes are
    staged on disk until Complete joins them into the final object.
    """

    def __init__(self, storage: FileStorage, domain: str = 'localhost',
                 strict_md5: bool = True,
                 upload_ttl: int = MULTIPART_EXPIRE_SECONDS,
                 clock: Callable[[], datetime] = utc_now):
        self.storage = storage
        self.domain = domain
        self.strict_md5 = strict_md5
        self.upload_ttl = upload_ttl
        self.clock = clock
        self._rng = secrets.SystemRandom()
        self._uploads: Dict[str, UploadSession] = {}
        self._lock = threading.Lock()

    def get_upload(self, upload_id: str) -> Optional[UploadSession]:
        with self._lock:
            return self._uploads.get(upload_id)

    def _open_upload(self, upload_id: str, resource: str = '') -> UploadSession:
        """Caller must hold the lock"""
        session = self._uploads.get(upload_id)
        if session is None or not session.is_open:
            raise NoSuchUpload(resource=resource)
        return session

    @staticmethod
    def _check_target(session: UploadSession, bucket: str, key: str):
        if session.bucket != bucket or session.key != key:
            raise InvalidArgument(
                'Bucket or key does not match upload',
                resource=f'{bucket.rstrip("/")}/{key}',
            )

    @staticmethod
    def _check_etags(session: UploadSession, manifest: List[ManifestEntry], resource: str):
        """Listed ETags, when given, must be those returned by UploadPart"""
        for entry in manifest:
            part = session.parts.get(entry.part_number)
            if entry.etag and part is not None and part.etag != entry.etag:
                raise PartETagMismatch(
                    f'ETag {entry.etag} does not match part {entry.part_number}',
                    resource=resource,
                )

    def create_multipart_upload(self, bucket: str, key: str) -> UploadSession:
        """
        Initiate a multipart upload.

        S3 Operation: POST /{bucket}/{key}?uploads

        Returns the session holding the upload ID to use for subsequent parts.
        """
        now = self.clock()
        with self._lock:
            upload_id = generate_upload_id(self._rng)
            while upload_id in self._uploads:
                upload_id = generate_upload_id(self._rng)
            session = UploadSession(
                upload_id=upload_id, bucket=bucket, key=key,
                created_at=now, updated_at=now,
            )
            self._uploads[upload_id] = session

        log.info("[ Multipart Initiate ] %s:%s UploadID is %s", bucket, key, upload_id)
        return session

    def upload_part(self, upload_id: str, part_number: int, body: bytes,
                    content_md5: Optional[str] = None,
                    bucket: Optional[str] = None, key: Optional[str] = None) -> str:
        """
        Upload a part of a multipart upload.

        S3 Operation: PUT /{bucket}/{key}?partNumber=N&uploadId=X

        Re-uploading a part number replaces the staged bytes. Returns the
        part ETag.
        """
        if not upload_id or not 1 <= part_number <= MAX_PART_NUMBER:
            raise InvalidArgument('Invalid uploadId or partNumber')

        with self._lock:
            session = self._open_upload(upload_id)
            if bucket is not None and key is not None:
                self._check_target(session, bucket, key)

        resource = f'{session.bucket.rstrip("/")}/{session.key}'
        if content_md5:
            etag = check_content_md5(body, content_md5, strict=self.strict_md5, resource=resource)
        else:
            etag = md5_base64(body)

        # The staged file and its recorded ETag change together
        with self.storage.part_lock(upload_id, part_number):
            self.storage.write_part(upload_id, part_number, body)
            with self._lock:
                if not session.is_open:
                    # Completed or aborted while this part was being written
                    self.storage.delete_part(upload_id, part_number)
                    raise NoSuchUpload(resource=resource)
                session.parts[part_number] = PartInfo(etag=etag, size=len(body))
                session.state = UploadState.parts_accumulating
                session.updated_at = self.clock()

        log.info("[ Multipart Upload ] Received part %s, %s for ID %s",
                 part_number, size(len(body)), upload_id)
        return etag

    def complete_multipart_upload(self, upload_id: str, bucket: str, key: str,
                                  manifest: List[ManifestEntry]) -> CompletedUpload:
        """
        Complete a multipart upload by joining the parts in manifest order.

        S3 Operation: POST /{bucket}/{key}?uploadId=X

        Every listed part must be staged, and a listed ETag must match the
        one UploadPart returned, otherwise nothing is written. Staged parts
        are deleted once joined.
        """
        resource = f'{bucket.rstrip("/")}/{key}'
        if not manifest:
            raise MalformedXML('CompleteMultipartUpload lists no parts', resource=resource)

        numbers = [entry.part_number for entry in manifest]
        if len(set(numbers)) != len(numbers):
            raise InvalidArgument('Part numbers must not repeat', resource=resource)

        with self._lock:
            session = self._open_upload(upload_id, resource)
            self._check_target(session, bucket, key)
            self._check_etags(session, manifest, resource)
            previous_state = session.state
            # Claim the upload: concurrent parts and completes now get NoSuchUpload
            session.state = UploadState.completed

        log.info("[ Multipart Complete ] Folder: %s\tFile: %s\tUploadID: %s", bucket, key, upload_id)
        try:
            missing = [n for n in numbers if not self.storage.has_part(upload_id, n)]
            if missing:
                raise PartMissing(
                    f'Part(s) {", ".join(map(str, missing))} not found', resource=resource
                )

            digest = hashlib.md5()
            total = 0
            with self.storage.object_writer(bucket, key) as f:
                for part_number in numbers:
                    for chunk in self.storage.iter_part(upload_id, part_number):
                        digest.update(chunk)
                        f.write(chunk)
                        total += len(chunk)
        except Exception:
            with self._lock:
                session.state = previous_state
            raise

        with self._lock:
            self._uploads.pop(upload_id, None)
        for path in self.storage.staged_parts(upload_id):
            path.unlink(missing_ok=True)

        log.info("[ Multipart Complete ] Done joining %s pieces (%s)", len(numbers), size(total))
        return CompletedUpload(
            location=f'https://{self.domain}{resource}',
            bucket=bucket,
            key=key,
            etag=f'"{digest.hexdigest()}"',
            size=total,
        )

    def abort_multipart_upload(self, upload_id: str, bucket: Optional[str] = None,
                               key: Optional[str] = None) -> UploadSession:
        """
        Abort a multipart upload and clean up parts.

        S3 Operation: DELETE /{bucket}/{key}?uploadId=X
        """
        with self._lock:
            session = self._open_upload(upload_id)
            if bucket is not None and key is not None:
                self._check_target(session, bucket, key)
            session.state = UploadState.aborted
            del self._uploads[upload_id]

        self._discard_parts(upload_id)
        log.info("[ Multipart Abort ] UploadID %s aborted", upload_id)
        return session

    def _discard_parts(self, upload_id: str) -> int:
        parts = self.storage.staged_parts(upload_id)
        for path in parts:
            path.unlink(missing_ok=True)
        return len(parts)

    def reap_expired(self, now: Optional[datetime] = None) -> int:
        """
        Abort uploads idle for longer than the TTL and delete stray part
        files of the same age. Returns the number of part files removed.
        """
        now = now or self.clock()
        cutoff = now - timedelta(seconds=self.upload_ttl)

        with self._lock:
            expired = [s for s in self._uploads.values() if s.updated_at < cutoff and s.is_open]
            for session in expired:
                session.state = UploadState.aborted
                del self._uploads[session.upload_id]
            live = set(self._uploads)

        removed = 0
        for session in expired:
            log.info("Reaping expired upload %s (%s:%s)", session.upload_id, session.bucket, session.key)
            removed += self._discard_parts(session.upload_id)

        for path in self.storage.stale_parts(cutoff.timestamp()):
            if path.name.split('.', 1)[0] not in live:
                log.info("Removing orphaned part %s", path.name)
                path.unlink(missing_ok=True)
                removed += 1
        return removed
