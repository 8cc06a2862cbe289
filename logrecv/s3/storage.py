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

""" Filesystem persistence shared by the object and multipart handlers """

import logging
import os
import tempfile
import threading
from contextlib import contextmanager, suppress
from pathlib import Path
from typing import Iterator, List

from .errors import (
    DirectoryCreateFailed,
    ObjectWriteFailed,
    PartMissing,
    PartReadFailed,
    PartWriteFailed,
)

log = logging.getLogger(__name__)

PART_SUFFIX = '.part'
CHUNK_SIZE = 1024 * 1024
LOCK_STRIPES = 64


def _discard(path: str):
    with suppress(OSError):
        os.unlink(path)


@contextmanager
def _atomic_file(path: Path, error_class):
    """
    Yield a binary file that replaces `path` only once the block succeeds.

    Data goes to a temp file next to the destination and is renamed over it,
    so concurrent writers never interleave bytes: the last rename wins.
    """
    try:
        fd, tmp_name = tempfile.mkstemp(
            dir=path.parent, prefix=f'.{path.name}.', suffix='.tmp'
        )
    except OSError as e:
        raise error_class(f'Cannot write {path}: {e}') from e

    try:
        with os.fdopen(fd, 'wb') as f:
            yield f
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_name, path)
    except OSError as e:
        _discard(tmp_name)
        raise error_class(f'Cannot write {path}: {e}') from e
    except BaseException:
        _discard(tmp_name)
        raise


class FileStorage:
    """
    Objects live at <data_dir><bucket>/<key>, staged multipart parts
    at <staging_dir>/<upload_id>.<part_number>.part
    """

    def __init__(self, data_dir, staging_dir):
        self.data_dir = Path(data_dir)
        self.staging_dir = Path(staging_dir)
        self._locks = tuple(threading.Lock() for _ in range(LOCK_STRIPES))

    # Objects

    def bucket_path(self, bucket: str) -> Path:
        return self.data_dir.joinpath(*[s for s in bucket.split('/') if s])

    def object_path(self, bucket: str, key: str) -> Path:
        return self.bucket_path(bucket) / key

    def make_bucket(self, bucket: str) -> Path:
        """Create the bucket directory tree, succeeding if it already exists"""
        path = self.bucket_path(bucket)
        try:
            path.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise DirectoryCreateFailed(
                f'Cannot create directory {path}: {e}', resource=bucket
            ) from e
        return path

    @contextmanager
    def object_writer(self, bucket: str, key: str):
        path = self.make_bucket(bucket) / key
        with _atomic_file(path, ObjectWriteFailed) as f:
            yield f

    def write_object(self, bucket: str, key: str, data: bytes) -> Path:
        with self.object_writer(bucket, key) as f:
            f.write(data)
        return self.object_path(bucket, key)

    def path_lock(self, path: Path) -> threading.Lock:
        """Lock serializing writers of one path, shared by paths in the same stripe"""
        return self._locks[hash(str(path)) % LOCK_STRIPES]

    def append_object(self, bucket: str, key: str, data: bytes) -> Path:
        """Append data to an object, creating it if needed, in one locked write"""
        path = self.make_bucket(bucket) / key
        with self.path_lock(path):
            try:
                fd = os.open(path, os.O_WRONLY | os.O_APPEND | os.O_CREAT, 0o644)
            except OSError as e:
                raise ObjectWriteFailed(f'Cannot open {path}: {e}') from e
            try:
                view = memoryview(data)
                while view:
                    written = os.write(fd, view)
                    view = view[written:]
            except OSError as e:
                raise ObjectWriteFailed(f'Cannot append to {path}: {e}') from e
            finally:
                os.close(fd)
        return path

    # Staged parts

    def part_path(self, upload_id: str, part_number: int) -> Path:
        return self.staging_dir / f'{upload_id}.{part_number}{PART_SUFFIX}'

    def part_lock(self, upload_id: str, part_number: int) -> threading.Lock:
        return self.path_lock(self.part_path(upload_id, part_number))

    def write_part(self, upload_id: str, part_number: int, data: bytes) -> Path:
        try:
            self.staging_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise DirectoryCreateFailed(
                f'Cannot create directory {self.staging_dir}: {e}'
            ) from e
        path = self.part_path(upload_id, part_number)
        with _atomic_file(path, PartWriteFailed) as f:
            f.write(data)
        return path

    def has_part(self, upload_id: str, part_number: int) -> bool:
        return self.part_path(upload_id, part_number).is_file()

    def iter_part(self, upload_id: str, part_number: int,
                  chunk_size: int = CHUNK_SIZE) -> Iterator[bytes]:
        path = self.part_path(upload_id, part_number)
        try:
            with open(path, 'rb') as f:
                for chunk in iter(lambda: f.read(chunk_size), b''):
                    yield chunk
        except FileNotFoundError as e:
            raise PartMissing(f'Part {part_number} not found') from e
        except OSError as e:
            raise PartReadFailed(f'Cannot read {path}: {e}') from e

    def read_part(self, upload_id: str, part_number: int) -> bytes:
        return b''.join(self.iter_part(upload_id, part_number))

    def delete_part(self, upload_id: str, part_number: int):
        self.part_path(upload_id, part_number).unlink(missing_ok=True)

    def staged_parts(self, upload_id: str) -> List[Path]:
        if not self.staging_dir.is_dir():
            return []
        return sorted(self.staging_dir.glob(f'{upload_id}.*{PART_SUFFIX}'))

    def stale_parts(self, cutoff: float) -> List[Path]:
        """Staged part files last modified before the cutoff timestamp"""
        if not self.staging_dir.is_dir():
            return []
        stale = []
        for path in self.staging_dir.glob(f'*{PART_SUFFIX}'):
            try:
                if path.stat().st_mtime < cutoff:
                    stale.append(path)
            except FileNotFoundError:
                continue
        return stale
