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

""" S3 API Utility Functions """

import base64
import gzip
import hashlib
import logging
import re
import string
import zlib
from random import Random
from typing import Optional
from urllib.parse import quote

from .errors import GzipDecompressFailed, InvalidURI, Md5Mismatch, MissingContentMD5

log = logging.getLogger(__name__)


GZIP_SUFFIX = '.gz'
UPLOAD_ID_LENGTH = 58
UPLOAD_ID_CHARSET = string.ascii_letters + string.digits

# Paths made only of these characters are already in canonical form
SAFE_PATH_RE = re.compile(r'^[a-zA-Z0-9\-_.~/]+$')


def parse_bucket_and_key(path: str) -> tuple:
    """
    Parse bucket path and key from the request path.

    Every segment but the last forms the bucket, the last one is the key.
    The bucket keeps its leading slash:

        /20210503/file.log.gz  ->  ('/20210503', 'file.log.gz')
        /a/b/c.log             ->  ('/a/b', 'c.log')
        /c.log                 ->  ('/', 'c.log')

    Returns: (bucket, key) tuple
    """
    segments = path.split('/')
    if segments and segments[0] == '':
        segments = segments[1:]

    key = segments[-1] if segments else ''
    if not key:
        raise InvalidURI('Object key cannot be empty', resource=path)

    for segment in segments:
        if segment in ('', '.', '..'):
            raise InvalidURI(f'Invalid path segment in {path}', resource=path)

    return '/' + '/'.join(segments[:-1]), key


def encode_path(path: str) -> str:
    """
    Percent-encode a decoded URL path for the canonical request.

    Everything outside the RFC 3986 unreserved set is encoded from its
    UTF-8 bytes with upper-case hex digits, '/' is kept as is.
    """
    if SAFE_PATH_RE.match(path):
        return path
    return quote(path, safe='/-_.~')


def md5_base64(data: bytes) -> str:
    """MD5 digest of data in Content-MD5 (base64) form"""
    return base64.b64encode(hashlib.md5(data).digest()).decode('ascii')


def check_content_md5(data: bytes, content_md5: Optional[str],
                      strict: bool = True, resource: str = '') -> str:
    """
    Compare the Content-MD5 header with the received bytes.

    In strict mode a missing or wrong digest raises, otherwise it is logged
    and the data accepted. Returns the ETag to report: the declared digest,
    or the computed one when none was declared.
    """
    computed = md5_base64(data)
    if not content_md5:
        if strict:
            raise MissingContentMD5(resource=resource)
        log.warning("No Content-MD5 for %s, accepting %s", resource, computed)
        return computed

    content_md5 = content_md5.strip()
    if content_md5 != computed:
        if strict:
            raise Md5Mismatch(
                f'Content-MD5 {content_md5} does not match received data ({computed})',
                resource=resource,
            )
        log.warning("Invalid MD5 for %s: declared %s, computed %s",
                    resource, content_md5, computed)
    return content_md5


def uncompress(data: bytes) -> bytes:
    """Gunzip data, raising GzipDecompressFailed on any decoding error"""
    try:
        return gzip.decompress(data)
    except (OSError, EOFError, zlib.error) as e:
        raise GzipDecompressFailed(str(e)) from e


def generate_upload_id(rng: Random) -> str:
    """Generate a URL-safe upload ID from the given (secure) random source"""
    return ''.join(rng.choice(UPLOAD_ID_CHARSET) for _ in range(UPLOAD_ID_LENGTH))
