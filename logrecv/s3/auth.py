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

""" AWS Signature Version 4 Authentication for S3-compatible API """

import hashlib
import hmac
import logging
import re
from typing import Dict, List, NamedTuple, Optional, Sequence, Tuple
from urllib.parse import quote

from werkzeug.exceptions import ClientDisconnected

from .errors import (
    AccessKeyMismatch,
    BodyReadFailed,
    MalformedAuthHeader,
    MissingAuthHeader,
    MissingPayloadHashHeader,
    SignatureMismatch,
    UnsignedHeadersError,
)
from .utils import encode_path

log = logging.getLogger(__name__)

SIGN_V4_ALGORITHM = 'AWS4-HMAC-SHA256'
SCOPE_TERMINATOR = 'aws4_request'
UNSIGNED_PAYLOAD = 'UNSIGNED-PAYLOAD'
STREAMING_PAYLOAD_PREFIX = 'STREAMING-'

AUTH_HEADER_RE = re.compile(
    r'^AWS4-HMAC-SHA256\s+'
    r'Credential=([^/,\s]+)/(\d{8})/([^/,\s]+)/([^/,\s]+)/aws4_request,\s*'
    r'SignedHeaders=([^,\s]+),\s*'
    r'Signature=([0-9a-fA-F]+)\s*$'
)
SHA256_HEX_RE = re.compile(r'^[0-9a-f]{64}$')
QUERY_SAFE = '-_.~'


class AuthorizationClaim(NamedTuple):
    """What the client claims in its Authorization header"""
    access_key: str
    date: str
    timestamp: str
    region: str
    service: str
    signed_headers: Tuple[str, ...]
    signature: str
    payload_hash: str

    @property
    def scope(self) -> str:
        return '/'.join([self.date, self.region, self.service, SCOPE_TERMINATOR])


class SignedRequest(NamedTuple):
    """
    Framework-neutral view of an incoming request.

    `path` is the decoded URL path, `query` the decoded (key, value) pairs
    in arrival order with blank values kept, `headers` anything offering a
    case-insensitive `get`/`getlist` (werkzeug Headers).
    """
    method: str
    path: str
    query: List[Tuple[str, str]]
    headers: object
    host: str
    content_length: Optional[int]
    body: bytes
    transfer_encodings: Tuple[str, ...] = ()

    @classmethod
    def from_flask(cls, flask_request) -> 'SignedRequest':
        try:
            body = flask_request.get_data(cache=True)
        except ClientDisconnected as e:
            raise BodyReadFailed() from e
        encodings = flask_request.environ.get('HTTP_TRANSFER_ENCODING', '')
        return cls(
            method=flask_request.method,
            path=flask_request.path,
            query=list(flask_request.args.items(multi=True)),
            headers=flask_request.headers,
            host=flask_request.host,
            content_length=flask_request.content_length,
            body=body,
            transfer_encodings=tuple(e.strip() for e in encodings.split(',') if e.strip()),
        )


def sign(key: bytes, msg: str) -> bytes:
    """HMAC-SHA256 signing helper"""
    return hmac.new(key, msg.encode('utf-8'), hashlib.sha256).digest()


def get_signature_key(secret_key: str, date_stamp: str, region: str, service: str) -> bytes:
    """
    Derive the signing key for AWS Signature Version 4.

    The signing key is derived from the secret access key through a series of
    HMAC-SHA256 operations: kSecret -> kDate -> kRegion -> kService -> kSigning
    """
    k_date = sign(('AWS4' + secret_key).encode('utf-8'), date_stamp)
    k_region = sign(k_date, region)
    k_service = sign(k_region, service)
    return sign(k_service, SCOPE_TERMINATOR)


def hash_payload(payload: bytes) -> str:
    """Calculate SHA256 hash of the payload"""
    return hashlib.sha256(payload).hexdigest()


def parse_authorization_header(request: SignedRequest) -> AuthorizationClaim:
    """
    Parse AWS Signature V4 Authorization header.

    Format: AWS4-HMAC-SHA256 Credential=ACCESS_KEY/DATE/REGION/SERVICE/aws4_request,
            SignedHeaders=host;x-amz-content-sha256;x-amz-date,
            Signature=SIGNATURE
    """
    auth_header = request.headers.get('Authorization')
    if not auth_header:
        raise MissingAuthHeader()

    payload_hash = request.headers.get('x-amz-content-sha256')
    if not payload_hash:
        raise MissingPayloadHashHeader()

    match = AUTH_HEADER_RE.match(auth_header.strip())
    if not match:
        raise MalformedAuthHeader()
    access_key, date, region, service, signed_headers, signature = match.groups()

    timestamp = request.headers.get('x-amz-date') \
        or _query_value(request.query, 'X-Amz-Date') \
        or request.headers.get('Date', '')

    return AuthorizationClaim(
        access_key=access_key,
        date=date,
        timestamp=timestamp,
        region=region,
        service=service,
        signed_headers=tuple(
            h.strip().lower() for h in signed_headers.split(';') if h.strip()
        ),
        signature=signature,
        payload_hash=payload_hash.strip(),
    )


def _query_value(query: Sequence[Tuple[str, str]], name: str) -> str:
    for key, value in query:
        if key == name:
            return value
    return ''


def extract_signed_headers(signed_headers: Sequence[str],
                           request: SignedRequest) -> Dict[str, List[str]]:
    """
    Resolve the value(s) of every signed header.

    Lookup order: request header, query parameter of the same name, then a
    fixed default for headers the transport may have consumed. 'host' must
    always be signed.
    """
    if 'host' not in signed_headers:
        raise UnsignedHeadersError("'host' must be part of the signed headers")

    extracted = {}
    for name in signed_headers:
        values = request.headers.getlist(name)
        if not values:
            values = [v for k, v in request.query if k == name]
        if values:
            extracted[name] = list(values)
            continue

        if name == 'expect':
            extracted[name] = ['100-continue']
        elif name == 'host':
            extracted[name] = [request.host]
        elif name == 'transfer-encoding':
            extracted[name] = list(request.transfer_encodings)
        elif name == 'content-length':
            length = request.content_length
            if length is None:
                length = len(request.body)
            extracted[name] = [str(length)]
        else:
            raise UnsignedHeadersError(f'Signed header {name!r} is not present in request')
    return extracted


def trim_all(value: str) -> str:
    """Trim edges and collapse inner whitespace runs to a single space"""
    return ' '.join(value.split())


def get_canonical_uri(path: str) -> str:
    """Get canonical URI (URL-encoded path)"""
    return encode_path(path or '/')


def get_canonical_query_string(query: Sequence[Tuple[str, str]]) -> str:
    """
    Get canonical query string.

    - URL-encode keys and values (RFC 3986, space as %20)
    - Keep blank values ("uploads" -> "uploads=")
    - Sort by encoded key name, then value
    """
    params = sorted(
        (quote(key, safe=QUERY_SAFE), quote(value, safe=QUERY_SAFE))
        for key, value in query
    )
    return '&'.join(f'{key}={value}' for key, value in params)


def get_canonical_headers(headers: Dict[str, List[str]]) -> str:
    """
    Get canonical headers.

    - Lowercase header names
    - Trim and collapse whitespace in values, join multiple values with ','
    - Sort by header name, one newline-terminated line per header
    """
    lines = []
    for name in sorted(headers):
        values = ','.join(trim_all(v) for v in headers[name])
        lines.append(f'{name.lower()}:{values}\n')
    return ''.join(lines)


def get_signed_headers(headers: Dict[str, List[str]]) -> str:
    return ';'.join(sorted(name.lower() for name in headers))


def create_canonical_request(method: str, path: str,
                             query: Sequence[Tuple[str, str]],
                             headers: Dict[str, List[str]],
                             payload_hash: str) -> str:
    """
    Create the canonical request string.

    Format:
    HTTPMethod\n
    CanonicalURI\n
    CanonicalQueryString\n
    CanonicalHeaders\n
    SignedHeaders\n
    HashedPayload
    """
    return '\n'.join([
        method.upper(),
        get_canonical_uri(path),
        get_canonical_query_string(query),
        get_canonical_headers(headers),
        get_signed_headers(headers),
        payload_hash,
    ])


def create_string_to_sign(canonical_request: str, amz_date: str, scope: str) -> str:
    """
    Create the string to sign.

    Format:
    Algorithm\n
    RequestDateTime\n
    CredentialScope\n
    HashedCanonicalRequest
    """
    hashed_canonical = hashlib.sha256(canonical_request.encode('utf-8')).hexdigest()
    return '\n'.join([SIGN_V4_ALGORITHM, amz_date, scope, hashed_canonical])


def calculate_signature(string_to_sign: str, secret_key: str,
                        date_stamp: str, region: str, service: str) -> str:
    """Calculate the AWS Signature V4 signature"""
    signing_key = get_signature_key(secret_key, date_stamp, region, service)
    return hmac.new(signing_key, string_to_sign.encode('utf-8'), hashlib.sha256).hexdigest()


def verify_signature(claim: AuthorizationClaim, request: SignedRequest,
                     secret_key: str, access_key: str):
    """
    Verify the AWS Signature V4 signature of a request.

    Returns None when the signature is valid, raises an AuthError otherwise.
    """
    if claim.access_key != access_key:
        raise AccessKeyMismatch()

    if SHA256_HEX_RE.match(claim.payload_hash) \
            and not hmac.compare_digest(hash_payload(request.body), claim.payload_hash):
        raise SignatureMismatch('x-amz-content-sha256 does not match the request body')

    headers = extract_signed_headers(claim.signed_headers, request)
    canonical_request = create_canonical_request(
        request.method, request.path, request.query, headers, claim.payload_hash
    )
    string_to_sign = create_string_to_sign(canonical_request, claim.timestamp, claim.scope)
    expected_signature = calculate_signature(
        string_to_sign, secret_key, claim.date, claim.region, claim.service
    )

    if not hmac.compare_digest(expected_signature.encode(), claim.signature.encode()):
        log.debug("Canonical request:\n%s\nString to sign:\n%s", canonical_request, string_to_sign)
        raise SignatureMismatch()


def verify_s3_auth(request: SignedRequest, secret_key: str, access_key: str) -> AuthorizationClaim:
    """
    Parse and verify the Authorization header of a request.

    Returns the verified claim, raises an AuthError on failure.
    """
    claim = parse_authorization_header(request)
    verify_signature(claim, request, secret_key, access_key)
    return claim
