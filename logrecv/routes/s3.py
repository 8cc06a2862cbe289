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

""" S3-Compatible API Routes """

import logging

import flask

from ..models.pd.configuration import ServerConfig
from ..s3 import responses
from ..s3.auth import STREAMING_PAYLOAD_PREFIX, SignedRequest, verify_s3_auth
from ..s3.errors import (
    AuthError,
    InvalidArgument,
    MethodNotAllowed,
    S3Error,
    UnsupportedPayload,
)
from ..s3.handlers.multipart import MultipartHandler, parse_complete_manifest
from ..s3.handlers.object import ObjectHandler
from ..s3.utils import parse_bucket_and_key

log = logging.getLogger(__name__)

METHODS = ["GET", "HEAD", "PUT", "POST", "DELETE"]


class Route:
    """
    S3-Compatible API Routes

    Every request but GET/HEAD is authenticated, then dispatched on
    verb and query to the object or multipart handler.
    """

    def __init__(self, config: ServerConfig, object_handler: ObjectHandler,
                 multipart_handler: MultipartHandler):
        self.config = config
        self.object_handler = object_handler
        self.multipart_handler = multipart_handler

    def register(self, app: flask.Flask):
        app.add_url_rule(
            "/", endpoint="s3_root", view_func=self.s3_request,
            defaults={"path": ""}, methods=METHODS,
        )
        app.add_url_rule(
            "/<path:path>", endpoint="s3_object_operations", view_func=self.s3_request,
            methods=METHODS, strict_slashes=False,
        )

    @staticmethod
    def _dump_request(request):
        log.info("Received %s %s", request.method, request.url)
        log.info("Query %s", request.args.to_dict(flat=False))
        for name, value in request.headers.items():
            log.info("Header: %s: %s", name.lower(), value)

    def s3_request(self, path: str):  # pylint: disable=W0613
        """All operations (GET/HEAD/PUT/POST/DELETE /{bucket}/{key})"""
        request = flask.request
        if self.config.verbose:
            self._dump_request(request)

        # Health check, never authenticated
        if request.method in ("GET", "HEAD"):
            return responses.status_response()

        try:
            signed = SignedRequest.from_flask(request)
            verify_s3_auth(
                signed,
                secret_key=self.config.secret_key.get_secret_value(),
                access_key=self.config.access_key,
            )
            return self._dispatch(signed)
        except AuthError as e:
            log.warning("Authentication failed for %s %s: %s", request.method, request.path, e.message)
            return responses.error_response(e, resource=request.path)
        except S3Error as e:
            if e.status_code >= 500:
                log.error("%s %s failed: %s", request.method, request.path, e.message)
            else:
                log.warning("%s %s rejected: %s", request.method, request.path, e.message)
            return responses.error_response(e, resource=request.path)
        except Exception as e:  # pylint: disable=W0703
            log.exception("S3 %s %s error", request.method, request.path)
            return responses.error_response(S3Error(str(e)), resource=request.path)

    def _dispatch(self, signed: SignedRequest) -> flask.Response:
        method = signed.method
        args = flask.request.args
        content_md5 = signed.headers.get('Content-MD5')

        if signed.headers.get('x-amz-content-sha256', '').startswith(STREAMING_PAYLOAD_PREFIX):
            raise UnsupportedPayload()

        bucket, key = parse_bucket_and_key(signed.path)

        # Multipart upload operations
        if 'uploads' in args and method == 'POST':
            # POST /{bucket}/{key}?uploads - CreateMultipartUpload
            session = self.multipart_handler.create_multipart_upload(bucket, key)
            return responses.initiate_multipart_upload_response(
                bucket=session.bucket, key=session.key, upload_id=session.upload_id
            )

        if 'uploadId' in args:
            upload_id = args.get('uploadId')

            if method == 'PUT':
                # PUT /{bucket}/{key}?partNumber=N&uploadId=X - UploadPart
                try:
                    part_number = int(args.get('partNumber', ''))
                except ValueError as e:
                    raise InvalidArgument('Invalid partNumber') from e
                etag = self.multipart_handler.upload_part(
                    upload_id, part_number, signed.body, content_md5, bucket=bucket, key=key
                )
                return responses.etag_response(etag)

            if method == 'POST':
                # POST /{bucket}/{key}?uploadId=X - CompleteMultipartUpload
                manifest = parse_complete_manifest(signed.body)
                result = self.multipart_handler.complete_multipart_upload(
                    upload_id, bucket, key, manifest
                )
                return responses.complete_multipart_upload_response(
                    location=result.location, bucket=result.bucket,
                    key=result.key, etag=result.etag,
                )

            if method == 'DELETE':
                # DELETE /{bucket}/{key}?uploadId=X - AbortMultipartUpload
                self.multipart_handler.abort_multipart_upload(upload_id, bucket=bucket, key=key)
                return responses.no_content_response()

        elif method == 'PUT':
            # PUT /{bucket}/{key} - PutObject
            stored = self.object_handler.put_object(
                bucket, key, signed.body, signed.content_length, content_md5
            )
            return responses.etag_response(stored.etag)

        log.warning("Unknown request %s %s", method, flask.request.full_path)
        raise MethodNotAllowed()
