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

"""
S3 error taxonomy

Every error carries the S3 error code and HTTP status it is reported with.
Handlers raise, the router turns the exception into an error response.
"""


class S3Error(Exception):
    """Base class for errors reported to the client"""
    code = 'InternalError'
    status_code = 500
    default_message = 'We encountered an internal error. Please try again.'

    def __init__(self, message: str = None, resource: str = ''):
        self.message = message or self.default_message
        self.resource = resource
        super().__init__(self.message)


# Authentication

class AuthError(S3Error):
    code = 'AccessDenied'
    status_code = 403
    default_message = 'Access Denied'


class MissingAuthHeader(AuthError):
    default_message = 'No authorization header present in request'


class MissingPayloadHashHeader(AuthError):
    code = 'InvalidRequest'
    status_code = 400
    default_message = 'Missing required header for this request: x-amz-content-sha256'


class MalformedAuthHeader(AuthError):
    code = 'AuthorizationHeaderMalformed'
    status_code = 400
    default_message = 'The authorization header is malformed'


class AccessKeyMismatch(AuthError):
    code = 'InvalidAccessKeyId'
    default_message = 'The AWS access key Id you provided does not exist in our records'


class UnsignedHeadersError(AuthError):
    default_message = 'There were headers present in the request which were not signed'


class SignatureMismatch(AuthError):
    code = 'SignatureDoesNotMatch'
    default_message = ('The request signature we calculated does not match '
                       'the signature you provided')


# Integrity

class IntegrityError(S3Error):
    code = 'BadDigest'
    status_code = 400
    default_message = 'The Content-MD5 you specified did not match what we received'


class Md5Mismatch(IntegrityError):
    pass


class MissingContentMD5(IntegrityError):
    code = 'InvalidDigest'
    default_message = 'Missing required header for this request: Content-MD5'


class IncompleteBody(IntegrityError):
    code = 'IncompleteBody'
    default_message = 'You did not provide the number of bytes specified by the Content-Length'


class MissingContentLength(IntegrityError):
    code = 'MissingContentLength'
    status_code = 411
    default_message = 'You must provide the Content-Length HTTP header'


# Storage

class StorageIOError(S3Error):
    pass


class BodyReadFailed(StorageIOError):
    code = 'IncompleteBody'
    status_code = 400
    default_message = "Can't read body"


class DirectoryCreateFailed(StorageIOError):
    pass


class ObjectWriteFailed(StorageIOError):
    pass


class PartWriteFailed(StorageIOError):
    pass


class PartReadFailed(StorageIOError):
    pass


class PartMissing(StorageIOError):
    code = 'InvalidPart'
    status_code = 400
    default_message = 'One or more of the specified parts could not be found'


class PartETagMismatch(PartMissing):
    default_message = 'The specified entity tag does not match the uploaded part'


# Decoding

class DecodeError(S3Error):
    pass


class GzipDecompressFailed(DecodeError):
    default_message = 'Body is not valid gzip data'


# Request

class InvalidArgument(S3Error):
    code = 'InvalidArgument'
    status_code = 400
    default_message = 'Invalid Argument'


class InvalidURI(S3Error):
    code = 'InvalidURI'
    status_code = 400
    default_message = "Couldn't parse the specified URI"


class MalformedXML(S3Error):
    code = 'MalformedXML'
    status_code = 400
    default_message = 'The XML you provided was not well-formed or did not validate'


class NoSuchUpload(S3Error):
    code = 'NoSuchUpload'
    status_code = 404
    default_message = 'The specified multipart upload does not exist'


class MethodNotAllowed(S3Error):
    code = 'MethodNotAllowed'
    status_code = 405
    default_message = 'The specified method is not allowed against this resource'


class UnsupportedPayload(S3Error):
    code = 'NotImplemented'
    status_code = 501
    default_message = 'Streaming (aws-chunked) payloads are not supported'
