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

""" S3 wire format: XML result documents and plain responses """

from xml.etree.ElementTree import Element, SubElement, tostring

from flask import Response

from .errors import S3Error

S3_NAMESPACE = 'http://s3.amazonaws.com/doc/2006-03-01/'
XML_MIMETYPE = 'application/xml'


def _xml(root: Element, status: int = 200, headers: dict = None) -> Response:
    body = tostring(root, encoding='utf-8', xml_declaration=True)
    return Response(body, status=status, mimetype=XML_MIMETYPE, headers=headers)


def _result(tag: str, **fields) -> Element:
    """Namespaced result document with one child per field, in order"""
    root = Element(tag, xmlns=S3_NAMESPACE)
    for name, value in fields.items():
        SubElement(root, name).text = value
    return root


def status_response() -> Response:
    """Health check body"""
    return Response('ok\n', status=200, mimetype='text/plain')


def error_response(error: S3Error, resource: str = '') -> Response:
    """
    <Error>
        <Code>SignatureDoesNotMatch</Code>
        <Message>The request signature we calculated does not match ...</Message>
        <Resource>/20210503/file.log.gz</Resource>
    </Error>
    """
    root = Element('Error')
    SubElement(root, 'Code').text = error.code
    SubElement(root, 'Message').text = error.message
    resource = error.resource or resource
    if resource:
        SubElement(root, 'Resource').text = resource
    return _xml(root, error.status_code)


def etag_response(etag: str) -> Response:
    """Empty 200 carrying the ETag header (PutObject, UploadPart)"""
    return Response('', status=200, headers={'ETag': etag})


def no_content_response() -> Response:
    return Response('', status=204)


def initiate_multipart_upload_response(bucket: str, key: str, upload_id: str) -> Response:
    return _xml(_result(
        'InitiateMultipartUploadResult', Bucket=bucket, Key=key, UploadId=upload_id,
    ))


def complete_multipart_upload_response(location: str, bucket: str, key: str,
                                       etag: str) -> Response:
    """
    <CompleteMultipartUploadResult>
        <Location>https://logs.example.com/20210503/file.log</Location>
        <Bucket>/20210503</Bucket>
        <Key>file.log</Key>
        <ETag>"3858f62230ac3c915f300c664312c63f"</ETag>
    </CompleteMultipartUploadResult>
    """
    root = _result(
        'CompleteMultipartUploadResult', Location=location, Bucket=bucket, Key=key, ETag=etag,
    )
    return _xml(root, headers={'ETag': etag})
