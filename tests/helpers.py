"""Request signing helpers shared by the test modules."""

from urllib.parse import parse_qsl, unquote, urlsplit

from botocore.auth import S3SigV4Auth
from botocore.awsrequest import AWSRequest
from botocore.credentials import Credentials
from werkzeug.datastructures import Headers

from logrecv.s3.auth import SignedRequest

ACCESS_KEY = "AKIAI44QH8DHBEXAMPLE"
SECRET_KEY = "wJalrXUtnFEMI/K7MDENG/bPxRfiCYEXAMPLEKEY"
REGION = "us-east-1"


def sign(method, path, body=b"", query="", headers=None,
         access_key=ACCESS_KEY, secret_key=SECRET_KEY, region=REGION,
         auth_class=S3SigV4Auth) -> AWSRequest:
    """Sign a request the way boto3 does for S3 and return it."""
    url = f"http://localhost{path}" + (f"?{query}" if query else "")
    request = AWSRequest(method=method, url=url, data=body, headers=dict(headers or {}))
    auth_class(Credentials(access_key, secret_key), "s3", region).add_auth(request)
    return request


def to_signed_request(aws_request: AWSRequest, body: bytes = b"") -> SignedRequest:
    """View a botocore request the way the server sees it."""
    url = urlsplit(aws_request.url)
    headers = Headers([(k, v) for k, v in aws_request.headers.items()])
    headers["Host"] = url.netloc
    return SignedRequest(
        method=aws_request.method,
        path=unquote(url.path),
        query=parse_qsl(url.query, keep_blank_values=True),
        headers=headers,
        host=url.netloc,
        content_length=len(body),
        body=body,
    )
