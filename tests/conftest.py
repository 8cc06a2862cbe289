"""Pytest configuration and shared fixtures for the log receiver tests."""

import gzip

import pytest

from logrecv.models.pd.configuration import ENV_NAMES, ServerConfig
from logrecv.module import Module
from logrecv.s3.storage import FileStorage
from logrecv.s3.utils import md5_base64

from .helpers import ACCESS_KEY, SECRET_KEY, sign


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch):
    """Keep settings from the outer environment out of ServerConfig"""
    for name in ENV_NAMES:
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def config(tmp_path) -> ServerConfig:
    return ServerConfig(
        access_key=ACCESS_KEY,
        secret_key=SECRET_KEY,
        data_dir=str(tmp_path / "objects"),
        staging_dir=str(tmp_path / "staging"),
        domain="logs.example.com",
    )


@pytest.fixture
def storage(tmp_path) -> FileStorage:
    return FileStorage(tmp_path / "objects", tmp_path / "staging")


@pytest.fixture
def module(config) -> Module:
    return Module(config)


@pytest.fixture
def client(module):
    return module.app.test_client()


@pytest.fixture
def signed_client(client):
    """Test client wrapper that SigV4-signs every request it sends."""

    class SignedClient:
        def open(self, method, path, body=b"", query="", headers=None, **sign_kwargs):
            headers = dict(headers or {})
            signed = sign(method, path, body=body, query=query, headers=headers, **sign_kwargs)
            url = path + (f"?{query}" if query else "")
            return client.open(
                url, method=method, data=body,
                headers={k: v for k, v in signed.headers.items()},
            )

        def put(self, path, body, **kwargs):
            headers = kwargs.pop("headers", None) or {"Content-MD5": md5_base64(body)}
            return self.open("PUT", path, body=body, headers=headers, **kwargs)

        def post(self, path, body=b"", **kwargs):
            return self.open("POST", path, body=body, **kwargs)

        def delete(self, path, **kwargs):
            return self.open("DELETE", path, **kwargs)

    return SignedClient()


@pytest.fixture
def gzipped_hello() -> bytes:
    return gzip.compress(b"hello")
