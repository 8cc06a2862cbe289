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
Command line entry point

Serves an S3 endpoint over TLS for push-delivered logs (Cloudflare Logpush).
Every flag can also be set through its environment variable.
"""

import argparse
import logging
import os
import ssl
import sys
import tempfile

from pydantic import ValidationError
from werkzeug.serving import (
    WSGIRequestHandler,
    load_ssl_context,
    make_ssl_devcert,
    run_simple,
)

from .models.pd.configuration import ServerConfig
from .module import Module

log = logging.getLogger(__name__)

LOG_FORMAT = "[cflogrcv] %(asctime)s %(message)s"
LOG_DATE_FORMAT = "%H:%M:%S"


def setup_logging(verbose: bool = False):
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format=LOG_FORMAT,
        datefmt=LOG_DATE_FORMAT,
        stream=sys.stderr,
    )


def create_parser() -> argparse.ArgumentParser:
    """
    Build the argument parser.

    Only flags given on the command line end up in the parsed namespace;
    everything else is left to ServerConfig and its environment variables.
    """
    parser = argparse.ArgumentParser(
        prog="logrecv",
        description="Receive logs through an S3-compatible endpoint",
        argument_default=argparse.SUPPRESS,
    )

    def option(flag, field, help_text, show_default=True, **kwargs):
        info = ServerConfig.model_fields[field]
        details = f"env: {info.validation_alias}"
        if show_default:
            details += f", default: {info.default}"
        parser.add_argument(flag, dest=field, help=f"{help_text} ({details})", **kwargs)

    option("--port", "listen", "Server address (host:port)")
    option("--key", "key_file", "Server key")
    option("--cert", "cert_file", "Server certificate")
    option("--domain", "domain", "Server name")
    option("--access-key", "access_key", "Access key ID")
    option("--secret", "secret_key", "Secret access key", show_default=False)
    option("--verbose", "verbose", "Verbose output", show_default=False, action="store_true")
    option("--aggregate", "aggregate", "Aggregate logs on a daily basis",
           show_default=False, action="store_true")
    option("--data-dir", "data_dir", "Root folder for stored objects")
    option("--staging-dir", "staging_dir", "Folder for multipart parts awaiting completion")
    option("--md5-policy", "md5_policy",
           "What to do with uploads whose Content-MD5 does not match",
           choices=["reject", "warn"])
    option("--upload-ttl", "upload_ttl", "Seconds an idle multipart upload is kept", type=int)
    option("--reap-interval", "reap_interval", "Seconds between expired upload sweeps", type=int)
    option("--read-timeout", "read_timeout", "Socket read timeout in seconds", type=float)
    return parser


def build_ssl_context(cert_file: str, key_file: str, domain: str) -> ssl.SSLContext:
    """
    Load the certificate pair, falling back to an ephemeral self-signed
    certificate for `domain` when it cannot be loaded.
    """
    try:
        context = load_ssl_context(cert_file, key_file)
    except OSError as e:
        log.error("Error loading certificate %s: %s", cert_file, e)
        log.info("Generating self signed certificate")
        base_path = os.path.join(tempfile.mkdtemp(prefix="logrecv-"), "selfsigned")
        cert_file, key_file = make_ssl_devcert(base_path, host=domain)
        context = load_ssl_context(cert_file, key_file)
        log.info("Certificate generated for %s", domain)
    context.minimum_version = ssl.TLSVersion.TLSv1_2
    return context


def make_request_handler(read_timeout: float) -> type:
    """Request handler whose socket reads give up after `read_timeout` seconds"""
    return type("TimeoutRequestHandler", (WSGIRequestHandler,), {"timeout": read_timeout})


def serve(module: Module):
    config = module.config
    host, port = config.address
    ssl_context = build_ssl_context(config.cert_file, config.key_file, config.domain)
    module.init()
    log.info("Starting S3 service on %s ...", config.listen)
    try:
        run_simple(
            host, port, module.app,
            threaded=True,
            ssl_context=ssl_context,
            request_handler=make_request_handler(config.read_timeout),
        )
    finally:
        module.deinit()


def main(argv=None):
    """ Receive logs through an S3-compatible endpoint """
    parser = create_parser()
    args = parser.parse_args(argv)
    try:
        config = ServerConfig(**vars(args))
    except ValidationError as e:
        parser.error(str(e))
    setup_logging(config.verbose)
    serve(Module(config))


if __name__ == "__main__":
    main()
