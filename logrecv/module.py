#   Copyright 2021 getcarrier.io
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

""" Module """

import logging
import threading
from typing import Optional

import flask

from .models.pd.configuration import ServerConfig
from .routes.s3 import Route
from .s3.handlers.multipart import MultipartHandler
from .s3.handlers.object import ObjectHandler
from .s3.storage import FileStorage

log = logging.getLogger(__name__)


class Module:
    """ Log receiver: storage, handlers, router and the Flask app serving them """

    def __init__(self, config: ServerConfig):
        self.config = config
        self.storage = FileStorage(config.data_dir, config.staging_dir)
        self.object_handler = ObjectHandler(
            self.storage,
            aggregate=config.aggregate,
            strict_md5=config.strict_md5,
        )
        self.multipart_handler = MultipartHandler(
            self.storage,
            domain=config.domain,
            strict_md5=config.strict_md5,
            upload_ttl=config.upload_ttl,
        )
        self.route = Route(config, self.object_handler, self.multipart_handler)

        self.app = flask.Flask(__name__)
        self.app.extensions["logrecv"] = self
        self.route.register(self.app)

        self._stop = threading.Event()
        self._reaper: Optional[threading.Thread] = None

    def init(self):
        """ Init module """
        log.info(
            "Initializing log receiver: objects in %s, parts in %s, aggregate=%s, md5 policy=%s",
            self.config.data_dir, self.config.staging_dir,
            self.config.aggregate, self.config.md5_policy,
        )
        self._stop.clear()
        self._reaper = threading.Thread(
            target=self._reap_loop, name="upload-reaper", daemon=True
        )
        self._reaper.start()

    def deinit(self):
        """ De-init module """
        log.info("De-initializing log receiver")
        self._stop.set()
        if self._reaper is not None:
            self._reaper.join(timeout=5)
            self._reaper = None

    def _reap_loop(self):
        while not self._stop.wait(self.config.reap_interval):
            try:
                removed = self.multipart_handler.reap_expired()
            except Exception:  # pylint: disable=W0703
                log.exception("Reaping expired uploads failed")
                continue
            if removed:
                log.info("Reaped %s staged part(s)", removed)


def create_app(config: Optional[ServerConfig] = None) -> flask.Flask:
    """ Build the Flask app for a configuration (defaults when omitted) """
    return Module(config or ServerConfig()).app
