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

""" Multipart upload session models """

from datetime import datetime, timezone
from enum import Enum
from typing import Dict, NamedTuple

from pydantic import BaseModel, Field


class UploadState(str, Enum):
    initiated = 'initiated'
    parts_accumulating = 'parts_accumulating'
    completed = 'completed'
    aborted = 'aborted'


class PartInfo(BaseModel):
    etag: str
    size: int


class UploadSession(BaseModel):
    """A multipart upload, from Initiate until Complete or Abort"""
    upload_id: str
    bucket: str
    key: str
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    state: UploadState = UploadState.initiated
    parts: Dict[int, PartInfo] = Field(default_factory=dict)

    @property
    def is_open(self) -> bool:
        return self.state in (UploadState.initiated, UploadState.parts_accumulating)


class ManifestEntry(NamedTuple):
    """One <Part> of a CompleteMultipartUpload request body"""
    part_number: int
    etag: str


class CompletedUpload(NamedTuple):
    location: str
    bucket: str
    key: str
    etag: str
    size: int
