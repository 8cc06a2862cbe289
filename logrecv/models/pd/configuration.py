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

""" Server configuration, read from the environment """

from typing import Literal, Tuple

from pydantic import Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class ServerConfig(BaseSettings):
    """Every setting can come from its environment variable or be passed by name"""

    model_config = SettingsConfigDict(frozen=True, populate_by_name=True)

    listen: str = Field('0.0.0.0:8443', validation_alias='SERVER_PORT')
    cert_file: str = Field('data/certificate.pem', validation_alias='SERVER_CERT')
    key_file: str = Field('data/key.pem', validation_alias='SERVER_KEY')
    domain: str = Field('localhost', validation_alias='SNI_NAME')
    access_key: str = Field('AKIAI44QH8DHBEXAMPLE', validation_alias='ACCESS_KEY')
    secret_key: SecretStr = Field(
        SecretStr('wJalrXUtnFEMI/K7MDENG/bPxRfiCYEXAMPLEKEY'), validation_alias='SECRET'
    )
    verbose: bool = Field(False, validation_alias='VERBOSE')
    aggregate: bool = Field(
        False, validation_alias='AGGREGATE', description="Aggregate logs on a daily basis"
    )
    data_dir: str = Field('data/objects', validation_alias='DATA_DIR')
    staging_dir: str = Field('data/staging', validation_alias='STAGING_DIR')
    md5_policy: Literal['reject', 'warn'] = Field('reject', validation_alias='MD5_POLICY')
    upload_ttl: int = Field(
        24 * 60 * 60, gt=0, validation_alias='UPLOAD_TTL',
        description="Seconds before an unfinished upload is reaped",
    )
    reap_interval: int = Field(60 * 60, gt=0, validation_alias='REAP_INTERVAL')
    read_timeout: float = Field(5.0, gt=0, validation_alias='READ_TIMEOUT')

    @field_validator('listen')
    @classmethod
    def validate_listen(cls, value: str) -> str:
        host, sep, port = value.rpartition(':')
        if not sep or not port.isdigit() or not 0 < int(port) < 65536:
            raise ValueError(f"listen address must be host:port, got {value!r}")
        return value

    @property
    def address(self) -> Tuple[str, int]:
        host, _, port = self.listen.rpartition(':')
        return host or '0.0.0.0', int(port)

    @property
    def strict_md5(self) -> bool:
        return self.md5_policy == 'reject'


ENV_NAMES = tuple(field.validation_alias for field in ServerConfig.model_fields.values())
