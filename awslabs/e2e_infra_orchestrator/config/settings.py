# Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

"""Settings for the E2E infrastructure orchestrator."""

from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from ..consts import (
    DEFAULT_AWS_REGION,
    DEFAULT_LOG_LEVEL,
    DEFAULT_POLL_INTERVAL,
    IGW_DETACH_TIMEOUT,
    NAT_GATEWAY_TIMEOUT,
    VPC_WAIT_TIMEOUT,
)


class InfraSettings(BaseSettings):
    """AWS and polling configuration, overridable through E2E_INFRA_* variables."""

    model_config = SettingsConfigDict(
        env_prefix="E2E_INFRA_",
        case_sensitive=False,
    )

    aws_profile: Optional[str] = Field(default=None)
    default_region: str = Field(default=DEFAULT_AWS_REGION)
    log_level: str = Field(default=DEFAULT_LOG_LEVEL)

    poll_interval_seconds: float = Field(default=DEFAULT_POLL_INTERVAL, gt=0)
    vpc_wait_timeout: int = Field(default=VPC_WAIT_TIMEOUT, ge=0)
    nat_gateway_timeout: int = Field(default=NAT_GATEWAY_TIMEOUT, ge=0)
    igw_detach_timeout: int = Field(default=IGW_DETACH_TIMEOUT, ge=0)

    client_max_attempts: int = Field(default=3, ge=1)
    client_read_timeout: int = Field(default=30, gt=0)
    client_connect_timeout: int = Field(default=10, gt=0)


def get_settings() -> InfraSettings:
    """Get the process-wide settings instance."""
    if not hasattr(get_settings, "_instance"):
        get_settings._instance = InfraSettings()
    return get_settings._instance


def reset_settings() -> None:
    """Drop the cached settings so the environment is read again."""
    if hasattr(get_settings, "_instance"):
        del get_settings._instance
