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

# aws_client_factory.py
import threading
from functools import lru_cache
from typing import Optional

import boto3
from botocore.config import Config

from ..config.settings import get_settings

_client_lock = threading.Lock()


@lru_cache(maxsize=128)
def get_aws_client(service_name: str, region: Optional[str] = None):
    """Get cached AWS client with proper configuration."""
    with _client_lock:
        settings = get_settings()
        config = Config(
            retries={"max_attempts": settings.client_max_attempts, "mode": "standard"},
            read_timeout=settings.client_read_timeout,
            connect_timeout=settings.client_connect_timeout,
        )

        region = region or settings.default_region

        if settings.aws_profile:
            session = boto3.Session(profile_name=settings.aws_profile)
            return session.client(service_name, region_name=region, config=config)

        return boto3.client(service_name, region_name=region, config=config)


def clear_client_cache():
    """Clear the client cache for testing purposes."""
    get_aws_client.cache_clear()
