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

"""Logging setup for the E2E infrastructure orchestrator."""

import sys
from typing import Optional

from loguru import logger

from ..config.settings import get_settings

LOG_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | <level>{level: <8}</level> | "
    "<cyan>{extra[name]}</cyan> - <level>{message}</level>"
)

logger.configure(extra={"name": "e2e_infra_orchestrator"})


def configure_logging(level: Optional[str] = None) -> None:
    """Replace loguru's default sink with a single stderr sink.

    The level defaults to ``log_level`` from the active settings.
    """
    if level is None:
        level = get_settings().log_level
    logger.remove()
    logger.add(sys.stderr, level=level.upper(), format=LOG_FORMAT)


def get_logger(name: str):
    """Get a loguru logger bound to a module name."""
    return logger.bind(name=name)
