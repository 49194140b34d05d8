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

"""Result models returned by orchestrator operations."""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field


class StepFailure(BaseModel):
    step: str = Field(..., description="Teardown step that failed")
    resource_id: Optional[str] = Field(None, description="Resource the step acted on")
    message: str = Field(..., description="Sanitized error message")


class TeardownReport(BaseModel):
    """Outcome of a best-effort teardown.

    Every step runs regardless of earlier failures; failures are collected here
    instead of being raised.
    """

    started_at: datetime = Field(default_factory=datetime.now, description="Teardown start time")
    steps: List[str] = Field(default_factory=list, description="Steps attempted, in order")
    skipped: List[str] = Field(default_factory=list, description="Steps with nothing to delete")
    failures: List[StepFailure] = Field(default_factory=list, description="Steps that failed")

    @property
    def ok(self) -> bool:
        return not self.failures

    def failed_steps(self) -> List[str]:
        return [f.step for f in self.failures]
