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

"""Models package for the E2E infrastructure orchestrator."""

from .aws_models import (
    NetworkTopologySpec,
    NetworkTopologyState,
    ResourceHandle,
    RouteTableHandle,
    SubnetType,
)
from .quota_models import QuotaRecord, default_quota_records
from .response_models import StepFailure, TeardownReport
from .stack_models import (
    ROLLBACK_STATES,
    ResourceKind,
    StackDescriptor,
    StackResource,
    StackStatus,
)

__all__ = [
    # Topology models
    "NetworkTopologySpec",
    "NetworkTopologyState",
    "ResourceHandle",
    "RouteTableHandle",
    "SubnetType",
    # Stack models
    "ROLLBACK_STATES",
    "ResourceKind",
    "StackDescriptor",
    "StackResource",
    "StackStatus",
    # Quota models
    "QuotaRecord",
    "default_quota_records",
    # Response models
    "StepFailure",
    "TeardownReport",
]
