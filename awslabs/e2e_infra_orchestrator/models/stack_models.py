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

"""CloudFormation stack models for the E2E infrastructure orchestrator."""

import json
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class ResourceKind(str, Enum):
    """IAM resource types a bootstrap stack may declare."""

    ROLE = "AWS::IAM::Role"
    INSTANCE_PROFILE = "AWS::IAM::InstanceProfile"
    MANAGED_POLICY = "AWS::IAM::ManagedPolicy"
    GROUP = "AWS::IAM::Group"

    @property
    def name_property(self) -> str:
        return _NAME_PROPERTIES[self]


_NAME_PROPERTIES = {
    ResourceKind.ROLE: "RoleName",
    ResourceKind.INSTANCE_PROFILE: "InstanceProfileName",
    ResourceKind.MANAGED_POLICY: "ManagedPolicyName",
    ResourceKind.GROUP: "GroupName",
}


class StackStatus(str, Enum):
    CREATE_COMPLETE = "CREATE_COMPLETE"
    UPDATE_COMPLETE = "UPDATE_COMPLETE"
    ROLLBACK_IN_PROGRESS = "ROLLBACK_IN_PROGRESS"
    ROLLBACK_COMPLETE = "ROLLBACK_COMPLETE"
    ROLLBACK_FAILED = "ROLLBACK_FAILED"
    DELETE_FAILED = "DELETE_FAILED"
    OTHER = "OTHER"

    @classmethod
    def parse(cls, value: Optional[str]) -> "StackStatus":
        """Map a provider status string onto the enum; anything unknown is OTHER."""
        try:
            return cls(value)
        except ValueError:
            return cls.OTHER

    @property
    def is_rollback(self) -> bool:
        return self in ROLLBACK_STATES


ROLLBACK_STATES = frozenset(
    {StackStatus.ROLLBACK_IN_PROGRESS, StackStatus.ROLLBACK_COMPLETE, StackStatus.ROLLBACK_FAILED}
)


class StackResource(BaseModel):
    """One named resource declaration in a stack template."""

    model_config = ConfigDict(frozen=True)

    kind: ResourceKind = Field(..., description="CloudFormation resource type")
    name: str = Field(..., description="Physical resource name")
    properties: Dict[str, Any] = Field(default_factory=dict, description="Additional template properties")

    def render(self) -> Dict[str, Any]:
        properties = dict(self.properties)
        properties[self.kind.name_property] = self.name
        return {"Type": self.kind.value, "Properties": properties}


class StackDescriptor(BaseModel):
    """A stack to reconcile. Built by the caller, never mutated afterwards."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(..., description="Stack name", min_length=1, max_length=128)
    resources: Dict[str, StackResource] = Field(default_factory=dict, description="Resources by logical id")
    tags: Dict[str, str] = Field(default_factory=dict, description="Stack tags")
    description: Optional[str] = Field(None, description="Template description")

    def render(self) -> Dict[str, Any]:
        """Render the CloudFormation template document."""
        template: Dict[str, Any] = {"AWSTemplateFormatVersion": "2010-09-09"}
        if self.description:
            template["Description"] = self.description
        template["Resources"] = {logical_id: r.render() for logical_id, r in self.resources.items()}
        return template

    def template_body(self) -> str:
        return json.dumps(self.render(), indent=2, sort_keys=True)

    def cfn_tags(self) -> List[Dict[str, str]]:
        return [{"Key": k, "Value": v} for k, v in sorted(self.tags.items())]

    def resources_of_kind(self, kind: ResourceKind) -> List[StackResource]:
        return [r for r in self.resources.values() if r.kind is kind]
