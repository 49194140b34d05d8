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

"""Network topology models for the E2E infrastructure orchestrator."""

from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from ..utils.validation import (
    cidr_contains,
    validate_availability_zone,
    validate_cidr_block,
    validate_cluster_name,
)


class SubnetType(str, Enum):
    PUBLIC = "public"
    PRIVATE = "private"


class NetworkTopologySpec(BaseModel):
    """Immutable input for one provisioning run."""

    model_config = ConfigDict(frozen=True)

    cluster_name: str = Field(..., description="Cluster name, used as the resource name prefix")
    vpc_cidr: str = Field(..., description="VPC CIDR block")
    public_subnet_cidr: str = Field(..., description="Public subnet CIDR block")
    private_subnet_cidr: str = Field(..., description="Private subnet CIDR block")
    availability_zone: str = Field("", description="Availability zone; empty lets the provider choose")
    external_security_groups: bool = Field(False, description="Security groups are supplied outside the cluster")

    @field_validator("cluster_name")
    @classmethod
    def check_cluster_name(cls, v: str) -> str:
        if not validate_cluster_name(v):
            raise ValueError(f"Invalid cluster name: {v}")
        return v

    @field_validator("vpc_cidr", "public_subnet_cidr", "private_subnet_cidr")
    @classmethod
    def check_cidr(cls, v: str) -> str:
        if not validate_cidr_block(v):
            raise ValueError(f"Invalid IPv4 CIDR block: {v}")
        return v

    @field_validator("availability_zone")
    @classmethod
    def check_availability_zone(cls, v: str) -> str:
        if v and not validate_availability_zone(v):
            raise ValueError(f"Invalid availability zone: {v}")
        return v

    @model_validator(mode="after")
    def check_subnets_inside_vpc(self):
        for cidr in (self.public_subnet_cidr, self.private_subnet_cidr):
            if not cidr_contains(self.vpc_cidr, cidr):
                raise ValueError(f"Subnet {cidr} is outside VPC {self.vpc_cidr}")
        return self

    @property
    def vpc_name(self) -> str:
        return f"{self.cluster_name}-vpc"

    @property
    def internet_gateway_name(self) -> str:
        return f"{self.cluster_name}-igw"

    @property
    def elastic_ip_name(self) -> str:
        return f"{self.cluster_name}-eip"

    @property
    def nat_gateway_name(self) -> str:
        return f"{self.cluster_name}-nat"

    def subnet_name(self, subnet_type: SubnetType) -> str:
        return f"{self.cluster_name}-subnet-{SubnetType(subnet_type).value}"

    def route_table_name(self, subnet_type: SubnetType) -> str:
        return f"{self.cluster_name}-rt-{SubnetType(subnet_type).value}"

    def subnet_cidr(self, subnet_type: SubnetType) -> str:
        if SubnetType(subnet_type) is SubnetType.PUBLIC:
            return self.public_subnet_cidr
        return self.private_subnet_cidr


class ResourceHandle(BaseModel):
    """Identifier plus a soft reference to the parent resource.

    ``parent_id`` is only used for lookups. Deleting the parent never cascades
    through it; the orchestrator owns the deletion order.
    """

    resource_id: str = Field(..., description="Provider identifier")
    kind: str = Field(..., description="Resource kind, e.g. vpc or route-table")
    parent_id: Optional[str] = Field(None, description="Identifier of the parent resource")
    state: Optional[str] = Field(None, description="Last observed provider state")


class RouteTableHandle(ResourceHandle):
    """Route table with the association ids needed for teardown."""

    kind: str = "route-table"
    association_ids: List[str] = Field(default_factory=list, description="Subnet association ids")


class NetworkTopologyState(BaseModel):
    """Mutable state owned by one orchestrator run.

    An ``*_id`` field is set only after the matching create call returned
    successfully. ``*_state`` fields are as fresh as the last describe/poll.
    """

    vpc_id: Optional[str] = None
    vpc_state: Optional[str] = None
    public_subnet_id: Optional[str] = None
    public_subnet_state: Optional[str] = None
    private_subnet_id: Optional[str] = None
    private_subnet_state: Optional[str] = None
    internet_gateway_id: Optional[str] = None
    internet_gateway_attached: bool = False
    elastic_ip_allocation_id: Optional[str] = None
    elastic_ip_public_ip: Optional[str] = None
    nat_gateway_id: Optional[str] = None
    nat_gateway_state: Optional[str] = None
    public_route_table_id: Optional[str] = None
    private_route_table_id: Optional[str] = None
    route_tables: List[RouteTableHandle] = Field(default_factory=list)
    security_groups: List[ResourceHandle] = Field(default_factory=list)

    def subnet_id(self, subnet_type: SubnetType) -> Optional[str]:
        if SubnetType(subnet_type) is SubnetType.PUBLIC:
            return self.public_subnet_id
        return self.private_subnet_id

    def route_table_id(self, subnet_type: SubnetType) -> Optional[str]:
        if SubnetType(subnet_type) is SubnetType.PUBLIC:
            return self.public_route_table_id
        return self.private_route_table_id
