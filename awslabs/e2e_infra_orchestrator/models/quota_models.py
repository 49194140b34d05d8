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

"""Service quota models for the E2E infrastructure orchestrator."""

from typing import Dict

from pydantic import BaseModel, Field


class QuotaRecord(BaseModel):
    """A tracked service quota and its outstanding increase request, if any."""

    key: str = Field(..., description="Short local name, e.g. igw")
    service_code: str = Field(..., description="Service Quotas service code")
    quota_code: str = Field(..., description="Service Quotas quota code")
    quota_name: str = Field(..., description="Human readable quota name")
    value: int = Field(0, description="Last value read from the service")
    desired_minimum_value: int = Field(..., ge=0, description="Floor the account should have")
    request_status: str = Field("", description="Status of the open increase request; empty means none")

    @property
    def below_minimum(self) -> bool:
        return self.value < self.desired_minimum_value

    @property
    def has_open_request(self) -> bool:
        return self.request_status != ""


def default_quota_records() -> Dict[str, QuotaRecord]:
    """Quotas an e2e run exhausts first."""
    records = [
        QuotaRecord(
            key="igw",
            service_code="vpc",
            quota_name="Internet gateways per Region",
            quota_code="L-A4707A72",
            desired_minimum_value=20,
        ),
        QuotaRecord(
            key="ngw",
            service_code="vpc",
            quota_name="NAT gateways per Availability Zone",
            quota_code="L-FE5A380F",
            desired_minimum_value=20,
        ),
        QuotaRecord(
            key="vpc",
            service_code="vpc",
            quota_name="VPCs per Region",
            quota_code="L-F678F1CE",
            desired_minimum_value=20,
        ),
        QuotaRecord(
            key="ec2-normal",
            service_code="ec2",
            quota_name="Running On-Demand Standard (A, C, D, H, I, M, R, T, Z) instances",
            quota_code="L-1216C47A",
            desired_minimum_value=2048,
        ),
        QuotaRecord(
            key="eip",
            service_code="ec2",
            quota_name="EC2-VPC Elastic IPs",
            quota_code="L-0263D0A3",
            desired_minimum_value=100,
        ),
        QuotaRecord(
            key="classiclb",
            service_code="elasticloadbalancing",
            quota_name="Classic Load Balancers per Region",
            quota_code="L-E9E9831D",
            desired_minimum_value=20,
        ),
        QuotaRecord(
            key="ec2-GPU",
            service_code="ec2",
            quota_name="Running On-Demand G and VT instances",
            quota_code="L-DB2E81BA",
            desired_minimum_value=8,
        ),
        QuotaRecord(
            key="volume-GP2",
            service_code="ebs",
            quota_name="Storage for General Purpose SSD (gp2) volumes, in TiB",
            quota_code="L-D18FCD1D",
            desired_minimum_value=50,
        ),
        QuotaRecord(
            key="eventbridge-rules",
            service_code="events",
            quota_name="Number of rules",
            quota_code="L-244521F2",
            desired_minimum_value=500,
        ),
    ]
    return {r.key: r for r in records}
