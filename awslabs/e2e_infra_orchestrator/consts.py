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

"""Constants for the E2E infrastructure orchestrator."""

import re
from enum import Enum
from typing import Final

# Default AWS Region
DEFAULT_AWS_REGION: Final[str] = "us-west-2"

# Default Log Level
DEFAULT_LOG_LEVEL: Final[str] = "WARNING"

# Polling cadence and bounds (seconds)
DEFAULT_POLL_INTERVAL: Final[float] = 1.0
VPC_WAIT_TIMEOUT: Final[int] = 30
NAT_GATEWAY_TIMEOUT: Final[int] = 180
IGW_DETACH_TIMEOUT: Final[int] = 60

# Provider state strings
STATE_AVAILABLE: Final[str] = "available"
STATE_DELETED: Final[str] = "deleted"
STATE_FAILED: Final[str] = "failed"

DEFAULT_ROUTE_CIDR: Final[str] = "0.0.0.0/0"

# Tag contract consumed by the load balancer controller and CAPA
NAME_TAG: Final[str] = "Name"
CLUSTER_TAG_PREFIX: Final[str] = "kubernetes.io/cluster/"
CLUSTER_TAG_VALUE: Final[str] = "shared"
PUBLIC_ELB_ROLE_TAG: Final[str] = "kubernetes.io/role/elb"
INTERNAL_ELB_ROLE_TAG: Final[str] = "kubernetes.io/role/internal-elb"
ROLE_TAG_VALUE: Final[str] = "1"
CAPA_INSTANCE_TAG_PREFIX: Final[str] = "sigs.k8s.io/cluster-api-provider-aws/cluster/"

# Service linked roles the controller must be able to recreate on its own
SERVICE_LINKED_ROLES: Final[tuple] = (
    "AWSServiceRoleForElasticLoadBalancing",
    "AWSServiceRoleForEC2Spot",
)


class ErrorCode(Enum):
    """Error codes for the E2E infrastructure orchestrator."""

    AWS_ERROR = "AWS_SERVICE_ERROR"
    INVALID_INPUT = "INVALID_INPUT"
    RESOURCE_NOT_FOUND = "RESOURCE_NOT_FOUND"
    AWS_CLIENT_ERROR = "AWS_CLIENT_ERROR"
    AWS_THROTTLING_ERROR = "AWS_THROTTLING_ERROR"
    AWS_ACCESS_DENIED = "AWS_ACCESS_DENIED"
    AWS_RESOURCE_NOT_FOUND = "AWS_RESOURCE_NOT_FOUND"
    PROVISIONING_FAILED = "PROVISIONING_FAILED"
    CONVERGENCE_FAILED = "CONVERGENCE_FAILED"
    STACK_RECONCILE_FAILED = "STACK_RECONCILE_FAILED"
    STACK_DELETE_FAILED = "STACK_DELETE_FAILED"
    QUOTA_READ_FAILED = "QUOTA_READ_FAILED"
    UNKNOWN_ERROR = "UNKNOWN_ERROR"


# Error codes that will not clear up by polling longer
FATAL_AUTH_ERROR_CODES: Final[frozenset] = frozenset(
    {
        "AuthFailure",
        "UnauthorizedOperation",
        "AccessDenied",
        "AccessDeniedException",
        "InvalidClientTokenId",
        "ExpiredToken",
        "ExpiredTokenException",
        "SignatureDoesNotMatch",
    }
)

THROTTLING_ERROR_CODES: Final[frozenset] = frozenset(
    {"Throttling", "ThrottlingException", "RequestLimitExceeded", "TooManyRequestsException"}
)

# Codes returned when the target of a describe/delete is already gone
NOT_FOUND_ERROR_CODES: Final[frozenset] = frozenset(
    {
        "NoSuchEntity",
        "ResourceNotFoundException",
        "InvalidAllocationID.NotFound",
        "InvalidAssociationID.NotFound",
        "InvalidGroup.NotFound",
        "InvalidInternetGatewayID.NotFound",
        "InvalidRouteTableID.NotFound",
        "InvalidSubnetID.NotFound",
        "InvalidVpcID.NotFound",
        "InvalidVpcPeeringConnectionID.NotFound",
        "NatGatewayNotFound",
        "InvalidPermission.NotFound",
    }
)

# Sanitization patterns for error messages
SANITIZATION_PATTERNS = [
    # AWS access keys
    (re.compile(r"AKIA[0-9A-Z]{16}"), "[ACCESS_KEY_REDACTED]"),
    # AWS secret keys (40 char base64-like strings)
    (re.compile(r"[A-Za-z0-9/+=]{40}"), "[SECRET_KEY_REDACTED]"),
    # ARNs
    (re.compile(r"arn:aws:[^:]+:[^:]*:[^:]*:[^:\s]+"), "[ARN_REDACTED]"),
]


def sanitize_error_message(message: str) -> str:
    """Sanitize error messages to remove sensitive information."""
    if len(message) > 10000:
        return "[TRUNCATED_FOR_SECURITY]"

    sanitized = message
    for pattern, replacement in SANITIZATION_PATTERNS:
        sanitized = pattern.sub(replacement, sanitized)

    return sanitized
