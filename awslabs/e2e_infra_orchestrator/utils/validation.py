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

# utils/validation.py
import ipaddress
import re

AVAILABILITY_ZONE_PATTERN = re.compile(r"^[a-z]{2}(-[a-z0-9]+)+[a-z]$")
CLUSTER_NAME_PATTERN = re.compile(r"^[a-zA-Z0-9][a-zA-Z0-9-]{0,99}$")


def validate_availability_zone(zone: str) -> bool:
    """Validate availability zone format, e.g. us-west-2a, us-gov-west-1a or us-west-2-lax-1a."""
    return bool(AVAILABILITY_ZONE_PATTERN.match(zone))


def validate_cluster_name(name: str) -> bool:
    """Validate a cluster name usable as a resource name prefix."""
    return bool(CLUSTER_NAME_PATTERN.match(name))


def validate_cidr_block(cidr: str) -> bool:
    """Validate IPv4 CIDR block format."""
    try:
        return ipaddress.ip_network(cidr, strict=True).version == 4
    except ValueError:
        return False


def cidr_contains(outer: str, inner: str) -> bool:
    """True when the inner CIDR lies entirely within the outer one."""
    return ipaddress.ip_network(inner).subnet_of(ipaddress.ip_network(outer))
