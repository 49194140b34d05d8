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

"""Account preparation helpers run before an e2e suite."""

from typing import Any, Dict, List

from botocore.exceptions import ClientError

from ..consts import SERVICE_LINKED_ROLES
from ..errors import error_code
from ..provider.iam_api import IAMResourceAPI
from ..utils.logger import get_logger

logger = get_logger(__name__)


def ensure_ssh_key_pair(ec2_client, name: str) -> bool:
    """Create an EC2 key pair; returns False when it already existed."""
    logger.info(f"Ensuring SSH key pair {name}")
    try:
        ec2_client.create_key_pair(KeyName=name)
    except ClientError as e:
        if error_code(e) == "InvalidKeyPair.Duplicate":
            logger.debug(f"Key pair {name} already exists")
            return False
        raise
    return True


def ensure_no_service_linked_roles(iam_api: IAMResourceAPI) -> List[str]:
    """Delete the service linked roles that break role creation in tests; returns roles being deleted."""
    deleting = []
    for name in SERVICE_LINKED_ROLES:
        if iam_api.delete_service_linked_role(name) is not None:
            deleting.append(name)
    return deleting


def new_user_access_key(iam_api: IAMResourceAPI, user_name: str) -> Dict[str, str]:
    """Replace every access key of ``user_name`` with a fresh one."""
    for key in iam_api.list_access_keys(user_name):
        logger.info(f"Deleting an existing access key of {user_name}")
        iam_api.delete_access_key(user_name, key["AccessKeyId"])
    logger.info(f"Creating access key for {user_name}")
    return iam_api.create_access_key(user_name)


def get_availability_zones(ec2_client) -> List[Dict[str, Any]]:
    return ec2_client.describe_availability_zones().get("AvailabilityZones", [])
