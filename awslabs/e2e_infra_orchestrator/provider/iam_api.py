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

"""IAM resource API used by the stack reconciler and account helpers."""

from typing import Any, Dict, List, Optional

from botocore.exceptions import BotoCoreError, ClientError

from ..errors import is_not_found, log_aws_error
from ..utils.aws_client_factory import get_aws_client
from ..utils.logger import get_logger

logger = get_logger(__name__)


class IAMResourceAPI:
    """Wrapper over a boto3 IAM client.

    Methods without a suffix raise ``ClientError``. Methods ending in
    ``_best_effort`` log failures and return False instead.
    """

    def __init__(self, client=None) -> None:
        self.client = client or get_aws_client("iam")

    def delete_role(self, name: str) -> None:
        self.client.delete_role(RoleName=name)
        logger.info(f"Deleted IAM role {name}")

    def delete_group(self, name: str) -> None:
        self.client.delete_group(GroupName=name)
        logger.info(f"Deleted IAM group {name}")

    def delete_instance_profile(self, name: str) -> None:
        self.client.delete_instance_profile(InstanceProfileName=name)
        logger.info(f"Deleted IAM instance profile {name}")

    def delete_policy(self, arn: str) -> None:
        self.client.delete_policy(PolicyArn=arn)
        logger.info(f"Deleted IAM managed policy {arn}")

    def list_policies(self, scope: Optional[str] = None) -> List[Dict[str, Any]]:
        """All managed policies, every page drained."""
        params = {"Scope": scope} if scope else {}
        policies: List[Dict[str, Any]] = []
        for page in self.client.get_paginator("list_policies").paginate(**params):
            policies.extend(page.get("Policies", []))
        return policies

    def find_policy_arn(self, name: str, scope: Optional[str] = None) -> Optional[str]:
        """Match a managed policy by name; templates declare names, not ARNs."""
        for policy in self.list_policies(scope):
            if policy.get("PolicyName") == name:
                return policy["Arn"]
        return None

    def get_policy_arn(self, name: str) -> str:
        """ARN of a customer managed policy, or an empty string."""
        return self.find_policy_arn(name, scope="Local") or ""

    def role_exists(self, name: str) -> bool:
        try:
            self.client.get_role(RoleName=name)
            return True
        except ClientError as e:
            if is_not_found(e):
                return False
            raise

    def detach_all_role_policies(self, name: str) -> None:
        paginator = self.client.get_paginator("list_attached_role_policies")
        for page in paginator.paginate(RoleName=name):
            for policy in page.get("AttachedPolicies", []):
                self.client.detach_role_policy(RoleName=name, PolicyArn=policy["PolicyArn"])
                logger.debug(f"Detached {policy['PolicyArn']} from role {name}")

    def delete_role_best_effort(self, name: str) -> bool:
        """Detach every managed policy from a role, then delete it.

        Returns True when the role is gone afterwards (including when it never
        existed).
        """
        try:
            if not self.role_exists(name):
                return True
            self.detach_all_role_policies(name)
            self.delete_role(name)
            return True
        except (ClientError, BotoCoreError) as e:
            log_aws_error(e, f"delete_role:{name}", level="WARNING")
            return False

    def delete_service_linked_role(self, name: str) -> Optional[str]:
        """Start deleting a service linked role; returns the deletion task id, None if absent."""
        try:
            response = self.client.delete_service_linked_role(RoleName=name)
        except ClientError as e:
            if is_not_found(e):
                logger.debug(f"Service linked role {name} does not exist")
                return None
            raise
        logger.info(f"Deleting service linked role {name}")
        return response.get("DeletionTaskId")

    def list_access_keys(self, user_name: str) -> List[Dict[str, Any]]:
        keys: List[Dict[str, Any]] = []
        for page in self.client.get_paginator("list_access_keys").paginate(UserName=user_name):
            keys.extend(page.get("AccessKeyMetadata", []))
        return keys

    def delete_access_key(self, user_name: str, access_key_id: str) -> None:
        self.client.delete_access_key(UserName=user_name, AccessKeyId=access_key_id)

    def create_access_key(self, user_name: str) -> Dict[str, str]:
        response = self.client.create_access_key(UserName=user_name)
        key = response["AccessKey"]
        return {"AccessKeyId": key["AccessKeyId"], "SecretAccessKey": key["SecretAccessKey"]}
