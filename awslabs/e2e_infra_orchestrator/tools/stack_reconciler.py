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

"""CloudFormation bootstrap stack reconciler.

Creates or updates a stack of IAM resources and waits for it to settle. When
the stack ends up rolled back (typically because a named IAM resource already
exists outside the stack) the declared resources are deleted so the next
attempt can succeed.
"""

# Standard library imports
from typing import Any, Dict, Iterable, List, Optional

# Third-party imports
from botocore.exceptions import BotoCoreError, ClientError

# Local imports
from ..errors import StackCleanupError, StackDeleteError, StackReconcileError, error_code, log_aws_error
from ..models.stack_models import ResourceKind, StackDescriptor, StackStatus
from ..provider.iam_api import IAMResourceAPI
from ..utils.aws_client_factory import get_aws_client
from ..utils.logger import get_logger

logger = get_logger(__name__)

CAPABILITIES = ["CAPABILITY_IAM", "CAPABILITY_NAMED_IAM"]
NO_UPDATES_MESSAGE = "No updates are to be performed"
STACK_MISSING_MESSAGE = "does not exist"
MISSING_ENTITY_CODES = {"NoSuchEntity"}


class StackReconciler:
    """Create, update and delete CloudFormation bootstrap stacks."""

    def __init__(
        self,
        cfn_client=None,
        iam_api: Optional[IAMResourceAPI] = None,
        multitenancy_roles: Iterable[str] = (),
        waiter_config: Optional[Dict[str, int]] = None,
    ) -> None:
        self.cfn = cfn_client or get_aws_client("cloudformation")
        self.iam = iam_api or IAMResourceAPI()
        self.multitenancy_roles = tuple(multitenancy_roles)
        self.waiter_config = waiter_config or {}

    def _wait(self, waiter_name: str, stack_name: str) -> None:
        params: Dict[str, Any] = {"StackName": stack_name}
        if self.waiter_config:
            params["WaiterConfig"] = self.waiter_config
        self.cfn.get_waiter(waiter_name).wait(**params)

    # ------------------------------------------------------------------
    # Reconcile
    # ------------------------------------------------------------------

    def _reconcile(self, stack: StackDescriptor) -> None:
        params = {
            "StackName": stack.name,
            "TemplateBody": stack.template_body(),
            "Capabilities": CAPABILITIES,
            "Tags": stack.cfn_tags(),
        }
        try:
            self.cfn.create_stack(**params)
            logger.info(f"Creating stack {stack.name}")
            self._wait("stack_create_complete", stack.name)
            return
        except ClientError as e:
            if error_code(e) != "AlreadyExistsException":
                raise
            logger.debug(f"Stack {stack.name} already exists, updating")

        try:
            self.cfn.update_stack(**params)
        except ClientError as e:
            if NO_UPDATES_MESSAGE in str(e):
                logger.info(f"Stack {stack.name} is up to date")
                return
            raise
        logger.info(f"Updating stack {stack.name}")
        self._wait("stack_update_complete", stack.name)

    def apply(self, stack: StackDescriptor) -> None:
        """Bring the stack in line with the descriptor.

        Raises:
            StackReconcileError: Create/update failed. Rollback cleanup has
                already run when the stack was left in a ROLLBACK state.
            StackCleanupError: Create/update failed and deleting a declared
                role or group failed as well.
        """
        try:
            self._reconcile(stack)
            return
        except (ClientError, BotoCoreError) as e:
            reconcile_error = e
        log_aws_error(reconcile_error, f"reconcile_stack:{stack.name}")

        try:
            status = self.stack_status(stack.name)
        except (ClientError, BotoCoreError) as e:
            logger.error(f"Status of stack {stack.name} is unknown, skipping rollback cleanup: {e}")
            raise StackReconcileError(stack.name, reconcile_error) from reconcile_error
        if status is None:
            raise StackReconcileError(stack.name, reconcile_error) from reconcile_error

        self.delete_multitenancy_roles()
        if status.is_rollback:
            logger.warning(f"Stack {stack.name} is {status.value}, deleting declared resources")
            try:
                self.cleanup_resources(stack)
            except (ClientError, BotoCoreError) as cleanup_error:
                raise StackCleanupError(stack.name, reconcile_error, status, cleanup_error) from reconcile_error
        raise StackReconcileError(stack.name, reconcile_error, status) from reconcile_error

    def delete_multitenancy_roles(self) -> List[str]:
        """Best-effort delete of the configured multitenancy roles; returns those still present."""
        return [name for name in self.multitenancy_roles if not self.iam.delete_role_best_effort(name)]

    def cleanup_resources(self, stack: StackDescriptor) -> None:
        """Delete the IAM resources a rolled back stack declares.

        Role and group deletion failures raise the botocore error (a missing
        resource is fine). Instance profile and managed policy deletion is
        best-effort.
        """
        for resource in stack.resources.values():
            if resource.kind is ResourceKind.ROLE:
                self._delete_required(self.iam.delete_role, resource.name)
            elif resource.kind is ResourceKind.INSTANCE_PROFILE:
                self._delete_optional(self.iam.delete_instance_profile, resource.name)
            elif resource.kind is ResourceKind.MANAGED_POLICY:
                self._delete_policy_by_name(resource.name)
            elif resource.kind is ResourceKind.GROUP:
                self._delete_required(self.iam.delete_group, resource.name)

    def _delete_required(self, delete, name: str) -> None:
        try:
            delete(name)
        except (ClientError, BotoCoreError) as e:
            if error_code(e) in MISSING_ENTITY_CODES:
                logger.debug(f"{name} is already gone")
                return
            log_aws_error(e, f"cleanup:{name}")
            raise

    def _delete_optional(self, delete, name: str) -> None:
        try:
            delete(name)
        except (ClientError, BotoCoreError) as e:
            log_aws_error(e, f"cleanup:{name}", level="WARNING")

    def _delete_policy_by_name(self, name: str) -> None:
        try:
            arn = self.iam.find_policy_arn(name)
        except (ClientError, BotoCoreError) as e:
            log_aws_error(e, f"list_policies:{name}", level="WARNING")
            return
        if not arn:
            logger.debug(f"Managed policy {name} not found")
            return
        self._delete_optional(self.iam.delete_policy, arn)

    # ------------------------------------------------------------------
    # Delete and inspection
    # ------------------------------------------------------------------

    def delete(self, stack_name: str) -> None:
        """Delete a stack; on failure retry once retaining the resources that failed to delete.

        Raises:
            StackDeleteError: The retry failed as well.
        """
        try:
            self.cfn.delete_stack(StackName=stack_name)
            logger.info(f"Deleting stack {stack_name}")
            self._wait("stack_delete_complete", stack_name)
            return
        except (ClientError, BotoCoreError) as e:
            log_aws_error(e, f"delete_stack:{stack_name}", level="WARNING")

        try:
            retain = self.delete_failed_resources(stack_name)
            logger.info(f"Retrying delete of stack {stack_name} retaining {retain}")
            self.cfn.delete_stack(StackName=stack_name, RetainResources=retain)
            self._wait("stack_delete_complete", stack_name)
        except (ClientError, BotoCoreError) as e:
            log_aws_error(e, f"delete_stack:{stack_name}")
            raise StackDeleteError(f"Deleting stack {stack_name} failed: {e}", "delete_stack") from e

    def delete_failed_resources(self, stack_name: str) -> List[str]:
        """Logical ids of the stack resources stuck in DELETE_FAILED."""
        response = self.cfn.describe_stack_resources(StackName=stack_name)
        return [
            r["LogicalResourceId"]
            for r in response.get("StackResources", [])
            if r.get("ResourceStatus") == "DELETE_FAILED"
        ]

    def describe(self, stack_name: str) -> Optional[Dict[str, Any]]:
        """The stack record, or None when the stack does not exist."""
        try:
            response = self.cfn.describe_stacks(StackName=stack_name)
        except ClientError as e:
            if error_code(e) == "ValidationError" and STACK_MISSING_MESSAGE in str(e):
                logger.debug(f"Stack {stack_name} does not exist")
                return None
            log_aws_error(e, f"describe_stack:{stack_name}", level="WARNING")
            raise
        stacks = response.get("Stacks", [])
        return stacks[0] if stacks else None

    def stack_status(self, stack_name: str) -> Optional[StackStatus]:
        stack = self.describe(stack_name)
        if stack is None:
            return None
        return StackStatus.parse(stack.get("StackStatus"))

    def stack_tags_match(self, stack_name: str, expected_tags: Dict[str, str]) -> bool:
        """True when the stack carries exactly the expected tags."""
        stack = self.describe(stack_name)
        if stack is None:
            return False
        tags = {t["Key"]: t["Value"] for t in stack.get("Tags", [])}
        return tags == dict(expected_tags)
