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

"""Error taxonomy and AWS error classification for the E2E infrastructure orchestrator."""

from typing import Optional

from botocore.exceptions import ClientError, NoCredentialsError

from .consts import (
    FATAL_AUTH_ERROR_CODES,
    NOT_FOUND_ERROR_CODES,
    THROTTLING_ERROR_CODES,
    ErrorCode,
    sanitize_error_message,
)
from .utils.logger import get_logger

logger = get_logger(__name__)


class InfraError(Exception):
    """Base class for orchestrator errors."""

    code: ErrorCode = ErrorCode.UNKNOWN_ERROR

    def __init__(self, message: str, operation: Optional[str] = None):
        self.message = sanitize_error_message(message)
        self.operation = operation
        super().__init__(self.message)

    def to_dict(self) -> dict:
        return {"code": self.code.value, "message": self.message, "operation": self.operation}


class ProvisioningError(InfraError):
    """A hard step of the topology create sequence failed."""

    code = ErrorCode.PROVISIONING_FAILED


class ConvergenceError(InfraError):
    """Polling hit an error that waiting longer cannot fix."""

    code = ErrorCode.CONVERGENCE_FAILED


class StackReconcileError(InfraError):
    """Stack create/update failed.

    Carries the provider error from the reconcile attempt and the stack status
    observed afterwards, so the caller can decide whether to retry.
    """

    code = ErrorCode.STACK_RECONCILE_FAILED

    def __init__(self, stack_name: str, reconcile_error: Exception, stack_status=None):
        self.stack_name = stack_name
        self.reconcile_error = reconcile_error
        self.stack_status = stack_status
        super().__init__(f"Reconciling stack {stack_name} failed: {reconcile_error}", "reconcile_stack")


class StackCleanupError(StackReconcileError):
    """Rollback cleanup could not delete a resource that blocks re-creation."""

    def __init__(self, stack_name: str, reconcile_error: Exception, stack_status, cleanup_error: Exception):
        self.cleanup_error = cleanup_error
        super().__init__(stack_name, reconcile_error, stack_status)
        self.message = sanitize_error_message(f"{self.message} (cleanup failed: {cleanup_error})")
        self.args = (self.message,)


class StackDeleteError(InfraError):
    """Stack deletion failed even with failed resources retained."""

    code = ErrorCode.STACK_DELETE_FAILED


class QuotaReadError(InfraError):
    """A service quota value could not be read."""

    code = ErrorCode.QUOTA_READ_FAILED


def error_code(e: Exception) -> Optional[str]:
    """Return the AWS error code carried by a ClientError, if any."""
    if isinstance(e, ClientError):
        return e.response.get("Error", {}).get("Code")
    return None


def is_not_found(e: Exception) -> bool:
    """True when the error says the resource does not exist."""
    code = error_code(e)
    if not code:
        return False
    return code in NOT_FOUND_ERROR_CODES or code.endswith(".NotFound")


def is_fatal_for_polling(e: Exception) -> bool:
    """True for credential/permission failures that no amount of polling resolves."""
    if isinstance(e, NoCredentialsError):
        return True
    return error_code(e) in FATAL_AUTH_ERROR_CODES


def classify_error(e: Exception) -> ErrorCode:
    """Map an exception to an ErrorCode."""
    if isinstance(e, InfraError):
        return e.code
    code = error_code(e)
    if code is None:
        return ErrorCode.UNKNOWN_ERROR
    if code in THROTTLING_ERROR_CODES:
        return ErrorCode.AWS_THROTTLING_ERROR
    if code in FATAL_AUTH_ERROR_CODES:
        return ErrorCode.AWS_ACCESS_DENIED
    if is_not_found(e):
        return ErrorCode.AWS_RESOURCE_NOT_FOUND
    return ErrorCode.AWS_CLIENT_ERROR


def log_aws_error(e: Exception, operation: str, level: str = "ERROR") -> str:
    """Log an AWS error with sanitization and return the sanitized message."""
    error_msg = sanitize_error_message(str(e))
    logger.bind(
        operation=operation,
        error_type=type(e).__name__,
        error_code=classify_error(e).value,
    ).log(level, f"AWS error in {operation}: {error_msg}")
    return error_msg
