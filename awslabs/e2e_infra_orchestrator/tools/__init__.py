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

"""Provisioning, reconciliation and account preparation tools."""

from .account import (
    ensure_no_service_linked_roles,
    ensure_ssh_key_pair,
    get_availability_zones,
    new_user_access_key,
)
from .network_topology import NetworkTopologyOrchestrator
from .quota_monitor import ServiceQuotaMonitor
from .stack_reconciler import StackReconciler

__all__ = [
    "NetworkTopologyOrchestrator",
    "ServiceQuotaMonitor",
    "StackReconciler",
    "ensure_no_service_linked_roles",
    "ensure_ssh_key_pair",
    "get_availability_zones",
    "new_user_access_key",
]
