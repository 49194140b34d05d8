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

"""Thin boto3 wrappers for EC2 and IAM."""

from .ec2_api import RESOURCE_TABLE, EC2ResourceAPI, ResourceOps
from .iam_api import IAMResourceAPI

__all__ = ["RESOURCE_TABLE", "EC2ResourceAPI", "IAMResourceAPI", "ResourceOps"]
