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

"""Service quota monitor.

Reads the quotas an e2e run depends on and files an increase request for each
one below its floor, unless a sufficient request is already on record.
"""

from datetime import datetime, timezone
from typing import Any, Dict, Optional

from botocore.exceptions import ClientError

from ..errors import QuotaReadError, log_aws_error
from ..models.quota_models import QuotaRecord, default_quota_records
from ..utils.aws_client_factory import get_aws_client
from ..utils.logger import get_logger

logger = get_logger(__name__)


def as_utc(moment: datetime) -> datetime:
    """Normalise a timestamp to aware UTC; naive values are taken as UTC."""
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc)


class ServiceQuotaMonitor:
    def __init__(self, client=None, quotas: Optional[Dict[str, QuotaRecord]] = None) -> None:
        self.client = client or get_aws_client("service-quotas")
        self.quotas = quotas if quotas is not None else default_quota_records()

    def ensure(self) -> Dict[str, QuotaRecord]:
        """Refresh every tracked quota and request increases where needed.

        Raises:
            QuotaReadError: A quota value could not be read.
        """
        for record in self.quotas.values():
            record.value = self.read_quota(record)
            if record.below_minimum:
                logger.info(
                    f"Quota {record.service_code}/{record.quota_name} is {record.value}, "
                    f"below {record.desired_minimum_value}"
                )
                self.attempt_increase(record)
        return self.quotas

    def read_quota(self, record: QuotaRecord) -> int:
        try:
            response = self.client.get_service_quota(ServiceCode=record.service_code, QuotaCode=record.quota_code)
        except ClientError as e:
            log_aws_error(e, f"get_service_quota:{record.key}")
            raise QuotaReadError(
                f"Reading quota {record.service_code}/{record.quota_code} failed: {e}", "get_service_quota"
            ) from e
        return int(response["Quota"]["Value"])

    def attempt_increase(self, record: QuotaRecord) -> None:
        """File an increase request unless one is already open for the desired value."""
        if record.has_open_request:
            return
        try:
            latest = self.latest_matching_request(record)
        except ClientError as e:
            log_aws_error(e, f"list_requested_service_quota_change_history:{record.key}", level="WARNING")
            return
        if latest is not None:
            record.request_status = latest.get("Status", "")
            logger.info(f"Existing request for {record.quota_name} is {record.request_status}")
        if not record.has_open_request:
            self.request_increase(record)

    def latest_matching_request(self, record: QuotaRecord) -> Optional[Dict[str, Any]]:
        """Most recently created request for this quota asking for at least the floor."""
        latest: Optional[Dict[str, Any]] = None
        latest_created: Optional[datetime] = None
        paginator = self.client.get_paginator("list_requested_service_quota_change_history")
        for page in paginator.paginate(ServiceCode=record.service_code):
            for request in page.get("RequestedQuotas", []):
                if request.get("QuotaCode") != record.quota_code:
                    continue
                if int(request.get("DesiredValue", 0)) < record.desired_minimum_value:
                    continue
                created = request.get("Created")
                if created is None:
                    continue
                created = as_utc(created)
                if latest_created is None or created > latest_created:
                    latest = request
                    latest_created = created
        return latest

    def request_increase(self, record: QuotaRecord) -> None:
        logger.info(
            f"Requesting quota increase for {record.service_code}/{record.quota_name} "
            f"to {record.desired_minimum_value}"
        )
        try:
            response = self.client.request_service_quota_increase(
                ServiceCode=record.service_code,
                QuotaCode=record.quota_code,
                DesiredValue=float(record.desired_minimum_value),
            )
        except ClientError as e:
            log_aws_error(e, f"request_service_quota_increase:{record.key}", level="WARNING")
            return
        record.request_status = response.get("RequestedQuota", {}).get("Status", "")
