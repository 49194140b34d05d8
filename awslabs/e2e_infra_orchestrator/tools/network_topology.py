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

"""Network topology orchestrator.

Creates and tears down the fixed e2e topology: one VPC, a public and a private
subnet, an internet gateway, an elastic IP, a NAT gateway in the public subnet
and one route table per subnet with a default route. The order is hard coded;
every delete step tolerates resources that were never created.
"""

# Standard library imports
import time
from contextlib import contextmanager
from typing import Any, Callable, Dict, Iterable, List, Optional

# Third-party imports
from botocore.exceptions import BotoCoreError, ClientError

# Local imports
from ..config.settings import InfraSettings, get_settings
from ..consts import DEFAULT_ROUTE_CIDR, STATE_AVAILABLE, STATE_DELETED, STATE_FAILED
from ..errors import InfraError, ProvisioningError, error_code, is_not_found, log_aws_error
from ..models.aws_models import (
    NetworkTopologySpec,
    NetworkTopologyState,
    ResourceHandle,
    RouteTableHandle,
    SubnetType,
)
from ..models.response_models import StepFailure, TeardownReport
from ..provider.ec2_api import EC2ResourceAPI
from ..utils.logger import get_logger
from ..utils.waiters import eventually, wait_for_instance_state, wait_for_state

logger = get_logger(__name__)


@contextmanager
def _hard_step(operation: str, description: str):
    """Turn a provider or transport failure into ProvisioningError, aborting the sequence."""
    try:
        yield
    except (ClientError, BotoCoreError) as e:
        log_aws_error(e, operation)
        raise ProvisioningError(f"{description} failed: {e}", operation) from e


class NetworkTopologyOrchestrator:
    """Provision and tear down the e2e network topology for one spec."""

    def __init__(
        self,
        spec: NetworkTopologySpec,
        ec2: Optional[EC2ResourceAPI] = None,
        settings: Optional[InfraSettings] = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.spec = spec
        self.settings = settings or get_settings()
        self.ec2 = ec2 or EC2ResourceAPI(region=self.settings.default_region)
        self.sleep = sleep
        self.state = NetworkTopologyState()

        # Last records returned by the provider
        self.vpc: Optional[Dict[str, Any]] = None
        self.subnets: List[Dict[str, Any]] = []
        self.internet_gateway: Optional[Dict[str, Any]] = None
        self.elastic_ip: Optional[Dict[str, Any]] = None
        self.nat_gateway: Optional[Dict[str, Any]] = None

    def _wait(self, fetch, timeout: int, target: str, description: str) -> bool:
        return wait_for_state(
            fetch,
            timeout,
            target,
            interval=self.settings.poll_interval_seconds,
            sleep=self.sleep,
            description=description,
        )

    # ------------------------------------------------------------------
    # Create steps
    # ------------------------------------------------------------------

    def create_infrastructure(self) -> NetworkTopologyState:
        """Create the whole topology in dependency order.

        Raises:
            ProvisioningError: A hard step failed. Resources created up to that
                point are tracked in ``state`` and removed by
                ``delete_infrastructure``.
        """
        logger.info(f"Creating network topology for cluster {self.spec.cluster_name}")
        self.create_vpc()
        self.create_subnet(SubnetType.PUBLIC)
        self.create_subnet(SubnetType.PRIVATE)
        if not self.wait_for_vpc_available():
            logger.warning(f"VPC {self.state.vpc_id} is '{self.state.vpc_state}', continuing anyway")
        self.create_internet_gateway()
        self.allocate_address()
        self.create_nat_gateway(SubnetType.PUBLIC)
        self.create_route_table(SubnetType.PUBLIC)
        self.create_route_table(SubnetType.PRIVATE)
        self.create_default_routes()
        self.refresh_route_tables()
        logger.info(f"Network topology for cluster {self.spec.cluster_name} is ready")
        return self.state

    def create_vpc(self) -> ResourceHandle:
        with _hard_step("create_vpc", f"Creating VPC {self.spec.vpc_name}"):
            vpc = self.ec2.create_vpc(self.spec.vpc_name, self.spec.vpc_cidr)
        self.vpc = vpc
        self.state.vpc_id = vpc["VpcId"]
        self.state.vpc_state = vpc.get("State")
        return ResourceHandle(resource_id=vpc["VpcId"], kind="vpc", state=vpc.get("State"))

    def refresh_vpc_state(self) -> Optional[str]:
        """Describe the VPC and record its current state."""
        if not self.state.vpc_id:
            return None
        vpc = self.ec2.get("vpc", self.state.vpc_id)
        if vpc is not None:
            self.vpc = vpc
            self.state.vpc_state = vpc.get("State")
        return self.state.vpc_state

    def wait_for_vpc_available(self) -> bool:
        return self._wait(
            self.refresh_vpc_state, self.settings.vpc_wait_timeout, STATE_AVAILABLE, f"VPC {self.state.vpc_id}"
        )

    def create_subnet(self, subnet_type: SubnetType) -> ResourceHandle:
        subnet_type = SubnetType(subnet_type)
        state_field = f"{subnet_type.value}_subnet_state"
        if not self.state.vpc_id:
            raise ProvisioningError(f"Cannot create {subnet_type.value} subnet without a VPC", "create_subnet")
        try:
            subnet = self.ec2.create_subnet(
                self.spec.cluster_name,
                self.spec.subnet_cidr(subnet_type),
                self.spec.availability_zone,
                self.state.vpc_id,
                subnet_type,
            )
        except (ClientError, BotoCoreError) as e:
            setattr(self.state, state_field, STATE_FAILED)
            log_aws_error(e, "create_subnet")
            raise ProvisioningError(f"Creating {subnet_type.value} subnet failed: {e}", "create_subnet") from e

        setattr(self.state, f"{subnet_type.value}_subnet_id", subnet["SubnetId"])
        setattr(self.state, state_field, subnet.get("State"))
        self.subnets.append(subnet)
        return ResourceHandle(
            resource_id=subnet["SubnetId"], kind="subnet", parent_id=self.state.vpc_id, state=subnet.get("State")
        )

    def create_internet_gateway(self) -> ResourceHandle:
        """Create the internet gateway and attach it to the VPC.

        A failed attachment does not raise: the gateway is kept for teardown and
        ``state.internet_gateway_attached`` stays False. The public default
        route cannot be created through an unattached gateway, so the failure
        surfaces at ``create_default_routes``.
        """
        with _hard_step("create_internet_gateway", f"Creating internet gateway {self.spec.internet_gateway_name}"):
            igw = self.ec2.create_internet_gateway(self.spec.internet_gateway_name)
        self.internet_gateway = igw
        self.state.internet_gateway_id = igw["InternetGatewayId"]

        try:
            self.ec2.attach_internet_gateway(igw["InternetGatewayId"], self.state.vpc_id)
            self.state.internet_gateway_attached = True
        except (ClientError, BotoCoreError) as e:
            log_aws_error(e, "attach_internet_gateway", level="WARNING")
            self.state.internet_gateway_attached = False

        return ResourceHandle(resource_id=igw["InternetGatewayId"], kind="internet-gateway", parent_id=self.state.vpc_id)

    def allocate_address(self) -> ResourceHandle:
        with _hard_step("allocate_address", f"Allocating elastic IP {self.spec.elastic_ip_name}"):
            allocation = self.ec2.allocate_address(self.spec.elastic_ip_name)
        allocation_id = allocation["AllocationId"]
        self.elastic_ip = allocation
        self.state.elastic_ip_allocation_id = allocation_id

        try:
            address = self.ec2.get("elastic-ip", allocation_id)
        except (ClientError, BotoCoreError) as e:
            log_aws_error(e, "describe_address", level="WARNING")
            address = None
        if address is not None:
            self.elastic_ip = address
        self.state.elastic_ip_public_ip = self.elastic_ip.get("PublicIp")
        return ResourceHandle(resource_id=allocation_id, kind="elastic-ip")

    def nat_gateway_state(self, gateway_id: str) -> str:
        """Current NAT gateway state; a gateway no longer listed counts as deleted."""
        gateway = self.ec2.get("natgateway", gateway_id)
        if gateway is None:
            return STATE_DELETED
        return gateway.get("State")

    def wait_for_nat_gateway_state(self, gateway_id: str, timeout: int, state: str) -> bool:
        return self._wait(lambda: self.nat_gateway_state(gateway_id), timeout, state, f"NAT gateway {gateway_id}")

    def _resolve_subnet_id(self, subnet_type: SubnetType) -> Optional[str]:
        subnet_id = self.state.subnet_id(subnet_type)
        if subnet_id:
            return subnet_id
        subnet = self.ec2.get_by_name("subnet", self.spec.subnet_name(subnet_type))
        return subnet["SubnetId"] if subnet else None

    def create_nat_gateway(self, subnet_type: SubnetType = SubnetType.PUBLIC) -> ResourceHandle:
        subnet_type = SubnetType(subnet_type)
        with _hard_step("create_nat_gateway", f"Looking up {subnet_type.value} subnet"):
            subnet_id = self._resolve_subnet_id(subnet_type)
        if not subnet_id:
            raise ProvisioningError(f"No {subnet_type.value} subnet for the NAT gateway", "create_nat_gateway")
        if not self.state.elastic_ip_allocation_id:
            raise ProvisioningError("No elastic IP allocated for the NAT gateway", "create_nat_gateway")

        with _hard_step("create_nat_gateway", f"Creating NAT gateway {self.spec.nat_gateway_name}"):
            gateway = self.ec2.create_nat_gateway(
                self.spec.nat_gateway_name, subnet_id, allocation_id=self.state.elastic_ip_allocation_id
            )
        gateway_id = gateway["NatGatewayId"]
        self.nat_gateway = gateway
        self.state.nat_gateway_id = gateway_id
        self.state.nat_gateway_state = gateway.get("State")

        if self.wait_for_nat_gateway_state(gateway_id, self.settings.nat_gateway_timeout, STATE_AVAILABLE):
            try:
                refreshed = self.ec2.get("natgateway", gateway_id)
            except (ClientError, BotoCoreError) as e:
                log_aws_error(e, "describe_nat_gateway", level="WARNING")
                refreshed = None
            if refreshed is not None:
                self.nat_gateway = refreshed
                self.state.nat_gateway_state = refreshed.get("State")
        else:
            logger.warning(f"NAT gateway {gateway_id} did not become available")

        return ResourceHandle(
            resource_id=gateway_id, kind="natgateway", parent_id=subnet_id, state=self.state.nat_gateway_state
        )

    def create_route_table(self, subnet_type: SubnetType) -> RouteTableHandle:
        """Create a route table and associate it with the subnet of the same type.

        The table is tracked for teardown as soon as it exists; its id is
        recorded as the subnet's route table only after the association
        succeeds.
        """
        subnet_type = SubnetType(subnet_type)
        subnet_id = self.state.subnet_id(subnet_type)
        if not self.state.vpc_id or not subnet_id:
            raise ProvisioningError(
                f"Cannot create {subnet_type.value} route table without VPC and subnet", "create_route_table"
            )

        name = self.spec.route_table_name(subnet_type)
        with _hard_step("create_route_table", f"Creating route table {name}"):
            route_table = self.ec2.create_route_table(name, self.state.vpc_id)
        handle = RouteTableHandle(resource_id=route_table["RouteTableId"], parent_id=self.state.vpc_id)
        self.state.route_tables.append(handle)

        with _hard_step("associate_route_table", f"Associating route table {name} with {subnet_id}"):
            association_id = self.ec2.associate_route_table(handle.resource_id, subnet_id)
        handle.association_ids.append(association_id)
        setattr(self.state, f"{subnet_type.value}_route_table_id", handle.resource_id)
        return handle

    def create_default_routes(self) -> None:
        """Route 0.0.0.0/0 through the internet gateway (public) and NAT gateway (private)."""
        public_rt = self.state.public_route_table_id
        private_rt = self.state.private_route_table_id
        if not public_rt or not self.state.internet_gateway_id:
            raise ProvisioningError("Public default route needs a route table and internet gateway", "create_route")
        if not private_rt or not self.state.nat_gateway_id:
            raise ProvisioningError("Private default route needs a route table and NAT gateway", "create_route")

        with _hard_step("create_route", f"Creating public default route in {public_rt}"):
            created = self.ec2.create_route(public_rt, DEFAULT_ROUTE_CIDR, gateway_id=self.state.internet_gateway_id)
        if not created:
            raise ProvisioningError(f"Public default route in {public_rt} was rejected", "create_route")

        with _hard_step("create_route", f"Creating private default route in {private_rt}"):
            created = self.ec2.create_route(private_rt, DEFAULT_ROUTE_CIDR, nat_gateway_id=self.state.nat_gateway_id)
        if not created:
            raise ProvisioningError(f"Private default route in {private_rt} was rejected", "create_route")

    def refresh_route_tables(self) -> List[RouteTableHandle]:
        """Re-describe tracked route tables to pick up every subnet association."""
        for handle in self.state.route_tables:
            try:
                record = self.ec2.get("route-table", handle.resource_id)
            except (ClientError, BotoCoreError) as e:
                log_aws_error(e, "describe_route_table", level="WARNING")
                continue
            if record is None:
                continue
            association_ids = [
                a["RouteTableAssociationId"]
                for a in record.get("Associations", [])
                if not a.get("Main") and a.get("RouteTableAssociationId")
            ]
            handle.association_ids = association_ids
        return self.state.route_tables

    def add_security_group(
        self, name: str, description: str, rules: Iterable[Dict[str, Any]] = ()
    ) -> ResourceHandle:
        """Create a security group in the topology VPC and authorize its rules.

        Each rule is a mapping with ``direction`` (ingress/egress), ``cidr``,
        ``protocol``, ``from_port``, ``to_port`` and optional ``description``.
        """
        if not self.state.vpc_id:
            raise ProvisioningError(f"Cannot create security group {name} without a VPC", "create_security_group")
        with _hard_step("create_security_group", f"Creating security group {name}"):
            group = self.ec2.create_security_group(name, description, self.state.vpc_id)
        handle = ResourceHandle(resource_id=group["GroupId"], kind="security-group", parent_id=self.state.vpc_id)
        self.state.security_groups.append(handle)

        for rule in rules:
            with _hard_step("authorize_security_group_rule", f"Authorizing {rule.get('direction')} rule on {name}"):
                authorized = self.ec2.authorize_security_group_rule(
                    handle.resource_id,
                    rule["direction"],
                    rule["cidr"],
                    rule["protocol"],
                    rule["from_port"],
                    rule["to_port"],
                    rule.get("description", ""),
                )
            if not authorized:
                raise ProvisioningError(f"Rule {rule} on {name} was rejected", "authorize_security_group_rule")
        return handle

    def wait_for_instance_state(self, timeout: int, state: str) -> bool:
        """Wait until every EC2 instance tagged for this cluster is in ``state``."""
        return wait_for_instance_state(
            lambda: self.ec2.instance_states(self.ec2.list_cluster_instances(self.spec.cluster_name)),
            timeout,
            state,
            interval=self.settings.poll_interval_seconds,
            sleep=self.sleep,
        )

    # ------------------------------------------------------------------
    # Teardown
    # ------------------------------------------------------------------

    def _best_effort(
        self, report: TeardownReport, step: str, resource_id: Optional[str], action: Callable[[], Any]
    ) -> bool:
        """Run one teardown action; record failures instead of raising.

        Returns True when the resource is gone afterwards.
        """
        if not resource_id:
            report.skipped.append(step)
            logger.debug(f"Skipping {step}: nothing was created")
            return False
        report.steps.append(step)
        try:
            action()
            return True
        except ClientError as e:
            if is_not_found(e):
                logger.debug(f"{step}: {resource_id} is already gone")
                return True
            message = log_aws_error(e, step, level="WARNING")
        except BotoCoreError as e:
            message = log_aws_error(e, step, level="WARNING")
        except InfraError as e:
            logger.warning(f"{step} failed for {resource_id}: {e.message}")
            message = e.message
        report.failures.append(StepFailure(step=step, resource_id=resource_id, message=message))
        return False

    def delete_infrastructure(self) -> TeardownReport:
        """Delete everything ``create_infrastructure`` produced, in reverse dependency order.

        Every step runs even when earlier ones fail; failures are collected in
        the returned report. Ids of deleted resources are cleared from state,
        so calling this twice is harmless.
        """
        logger.info(f"Deleting network topology for cluster {self.spec.cluster_name}")
        report = TeardownReport()

        self._delete_route_tables(report)
        self._delete_security_groups(report)
        self._delete_nat_gateway(report)
        self._delete_elastic_ip(report)
        self._delete_internet_gateway(report)
        self._delete_subnet(SubnetType.PRIVATE, report)
        self._delete_subnet(SubnetType.PUBLIC, report)

        if self._best_effort(report, "delete_vpc", self.state.vpc_id, lambda: self.ec2.delete("vpc", self.state.vpc_id)):
            self.state.vpc_id = None
            self.state.vpc_state = None
            self.vpc = None

        if report.ok:
            logger.info(f"Network topology for cluster {self.spec.cluster_name} deleted")
        else:
            logger.warning(f"Teardown left resources behind: {report.failed_steps()}")
        return report

    def _delete_route_tables(self, report: TeardownReport) -> None:
        remaining: List[RouteTableHandle] = []
        for handle in self.state.route_tables:
            for association_id in list(handle.association_ids):
                if self._best_effort(
                    report,
                    "disassociate_route_table",
                    association_id,
                    lambda a=association_id: self.ec2.disassociate_route_table(a),
                ):
                    handle.association_ids.remove(association_id)
            if not self._best_effort(
                report,
                "delete_route_table",
                handle.resource_id,
                lambda r=handle.resource_id: self.ec2.delete("route-table", r),
            ):
                remaining.append(handle)
        self.state.route_tables = remaining
        remaining_ids = {h.resource_id for h in remaining}
        if self.state.public_route_table_id not in remaining_ids:
            self.state.public_route_table_id = None
        if self.state.private_route_table_id not in remaining_ids:
            self.state.private_route_table_id = None

    def _delete_security_groups(self, report: TeardownReport) -> None:
        remaining = []
        for handle in self.state.security_groups:
            if not self._best_effort(
                report,
                "delete_security_group",
                handle.resource_id,
                lambda g=handle.resource_id: self.ec2.delete("security-group", g),
            ):
                remaining.append(handle)
        self.state.security_groups = remaining

    def _delete_nat_gateway(self, report: TeardownReport) -> None:
        gateway_id = self.state.nat_gateway_id
        if not self._best_effort(report, "delete_nat_gateway", gateway_id, lambda: self.ec2.delete("natgateway", gateway_id)):
            return

        def wait_deleted() -> None:
            if not self.wait_for_nat_gateway_state(gateway_id, self.settings.nat_gateway_timeout, STATE_DELETED):
                raise ProvisioningError(f"NAT gateway {gateway_id} was not deleted in time", "wait_nat_gateway_deleted")

        if self._best_effort(report, "wait_nat_gateway_deleted", gateway_id, wait_deleted):
            self.state.nat_gateway_id = None
            self.state.nat_gateway_state = STATE_DELETED
            self.nat_gateway = None

    def _delete_elastic_ip(self, report: TeardownReport) -> None:
        allocation_id = self.state.elastic_ip_allocation_id
        if self._best_effort(report, "release_address", allocation_id, lambda: self.ec2.delete("elastic-ip", allocation_id)):
            self.state.elastic_ip_allocation_id = None
            self.state.elastic_ip_public_ip = None
            self.elastic_ip = None

    def _detach_internet_gateway_once(self, gateway_id: str, vpc_id: str) -> bool:
        try:
            self.ec2.detach_internet_gateway(gateway_id, vpc_id)
        except ClientError as e:
            if error_code(e) == "Gateway.NotAttached" or is_not_found(e):
                return True
            raise
        return True

    def _delete_internet_gateway(self, report: TeardownReport) -> None:
        gateway_id = self.state.internet_gateway_id
        vpc_id = self.state.vpc_id

        def detach() -> None:
            detached = eventually(
                lambda: self._detach_internet_gateway_once(gateway_id, vpc_id),
                self.settings.igw_detach_timeout,
                interval=self.settings.poll_interval_seconds,
                sleep=self.sleep,
                description=f"detach of internet gateway {gateway_id}",
            )
            if not detached:
                raise ProvisioningError(f"Internet gateway {gateway_id} could not be detached", "detach_internet_gateway")

        if vpc_id and self._best_effort(report, "detach_internet_gateway", gateway_id, detach):
            self.state.internet_gateway_attached = False

        if self._best_effort(
            report, "delete_internet_gateway", gateway_id, lambda: self.ec2.delete("internet-gateway", gateway_id)
        ):
            self.state.internet_gateway_id = None
            self.internet_gateway = None

    def _delete_subnet(self, subnet_type: SubnetType, report: TeardownReport) -> None:
        subnet_id = self.state.subnet_id(subnet_type)
        if self._best_effort(
            report, f"delete_{subnet_type.value}_subnet", subnet_id, lambda: self.ec2.delete("subnet", subnet_id)
        ):
            setattr(self.state, f"{subnet_type.value}_subnet_id", None)
            setattr(self.state, f"{subnet_type.value}_subnet_state", None)
            self.subnets = [s for s in self.subnets if s.get("SubnetId") != subnet_id]
