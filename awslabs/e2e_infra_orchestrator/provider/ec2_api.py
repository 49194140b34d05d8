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

"""EC2 resource API used by the network topology orchestrator.

Create, describe and delete are driven by ``RESOURCE_TABLE``: one row per
resource kind naming the boto3 operations, response keys and id filter. The
handful of operations that do not fit the create/describe/delete shape
(attachments, associations, routes, security group rules) are plain methods.
"""

# Standard library imports
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional

# Local imports
from ..consts import (
    CAPA_INSTANCE_TAG_PREFIX,
    CLUSTER_TAG_PREFIX,
    CLUSTER_TAG_VALUE,
    INTERNAL_ELB_ROLE_TAG,
    NAME_TAG,
    PUBLIC_ELB_ROLE_TAG,
    ROLE_TAG_VALUE,
)
from ..models.aws_models import SubnetType
from ..utils.aws_client_factory import get_aws_client
from ..utils.logger import get_logger

logger = get_logger(__name__)

Filters = List[Dict[str, Any]]


@dataclass(frozen=True)
class ResourceOps:
    """How to create, describe and delete one EC2 resource kind."""

    kind: str
    create_op: str
    create_key: Optional[str]
    id_key: str
    describe_op: str
    describe_key: str
    id_filter: str
    delete_op: str
    filter_param: str = "Filters"


RESOURCE_TABLE: Dict[str, ResourceOps] = {
    "vpc": ResourceOps(
        kind="vpc",
        create_op="create_vpc",
        create_key="Vpc",
        id_key="VpcId",
        describe_op="describe_vpcs",
        describe_key="Vpcs",
        id_filter="vpc-id",
        delete_op="delete_vpc",
    ),
    "subnet": ResourceOps(
        kind="subnet",
        create_op="create_subnet",
        create_key="Subnet",
        id_key="SubnetId",
        describe_op="describe_subnets",
        describe_key="Subnets",
        id_filter="subnet-id",
        delete_op="delete_subnet",
    ),
    "elastic-ip": ResourceOps(
        kind="elastic-ip",
        create_op="allocate_address",
        create_key=None,
        id_key="AllocationId",
        describe_op="describe_addresses",
        describe_key="Addresses",
        id_filter="allocation-id",
        delete_op="release_address",
    ),
    "natgateway": ResourceOps(
        kind="natgateway",
        create_op="create_nat_gateway",
        create_key="NatGateway",
        id_key="NatGatewayId",
        describe_op="describe_nat_gateways",
        describe_key="NatGateways",
        id_filter="nat-gateway-id",
        delete_op="delete_nat_gateway",
        filter_param="Filter",
    ),
    "internet-gateway": ResourceOps(
        kind="internet-gateway",
        create_op="create_internet_gateway",
        create_key="InternetGateway",
        id_key="InternetGatewayId",
        describe_op="describe_internet_gateways",
        describe_key="InternetGateways",
        id_filter="internet-gateway-id",
        delete_op="delete_internet_gateway",
    ),
    "route-table": ResourceOps(
        kind="route-table",
        create_op="create_route_table",
        create_key="RouteTable",
        id_key="RouteTableId",
        describe_op="describe_route_tables",
        describe_key="RouteTables",
        id_filter="route-table-id",
        delete_op="delete_route_table",
    ),
    "security-group": ResourceOps(
        kind="security-group",
        create_op="create_security_group",
        create_key=None,
        id_key="GroupId",
        describe_op="describe_security_groups",
        describe_key="SecurityGroups",
        id_filter="group-id",
        delete_op="delete_security_group",
    ),
    "vpc-peering-connection": ResourceOps(
        kind="vpc-peering-connection",
        create_op="create_vpc_peering_connection",
        create_key="VpcPeeringConnection",
        id_key="VpcPeeringConnectionId",
        describe_op="describe_vpc_peering_connections",
        describe_key="VpcPeeringConnections",
        id_filter="vpc-peering-connection-id",
        delete_op="delete_vpc_peering_connection",
    ),
}


def name_filter(name: str) -> Dict[str, Any]:
    return {"Name": f"tag:{NAME_TAG}", "Values": [name]}


def subnet_tags(cluster_name: str, subnet_type: SubnetType) -> Dict[str, str]:
    """Tags a load balancer controller uses to discover cluster subnets."""
    tags = {
        NAME_TAG: f"{cluster_name}-subnet-{SubnetType(subnet_type).value}",
        f"{CLUSTER_TAG_PREFIX}{cluster_name}": CLUSTER_TAG_VALUE,
    }
    if SubnetType(subnet_type) is SubnetType.PUBLIC:
        tags[PUBLIC_ELB_ROLE_TAG] = ROLE_TAG_VALUE
    else:
        tags[INTERNAL_ELB_ROLE_TAG] = ROLE_TAG_VALUE
    return tags


def tag_value(resource: Dict[str, Any], key: str) -> Optional[str]:
    for tag in resource.get("Tags", []) or []:
        if tag.get("Key") == key:
            return tag.get("Value")
    return None


class EC2ResourceAPI:
    """Thin, table-driven wrapper over a boto3 EC2 client.

    Provider errors (``botocore.exceptions.ClientError``) propagate to the
    caller, which decides between hard failure and best-effort handling.
    """

    def __init__(self, client=None, region: Optional[str] = None) -> None:
        self.client = client or get_aws_client("ec2", region)

    # -- generic table-driven operations ---------------------------------

    def _call(self, op: str, **params) -> Dict[str, Any]:
        return getattr(self.client, op)(**params)

    def _drain(self, op: str, result_key: str, **params) -> List[Dict[str, Any]]:
        """Run a describe call, following every page when the operation is paginated."""
        if not self.client.can_paginate(op):
            return list(self._call(op, **params).get(result_key) or [])
        items: List[Dict[str, Any]] = []
        for page in self.client.get_paginator(op).paginate(**params):
            items.extend(page.get(result_key) or [])
        return items

    def create(self, kind: str, name: str, tags: Optional[Dict[str, str]] = None, **params) -> Dict[str, Any]:
        """Create a resource tagged with ``Name`` plus any extra tags; return its record."""
        ops = RESOURCE_TABLE[kind]
        all_tags = {NAME_TAG: name}
        all_tags.update(tags or {})
        params["TagSpecifications"] = [
            {"ResourceType": ops.kind, "Tags": [{"Key": k, "Value": v} for k, v in all_tags.items()]}
        ]
        response = self._call(ops.create_op, **params)
        record = response if ops.create_key is None else response[ops.create_key]
        logger.info(f"Created {kind} {record.get(ops.id_key)} ({name})")
        return record

    def list(self, kind: str, filters: Optional[Filters] = None) -> List[Dict[str, Any]]:
        ops = RESOURCE_TABLE[kind]
        params = {ops.filter_param: filters} if filters else {}
        return self._drain(ops.describe_op, ops.describe_key, **params)

    def get(self, kind: str, resource_id: str) -> Optional[Dict[str, Any]]:
        """Describe one resource by id; None when the provider lists nothing."""
        ops = RESOURCE_TABLE[kind]
        found = self.list(kind, [{"Name": ops.id_filter, "Values": [resource_id]}])
        return found[0] if found else None

    def get_by_name(self, kind: str, name: str) -> Optional[Dict[str, Any]]:
        """Look a resource up through its Name tag, for ids not known locally."""
        found = self.list(kind, [name_filter(name)])
        return found[0] if found else None

    def get_state(self, kind: str, resource_id: str, state_key: str = "State") -> Optional[str]:
        record = self.get(kind, resource_id)
        return record.get(state_key) if record else None

    def delete(self, kind: str, resource_id: str) -> None:
        ops = RESOURCE_TABLE[kind]
        self._call(ops.delete_op, **{ops.id_key: resource_id})
        logger.info(f"Deleted {kind} {resource_id}")

    # -- resource-specific creates ----------------------------------------

    def create_vpc(self, name: str, cidr_block: str) -> Dict[str, Any]:
        return self.create("vpc", name, CidrBlock=cidr_block)

    def create_subnet(
        self, cluster_name: str, cidr_block: str, availability_zone: str, vpc_id: str, subnet_type: SubnetType
    ) -> Dict[str, Any]:
        tags = subnet_tags(cluster_name, subnet_type)
        params: Dict[str, Any] = {"CidrBlock": cidr_block, "VpcId": vpc_id}
        if availability_zone:
            params["AvailabilityZone"] = availability_zone
        return self.create("subnet", tags.pop(NAME_TAG), tags=tags, **params)

    def allocate_address(self, name: str) -> Dict[str, Any]:
        return self.create("elastic-ip", name, Domain="vpc")

    def create_nat_gateway(
        self, name: str, subnet_id: str, allocation_id: str = "", connectivity_type: str = ""
    ) -> Dict[str, Any]:
        params: Dict[str, Any] = {"SubnetId": subnet_id}
        if connectivity_type:
            params["ConnectivityType"] = connectivity_type
        if allocation_id:
            params["AllocationId"] = allocation_id
        return self.create("natgateway", name, **params)

    def create_internet_gateway(self, name: str) -> Dict[str, Any]:
        return self.create("internet-gateway", name)

    def create_route_table(self, name: str, vpc_id: str) -> Dict[str, Any]:
        return self.create("route-table", name, VpcId=vpc_id)

    def create_security_group(self, name: str, description: str, vpc_id: str) -> Dict[str, Any]:
        return self.create("security-group", name, GroupName=name, Description=description, VpcId=vpc_id)

    def create_vpc_peering_connection(self, name: str, vpc_id: str, peer_vpc_id: str) -> Dict[str, Any]:
        return self.create("vpc-peering-connection", name, VpcId=vpc_id, PeerVpcId=peer_vpc_id)

    # -- attachments, associations and routes -------------------------------

    def attach_internet_gateway(self, gateway_id: str, vpc_id: str) -> None:
        self.client.attach_internet_gateway(InternetGatewayId=gateway_id, VpcId=vpc_id)
        logger.info(f"Attached internet-gateway {gateway_id} to {vpc_id}")

    def detach_internet_gateway(self, gateway_id: str, vpc_id: str) -> None:
        self.client.detach_internet_gateway(InternetGatewayId=gateway_id, VpcId=vpc_id)
        logger.info(f"Detached internet-gateway {gateway_id} from {vpc_id}")

    def associate_route_table(self, route_table_id: str, subnet_id: str) -> str:
        response = self.client.associate_route_table(RouteTableId=route_table_id, SubnetId=subnet_id)
        association_id = response["AssociationId"]
        logger.info(f"Associated route-table {route_table_id} with {subnet_id} ({association_id})")
        return association_id

    def disassociate_route_table(self, association_id: str) -> None:
        self.client.disassociate_route_table(AssociationId=association_id)
        logger.info(f"Removed route-table association {association_id}")

    def create_route(
        self,
        route_table_id: str,
        destination_cidr: str,
        nat_gateway_id: Optional[str] = None,
        gateway_id: Optional[str] = None,
        peering_connection_id: Optional[str] = None,
    ) -> bool:
        params: Dict[str, Any] = {"RouteTableId": route_table_id, "DestinationCidrBlock": destination_cidr}
        if nat_gateway_id:
            params["NatGatewayId"] = nat_gateway_id
        if gateway_id:
            params["GatewayId"] = gateway_id
        if peering_connection_id:
            params["VpcPeeringConnectionId"] = peering_connection_id
        response = self.client.create_route(**params)
        created = bool(response.get("Return", False))
        logger.info(f"Route {destination_cidr} in {route_table_id}: {'created' if created else 'rejected'}")
        return created

    def delete_route(self, route_table_id: str, destination_cidr: str) -> None:
        self.client.delete_route(RouteTableId=route_table_id, DestinationCidrBlock=destination_cidr)

    def accept_vpc_peering_connection(self, peering_connection_id: str) -> Dict[str, Any]:
        response = self.client.accept_vpc_peering_connection(VpcPeeringConnectionId=peering_connection_id)
        return response["VpcPeeringConnection"]

    # -- security group rules ----------------------------------------------

    def authorize_security_group_rule(
        self,
        group_id: str,
        direction: str,
        cidr: str,
        protocol: str,
        from_port: int,
        to_port: int,
        description: str = "",
    ) -> bool:
        """Add an ingress or egress rule; direction is 'ingress' or 'egress'."""
        ip_range: Dict[str, str] = {"CidrIp": cidr}
        if description:
            ip_range["Description"] = description
        permission = {"IpProtocol": protocol, "FromPort": from_port, "ToPort": to_port, "IpRanges": [ip_range]}
        if direction == "ingress":
            response = self.client.authorize_security_group_ingress(GroupId=group_id, IpPermissions=[permission])
        elif direction == "egress":
            response = self.client.authorize_security_group_egress(GroupId=group_id, IpPermissions=[permission])
        else:
            raise ValueError(f"Unknown security group rule direction: {direction}")
        return bool(response.get("Return", False))

    def revoke_security_group_rule(self, group_id: str, rule_id: str, direction: str) -> None:
        if direction == "ingress":
            self.client.revoke_security_group_ingress(GroupId=group_id, SecurityGroupRuleIds=[rule_id])
        elif direction == "egress":
            self.client.revoke_security_group_egress(GroupId=group_id, SecurityGroupRuleIds=[rule_id])
        else:
            raise ValueError(f"Unknown security group rule direction: {direction}")

    def list_security_group_rules(self, group_id: str) -> List[Dict[str, Any]]:
        return self._drain(
            "describe_security_group_rules",
            "SecurityGroupRules",
            Filters=[{"Name": "group-id", "Values": [group_id]}],
        )

    # -- listings -------------------------------------------------------------

    def list_vpc_route_tables(self, vpc_id: str) -> List[Dict[str, Any]]:
        return self.list("route-table", [{"Name": "vpc-id", "Values": [vpc_id]}])

    def list_instances(self, filters: Optional[Filters] = None) -> List[Dict[str, Any]]:
        params = {"Filters": filters} if filters else {}
        reservations = self._drain("describe_instances", "Reservations", **params)
        return [instance for r in reservations for instance in r.get("Instances", [])]

    def list_cluster_instances(self, cluster_name: str) -> List[Dict[str, Any]]:
        return self.list_instances([{"Name": "tag-key", "Values": [f"{CAPA_INSTANCE_TAG_PREFIX}{cluster_name}"]}])

    def list_running_instances(self) -> List[Dict[str, str]]:
        """Named running instances as ``{"name", "instance_id"}`` pairs."""
        instances = self.list_instances([{"Name": "instance-state-name", "Values": ["running"]}])
        named = []
        for instance in instances:
            name = tag_value(instance, NAME_TAG)
            if name:
                named.append({"name": name, "instance_id": instance["InstanceId"]})
        return named

    def instance_states(self, instances: Iterable[Dict[str, Any]]) -> List[str]:
        return [i.get("State", {}).get("Name") for i in instances]
