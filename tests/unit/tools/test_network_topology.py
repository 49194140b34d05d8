import pytest
from botocore.exceptions import EndpointConnectionError

from awslabs.e2e_infra_orchestrator.errors import ProvisioningError
from awslabs.e2e_infra_orchestrator.models.aws_models import SubnetType
from awslabs.e2e_infra_orchestrator.tools.network_topology import NetworkTopologyOrchestrator

TEARDOWN_CALLS = ("delete", "disassociate_route_table", "detach_internet_gateway")


@pytest.fixture
def orchestrator(topology_spec, mock_ec2_api, settings, fake_clock):
    return NetworkTopologyOrchestrator(topology_spec, ec2=mock_ec2_api, settings=settings, sleep=fake_clock.sleep)


@pytest.fixture
def deleting_api(mock_ec2_api):
    """Deleting a resource removes it from the fake describe results."""
    mock_ec2_api.delete.side_effect = lambda kind, resource_id: mock_ec2_api.records.pop((kind, resource_id), None)
    return mock_ec2_api


def call_names(api):
    return [c[0] for c in api.method_calls]


def teardown_calls(api):
    return [(c[0], c[1]) for c in api.method_calls if c[0] in TEARDOWN_CALLS]


class TestCreateInfrastructure:
    def test_creates_resources_in_dependency_order(self, orchestrator, mock_ec2_api):
        orchestrator.create_infrastructure()

        creates = [
            name
            for name in call_names(mock_ec2_api)
            if name.startswith(("create", "allocate", "attach", "associate"))
        ]
        assert creates == [
            "create_vpc",
            "create_subnet",
            "create_subnet",
            "create_internet_gateway",
            "attach_internet_gateway",
            "allocate_address",
            "create_nat_gateway",
            "create_route_table",
            "associate_route_table",
            "create_route_table",
            "associate_route_table",
            "create_route",
            "create_route",
        ]

    def test_records_every_identifier(self, orchestrator):
        state = orchestrator.create_infrastructure()

        assert state.vpc_id == "vpc-1"
        assert state.vpc_state == "available"
        assert state.public_subnet_id == "subnet-public"
        assert state.private_subnet_id == "subnet-private"
        assert state.internet_gateway_id == "igw-1"
        assert state.internet_gateway_attached is True
        assert state.elastic_ip_allocation_id == "eipalloc-1"
        assert state.elastic_ip_public_ip == "198.51.100.1"
        assert state.nat_gateway_id == "nat-1"
        assert state.nat_gateway_state == "available"
        assert state.public_route_table_id == "rtb-public"
        assert state.private_route_table_id == "rtb-private"
        assert [rt.association_ids for rt in state.route_tables] == [
            ["rtbassoc-rtb-public"],
            ["rtbassoc-rtb-private"],
        ]

    def test_subnets_are_created_with_their_type(self, orchestrator, mock_ec2_api):
        orchestrator.create_infrastructure()
        calls = mock_ec2_api.create_subnet.call_args_list
        assert calls[0].args == ("e2e-test", "10.0.0.0/24", "us-west-2a", "vpc-1", SubnetType.PUBLIC)
        assert calls[1].args == ("e2e-test", "10.0.1.0/24", "us-west-2a", "vpc-1", SubnetType.PRIVATE)

    def test_nat_gateway_uses_elastic_ip_in_public_subnet(self, orchestrator, mock_ec2_api):
        orchestrator.create_infrastructure()
        mock_ec2_api.create_nat_gateway.assert_called_once_with(
            "e2e-test-nat", "subnet-public", allocation_id="eipalloc-1"
        )

    def test_default_routes(self, orchestrator, mock_ec2_api):
        orchestrator.create_infrastructure()
        routes = mock_ec2_api.create_route.call_args_list
        assert routes[0].args == ("rtb-public", "0.0.0.0/0")
        assert routes[0].kwargs == {"gateway_id": "igw-1"}
        assert routes[1].args == ("rtb-private", "0.0.0.0/0")
        assert routes[1].kwargs == {"nat_gateway_id": "nat-1"}

    def test_vpc_failure_aborts_sequence(self, orchestrator, mock_ec2_api, make_error):
        mock_ec2_api.create_vpc.side_effect = make_error("VpcLimitExceeded")

        with pytest.raises(ProvisioningError):
            orchestrator.create_infrastructure()

        assert orchestrator.state.vpc_id is None
        mock_ec2_api.create_subnet.assert_not_called()

    def test_subnet_failure_marks_state_failed(self, orchestrator, mock_ec2_api, make_error):
        def create_subnet(cluster, cidr, az, vpc_id, subnet_type):
            if subnet_type is SubnetType.PRIVATE:
                raise make_error("InvalidSubnet.Conflict")
            return {"SubnetId": "subnet-public", "State": "available"}

        mock_ec2_api.create_subnet.side_effect = create_subnet

        with pytest.raises(ProvisioningError):
            orchestrator.create_infrastructure()

        assert orchestrator.state.public_subnet_id == "subnet-public"
        assert orchestrator.state.private_subnet_id is None
        assert orchestrator.state.private_subnet_state == "failed"
        mock_ec2_api.create_internet_gateway.assert_not_called()

    def test_connection_error_on_hard_step_is_a_provisioning_error(self, orchestrator, mock_ec2_api):
        mock_ec2_api.allocate_address.side_effect = EndpointConnectionError(
            endpoint_url="https://ec2.us-west-2.amazonaws.com"
        )

        with pytest.raises(ProvisioningError) as exc_info:
            orchestrator.create_infrastructure()

        assert exc_info.value.operation == "allocate_address"
        assert orchestrator.state.internet_gateway_id == "igw-1"
        mock_ec2_api.create_nat_gateway.assert_not_called()

    def test_vpc_wait_is_best_effort(self, orchestrator, mock_ec2_api, fake_clock):
        mock_ec2_api.records[("vpc", "vpc-1")]["State"] = "pending"

        orchestrator.create_infrastructure()

        assert orchestrator.state.vpc_state == "pending"
        assert len(fake_clock.sleeps) == 30
        mock_ec2_api.create_internet_gateway.assert_called_once()

    def test_internet_gateway_attach_failure_is_flagged(self, orchestrator, mock_ec2_api, make_error):
        mock_ec2_api.attach_internet_gateway.side_effect = make_error("Resource.AlreadyAssociated")

        orchestrator.create_infrastructure()

        assert orchestrator.state.internet_gateway_id == "igw-1"
        assert orchestrator.state.internet_gateway_attached is False

    def test_elastic_ip_refetch_failure_keeps_allocation(self, orchestrator, mock_ec2_api, make_error):
        records = mock_ec2_api.records

        def get(kind, resource_id):
            if kind == "elastic-ip":
                raise make_error("RequestLimitExceeded")
            return records.get((kind, resource_id))

        mock_ec2_api.get.side_effect = get

        orchestrator.create_infrastructure()

        assert orchestrator.state.elastic_ip_allocation_id == "eipalloc-1"
        assert orchestrator.state.elastic_ip_public_ip == "198.51.100.1"

    def test_nat_gateway_timeout_is_logged_not_raised(self, orchestrator, mock_ec2_api, fake_clock):
        mock_ec2_api.records[("natgateway", "nat-1")]["State"] = "pending"

        orchestrator.create_infrastructure()

        assert orchestrator.state.nat_gateway_id == "nat-1"
        assert orchestrator.state.nat_gateway_state == "pending"
        assert len(fake_clock.sleeps) == 180

    def test_nat_gateway_subnet_falls_back_to_name_lookup(self, orchestrator, mock_ec2_api):
        orchestrator.state.elastic_ip_allocation_id = "eipalloc-1"
        mock_ec2_api.get_by_name.return_value = {"SubnetId": "subnet-found"}

        orchestrator.create_nat_gateway(SubnetType.PUBLIC)

        mock_ec2_api.get_by_name.assert_called_once_with("subnet", "e2e-test-subnet-public")
        assert mock_ec2_api.create_nat_gateway.call_args.args[1] == "subnet-found"

    def test_nat_gateway_without_subnet_raises(self, orchestrator, mock_ec2_api):
        orchestrator.state.elastic_ip_allocation_id = "eipalloc-1"
        mock_ec2_api.get_by_name.return_value = None

        with pytest.raises(ProvisioningError):
            orchestrator.create_nat_gateway(SubnetType.PUBLIC)
        mock_ec2_api.create_nat_gateway.assert_not_called()

    def test_route_table_association_failure(self, orchestrator, mock_ec2_api, make_error):
        mock_ec2_api.associate_route_table.side_effect = make_error("InvalidParameterValue")

        with pytest.raises(ProvisioningError):
            orchestrator.create_infrastructure()

        assert orchestrator.state.public_route_table_id is None
        assert [rt.resource_id for rt in orchestrator.state.route_tables] == ["rtb-public"]

    def test_rejected_default_route_raises(self, orchestrator, mock_ec2_api):
        mock_ec2_api.create_route.return_value = False

        with pytest.raises(ProvisioningError):
            orchestrator.create_infrastructure()

    def test_default_routes_need_an_internet_gateway(self, orchestrator):
        orchestrator.state.public_route_table_id = "rtb-public"
        orchestrator.state.private_route_table_id = "rtb-private"
        orchestrator.state.nat_gateway_id = "nat-1"

        with pytest.raises(ProvisioningError):
            orchestrator.create_default_routes()


class TestDeleteInfrastructure:
    def test_deletes_in_reverse_dependency_order(self, orchestrator, deleting_api):
        orchestrator.create_infrastructure()

        report = orchestrator.delete_infrastructure()

        assert report.ok
        assert teardown_calls(deleting_api) == [
            ("disassociate_route_table", ("rtbassoc-rtb-public",)),
            ("delete", ("route-table", "rtb-public")),
            ("disassociate_route_table", ("rtbassoc-rtb-private",)),
            ("delete", ("route-table", "rtb-private")),
            ("delete", ("natgateway", "nat-1")),
            ("delete", ("elastic-ip", "eipalloc-1")),
            ("detach_internet_gateway", ("igw-1", "vpc-1")),
            ("delete", ("internet-gateway", "igw-1")),
            ("delete", ("subnet", "subnet-private")),
            ("delete", ("subnet", "subnet-public")),
            ("delete", ("vpc", "vpc-1")),
        ]

    def test_clears_state_after_successful_teardown(self, orchestrator, deleting_api):
        orchestrator.create_infrastructure()
        orchestrator.delete_infrastructure()

        state = orchestrator.state
        assert state.vpc_id is None
        assert state.public_subnet_id is None
        assert state.private_subnet_id is None
        assert state.internet_gateway_id is None
        assert state.elastic_ip_allocation_id is None
        assert state.nat_gateway_id is None
        assert state.route_tables == []

    def test_second_teardown_is_a_no_op(self, orchestrator, deleting_api):
        orchestrator.create_infrastructure()
        orchestrator.delete_infrastructure()
        deleting_api.reset_mock()

        report = orchestrator.delete_infrastructure()

        assert report.ok
        assert report.steps == []
        assert teardown_calls(deleting_api) == []

    def test_nothing_created_means_nothing_deleted(self, orchestrator, mock_ec2_api):
        report = orchestrator.delete_infrastructure()

        assert report.ok
        assert teardown_calls(mock_ec2_api) == []
        assert "delete_vpc" in report.skipped

    def test_only_created_identifiers_are_deleted(self, orchestrator, deleting_api, make_error):
        deleting_api.create_nat_gateway.side_effect = make_error("NatGatewayLimitExceeded")
        with pytest.raises(ProvisioningError):
            orchestrator.create_infrastructure()

        orchestrator.delete_infrastructure()

        created = {"vpc-1", "subnet-public", "subnet-private", "igw-1", "eipalloc-1"}
        used = {args[-1] if name == "delete" else args[0] for name, args in teardown_calls(deleting_api)}
        assert used <= created
        assert ("delete", ("natgateway", "nat-1")) not in teardown_calls(deleting_api)

    def test_not_found_counts_as_deleted(self, orchestrator, mock_ec2_api, make_error):
        orchestrator.create_infrastructure()
        mock_ec2_api.delete.side_effect = make_error("InvalidSubnetID.NotFound")
        mock_ec2_api.disassociate_route_table.side_effect = make_error("InvalidAssociationID.NotFound")
        mock_ec2_api.detach_internet_gateway.side_effect = make_error("Gateway.NotAttached")
        mock_ec2_api.records.pop(("natgateway", "nat-1"))

        report = orchestrator.delete_infrastructure()

        assert report.ok
        assert orchestrator.state.vpc_id is None

    def test_failures_are_collected_and_teardown_continues(self, orchestrator, deleting_api, make_error):
        orchestrator.create_infrastructure()
        records = deleting_api.records

        def delete(kind, resource_id):
            if kind == "subnet":
                raise make_error("DependencyViolation", "subnet has dependencies")
            records.pop((kind, resource_id), None)

        deleting_api.delete.side_effect = delete

        report = orchestrator.delete_infrastructure()

        assert not report.ok
        assert report.failed_steps() == ["delete_private_subnet", "delete_public_subnet"]
        assert ("delete", ("vpc", "vpc-1")) in teardown_calls(deleting_api)
        assert orchestrator.state.public_subnet_id == "subnet-public"

    def test_connection_errors_do_not_abort_teardown(self, orchestrator, deleting_api):
        orchestrator.create_infrastructure()
        records = deleting_api.records

        def delete(kind, resource_id):
            if kind == "route-table":
                raise EndpointConnectionError(endpoint_url="https://ec2.us-west-2.amazonaws.com")
            records.pop((kind, resource_id), None)

        deleting_api.delete.side_effect = delete

        report = orchestrator.delete_infrastructure()

        assert report.failed_steps() == ["delete_route_table", "delete_route_table"]
        assert ("delete", ("natgateway", "nat-1")) in teardown_calls(deleting_api)
        assert ("delete", ("vpc", "vpc-1")) in teardown_calls(deleting_api)
        assert len(orchestrator.state.route_tables) == 2

    def test_nat_gateway_delete_wait_times_out(self, orchestrator, mock_ec2_api, fake_clock):
        orchestrator.create_infrastructure()
        fake_clock.sleeps.clear()

        report = orchestrator.delete_infrastructure()

        assert "wait_nat_gateway_deleted" in report.failed_steps()
        assert len(fake_clock.sleeps) == 180
        assert orchestrator.state.nat_gateway_id == "nat-1"
        assert ("delete", ("elastic-ip", "eipalloc-1")) in teardown_calls(mock_ec2_api)

    def test_internet_gateway_detach_is_retried(self, orchestrator, deleting_api, fake_clock, make_error):
        orchestrator.create_infrastructure()
        deleting_api.detach_internet_gateway.side_effect = [
            make_error("DependencyViolation"),
            make_error("DependencyViolation"),
            None,
        ]

        report = orchestrator.delete_infrastructure()

        assert report.ok
        assert deleting_api.detach_internet_gateway.call_count == 3
        assert fake_clock.sleeps == [1.0, 1.0]

    def test_internet_gateway_detach_gives_up(self, orchestrator, deleting_api, fake_clock, make_error):
        orchestrator.create_infrastructure()
        deleting_api.detach_internet_gateway.side_effect = make_error("DependencyViolation")

        report = orchestrator.delete_infrastructure()

        assert "detach_internet_gateway" in report.failed_steps()
        assert deleting_api.detach_internet_gateway.call_count == 60
        assert ("delete", ("internet-gateway", "igw-1")) in teardown_calls(deleting_api)


class TestExtras:
    def test_security_groups_are_created_and_deleted(self, orchestrator, deleting_api):
        deleting_api.create_security_group.return_value = {"GroupId": "sg-1"}
        deleting_api.authorize_security_group_rule.return_value = True
        orchestrator.create_infrastructure()

        orchestrator.add_security_group(
            "e2e-test-lb",
            "load balancer",
            [{"direction": "ingress", "cidr": "0.0.0.0/0", "protocol": "tcp", "from_port": 443, "to_port": 443}],
        )
        deleting_api.authorize_security_group_rule.assert_called_once_with(
            "sg-1", "ingress", "0.0.0.0/0", "tcp", 443, 443, ""
        )

        orchestrator.delete_infrastructure()
        calls = teardown_calls(deleting_api)
        assert calls.index(("delete", ("security-group", "sg-1"))) < calls.index(("delete", ("natgateway", "nat-1")))
        assert orchestrator.state.security_groups == []

    def test_security_group_needs_vpc(self, orchestrator):
        with pytest.raises(ProvisioningError):
            orchestrator.add_security_group("sg", "desc")

    def test_refresh_vpc_state(self, orchestrator, mock_ec2_api):
        assert orchestrator.refresh_vpc_state() is None
        orchestrator.create_vpc()
        assert orchestrator.refresh_vpc_state() == "available"

    def test_wait_for_instance_state(self, orchestrator, mock_ec2_api, fake_clock):
        mock_ec2_api.list_cluster_instances.return_value = [{"InstanceId": "i-1"}]
        mock_ec2_api.instance_states.side_effect = [["pending"], ["running"]]

        assert orchestrator.wait_for_instance_state(10, "running") is True
        mock_ec2_api.list_cluster_instances.assert_called_with("e2e-test")
        assert fake_clock.sleeps == [1.0]
