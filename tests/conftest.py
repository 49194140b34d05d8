"""Pytest configuration and shared fixtures for the E2E infrastructure orchestrator tests."""

from unittest.mock import MagicMock

import pytest
from botocore.exceptions import ClientError

from awslabs.e2e_infra_orchestrator.config.settings import InfraSettings, reset_settings
from awslabs.e2e_infra_orchestrator.models.aws_models import NetworkTopologySpec
from awslabs.e2e_infra_orchestrator.provider.ec2_api import EC2ResourceAPI
from awslabs.e2e_infra_orchestrator.utils.aws_client_factory import clear_client_cache


def client_error(code, message="error", operation="Operation"):
    """Build a botocore ClientError with the given error code."""
    return ClientError({"Error": {"Code": code, "Message": message}}, operation)


class FakeClock:
    """Records sleeps instead of sleeping."""

    def __init__(self):
        self.now = 0.0
        self.sleeps = []

    def sleep(self, seconds):
        self.sleeps.append(seconds)
        self.now += seconds


@pytest.fixture(autouse=True)
def isolated_environment(monkeypatch):
    """Fake credentials and fresh settings/client caches for every test."""
    monkeypatch.setenv("AWS_ACCESS_KEY_ID", "testing")
    monkeypatch.setenv("AWS_SECRET_ACCESS_KEY", "testing")  # pragma: allowlist secret
    monkeypatch.setenv("AWS_SECURITY_TOKEN", "testing")
    monkeypatch.setenv("AWS_SESSION_TOKEN", "testing")
    monkeypatch.setenv("AWS_DEFAULT_REGION", "us-west-2")
    for name in ("E2E_INFRA_AWS_PROFILE", "E2E_INFRA_DEFAULT_REGION", "E2E_INFRA_LOG_LEVEL"):
        monkeypatch.delenv(name, raising=False)
    reset_settings()
    clear_client_cache()
    yield
    reset_settings()
    clear_client_cache()


@pytest.fixture
def fake_clock():
    return FakeClock()


@pytest.fixture
def settings():
    return InfraSettings(
        poll_interval_seconds=1,
        vpc_wait_timeout=30,
        nat_gateway_timeout=180,
        igw_detach_timeout=60,
    )


@pytest.fixture
def topology_spec():
    return NetworkTopologySpec(
        cluster_name="e2e-test",
        vpc_cidr="10.0.0.0/16",
        public_subnet_cidr="10.0.0.0/24",
        private_subnet_cidr="10.0.1.0/24",
        availability_zone="us-west-2a",
    )


@pytest.fixture
def mock_ec2_api():
    """EC2ResourceAPI double whose create calls return plausible records."""
    api = MagicMock(spec=EC2ResourceAPI)
    api.create_vpc.return_value = {"VpcId": "vpc-1", "State": "pending"}
    api.create_subnet.side_effect = lambda cluster, cidr, az, vpc_id, subnet_type: {
        "SubnetId": f"subnet-{subnet_type.value}",
        "State": "available",
        "VpcId": vpc_id,
    }
    api.create_internet_gateway.return_value = {"InternetGatewayId": "igw-1"}
    api.allocate_address.return_value = {"AllocationId": "eipalloc-1", "PublicIp": "198.51.100.1"}
    api.create_nat_gateway.return_value = {"NatGatewayId": "nat-1", "State": "pending"}
    api.create_route_table.side_effect = [{"RouteTableId": "rtb-public"}, {"RouteTableId": "rtb-private"}]
    api.associate_route_table.side_effect = lambda rt, subnet: f"rtbassoc-{rt}"
    api.create_route.return_value = True

    records = {
        ("vpc", "vpc-1"): {"VpcId": "vpc-1", "State": "available"},
        ("elastic-ip", "eipalloc-1"): {"AllocationId": "eipalloc-1", "PublicIp": "198.51.100.1"},
        ("natgateway", "nat-1"): {"NatGatewayId": "nat-1", "State": "available"},
        ("route-table", "rtb-public"): {
            "RouteTableId": "rtb-public",
            "Associations": [{"RouteTableAssociationId": "rtbassoc-rtb-public", "Main": False}],
        },
        ("route-table", "rtb-private"): {
            "RouteTableId": "rtb-private",
            "Associations": [{"RouteTableAssociationId": "rtbassoc-rtb-private", "Main": False}],
        },
    }
    api.get.side_effect = lambda kind, resource_id: records.get((kind, resource_id))
    api.records = records
    return api


@pytest.fixture
def mock_cfn_client():
    client = MagicMock()
    client.describe_stacks.return_value = {"Stacks": []}
    client.describe_stack_resources.return_value = {"StackResources": []}
    return client


@pytest.fixture
def mock_iam_api():
    api = MagicMock()
    api.delete_role_best_effort.return_value = True
    api.find_policy_arn.return_value = None
    return api


def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line("markers", "unit: Unit tests for individual components")
    config.addinivalue_line("markers", "integration: Integration tests that span multiple components")
    config.addinivalue_line("markers", "slow: Tests that may take longer due to polling")


@pytest.fixture
def make_error():
    """Factory for botocore ClientErrors: ``make_error("NoSuchEntity")``."""
    return client_error
