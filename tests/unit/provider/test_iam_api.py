from unittest.mock import MagicMock

import pytest
from botocore.exceptions import ClientError, EndpointConnectionError

from awslabs.e2e_infra_orchestrator.provider.iam_api import IAMResourceAPI


@pytest.fixture
def iam_client():
    client = MagicMock()
    paginators = {}

    def get_paginator(name):
        return paginators.setdefault(name, MagicMock())

    client.get_paginator.side_effect = get_paginator
    client.paginators = paginators
    return client


@pytest.fixture
def api(iam_client):
    return IAMResourceAPI(client=iam_client)


def set_pages(client, name, pages):
    client.get_paginator(name).paginate.return_value = pages


def test_find_policy_arn_searches_every_page(api, iam_client):
    set_pages(
        iam_client,
        "list_policies",
        [
            {"Policies": [{"PolicyName": "other", "Arn": "arn:aws:iam::1:policy/other"}]},
            {"Policies": [{"PolicyName": "wanted", "Arn": "arn:aws:iam::1:policy/wanted"}]},
        ],
    )
    assert api.find_policy_arn("wanted") == "arn:aws:iam::1:policy/wanted"
    assert api.find_policy_arn("missing") is None


def test_get_policy_arn_uses_local_scope(api, iam_client):
    set_pages(iam_client, "list_policies", [{"Policies": []}])
    assert api.get_policy_arn("missing") == ""
    iam_client.paginators["list_policies"].paginate.assert_called_with(Scope="Local")


def test_delete_role_best_effort_detaches_policies_first(api, iam_client):
    set_pages(
        iam_client,
        "list_attached_role_policies",
        [{"AttachedPolicies": [{"PolicyArn": "arn:aws:iam::1:policy/a"}, {"PolicyArn": "arn:aws:iam::1:policy/b"}]}],
    )
    assert api.delete_role_best_effort("multi-tenancy-role") is True
    assert iam_client.detach_role_policy.call_count == 2
    iam_client.delete_role.assert_called_once_with(RoleName="multi-tenancy-role")


def test_delete_role_best_effort_missing_role(api, iam_client, make_error):
    iam_client.get_role.side_effect = make_error("NoSuchEntity")
    assert api.delete_role_best_effort("multi-tenancy-role") is True
    iam_client.delete_role.assert_not_called()


def test_delete_role_best_effort_swallows_failures(api, iam_client, make_error):
    set_pages(iam_client, "list_attached_role_policies", [{"AttachedPolicies": []}])
    iam_client.delete_role.side_effect = make_error("DeleteConflict")
    assert api.delete_role_best_effort("multi-tenancy-role") is False


def test_delete_role_best_effort_swallows_connection_errors(api, iam_client):
    iam_client.get_role.side_effect = EndpointConnectionError(endpoint_url="https://iam.amazonaws.com")
    assert api.delete_role_best_effort("multi-tenancy-role") is False


def test_role_exists_propagates_unexpected_errors(api, iam_client, make_error):
    iam_client.get_role.side_effect = make_error("AccessDenied")
    with pytest.raises(ClientError):
        api.role_exists("x")


def test_delete_service_linked_role(api, iam_client, make_error):
    iam_client.delete_service_linked_role.return_value = {"DeletionTaskId": "task-1"}
    assert api.delete_service_linked_role("AWSServiceRoleForEC2Spot") == "task-1"
    iam_client.delete_service_linked_role.side_effect = make_error("NoSuchEntity")
    assert api.delete_service_linked_role("AWSServiceRoleForEC2Spot") is None


def test_access_keys(api, iam_client):
    set_pages(iam_client, "list_access_keys", [{"AccessKeyMetadata": [{"AccessKeyId": "k1"}]}])
    iam_client.create_access_key.return_value = {
        "AccessKey": {"AccessKeyId": "k2", "SecretAccessKey": "s2", "UserName": "bootstrapper"}
    }
    assert api.list_access_keys("bootstrapper") == [{"AccessKeyId": "k1"}]
    assert api.create_access_key("bootstrapper") == {"AccessKeyId": "k2", "SecretAccessKey": "s2"}
