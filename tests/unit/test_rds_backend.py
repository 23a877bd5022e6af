"""Unit tests for the boto3 RDS adapter, using botocore's Stubber."""

from __future__ import annotations

from datetime import datetime, timezone

import boto3
import pytest
from botocore.exceptions import EndpointConnectionError, NoCredentialsError
from botocore.stub import Stubber

from replica_scaler.backends.aws import rds as rds_backend
from replica_scaler.backends.aws.rds import RDSReplicaLifecycleClient
from replica_scaler.core.errors import (
    Conflict,
    InvalidConfiguration,
    PermissionDenied,
    PrimaryNotFound,
    RateLimited,
    ReplicaNotFound,
    TransientControlPlaneError,
)

ARN = "arn:aws:rds:us-east-1:123456789012:db:orders-db-replica-1"


@pytest.fixture
def boto_rds():
    return boto3.client(
        "rds",
        region_name="us-east-1",
        aws_access_key_id="test",
        aws_secret_access_key="test",
    )


@pytest.fixture
def stubbed(boto_rds):
    with Stubber(boto_rds) as stubber:
        yield RDSReplicaLifecycleClient(client=boto_rds), stubber
        stubber.assert_no_pending_responses()


def _replica(identifier: str, created: datetime | None, status: str = "available", tags=None) -> dict:
    inst = {
        "DBInstanceIdentifier": identifier,
        "DBInstanceStatus": status,
        "DBInstanceArn": f"arn:aws:rds:us-east-1:123456789012:db:{identifier}",
        "ReadReplicaSourceDBInstanceIdentifier": "orders-db",
        "TagList": [{"Key": k, "Value": v} for k, v in (tags or {}).items()],
    }
    if created is not None:
        inst["InstanceCreateTime"] = created
    return inst


def test_describe_builds_topology_oldest_first(stubbed):
    client, stubber = stubbed
    stubber.add_response(
        "describe_db_instances",
        {
            "DBInstances": [
                {
                    "DBInstanceIdentifier": "orders-db",
                    "ReadReplicaDBInstanceIdentifiers": [
                        "orders-db-replica-2",
                        "orders-db-replica-1",
                        "arn:aws:rds:eu-west-1:123456789012:db:cross-region",
                    ],
                }
            ]
        },
        {"DBInstanceIdentifier": "orders-db"},
    )
    stubber.add_response(
        "describe_db_instances",
        {
            "DBInstances": [
                _replica("orders-db-replica-2", None, status="creating", tags={"k": "v"}),
                _replica("orders-db-replica-1", datetime(2024, 1, 1, tzinfo=timezone.utc)),
            ]
        },
        {
            "Filters": [
                {"Name": "db-instance-id", "Values": ["orders-db-replica-2", "orders-db-replica-1"]}
            ]
        },
    )

    topology = client.describe("orders-db")

    assert topology.primary_identifier == "orders-db"
    assert topology.replica_identifiers == ["orders-db-replica-1", "orders-db-replica-2"]
    newest = topology.get("orders-db-replica-2")
    assert newest.status == "creating"
    assert newest.tags == {"k": "v"}


def test_describe_without_replicas_makes_one_call(stubbed):
    client, stubber = stubbed
    stubber.add_response(
        "describe_db_instances",
        {"DBInstances": [{"DBInstanceIdentifier": "orders-db", "ReadReplicaDBInstanceIdentifiers": []}]},
        {"DBInstanceIdentifier": "orders-db"},
    )

    assert client.describe("orders-db").replicas == ()


def test_describe_missing_primary(stubbed):
    client, stubber = stubbed
    stubber.add_client_error(
        "describe_db_instances", service_error_code="DBInstanceNotFound", http_status_code=404
    )

    with pytest.raises(PrimaryNotFound):
        client.describe("ghost-db")


def test_create_sends_tags_and_placement(stubbed):
    client, stubber = stubbed
    stubber.add_response(
        "create_db_instance_read_replica",
        {"DBInstance": {"DBInstanceIdentifier": "orders-db-replica-2"}},
        {
            "DBInstanceIdentifier": "orders-db-replica-2",
            "SourceDBInstanceIdentifier": "orders-db",
            "DBInstanceClass": "db.r6g.large",
            "AvailabilityZone": "us-east-1a",
            "Tags": [{"Key": "replica-scaler:delivery-token", "Value": "msg-1"}],
        },
    )

    client.create_replica(
        "orders-db",
        "orders-db-replica-2",
        "db.r6g.large",
        "us-east-1a",
        {"replica-scaler:delivery-token": "msg-1"},
    )


@pytest.mark.parametrize(
    "code,status,expected",
    [
        ("DBInstanceAlreadyExists", 400, Conflict),
        ("Throttling", 400, RateLimited),
        ("AccessDenied", 403, PermissionDenied),
        ("InvalidParameterCombination", 400, InvalidConfiguration),
        ("InvalidDBInstanceState", 400, TransientControlPlaneError),
        ("InternalFailure", 500, TransientControlPlaneError),
    ],
)
def test_create_error_mapping(stubbed, code, status, expected):
    client, stubber = stubbed
    stubber.add_client_error(
        "create_db_instance_read_replica", service_error_code=code, http_status_code=status
    )

    with pytest.raises(expected):
        client.create_replica("orders-db", "orders-db-replica-2", "db.r6g.large")


def test_delete_tags_target_before_deleting(stubbed):
    client, stubber = stubbed
    stubber.add_response(
        "describe_db_instances",
        {"DBInstances": [_replica("orders-db-replica-1", datetime(2024, 1, 1, tzinfo=timezone.utc))]},
        {"DBInstanceIdentifier": "orders-db-replica-1"},
    )
    stubber.add_response(
        "add_tags_to_resource",
        {},
        {"ResourceName": ARN, "Tags": [{"Key": "replica-scaler:delivery-token", "Value": "msg-9"}]},
    )
    stubber.add_response(
        "delete_db_instance",
        {"DBInstance": {"DBInstanceIdentifier": "orders-db-replica-1", "DBInstanceStatus": "deleting"}},
        {
            "DBInstanceIdentifier": "orders-db-replica-1",
            "SkipFinalSnapshot": True,
            "DeleteAutomatedBackups": True,
        },
    )

    client.delete_replica("orders-db-replica-1", {"replica-scaler:delivery-token": "msg-9"})


def _describe_target(stubber, status: str) -> None:
    stubber.add_response(
        "describe_db_instances",
        {"DBInstances": [_replica("orders-db-replica-1", datetime(2024, 1, 1, tzinfo=timezone.utc), status)]},
        {"DBInstanceIdentifier": "orders-db-replica-1"},
    )


@pytest.mark.parametrize(
    "code,expected",
    [
        ("DBInstanceNotFound", ReplicaNotFound),
        # Busy (backing-up, modifying, ...): the delete was rejected, not done.
        ("InvalidDBInstanceState", TransientControlPlaneError),
    ],
)
def test_delete_error_mapping(stubbed, code, expected):
    client, stubber = stubbed
    _describe_target(stubber, "backing-up")
    stubber.add_client_error("delete_db_instance", service_error_code=code, http_status_code=400)

    with pytest.raises(expected):
        client.delete_replica("orders-db-replica-1")


def test_delete_of_replica_already_deleting_is_conflict(stubbed):
    client, stubber = stubbed
    _describe_target(stubber, "deleting")

    with pytest.raises(Conflict):
        client.delete_replica("orders-db-replica-1", {"replica-scaler:delivery-token": "msg-9"})


def test_delete_of_undescribable_replica_is_not_found(stubbed):
    client, stubber = stubbed
    stubber.add_client_error(
        "describe_db_instances", service_error_code="DBInstanceNotFound", http_status_code=404
    )

    with pytest.raises(ReplicaNotFound):
        client.delete_replica("orders-db-replica-1")


class _UnreachableRDS:
    def describe_db_instances(self, **kwargs):
        raise EndpointConnectionError(endpoint_url="https://rds.us-east-1.amazonaws.com")


class _NoCredentialsRDS:
    def describe_db_instances(self, **kwargs):
        raise NoCredentialsError()


def test_connection_errors_are_transient():
    client = RDSReplicaLifecycleClient(client=_UnreachableRDS())

    with pytest.raises(TransientControlPlaneError):
        client.describe("orders-db")


def test_missing_credentials_are_configuration_errors():
    client = RDSReplicaLifecycleClient(client=_NoCredentialsRDS())

    with pytest.raises(InvalidConfiguration):
        client.describe("orders-db")


def test_client_uses_call_timeout_and_single_attempt(monkeypatch):
    captured = {}

    def fake_client(service, **kwargs):
        captured["service"] = service
        captured.update(kwargs)
        return object()

    monkeypatch.setattr(rds_backend.boto3, "client", fake_client)

    RDSReplicaLifecycleClient(call_timeout=3.0, endpoint_url="http://localhost:4566")

    config = captured["config"]
    assert captured["service"] == "rds"
    assert captured["endpoint_url"] == "http://localhost:4566"
    assert config.connect_timeout == 3.0
    assert config.read_timeout == 3.0
    assert config.retries["max_attempts"] == 1
