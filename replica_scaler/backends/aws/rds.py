"""Amazon RDS lifecycle client for read replicas."""

from __future__ import annotations

import logging
from contextlib import contextmanager

import boto3
from botocore.config import Config
from botocore.exceptions import (
    BotoCoreError,
    ClientError,
    ConnectionClosedError,
    ConnectTimeoutError,
    EndpointConnectionError,
    ReadTimeoutError,
)

from replica_scaler.core.errors import (
    Conflict,
    InvalidConfiguration,
    PermissionDenied,
    PrimaryNotFound,
    RateLimited,
    ReplicaNotFound,
    TransientControlPlaneError,
)
from replica_scaler.core.models import Replica, ReplicaTopology

logger = logging.getLogger(__name__)

THROTTLING_CODES = {
    "Throttling",
    "ThrottlingException",
    "RequestLimitExceeded",
    "TooManyRequestsException",
    "RequestThrottled",
}
NOT_FOUND_CODES = {"DBInstanceNotFound", "DBInstanceNotFoundFault"}
ALREADY_EXISTS_CODES = {"DBInstanceAlreadyExists", "DBInstanceAlreadyExistsFault"}
INVALID_STATE_CODES = {"InvalidDBInstanceState", "InvalidDBInstanceStateFault"}
PERMISSION_CODES = {
    "AccessDenied",
    "AccessDeniedException",
    "UnauthorizedOperation",
    "AuthFailure",
    "InvalidClientTokenId",
    "ExpiredToken",
    "ExpiredTokenException",
    "UnrecognizedClientException",
}
# The source is busy (e.g. modifying or backing up) or the AZ is short on capacity.
TRANSIENT_CODES = {"InsufficientDBInstanceCapacity", "InsufficientDBInstanceCapacityFault"}

CONNECTION_ERRORS = (
    EndpointConnectionError,
    ConnectTimeoutError,
    ReadTimeoutError,
    ConnectionClosedError,
)


def _tag_list(tags: dict[str, str] | None) -> list[dict]:
    return [{"Key": k, "Value": v} for k, v in (tags or {}).items()]


class RDSReplicaLifecycleClient:
    def __init__(
        self,
        call_timeout: float = 10.0,
        endpoint_url: str | None = None,
        region_name: str | None = None,
        client=None,
    ):
        if client is None:
            kwargs = {}
            if endpoint_url:
                kwargs["endpoint_url"] = endpoint_url
            if region_name:
                kwargs["region_name"] = region_name
            # Single attempt per call: retries are owned by the controller's budget.
            config = Config(
                connect_timeout=call_timeout,
                read_timeout=call_timeout,
                retries={"max_attempts": 1, "mode": "standard"},
            )
            client = boto3.client("rds", config=config, **kwargs)
        self._rds = client

    # --- Reads ---

    def describe(self, primary_identifier: str) -> ReplicaTopology:
        with _translated(f"describe {primary_identifier}", not_found=PrimaryNotFound):
            resp = self._rds.describe_db_instances(DBInstanceIdentifier=primary_identifier)
            primary = resp["DBInstances"][0]
            replica_ids = [
                rid
                for rid in primary.get("ReadReplicaDBInstanceIdentifiers", [])
                if not rid.startswith("arn:")
            ]
            replicas = self._describe_replicas(replica_ids) if replica_ids else []

        return ReplicaTopology.build(primary_identifier, replicas)

    def _describe_replicas(self, identifiers: list[str]) -> list[Replica]:
        replicas = []
        paginator = self._rds.get_paginator("describe_db_instances")
        pages = paginator.paginate(Filters=[{"Name": "db-instance-id", "Values": identifiers}])
        for page in pages:
            for inst in page.get("DBInstances", []):
                replicas.append(
                    Replica(
                        identifier=inst["DBInstanceIdentifier"],
                        created_at=inst.get("InstanceCreateTime"),
                        status=inst.get("DBInstanceStatus", ""),
                        tags={t["Key"]: t["Value"] for t in inst.get("TagList", [])},
                        arn=inst.get("DBInstanceArn", ""),
                    )
                )

        missing = set(identifiers) - {r.identifier for r in replicas}
        if missing:
            # Listed on the primary but already gone.
            logger.info("Replicas no longer describable: %s", ", ".join(sorted(missing)))
        return replicas

    # --- Mutations ---

    def create_replica(
        self,
        source_identifier: str,
        identifier: str,
        instance_class: str,
        placement_hint: str = "",
        tags: dict[str, str] | None = None,
    ) -> None:
        kwargs = {
            "DBInstanceIdentifier": identifier,
            "SourceDBInstanceIdentifier": source_identifier,
            "DBInstanceClass": instance_class,
            "Tags": _tag_list(tags),
        }
        if placement_hint:
            kwargs["AvailabilityZone"] = placement_hint

        with _translated(
            f"create {identifier}",
            not_found=PrimaryNotFound,
            already_exists=Conflict,
            invalid_state=TransientControlPlaneError,
        ):
            self._rds.create_db_instance_read_replica(**kwargs)

    def delete_replica(self, identifier: str, tags: dict[str, str] | None = None) -> None:
        # InvalidDBInstanceState here means the replica is busy (backing-up,
        # modifying, ...) and the delete was rejected, so it is retried.
        with _translated(
            f"delete {identifier}",
            not_found=ReplicaNotFound,
            invalid_state=TransientControlPlaneError,
        ):
            resp = self._rds.describe_db_instances(DBInstanceIdentifier=identifier)
            target = resp["DBInstances"][0]
            if target.get("DBInstanceStatus") == "deleting":
                raise Conflict(f"delete {identifier}: already deleting")
            if tags:
                self._rds.add_tags_to_resource(
                    ResourceName=target["DBInstanceArn"], Tags=_tag_list(tags)
                )
            self._rds.delete_db_instance(
                DBInstanceIdentifier=identifier,
                SkipFinalSnapshot=True,
                DeleteAutomatedBackups=True,
            )


@contextmanager
def _translated(
    operation: str,
    not_found=PrimaryNotFound,
    already_exists=Conflict,
    invalid_state=Conflict,
):
    """Re-raise botocore errors as replica_scaler.core.errors types."""
    try:
        yield
    except ClientError as exc:
        error = exc.response.get("Error", {})
        code = error.get("Code", "")
        message = f"{operation}: {code}: {error.get('Message', '')}"
        status = exc.response.get("ResponseMetadata", {}).get("HTTPStatusCode", 0)

        if code in THROTTLING_CODES:
            raise RateLimited(message) from exc
        if code in NOT_FOUND_CODES:
            raise not_found(message) from exc
        if code in ALREADY_EXISTS_CODES:
            raise already_exists(message) from exc
        if code in INVALID_STATE_CODES:
            raise invalid_state(message) from exc
        if code in PERMISSION_CODES:
            raise PermissionDenied(message) from exc
        if code in TRANSIENT_CODES or status >= 500:
            raise TransientControlPlaneError(message) from exc
        raise InvalidConfiguration(message) from exc
    except CONNECTION_ERRORS as exc:
        raise TransientControlPlaneError(f"{operation}: {exc}") from exc
    except BotoCoreError as exc:
        # Credentials, parameter validation and similar local failures.
        raise InvalidConfiguration(f"{operation}: {exc}") from exc
