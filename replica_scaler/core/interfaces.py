"""Abstract interfaces for replica-scaler backends.

Core logic depends only on these protocols, never on cloud-specific SDKs like
boto3. To target another control plane, implement these protocols and wire
them up in a thin handler layer.
"""

from __future__ import annotations

from typing import Protocol

from replica_scaler.core.models import ReplicaTopology


class ReplicaLifecycleClient(Protocol):
    """Create, delete and describe read replicas of a primary instance.

    Implementations raise the types in ``replica_scaler.core.errors``.
    Mutations are asynchronous: returning means the request was accepted.
    """

    def describe(self, primary_identifier: str) -> ReplicaTopology:
        """Return the live replica set of a primary.

        Raises PrimaryNotFound if the primary does not exist.
        """
        ...

    def create_replica(
        self,
        source_identifier: str,
        identifier: str,
        instance_class: str,
        placement_hint: str = "",
        tags: dict[str, str] | None = None,
    ) -> None:
        """Request a new read replica.

        Raises Conflict if an instance with that identifier already exists.
        """
        ...

    def delete_replica(self, identifier: str, tags: dict[str, str] | None = None) -> None:
        """Request deletion of a replica, tagging it first when tags are given.

        Raises ReplicaNotFound if it is gone, Conflict if already deleting.
        """
        ...


class AlertPublisher(Protocol):
    """Deliver failed-invocation records to operators."""

    def publish(self, subject: str, record: dict) -> None:
        ...
