"""In-memory control plane for testing."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

from replica_scaler.core.errors import (
    Conflict,
    PrimaryNotFound,
    ReplicaNotFound,
    TransientControlPlaneError,
)
from replica_scaler.core.models import Replica, ReplicaTopology

BASE_TIME = datetime(2024, 1, 1, tzinfo=timezone.utc)

# Statuses in which the control plane rejects a delete.
BUSY_STATUSES = frozenset({"backing-up", "creating", "modifying", "rebooting"})


class InMemoryReplicaLifecycleClient:
    """Simulates an asynchronous database control plane.

    Created replicas start in ``creating`` and deleted ones stay visible as
    ``deleting`` until converge() is called. Errors queued with fail_next()
    are raised by the next call to that operation.
    """

    def __init__(self):
        self._primaries: set[str] = set()
        self._replicas: dict[str, dict] = {}
        self._clock = 0
        self._failures: dict[str, list[Exception]] = {}
        self.created: list[dict] = []
        self.deleted: list[str] = []
        self.describe_calls = 0

    # --- Test setup ---

    def add_primary(self, identifier: str) -> None:
        self._primaries.add(identifier)

    def remove_primary(self, identifier: str) -> None:
        self._primaries.discard(identifier)

    def add_replica(
        self,
        primary_identifier: str,
        identifier: str,
        status: str = "available",
        tags: dict | None = None,
    ) -> None:
        """Register an existing replica; later calls produce newer replicas."""
        self._replicas[identifier] = {
            "identifier": identifier,
            "source": primary_identifier,
            "created_at": self._tick(),
            "status": status,
            "tags": dict(tags or {}),
        }

    def set_status(self, identifier: str, status: str) -> None:
        self._replicas[identifier]["status"] = status

    def fail_next(self, operation: str, *errors: Exception) -> None:
        self._failures.setdefault(operation, []).extend(errors)

    def converge(self) -> None:
        """Finish all in-flight creates and deletes."""
        for identifier, replica in list(self._replicas.items()):
            if replica["status"] == "creating":
                replica["status"] = "available"
            elif replica["status"] == "deleting":
                del self._replicas[identifier]

    def replica_ids(self, primary_identifier: str) -> list[str]:
        return [r.identifier for r in self.describe(primary_identifier).replicas]

    # --- ReplicaLifecycleClient ---

    def describe(self, primary_identifier: str) -> ReplicaTopology:
        self.describe_calls += 1
        self._maybe_fail("describe")
        if primary_identifier not in self._primaries:
            raise PrimaryNotFound(f"DB instance {primary_identifier} not found")
        replicas = [
            Replica(
                identifier=r["identifier"],
                created_at=r["created_at"],
                status=r["status"],
                tags=dict(r["tags"]),
                arn=f"arn:aws:rds:us-east-1:000000000000:db:{r['identifier']}",
            )
            for r in self._replicas.values()
            if r["source"] == primary_identifier
        ]
        return ReplicaTopology.build(primary_identifier, replicas)

    def create_replica(
        self,
        source_identifier: str,
        identifier: str,
        instance_class: str,
        placement_hint: str = "",
        tags: dict[str, str] | None = None,
    ) -> None:
        self._maybe_fail("create_replica")
        if source_identifier not in self._primaries:
            raise PrimaryNotFound(f"DB instance {source_identifier} not found")
        if identifier in self._replicas or identifier in self._primaries:
            raise Conflict(f"DB instance {identifier} already exists")
        self.add_replica(source_identifier, identifier, status="creating", tags=tags)
        self.created.append(
            {
                "identifier": identifier,
                "source": source_identifier,
                "instance_class": instance_class,
                "placement_hint": placement_hint,
                "tags": dict(tags or {}),
            }
        )

    def delete_replica(self, identifier: str, tags: dict[str, str] | None = None) -> None:
        self._maybe_fail("delete_replica")
        replica = self._replicas.get(identifier)
        if replica is None:
            raise ReplicaNotFound(f"DB instance {identifier} not found")
        if replica["status"] == "deleting":
            raise Conflict(f"DB instance {identifier} is already being deleted")
        # Tags land before the delete call, so they stick even if it is rejected.
        replica["tags"].update(tags or {})
        if replica["status"] in BUSY_STATUSES:
            raise TransientControlPlaneError(
                f"DB instance {identifier} is {replica['status']}; cannot delete"
            )
        replica["status"] = "deleting"
        self.deleted.append(identifier)

    # --- Internals ---

    def _tick(self) -> datetime:
        self._clock += 1
        return BASE_TIME + timedelta(minutes=self._clock)

    def _maybe_fail(self, operation: str) -> None:
        queued = self._failures.get(operation)
        if queued:
            raise queued.pop(0)
