"""Value types shared by the classifier, decision engine and executor."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum

from replica_scaler.core.errors import InvalidConfiguration

DELIVERY_TOKEN_TAG = "replica-scaler:delivery-token"
PRIMARY_TAG = "replica-scaler:primary"
MANAGED_BY_TAG = "replica-scaler:managed-by"

DELETING_STATUSES = frozenset({"deleting"})

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


class Direction(str, Enum):
    SCALE_UP = "scale_up"
    SCALE_DOWN = "scale_down"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class ScalingEvent:
    primary_identifier: str
    direction: Direction
    received_at: datetime
    delivery_token: str
    source: str = "direct"
    detail: str = ""


@dataclass(frozen=True)
class Replica:
    identifier: str
    created_at: datetime | None = None
    status: str = "available"
    tags: dict = field(default_factory=dict, compare=False, hash=False)
    arn: str = ""

    @property
    def is_deleting(self) -> bool:
        return self.status in DELETING_STATUSES


def _creation_order(replica: Replica) -> tuple:
    # Replicas without a create time are still being created: newest.
    if replica.created_at is None:
        return (1, _EPOCH, replica.identifier)
    return (0, replica.created_at, replica.identifier)


@dataclass(frozen=True)
class ReplicaTopology:
    """Replicas of a primary, oldest first, as the control plane reported them."""

    primary_identifier: str
    replicas: tuple[Replica, ...]
    observed_at: datetime

    @classmethod
    def build(
        cls,
        primary_identifier: str,
        replicas,
        observed_at: datetime | None = None,
    ) -> "ReplicaTopology":
        ordered = tuple(sorted(replicas, key=_creation_order))
        return cls(
            primary_identifier=primary_identifier,
            replicas=ordered,
            observed_at=observed_at or datetime.now(timezone.utc),
        )

    @property
    def replica_identifiers(self) -> list[str]:
        return [r.identifier for r in self.replicas]

    @property
    def active_replicas(self) -> list[Replica]:
        return [r for r in self.replicas if not r.is_deleting]

    def get(self, identifier: str) -> Replica | None:
        for replica in self.replicas:
            if replica.identifier == identifier:
                return replica
        return None

    def find_by_token(self, delivery_token: str) -> Replica | None:
        if not delivery_token:
            return None
        for replica in self.replicas:
            if replica.tags.get(DELIVERY_TOKEN_TAG) == delivery_token:
                return replica
        return None


@dataclass(frozen=True)
class ScalingPolicy:
    min_replicas: int
    max_replicas: int
    instance_class: str
    placement_hint: str = ""

    @classmethod
    def create(
        cls,
        min_replicas: int,
        max_replicas: int,
        instance_class: str,
        placement_hint: str = "",
    ) -> "ScalingPolicy":
        if min_replicas < 0:
            raise InvalidConfiguration(f"min_replicas must be >= 0, got {min_replicas}")
        if max_replicas < min_replicas:
            raise InvalidConfiguration(
                f"max_replicas ({max_replicas}) must be >= min_replicas ({min_replicas})"
            )
        if not instance_class:
            raise InvalidConfiguration("instance_class is required")
        return cls(min_replicas, max_replicas, instance_class, placement_hint)


@dataclass(frozen=True)
class RetryBudget:
    max_attempts: int = 4
    base_delay: float = 0.5
    max_delay: float = 8.0
    call_timeout: float = 10.0


# --- Decisions ---


@dataclass(frozen=True)
class CreateReplica:
    identifier: str

    kind = "create_replica"


@dataclass(frozen=True)
class DeleteReplica:
    identifier: str

    kind = "delete_replica"


@dataclass(frozen=True)
class NoOp:
    reason: str

    kind = "noop"
