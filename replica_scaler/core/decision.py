"""Decision engine: pure mapping from (event, topology, policy) to a decision."""

from __future__ import annotations

import re

from replica_scaler.core.models import (
    CreateReplica,
    DeleteReplica,
    Direction,
    NoOp,
    ReplicaTopology,
    ScalingPolicy,
)

AT_CAPACITY = "at capacity"
AT_FLOOR = "at floor"
UNCLASSIFIABLE = "unclassifiable event"
ALREADY_SATISFIED = "already satisfied"

# RDS DB instance identifiers are limited to 63 characters.
MAX_IDENTIFIER_LENGTH = 63
REPLICA_INFIX = "-replica-"
_SUFFIX = re.compile(re.escape(REPLICA_INFIX) + r"(\d+)$")


def _prefix(primary_identifier: str, reserve: int) -> str:
    room = MAX_IDENTIFIER_LENGTH - len(REPLICA_INFIX) - reserve
    return f"{primary_identifier[:max(room, 1)].rstrip('-')}{REPLICA_INFIX}"


def next_replica_identifier(topology: ReplicaTopology) -> str:
    """Next ``<primary>-replica-<n>``, one past the highest suffix in use.

    Deleting replicas count too, so a name is never reused while a previous
    instance with it may still exist.
    """
    existing = set(topology.replica_identifiers)
    highest = 0
    for identifier in existing:
        match = _SUFFIX.search(identifier)
        if match:
            highest = max(highest, int(match.group(1)))

    n = highest + 1
    while True:
        prefix = _prefix(topology.primary_identifier, len(str(n)))
        candidate = f"{prefix}{n}"
        if candidate not in existing:
            return candidate
        n += 1


def decide(
    direction: Direction,
    topology: ReplicaTopology,
    policy: ScalingPolicy,
    delivery_token: str = "",
):
    """Return CreateReplica, DeleteReplica or NoOp.

    Counts only replicas that are not already being deleted. A replica tagged
    with ``delivery_token`` means this event was already acted on, except on
    scale-down where the tag only counts once the replica is deleting: a
    rejected delete leaves the tag on a live replica.
    """
    if direction is Direction.UNKNOWN:
        return NoOp(UNCLASSIFIABLE)

    tagged = topology.find_by_token(delivery_token)
    if tagged is not None and (direction is Direction.SCALE_UP or tagged.is_deleting):
        return NoOp(ALREADY_SATISFIED)

    active = topology.active_replicas

    if direction is Direction.SCALE_UP:
        if len(active) >= policy.max_replicas:
            return NoOp(AT_CAPACITY)
        return CreateReplica(next_replica_identifier(topology))

    if direction is Direction.SCALE_DOWN:
        if len(active) <= policy.min_replicas:
            return NoOp(AT_FLOOR)
        # active preserves topology order, so the first entry is the oldest.
        return DeleteReplica(active[0].identifier)

    return NoOp(UNCLASSIFIABLE)
