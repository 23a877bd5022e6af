"""Mutation executor: carries out a decision against the control plane.

Every mutation is preceded by a fresh topology read so duplicate or racing
deliveries turn into no-ops instead of double creates or repeated deletes.
Returns ``(outcome, reason)`` where outcome is "executed" or "skipped".
"""

from __future__ import annotations

import logging

from replica_scaler.core.decision import ALREADY_SATISFIED, AT_CAPACITY, AT_FLOOR
from replica_scaler.core.errors import Conflict, ReplicaNotFound
from replica_scaler.core.interfaces import ReplicaLifecycleClient
from replica_scaler.core.models import (
    DELIVERY_TOKEN_TAG,
    MANAGED_BY_TAG,
    PRIMARY_TAG,
    CreateReplica,
    DeleteReplica,
    NoOp,
    RetryBudget,
    ScalingEvent,
    ScalingPolicy,
)
from replica_scaler.core.retry import Deadline, call_with_retry
from replica_scaler.core.topology import read_topology

logger = logging.getLogger(__name__)

EXECUTED = "executed"
SKIPPED = "skipped"

MANAGER_NAME = "replica-scaler"


def mutation_tags(event: ScalingEvent) -> dict[str, str]:
    tags = {
        PRIMARY_TAG: event.primary_identifier,
        MANAGED_BY_TAG: MANAGER_NAME,
    }
    if event.delivery_token:
        tags[DELIVERY_TOKEN_TAG] = event.delivery_token
    return tags


def execute(
    decision,
    event: ScalingEvent,
    client: ReplicaLifecycleClient,
    policy: ScalingPolicy,
    budget: RetryBudget,
    deadline: Deadline | None = None,
    on_attempt=None,
) -> tuple[str, str]:
    """Apply a CreateReplica or DeleteReplica decision.

    ``on_attempt`` is called just before a mutation request is issued so the
    caller can record that an attempt was made even if the call never returns.
    """
    if isinstance(decision, NoOp):
        return SKIPPED, decision.reason
    if isinstance(decision, CreateReplica):
        return _create(decision, event, client, policy, budget, deadline, on_attempt)
    if isinstance(decision, DeleteReplica):
        return _delete(decision, event, client, policy, budget, deadline, on_attempt)
    raise TypeError(f"Unsupported decision: {decision!r}")


def _create(decision, event, client, policy, budget, deadline, on_attempt):
    topology = read_topology(event.primary_identifier, client, budget, deadline)
    if topology.get(decision.identifier) or topology.find_by_token(event.delivery_token):
        logger.info("Replica %s already exists or is in flight", decision.identifier)
        return SKIPPED, ALREADY_SATISFIED
    if len(topology.active_replicas) >= policy.max_replicas:
        return SKIPPED, AT_CAPACITY

    tags = mutation_tags(event)

    def issue():
        logger.info(
            "Requesting replica %s of %s (class=%s, placement=%s, token=%s)",
            decision.identifier,
            event.primary_identifier,
            policy.instance_class,
            policy.placement_hint or "any",
            event.delivery_token,
        )
        if on_attempt:
            on_attempt()
        client.create_replica(
            event.primary_identifier,
            decision.identifier,
            policy.instance_class,
            policy.placement_hint,
            tags,
        )

    try:
        call_with_retry(f"create {decision.identifier}", issue, budget, deadline)
    except Conflict:
        # A retried request may have been accepted the first time round.
        logger.info("Replica %s already exists; treating as success", decision.identifier)
        return SKIPPED, ALREADY_SATISFIED
    return EXECUTED, f"created {decision.identifier}"


def _delete(decision, event, client, policy, budget, deadline, on_attempt):
    topology = read_topology(event.primary_identifier, client, budget, deadline)
    target = topology.get(decision.identifier)
    if target is None or target.is_deleting:
        logger.info("Replica %s already gone or deleting", decision.identifier)
        return SKIPPED, ALREADY_SATISFIED
    if len(topology.active_replicas) <= policy.min_replicas:
        return SKIPPED, AT_FLOOR

    tags = mutation_tags(event)

    def issue():
        logger.info(
            "Requesting deletion of replica %s of %s (token=%s)",
            decision.identifier,
            event.primary_identifier,
            event.delivery_token,
        )
        if on_attempt:
            on_attempt()
        client.delete_replica(decision.identifier, tags)

    try:
        call_with_retry(f"delete {decision.identifier}", issue, budget, deadline)
    except (Conflict, ReplicaNotFound):
        logger.info("Replica %s already deleting or gone; treating as success", decision.identifier)
        return SKIPPED, ALREADY_SATISFIED
    return EXECUTED, f"deleted {decision.identifier}"
