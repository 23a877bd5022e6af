"""Live replica topology reads. Nothing here is cached between calls."""

from __future__ import annotations

import logging

from replica_scaler.core.interfaces import ReplicaLifecycleClient
from replica_scaler.core.models import ReplicaTopology, RetryBudget
from replica_scaler.core.retry import Deadline, call_with_retry

logger = logging.getLogger(__name__)


def read_topology(
    primary_identifier: str,
    client: ReplicaLifecycleClient,
    budget: RetryBudget,
    deadline: Deadline | None = None,
) -> ReplicaTopology:
    """Fetch the current replica set of a primary from the control plane.

    PrimaryNotFound propagates immediately; transient failures are retried
    within ``budget``.
    """
    topology = call_with_retry(
        f"describe {primary_identifier}",
        lambda: client.describe(primary_identifier),
        budget,
        deadline,
    )
    logger.info(
        "Primary %s has %d replica(s): %s",
        primary_identifier,
        len(topology.replicas),
        ", ".join(f"{r.identifier}({r.status})" for r in topology.replicas) or "none",
    )
    return topology
