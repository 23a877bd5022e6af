"""Controller entry point. One pass per notification, no retained state.

Cloud-agnostic: depends on the ReplicaLifecycleClient and AlertPublisher
protocols. Each event moves through

    received -> classified -> topology_loaded -> decided -> executed|skipped -> reported

Any failure ends in ``failed``, with the last state reached recorded as
``failed_in``, and is reported the same way. Reporting emits the completion
record. The record keeps its terminal state (executed, skipped or failed) in
``state`` and gets ``reported`` set once it has been emitted.
"""

from __future__ import annotations

import logging
import time
from enum import Enum

from replica_scaler.core.classifier import events_from_lambda
from replica_scaler.core.decision import UNCLASSIFIABLE, decide
from replica_scaler.core.errors import ScalerError
from replica_scaler.core.executor import EXECUTED, execute
from replica_scaler.core.interfaces import AlertPublisher, ReplicaLifecycleClient
from replica_scaler.core.models import (
    Direction,
    NoOp,
    RetryBudget,
    ScalingEvent,
    ScalingPolicy,
)
from replica_scaler.core.reporting import emit_report
from replica_scaler.core.retry import Deadline
from replica_scaler.core.topology import read_topology

logger = logging.getLogger(__name__)

FAILED = "failed"


class State(str, Enum):
    RECEIVED = "received"
    CLASSIFIED = "classified"
    TOPOLOGY_LOADED = "topology_loaded"
    DECIDED = "decided"
    EXECUTED = "executed"
    SKIPPED = "skipped"
    FAILED = "failed"
    REPORTED = "reported"


def handle_event(
    event: ScalingEvent,
    client: ReplicaLifecycleClient,
    policy: ScalingPolicy,
    budget: RetryBudget,
    deadline: Deadline | None = None,
    alerts: AlertPublisher | None = None,
) -> dict:
    """Run one classified event through the pipeline and report the outcome.

    Never raises for control-plane failures; they end up in the returned
    record with ``outcome == "failed"``.
    """
    started = time.monotonic()
    deadline = deadline or Deadline(None)
    record = {
        "primary_identifier": event.primary_identifier,
        "delivery_token": event.delivery_token,
        "direction": event.direction.value,
        "source": event.source,
        "received_at": event.received_at.isoformat(),
        "decision": None,
        "target": None,
        "reason": "",
        "outcome": None,
        "state": State.RECEIVED.value,
        "mutation_attempted": False,
        "error": None,
        "error_type": None,
    }

    def advance(state: State) -> None:
        record["state"] = state.value

    def mark_attempt() -> None:
        record["mutation_attempted"] = True

    advance(State.CLASSIFIED)
    try:
        if event.direction is Direction.UNKNOWN:
            logger.info(
                "Ignoring unclassifiable event %s: %s", event.delivery_token, event.detail
            )
            decision = NoOp(UNCLASSIFIABLE)
            record["detail"] = event.detail
        else:
            topology = read_topology(event.primary_identifier, client, budget, deadline)
            advance(State.TOPOLOGY_LOADED)
            decision = decide(event.direction, topology, policy, event.delivery_token)

        advance(State.DECIDED)
        record["decision"] = decision.kind
        record["target"] = getattr(decision, "identifier", None)
        logger.info("Decision for %s (%s): %s", event.primary_identifier, event.direction.value, decision)

        outcome, reason = execute(
            decision, event, client, policy, budget, deadline, on_attempt=mark_attempt
        )
        record["outcome"] = outcome
        record["reason"] = reason
        advance(State.EXECUTED if outcome == EXECUTED else State.SKIPPED)
    except ScalerError as exc:
        logger.error(
            "Scaling failed for %s in state %s (decision=%s, target=%s): %s",
            event.primary_identifier,
            record["state"],
            record["decision"],
            record["target"],
            exc,
        )
        _fail(record, exc)
    except Exception as exc:
        logger.exception("Unexpected error while scaling %s", event.primary_identifier)
        _fail(record, exc)

    record["duration_ms"] = int((time.monotonic() - started) * 1000)
    emit_report(record, alerts)
    record["reported"] = True
    logger.debug("Delivery %s %s", event.delivery_token, State.REPORTED.value)
    return record


def _fail(record: dict, exc: Exception) -> None:
    record["outcome"] = FAILED
    record["failed_in"] = record["state"]
    record["state"] = State.FAILED.value
    record["reason"] = f"{type(exc).__name__}: {exc}"
    record["error"] = str(exc)
    record["error_type"] = type(exc).__name__
    last_error = getattr(exc, "last_error", None)
    if last_error is not None:
        record["underlying_error"] = f"{type(last_error).__name__}: {last_error}"


def handle_invocation(
    raw_event,
    context,
    client: ReplicaLifecycleClient,
    policy: ScalingPolicy,
    budget: RetryBudget,
    default_primary: str = "",
    deadline: Deadline | None = None,
    alerts: AlertPublisher | None = None,
) -> list[dict]:
    """Classify every notification in a raw invocation and handle each one."""
    events = events_from_lambda(raw_event, context, default_primary)
    return [
        handle_event(event, client, policy, budget, deadline, alerts)
        for event in events
    ]
