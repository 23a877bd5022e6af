"""AWS Lambda handler entry point.

A thin wrapper that reads configuration, builds backend dependencies, calls
cloud-agnostic core logic and formats the response. All decision logic lives
in replica_scaler/core/.
"""

from __future__ import annotations

import json
import logging

logger = logging.getLogger(__name__)


# ---- Shared helpers ----


def _configure_logging():
    from replica_scaler.shared.config import LOG_LEVEL

    logging.getLogger().setLevel(LOG_LEVEL().upper())


def _get_lifecycle_client(call_timeout: float):
    """Build an RDSReplicaLifecycleClient from environment variables."""
    from replica_scaler.shared.config import AWS_ENDPOINT_URL
    from replica_scaler.backends.aws.rds import RDSReplicaLifecycleClient

    return RDSReplicaLifecycleClient(call_timeout=call_timeout, endpoint_url=AWS_ENDPOINT_URL())


def _get_alert_publisher():
    """Build an SNSAlertPublisher, or None when no alert topic is configured."""
    from replica_scaler.shared.config import ALERT_TOPIC_ARN, AWS_ENDPOINT_URL
    from replica_scaler.backends.aws.alerts import SNSAlertPublisher

    topic_arn = ALERT_TOPIC_ARN()
    if not topic_arn:
        return None
    return SNSAlertPublisher(topic_arn, endpoint_url=AWS_ENDPOINT_URL())


def _response(status_code: int, body: dict) -> dict:
    return {"statusCode": status_code, "body": json.dumps(body, default=str)}


# ---- Scaler ----


def scaler_handler(event, context):
    """Scaler Lambda, subscribed to the alarm SNS topic.

    SNS event: {"Records": [{"Sns": {"MessageId": "...", "Message": "<alarm JSON>"}}]}
    Direct event: {"direction": "scale_up", "primary_identifier": "orders-db"}

    Controller failures are reported in the body with a 500 status rather than
    raised, so the platform does not retry outside the channel's own redelivery.
    """
    from replica_scaler.core.controller import FAILED, handle_invocation
    from replica_scaler.core.errors import InvalidConfiguration
    from replica_scaler.core.retry import Deadline
    from replica_scaler.shared.config import (
        DEADLINE_MARGIN_MS,
        PRIMARY_DB_INSTANCE_IDENTIFIER,
        load_policy,
        load_retry_budget,
    )

    _configure_logging()
    alerts = _get_alert_publisher()

    try:
        policy = load_policy()
        budget = load_retry_budget()
        deadline = Deadline.from_lambda_context(context, DEADLINE_MARGIN_MS())
    except InvalidConfiguration as exc:
        logger.error("Invalid scaler configuration: %s", exc)
        record = {"outcome": FAILED, "error": str(exc), "error_type": type(exc).__name__}
        if alerts is not None:
            alerts.publish("replica-scaler misconfigured", record)
        return _response(500, {"error": str(exc)})

    client = _get_lifecycle_client(budget.call_timeout)

    results = handle_invocation(
        event,
        context,
        client,
        policy,
        budget,
        default_primary=PRIMARY_DB_INSTANCE_IDENTIFIER(),
        deadline=deadline,
        alerts=alerts,
    )

    status = 500 if any(r["outcome"] == FAILED for r in results) else 200
    return _response(status, {"results": results})
