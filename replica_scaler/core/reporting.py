"""Completion records: the only durable trace of what the controller did."""

from __future__ import annotations

import json
import logging

from replica_scaler.core.interfaces import AlertPublisher

logger = logging.getLogger(__name__)
report_logger = logging.getLogger("replica_scaler.report")


def emit_report(record: dict, alerts: AlertPublisher | None = None) -> None:
    """Log a completion record as one JSON line; alert on failure."""
    line = json.dumps(record, sort_keys=True, default=str)
    if record.get("outcome") == "failed":
        report_logger.error(line)
    else:
        report_logger.info(line)

    if record.get("outcome") != "failed" or alerts is None:
        return

    subject = f"replica-scaler failed for {record.get('primary_identifier') or 'unknown primary'}"
    try:
        alerts.publish(subject, record)
    except Exception:
        # The report line above already carries the failure.
        logger.exception("Failed to publish alert for delivery %s", record.get("delivery_token"))
