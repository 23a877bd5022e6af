"""Turn raw notification payloads into ScalingEvents.

Direction is only ever read from structured fields: an explicit ``direction``
key, an SNS ``direction`` message attribute, or the alarm's ``NewStateValue``.
Free-text fields such as ``NewStateReason`` or the SNS subject are ignored.
Anything that cannot be classified becomes Direction.UNKNOWN; parsing never
raises.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone

from replica_scaler.core.models import Direction, ScalingEvent

logger = logging.getLogger(__name__)

PRIMARY_DIMENSION = "DBInstanceIdentifier"

ALARM_STATE_DIRECTIONS = {
    "ALARM": Direction.SCALE_UP,
    "OK": Direction.SCALE_DOWN,
}


def parse_direction(value) -> Direction:
    """Map an explicit direction value to a Direction; UNKNOWN if unrecognized."""
    if not isinstance(value, str):
        return Direction.UNKNOWN
    normalized = value.strip().lower().replace("-", "_")
    for direction in (Direction.SCALE_UP, Direction.SCALE_DOWN):
        if normalized == direction.value:
            return direction
    return Direction.UNKNOWN


def _decode(body) -> tuple[dict | None, str]:
    if isinstance(body, dict):
        return body, ""
    if isinstance(body, (bytes, bytearray)):
        try:
            body = body.decode("utf-8")
        except UnicodeDecodeError:
            return None, "body is not valid UTF-8"
    if not isinstance(body, str):
        return None, f"unsupported body type {type(body).__name__}"
    try:
        payload = json.loads(body)
    except ValueError:
        return None, "body is not JSON"
    if not isinstance(payload, dict):
        return None, "body is not a JSON object"
    return payload, ""


def _attribute_value(message_attributes: dict | None, name: str):
    if not isinstance(message_attributes, dict):
        return None
    attr = message_attributes.get(name)
    if isinstance(attr, dict):
        return attr.get("Value", attr.get("StringValue"))
    return attr


def _list(value) -> list:
    return value if isinstance(value, list) else []


def _dict(value) -> dict:
    return value if isinstance(value, dict) else {}


def _dimensions(trigger: dict) -> list:
    dims = list(_list(trigger.get("Dimensions")))
    # Metric math alarms nest dimensions per metric.
    for metric in _list(trigger.get("Metrics")):
        metric_stat = _dict(_dict(metric).get("MetricStat"))
        dims.extend(_list(_dict(metric_stat.get("Metric")).get("Dimensions")))
    return dims


def primary_from_alarm(alarm: dict) -> str:
    trigger = alarm.get("Trigger")
    if not isinstance(trigger, dict):
        return ""
    for dim in _dimensions(trigger):
        if not isinstance(dim, dict):
            continue
        name = dim.get("name", dim.get("Name"))
        if name == PRIMARY_DIMENSION:
            return str(dim.get("value", dim.get("Value", "")))
    return ""


def classify_event(
    body,
    delivery_token: str,
    received_at: datetime | None = None,
    default_primary: str = "",
    message_attributes: dict | None = None,
) -> ScalingEvent:
    """Classify one notification body.

    ``body`` is the raw payload (bytes, str or an already-decoded dict).
    ``message_attributes`` are SNS message attributes, if any.
    """
    received_at = received_at or datetime.now(timezone.utc)

    def unknown(detail: str, primary: str = default_primary, source: str = "unrecognized") -> ScalingEvent:
        return ScalingEvent(
            primary_identifier=primary,
            direction=Direction.UNKNOWN,
            received_at=received_at,
            delivery_token=delivery_token,
            source=source,
            detail=detail,
        )

    payload, error = _decode(body)
    if payload is None:
        return unknown(error)

    if "direction" in payload:
        source = "direct"
        direction = parse_direction(payload["direction"])
        primary = str(payload.get("primary_identifier") or default_primary)
        if direction is Direction.UNKNOWN:
            return unknown(f"unrecognized direction {payload['direction']!r}", primary, source)
    elif "NewStateValue" in payload:
        source = "sns-alarm"
        primary = primary_from_alarm(payload) or default_primary
        override = _attribute_value(message_attributes, "direction")
        if override is not None:
            direction = parse_direction(override)
            if direction is Direction.UNKNOWN:
                return unknown(f"unrecognized direction attribute {override!r}", primary, source)
        else:
            state = payload.get("NewStateValue")
            direction = (
                ALARM_STATE_DIRECTIONS.get(state, Direction.UNKNOWN)
                if isinstance(state, str)
                else Direction.UNKNOWN
            )
            if direction is Direction.UNKNOWN:
                return unknown(f"alarm state {state!r} carries no direction", primary, source)
    else:
        return unknown("payload has no direction or alarm state")

    if not primary:
        return unknown("no primary identifier in event or configuration", primary, source)

    return ScalingEvent(
        primary_identifier=primary,
        direction=direction,
        received_at=received_at,
        delivery_token=delivery_token,
        source=source,
    )


def _parse_timestamp(value) -> datetime | None:
    if not isinstance(value, str):
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None


def events_from_lambda(event, context, default_primary: str = "") -> list[ScalingEvent]:
    """Unwrap a Lambda invocation into one ScalingEvent per notification."""
    request_id = getattr(context, "aws_request_id", "") or ""

    records = event.get("Records") if isinstance(event, dict) else None
    if isinstance(records, list) and records:
        events = []
        for index, record in enumerate(records):
            sns = record.get("Sns") if isinstance(record, dict) else None
            if not isinstance(sns, dict):
                logger.info("Ignoring non-SNS record %d", index)
                events.append(
                    classify_event(None, f"{request_id}#{index}", default_primary=default_primary)
                )
                continue
            events.append(
                classify_event(
                    sns.get("Message", ""),
                    delivery_token=sns.get("MessageId") or f"{request_id}#{index}",
                    received_at=_parse_timestamp(sns.get("Timestamp")),
                    default_primary=default_primary,
                    message_attributes=sns.get("MessageAttributes"),
                )
            )
        return events

    token = ""
    if isinstance(event, dict):
        token = str(event.get("delivery_token") or "")
    return [classify_event(event, token or request_id, default_primary=default_primary)]
