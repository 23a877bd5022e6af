"""SNS alert publisher for failed invocations."""

from __future__ import annotations

import json

import boto3

# SNS rejects subjects longer than 100 characters.
MAX_SUBJECT_LENGTH = 100


class SNSAlertPublisher:
    def __init__(self, topic_arn: str, endpoint_url: str | None = None, region_name: str | None = None):
        kwargs = {}
        if endpoint_url:
            kwargs["endpoint_url"] = endpoint_url
        if region_name:
            kwargs["region_name"] = region_name
        self._sns = boto3.client("sns", **kwargs)
        self._topic_arn = topic_arn

    def publish(self, subject: str, record: dict) -> None:
        self._sns.publish(
            TopicArn=self._topic_arn,
            Subject=subject[:MAX_SUBJECT_LENGTH],
            Message=json.dumps(record, sort_keys=True, default=str),
        )
