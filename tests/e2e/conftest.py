"""E2E test fixtures — LocalStack-backed SNS and SQS for alert delivery."""

from __future__ import annotations

import json
import os
import sys
import uuid

import boto3
import pytest
from botocore.exceptions import BotoCoreError

sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", ".."))


@pytest.fixture(scope="session")
def localstack_env():
    """Start LocalStack and wire an alert topic to a queue we can read back."""
    try:
        from testcontainers.core.exceptions import ContainerStartException
        from testcontainers.localstack import LocalStackContainer
    except ModuleNotFoundError as exc:
        pytest.skip(f"LocalStack tests require testcontainers dependency: {exc}")

    container = LocalStackContainer(image="localstack/localstack:3.0").with_services("sns", "sqs")

    try:
        container.start()
    except (ContainerStartException, BotoCoreError, OSError) as exc:
        pytest.skip(f"LocalStack unavailable in this environment: {exc}")

    endpoint_url = container.get_url()
    region = "us-east-1"
    access_key = "test"
    secret_key = "test"

    os.environ.setdefault("AWS_ACCESS_KEY_ID", access_key)
    os.environ.setdefault("AWS_SECRET_ACCESS_KEY", secret_key)
    os.environ.setdefault("AWS_DEFAULT_REGION", region)

    client_kwargs = {
        "endpoint_url": endpoint_url,
        "region_name": region,
        "aws_access_key_id": access_key,
        "aws_secret_access_key": secret_key,
    }
    sns = boto3.client("sns", **client_kwargs)
    sqs = boto3.client("sqs", **client_kwargs)

    suffix = uuid.uuid4().hex[:8]
    topic_arn = sns.create_topic(Name=f"replica-scaler-alerts-e2e-{suffix}")["TopicArn"]
    queue_url = sqs.create_queue(QueueName=f"replica-scaler-alerts-e2e-{suffix}")["QueueUrl"]
    queue_arn = sqs.get_queue_attributes(QueueUrl=queue_url, AttributeNames=["QueueArn"])[
        "Attributes"
    ]["QueueArn"]
    sqs.set_queue_attributes(
        QueueUrl=queue_url,
        Attributes={
            "Policy": json.dumps(
                {
                    "Version": "2012-10-17",
                    "Statement": [
                        {
                            "Effect": "Allow",
                            "Principal": "*",
                            "Action": "sqs:SendMessage",
                            "Resource": queue_arn,
                        }
                    ],
                }
            )
        },
    )
    sns.subscribe(
        TopicArn=topic_arn,
        Protocol="sqs",
        Endpoint=queue_arn,
        Attributes={"RawMessageDelivery": "true"},
    )

    yield {
        "endpoint_url": endpoint_url,
        "region": region,
        "topic_arn": topic_arn,
        "queue_url": queue_url,
        "sqs": sqs,
    }

    container.stop()
