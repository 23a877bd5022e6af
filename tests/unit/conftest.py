"""Shared fixtures for unit tests — uses mock backends, no Docker needed."""

import pytest
import sys
import os

# Add project root to path so replica_scaler is importable
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", ".."))

from replica_scaler.backends.mock.alerts import RecordingAlertPublisher
from replica_scaler.backends.mock.rds import InMemoryReplicaLifecycleClient
from replica_scaler.core.models import RetryBudget, ScalingPolicy


PRIMARY = "orders-db"


@pytest.fixture
def rds():
    client = InMemoryReplicaLifecycleClient()
    client.add_primary(PRIMARY)
    client.add_replica(PRIMARY, f"{PRIMARY}-replica-1")
    return client


@pytest.fixture
def policy():
    return ScalingPolicy.create(
        min_replicas=1,
        max_replicas=3,
        instance_class="db.r6g.large",
        placement_hint="us-east-1a",
    )


@pytest.fixture
def budget():
    # Zero delays keep retry tests fast.
    return RetryBudget(max_attempts=3, base_delay=0.0, max_delay=0.0, call_timeout=1.0)


@pytest.fixture
def alerts():
    return RecordingAlertPublisher()
