"""Mock alert publisher for testing."""

from __future__ import annotations


class RecordingAlertPublisher:
    def __init__(self):
        self.published: list[tuple[str, dict]] = []

    def publish(self, subject: str, record: dict) -> None:
        self.published.append((subject, record))
