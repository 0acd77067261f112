from datetime import datetime, timedelta, timezone

import pytest


class FakeClock:
    """Settable UTC clock shared by registry and service in tests."""

    def __init__(self, start: datetime = datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> datetime:
        self.now += timedelta(seconds=seconds)
        return self.now

    def unix(self) -> int:
        return int(self.now.timestamp())


@pytest.fixture
def clock():
    return FakeClock()
