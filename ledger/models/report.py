"""Outcome records for persistence fan-out and ticks."""

from typing import List

from pydantic import BaseModel


class StoreFailure(BaseModel):
    """One store that failed to save one player's snapshot."""

    player_id: str
    store: str
    error: str


class TickReport(BaseModel):
    """What a single tick did."""

    tick_unix: int
    online_persisted: List[str] = []
    offline_persisted: List[str] = []
    failures: List[StoreFailure] = []

    @property
    def ok(self) -> bool:
        return not self.failures
