"""Store protocol and the error raised when persisting a snapshot fails."""

from typing import List, Optional, Protocol

from ledger.models.report import StoreFailure
from ledger.models.snapshot import PlayerSnapshot


class SnapshotStore(Protocol):
    """Protocol for durable stores — one current snapshot per player."""

    name: str

    def save(self, snapshot: PlayerSnapshot) -> None: ...

    def load(self, player_id: str) -> Optional[PlayerSnapshot]: ...


class PersistError(Exception):
    """One or more stores failed to save a player's snapshot."""

    def __init__(self, player_id: str, failures: List[StoreFailure]):
        self.player_id = player_id
        self.failures = failures
        stores = ", ".join(f.store for f in failures)
        super().__init__(f"Failed to persist snapshot for {player_id} to: {stores}")
