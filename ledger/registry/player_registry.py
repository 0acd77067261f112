"""
Player Registry — authoritative in-memory identity and accounting per player.

Two maps, both keyed by player id and never pruned:
  snapshots: the cached PlayerSnapshot handed out by get_or_create()
  state:     private RuntimeState (committed playtime, open interval, deaths)

Playtime is split into a committed part (accumulated_seconds, changed only by
mark_offline) and a live part computed on read from online_since. Reads never
need to close the open interval.
"""

import math
import time
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional

from pydantic import BaseModel

from ledger.log import get_logger
from ledger.models.snapshot import PlayerSnapshot

logger = get_logger("registry")


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def unix_now() -> int:
    return int(time.time())


def elapsed_seconds(since: datetime, now: datetime) -> int:
    """Whole seconds between two instants, floored, never negative."""
    return max(0, math.floor((now - since).total_seconds()))


class RuntimeState(BaseModel):
    """Accounting state for one player. Never persisted directly."""

    accumulated_seconds: int = 0
    online_since: Optional[datetime] = None   # Present iff an interval is open
    deaths: int = 0
    first_join_unix: int = 0                  # From a persisted record, 0 if none


class PlayerRegistry:
    """Owns every player's snapshot and runtime accounting state."""

    def __init__(self, clock: Callable[[], datetime] = utc_now):
        self._clock = clock
        self._players: Dict[str, PlayerSnapshot] = {}
        self._state: Dict[str, RuntimeState] = {}

    def all(self) -> List[PlayerSnapshot]:
        """Every cached snapshot, in first-seen order."""
        return list(self._players.values())

    def get(self, player_id: str) -> Optional[PlayerSnapshot]:
        """The cached snapshot, without creating one."""
        return self._players.get(player_id)

    def has_runtime_state(self, player_id: str) -> bool:
        """Whether accounting for this player has been touched in this process."""
        return player_id in self._state

    def get_or_create(
        self,
        player_id: str,
        name: str,
        now_unix: Callable[[], int],
    ) -> PlayerSnapshot:
        """
        Existing snapshot with the name refreshed, or a new one stamped with
        first/last join = now_unix(). Accounting is always synced to the live
        runtime state before returning.
        """
        snapshot = self._players.get(player_id)
        if snapshot is not None:
            snapshot.name = name
        else:
            now = now_unix()
            snapshot = PlayerSnapshot(player_id=player_id, name=name)
            snapshot.meta.first_join_unix = now
            snapshot.meta.last_join_unix = now
            state = self._state.get(player_id)
            if state is not None and state.first_join_unix > 0:
                snapshot.meta.first_join_unix = state.first_join_unix
            self._players[player_id] = snapshot

        self.apply_runtime_state(player_id, snapshot, self._clock())
        return snapshot

    def mark_online(self, player_id: str, now: datetime) -> None:
        """Open an online interval. No-op when one is already open."""
        state = self._get_state(player_id)
        if state.online_since is None:
            state.online_since = now

    def mark_offline(self, player_id: str, now: datetime) -> None:
        """Close the open interval and commit its whole seconds. No-op when none is open."""
        state = self._get_state(player_id)
        if state.online_since is None:
            return

        state.accumulated_seconds += elapsed_seconds(state.online_since, now)
        state.online_since = None

    def is_online(self, player_id: str) -> bool:
        state = self._state.get(player_id)
        return state is not None and state.online_since is not None

    def increment_deaths(self, player_id: str) -> int:
        state = self._get_state(player_id)
        state.deaths += 1

        snapshot = self._players.get(player_id)
        if snapshot is not None:
            snapshot.stats.deaths = state.deaths
        return state.deaths

    def get_deaths(self, player_id: str) -> int:
        state = self._state.get(player_id)
        return state.deaths if state else 0

    def get_playtime_seconds(self, player_id: str, now: datetime) -> int:
        """Committed seconds plus the open interval's elapsed time, if any."""
        state = self._state.get(player_id)
        if state is None:
            return 0

        seconds = state.accumulated_seconds
        if state.online_since is not None:
            seconds += elapsed_seconds(state.online_since, now)
        return seconds

    def seed_from_persisted(
        self,
        player_id: str,
        deaths: int,
        playtime_seconds: int,
        first_join_unix: int,
    ) -> bool:
        """
        Import accounting from the last durable record.

        Only applies while the registry holds no runtime state for the player,
        so a late seed can never clobber progress made in this process.
        Returns True when the seed was applied.
        """
        if player_id in self._state:
            logger.info("seed_skipped", player_id=player_id, reason="runtime_state_exists")
            return False

        self._state[player_id] = RuntimeState(
            accumulated_seconds=max(0, playtime_seconds),
            deaths=max(0, deaths),
            first_join_unix=max(0, first_join_unix),
        )

        snapshot = self._players.get(player_id)
        if snapshot is not None:
            snapshot.stats.deaths = max(0, deaths)
            snapshot.stats.playtime_seconds = max(0, playtime_seconds)
            if first_join_unix > 0:
                snapshot.meta.first_join_unix = first_join_unix

        logger.info(
            "registry_seeded",
            player_id=player_id,
            deaths=deaths,
            playtime_seconds=playtime_seconds,
        )
        return True

    def apply_runtime_state(
        self,
        player_id: str,
        snapshot: PlayerSnapshot,
        now: datetime,
    ) -> None:
        """Mirror live accounting into a snapshot."""
        snapshot.stats.deaths = self.get_deaths(player_id)
        snapshot.stats.playtime_seconds = self.get_playtime_seconds(player_id, now)

    def _get_state(self, player_id: str) -> RuntimeState:
        state = self._state.get(player_id)
        if state is None:
            state = RuntimeState()
            self._state[player_id] = state
        return state
