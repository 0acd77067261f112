"""
Snapshot Provider — fills the non-accounting parts of a snapshot.

The host's world layer is reached only through WorldView, which hands back
LivePlayer records where anything the host could not read is None. The
provider overwrites a field group only when its capture toggle is on and the
live value is known; otherwise the previous value is kept. Accounting
(deaths, playtime) is never written here.
"""

import math
from typing import Callable, Dict, List, Optional, Protocol

from pydantic import BaseModel

from ledger.models.config import CaptureConfig
from ledger.models.snapshot import (
    EMPTY_SLOT,
    PlayerEquipment,
    PlayerSnapshot,
    PlayerWorldInfo,
    StatRange,
)
from ledger.registry.player_registry import PlayerRegistry, unix_now

ARMOR_SLOT_COUNT = 3
UNKNOWN_NAME = "Unknown"


class LivePlayer(BaseModel):
    """What the host world currently knows about a connected player."""

    player_id: str
    name: str
    health: Optional[StatRange] = None
    hunger: Optional[StatRange] = None
    stamina: Optional[StatRange] = None
    ping_ms: Optional[float] = None
    tiredness: Optional[float] = None
    armor: Optional[List[Optional[str]]] = None   # None entries are empty slots
    held_item: Optional[str] = None
    position: Optional[List[float]] = None
    temperature: Optional[float] = None
    rainfall: Optional[float] = None


class WorldView(Protocol):
    """Read-only view of the host world."""

    def online_players(self) -> List[LivePlayer]: ...

    def player_by_id(self, player_id: str) -> Optional[LivePlayer]: ...


class SnapshotProvider(Protocol):
    """Protocol for enrichment providers — pluggable backend."""

    def create_snapshot_for(self, player_id: str) -> PlayerSnapshot: ...

    def update_capture(self, capture: CaptureConfig) -> None: ...


class InMemoryWorld:
    """A WorldView whose players are pushed in by the host (or tests)."""

    def __init__(self):
        self._online: Dict[str, LivePlayer] = {}

    def connect(self, player: LivePlayer) -> None:
        self._online[player.player_id] = player

    def update(self, player: LivePlayer) -> None:
        self._online[player.player_id] = player

    def disconnect(self, player_id: str) -> Optional[LivePlayer]:
        return self._online.pop(player_id, None)

    def online_players(self) -> List[LivePlayer]:
        return list(self._online.values())

    def player_by_id(self, player_id: str) -> Optional[LivePlayer]:
        return self._online.get(player_id)


def finite_or_zero(value: float) -> float:
    if math.isnan(value) or math.isinf(value):
        return 0.0
    return value


def climate_tag(temperature: float, rainfall: float) -> str:
    """Coarse climate label from temperature (°C) and rainfall (0..1)."""
    if temperature >= 24 and rainfall >= 0.6:
        return "tropical"
    if temperature >= 18 and rainfall >= 0.4:
        return "temperate"
    if temperature <= 0:
        return "winter"
    if rainfall <= 0.2:
        return "arid"
    return "unknown"


class WorldSnapshotProvider:
    """Builds enriched snapshots from a WorldView on top of the registry's cache."""

    def __init__(
        self,
        world: WorldView,
        registry: PlayerRegistry,
        capture: Optional[CaptureConfig] = None,
        now_unix: Callable[[], int] = unix_now,
    ):
        self.world = world
        self.registry = registry
        self._capture = capture or CaptureConfig()
        self._now_unix = now_unix

    @property
    def capture(self) -> CaptureConfig:
        return self._capture

    def update_capture(self, capture: CaptureConfig) -> None:
        """Swap the active toggle set; applies from the next call."""
        self._capture = capture.model_copy()

    def create_snapshot_for(self, player_id: str) -> PlayerSnapshot:
        live = self.world.player_by_id(player_id)

        # Always start from the registry's snapshot so nothing is reset
        snapshot = self.registry.get(player_id)
        if snapshot is None:
            name = live.name if live else UNKNOWN_NAME
            snapshot = self.registry.get_or_create(player_id, name, self._now_unix)

        if live is None:
            snapshot.online = False
            return snapshot

        snapshot.name = live.name
        snapshot.online = True

        capture = self._capture
        if capture.vitals:
            self._fill_vitals(snapshot, live)
        if capture.equipment:
            self._fill_equipment(snapshot, live)
        if capture.world:
            self._fill_world(snapshot, live)
        if capture.position and live.position is not None:
            snapshot.world.position = list(live.position)

        return snapshot

    @staticmethod
    def _fill_vitals(snapshot: PlayerSnapshot, live: LivePlayer) -> None:
        stats = snapshot.stats
        for field in ("health", "hunger", "stamina"):
            value = getattr(live, field)
            if value is not None:
                setattr(stats, field, StatRange(
                    current=finite_or_zero(value.current),
                    max=finite_or_zero(value.max),
                ))
        if live.ping_ms is not None:
            stats.ping_ms = finite_or_zero(live.ping_ms)
        if live.tiredness is not None:
            stats.tiredness = finite_or_zero(live.tiredness)

    @staticmethod
    def _fill_equipment(snapshot: PlayerSnapshot, live: LivePlayer) -> None:
        # None means the host could not read it: keep the previous value
        previous = snapshot.equipment
        if live.armor is None:
            armor = list(previous.armor)
        else:
            armor = [item or EMPTY_SLOT for item in live.armor[:ARMOR_SLOT_COUNT]]
            armor += [EMPTY_SLOT] * (ARMOR_SLOT_COUNT - len(armor))

        if live.held_item is None:
            held_item = previous.held_item
        else:
            held_item = live.held_item or EMPTY_SLOT

        snapshot.equipment = PlayerEquipment(armor=armor, held_item=held_item)

    @staticmethod
    def _fill_world(snapshot: PlayerSnapshot, live: LivePlayer) -> None:
        if live.temperature is None or live.rainfall is None:
            return  # Climate unavailable, keep previous

        snapshot.world = PlayerWorldInfo(
            climate_tag=climate_tag(live.temperature, live.rainfall),
            ambient_temperature=finite_or_zero(live.temperature),
            position=snapshot.world.position,
        )
