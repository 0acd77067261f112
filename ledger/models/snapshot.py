"""Player Snapshot — the persisted, externally visible record for one player."""

import math
from typing import Any, List, Optional

from pydantic import BaseModel, Field, model_validator

CURRENT_SCHEMA_VERSION = 2
EMPTY_SLOT = "none"
_LEGACY_KEYS = frozenset({"uid", "first_join", "last_join"})


class StatRange(BaseModel):
    """A vital with a current and a maximum value."""

    current: float = 0.0
    max: float = 0.0


class SnapshotMeta(BaseModel):
    """Presence timestamps, unix seconds. 0 means unset."""

    first_join_unix: int = 0                # Set once, never overwritten once positive
    last_join_unix: int = 0
    last_seen_unix: int = 0


class PlayerStats(BaseModel):
    """Accounting counters (registry-owned) plus enrichment vitals."""

    # Accounting — only the registry writes these
    deaths: int = Field(ge=0, default=0)
    playtime_seconds: int = Field(ge=0, default=0)

    # Vitals — owned by the enrichment provider. None means "never captured".
    health: Optional[StatRange] = None
    hunger: Optional[StatRange] = None
    stamina: Optional[StatRange] = None
    ping_ms: Optional[float] = None
    tiredness: Optional[float] = None


class PlayerEquipment(BaseModel):
    armor: List[str] = Field(default_factory=lambda: [EMPTY_SLOT] * 3)
    held_item: str = EMPTY_SLOT


class PlayerWorldInfo(BaseModel):
    climate_tag: str = "unknown"            # "tropical" | "temperate" | "winter" | "arid" | "unknown"
    ambient_temperature: Optional[float] = None
    position: Optional[List[float]] = None  # [x, y, z]


class PlayerSnapshot(BaseModel):
    """
    Snapshot of one player at a point in time.

    `stats.deaths` and `stats.playtime_seconds` mirror the registry's runtime
    state at the moment of persistence. Everything under `stats` vitals,
    `equipment` and `world` is enrichment payload, replaced per group.
    """

    schema_version: int = CURRENT_SCHEMA_VERSION
    player_id: str
    name: str = ""
    online: bool = False

    meta: SnapshotMeta = Field(default_factory=SnapshotMeta)
    stats: PlayerStats = Field(default_factory=PlayerStats)
    equipment: PlayerEquipment = Field(default_factory=PlayerEquipment)
    world: PlayerWorldInfo = Field(default_factory=PlayerWorldInfo)

    @model_validator(mode="before")
    @classmethod
    def _upgrade_legacy(cls, data: Any) -> Any:
        """Upgrade version-1 records (flat join times, hours, biome) to the current shape."""
        if not isinstance(data, dict):
            return data
        version = _schema_version(data)
        if version >= CURRENT_SCHEMA_VERSION:
            return data

        data = dict(data)
        if "player_id" not in data and "uid" in data:
            data["player_id"] = data.pop("uid")

        meta = _as_dict(data.get("meta"))
        for legacy_key, key in (("first_join", "first_join_unix"), ("last_join", "last_join_unix")):
            value = data.pop(legacy_key, None)
            if key not in meta:
                meta[key] = _legacy_unix(value)
        data["meta"] = meta

        stats = _as_dict(data.get("stats"))
        hours = stats.pop("playtime_hours", None)
        if "playtime_seconds" not in stats and hours is not None:
            stats["playtime_seconds"] = max(0, int(_finite_hours(hours) * 3600))
        data["stats"] = stats

        equipment = _as_dict(data.get("equipment"))
        if "held_item" not in equipment and "weapon" in equipment:
            equipment["held_item"] = equipment.pop("weapon")
        data["equipment"] = equipment

        world = _as_dict(data.get("world"))
        if "climate_tag" not in world and "biome" in world:
            world["climate_tag"] = world.pop("biome")
        if "ambient_temperature" not in world and "temperature" in world:
            world["ambient_temperature"] = world.pop("temperature")
        data["world"] = world

        data["schema_version"] = CURRENT_SCHEMA_VERSION
        return data

    @property
    def playtime_hours(self) -> float:
        return self.stats.playtime_seconds / 3600.0

    def copy_enrichment_from(self, other: "PlayerSnapshot") -> None:
        """Replace vitals, equipment and world groups with `other`'s, wholesale."""
        self.stats.health = _clone(other.stats.health)
        self.stats.hunger = _clone(other.stats.hunger)
        self.stats.stamina = _clone(other.stats.stamina)
        self.stats.ping_ms = other.stats.ping_ms
        self.stats.tiredness = other.stats.tiredness
        self.equipment = other.equipment.model_copy(deep=True)
        self.world = other.world.model_copy(deep=True)


def _clone(value: Optional[StatRange]) -> Optional[StatRange]:
    return value.model_copy() if value is not None else None


def _legacy_unix(value: Any) -> int:
    """Legacy join times were stored as strings; blank or garbage means unset."""
    if value in (None, ""):
        return 0
    try:
        return max(0, int(float(value)))
    except (TypeError, ValueError, OverflowError):
        return 0


def _as_dict(value: Any) -> dict:
    if isinstance(value, BaseModel):
        return value.model_dump()
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ValueError(f"expected an object, got {type(value).__name__}")
    return dict(value)


def _schema_version(data: dict) -> int:
    """Declared schema version; records without one are v1 only if they carry v1 keys."""
    version = data.get("schema_version")
    if version is None:
        return 1 if _LEGACY_KEYS.intersection(data) else CURRENT_SCHEMA_VERSION
    if isinstance(version, bool):
        raise ValueError("schema_version must be an integer")
    try:
        return int(version)
    except (TypeError, ValueError, OverflowError):
        raise ValueError(f"schema_version must be an integer, got {version!r}")


def _finite_hours(value: Any) -> float:
    try:
        hours = float(value)
    except (TypeError, ValueError):
        raise ValueError(f"playtime_hours must be a number, got {value!r}")
    if not math.isfinite(hours * 3600):
        raise ValueError("playtime_hours must be finite")
    return hours
