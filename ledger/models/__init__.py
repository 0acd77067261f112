"""Ledger data models."""

from ledger.models.config import CaptureConfig, LedgerConfig
from ledger.models.report import StoreFailure, TickReport
from ledger.models.snapshot import (
    PlayerEquipment,
    PlayerSnapshot,
    PlayerStats,
    PlayerWorldInfo,
    SnapshotMeta,
    StatRange,
)

__all__ = [
    "CaptureConfig",
    "LedgerConfig",
    "PlayerEquipment",
    "PlayerSnapshot",
    "PlayerStats",
    "PlayerWorldInfo",
    "SnapshotMeta",
    "StatRange",
    "StoreFailure",
    "TickReport",
]
