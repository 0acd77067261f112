"""
Wiring — builds stores, registry, provider and service from a LedgerConfig,
and applies configuration reloads to a running runtime.
"""

from pathlib import Path
from typing import List, Optional

from ledger.config import load_config
from ledger.log import configure_logging, get_logger
from ledger.models.config import LedgerConfig
from ledger.provider.snapshot_provider import InMemoryWorld, WorldSnapshotProvider, WorldView
from ledger.registry.player_registry import PlayerRegistry
from ledger.service.ledger_service import LedgerService
from ledger.storage.base import SnapshotStore
from ledger.storage.json_store import JsonSnapshotStore
from ledger.storage.sqlite_store import SqliteSnapshotStore

logger = get_logger("bootstrap")


def build_stores(config: LedgerConfig) -> List[SnapshotStore]:
    """Enabled stores in fan-out order: JSON first, then SQLite."""
    stores: List[SnapshotStore] = []
    if config.enable_json:
        stores.append(JsonSnapshotStore(config.base_path))
    if config.enable_sqlite:
        Path(config.base_path).mkdir(parents=True, exist_ok=True)
        stores.append(SqliteSnapshotStore(str(Path(config.base_path) / config.sqlite_filename)))
    if not stores:
        logger.warning("no_stores_enabled")
    return stores


class LedgerRuntime:
    """A wired service plus the config it was built from."""

    def __init__(
        self,
        config: LedgerConfig,
        service: LedgerService,
        world: WorldView,
        config_path: Optional[str] = None,
    ):
        self.config = config
        self.service = service
        self.world = world
        self.config_path = config_path

    def reload(self) -> LedgerConfig:
        """
        Re-read the config file and apply what can change at runtime:
        the capture toggles and the tick interval.
        """
        if self.config_path is None:
            return self.config

        new_config = load_config(self.config_path)
        for field in ("base_path", "enable_json", "enable_sqlite", "sqlite_filename"):
            if getattr(new_config, field) != getattr(self.config, field):
                logger.warning("reload_field_ignored", field=field, reason="restart_required")

        self.service.update_capture_config(new_config.capture)
        if new_config.interval_seconds != self.config.interval_seconds:
            self.service.update_interval(new_config.interval_seconds)

        self.config = self.config.model_copy(update={
            "capture": new_config.capture,
            "interval_seconds": new_config.interval_seconds,
            "log_level": new_config.log_level,
        })
        logger.info("config_reloaded", path=self.config_path)
        return self.config


def build_service(
    config: Optional[LedgerConfig] = None,
    world: Optional[WorldView] = None,
    config_path: Optional[str] = None,
) -> LedgerRuntime:
    """Build a LedgerRuntime from a config object or a config file path."""
    if config is None:
        config = load_config(config_path) if config_path else LedgerConfig()

    configure_logging(config.log_level)

    world = world if world is not None else InMemoryWorld()
    registry = PlayerRegistry()
    provider = WorldSnapshotProvider(world, registry, capture=config.capture)
    stores = build_stores(config)

    # Seeding reads from the first store that can load
    seed_store = stores[0] if stores else None

    service = LedgerService(
        world=world,
        registry=registry,
        provider=provider,
        stores=stores,
        seed_store=seed_store,
        interval_seconds=config.interval_seconds,
    )

    logger.info(
        "ledger_initialized",
        interval_seconds=config.interval_seconds,
        base_path=config.base_path,
        stores=[s.name for s in stores],
    )
    return LedgerRuntime(config, service, world, config_path=config_path)
