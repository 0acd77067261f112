"""
Ledger Service — drives the registry from join, leave, death and tick triggers.

Each trigger is one synchronous unit of work that ends in a persisted,
consistent snapshot:

  join   seed from store (first time in this process) → mark online → persist
  leave  mark offline (commits the interval) → persist
  death  increment deaths → persist
  tick   connected players: mark online → enrich → persist
         everyone else known: online = False, last_seen untouched → persist

Only the tick calls the enrichment provider. Persisting sanitizes the name,
backfills first_join if unset and fans out to every store in order; a store
failure does not stop the others and surfaces as PersistError afterwards.
"""

import asyncio
import threading
from datetime import datetime
from typing import Callable, List, Optional, Sequence

from ledger.log import get_logger
from ledger.models.config import DEFAULT_INTERVAL_SECONDS, CaptureConfig
from ledger.models.report import StoreFailure, TickReport
from ledger.models.snapshot import PlayerSnapshot
from ledger.provider.snapshot_provider import SnapshotProvider, WorldView
from ledger.registry.player_registry import PlayerRegistry, utc_now
from ledger.storage.base import PersistError, SnapshotStore

UNKNOWN_NAME = "Unknown"

logger = get_logger("ledger_service")


class LedgerService:
    """Orchestrates registry, enrichment provider and durable stores."""

    def __init__(
        self,
        world: WorldView,
        registry: PlayerRegistry,
        provider: SnapshotProvider,
        stores: Sequence[SnapshotStore],
        seed_store: Optional[SnapshotStore] = None,
        clock: Callable[[], datetime] = utc_now,
        interval_seconds: int = DEFAULT_INTERVAL_SECONDS,
    ):
        self.world = world
        self.registry = registry
        self.provider = provider
        self.stores: List[SnapshotStore] = list(stores)
        self.seed_store = seed_store
        self.interval_seconds = interval_seconds
        self._clock = clock
        self._lock = threading.RLock()
        self._running = False

    @property
    def status(self) -> str:
        return "running" if self._running else "stopped"

    # === LIFECYCLE TRIGGERS ===

    def on_player_join(self, player_id: str, name: str) -> PlayerSnapshot:
        with self._lock:
            now = self._clock()
            unix = _unix(now)

            snapshot = self._reconcile(player_id, name, unix)
            snapshot.online = True
            snapshot.meta.last_join_unix = unix
            snapshot.meta.last_seen_unix = unix

            self.registry.mark_online(player_id, now)

            self._sync_accounting(player_id, snapshot, now)
            self._persist(snapshot, unix)
            logger.info("player_joined", player_id=player_id)
            return snapshot

    def on_player_leave(self, player_id: str, name: str) -> PlayerSnapshot:
        with self._lock:
            now = self._clock()
            unix = _unix(now)

            snapshot = self._reconcile(player_id, name, unix)
            snapshot.online = False
            snapshot.meta.last_seen_unix = unix

            self.registry.mark_offline(player_id, now)

            self._sync_accounting(player_id, snapshot, now)
            self._persist(snapshot, unix)
            logger.info(
                "player_left",
                player_id=player_id,
                playtime_seconds=snapshot.stats.playtime_seconds,
            )
            return snapshot

    def on_player_death(self, player_id: str, name: str) -> PlayerSnapshot:
        with self._lock:
            now = self._clock()
            unix = _unix(now)

            # Seed before counting, otherwise the seed would be skipped
            snapshot = self._reconcile(player_id, name, unix)
            self.registry.increment_deaths(player_id)

            # Death is a "seen" event
            snapshot.meta.last_seen_unix = unix

            self._sync_accounting(player_id, snapshot, now)
            self._persist(snapshot, unix)
            logger.info("player_died", player_id=player_id, deaths=snapshot.stats.deaths)
            return snapshot

    def on_interval_tick(self) -> TickReport:
        """Re-enrich connected players, reconcile everyone else."""
        with self._lock:
            now = self._clock()
            unix = _unix(now)
            report = TickReport(tick_unix=unix)

            online = self.world.online_players()
            online_ids = {p.player_id for p in online}

            for live in online:
                try:
                    self._tick_online(live.player_id, live.name, now, unix)
                    report.online_persisted.append(live.player_id)
                except PersistError as exc:
                    report.failures.extend(exc.failures)
                    logger.error("tick_player_failed", player_id=live.player_id, error=str(exc))
                except Exception as exc:
                    report.failures.append(StoreFailure(
                        player_id=live.player_id, store="provider", error=str(exc),
                    ))
                    logger.exception("tick_player_failed", player_id=live.player_id)

            for snapshot in self.registry.all():
                if snapshot.player_id in online_ids:
                    continue
                try:
                    self._tick_offline(snapshot, now, unix)
                    report.offline_persisted.append(snapshot.player_id)
                except PersistError as exc:
                    report.failures.extend(exc.failures)
                    logger.error("tick_player_failed", player_id=snapshot.player_id, error=str(exc))

            logger.info(
                "tick_completed",
                online=len(report.online_persisted),
                offline=len(report.offline_persisted),
                failures=len(report.failures),
            )
            return report

    def _tick_online(self, player_id: str, name: str, now: datetime, unix: int) -> None:
        self._reconcile(player_id, name, unix)
        self.registry.mark_online(player_id, now)

        snapshot = self.provider.create_snapshot_for(player_id)
        snapshot.online = True
        snapshot.meta.last_seen_unix = unix

        self._sync_accounting(player_id, snapshot, now)
        self._persist(snapshot, unix)

    def _tick_offline(self, snapshot: PlayerSnapshot, now: datetime, unix: int) -> None:
        player_id = snapshot.player_id
        if self.registry.is_online(player_id):
            # Disconnected without a leave trigger
            self.registry.mark_offline(player_id, now)
            logger.warning("stale_interval_closed", player_id=player_id)

        snapshot.online = False
        # last_seen stays as-is so consumers can tell how old the data is
        self._sync_accounting(player_id, snapshot, now)
        self._persist(snapshot, unix)

    # === CONFIGURATION ===

    def update_capture_config(self, capture: CaptureConfig) -> None:
        """Apply a new capture toggle set; the next tick uses it."""
        with self._lock:
            self.provider.update_capture(capture)
        logger.info("capture_updated", capture=capture.model_dump())

    def update_interval(self, interval_seconds: int) -> None:
        self.interval_seconds = interval_seconds
        logger.info("interval_updated", interval_seconds=interval_seconds)

    # === INTERNALS ===

    def _reconcile(self, player_id: str, name: str, unix: int) -> PlayerSnapshot:
        """Registry snapshot for the player, seeded from storage on first touch."""
        snapshot = self.registry.get_or_create(player_id, name, lambda: unix)
        if self.seed_store is None or self.registry.has_runtime_state(player_id):
            return snapshot

        persisted = self.seed_store.load(player_id)
        if persisted is None:
            return snapshot

        applied = self.registry.seed_from_persisted(
            player_id,
            persisted.stats.deaths,
            persisted.stats.playtime_seconds,
            persisted.meta.first_join_unix,
        )
        if applied:
            # Keep last known vitals/equipment/world until the next tick
            snapshot.copy_enrichment_from(persisted)
            snapshot.meta.last_join_unix = max(
                snapshot.meta.last_join_unix, persisted.meta.last_join_unix
            )
            snapshot.meta.last_seen_unix = max(
                snapshot.meta.last_seen_unix, persisted.meta.last_seen_unix
            )
        return snapshot

    def _sync_accounting(self, player_id: str, snapshot: PlayerSnapshot, now: datetime) -> None:
        self.registry.apply_runtime_state(player_id, snapshot, now)

    def _persist(self, snapshot: PlayerSnapshot, unix: int) -> None:
        if not snapshot.name or not snapshot.name.strip():
            snapshot.name = UNKNOWN_NAME

        # Legacy records may lack a first join
        if snapshot.meta.first_join_unix <= 0:
            snapshot.meta.first_join_unix = unix

        failures: List[StoreFailure] = []
        for store in self.stores:
            try:
                store.save(snapshot)
            except Exception as exc:
                failures.append(StoreFailure(
                    player_id=snapshot.player_id,
                    store=getattr(store, "name", type(store).__name__),
                    error=str(exc),
                ))
                logger.error(
                    "persist_failed",
                    player_id=snapshot.player_id,
                    store=failures[-1].store,
                    error=str(exc),
                )

        if failures:
            raise PersistError(snapshot.player_id, failures)

    # === TICK LOOP ===

    async def run_async(self, stop_event: Optional[asyncio.Event] = None) -> None:
        """Run on_interval_tick every interval_seconds until stop_event is set."""
        self._running = True
        if stop_event is None:
            stop_event = asyncio.Event()

        try:
            while not stop_event.is_set():
                try:
                    self.on_interval_tick()
                except Exception:
                    logger.exception("tick_failed")
                try:
                    await asyncio.wait_for(
                        stop_event.wait(),
                        timeout=self.interval_seconds,
                    )
                except asyncio.TimeoutError:
                    continue
        finally:
            self._running = False


def _unix(moment: datetime) -> int:
    return int(moment.timestamp())
