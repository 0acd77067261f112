"""
SQLite Snapshot Store — one current row per player.

Not a history store: save() upserts the player's row inside a transaction,
so a crash mid-write leaves the previous row intact.
"""

import sqlite3
from datetime import datetime, timezone
from typing import List, Optional

from pydantic import ValidationError

from ledger.log import get_logger
from ledger.models.snapshot import PlayerSnapshot

logger = get_logger("sqlite_store")


class SqliteSnapshotStore:
    """Current-snapshot table backed by SQLite."""

    name = "sqlite"

    def __init__(self, db_path: str = ":memory:"):
        self.db_path = db_path
        self._conn = sqlite3.connect(db_path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._init_schema()

    def _init_schema(self) -> None:
        """Create the snapshots table if it doesn't exist."""
        self._conn.execute("""
            CREATE TABLE IF NOT EXISTS snapshots (
                player_id TEXT PRIMARY KEY,
                schema_version INTEGER NOT NULL,
                name TEXT NOT NULL,
                online INTEGER NOT NULL DEFAULT 0,
                deaths INTEGER NOT NULL DEFAULT 0,
                playtime_seconds INTEGER NOT NULL DEFAULT 0,
                last_seen_unix INTEGER NOT NULL DEFAULT 0,
                snapshot_json TEXT NOT NULL,
                updated_at TEXT NOT NULL
            )
        """)
        self._conn.execute("""
            CREATE INDEX IF NOT EXISTS idx_snapshots_online ON snapshots(online)
        """)
        self._conn.commit()

    def save(self, snapshot: PlayerSnapshot) -> None:
        """Insert or replace the player's current snapshot."""
        with self._conn:
            self._conn.execute(
                """
                INSERT INTO snapshots (
                    player_id, schema_version, name, online, deaths,
                    playtime_seconds, last_seen_unix, snapshot_json, updated_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(player_id) DO UPDATE SET
                    schema_version = excluded.schema_version,
                    name = excluded.name,
                    online = excluded.online,
                    deaths = excluded.deaths,
                    playtime_seconds = excluded.playtime_seconds,
                    last_seen_unix = excluded.last_seen_unix,
                    snapshot_json = excluded.snapshot_json,
                    updated_at = excluded.updated_at
                """,
                (
                    snapshot.player_id,
                    snapshot.schema_version,
                    snapshot.name,
                    int(snapshot.online),
                    snapshot.stats.deaths,
                    snapshot.stats.playtime_seconds,
                    snapshot.meta.last_seen_unix,
                    snapshot.model_dump_json(),
                    datetime.now(timezone.utc).isoformat(),
                ),
            )

    def load(self, player_id: str) -> Optional[PlayerSnapshot]:
        """Current snapshot for the player, or None if absent or unparsable."""
        try:
            row = self._conn.execute(
                "SELECT snapshot_json FROM snapshots WHERE player_id = ?",
                (player_id,),
            ).fetchone()
        except sqlite3.Error as exc:
            logger.warning("snapshot_unreadable", player_id=player_id, error=str(exc))
            return None

        if not row:
            return None
        try:
            return PlayerSnapshot.model_validate_json(row["snapshot_json"])
        except ValidationError as exc:
            logger.warning("snapshot_corrupt", player_id=player_id, errors=exc.error_count())
            return None
        except (TypeError, ValueError, OverflowError) as exc:
            logger.warning("snapshot_corrupt", player_id=player_id, error=str(exc))
            return None

    def online_player_ids(self) -> List[str]:
        """Players whose latest snapshot says they are online."""
        rows = self._conn.execute(
            "SELECT player_id FROM snapshots WHERE online = 1 ORDER BY player_id"
        ).fetchall()
        return [r["player_id"] for r in rows]

    def count(self) -> int:
        """Total number of stored players."""
        row = self._conn.execute("SELECT COUNT(*) as cnt FROM snapshots").fetchone()
        return row["cnt"]

    def close(self) -> None:
        """Close the database connection."""
        self._conn.close()
