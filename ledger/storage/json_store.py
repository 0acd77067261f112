"""
JSON Snapshot Store — one file per player under a base directory.

Behavioral Contract:
- Writes go to a sibling temp file, then os.replace() onto the final name.
  A reader sees either the old record or the new one, never a partial file.
- Temp files carry a reserved prefix and suffix so directory scans skip them;
  leftovers from a crash are removed by cleanup_orphans().
- load() never raises: a missing or unparsable file reads as "no record".
- save() propagates OSError (disk full, permissions) to the caller.
"""

import base64
import os
from pathlib import Path
from typing import List, Optional

from pydantic import ValidationError

from ledger.log import get_logger
from ledger.models.snapshot import PlayerSnapshot

FILE_EXTENSION = ".json"
TEMP_PREFIX = ".~"
TEMP_SUFFIX = ".tmp"

logger = get_logger("json_store")


def encode_key(player_id: str) -> str:
    """Filesystem-safe, stable key for a player id (unpadded urlsafe base64)."""
    if not player_id:
        raise ValueError("player_id must not be empty")
    encoded = base64.urlsafe_b64encode(player_id.encode("utf-8")).decode("ascii")
    return encoded.rstrip("=")


def decode_key(key: str) -> str:
    """Inverse of encode_key, for debugging and directory listings."""
    padding = "=" * (-len(key) % 4)
    return base64.urlsafe_b64decode(key + padding).decode("utf-8")


class JsonSnapshotStore:
    """Crash-safe JSON file store."""

    name = "json"

    def __init__(self, base_path: str, cleanup_on_start: bool = True):
        self.base_path = Path(base_path)
        self.base_path.mkdir(parents=True, exist_ok=True)
        if cleanup_on_start:
            self.cleanup_orphans()

    def path_for(self, player_id: str) -> Path:
        return self.base_path / f"{encode_key(player_id)}{FILE_EXTENSION}"

    def temp_path_for(self, player_id: str) -> Path:
        return self.base_path / f"{TEMP_PREFIX}{encode_key(player_id)}{FILE_EXTENSION}{TEMP_SUFFIX}"

    def save(self, snapshot: PlayerSnapshot) -> None:
        """Atomically replace the player's record with `snapshot`."""
        final_path = self.path_for(snapshot.player_id)
        temp_path = self.temp_path_for(snapshot.player_id)
        payload = snapshot.model_dump_json(indent=2)

        try:
            with open(temp_path, "w", encoding="utf-8") as fh:
                fh.write(payload)
                fh.flush()
                os.fsync(fh.fileno())
            self._commit(temp_path, final_path)
        except OSError:
            self._discard(temp_path)
            raise

        logger.debug("snapshot_saved", player_id=snapshot.player_id, path=str(final_path))

    def _commit(self, temp_path: Path, final_path: Path) -> None:
        # Same directory, so the rename is atomic
        os.replace(temp_path, final_path)

    def _discard(self, temp_path: Path) -> None:
        try:
            temp_path.unlink(missing_ok=True)
        except OSError as exc:
            logger.warning("temp_discard_failed", path=str(temp_path), error=str(exc))

    def load(self, player_id: str) -> Optional[PlayerSnapshot]:
        """Last committed snapshot for the player, or None."""
        try:
            path = self.path_for(player_id)
            raw = path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except (OSError, ValueError) as exc:
            logger.warning("snapshot_unreadable", player_id=player_id, error=str(exc))
            return None

        try:
            return PlayerSnapshot.model_validate_json(raw)
        except ValidationError as exc:
            logger.warning(
                "snapshot_corrupt",
                player_id=player_id,
                path=str(path),
                errors=exc.error_count(),
            )
            return None
        except (TypeError, ValueError, OverflowError) as exc:
            logger.warning("snapshot_corrupt", player_id=player_id, path=str(path), error=str(exc))
            return None

    def cleanup_orphans(self) -> int:
        """Delete temp files left behind by interrupted writes. Returns the count removed."""
        removed = 0
        try:
            entries = list(self.base_path.iterdir())
        except OSError as exc:
            logger.warning("orphan_scan_failed", base_path=str(self.base_path), error=str(exc))
            return 0

        for entry in entries:
            if not _is_temp_name(entry.name):
                continue
            try:
                entry.unlink()
                removed += 1
            except OSError as exc:
                logger.warning("orphan_cleanup_failed", path=str(entry), error=str(exc))

        if removed:
            logger.info("orphans_removed", base_path=str(self.base_path), count=removed)
        return removed

    def list_player_ids(self) -> List[str]:
        """Player ids of every committed record."""
        ids = []
        for entry in sorted(self.base_path.iterdir()):
            if _is_temp_name(entry.name) or not entry.name.endswith(FILE_EXTENSION):
                continue
            key = entry.name[: -len(FILE_EXTENSION)]
            try:
                ids.append(decode_key(key))
            except (ValueError, UnicodeDecodeError):
                logger.warning("foreign_file_skipped", path=str(entry))
        return ids


def _is_temp_name(filename: str) -> bool:
    return filename.startswith(TEMP_PREFIX) and filename.endswith(TEMP_SUFFIX)
