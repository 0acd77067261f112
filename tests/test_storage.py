"""Tests for the JSON and SQLite snapshot stores."""

import json
import os
from pathlib import Path

import pytest

from ledger.models.snapshot import PlayerSnapshot, StatRange
from ledger.storage.json_store import (
    JsonSnapshotStore,
    decode_key,
    encode_key,
)
from ledger.storage.sqlite_store import SqliteSnapshotStore


def _make_snapshot(player_id: str = "p1", deaths: int = 2, playtime: int = 300) -> PlayerSnapshot:
    snap = PlayerSnapshot(player_id=player_id, name="Ada", online=True)
    snap.meta.first_join_unix = 1_700_000_000
    snap.meta.last_join_unix = 1_700_000_500
    snap.meta.last_seen_unix = 1_700_000_600
    snap.stats.deaths = deaths
    snap.stats.playtime_seconds = playtime
    snap.stats.health = StatRange(current=12.5, max=20)
    snap.stats.tiredness = 0.0
    snap.equipment.armor = ["game:helmet", "none", "game:boots"]
    snap.equipment.held_item = "game:axe"
    snap.world.climate_tag = "temperate"
    snap.world.ambient_temperature = 19.0
    snap.world.position = [10.0, 64.0, -3.5]
    return snap


CORRUPT_RECORDS = [
    b"{not json",
    b"[]",
    b'{"name": "no id"}',
    b"\xff\xfe\x00",
    b'{"schema_version": "two", "player_id": "p1"}',
    b'{"schema_version": [2], "player_id": "p1"}',
    b'{"uid": "p1", "stats": {"playtime_hours": "inf"}}',
    b'{"uid": "p1", "stats": {"playtime_hours": [1]}}',
    b'{"uid": "p1", "meta": [1, 2, 3]}',
    b'{"player_id": "p1", "meta": [1, 2, 3]}',
]


class TestKeys:
    def test_unsafe_ids_become_safe_names(self):
        key = encode_key("a/b\\c:d+e")
        assert "/" not in key and "\\" not in key and ":" not in key
        assert decode_key(key) == "a/b\\c:d+e"

    def test_stable_and_distinct(self):
        assert encode_key("p1") == encode_key("p1")
        assert encode_key("p1") != encode_key("p2")

    def test_empty_id_rejected(self):
        with pytest.raises(ValueError):
            encode_key("")


class TestJsonSnapshotStore:
    def test_round_trip_on_fresh_instance(self, tmp_path):
        snap = _make_snapshot()
        JsonSnapshotStore(str(tmp_path)).save(snap)

        loaded = JsonSnapshotStore(str(tmp_path)).load("p1")
        assert loaded == snap
        assert loaded.stats.ping_ms is None
        assert loaded.stats.tiredness == 0.0

    def test_save_overwrites_previous(self, tmp_path):
        store = JsonSnapshotStore(str(tmp_path))
        store.save(_make_snapshot(deaths=1))
        store.save(_make_snapshot(deaths=7))
        assert store.load("p1").stats.deaths == 7

    def test_file_layout(self, tmp_path):
        store = JsonSnapshotStore(str(tmp_path))
        store.save(_make_snapshot(player_id="odd/id"))

        names = os.listdir(tmp_path)
        assert names == [f"{encode_key('odd/id')}.json"]
        data = json.loads((tmp_path / names[0]).read_text())
        assert data["player_id"] == "odd/id"
        assert data["schema_version"] == 2

    def test_load_missing_returns_none(self, tmp_path):
        assert JsonSnapshotStore(str(tmp_path)).load("nobody") is None

    @pytest.mark.parametrize("content", CORRUPT_RECORDS)
    def test_load_corrupt_returns_none(self, tmp_path, content):
        store = JsonSnapshotStore(str(tmp_path))
        store.path_for("p1").write_bytes(content)
        assert store.load("p1") is None

    def test_numeric_string_schema_version_is_accepted(self, tmp_path):
        store = JsonSnapshotStore(str(tmp_path))
        store.path_for("p1").write_text('{"schema_version": "2", "player_id": "p1", "name": "Ada"}')
        loaded = store.load("p1")
        assert loaded.schema_version == 2
        assert loaded.name == "Ada"

    def test_unparsable_legacy_join_time_reads_as_unset(self, tmp_path):
        store = JsonSnapshotStore(str(tmp_path))
        store.path_for("p1").write_text('{"uid": "p1", "first_join": "inf"}')
        assert store.load("p1").meta.first_join_unix == 0

    def test_load_upgrades_legacy_file(self, tmp_path):
        store = JsonSnapshotStore(str(tmp_path))
        store.path_for("p1").write_text(json.dumps({
            "uid": "p1",
            "name": "Ada",
            "first_join": "1600000000",
            "stats": {"deaths": 3, "playtime_hours": 2},
        }))
        loaded = store.load("p1")
        assert loaded.stats.playtime_seconds == 7200
        assert loaded.meta.first_join_unix == 1600000000

    def test_failed_rename_keeps_committed_record(self, tmp_path, monkeypatch):
        store = JsonSnapshotStore(str(tmp_path))
        store.save(_make_snapshot(deaths=1))
        committed = store.path_for("p1").read_bytes()

        def broken_replace(src, dst):
            raise OSError("disk full")

        monkeypatch.setattr(os, "replace", broken_replace)
        with pytest.raises(OSError):
            store.save(_make_snapshot(deaths=99))

        assert store.path_for("p1").read_bytes() == committed
        assert not store.temp_path_for("p1").exists()

    def test_write_failure_propagates(self, tmp_path):
        base = tmp_path / "gone"
        store = JsonSnapshotStore(str(base))
        base.rmdir()
        with pytest.raises(OSError):
            store.save(_make_snapshot())

    def test_crash_leftover_is_cleaned_without_touching_committed(self, tmp_path):
        store = JsonSnapshotStore(str(tmp_path))
        store.save(_make_snapshot(deaths=1))
        committed = store.path_for("p1").read_bytes()

        # Interrupted write: temp file written, rename never happened
        store.temp_path_for("p1").write_text('{"player_id": "p1", "stats": {"dea')

        assert store.load("p1").stats.deaths == 1
        assert store.cleanup_orphans() == 1
        assert not store.temp_path_for("p1").exists()
        assert store.path_for("p1").read_bytes() == committed

    def test_startup_removes_orphans(self, tmp_path):
        orphan = tmp_path / f".~{encode_key('p1')}.json.tmp"
        orphan.write_text("partial")

        JsonSnapshotStore(str(tmp_path))
        assert not orphan.exists()

    def test_cleanup_failures_are_absorbed(self, tmp_path, monkeypatch):
        store = JsonSnapshotStore(str(tmp_path))
        store.temp_path_for("p1").write_text("partial")

        def broken_unlink(self, missing_ok=False):
            raise PermissionError("read-only")

        monkeypatch.setattr(Path, "unlink", broken_unlink)
        assert store.cleanup_orphans() == 0

    def test_list_player_ids_skips_temp_files(self, tmp_path):
        store = JsonSnapshotStore(str(tmp_path))
        store.save(_make_snapshot(player_id="a"))
        store.save(_make_snapshot(player_id="b/c"))
        store.temp_path_for("zzz").write_text("partial")

        assert sorted(store.list_player_ids()) == ["a", "b/c"]


class TestSqliteSnapshotStore:
    def setup_method(self):
        self.store = SqliteSnapshotStore(db_path=":memory:")

    def teardown_method(self):
        self.store.close()

    def test_round_trip(self):
        snap = _make_snapshot()
        self.store.save(snap)
        assert self.store.load("p1") == snap

    def test_one_row_per_player(self):
        self.store.save(_make_snapshot(deaths=1))
        self.store.save(_make_snapshot(deaths=2))
        self.store.save(_make_snapshot(player_id="p2"))

        assert self.store.count() == 2
        assert self.store.load("p1").stats.deaths == 2

    def test_online_player_ids(self):
        online = _make_snapshot(player_id="on")
        offline = _make_snapshot(player_id="off")
        offline.online = False
        self.store.save(online)
        self.store.save(offline)

        assert self.store.online_player_ids() == ["on"]

    def test_load_missing_returns_none(self):
        assert self.store.load("nobody") is None

    @pytest.mark.parametrize("content", CORRUPT_RECORDS[4:])
    def test_load_corrupt_returns_none(self, content):
        self.store.save(_make_snapshot())
        with self.store._conn:
            self.store._conn.execute(
                "UPDATE snapshots SET snapshot_json = ? WHERE player_id = ?",
                (content.decode("utf-8"), "p1"),
            )
        assert self.store.load("p1") is None

    def test_file_backed_survives_reopen(self, tmp_path):
        db_path = str(tmp_path / "ledger.db")
        first = SqliteSnapshotStore(db_path)
        first.save(_make_snapshot())
        first.close()

        second = SqliteSnapshotStore(db_path)
        assert second.load("p1").stats.playtime_seconds == 300
        second.close()
