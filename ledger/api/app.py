"""
Ledger Admin API — FastAPI endpoints.

Exposes the service to a host process or an operator:
- Player lifecycle triggers (join, leave, death)
- Manual tick
- Player snapshot inspection
- Configuration reload
"""

from typing import List, Optional

from fastapi import FastAPI, HTTPException
from pydantic import BaseModel

from ledger.bootstrap import LedgerRuntime, build_service
from ledger.config import ConfigError
from ledger.models.snapshot import StatRange
from ledger.provider.snapshot_provider import InMemoryWorld, LivePlayer
from ledger.storage.base import PersistError


# --- Request Models ---

class JoinRequest(BaseModel):
    player_id: str
    name: str = ""


class PlayerEventRequest(BaseModel):
    name: str = ""


class LiveStateRequest(BaseModel):
    name: str
    health: Optional[StatRange] = None
    hunger: Optional[StatRange] = None
    stamina: Optional[StatRange] = None
    ping_ms: Optional[float] = None
    tiredness: Optional[float] = None
    armor: Optional[List[Optional[str]]] = None
    held_item: Optional[str] = None
    position: Optional[List[float]] = None
    temperature: Optional[float] = None
    rainfall: Optional[float] = None


# --- Application Factory ---

def create_app(runtime: Optional[LedgerRuntime] = None) -> FastAPI:
    """Create and configure the FastAPI application."""

    app = FastAPI(
        title="Ledger API",
        description="Player session accounting and snapshots",
        version="0.1.0",
    )

    rt = runtime or build_service()
    service = rt.service

    # Store components on app state for access in endpoints
    app.state.runtime = rt

    def _persist_failed(exc: PersistError) -> HTTPException:
        return HTTPException(503, {
            "message": str(exc),
            "failures": [f.model_dump() for f in exc.failures],
        })

    def _name_for(player_id: str, name: str) -> str:
        if name:
            return name
        live = rt.world.player_by_id(player_id)
        return live.name if live else ""

    # === HEALTH ===

    @app.get("/health")
    def health():
        return {
            "status": "ok",
            "tick_loop": service.status,
            "players": len(service.registry.all()),
        }

    # === PLAYERS ===

    @app.get("/players")
    def list_players():
        """Every player known to this process."""
        return [s.model_dump(mode="json") for s in service.registry.all()]

    @app.get("/players/{player_id}")
    def get_player(player_id: str):
        """Cached snapshot, or the last persisted one."""
        snapshot = service.registry.get(player_id)
        if snapshot is None and service.seed_store is not None:
            snapshot = service.seed_store.load(player_id)
        if snapshot is None:
            raise HTTPException(404, "Player not found")
        return snapshot.model_dump(mode="json")

    @app.post("/players/join")
    def join(req: JoinRequest):
        if isinstance(rt.world, InMemoryWorld) and rt.world.player_by_id(req.player_id) is None:
            rt.world.connect(LivePlayer(player_id=req.player_id, name=req.name))
        try:
            snapshot = service.on_player_join(req.player_id, _name_for(req.player_id, req.name))
        except PersistError as exc:
            raise _persist_failed(exc)
        return snapshot.model_dump(mode="json")

    @app.put("/players/{player_id}/live")
    def update_live_state(player_id: str, req: LiveStateRequest):
        """Push what the host world currently knows about a connected player."""
        if not isinstance(rt.world, InMemoryWorld):
            raise HTTPException(409, "World is not host-fed")
        if rt.world.player_by_id(player_id) is None:
            raise HTTPException(404, "Player not connected")
        rt.world.update(LivePlayer(player_id=player_id, **req.model_dump()))
        return {"player_id": player_id, "updated": True}

    @app.post("/players/{player_id}/leave")
    def leave(player_id: str, req: Optional[PlayerEventRequest] = None):
        name = _name_for(player_id, req.name if req else "")
        if isinstance(rt.world, InMemoryWorld):
            rt.world.disconnect(player_id)
        try:
            snapshot = service.on_player_leave(player_id, name)
        except PersistError as exc:
            raise _persist_failed(exc)
        return snapshot.model_dump(mode="json")

    @app.post("/players/{player_id}/death")
    def death(player_id: str, req: Optional[PlayerEventRequest] = None):
        name = _name_for(player_id, req.name if req else "")
        try:
            snapshot = service.on_player_death(player_id, name)
        except PersistError as exc:
            raise _persist_failed(exc)
        return snapshot.model_dump(mode="json")

    # === TICK ===

    @app.post("/tick")
    def tick():
        """Run one tick now."""
        report = service.on_interval_tick()
        return report.model_dump(mode="json")

    # === ADMIN ===

    @app.get("/config")
    def get_config():
        return rt.config.model_dump(mode="json")

    @app.post("/admin/reload")
    def reload_config():
        """Re-read the config file and apply capture toggles and interval."""
        if rt.config_path is None:
            raise HTTPException(409, "No config file to reload")
        try:
            config = rt.reload()
        except ConfigError as exc:
            raise HTTPException(422, str(exc))
        return config.model_dump(mode="json")

    return app
