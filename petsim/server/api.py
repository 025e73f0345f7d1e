"""
HTTP API for the game server. All routes live under /api.
"""

import logging
import os
import re
import time
import uuid
from typing import Any, Dict, Optional

from fastapi import APIRouter, Body, FastAPI, File, HTTPException, Request, UploadFile
from fastapi.concurrency import run_in_threadpool
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from ..core.config import Settings
from ..core.errors import NotFound, ValidationFailure
from ..models.social import TRADE_STATUSES, Clan, Trade
from ..models.timestamps import utc_now_iso
from .document_store import DocumentStore, GameRepository
from .realtime import Broadcaster


def sanitize_filename(filename: str) -> str:
    name = os.path.basename(filename or "").strip()
    return re.sub(r"[^A-Za-z0-9._-]", "_", name)


def _write_file(directory: str, filename: str, content: bytes):
    os.makedirs(directory, exist_ok=True)
    with open(os.path.join(directory, filename), "wb") as f:
        f.write(content)


def build_router(store: DocumentStore, broadcaster: Broadcaster, settings: Settings) -> APIRouter:
    """
    Routes that only touch the store are plain functions and run in the
    threadpool. Routes that also publish or move realtime connections are
    coroutines and push their store calls to the threadpool themselves.
    """
    router = APIRouter(prefix="/api")
    games = GameRepository(store)

    # ========== GAME ==========

    @router.get("/game/{player_id}")
    def get_game(player_id: str):
        return games.load_or_create(player_id)

    @router.post("/game/{player_id}")
    def save_game(player_id: str, state: Dict[str, Any] = Body(...)):
        games.save(player_id, state)
        return {"success": True, "message": "Game saved"}

    @router.get("/history/{player_id}")
    def get_history(player_id: str):
        game = games.get(player_id)
        if game is None:
            raise HTTPException(status_code=404, detail="Player not found")
        return game.get("gameHistory", [])

    # ========== CLANS ==========

    @router.get("/clans")
    def list_clans():
        return store.values("clans")

    @router.post("/clans")
    async def create_clan(body: Dict[str, Any] = Body(...)):
        try:
            clan = Clan.found(str(uuid.uuid4()), body.get("name"), body.get("playerId"), body.get("playerName"))
        except ValidationFailure as e:
            raise HTTPException(status_code=400, detail=str(e))

        await run_in_threadpool(store.put, "clans", clan.id, clan.to_dict())
        broadcaster.assign_group(body.get("playerId"), clan.id)
        logging.info(f"Clan created: {clan.name} ({clan.id}) by {body.get('playerId')}")
        return {"success": True, "clan": clan.to_dict()}

    @router.post("/clans/{clan_id}/join")
    async def join_clan(clan_id: str, body: Dict[str, Any] = Body(...)):
        player_id = body.get("playerId")

        def _join(clans):
            if clan_id not in clans:
                raise NotFound(f"Clan {clan_id} not found")
            clan = Clan.from_dict(clans[clan_id])
            if clan.add_member(player_id, body.get("playerName")):
                logging.info(f"Player {player_id} joined clan {clan.name}")
            clans[clan_id] = clan.to_dict()
            return clan

        try:
            clan = await run_in_threadpool(store.update, "clans", _join)
        except NotFound as e:
            raise HTTPException(status_code=404, detail=str(e))
        except ValidationFailure as e:
            raise HTTPException(status_code=400, detail=str(e))

        broadcaster.assign_group(player_id, clan.id)
        return {"success": True, "clan": clan.to_dict()}

    # ========== TRADES ==========

    @router.get("/trades")
    def list_trades():
        return store.values("trades")

    @router.post("/trades")
    async def create_trade(draft: Dict[str, Any] = Body(...)):
        trade = Trade.from_dict(draft)
        if not trade.player_id:
            raise HTTPException(status_code=400, detail="playerId is required")

        trade.id = str(uuid.uuid4())
        trade.status = "active"
        trade.created = utc_now_iso()
        await run_in_threadpool(store.put, "trades", trade.id, trade.to_dict())

        await broadcaster.publish_global({"type": "NEW_TRADE", "payload": trade.to_dict()})
        return {"success": True, "trade": trade.to_dict()}

    @router.post("/trades/{trade_id}/status")
    async def update_trade_status(trade_id: str, body: Dict[str, Any] = Body(...)):
        status = body.get("status")
        if status not in TRADE_STATUSES:
            raise HTTPException(status_code=400, detail=f"Unknown trade status '{status}'")

        def _transition(trades):
            if trade_id not in trades:
                raise NotFound(f"Trade {trade_id} not found")
            trade = Trade.from_dict(trades[trade_id])
            trade.transition(status)
            trades[trade_id] = trade.to_dict()
            return trade

        try:
            trade = await run_in_threadpool(store.update, "trades", _transition)
        except NotFound as e:
            raise HTTPException(status_code=404, detail=str(e))
        except ValidationFailure as e:
            raise HTTPException(status_code=409, detail=str(e))

        await broadcaster.publish_global({"type": "TRADE_UPDATE", "payload": trade.to_dict()})
        return {"success": True, "trade": trade.to_dict()}

    # ========== UPLOADS ==========

    @router.post("/upload")
    async def upload_image(image: Optional[UploadFile] = File(None)):
        if image is None:
            raise HTTPException(status_code=400, detail="No file uploaded")

        original = sanitize_filename(image.filename)
        if not original:
            raise HTTPException(status_code=400, detail="Uploaded file has no name")

        filename = f"{int(time.time() * 1000)}-{original}"
        content = await image.read()
        await run_in_threadpool(_write_file, settings.upload_dir, filename, content)

        logging.info(f"Stored upload {filename} ({len(content)} bytes)")
        return {"success": True, "filename": filename, "path": f"/uploads/{filename}"}

    return router


def create_app(store: DocumentStore, broadcaster: Broadcaster, settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or Settings()
    app = FastAPI(title="Pet Simulator")
    app.include_router(build_router(store, broadcaster, settings))

    @app.exception_handler(StarletteHTTPException)
    async def http_error(request: Request, exc: StarletteHTTPException):
        return JSONResponse(status_code=exc.status_code, content={"success": False, "message": str(exc.detail)})

    @app.exception_handler(RequestValidationError)
    async def validation_error(request: Request, exc: RequestValidationError):
        return JSONResponse(status_code=400, content={"success": False, "message": "Invalid request body"})

    return app
