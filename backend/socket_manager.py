from fastapi import WebSocket, WebSocketDisconnect
from pydantic import ValidationError
from typing import Dict, List, Optional
import json
import time
import asyncio
import logging

import config
from errors import GameError, InsufficientFunds, InvalidState, RoomNotFound
from game_room import Emission, Room
from question_catalog import build_default_catalog
from schemas import (
    BuyUpgradeMessage,
    CreateRoomMessage,
    JoinRoomMessage,
    StartGameMessage,
    SubmitAnswerMessage,
)
from session_registry import SessionRegistry

logger = logging.getLogger(__name__)


class SessionContext:
    """Per-connection state: who is talking and which room they are in."""

    def __init__(self, client_id: str, websocket: WebSocket):
        self.client_id = client_id
        self.websocket = websocket
        self.identity: Optional[str] = None
        self.room_code: Optional[str] = None
        self.msg_timestamps: List[float] = []

    def bind(self, identity: str, room_code: str):
        self.identity = identity
        self.room_code = room_code


class SocketManager:
    def __init__(self, registry: Optional[SessionRegistry] = None):
        self.registry = registry or SessionRegistry(build_default_catalog())
        self.connections: Dict[str, Dict[str, WebSocket]] = {}  # room_code -> identity -> ws
        self.locks: Dict[str, asyncio.Lock] = {}
        self.allowed_origins: List[str] = []
        self._tick_task: Optional[asyncio.Task] = None
        self._handlers = {
            "create_room": self._create_room,
            "join_room": self._join_room,
            "start_game": self._start_game,
            "submit_answer": self._submit_answer,
            "buy_upgrade": self._buy_upgrade,
        }

    def _lock(self, room_code: str) -> asyncio.Lock:
        return self.locks.setdefault(room_code, asyncio.Lock())

    # --- Periodic tick: timed games and room reaping ---

    def start_tick_loop(self):
        """Start the background tick task."""
        if self._tick_task is None:
            self._tick_task = asyncio.create_task(self._tick_loop())

    async def stop_tick_loop(self):
        if self._tick_task:
            self._tick_task.cancel()
            try:
                await self._tick_task
            except asyncio.CancelledError:
                pass
            self._tick_task = None

    async def _tick_loop(self):
        while True:
            try:
                await asyncio.sleep(config.TICK_INTERVAL_SECONDS)
                await self.tick()
            except asyncio.CancelledError:
                break
            except Exception:
                logger.exception("Error in room tick loop")

    async def tick(self):
        for room in self.registry.playing_rooms():
            async with self._lock(room.code):
                await self.deliver(room.code, room.check_end_condition())
        for code in self.registry.reap():
            self.connections.pop(code, None)
            self.locks.pop(code, None)

    # --- Connection lifecycle ---

    async def connect(self, websocket: WebSocket, client_id: str):
        # Validate WebSocket origin
        origin = websocket.headers.get("origin", "")
        if self.allowed_origins and origin not in self.allowed_origins:
            logger.warning("Rejected WebSocket from unauthorized origin: %s", origin)
            await websocket.close(code=1008)
            return

        await websocket.accept()
        ctx = SessionContext(client_id, websocket)
        try:
            while True:
                data = await websocket.receive_text()

                # Enforce message size limit
                if len(data) > config.MAX_WS_MESSAGE_SIZE:
                    await websocket.send_json({"type": "error", "code": "MessageTooLarge", "reason": "Message too large"})
                    continue

                # Per-client rate limiting
                now = time.time()
                ctx.msg_timestamps[:] = [t for t in ctx.msg_timestamps if now - t < 1.0]
                if len(ctx.msg_timestamps) >= config.WS_RATE_LIMIT_PER_SEC:
                    await websocket.send_json({"type": "error", "code": "RateLimited", "reason": "Too many messages"})
                    continue
                ctx.msg_timestamps.append(now)

                try:
                    message = json.loads(data)
                except json.JSONDecodeError:
                    logger.warning("Malformed JSON from client %s: %s", client_id, data[:100])
                    await websocket.send_json({"type": "error", "code": "InvalidPayload", "reason": "Invalid message format"})
                    continue
                if not isinstance(message, dict):
                    await websocket.send_json({"type": "error", "code": "InvalidPayload", "reason": "Invalid message format"})
                    continue

                await self.handle_message(ctx, message)
        except WebSocketDisconnect:
            logger.info("Client %s disconnected", client_id)
        except Exception:
            logger.exception("WebSocket error for client %s", client_id)
        finally:
            await self.handle_disconnect(ctx)

    async def handle_disconnect(self, ctx: SessionContext):
        if not ctx.room_code:
            return
        room_conns = self.connections.get(ctx.room_code, {})
        if room_conns.get(ctx.identity) is ctx.websocket:
            del room_conns[ctx.identity]
        room = self.registry.find_room(ctx.room_code)
        if room is None:
            return
        async with self._lock(room.code):
            await self.deliver(room.code, room.disconnect(ctx.identity))

    # --- Inbound events ---

    async def handle_message(self, ctx: SessionContext, message: dict):
        msg_type = message.get("type")
        if not isinstance(msg_type, str):
            await self._send(ctx.websocket, {"type": "error", "code": "InvalidPayload",
                                             "reason": "Invalid message format"})
            return
        handler = self._handlers.get(msg_type)
        if handler is None:
            await self._send(ctx.websocket, {"type": "error", "code": "UnknownEvent",
                                             "reason": f"Unknown event '{msg_type}'"})
            return
        try:
            await handler(ctx, message)
        except ValidationError as e:
            logger.info("Invalid %s payload from %s: %s", msg_type, ctx.client_id, e.errors()[:1])
            reason = e.errors()[0].get("msg", "Invalid payload") if e.errors() else "Invalid payload"
            if msg_type == "join_room":
                await self._send(ctx.websocket, {"type": "join_failed", "reason": reason})
            else:
                await self._send(ctx.websocket, {"type": "error", "code": "InvalidPayload", "reason": reason})
        except GameError as e:
            logger.info("Declined %s from %s: %s", msg_type, ctx.identity or ctx.client_id, e.message)
            await self._report(ctx, msg_type, e)

    async def _report(self, ctx: SessionContext, msg_type: str, error: GameError):
        if msg_type == "join_room":
            await self._send(ctx.websocket, {"type": "join_failed", "reason": error.message})
        elif isinstance(error, InsufficientFunds):
            await self._send(ctx.websocket, {"type": "shop_feedback", "message": error.message})
        else:
            await self._send(ctx.websocket, {"type": "error", "code": error.code, "reason": error.message})

    def _room_for(self, ctx: SessionContext) -> Room:
        if not ctx.room_code:
            raise RoomNotFound("Not in a room")
        return self.registry.get_room(ctx.room_code)

    async def _create_room(self, ctx: SessionContext, message: dict):
        if ctx.room_code:
            raise InvalidState("Already in a room")
        payload = CreateRoomMessage.model_validate(message)
        room = self.registry.create_room(
            payload.hostId,
            payload.questionSetId,
            payload.gameType,
            time_limit_minutes=payload.timeLimitMinutes,
            goal_amount=payload.goalAmount,
            host_name=payload.hostName,
        )
        ctx.bind(payload.hostId, room.code)
        self.connections.setdefault(room.code, {})[payload.hostId] = ctx.websocket
        await self._send(ctx.websocket, {
            "type": "room_created",
            "code": room.code,
            "availableSets": self.registry.catalog.set_ids(),
        })
        await self.deliver(room.code, [Emission("lobby_update", {"players": room.roster()})])

    async def _join_room(self, ctx: SessionContext, message: dict):
        if ctx.room_code:
            raise InvalidState("Already in a room")
        payload = JoinRoomMessage.model_validate(message)
        room = self.registry.get_room(payload.code)
        async with self._lock(room.code):
            emissions = room.join(payload.identity, payload.name)
            ctx.bind(payload.identity, room.code)
            self.connections.setdefault(room.code, {})[payload.identity] = ctx.websocket
            await self.deliver(room.code, emissions)

    async def _start_game(self, ctx: SessionContext, message: dict):
        payload = StartGameMessage.model_validate(message)
        if payload.code and payload.code.upper() != (ctx.room_code or ""):
            raise RoomNotFound(f"Room '{payload.code}' not found")
        room = self._room_for(ctx)
        async with self._lock(room.code):
            await self.deliver(room.code, room.start(ctx.identity))

    async def _submit_answer(self, ctx: SessionContext, message: dict):
        payload = SubmitAnswerMessage.model_validate(message)
        room = self._room_for(ctx)
        async with self._lock(room.code):
            emissions = room.submit_answer(ctx.identity, payload.questionId, payload.answer)
            await self.deliver(room.code, emissions)

    async def _buy_upgrade(self, ctx: SessionContext, message: dict):
        payload = BuyUpgradeMessage.model_validate(message)
        room = self._room_for(ctx)
        async with self._lock(room.code):
            await self.deliver(room.code, room.buy_upgrade(ctx.identity, payload.upgradeType))

    # --- Outbound events ---

    async def deliver(self, room_code: str, emissions: List[Emission]):
        room_conns = self.connections.get(room_code, {})
        failed = []
        for emission in emissions:
            message = emission.message()
            if emission.target is None:
                targets = list(room_conns.items())
            else:
                ws = room_conns.get(emission.target)
                targets = [(emission.target, ws)] if ws else []
            for identity, ws in targets:
                if not await self._send(ws, message):
                    failed.append(identity)
        for identity in failed:
            room_conns.pop(identity, None)

    async def _send(self, websocket: WebSocket, message: dict) -> bool:
        try:
            await websocket.send_json(message)
            return True
        except Exception:
            return False


socket_manager = SocketManager()
