from fastapi import FastAPI, WebSocket, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager
import uvicorn
import logging

import config
config.setup_logging()

from socket_manager import socket_manager

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Starting Cash Quiz backend")
    socket_manager.start_tick_loop()
    yield
    await socket_manager.stop_tick_loop()
    logger.info("Shutting down Cash Quiz backend")


app = FastAPI(title="Cash Quiz Live Backend", lifespan=lifespan)


@app.get("/sets")
async def list_question_sets():
    return {"sets": socket_manager.registry.catalog.describe()}


@app.get("/rooms/{room_code}")
async def get_room(room_code: str):
    room = socket_manager.registry.find_room(room_code)
    if room is None:
        raise HTTPException(status_code=404, detail="Room not found")
    return room.snapshot()


@app.websocket("/ws/{client_id}")
async def websocket_endpoint(websocket: WebSocket, client_id: str):
    await socket_manager.connect(websocket, client_id)


# Configure CORS
if config.ALLOWED_ORIGINS.strip():
    origins = [o.strip() for o in config.ALLOWED_ORIGINS.split(",")]
    socket_manager.allowed_origins = origins
else:
    origins = [
        "http://localhost:5173",
        "http://127.0.0.1:5173",
    ]

app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=False,
    allow_methods=["GET"],
    allow_headers=["Content-Type"],
)


@app.get("/")
async def root():
    return {"message": "Cash Quiz API is running"}


@app.get("/health")
async def health():
    return {"status": "healthy", "rooms": len(socket_manager.registry.rooms)}


if __name__ == "__main__":
    uvicorn.run("main:app", host=config.HOST, port=config.PORT, reload=True)
