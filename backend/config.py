"""Centralized configuration — all env vars in one place."""
import os
import logging
from dotenv import load_dotenv

load_dotenv()

# --- Server ---
HOST = os.getenv("HOST", "0.0.0.0")
PORT = int(os.getenv("PORT", "8000"))
ALLOWED_ORIGINS = os.getenv("ALLOWED_ORIGINS", "")

# --- WebSocket Security ---
WS_RATE_LIMIT_PER_SEC = 10  # max messages per second per client
MAX_WS_MESSAGE_SIZE = 4096  # bytes

# --- Question sets ---
QUESTION_SETS_FILE = os.getenv("QUESTION_SETS_FILE", "")
QUESTION_SETS_URL = os.getenv("QUESTION_SETS_URL", "")
QUESTION_SETS_TIMEOUT = int(os.getenv("QUESTION_SETS_TIMEOUT", "10"))
ANSWER_CHOICES_PER_QUESTION = 4

# --- Rooms ---
MAX_ROOMS = int(os.getenv("MAX_ROOMS", "200"))
MAX_ROOM_CODE_ATTEMPTS = 10
ROOM_CODE_LENGTH = 6
MAX_PLAYERS_PER_ROOM = 100
MAX_NICKNAME_LENGTH = 20
DEFAULT_HOST_NAME = "Host Player"
ROOM_TTL_SECONDS = int(os.getenv("ROOM_TTL_SECONDS", "1800"))
FINISHED_ROOM_TTL_SECONDS = int(os.getenv("FINISHED_ROOM_TTL_SECONDS", "300"))
EMPTY_ROOM_TTL_SECONDS = int(os.getenv("EMPTY_ROOM_TTL_SECONDS", "60"))
TICK_INTERVAL_SECONDS = float(os.getenv("TICK_INTERVAL_SECONDS", "5"))

# --- Game modes ---
DEFAULT_TIME_LIMIT_MINUTES = 5
MAX_TIME_LIMIT_MINUTES = 120
DEFAULT_GOAL_AMOUNT = 10000

# --- Earnings ---
BASE_EARNINGS = 100  # per multiplier level
STREAK_BONUS_UNIT = 20  # per streak step per streak bonus level
STARTING_INSURANCE = 1
WRONG_QUESTION_WEIGHT = 4  # extra pool entries per outstanding miss

# --- Shop ---
MULTIPLIER_UPGRADE_COST = 1000  # times the next level
STREAK_BONUS_UPGRADE_COST = 500  # times the next level
INSURANCE_COST = 2500

# --- Logging ---
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
LOG_FILE = os.getenv("LOG_FILE", "")  # empty = stdout only


def setup_logging():
    handlers: list[logging.Handler] = [logging.StreamHandler()]
    if LOG_FILE:
        handlers.append(logging.FileHandler(LOG_FILE))
    logging.basicConfig(
        level=getattr(logging, LOG_LEVEL, logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        handlers=handlers,
    )
