import os

from dotenv import load_dotenv

load_dotenv()

HOST = os.getenv("HOST", "0.0.0.0")
PORT = int(os.getenv("PORT", 3001))

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
LOG_FILE = os.getenv("LOG_FILE", None)

CORS_ORIGINS = [
    origin.strip()
    for origin in os.getenv("CORS_ORIGINS", "http://localhost:5173").split(",")
    if origin.strip()
]

# Overrides the ws:// URL handed out by /negotiate (e.g. behind a proxy)
PUBLIC_WS_URL = os.getenv("PUBLIC_WS_URL", None)

EVICT_EMPTY_ROOMS = os.getenv("EVICT_EMPTY_ROOMS", "true").lower() in ("1", "true", "yes")

BROKER_MODE = "mock"
WS_PATH = "/ws"
