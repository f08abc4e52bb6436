"""
Goal: Centralized configuration for the bridge (endpoints, redirect listener, storage keys).
Values come from the environment once at import and fall back to safe defaults.
"""

import os
from pathlib import Path


def _validate_port(port_str: str, default: int) -> int:
    """Validate port number is in valid range."""
    try:
        port = int(port_str)
        if 1024 <= port <= 65535:
            return port
    except ValueError:
        pass
    return default


def _validate_level(level_str: str, default: str) -> str:
    level = (level_str or "").strip().upper()
    if level in {"TRACE", "DEBUG", "INFO", "SUCCESS", "WARNING", "ERROR", "CRITICAL"}:
        return level
    return default


# Grab the local appdata folder in a Windows-friendly way
LOCAL_APPDATA = os.getenv("LOCALAPPDATA") or str(Path.home() / ".local" / "share")
APP_DIR = Path(LOCAL_APPDATA) / "SpotifyBridge"
LOG_DIR = APP_DIR / "logs"
LOG_LEVEL = _validate_level(os.getenv("SPOTIFY_BRIDGE_LOG_LEVEL", "INFO"), "INFO")

# Client credentials (the CLI falls back to the keyring when these are empty)
SPOTIFY_CLIENT_ID = os.getenv("SPOTIFY_CLIENT_ID", "")
SPOTIFY_CLIENT_SECRET = os.getenv("SPOTIFY_CLIENT_SECRET", "")

# Spotify endpoints
API_BASE = "https://api.spotify.com/v1/me/player"
AUTH_URL = "https://accounts.spotify.com/authorize"
TOKEN_URL = "https://accounts.spotify.com/api/token"
SCOPES = (
    "user-read-currently-playing user-read-playback-state "
    "user-modify-playback-state user-read-recently-played"
)

# Local redirect listener for the authorization callback
REDIRECT_HOST = "127.0.0.1"
REDIRECT_PORT = _validate_port(os.getenv("SPOTIFY_BRIDGE_REDIRECT_PORT", "1337"), 1337)
CALLBACK_PATH = "callback"

# Host storage
KEYRING_SERVICE = "SpotifyBridge"
REFRESH_TOKEN_KEY = "refreshtoken"
CLIENT_ID_KEY = "client_id"
CLIENT_SECRET_KEY = "client_secret"

# Fixed backoffs; deliberately not read from the environment
REFRESH_WAIT_SECONDS = 1.0
GRANT_COOLDOWN_SECONDS = 60.0
HTTP_TIMEOUT_SECONDS = 15.0
