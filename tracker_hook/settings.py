"""Process settings, read once from the environment."""

from __future__ import annotations

import logging
import os
from pathlib import Path

HOST = os.getenv("TRACKER_HOOK_HOST", "127.0.0.1")
PORT = int(os.getenv("TRACKER_HOOK_PORT", "4567"))
CONFIG_FILE = Path(os.getenv("TRACKER_HOOK_CONFIG", "config.yml"))
LOG_FILE = os.getenv("TRACKER_HOOK_LOG_FILE", "")

WEBHOOK_SECRET = os.getenv("GITHUB_WEBHOOK_SECRET", "")

STORY_KEYWORD = os.getenv("TRACKER_STORY_KEYWORD", "Story")
TRACKER_API_URL = os.getenv("TRACKER_API_URL", "https://www.pivotaltracker.com/services/v5").rstrip("/")
TRACKER_TIMEOUT_SEC = int(os.getenv("TRACKER_TIMEOUT_SEC", "15"))

BITLY_TOKEN = os.getenv("BITLY_TOKEN", "")
BITLY_API_URL = os.getenv("BITLY_API_URL", "https://api-ssl.bitly.com/v4").rstrip("/")
SHORTENER_TIMEOUT_SEC = int(os.getenv("SHORTENER_TIMEOUT_SEC", "10"))

IRC_SERVER = os.getenv("IRC_SERVER", "irc.libera.chat")
IRC_PORT = int(os.getenv("IRC_PORT", "6667"))
IRC_NICK = os.getenv("IRC_NICK", "SunlightBot")
IRC_CHANNEL = os.getenv("IRC_CHANNEL", "#sunlightlabs")
IRC_RECONNECT_DELAY_SEC = float(os.getenv("IRC_RECONNECT_DELAY_SEC", "15"))


def setup_logging() -> None:
    handlers: list[logging.Handler] = [logging.StreamHandler()]
    if LOG_FILE:
        log_path = Path(LOG_FILE)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_path, encoding="utf-8"))
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s %(message)s",
        handlers=handlers,
    )
