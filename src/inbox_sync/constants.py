"""Shared constants for inbox-sync."""

from pathlib import Path


HOME_DIR = Path.home() / ".inbox-sync"
LOG_DIR = HOME_DIR / "logs"
DB_DIR = HOME_DIR / "db"
DB_FILE = DB_DIR / "inbox.db"
SERVER_HOST = "127.0.0.1"
SERVER_PORT = 9890
VIEWER_HEADER = "X-Viewer-Id"
MESSAGES_TABLE = "messages"

RECENT_WINDOW_LIMIT = 100
DEBOUNCE_SECONDS = 0.5
MAX_MESSAGE_LENGTH = 1000

SUPPORT_NAME = "Support"
SUPPORT_EMAIL = "support@example.com"
NEW_MESSAGE_LABEL = "New message"
BROADCAST_SUBJECT = "Broadcast message"
USER_PLACEHOLDER = "User"
