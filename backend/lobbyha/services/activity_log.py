"""Security-relevant events shown to the admin: logins, PIN checks, setup and
config changes, relay connections. Kept in memory only."""

from __future__ import annotations

import uuid
from collections import deque
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any, Literal

Level = Literal["info", "warn", "error"]

CATEGORIES = ("admin", "guest", "config", "relay")
MAX_ENTRIES = 2000


def _now() -> str:
    return datetime.now(UTC).isoformat()


@dataclass(frozen=True)
class ActivityEntry:
    category: str
    message: str
    level: Level = "info"
    detail: str | None = None
    id: str = field(default_factory=lambda: uuid.uuid4().hex[:8])
    timestamp: str = field(default_factory=_now)

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {
            "id": self.id,
            "timestamp": self.timestamp,
            "level": self.level,
            "category": self.category,
            "message": self.message,
        }
        if self.detail:
            d["detail"] = self.detail
        return d


class ActivityLog:
    """Singleton ring buffer, oldest first."""

    _instance: ActivityLog | None = None

    def __init__(self, maxlen: int = MAX_ENTRIES) -> None:
        self._entries: deque[ActivityEntry] = deque(maxlen=maxlen)

    @classmethod
    def get(cls) -> ActivityLog:
        if cls._instance is None:
            cls._instance = cls()
        return cls._instance

    def record(
        self, category: str, message: str, detail: str | None = None, level: Level = "info",
    ) -> ActivityEntry:
        if category not in CATEGORIES:
            raise ValueError(f"Unknown activity category: {category}")
        entry = ActivityEntry(category=category, message=message, level=level, detail=detail)
        self._entries.append(entry)
        return entry

    def get_entries(self, category: str | None = None, limit: int | None = None) -> list[dict[str, Any]]:
        """Entries oldest first; *limit* keeps only the newest ones."""
        if category is not None and category not in CATEGORIES:
            raise ValueError(f"Unknown activity category: {category}")
        entries = [e for e in self._entries if category is None or e.category == category]
        if limit is not None:
            entries = entries[-limit:] if limit > 0 else []
        return [e.to_dict() for e in entries]

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)
