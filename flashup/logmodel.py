"""In-memory log of update activity, with per-row display roles."""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass
from datetime import datetime
from enum import IntEnum
from typing import Any, Callable, Iterator, Optional

_USER_ROLE = 256
MAX_ENTRIES = 1000

_LEVEL_NAMES = {0: "DEBUG", 1: "INFO", 2: "WARN", 3: "ERROR"}
_LEVEL_COLORS = {0: "#808080", 1: "#000000", 2: "#FF8800", 3: "#FF0000"}


class LogRole(IntEnum):
    DISPLAY = 0
    TIMESTAMP = _USER_ROLE + 1
    TIMESTAMP_STR = _USER_ROLE + 2
    LEVEL = _USER_ROLE + 3
    LEVEL_STR = _USER_ROLE + 4
    MESSAGE = _USER_ROLE + 5
    COLOR = _USER_ROLE + 6


def level_to_string(level: int) -> str:
    return _LEVEL_NAMES.get(level, "UNKNOWN")


def level_to_color(level: int) -> str:
    return _LEVEL_COLORS.get(level, "#000000")


@dataclass(frozen=True)
class LogEntry:
    timestamp: datetime
    level: int
    message: str

    @property
    def timestamp_str(self) -> str:
        return f"{self.timestamp:%H:%M:%S}.{self.timestamp.microsecond // 1000:03d}"

    @property
    def display(self) -> str:
        return f"[{self.timestamp:%H:%M:%S}] {level_to_string(self.level)}: {self.message}"


class LogModel:
    """Keeps the most recent log messages, oldest first."""

    def __init__(
        self,
        clock: Callable[[], datetime] = datetime.now,
        max_entries: int = MAX_ENTRIES,
    ) -> None:
        self._clock = clock
        self._entries: deque[LogEntry] = deque(maxlen=max_entries)

    def add_message(self, level: int, message: str) -> LogEntry:
        entry = LogEntry(self._clock(), level, message)
        self._entries.append(entry)
        return entry

    def clear(self) -> None:
        self._entries.clear()

    def row_count(self) -> int:
        return len(self._entries)

    def data(self, row: int, role: int = LogRole.DISPLAY) -> Optional[Any]:
        """The value of ``role`` for the entry at ``row``, or None."""
        if not 0 <= row < len(self._entries):
            return None
        try:
            role = LogRole(role)
        except ValueError:
            return None
        entry = self._entries[row]
        values = {
            LogRole.TIMESTAMP: lambda: entry.timestamp,
            LogRole.TIMESTAMP_STR: lambda: entry.timestamp_str,
            LogRole.LEVEL: lambda: entry.level,
            LogRole.LEVEL_STR: lambda: level_to_string(entry.level),
            LogRole.MESSAGE: lambda: entry.message,
            LogRole.COLOR: lambda: level_to_color(entry.level),
            LogRole.DISPLAY: lambda: entry.display,
        }
        return values[role]()

    def role_names(self) -> dict[LogRole, str]:
        return {
            LogRole.TIMESTAMP: "timestamp",
            LogRole.TIMESTAMP_STR: "timestampStr",
            LogRole.LEVEL: "level",
            LogRole.LEVEL_STR: "levelStr",
            LogRole.MESSAGE: "message",
            LogRole.COLOR: "color",
        }

    @property
    def entries(self) -> tuple[LogEntry, ...]:
        return tuple(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[LogEntry]:
        return iter(tuple(self._entries))