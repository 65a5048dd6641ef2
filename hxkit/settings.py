"""Process-wide runtime settings."""

from __future__ import annotations

import enum
from dataclasses import dataclass, fields


class LogLevel(enum.IntEnum):
    """Severity of a log message; messages below the current level are hidden."""

    LOG = 0
    CONSOLE = 1
    WARNING = 2
    ASSERT = 3


@dataclass
class Settings:
    """Runtime switches shared by the whole library."""

    log_level: LogLevel = LogLevel.LOG
    is_shutting_down: bool = False
    death_test: int = 0
    disable_memory_manager: bool = False
    asserts_to_be_skipped: int = 0
    light_emitting_diode: float = 0.7

    def reset(self) -> None:
        """Restore every setting to its default value."""
        for field in fields(self):
            setattr(self, field.name, field.default)


settings = Settings()