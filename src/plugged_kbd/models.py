"""Data models for plugged-kbd: persisted rules and configuration."""

from __future__ import annotations

from dataclasses import dataclass
from dataclasses import field
from pathlib import Path
from typing import Any

RULE_FORMAT_VERSION = 1

LOG_LEVELS = ('DEBUG', 'INFO', 'WARNING', 'ERROR')


class RuleFormatError(ValueError):
    """A persisted rule does not have the (str, int, str, str) shape."""
    pass


@dataclass(frozen=True)
class Rule:
    """Association of a keyboard with an input source.

    Attributes:
        kbd_id: Logical device name (registry key)
        priority: Tie-break value, lower wins when falling back on unplug
        kbd_name: Display name of the keyboard
        src_id: Identifier of the associated input source
    """
    kbd_id: str
    priority: int
    kbd_name: str
    src_id: str

    def __post_init__(self) -> None:
        if not isinstance(self.kbd_id, str) or not self.kbd_id:
            raise RuleFormatError(f'kbd_id must be a non-empty string, got {self.kbd_id!r}')  # noqa: TRY003
        if isinstance(self.priority, bool) or not isinstance(self.priority, int) or self.priority < 0:
            raise RuleFormatError(f'priority must be a non-negative integer, got {self.priority!r}')  # noqa: TRY003
        if not isinstance(self.kbd_name, str):
            raise RuleFormatError(f'kbd_name must be a string, got {self.kbd_name!r}')  # noqa: TRY003
        if not isinstance(self.src_id, str) or not self.src_id:
            raise RuleFormatError(f'src_id must be a non-empty string, got {self.src_id!r}')  # noqa: TRY003

    @classmethod
    def from_value(cls, value: Any) -> Rule:
        """Build a rule from a persisted 4-item sequence (or return a Rule as is).

        Raises:
            RuleFormatError: If the value is not a valid 4-tuple
        """
        if isinstance(value, Rule):
            return value
        if isinstance(value, (str, bytes)) or not isinstance(value, (list, tuple)):
            raise RuleFormatError(f'rule must be a 4-item sequence, got {value!r}')  # noqa: TRY003
        if len(value) != 4:
            raise RuleFormatError(f'rule must have 4 fields, got {len(value)}: {value!r}')  # noqa: TRY003
        return cls(*value)

    def as_tuple(self) -> tuple[str, int, str, str]:
        return (self.kbd_id, self.priority, self.kbd_name, self.src_id)


@dataclass
class AppConfig:
    """Application configuration.

    Attributes:
        poll_interval: Seconds between two reads of the device listing
        source_check_interval: Seconds between two checks of the active source
        devices_file: Kernel input device listing
        rules_file: Where keyboard/input source rules are persisted
        default_source: Source activated when no associated keyboard is left
            (None: the first configured source)
        command_timeout: Timeout in seconds for udevadm and gsettings calls
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        log_file: Path to log file (None for no file logging)
        always_show_menuitem: Show the keyboard menu even with one keyboard or less
        debug_messages: Log debug messages (forces DEBUG level)
        teach_in: Let manual input source switches stick instead of
            re-activating the current keyboard's source
    """
    poll_interval: float = 0.25
    source_check_interval: float = 0.5
    devices_file: Path = Path('/proc/bus/input/devices')
    rules_file: Path = field(default_factory=lambda: Path.home() / '.local/share/plugged-kbd/rules.json')
    default_source: str | None = None
    command_timeout: float = 2.0
    log_level: str = 'INFO'
    log_file: Path | None = None
    always_show_menuitem: bool = False
    debug_messages: bool = False
    teach_in: bool = False

    def __post_init__(self) -> None:
        """Validate the application configuration."""
        for name in ('poll_interval', 'source_check_interval', 'command_timeout'):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                raise TypeError(f'{name} must be a number, got {value!r}')  # noqa: TRY003
            if value <= 0:
                raise ValueError(f'{name} must be positive, got {value}')  # noqa: TRY003

        if self.log_level not in LOG_LEVELS:
            raise ValueError(f'Invalid log_level: {self.log_level}')  # noqa: TRY003

        for name in ('always_show_menuitem', 'debug_messages', 'teach_in'):
            if not isinstance(getattr(self, name), bool):
                raise TypeError(f'{name} must be a boolean')  # noqa: TRY003

        if self.default_source is not None and not isinstance(self.default_source, str):
            raise TypeError('default_source must be a string')  # noqa: TRY003

    @property
    def effective_log_level(self) -> str:
        return 'DEBUG' if self.debug_messages else self.log_level
