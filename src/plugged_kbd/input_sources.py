"""Input sources (keyboard layouts) and the manager that switches them.

The registry only needs the ``InputSourceManager`` protocol: list the
sources, report the active one, activate another and announce external
changes. ``GnomeInputSourceManager`` implements it on top of the
``org.gnome.desktop.input-sources`` settings through the ``gsettings``
command.
"""

from __future__ import annotations

import re
import subprocess
from dataclasses import dataclass
from typing import Protocol

from gi.repository import GLib

from common.logging_utils import get_logger

from .signals import Signal

SCHEMA = 'org.gnome.desktop.input-sources'
GSETTINGS_TIMEOUT = 2.0

_SOURCE_TUPLE = re.compile(r"\(\s*'([^']*)'\s*,\s*'([^']*)'\s*\)")
_UINT = re.compile(r'(\d+)\s*$')


class InputSourceError(RuntimeError):
    """Raised when the input sources cannot be read."""
    pass


@dataclass(frozen=True)
class InputSource:
    """An input source, e.g. ``InputSource('fr+bepo', 'fr', 2)``.

    Attributes:
        id: Source identifier as stored in settings ('us', 'fr+latin9', ...)
        short_name: Short label shown next to a keyboard
        index: Position in the configured source list
        type: Source type ('xkb', 'ibus')
    """

    id: str
    short_name: str
    index: int = 0
    type: str = 'xkb'

    def __str__(self) -> str:
        return self.id


class InputSourceManager(Protocol):
    """What the keyboard registry needs from the desktop."""

    current_source_changed: Signal

    @property
    def input_sources(self) -> list[InputSource]: ...

    @property
    def current_source(self) -> InputSource | None: ...

    def activate(self, source: InputSource) -> None: ...

    def watch(self, interval: float) -> None: ...

    def unwatch(self) -> None: ...


def parse_sources(value: str) -> list[InputSource]:
    """Parse a gsettings ``a(ss)`` value: ``[('xkb', 'us'), ('xkb', 'fr+bepo')]``."""
    sources = []
    for index, (source_type, source_id) in enumerate(_SOURCE_TUPLE.findall(value)):
        sources.append(InputSource(
            id=source_id,
            short_name=source_id.split('+', 1)[0],
            index=index,
            type=source_type,
        ))
    return sources


def format_sources(sources: list[InputSource]) -> str:
    """Inverse of ``parse_sources``: ``[('xkb', 'us'), ('xkb', 'fr+bepo')]``."""
    return '[' + ', '.join(f"('{s.type}', '{s.id}')" for s in sources) + ']'


class GnomeInputSourceManager:
    """Input sources of a GNOME session, read and switched with gsettings.

    The active source is the head of ``mru-sources`` when the shell keeps it
    up to date, else the ``current`` index. ``activate`` writes both keys.
    """

    def __init__(self, timeout: float = GSETTINGS_TIMEOUT) -> None:
        self.logger = get_logger('input_sources')
        self.timeout = timeout
        self.current_source_changed = Signal('current-source-changed')
        self._sources: list[InputSource] = []
        self._current: InputSource | None = None
        self._timeout_id: int | None = None

    def load(self) -> None:
        """Read the configured sources and the active one.

        Raises:
            InputSourceError: If gsettings cannot be queried
        """
        self._sources = parse_sources(self._get('sources'))
        self._current = self._read_current()
        self.logger.info(
            f'Input sources: {", ".join(s.id for s in self._sources) or "none"} '
            f'(active: {self._current})'
        )

    @property
    def input_sources(self) -> list[InputSource]:
        return list(self._sources)

    @property
    def current_source(self) -> InputSource | None:
        return self._current

    def get_source(self, source_id: str) -> InputSource | None:
        for source in self._sources:
            if source.id == source_id:
                return source
        return None

    def activate(self, source: InputSource) -> None:
        """Switch to ``source``.

        ``source`` is moved to the head of ``mru-sources``, the key read back
        by ``refresh()``, and ``current`` is set to its index. The change is
        announced by the next ``refresh()``, like the desktop announces it
        after the switch, never from inside this call.
        """
        self.logger.info(f'Activating input source {source.id}')
        try:
            mru = parse_sources(self._get('mru-sources')) or self._sources
            ordered = [source] + [s for s in mru if s.id != source.id]
            self._run('set', 'mru-sources', format_sources(ordered))
            self._run('set', 'current', str(source.index))
        except InputSourceError as e:
            self.logger.error(f'Failed to activate {source.id}: {e}')

    def refresh(self) -> bool:
        """Re-read the active source; emit ``current_source_changed`` on change.

        Returns:
            True, so the check stays scheduled on the main loop
        """
        try:
            current = self._read_current()
        except InputSourceError as e:
            self.logger.debug(f'Cannot refresh active input source: {e}')
            return True
        if current is not None and current != self._current:
            self.logger.debug(f'Active input source changed: {self._current} -> {current}')
            self._current = current
            self.current_source_changed.emit(self)
        return True

    def watch(self, interval: float) -> None:
        """Call ``refresh()`` every ``interval`` seconds on the GLib main context."""
        self.unwatch()
        self._timeout_id = GLib.timeout_add(int(interval * 1000), self.refresh)

    def unwatch(self) -> None:
        if self._timeout_id is not None:
            GLib.source_remove(self._timeout_id)
            self._timeout_id = None

    def _read_current(self) -> InputSource | None:
        mru = parse_sources(self._get('mru-sources'))
        if mru:
            source = self.get_source(mru[0].id)
            if source is not None:
                return source
        found = _UINT.search(self._get('current'))
        if found:
            index = int(found.group(1))
            if index < len(self._sources):
                return self._sources[index]
        return self._sources[0] if self._sources else None

    def _get(self, key: str) -> str:
        return self._run('get', key)

    def _run(self, *args: str) -> str:
        cmd = ['gsettings', args[0], SCHEMA, *args[1:]]
        try:
            result = subprocess.run(
                cmd,
                capture_output=True,
                text=True,
                timeout=self.timeout,
                check=False,
            )
        except FileNotFoundError as e:
            raise InputSourceError('gsettings not found') from e  # noqa: TRY003
        except subprocess.TimeoutExpired as e:
            raise InputSourceError(f'{" ".join(cmd)} timed out') from e  # noqa: TRY003
        if result.returncode != 0:
            raise InputSourceError(  # noqa: TRY003
                f'{" ".join(cmd)} failed: {result.stderr.strip() or result.returncode}'
            )
        return result.stdout.strip()
