"""Input device descriptor.

An ``InputDevice`` is one logical keyboard as seen in
``/proc/bus/input/devices``: one or more event handlers (``event3``,
``event20``, ...) sharing a normalized name.
"""

from __future__ import annotations

import re
import subprocess
from typing import Callable, Iterator

from common.logging_utils import get_logger

logger = get_logger('input_device')

UDEVADM_TIMEOUT = 2.0

_MODEL_ENC = re.compile(r'E: ID_MODEL_ENC=(.*)')
_WORD_START = re.compile(r'(^|\s)\S')
_HEX_ESCAPE = re.compile(r'\\x([0-9a-fA-F]{2})')

NameResolver = Callable[[str], 'str | None']


def query_model_name(event_id: str, timeout: float = UDEVADM_TIMEOUT) -> str | None:
    """Ask udev for the model name of ``/dev/input/<event_id>``.

    Best effort: a missing ``udevadm``, a non-zero exit status, a timeout or
    output without ``ID_MODEL_ENC`` all return None.

    Args:
        event_id: Kernel handler id (e.g., 'event12')
        timeout: Seconds to wait for udevadm

    Returns:
        The raw (still escaped) model name, or None
    """
    try:
        result = subprocess.run(
            ['udevadm', 'info', f'/dev/input/{event_id}'],
            capture_output=True,
            text=True,
            timeout=timeout,
            check=False,
        )
    except FileNotFoundError:
        logger.debug('udevadm not found, keeping default device name')
        return None
    except subprocess.TimeoutExpired:
        logger.debug(f'udevadm info timed out for {event_id}')
        return None

    if result.returncode != 0:
        return None

    for line in result.stdout.splitlines():
        found = _MODEL_ENC.match(line)
        if found:
            return found.group(1)
    return None


def format_display_name(name: str) -> str:
    """Turn a raw device name into a human-facing one.

    >>> format_display_name('usb_keyboard')
    'Usb Keyboard'
    >>> format_display_name('USB\\\\x20Keyboard')
    'USB Keyboard'
    """
    display = name.replace('_', ' ')
    display = _WORD_START.sub(lambda m: m.group(0).upper(), display)
    return _HEX_ESCAPE.sub(lambda m: chr(int(m.group(1), 16)), display)


class InputDevice:
    """A keyboard listed in /proc/bus/input/devices (partially).

    Args:
        name: Normalized device name, the logical identifier
        name_resolver: Callable mapping a handler id to a model name (or
            None). Defaults to a udevadm lookup.
    """

    def __init__(self, name: str, name_resolver: NameResolver | None = None) -> None:
        self._name = name
        self._display_name = name
        self._devices: dict[str, str] = {}
        self._is_default_name = True
        self._name_resolver = name_resolver or query_model_name

    @property
    def name(self) -> str:
        return self._name

    @property
    def display_name(self) -> str:
        return format_display_name(self._display_name)

    @property
    def is_default_name(self) -> bool:
        return self._is_default_name

    def add_phys(self, event_id: str, phys: str) -> None:
        """Record a handler of this device; resolve the model name if needed."""
        if event_id in self._devices:
            return
        self._devices[event_id] = phys
        if self._is_default_name:
            self._query_name(event_id)

    def event_devices(self) -> Iterator[str]:
        return iter(self._devices)

    def get_phys(self, event_id: str) -> str | None:
        return self._devices.get(event_id)

    def _query_name(self, event_id: str) -> None:
        model = self._name_resolver(event_id)
        if model:
            logger.debug(f'{self._name}: model name from {event_id} is {model!r}')
            self._display_name = model
            self._is_default_name = False

    def __len__(self) -> int:
        return len(self._devices)

    def __str__(self) -> str:
        handlers = ', '.join(f'{ev} ({phys})' for ev, phys in self._devices.items())
        return f'{self._name}: [{handlers}]'

    def __repr__(self) -> str:
        return f'InputDevice({self._name!r}, handlers={list(self._devices)})'
