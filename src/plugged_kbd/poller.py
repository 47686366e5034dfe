"""Keyboard discovery by polling /proc/bus/input/devices.

Each poll parses the kernel listing, keeps the keyboard-like entries and
diffs them against the previous poll. New names are announced through
``keyboard_added``, vanished names through ``keyboard_removed``.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from pathlib import Path

from evdev import ecodes
from gi.repository import GLib

from common.logging_utils import get_logger

from .input_device import InputDevice
from .input_device import NameResolver
from .signals import Signal

DEVICES_FILE = Path('/proc/bus/input/devices')
DEFAULT_PERIOD = 0.25

# EV_SYN | EV_KEY | EV_REP == 0x100003. A stricter mask would be 0x120013
# (EV_MSC and EV_LED added).
KEYBOARD_EV_MASK = (1 << ecodes.EV_SYN) | (1 << ecodes.EV_KEY) | (1 << ecodes.EV_REP)
MIN_KEYS = 100

_PARSING = {
    'name': re.compile(r'N: Name="(.*)"'),
    'ev': re.compile(r'B: EV=([0-9a-fA-F]+)'),
    'key': re.compile(r'B: KEY=(.*)'),
    'phys': re.compile(r'P: Phys=(.*)'),
    'handler': re.compile(r'H: Handlers=.*\b(event\d+)\b'),
}
_KEYBOARD_SUFFIX = re.compile(r'\Wkeyboard\s*$', re.IGNORECASE)


@dataclass
class DeviceEntry:
    """One block of the kernel listing (only the fields used here)."""

    name: str | None = None
    ev: str | None = None
    key: str | None = None
    phys: str | None = None
    handler: str | None = None

    def is_keyboard(self) -> bool:
        return (
            self.name is not None
            and self.ev is not None
            and valid_ev(self.ev)
            and self.key is not None
            and num_keys(self.key) > MIN_KEYS
        )


def num_keys(bitmap: str) -> int:
    """Number of keys declared by a ``B: KEY=`` hex bitmap."""
    count = 0
    for char in bitmap:
        try:
            count += bin(int(char, 16)).count('1')
        except ValueError:
            # word separators
            continue
    return count


def valid_ev(ev: str) -> bool:
    """Whether an event capability bitmask looks like a keyboard's."""
    try:
        value = int(ev, 16)
    except ValueError:
        return False
    return value & KEYBOARD_EV_MASK == KEYBOARD_EV_MASK


def normalize_name(name: str) -> str:
    """Strip a trailing 'keyboard' word: 'AT Translated Set 2 keyboard' -> 'AT Translated Set 2'."""
    return _KEYBOARD_SUFFIX.sub('', name)


def parse_devices(contents: str) -> list[DeviceEntry]:
    """Split the kernel listing into blank-line separated entries."""
    entries = []
    for block in re.split(r'\n\s*\n', contents):
        if not block.strip():
            continue
        entry = DeviceEntry()
        for line in block.splitlines():
            for field_name, regex in _PARSING.items():
                found = regex.search(line)
                if found:
                    setattr(entry, field_name, found.group(1).strip())
        entries.append(entry)
    return entries


class ProcInputDevicesPoller:
    """Periodically read the kernel input device listing.

    Signals:
        keyboard_added(poller, name): a keyboard appeared
        keyboard_removed(poller, name): a keyboard vanished; the descriptor is
            still available through ``get_device`` while the signal is emitted

    Args:
        devices_file: Listing to read (tests point it at fixture files)
        period: Seconds between polls once scheduled with ``main_loop_add``
        name_resolver: Passed to new ``InputDevice`` descriptors
    """

    def __init__(
        self,
        devices_file: Path = DEVICES_FILE,
        period: float = DEFAULT_PERIOD,
        name_resolver: NameResolver | None = None,
    ) -> None:
        self.logger = get_logger('poller')
        self.devices_file = Path(devices_file)
        self.period = period
        self._name_resolver = name_resolver
        self._register: dict[str, InputDevice] = {}
        self._timeout: int | None = None

        self.keyboard_added = Signal('keyboard-added')
        self.keyboard_removed = Signal('keyboard-removed')

    def poll(self) -> bool:
        """Read the listing once and emit the differences.

        A listing that cannot be read leaves the register untouched.

        Returns:
            True, so the poll stays scheduled on the main loop
        """
        try:
            contents = self.devices_file.read_text(encoding='utf-8', errors='replace')
        except OSError as e:
            self.logger.warning(f'Cannot read {self.devices_file}: {e}')
            return True

        keyboards: dict[str, list[DeviceEntry]] = {}
        for entry in parse_devices(contents):
            if entry.is_keyboard():
                keyboards.setdefault(normalize_name(entry.name), []).append(entry)

        # Build the new register before touching the current one
        register = dict(self._register)
        added = []
        for name, entries in keyboards.items():
            device = register.get(name)
            if device is None:
                device = InputDevice(name, name_resolver=self._name_resolver)
                register[name] = device
                added.append(name)
            for entry in entries:
                if entry.handler:
                    device.add_phys(entry.handler, entry.phys or '')
        removed = [name for name in self._register if name not in keyboards]
        self._register = register

        announced = []
        try:
            for name in added:
                self.logger.info(f'Keyboard added: {register[name]}')
                self.keyboard_added.emit(self, name)
                announced.append(name)
        finally:
            # Forget what was not announced: the next poll announces it again
            for name in added:
                if name not in announced:
                    self._register.pop(name, None)
        for name in removed:
            self.logger.info(f'Keyboard removed: {name}')
            self.keyboard_removed.emit(self, name)
            self._register.pop(name, None)
        return True

    def reset(self) -> None:
        """Forget every known keyboard: the next poll announces them all again."""
        self._register.clear()

    def get_device(self, name: str) -> InputDevice | None:
        return self._register.get(name)

    def devices(self) -> list[InputDevice]:
        return list(self._register.values())

    def __contains__(self, name: str) -> bool:
        return name in self._register

    def __len__(self) -> int:
        return len(self._register)

    def main_loop_add(self) -> None:
        """Poll every ``period`` seconds on the GLib main context (first poll right away)."""
        self.main_loop_remove()
        self.poll()
        self._timeout = GLib.timeout_add(int(self.period * 1000), self.poll)

    def main_loop_remove(self) -> None:
        if self._timeout is not None:
            GLib.source_remove(self._timeout)
            self._timeout = None

    def __str__(self) -> str:
        return '[ ' + '; '.join(str(dev) for dev in self._register.values()) + ' ]'
