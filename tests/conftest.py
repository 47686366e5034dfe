"""Shared fixtures: fake input source manager, device sources, GLib loop driver."""

import time
from pathlib import Path

import pytest
from gi.repository import GLib

from plugged_kbd.input_device import InputDevice
from plugged_kbd.input_sources import InputSource
from plugged_kbd.signals import Signal

DATA_DIR = Path(__file__).parent / 'data'


class FakeInputSourceManager:
    """In-memory input source manager recording activations."""

    def __init__(self, sources):
        self._sources = list(sources)
        self._current = self._sources[0] if self._sources else None
        self.activated = []
        self.current_source_changed = Signal('current-source-changed')
        self.watching = False

    @property
    def input_sources(self):
        return list(self._sources)

    @property
    def current_source(self):
        return self._current

    def set_current(self, source):
        self._current = source

    def switch(self, source):
        """Simulate a manual switch reported by the desktop."""
        self._current = source
        self.current_source_changed.emit(self)

    def activate(self, source):
        self.activated.append(source)

    def watch(self, interval):
        self.watching = True

    def unwatch(self):
        self.watching = False


class FakeDetector:
    """Stands in for the poller: resolves ids to descriptors."""

    def __init__(self, *names):
        self.devices = {name: InputDevice(name, name_resolver=lambda _ev: None) for name in names}
        self.requested = []

    def get_device(self, name):
        self.requested.append(name)
        return self.devices.get(name)


@pytest.fixture
def data_dir():
    return DATA_DIR


@pytest.fixture
def src1():
    return InputSource('fr+latin9', 'fr1', 0)


@pytest.fixture
def src2():
    return InputSource('us+altgr-intl', 'en', 1)


@pytest.fixture
def src3():
    return InputSource('fr+bepo', 'fr2', 2)


@pytest.fixture
def ism(src1, src2, src3):
    return FakeInputSourceManager([src1, src2, src3])


@pytest.fixture
def detector():
    return FakeDetector('AT Translated Set 2', 'OLKB Planck', 'Input Club Infinity_Ergodox/QMK')


@pytest.fixture
def no_udevadm():
    """Name resolver that never finds a model name."""
    return lambda _event_id: None


@pytest.fixture
def run_until():
    """Iterate the default GLib main context until a condition holds or time runs out."""
    def run(condition, timeout=2.0):
        context = GLib.MainContext.default()
        deadline = time.monotonic() + timeout
        while not condition() and time.monotonic() < deadline:
            if not context.iteration(False):
                time.sleep(0.005)
        return condition()
    return run
