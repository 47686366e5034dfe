"""Keyboard monitoring with input source switching for plugged-kbd.

This module wires the device poller, the keyboard registry, the input source
manager and the rule store together on one GLib main loop.
"""

from __future__ import annotations

from dataclasses import dataclass
from dataclasses import field

from gi.repository import GLib

from common.logging_utils import get_logger

from .input_sources import InputSource
from .input_sources import InputSourceManager
from .keyboards import Keyboards
from .models import AppConfig
from .poller import ProcInputDevicesPoller
from .rule_store import RuleStore
from .signals import Subscription


@dataclass
class MenuItemState:
    """One keyboard in the menu."""
    kbd_id: str
    display_name: str
    connected: bool
    source_name: str
    is_current: bool

    def __str__(self) -> str:
        mark = '●' if self.is_current else ' '
        name = self.display_name if self.connected else f'({self.display_name})'
        return f'{mark} {name} {self.source_name}'.rstrip()


@dataclass
class MenuState:
    """What the keyboard menu shows."""
    label: str
    visible: bool
    sensitive: bool
    items: list[MenuItemState] = field(default_factory=list)


class PluggedKbdService:
    """Switch input sources when keyboards are plugged in or out.

    This class integrates:
    - ProcInputDevicesPoller (detects keyboards)
    - Keyboards (decides which source to activate)
    - InputSourceManager (activates sources, reports manual switches)
    - RuleStore (keeps associations across sessions)
    """

    def __init__(
        self,
        config: AppConfig,
        ism: InputSourceManager,
        store: RuleStore,
        poller: ProcInputDevicesPoller | None = None,
        loop: GLib.MainLoop | None = None,
    ) -> None:
        self.config = config
        self.ism = ism
        self.store = store
        self.poller = poller or ProcInputDevicesPoller(
            devices_file=config.devices_file,
            period=config.poll_interval,
        )
        self.loop = loop or GLib.MainLoop()
        self.logger = get_logger('service')

        self.devices: Keyboards | None = None
        self.menu: MenuState | None = None
        self._subscriptions: list[Subscription] = []
        self._enabled = False

    @property
    def enabled(self) -> bool:
        return self._enabled

    def enable(self) -> None:
        """Restore the rules and start watching keyboards and sources."""
        if self._enabled:
            return
        devices = Keyboards(self.ism)
        devices.default_source = self._default_source()
        self.devices = devices

        self._subscriptions = [
            self.ism.current_source_changed.connect(self._on_source_changed),
            devices.changed.connect(self._save_rules),
            devices.changed.connect(self._update_menu),
        ]

        devices.rule_list = self.store.load()

        self._subscriptions += [
            self.poller.keyboard_added.connect(devices.add),
            self.poller.keyboard_removed.connect(devices.remove),
        ]
        self.poller.main_loop_add()
        self.ism.watch(self.config.source_check_interval)

        self._enabled = True
        self.logger.info(
            f'Watching {self.poller.devices_file} every {self.config.poll_interval}s '
            f'({len(devices)} known keyboard(s), teach-in {"on" if self.config.teach_in else "off"})'
        )

    def disable(self) -> None:
        """Stop timers, then detach callbacks, then drop the registry."""
        if not self._enabled:
            return
        self.poller.main_loop_remove()
        self.poller.reset()
        self.ism.unwatch()

        for subscription in self._subscriptions:
            subscription.disconnect()
        self._subscriptions = []

        self.devices = None
        self.menu = None
        self._enabled = False
        self.logger.info('Keyboard monitoring stopped')

    def start(self) -> None:
        """Enable and run the main loop (blocking call)."""
        self.enable()
        try:
            self.loop.run()
        finally:
            self.disable()

    def stop(self) -> None:
        """Make ``start()`` return."""
        self.loop.quit()

    def toggle(self, kbd_id: str) -> bool:
        """Menu click on a keyboard: drop its association, or associate it
        with the active input source.

        Returns:
            False if the keyboard is unknown or no source is active
        """
        if self.devices is None:
            return False
        dev = self.devices.get(kbd_id)
        if dev is None:
            return False
        if dev.associated:
            self.devices.deassociate(dev)
            return True
        source = self.ism.current_source
        if source is None:
            return False
        self.devices.associate(dev, source)
        return True

    def _default_source(self) -> InputSource | None:
        sources = self.ism.input_sources
        if self.config.default_source:
            for source in sources:
                if source.id == self.config.default_source:
                    return source
            self.logger.warning(f'Default input source {self.config.default_source} not found')
        return sources[0] if sources else None

    def _on_source_changed(self, _ism: object) -> None:
        if self.devices is None:
            return
        if not self.config.teach_in and self.devices.reassert():
            return
        self.devices.update_current_source()

    def _save_rules(self, devices: Keyboards) -> None:
        try:
            self.store.save(devices.rule_list)
        except OSError as e:
            self.logger.error(f'Failed to save rules to {self.store.path}: {e}')

    def _update_menu(self, devices: Keyboards) -> None:
        self.menu = build_menu_state(devices, self.config.always_show_menuitem)
        self.logger.debug(f'Menu: {self.menu.label} {[str(item) for item in self.menu.items]}')


def build_menu_state(devices: Keyboards, always_show: bool = False) -> MenuState:
    """Summarize the registry the way the keyboard menu displays it."""
    if not len(devices):
        return MenuState(label='No external keyboards', visible=always_show, sensitive=False)

    current = devices.current
    items = [
        MenuItemState(
            kbd_id=dev.id,
            display_name=dev.display_name,
            connected=dev.connected,
            source_name=dev.associated.short_name if dev.associated else '',
            is_current=dev is current,
        )
        for dev in devices.values()
    ]
    return MenuState(
        label=current.display_name if current else 'Keyboards',
        visible=always_show or len(devices) > 1,
        sensitive=True,
        items=items,
    )
