"""Registry of keyboards and of their input source associations.

When an associated keyboard is plugged in, it takes control of the input
source if its priority is greater than or equal to the current keyboard's.
When the current keyboard is unplugged, the connected associated keyboard
with the lowest priority takes over, or the default source is activated.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Iterable, Iterator, Protocol

from common.logging_utils import get_logger

from .input_device import InputDevice
from .input_sources import InputSource
from .input_sources import InputSourceManager
from .models import Rule
from .models import RuleFormatError
from .signals import Signal


class DeviceSource(Protocol):
    """Resolves a device id to its descriptor (the poller)."""

    def get_device(self, name: str) -> InputDevice | None: ...


@dataclass(eq=False)
class Keyboard:
    """A keyboard known by the registry.

    Compared by identity: the registry holds a single record per id.
    """
    id: str
    connected: bool = True
    display_name: str = ''
    priority: int = 0
    associated: InputSource | None = None

    def __post_init__(self) -> None:
        if not self.display_name:
            self.display_name = self.id

    def associate(self, source: InputSource) -> None:
        self.associated = source

    def deassociate(self) -> None:
        self.associated = None

    def __str__(self) -> str:
        state = 'connected' if self.connected else 'not connected'
        if self.associated:
            assoc = f'associated to: {self.associated.short_name}'
        else:
            assoc = 'not associated'
        return f'Kbd {self.id} ({self.display_name}) with priority {self.priority} {state}, {assoc}'


class RuleTrigger(Enum):
    PLUGGED_IN = 'plugged_in'
    PLUGGED_OUT = 'plugged_out'


class Keyboards:
    """Keyboards and association rules.

    Signals:
        changed(keyboards): emitted once after every state change

    Args:
        ism: Input source manager used to read and activate sources
    """

    def __init__(self, ism: InputSourceManager) -> None:
        self.logger = get_logger('keyboards')
        self._ism = ism
        self._map: dict[str, Keyboard] = {}
        self._current: Keyboard | None = None
        self._default_source: InputSource | None = None
        self._current_source: InputSource | None = ism.current_source
        self.changed = Signal('changed')

    # -------------------- rules --------------------
    def _exec_rules(self, trigger: RuleTrigger, dev: Keyboard) -> None:
        """Decide which input source to activate when ``dev`` is plugged in or out."""
        if trigger is RuleTrigger.PLUGGED_IN:
            if not dev.associated:
                return
            if self._current is not None:
                # Equal priority: the last plugged-in keyboard wins
                if self._current.priority <= dev.priority:
                    self.logger.debug(f'{dev.id} takes over from {self._current.id}')
                    self._activate(dev.associated)
                    self._current = dev
            else:
                active = self._ism.current_source
                if active is None or dev.associated.id != active.id:
                    self._activate(dev.associated)
                self._current = dev

        elif trigger is RuleTrigger.PLUGGED_OUT:
            # Only the current keyboard changes the source: if the user
            # switched manually to something else, leave it alone.
            if not dev.associated or dev is not self._current:
                return
            candidates = sorted(
                (kbd for kbd in self._map.values()
                 if kbd is not dev and kbd.connected and kbd.associated),
                key=lambda kbd: kbd.priority,
            )
            if candidates:
                other = candidates[0]
                self.logger.debug(f'{dev.id} unplugged, {other.id} takes over')
                self._activate(other.associated)
                self._current = other
                return
            if self._default_source:
                self.logger.debug(f'{dev.id} unplugged, back to default source')
                self._activate(self._default_source)
            self._current = None

    def _activate(self, source: InputSource) -> None:
        self.logger.info(f'Activating {source.id}')
        self._ism.activate(source)

    def _emit_changed(self) -> None:
        self.changed.emit(self)

    def _next_priority(self) -> int:
        """Registry size, or above the highest restored priority if that is taken."""
        highest = max((dev.priority for dev in self._map.values()), default=-1)
        return max(len(self._map), highest + 1)

    # -------------------- device events --------------------
    def add(self, detector: DeviceSource, device_id: str) -> None:
        """Handle a keyboard-added event."""
        input_dev = detector.get_device(device_id)
        dev = self._map.get(device_id)
        if dev is not None:
            dev.connected = True
        else:
            display_name = input_dev.display_name if input_dev else device_id
            dev = Keyboard(device_id, True, display_name, self._next_priority())
            self._map[dev.id] = dev
            self.logger.debug(f'New keyboard: {dev}')
        self._exec_rules(RuleTrigger.PLUGGED_IN, dev)
        self._emit_changed()

    def remove(self, detector: DeviceSource, device_id: str) -> None:
        """Handle a keyboard-removed event; unknown ids are ignored."""
        dev = self._map.get(device_id)
        if dev is None:
            return
        dev.connected = False
        self._exec_rules(RuleTrigger.PLUGGED_OUT, dev)
        if not dev.associated:
            del self._map[dev.id]
        self._emit_changed()

    # -------------------- associations --------------------
    def associate(self, dev: Keyboard, source: InputSource) -> None:
        dev.associate(source)
        if self._current_source is not None and self._current_source.id == source.id:
            self._current = dev
        self._emit_changed()

    def deassociate(self, dev: Keyboard) -> None:
        """Remove the association of ``dev``.

        The current keyboard loses control, but no other keyboard is
        selected in its place.
        """
        dev.deassociate()
        if self._current is dev:
            self._current = None
        self._emit_changed()

    def update_current_source(self, *_args: object) -> None:
        """Re-derive the current keyboard from the active input source.

        Connected to ``current_source_changed``: the first connected keyboard
        associated with the new source becomes current, if any.
        """
        src = self._ism.current_source
        self._current_source = src
        self._current = None
        if src is not None:
            for dev in self._map.values():
                if dev.connected and dev.associated and dev.associated.id == src.id:
                    self._current = dev
                    break
        self._emit_changed()

    def reassert(self) -> bool:
        """Re-activate the current keyboard's source if another one is active.

        Returns:
            True if a source was activated
        """
        dev = self._current
        if dev is None or not dev.connected or not dev.associated:
            return False
        active = self._ism.current_source
        if active is not None and active.id == dev.associated.id:
            return False
        self.logger.info(f'Input source changed while {dev.id} is current, restoring {dev.associated.id}')
        self._activate(dev.associated)
        return True

    # -------------------- persistence --------------------
    @property
    def rule_list(self) -> list[Rule]:
        return [
            Rule(dev.id, dev.priority, dev.display_name, dev.associated.id)
            for dev in self._map.values()
            if dev.associated
        ]

    @rule_list.setter
    def rule_list(self, rules: Iterable[Rule | tuple]) -> None:
        sources = {source.id: source for source in self._ism.input_sources}
        for value in rules:
            try:
                rule = Rule.from_value(value)
            except RuleFormatError as e:
                self.logger.warning(f'Ignoring malformed rule: {e}')
                continue
            source = sources.get(rule.src_id)
            if source is None:
                self.logger.warning(f'Input source {rule.src_id} is no longer valid, dropping rule for {rule.kbd_id}')
                continue
            dev = Keyboard(rule.kbd_id, False, rule.kbd_name, rule.priority)
            dev.associate(source)
            if self._current is not None and self._current.id == dev.id:
                self._current = None
            self._map[dev.id] = dev
        self._emit_changed()

    # -------------------- accessors --------------------
    @property
    def default_source(self) -> InputSource | None:
        return self._default_source

    @default_source.setter
    def default_source(self, source: InputSource | None) -> None:
        self._default_source = source

    @property
    def current(self) -> Keyboard | None:
        return self._current

    def clear(self) -> None:
        self._map.clear()
        self._current = None
        self._emit_changed()

    def get(self, kbd_id: str) -> Keyboard | None:
        return self._map.get(kbd_id)

    def values(self) -> list[Keyboard]:
        return list(self._map.values())

    def __contains__(self, kbd_id: object) -> bool:
        return kbd_id in self._map

    def __iter__(self) -> Iterator[Keyboard]:
        return iter(list(self._map.values()))

    def __len__(self) -> int:
        return len(self._map)
