"""Output formatting for the plugged-kbd command line."""

from __future__ import annotations

from common.version import get_version_info

from .input_device import InputDevice
from .input_sources import InputSource
from .models import AppConfig
from .models import Rule


def format_header() -> str:
    return f"""⌨️  Plugged Keyboard {get_version_info()}
━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
"""


def format_devices(devices: list[InputDevice]) -> str:
    """List keyboards found by one poll, with their event handlers."""
    if not devices:
        return '❌ No keyboard found\n'

    lines = [f'📱 Keyboards ({len(devices)}):', '']
    for idx, dev in enumerate(devices, 1):
        lines.append(f'  {idx}. {dev.display_name}')
        if dev.display_name != dev.name:
            lines.append(f'     Id: {dev.name}')
        for event_id in dev.event_devices():
            lines.append(f'     /dev/input/{event_id}: {dev.get_phys(event_id) or "?"}')
    return '\n'.join(lines) + '\n'


def format_sources(sources: list[InputSource], current: InputSource | None) -> str:
    if not sources:
        return '❌ No input source configured\n'

    lines = ['🌐 Input sources:', '']
    for source in sources:
        mark = '●' if current is not None and source.id == current.id else ' '
        lines.append(f'  {mark} {source.id} ({source.short_name})')
    return '\n'.join(lines) + '\n'


def format_rules(rules: list[Rule]) -> str:
    """List rules by priority, as the preferences page shows them."""
    if not rules:
        return 'No keyboard is associated with an input source yet.\n'

    lines = [f'📋 Rules ({len(rules)}):', '']
    for rule in sorted(rules, key=lambda r: r.priority):
        lines.append(f'  {rule.kbd_name}')
        lines.append(f'     {rule.kbd_id}, associated to {rule.src_id} (priority {rule.priority})')
    return '\n'.join(lines) + '\n'


def format_config(config: AppConfig) -> str:
    lines = [
        f'Devices file: {config.devices_file}',
        f'Poll interval: {config.poll_interval}s',
        f'Source check interval: {config.source_check_interval}s',
        f'Rules file: {config.rules_file}',
        f'Default source: {config.default_source or "(first input source)"}',
        f'Command timeout: {config.command_timeout}s',
        f'Log level: {config.effective_log_level}',
    ]
    if config.log_file:
        lines.append(f'Log file: {config.log_file}')
    lines += [
        f'Always show menu item: {config.always_show_menuitem}',
        f'Debug messages: {config.debug_messages}',
        f'Teach-in: {config.teach_in}',
    ]
    return '\n'.join(lines) + '\n'
