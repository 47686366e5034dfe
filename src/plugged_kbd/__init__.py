"""Plugged Keyboard - switch the input source when a keyboard is plugged in.

Keyboards are discovered by polling /proc/bus/input/devices. Each keyboard
may be associated with an input source; plugging it in activates that
source, unplugging it falls back to another connected keyboard or to the
default source.
"""

from common.version import __version__

__all__ = ['__version__']
