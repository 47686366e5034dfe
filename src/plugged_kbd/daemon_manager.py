"""Daemon process management for plugged-kbd.

This module handles PID file management and process control.
"""

import os
import signal
import sys
from pathlib import Path

DEFAULT_PID_FILE = Path.home() / '.local/share/plugged-kbd/plugged-kbd.pid'


class DaemonManager:
    """Manage the background process through its PID file.

    Args:
        pid_file: Path to PID file
    """

    def __init__(self, pid_file: Path | None = None) -> None:
        self.pid_file = pid_file or DEFAULT_PID_FILE
        self.pid_file.parent.mkdir(parents=True, exist_ok=True)

    def is_running(self) -> bool:
        """Check whether the process named in the PID file is alive.

        A stale PID file is removed.
        """
        pid = self._read_pid()
        if pid is None:
            return False
        try:
            # Signal 0 only checks that the process exists
            os.kill(pid, 0)
        except ProcessLookupError:
            self.pid_file.unlink(missing_ok=True)
            return False
        except PermissionError:
            # Alive, but owned by another user
            return True
        return True

    def get_pid(self) -> int | None:
        """PID of the running process, or None."""
        if not self.is_running():
            return None
        return self._read_pid()

    def write_pid(self) -> None:
        """Record the current process; call it after daemonize()."""
        self.pid_file.write_text(f'{os.getpid()}\n')

    def stop(self) -> bool:
        """Send SIGTERM to the running process.

        Returns:
            bool: True if the signal was sent
        """
        pid = self._read_pid()
        if pid is None:
            return False
        try:
            os.kill(pid, signal.SIGTERM)
        except ProcessLookupError:
            self.pid_file.unlink(missing_ok=True)
            return False
        except PermissionError:
            return False
        self.pid_file.unlink(missing_ok=True)
        return True

    def cleanup(self) -> None:
        """Remove the PID file if it names this process."""
        if self._read_pid() == os.getpid():
            self.pid_file.unlink(missing_ok=True)

    def _read_pid(self) -> int | None:
        try:
            return int(self.pid_file.read_text().strip())
        except (FileNotFoundError, ValueError):
            return None


def daemonize() -> None:
    """Detach the current process from the terminal (double fork).

    Reference: https://www.python.org/dev/peps/pep-3143/
    """
    try:
        if os.fork() > 0:
            sys.exit(0)
    except OSError as e:
        sys.stderr.write(f'Fork #1 failed: {e}\n')
        sys.exit(1)

    os.chdir('/')
    os.setsid()
    os.umask(0o022)

    try:
        if os.fork() > 0:
            sys.exit(0)
    except OSError as e:
        sys.stderr.write(f'Fork #2 failed: {e}\n')
        sys.exit(1)

    sys.stdout.flush()
    sys.stderr.flush()

    # Logging goes to the log file, if one is configured
    with open('/dev/null', 'r') as devnull:
        os.dup2(devnull.fileno(), sys.stdin.fileno())
    with open('/dev/null', 'w') as devnull:
        os.dup2(devnull.fileno(), sys.stdout.fileno())
        os.dup2(devnull.fileno(), sys.stderr.fileno())
