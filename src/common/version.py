"""Version information for plugged-kbd.

The version lives in pyproject.toml; the release date is kept in the
``[tool.plugged-kbd]`` table of the same file.
"""

import tomllib
from dataclasses import dataclass
from pathlib import Path


def _find_pyproject_toml() -> Path | None:
    """Find pyproject.toml in the project root, or in the working directory."""
    # common/ -> src/ -> project root
    project_root = Path(__file__).resolve().parent.parent.parent

    for candidate in (project_root / 'pyproject.toml', Path.cwd() / 'pyproject.toml'):
        if candidate.exists():
            return candidate
    return None


@dataclass
class VersionInfo:
    """Version information.

    Attributes:
        version: Version string (e.g., "1.0.0")
        release_date: Release date in ISO format, or None
    """

    version: str
    release_date: str | None = None

    def __str__(self) -> str:
        if self.release_date:
            return f'v{self.version} ({self.release_date})'
        return f'v{self.version}'


def get_version_info() -> VersionInfo:
    """Read version information from pyproject.toml.

    Returns:
        VersionInfo; version is 'unknown' when pyproject.toml cannot be read.
    """
    pyproject_path = _find_pyproject_toml()
    if pyproject_path is None:
        return VersionInfo(version='unknown')

    try:
        with pyproject_path.open('rb') as f:
            data = tomllib.load(f)
    except (OSError, tomllib.TOMLDecodeError):
        return VersionInfo(version='unknown')

    version = data.get('project', {}).get('version')
    release_date = data.get('tool', {}).get('plugged-kbd', {}).get('release_date')

    return VersionInfo(
        version=str(version) if version else 'unknown',
        release_date=str(release_date) if release_date else None,
    )


def get_version() -> str:
    """Version string from pyproject.toml, or 'unknown'."""
    return get_version_info().version


__version__ = get_version()
