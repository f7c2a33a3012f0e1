"""
drivegate - multi-account access layer for Google Drive.

Keeps several Google accounts authorized against the same Drive, rotates
between them when one runs out of quota, and keeps a metadata cache fresh
by polling for changes.

Import from submodules directly:
    from drivegate.config import GatewayConfig
    from drivegate.cache import MemoryCache
    from drivegate.drive import DriveGateway
"""


def _get_version():
    """Read version from package metadata, then the VERSION file."""
    from importlib.metadata import PackageNotFoundError, version
    from pathlib import Path
    try:
        return version("drivegate")
    except PackageNotFoundError:
        pass
    version_file = Path(__file__).parent.parent / "VERSION"
    if version_file.exists():
        return version_file.read_text().strip()
    return "0.0.0"


__version__ = _get_version()
