"""Installation state persistence.

Only the installed state is persisted. A component with no marker has not
been installed; a failed install leaves no trace and is retried next run.

Concurrent runs against the same store are not supported.
"""

from __future__ import annotations

from datetime import datetime
from pathlib import Path
from typing import Mapping, Protocol

from loguru import logger


class StateStore(Protocol):
    """Where installed markers live."""

    def is_installed(self, component_id: str) -> bool: ...

    def mark_installed(self, component_id: str) -> None: ...

    def clear(self, component_id: str) -> bool: ...

    def installed(self) -> set[str]: ...


class MarkerFileStore:
    """Sentinel files, one per installed component (``.<id>_installed``)."""

    def __init__(self, directory: Path, markers: Mapping[str, str] | None = None):
        """Initialize the store.

        Args:
            directory: Directory holding the marker files.
            markers: Optional component ID -> marker file name overrides.
        """
        self.directory = Path(directory)
        self._markers = dict(markers or {})

    def marker_path(self, component_id: str) -> Path:
        name = self._markers.get(component_id) or f".{component_id}_installed"
        return self.directory / name

    def is_installed(self, component_id: str) -> bool:
        return self.marker_path(component_id).exists()

    def mark_installed(self, component_id: str) -> None:
        path = self.marker_path(component_id)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(f"{datetime.now().isoformat()}\n")
        logger.debug(f"Wrote marker {path}")

    def clear(self, component_id: str) -> bool:
        path = self.marker_path(component_id)
        if path.exists():
            path.unlink()
            logger.info(f"Removed marker {path}")
            return True
        return False

    def installed(self) -> set[str]:
        """Get the IDs with a marker, among components this store knows about."""
        return {cid for cid in self._markers if self.is_installed(cid)}

    def installed_at(self, component_id: str) -> datetime | None:
        """Get when a component was marked installed."""
        path = self.marker_path(component_id)
        if not path.exists():
            return None
        return datetime.fromtimestamp(path.stat().st_mtime)


class MemoryStateStore:
    """In-memory store for tests and dry runs."""

    def __init__(self, installed: set[str] | None = None):
        self._installed = set(installed or ())

    def is_installed(self, component_id: str) -> bool:
        return component_id in self._installed

    def mark_installed(self, component_id: str) -> None:
        self._installed.add(component_id)

    def clear(self, component_id: str) -> bool:
        if component_id in self._installed:
            self._installed.discard(component_id)
            return True
        return False

    def installed(self) -> set[str]:
        return set(self._installed)
