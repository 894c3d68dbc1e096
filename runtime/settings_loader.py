"""Settings loader — parse and validate callscreen.yaml."""

from __future__ import annotations

import logging
import threading
from pathlib import Path

import yaml

from contracts.settings import Settings

logger = logging.getLogger(__name__)


def load_settings(path: str | Path) -> Settings:
    """Load a callscreen.yaml file and return a validated Settings."""
    p = Path(path)
    if not p.exists():
        raise FileNotFoundError(f"Settings not found: {path}")

    raw = p.read_text(encoding="utf-8")
    data = yaml.safe_load(raw)
    if not isinstance(data, dict):
        raise ValueError(f"Settings must be a YAML mapping, got {type(data).__name__}")

    return Settings(**data)


class FileSettingsSource:
    """Zero-argument settings source backed by a YAML file.

    Each call returns the file's current contents, so user edits apply to the
    next evaluation.  The parsed snapshot is reused while the file's mtime and
    size are unchanged.  When a reload fails (a half-written or invalid file)
    the last good snapshot is kept; with no good snapshot yet the error is
    raised.
    """

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)
        self._lock = threading.Lock()
        self._stamp: tuple[int, int] | None = None
        self._cached: Settings | None = None

    def __call__(self) -> Settings:
        st = self.path.stat() if self.path.exists() else None
        stamp = (st.st_mtime_ns, st.st_size) if st else None
        with self._lock:
            if stamp is not None and stamp == self._stamp and self._cached is not None:
                return self._cached
            try:
                settings = load_settings(self.path)
            except (OSError, ValueError, yaml.YAMLError) as exc:
                if self._cached is None:
                    raise
                if stamp != self._stamp:
                    logger.warning("keeping previous settings; reload of %s failed: %s", self.path, exc)
                    self._stamp = stamp
                return self._cached
            self._stamp = stamp
            self._cached = settings
            return settings
