"""Key-value store implementations.

Hey future me – these replace the browser's localStorage. The comparison engine only sees the
IKeyValueStore port, so swapping storage never touches application code:
- InMemoryKeyValueStore: tests and one-shot runs (nothing survives the process)
- JsonFileKeyValueStore: CLI runs where the first and second user happen in separate
  invocations (the first-user snapshot has to survive in between)
"""

import json
import logging
import os
import stat
from pathlib import Path

from musicmatch.domain.ports import IKeyValueStore

logger = logging.getLogger(__name__)

STATE_FILE_MODE = 0o600  # Owner read/write only - the file holds bearer tokens
STATE_DIR_MODE = 0o700


class InMemoryKeyValueStore(IKeyValueStore):
    """Dictionary-backed store."""

    def __init__(self, initial: dict[str, str] | None = None) -> None:
        self._data: dict[str, str] = dict(initial or {})

    def get(self, key: str) -> str | None:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value

    def delete(self, key: str) -> bool:
        return self._data.pop(key, None) is not None

    def keys(self) -> list[str]:
        """List stored keys (for debugging and tests)."""
        return list(self._data)


class JsonFileKeyValueStore(IKeyValueStore):
    """Store persisted as one JSON object on disk.

    The whole file is rewritten on every change. A missing file is an empty
    store; a corrupt file is logged and treated as empty.
    """

    def __init__(self, path: Path) -> None:
        """Initialize the store.

        Args:
            path: JSON file location (parent directories are created on first write)
        """
        self.path = Path(path)
        self._data: dict[str, str] = self._load()

    def _load(self) -> dict[str, str]:
        if not self.path.exists():
            return {}

        self._check_permissions()
        try:
            with open(self.path, encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.warning("Could not read state file %s, starting empty: %s", self.path, e)
            return {}

        if not isinstance(data, dict):
            logger.warning("State file %s is not a JSON object, starting empty", self.path)
            return {}
        return {str(k): str(v) for k, v in data.items()}

    def _check_permissions(self) -> None:
        try:
            mode = stat.S_IMODE(os.stat(self.path).st_mode)
        except OSError:
            return
        if mode & (stat.S_IRWXG | stat.S_IRWXO):
            logger.warning(
                "State file %s has insecure permissions (%s), recommended: chmod 600 %s",
                self.path,
                oct(mode),
                self.path,
            )

    def _flush(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        try:
            os.chmod(self.path.parent, STATE_DIR_MODE)
        except OSError as e:
            logger.warning("Could not restrict permissions on %s: %s", self.path.parent, e)

        tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump(self._data, f, indent=2)
        os.chmod(tmp_path, STATE_FILE_MODE)
        os.replace(tmp_path, self.path)

    def get(self, key: str) -> str | None:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value
        self._flush()

    def delete(self, key: str) -> bool:
        if key not in self._data:
            return False
        del self._data[key]
        self._flush()
        return True


__all__ = ["InMemoryKeyValueStore", "JsonFileKeyValueStore"]
