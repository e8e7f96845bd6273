"""State store: persists last-applied records between runs."""

from __future__ import annotations

import contextlib
import json
import logging
import os
import tempfile
import threading
import uuid
from pathlib import Path
from typing import Protocol

from pydantic import ValidationError

from infragraph.core.state import ResourceInstance, State
from infragraph.engine.errors import StateStoreError

logger = logging.getLogger(__name__)


class StateStore(Protocol):
    """Persistence contract used by the engine.

    ``save`` and ``remove`` are called immediately after each successful
    provider call, possibly from several worker threads at once.
    """

    def load(self) -> State: ...

    def save(self, record: ResourceInstance) -> None: ...

    def remove(self, address: str) -> None: ...

    def replace(self, state: State) -> None: ...


class LocalStateStore:
    """JSON-file state store.

    - Every ``save``/``remove`` bumps the serial and rewrites the file
    - Writes are atomic (temp file + rename) and keep a ``.backup`` copy
    - Writes to one address are serialized; the file write itself is serialized
    """

    def __init__(self, path: Path) -> None:
        self._path = Path(path)
        self._state: State | None = None
        self._file_lock = threading.Lock()
        self._key_locks: dict[str, threading.Lock] = {}
        self._key_locks_guard = threading.Lock()

    @property
    def path(self) -> Path:
        return self._path

    def exists(self) -> bool:
        return self._path.exists()

    def load(self) -> State:
        """Read the state file (or start a fresh state) and return a copy of it."""
        with self._file_lock:
            self._state = self._read()
            return self._state.model_copy(deep=True)

    def snapshot(self) -> State:
        """Copy of the in-memory state, loading it on first use."""
        with self._file_lock:
            if self._state is None:
                self._state = self._read()
            return self._state.model_copy(deep=True)

    def save(self, record: ResourceInstance) -> None:
        with self._key_lock(record.address), self._file_lock:
            state = self._current().model_copy(deep=True)
            state.resources[record.address] = record.model_copy(deep=True)
            self._commit(state)
            self._state = state
        logger.debug("State record saved: %s", record.address)

    def remove(self, address: str) -> None:
        with self._key_lock(address), self._file_lock:
            state = self._current().model_copy(deep=True)
            if state.resources.pop(address, None) is None:
                logger.debug("State record already absent: %s", address)
                return
            self._commit(state)
            self._state = state
        logger.debug("State record removed: %s", address)

    def replace(self, state: State) -> None:
        """Persist *state* wholesale (used after a refresh), bumping its serial."""
        with self._file_lock:
            new_state = state.model_copy(deep=True)
            self._commit(new_state)
            self._state = new_state

    def _key_lock(self, address: str) -> threading.Lock:
        with self._key_locks_guard:
            return self._key_locks.setdefault(address, threading.Lock())

    def _current(self) -> State:
        if self._state is None:
            self._state = self._read()
        return self._state

    def _read(self) -> State:
        if not self._path.exists():
            logger.debug("No state at %s, starting fresh", self._path)
            # Lineage is assigned on first write so a plan made against an empty
            # state still matches at apply time.
            return State(lineage="")
        try:
            state = State.model_validate_json(self._path.read_text(encoding="utf-8"))
        except (OSError, ValidationError) as exc:
            raise StateStoreError(f"Failed to read state {self._path}: {exc}") from exc
        logger.debug("State loaded from %s: serial=%d", self._path, state.serial)
        return state

    def _commit(self, state: State) -> None:
        """Stamp and write *state*; the cached state is only swapped by callers on success."""
        if not state.lineage:
            state.lineage = str(uuid.uuid4())
        state.serial += 1
        try:
            self._write(state)
        except OSError as exc:
            raise StateStoreError(f"Failed to write state {self._path}: {exc}") from exc

    def _write(self, state: State) -> None:
        path = self._path
        path.parent.mkdir(parents=True, exist_ok=True)

        backup_path = Path(str(path) + ".backup")
        # Avoid TOCTOU race between exists() and read_bytes().
        with contextlib.suppress(FileNotFoundError):
            backup_path.write_bytes(path.read_bytes())

        data = state.model_dump(mode="json")
        content = json.dumps(data, indent=2, sort_keys=True) + "\n"

        fd, tmp_path = tempfile.mkstemp(prefix=f".{path.name}.", dir=str(path.parent))
        tmp_file = Path(tmp_path)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(content)
                f.flush()
                os.fsync(f.fileno())
            tmp_file.replace(path)
        finally:
            with contextlib.suppress(FileNotFoundError):
                tmp_file.unlink()
        logger.debug("State saved: serial=%d path=%s", state.serial, path)
