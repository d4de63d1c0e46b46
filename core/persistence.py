from __future__ import annotations

import json
import logging
import os
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Any, Dict, List, Optional

from core.selection_store import GoalSelection, GoalSelectionError, normalise_selection
from core.wizard_state import ALLOWED_GOALS, DEFAULT_FORECAST_TYPE

if TYPE_CHECKING:
    from core.selection_store import SelectionStore


logger = logging.getLogger(__name__)

GOALS_STORAGE_KEY = "forecastGoals"
DEBUG_OVERRIDE_KEY = "debug_selectedGoal"


# ============================================
# 1. Errors
# ============================================

class MalformedPersistedDataError(ValueError):
    """
    The durable slot holds something that is not a JSON array of
    known goal identifiers.
    """
    pass


class PersistenceWriteError(Exception):
    """
    A durable or fallback slot could not be written, for example because
    the storage file is not writable.
    """
    pass


# ============================================
# 2. Durable key-value storage backends
# ============================================

class MemoryStorage:
    """String-keyed, string-valued storage kept in a dict."""

    def __init__(self, initial: Optional[Dict[str, str]] = None) -> None:
        self._items: Dict[str, str] = dict(initial or {})

    def get_item(self, key: str) -> Optional[str]:
        return self._items.get(key)

    def set_item(self, key: str, value: str) -> None:
        self._items[key] = str(value)

    def remove_item(self, key: str) -> None:
        self._items.pop(key, None)


class JsonFileStorage:
    """
    String-keyed, string-valued storage persisted as one JSON object file.

    The file survives application restarts and browser reloads. Writes go
    to a temporary file that is renamed over the original.
    """

    def __init__(self, path: str) -> None:
        self._path = Path(path)
        # One instance is shared by every session thread of the app.
        self._lock = threading.Lock()

    @property
    def path(self) -> Path:
        return self._path

    def _load(self) -> Dict[str, str]:
        if not self._path.exists():
            return {}
        try:
            with open(self._path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (json.JSONDecodeError, OSError) as exc:
            logger.warning("Storage file %s is unreadable, treating as empty: %s", self._path, exc)
            return {}
        if not isinstance(data, dict):
            logger.warning("Storage file %s does not hold an object, treating as empty", self._path)
            return {}
        return {str(k): v for k, v in data.items() if isinstance(v, str)}

    def _save(self, data: Dict[str, str]) -> None:
        temp_path = self._path.with_suffix(self._path.suffix + ".tmp")
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            with open(temp_path, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2, ensure_ascii=False)
            temp_path.replace(self._path)
        except OSError as exc:
            if temp_path.exists():
                try:
                    os.remove(temp_path)
                except OSError:
                    pass
            raise PersistenceWriteError(f"Could not write {self._path}: {exc}") from exc

    def get_item(self, key: str) -> Optional[str]:
        with self._lock:
            return self._load().get(key)

    def set_item(self, key: str, value: str) -> None:
        with self._lock:
            data = self._load()
            data[key] = str(value)
            self._save(data)

    def remove_item(self, key: str) -> None:
        with self._lock:
            data = self._load()
            if key in data:
                del data[key]
                self._save(data)


# ============================================
# 3. Fallback and debug override slots
# ============================================

class FallbackSlot:
    """
    Process-wide redundant copy of the selection.

    One instance is shared by every session of the running app. Tests
    create their own so nothing leaks between them.
    """

    def __init__(self) -> None:
        self._value: Optional[List[str]] = None

    def get(self) -> Optional[List[str]]:
        return list(self._value) if self._value is not None else None

    def set(self, selection: GoalSelection) -> None:
        self._value = list(selection)

    def clear(self) -> None:
        self._value = None


class DebugOverrideChannel:
    """
    Diagnostics-only single goal read from the durable key space.

    Normal flows never write it. The bridge only consults it when it has
    been wired in explicitly (settings.debug_overrides).
    """

    def __init__(self, storage: Any, key: str = DEBUG_OVERRIDE_KEY) -> None:
        self._storage = storage
        self._key = key

    def get(self) -> Optional[str]:
        try:
            value = self._storage.get_item(self._key)
        except Exception as exc:
            logger.warning("Debug override could not be read: %s", exc)
            return None
        if not value:
            return None
        value = value.strip()
        if value not in ALLOWED_GOALS:
            logger.warning("Ignoring debug override %r, not a known goal", value)
            return None
        return value


# ============================================
# 4. Durable slot codec
# ============================================

def encode_selection(selection: GoalSelection) -> str:
    return json.dumps(list(selection))


def decode_selection(raw: Optional[str]) -> GoalSelection:
    """
    Parse the durable slot text.

    Returns an empty list when nothing is stored. Raises
    MalformedPersistedDataError for non-JSON text, a non-array value or
    an array holding anything but known goals.
    """
    if raw is None or not raw.strip():
        return []
    try:
        parsed = json.loads(raw)
    except ValueError as exc:
        raise MalformedPersistedDataError(f"Persisted goals are not valid JSON: {raw!r}") from exc
    if not isinstance(parsed, list):
        raise MalformedPersistedDataError(f"Persisted goals are not an array: {raw!r}")
    try:
        return normalise_selection(parsed)
    except GoalSelectionError as exc:
        raise MalformedPersistedDataError(str(exc)) from exc


@dataclass
class PropagationResult:
    durable_written: bool
    fallback_written: bool


# ============================================
# 5. Bridge
# ============================================

class PersistenceBridge:
    """Keeps the SelectionStore, the durable slot and the fallback slot in step.

    Reads go through ``resolve_selection`` which consults, in order:

    1. the bound SelectionStore's in-memory value
    2. the durable slot
    3. the fallback slot
    4. the debug override channel, when one is wired in
    5. the empty selection

    The first non-empty, well-formed tier wins. Reads never raise.
    """

    def __init__(
        self,
        storage: Any,
        fallback: FallbackSlot,
        override: Optional[DebugOverrideChannel] = None,
        storage_key: str = GOALS_STORAGE_KEY,
    ) -> None:
        self._storage = storage
        self._fallback = fallback
        self._override = override
        self._storage_key = storage_key
        self._store: Optional["SelectionStore"] = None

    @property
    def storage_key(self) -> str:
        return self._storage_key

    def bind(self, store: "SelectionStore") -> None:
        self._store = store

    def unbind(self) -> None:
        self._store = None

    # Read path

    def _from_memory(self) -> GoalSelection:
        if self._store is None:
            return []
        try:
            return normalise_selection(self._store.read())
        except Exception as exc:
            logger.warning("In-memory goals unavailable: %s", exc)
            return []

    def _from_durable(self) -> GoalSelection:
        try:
            raw = self._storage.get_item(self._storage_key)
        except Exception as exc:
            logger.warning("Durable goal storage unavailable: %s", exc)
            return []
        try:
            return decode_selection(raw)
        except MalformedPersistedDataError as exc:
            logger.warning("Skipping malformed persisted goals: %s", exc)
            return []

    def _from_fallback(self) -> GoalSelection:
        try:
            value = self._fallback.get()
        except Exception as exc:
            logger.warning("Fallback goal slot unavailable: %s", exc)
            return []
        if value is None:
            return []
        try:
            return normalise_selection(value)
        except GoalSelectionError as exc:
            logger.warning("Skipping malformed fallback goals: %s", exc)
            return []

    def _from_override(self) -> GoalSelection:
        if self._override is None:
            return []
        goal = self._override.get()
        if goal is None:
            return []
        logger.warning("Debug goal override in effect: %s", goal)
        return [goal]

    def resolve_selection(self) -> GoalSelection:
        tiers = (
            ("memory", self._from_memory),
            ("durable", self._from_durable),
            ("fallback", self._from_fallback),
            ("override", self._from_override),
        )
        for name, read_tier in tiers:
            selection = read_tier()
            if selection:
                logger.debug("Resolved goals from %s tier: %s", name, selection)
                return selection

        logger.debug("No goals found in any tier, using empty selection")
        return []

    def resolve_primary_goal(self) -> str:
        selection = self.resolve_selection()
        return selection[0] if selection else DEFAULT_FORECAST_TYPE

    # Write path

    def propagate(self, selection: GoalSelection) -> PropagationResult:
        """Write the selection to the durable and fallback slots.

        Each slot is attempted on its own. Failures are logged, never raised.
        """
        durable_written = False
        fallback_written = False

        try:
            self._storage.set_item(self._storage_key, encode_selection(selection))
            durable_written = True
        except Exception as exc:
            logger.warning("Could not persist goals to durable storage: %s", exc)

        try:
            self._fallback.set(selection)
            fallback_written = True
        except Exception as exc:
            logger.warning("Could not update fallback goals: %s", exc)

        return PropagationResult(durable_written=durable_written, fallback_written=fallback_written)

    def clear(self) -> None:
        try:
            self._storage.remove_item(self._storage_key)
        except Exception as exc:
            logger.warning("Could not clear persisted goals: %s", exc)
        try:
            self._fallback.clear()
        except Exception as exc:
            logger.warning("Could not clear fallback goals: %s", exc)
