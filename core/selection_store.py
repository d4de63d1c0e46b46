"""In-memory goal selection shared by every wizard screen.

The store holds the ordered set of forecast goals for the current
session. Each write is pushed through the attached PersistenceBridge
before control returns to the caller, so a reload can rebuild the value.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Callable, List, Optional, Sequence, Set, Union

from core.wizard_state import ALLOWED_GOALS

if TYPE_CHECKING:
    from core.persistence import PersistenceBridge


logger = logging.getLogger(__name__)

GoalSelection = List[str]
SelectionUpdate = Union[Sequence[str], Callable[[GoalSelection], Sequence[str]]]
Subscriber = Callable[[GoalSelection], None]


class GoalSelectionError(ValueError):
    """
    Raised when a goal selection contains something other than
    known goal identifiers.
    """
    pass


def normalise_selection(raw: Any) -> GoalSelection:
    """
    Validate a candidate selection and return it as a fresh list.

    - the value must be a list or tuple of strings (a bare string is rejected)
    - every element must be one of ALLOWED_GOALS
    - duplicates are dropped, keeping the first occurrence

    Raises GoalSelectionError on any problem.
    """
    if isinstance(raw, (str, bytes)) or not isinstance(raw, (list, tuple)):
        raise GoalSelectionError(
            f"A goal selection must be a list of goals, got {type(raw).__name__}."
        )

    seen: Set[str] = set()
    selection: GoalSelection = []
    for item in raw:
        if not isinstance(item, str) or item not in ALLOWED_GOALS:
            raise GoalSelectionError(f"Unknown forecast goal: {item!r}")
        if item not in seen:
            seen.add(item)
            selection.append(item)

    return selection


class SelectionStore:
    """Single source of truth for the selected goals during a session.

    Usage:
        bridge = PersistenceBridge(storage, fallback)
        store = SelectionStore(bridge)      # hydrates from persistence

        store.write(["Promotions"])
        store.write(lambda prev: prev + ["Replenishment"])
        store.read()                        # ['Promotions', 'Replenishment']
    """

    def __init__(self, bridge: Optional["PersistenceBridge"] = None, *, hydrate: bool = True) -> None:
        self._value: GoalSelection = []
        self._subscribers: List[Subscriber] = []
        self._has_user_writes = False
        self._bridge = bridge

        if bridge is not None:
            bridge.bind(self)
            if hydrate:
                self.hydrate_from_persistence()

    @property
    def bridge(self) -> Optional["PersistenceBridge"]:
        return self._bridge

    def read(self) -> GoalSelection:
        return list(self._value)

    def primary_goal(self) -> Optional[str]:
        return self._value[0] if self._value else None

    def write(self, next_value: SelectionUpdate) -> GoalSelection:
        """Replace the selection, or derive it from the previous one.

        The new value is validated before anything changes. Persistence is
        written through before subscribers are told about the change.
        """
        candidate = next_value(self.read()) if callable(next_value) else next_value
        selection = normalise_selection(candidate)

        self._value = selection
        self._has_user_writes = True
        logger.debug("Goal selection updated: %s", selection)

        if selection and self._bridge is not None:
            self._bridge.propagate(selection)

        self._notify()
        return self.read()

    def reset(self) -> None:
        self._value = []
        self._has_user_writes = True
        if self._bridge is not None:
            self._bridge.clear()
        logger.info("Goal selection reset")
        self._notify()

    def hydrate_from_persistence(self) -> GoalSelection:
        """Seed the in-memory value from the persistence tiers.

        Only effective at cold start: once a write or reset has happened
        the in-memory value wins and is returned unchanged.
        """
        if self._has_user_writes:
            logger.debug("Skipping hydration, selection already written this session")
            return self.read()
        if self._bridge is None:
            return self.read()

        resolved = self._bridge.resolve_selection()
        if resolved != self._value:
            self._value = resolved
            self._notify()
        return self.read()

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        if callback not in self._subscribers:
            self._subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    def _notify(self) -> None:
        value = self.read()
        for callback in list(self._subscribers):
            try:
                callback(list(value))
            except Exception:
                name = getattr(callback, "__name__", repr(callback))
                logger.exception("Goal selection subscriber %s failed", name)
