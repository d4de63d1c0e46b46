from dataclasses import dataclass
from typing import Any, List, Sequence, Set
import logging

from core.goal_config import GOAL_DEFINITIONS
from core.selection_store import GoalSelectionError, SelectionStore
from core.wizard_state import ALLOWED_GOALS, STEP_ONBOARDING, FlowStateError, WizardState


logger = logging.getLogger(__name__)

# Lookup from a lower-cased label or code to the canonical goal identifier
_GOAL_LOOKUP = {
    str(d[field]).strip().lower(): d["code"]
    for d in GOAL_DEFINITIONS
    for field in ("code", "label")
}


# ============================================
# 1. Result structure
# ============================================

@dataclass
class GoalSelectionResult:
    """
    Normalised output of the goal selection step.

    Attributes
    ----------
    selected_goals : List[str]
        Goal identifiers in the order the user picked them. The first one
        is the primary goal used to tag uploads.
    """
    selected_goals: List[str]

    @property
    def primary_goal(self) -> str:
        return self.selected_goals[0]


# ============================================
# 2. Normalisation and validation helpers
# ============================================

def _normalise_goals(raw_goals: Sequence[Any]) -> List[str]:
    """
    Normalise raw goal choices:
    - strip whitespace
    - match codes and labels case-insensitively
    - remove duplicates while preserving order

    Unrecognised entries are kept as typed so validation can report them.
    """
    seen: Set[str] = set()
    normalised: List[str] = []

    for item in raw_goals:
        if item is None:
            continue
        text = str(item).strip()
        if not text:
            continue
        goal = _GOAL_LOOKUP.get(text.lower(), text)
        if goal not in seen:
            seen.add(goal)
            normalised.append(goal)

    return normalised


def _validate_goals(goals: Sequence[str]) -> None:
    if not goals:
        raise GoalSelectionError("You must select at least one forecasting goal.")

    invalid = [g for g in goals if g not in ALLOWED_GOALS]
    if invalid:
        raise GoalSelectionError(f"Unknown forecasting goals: {invalid}")


# ============================================
# 3. Public entry points
# ============================================

def run_goal_selection(raw_goals: Sequence[Any]) -> GoalSelectionResult:
    """
    Core logic of the goal selection step (pure function, no state).
    """
    goals = _normalise_goals(raw_goals)
    _validate_goals(goals)
    return GoalSelectionResult(selected_goals=goals)


def add_goal(store: SelectionStore, goal: str) -> List[str]:
    """
    Append one goal to the current selection as a single store update.
    """
    result = run_goal_selection([goal])
    return store.write(lambda prev: prev + result.selected_goals)


def remove_goal(store: SelectionStore, goal: str) -> List[str]:
    return store.write(lambda prev: [g for g in prev if g != goal])


def complete_goal_selection_and_advance(
    state: WizardState,
    store: SelectionStore,
    raw_goals: Sequence[Any],
) -> GoalSelectionResult:
    """
    Validate the chosen goals, commit them through the SelectionStore
    (which writes them through to persistence) and move to the
    Data Source step.
    """
    if getattr(state, "current_step", None) != STEP_ONBOARDING:
        raise FlowStateError(
            "Goals can only be committed when the wizard is at the Onboarding step."
        )

    result = run_goal_selection(raw_goals)
    store.write(result.selected_goals)
    state.complete_onboarding_and_advance(goal_count=len(result.selected_goals))

    logger.info("Goal selection finalised, primary goal %s", result.primary_goal)
    return result
