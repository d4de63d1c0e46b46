from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional, Set, Tuple


GOAL_REPLENISHMENT = "Replenishment"
GOAL_NEW_PRODUCT = "New Product Launch"
GOAL_PROMOTIONS = "Promotions"
GOAL_INVENTORY = "Inventory Optimization"

GOAL_ORDER: Tuple[str, ...] = (
    GOAL_REPLENISHMENT,
    GOAL_NEW_PRODUCT,
    GOAL_PROMOTIONS,
    GOAL_INVENTORY,
)

ALLOWED_GOALS: Set[str] = set(GOAL_ORDER)

DEFAULT_FORECAST_TYPE = "Default"

SOURCE_SHEETS = "sheets"
SOURCE_SHOPIFY = "shopify"
SOURCE_CSV = "csv"
SOURCE_EXCEL = "excel"

ALLOWED_SOURCES: Set[str] = {
    SOURCE_SHEETS,
    SOURCE_SHOPIFY,
    SOURCE_CSV,
    SOURCE_EXCEL,
}

STEP_ONBOARDING = 1
STEP_DATA_SOURCE = 2
STEP_MODEL_SELECTION = 3
STEP_FORECAST_SETUP = 4
STEP_CONSTRAINTS = 5
STEP_DASHBOARD = 6

STEP_NAMES: List[str] = [
    "Onboarding",
    "Data Source",
    "Model Selection",
    "Forecast Setup",
    "Constraints",
    "Dashboard",
]


class FlowStateError(Exception):
    pass


@dataclass
class WizardState:
    current_step: int = STEP_ONBOARDING

    onboarding_finalised: bool = False
    data_source_finalised: bool = False
    model_selection_finalised: bool = False
    forecast_setup_finalised: bool = False
    constraints_finalised: bool = False

    data_source: Optional[str] = None
    uploaded_artifact: Optional[str] = None

    def _ensure_step(self, expected_step: int) -> None:
        if self.current_step != expected_step:
            raise FlowStateError(
                f"Invalid flow: current_step={self.current_step}, expected={expected_step}."
            )

    @property
    def step_name(self) -> str:
        return STEP_NAMES[self.current_step - 1]

    def complete_onboarding_and_advance(self, *, goal_count: int) -> None:
        self._ensure_step(expected_step=STEP_ONBOARDING)
        if goal_count < 1:
            raise FlowStateError("At least one goal must be chosen before continuing.")

        self.onboarding_finalised = True
        self.current_step = STEP_DATA_SOURCE

    def complete_data_source_and_advance(
        self,
        *,
        data_source: Optional[str] = None,
        uploaded_artifact: Optional[str] = None,
    ) -> None:
        self._ensure_step(expected_step=STEP_DATA_SOURCE)
        if not self.onboarding_finalised:
            raise FlowStateError("Onboarding must be finalised before choosing a data source.")

        if data_source is not None and data_source not in ALLOWED_SOURCES:
            raise ValueError(f"Unknown data source: {data_source!r}")

        self.data_source = data_source
        self.uploaded_artifact = uploaded_artifact

        self.data_source_finalised = True
        self.current_step = STEP_MODEL_SELECTION

    def complete_model_selection_and_advance(self) -> None:
        self._ensure_step(expected_step=STEP_MODEL_SELECTION)
        if not self.data_source_finalised:
            raise FlowStateError("Data Source must be finalised before Model Selection.")

        self.model_selection_finalised = True
        self.current_step = STEP_FORECAST_SETUP

    def complete_forecast_setup_and_advance(self) -> None:
        self._ensure_step(expected_step=STEP_FORECAST_SETUP)
        if not self.model_selection_finalised:
            raise FlowStateError("Model Selection must be finalised before Forecast Setup.")

        self.forecast_setup_finalised = True
        self.current_step = STEP_CONSTRAINTS

    def complete_constraints_and_advance(self) -> None:
        self._ensure_step(expected_step=STEP_CONSTRAINTS)
        if not self.forecast_setup_finalised:
            raise FlowStateError("Forecast Setup must be finalised before Constraints.")

        self.constraints_finalised = True
        self.current_step = STEP_DASHBOARD

    def go_back(self) -> None:
        if self.current_step <= STEP_ONBOARDING:
            raise FlowStateError("Already at the first step.")
        self.current_step -= 1

    def reset(self) -> None:
        self.__init__()
