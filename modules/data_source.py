from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

import pandas as pd

from core.goal_config import SOURCE_DEFINITIONS, TEMPLATE_COLUMNS
from core.wizard_state import (
    ALLOWED_SOURCES,
    SOURCE_CSV,
    STEP_DATA_SOURCE,
    FlowStateError,
    WizardState,
)
from modules.upload import UPLOAD_SUCCESS, UploadDialog


logger = logging.getLogger(__name__)

SOURCE_LABELS = {d["code"]: d["label"] for d in SOURCE_DEFINITIONS}


@dataclass
class DataSourceChoice:
    source: Optional[str] = None
    open_upload_dialog: bool = False


def choose_data_source(source: str) -> DataSourceChoice:
    if source not in ALLOWED_SOURCES:
        raise ValueError(f"Unknown data source: {source!r}")
    return DataSourceChoice(source=source, open_upload_dialog=source == SOURCE_CSV)


def build_template_df() -> pd.DataFrame:
    """Sample rows showing the expected sales history layout."""
    rows = [
        {
            "product_id": "SKU-001",
            "date": "2024-01-01",
            "sales_quantity": 42,
            "price": 9.99,
            "cost": 4.50,
            "lead_time": 7,
        },
        {
            "product_id": "SKU-001",
            "date": "2024-01-08",
            "sales_quantity": 38,
            "price": 9.99,
            "cost": 4.50,
            "lead_time": 7,
        },
        {
            "product_id": "SKU-002",
            "date": "2024-01-01",
            "sales_quantity": 15,
            "price": 24.00,
            "cost": 11.25,
            "lead_time": 14,
        },
    ]
    return pd.DataFrame(rows, columns=TEMPLATE_COLUMNS)


def template_csv_bytes() -> bytes:
    return build_template_df().to_csv(index=False).encode("utf-8")


def complete_data_source_and_advance(
    state: WizardState,
    choice: DataSourceChoice,
    dialog: Optional[UploadDialog] = None,
) -> WizardState:
    """
    Record the chosen source and move on to Model Selection.

    The step never blocks on an upload: a dialog that did not finish
    simply leaves no artifact behind.
    """
    if state.current_step != STEP_DATA_SOURCE:
        raise FlowStateError("The data source can only be chosen at the Data Source step.")

    artifact = None
    if dialog is not None and dialog.state.status == UPLOAD_SUCCESS:
        artifact = dialog.state.artifact_ref

    state.complete_data_source_and_advance(data_source=choice.source, uploaded_artifact=artifact)
    logger.info("Data source %s recorded (artifact=%s)", choice.source, artifact)
    return state
