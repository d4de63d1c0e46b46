from __future__ import annotations

import asyncio
import logging
from typing import Any, Optional

import streamlit as st

from core.goal_config import GOAL_DEFINITIONS, SOURCE_DEFINITIONS
from core.persistence import DebugOverrideChannel, FallbackSlot, JsonFileStorage, PersistenceBridge
from core.selection_store import GoalSelectionError, SelectionStore
from core.settings import settings
from core.wizard_state import (
    SOURCE_CSV,
    STEP_CONSTRAINTS,
    STEP_DATA_SOURCE,
    STEP_FORECAST_SETUP,
    STEP_MODEL_SELECTION,
    STEP_NAMES,
    STEP_ONBOARDING,
    FlowStateError,
    WizardState,
)
from modules.data_source import (
    DataSourceChoice,
    choose_data_source,
    complete_data_source_and_advance,
    template_csv_bytes,
)
from modules.goal_selection import complete_goal_selection_and_advance
from modules.summary import build_goal_summary_df, build_setup_summary_df, create_summary_pdf_bytes
from modules.upload import (
    UPLOAD_ERROR,
    UPLOAD_SUCCESS,
    UPLOAD_UPLOADING,
    InvalidFileTypeError,
    SimulatedUploadTransport,
    UploadDialog,
    UploadFile,
    UploadFlowError,
)


logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

GOAL_NAMES = {d["code"]: d["label"] for d in GOAL_DEFINITIONS}
SOURCE_NAMES = {d["code"]: d["label"] for d in SOURCE_DEFINITIONS}


def safe_rerun() -> None:
    if hasattr(st, "rerun"):
        st.rerun()
        return
    if hasattr(st, "experimental_rerun"):
        st.experimental_rerun()  # type: ignore[attr-defined]


@st.cache_resource
def get_durable_storage() -> JsonFileStorage:
    return JsonFileStorage(settings.storage_path)


@st.cache_resource
def get_fallback_slot() -> FallbackSlot:
    # Shared by every session of this server process.
    return FallbackSlot()


@st.cache_resource
def get_upload_transport() -> SimulatedUploadTransport:
    return SimulatedUploadTransport(
        delay_seconds=settings.upload_delay_seconds,
        failure_rate=settings.upload_failure_rate,
    )


def build_persistence_bridge() -> PersistenceBridge:
    storage = get_durable_storage()
    override = DebugOverrideChannel(storage) if settings.debug_overrides else None
    return PersistenceBridge(
        storage,
        get_fallback_slot(),
        override=override,
        storage_key=settings.goals_storage_key,
    )


def initialise_state() -> None:
    if "wizard_state" not in st.session_state:
        st.session_state["wizard_state"] = WizardState()
    if "selection_store" not in st.session_state:
        st.session_state["selection_store"] = SelectionStore(build_persistence_bridge())


def get_store() -> SelectionStore:
    return st.session_state["selection_store"]


def get_bridge() -> PersistenceBridge:
    bridge = get_store().bridge
    if bridge is None:
        raise RuntimeError("Selection store has no persistence bridge! Call initialise_state() first.")
    return bridge


def reset_state() -> None:
    get_store().reset()
    st.session_state["wizard_state"] = WizardState()
    for key in ("upload_dialog", "data_source_choice", "last_uploaded_id"):
        st.session_state.pop(key, None)
    safe_rerun()


def progress_ui(state: WizardState) -> None:
    st.progress(state.current_step / len(STEP_NAMES), text=f"Step {state.current_step}: {state.step_name}")


def onboarding_ui(state: WizardState, store: SelectionStore) -> None:
    st.header("What would you like to forecast?")
    st.markdown("Pick one or more goals. The first goal is used to tag your uploaded data.")

    current = store.read()
    goals = st.multiselect(
        "Forecasting goals:",
        options=[d["code"] for d in GOAL_DEFINITIONS],
        default=current,
        format_func=lambda g: GOAL_NAMES.get(g, g),
    )

    for goal in goals:
        info = next(d for d in GOAL_DEFINITIONS if d["code"] == goal)
        st.caption(f"{info['label']}: {info['description']}")

    if st.button("Continue", disabled=not goals):
        try:
            complete_goal_selection_and_advance(state, store, goals)
        except (GoalSelectionError, FlowStateError) as e:
            st.error(str(e))
            return
        safe_rerun()


def _get_upload_dialog() -> UploadDialog:
    dialog: Optional[UploadDialog] = st.session_state.get("upload_dialog")
    if dialog is None or not dialog.is_open:
        dialog = UploadDialog(get_bridge(), get_upload_transport())
        st.session_state["upload_dialog"] = dialog
    return dialog


def upload_ui(dialog: UploadDialog) -> None:
    st.subheader("Upload CSV File")
    st.markdown("Upload your sales data as a CSV file to generate accurate forecasts.")

    status = dialog.state.status
    if status == UPLOAD_SUCCESS:
        st.success("Upload Complete!")
        if dialog.uploaded_file is not None:
            st.write(f"File: {dialog.uploaded_file.name} (tagged as {dialog.tagged_goal})")
        if st.button("Upload Another File"):
            dialog.retry()
            safe_rerun()
        return

    if status == UPLOAD_ERROR:
        st.error(f"Upload failed: {dialog.state.error}")
        if st.button("Try Again"):
            dialog.retry()
            safe_rerun()
        return

    uploaded: Any = st.file_uploader("Select CSV File", type=None, key="csv_uploader")
    if uploaded is not None and st.session_state.get("last_uploaded_id") != uploaded.file_id:
        st.session_state["last_uploaded_id"] = uploaded.file_id
        try:
            with st.spinner("Uploading file..."):
                asyncio.run(dialog.select_file(UploadFile.from_uploaded(uploaded)))
        except InvalidFileTypeError as e:
            st.error(str(e))
            return
        except UploadFlowError as e:
            logger.warning("Upload dialog refused file: %s", e)
            return
        if dialog.state.status == UPLOAD_SUCCESS:
            st.toast("File uploaded successfully")
        safe_rerun()

    st.caption("Your file should include: Product ID or SKU, Date (daily or weekly), Sales quantity.")
    st.caption("Optional: price, cost, lead time.")

    if st.button("Cancel", disabled=status == UPLOAD_UPLOADING):
        if dialog.dismiss():
            st.session_state.pop("upload_dialog", None)
            safe_rerun()


def data_source_ui(state: WizardState) -> None:
    st.header("Connect Your Data")
    st.markdown("Choose how you want to import your sales and inventory data.")

    codes = [d["code"] for d in SOURCE_DEFINITIONS]
    previous: DataSourceChoice = st.session_state.get("data_source_choice") or DataSourceChoice()
    source = st.radio(
        "Data source:",
        options=codes,
        index=codes.index(previous.source) if previous.source in codes else 0,
        format_func=lambda s: SOURCE_NAMES.get(s, s),
    )
    choice = choose_data_source(source)
    st.session_state["data_source_choice"] = choice

    st.download_button(
        label="Download Sample Template",
        data=template_csv_bytes(),
        file_name="forecast_template.csv",
        mime="text/csv",
    )

    dialog: Optional[UploadDialog] = None
    if choice.source == SOURCE_CSV:
        dialog = _get_upload_dialog()
        upload_ui(dialog)
    else:
        old: Optional[UploadDialog] = st.session_state.pop("upload_dialog", None)
        if old is not None:
            old.dispose()

    cols = st.columns(2)
    with cols[0]:
        if st.button("Back"):
            state.go_back()
            safe_rerun()
    with cols[1]:
        if st.button("Continue", disabled=dialog is not None and dialog.state.status == UPLOAD_UPLOADING):
            complete_data_source_and_advance(state, choice, dialog)
            safe_rerun()


def simple_step_ui(state: WizardState, title: str, body: str) -> None:
    st.header(title)
    st.markdown(body)

    cols = st.columns(2)
    with cols[0]:
        if st.button("Back"):
            state.go_back()
            safe_rerun()
    with cols[1]:
        if st.button("Continue"):
            if state.current_step == STEP_MODEL_SELECTION:
                state.complete_model_selection_and_advance()
            elif state.current_step == STEP_FORECAST_SETUP:
                state.complete_forecast_setup_and_advance()
            elif state.current_step == STEP_CONSTRAINTS:
                state.complete_constraints_and_advance()
            safe_rerun()


def dashboard_ui(state: WizardState) -> None:
    st.header("Dashboard")

    goals = get_bridge().resolve_selection()
    goals_df = build_goal_summary_df(goals)
    if goals_df.empty:
        st.info("No forecasting goal has been chosen yet.")
    else:
        st.subheader("Forecasting goals")
        st.dataframe(goals_df, use_container_width=True, hide_index=True)

    st.subheader("Data")
    st.dataframe(build_setup_summary_df(state), use_container_width=True, hide_index=True)

    st.download_button(
        label="Download PDF",
        data=create_summary_pdf_bytes(state, goals),
        file_name="forecast_setup_summary.pdf",
        mime="application/pdf",
    )

    if st.button("Start over"):
        reset_state()


def main() -> None:
    st.set_page_config(page_title="Forecast Onboarding", layout="wide")
    initialise_state()

    state: WizardState = st.session_state["wizard_state"]
    store = get_store()
    progress_ui(state)

    if state.current_step == STEP_ONBOARDING:
        onboarding_ui(state, store)
        return
    if state.current_step == STEP_DATA_SOURCE:
        data_source_ui(state)
        return
    if state.current_step == STEP_MODEL_SELECTION:
        simple_step_ui(state, "Model Selection", "Pick the forecasting model family for your data.")
        return
    if state.current_step == STEP_FORECAST_SETUP:
        simple_step_ui(state, "Forecast Setup", "Set the forecast horizon and granularity.")
        return
    if state.current_step == STEP_CONSTRAINTS:
        simple_step_ui(state, "Constraints", "Adjust safety stock, lead times and promotions.")
        return

    dashboard_ui(state)


if __name__ == "__main__":
    main()
