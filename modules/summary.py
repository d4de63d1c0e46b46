from __future__ import annotations

import io
from typing import Any, Dict, List, Optional, Sequence

import pandas as pd
from reportlab.lib import colors  # type: ignore
from reportlab.lib.pagesizes import letter  # type: ignore
from reportlab.lib.styles import getSampleStyleSheet  # type: ignore
from reportlab.platypus import Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle  # type: ignore

from core.goal_config import GOAL_DEFINITIONS, SOURCE_DEFINITIONS
from core.wizard_state import WizardState


GOAL_INFO: Dict[str, Dict[str, str]] = {d["code"]: d for d in GOAL_DEFINITIONS}
SOURCE_NAMES: Dict[str, str] = {d["code"]: d["label"] for d in SOURCE_DEFINITIONS}


def build_goal_summary_df(goals: Sequence[str]) -> pd.DataFrame:
    rows: List[Dict[str, Any]] = []
    for idx, goal in enumerate(goals, start=1):
        info = GOAL_INFO.get(goal, {})
        rows.append(
            {
                "Priority": idx,
                "Goal": info.get("label", goal),
                "Description": info.get("description", ""),
                "Primary": "Yes" if idx == 1 else "",
            }
        )
    return pd.DataFrame(rows, columns=["Priority", "Goal", "Description", "Primary"])


def build_setup_summary_df(state: WizardState) -> pd.DataFrame:
    source: Optional[str] = state.data_source
    rows = [
        {"Setting": "Data source", "Value": SOURCE_NAMES.get(source, "Not chosen") if source else "Not chosen"},
        {"Setting": "Uploaded file", "Value": state.uploaded_artifact or "None"},
    ]
    return pd.DataFrame(rows, columns=["Setting", "Value"])


def _df_to_table_data(df: pd.DataFrame) -> List[List[str]]:
    cols = list(df.columns)
    out: List[List[str]] = [cols]
    for _, row in df.iterrows():
        out.append([str(row[c]) for c in cols])
    return out


def _styled_table(df: pd.DataFrame) -> Table:
    t = Table(_df_to_table_data(df))
    t.setStyle(
        TableStyle(
            [
                ("BACKGROUND", (0, 0), (-1, 0), colors.lightgrey),
                ("GRID", (0, 0), (-1, -1), 0.5, colors.grey),
                ("FONTNAME", (0, 0), (-1, 0), "Helvetica-Bold"),
            ]
        )
    )
    return t


def create_summary_pdf_bytes(state: WizardState, goals: Sequence[str]) -> bytes:
    buffer = io.BytesIO()
    doc = SimpleDocTemplate(buffer, pagesize=letter)
    styles = getSampleStyleSheet()
    story: List[Any] = []

    story.append(Paragraph("Forecast Setup Summary", styles["Title"]))
    story.append(Spacer(1, 12))

    story.append(Paragraph("Forecasting Goals", styles["Heading2"]))
    story.append(Spacer(1, 6))
    goals_df = build_goal_summary_df(goals)
    if goals_df.empty:
        story.append(Paragraph("No goal has been chosen yet.", styles["BodyText"]))
    else:
        story.append(_styled_table(goals_df[["Priority", "Goal", "Primary"]]))
    story.append(Spacer(1, 10))

    story.append(Paragraph("Data", styles["Heading2"]))
    story.append(Spacer(1, 6))
    story.append(_styled_table(build_setup_summary_df(state)))

    doc.build(story)
    buffer.seek(0)
    return buffer.getvalue()
