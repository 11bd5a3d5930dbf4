"""Aggregated summaries for the tasktimer time tracker.

Each function reads a snapshot of the user's finished time logs and rolls
it up with pandas: today's and this week's totals, totals per project and
per task, and a seven day breakdown.  Running timers never contribute to a
total.  Nothing computed here is persisted.

``render_project_chart`` draws the per-project totals as a pie chart using
matplotlib so a report can be exported as an image.
"""
from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Sequence

import pandas as pd
import matplotlib
# Use a non-interactive backend; charts are only ever written to files
matplotlib.use("Agg")
import matplotlib.pyplot as plt

from tasktimer import data, entities
from tasktimer.utils import format_duration, start_of_day, week_bounds


logger = logging.getLogger(__name__)

LOG_COLUMNS = ["id", "task_id", "task_name", "project_id", "project_name", "start_time", "duration"]
RECENT_ENTRY_LIMIT = 10


def _frame(logs: Sequence[Dict[str, Any]]) -> pd.DataFrame:
    """Load log rows into a DataFrame, keeping their order."""
    df = pd.DataFrame(list(logs), columns=LOG_COLUMNS)
    df["duration"] = pd.to_numeric(df["duration"], errors="coerce").fillna(0).astype(int)
    df["start_time"] = pd.to_datetime(df["start_time"])
    return df


def _total(minutes: int) -> Dict[str, Any]:
    return {"total": int(minutes), "formatted_total": format_duration(int(minutes))}


def _project_groups(df: pd.DataFrame) -> List[Dict[str, Any]]:
    """Sum durations per project name in first-seen order (not sorted)."""
    if df.empty:
        return []
    grouped = df.groupby("project_name", sort=False)["duration"].sum()
    return [{"name": name, **_total(total)} for name, total in grouped.items()]


def _finished_logs(user_id: int, start: Optional[datetime] = None, end: Optional[datetime] = None) -> pd.DataFrame:
    """Finished logs in the order they were recorded, oldest row first."""
    df = _frame(data.read_time_logs(user_id, start=start, end=end, running=False))
    return df.sort_values("id", kind="stable", ignore_index=True)


def dashboard_summary(user_id: int, now: Optional[datetime] = None) -> Dict[str, Any]:
    """
    Headline numbers for the dashboard.

    ``today_total`` counts logs started at or after midnight today,
    ``week_total`` logs started within the current calendar week and
    ``total_tasks`` all of the user's tasks.  ``recent_entries`` holds the
    ten most recent finished logs.
    """
    now = now or datetime.now()
    today = start_of_day(now)
    week_first, week_last = week_bounds(now)
    df = _finished_logs(user_id, start=min(today, week_first))
    today_total = df.loc[df["start_time"] >= today, "duration"].sum()
    in_week = (df["start_time"] >= week_first) & (df["start_time"] <= week_last)
    week_total = df.loc[in_week, "duration"].sum()
    return {
        "today_total": int(today_total),
        "week_total": int(week_total),
        "total_tasks": entities.count_tasks(user_id),
        "recent_entries": data.read_time_logs(user_id, running=False, limit=RECENT_ENTRY_LIMIT),
    }


def project_totals(
    user_id: int, start: Optional[datetime] = None, end: Optional[datetime] = None
) -> List[Dict[str, Any]]:
    """
    Minutes per project.

    Groups appear in the order their first log was recorded; the list is
    deliberately not sorted by total.
    """
    return _project_groups(_finished_logs(user_id, start, end))


def task_totals(
    user_id: int, start: Optional[datetime] = None, end: Optional[datetime] = None
) -> List[Dict[str, Any]]:
    """Minutes per (task name, project name), largest total first."""
    df = _finished_logs(user_id, start, end)
    if df.empty:
        return []
    grouped = df.groupby(["task_name", "project_name"], sort=False)["duration"].sum()
    grouped = grouped.sort_values(ascending=False, kind="stable")
    return [
        {"task_name": task_name, "project_name": project_name, **_total(total)}
        for (task_name, project_name), total in grouped.items()
    ]


def weekly_breakdown(
    user_id: int, week_start: Optional[datetime] = None, now: Optional[datetime] = None
) -> List[Dict[str, Any]]:
    """
    Seven entries, one per day of the week containing ``week_start``.

    ``week_start`` may be any moment in the wanted week; it defaults to the
    current week.  Days without logs are still listed with a zero total.
    """
    first, last = week_bounds(week_start or now or datetime.now())
    df = _finished_logs(user_id, first, last)
    days = df["start_time"].dt.normalize()
    breakdown = []
    for offset in range(7):
        day = first + timedelta(days=offset)
        day_logs = df[days == pd.Timestamp(day)]
        breakdown.append(
            {
                "date": day.strftime("%Y-%m-%d"),
                "day_name": day.strftime("%A"),
                **_total(day_logs["duration"].sum()),
                "projects": _project_groups(day_logs),
            }
        )
    return breakdown


def render_project_chart(totals: Sequence[Dict[str, Any]], path: str, title: str = "Time by Project") -> bool:
    """
    Write a pie chart of ``project_totals`` output to ``path``.

    Returns ``False`` without writing anything when no time is recorded.
    """
    slices = [(t["name"], t["total"]) for t in totals if t["total"] > 0]
    if not slices:
        logger.info("No recorded time; skipping chart %s", path)
        return False
    labels = [f"{name} ({format_duration(total)})" for name, total in slices]
    sizes = [total for _, total in slices]
    fig = plt.Figure(figsize=(6, 4))
    ax = fig.add_subplot(111)
    ax.pie(sizes, labels=labels, autopct="%1.1f%%", startangle=90)
    ax.axis("equal")  # equal aspect ratio ensures a circle
    ax.set_title(title)
    fig.tight_layout()
    fig.savefig(path)
    logger.info("Wrote project chart to %s", path)
    return True
