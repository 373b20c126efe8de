"""
Progress engine: weighted task composition, cumulative actual progress and
the daily planned-vs-actual S-curve.

The functions here work on already-loaded rows (anything exposing ``id``,
``task_id``, ``value`` and ``period`` for tasks and ``id``, ``date`` and
``actual`` for reports) so that they stay free of I/O. ``load_inputs`` reads
those rows for one project in a stable order.
"""
from datetime import date, datetime, timedelta, timezone, tzinfo
from typing import Dict, Iterable, List, Optional, Sequence

import pytz
from sqlalchemy.orm import Session

from ..config import settings
from ..models.models import ProjectTask, ProjectProgressReport
from ..utils import now_ms


DAY_MS = 86_400_000
COMPLETE_THRESHOLD = 99.99


def _snap(value: float) -> float:
    if value >= COMPLETE_THRESHOLD:
        return 100.0
    return value


def load_inputs(db: Session, project_id: str):
    tasks = (
        db.query(ProjectTask)
        .filter(ProjectTask.project_id == project_id)
        .order_by(ProjectTask.id)
        .all()
    )
    reports = (
        db.query(ProjectProgressReport)
        .filter(ProjectProgressReport.project_id == project_id)
        .order_by(ProjectProgressReport.date, ProjectProgressReport.id)
        .all()
    )
    return tasks, reports


def ancestors(task, by_id: Dict[str, object]) -> List[object]:
    """Parent chain of ``task`` nearest first; stops at a missing or repeated id."""
    chain = []
    visited = {task.id}
    parent_id = task.task_id
    while parent_id and parent_id not in visited and parent_id in by_id:
        visited.add(parent_id)
        parent = by_id[parent_id]
        chain.append(parent)
        parent_id = parent.task_id
    return chain


def effective_weights(tasks: Iterable) -> Dict[str, float]:
    """Share of the whole project carried by each task, as a percentage.

    A base task weighs its own ``value``; a subtask weighs its ``value``
    scaled by every ancestor's ``value / 100``.
    """
    by_id = {t.id: t for t in tasks}
    weights = {}
    for task in by_id.values():
        weight = float(task.value or 0.0)
        for parent in ancestors(task, by_id):
            weight *= float(parent.value or 0.0) / 100.0
        weights[task.id] = weight
    return weights


def base_of(task_id: str, by_id: Dict[str, object]) -> Optional[str]:
    task = by_id.get(task_id)
    if task is None:
        return None
    chain = ancestors(task, by_id)
    return chain[-1].id if chain else task.id


def report_contributions(report, weights: Dict[str, float], by_id: Dict[str, object]) -> Dict[str, float]:
    """Progress added by one report, keyed by the base task it rolls up to."""
    out: Dict[str, float] = {}
    for entry in report.actual or []:
        task_id = entry.get("task_id")
        if task_id not in weights:
            continue
        base_id = base_of(task_id, by_id)
        out[base_id] = out.get(base_id, 0.0) + float(entry.get("value") or 0.0) * weights[task_id] / 100.0
    return out


def report_progress(report, tasks: Sequence) -> float:
    by_id = {t.id: t for t in tasks}
    weights = effective_weights(tasks)
    return sum(report_contributions(report, weights, by_id).values())


def actual_progress(tasks: Sequence, reports: Sequence) -> float:
    """Cumulative actual progress of a project in [0, 100]."""
    by_id = {t.id: t for t in tasks}
    weights = effective_weights(tasks)
    per_base: Dict[str, float] = {}
    for report in reports:
        for base_id, amount in report_contributions(report, weights, by_id).items():
            per_base[base_id] = per_base.get(base_id, 0.0) + amount
    total = sum(per_base[k] for k in sorted(per_base))
    return min(_snap(max(total, 0.0)), 100.0)


def task_progress(task_id: str, reports: Iterable) -> float:
    """Sum of the actual values reported against one task, capped at 100."""
    total = 0.0
    for report in reports:
        for entry in report.actual or []:
            if entry.get("task_id") == task_id:
                total += float(entry.get("value") or 0.0)
    return min(total, 100.0)


def resolve_timezone() -> tzinfo:
    """Zone used to bucket report dates into calendar days."""
    if settings.progress_timezone:
        return pytz.timezone(settings.progress_timezone)
    offset = datetime.now().astimezone().utcoffset() or timedelta(0)
    return timezone(offset)


def local_day(ms: int, tz: tzinfo) -> date:
    return datetime.fromtimestamp(ms / 1000, tz=timezone.utc).astimezone(tz).date()


def s_curve(tasks: Sequence, reports: Sequence, now: Optional[int] = None, tz: Optional[tzinfo] = None) -> List[dict]:
    """Daily cumulative ``[planned, actual]`` points.

    Planned progress spreads each scheduled base task's value evenly over the
    days of its period. Actual progress adds each report's contribution on the
    local calendar day it was filed. Both series are clamped to 100.
    """
    now = now_ms() if now is None else now
    tz = tz or resolve_timezone()
    bases = [t for t in tasks if not t.task_id]
    scheduled = [b for b in bases if b.period]

    starts = [int(b.period["start"]) for b in scheduled] + [int(r.date) for r in reports]
    if not starts:
        return []
    start = min(starts)
    end = max([int(b.period["end"]) for b in scheduled] + [int(r.date) for r in reports] + [now])

    by_id = {t.id: t for t in tasks}
    weights = effective_weights(tasks)
    daily_actual: Dict[date, float] = {}
    for report in reports:
        day = local_day(int(report.date), tz)
        daily_actual[day] = daily_actual.get(day, 0.0) + sum(
            report_contributions(report, weights, by_id).values()
        )

    points = [{"x": start - DAY_MS, "y": [0.0, 0.0]}]
    plan = 0.0
    actual = 0.0
    counted = set()
    days = (end - start) // DAY_MS + 1
    for i in range(days):
        x = start + i * DAY_MS
        for b in scheduled:
            b_start, b_end = int(b.period["start"]), int(b.period["end"])
            if b_start <= x <= b_end:
                span_days = (b_end - b_start) // DAY_MS + 1
                plan += float(b.value or 0.0) / span_days
        today = local_day(x, tz)
        last = i == days - 1
        for day in sorted(daily_actual):
            if day in counted:
                continue
            # the final point absorbs reports filed after its own calendar day
            if day <= today or last:
                actual += daily_actual[day]
                counted.add(day)
        points.append({"x": x, "y": [min(_snap(plan), 100.0), min(_snap(actual), 100.0)]})
    return points


def planned_at(points: List[dict], at: int) -> float:
    planned = 0.0
    for point in points:
        if point["x"] > at:
            break
        planned = point["y"][0]
    return planned


def project_progress(db: Session, project_id: str, now: Optional[int] = None) -> dict:
    tasks, reports = load_inputs(db, project_id)
    now = now_ms() if now is None else now
    return {
        "plan": planned_at(s_curve(tasks, reports, now=now), now),
        "actual": actual_progress(tasks, reports),
    }


def calculate_progress(db: Session, project_id: str) -> float:
    tasks, reports = load_inputs(db, project_id)
    return actual_progress(tasks, reports)


def get_project_progress(db: Session, project_id: str, now: Optional[int] = None) -> List[dict]:
    tasks, reports = load_inputs(db, project_id)
    return s_curve(tasks, reports, now=now)
