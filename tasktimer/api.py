"""
Request-level operations for the tasktimer time tracker.

Each public function here corresponds to one JSON endpoint.  It receives
the id of the already-identified user first, calls into the core and
returns a ``(status, payload)`` pair ready for whatever server or command
line sits in front of it.  Core errors are mapped to their status codes;
anything unexpected is logged and reported as a generic server error.
"""
from __future__ import annotations

import functools
import logging
from datetime import datetime
from typing import Any, Callable, Dict, Optional, Tuple

from tasktimer import analytics, entities
from tasktimer.errors import ServerError, TrackerError, ValidationError
from tasktimer.session_manager import TimerManager
from tasktimer.utils import format_duration, parse_date_range, parse_datetime


logger = logging.getLogger(__name__)

Response = Tuple[int, Any]

# Shared by every request handled in this process.
timer = TimerManager()


def endpoint(func: Callable[..., Any]) -> Callable[..., Response]:
    """Wrap a handler so it always answers with ``(status, payload)``."""

    @functools.wraps(func)
    def wrapper(*args: Any, **kwargs: Any) -> Response:
        try:
            return 200, func(*args, **kwargs)
        except ValidationError as exc:
            return exc.status, {"errors": exc.errors}
        except TrackerError as exc:
            return exc.status, {"message": exc.message}
        except Exception:
            logger.exception("%s failed", func.__name__)
            return ServerError.status, {"message": ServerError().message}

    return wrapper


# --- serialisation ---
def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


def _camel(key: str) -> str:
    head, *rest = key.split("_")
    return head + "".join(word.capitalize() for word in rest)


def camelize(value: Any) -> Any:
    """Recursively rename snake_case dict keys to camelCase."""
    if isinstance(value, dict):
        return {_camel(k): camelize(v) for k, v in value.items()}
    if isinstance(value, list):
        return [camelize(v) for v in value]
    return value


def serialize_project(project: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "id": project["id"],
        "user": project["user_id"],
        "name": project["name"],
        "description": project["description"],
        "createdAt": _iso(project["created_at"]),
        "updatedAt": _iso(project["updated_at"]),
    }


def serialize_task(task: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "id": task["id"],
        "user": task["user_id"],
        "name": task["name"],
        "description": task["description"],
        "project": {"id": task["project_id"], "name": task["project_name"]},
        "createdAt": _iso(task["created_at"]),
        "updatedAt": _iso(task["updated_at"]),
    }


def serialize_time_log(log: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    """Render a time log with its task and project names expanded."""
    if log is None:
        return None
    return {
        "id": log["id"],
        "task": {
            "id": log["task_id"],
            "name": log["task_name"],
            "project": {"id": log["project_id"], "name": log["project_name"]},
        },
        "user": log["user_id"],
        "startTime": _iso(log["start_time"]),
        "endTime": _iso(log["end_time"]),
        "duration": log["duration"],
        "formattedDuration": format_duration(log["duration"]),
        "description": log["description"],
        "isRunning": log["is_running"],
        "createdAt": _iso(log["created_at"]),
        "updatedAt": _iso(log["updated_at"]),
    }


def _date_filter(query: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """Turn ``startDate``/``endDate`` query values into keyword filters."""
    query = query or {}
    bounds = parse_date_range(query.get("startDate"), query.get("endDate"))
    if bounds is None:
        return {}
    return {"start": bounds[0], "end": bounds[1]}


# --- time logs ---
@endpoint
def start_timer(user_id: int, body: Dict[str, Any]) -> Dict[str, Any]:
    return serialize_time_log(timer.start(user_id, body.get("taskId")))


@endpoint
def stop_timer(user_id: int) -> Dict[str, Any]:
    return serialize_time_log(timer.stop(user_id))


@endpoint
def current_timer(user_id: int) -> Optional[Dict[str, Any]]:
    return serialize_time_log(timer.current(user_id))


@endpoint
def list_time_logs(user_id: int, query: Optional[Dict[str, Any]] = None) -> list:
    query = query or {}
    logs = timer.list_entries(
        user_id,
        task_id=query.get("task") or None,
        project_id=query.get("project") or None,
        **_date_filter(query),
    )
    return [serialize_time_log(log) for log in logs]


@endpoint
def create_time_log(user_id: int, body: Dict[str, Any]) -> Dict[str, Any]:
    log = timer.create_entry(
        user_id,
        body.get("taskId"),
        body.get("startTime"),
        end_time=body.get("endTime"),
        duration=body.get("duration"),
        description=body.get("description"),
    )
    return serialize_time_log(log)


@endpoint
def update_time_log(user_id: int, log_id: int, body: Dict[str, Any]) -> Dict[str, Any]:
    log = timer.update_entry(
        user_id,
        log_id,
        body.get("startTime"),
        end_time=body.get("endTime"),
        duration=body.get("duration"),
        description=body.get("description"),
    )
    return serialize_time_log(log)


@endpoint
def delete_time_log(user_id: int, log_id: int) -> Dict[str, str]:
    timer.delete_entry(user_id, log_id)
    return {"message": "Time log removed"}


# --- dashboard ---
@endpoint
def dashboard_summary(user_id: int) -> Dict[str, Any]:
    summary = analytics.dashboard_summary(user_id)
    summary["recent_entries"] = [serialize_time_log(log) for log in summary["recent_entries"]]
    return camelize(summary)


@endpoint
def dashboard_projects(user_id: int, query: Optional[Dict[str, Any]] = None) -> list:
    return camelize(analytics.project_totals(user_id, **_date_filter(query)))


@endpoint
def dashboard_tasks(user_id: int, query: Optional[Dict[str, Any]] = None) -> list:
    return camelize(analytics.task_totals(user_id, **_date_filter(query)))


@endpoint
def dashboard_weekly(user_id: int, query: Optional[Dict[str, Any]] = None) -> list:
    week_start = parse_datetime((query or {}).get("weekStart"))
    return camelize(analytics.weekly_breakdown(user_id, week_start=week_start))


@endpoint
def export_project_chart(user_id: int, path: str, query: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """Write the project totals pie chart to ``path``."""
    totals = analytics.project_totals(user_id, **_date_filter(query))
    return {"written": analytics.render_project_chart(totals, path), "path": path}


# --- projects and tasks ---
@endpoint
def list_projects(user_id: int) -> list:
    return [serialize_project(p) for p in entities.list_projects(user_id)]


@endpoint
def get_project(user_id: int, project_id: int) -> Dict[str, Any]:
    return serialize_project(entities.get_project(user_id, project_id))


@endpoint
def create_project(user_id: int, body: Dict[str, Any]) -> Dict[str, Any]:
    project = entities.create_project(user_id, body.get("name"), body.get("description"))
    return serialize_project(project)


@endpoint
def update_project(user_id: int, project_id: int, body: Dict[str, Any]) -> Dict[str, Any]:
    project = entities.update_project(user_id, project_id, body.get("name"), body.get("description"))
    return serialize_project(project)


@endpoint
def delete_project(user_id: int, project_id: int) -> Dict[str, str]:
    entities.delete_project(user_id, project_id)
    return {"message": "Project removed"}


@endpoint
def list_tasks(user_id: int, query: Optional[Dict[str, Any]] = None) -> list:
    project_id = (query or {}).get("project") or None
    return [serialize_task(t) for t in entities.list_tasks(user_id, project_id=project_id)]


@endpoint
def get_task(user_id: int, task_id: int) -> Dict[str, Any]:
    return serialize_task(entities.get_task(user_id, task_id))


@endpoint
def create_task(user_id: int, body: Dict[str, Any]) -> Dict[str, Any]:
    task = entities.create_task(user_id, body.get("name"), body.get("project"), body.get("description"))
    return serialize_task(task)


@endpoint
def update_task(user_id: int, task_id: int, body: Dict[str, Any]) -> Dict[str, Any]:
    task = entities.update_task(
        user_id, task_id, body.get("name"), body.get("project"), body.get("description")
    )
    return serialize_task(task)


@endpoint
def delete_task(user_id: int, task_id: int) -> Dict[str, str]:
    entities.delete_task(user_id, task_id)
    return {"message": "Task removed"}
