"""High-level timer management for the tasktimer time tracker.

The ``TimerManager`` owns the life cycle of time logs.  Per user it is a two
state machine: *idle* (no running log) or *running* (exactly one log with
``is_running`` set).  ``start`` moves idle to running and ``stop`` moves
running back to idle; manual entries bypass the machine and are always
stored as finished logs.

Elapsed time is never ticked in memory.  A running log only records its
start; the duration is derived from the timestamps when the log is stopped
or saved with an end time.
"""
from __future__ import annotations

import logging
import sqlite3
from datetime import datetime
from threading import Lock
from typing import Any, Callable, Dict, List, Optional

from tasktimer import data, entities
from tasktimer.errors import Conflict, NotFound, ValidationError
from tasktimer.utils import compute_duration_minutes, parse_datetime


logger = logging.getLogger(__name__)

ALREADY_RUNNING = "Another timer is already running"
NOT_RUNNING = "No running timer found"
NOT_WHOLE_MINUTES = "Duration must be a whole number of minutes"


def resolve_duration(
    start_time: datetime, end_time: Optional[datetime], supplied: Optional[int]
) -> int:
    """
    Decide the stored duration of a finished log.

    When both timestamps are known the duration is always recomputed from
    them and ``supplied`` is ignored.  Without an end time the supplied
    value is kept (0 when absent).
    """
    if end_time is not None:
        return compute_duration_minutes(start_time, end_time)
    return supplied or 0


def _parse_time_field(value: Any, field: str, label: str, required: bool) -> Optional[datetime]:
    if value is None or value == "":
        if required:
            raise ValidationError.for_field(field, f"{label} is required")
        return None
    parsed = parse_datetime(value)
    if parsed is None:
        raise ValidationError.for_field(field, f"{label} must be a valid date")
    return parsed


def _parse_duration(value: Any) -> Optional[int]:
    if value is None or value == "":
        return None
    if isinstance(value, bool) or (isinstance(value, float) and not value.is_integer()):
        raise ValidationError.for_field("duration", NOT_WHOLE_MINUTES)
    try:
        minutes = int(value)
    except (TypeError, ValueError, OverflowError):
        raise ValidationError.for_field("duration", NOT_WHOLE_MINUTES) from None
    if minutes < 0:
        raise ValidationError.for_field("duration", "Duration cannot be negative")
    return minutes


def _require_task_id(task_id: Any) -> Any:
    if task_id is None or task_id == "":
        raise ValidationError.for_field("taskId", "Task ID is required")
    if isinstance(task_id, bool) or not isinstance(task_id, (int, str)):
        raise ValidationError.for_field("taskId", "Task ID must be an id")
    return task_id


class TimerManager:
    """
    Starts, stops and edits time logs on behalf of users.

    ``clock`` supplies "now" and can be replaced in tests.  The in-process
    lock serialises transitions made through this instance; the database's
    ``one_running_timer_per_user`` index covers every other writer.
    """

    def __init__(self, clock: Callable[[], datetime] = datetime.now) -> None:
        self.clock = clock
        self.lock = Lock()

    # --- state machine ---
    def current(self, user_id: int) -> Optional[Dict[str, Any]]:
        """Return the user's running log, or ``None`` when idle."""
        rows = data.read_time_logs(user_id, running=True)
        return rows[0] if rows else None

    def start(self, user_id: int, task_id: int) -> Dict[str, Any]:
        """
        Start a timer on ``task_id``.

        :raises NotFound: if the task is not one of the user's.
        :raises Conflict: if the user already has a running timer.  The
            existing timer is left untouched.
        """
        entities.get_task(user_id, _require_task_id(task_id))
        now = self.clock()
        with self.lock:
            if self.current(user_id) is not None:
                raise Conflict(ALREADY_RUNNING)
            try:
                log_id = data.insert_time_log(
                    user_id,
                    task_id,
                    start_time=now,
                    end_time=None,
                    duration=0,
                    is_running=True,
                    now=now,
                )
            except sqlite3.IntegrityError as exc:
                # Lost the race against another writer for this user.
                if "UNIQUE" not in str(exc):
                    raise
                raise Conflict(ALREADY_RUNNING) from None
        logger.info("User %s started timer %s on task %s", user_id, log_id, task_id)
        return self.get(user_id, log_id)

    def stop(self, user_id: int) -> Dict[str, Any]:
        """
        Stop the running timer, stamping its end time and duration.

        :raises Conflict: if no timer is running.
        """
        with self.lock:
            running = self.current(user_id)
            if running is None:
                raise Conflict(NOT_RUNNING)
            end_time = max(self.clock(), running["start_time"])
            duration = compute_duration_minutes(running["start_time"], end_time)
            updated = data.update_time_log(
                user_id,
                running["id"],
                only_running=True,
                end_time=end_time,
                is_running=False,
                duration=duration,
                updated_at=end_time,
            )
            if not updated:
                # Someone else stopped or removed it in between.
                raise Conflict(NOT_RUNNING)
        logger.info("User %s stopped timer %s after %s min", user_id, running["id"], duration)
        return self.get(user_id, running["id"])

    # --- manual entries ---
    def get(self, user_id: int, log_id: int) -> Dict[str, Any]:
        rows = data.read_time_logs(user_id, log_id=log_id)
        if not rows:
            raise NotFound("Time log not found")
        return rows[0]

    def list_entries(
        self,
        user_id: int,
        task_id: Optional[int] = None,
        project_id: Optional[int] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> List[Dict[str, Any]]:
        """Return the user's logs, running ones included, newest first."""
        return data.read_time_logs(user_id, task_id=task_id, project_id=project_id, start=start, end=end)

    def _validated_interval(self, start_value: Any, end_value: Any):
        start_time = _parse_time_field(start_value, "startTime", "Start time", required=True)
        end_time = _parse_time_field(end_value, "endTime", "End time", required=False)
        if end_time is not None and end_time < start_time:
            raise ValidationError.for_field("endTime", "End time cannot be before start time")
        return start_time, end_time

    def create_entry(
        self,
        user_id: int,
        task_id: int,
        start_time: Any,
        end_time: Any = None,
        duration: Any = None,
        description: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Record a finished log by hand."""
        _require_task_id(task_id)
        start_time, end_time = self._validated_interval(start_time, end_time)
        supplied = _parse_duration(duration)
        entities.get_task(user_id, task_id)
        log_id = data.insert_time_log(
            user_id,
            task_id,
            start_time=start_time,
            end_time=end_time,
            duration=resolve_duration(start_time, end_time, supplied),
            description=(description or "").strip(),
            is_running=False,
            now=self.clock(),
        )
        logger.info("User %s added manual time log %s on task %s", user_id, log_id, task_id)
        return self.get(user_id, log_id)

    def update_entry(
        self,
        user_id: int,
        log_id: int,
        start_time: Any,
        end_time: Any = None,
        duration: Any = None,
        description: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Overwrite the timing of an existing log.

        The log always ends up finished, even if it was the running timer.
        An empty description keeps the stored one.
        """
        start_time, end_time = self._validated_interval(start_time, end_time)
        supplied = _parse_duration(duration)
        existing = self.get(user_id, log_id)
        data.update_time_log(
            user_id,
            log_id,
            start_time=start_time,
            end_time=end_time,
            duration=resolve_duration(start_time, end_time, supplied),
            description=(description or "").strip() or existing["description"],
            is_running=False,
            updated_at=self.clock(),
        )
        logger.info("User %s edited time log %s", user_id, log_id)
        return self.get(user_id, log_id)

    def delete_entry(self, user_id: int, log_id: int) -> None:
        if not data.delete_time_log(user_id, log_id):
            raise NotFound("Time log not found")
        logger.info("User %s deleted time log %s", user_id, log_id)
