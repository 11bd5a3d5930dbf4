"""
Data layer for the tasktimer time tracker.

This module provides a SQLite backend for users, projects, tasks and the
time logs recorded against them.  Every query is scoped by the owning user
id; rows belonging to someone else are simply never returned.  The rule
that a user has at most one running timer is enforced by the schema itself
(a partial unique index), so two concurrent inserts cannot both succeed.
"""
from __future__ import annotations

import logging
import os
import sqlite3
from contextlib import contextmanager
from datetime import datetime
from typing import Any, Dict, Iterator, List, Optional


logger = logging.getLogger(__name__)

# The database lives at project root unless TASKTIMER_DB points elsewhere.
DB_FILE = os.environ.get(
    "TASKTIMER_DB",
    os.path.join(os.path.abspath(os.path.dirname(__file__)), "..", "tasktimer.db"),
)
# Seconds a writer waits on a locked database before giving up.
DB_TIMEOUT = float(os.environ.get("TASKTIMER_DB_TIMEOUT", "10"))

# --- Database Schema ---
# users       identity owning every other row
# projects    named buckets of work
# tasks       trackable work items, each in exactly one project
# time_logs   worked intervals against a task
#   start_time  text     -- ISO timestamp (microseconds) when work started
#   end_time    text     -- ISO timestamp when work ended, NULL while running
#   duration    integer  -- whole minutes, 0 while running
#   is_running  integer  -- 1 for the live timer, else 0
SCHEMA = """
CREATE TABLE IF NOT EXISTS users (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    email TEXT NOT NULL UNIQUE,
    password_hash TEXT NOT NULL,
    created_at TEXT NOT NULL
);
CREATE TABLE IF NOT EXISTS projects (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id INTEGER NOT NULL REFERENCES users(id),
    name TEXT NOT NULL,
    description TEXT NOT NULL DEFAULT '',
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);
CREATE TABLE IF NOT EXISTS tasks (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id INTEGER NOT NULL REFERENCES users(id),
    project_id INTEGER NOT NULL REFERENCES projects(id) ON DELETE CASCADE,
    name TEXT NOT NULL,
    description TEXT NOT NULL DEFAULT '',
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);
CREATE TABLE IF NOT EXISTS time_logs (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    task_id INTEGER NOT NULL REFERENCES tasks(id) ON DELETE CASCADE,
    user_id INTEGER NOT NULL REFERENCES users(id),
    start_time TEXT NOT NULL,
    end_time TEXT,
    duration INTEGER NOT NULL DEFAULT 0,
    description TEXT NOT NULL DEFAULT '',
    is_running INTEGER NOT NULL DEFAULT 0,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);
CREATE UNIQUE INDEX IF NOT EXISTS one_running_timer_per_user
    ON time_logs(user_id) WHERE is_running = 1;
CREATE INDEX IF NOT EXISTS time_logs_user_start
    ON time_logs(user_id, start_time);
"""

TIME_LOG_QUERY = """
SELECT l.*, t.name AS task_name, t.project_id AS project_id, p.name AS project_name
FROM time_logs l
JOIN tasks t ON t.id = l.task_id
JOIN projects p ON p.id = t.project_id
WHERE l.user_id = ?
"""

TIMESTAMP_COLUMNS = ("start_time", "end_time", "created_at", "updated_at")


def get_conn() -> sqlite3.Connection:
    """Open a connection to the SQLite database with foreign keys enabled."""
    conn = sqlite3.connect(DB_FILE, timeout=DB_TIMEOUT)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON")
    return conn


@contextmanager
def connection() -> Iterator[sqlite3.Connection]:
    """Yield a connection that commits on success and is always closed."""
    conn = get_conn()
    try:
        with conn:
            yield conn
    finally:
        conn.close()


def init_db() -> None:
    """Initialise the database schema if it does not already exist."""
    logger.debug("Initialising schema in %s", DB_FILE)
    with connection() as conn:
        conn.executescript(SCHEMA)


def to_db_time(value: Optional[datetime]) -> Optional[str]:
    if value is None:
        return None
    return value.isoformat(sep=" ", timespec="microseconds")


def _from_db_time(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


def _row_to_dict(row: sqlite3.Row) -> Dict[str, Any]:
    record = dict(row)
    for col in TIMESTAMP_COLUMNS:
        if col in record:
            record[col] = _from_db_time(record[col])
    if "is_running" in record:
        record["is_running"] = bool(record["is_running"])
    return record


def _update(table: str, valid_cols: set, where: str, where_params: list, fields: Dict[str, Any]) -> int:
    """
    Update the given columns on rows matching ``where``.

    Unlike the insert helpers, ``None`` values are written as NULL; callers
    pass only the columns they mean to change.  Returns the affected row count.
    """
    assignments = []
    params: list[Any] = []
    for col, val in fields.items():
        if col not in valid_cols:
            raise ValueError(f"Invalid column: {col}")
        if isinstance(val, datetime):
            val = to_db_time(val)
        elif isinstance(val, bool):
            val = int(val)
        assignments.append(f"{col} = ?")
        params.append(val)
    if not assignments:
        return 0
    with connection() as conn:
        cur = conn.execute(
            f"UPDATE {table} SET {', '.join(assignments)} WHERE {where}",
            params + where_params,
        )
        return cur.rowcount


# --- Users ---
def insert_user(email: str, password_hash: str, created_at: datetime) -> int:
    with connection() as conn:
        cur = conn.execute(
            "INSERT INTO users (email, password_hash, created_at) VALUES (?, ?, ?)",
            (email, password_hash, to_db_time(created_at)),
        )
        return cur.lastrowid


def fetch_user(user_id: Optional[int] = None, email: Optional[str] = None) -> Optional[Dict[str, Any]]:
    """Look a user up by id or by email."""
    if user_id is not None:
        sql, params = "SELECT * FROM users WHERE id = ?", (user_id,)
    else:
        sql, params = "SELECT * FROM users WHERE email = ?", (email,)
    with connection() as conn:
        row = conn.execute(sql, params).fetchone()
    return _row_to_dict(row) if row else None


def update_user_password(user_id: int, password_hash: str) -> int:
    return _update("users", {"password_hash"}, "id = ?", [user_id], {"password_hash": password_hash})


# --- Projects ---
def insert_project(user_id: int, name: str, description: str, now: datetime) -> int:
    with connection() as conn:
        cur = conn.execute(
            """
            INSERT INTO projects (user_id, name, description, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?)
            """,
            (user_id, name, description, to_db_time(now), to_db_time(now)),
        )
        return cur.lastrowid


def read_projects(user_id: int, project_id: Optional[int] = None) -> List[Dict[str, Any]]:
    """Return the user's projects, newest first."""
    sql = "SELECT * FROM projects WHERE user_id = ?"
    params: list[Any] = [user_id]
    if project_id is not None:
        sql += " AND id = ?"
        params.append(project_id)
    sql += " ORDER BY created_at DESC, id DESC"
    with connection() as conn:
        return [_row_to_dict(row) for row in conn.execute(sql, params).fetchall()]


def update_project(user_id: int, project_id: int, **fields: Any) -> int:
    valid_cols = {"name", "description", "updated_at"}
    return _update("projects", valid_cols, "id = ? AND user_id = ?", [project_id, user_id], fields)


def delete_project(user_id: int, project_id: int) -> int:
    """Remove a project; its tasks and their time logs cascade with it."""
    with connection() as conn:
        cur = conn.execute("DELETE FROM projects WHERE id = ? AND user_id = ?", (project_id, user_id))
        return cur.rowcount


# --- Tasks ---
def insert_task(user_id: int, project_id: int, name: str, description: str, now: datetime) -> int:
    with connection() as conn:
        cur = conn.execute(
            """
            INSERT INTO tasks (user_id, project_id, name, description, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            (user_id, project_id, name, description, to_db_time(now), to_db_time(now)),
        )
        return cur.lastrowid


def read_tasks(
    user_id: int,
    task_id: Optional[int] = None,
    project_id: Optional[int] = None,
) -> List[Dict[str, Any]]:
    """Return the user's tasks with their project name, newest first."""
    sql = """
    SELECT t.*, p.name AS project_name
    FROM tasks t JOIN projects p ON p.id = t.project_id
    WHERE t.user_id = ?
    """
    params: list[Any] = [user_id]
    if task_id is not None:
        sql += " AND t.id = ?"
        params.append(task_id)
    if project_id is not None:
        sql += " AND t.project_id = ?"
        params.append(project_id)
    sql += " ORDER BY t.created_at DESC, t.id DESC"
    with connection() as conn:
        return [_row_to_dict(row) for row in conn.execute(sql, params).fetchall()]


def count_tasks(user_id: int) -> int:
    with connection() as conn:
        return conn.execute("SELECT COUNT(*) FROM tasks WHERE user_id = ?", (user_id,)).fetchone()[0]


def update_task(user_id: int, task_id: int, **fields: Any) -> int:
    valid_cols = {"name", "description", "project_id", "updated_at"}
    return _update("tasks", valid_cols, "id = ? AND user_id = ?", [task_id, user_id], fields)


def delete_task(user_id: int, task_id: int) -> int:
    with connection() as conn:
        cur = conn.execute("DELETE FROM tasks WHERE id = ? AND user_id = ?", (task_id, user_id))
        return cur.rowcount


# --- Time logs ---
def insert_time_log(
    user_id: int,
    task_id: int,
    start_time: datetime,
    end_time: Optional[datetime] = None,
    duration: int = 0,
    description: str = "",
    is_running: bool = False,
    now: Optional[datetime] = None,
) -> int:
    """
    Insert a time log and return its id.

    Inserting a second running log for the same user raises
    ``sqlite3.IntegrityError`` from the ``one_running_timer_per_user`` index.
    """
    stamp = to_db_time(now or datetime.now())
    with connection() as conn:
        cur = conn.execute(
            """
            INSERT INTO time_logs
            (task_id, user_id, start_time, end_time, duration, description, is_running, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                task_id,
                user_id,
                to_db_time(start_time),
                to_db_time(end_time),
                int(duration),
                description,
                int(is_running),
                stamp,
                stamp,
            ),
        )
        return cur.lastrowid


def read_time_logs(
    user_id: int,
    log_id: Optional[int] = None,
    task_id: Optional[int] = None,
    project_id: Optional[int] = None,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    running: Optional[bool] = None,
    limit: Optional[int] = None,
) -> List[Dict[str, Any]]:
    """
    Retrieve the user's time logs, newest ``start_time`` first.

    ``start`` and ``end`` bound ``start_time`` inclusively; each may be given
    alone.  ``running`` restricts to running (True) or finished (False) logs.
    Every row carries ``task_name``, ``project_id`` and ``project_name``.
    """
    sql = TIME_LOG_QUERY
    params: list[Any] = [user_id]
    if log_id is not None:
        sql += " AND l.id = ?"
        params.append(log_id)
    if task_id is not None:
        sql += " AND l.task_id = ?"
        params.append(task_id)
    if project_id is not None:
        sql += " AND t.project_id = ?"
        params.append(project_id)
    if start is not None:
        sql += " AND l.start_time >= ?"
        params.append(to_db_time(start))
    if end is not None:
        sql += " AND l.start_time <= ?"
        params.append(to_db_time(end))
    if running is not None:
        sql += " AND l.is_running = ?"
        params.append(int(running))
    sql += " ORDER BY l.start_time DESC, l.id DESC"
    if limit is not None:
        sql += " LIMIT ?"
        params.append(int(limit))
    logger.debug("Time log query for user %s: %s", user_id, params[1:])
    with connection() as conn:
        return [_row_to_dict(row) for row in conn.execute(sql, params).fetchall()]


def update_time_log(user_id: int, log_id: int, only_running: bool = False, **fields: Any) -> int:
    """
    Update columns on one of the user's time logs and return the row count.

    With ``only_running`` the update applies only while the log is still the
    running timer, which makes stopping a compare-and-set.
    """
    valid_cols = {
        "start_time",
        "end_time",
        "duration",
        "description",
        "is_running",
        "updated_at",
    }
    where = "id = ? AND user_id = ?"
    if only_running:
        where += " AND is_running = 1"
    return _update("time_logs", valid_cols, where, [log_id, user_id], fields)


def delete_time_log(user_id: int, log_id: int) -> int:
    """Remove a time log record entirely."""
    with connection() as conn:
        cur = conn.execute("DELETE FROM time_logs WHERE id = ? AND user_id = ?", (log_id, user_id))
        return cur.rowcount
