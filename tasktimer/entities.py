"""
Users, projects and tasks for the tasktimer time tracker.

These are thin create/read/update/delete helpers over ``tasktimer.data``.
Their one real job is ownership: every lookup is made on behalf of a user,
and an entity that exists but belongs to someone else is reported exactly
like one that does not exist.
"""
from __future__ import annotations

import hashlib
import hmac
import logging
import re
import secrets
import sqlite3
from datetime import datetime
from typing import Any, Dict, List, Optional

from tasktimer import data
from tasktimer.errors import NotFound, ValidationError


logger = logging.getLogger(__name__)

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
MIN_PASSWORD_LENGTH = 6
HASH_ITERATIONS = 100_000


# --- Users ---
def hash_password(password: str) -> str:
    """Hash a password for storage as ``salt:digest``."""
    salt = secrets.token_hex(16)
    digest = hashlib.pbkdf2_hmac("sha256", password.encode(), salt.encode(), HASH_ITERATIONS)
    return f"{salt}:{digest.hex()}"


def verify_password(password: str, password_hash: str) -> bool:
    salt, stored = password_hash.split(":")
    digest = hashlib.pbkdf2_hmac("sha256", password.encode(), salt.encode(), HASH_ITERATIONS)
    return hmac.compare_digest(digest.hex(), stored)


def _check_password(password: Optional[str]) -> None:
    if not password or len(password) < MIN_PASSWORD_LENGTH:
        raise ValidationError.for_field(
            "password", f"Password must be at least {MIN_PASSWORD_LENGTH} characters"
        )


def create_user(email: str, password: str) -> Dict[str, Any]:
    """Register a new user and return it (without the credential)."""
    email = (email or "").strip().lower()
    if not EMAIL_PATTERN.match(email):
        raise ValidationError.for_field("email", "Please include a valid email")
    _check_password(password)
    try:
        user_id = data.insert_user(email, hash_password(password), datetime.now())
    except sqlite3.IntegrityError:
        raise ValidationError.for_field("email", "User already exists") from None
    logger.info("Registered user %s", user_id)
    return get_user(user_id)


def get_user(user_id: int) -> Dict[str, Any]:
    user = data.fetch_user(user_id=user_id)
    if user is None:
        raise NotFound("User not found")
    user.pop("password_hash")
    return user


def get_user_by_email(email: str) -> Dict[str, Any]:
    user = data.fetch_user(email=(email or "").strip().lower())
    if user is None:
        raise NotFound("User not found")
    user.pop("password_hash")
    return user


def authenticate(email: str, password: str) -> Optional[Dict[str, Any]]:
    """Return the user when the credential matches, else ``None``."""
    user = data.fetch_user(email=(email or "").strip().lower())
    if user is None or not verify_password(password, user.pop("password_hash")):
        return None
    return user


def change_password(user_id: int, password: str) -> None:
    _check_password(password)
    if not data.update_user_password(user_id, hash_password(password)):
        raise NotFound("User not found")
    logger.info("Changed credential for user %s", user_id)


def _require_name(name: Optional[str], message: str) -> str:
    name = (name or "").strip()
    if not name:
        raise ValidationError.for_field("name", message)
    return name


# --- Projects ---
def create_project(user_id: int, name: str, description: str = "") -> Dict[str, Any]:
    name = _require_name(name, "Project name is required")
    project_id = data.insert_project(user_id, name, (description or "").strip(), datetime.now())
    logger.info("User %s created project %s", user_id, project_id)
    return get_project(user_id, project_id)


def list_projects(user_id: int) -> List[Dict[str, Any]]:
    return data.read_projects(user_id)


def get_project(user_id: int, project_id: int) -> Dict[str, Any]:
    rows = data.read_projects(user_id, project_id=project_id)
    if not rows:
        raise NotFound("Project not found")
    return rows[0]


def update_project(
    user_id: int, project_id: int, name: str, description: Optional[str] = None
) -> Dict[str, Any]:
    """Rename a project; an omitted or empty description keeps the old one."""
    name = _require_name(name, "Project name is required")
    project = get_project(user_id, project_id)
    data.update_project(
        user_id,
        project_id,
        name=name,
        description=(description or "").strip() or project["description"],
        updated_at=datetime.now(),
    )
    return get_project(user_id, project_id)


def delete_project(user_id: int, project_id: int) -> None:
    if not data.delete_project(user_id, project_id):
        raise NotFound("Project not found")
    logger.info("User %s deleted project %s with its tasks and time logs", user_id, project_id)


# --- Tasks ---
def create_task(user_id: int, name: str, project_id: int, description: str = "") -> Dict[str, Any]:
    name = _require_name(name, "Task name is required")
    if project_id is None or project_id == "":
        raise ValidationError.for_field("project", "Project is required")
    get_project(user_id, project_id)
    task_id = data.insert_task(user_id, project_id, name, (description or "").strip(), datetime.now())
    logger.info("User %s created task %s in project %s", user_id, task_id, project_id)
    return get_task(user_id, task_id)


def list_tasks(user_id: int, project_id: Optional[int] = None) -> List[Dict[str, Any]]:
    return data.read_tasks(user_id, project_id=project_id)


def get_task(user_id: int, task_id: int) -> Dict[str, Any]:
    rows = data.read_tasks(user_id, task_id=task_id)
    if not rows:
        raise NotFound("Task not found")
    return rows[0]


def update_task(
    user_id: int,
    task_id: int,
    name: str,
    project_id: int,
    description: Optional[str] = None,
) -> Dict[str, Any]:
    name = _require_name(name, "Task name is required")
    if project_id is None or project_id == "":
        raise ValidationError.for_field("project", "Project is required")
    task = get_task(user_id, task_id)
    get_project(user_id, project_id)
    data.update_task(
        user_id,
        task_id,
        name=name,
        project_id=project_id,
        description=(description or "").strip() or task["description"],
        updated_at=datetime.now(),
    )
    return get_task(user_id, task_id)


def delete_task(user_id: int, task_id: int) -> None:
    if not data.delete_task(user_id, task_id):
        raise NotFound("Task not found")
    logger.info("User %s deleted task %s with its time logs", user_id, task_id)


def count_tasks(user_id: int) -> int:
    return data.count_tasks(user_id)
