"""Command line front end for the tasktimer time tracker.

Every command is a thin call into ``tasktimer.api``; the JSON payload is
printed and the exit status is 0 for a successful response, 1 otherwise.
"""
from __future__ import annotations

import argparse
import json
import logging
import sys
from typing import List, Optional

from tasktimer import api, data, entities
from tasktimer.errors import TrackerError


logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="tasktimer",
        description="Track time against projects and tasks.",
    )
    parser.add_argument("--db", help="SQLite database path (default: $TASKTIMER_DB or tasktimer.db in the project root)")
    parser.add_argument("--user", help="Email of the user to act as")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    sub = parser.add_subparsers(dest="command", required=True)

    reg = sub.add_parser("register", help="Create a user")
    reg.add_argument("email")
    reg.add_argument("password")

    project = sub.add_parser("project", help="Manage projects")
    project_sub = project.add_subparsers(dest="action", required=True)
    p_add = project_sub.add_parser("add")
    p_add.add_argument("name")
    p_add.add_argument("--description", default="")
    project_sub.add_parser("list")
    p_rm = project_sub.add_parser("rm")
    p_rm.add_argument("id", type=int)

    task = sub.add_parser("task", help="Manage tasks")
    task_sub = task.add_subparsers(dest="action", required=True)
    t_add = task_sub.add_parser("add")
    t_add.add_argument("project", type=int)
    t_add.add_argument("name")
    t_add.add_argument("--description", default="")
    t_list = task_sub.add_parser("list")
    t_list.add_argument("--project", type=int)
    t_rm = task_sub.add_parser("rm")
    t_rm.add_argument("id", type=int)

    start = sub.add_parser("start", help="Start a timer on a task")
    start.add_argument("task", type=int)
    sub.add_parser("stop", help="Stop the running timer")
    sub.add_parser("current", help="Show the running timer")

    for name, target in (("log", "task"), ("edit", "id")):
        entry = sub.add_parser(name, help="Add a manual entry" if name == "log" else "Edit an entry")
        entry.add_argument(target, type=int)
        entry.add_argument("start", help="ISO start time, e.g. 2024-05-01T09:00")
        entry.add_argument("--end", help="ISO end time")
        entry.add_argument("--duration", type=int, help="Minutes, used when no end time is given")
        entry.add_argument("--description")

    logs = sub.add_parser("logs", help="List time logs")
    logs.add_argument("--task", type=int)
    logs.add_argument("--start-date")
    logs.add_argument("--end-date")
    rm_log = sub.add_parser("rm-log", help="Delete a time log")
    rm_log.add_argument("id", type=int)

    sub.add_parser("summary", help="Dashboard totals and recent entries")
    for name in ("projects", "tasks"):
        totals = sub.add_parser(name, help=f"Totals per {name[:-1]}")
        totals.add_argument("--start-date")
        totals.add_argument("--end-date")
    weekly = sub.add_parser("weekly", help="Seven day breakdown")
    weekly.add_argument("--week-start")

    chart = sub.add_parser("chart", help="Write a pie chart of project totals")
    chart.add_argument("output")
    chart.add_argument("--start-date")
    chart.add_argument("--end-date")
    return parser


def _date_query(args: argparse.Namespace) -> dict:
    return {"startDate": args.start_date, "endDate": args.end_date}


def _entry_body(args: argparse.Namespace) -> dict:
    return {
        "startTime": args.start,
        "endTime": args.end,
        "duration": args.duration,
        "description": args.description,
    }


def dispatch(args: argparse.Namespace, user_id: Optional[int]) -> api.Response:
    """Run the command named in ``args`` and return its response."""
    command = args.command
    if command == "project":
        if args.action == "add":
            return api.create_project(user_id, {"name": args.name, "description": args.description})
        if args.action == "list":
            return api.list_projects(user_id)
        return api.delete_project(user_id, args.id)
    if command == "task":
        if args.action == "add":
            body = {"name": args.name, "project": args.project, "description": args.description}
            return api.create_task(user_id, body)
        if args.action == "list":
            return api.list_tasks(user_id, {"project": args.project})
        return api.delete_task(user_id, args.id)
    if command == "start":
        return api.start_timer(user_id, {"taskId": args.task})
    if command == "stop":
        return api.stop_timer(user_id)
    if command == "current":
        return api.current_timer(user_id)
    if command == "log":
        return api.create_time_log(user_id, {"taskId": args.task, **_entry_body(args)})
    if command == "edit":
        return api.update_time_log(user_id, args.id, _entry_body(args))
    if command == "logs":
        return api.list_time_logs(user_id, {"task": args.task, **_date_query(args)})
    if command == "rm-log":
        return api.delete_time_log(user_id, args.id)
    if command == "summary":
        return api.dashboard_summary(user_id)
    if command == "projects":
        return api.dashboard_projects(user_id, _date_query(args))
    if command == "tasks":
        return api.dashboard_tasks(user_id, _date_query(args))
    if command == "weekly":
        return api.dashboard_weekly(user_id, {"weekStart": args.week_start})
    if command == "chart":
        return api.export_project_chart(user_id, args.output, _date_query(args))
    raise ValueError(f"Unknown command: {command}")


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    if args.db:
        data.DB_FILE = args.db
    data.init_db()

    if args.command == "register":
        try:
            user = entities.create_user(args.email, args.password)
        except TrackerError as exc:
            print(exc.message, file=sys.stderr)
            return 1
        print(json.dumps({"id": user["id"], "email": user["email"]}))
        return 0

    if not args.user:
        print("--user is required for this command", file=sys.stderr)
        return 1
    try:
        user_id = entities.get_user_by_email(args.user)["id"]
    except TrackerError as exc:
        print(exc.message, file=sys.stderr)
        return 1

    logger.debug("Running %s for user %s", args.command, user_id)
    status, payload = dispatch(args, user_id)
    print(json.dumps(payload, indent=2, default=str))
    return 0 if status == 200 else 1
