"""End-to-end tests of the command line front end."""

import json

import pytest

from tasktimer import analytics
from tasktimer.cli import main


@pytest.fixture
def run(db, capsys):
    """Invoke the CLI against the test database and decode its output."""

    def _run(*argv, user="ada@example.com"):
        args = ["--db", db]
        if user:
            args += ["--user", user]
        code = main(args + list(argv))
        out, err = capsys.readouterr()
        return code, (json.loads(out) if out.strip() else None), err

    return _run


@pytest.fixture
def registered(run):
    code, payload, _ = run("register", "ada@example.com", "secret1", user=None)
    assert code == 0
    return payload


class TestCli:
    def test_register(self, registered):
        assert registered["email"] == "ada@example.com"

    def test_unknown_user(self, run):
        code, _, err = run("current", user="ghost@example.com")
        assert code == 1
        assert "User not found" in err

    def test_user_required(self, run):
        code, _, err = run("current", user=None)
        assert code == 1
        assert "--user" in err

    def test_timer_round_trip(self, run, registered):
        _, project, _ = run("project", "add", "Website")
        _, task, _ = run("task", "add", str(project["id"]), "Design")
        code, started, _ = run("start", str(task["id"]))
        assert code == 0
        assert started["isRunning"] is True

        code, payload, _ = run("start", str(task["id"]))
        assert code == 1
        assert payload == {"message": "Another timer is already running"}

        code, stopped, _ = run("stop")
        assert code == 0
        assert stopped["isRunning"] is False

        code, current, _ = run("current")
        assert code == 0
        assert current is None

    def test_manual_entries_and_reports(self, run, registered, tmp_path):
        _, project, _ = run("project", "add", "Website")
        _, task, _ = run("task", "add", str(project["id"]), "Design")
        code, entry, _ = run(
            "log", str(task["id"]), "2024-05-15T09:00", "--end", "2024-05-15T10:30", "--description", "Mockups"
        )
        assert code == 0
        assert entry["formattedDuration"] == "1:30"

        code, edited, _ = run("edit", str(entry["id"]), "2024-05-15T09:00", "--end", "2024-05-15T09:45")
        assert code == 0
        assert edited["duration"] == 45
        assert edited["description"] == "Mockups"

        _, logs, _ = run("logs", "--start-date", "2024-05-15", "--end-date", "2024-05-15")
        assert [l["id"] for l in logs] == [entry["id"]]

        _, projects, _ = run("projects")
        assert projects == [{"name": "Website", "total": 45, "formattedTotal": "0:45"}]
        _, tasks, _ = run("tasks")
        assert tasks[0]["taskName"] == "Design"
        _, week, _ = run("weekly", "--week-start", "2024-05-15")
        assert week[3]["total"] == 45

        chart = tmp_path / "chart.png"
        code, result, _ = run("chart", str(chart))
        assert code == 0
        assert result["written"] is True
        assert chart.exists()

        code, removed, _ = run("rm-log", str(entry["id"]))
        assert removed == {"message": "Time log removed"}

    def test_bad_manual_entry(self, run, registered):
        _, project, _ = run("project", "add", "Website")
        _, task, _ = run("task", "add", str(project["id"]), "Design")
        code, payload, _ = run("log", str(task["id"]), "2024-05-15T10:00", "--end", "2024-05-15T09:00")
        assert code == 1
        assert payload["errors"][0]["field"] == "endTime"

    def test_chart_failure_reports_server_error(self, run, registered, tmp_path, monkeypatch):
        def broken(*args, **kwargs):
            raise RuntimeError("disk on fire")

        monkeypatch.setattr(analytics, "project_totals", broken)
        code, payload, _ = run("chart", str(tmp_path / "chart.png"))
        assert code == 1
        assert payload == {"message": "Server error"}
        assert not (tmp_path / "chart.png").exists()

    def test_db_help_names_default_location(self, capsys):
        with pytest.raises(SystemExit):
            main(["--help"])
        help_text = " ".join(capsys.readouterr().out.split())
        assert "tasktimer.db in the project root" in help_text
        assert "./tasktimer.db" not in help_text
