import json
import sqlite3

import pytest

from spendwise.cli import build_parser, main


@pytest.fixture
def db_file(tmp_path):
    return str(tmp_path / "cli.db")


def test_init_db_creates_schema(db_file, capsys):
    assert main(["--db", db_file, "init-db"]) == 0
    assert "Database ready" in capsys.readouterr().out

    tables = {row[0] for row in sqlite3.connect(db_file).execute("SELECT name FROM sqlite_master WHERE type = 'table'")}
    assert {"users", "budgets", "transactions"} <= tables


def test_reset_db_requires_confirmation(db_file):
    main(["--db", db_file, "init-db"])
    assert main(["--db", db_file, "reset-db"]) == 1
    assert main(["--db", db_file, "reset-db", "--yes"]) == 0


def test_run_job_prints_summary(db_file, capsys):
    main(["--db", db_file, "init-db"])
    capsys.readouterr()

    assert main(["--db", db_file, "run-job", "budget-reset"]) == 0
    assert json.loads(capsys.readouterr().out) == {"reset": 0, "errors": 0}


def test_run_job_unknown_name(db_file):
    assert main(["--db", db_file, "run-job", "defrag"]) == 1


def test_seed_demo_creates_account(db_file, capsys):
    assert main(["--db", db_file, "seed-demo", "demo-user", "--password", "password123", "--days", "20"]) == 0
    summary = json.loads(capsys.readouterr().out)
    assert summary["recurring_created"] == 5
    assert summary["savings_goals_created"] == 1


def test_parser_requires_a_command():
    with pytest.raises(SystemExit):
        build_parser().parse_args([])
