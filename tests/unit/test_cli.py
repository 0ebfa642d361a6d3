from __future__ import annotations

import json
from collections.abc import Iterator
from datetime import date, timedelta
from decimal import Decimal
from pathlib import Path

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from backend import crud, database, schemas
from carledger.cli import main as cli
from carledger.cli.main import build_parser, main


@pytest.fixture()
def memory_db(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> Iterator[sessionmaker]:
    """Point the backend at a private in-memory database."""

    monkeypatch.chdir(tmp_path)
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        future=True,
    )
    factory = sessionmaker(bind=engine, autoflush=False, autocommit=False, future=True)
    monkeypatch.setattr(database, "engine", engine)
    monkeypatch.setattr(database, "SessionLocal", factory)
    database.init_db()
    yield factory
    engine.dispose()


def _seed_reminder(title: str, due: date) -> int:
    with database.session_scope() as session:
        reminder = crud.create_reminder(
            session,
            schemas.ReminderCreate(type="maintenance", title=title, due_date=due),
            today=due - timedelta(days=30),
        )
        return reminder.id


def test_parser_lists_subcommands() -> None:
    parser = build_parser()
    args = parser.parse_args(["--json-logs", "notify", "--days", "3"])
    assert args.cmd == "notify"
    assert args.days == 3
    assert args.json_logs is True
    with pytest.raises(SystemExit):
        parser.parse_args(["report", "--year", "2024", "--month", "13"])


def test_notify_flags_sent_reminders(memory_db: sessionmaker, capsys: pytest.CaptureFixture[str]) -> None:
    today = date.today()
    soon = _seed_reminder("Oil change", today + timedelta(days=2))
    late = _seed_reminder("Inspection", today - timedelta(days=1))
    distant = _seed_reminder("Timing belt", today + timedelta(days=90))

    main(["notify"])

    captured = capsys.readouterr()
    assert "[carledger] notify sent=2 upcoming=1 overdue=1 failed=0" in captured.out
    with database.session_scope() as session:
        assert crud.get_reminder(session, soon).email_sent is True
        assert crud.get_reminder(session, late).email_sent is True
        assert crud.get_reminder(session, distant).email_sent is False

    main(["notify"])
    assert "sent=0" in capsys.readouterr().out


def test_notify_window_from_arguments(memory_db: sessionmaker, capsys: pytest.CaptureFixture[str]) -> None:
    _seed_reminder("Tires", date.today() + timedelta(days=20))
    main(["notify", "--days", "30"])
    assert "sent=1 upcoming=1" in capsys.readouterr().out


def test_run_notifications_records_metrics(memory_db: sessionmaker, tmp_path: Path) -> None:
    _seed_reminder("Brakes", date.today() + timedelta(days=1))

    class Failing:
        def send(self, recipient, subject, template_data):
            raise OSError("connection refused")

    run = cli.run_notifications(cli.load_settings({}), transport=Failing())

    assert run.failed == 1
    metrics_path = tmp_path / "data" / "logs" / "metrics.jsonl"
    metrics = [json.loads(line) for line in metrics_path.read_text(encoding="utf-8").splitlines()]
    assert {item["metric"] for item in metrics} == {"notifications_sent", "notifications_failed"}
    with database.session_scope() as session:
        assert crud.reminders_awaiting_notification(session)[0].title == "Brakes"


def test_report_prints_json(memory_db: sessionmaker, capsys: pytest.CaptureFixture[str]) -> None:
    with database.session_scope() as session:
        crud.create_expense(
            session,
            schemas.ExpenseCreate(
                category="Mantenimiento",
                amount=Decimal("120.00"),
                description="Brake pads",
                date=date(2024, 5, 3),
            ),
        )

    main(["report", "--year", "2024", "--month", "5"])
    payload = json.loads(capsys.readouterr().out)
    assert payload["period"] == "5/2024"
    assert payload["expenses"]["total"] == "120.00"

    main(["report", "--year", "2024"])
    yearly = json.loads(capsys.readouterr().out)
    assert yearly["summary"]["total_expenses"] == "120.00"
    assert yearly["expenses_by_category"] == {"Mantenimiento": "120.00"}
