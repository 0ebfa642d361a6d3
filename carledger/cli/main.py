"""Command-line interface for the carledger API, notifier and reports."""

from __future__ import annotations

import argparse
import json
from datetime import datetime

import uvicorn
from apscheduler.schedulers.blocking import BlockingScheduler
from apscheduler.triggers.cron import CronTrigger

from backend import crud, database, schemas
from backend import models as db_models
from carledger.engine import reporting
from carledger.engine.entities import Reminder
from carledger.engine.infra.settings import Settings, SettingsError, load_settings
from carledger.engine.logging import configure_cli_logging, record_metrics, setup_logger
from carledger.engine.mail import MailTransport, transport_from_settings
from carledger.engine.notifications import NotificationRun, run_notification_batch

DESCRIPTION = "carledger vehicle expense tracker"

LOG = setup_logger("carledger.cli")


def _month(value: str) -> int:
    try:
        month = int(value)
    except ValueError as exc:  # pragma: no cover - argparse validation
        raise argparse.ArgumentTypeError("Expected a month number") from exc
    if not 1 <= month <= 12:
        raise argparse.ArgumentTypeError("Month must be between 1 and 12")
    return month


def _add_serve_subparser(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> None:
    serve = subparsers.add_parser("serve", help="Run the REST API with uvicorn")
    serve.add_argument("--host", default="127.0.0.1", help="Interface to bind")
    serve.add_argument("--port", type=int, default=8000, help="Port to listen on")
    serve.add_argument(
        "--reload",
        action=argparse.BooleanOptionalAction,
        default=False,
        help="Reload the server when source files change",
    )


def _add_init_db_subparser(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> None:
    subparsers.add_parser("init-db", help="Create the database tables")


def _add_notify_subparser(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> None:
    notify = subparsers.add_parser("notify", help="Email upcoming and overdue reminders once")
    notify.add_argument(
        "--days",
        type=int,
        default=None,
        help="Look-ahead window in days (defaults to the configured notify_days)",
    )


def _add_schedule_subparser(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> None:
    schedule = subparsers.add_parser("schedule", help="Run the notification job every day")
    schedule.add_argument("--hour", type=int, default=None, help="Hour of the daily run")
    schedule.add_argument("--minute", type=int, default=None, help="Minute of the daily run")


def _add_report_subparser(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> None:
    report = subparsers.add_parser("report", help="Print a monthly or yearly report as JSON")
    report.add_argument("--year", type=int, required=True, help="Calendar year")
    report.add_argument("--month", type=_month, default=None, help="Month number for a monthly report")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="carledger", description=DESCRIPTION)
    parser.add_argument(
        "--json-logs",
        action=argparse.BooleanOptionalAction,
        default=False,
        help="Mirror logs to data/logs/carledger.log in JSON format",
    )
    sub = parser.add_subparsers(dest="cmd", required=True)
    _add_serve_subparser(sub)
    _add_init_db_subparser(sub)
    _add_notify_subparser(sub)
    _add_schedule_subparser(sub)
    _add_report_subparser(sub)
    return parser


def run_notifications(
    settings: Settings,
    *,
    window_days: int | None = None,
    now: datetime | None = None,
    transport: MailTransport | None = None,
) -> NotificationRun:
    """Run one notification batch against the configured database.

    Each successful send is committed on its own so a later failure cannot
    roll back flags that were already recorded.
    """

    with database.session_scope() as session:
        reminders = crud.reminders_awaiting_notification(session)

    def mark_sent(reminder: Reminder) -> bool:
        with database.session_scope() as session:
            return crud.mark_email_sent(session, reminder.id)

    run = run_notification_batch(
        reminders,
        transport or transport_from_settings(settings),
        settings.reminder_recipient,
        mark_sent,
        now or datetime.now(),
        settings.notify_days if window_days is None else window_days,
    )
    tags = {"recipient": settings.reminder_recipient}
    record_metrics("notifications_sent", run.sent, tags)
    record_metrics("notifications_failed", run.failed, tags)
    return run


def _handle_serve(args: argparse.Namespace) -> None:
    print(f"[carledger] serve host={args.host} port={args.port}")
    uvicorn.run("backend.server:app", host=args.host, port=args.port, reload=args.reload)


def _handle_init_db(args: argparse.Namespace) -> None:
    database.init_db()
    print(f"[carledger] init-db url={database.DATABASE_URL}")


def _handle_notify(args: argparse.Namespace, settings: Settings) -> None:
    if args.days is not None and args.days < 0:
        raise SystemExit("--days must be zero or positive")
    database.init_db()
    run = run_notifications(settings, window_days=args.days)
    print(
        "[carledger] notify "
        f"sent={run.sent} upcoming={run.upcoming} overdue={run.overdue} failed={run.failed}"
    )


def _handle_schedule(args: argparse.Namespace, settings: Settings) -> None:
    hour = settings.schedule_hour if args.hour is None else args.hour
    minute = settings.schedule_minute if args.minute is None else args.minute
    database.init_db()
    scheduler = BlockingScheduler()
    scheduler.add_job(
        run_notifications,
        CronTrigger(hour=hour, minute=minute),
        args=[settings],
        id="reminder-notifications",
        replace_existing=True,
    )
    print(f"[carledger] schedule daily at {hour:02d}:{minute:02d}")
    try:
        scheduler.start()
    except (KeyboardInterrupt, SystemExit):
        LOG.info("Scheduler stopped")


def _handle_report(args: argparse.Namespace) -> None:
    database.init_db()
    with database.session_scope() as session:
        expenses = crud.snapshots(session, db_models.Expense)
        fuel_records = crud.snapshots(session, db_models.FuelRecord)
        reminders = crud.snapshots(session, db_models.Reminder)
    if args.month is None:
        report = reporting.build_yearly_report(args.year, expenses, fuel_records, reminders)
        payload = schemas.YearlyReportRead.model_validate(report).model_dump(mode="json")
    else:
        report = reporting.build_monthly_report(args.year, args.month, expenses, fuel_records, reminders)
        payload = schemas.MonthlyReportRead.model_validate(report).model_dump(mode="json")
    print(json.dumps(payload, indent=2, ensure_ascii=False))


def main(argv: list[str] | None = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)
    configure_cli_logging(json_logs=bool(args.json_logs))
    try:
        settings = load_settings()
    except SettingsError as exc:
        raise SystemExit(f"[carledger] invalid configuration: {exc}") from exc
    if args.cmd == "serve":
        _handle_serve(args)
    elif args.cmd == "init-db":
        _handle_init_db(args)
    elif args.cmd == "notify":
        _handle_notify(args, settings)
    elif args.cmd == "schedule":
        _handle_schedule(args, settings)
    elif args.cmd == "report":
        _handle_report(args)
    else:
        print(f"[carledger] command = {args.cmd}")


if __name__ == "__main__":
    main()
