"""
Root Typer application for the ``jobstore`` CLI.

Every command opens the store configured by ``JOBSTORE_*`` settings;
``--database`` and ``--instance`` override the database URL (or SQLite
path) and the scheduler name.
"""

from __future__ import annotations

import typer
from typer import Typer

from jobstore.cli.utils import handle_errors, open_store, output_dict, output_rows
from jobstore.scheduling import GroupMatcher

app = Typer(
    name="jobstore",
    help="jobstore: inspect and maintain a durable scheduler job store.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)

DatabaseOption = typer.Option(None, "--database", "-d", help="Database URL or SQLite file path.")
InstanceOption = typer.Option(None, "--instance", "-i", help="Scheduler instance name.")
JsonOption = typer.Option(False, "--json", help="Emit JSON.")


def _version_callback(value: bool) -> None:
    if value:
        from importlib.metadata import PackageNotFoundError
        from importlib.metadata import version as pkg_version

        try:
            v = pkg_version("jobstore")
        except PackageNotFoundError:
            from jobstore import __version__ as v
        typer.echo(f"jobstore {v}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool | None = typer.Option(  # noqa: UP007
        None,
        "--version",
        "-V",
        help="Show version and exit.",
        callback=_version_callback,
        is_eager=True,
    ),
) -> None:
    """jobstore CLI: tables, recovery, counts, listings and group pausing."""


@app.command("init-db")
def init_db(
    database: str | None = DatabaseOption,
    instance: str | None = InstanceOption,
) -> None:
    """Create the job store tables."""
    with handle_errors():
        store = open_store(database, instance)
        store.initialize()
    typer.echo("Tables ready.")


@app.command("recover")
def recover(
    database: str | None = DatabaseOption,
    instance: str | None = InstanceOption,
    json_out: bool = JsonOption,
) -> None:
    """Run startup recovery for the scheduler instance."""
    with handle_errors():
        report = open_store(database, instance).scheduler_started()
    output_dict(report.to_dict(), as_json=json_out, title="Recovery")


@app.command("counts")
def counts(
    database: str | None = DatabaseOption,
    instance: str | None = InstanceOption,
    json_out: bool = JsonOption,
) -> None:
    """Show the number of jobs, triggers and calendars."""
    with handle_errors():
        store = open_store(database, instance)
        data = {
            "jobs": store.get_number_of_jobs(),
            "triggers": store.get_number_of_triggers(),
            "calendars": store.get_number_of_calendars(),
        }
    output_dict(data, as_json=json_out, title=f"Scheduler: {store.instance_name}")


@app.command("jobs")
def list_jobs(
    group: str | None = typer.Option(None, "--group", "-g", help="Only this job group."),
    database: str | None = DatabaseOption,
    instance: str | None = InstanceOption,
    json_out: bool = JsonOption,
) -> None:
    """List stored jobs."""
    matcher = GroupMatcher.group_equals(group) if group else GroupMatcher.any_group()
    with handle_errors():
        store = open_store(database, instance)
        rows = []
        for key in sorted(store.get_job_keys(matcher)):
            job = store.retrieve_job(key)
            if job is None:
                continue
            rows.append(
                {
                    "group": key.group,
                    "name": key.name,
                    "job_type": job.job_type,
                    "durable": job.durable,
                    "concurrent": not job.concurrent_execution_disallowed,
                    "triggers": len(store.get_triggers_for_job(key)),
                }
            )
    output_rows(rows, as_json=json_out, title="Jobs")


@app.command("triggers")
def list_triggers(
    group: str | None = typer.Option(None, "--group", "-g", help="Only this trigger group."),
    database: str | None = DatabaseOption,
    instance: str | None = InstanceOption,
    json_out: bool = JsonOption,
) -> None:
    """List stored triggers with their state and next fire time."""
    matcher = GroupMatcher.group_equals(group) if group else GroupMatcher.any_group()
    with handle_errors():
        store = open_store(database, instance)
        rows = []
        for key in sorted(store.get_trigger_keys(matcher)):
            trigger = store.retrieve_trigger(key)
            if trigger is None:
                continue
            rows.append(
                {
                    "group": key.group,
                    "name": key.name,
                    "job": str(trigger.job_key),
                    "kind": trigger.schedule.kind,
                    "state": store.get_trigger_state(key).value,
                    "priority": trigger.priority,
                    "next_fire_time": trigger.next_fire_time,
                }
            )
    output_rows(rows, as_json=json_out, title="Triggers")


@app.command("pause-group")
def pause_group(
    group: str = typer.Argument(..., help="Trigger group to pause."),
    database: str | None = DatabaseOption,
    instance: str | None = InstanceOption,
) -> None:
    """Pause every trigger in a trigger group."""
    with handle_errors():
        paused = open_store(database, instance).pause_triggers(GroupMatcher.group_equals(group))
    if paused:
        typer.echo(f"Paused trigger group {group}.")
    else:
        typer.echo(f"No triggers in group {group}.")


@app.command("resume-group")
def resume_group(
    group: str = typer.Argument(..., help="Trigger group to resume."),
    database: str | None = DatabaseOption,
    instance: str | None = InstanceOption,
) -> None:
    """Resume every trigger in a trigger group."""
    with handle_errors():
        resumed = open_store(database, instance).resume_triggers(GroupMatcher.group_equals(group))
    if resumed:
        typer.echo(f"Resumed trigger group {group}.")
    else:
        typer.echo(f"No triggers in group {group}.")


@app.command("calendars")
def list_calendars(
    database: str | None = DatabaseOption,
    instance: str | None = InstanceOption,
    json_out: bool = JsonOption,
) -> None:
    """List stored calendars."""
    with handle_errors():
        store = open_store(database, instance)
        rows = []
        for name in store.get_calendar_names():
            calendar = store.retrieve_calendar(name)
            if calendar is None:
                continue
            rows.append(
                {
                    "name": name,
                    "description": calendar.description,
                    "timezone": calendar.timezone,
                    "excluded_dates": len(calendar.excluded_dates),
                    "excluded_weekdays": ",".join(map(str, sorted(calendar.excluded_weekdays))),
                }
            )
    output_rows(rows, as_json=json_out, title="Calendars")


__all__ = ["app"]
