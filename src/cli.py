from __future__ import annotations

"""Linha de comando do monitor de batches (`batchmon`).

Comandos:
    jobs list|add|remove|import|export   Configuração dos batches
    status                               Passagem de status para uma data
    schedule / reschedule / unschedule   Tarefas no Windows Task Scheduler
    show-log                             Conteúdo do log de um batch
"""

import logging
from dataclasses import replace
from datetime import date

import click

from db import JobStore, export_jobs_json, load_jobs_json, parse_batch_kind
from models import BatchKind, Job, JobStatus
from orchestrator import StatusOrchestrator
from report import build_html_report, build_report_subject, build_text_report
from scheduler import ScheduleController, SchedulerError
from util import MonitorSettings, configure_logging, job_log_text


def build_scheduler(settings: MonitorSettings) -> ScheduleController:
    return ScheduleController.from_settings(settings)


class AppContext:
    """Dependências compartilhadas entre os comandos (criadas sob demanda)."""

    def __init__(self, settings: MonitorSettings) -> None:
        self.settings = settings
        self._store: JobStore | None = None
        self._scheduler: ScheduleController | None = None

    @property
    def store(self) -> JobStore:
        if self._store is None:
            self._store = JobStore(self.settings.db_path)
        return self._store

    @property
    def scheduler(self) -> ScheduleController:
        if self._scheduler is None:
            self._scheduler = build_scheduler(self.settings)
        return self._scheduler

    def require_job(self, name: str) -> Job:
        job = self.store.get_job_by_name(name)
        if job is None:
            raise click.ClickException(f"Batch not found: {name}")
        return job


pass_app = click.make_pass_decorator(AppContext)


@click.group()
@click.option("--db", "db_path", default=None, help="SQLite file (default: BATCHMON_DB_PATH).")
@click.option("-v", "--verbose", is_flag=True, help="Log progress to stderr.")
@click.pass_context
def cli(ctx: click.Context, db_path: str | None, verbose: bool) -> None:
    """batchmon - status of scheduled batch jobs from their logs"""
    configure_logging(logging.INFO if verbose else logging.WARNING)
    settings = MonitorSettings.from_env()
    if db_path:
        settings = replace(settings, db_path=db_path)
    ctx.obj = AppContext(settings)


# ---------------- Jobs ----------------
@cli.group()
def jobs() -> None:
    """Batch configuration"""


@jobs.command("list")
@pass_app
def jobs_list(app: AppContext) -> None:
    """List configured batches"""
    rows = app.store.list_jobs()
    if not rows:
        click.echo("No batches configured.")
        return
    for job in rows:
        click.echo(
            f"{job.name} | type={job.batch_kind.value} | log={job.log_path or '-'} | "
            f"error_log={job.error_log_path or '-'} | exe={job.executable_path or '-'}"
        )


@jobs.command("add")
@click.argument("name")
@click.option("--log", "log_path", default="", help="Main log file.")
@click.option("--error-log", "error_log_path", default="", help="Error log file.")
@click.option("--custom-log", "custom_log_path", default="", help="Custom log (overrides the pair).")
@click.option("--config", "config_path", default="", help="Batch configuration file.")
@click.option("--exe", "executable_path", default="", help="Batch executable.")
@click.option(
    "--type",
    "batch_type",
    type=click.Choice([k.value for k in BatchKind], case_sensitive=False),
    default=BatchKind.FIXED_TIME.value,
    show_default=True,
)
@pass_app
def jobs_add(app: AppContext, name, log_path, error_log_path, custom_log_path, config_path, executable_path, batch_type) -> None:
    """Add a batch"""
    job = Job(
        id=None,
        name=name,
        log_path=log_path,
        error_log_path=error_log_path,
        custom_log_path=custom_log_path,
        config_path=config_path,
        executable_path=executable_path,
        batch_kind=parse_batch_kind(batch_type),
    )
    try:
        job_id = app.store.add_job(job)
    except ValueError as exc:
        raise click.ClickException(str(exc)) from exc
    click.echo(f"Batch '{name}' added (id={job_id}).")


@jobs.command("remove")
@click.argument("name")
@click.option("--keep-task", is_flag=True, help="Do not remove the scheduled task.")
@pass_app
def jobs_remove(app: AppContext, name: str, keep_task: bool) -> None:
    """Remove a batch (and its scheduled task)"""
    job = app.require_job(name)
    if not keep_task and app.scheduler.task_exists(job.name):
        try:
            app.scheduler.delete_schedule(job.name)
        except SchedulerError as exc:
            raise click.ClickException(str(exc)) from exc
        app.store.append_event(message=f"Schedule removed for '{job.name}'", stream="scheduler", job_id=job.id)
    app.store.delete_job(int(job.id))
    click.echo(f"Batch '{job.name}' removed.")


@jobs.command("import")
@click.argument("path", type=click.Path(dir_okay=False))
@pass_app
def jobs_import(app: AppContext, path: str) -> None:
    """Import batches from a JSON file"""
    added = 0
    for job in load_jobs_json(path):
        try:
            app.store.add_job(job)
            added += 1
        except ValueError as exc:
            click.echo(f"Skipped: {exc}", err=True)
    click.echo(f"{added} batch(es) imported.")


@jobs.command("export")
@click.argument("path", type=click.Path(dir_okay=False))
@pass_app
def jobs_export(app: AppContext, path: str) -> None:
    """Export batches to a JSON file"""
    count = export_jobs_json(app.store.list_jobs(), path)
    click.echo(f"{count} batch(es) exported to {path}.")


# ---------------- Status ----------------
@cli.command()
@click.option("--date", "filter_date", type=click.DateTime(formats=["%Y-%m-%d"]), default=None,
              help="Filter date (default: today).")
@click.option("--report", "report_format", type=click.Choice(["none", "text", "html"]), default="none",
              show_default=True)
@click.option("--issues", "show_issues", is_flag=True, help="Print each classified line.")
@click.option("--fail-on-error", is_flag=True, help="Exit with code 2 if any batch is in Error.")
@pass_app
def status(app: AppContext, filter_date, report_format: str, show_issues: bool, fail_on_error: bool) -> None:
    """Check the status of every batch for a date"""
    day = filter_date.date() if filter_date else date.today()
    job_list = app.store.list_jobs()
    if not job_list:
        click.echo("No batches configured.")
        return

    orchestrator = StatusOrchestrator.from_settings(app.settings, app.scheduler)
    results = orchestrator.run(job_list, day)

    click.echo(build_report_subject(day))
    for name, result in results.items():
        last_run = result.last_run.strftime("%Y-%m-%d %H:%M") if result.last_run else "-"
        next_run = result.schedule.next_run if result.schedule else None
        click.echo(
            f"{name} | {result.status.value} | {result.message} | last_run={last_run} | "
            f"next_run={next_run.strftime('%Y-%m-%d %H:%M') if next_run else '-'}"
        )
        if show_issues:
            for issue in result.issues:
                click.echo(f"    {issue.kind.value} {issue.file_name}:{issue.line_number} {issue.message}")

    failed = sum(1 for r in results.values() if r.status is JobStatus.ERROR)
    app.store.append_event(
        message=f"Status check finished: {len(results)} batch(es), {failed} with errors",
        stream="analysis",
    )

    if report_format == "text":
        click.echo(build_text_report(results, day) or "Nothing to report.")
    elif report_format == "html":
        click.echo(build_html_report(results, day))

    if fail_on_error and failed:
        click.get_current_context().exit(2)


# ---------------- Scheduling ----------------
def _scheduler_action(app: AppContext, job: Job, action, success: str) -> None:
    try:
        info = action()
    except (ValueError, SchedulerError) as exc:
        app.store.append_event(message=str(exc), stream="scheduler", job_id=job.id)
        raise click.ClickException(str(exc)) from exc
    app.store.append_event(message=success, stream="scheduler", job_id=job.id)
    click.echo(success)
    if info is not None and info.next_run:
        click.echo(f"Next run: {info.next_run:%Y-%m-%d %H:%M}")


@cli.command()
@click.argument("name")
@click.option("--at", "at", required=True, help="Start time (HH:MM).")
@pass_app
def schedule(app: AppContext, name: str, at: str) -> None:
    """Register the batch in the task scheduler"""
    job = app.require_job(name)
    _scheduler_action(
        app, job,
        lambda: app.scheduler.schedule_job(job, at),
        f"Task scheduled successfully for '{job.name}' at {at}",
    )


@cli.command()
@click.argument("name")
@click.option("--at", "at", required=True, help="New start time (HH:MM).")
@pass_app
def reschedule(app: AppContext, name: str, at: str) -> None:
    """Move the batch's scheduled start time"""
    job = app.require_job(name)
    _scheduler_action(
        app, job,
        lambda: app.scheduler.update_schedule(job.name, at),
        f"Schedule updated for '{job.name}' to {at}",
    )


@cli.command()
@click.argument("name")
@pass_app
def unschedule(app: AppContext, name: str) -> None:
    """Remove the batch's scheduled task"""
    job = app.require_job(name)
    _scheduler_action(
        app, job,
        lambda: app.scheduler.delete_schedule(job.name),
        f"Schedule removed for '{job.name}'",
    )


# ---------------- Viewer ----------------
@cli.command("show-log")
@click.argument("name")
@click.option("--error", "error", is_flag=True, help="Show the error log.")
@pass_app
def show_log(app: AppContext, name: str, error: bool) -> None:
    """Print a batch's log file"""
    click.echo(job_log_text(app.require_job(name), error=error))


def main() -> None:
    cli()


if __name__ == "__main__":
    main()
