#!/usr/bin/env python3
"""perfwatch - performance alert monitor and incident lifecycle CLI."""
import sys
import json
from datetime import datetime, timedelta, timezone
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent))

import click
from rich.console import Console
from rich.table import Table

from __version__ import __version__

console = Console()

SEVERITY_STYLES = {"Critical": "bold red", "Warning": "yellow"}
STATUS_STYLES = {"Active": "bold red", "Acknowledged": "yellow", "Resolved": "green"}


def _init_components(config_path=None, verbose=False):
    """Lazy initialization of all components."""
    from utils.logger import setup_logging
    from config import load_config
    from models.database import Database
    from alerts.config_manager import AlertConfigManager, DEFAULT_SEED_PATH
    from alerts.engine import AlertMonitor
    from alerts.incidents import IncidentService
    from alerts.notifier import Notifier
    from alerts.channels import ConsoleChannel, FileChannel
    from monitor.retention import RetentionSweeper
    from monitor.scheduler import MonitorScheduler
    from monitor.sources import build_source_registry

    config = load_config(config_path)
    log_cfg = config["logging"]
    setup_logging("DEBUG" if verbose else log_cfg.get("level", "INFO"), log_cfg.get("file"))

    db = Database(config["database"]["path"])
    db.connect()

    configs = AlertConfigManager(db, config["alerts"].get("seed_file") or DEFAULT_SEED_PATH)
    configs.seed()

    notif_cfg = config["notifications"]
    channels = []
    if notif_cfg.get("jsonl_path"):
        channels.append(FileChannel(notif_cfg["jsonl_path"]))
    # Console only if running interactively
    if notif_cfg.get("console", True) and sys.stdout.isatty():
        channels.append(ConsoleChannel(console))
    notifier = Notifier(channels)

    monitor_cfg = config["monitor"]
    scheduler = MonitorScheduler(startup_delay=monitor_cfg.get("startup_delay_seconds", 0))

    # Sources are built on the monitor's first tick, after the scheduler has
    # registered every service: the health source enumerates them.
    alert_monitor = AlertMonitor(
        db,
        resolver=lambda: build_source_registry(config, scheduler),
        notifier=notifier,
        startup_barrier=scheduler.started,
    )
    sweeper = RetentionSweeper(db, retention_days=config["retention"]["days"])

    scheduler.add_service(alert_monitor, monitor_cfg["check_interval_seconds"])
    scheduler.add_service(sweeper, int(config["retention"]["sweep_interval_hours"] * 3600))

    return {
        "config": config, "db": db, "configs": configs, "notifier": notifier,
        "scheduler": scheduler, "monitor": alert_monitor, "sweeper": sweeper,
        "incidents": IncidentService(db),
    }


@click.group()
@click.option("--config", "config_path", default=None, help="Path to config YAML")
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
@click.version_option(__version__, prog_name="perfwatch")
@click.pass_context
def cli(ctx, config_path, verbose):
    """perfwatch - threshold alerts, incidents and auto-recovery for service metrics."""
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config_path
    ctx.obj["verbose"] = verbose


def _get_components(ctx):
    if "_components" not in ctx.obj:
        ctx.obj["_components"] = _init_components(ctx.obj.get("config_path"), ctx.obj.get("verbose"))
    return ctx.obj["_components"]


def _fail(error):
    console.print(f"[red]{error}[/red]")
    sys.exit(1)


def _parse_date(value, end_of_day=False):
    """Parse a --since/--until value. A bare date with end_of_day covers that whole day."""
    if value is None:
        return None
    try:
        dt = datetime.fromisoformat(value)
    except ValueError:
        raise click.BadParameter(f"Invalid date: {value} (expected YYYY-MM-DD)")
    if end_of_day and len(value.strip()) <= 10:
        dt += timedelta(days=1, microseconds=-1)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def _incident_table(incidents, title):
    from utils.formatters import format_timestamp, format_duration

    table = Table(title=title, show_header=True)
    table.add_column("ID", style="dim")
    table.add_column("Metric")
    table.add_column("Severity")
    table.add_column("Status")
    table.add_column("Triggered", style="dim")
    table.add_column("Value")
    table.add_column("Duration")
    table.add_column("Ack By")
    for i in incidents:
        sev_style = SEVERITY_STYLES.get(i.severity.value, "")
        status_style = STATUS_STYLES.get(i.status.value, "")
        table.add_row(
            i.id[:8], i.metric_name,
            f"[{sev_style}]{i.severity.value}[/]",
            f"[{status_style}]{i.status.value}[/]",
            format_timestamp(i.triggered_at),
            f"{i.trigger_value:.2f} (≥ {i.threshold_at_trigger:.2f})",
            format_duration(i.duration_seconds),
            i.acknowledged_by or "",
        )
    return table


# ──────────────────────────────────────────────────────
# MONITOR
# ──────────────────────────────────────────────────────
@cli.group()
def monitor():
    """Run and inspect the monitoring loop."""
    pass


@monitor.command("run")
@click.pass_context
def monitor_run(ctx):
    """Run the monitor loop and retention sweeper until interrupted."""
    c = _get_components(ctx)
    cfg = c["config"]
    console.print(
        f"[bold]perfwatch {__version__}[/bold] checking every "
        f"{cfg['monitor']['check_interval_seconds']}s, retention {cfg['retention']['days']}d "
        f"[dim](Ctrl-C to stop)[/dim]"
    )
    try:
        c["scheduler"].run_forever()
    finally:
        if c["monitor"].is_resolved:
            c["monitor"].sources.shutdown()
        c["db"].close()


@monitor.command("tick")
@click.pass_context
def monitor_tick(ctx):
    """Run a single evaluation pass over all enabled metrics."""
    c = _get_components(ctx)
    # One-off pass without the background thread: nothing else is starting up.
    c["scheduler"].started.set()
    checked = c["monitor"].execute()
    if checked is None:
        _fail(f"Tick failed: {c['monitor'].health().last_error}")
    console.print(f"[green]Checked {checked} metric(s)[/green]")
    for name, streak in sorted(c["monitor"].streaks.snapshot().items()):
        console.print(f"  {name}: breaches={streak.breach_count} normals={streak.normal_count}")
    c["monitor"].sources.shutdown()


@monitor.command("values")
@click.pass_context
def monitor_values(ctx):
    """Show the current value of every configured metric."""
    from utils.formatters import format_value
    from alerts.engine import classify

    c = _get_components(ctx)
    c["scheduler"].started.set()
    values = c["monitor"].current_values()
    table = Table(title="Current Metric Values", show_header=True)
    table.add_column("Metric")
    table.add_column("Value")
    table.add_column("Warning")
    table.add_column("Critical")
    table.add_column("State")
    for config in c["configs"].get_all():
        value = values.get(config.metric_name)
        if value is None:
            state = "[dim]no data[/dim]"
        else:
            classification, _ = classify(config, value)
            state = {"Normal": "[green]Normal[/green]", "Warning": "[yellow]Warning[/yellow]",
                     "Critical": "[bold red]Critical[/bold red]"}[classification.value]
        table.add_row(config.label, format_value(value, config.threshold_unit),
                      format_value(config.warning_threshold, config.threshold_unit),
                      format_value(config.critical_threshold, config.threshold_unit), state)
    console.print(table)
    c["monitor"].sources.shutdown()


@monitor.command("sweep")
@click.pass_context
def monitor_sweep(ctx):
    """Delete resolved incidents older than the retention window."""
    c = _get_components(ctx)
    deleted = c["sweeper"].sweep()
    console.print(f"[green]Deleted {deleted} resolved incident(s) older than "
                  f"{c['sweeper'].retention_days} days[/green]")


# ──────────────────────────────────────────────────────
# INCIDENTS
# ──────────────────────────────────────────────────────
@cli.group()
def incidents():
    """Query and acknowledge incidents."""
    pass


@incidents.command("active")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def incidents_active(ctx, as_json):
    """List Active and Acknowledged incidents."""
    c = _get_components(ctx)
    active = c["incidents"].get_active()
    if as_json:
        click.echo(json.dumps([i.to_dict() for i in active], indent=2))
        return
    if not active:
        console.print("[green]All clear - no open incidents[/green]")
        return
    console.print(_incident_table(active, f"Open Incidents ({len(active)})"))


@incidents.command("history")
@click.option("--metric", default=None, help="Filter by metric name")
@click.option("--severity", type=click.Choice(["Warning", "Critical"]), default=None)
@click.option("--status", type=click.Choice(["Active", "Acknowledged", "Resolved"]), default=None)
@click.option("--since", default=None, help="Triggered on/after (YYYY-MM-DD)")
@click.option("--until", default=None, help="Triggered on/before (YYYY-MM-DD)")
@click.option("--page", default=1, type=int)
@click.option("--page-size", default=25, type=int)
@click.pass_context
def incidents_history(ctx, metric, severity, status, since, until, page, page_size):
    """Paginated incident history, newest first."""
    from models.alerts import IncidentQuery
    from models.enums import Severity, IncidentStatus

    c = _get_components(ctx)
    query = IncidentQuery(
        metric_name=metric,
        severity=Severity(severity) if severity else None,
        status=IncidentStatus(status) if status else None,
        start=_parse_date(since),
        end=_parse_date(until, end_of_day=True),
        page=page,
        page_size=page_size,
    )
    result = c["incidents"].get_history(query)
    if not result.items:
        console.print("[dim]No incidents match[/dim]")
        return
    console.print(_incident_table(
        result.items,
        f"Incident History (page {result.page} of {result.total_pages}, {result.total_count} total)",
    ))


@incidents.command("ack")
@click.argument("incident_id")
@click.option("--by", "actor", required=True, help="Who is acknowledging")
@click.option("--notes", default=None, help="Acknowledgment notes")
@click.pass_context
def incidents_ack(ctx, incident_id, actor, notes):
    """Acknowledge an incident (full id or unique prefix)."""
    from models.errors import PerfwatchError

    c = _get_components(ctx)
    try:
        incident = c["incidents"].acknowledge(c["incidents"].resolve_id(incident_id), actor, notes)
    except PerfwatchError as e:
        _fail(e)
    console.print(f"[green]✓[/green] Acknowledged {incident.metric_name} incident {incident.id[:8]}")


@incidents.command("ack-all")
@click.option("--by", "actor", required=True, help="Who is acknowledging")
@click.pass_context
def incidents_ack_all(ctx, actor):
    """Acknowledge every Active incident."""
    c = _get_components(ctx)
    count = c["incidents"].acknowledge_all(actor)
    console.print(f"[green]✓[/green] Acknowledged {count} incident(s)")


@incidents.command("summary")
@click.pass_context
def incidents_summary(ctx):
    """Counts of open incidents by severity."""
    c = _get_components(ctx)
    s = c["incidents"].get_summary()
    style = "bold red" if s.critical_count else ("yellow" if s.warning_count else "green")
    console.print(f"[{style}]{s.active_count} open[/] "
                  f"(critical: {s.critical_count}, warning: {s.warning_count})")


@incidents.command("frequency")
@click.option("--days", default=30, type=int, help="Window in days")
@click.option("--metric", default=None, help="Filter by metric name")
@click.pass_context
def incidents_frequency(ctx, days, metric):
    """Incidents per day by severity."""
    c = _get_components(ctx)
    buckets = c["incidents"].get_frequency(days, metric_name=metric)
    if not buckets:
        console.print(f"[dim]No incidents in the last {days} days[/dim]")
        return
    table = Table(title=f"Incident Frequency (last {days}d)", show_header=True)
    table.add_column("Date")
    table.add_column("Critical", style="red")
    table.add_column("Warning", style="yellow")
    table.add_column("Total")
    for b in buckets:
        table.add_row(b.date, str(b.critical_count), str(b.warning_count), str(b.total))
    console.print(table)


@incidents.command("recoveries")
@click.option("--limit", default=10, type=int)
@click.pass_context
def incidents_recoveries(ctx, limit):
    """Recent auto-resolved incidents."""
    from utils.formatters import format_timestamp, format_duration

    c = _get_components(ctx)
    events = c["incidents"].get_auto_recovery_events(limit)
    if not events:
        console.print("[dim]No auto-recoveries yet[/dim]")
        return
    table = Table(title="Auto-Recovery Events", show_header=True)
    table.add_column("Resolved", style="dim")
    table.add_column("Metric")
    table.add_column("Issue")
    table.add_column("Duration")
    for e in events:
        table.add_row(format_timestamp(e.timestamp), e.metric_name, e.issue[:70],
                      format_duration(e.duration_seconds))
    console.print(table)


# ──────────────────────────────────────────────────────
# ALERT CONFIGS
# ──────────────────────────────────────────────────────
@cli.group()
def configs():
    """Alert threshold configuration."""
    pass


@configs.command("list")
@click.pass_context
def configs_list(ctx):
    """List all alert configurations."""
    from utils.formatters import format_value

    c = _get_components(ctx)
    table = Table(title="Alert Configurations", show_header=True)
    table.add_column("Metric", style="dim")
    table.add_column("Name")
    table.add_column("Warning")
    table.add_column("Critical")
    table.add_column("Breaches")
    table.add_column("Normals")
    table.add_column("Enabled")
    for cfg in c["configs"].get_all():
        table.add_row(
            cfg.metric_name, cfg.label,
            format_value(cfg.warning_threshold, cfg.threshold_unit),
            format_value(cfg.critical_threshold, cfg.threshold_unit),
            str(cfg.consecutive_breaches_required), str(cfg.consecutive_normal_required),
            "[green]✓[/green]" if cfg.is_enabled else "[red]✗[/red]",
        )
    console.print(table)


@configs.command("set")
@click.argument("metric_name")
@click.option("--warning", type=float, default=None, help="Warning threshold")
@click.option("--critical", type=float, default=None, help="Critical threshold")
@click.option("--enable/--disable", "enabled", default=None, help="Enable or disable the alert")
@click.option("--breaches", type=int, default=None, help="Consecutive breaches required")
@click.option("--normals", type=int, default=None, help="Consecutive normal readings required")
@click.option("--by", "actor", default=None, help="Who is making the change")
@click.pass_context
def configs_set(ctx, metric_name, warning, critical, enabled, breaches, normals, actor):
    """Update thresholds or hysteresis for one metric."""
    from models.errors import PerfwatchError

    c = _get_components(ctx)
    try:
        cfg = c["configs"].update(
            metric_name, updated_by=actor, warning_threshold=warning, critical_threshold=critical,
            is_enabled=enabled, consecutive_breaches_required=breaches,
            consecutive_normal_required=normals,
        )
    except PerfwatchError as e:
        _fail(e)
    console.print(f"[green]✓[/green] Updated {cfg.metric_name}: warning={cfg.warning_threshold} "
                  f"critical={cfg.critical_threshold} enabled={cfg.is_enabled}")


if __name__ == "__main__":
    cli()
