"""
Command line entry point for cron jobs and operators

    pos-credit-reminders run [--date YYYY-MM-DD] [--dispatch]
    pos-credit-reminders dispatch [--limit N]
    pos-credit-reminders refresh-statuses
    pos-credit-reminders verify-audit
    pos-credit-reminders serve
"""

import json
import click

from .config import get_config
from .logging_config import setup_logging
from .reminders import run_reminder_scheduler
from .system import LedgerSystem


@click.group()
@click.pass_context
def cli(ctx):
    """POS credit ledger reminder commands"""
    config = get_config()
    setup_logging(level=config.log_level, log_format=config.log_format, log_file=config.log_file)
    ctx.obj = LedgerSystem(config)
    ctx.call_on_close(ctx.obj.close)


@cli.command()
@click.option("--date", "run_date", type=click.DateTime(formats=["%Y-%m-%d"]), default=None,
              help="Run as of this date instead of today")
@click.option("--dispatch", is_flag=True, help="Send the scheduled reminders right away")
@click.pass_obj
def run(system: LedgerSystem, run_date, dispatch):
    """Run the reminder scheduler"""
    result = run_reminder_scheduler(system.scheduler, run_date.date() if run_date else None)
    click.echo(json.dumps(result, indent=2))
    if dispatch:
        summary = system.dispatcher.dispatch_pending()
        click.echo(json.dumps(summary.to_dict(), indent=2))


@cli.command()
@click.option("--limit", type=int, default=None, help="Send at most this many reminders")
@click.pass_obj
def dispatch(system: LedgerSystem, limit):
    """Send pending reminders"""
    summary = system.dispatcher.dispatch_pending(limit=limit)
    click.echo(json.dumps(summary.to_dict(), indent=2))
    if summary.failed:
        raise SystemExit(1)


@cli.command("refresh-statuses")
@click.pass_obj
def refresh_statuses(system: LedgerSystem):
    """Mark loans past their due date overdue"""
    click.echo(json.dumps(system.loan_manager.refresh_statuses(), indent=2))


@cli.command("verify-audit")
@click.pass_obj
def verify_audit(system: LedgerSystem):
    """Verify the audit hash chain"""
    result = system.audit_trail.verify_integrity()
    if result["valid"]:
        click.echo(f"Audit chain OK ({result['total_events']} events)")
    else:
        click.echo(json.dumps(result, indent=2))
        raise SystemExit(1)


@cli.command()
@click.option("--host", default=None, help="Bind address")
@click.option("--port", type=int, default=None, help="Bind port")
@click.pass_obj
def serve(system: LedgerSystem, host, port):
    """Start the HTTP API"""
    import uvicorn
    from .api import create_app

    system.close()
    config = system.config
    uvicorn.run(create_app(), host=host or config.api_host, port=port or config.api_port)


if __name__ == "__main__":
    cli()
