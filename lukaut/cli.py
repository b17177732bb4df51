"""Lukaut CLI.

Commands:
- init: Create database tables
- seed-regulations: Load the OSHA 1926 reference data
- create-user: Create an account (verified, for admins and local testing)
- serve: Run the web application
- worker: Run the background job worker
- sweep: Recover stale jobs and dispatch due ones once
- jobs: Show recent background jobs
- stats: Show inspection counts per status
"""

from __future__ import annotations

import asyncio

import typer
from rich.console import Console
from rich.table import Table
from sqlalchemy import func, select

from lukaut.accounts.service import RegisterParams, register
from lukaut.config import get_config
from lukaut.db.connection import close_db, get_engine, get_session
from lukaut.db.models import Base, InspectionModel, JobModel, UserModel, utcnow
from lukaut.errors import LukautError

app = typer.Typer(
    name="lukaut",
    help="Lukaut - construction safety inspections",
    no_args_is_help=True,
)

console = Console()


def _run(coro):
    """Run a coroutine and dispose the engine afterwards."""

    async def _wrapped():
        try:
            return await coro
        finally:
            await close_db()

    return asyncio.run(_wrapped())


@app.command()
def init(
    drop: bool = typer.Option(False, "--drop", help="Drop existing tables"),
):
    """Initialize database schema."""
    config = get_config()
    console.print(f"[bold]Initializing database:[/bold] {config.db.url}")

    async def _init():
        engine = get_engine()
        async with engine.begin() as conn:
            if drop:
                console.print("[yellow]Dropping existing tables...[/yellow]")
                await conn.run_sync(Base.metadata.drop_all)
            console.print("[green]Creating tables...[/green]")
            await conn.run_sync(Base.metadata.create_all)

    _run(_init())
    console.print("[bold green]✓[/bold green] Database initialized")


@app.command(name="seed-regulations")
def seed_regulations_cmd():
    """Load OSHA 1926 regulations; standards already present are skipped."""
    from lukaut.regulations.service import seed_regulations

    async def _seed():
        async with get_session() as session:
            return await seed_regulations(session)

    count = _run(_seed())
    console.print(f"[bold green]✓[/bold green] Added {count} regulations")


@app.command(name="create-user")
def create_user(
    email: str = typer.Option(..., "--email", help="Login email"),
    name: str = typer.Option(..., "--name", help="Full name"),
    password: str = typer.Option(..., "--password", prompt=True, hide_input=True, confirmation_prompt=True),
    company: str | None = typer.Option(None, "--company", help="Company name"),
):
    """Create a verified account."""

    async def _create():
        async with get_session() as session:
            user = await register(
                session,
                RegisterParams(email=email, password=password, name=name, company_name=company),
                require_invite=False,
            )
            user.email_verified = True
            user.email_verified_at = utcnow()
            return user

    try:
        user = _run(_create())
    except LukautError as exc:
        console.print(f"[bold red]✗[/bold red] {exc.message}")
        for field_name, message in getattr(exc, "fields", {}).items():
            console.print(f"  {field_name}: {message}")
        raise typer.Exit(code=1) from exc
    console.print(f"[bold green]✓[/bold green] Created user {user.email} ({user.id})")


@app.command()
def serve(
    host: str = typer.Option("0.0.0.0", help="Host to bind"),
    port: int = typer.Option(8000, help="Port to bind"),
    reload: bool = typer.Option(False, help="Enable autoreload (dev only)"),
):
    """Run the web application."""
    import uvicorn

    typer.echo(f"Starting Lukaut on http://{host}:{port}")
    uvicorn.run("lukaut.web.app:app", host=host, port=port, reload=reload, workers=1)


@app.command()
def worker():
    """Run the arq worker that processes background jobs."""
    from arq.worker import run_worker

    from lukaut.worker import WorkerSettings

    config = get_config()
    console.print(
        f"[bold]Starting worker[/bold] concurrency={config.worker.concurrency} "
        f"timeout={config.worker.job_timeout_seconds}s"
    )
    run_worker(WorkerSettings)


@app.command()
def sweep():
    """Recover stale jobs and dispatch pending ones once."""
    from lukaut.jobs.runner import sweep as run_sweep

    result = _run(run_sweep())
    console.print(
        f"Recovered {result['recovered']} stale, dispatched {result['dispatched']} of {result['due']} due"
    )


@app.command()
def jobs(
    limit: int = typer.Option(20, help="Number of jobs to show"),
    status: str | None = typer.Option(None, help="Filter by status"),
):
    """Show recent background jobs."""

    async def _jobs():
        async with get_session() as session:
            stmt = select(JobModel).order_by(JobModel.created_at.desc()).limit(limit)
            if status:
                stmt = stmt.where(JobModel.status == status)
            return list((await session.execute(stmt)).scalars())

    rows = _run(_jobs())
    table = Table(title="Jobs")
    table.add_column("ID", style="dim")
    table.add_column("Type")
    table.add_column("Status")
    table.add_column("Attempts", justify="right")
    table.add_column("Created")
    table.add_column("Error")
    for job in rows:
        table.add_row(
            str(job.id)[:8],
            job.job_type,
            job.status,
            f"{job.attempts}/{job.max_attempts}",
            job.created_at.strftime("%Y-%m-%d %H:%M"),
            (job.error_message or "")[:60],
        )
    console.print(table)


@app.command()
def stats():
    """Show user and inspection counts."""

    async def _stats():
        async with get_session() as session:
            users = await session.scalar(select(func.count()).select_from(UserModel))
            rows = await session.execute(
                select(InspectionModel.status, func.count()).group_by(InspectionModel.status)
            )
            return users, rows.all()

    users, by_status = _run(_stats())
    table = Table(title="Lukaut Statistics")
    table.add_column("Metric", style="cyan")
    table.add_column("Count", justify="right", style="green")
    table.add_row("Users", str(users or 0))
    for status_name, count in by_status:
        table.add_row(f"Inspections ({status_name})", str(count))
    console.print(table)


if __name__ == "__main__":
    app()
