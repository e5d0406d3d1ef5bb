"""CLI commands for TutorHub.

Commands:
- init-db: Create the database schema
- seed: Load subjects, achievements and demo accounts
- serve: Run the Web API with uvicorn
- export: Write users, sessions or payments as CSV
"""

from __future__ import annotations

from pathlib import Path

import typer
from rich.console import Console
from rich.table import Table

from tutorhub.config.app_config import AppConfig, load_app_config
from tutorhub.core.errors import TutorHubError
from tutorhub.core.export import EXPORTS, export_csv
from tutorhub.db.database import Database
from tutorhub.db.seed import ADMIN_PASSWORD, DEMO_PASSWORD, DEMO_USERS, seed_database
from tutorhub.utils.log_setup import configure_logging

app = typer.Typer(
    name="tutorhub",
    help="Peer-to-peer tutoring marketplace backend.",
    no_args_is_help=True,
)

console = Console()


@app.callback()
def main() -> None:
    """Peer-to-peer tutoring marketplace backend."""
    config = load_app_config()
    configure_logging(config.server.log_level, config.server.environment)


def _open_database(config: AppConfig, db_path: str | None) -> Database:
    database = Database(
        db_path or config.database.path,
        busy_timeout=config.database.busy_timeout_seconds,
    )
    database.open()
    return database


@app.command(name="init-db")
def init_db(
    db_path: str | None = typer.Option(None, "--db", help="SQLite file (default from config)"),
) -> None:
    """Create the database file and schema."""
    config = load_app_config()
    database = _open_database(config, db_path)
    database.close()
    console.print(f"[green]✓ Database ready[/green] [dim]{database.path}[/dim]")


@app.command()
def seed(
    db_path: str | None = typer.Option(None, "--db", help="SQLite file (default from config)"),
) -> None:
    """Load subjects, achievements and demo accounts (idempotent)."""
    config = load_app_config()
    database = _open_database(config, db_path)
    try:
        result = seed_database(database, bcrypt_rounds=config.auth.bcrypt_rounds)
    finally:
        database.close()

    console.print(
        f"[green]✓ Seeded[/green] {result.subjects} subjects, "
        f"{result.achievements} achievements, {result.users} users"
    )

    table = Table(show_header=True, header_style="bold")
    table.add_column("Email")
    table.add_column("Role")
    table.add_column("Password")
    for user in DEMO_USERS:
        password = ADMIN_PASSWORD if user.role == "admin" else DEMO_PASSWORD
        table.add_row(user.email, user.role, password)
    console.print(table)


@app.command()
def serve(
    host: str | None = typer.Option(None, "--host", help="Bind address"),
    port: int | None = typer.Option(None, "--port", "-p", help="Bind port"),
    reload: bool = typer.Option(False, "--reload", help="Reload on code changes"),
) -> None:
    """Run the Web API."""
    import uvicorn

    config = load_app_config()
    host = host or config.server.host
    port = port or config.server.port
    console.print(f"[blue]Serving TutorHub API on http://{host}:{port}[/blue]")
    uvicorn.run("tutorhub.web.api:app", host=host, port=port, reload=reload)


@app.command()
def export(
    export_type: str = typer.Argument(..., help=f"One of: {', '.join(EXPORTS)}"),
    output: Path | None = typer.Option(None, "--output", "-o", help="Write CSV to this file"),
    start_date: str | None = typer.Option(None, "--start-date", help="Created on/after (ISO)"),
    end_date: str | None = typer.Option(None, "--end-date", help="Created on/before (ISO)"),
    db_path: str | None = typer.Option(None, "--db", help="SQLite file (default from config)"),
) -> None:
    """Export users, sessions or payments as CSV."""
    config = load_app_config()
    database = _open_database(config, db_path)
    try:
        text, count = export_csv(database, export_type, start_date, end_date)
    except TutorHubError as e:
        console.print(f"[red]✗ {e.message}[/red]")
        raise typer.Exit(code=1)
    finally:
        database.close()

    if output is None:
        typer.echo(text, nl=False)
        return
    output.write_text(text, encoding="utf-8")
    console.print(f"[green]✓ Exported {count} {export_type}[/green] [dim]{output}[/dim]")


if __name__ == "__main__":
    app()
