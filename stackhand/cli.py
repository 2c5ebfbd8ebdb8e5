"""Operator CLI: run the API and the worker, manage the schema, sign callback URLs."""

import asyncio

from rich.console import Console
import typer

app = typer.Typer(
    name="stackhand",
    help="Remote server resource lifecycle orchestration",
    add_completion=False,
)
console = Console()


@app.command()
def serve(
    host: str = typer.Option("0.0.0.0", help="Bind address"),
    port: int = typer.Option(8000, help="Bind port"),
    reload: bool = typer.Option(False, "--reload", help="Reload on code changes"),
):
    """Run the HTTP API."""
    import uvicorn

    uvicorn.run("stackhand.api.main:app", host=host, port=port, reload=reload)


@app.command()
def worker():
    """Consume lifecycle and provisioning jobs until interrupted."""
    from stackhand.worker import run_worker

    asyncio.run(run_worker())


async def _create_tables() -> list[str]:
    from stackhand.api.database import engine
    from stackhand.models import Base

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    await engine.dispose()
    return sorted(Base.metadata.tables)


@app.command("create-tables")
def create_tables():
    """Create any missing tables."""
    tables = asyncio.run(_create_tables())
    console.print(f"[green]Schema ready:[/green] {len(tables)} tables")
    for table in tables:
        console.print(f"  {table}")


@app.command("callback-url")
def callback_url(server_id: int):
    """Print a freshly signed bootstrap callback URL for a server."""
    from stackhand.config import get_settings
    from stackhand.provisioning.signing import signed_callback_url

    typer.echo(signed_callback_url(get_settings(), server_id))


if __name__ == "__main__":
    app()
