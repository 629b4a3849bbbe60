"""Typer CLI for PatchMon-Engine."""

import asyncio

import typer
from rich.console import Console

app = typer.Typer(name="patchmon", help="PatchMon-Engine: patch monitoring backend")
console = Console()


@app.command()
def serve(
    host: str = typer.Option(None, help="Bind host (defaults to PATCHMON_HOST)"),
    port: int = typer.Option(None, help="Bind port (defaults to PATCHMON_PORT)"),
):
    """Start the PatchMon-Engine API server."""
    import uvicorn
    from patchmon_engine.app import create_app
    from patchmon_engine.common.config import get_settings

    settings = get_settings()
    host = host or settings.host
    port = port or settings.port
    console.print(f"[bold green]Starting PatchMon-Engine on {host}:{port}[/bold green]")
    uvicorn.run(create_app(), host=host, port=port)


@app.command("create-admin")
def create_admin(
    username: str = typer.Option(..., prompt=True, help="Admin username"),
    email: str = typer.Option(..., prompt=True, help="Admin email"),
    password: str = typer.Option(
        ..., prompt=True, hide_input=True, confirmation_prompt=True, help="Admin password"
    ),
):
    """Create the first admin user directly in the database."""
    from patchmon_engine.common.exceptions import PatchmonError
    from patchmon_engine.deps import get_db, get_permission_service, get_user_service

    async def _run():
        db = get_db()
        await db.init()
        try:
            await db.create_all()
            async with db.get_session() as session:
                await get_permission_service().ensure_default_roles(session)
                return await get_user_service().setup_admin(
                    session, username=username, email=email, password=password
                )
        finally:
            await db.close()

    try:
        user = asyncio.run(_run())
    except PatchmonError as e:
        console.print(f"[bold red]Error:[/bold red] {e.message}")
        raise typer.Exit(1)
    console.print(f"[bold green]Admin user created[/bold green]: {user.username} ({user.id})")


@app.command("cleanup-sessions")
def cleanup_sessions():
    """Delete expired and revoked sessions once."""
    from patchmon_engine.deps import get_db, get_session_manager

    async def _run():
        db = get_db()
        await db.init()
        try:
            async with db.get_session() as session:
                return await get_session_manager().cleanup_expired_sessions(session)
        finally:
            await db.close()

    count = asyncio.run(_run())
    console.print(f"Removed [bold]{count}[/bold] sessions")


@app.command()
def health(
    url: str = typer.Option("http://localhost:3001", help="Server URL"),
):
    """Check PatchMon-Engine server health."""
    import httpx

    try:
        resp = httpx.get(f"{url}/health", timeout=5)
        data = resp.json()
        console.print(
            f"[bold green]{data['status']}[/bold green] v{data['version']} "
            f"(database {data['database']})"
        )
    except Exception as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(1)


if __name__ == "__main__":
    app()
