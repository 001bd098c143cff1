"""CLI entrypoint: Typer-based command interface.

Commands:
    aicap serve                    Start the FastAPI server
    aicap check-url                Run a URL through the SSRF guard
    aicap issue-key                Issue an API key for an owner
    aicap generate-encryption-key  Print a new webhook secret encryption key
"""

from __future__ import annotations

import asyncio

import typer

app = typer.Typer(
    name="aicap",
    help="AICAP Security Core: SSRF-guarded webhook dispatch and API key management",
)


@app.command()
def serve(
    host: str = typer.Option("127.0.0.1", help="API server host"),
    port: int = typer.Option(8000, help="API server port"),
    reload: bool = typer.Option(False, help="Enable auto-reload for development"),
) -> None:
    """Start the AICAP FastAPI API server."""
    import uvicorn

    uvicorn.run(
        "aicap.api.app:create_app",
        host=host,
        port=port,
        reload=reload,
        factory=True,
    )


@app.command("check-url")
def check_url(
    url: str = typer.Argument(help="Destination URL to check"),
    dns_timeout: float = typer.Option(3.0, help="DNS resolution timeout in seconds"),
) -> None:
    """Resolve a destination and report whether dispatch would be allowed."""
    from aicap.errors import DispatchRejected
    from aicap.security import ssrf

    try:
        target = asyncio.run(ssrf.authorize(url, dns_timeout=dns_timeout))
    except DispatchRejected as exc:
        typer.echo(f"Rejected:   {exc.reason.value}")
        typer.echo(f"Reason:     {exc.message}")
        raise typer.Exit(code=1) from exc

    typer.echo("Allowed")
    typer.echo(f"Host:       {target.hostname}")
    typer.echo(f"Address:    {target.address}")
    typer.echo(f"Port:       {target.port}")


@app.command("issue-key")
def issue_key(
    owner: str = typer.Option(..., help="Owner id the key acts for"),
    name: str = typer.Option(..., help="Human-readable key name"),
) -> None:
    """Issue an API key and print its plaintext once."""
    from aicap.errors import InvalidName

    async def _run() -> str:
        from aicap.config import get_settings
        from aicap.db.session import create_async_engine_from_url, create_session_factory, init_models
        from aicap.keys.issuer import KeyIssuer

        settings = get_settings()
        engine = create_async_engine_from_url(settings.database_url)
        try:
            await init_models(engine)
            issuer = KeyIssuer(create_session_factory(engine), rounds=settings.key_hash_rounds)
            return await issuer.issue(owner, name)
        finally:
            await engine.dispose()

    try:
        plaintext = asyncio.run(_run())
    except InvalidName as exc:
        typer.echo(f"Error: {exc.message}", err=True)
        raise typer.Exit(code=1) from exc

    typer.echo(f"Key:        {plaintext}")
    typer.echo("Store this key securely, it will not be shown again.")


@app.command("generate-encryption-key")
def generate_encryption_key() -> None:
    """Print a new value for WEBHOOK_SECRET_ENCRYPTION_KEY."""
    from aicap.webhooks.secrets import SecretBox

    typer.echo(SecretBox.generate_key())


if __name__ == "__main__":
    app()
