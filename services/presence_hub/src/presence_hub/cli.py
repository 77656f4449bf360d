"""Presence Hub command line: run the server or inspect persisted state."""

from __future__ import annotations

import asyncio
import json
import os
from typing import Optional

import typer

from .config import get_settings
from .persistence import PersistenceGateway
from .storage import build_storage

app = typer.Typer(help="Presence Hub CLI")


@app.callback()
def main_callback() -> None:
    """Root callback; a command is required."""


@app.command()
def serve(
    host: Optional[str] = typer.Option(None, "--host", help="Bind address (HOST)."),
    port: Optional[int] = typer.Option(None, "--port", help="Listen port (PORT)."),
    data_dir: Optional[str] = typer.Option(None, "--data-dir", help="Snapshot directory (DATA_DIR)."),
) -> None:  # pragma: no cover - starts a blocking server
    """Start the hub with uvicorn."""

    import uvicorn

    if data_dir is not None:
        os.environ["DATA_DIR"] = data_dir
        get_settings.cache_clear()
    settings = get_settings()
    uvicorn.run(
        "presence_hub.app:create_app",
        factory=True,
        host=host or settings.host,
        port=port or settings.port,
    )


@app.command()
def dump(
    data_dir: Optional[str] = typer.Option(None, "--data-dir", help="Snapshot directory (DATA_DIR)."),
) -> None:
    """Print persisted messages and known users as JSON without modifying them."""

    settings = get_settings()
    if data_dir is not None:
        settings = settings.model_copy(update={"data_dir": data_dir, "storage_url": None})
    gateway = PersistenceGateway(build_storage(settings))

    async def _load() -> tuple[list, list]:  # type: ignore[type-arg]
        try:
            return await gateway.load_all()
        finally:
            await gateway.backend.close()

    messages, known_users = asyncio.run(_load())
    payload = {
        "messages": [m.model_dump() for m in messages],
        "knownUsers": known_users,
    }
    typer.echo(json.dumps(payload, indent=2, ensure_ascii=False))


def main() -> None:  # pragma: no cover - CLI entry
    app()


if __name__ == "__main__":  # pragma: no cover
    main()
