from __future__ import annotations

from pathlib import Path
from typing import Callable, Mapping, Optional

import typer

from lsfront import __version__
from lsfront.config import ServerSettings, load_settings
from lsfront.engine import load_engine_factory
from lsfront.exceptions import ConfigError
from lsfront.logs import configure_logging
from lsfront.server import run

app = typer.Typer(add_completion=False, help="Language Server Protocol front-end.")

Runner = Callable[[ServerSettings], int]


def _context_runner(ctx: typer.Context) -> Runner:
    obj = ctx.obj
    if isinstance(obj, Mapping):
        candidate = obj.get("run")
        if callable(candidate):
            return candidate
    return run


@app.command()
def serve(
    ctx: typer.Context,
    tcp: bool = typer.Option(False, "--tcp", help="Listen on TCP instead of stdio."),
    host: Optional[str] = typer.Option(None, "--host"),
    port: Optional[int] = typer.Option(None, "--port"),
    engine: Optional[str] = typer.Option(
        None, "--engine", help="Engine factory as 'package.module:callable'."
    ),
    watchdog_interval: Optional[float] = typer.Option(
        None, "--watchdog-interval", help="Seconds between client process checks."
    ),
    log_level: Optional[str] = typer.Option(None, "--log-level"),
    root: Path = typer.Option(Path("."), "--root"),
    config: Optional[Path] = typer.Option(None, "--config"),
) -> None:
    """Serve one LSP session over stdio (default) or TCP."""
    overrides: dict[str, object] = {
        "transport": "tcp" if tcp else None,
        "host": host,
        "port": port,
        "engine": engine,
        "watchdog_interval": watchdog_interval,
        "log_level": log_level,
    }
    try:
        settings = load_settings(root=root, config_path=config, overrides=overrides)
        load_engine_factory(settings.engine)
    except ConfigError as exc:
        typer.echo(f"lsfront: {exc}", err=True)
        raise typer.Exit(code=2)
    configure_logging(settings.log_level)
    raise typer.Exit(code=_context_runner(ctx)(settings))


@app.command()
def version() -> None:
    """Print the package version."""
    typer.echo(__version__)


def main() -> None:
    app()
