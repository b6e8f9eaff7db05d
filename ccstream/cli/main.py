"""Command line entry point for ccstream."""

from __future__ import annotations

import asyncio
import contextlib
import logging
import signal
from typing import Any

import click
from rich.console import Console

from ccstream.cli.config_commands import config as config_group
from ccstream.config.config import ConfigManager, init_config
from ccstream.discovery.trackers import TrackerListLoader
from ccstream.models import Config, LogLevel
from ccstream.server.http_server import StreamServer
from ccstream.session.session import StreamSession
from ccstream.utils.exceptions import CCStreamError
from ccstream.utils.logging_config import setup_logging

logger = logging.getLogger(__name__)


def _get_config_from_context(ctx: click.Context) -> ConfigManager:
    """Get ConfigManager from CLI context."""
    if ctx and ctx.obj and ctx.obj.get("config_manager") is not None:
        return ctx.obj["config_manager"]
    return init_config(ctx.obj.get("config") if ctx and ctx.obj else None)


def _apply_serve_overrides(cfg: Config, options: dict[str, Any]) -> None:
    """Apply ``serve`` command line overrides to the configuration."""
    if options.get("host") is not None:
        cfg.server.host = options["host"]
    if options.get("port") is not None:
        cfg.server.port = int(options["port"])
    if options.get("temp_dir") is not None:
        cfg.engine.temp_dir = options["temp_dir"]
    if options.get("static_dir") is not None:
        cfg.server.static_dir = options["static_dir"]
    if options.get("no_remote_trackers"):
        cfg.trackers.fetch_remote = False


@click.group()
@click.option(
    "--config",
    "-c",
    type=click.Path(exists=True),
    help="Configuration file path",
)
@click.option(
    "--verbose",
    "-v",
    count=True,
    help="Increase verbosity (-v: info, -vv: debug)",
)
@click.pass_context
def cli(ctx, config, verbose):
    """ccstream - stream torrent video to the browser while it downloads."""
    ctx.ensure_object(dict)
    ctx.obj["config"] = config
    ctx.obj["verbosity"] = verbose

    try:
        config_manager = init_config(config)
    except CCStreamError as e:
        raise click.ClickException(str(e)) from e
    ctx.obj["config_manager"] = config_manager

    if verbose:
        # Verbosity only affects this run, not the stored configuration
        observability = config_manager.config.observability.model_copy()
        observability.log_level = LogLevel.DEBUG if verbose >= 2 else LogLevel.INFO
        setup_logging(observability)


cli.add_command(config_group)


@cli.command()
@click.option("--host", type=str, default=None, help="Interface to bind to")
@click.option("--port", "-p", type=int, default=None, help="HTTP port")
@click.option("--temp-dir", type=click.Path(file_okay=False), default=None, help="Scratch directory for torrent data")
@click.option("--static-dir", type=click.Path(exists=True, file_okay=False), default=None, help="Browser UI directory")
@click.option("--no-remote-trackers", is_flag=True, help="Only use the local tracker file")
@click.pass_context
def serve(ctx, **options):
    """Run the streaming server until interrupted."""
    cfg = _get_config_from_context(ctx).config
    _apply_serve_overrides(cfg, options)

    console = Console()
    try:
        asyncio.run(_run_server(cfg, console))
    except KeyboardInterrupt:
        pass
    except ImportError as e:
        msg = f"Serving needs libtorrent (pip install 'ccstream[libtorrent]'): {e}"
        raise click.ClickException(msg) from e
    except CCStreamError as e:
        raise click.ClickException(str(e)) from e
    except OSError as e:
        msg = f"Could not start server on {cfg.server.host}:{cfg.server.port}: {e}"
        raise click.ClickException(msg) from e


async def _run_server(cfg: Config, console: Console) -> None:
    """Start engine, trackers and HTTP server; stop them on SIGINT/SIGTERM."""
    # libtorrent is an optional extra; only serving needs it
    from ccstream.engine.libtorrent_engine import LibtorrentEngine

    tracker_loader = TrackerListLoader(cfg.trackers)
    await tracker_loader.load()

    engine = LibtorrentEngine(cfg.engine)
    session = StreamSession(engine, cfg.streaming, tracker_loader)
    server = StreamServer(session, tracker_loader, cfg.server)

    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        # Not available on Windows event loops; Ctrl+C still raises KeyboardInterrupt there
        with contextlib.suppress(NotImplementedError):
            loop.add_signal_handler(sig, stop_event.set)

    try:
        await server.start()
        console.print(
            f"[green]Torrent stream server running at[/green] "
            f"[bold]http://localhost:{cfg.server.port}[/bold]"
        )
        console.print(f"[dim]Trackers loaded: {tracker_loader.count}[/dim]")
        await stop_event.wait()
    finally:
        console.print("[yellow]Shutting down...[/yellow]")
        await server.stop()
        await session.close()
        await engine.shutdown()


def main() -> None:
    """Run the CLI."""
    cli()  # pylint: disable=no-value-for-parameter


if __name__ == "__main__":
    main()
