"""Entry point: python -m randvoice."""

from __future__ import annotations

import argparse
import asyncio
import logging
import signal
import sys
from pathlib import Path

from rich.console import Console
from rich.table import Table

from randvoice.config import ServerConfig, load_config
from randvoice.errors import ConfigError
from randvoice.liveness.observer import LivenessMonitor
from randvoice.logging_config import setup_logging
from randvoice.matchmaking.context import MatchmakingContext
from randvoice.matchmaking.pairing import PairingEngine
from randvoice.matchmaking.relay import SignalingRelay
from randvoice.server.app import SignalingServer
from randvoice.shutdown import EXIT_FAILURE, ShutdownCoordinator

logger = logging.getLogger(__name__)

_console = Console(stderr=True)


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="randvoice",
        description="Anonymous random voice chat matchmaking and WebRTC signaling server.",
    )
    parser.add_argument("--config", type=Path, default=None, help="JSON config file")
    parser.add_argument("--port", type=int, default=None, help="override listening port")
    parser.add_argument("-v", "--verbose", action="store_true", help="debug logging")
    return parser.parse_args(argv)


def _print_banner(config: ServerConfig) -> None:
    table = Table(title="Random Voice Chat Server", show_header=False, title_justify="left")
    table.add_column(style="bold cyan")
    table.add_column()
    table.add_row("Listening", f"http://{config.transport.host}:{config.transport.port}")
    table.add_row("WebSocket", config.transport.path)
    table.add_row("Origins", ", ".join(config.transport.allowed_origins) or "(none)")
    table.add_row("Grace delay", f"{config.matchmaking.grace_delay_seconds:g}s")
    table.add_row("Idle timeout", f"{config.liveness.inactivity_timeout_seconds:g}s")
    _console.print(table)


async def run_server(config: ServerConfig) -> int:
    """Wire up the matchmaking core and serve until shutdown.

    Returns the process exit code (``0`` = clean shutdown).
    """
    ctx = MatchmakingContext()
    pairing = PairingEngine(ctx, grace_delay=config.matchmaking.grace_delay_seconds)
    relay = SignalingRelay(ctx)
    server = SignalingServer(config.transport, ctx, pairing, relay)
    monitor = LivenessMonitor(ctx, config.liveness)
    coordinator = ShutdownCoordinator(
        ctx,
        server.stop,
        monitor=monitor,
        timeout=config.shutdown_timeout_seconds,
        message=config.shutdown_message,
    )

    loop = asyncio.get_running_loop()
    loop.set_exception_handler(coordinator.handle_loop_exception)
    if sys.platform != "win32":
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, coordinator.request, sig.name)

    try:
        await server.start()
    except OSError:
        logger.exception("Server failed to start")
        await server.stop()
        return EXIT_FAILURE

    await monitor.start()
    logger.info("Random Voice Chat Server ready on port %d", server.port or config.transport.port)
    return await coordinator.wait()


def main(argv: list[str] | None = None) -> None:
    """CLI entry point."""
    args = _parse_args(argv)

    try:
        config = load_config(args.config)
    except ConfigError as exc:
        _console.print(f"[bold red]Invalid configuration:[/bold red] {exc}")
        sys.exit(EXIT_FAILURE)
    if args.port is not None:
        config.transport.port = args.port

    level = getattr(logging, config.log_level.upper(), logging.INFO)
    log_dir = Path(config.log_dir).expanduser() if config.log_dir else None
    setup_logging(level=level, verbose=args.verbose, log_dir=log_dir)

    _print_banner(config)
    exit_code = asyncio.run(run_server(config))
    sys.exit(exit_code)


if __name__ == "__main__":
    main()
