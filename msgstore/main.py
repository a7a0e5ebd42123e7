"""Command entry point: runs the message store until SIGINT or SIGTERM."""

from __future__ import annotations

import argparse
import asyncio
import logging
import signal
import sys

from .app import App
from .config import Config, load_config
from .logger import setup_logging

DEFAULT_CONFIG_PATH = "./config/config.yaml"


def _parse_args(argv: list[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="msgstore", description="Run the message store service.")
    parser.add_argument(
        "--config",
        default=DEFAULT_CONFIG_PATH,
        help=f"path of the YAML configuration (default: {DEFAULT_CONFIG_PATH})",
    )
    return parser.parse_args(argv)


def _install_signal_handlers(stop: asyncio.Event) -> None:
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop.set)
        except (NotImplementedError, RuntimeError):
            signal.signal(sig, lambda *_: loop.call_soon_threadsafe(stop.set))


async def _serve(cfg: Config, log: logging.Logger) -> int:
    stop = asyncio.Event()
    _install_signal_handlers(stop)

    try:
        app = App(cfg, log)
    except Exception as exc:  # noqa: BLE001 - reported and turned into an exit code
        log.error("failed to initialize app", extra={"attrs": {"error": str(exc)}})
        return 1

    try:
        await app.start()
    except Exception:  # noqa: BLE001 - already logged by the application
        return 1

    await stop.wait()
    log.info("termination signal received, shutting down...")

    try:
        await app.shutdown(cfg.app.shutdown_timeout)
    except Exception as exc:  # noqa: BLE001 - reported, the process still ends
        log.error("graceful shutdown failed", extra={"attrs": {"error": exc}})
    else:
        log.info("service stopped gracefully")
    return 0


def main(argv: list[str] | None = None) -> int:
    """Load the configuration and run the service; return the exit status."""
    args = _parse_args(argv)
    log = setup_logging(sys.stdout)
    cfg = load_config(args.config)
    return asyncio.run(_serve(cfg, log))


if __name__ == "__main__":
    sys.exit(main())