"""HTTP layer of the application: an aiohttp server with a managed lifecycle."""

from __future__ import annotations

import asyncio
import logging
import socket

from aiohttp import web

from .config import HTTPConfig


def _split_addr(addr: str) -> tuple[str | None, int]:
    if not addr:
        return None, 80
    host, sep, port_text = addr.rpartition(":")
    if not sep:
        raise ValueError(f"address {addr}: missing port in address")
    host = host.strip("[]") or None
    if not port_text:
        return host, 0
    if port_text.isdigit():
        port = int(port_text)
    else:
        try:
            port = socket.getservbyname(port_text, "tcp")
        except OSError as exc:
            raise ValueError(f"address {addr}: unknown port") from exc
    if port > 65535:
        raise ValueError(f"address {addr}: invalid port")
    return host, port


class HApp:
    """Runs an aiohttp application until shut down."""

    def __init__(self, cfg: HTTPConfig, log: logging.Logger, app: web.Application) -> None:
        self._cfg = cfg
        self._log = log
        self._app = app
        self._runner: web.AppRunner | None = None
        self._closed = False
        self._stopped = asyncio.Event()

    async def start(self) -> None:
        """Serve requests until shutdown() is called.

        Returns normally once the server is shut down; raises RuntimeError if
        the server cannot listen.
        """
        self._log.info(
            "HTTP server is starting",
            extra={"attrs": {"op": "HApp.Start", "address": self._cfg.addr}},
        )
        if self._closed:
            return

        try:
            host, port = _split_addr(self._cfg.addr)
        except ValueError as exc:
            raise RuntimeError(f"http server listen and serve: {exc}") from exc

        options = {}
        if self._cfg.idle_timeout > 0:
            options["keepalive_timeout"] = self._cfg.idle_timeout
        runner = web.AppRunner(self._app, **options)
        self._runner = runner
        try:
            await runner.setup()
            site = web.TCPSite(runner, host, port)
            await site.start()
        except (OSError, ValueError) as exc:
            self._runner = None
            await runner.cleanup()
            raise RuntimeError(f"http server listen and serve: {exc}") from exc

        await self._stopped.wait()

    async def shutdown(self) -> None:
        """Stop accepting connections and release the server."""
        self._closed = True
        self._stopped.set()
        runner, self._runner = self._runner, None
        if runner is None:
            return
        try:
            await runner.cleanup()
        except Exception as exc:
            raise RuntimeError(f"http server shutdown: {exc}") from exc