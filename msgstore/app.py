"""Application coordinator: builds the components and drives their lifecycle."""

from __future__ import annotations

import asyncio
import logging
import os

from aiohttp import web

from .component import Container
from .config import Config, HTTPConfig
from .happ import HApp
from .kafka import Kafka
from .mongodb import MongoDB


def _build_http(cfg: HTTPConfig, log: logging.Logger) -> HApp:
    return HApp(cfg, log, web.Application())


class App:
    """Owns the container of infrastructure components and the HTTP server."""

    def __init__(self, cfg: Config, log: logging.Logger) -> None:
        self.cfg = cfg
        self.log = log
        self.container = Container(log, cfg)

        mongo = MongoDB(cfg.mongo, log)
        kafka = Kafka(cfg, log)
        self.container.add(mongo, kafka)

        self.happ: HApp | None = _build_http(cfg.http, log) if cfg.app.is_http_enabled else None
        self._http_task: asyncio.Task[None] | None = None
        self._shut_down = False

    async def start(self) -> None:
        """Start every component, then serve HTTP in the background.

        Raises the container's ExceptionGroup when a component cannot start.
        """
        attrs = {"op": "App.StartAsync"}
        self.log.info("Application started", extra={"attrs": {**attrs, "PID": os.getpid()}})

        try:
            await self.container.start_all()
        except Exception as exc:
            self.log.error("failed to start components", extra={"attrs": {**attrs, "error": exc}})
            raise

        if self.happ is not None:
            self._http_task = asyncio.create_task(self.happ.start())
            self._http_task.add_done_callback(self._on_http_done)

    def _on_http_done(self, task: asyncio.Task[None]) -> None:
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            self.log.error("HTTP server failed", extra={"attrs": {"err": exc}})

    async def shutdown(self, timeout: float | None = None) -> None:
        """Stop the HTTP server and the components, once, within *timeout* seconds.

        Failures are collected and raised together as an ExceptionGroup.
        """
        if timeout is not None and timeout <= 0:
            raise TimeoutError("app shutdown: context deadline exceeded")
        if self._shut_down:
            return
        self._shut_down = True

        errors: list[Exception] = []
        try:
            async with asyncio.timeout(timeout):
                await self._stop(errors)
        except TimeoutError:
            errors.append(TimeoutError("app shutdown: context deadline exceeded"))

        if errors:
            raise ExceptionGroup("app shutdown failed", errors)

    async def _stop(self, errors: list[Exception]) -> None:
        if self.happ is not None:
            try:
                await self.happ.shutdown()
            except Exception as exc:  # noqa: BLE001 - collected for the caller
                errors.append(exc)

        try:
            await self.container.stop_all()
        except Exception as exc:  # noqa: BLE001 - collected for the caller
            errors.append(exc)

        task, self._http_task = self._http_task, None
        if task is not None:
            try:
                await task
            except Exception as exc:  # noqa: BLE001 - collected for the caller
                errors.append(exc)