"""MongoDB client wrapped as a lifecycle component."""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from pymongo import MongoClient
from pymongo.database import Database

from .config import MongoConfig


class MongoError(Exception):
    """Base class of MongoDB component failures."""


class ConnectError(MongoError):
    """The MongoDB client could not be created."""


class PingError(MongoError):
    """MongoDB did not answer the availability check."""


class DisconnectError(MongoError):
    """The connection to MongoDB could not be closed cleanly."""


class MongoDB:
    """MongoDB client together with its component metadata."""

    def __init__(self, cfg: MongoConfig, log: logging.Logger) -> None:
        self.name = "mongodb"
        self._cfg = cfg
        self._log = log

        options: dict[str, Any] = {"maxPoolSize": cfg.max_pool_size, "connect": False}
        if cfg.connect_timeout != 0:
            options["connectTimeoutMS"] = cfg.connect_timeout * 1000
        if cfg.username:
            options["username"] = cfg.username
            options["password"] = cfg.password
        try:
            self.client: Any = MongoClient(host=cfg.addr or None, **options)
        except Exception as exc:
            raise ConnectError("mongodb: connect failed") from exc

    def _attrs(self, **extra: Any) -> dict[str, Any]:
        return {"component": "mongodb", "addr": self._cfg.addr, **extra}

    async def start(self) -> None:
        """Check that the primary answers a ping."""
        try:
            await asyncio.to_thread(self.client.admin.command, "ping")
        except Exception as exc:
            raise PingError("mongodb: ping failed") from exc

        self._log.debug(
            "MongoDB connection established",
            extra={"attrs": self._attrs(database=self._cfg.db, pool_size=self._cfg.max_pool_size)},
        )

    async def stop(self) -> None:
        """Close the client and its connections."""
        self._log.debug("Disconnecting from MongoDB", extra={"attrs": self._attrs()})
        try:
            await asyncio.to_thread(self.client.close)
        except Exception as exc:
            raise DisconnectError("mongodb: disconnect failed") from exc

    def get_db(self, name: str) -> Database:
        """Return a handle of the database called *name*."""
        return self.client.get_database(name)