"""Kafka adapter: broker health check, a producer and an at-least-once consumer loop.

The broker client itself is supplied through two factories. A reader factory
is called as ``reader_factory(address, topic, group_id)`` and must return an
object with the async methods ``fetch_message()``, ``commit_messages(*messages)``
and ``close()``. A writer factory is called as ``writer_factory(address, topic)``
and must return an object with the async methods ``write_messages(*messages)``
and ``close()``.
"""

from __future__ import annotations

import asyncio
import logging
import socket
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any, Protocol

from .config import Config
from .retry import Backoff


class KafkaError(Exception):
    """Base class of Kafka adapter failures."""


class EnsureConnectionError(KafkaError):
    """The broker could not be reached."""


class WriteMessageError(KafkaError):
    """A message could not be published."""


class FetchMessageError(KafkaError):
    """A message could not be read from the topic."""


class CommitMessageError(KafkaError):
    """The offset of a message could not be committed."""


@dataclass(frozen=True)
class Message:
    """A single Kafka record."""

    value: bytes
    key: bytes | None = None
    topic: str = ""
    partition: int = 0
    offset: int = 0


class Reader(Protocol):
    async def fetch_message(self) -> Message: ...

    async def commit_messages(self, *messages: Message) -> None: ...

    async def close(self) -> None: ...


class Writer(Protocol):
    async def write_messages(self, *messages: Message) -> None: ...

    async def close(self) -> None: ...


ReaderFactory = Callable[[str, str, str], Reader]
WriterFactory = Callable[[str, str], Writer]
DeliveryHandler = Callable[[bytes], Awaitable[None]]

_NETWORK_FAMILIES = {
    "tcp": socket.AF_UNSPEC,
    "tcp4": socket.AF_INET,
    "tcp6": socket.AF_INET6,
}


def _split_host_port(address: str) -> tuple[str, int]:
    host, sep, port_text = address.rpartition(":")
    if not sep:
        raise ValueError(f"address {address}: missing port in address")
    if not port_text.isdigit() or int(port_text) > 65535:
        raise ValueError(f"address {address}: invalid port")
    return host.strip("[]") or "localhost", int(port_text)


async def ensure_connection(network: str, address: str) -> None:
    """Check that the broker accepts connections by opening and closing one."""
    try:
        family = _NETWORK_FAMILIES.get(network)
        if family is None:
            raise OSError(f"unknown network {network}")
        host, port = _split_host_port(address)
        _, writer = await asyncio.open_connection(host, port, family=family)
    except (OSError, ValueError) as exc:
        raise ConnectionError(f"dial kafka broker {network}://{address}: {exc}") from exc

    writer.close()
    try:
        await writer.wait_closed()
    except OSError as exc:
        raise ConnectionError(f"close kafka connection: {exc}") from exc


class Kafka:
    """Lifecycle of the Kafka producer and consumer, with send and consume operations."""

    def __init__(
        self,
        cfg: Config,
        log: logging.Logger,
        reader_factory: ReaderFactory | None = None,
        writer_factory: WriterFactory | None = None,
    ) -> None:
        if cfg is None:
            raise ValueError("Kafka config cannot be nil")
        if log is None:
            raise ValueError("Logger cannot be nil")
        self.name = "kafka"
        self._cfg = cfg
        self._log = log
        self._reader_factory = reader_factory
        self._writer_factory = writer_factory
        self._consumer: Reader | None = None
        self._producer: Writer | None = None
        self._handlers: list[DeliveryHandler] = []

    def _attrs(self, **extra: Any) -> dict[str, Any]:
        kafka = self._cfg.kafka
        return {
            "address": kafka.address,
            "group_id": kafka.group_id,
            "topic": kafka.test_topic,
            **extra,
        }

    async def start(self) -> None:
        """Check the broker, then create the consumer and the producer."""
        kafka = self._cfg.kafka
        try:
            await ensure_connection(kafka.network, kafka.address)
        except ConnectionError as exc:
            self._log.debug(
                "Kafka connection failed",
                extra={"attrs": {"network": kafka.network, "address": kafka.address, "error": str(exc)}},
            )
            raise EnsureConnectionError(f"kafka: ensure connection failed: {exc}") from exc

        if self._reader_factory is None or self._writer_factory is None:
            raise KafkaError("kafka: no reader or writer factory configured")

        self._consumer = self._reader_factory(kafka.address, kafka.test_topic, kafka.group_id)
        self._producer = self._writer_factory(kafka.address, kafka.test_topic)

        self._log.debug("Connected to Kafka", extra={"attrs": self._attrs(network=kafka.network)})

    async def stop(self) -> None:
        """Close the consumer and then the producer."""
        if self._consumer is not None:
            try:
                await self._consumer.close()
            except Exception as exc:
                self._log.error(
                    "Failed to close Kafka consumer connection",
                    extra={"attrs": self._attrs(error=str(exc))},
                )
                raise KafkaError(f"close kafka consumer: {exc}") from exc
            self._consumer = None

        if self._producer is not None:
            try:
                await self._producer.close()
            except Exception as exc:
                self._log.error(
                    "Failed to close Kafka producer connection",
                    extra={"attrs": {"address": self._cfg.kafka.address, "topic": self._cfg.kafka.test_topic,
                                     "error": str(exc)}},
                )
                raise KafkaError(f"close kafka producer: {exc}") from exc
            self._producer = None

        self._log.debug("Kafka connections closed", extra={"attrs": self._attrs()})

    async def write_message(self, msg: bytes) -> None:
        """Publish one message to the configured topic."""
        if self._producer is None:
            raise WriteMessageError("kafka: write message failed: producer is not started")
        try:
            await self._producer.write_messages(Message(value=msg, key=None))
        except Exception as exc:
            error = WriteMessageError(f"kafka: write message failed: {exc}")
            error.__cause__ = exc
            self._log.error("kafka write message failed", extra={"attrs": {"err": error}})
            raise error from exc

    def add_delivery_handler(self, handler: DeliveryHandler | None) -> None:
        """Register a handler called with the payload of every consumed message."""
        if handler is None:
            return
        self._handlers.append(handler)

    async def start_consuming(self) -> None:
        """Read, handle and commit messages until the task is cancelled.

        Fetch failures are retried after a growing pause. A message whose
        handling fails is not committed, so it is delivered again later.
        """
        consumer = self._consumer
        if consumer is None:
            raise KafkaError("kafka: consumer is not started")

        backoff = Backoff(self._cfg)
        try:
            while True:
                try:
                    msg = await self._fetch(consumer)
                except asyncio.CancelledError:
                    self._log.debug("Kafka consumer context canceled")
                    raise
                except Exception as exc:
                    error = FetchMessageError(f"kafka: fetch message failed: {exc}")
                    error.__cause__ = exc
                    self._log.error("fetch failed", extra={"attrs": {"err": error}})
                    await backoff.sleep()
                    continue
                backoff.reset()

                position = {"topic": msg.topic, "offset": msg.offset}
                try:
                    await self._handle(msg)
                except Exception as exc:
                    self._log.error("handler failed", extra={"attrs": {"err": exc, **position}})
                    continue

                try:
                    await self._commit_with_retry(consumer, msg)
                except CommitMessageError as exc:
                    self._log.error("commit failed", extra={"attrs": {"err": exc, **position}})
                    continue
                self._log.debug("message committed", extra={"attrs": position})
        finally:
            if self._consumer is consumer:
                self._consumer = None
            try:
                await consumer.close()
            except Exception as exc:
                self._log.warning("consumer close failed", extra={"attrs": {"err": exc}})

    async def _fetch(self, consumer: Reader) -> Message:
        msg = await consumer.fetch_message()
        self._log.debug(
            "message received",
            extra={"attrs": {"topic": msg.topic, "offset": msg.offset, "size": len(msg.value)}},
        )
        return msg

    async def _handle(self, msg: Message) -> None:
        first_error: Exception | None = None
        for handler in self._handlers:
            try:
                await handler(msg.value)
            except Exception as exc:
                if first_error is None:
                    first_error = exc
        if first_error is not None:
            raise first_error

    async def _commit_with_retry(self, consumer: Reader, msg: Message) -> None:
        backoff = Backoff(self._cfg)
        for attempt in range(1, self._cfg.kafka.commit_backoff.attempts + 1):
            try:
                await consumer.commit_messages(msg)
            except Exception as exc:
                self._log.warning("commit retry", extra={"attrs": {"attempt": attempt, "err": exc}})
                await backoff.sleep()
                continue
            return
        raise CommitMessageError("commit retries exceeded: kafka: commit message failed")