"""Retries with exponential backoff and optional random jitter."""

from __future__ import annotations

import asyncio
import secrets
from collections.abc import Awaitable, Callable
from typing import TypeVar

from .config import Config, RetryConfig

T = TypeVar("T")


def _section(cfg: Config | RetryConfig) -> RetryConfig:
    return cfg.retry if isinstance(cfg, Config) else cfg


def sanitize(cfg: Config | RetryConfig) -> RetryConfig:
    """Replace unset or invalid retry parameters with safe defaults, in place."""
    retry = _section(cfg)
    if retry.attempts <= 0:
        retry.attempts = 3
    if retry.initial <= 0:
        retry.initial = 1.0
    if retry.max <= 0:
        retry.max = 30.0
    if retry.factor < 1:
        retry.factor = 2.0
    return retry


def next_delay(prev: float, cfg: Config | RetryConfig) -> float:
    """Return the delay that follows *prev*: grown by the factor, capped, plus jitter."""
    retry = _section(cfg)
    backoff = min(prev * retry.factor, retry.max)
    if retry.jitter:
        jitter_max_ns = int(backoff * 1e9 / 2)
        if jitter_max_ns > 0:
            backoff += secrets.randbelow(jitter_max_ns) / 1e9
    return backoff


async def do(cfg: Config | RetryConfig | None, fn: Callable[[], Awaitable[T]]) -> T:
    """Await *fn* until it succeeds or the attempts run out; re-raise the last error."""
    if cfg is None:
        raise ValueError("retry.do: config cannot be None")
    retry = sanitize(cfg)

    delay = retry.initial
    last_error: Exception | None = None
    for attempt in range(1, retry.attempts + 1):
        try:
            return await fn()
        except Exception as exc:  # noqa: BLE001 - every failure is retried
            last_error = exc
        if attempt == retry.attempts:
            break
        delay = next_delay(delay, retry)
        await asyncio.sleep(delay)

    assert last_error is not None
    raise last_error


class Backoff:
    """Growing pause between repeated attempts, reset after a success."""

    def __init__(self, cfg: Config | RetryConfig) -> None:
        self._cfg = sanitize(cfg)
        self.delay = self._cfg.initial

    async def sleep(self) -> None:
        """Advance the delay and wait for it; cancellation interrupts the wait."""
        self.delay = next_delay(self.delay, self._cfg)
        await asyncio.sleep(self.delay)

    def reset(self) -> None:
        """Return the delay to its initial value."""
        self.delay = self._cfg.initial