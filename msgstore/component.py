"""Lifecycle container: starts components with retries and stops them in reverse."""

from __future__ import annotations

import logging
from typing import Protocol, runtime_checkable

from . import retry
from .config import Config


@runtime_checkable
class Component(Protocol):
    """A service part whose lifecycle is driven by a Container."""

    name: str

    async def start(self) -> None:
        """Bring the component up; raise on failure."""

    async def stop(self) -> None:
        """Release the component's resources; raise on failure."""


class Container:
    """Holds components and drives their start and stop."""

    def __init__(self, log: logging.Logger, cfg: Config) -> None:
        self.log = log
        self.cfg = cfg
        self.components: list[Component] = []

    def add(self, *args: Component) -> None:
        """Register one or more components, in start order."""
        self.components.extend(args)

    async def start_all(self) -> None:
        """Start every component in order, retrying each one.

        Failures do not stop the remaining components from starting; they are
        collected and raised together as an ExceptionGroup.
        """
        errors: list[Exception] = []
        for component in self.components:
            try:
                await retry.do(self.cfg, component.start)
            except Exception as exc:  # noqa: BLE001 - collected and re-raised below
                error = RuntimeError(f"{component.name} start failed: {exc}")
                error.__cause__ = exc
                errors.append(error)
        if errors:
            raise ExceptionGroup("components failed to start", errors)

    async def stop_all(self) -> None:
        """Stop every component in reverse order, raising collected failures."""
        errors: list[Exception] = []
        for component in reversed(self.components):
            try:
                await component.stop()
            except Exception as exc:  # noqa: BLE001 - collected and re-raised below
                error = RuntimeError(f"{component.name} stop failed: {exc}")
                error.__cause__ = exc
                errors.append(error)
        if errors:
            raise ExceptionGroup("components failed to stop", errors)