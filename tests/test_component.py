import logging

import pytest

from msgstore.component import Component, Container
from msgstore.config import Config, RetryConfig


def _config(attempts=3):
    return Config(retry=RetryConfig(attempts=attempts, initial=0.001, max=0.002, jitter=False))


class _Recorder:
    def __init__(self, name, events, start_failures=0, stop_error=None):
        self.name = name
        self.events = events
        self.start_failures = start_failures
        self.stop_error = stop_error
        self.start_calls = 0

    async def start(self):
        self.start_calls += 1
        self.events.append(("start", self.name))
        if self.start_calls <= self.start_failures:
            raise ConnectionError(f"{self.name} unavailable")

    async def stop(self):
        self.events.append(("stop", self.name))
        if self.stop_error is not None:
            raise self.stop_error


def _container(attempts=3):
    return Container(logging.getLogger("test.component"), _config(attempts))


def test_add_registers_components_in_order():
    first = _Recorder("a", [])
    second = _Recorder("b", [])
    container = _container()
    container.add(first)
    container.add(second)
    assert container.components == [first, second]
    assert [isinstance(c, Component) for c in container.components] == [True, True]


@pytest.mark.asyncio
async def test_start_all_starts_in_order():
    events = []
    container = _container()
    container.add(_Recorder("mongodb", events), _Recorder("kafka", events))
    await container.start_all()
    assert events == [("start", "mongodb"), ("start", "kafka")]


@pytest.mark.asyncio
async def test_start_all_retries_until_success():
    events = []
    flaky = _Recorder("kafka", events, start_failures=2)
    container = _container(attempts=3)
    container.add(flaky)
    await container.start_all()
    assert flaky.start_calls == 3


@pytest.mark.asyncio
async def test_start_all_collects_failures_and_continues():
    events = []
    broken = _Recorder("mongodb", events, start_failures=10)
    healthy = _Recorder("kafka", events)
    container = _container(attempts=2)
    container.add(broken, healthy)
    with pytest.raises(ExceptionGroup) as info:
        await container.start_all()
    assert broken.start_calls == 2
    assert healthy.start_calls == 1
    [error] = info.value.exceptions
    assert str(error).startswith("mongodb start failed")
    assert isinstance(error.__cause__, ConnectionError)


@pytest.mark.asyncio
async def test_stop_all_runs_in_reverse_order():
    events = []
    container = _container()
    container.add(_Recorder("a", events), _Recorder("b", events), _Recorder("c", events))
    await container.stop_all()
    assert events == [("stop", "c"), ("stop", "b"), ("stop", "a")]


@pytest.mark.asyncio
async def test_stop_all_collects_every_failure():
    events = []
    first_error = OSError("first")
    last_error = OSError("last")
    container = _container()
    container.add(
        _Recorder("a", events, stop_error=first_error),
        _Recorder("b", events),
        _Recorder("c", events, stop_error=last_error),
    )
    with pytest.raises(ExceptionGroup) as info:
        await container.stop_all()
    assert [e.__cause__ for e in info.value.exceptions] == [last_error, first_error]
    assert str(info.value.exceptions[0]).startswith("c stop failed")
    assert len(events) == 3


@pytest.mark.asyncio
async def test_empty_container_starts_and_stops():
    container = _container()
    await container.start_all()
    await container.stop_all()
    assert container.components == []