import asyncio
import logging
import socket

import aiohttp
import pytest
from aiohttp import web

from msgstore.config import HTTPConfig
from msgstore.happ import HApp


def _free_port():
    with socket.socket() as sock:
        sock.bind(("127.0.0.1", 0))
        return sock.getsockname()[1]


def _application():
    async def ping(request):
        return web.Response(text="pong")

    app = web.Application()
    app.router.add_get("/ping", ping)
    return app


async def _get_when_ready(url, task):
    async with aiohttp.ClientSession() as session:
        for _ in range(200):
            if task.done():
                task.result()
            try:
                async with session.get(url) as response:
                    return await response.text()
            except aiohttp.ClientConnectionError:
                await asyncio.sleep(0.02)
    raise AssertionError("server did not come up")


@pytest.mark.asyncio
async def test_serves_requests_until_shutdown():
    port = _free_port()
    server = HApp(HTTPConfig(addr=f"127.0.0.1:{port}"), logging.getLogger("test.happ"), _application())
    task = asyncio.create_task(server.start())
    body = await _get_when_ready(f"http://127.0.0.1:{port}/ping", task)
    assert body == "pong"

    await server.shutdown()
    assert await asyncio.wait_for(task, 5) is None

    async with aiohttp.ClientSession() as session:
        with pytest.raises(aiohttp.ClientConnectionError):
            async with session.get(f"http://127.0.0.1:{port}/ping"):
                pass


@pytest.mark.asyncio
async def test_start_after_shutdown_returns_without_listening():
    port = _free_port()
    server = HApp(HTTPConfig(addr=f"127.0.0.1:{port}"), logging.getLogger("test.happ"), _application())
    await server.shutdown()
    assert await asyncio.wait_for(server.start(), 5) is None
    async with aiohttp.ClientSession() as session:
        with pytest.raises(aiohttp.ClientConnectionError):
            async with session.get(f"http://127.0.0.1:{port}/ping"):
                pass


@pytest.mark.asyncio
async def test_port_in_use_raises():
    with socket.socket() as busy:
        busy.bind(("127.0.0.1", 0))
        busy.listen()
        port = busy.getsockname()[1]
        server = HApp(HTTPConfig(addr=f"127.0.0.1:{port}"), logging.getLogger("test.happ"), _application())
        with pytest.raises(RuntimeError, match="http server listen and serve") as info:
            await server.start()
    assert isinstance(info.value.__cause__, OSError)


@pytest.mark.asyncio
async def test_address_without_port_raises():
    server = HApp(HTTPConfig(addr="localhost"), logging.getLogger("test.happ"), _application())
    with pytest.raises(RuntimeError, match="missing port"):
        await server.start()


@pytest.mark.asyncio
async def test_start_logs_address(caplog):
    caplog.set_level(logging.INFO, logger="test.happ")
    server = HApp(HTTPConfig(addr="localhost"), logging.getLogger("test.happ"), _application())
    with pytest.raises(RuntimeError):
        await server.start()
    [record] = [r for r in caplog.records if r.getMessage() == "HTTP server is starting"]
    assert record.attrs["address"] == "localhost"