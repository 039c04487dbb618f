from __future__ import annotations

from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager
from dataclasses import dataclass

import aiohttp
import aiohttp.web
import pytest
from yarl import URL

from promql_metrics.api import create_app
from promql_metrics.config import ParserApiConfig


@dataclass(frozen=True)
class Address:
    host: str
    port: int

    @property
    def http_url(self) -> URL:
        return URL.build(scheme="http", host=self.host, port=self.port)


@asynccontextmanager
async def create_local_app_server(
    app: aiohttp.web.Application, port: int = 8080
) -> AsyncIterator[Address]:
    runner = aiohttp.web.AppRunner(app)
    try:
        await runner.setup()
        address = Address("127.0.0.1", port)
        site = aiohttp.web.TCPSite(runner, address.host, address.port)
        await site.start()
        yield address
    finally:
        await runner.shutdown()
        await runner.cleanup()


@pytest.fixture()
async def client() -> AsyncIterator[aiohttp.ClientSession]:
    async with aiohttp.ClientSession() as client:
        yield client


@pytest.fixture()
def api_config() -> ParserApiConfig:
    return ParserApiConfig(max_expressions=5)


@pytest.fixture()
async def api_server(
    unused_tcp_port_factory: Callable[[], int], api_config: ParserApiConfig
) -> AsyncIterator[URL]:
    app = create_app(api_config)
    async with create_local_app_server(
        app=app, port=unused_tcp_port_factory()
    ) as address:
        yield address.http_url
