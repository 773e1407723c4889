from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from pathlib import Path
from typing import NamedTuple

import aiohttp
import pytest
from aiohttp import web

from platform_secrets_webhook.admission_controller.app import create_app
from platform_secrets_webhook.config import (
    AdmissionControllerConfig,
    Config,
    ServerConfig,
    TLSConfig,
)


class ApiConfig(NamedTuple):
    host: str
    port: int

    @property
    def endpoint(self) -> str:
        return f"http://{self.host}:{self.port}"

    @property
    def admission_controller_url(self) -> str:
        return self.endpoint + "/admission-controller"

    @property
    def ping_url(self) -> str:
        return self.endpoint + "/ping"


@asynccontextmanager
async def create_local_app_server(
    config: Config, host: str, port: int
) -> AsyncIterator[ApiConfig]:
    """
    Runs the webhook API over plain HTTP, TLS is terminated elsewhere in tests
    """
    app = await create_app(config)
    runner = web.AppRunner(app)
    try:
        await runner.setup()
        api_config = ApiConfig(host=host, port=port)
        site = web.TCPSite(runner, api_config.host, api_config.port)
        await site.start()
        yield api_config
    finally:
        await runner.cleanup()


@pytest.fixture
def webhook_config(config: AdmissionControllerConfig, unused_tcp_port: int) -> Config:
    return Config(
        server=ServerConfig(host="127.0.0.1", port=unused_tcp_port),
        tls=TLSConfig(cert_path=Path("/dev/null"), key_path=Path("/dev/null")),
        admission_controller=config,
    )


@pytest.fixture
async def api(webhook_config: Config) -> AsyncIterator[ApiConfig]:
    async with create_local_app_server(
        webhook_config,
        host=webhook_config.server.host,
        port=webhook_config.server.port,
    ) as api_config:
        yield api_config


@pytest.fixture
async def client() -> AsyncIterator[aiohttp.ClientSession]:
    async with aiohttp.ClientSession() as session:
        yield session
