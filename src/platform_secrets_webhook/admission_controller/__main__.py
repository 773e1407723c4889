import asyncio
import logging
import ssl

import uvloop
from aiohttp import web
from neuro_logging import init_logging, setup_sentry

from platform_secrets_webhook.admission_controller.app import create_app
from platform_secrets_webhook.config import Config, TLSConfig

logger = logging.getLogger(__name__)


def create_ssl_context(config: TLSConfig) -> ssl.SSLContext:
    context = ssl.SSLContext(ssl.PROTOCOL_TLS_SERVER)
    context.load_cert_chain(
        certfile=str(config.cert_path),
        keyfile=str(config.key_path),
    )
    return context


async def run() -> None:
    init_logging(health_check_url_path="/ping")
    config = Config.from_environ()
    logging.info("Loaded config: %r", config)

    setup_sentry(
        health_check_url_path="/ping",
        ignore_errors=[web.HTTPNotFound],
    )

    context = create_ssl_context(config.tls)

    app = await create_app(config)
    runner = web.AppRunner(app)
    done = asyncio.Event()

    try:
        await runner.setup()
        site = web.TCPSite(
            runner,
            config.server.host,
            config.server.port,
            ssl_context=context,
        )
        await site.start()
        await done.wait()  # sleep forever
    except Exception as e:
        logger.exception("Unhandled error")
        raise e
    finally:
        await runner.cleanup()


def main() -> None:
    try:
        uvloop.run(run())
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    main()
