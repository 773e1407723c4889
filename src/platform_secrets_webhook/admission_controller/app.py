import logging

from aiohttp import web

from platform_secrets_webhook.admission_controller.api import AdmissionControllerApi
from platform_secrets_webhook.admission_controller.app_keys import EVALUATOR_KEY
from platform_secrets_webhook.admission_controller.evaluator import AdmissionEvaluator
from platform_secrets_webhook.config import Config

logger = logging.getLogger(__name__)


async def handle_ping(request: web.Request) -> web.Response:
    return web.Response(text="Pong")


async def create_app(config: Config) -> web.Application:
    app = web.Application(
        handler_args={"keepalive_timeout": config.server.keep_alive_timeout_s},
    )
    app[EVALUATOR_KEY] = AdmissionEvaluator(config.admission_controller)
    app.router.add_get("/ping", handle_ping)

    admission_controller_app = web.Application()
    admission_controller_api = AdmissionControllerApi(app)
    admission_controller_api.register(admission_controller_app)

    app.add_subapp("/admission-controller", admission_controller_app)

    return app
