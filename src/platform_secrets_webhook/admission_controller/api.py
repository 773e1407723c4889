import json
import logging
from collections.abc import Awaitable, Callable
from typing import Any

from aiohttp import web
from pydantic import ValidationError

from platform_secrets_webhook.admission_controller.app_keys import EVALUATOR_KEY
from platform_secrets_webhook.admission_controller.evaluator import (
    AdmissionEvaluator,
    MutationStrategy,
)
from platform_secrets_webhook.admission_controller.schema import (
    AdmissionRequest,
    AdmissionResponse,
    AdmissionReviewRequest,
)


logger = logging.getLogger(__name__)


class AdmissionControllerApi:
    def __init__(
        self,
        app: web.Application,
    ) -> None:
        self._app = app

    @property
    def _evaluator(self) -> AdmissionEvaluator:
        return self._app[EVALUATOR_KEY]

    def register(self, app: web.Application) -> None:
        app.add_routes(
            [
                web.post("/pods", self.handle_post_pods),
                web.post("/pods/attach", self.handle_post_pods_attach),
                web.post("/mutating-pods", self.handle_post_mutating_pods),
                web.post(
                    "/mutating-pods-sidecar", self.handle_post_mutating_pods_sidecar
                ),
            ]
        )

    async def handle_post_pods(self, request: web.Request) -> web.Response:
        return await self._serve(request, self._evaluator.evaluate_pod_admission)

    async def handle_post_pods_attach(self, request: web.Request) -> web.Response:
        return await self._serve(
            request, self._evaluator.evaluate_pod_attach_admission
        )

    async def handle_post_mutating_pods(self, request: web.Request) -> web.Response:
        async def _evaluate(admission_request: AdmissionRequest) -> AdmissionResponse:
            return await self._evaluator.evaluate_pod_mutation(
                admission_request, MutationStrategy.ANNOTATION_DRIVEN
            )

        return await self._serve(request, _evaluate)

    async def handle_post_mutating_pods_sidecar(
        self, request: web.Request
    ) -> web.Response:
        async def _evaluate(admission_request: AdmissionRequest) -> AdmissionResponse:
            return await self._evaluator.evaluate_pod_mutation(
                admission_request, MutationStrategy.SIDECAR_ONLY
            )

        return await self._serve(request, _evaluate)

    async def _serve(
        self,
        request: web.Request,
        evaluate: Callable[[AdmissionRequest], Awaitable[AdmissionResponse]],
    ) -> web.Response:
        admission_request = await self._read_admission_request(request)
        logger.info(
            "%s call, uid %s, operation %s",
            request.path,
            admission_request.uid,
            admission_request.operation,
        )
        response = await evaluate(admission_request)
        return web.json_response(response.to_review())

    @staticmethod
    async def _read_admission_request(request: web.Request) -> AdmissionRequest:
        """
        Reads an AdmissionReview envelope.
        Without a uid there is nothing to answer to, so a broken envelope
        is rejected at the HTTP level.
        """
        try:
            payload: dict[str, Any] = await request.json()
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            logger.exception("request body is not a JSON")
            raise web.HTTPBadRequest(text="request body is not a JSON") from e

        try:
            review = AdmissionReviewRequest.model_validate(payload)
        except ValidationError as e:
            logger.exception("invalid AdmissionReview")
            raise web.HTTPBadRequest(text="invalid AdmissionReview") from e
        return review.request
