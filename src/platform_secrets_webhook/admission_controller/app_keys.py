from aiohttp import web

from platform_secrets_webhook.admission_controller.evaluator import AdmissionEvaluator


EVALUATOR_KEY = web.AppKey("evaluator", AdmissionEvaluator)
