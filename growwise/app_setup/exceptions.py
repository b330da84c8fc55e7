"""
Gestionnaires d'exceptions utilisés par la factory.
Forme commune des erreurs JSON: {"error": <message public>, "message": <détail>}
- CheckoutError: status_code et message public portés par l'exception
- HTTPException (429, 401, 422 internes FastAPI...): detail repris tel quel
- RequestValidationError: 400 (corps JSON illisible ou mal typé)
- Exception inattendue: 500, journalisée avec la trace
En production (APP_ENV=production) le détail interne n'est jamais renvoyé.
"""
import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException

from growwise.config import IS_PRODUCTION
from growwise.errors import CheckoutError

logger = logging.getLogger(__name__)


def error_body(public_message: str, detail: str) -> dict:
    body = {"error": public_message}
    if not IS_PRODUCTION and detail:
        body["message"] = detail
    return body


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(CheckoutError)
    async def checkout_error(request: Request, exc: CheckoutError):
        if exc.status_code >= 500:
            logger.error("%s %s -> %s: %s", request.method, request.url.path, type(exc).__name__, exc)
        else:
            logger.info("%s %s -> %s: %s", request.method, request.url.path, type(exc).__name__, exc)
        return JSONResponse(status_code=exc.status_code, content=error_body(exc.public_message, str(exc)))

    @app.exception_handler(HTTPException)
    async def http_error(request: Request, exc: HTTPException):
        detail = str(exc.detail)
        return JSONResponse(
            status_code=exc.status_code,
            content={"error": detail, "message": detail},
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(RequestValidationError)
    async def validation_error(request: Request, exc: RequestValidationError):
        return JSONResponse(status_code=400, content=error_body("Requête invalide", str(exc.errors())))

    @app.exception_handler(Exception)
    async def unexpected_error(request: Request, exc: Exception):
        logger.exception("Erreur inattendue %s %s", request.method, request.url.path)
        return JSONResponse(status_code=500, content=error_body("Erreur interne", str(exc)))
