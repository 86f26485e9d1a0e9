"""
Gestionnaires d'exceptions.
- CheckoutError: JSON {detail, code, ...} avec le status de l'erreur (rejets, Stripe, invariants).
- StorageUnavailable hors webhook (lecture des commandes): 503.
- RequestValidationError: 400 InvalidRequest (corps de requête mal formé).
- HTTPException: forme JSON standard FastAPI.
"""
import logging

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from storefront.payments.errors import CheckoutError, InvariantViolation, StorageUnavailable

logger = logging.getLogger(__name__)

def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(CheckoutError)
    async def checkout_error(request: Request, exc: CheckoutError):
        if isinstance(exc, InvariantViolation):
            logger.error("checkout invariant violation path=%s detail=%s", request.url.path, exc.detail)
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    @app.exception_handler(StorageUnavailable)
    async def storage_unavailable(request: Request, exc: StorageUnavailable):
        return JSONResponse(status_code=503, content={"detail": exc.detail, "code": exc.code})

    @app.exception_handler(RequestValidationError)
    async def invalid_request(request: Request, exc: RequestValidationError):
        return JSONResponse(
            status_code=400,
            content={"detail": "Requête invalide", "code": "InvalidRequest", "errors": jsonable_errors(exc)},
        )

    @app.exception_handler(HTTPException)
    async def http_error(request: Request, exc: HTTPException):
        return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail}, headers=exc.headers)

def jsonable_errors(exc: RequestValidationError) -> list:
    return [{"loc": list(e.get("loc", ())), "msg": e.get("msg")} for e in exc.errors()]
