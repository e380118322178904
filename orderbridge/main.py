# orderbridge/main.py
import logging
from typing import Optional

import httpx
import uvicorn
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from . import orders, webhooks
from .config import Settings
from .errors import SignatureMismatch, ValidationError
from .gateway import build_gateway
from .ledger import build_ledger
from .tracking import build_tracking_ids

logger = logging.getLogger(__name__)


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _validation_message(exc: RequestValidationError) -> str:
    parts = []
    for err in exc.errors():
        loc = ".".join(str(p) for p in err.get("loc", ()) if p != "body")
        parts.append(f"{loc}: {err.get('msg')}" if loc else str(err.get("msg")))
    return "; ".join(parts) or "Invalid request"


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or Settings.from_env()

    app = FastAPI(
        title="orderbridge",
        description="Payment orders and webhooks over a spreadsheet order ledger",
        version="1.0.0",
    )
    app.state.settings = settings

    # ✅ CORS (storefront calls /create-order from the browser)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origin_list,
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(orders.router)
    app.include_router(webhooks.router)

    @app.get("/health")
    async def health():
        return {"status": "ok"}

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        return JSONResponse(
            status_code=422,
            content={"status": "FAILED", "message": _validation_message(exc)},
        )

    @app.exception_handler(ValidationError)
    async def validation_handler(request: Request, exc: ValidationError):
        return JSONResponse(
            status_code=422,
            content={"status": "FAILED", "message": str(exc)},
        )

    @app.exception_handler(SignatureMismatch)
    async def signature_handler(request: Request, exc: SignatureMismatch):
        logger.warning("Webhook rejected: %s", exc)
        return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"status": "invalid_signature"})

    @app.on_event("startup")
    async def on_startup():
        client = httpx.AsyncClient(timeout=settings.http_timeout)
        app.state.http_client = client
        app.state.ledger = build_ledger(settings, client)
        app.state.gateway = build_gateway(settings, client)
        app.state.tracking_ids = build_tracking_ids(settings)
        logger.info("orderbridge ready: sheet %r, %s tracking ids", settings.sheet_name, settings.tracking_id_strategy)

    @app.on_event("shutdown")
    async def on_shutdown():
        client = getattr(app.state, "http_client", None)
        if client is not None:
            await client.aclose()

    return app


app = create_app()


def run() -> None:
    settings = app.state.settings
    configure_logging(settings.log_level)
    uvicorn.run(app, host=settings.host, port=settings.port)


if __name__ == "__main__":
    run()
