# workproof/main.py
import logging
import os
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from supabase import Client, create_client

from .config import Settings, get_settings
from .db import create_engine, create_sessionmaker, init_models
from .errors import ValidationError, WorkproofError
from .payments import PaymentBridge
from .processor import StripeProcessor
from .routers import health, invoices, jobs, payments, photos
from .webhooks import WebhookReconciler

log = logging.getLogger("uvicorn.error")


def _make_supabase(settings: Settings) -> Optional[Client]:
    if not settings.supabase_url or not settings.supabase_service_role_key:
        return None
    return create_client(settings.supabase_url, settings.supabase_service_role_key)


def create_app(
    settings: Optional[Settings] = None,
    processor: Optional[StripeProcessor] = None,
    supabase: Optional[Client] = None,
) -> FastAPI:
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        engine = create_engine(settings.database_url)
        await init_models(engine)
        proc = processor or StripeProcessor.from_settings(settings)

        app.state.settings = settings
        app.state.engine = engine
        app.state.sessionmaker = create_sessionmaker(engine)
        app.state.supabase = supabase if supabase is not None else _make_supabase(settings)
        app.state.processor = proc
        app.state.bridge = PaymentBridge(proc, settings.stripe_currency)
        app.state.reconciler = WebhookReconciler(proc)
        log.info(
            f"WorkProof API up: stripe_key={proc.has_secret_key} "
            f"webhook_secret={proc.has_webhook_secret} supabase={app.state.supabase is not None}"
        )
        try:
            yield
        finally:
            proc.close()
            await engine.dispose()

    app = FastAPI(
        title="WorkProof API",
        version="1.0.0",
        docs_url="/docs",
        redoc_url=None,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(WorkproofError)
    async def workproof_error(request: Request, exc: WorkproofError):
        return JSONResponse(status_code=exc.status_code, content=jsonable_encoder(exc.to_dict()))

    @app.exception_handler(RequestValidationError)
    async def request_validation_error(request: Request, exc: RequestValidationError):
        err = ValidationError("invalid request body", {"errors": exc.errors()})
        return JSONResponse(status_code=err.status_code, content=jsonable_encoder(err.to_dict()))

    @app.get("/", tags=["default"])
    def read_root():
        return {"ok": True, "service": "workproof-api"}

    app.include_router(health.router)
    app.include_router(jobs.router)
    app.include_router(photos.router)
    app.include_router(invoices.router)
    app.include_router(payments.router)
    return app


app = create_app()


# ──────────────────────────────────────────────────────────────────────────────
# Local dev entrypoint
# ──────────────────────────────────────────────────────────────────────────────
if __name__ == "__main__":
    import uvicorn

    logging.basicConfig(level=logging.INFO)
    uvicorn.run(
        "workproof.main:app",
        host="0.0.0.0",
        port=int(os.environ.get("PORT", "8000")),
        reload=True,
    )
