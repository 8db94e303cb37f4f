# server.py (JSON API)

from datetime import datetime, timezone

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from herbtrace.app_config import configure_logging, load_settings
from herbtrace.bootstrap import build_context
from herbtrace.errors import LedgerError
from herbtrace.fastapi.ledger_api import ledger_error_response, router as ledger_router


def create_app(context=None) -> FastAPI:
    settings = context.settings if context else load_settings()
    configure_logging(settings.log_level)

    app = FastAPI(title="HerbTrace Ledger API", version="1.0.0")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.state.ledger_context = context or build_context(settings)

    @app.exception_handler(LedgerError)
    async def _ledger_error(request: Request, exc: LedgerError):
        return ledger_error_response(exc)

    # --- include routers ---
    app.include_router(ledger_router)

    # --- diagnostics ---
    @app.get("/_health")
    def _health():
        return {"ok": True, "service": "herbtrace-api", "ts": int(datetime.now(timezone.utc).timestamp())}

    return app
