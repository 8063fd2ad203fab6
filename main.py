from __future__ import annotations

from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI
from fastapi.responses import JSONResponse

from gate.config import GateConfig, configure_logging, load_env_file

load_env_file(Path(__file__).resolve().parent / ".env")

from authority.api import create_router  # noqa: E402
from authority.pending import PendingConfirmations  # noqa: E402
from authority.responder import ConfirmationResponder  # noqa: E402
from shared.pipe import PostMessageBus  # noqa: E402


def create_app(pending: PendingConfirmations | None = None, *, config: GateConfig | None = None) -> FastAPI:
    cfg = config or GateConfig.from_env()
    pending = pending or PendingConfirmations()
    bus = PostMessageBus()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # Content-script side of the stream; page-side gates join via
        # gate.inpage.install_gate(host, app.state.bus).
        responder = ConfirmationResponder(bus.endpoint(cfg.content_script_name, cfg.inpage_name), pending)
        app.state.responder = responder
        try:
            yield
        finally:
            responder.close()

    app = FastAPI(title="Wallet Gate (confirmation authority)", lifespan=lifespan)
    app.state.bus = bus
    app.state.pending = pending
    app.state.config = cfg
    app.include_router(create_router(pending))

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(_request, exc: Exception) -> JSONResponse:
        return JSONResponse(status_code=500, content={"error": {"code": "INTERNAL", "message": str(exc) or "error"}})

    return app


configure_logging()
app = create_app()
