import asyncio
import contextlib
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .core.db import Base, SessionLocal, engine
from .core.config import get_settings
from .core.errors import DialerError, GatewayError
from .core.logging import configure_logging
from .api import calls, dialer, dispositions, webhooks
from .services.dialer_service import DialerController
from .services.list_service import SqlTargetSource
from .services.run_registry import SqlRunStore
from .services.telnyx_gateway import TelnyxGateway
from . import models  # noqa: F401

settings = get_settings()
logger = logging.getLogger(__name__)

Base.metadata.create_all(bind=engine)


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging(settings.log_level)
    gateway = None
    if getattr(app.state, "controller", None) is None:
        gateway = TelnyxGateway(settings)
        app.state.controller = DialerController(
            gateway,
            SqlRunStore(SessionLocal),
            SqlTargetSource(SessionLocal),
            settings=settings,
        )
        app.state.controller.recover()
    sweeper = asyncio.create_task(app.state.controller.run_sweeper())
    logger.info("Power dialer ready (agent=%s)", settings.agent_sip_uri or "not configured")
    try:
        yield
    finally:
        sweeper.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await sweeper
        if gateway is not None:
            await gateway.aclose()


app = FastAPI(title="Power Dialer", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(DialerError)
async def dialer_error_handler(request: Request, exc: DialerError):
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(GatewayError)
async def gateway_error_handler(request: Request, exc: GatewayError):
    logger.warning("Provider error on %s: %s", request.url.path, exc)
    return JSONResponse(status_code=502, content={"detail": str(exc), "provider_status": exc.status_code})


app.include_router(dialer.router, prefix="/api/dialer", tags=["dialer"])
app.include_router(webhooks.router, prefix="/api/dialer", tags=["webhooks"])
app.include_router(calls.router, prefix="/api/calls", tags=["calls"])
app.include_router(dispositions.router, prefix="/api/dispositions", tags=["dispositions"])


@app.get("/health")
def health():
    return {"status": "ok"}
