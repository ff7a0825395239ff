from __future__ import annotations
import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from prometheus_fastapi_instrumentator import Instrumentator

from .db import init_db, async_session_maker
from .core.config import get_settings
from .core.nats import nats_connect, nats_close, publish_attendance_marked
from .core.redis import ping_redis
from .core.rotation import RotationScheduler
from .core.signing import SignatureIssuer
from .routers import attendance, events, professors, rotation
from .services.ledger import Ledger

logger = logging.getLogger(__name__)
settings = get_settings()

@asynccontextmanager
async def lifespan(app: FastAPI):
    await init_db()
    # best-effort connect to infra; service still runs if these fail
    if settings.enable_nats:
        try:
            await nats_connect()
        except Exception:
            logger.warning("NATS unavailable; AttendanceMarked events will be retried per publish")
    if not await ping_redis():
        logger.warning("redis unavailable; profile endpoints will fail")

    issuer = SignatureIssuer.from_settings()
    if not issuer.available:
        logger.warning("no professor signing key configured; QR rotation will not sign")
    app.state.ledger = Ledger(
        async_session_maker,
        publisher=publish_attendance_marked if settings.enable_nats else None,
        max_token_age_seconds=settings.max_token_age_seconds,
    )
    app.state.rotation = RotationScheduler(
        issuer,
        interval=settings.qr_rotation_seconds,
        initial_delay=settings.qr_initial_delay_ms / 1000,
        tick=settings.qr_countdown_tick_ms / 1000,
    )
    yield
    await app.state.rotation.aclose()
    if settings.enable_nats:
        await nats_close()

app = FastAPI(title="qronos-svc", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        "http://localhost:5173",
        "http://127.0.0.1:5173",
        "http://localhost:3000",
        "http://127.0.0.1:3000",
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(events.router)
app.include_router(attendance.router)
app.include_router(rotation.router)
app.include_router(professors.router)

@app.get("/health")
async def health():
    return {"status": "ok", "service": "qronos-svc"}

Instrumentator().instrument(app).expose(app)
