from __future__ import annotations
import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from nats.errors import Error as NatsError
from prometheus_fastapi_instrumentator import Instrumentator

from .db import init_db
from .routers import attendance, events, points
from .core.config import get_settings
from .core.errors import DomainError
from .core.redis import ping_redis
from .core.nats import nats_connect, nats_close

settings = get_settings()

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

@asynccontextmanager
async def lifespan(app: FastAPI):
    await init_db()
    # best-effort connect to infra; service still runs if these fail
    if settings.nats_enabled:
        try:
            await nats_connect()
        except (NatsError, OSError) as exc:
            logger.warning("NATS unavailable at startup: %s", exc)
    if not await ping_redis():
        logger.warning("Redis unavailable at startup; scan rate limiting will fail open")
    yield
    try:
        await nats_close()
    except (NatsError, OSError) as exc:
        logger.warning("NATS drain failed: %s", exc)

app = FastAPI(title="cleanshores-attendance-svc", lifespan=lifespan)

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

@app.exception_handler(DomainError)
async def domain_error_handler(request: Request, exc: DomainError):
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

app.include_router(events.router)
app.include_router(attendance.router)
app.include_router(points.router)

@app.get("/health")
async def health():
    return {"status": "ok", "service": "cleanshores-attendance-svc"}

Instrumentator().instrument(app).expose(app)
