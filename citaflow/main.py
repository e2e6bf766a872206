import asyncio
import os

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from citaflow.config import settings
from citaflow.dependencies import get_clock, get_handoff_cache, get_inbound_router, get_lead_cache
from citaflow.logging_config import get_logger, setup_logging
from citaflow.routers import analytics, tools, webhook

setup_logging(settings.log_level)

app = FastAPI(
    title="Citaflow API",
    description="WhatsApp automation backend: message buffering, human handoff and appointment booking",
    version="0.1.0",
)

cors_env = os.environ.get("CORS_ALLOW_ORIGINS", "*")
cors_origins = [origin.strip() for origin in cors_env.split(",") if origin.strip()]
if not cors_origins:
    cors_origins = ["*"]

app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins,
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(webhook.router)
app.include_router(tools.router)
app.include_router(analytics.router)

sweep_logger = get_logger("ttl_sweeper")
_sweep_task: asyncio.Task | None = None


def _is_sweep_enabled() -> bool:
    if os.environ.get("PYTEST_CURRENT_TEST"):
        return False
    return settings.ttl_sweep_enabled


def sweep_caches() -> int:
    now = get_clock().now()
    return get_handoff_cache().sweep(now) + get_lead_cache().sweep(now)


async def _ttl_sweep_loop() -> None:
    interval_seconds = max(settings.ttl_sweep_interval_seconds, 1.0)
    while True:
        try:
            await asyncio.sleep(interval_seconds)
            sweep_caches()
        except asyncio.CancelledError:
            break
        except Exception as exc:
            sweep_logger.error(
                "TTL sweep failed",
                extra={"context": {"error": str(exc)}},
            )


@app.on_event("startup")
async def start_ttl_sweeper() -> None:
    global _sweep_task
    if not _is_sweep_enabled():
        return
    if _sweep_task is None or _sweep_task.done():
        _sweep_task = asyncio.create_task(_ttl_sweep_loop())
        sweep_logger.info("TTL sweeper started")


@app.on_event("shutdown")
async def stop_background_work() -> None:
    global _sweep_task
    get_inbound_router().shutdown()
    if _sweep_task is None:
        return
    _sweep_task.cancel()
    try:
        await _sweep_task
    except asyncio.CancelledError:
        pass
    _sweep_task = None


@app.get("/health")
async def health():
    return {"status": "ok"}
