# main.py
# =========================================================
# Roulette Orchestrator service (FastAPI)
# =========================================================
from __future__ import annotations

import asyncio
import logging
import time

from fastapi import FastAPI, HTTPException

from config import settings
from logging_setup import configure_logging
from services import build_services

configure_logging(settings.LOG_LEVEL)
logger = logging.getLogger(__name__)

API = settings.API_PREFIX
VERSION = "0.1.0"

# =========================================================
# App Init
# =========================================================
app = FastAPI(title="Roulette Orchestrator", version=VERSION)
app.state.services = None
app.state.controller = None
app.state.controller_task = None


@app.on_event("startup")
async def on_startup():
    app.state.services = build_services(settings)
    app.state.controller = app.state.services.controller()

    if not settings.RUN_CONTROLLER:
        logger.info("[startup] RUN_CONTROLLER disabled; serving status only")
        return
    logger.info("[startup] starting round controller task")
    app.state.controller_task = asyncio.create_task(app.state.controller.run_forever())
    app.state.controller_task.add_done_callback(_controller_exited)


def _controller_exited(task: asyncio.Task) -> None:
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        logger.critical("[controller] task died: %s", exc, exc_info=exc)


@app.on_event("shutdown")
async def on_shutdown():
    task = app.state.controller_task
    if task is not None and not task.done():
        app.state.controller.stop()
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
    if app.state.services is not None:
        await app.state.services.close()


# =========================================================
# Health
# =========================================================
@app.get(f"{API}/health")
async def health():
    task = app.state.controller_task
    return {
        "ok": True,
        "ts": time.time(),
        "service": "roulette-orchestrator",
        "version": VERSION,
        "controller_running": task is not None and not task.done(),
    }


@app.get(f"{API}/health/rpc", include_in_schema=False)
async def health_rpc():
    services = app.state.services
    if services is None:
        raise HTTPException(503, "services not started")
    url = services.pool.current()
    try:
        resp = await services.pool.client().get_slot()
        return {"ok": True, "rpc_url": url, "slot": int(resp.value)}
    except Exception as e:
        return {"ok": False, "rpc_url": url, "error": str(e)}


# =========================================================
# Status
# =========================================================
@app.get(f"{API}/status")
async def status():
    controller = app.state.controller
    if controller is None:
        raise HTTPException(503, "controller not started")
    return controller.snapshot()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host=settings.HOST, port=settings.PORT, log_level=settings.LOG_LEVEL.lower())
