"""FastAPI application: health and admin endpoints for the viewing core.

Endpoints:

  GET  /health                               Health check
  GET  /admin/pending                        Live pending requests (phones redacted)
  GET  /admin/appointments/stats             Appointment counts by date bucket and status
  POST /admin/appointments/expire-stale      Cancel stale pending_owner_approval rows

The inbound WhatsApp webhook lives with the conversation router, which calls
``AppointmentService`` directly. The pending-request sweeper (and, when
STALE_PENDING_HOURS > 0, the stale-appointment sweep) run for the lifetime
of the app.
"""

from __future__ import annotations

from dotenv import load_dotenv
load_dotenv()

import asyncio
import logging
import time
from contextlib import asynccontextmanager
from typing import Optional

# Configure root logger early so all viewings.* loggers have a handler when
# run via `uvicorn viewings.app:app`.
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(name)-20s %(levelname)-7s %(message)s",
)

from fastapi import APIRouter, Depends, FastAPI, Query
from fastapi.responses import JSONResponse

from viewings.auth import require_admin_token
from viewings.config import settings
from viewings.errors import StoreError
from viewings.pending_store import redact_pii
from viewings.service import AppointmentService, build_service

log = logging.getLogger("viewings.app")

_START_TIME = time.time()


async def _stale_sweep_loop(service: AppointmentService, hours: float, interval: float) -> None:
    while True:
        await asyncio.sleep(interval)
        try:
            await service.expire_stale_appointments(hours)
        except Exception:
            log.exception("Stale-appointment sweep failed")


def create_app(service: Optional[AppointmentService] = None) -> FastAPI:
    """Create and configure the FastAPI application."""
    if service is None:
        for warning in settings.validate_startup():
            log.warning(warning)
        service = build_service(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        service.pending.start_sweeper(settings.pending_sweep_interval_seconds)
        stale_task = None
        if settings.stale_pending_hours > 0:
            stale_task = asyncio.create_task(_stale_sweep_loop(
                service, settings.stale_pending_hours, settings.pending_sweep_interval_seconds,
            ))
        try:
            yield
        finally:
            if stale_task is not None:
                stale_task.cancel()
            await service.pending.stop_sweeper()

    app = FastAPI(
        title="WhatsApp Viewing Scheduler",
        description="Property-viewing appointment coordination over WhatsApp",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.service = service

    # ── Health check ───────────────────────────────────────────

    @app.get("/health")
    async def health() -> JSONResponse:
        """Lightweight health check: confirms the event loop is responsive."""
        uptime = round(time.time() - _START_TIME, 1)
        return JSONResponse({
            "status": "ok",
            "uptime": uptime,
            "pending_requests": len(service.pending),
        })

    # ── Admin ──────────────────────────────────────────────────

    admin = APIRouter(prefix="/admin", dependencies=[Depends(require_admin_token)])

    @admin.get("/pending")
    async def list_pending() -> JSONResponse:
        """Return a summary of every live pending request."""
        entries = [
            {
                "phone": redact_pii(phone),
                "kind": entry.state.kind,
                "property_id": entry.state.property.id,
                "expires_in": round(service.pending.seconds_left(entry), 1),
            }
            for phone, entry in service.pending.items()
        ]
        return JSONResponse({"pending": entries, "count": len(entries)})

    @admin.get("/appointments/stats")
    async def appointment_stats() -> JSONResponse:
        try:
            stats = await service.statistics()
        except StoreError as exc:
            log.error("Statistics query failed: %s", exc)
            return JSONResponse({"error": "Data store unavailable"}, status_code=502)
        return JSONResponse(stats)

    @admin.post("/appointments/expire-stale")
    async def expire_stale(
        max_age_hours: Optional[float] = Query(default=None, gt=0),
    ) -> JSONResponse:
        """Cancel pending_owner_approval appointments older than ``max_age_hours``."""
        hours = max_age_hours or settings.stale_pending_hours
        if not hours:
            return JSONResponse(
                {"error": "Pass max_age_hours or set STALE_PENDING_HOURS."},
                status_code=400,
            )
        try:
            expired = await service.expire_stale_appointments(hours)
        except StoreError as exc:
            log.error("Stale-appointment sweep failed: %s", exc)
            return JSONResponse({"error": "Data store unavailable"}, status_code=502)
        return JSONResponse({"expired": expired, "max_age_hours": hours})

    app.include_router(admin)
    return app


# ── Module-level app instance for uvicorn ──────────────────────

app = create_app()


if __name__ == "__main__":
    import uvicorn

    log_config = uvicorn.config.LOGGING_CONFIG
    log_config["formatters"]["default"]["fmt"] = (
        "%(asctime)s %(name)-12s %(levelname)-8s %(message)s"
    )

    uvicorn.run(
        "viewings.app:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        log_config=log_config,
    )
