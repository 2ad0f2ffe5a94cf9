"""Main FastAPI application."""

import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from .config import Settings, settings
from .exceptions import NotFoundError, SurePetError, ValidationError
from .schemas import (
    CatWithSchedules,
    DeviceWithMode,
    HealthResponse,
    LockRequest,
    StatusResponse,
    SyncResponse,
)
from .services.curfew_service import CurfewService
from .services.device_control import DeviceControl
from .services.scheduler import Scheduler
from .services.state_manager import StateManager
from .store.database import Database
from .store.models import ScheduleCreate, ScheduleUpdate
from .store.repositories import Cache, CatStore, DeviceStore, EventLog, ScheduleStore
from .surepet.client import SurePetClient
from .surepet.const import LOCK_MODE_NAMES

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@dataclass
class Services:
    """Components shared by the routes."""

    db: Database
    devices: DeviceStore
    cats: CatStore
    schedules: ScheduleStore
    events: EventLog
    cache: Cache
    client: SurePetClient
    state_manager: StateManager
    curfew_service: CurfewService
    device_control: DeviceControl
    scheduler: Scheduler
    start_time: datetime


def build_services(config: Settings) -> Services:
    """Wire the database, API client and services together."""
    db = Database(config.db_path)
    devices = DeviceStore(db)
    cats = CatStore(db)
    schedules = ScheduleStore(db)
    events = EventLog(db)
    cache = Cache(db)

    client = SurePetClient(
        config.surepet_email,
        config.surepet_password,
        cache,
        base_url=config.surepet_api_url,
        device_id=config.surepet_device_id,
        timeout=config.request_timeout,
    )
    curfew_service = CurfewService(client, cats, events)

    return Services(
        db=db,
        devices=devices,
        cats=cats,
        schedules=schedules,
        events=events,
        cache=cache,
        client=client,
        state_manager=StateManager(
            client, devices, cats, events, cache, config.poll_interval_seconds
        ),
        curfew_service=curfew_service,
        device_control=DeviceControl(client, devices, events),
        scheduler=Scheduler(schedules, curfew_service, events, config.timezone),
        start_time=datetime.now(timezone.utc),
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup sync and scheduling; ordered shutdown."""
    services = build_services(settings)
    app.state.services = services

    try:
        await services.state_manager.initial_sync()
    except Exception:
        logger.exception("Initial sync failed, continuing with local state")

    services.scheduler.initialize()
    await services.scheduler.apply_current_state()
    services.state_manager.start_polling()

    logger.info(
        f"Curfew service running on http://{settings.server_host}:{settings.server_port}"
    )

    try:
        yield
    finally:
        logger.info("Shutting down...")
        # Stop everything that writes before closing the client and database
        services.state_manager.stop_polling()
        services.scheduler.stop_all()
        await services.client.close()
        services.db.close()


# Initialize FastAPI app
app = FastAPI(
    title="SurePet Curfew Service",
    description="Scheduled curfews for Sure Petcare cat flaps",
    version="1.0.0",
    lifespan=lifespan,
)


@app.exception_handler(NotFoundError)
async def not_found_handler(request: Request, exc: NotFoundError):
    return JSONResponse(status_code=404, content={"error": str(exc)})


@app.exception_handler(ValidationError)
async def validation_handler(request: Request, exc: ValidationError):
    return JSONResponse(status_code=400, content={"error": str(exc)})


@app.exception_handler(SurePetError)
async def surepet_handler(request: Request, exc: SurePetError):
    logger.error(f"Sure Petcare API error: {exc}")
    return JSONResponse(status_code=502, content={"error": str(exc)})


def get_services(request: Request) -> Services:
    return request.app.state.services


def _cat_with_schedules(services: Services, cat_id: int) -> CatWithSchedules:
    cat = services.cats.get_by_id(cat_id)
    if not cat:
        raise NotFoundError("Cat not found")
    return CatWithSchedules(
        **cat.model_dump(), schedules=services.schedules.get_by_cat_id(cat.id)
    )


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "message": "SurePet Curfew Service",
        "version": "1.0.0",
        "endpoints": {
            "health": "/health",
            "status": "/api/status",
            "cats": "/api/cats",
            "devices": "/api/devices",
            "curfew": "/api/curfew",
            "events": "/api/events",
        },
    }


@app.get("/health", response_model=HealthResponse)
async def health(request: Request):
    """Liveness: last successful poll and active schedule count."""
    services = get_services(request)
    uptime = datetime.now(timezone.utc) - services.start_time
    return HealthResponse(
        uptime=int(uptime.total_seconds()),
        last_poll=services.state_manager.get_last_poll(),
        polling=services.state_manager.polling,
        active_schedules=services.scheduler.active_job_count,
    )


@app.get("/api/status", response_model=StatusResponse)
async def status(request: Request):
    """Full local state."""
    services = get_services(request)
    return StatusResponse(
        cats=[_cat_with_schedules(services, cat.id) for cat in services.cats.get_all()],
        devices=[
            DeviceWithMode(
                **d.model_dump(), lock_mode_name=LOCK_MODE_NAMES.get(d.lock_mode, "unknown")
            )
            for d in services.devices.get_all()
        ],
        household_id=services.state_manager.get_household_id(),
        last_poll=services.state_manager.get_last_poll(),
        active_schedules=services.scheduler.active_job_count,
    )


@app.post("/api/sync", response_model=SyncResponse)
async def sync(request: Request):
    """Poll the cloud now."""
    logger.info("Manual sync requested")
    await get_services(request).state_manager.sync()
    return SyncResponse(timestamp=datetime.now(timezone.utc))


@app.get("/api/cats", response_model=list[CatWithSchedules])
async def list_cats(request: Request):
    services = get_services(request)
    return [_cat_with_schedules(services, cat.id) for cat in services.cats.get_all()]


@app.get("/api/cats/{cat_id}", response_model=CatWithSchedules)
async def get_cat(cat_id: int, request: Request):
    return _cat_with_schedules(get_services(request), cat_id)


@app.get("/api/cats/{cat_id}/history")
async def cat_history(cat_id: int, request: Request, limit: int = 50):
    services = get_services(request)
    if not services.cats.get_by_id(cat_id):
        raise NotFoundError("Cat not found")
    return services.events.get_by_cat_id(cat_id, limit)


@app.post("/api/cats/{cat_id}/curfew/activate")
async def activate_curfew(cat_id: int, request: Request):
    """Manually put a cat on indoor only."""
    if not await get_services(request).curfew_service.activate(cat_id):
        return JSONResponse(status_code=400, content={"error": "Failed to activate curfew"})
    return {"status": "curfew_activated", "cat_id": cat_id}


@app.post("/api/cats/{cat_id}/curfew/deactivate")
async def deactivate_curfew(cat_id: int, request: Request):
    """Manually give a cat full access."""
    if not await get_services(request).curfew_service.deactivate(cat_id):
        return JSONResponse(status_code=400, content={"error": "Failed to deactivate curfew"})
    return {"status": "curfew_deactivated", "cat_id": cat_id}


@app.get("/api/devices", response_model=list[DeviceWithMode])
async def list_devices(request: Request):
    return [
        DeviceWithMode(**d.model_dump(), lock_mode_name=LOCK_MODE_NAMES.get(d.lock_mode, "unknown"))
        for d in get_services(request).devices.get_all()
    ]


@app.post("/api/devices/{device_id}/lock")
async def lock_device(device_id: int, body: LockRequest, request: Request):
    """Set a flap's whole-device lock mode."""
    lock_mode = await get_services(request).device_control.set_lock_mode(device_id, body.mode)
    return {"status": "ok", "device_id": device_id, "mode": body.mode, "lock_mode": int(lock_mode)}


@app.get("/api/curfew")
async def list_schedules(request: Request):
    return get_services(request).schedules.get_all()


@app.post("/api/curfew", status_code=201)
async def create_schedule(body: ScheduleCreate, request: Request):
    """Create a schedule and install its jobs."""
    services = get_services(request)
    if not services.cats.get_by_id(body.cat_id):
        raise NotFoundError("Cat not found")

    schedule = services.schedules.create(body)
    services.scheduler.create_jobs(schedule.id)
    return schedule


@app.put("/api/curfew/{schedule_id}")
async def update_schedule(schedule_id: int, body: ScheduleUpdate, request: Request):
    services = get_services(request)
    schedule = services.schedules.update(schedule_id, body)
    if not schedule:
        raise NotFoundError("Schedule not found")

    services.scheduler.create_jobs(schedule_id)
    return schedule


@app.delete("/api/curfew/{schedule_id}")
async def delete_schedule(schedule_id: int, request: Request):
    services = get_services(request)
    services.scheduler.stop_jobs(schedule_id)
    if not services.schedules.delete(schedule_id):
        raise NotFoundError("Schedule not found")
    return {"status": "deleted", "id": schedule_id}


@app.post("/api/curfew/{schedule_id}/toggle")
async def toggle_schedule(schedule_id: int, request: Request):
    """Enable or disable a schedule."""
    services = get_services(request)
    schedule = services.schedules.toggle(schedule_id)
    if not schedule:
        raise NotFoundError("Schedule not found")

    # create_jobs removes the pair for a disabled schedule
    services.scheduler.create_jobs(schedule_id)
    return schedule


@app.get("/api/events")
async def list_events(
    request: Request,
    limit: int = 100,
    offset: int = 0,
    type: Optional[str] = None,
    cat_id: Optional[int] = None,
):
    """Event log, newest first."""
    services = get_services(request)
    return {
        "events": services.events.get_all(limit, offset, type, cat_id),
        "total": services.events.count(type, cat_id),
        "limit": limit,
        "offset": offset,
    }


def main():
    import uvicorn

    uvicorn.run(
        app,
        host=settings.server_host,
        port=settings.server_port,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    main()
