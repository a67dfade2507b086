# pocketpet/main.py
from fastapi import FastAPI
from pocketpet.api.v1.endpoints import pet_interactions
from pocketpet.core.concurrency import StoreGate
from pocketpet.core.settings import settings
from pocketpet.core.logging_config import setup_logging
from pocketpet.services.machine import ActionMachine, SideEffect
from pocketpet.services.persistence import RosterPersistence
from pocketpet.services.roster_store import RosterStore
from pocketpet.services.storage import build_storage_backend
import asyncio
import structlog

setup_logging(log_level_str=settings.LOG_LEVEL)
log = structlog.get_logger(__name__)

app = FastAPI(title=settings.PROJECT_NAME)

TICK_INTERVAL_SECONDS = settings.GLOBAL_TICK_INTERVAL_SECONDS
_keep_ticking = True


def _announce(effect, event, pet):
    # Stand-in for the toast a UI would show once per stage-up or death.
    if effect == SideEffect.STAGE_UP:
        log.info("Pet advanced to a new stage.", pet_id=pet.id, name=pet.name, stage=pet.stage.value)
    elif effect == SideEffect.DIED:
        log.info("Pet has died.", pet_id=pet.id, name=pet.name)


async def periodic_global_tick():
    log.info("Background tick task started.", interval_seconds=TICK_INTERVAL_SECONDS)
    while _keep_ticking:
        try:
            await app.state.gate.run(app.state.machine.tick)
        except Exception as e:
            # A failed tick (e.g. storage briefly unavailable) is retried on the next one.
            log.error("Background task: Unhandled error during pet tick.", error=str(e), exc_info=True)

        try:
            await asyncio.sleep(TICK_INTERVAL_SECONDS)
        except asyncio.CancelledError:
            log.info("Background tick task cancelled.")
            break
    log.info("Background tick task stopped.")


@app.on_event("startup")
async def startup_event():
    global _keep_ticking
    log.info("Application startup: Opening storage and initializing background tasks.",
             backend=settings.STORAGE_BACKEND)
    _keep_ticking = True
    app.state.gate = StoreGate()
    app.state.backend = await app.state.gate.run(build_storage_backend, settings)
    app.state.store = await app.state.gate.run(RosterStore, RosterPersistence(app.state.backend))
    app.state.machine = ActionMachine(app.state.store)
    app.state.machine.subscribe(_announce)
    app.state.tick_task = asyncio.create_task(periodic_global_tick())


@app.on_event("shutdown")
async def shutdown_event():
    global _keep_ticking
    _keep_ticking = False
    log.info("Application shutdown: Signalling background task to stop.")

    if getattr(app.state, "tick_task", None):
        try:
            await asyncio.wait_for(app.state.tick_task, timeout=TICK_INTERVAL_SECONDS + 2)
            log.info("Background tick task finished.")
        except asyncio.TimeoutError:
            log.warning("Background tick task did not finish in time, cancelling.")
            app.state.tick_task.cancel()

    if getattr(app.state, "backend", None):
        await app.state.gate.run(app.state.backend.close)
    log.info("Application shutdown complete.")


app.include_router(pet_interactions.router, prefix=settings.API_V1_STR, tags=["pet"])


@app.get("/")
async def root():
    log.info("Root endpoint accessed.")
    return {"message": f"Welcome to the {settings.PROJECT_NAME} API!"}
