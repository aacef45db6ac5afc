# main.py

import logging
from typing import Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

import config
from economy_handlers import economy_router
from simulation.engine import EconomyEngine
from tasks import ClockDriver, advance_simulation_task

# --- GLOBAL LOGGING CONFIGURATION ---
logging.basicConfig(
    level=getattr(logging, config.LOG_LEVEL, logging.INFO),
    format='%(asctime)s - %(levelname)s - %(name)s - %(message)s'
)
logger = logging.getLogger(__name__)


def create_app(engine: Optional[EconomyEngine] = None, run_scheduler: bool = True) -> FastAPI:
    """Create the API around an economy engine, optionally driving its clock on a schedule."""
    app = FastAPI(title="Planet Economy API", description="Planetary economy simulation service", version="1.0.0")

    # Configure CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    if engine is None:
        engine = EconomyEngine(config_dir=config.ECONOMY_CONFIG_DIR)
        if config.AUTO_REGISTER_PLANETS:
            engine.register_all_planets()
    app.state.engine = engine
    app.state.scheduler = None

    # STARTUP EVENT: starts the clock and the job that feeds it wall-clock time
    @app.on_event("startup")
    async def startup_event():
        engine.start()
        if not run_scheduler:
            return
        try:
            driver = ClockDriver(engine)
            scheduler = AsyncIOScheduler()
            scheduler.add_job(
                advance_simulation_task, 'interval',
                seconds=config.CLOCK_DRIVER_INTERVAL_SECONDS, args=[driver],
                max_instances=1, coalesce=True
            )
            scheduler.start()
            app.state.scheduler = scheduler
            logger.info(f"Clock driver scheduled every {config.CLOCK_DRIVER_INTERVAL_SECONDS}s.")
        except Exception as e:
            logger.error(f"Failed to start clock driver: {e}", exc_info=True)

    # SHUTDOWN EVENT: stops the scheduler before the clock
    @app.on_event("shutdown")
    async def shutdown_event():
        scheduler = app.state.scheduler
        if scheduler is not None:
            scheduler.shutdown(wait=False)
            app.state.scheduler = None
        engine.stop()
        logger.info("Simulation stopped.")

    @app.middleware("http")
    async def engine_middleware(request: Request, call_next):
        request.state.engine = app.state.engine
        response = await call_next(request)
        return response

    app.include_router(economy_router, tags=["economy"])

    @app.get('/status')
    async def status_check(request: Request):
        client_host = request.client.host if request and request.client else 'N/A'
        logger.info(f"IP: {client_host} - Received Status Check")
        return {
            "status": "online",
            "clock_running": engine.clock.is_running,
            "planets": len(engine.planets()),
        }

    @app.get('/')
    async def base():
        return {"status": "online"}

    return app


app = create_app()

if __name__ == '__main__':
    import uvicorn
    uvicorn.run("main:app", host="0.0.0.0", port=9601, reload=True, log_level=config.LOG_LEVEL.lower())
