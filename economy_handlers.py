# economy_handlers.py

import dataclasses
import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, HTTPException, Request, status
from pydantic import BaseModel, Field

from simulation.data_models import PlanetHandle
from simulation.engine import EconomyEngine
from tasks import reload_constants_task

economy_router = APIRouter()
logger = logging.getLogger(__name__)

# --- Request Models ---
class AdvanceRequest(BaseModel):
    delta_seconds: float = Field(..., ge=0)

class TimeScaleRequest(BaseModel):
    time_scale: float = Field(..., ge=0)

class ReloadRequest(BaseModel):
    request_id: Optional[str] = None


def _engine(request: Request) -> EconomyEngine:
    return request.state.engine

def _handle_or_404(engine: EconomyEngine, handle_id: int) -> PlanetHandle:
    try:
        return engine.get_handle(handle_id)
    except KeyError:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"No planet registered under handle {handle_id}."
        )

def _clock_state(engine: EconomyEngine) -> Dict[str, Any]:
    clock = engine.clock
    return {
        "running": clock.is_running,
        "paused": clock.is_paused,
        "time_scale": clock.time_scale,
        "tick_period": clock.tick_period if clock.tick_period != float("inf") else None,
        "elapsed_ticks": clock.elapsed_ticks,
        "constants_version": engine.get_constants().version,
    }

# --- Planets ---
@economy_router.get('/planets')
async def list_planets(request: Request):
    engine = _engine(request)
    return {"planets": [dataclasses.asdict(h) for h in engine.planets()]}

@economy_router.post('/planets/{planet_id}', status_code=status.HTTP_201_CREATED)
async def register_planet(planet_id: str, request: Request):
    engine = _engine(request)
    if planet_id not in engine.static_data.planets:
        logger.warning(f"Registering planet '{planet_id}' without a static record; it will idle.")
    handle = engine.register_planet(planet_id)
    return dataclasses.asdict(handle)

@economy_router.delete('/planets/{handle_id}')
async def unregister_planet(handle_id: int, request: Request):
    engine = _engine(request)
    handle = _handle_or_404(engine, handle_id)
    engine.unregister_planet(handle)
    return {"success": True, "message": f"Planet '{handle.planet_id}' unregistered."}

@economy_router.get('/planets/{handle_id}/resources')
async def get_resources(handle_id: int, request: Request):
    engine = _engine(request)
    handle = _handle_or_404(engine, handle_id)
    resources = engine.get_resource_snapshot(handle)
    return {"planet_id": handle.planet_id, "resources": [dataclasses.asdict(r) for r in resources]}

@economy_router.get('/planets/{handle_id}/slots')
async def get_slots(handle_id: int, request: Request):
    engine = _engine(request)
    handle = _handle_or_404(engine, handle_id)
    slots = engine.get_slot_snapshot(handle)
    return {"planet_id": handle.planet_id, "slots": [dataclasses.asdict(s) for s in slots]}

# --- Clock ---
@economy_router.get('/clock')
async def get_clock(request: Request):
    return _clock_state(_engine(request))

@economy_router.post('/clock/advance')
async def advance_clock(payload: AdvanceRequest, request: Request):
    engine = _engine(request)
    ticks = engine.advance_clock(payload.delta_seconds)
    return {"ticks": ticks, **_clock_state(engine)}

@economy_router.post('/clock/time_scale')
async def set_time_scale(payload: TimeScaleRequest, request: Request):
    engine = _engine(request)
    engine.set_time_scale(payload.time_scale)
    return _clock_state(engine)

@economy_router.post('/clock/pause')
async def pause_clock(request: Request):
    engine = _engine(request)
    engine.pause()
    return _clock_state(engine)

@economy_router.post('/clock/resume')
async def resume_clock(request: Request):
    engine = _engine(request)
    engine.resume()
    return _clock_state(engine)

# --- Market ---
@economy_router.get('/market/prices')
async def get_galactic_prices(request: Request):
    engine = _engine(request)
    return {"prices": [dataclasses.asdict(e) for e in engine.galactic_snapshot()]}

@economy_router.get('/market/prices/{resource_id}')
async def get_galactic_price(resource_id: str, request: Request):
    engine = _engine(request)
    if resource_id not in engine.static_data.resources:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Unknown resource '{resource_id}'."
        )
    return {"resource_id": resource_id, "price": engine.get_galactic_price(resource_id)}

# --- Reloads ---
@economy_router.post('/constants/reload')
async def reload_constants(request: Request, payload: Optional[ReloadRequest] = None):
    engine = _engine(request)
    request_id = payload.request_id if payload else None
    reloaded = reload_constants_task(engine, request_id)
    constants = engine.get_constants()
    return {
        "success": True,
        "reloaded": reloaded,
        "version": constants.version,
        "seconds_per_tick": constants.seconds_per_tick,
    }

@economy_router.post('/catalogs/reload')
async def reload_catalogs(request: Request):
    engine = _engine(request)
    try:
        static_data = engine.reload_catalogs()
    except Exception as e:
        logger.error(f"Failed to reload catalogs: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Catalog reload failed.")
    return {
        "success": True,
        "resources": len(static_data.resources),
        "recipes": len(static_data.recipes),
        "planets": len(static_data.planets),
    }
