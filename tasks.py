# tasks.py
import logging
import time
from typing import Optional

from cachetools import TTLCache

import config
from simulation.engine import EconomyEngine

logger = logging.getLogger(__name__)

processed_reload_ids_cache = TTLCache(maxsize=1000, ttl=config.RELOAD_DEDUPE_SECONDS)


class ClockDriver:
    """
    Feeds wall-clock time into the engine. The scheduler calls `step` on a
    fixed interval; the measured delta (not the nominal interval) is passed to
    the clock so a late job does not lose time.
    """

    def __init__(self, engine: EconomyEngine):
        self.engine = engine
        self._last_step: Optional[float] = None

    def reset(self):
        self._last_step = None

    def step(self, now: Optional[float] = None) -> int:
        now = time.monotonic() if now is None else now
        if self._last_step is None:
            self._last_step = now
            return 0
        delta = now - self._last_step
        self._last_step = now
        if delta <= 0:
            return 0
        return self.engine.advance_clock(delta)


async def advance_simulation_task(driver: ClockDriver):
    """Scheduled job that advances the simulation by the elapsed wall-clock time."""
    task_start_time = time.perf_counter()
    try:
        ticks = driver.step()
    except Exception as e:
        logger.error(f"Error advancing simulation clock: {e}", exc_info=True)
        return
    if ticks:
        task_end_time = time.perf_counter()
        logger.info(
            f"Simulated {ticks} tick(s) (elapsed {driver.engine.clock.elapsed_ticks}) "
            f"in {task_end_time - task_start_time:.4f} seconds."
        )


def reload_constants_task(engine: EconomyEngine, request_id: Optional[str] = None) -> bool:
    """
    Reloads the simulation constants once per request id.
    File watchers tend to fire several events per save, so repeated ids inside
    the dedupe window are acknowledged without reloading. Returns True if a
    reload happened.
    """
    if request_id:
        if request_id in processed_reload_ids_cache:
            logger.info(f"Reload request '{request_id}' already processed, skipping.")
            return False
        processed_reload_ids_cache[request_id] = True

    constants = engine.reload_constants()
    logger.info(f"Reload request '{request_id or 'N/A'}' applied constants version {constants.version}.")
    return True
