import logging
import math
from typing import Callable, List, Tuple

logger = logging.getLogger(__name__)

TickHandler = Callable[[int], None]

MAX_TIME_SCALE = 5.0


class SimulationClock:
    """
    Converts accumulated time into whole simulation ticks.

    Ticks are pushed synchronously to subscribers in registration order. A
    handler that raises is logged and skipped so the remaining subscribers
    still see the tick. Subscribing or unsubscribing while a tick is being
    delivered is deferred until delivery finishes.
    """

    def __init__(self, seconds_per_tick: float = 4.1):
        self._tick_period = math.inf
        self._accumulator = 0.0
        self._handlers: List[TickHandler] = []
        self._pending: List[Tuple[str, TickHandler]] = []
        self._emitting = False
        self._running = False
        self._paused = False
        self._time_scale = 1.0
        self.elapsed_ticks = 0
        self.configure(seconds_per_tick)

    # --- Lifecycle ---
    def start(self):
        if not self._running:
            logger.info(f"Simulation clock started (tick period {self._tick_period}s).")
        self._running = True

    def stop(self):
        if self._running:
            logger.info(f"Simulation clock stopped after {self.elapsed_ticks} ticks.")
        self._running = False

    @property
    def is_running(self) -> bool:
        return self._running

    # --- Configuration ---
    def configure(self, seconds_per_tick: float):
        """
        Sets the tick period. A non-positive period disables ticking.
        The pending accumulator is kept as-is and is compared against the
        new period on the next advance.
        """
        try:
            period = float(seconds_per_tick)
        except (TypeError, ValueError):
            period = 0.0
        if period <= 0 or math.isnan(period):
            logger.warning(f"Non-positive tick period {seconds_per_tick!r}; ticking is disabled.")
            self._tick_period = math.inf
        else:
            self._tick_period = period

    @property
    def tick_period(self) -> float:
        return self._tick_period

    @property
    def accumulated_seconds(self) -> float:
        return self._accumulator

    @property
    def time_scale(self) -> float:
        return self._time_scale

    @time_scale.setter
    def time_scale(self, value: float):
        self._time_scale = min(max(float(value), 0.0), MAX_TIME_SCALE)

    # --- Pause ---
    def pause(self):
        self._paused = True

    def resume(self):
        self._paused = False

    @property
    def is_paused(self) -> bool:
        return self._paused

    # --- Subscribers ---
    def subscribe(self, handler: TickHandler):
        if self._emitting:
            self._pending.append(("subscribe", handler))
            return
        if handler not in self._handlers:
            self._handlers.append(handler)

    def unsubscribe(self, handler: TickHandler):
        if self._emitting:
            self._pending.append(("unsubscribe", handler))
            return
        if handler in self._handlers:
            self._handlers.remove(handler)

    def _apply_pending(self):
        pending, self._pending = self._pending, []
        for action, handler in pending:
            if action == "subscribe":
                self.subscribe(handler)
            else:
                self.unsubscribe(handler)

    # --- Stepping ---
    def advance(self, delta_seconds: float) -> int:
        """
        Accumulates delta_seconds (scaled by time_scale) and emits the number
        of whole ticks that elapsed. Returns the emitted tick count, 0 if none.
        """
        if not self._running or self._paused:
            return 0
        if math.isinf(self._tick_period):
            return 0

        try:
            dt = float(delta_seconds) * self._time_scale
        except (TypeError, ValueError):
            logger.warning(f"Ignoring non-numeric clock delta {delta_seconds!r}.")
            return 0
        if dt <= 0 or math.isnan(dt):
            return 0

        self._accumulator += dt
        if self._accumulator < self._tick_period:
            return 0

        tick_count = int(math.floor(self._accumulator / self._tick_period))
        if tick_count <= 0:
            return 0

        self._accumulator -= tick_count * self._tick_period
        if self._accumulator < 0:
            self._accumulator = 0.0
        self.elapsed_ticks += tick_count
        self._emit(tick_count)
        return tick_count

    def _emit(self, tick_count: int):
        self._emitting = True
        try:
            for handler in list(self._handlers):
                try:
                    handler(tick_count)
                except Exception as e:
                    logger.error(f"Tick handler {handler!r} failed on {tick_count} tick(s): {e}", exc_info=True)
        finally:
            self._emitting = False
            self._apply_pending()
