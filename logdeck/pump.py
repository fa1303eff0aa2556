import logging
import queue as _queue
import threading
import time

from .config import TICK_INTERVAL, TAIL_INTERVAL
from .events import TICK, InputEvent, offer

logger = logging.getLogger(__name__)

EVENT_QUEUE_SIZE = 256


def make_event_queue() -> _queue.Queue:
    return _queue.Queue(maxsize=EVENT_QUEUE_SIZE)


class InputPump:
    """
    Turns raw keys into InputEvents and emits the two clocks:
      - Tick every `tick_interval` into the orchestrator's event queue
      - `on_tail_tick()` every `tail_interval` (the lane pool's broadcast)

    Keys are fed from the urwid thread with feed(); the pump thread blocks on
    them with a timeout bounded by the next due tick. Keys are never dropped;
    a Tick is dropped when the event queue is full.
    """

    def __init__(self, events: _queue.Queue, tick_interval: float = TICK_INTERVAL,
                 tail_interval: float = TAIL_INTERVAL, on_tail_tick=None,
                 clock=time.monotonic):
        self.events        = events
        self.tick_interval = tick_interval
        self.tail_interval = tail_interval
        self.on_tail_tick  = on_tail_tick
        self._clock        = clock
        self._keys         = _queue.SimpleQueue()
        self._stop         = threading.Event()
        self._thread       = threading.Thread(target=self._run, daemon=True, name='input-pump')

    def start(self) -> None:
        self._thread.start()

    def stop(self) -> None:
        self._stop.set()
        self._keys.put(None)    # unblock get()

    def join(self, timeout: float | None = None) -> None:
        if self._thread.is_alive():
            self._thread.join(timeout)

    def feed(self, key) -> None:
        # urwid hands mouse events over as tuples; only key names go through.
        if isinstance(key, str):
            self._keys.put(key)

    # Internal

    def _run(self) -> None:
        now       = self._clock()
        next_tick = now + self.tick_interval
        next_tail = now + self.tail_interval
        while not self._stop.is_set():
            timeout = max(0.0, min(next_tick, next_tail) - self._clock())
            try:
                key = self._keys.get(timeout=timeout)
            except _queue.Empty:
                key = None
            if self._stop.is_set():
                break
            if key is not None:
                self.events.put(InputEvent(key))

            now = self._clock()
            if now >= next_tail:
                next_tail = now + self.tail_interval
                if self.on_tail_tick is not None:
                    self.on_tail_tick()
            if now >= next_tick:
                next_tick = now + self.tick_interval
                offer(self.events, TICK)
        logger.debug('input pump stopped')
