import logging

from .actors import PagedFetchActor, TailActor
from .config import EVENTS_PAGE_LIMIT, MAX_PANES, TAIL_LOOKBACK_MS
from .events import ABORT, TAIL_TICK, Release, TailStop, make_inbox, offer, replace_pending
from .models import now_ms
from .state import PaneState, StatusState

logger = logging.getLogger(__name__)


class LaneExhaustedError(RuntimeError):
    pass


class Lane:
    """
    One worker slot: a pane's state plus the two actors that fill it.
    Both actors exist for the life of the pool; a lane is only bound to a
    log group while a pane displays it.
    """

    def __init__(self, index: int, client, status: StatusState,
                 page_size: int = EVENTS_PAGE_LIMIT,
                 lookback_ms: int = TAIL_LOOKBACK_MS, clock=now_ms, wake=None):
        self.index      = index
        self.pane       = PaneState(index)
        self.fetch_q    = make_inbox()
        self.tail_q     = make_inbox()
        self.fetcher    = PagedFetchActor(index, client, self.pane, self.tail_q, status,
                                          page_size=page_size, inbox=self.fetch_q, wake=wake)
        self.tailer     = TailActor(index, client, self.pane, status,
                                    page_size=page_size, lookback_ms=lookback_ms,
                                    clock=clock, inbox=self.tail_q, wake=wake)

    def start(self) -> None:
        self.fetcher.start()
        self.tailer.start()

    def submit(self, command) -> None:
        # Newest fetch command wins over one the actor has not picked up yet.
        replace_pending(self.fetch_q, command)

    def __repr__(self) -> str:
        return f'Lane({self.index})'


class WorkerLanePool:
    """
    MAX_PANES lanes and a free bitmap. allocate() hands out the lowest free
    lane; deallocate() resets its pane and tells both actors to drop any
    tail state. All calls come from the orchestrator thread.
    """

    def __init__(self, client, status: StatusState, size: int = MAX_PANES,
                 page_size: int = EVENTS_PAGE_LIMIT,
                 lookback_ms: int = TAIL_LOOKBACK_MS, clock=now_ms, wake=None):
        self.lanes    = [Lane(i, client, status, page_size, lookback_ms, clock, wake)
                         for i in range(size)]
        self.free     = [True] * size
        self._started = False

    def start(self) -> None:
        if self._started:
            return
        for lane in self.lanes:
            lane.start()
        self._started = True

    # Allocation

    def free_count(self) -> int:
        return sum(self.free)

    def allocated(self) -> list:
        return [lane for lane, free in zip(self.lanes, self.free) if not free]

    def allocate(self) -> Lane:
        for i, free in enumerate(self.free):
            if free:
                self.free[i] = False
                logger.debug('allocated lane %d', i)
                return self.lanes[i]
        raise LaneExhaustedError(f'all {len(self.lanes)} lanes are in use')

    def deallocate(self, lane: Lane) -> None:
        if self.free[lane.index]:
            return
        with lane.pane.lock:
            lane.pane.reset()
            lane.pane.group_name = None
        replace_pending(lane.fetch_q, Release())
        replace_pending(lane.tail_q, TailStop())
        self.free[lane.index] = True
        logger.debug('released lane %d', lane.index)

    # Broadcast

    def broadcast_tail_tick(self) -> int:
        # Ticks are disposable: a busy inbox just misses this one.
        return sum(offer(lane.tail_q, TAIL_TICK) for lane in self.lanes)

    def shutdown(self, timeout: float = 1.0) -> None:
        for lane in self.lanes:
            replace_pending(lane.fetch_q, ABORT)
            replace_pending(lane.tail_q, ABORT)
        if not self._started:
            return
        for lane in self.lanes:
            lane.fetcher.join(timeout)
            lane.tailer.join(timeout)
        logger.debug('lane pool stopped')
