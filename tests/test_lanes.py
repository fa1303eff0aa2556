import threading
import time

import pytest
from conftest import FakeFetchClient, make_events, wait_for

from logdeck.events import ABORT, TAIL_TICK, FetchLogEvents, Release, TailStop, offer
from logdeck.lanes import LaneExhaustedError, WorkerLanePool
from logdeck.models import SearchCondition, SearchMode
from logdeck.state import StatusState

HOUR = SearchCondition('', SearchMode.ONE_HOUR)


@pytest.fixture
def pool():
    return WorkerLanePool(FakeFetchClient(), StatusState())


def test_lowest_free_lane_wins(pool):
    assert [pool.allocate().index for _ in range(3)] == [0, 1, 2]
    pool.deallocate(pool.lanes[1])
    assert pool.allocate().index == 1
    assert pool.allocate().index == 3


def test_allocate_then_deallocate_restores_the_bitmap(pool):
    first = pool.allocate()
    before = list(pool.free)
    lane = pool.allocate()
    pool.deallocate(lane)
    assert pool.free == before
    pool.deallocate(first)
    assert pool.free == [True] * 4
    assert pool.free_count() == 4


def test_fifth_allocation_fails(pool):
    for _ in range(4):
        pool.allocate()
    assert pool.free_count() == 0
    assert len(pool.allocated()) == 4
    with pytest.raises(LaneExhaustedError):
        pool.allocate()


def test_deallocate_resets_pane_and_signals_both_actors(pool):
    lane = pool.allocate()
    with lane.pane.lock:
        lane.pane.group_name = 'g'
        lane.pane.merge(make_events(0, 3))
    lane.submit(FetchLogEvents('g'))         # not yet picked up

    pool.deallocate(lane)

    assert len(lane.pane.events) == 0
    assert lane.pane.group_name is None
    assert isinstance(lane.fetch_q.get_nowait(), Release)
    assert isinstance(lane.tail_q.get_nowait(), TailStop)


def test_deallocating_a_free_lane_is_a_no_op(pool):
    pool.deallocate(pool.lanes[2])
    assert pool.lanes[2].fetch_q.empty()
    assert pool.free_count() == 4


def test_submit_replaces_a_pending_command(pool):
    lane = pool.allocate()
    lane.submit(FetchLogEvents('old'))
    lane.submit(FetchLogEvents('new'))
    assert lane.fetch_q.get_nowait().group == 'new'


def test_tail_tick_broadcast_drops_on_full_inbox(pool):
    assert pool.broadcast_tail_tick() == 4
    assert pool.broadcast_tail_tick() == 0


def test_shutdown_aborts_every_actor(pool):
    pool.start()
    pool.shutdown(timeout=1.0)
    for lane in pool.lanes:
        assert not lane.fetcher.is_alive()
        assert not lane.tailer.is_alive()


def test_shutdown_before_start_leaves_abort_queued(pool):
    pool.shutdown()
    assert pool.lanes[0].fetch_q.get_nowait() is ABORT
    assert pool.lanes[0].tail_q.get_nowait() is ABORT


# Running lanes

def _bind(lane, group):
    # what Pane.start() does before its first submit
    with lane.pane.lock:
        lane.pane.group_name = group


@pytest.fixture
def gated():
    client      = FakeFetchClient(event_pages=[([], None)] * 10)
    client.gate = threading.Event()
    pool        = WorkerLanePool(client, StatusState())
    pool.start()
    yield client, pool
    client.gate.set()
    pool.shutdown()


def test_tail_ticks_during_a_paged_fetch_make_no_call(gated):
    client, pool = gated
    client.event_pages = [(make_events(0, 3), None)]
    lane = pool.allocate()
    _bind(lane, 'g')
    lane.submit(FetchLogEvents('g', None, SearchCondition(), reset=True))
    assert wait_for(lambda: lane.tailer.tail_mode)

    lane.submit(FetchLogEvents('g', None, HOUR, reset=True))
    assert wait_for(lambda: client.event_calls)          # held open by the gate
    for _ in range(5):
        pool.broadcast_tail_tick()
    assert not wait_for(lambda: len(client.event_calls) > 1, timeout=0.3)

    client.gate.set()
    assert wait_for(lambda: lane.pane.events.ids() == ['0', '1', '2'])
    assert wait_for(lambda: not lane.pane.fetching)
    assert len(client.event_calls) == 1


def test_released_lane_ignores_a_late_tail_hand_off(gated):
    client, pool = gated
    lane = pool.allocate()
    _bind(lane, 'A')
    lane.submit(FetchLogEvents('A', None, SearchCondition(), reset=True))
    assert wait_for(lambda: lane.tailer.tail_mode)
    assert offer(lane.tail_q, TAIL_TICK)
    assert wait_for(lambda: len(client.event_calls) == 1)   # tick in flight
    assert offer(lane.tail_q, TAIL_TICK)                    # tail inbox full

    # the fetch actor now blocks handing a new TailStart to the tail actor
    lane.submit(FetchLogEvents('A', None, SearchCondition('x'), reset=True))
    assert wait_for(lambda: lane.fetch_q.empty())
    pool.deallocate(lane)
    client.gate.set()

    assert wait_for(lambda: not lane.tailer.tail_mode)
    for _ in range(3):
        offer(lane.tail_q, TAIL_TICK)
        time.sleep(0.05)
    assert len(client.event_calls) == 1
    assert pool.free[lane.index]
    assert not lane.tailer.tail_mode
    assert lane.pane.group_name is None


def test_lane_recovers_from_an_unexpected_error(gated):
    client, pool = gated
    client.gate.set()
    client.event_pages = [RuntimeError('boom'), (make_events(0, 2), None)]
    lane = pool.allocate()
    _bind(lane, 'A')
    lane.submit(FetchLogEvents('A', None, SearchCondition(), reset=True))
    assert wait_for(lambda: lane.tailer.tail_mode)
    assert offer(lane.tail_q, TAIL_TICK)
    assert wait_for(lambda: len(client.event_calls) == 1 and not lane.pane.fetching)

    pool.deallocate(lane)
    lane = pool.allocate()
    _bind(lane, 'B')
    lane.submit(FetchLogEvents('B', None, HOUR, reset=True))

    assert wait_for(lambda: lane.pane.events.ids() == ['0', '1'])
    assert client.event_calls[1]['group'] == 'B'
    assert lane.tailer.is_alive()
    assert lane.fetcher.is_alive()
