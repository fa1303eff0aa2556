import queue
import threading

import pytest
from conftest import FakeFetchClient, make_events, make_groups, wait_for

from logdeck.actors import LogGroupActor, PagedFetchActor, TailActor
from logdeck.client import FetchError
from logdeck.events import (ABORT, TAIL_TICK, FetchLogEvents, FetchLogGroups, Release,
                            TailStart, TailStop, make_inbox, offer)
from logdeck.models import SearchCondition, SearchMode
from logdeck.state import PaneState, SidebarState, StatusState

NOW      = 1_700_000_000_000
LOOKBACK = 60_000
HOUR     = SearchCondition('ERROR', SearchMode.ONE_HOUR)


@pytest.fixture
def pane():
    # bound to group "g", as Pane.start() leaves it
    state = PaneState(0)
    state.group_name = 'g'
    return state


@pytest.fixture
def status():
    return StatusState()


def _fetcher(client, pane, status, **kw):
    return PagedFetchActor(0, client, pane, make_inbox(), status, page_size=25, **kw)


def _tailer(client, pane, status, **kw):
    return TailActor(0, client, pane, status, page_size=25, lookback_ms=LOOKBACK,
                     clock=lambda: NOW, **kw)


# Paged fetch

def test_paged_fetch_merges_page_and_cursor(pane, status):
    client = FakeFetchClient(event_pages=[(make_events(0, 3), 'tok')])
    actor  = _fetcher(client, pane, status)

    actor.handle(FetchLogEvents('g', None, HOUR, reset=True))

    assert pane.events.ids() == ['0', '1', '2', 'more']
    assert pane.pagination_cursor == 'tok'
    assert pane.group_name == 'g'
    assert not pane.fetching
    call = client.event_calls[0]
    assert call['query'] == 'ERROR'
    assert call['limit'] == 25
    assert call['time_range'][0] is not None and call['time_range'][1] is None


def test_next_page_continues_the_log(pane, status):
    client = FakeFetchClient(event_pages=[(make_events(0, 3), 'tok'),
                                          (make_events(2, 5), None)])
    actor  = _fetcher(client, pane, status)
    actor.handle(FetchLogEvents('g', None, HOUR, reset=True))
    actor.handle(FetchLogEvents('g', 'tok', HOUR, reset=False))

    assert pane.events.ids() == ['0', '1', '2', '3', '4']
    assert pane.pagination_cursor is None
    assert client.event_calls[1]['cursor'] == 'tok'


def test_reset_fetch_discards_previous_rows(pane, status):
    client = FakeFetchClient(event_pages=[(make_events(0, 3), None),
                                          (make_events(10, 12), None)])
    actor  = _fetcher(client, pane, status)
    actor.handle(FetchLogEvents('g', None, HOUR, reset=True))
    actor.handle(FetchLogEvents('g', None, HOUR, reset=True))
    assert pane.events.ids() == ['10', '11']


def test_tail_condition_is_forwarded_not_fetched(pane, status):
    client = FakeFetchClient()
    actor  = _fetcher(client, pane, status)

    actor.handle(FetchLogEvents('g', None, SearchCondition(), reset=True))

    assert client.event_calls == []
    forwarded = actor.tail_inbox.get_nowait()
    assert isinstance(forwarded, TailStart)
    assert forwarded.group == 'g'
    assert actor.is_tail


def test_leaving_tail_mode_stops_the_tail_first(pane, status):
    client = FakeFetchClient(event_pages=[(make_events(0, 1), None)])
    actor  = _fetcher(client, pane, status)
    actor.handle(FetchLogEvents('g', None, SearchCondition(), reset=True))
    actor.tail_inbox.get_nowait()

    actor.handle(FetchLogEvents('g', None, HOUR, reset=True))

    assert isinstance(actor.tail_inbox.get_nowait(), TailStop)
    assert not actor.is_tail
    assert pane.events.ids() == ['0']


def test_release_forgets_tail_mode(pane, status):
    actor = _fetcher(FakeFetchClient(), pane, status)
    actor.handle(FetchLogEvents('g', None, SearchCondition()))
    actor.tail_inbox.get_nowait()
    actor.handle(Release())
    assert not actor.is_tail


def test_fetch_error_keeps_last_good_state(pane, status):
    client = FakeFetchClient(event_pages=[(make_events(0, 2), 'tok'),
                                          FetchError('throttled')])
    actor  = _fetcher(client, pane, status)
    actor.handle(FetchLogEvents('g', None, HOUR, reset=True))
    actor.handle(FetchLogEvents('g', 'tok', HOUR))

    assert pane.events.ids() == ['0', '1', 'more']
    assert pane.pagination_cursor == 'tok'
    assert not pane.fetching
    assert 'throttled' in status.get()


def test_unexpected_error_leaves_the_pane_idle(pane, status):
    client = FakeFetchClient(event_pages=[KeyError('eventId')])
    actor  = _fetcher(client, pane, status)
    with pytest.raises(KeyError):
        actor.handle(FetchLogEvents('g', None, HOUR))
    assert not pane.fetching


def test_fetch_actor_keeps_serving_after_an_unexpected_error(pane, status):
    client = FakeFetchClient(event_pages=[KeyError('eventId'), (make_events(0, 2), None)])
    actor  = _fetcher(client, pane, status)
    actor.start()
    try:
        actor.inbox.put(FetchLogEvents('g', None, HOUR, reset=True))
        assert wait_for(lambda: len(client.event_calls) == 1 and not pane.fetching)
        actor.inbox.put(FetchLogEvents('g', None, HOUR, reset=True))
        assert wait_for(lambda: pane.events.ids() == ['0', '1'])
        assert actor.is_alive()
    finally:
        actor.inbox.put(ABORT)
        actor.join(1.0)


def test_fetch_for_an_unbound_group_is_dropped(pane, status):
    client = FakeFetchClient()
    actor  = _fetcher(client, pane, status)
    with pane.lock:
        pane.group_name = None               # lane released after the submit

    actor.handle(FetchLogEvents('g', None, HOUR, reset=True))
    actor.handle(FetchLogEvents('g', None, SearchCondition(), reset=True))

    assert client.event_calls == []
    assert actor.tail_inbox.empty()
    assert pane.group_name is None


def test_tail_hand_off_carries_the_pane_generation(pane, status):
    actor = _fetcher(FakeFetchClient(), pane, status)
    actor.handle(FetchLogEvents('g', None, SearchCondition(), reset=True))
    assert actor.tail_inbox.get_nowait().generation == pane.generation


def test_late_page_is_dropped_after_reset(pane, status):
    client      = FakeFetchClient(event_pages=[(make_events(0, 3), None)])
    client.gate = threading.Event()
    wakes       = []
    actor       = _fetcher(client, pane, status, wake=lambda: wakes.append(1))
    actor.start()
    try:
        actor.inbox.put(FetchLogEvents('g', None, HOUR, reset=True))
        assert wait_for(lambda: client.event_calls)
        with pane.lock:
            pane.reset()                     # lane released while the call is out
        client.gate.set()
        assert wait_for(lambda: len(wakes) >= 2)
        assert len(pane.events) == 0
        assert not pane.fetching
    finally:
        client.gate.set()
        actor.inbox.put(ABORT)
        actor.join(1.0)
    assert not actor.is_alive()


# Tail

def test_tail_start_resets_and_binds_the_pane(pane, status):
    pane.merge(make_events(0, 3))
    actor = _tailer(FakeFetchClient(), pane, status)

    actor.handle(TailStart('g', 'c0', SearchCondition('WARN')))

    assert actor.tail_mode
    assert len(pane.events) == 0
    assert pane.group_name == 'g'
    assert pane.pagination_cursor == 'c0'
    assert actor.condition.query == 'WARN'


def test_tail_tick_fetches_and_follows_the_end(pane, status):
    client = FakeFetchClient(event_pages=[(make_events(0, 3), 'c1')])
    actor  = _tailer(client, pane, status)
    actor.handle(TailStart('g', None, SearchCondition('WARN')))

    actor.handle(TAIL_TICK)

    assert pane.events.ids() == ['0', '1', '2']     # never a sentinel
    assert pane.pagination_cursor == 'c1'
    assert pane.cursor_position == 2
    assert not pane.fetching
    assert client.event_calls[0] == {'group': 'g', 'cursor': None,
                                     'time_range': (NOW - LOOKBACK, None),
                                     'query': 'WARN', 'limit': 25}


def test_tail_restarts_from_newest_timestamp_after_cursor_chain(pane, status):
    events = make_events(0, 6)
    client = FakeFetchClient(event_pages=[(events[0:2], 'c1'),
                                          (events[2:4], None),
                                          (events[3:6], None)])
    start  = events[1].timestamp
    actor  = TailActor(0, client, pane, status, lookback_ms=LOOKBACK,
                       clock=lambda: start + LOOKBACK)
    actor.handle(TailStart('g', None, SearchCondition()))
    for _ in range(3):
        actor.handle(TAIL_TICK)

    calls = client.event_calls
    assert calls[0]['time_range'] == (start, None)
    assert calls[1]['cursor'] == 'c1'
    assert calls[1]['time_range'] == (start, None)
    assert calls[2]['cursor'] is None
    assert calls[2]['time_range'] == (events[3].timestamp, None)
    assert pane.events.ids() == ['0', '1', '2', '3', '4', '5']


def test_tick_while_fetching_makes_no_call(pane, status):
    client = FakeFetchClient()
    actor  = _tailer(client, pane, status)
    actor.handle(TailStart('g', None, SearchCondition()))
    with pane.lock:
        pane.fetching = True
    actor.handle(TAIL_TICK)
    assert client.event_calls == []


def test_tick_without_tail_mode_is_ignored(pane, status):
    client = FakeFetchClient()
    actor  = _tailer(client, pane, status)
    actor.handle(TAIL_TICK)
    assert client.event_calls == []


def test_only_one_tail_fetch_in_flight(pane, status):
    client      = FakeFetchClient(event_pages=[(make_events(0, 1), None)] * 3)
    client.gate = threading.Event()
    actor       = _tailer(client, pane, status)
    actor.start()
    try:
        actor.inbox.put(TailStart('g', None, SearchCondition()))
        actor.inbox.put(TAIL_TICK)
        assert wait_for(lambda: client.event_calls)
        for _ in range(5):
            offer(actor.inbox, TAIL_TICK)
        assert not wait_for(lambda: len(client.event_calls) > 1, timeout=0.2)
    finally:
        client.gate.set()
        actor.inbox.put(ABORT)
        actor.join(1.0)


def test_tail_stop_clears_the_tailed_rows(pane, status):
    client = FakeFetchClient(event_pages=[(make_events(0, 2), None)])
    actor  = _tailer(client, pane, status)
    actor.handle(TailStart('g', None, SearchCondition()))
    actor.handle(TAIL_TICK)

    actor.handle(TailStop())

    assert not actor.tail_mode
    assert len(pane.events) == 0


def test_tail_stop_spares_a_pane_already_reused(pane, status):
    client = FakeFetchClient(event_pages=[(make_events(0, 2), None)])
    actor  = _tailer(client, pane, status)
    actor.handle(TailStart('g', None, SearchCondition()))
    actor.handle(TAIL_TICK)
    with pane.lock:                          # a paged search took over the pane
        pane.reset()
        pane.merge(make_events(10, 12))

    actor.handle(TailStop())

    assert pane.events.ids() == ['10', '11']


def test_tail_fetch_error_is_reported(pane, status):
    client = FakeFetchClient(event_pages=[FetchError('denied')])
    actor  = _tailer(client, pane, status)
    actor.handle(TailStart('g', None, SearchCondition()))
    actor.handle(TAIL_TICK)
    assert not pane.fetching
    assert 'denied' in status.get()


def test_stale_tail_start_is_dropped(pane, status):
    client = FakeFetchClient()
    actor  = _tailer(client, pane, status)
    stale  = pane.generation
    with pane.lock:                          # lane released after the hand-off
        pane.reset()
        pane.group_name = None

    actor.handle(TailStart('g', None, SearchCondition(), generation=stale))
    actor.handle(TAIL_TICK)

    assert not actor.tail_mode
    assert pane.group_name is None
    assert client.event_calls == []


def test_current_tail_start_is_accepted(pane, status):
    actor = _tailer(FakeFetchClient(), pane, status)
    actor.handle(TailStart('g', None, SearchCondition(), generation=pane.generation))
    assert actor.tail_mode


def test_empty_poll_still_wakes_the_screen(pane, status):
    wakes = []
    actor = _tailer(FakeFetchClient(), pane, status, wake=lambda: wakes.append(1))
    actor.handle(TailStart('g', None, SearchCondition()))
    wakes.clear()

    actor.handle(TAIL_TICK)

    assert wakes
    assert not pane.fetching


def test_tail_actor_keeps_serving_after_an_unexpected_error(pane, status):
    client = FakeFetchClient(event_pages=[RuntimeError('boom'), (make_events(0, 2), None)])
    actor  = _tailer(client, pane, status)
    actor.start()
    try:
        actor.inbox.put(TailStart('g', None, SearchCondition()))
        actor.inbox.put(TAIL_TICK)
        assert wait_for(lambda: len(client.event_calls) == 1 and not pane.fetching)
        actor.inbox.put(TAIL_TICK)
        assert wait_for(lambda: pane.events.ids() == ['0', '1'])
        assert actor.is_alive()
    finally:
        actor.inbox.put(ABORT)
        actor.join(1.0)


# Log groups

def test_log_groups_are_listed_page_by_page(status):
    client  = FakeFetchClient(group_pages=[(make_groups('a', 'b'), 'n1'),
                                           (make_groups('c'), None)])
    sidebar = SidebarState()
    seen    = []
    actor   = LogGroupActor(client, sidebar, status, page_limit=2,
                            wake=lambda: seen.append((sidebar.groups.names(),
                                                      sidebar.groups.has_more())))

    actor.handle(FetchLogGroups('/app'))

    assert sidebar.groups.names() == ['a', 'b', 'c']
    assert not sidebar.groups.has_more()
    assert not sidebar.fetching
    assert (['a', 'b'], True) in seen
    assert [c['cursor'] for c in client.group_calls] == [None, 'n1']
    assert all(c['prefix'] == '/app' and c['limit'] == 2 for c in client.group_calls)


def test_log_group_error_stops_listing(status):
    client  = FakeFetchClient(group_pages=[(make_groups('a'), 'n1'), FetchError('nope')])
    sidebar = SidebarState()
    LogGroupActor(client, sidebar, status).handle(FetchLogGroups())
    assert sidebar.groups.names() == ['a']
    assert not sidebar.fetching
    assert 'nope' in status.get()


def test_log_group_listing_clears_fetching_on_unexpected_error(status):
    client  = FakeFetchClient(group_pages=[(make_groups('a'), 'n1'), ValueError('bad page')])
    sidebar = SidebarState()
    with pytest.raises(ValueError):
        LogGroupActor(client, sidebar, status).handle(FetchLogGroups())
    assert sidebar.groups.names() == ['a']
    assert not sidebar.fetching


def test_actor_thread_exits_on_abort(status):
    actor = LogGroupActor(FakeFetchClient(), SidebarState(), status)
    actor.start()
    actor.inbox.put(ABORT)
    actor.join(1.0)
    assert not actor.is_alive()


def test_inbox_holds_one_command():
    inbox = make_inbox()
    assert offer(inbox, TAIL_TICK)
    assert not offer(inbox, TAIL_TICK)
    with pytest.raises(queue.Full):
        inbox.put_nowait(TAIL_TICK)
