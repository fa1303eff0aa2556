"""
Background actors. Each owns one daemon thread that blocks on its inbox
(a queue.Queue(maxsize=1)) and on the log-service call, and writes results
into lock-guarded shared state. Abort ends the thread at the next receive.
"""

import logging
import threading

from .client import FetchClient, FetchError
from .config import EVENTS_PAGE_LIMIT, GROUPS_PAGE_LIMIT, TAIL_LOOKBACK_MS
from .events import (Abort, FetchLogEvents, FetchLogGroups, Release, TailStart,
                     TailStop, TailTick, make_inbox)
from .models import SearchCondition, now_ms
from .state import PaneState, SidebarState, StatusState

logger = logging.getLogger(__name__)


class Actor:
    name = 'actor'

    def __init__(self, inbox=None, wake=None):
        self.inbox    = inbox if inbox is not None else make_inbox()
        self._wake_cb = wake
        self._thread  = threading.Thread(target=self._run, daemon=True, name=self.name)

    def start(self) -> None:
        self._thread.start()

    def join(self, timeout: float | None = None) -> None:
        if self._thread.is_alive():
            self._thread.join(timeout)

    def is_alive(self) -> bool:
        return self._thread.is_alive()

    def handle(self, command) -> None:
        raise NotImplementedError

    # Internal

    def _wake(self) -> None:
        if self._wake_cb is not None:
            self._wake_cb()

    def _run(self) -> None:
        while True:
            command = self.inbox.get()
            logger.debug('%s <- %r', self.name, command)
            if isinstance(command, Abort):
                break
            try:
                self.handle(command)
            except Exception:
                # Lanes are reused; the next command still gets served.
                logger.exception('%s failed on %r', self.name, command)
        logger.debug('%s exited', self.name)


# Paged fetch

class PagedFetchActor(Actor):
    """
    Runs FetchLogEvents for one lane. A tail condition is handed to the
    lane's tail actor instead of being fetched here, stamped with the pane
    generation; leaving tail mode sends that actor a TailStop.
    Commands for a group the lane is no longer bound to are dropped.
    """

    def __init__(self, index: int, client: FetchClient, pane: PaneState,
                 tail_inbox, status: StatusState,
                 page_size: int = EVENTS_PAGE_LIMIT, inbox=None, wake=None):
        self.name        = f'fetch-{index}'
        super().__init__(inbox, wake)
        self.client      = client
        self.pane        = pane
        self.tail_inbox  = tail_inbox
        self.status      = status
        self.page_size   = page_size
        self.is_tail     = False

    def handle(self, command) -> None:
        if isinstance(command, FetchLogEvents):
            self._fetch(command)
        elif isinstance(command, Release):
            self.is_tail = False
        else:
            logger.warning('%s ignoring %r', self.name, command)

    def _fetch(self, cmd: FetchLogEvents) -> None:
        pane = self.pane
        with pane.lock:
            # The lane was released (or handed to another group) after this
            # command was queued.
            if pane.group_name != cmd.group:
                logger.debug('%s: dropped fetch for unbound group %s',
                             self.name, cmd.group)
                return
            if not cmd.condition.is_tail:
                if cmd.reset:
                    pane.reset()
                pane.fetching = True
            generation = pane.generation

        if cmd.condition.is_tail:
            self.is_tail = True
            self.tail_inbox.put(TailStart(cmd.group, cmd.cursor, cmd.condition,
                                          cmd.reset, generation))
            return

        if self.is_tail:
            self.tail_inbox.put(TailStop())
            self.is_tail = False
        self._wake()

        try:
            records, cursor = self.client.fetch_log_events(
                cmd.group, cmd.cursor, cmd.condition.resolve_range(),
                cmd.condition.query, self.page_size)
            with pane.lock:
                # A reset while the call was out means these rows belong to nobody.
                if pane.generation == generation:
                    added = pane.merge(records, has_next=cursor is not None)
                    pane.pagination_cursor = cursor
                    logger.debug('%s: %s +%d rows, cursor=%s',
                                 self.name, cmd.group, added, cursor is not None)
                else:
                    logger.debug('%s: discarded stale page for %s', self.name, cmd.group)
        except FetchError as exc:
            logger.warning('%s: fetch %s failed: %s', self.name, cmd.group, exc)
            self.status.set(f'{cmd.group}: {exc}')
        finally:
            with pane.lock:
                if pane.generation == generation:
                    pane.fetching = False
            self._wake()


# Tail

class TailActor(Actor):
    """
    Polls one lane's log group on every TailTick while tail mode is on.

    The first poll after TailStart looks back `lookback_ms`. When a cursor
    chain ends, the next poll restarts from the newest timestamp held; the
    overlap this produces is removed by the collection's merge.
    """

    def __init__(self, index: int, client: FetchClient, pane: PaneState,
                 status: StatusState, page_size: int = EVENTS_PAGE_LIMIT,
                 lookback_ms: int = TAIL_LOOKBACK_MS, clock=now_ms,
                 inbox=None, wake=None):
        self.name         = f'tail-{index}'
        super().__init__(inbox, wake)
        self.client       = client
        self.pane         = pane
        self.status       = status
        self.page_size    = page_size
        self.lookback_ms  = lookback_ms
        self.clock        = clock
        self.tail_mode    = False
        self.condition    = SearchCondition()
        self._since: int | None = None
        self._generation  = -1

    def handle(self, command) -> None:
        if isinstance(command, TailTick):
            self._tick()
        elif isinstance(command, TailStart):
            self._start(command)
        elif isinstance(command, TailStop):
            self._stop()
        else:
            logger.warning('%s ignoring %r', self.name, command)

    def _start(self, cmd: TailStart) -> None:
        with self.pane.lock:
            # The pane was reset (lane released) after the hand-off.
            if cmd.generation is not None and cmd.generation != self.pane.generation:
                logger.debug('%s: dropped stale tail start for %s', self.name, cmd.group)
                return
            self.pane.reset()
            self.pane.group_name        = cmd.group
            self.pane.pagination_cursor = cmd.cursor
            self._generation            = self.pane.generation
        self.condition = cmd.condition
        self._since    = self.clock() - self.lookback_ms
        self.tail_mode = True
        logger.info('%s: tailing %s', self.name, cmd.group)
        self._wake()

    def _stop(self) -> None:
        if not self.tail_mode:
            return
        self.tail_mode = False
        with self.pane.lock:
            # Someone else already reset the pane for its next use.
            if self.pane.generation == self._generation:
                self.pane.reset()
        logger.info('%s: tail stopped', self.name)
        self._wake()

    def _tick(self) -> None:
        if not self.tail_mode:
            return
        pane = self.pane
        with pane.lock:
            if pane.fetching or pane.generation != self._generation:
                return
            pane.fetching = True
            group         = pane.group_name
            cursor        = pane.pagination_cursor
            if cursor is None:
                self._since = self._resume_point(pane)
            since = self._since

        try:
            records, next_cursor = self.client.fetch_log_events(
                group, cursor, (since, None), self.condition.query, self.page_size)
            with pane.lock:
                if pane.generation == self._generation:
                    pane.merge(records)
                    pane.pagination_cursor = next_cursor
                    pane.cursor_position   = max(0, pane.row_count() - 1)
        except FetchError as exc:
            logger.warning('%s: tail %s failed: %s', self.name, group, exc)
            self.status.set(f'{group}: {exc}')
        finally:
            with pane.lock:
                if pane.generation == self._generation:
                    pane.fetching = False
            self._wake()

    def _resume_point(self, pane: PaneState) -> int | None:
        # Called with pane.lock held.
        for rec in reversed(pane.events.records):
            if not rec.is_sentinel and rec.timestamp is not None:
                return max(self._since or 0, rec.timestamp)
        return self._since


# Log groups

class LogGroupActor(Actor):
    name = 'log-groups'

    def __init__(self, client: FetchClient, sidebar: SidebarState,
                 status: StatusState, page_limit: int = GROUPS_PAGE_LIMIT,
                 inbox=None, wake=None):
        super().__init__(inbox, wake)
        self.client     = client
        self.sidebar    = sidebar
        self.status     = status
        self.page_limit = page_limit

    def handle(self, command) -> None:
        if isinstance(command, FetchLogGroups):
            self._list(command.prefix)
        else:
            logger.warning('%s ignoring %r', self.name, command)

    def _list(self, prefix: str | None) -> None:
        # Pages are shown as they arrive; the sentinel marks the unfinished tail.
        with self.sidebar.lock:
            self.sidebar.clear()
            self.sidebar.fetching = True
        self._wake()

        cursor = None
        pages  = 0
        try:
            while True:
                try:
                    groups, cursor = self.client.list_log_groups(prefix, self.page_limit, cursor)
                except FetchError as exc:
                    logger.warning('listing log groups failed: %s', exc)
                    self.status.set(f'log groups: {exc}')
                    break
                pages += 1
                with self.sidebar.lock:
                    self.sidebar.push(groups, has_next=cursor is not None)
                self._wake()
                if cursor is None:
                    break
        finally:
            with self.sidebar.lock:
                self.sidebar.fetching = False
                count = len(self.sidebar.groups.names())
            logger.info('listed %d log groups in %d pages', count, pages)
            self._wake()
