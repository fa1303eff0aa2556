import threading
from dataclasses import dataclass, field

from .config import MAX_PANES
from .models import SearchCondition
from .store import LogEventCollection, LogGroupCollection


# Snapshots (immutable copies handed to the render path)

@dataclass(frozen=True)
class PaneSnapshot:
    index:           int
    group_name:      str | None
    records:         tuple
    opened:          frozenset
    cursor_position: int
    fetching:        bool
    search:          SearchCondition
    expand_all:      bool
    has_more:        bool


@dataclass(frozen=True)
class SidebarSnapshot:
    filtered:        tuple
    selected:        frozenset       # indices into `filtered`
    filter_text:     str
    cursor_position: int
    fetching:        bool
    has_more:        bool


def _try_locked(lock: threading.Lock, fn):
    # Render path never blocks: None means "reuse the previous frame".
    if not lock.acquire(blocking=False):
        return None
    try:
        return fn()
    finally:
        lock.release()


# Pane

class PaneState:
    """
    Per-lane pane state. Shared by the orchestrator thread and the lane's
    two actors; every read-modify-write happens inside one `with lock:`.
    Methods without a leading `try_` assume the caller holds the lock.
    """

    def __init__(self, index: int = 0):
        self.lock                                = threading.Lock()
        self.index                               = index
        self.events                              = LogEventCollection()
        self.pagination_cursor: str | None       = None
        self.fetching                            = False
        self.group_name:        str | None       = None
        self.cursor_position                     = 0
        self.search                              = SearchCondition()
        self.expand_all                          = False
        self.generation                          = 0

    def reset(self) -> None:
        # Safe to repeat; a fetch begun before this will not merge its results.
        self.events.reset()
        self.pagination_cursor = None
        self.cursor_position   = 0
        self.fetching          = False
        self.generation       += 1

    def merge(self, page, has_next: bool = False) -> int:
        return self.events.push(page, has_next=has_next, expand_all=self.expand_all)

    def row_count(self) -> int:
        return len(self.events)

    def clamp_cursor(self) -> None:
        last = len(self.events) - 1
        self.cursor_position = max(0, min(self.cursor_position, last))

    def snapshot(self) -> PaneSnapshot:
        return PaneSnapshot(
            index           = self.index,
            group_name      = self.group_name,
            records         = tuple(self.events),
            opened          = frozenset(self.events.opened),
            cursor_position = self.cursor_position,
            fetching        = self.fetching,
            search          = self.search,
            expand_all      = self.expand_all,
            has_more        = self.events.has_more(),
        )

    def try_snapshot(self) -> PaneSnapshot | None:
        return _try_locked(self.lock, self.snapshot)


# Sidebar

class SidebarState:
    """
    Log-group listing with a text filter and an ordered selection of at most
    MAX_PANES groups. The selection is kept by group name, so re-filtering
    never points it at the wrong rows.
    """

    def __init__(self, limit: int = MAX_PANES):
        self.lock            = threading.Lock()
        self.groups          = LogGroupCollection()
        self.filtered: list  = []
        self.filter_text     = ''
        self.cursor_position = 0
        self.fetching        = False
        self.limit           = limit
        self._selected: list = []     # names, in selection order

    # Listing

    def push(self, page, has_next: bool = False) -> None:
        self.groups.push(page, has_next)
        self.refilter()

    def clear(self) -> None:
        # Selection survives a re-listing; open panes stay bound to it.
        self.groups.clear()
        self.refilter()

    def set_filter(self, text: str) -> None:
        self.filter_text     = text
        self.cursor_position = 0
        self.refilter()

    def refilter(self) -> None:
        self.filtered = self.groups.filter(self.filter_text)
        if self.cursor_position >= len(self.filtered):
            self.cursor_position = max(0, len(self.filtered) - 1)

    # Selection

    @property
    def selected_names(self) -> list:
        return list(self._selected)

    @property
    def selected_indices(self) -> set:
        wanted = set(self._selected)
        return {i for i, g in enumerate(self.filtered) if g.name in wanted}

    def toggle(self, idx: int) -> bool:
        """
        Flip the selection of filtered row `idx`. Returns False when the row
        cannot be selected: out of range, the "More..." row, or the cap is
        already reached.
        """
        if not 0 <= idx < len(self.filtered):
            return False
        group = self.filtered[idx]
        if group.is_sentinel:
            return False
        if group.name in self._selected:
            self._selected.remove(group.name)
            return True
        if len(self._selected) >= self.limit:
            return False
        self._selected.append(group.name)
        return True

    def current(self):
        if 0 <= self.cursor_position < len(self.filtered):
            return self.filtered[self.cursor_position]
        return None

    def snapshot(self) -> SidebarSnapshot:
        return SidebarSnapshot(
            filtered        = tuple(self.filtered),
            selected        = frozenset(self.selected_indices),
            filter_text     = self.filter_text,
            cursor_position = self.cursor_position,
            fetching        = self.fetching,
            has_more        = self.groups.has_more(),
        )

    def try_snapshot(self) -> SidebarSnapshot | None:
        return _try_locked(self.lock, self.snapshot)


# Status bar

@dataclass
class StatusState:
    message: str            = ''
    lock:    threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)

    def set(self, message: str) -> None:
        with self.lock:
            self.message = message

    def clear(self) -> None:
        self.set('')

    def get(self) -> str:
        with self.lock:
            return self.message
