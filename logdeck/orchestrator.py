import logging
import threading

from .components import HelpOverlay, Pane, SearchDialog, Sidebar
from .config import FOLD_KEY, HELP_KEY, MAX_PANES, QUIT_KEYS, SOFT_QUIT_KEYS
from .events import ABORT, TICK, FetchLogGroups, InputEvent, Tick, offer, replace_pending
from .focus import Direction, FocusRouter
from .models import InvalidSearchCondition

logger = logging.getLogger(__name__)

_DIRECTIONS = {
    'left':        Direction.LEFT,
    'right':       Direction.RIGHT,
    'up':          Direction.UP,
    'down':        Direction.DOWN,
    'shift left':  Direction.LEFT,
    'shift right': Direction.RIGHT,
    'shift up':    Direction.UP,
    'shift down':  Direction.DOWN,
}


class Orchestrator:
    """
    The single coordinating loop: render, wait for the next event, dispatch.

    Key dispatch order:
      1. quit keys, always
      2. the help overlay or the search dialog, when open (modal)
      3. the focused component (sidebar or pane)
      4. global keys: help, fold, focus moves, soft quit, Enter on the sidebar

    `panes` is in display order; position i is Pane(i) for the focus router.
    """

    def __init__(self, pool, sidebar: Sidebar, group_actor, status, events,
                 router: FocusRouter | None = None, on_render=None, on_exit=None):
        self.pool        = pool
        self.sidebar     = sidebar
        self.group_actor = group_actor
        self.status      = status
        self.events      = events
        self.router      = router or FocusRouter()
        self.on_render   = on_render
        self.on_exit     = on_exit
        self.panes: list = []
        self.help        = HelpOverlay()
        self.dialog: SearchDialog | None = None
        self.frame       = 0
        self.running     = False
        self._thread     = threading.Thread(target=self.run, daemon=True, name='orchestrator')

    # Lifecycle

    def start(self) -> None:
        self._thread.start()

    def join(self, timeout: float | None = None) -> None:
        if self._thread.is_alive():
            self._thread.join(timeout)

    def stop(self) -> None:
        self.running = False
        offer(self.events, TICK)    # unblock get()

    def list_groups(self, prefix: str | None = None) -> None:
        replace_pending(self.group_actor.inbox, FetchLogGroups(prefix))

    def run(self) -> None:
        self.running = True
        logger.info('orchestrator started')
        try:
            while self.running:
                self.render()
                self.dispatch(self.events.get())
        except Exception:
            logger.exception('orchestrator stopped')
            raise
        finally:
            self._shutdown()

    def _shutdown(self) -> None:
        # Best effort: actors see Abort at their next receive.
        self.running = False
        self.pool.shutdown()
        replace_pending(self.group_actor.inbox, ABORT)
        self.group_actor.join(1.0)
        logger.info('orchestrator finished')
        if self.on_exit is not None:
            self.on_exit()

    # Rendering

    def render(self) -> None:
        if self.on_render is not None:
            self.on_render()

    def focused_component(self):
        focus = self.router.focus
        if focus.is_sidebar:
            return self.sidebar
        if focus.pane < len(self.panes):
            return self.panes[focus.pane]
        return None

    # Dispatch

    def dispatch(self, event) -> None:
        if isinstance(event, Tick):
            self.frame += 1
        elif isinstance(event, InputEvent):
            self.handle_key(event.key)
        else:
            logger.warning('unexpected event %r', event)

    def handle_key(self, key: str) -> None:
        if key in QUIT_KEYS:
            self.quit()
            return
        if self.help.visible:
            self.help.handle_input(key)
            return
        if self.dialog is not None:
            self._dialog_key(key)
            return

        target = self.focused_component()
        if target is not None and target.handle_input(key):
            return

        if key == HELP_KEY:
            self.help.toggle()
        elif key == FOLD_KEY:
            self.sidebar.folded = not self.sidebar.folded
        elif key in _DIRECTIONS:
            self.router.move(_DIRECTIONS[key], len(self.panes))
        elif key in SOFT_QUIT_KEYS:
            self.quit()
        elif key == 'enter' and self.router.focus.is_sidebar:
            self.apply_selection()

    def quit(self) -> None:
        logger.info('quit requested')
        self.running = False

    # Selection

    def apply_selection(self) -> None:
        """
        Make the open panes match the sidebar selection: close panes whose
        group was deselected, then open one pane per newly selected group.
        A group that finds no free lane is refused here, before allocate().
        """
        wanted = self.sidebar.selected_names()

        for pane in [p for p in self.panes if p.group not in wanted]:
            self.panes.remove(pane)
            self.pool.deallocate(pane.lane)
            logger.info('closed pane for %s (lane %d)', pane.group, pane.index)

        opened = {p.group for p in self.panes}
        for name in wanted:
            if name in opened:
                continue
            if self.pool.free_count() == 0:
                self.status.set(f'up to {MAX_PANES} log groups can be opened at once')
                logger.warning('no free lane for %s', name)
                break
            lane = self.pool.allocate()
            pane = Pane(lane, name, self.status, open_search=self.open_search)
            self.panes.append(pane)
            pane.start()
            logger.info('opened pane for %s (lane %d)', name, lane.index)

        self.router.clamp(len(self.panes))

    # Search dialog

    def open_search(self, pane: Pane) -> None:
        self.dialog = SearchDialog(pane.search, target=pane)

    def _dialog_key(self, key: str) -> None:
        dialog = self.dialog
        if dialog.handle_input(key):
            return
        if key == 'esc':
            self.dialog = None
        elif key == 'enter':
            try:
                condition = dialog.result()
            except InvalidSearchCondition as exc:
                self.status.set(str(exc))
                return
            self.dialog = None
            self.status.clear()
            if dialog.target in self.panes:
                dialog.target.apply_search(condition)
