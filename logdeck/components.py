"""
The closed set of interactive regions. Each one answers two calls:

  handle_input(key) -> bool   True when the key was consumed
  draw(...)         -> widget a fresh urwid widget built from a snapshot

Components run on the orchestrator thread (handle_input) and the urwid
thread (draw); all shared data is read or written under the state locks.
"""

import urwid

from .config import HELP_KEY, HELP_MESSAGE, LOADER_FRAMES, MAX_PANES, PAGE_ROWS
from .events import FetchLogEvents
from .models import (InvalidSearchCondition, SearchCondition, SearchMode,
                     format_ms, parse_ms)

_MOVE_KEYS = ('up', 'down', 'home', 'end', 'page up', 'page down')


def _step(key: str, pos: int, count: int) -> int | None:
    # New cursor position, or None when the move leaves the list.
    last = max(0, count - 1)
    if key == 'up':
        return pos - 1 if pos > 0 else None
    if key == 'down':
        return pos + 1 if pos < last else None
    if key == 'home':
        return 0
    if key == 'end':
        return last
    if key == 'page up':
        return max(0, pos - PAGE_ROWS)
    if key == 'page down':
        return min(last, pos + PAGE_ROWS)
    return None


def _spinner(frame: int) -> str:
    return LOADER_FRAMES[frame % len(LOADER_FRAMES)]


def _boxed(body: urwid.Widget, title: str, focused: bool) -> urwid.Widget:
    return urwid.AttrMap(urwid.LineBox(body, title=title),
                         'border_f' if focused else 'border')


def _listbox(rows: list, focus: int) -> urwid.ListBox:
    listbox = urwid.ListBox(urwid.SimpleFocusListWalker(rows))
    if rows:
        listbox.set_focus(max(0, min(focus, len(rows) - 1)))
    return listbox


# Sidebar

class Sidebar:
    """
    Log-group list. `/` starts editing the filter (Enter keeps it, Esc
    clears it); Space toggles the group under the cursor. Enter outside
    the filter is left to the orchestrator, which opens the selection.
    """

    def __init__(self, state, status):
        self.state    = state
        self.status   = status
        self.editing  = False
        self.folded   = False
        self._last    = None

    def selected_names(self) -> list:
        with self.state.lock:
            return self.state.selected_names

    def handle_input(self, key: str) -> bool:
        if self.editing and self._edit(key):
            return True
        if key == '/':
            self.editing = True
            return True
        if key in _MOVE_KEYS:
            with self.state.lock:
                pos = _step(key, self.state.cursor_position, len(self.state.filtered))
                if pos is not None:
                    self.state.cursor_position = pos
            return True
        if key == ' ':
            self._toggle()
            return True
        return False

    def _edit(self, key: str) -> bool:
        state = self.state
        with state.lock:
            if key == 'enter':
                self.editing = False
            elif key == 'esc':
                self.editing = False
                state.set_filter('')
            elif key == 'backspace':
                state.set_filter(state.filter_text[:-1])
            elif len(key) == 1 and key.isprintable():
                state.set_filter(state.filter_text + key)
            else:
                return False
        return True

    def _toggle(self) -> None:
        with self.state.lock:
            group = self.state.current()
            if group is None:
                return
            toggled = self.state.toggle(self.state.cursor_position)
        if toggled:
            self.status.clear()
        elif group.is_sentinel:
            self.status.set('more log groups are still loading')
        else:
            self.status.set(f'up to {MAX_PANES} log groups can be opened at once')

    def draw(self, focused: bool, frame: int = 0) -> urwid.Widget:
        snap = self.state.try_snapshot()
        if snap is None:
            return self._last or _boxed(urwid.SolidFill(' '), ' Log Groups ', focused)

        title = ' Log Groups '
        if snap.fetching:
            title = f' Log Groups {_spinner(frame)} '
        if self.folded:
            widget = _boxed(urwid.SolidFill(' '), '', focused)
            self._last = widget
            return widget

        rows = []
        for i, group in enumerate(snap.filtered):
            if group.is_sentinel:
                text = urwid.Text(('dim', f'    {group.name}'), wrap='clip')
            else:
                mark = '[*]' if i in snap.selected else '[ ]'
                attr = 'group_sel' if i in snap.selected else 'group'
                text = urwid.Text((attr, f'{mark} {group.name}'), wrap='clip')
            if i == snap.cursor_position:
                text = urwid.AttrMap(text, 'row_sel_f' if focused else 'row_sel')
            rows.append(text)

        filter_attr = 'filter_f' if self.editing else 'filter'
        filter_line = urwid.Text((filter_attr, f'/ {snap.filter_text}'), wrap='clip')
        body = urwid.Pile([
            ('pack', filter_line),
            _listbox(rows, snap.cursor_position),
        ])
        widget = _boxed(body, title, focused)
        self._last = widget
        return widget


# Pane

class Pane:
    """
    One open log group, bound to a lane for as long as it is displayed.
    Up/Down at either end of the list are not consumed so the focus can
    move to the neighbouring pane.
    """

    def __init__(self, lane, group: str, status, open_search=None):
        self.lane        = lane
        self.state       = lane.pane
        self.group       = group
        self.status      = status
        self.open_search = open_search
        self._last       = None

    @property
    def index(self) -> int:
        return self.lane.index

    @property
    def search(self) -> SearchCondition:
        with self.state.lock:
            return self.state.search

    def start(self, condition: SearchCondition | None = None) -> None:
        condition = condition or SearchCondition()
        with self.state.lock:
            self.state.search     = condition
            self.state.group_name = self.group
        self.lane.submit(FetchLogEvents(self.group, None, condition, reset=True))

    def apply_search(self, condition: SearchCondition) -> bool:
        # Same condition again: nothing to refetch.
        with self.state.lock:
            if condition == self.state.search:
                return False
            self.state.search = condition
        self.lane.submit(FetchLogEvents(self.group, None, condition, reset=True))
        return True

    def handle_input(self, key: str) -> bool:
        if key in _MOVE_KEYS:
            return self._move(key)
        if key == 'enter':
            self._enter()
            return True
        if key == 'e':
            self._toggle_expand_all()
            return True
        if key in ('/', 's') and self.open_search is not None:
            self.open_search(self)
            return True
        return False

    def _move(self, key: str) -> bool:
        with self.state.lock:
            pos = _step(key, self.state.cursor_position, self.state.row_count())
            if pos is None:
                return False
            self.state.cursor_position = pos
        return True

    def _enter(self) -> None:
        command = None
        with self.state.lock:
            state = self.state
            pos   = state.cursor_position
            if pos >= state.row_count():
                return
            if state.events[pos].is_sentinel:
                # next page; tail panes follow on their own
                if (not state.search.is_tail and state.pagination_cursor
                        and not state.fetching):
                    command = FetchLogEvents(self.group, state.pagination_cursor,
                                             state.search, reset=False)
            else:
                state.events.toggle(pos)
        if command is not None:
            self.lane.submit(command)

    def _toggle_expand_all(self) -> None:
        with self.state.lock:
            self.state.expand_all = not self.state.expand_all
            if self.state.expand_all:
                self.state.events.open_all()
            else:
                self.state.events.close_all()

    def draw(self, focused: bool, frame: int = 0) -> urwid.Widget:
        snap = self.state.try_snapshot()
        if snap is None:
            return self._last or _boxed(urwid.SolidFill(' '), f' {self.group} ', focused)

        title = f' {self.group} '
        if snap.search.is_tail:
            title += '[tail] '
        if snap.fetching:
            title += f'{_spinner(frame)} '

        rows = [self._row(rec, i in snap.opened, i == snap.cursor_position, focused)
                for i, rec in enumerate(snap.records)]
        info = urwid.Text(('info', snap.search.describe()), wrap='clip')
        body = urwid.Pile([
            ('pack', info),
            _listbox(rows, snap.cursor_position),
        ])
        widget = _boxed(body, title, focused)
        self._last = widget
        return widget

    @staticmethod
    def _row(rec, opened: bool, selected: bool, focused: bool) -> urwid.Widget:
        if rec.is_sentinel:
            text = urwid.Text(('more', 'more'), align='center')
        else:
            message = rec.message if opened else rec.first_line()
            text = urwid.Text([('ts', rec.format_time()), '  ', message],
                              wrap='space' if opened else 'clip')
        if selected:
            return urwid.AttrMap(text, 'row_sel_f' if focused else 'row_sel')
        return text


# Help

class HelpOverlay:
    # Modal while visible: every key except the close keys is swallowed.

    def __init__(self):
        self.visible = False

    def toggle(self) -> None:
        self.visible = not self.visible

    def handle_input(self, key: str) -> bool:
        if key in (HELP_KEY, 'esc'):
            self.visible = False
        return True

    def draw(self, behind: urwid.Widget) -> urwid.Widget:
        lines = [urwid.Text(('help', line)) for line in HELP_MESSAGE.splitlines()]
        lines += [urwid.Divider('─'),
                  urwid.Text([('fk', '?'), ('help', ' / '), ('fk', 'Esc'),
                              ('help', ' close')], align='center')]
        box = urwid.AttrMap(urwid.LineBox(urwid.ListBox(urwid.SimpleListWalker(lines)),
                                          title=' Help '), 'help')
        return urwid.Overlay(box, behind,
                             'center', ('relative', 60),
                             'middle', ('relative', 80))


# Search dialog

class TextBox:
    """Single-line input with a cursor. Consumes printable keys and editing keys."""

    def __init__(self, text: str = ''):
        self.text   = text
        self.cursor = len(text)

    def handle_input(self, key: str) -> bool:
        t, c = self.text, self.cursor
        if key == 'backspace':
            if c > 0:
                self.text, self.cursor = t[:c - 1] + t[c:], c - 1
        elif key == 'delete':
            self.text = t[:c] + t[c + 1:]
        elif key == 'left':
            self.cursor = max(0, c - 1)
        elif key == 'right':
            self.cursor = min(len(t), c + 1)
        elif key == 'home':
            self.cursor = 0
        elif key == 'end':
            self.cursor = len(t)
        elif len(key) == 1 and key.isprintable():
            self.text, self.cursor = t[:c] + key + t[c:], c + 1
        else:
            return False
        return True

    def markup(self, active: bool) -> list:
        if not active:
            return [('box', self.text or ' ')]
        t, c = self.text, self.cursor
        parts = [('box_f', t[:c]), ('cursor', t[c:c + 1] or ' '), ('box_f', t[c + 1:])]
        return [p for p in parts if p[1]]


MODES = list(SearchMode)
_CUSTOM_ROW = len(MODES)           # focus index of the "custom (from to)" radio
_TERM_CYCLE = {None: 'from', 'from': 'to', 'to': None}


class SearchDialog:
    """
    Edits a SearchCondition for one pane. Focus 0 is the query box, focus
    1..6 the mode radios. On the custom row, Tab cycles the from/to boxes.
    Enter and Esc are not consumed; the orchestrator commits or cancels.
    """

    def __init__(self, condition: SearchCondition | None = None, target=None):
        condition      = condition or SearchCondition()
        self.target    = target
        self.focus     = 0
        self.mode      = condition.mode
        self.term      = None
        self.query_box = TextBox(condition.query)
        self.from_box  = TextBox(format_ms(condition.start))
        self.to_box    = TextBox(format_ms(condition.end))

    def active_box(self) -> TextBox | None:
        if self.focus == 0:
            return self.query_box
        if self.focus == _CUSTOM_ROW:
            return {'from': self.from_box, 'to': self.to_box}.get(self.term)
        return None

    def handle_input(self, key: str) -> bool:
        if key in ('enter', 'esc'):
            return False
        box = self.active_box()
        if box is not None and box.handle_input(key):
            return True
        if key == 'down':
            self.focus = min(self.focus + 1, _CUSTOM_ROW)
        elif key == 'up':
            self.focus = max(self.focus - 1, 0)
        elif key == ' ' and self.focus > 0:
            self.mode = MODES[self.focus - 1]
        elif key == 'tab':
            self.term = _TERM_CYCLE[self.term]
        return True

    def result(self) -> SearchCondition:
        query = self.query_box.text
        if self.mode is not SearchMode.FROM_TO:
            return SearchCondition(query, self.mode)
        start = parse_ms(self.from_box.text, 'from date')
        end   = parse_ms(self.to_box.text, 'to date')
        if start is not None and end is not None and start > end:
            raise InvalidSearchCondition('"from" must not be later than "to"')
        return SearchCondition(query, SearchMode.FROM_TO, start, end)

    def draw(self, behind: urwid.Widget) -> urwid.Widget:
        def _line(markup, focused):
            return urwid.AttrMap(urwid.Text(markup, wrap='clip'),
                                 'dlg_f' if focused else 'dlg')

        rows = [
            urwid.Text(('dlg_hdr', 'Query')),
            _line(self.query_box.markup(self.focus == 0), self.focus == 0),
            urwid.Divider(),
            urwid.Text(('dlg_hdr', 'Term')),
        ]
        for i, mode in enumerate(MODES, start=1):
            mark = '[*]' if mode is self.mode else '[ ]'
            rows.append(_line(f'{mark} {mode}', self.focus == i))
        on_custom = self.focus == _CUSTOM_ROW
        rows.append(_line(['    ']
                          + self.from_box.markup(on_custom and self.term == 'from')
                          + ['  ~  ']
                          + self.to_box.markup(on_custom and self.term == 'to'),
                          False))
        rows += [
            urwid.Divider('─'),
            urwid.Text([
                ('h_dim', ' ↑↓ '), ('dlg', 'move  '),
                ('fk', 'Space'), ('dlg', ' choose  '),
                ('fk', 'Tab'),   ('dlg', ' from/to  '),
                ('fk', 'Enter'), ('dlg', ' apply  '),
                ('fk', 'Esc'),   ('dlg', ' cancel'),
            ], align='center', wrap='clip'),
        ]
        body = urwid.Filler(urwid.Pile(rows), valign='top')
        box  = urwid.AttrMap(urwid.LineBox(body, title=' Search Condition '), 'dlg')
        return urwid.Overlay(box, behind,
                             'center', ('relative', 60),
                             'middle', len(rows) + 2)
