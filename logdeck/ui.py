import logging
import os

import urwid

logger = logging.getLogger(__name__)

# Palette
PALETTE = [
    # chrome
    ('border',    'light gray',        'default'),
    ('border_f',  'yellow,bold',       'default'),
    ('footer',    'black',             'light gray'),
    ('fk',        'dark blue,bold',    'light gray'),
    ('status',    'light red,bold',    'light gray'),
    ('h_dim',     'light blue',        'default'),
    ('dim',       'dark gray',         'default'),
    # sidebar
    ('group',     'light gray',        'default'),
    ('group_sel', 'yellow',            'default'),
    ('filter',    'dark cyan',         'default'),
    ('filter_f',  'white,bold',        'dark blue'),
    # pane
    ('info',      'dark cyan',         'default'),
    ('ts',        'light green',       'default'),
    ('more',      'dark gray,bold',    'default'),
    ('row_sel',   'black',             'light gray'),
    ('row_sel_f', 'black,bold',        'dark cyan'),
    # help / dialog
    ('help',      'white',             'dark blue'),
    ('dlg',       'white',             'dark blue'),
    ('dlg_f',     'black,bold',        'dark cyan'),
    ('dlg_hdr',   'light cyan,bold',   'dark blue'),
    ('box',       'light gray',        'dark gray'),
    ('box_f',     'white',             'dark gray'),
    ('cursor',    'black',             'yellow'),
]

FOLDED_WIDTH     = 3
SIDEBAR_WEIGHT   = 30
PANES_WEIGHT     = 70


def pane_grid(widgets: list) -> urwid.Widget:
    """
    Lay out 0-4 pane widgets:
      1: whole area   2: side by side   3: 0|1 over 2|1   4: quadrants
    """
    n = len(widgets)
    if n == 0:
        hint = urwid.Text(('dim', 'Select log groups with Space, open them with Enter'),
                          align='center')
        return urwid.Filler(hint)
    if n == 1:
        return widgets[0]
    if n == 2:
        return urwid.Columns(widgets)
    if n == 3:
        return urwid.Columns([urwid.Pile([widgets[0], widgets[2]]), widgets[1]])
    return urwid.Columns([urwid.Pile([widgets[0], widgets[2]]),
                          urwid.Pile([widgets[1], widgets[3]])])


def status_bar(message: str) -> urwid.Widget:
    if message:
        markup = [('status', f' {message} ')]
    else:
        markup = [('footer', ' '), ('fk', '?'), ('footer', ' help')]
    markup += [('footer', '   '), ('fk', 'q'), ('footer', ' quit')]
    return urwid.AttrMap(urwid.Text(markup, wrap='clip'), 'footer')


class Screen:
    """
    urwid side of the application. Keys go to the input pump through
    `input_filter`; every other thread asks for a repaint by writing to a
    watch_pipe, so widgets are only ever built on the urwid thread.
    """

    def __init__(self, orchestrator=None, pump=None):
        self.orchestrator = orchestrator
        self.pump         = pump
        self.loop: urwid.MainLoop | None = None
        self._write_fd: int | None       = None

    def attach(self, orchestrator, pump) -> None:
        self.orchestrator = orchestrator
        self.pump         = pump

    # Layout

    def build(self) -> urwid.Widget:
        orch    = self.orchestrator
        focus   = orch.router.focus
        frame   = orch.frame
        sidebar = orch.sidebar

        side   = sidebar.draw(focus.is_sidebar, frame)
        panes  = [p.draw(focus.pane == i, frame) for i, p in enumerate(list(orch.panes))]
        grid   = pane_grid(panes)
        if sidebar.folded:
            body = urwid.Columns([(FOLDED_WIDTH, side), grid])
        else:
            body = urwid.Columns([('weight', SIDEBAR_WEIGHT, side),
                                  ('weight', PANES_WEIGHT, grid)])

        top = urwid.Frame(body, footer=status_bar(orch.status.get()))
        dialog = orch.dialog
        if dialog is not None:
            top = dialog.draw(top)
        if orch.help.visible:
            top = orch.help.draw(top)
        return top

    # Main loop

    def open(self) -> urwid.MainLoop:
        self.loop = urwid.MainLoop(
            self.build(),
            palette      = PALETTE,
            input_filter = self._input_filter,
            handle_mouse = False,
        )
        self._write_fd = self.loop.watch_pipe(self._on_pipe)
        # ctrl c arrives as a key, not SIGINT
        self.loop.screen.tty_signal_keys(intr='undefined')
        return self.loop

    def run(self) -> None:
        if self.loop is None:
            self.open()
        self.loop.run()

    def request_redraw(self) -> None:
        self._write(b'r')

    def request_exit(self) -> None:
        self._write(b'q')

    # Internal

    def _write(self, data: bytes) -> None:
        if self._write_fd is None:
            return
        try:
            os.write(self._write_fd, data)
        except OSError:
            logger.debug('screen pipe closed')

    def _input_filter(self, keys, raw):
        for key in keys:
            self.pump.feed(key)
        return []

    def _on_pipe(self, data: bytes) -> bool:
        if b'q' in data:
            raise urwid.ExitMainLoop()
        self.loop.widget = self.build()
        return True
