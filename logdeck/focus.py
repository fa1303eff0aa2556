from dataclasses import dataclass
from enum import Enum


class Direction(Enum):
    LEFT  = 'left'
    RIGHT = 'right'
    UP    = 'up'
    DOWN  = 'down'


@dataclass(frozen=True)
class Focus:
    pane: int | None = None     # None is the sidebar

    @property
    def is_sidebar(self) -> bool:
        return self.pane is None

    def __str__(self) -> str:
        return 'Sidebar' if self.pane is None else f'Pane({self.pane})'


SIDEBAR = Focus()


def pane(idx: int) -> Focus:
    return Focus(idx)


# Pane positions on the 2x2 grid, by how many panes are open:
#   1: 0 takes the whole area      3: 0 | 1      4: 0 | 1
#   2: 0 | 1                          2 | 1         2 | 3
# Every move names one target; a pane target that is not open is a no-op.
_MOVES = {
    Direction.LEFT:  {0: SIDEBAR, 1: pane(0), 2: SIDEBAR, 3: pane(2)},
    Direction.RIGHT: {0: pane(1), 2: pane(3)},
    Direction.DOWN:  {0: pane(2), 1: pane(3)},
    Direction.UP:    {2: pane(0), 3: pane(1)},
}


class FocusRouter:
    """Which region receives keys: the sidebar or one of the open panes."""

    def __init__(self):
        self.focus = SIDEBAR

    def move(self, direction: Direction, open_panes: int) -> Focus:
        current = self.focus
        if current.is_sidebar:
            if direction is Direction.RIGHT and open_panes > 0:
                self.focus = pane(0)
            return self.focus

        target = _MOVES[direction].get(current.pane)
        if target is None:
            return self.focus

        # bottom-left sits beside the full-height right pane when only 3 are open
        if direction is Direction.RIGHT and current.pane == 2 and open_panes <= 3:
            target = pane(1)

        if target.is_sidebar or target.pane < open_panes:
            self.focus = target
        return self.focus

    def clamp(self, open_panes: int) -> Focus:
        # Panes closed under the focus: fall back to the sidebar.
        if not self.focus.is_sidebar and self.focus.pane >= open_panes:
            self.focus = SIDEBAR
        return self.focus
