"""
Messages exchanged between the orchestrator, the input pump and the actors.

Commands travel into actor inboxes (queue.Queue(maxsize=1)); events travel
into the orchestrator's event queue.
"""

import queue as _queue
from dataclasses import dataclass, field

from .models import SearchCondition


# Commands: paged-fetch actor

@dataclass(frozen=True)
class FetchLogEvents:
    group:     str
    cursor:    str | None      = None
    condition: SearchCondition = field(default_factory=SearchCondition)
    reset:     bool            = False


@dataclass(frozen=True)
class Release:
    # Lane freed; forget any tail bookkeeping.
    pass


# Commands: tail actor

@dataclass(frozen=True)
class TailStart:
    group:      str
    cursor:     str | None      = None
    condition:  SearchCondition = field(default_factory=SearchCondition)
    reset:      bool            = True
    generation: int | None      = None    # pane generation at hand-off


@dataclass(frozen=True)
class TailStop:
    pass


@dataclass(frozen=True)
class TailTick:
    pass


# Commands: log-group actor

@dataclass(frozen=True)
class FetchLogGroups:
    prefix: str | None = None


# Commands: every actor

@dataclass(frozen=True)
class Abort:
    pass


# Events: orchestrator

@dataclass(frozen=True)
class InputEvent:
    key: str


@dataclass(frozen=True)
class Tick:
    pass


TAIL_TICK = TailTick()
TICK      = Tick()
ABORT     = Abort()


def make_inbox() -> _queue.Queue:
    return _queue.Queue(maxsize=1)


def replace_pending(q: _queue.Queue, command) -> None:
    """
    Put `command`, discarding a not-yet-consumed one. The newest command
    supersedes the pending one (a newer search, a release after a fetch).
    """
    while True:
        try:
            q.put_nowait(command)
            return
        except _queue.Full:
            try:
                q.get_nowait()
            except _queue.Empty:
                pass


def offer(q: _queue.Queue, command) -> bool:
    # Fire-and-forget; False when the receiver has not drained its inbox.
    try:
        q.put_nowait(command)
        return True
    except _queue.Full:
        return False
