import time
from dataclasses import dataclass, replace
from datetime import datetime
from enum import Enum

from .config import DATE_FORMAT, MORE_EVENT_ID, MORE_GROUP_ARN, MORE_GROUP_NAME


class InvalidSearchCondition(ValueError):
    pass


# Records

@dataclass(frozen=True)
class LogRecord:
    id:        str
    message:   str
    timestamp: int | None = None   # epoch milliseconds

    @property
    def is_sentinel(self) -> bool:
        return self.id == MORE_EVENT_ID

    def first_line(self) -> str:
        return self.message.split('\n', 1)[0]

    def format_time(self) -> str:
        return format_ms(self.timestamp)


@dataclass(frozen=True)
class LogGroupRecord:
    name: str
    arn:  str = ''

    @property
    def is_sentinel(self) -> bool:
        return self.arn == MORE_GROUP_ARN


# "additional pages exist" markers; never real data
MORE_EVENT = LogRecord(id=MORE_EVENT_ID, message='', timestamp=None)
MORE_GROUP = LogGroupRecord(name=MORE_GROUP_NAME, arn=MORE_GROUP_ARN)


# Search condition

class SearchMode(Enum):
    TAIL           = 'tail'
    ONE_MINUTE     = '1 minute'
    THIRTY_MINUTES = '30 minutes'
    ONE_HOUR       = '1 hour'
    TWELVE_HOURS   = '12 hours'
    FROM_TO        = 'custom (from to)'

    @property
    def duration_ms(self) -> int | None:
        return _DURATIONS.get(self)

    def __str__(self) -> str:
        return self.value


_DURATIONS = {
    SearchMode.ONE_MINUTE:     60 * 1000,
    SearchMode.THIRTY_MINUTES: 30 * 60 * 1000,
    SearchMode.ONE_HOUR:       60 * 60 * 1000,
    SearchMode.TWELVE_HOURS:   12 * 60 * 60 * 1000,
}


def now_ms() -> int:
    return int(time.time() * 1000)


@dataclass(frozen=True)
class SearchCondition:
    query: str              = ''
    mode:  SearchMode       = SearchMode.TAIL
    start: int | None       = None    # FROM_TO only
    end:   int | None       = None    # FROM_TO only

    @property
    def is_tail(self) -> bool:
        return self.mode is SearchMode.TAIL

    def resolve_range(self, now: int | None = None) -> tuple:
        # (from, to) in epoch ms; presets count back from `now`.
        if self.mode is SearchMode.TAIL:
            return None, None
        if self.mode is SearchMode.FROM_TO:
            return self.start, self.end
        now = now_ms() if now is None else now
        return now - self.mode.duration_ms, None

    def with_mode(self, mode: SearchMode) -> 'SearchCondition':
        if mode is SearchMode.FROM_TO:
            return replace(self, mode=mode)
        return replace(self, mode=mode, start=None, end=None)

    def describe(self) -> str:
        if self.mode is SearchMode.FROM_TO:
            lo = format_ms(self.start)
            hi = format_ms(self.end)
            return f'query: [{self.query}], mode: [{lo} ~ {hi}]'
        return f'query: [{self.query}], mode: [{self.mode}]'


def format_ms(ms: int | None) -> str:
    if ms is None:
        return ''
    return datetime.fromtimestamp(ms / 1000).strftime(DATE_FORMAT)


def parse_ms(text: str, label: str = 'date') -> int | None:
    # Local time in DATE_FORMAT; an empty box means "open ended".
    text = text.strip()
    if not text:
        return None
    try:
        parsed = datetime.strptime(text, DATE_FORMAT)
    except ValueError:
        raise InvalidSearchCondition(
            f'invalid {label} {text!r}, expected YYYY-MM-DD HH:MM:SS') from None
    return int(parsed.timestamp() * 1000)
