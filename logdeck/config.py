import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import find_dotenv, load_dotenv


# Limits
MAX_PANES          = 4
GROUPS_PAGE_LIMIT  = 50      # describe_log_groups hard maximum
EVENTS_PAGE_LIMIT  = 50

# Cadence (seconds)
TICK_INTERVAL      = 1.0     # UI refresh tick
TAIL_INTERVAL      = 0.5     # tail poll broadcast
TAIL_LOOKBACK_MS   = 5 * 60 * 1000

# Sentinels
MORE_EVENT_ID      = 'more'
MORE_GROUP_NAME    = 'More...'
MORE_GROUP_ARN     = 'more'

DATE_FORMAT        = '%Y-%m-%d %H:%M:%S'
LOADER_FRAMES      = '⣾⣽⣻⢿⡿⣟⣯⣷'
PAGE_ROWS          = 10      # page up / page down step
DEFAULT_LOG_FILE   = Path.home() / '.cache' / 'logdeck' / 'logdeck.log'

# Keys
QUIT_KEYS          = ('ctrl c',)
SOFT_QUIT_KEYS     = ('q', 'Q')
HELP_KEY           = '?'
FOLD_KEY           = 'tab'

HELP_MESSAGE = """\
<Navigation>
  [Tab]          toggle folding the side menu
  [Arrow]        move focus (left/right, up/down at list edges)
  [Shift+Arrow]  move focus between panes
  [?]            toggle this help
  [q] [Ctrl+C]   quit

<Side Menu>
  [/]            edit the filter ([Enter] done, [Esc] clear)
  [Space]        select / deselect a log group (up to 4)
  [Enter]        open panes for the selected log groups

<Log Events>
  [Up] [Down]    move cursor
  [Home] [End]   first / last row
  [Enter]        expand row, or load the next page on "more"
  [e]            toggle expanding every row
  [/] [s]        edit search condition

<Search Condition>
  [Up] [Down]    move between query and term
  [Space]        choose term
  [Tab]          switch custom from / to input
  [Enter]        apply      [Esc] cancel
"""


@dataclass
class Settings:
    profile:          str | None = None
    region:           str | None = None
    prefix:           str | None = None
    tick_interval:    float      = TICK_INTERVAL
    tail_interval:    float      = TAIL_INTERVAL
    tail_lookback_ms: int        = TAIL_LOOKBACK_MS
    page_size:        int        = EVENTS_PAGE_LIMIT
    log_file:         Path       = DEFAULT_LOG_FILE
    log_level:        str        = 'INFO'

    def __post_init__(self) -> None:
        if self.tick_interval <= 0:
            raise ValueError('tick interval must be positive')
        if self.tail_interval <= 0:
            raise ValueError('tail interval must be positive')
        if not 1 <= self.page_size <= 10_000:
            raise ValueError('page size must be between 1 and 10000')
        if self.tail_lookback_ms < 0:
            raise ValueError('tail lookback must not be negative')


# env var name -> (Settings field, converter)
_ENV = {
    'LOGDECK_TICK_INTERVAL': ('tick_interval',    float),
    'LOGDECK_TAIL_INTERVAL': ('tail_interval',    float),
    'LOGDECK_TAIL_LOOKBACK': ('tail_lookback_ms', int),
    'LOGDECK_PAGE_SIZE':     ('page_size',        int),
    'LOGDECK_LOG_FILE':      ('log_file',         Path),
    'LOGDECK_LOG_LEVEL':     ('log_level',        str),
}


def load_settings(args=None, environ=None) -> Settings:
    """
    Resolve settings with precedence: command-line flag > environment > default.
    Without an explicit `environ`, a `.env` file in the working directory is
    loaded into os.environ first (existing variables win).
    `args` is an argparse Namespace whose unset options are None.
    Raises ValueError on malformed values.
    """
    if environ is None:
        load_dotenv(find_dotenv(usecwd=True))
        environ = os.environ
    values: dict = {}

    for var, (field, conv) in _ENV.items():
        raw = environ.get(var)
        if raw:
            try:
                values[field] = conv(raw)
            except ValueError as exc:
                raise ValueError(f'{var}={raw!r}: {exc}') from exc

    if args is not None:
        for field in ('profile', 'region', 'prefix', 'tick_interval',
                      'tail_interval', 'page_size', 'log_file', 'log_level'):
            val = getattr(args, field, None)
            if val is not None:
                values[field] = Path(val) if field == 'log_file' else val

    return Settings(**values)
