import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path

from .config import DEFAULT_LOG_FILE

LOG_FORMAT    = '%(asctime)s | %(levelname)s | %(name)s | %(message)s'
MAX_LOG_BYTES = 2 * 1024 * 1024
LOG_BACKUPS   = 3

_handler: logging.Handler | None = None


def _resolve_level(level) -> int:
    if isinstance(level, int):
        return level
    named = getattr(logging, str(level).upper(), None)
    return named if isinstance(named, int) else logging.INFO


def setup_logging(level='INFO', path: Path | None = None) -> logging.Handler:
    """
    Send the root logger to a rotating file, once per process.
    The terminal is owned by urwid, so nothing is written to stderr.
    Calling again only updates the level.
    """
    global _handler
    resolved = _resolve_level(level)
    root     = logging.getLogger()
    if _handler is None:
        path = Path(path or DEFAULT_LOG_FILE)
        path.parent.mkdir(parents=True, exist_ok=True)
        _handler = RotatingFileHandler(
            path, mode='a', encoding='utf-8',
            maxBytes=MAX_LOG_BYTES, backupCount=LOG_BACKUPS)
        _handler.setFormatter(logging.Formatter(LOG_FORMAT))
        root.addHandler(_handler)
    _handler.setLevel(resolved)
    root.setLevel(resolved)
    # botocore is chatty at DEBUG
    logging.getLogger('botocore').setLevel(max(resolved, logging.INFO))
    return _handler


def teardown_logging() -> None:
    global _handler
    if _handler is not None:
        logging.getLogger().removeHandler(_handler)
        _handler.close()
        _handler = None
