import sys
import threading
import time
from pathlib import Path

import pytest

# Ensure the project root is on sys.path so `import logdeck` works in tests.
PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from logdeck.client import FetchClient  # noqa: E402
from logdeck.models import LogGroupRecord, LogRecord  # noqa: E402

BASE_TS = 1609426800000


def make_events(start: int, end: int, base_ts: int = BASE_TS) -> list:
    # Records with ids str(start)..str(end - 1), one second apart.
    return [LogRecord(id=str(i), message=f'message {i}', timestamp=base_ts + i * 1000)
            for i in range(start, end)]


def make_groups(*names) -> list:
    return [LogGroupRecord(name=n, arn=f'arn:{n}') for n in names]


def wait_for(predicate, timeout: float = 2.0) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return predicate()


class FakeFetchClient(FetchClient):
    """
    Scripted FetchClient. Pages are served in order from `event_pages` and
    `group_pages`; an Exception in either list is raised instead. Every
    call is recorded. When `gate` is set to a threading.Event, event
    fetches wait on it before answering.
    """

    def __init__(self, event_pages=None, group_pages=None):
        self.event_pages = list(event_pages or [])
        self.group_pages = list(group_pages or [])
        self.event_calls = []
        self.group_calls = []
        self.gate        = None
        self._lock       = threading.Lock()

    def list_log_groups(self, prefix=None, limit=50, cursor=None):
        with self._lock:
            self.group_calls.append({'prefix': prefix, 'limit': limit, 'cursor': cursor})
            result = self.group_pages.pop(0) if self.group_pages else ([], None)
        if isinstance(result, Exception):
            raise result
        return result

    def fetch_log_events(self, group, cursor=None, time_range=(None, None),
                         query='', limit=50):
        with self._lock:
            self.event_calls.append({'group': group, 'cursor': cursor,
                                     'time_range': time_range, 'query': query,
                                     'limit': limit})
        if self.gate is not None:
            self.gate.wait(5)
        with self._lock:
            result = self.event_pages.pop(0) if self.event_pages else ([], None)
        if isinstance(result, Exception):
            raise result
        return result


@pytest.fixture
def client():
    return FakeFetchClient()
