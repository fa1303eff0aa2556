from .models import MORE_EVENT, MORE_GROUP, LogGroupRecord, LogRecord


# Log events

class LogEventCollection:
    """
    Ordered log records with the set of opened (expanded) rows.

    Holds three things true after every mutation:
      - ids of real records are pairwise distinct
      - the MORE_EVENT sentinel, when present, is the last item
      - `opened` only indexes real records
    Not thread-safe; PaneState guards it with its lock.
    """

    def __init__(self):
        self._records: list = []
        self._ids:     set  = set()
        self.opened:   set  = set()

    # Size / access

    def __len__(self) -> int:
        return len(self._records)

    def __getitem__(self, idx: int) -> LogRecord:
        return self._records[idx]

    def __iter__(self):
        return iter(self._records)

    @property
    def records(self) -> list:
        return list(self._records)

    def ids(self) -> list:
        return [r.id for r in self._records]

    def real_count(self) -> int:
        return len(self._records) - (1 if self.has_more() else 0)

    def has_more(self) -> bool:
        return bool(self._records) and self._records[-1].is_sentinel

    def get_message(self, idx: int) -> str:
        if not 0 <= idx < len(self._records):
            return ''
        return self._records[idx].message

    # Mutation

    def push(self, new_page, has_next: bool = False, expand_all: bool = False) -> int:
        """
        Merge one page of results and return how many records were appended.

        Pages overlap with what is already held (a re-fetch after a cursor
        or a tail poll starting at the newest timestamp). The suffix after
        the last already-known record is appended; a page that shares
        nothing with the collection is appended whole, and a page made
        only of known ids appends nothing.
        """
        self._strip_sentinel()
        page = [r for r in new_page if not r.is_sentinel]

        start = len(page)
        for i, rec in enumerate(page):
            if rec.id not in self._ids:
                start = i
                break

        added = 0
        for rec in page[start:]:
            if rec.id in self._ids:
                continue
            if expand_all:
                self.opened.add(len(self._records))
            self._records.append(rec)
            self._ids.add(rec.id)
            added += 1

        if has_next:
            self._records.append(MORE_EVENT)
        return added

    def reset(self) -> None:
        self._records = []
        self._ids     = set()
        self.opened   = set()

    def toggle(self, idx: int) -> bool:
        # Returns the new opened state; the sentinel row never opens.
        if not 0 <= idx < self.real_count():
            return False
        if idx in self.opened:
            self.opened.discard(idx)
            return False
        self.opened.add(idx)
        return True

    def open_all(self) -> None:
        self.opened = set(range(self.real_count()))

    def close_all(self) -> None:
        self.opened = set()

    # Internal

    def _strip_sentinel(self) -> None:
        if self.has_more():
            self._records.pop()


# Log groups

class LogGroupCollection:
    # Ordered log groups as listed; a trailing MORE_GROUP marks more pages.

    def __init__(self):
        self._groups: list = []

    def __len__(self) -> int:
        return len(self._groups)

    def __getitem__(self, idx: int) -> LogGroupRecord:
        return self._groups[idx]

    def __iter__(self):
        return iter(self._groups)

    @property
    def groups(self) -> list:
        return list(self._groups)

    def has_more(self) -> bool:
        return bool(self._groups) and self._groups[-1].is_sentinel

    def names(self) -> list:
        return [g.name for g in self._groups if not g.is_sentinel]

    def push(self, new_page, has_next: bool = False) -> None:
        if self.has_more():
            self._groups.pop()
        self._groups.extend(g for g in new_page if not g.is_sentinel)
        if has_next:
            self._groups.append(MORE_GROUP)

    def filter(self, substring: str) -> list:
        # Case-sensitive match on the name; the source list is left untouched.
        return [g for g in self._groups if substring in g.name]

    def clear(self) -> None:
        self._groups = []
