from __future__ import annotations

import logging
from collections import OrderedDict
from threading import Lock
from typing import Any, Callable

logger = logging.getLogger(__name__)

DEFAULT_MAX_VIEWS = 256


class ReportView:
    """Displayed state of one report, guarded by a monotonically increasing request ticket.

    Only the result of the most recently issued refresh becomes the displayed
    state; a slower, older refresh finishing later does not overwrite it.
    Every caller still receives the result of its own load. After ``close()``
    nothing is applied any more.
    """

    def __init__(self) -> None:
        self._lock = Lock()
        self._issued = 0
        self._applied = 0
        self._state: Any = None
        self._closed = False

    def begin(self) -> int:
        with self._lock:
            self._issued += 1
            return self._issued

    def apply(self, ticket: int, value: Any) -> bool:
        with self._lock:
            if self._closed:
                logger.debug("View closed; dropping result of request %s", ticket)
                return False
            if ticket != self._issued:
                logger.debug("Dropping stale result %s (latest is %s)", ticket, self._issued)
                return False
            self._state = value
            self._applied = ticket
            return True

    def refresh(self, loader: Callable[[], Any]) -> Any:
        ticket = self.begin()
        value = loader()
        self.apply(ticket, value)
        return value

    @property
    def current(self) -> Any:
        with self._lock:
            return self._state

    @property
    def applied_ticket(self) -> int:
        with self._lock:
            return self._applied

    @property
    def closed(self) -> bool:
        with self._lock:
            return self._closed

    def close(self) -> None:
        with self._lock:
            self._closed = True


class ReportViewRegistry:
    """Views per (session, report) pair, least recently used evicted past ``max_views``."""

    def __init__(self, max_views: int = DEFAULT_MAX_VIEWS) -> None:
        self._lock = Lock()
        self._max_views = max(1, max_views)
        self._views: OrderedDict[tuple[str, str], ReportView] = OrderedDict()

    def get(self, session_key: str, report_key: str) -> ReportView:
        key = (session_key, report_key)
        with self._lock:
            view = self._views.get(key)
            if view is None or view.closed:
                view = ReportView()
                self._views[key] = view
            self._views.move_to_end(key)
            while len(self._views) > self._max_views:
                evicted_key, evicted = self._views.popitem(last=False)
                evicted.close()
                logger.debug("Evicted report view %s", evicted_key)
            return view

    def close_session(self, session_key: str) -> int:
        with self._lock:
            keys = [key for key in self._views if key[0] == session_key]
            for key in keys:
                self._views.pop(key).close()
            return len(keys)

    def __len__(self) -> int:
        with self._lock:
            return len(self._views)
