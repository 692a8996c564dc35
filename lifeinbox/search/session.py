"""
Pagination sessions - per-user cursor over the last search's ranked results.

State machine per user: absent -> active -> active(advanced) -> expired/absent.
A new search always replaces the session; "more" advances it, a sweep drops
idle ones.
"""

import threading
import time
from abc import ABC, abstractmethod
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional

from ..core import config
from ..core.schema import RankedResult
from ..util.logging import logger


@dataclass
class PaginationSession:
    query: str
    results: List[RankedResult]
    offset: int = 0
    last_activity: float = 0.0

    @property
    def total(self) -> int:
        return len(self.results)


class SessionStore(ABC):
    """Storage for pagination sessions, keyed by user id."""

    @abstractmethod
    def get(self, user_id: str) -> Optional[PaginationSession]:
        pass

    @abstractmethod
    def put(self, user_id: str, session: PaginationSession) -> None:
        pass

    @abstractmethod
    def delete(self, user_id: str) -> None:
        pass

    @abstractmethod
    def user_ids(self) -> List[str]:
        pass


class InMemorySessionStore(SessionStore):
    def __init__(self):
        self._sessions: Dict[str, PaginationSession] = {}

    def get(self, user_id: str) -> Optional[PaginationSession]:
        return self._sessions.get(user_id)

    def put(self, user_id: str, session: PaginationSession) -> None:
        self._sessions[user_id] = session

    def delete(self, user_id: str) -> None:
        self._sessions.pop(user_id, None)

    def user_ids(self) -> List[str]:
        return list(self._sessions.keys())


# Outcomes of a "more" request
PAGE = "page"
END_OF_RESULTS = "end_of_results"
EXPIRED = "expired"
NO_ACTIVE_SEARCH = "no_active_search"


@dataclass
class PageSlice:
    """What a "more" request resolved to, before rendering."""
    status: str
    query: str = ""
    results: List[RankedResult] = field(default_factory=list)
    page: int = 0

    @property
    def total(self) -> int:
        return len(self.results)


class SessionManager:
    """Creates, advances and expires pagination sessions.

    Every mutation for one user runs under that user's lock, so two "more"
    requests can never hand out the same page twice. A lock lives only while
    some caller holds or waits on it.
    """

    def __init__(self, store: SessionStore = None, page_size: int = None, timeout_sec: float = None,
                 clock: Callable[[], float] = time.monotonic):
        self.store = store if store is not None else InMemorySessionStore()
        self.page_size = page_size or config.SEARCH_PAGE_SIZE
        self.timeout_sec = config.SESSION_TIMEOUT_SEC if timeout_sec is None else timeout_sec
        self.clock = clock
        self._locks: Dict[str, list] = {}  # user_id -> [lock, holders]
        self._locks_guard = threading.Lock()

    @contextmanager
    def _user_lock(self, user_id: str):
        with self._locks_guard:
            entry = self._locks.get(user_id)
            if entry is None:
                entry = self._locks[user_id] = [threading.Lock(), 0]
            entry[1] += 1

        try:
            with entry[0]:
                yield
        finally:
            with self._locks_guard:
                entry[1] -= 1
                if entry[1] == 0:
                    del self._locks[user_id]

    def _is_expired(self, session: PaginationSession, now: float) -> bool:
        return now - session.last_activity > self.timeout_sec

    def start(self, user_id: str, query: str, results: List[RankedResult]) -> PaginationSession:
        """Open a session at offset 0, replacing whatever the user had."""
        with self._user_lock(user_id):
            session = PaginationSession(
                query=query,
                results=list(results),
                offset=0,
                last_activity=self.clock(),
            )
            self.store.put(user_id, session)

        logger.log_session_event("created", user_id, {"total": session.total})
        return session

    def more(self, user_id: str) -> PageSlice:
        """Advance the user's session by one page."""
        with self._user_lock(user_id):
            session = self.store.get(user_id)
            if session is None:
                status = NO_ACTIVE_SEARCH
                outcome = PageSlice(status)
            elif self._is_expired(session, self.clock()):
                self.store.delete(user_id)
                status = EXPIRED
                outcome = PageSlice(status, query=session.query)
            else:
                next_offset = session.offset + self.page_size
                if next_offset >= session.total:
                    status = END_OF_RESULTS
                    outcome = PageSlice(status, query=session.query, results=session.results,
                                        page=next_offset // self.page_size)
                else:
                    session.offset = next_offset
                    session.last_activity = self.clock()
                    status = PAGE
                    outcome = PageSlice(status, query=session.query, results=session.results,
                                        page=next_offset // self.page_size)

        logger.log_session_event(status, user_id, {"page": outcome.page})
        return outcome

    def get(self, user_id: str) -> Optional[PaginationSession]:
        with self._user_lock(user_id):
            return self.store.get(user_id)

    def sweep(self) -> int:
        """Delete every session idle longer than the timeout. Returns the number removed."""
        removed = 0
        for user_id in self.store.user_ids():
            with self._user_lock(user_id):
                session = self.store.get(user_id)
                if session is not None and self._is_expired(session, self.clock()):
                    self.store.delete(user_id)
                    removed += 1

        if removed:
            logger.log_session_event("swept", "*", {"removed": removed})
        return removed

    def active_count(self) -> int:
        return len(self.store.user_ids())
