"""
Search service - hybrid retrieval and pagination entry point.

A search plans the query, runs the lexical scan and the semantic lookup in
parallel, merges both candidate lists into one ranking, opens a pagination
session and renders the first page. "more" advances that session.
A service can own a background heartbeat that sweeps its idle sessions and
backfills missing vectors while it serves requests.
"""

import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, List, Optional, Tuple

from . import config
from .dao import RecordStore
from .heartbeat import Heartbeat, register_maintenance_tasks
from .schema import MatchCandidate, QueryPlan, RankedResult, Record, SearchFilters
from ..search.formatter import ResultFormatter, get_channel
from ..search.lexical import LexicalMatcher, normalize_query
from ..search.planner import PlannerContext, QueryPlanner
from ..search.ranking import merge
from ..search import session as pagination
from ..search.session import SessionManager
from ..util.logging import logger
from ..vector.embeddings import EmbeddingUnavailable
from ..vector.index import EmbeddingIndex


@dataclass
class MoreOutcome:
    status: str  # page | end_of_results | expired | no_active_search
    reply: str


class SearchService:
    def __init__(self, store: RecordStore, embedding_index: Optional[EmbeddingIndex] = None,
                 lexical_matcher: LexicalMatcher = None, planner: QueryPlanner = None,
                 formatter: ResultFormatter = None, sessions: SessionManager = None,
                 page_size: int = None, now: Callable[[], datetime] = datetime.now):
        page_size = page_size or config.SEARCH_PAGE_SIZE
        self.store = store
        self.embedding_index = embedding_index
        self.lexical_matcher = lexical_matcher or LexicalMatcher()
        self.planner = planner or QueryPlanner()
        self.formatter = formatter or ResultFormatter(page_size=page_size, clock=now)
        self.sessions = sessions or SessionManager(page_size=page_size)
        self.now = now
        self._executor = ThreadPoolExecutor(max_workers=2, thread_name_prefix="search")
        self.heartbeat: Optional[Heartbeat] = None

    def ingest(self, user_id: str, raw_text: str, summary: str = None, category: str = None,
               content_type: str = "text", created_at: datetime = None) -> Record:
        """Store a record and try to embed it right away; misses are left to the reindex task."""
        record = self.store.add_record(user_id, raw_text, summary=summary, category=category,
                                       content_type=content_type, created_at=created_at)
        if self.embedding_index is not None:
            self.embedding_index.index_record(record)
        return record

    def search(self, user_id: str, query: str, filters: SearchFilters = None, channel: str = None) -> str:
        """Run a search, open a fresh pagination session and render its first page."""
        channel = channel or config.DEFAULT_CHANNEL
        get_channel(channel)
        query = (query or "").strip()

        if not normalize_query(query):
            self.sessions.start(user_id, query, [])
            logger.log_search(user_id, query, "rejected", {"reason": "query too short"})
            return self.formatter.render_no_results(query, channel)

        results = self.retrieve(user_id, query, filters)
        self.sessions.start(user_id, query, results)
        return self.formatter.render(results, channel, page=0, query=query)

    def more(self, user_id: str, channel: str = None) -> MoreOutcome:
        """Render the next page of the user's active search."""
        channel = channel or config.DEFAULT_CHANNEL
        get_channel(channel)
        page = self.sessions.more(user_id)

        if page.status == pagination.PAGE:
            reply = self.formatter.render(page.results, channel, page=page.page, query=page.query)
        elif page.status == pagination.END_OF_RESULTS:
            reply = self.formatter.render_end_of_results(page.query, page.total, channel)
        elif page.status == pagination.EXPIRED:
            reply = self.formatter.render_expired(channel, self.sessions.timeout_sec)
        else:
            reply = self.formatter.render_no_session(channel)

        return MoreOutcome(status=page.status, reply=reply)

    def retrieve(self, user_id: str, query: str, filters: SearchFilters = None) -> List[RankedResult]:
        """Plan, match and rank without touching sessions."""
        started = time.monotonic()
        context = PlannerContext(recent_categories=self.store.recent_categories(user_id), now=self.now())
        plan = self.planner.plan(query, context)

        lexical, semantic = self._gather(user_id, plan, plan.filters.merged_with(filters))
        relaxed = False
        if not lexical and not semantic and not plan.filters.is_empty():
            # planner filters are hints; only caller filters are binding
            lexical, semantic = self._gather(user_id, plan, filters)
            relaxed = True

        results = merge(lexical, semantic)
        logger.log_search(user_id, query, "success", {
            "lexical": len(lexical),
            "semantic": len(semantic),
            "results": len(results),
            "complex": plan.complex,
            "relaxed_filters": relaxed,
            "duration_ms": round((time.monotonic() - started) * 1000, 2),
        })
        return results

    def _gather(self, user_id: str, plan: QueryPlan,
                filters: Optional[SearchFilters]) -> Tuple[List[MatchCandidate], List[MatchCandidate]]:
        lexical_future = self._executor.submit(self._lexical_candidates, user_id, plan.original, filters)
        semantic_future = self._executor.submit(self._semantic_candidates, user_id, plan.enhanced_query, filters)
        return lexical_future.result(), semantic_future.result()

    def _lexical_candidates(self, user_id: str, query: str, filters: Optional[SearchFilters]):
        pool = self.store.list_records(user_id, filters)
        return self.lexical_matcher.search(query, pool)

    def _semantic_candidates(self, user_id: str, query: str, filters: Optional[SearchFilters]):
        if self.embedding_index is None:
            return []
        try:
            return self.embedding_index.search(user_id, query, filters)
        except EmbeddingUnavailable as e:
            logger.log_degraded_dependency("embeddings", str(e), {"user_id": user_id})
            return []

    def start_maintenance(self, heartbeat: Heartbeat = None) -> Heartbeat:
        """Run the session sweep and embedding reindex for this service in a background heartbeat.

        ``close`` stops it.
        """
        if self.heartbeat is not None:
            raise RuntimeError("Maintenance already running")

        heartbeat = heartbeat or Heartbeat(enabled=True)
        register_maintenance_tasks(heartbeat, self.sessions, self.embedding_index)
        heartbeat.start(background=True)
        self.heartbeat = heartbeat
        return heartbeat

    def close(self):
        if self.heartbeat is not None:
            self.heartbeat.stop()
            self.heartbeat = None
        self._executor.shutdown(wait=False)
        self.planner.close()


def build_search_service(db_path: str = None) -> SearchService:
    """Assemble a search service from environment configuration."""
    store = RecordStore(db_path)
    provider = config.get_embedding_provider()
    if provider is None:
        logger.log_degraded_dependency("embeddings", f"unknown provider '{config.EMBED_PROVIDER}'")

    service = SearchService(
        store=store,
        embedding_index=EmbeddingIndex(store, provider),
        planner=QueryPlanner(config.get_nl_understanding()),
    )
    if config.is_heartbeat_enabled():
        service.start_maintenance()
    return service
