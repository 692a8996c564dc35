"""
Query planning - turns a raw user query into an enhanced query plus filter hints.

Short queries are handled with local heuristics. Longer or structurally rich
queries go to an NL-understanding collaborator, bounded by a timeout, and fall
back to the heuristics on any failure. ``QueryPlanner.plan`` never raises.
"""

import re
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FutureTimeout
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from ..core import config
from ..core.schema import CONTENT_TYPES, QueryPlan, SearchFilters
from ..util.logging import logger

MAX_SIMPLE_TOKENS = 3
SIMPLE_CONFIDENCE = 0.6
NLU_DEFAULT_CONFIDENCE = 0.7
FALLBACK_CONFIDENCE = 0.5

# A query matching any of these needs real language understanding
COMPLEXITY_MARKERS = {
    "question": re.compile(r"\b(when|where|who|what|how|why)\b", re.IGNORECASE),
    "temporal_relation": re.compile(r"\b(before|after|during|since|until)\b", re.IGNORECASE),
    "context_relation": re.compile(r"\b(about|regarding|related to|similar to)\b", re.IGNORECASE),
    "intent_verb": re.compile(r"\b(find|show|search|look for)\b", re.IGNORECASE),
    "entity_type": re.compile(r"\b(meeting|appointment|call|email)\b", re.IGNORECASE),
}

# Checked in order; first family with a keyword hit wins
CONTENT_TYPE_KEYWORDS = {
    "voice": ["voice", "audio", "recording", "message", "spoke", "said"],
    "image": ["image", "photo", "picture", "screenshot", "pic"],
    "email": ["email", "mail", "sent", "inbox"],
    "text": ["note", "text", "wrote", "typed"],
}

RELATIVE_DATES = ("today", "yesterday", "last week", "this week")

# Phrase -> expanded query, used when no NL collaborator helps
SYNONYMS = {
    # Portuguese
    "contas de luz": "contas de luz conta fatura boleto electricity bill power",
    "conta de luz": "conta de luz fatura boleto electricity bill power",
    "energia elétrica": "energia elétrica eletricidade electricity power energy",
    "fatura energia": "fatura energia conta boleto electricity bill invoice",
    # Spanish
    "factura electricidad": "factura electricidad recibo electricity bill power",
    "recibo luz": "recibo luz factura cuenta electricity bill power",
    # French
    "facture électricité": "facture électricité note electricity bill power",
    # English
    "electricity bill": "electricity bill electric power energy utility invoice receipt",
    "power bill": "power bill electricity electric energy utility invoice",
    "utility bill": "utility bill electricity power energy service invoice",
}

SUGGESTIONS = [
    "today", "yesterday", "last week", "this month",
    "voice messages", "images", "emails", "notes",
    "meetings", "appointments", "important", "urgent", "travel", "receipts",
]

_JSON_OBJECT = re.compile(r"\{[\s\S]*\}")

PROMPT_TEMPLATE = """You are enhancing search queries for a multilingual personal life inbox. \
Users store notes, voice messages, images and emails in several languages.

Original Query: "{query}"

User Context:
- Today: {today}
- Recent categories: {categories}

Expand the query with synonyms and translations to improve search coverage:
1. Keep the original query terms
2. Add relevant synonyms in the same language
3. Add key English translations if the query is in another language
4. Focus on searchable keywords, not full sentences

Respond with one JSON object:
{{
  "enhanced": "original query plus expanded synonyms and translations",
  "intents": ["primary_intent"],
  "filters": {{
    "contentTypes": ["text", "voice", "image", "email"],
    "dateRange": {{"from": "YYYY-MM-DD", "to": "YYYY-MM-DD"}},
    "categories": ["category_name"]
  }},
  "confidence": 0.9
}}
Only include filters the query clearly asks for."""


def _keyword_pattern(keyword: str) -> re.Pattern:
    return re.compile(rf"\b{re.escape(keyword)}s?\b", re.IGNORECASE)


_CONTENT_TYPE_PATTERNS = {
    content_type: [_keyword_pattern(k) for k in keywords]
    for content_type, keywords in CONTENT_TYPE_KEYWORDS.items()
}


class DateRangePayload(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    date_from: Optional[date] = Field(default=None, alias="from")
    date_to: Optional[date] = Field(default=None, alias="to")

    @field_validator("date_from", "date_to", mode="before")
    @classmethod
    def lenient_date(cls, v):
        # Placeholders such as "YYYY-MM-DD" mean "no bound"
        if v in (None, ""):
            return None
        try:
            return date.fromisoformat(str(v)[:10])
        except ValueError:
            return None


class FiltersPayload(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    content_types: Optional[List[str]] = Field(default=None, alias="contentTypes")
    date_range: Optional[DateRangePayload] = Field(default=None, alias="dateRange")
    categories: Optional[List[str]] = None

    @field_validator("content_types")
    @classmethod
    def known_content_types(cls, v):
        if v is None:
            return v
        return [t.lower() for t in v if t and t.lower() in CONTENT_TYPES]


class EnhancementPayload(BaseModel):
    """Shape of the JSON object the NL collaborator is asked to return."""
    enhanced: Optional[str] = None
    intents: Optional[List[str]] = None
    filters: Optional[FiltersPayload] = None
    confidence: Optional[float] = Field(default=None, ge=0.0, le=1.0)

    def to_filters(self) -> SearchFilters:
        if self.filters is None:
            return SearchFilters()
        date_range = self.filters.date_range or DateRangePayload()
        return SearchFilters(
            content_types=list(self.filters.content_types or []),
            categories=[c for c in (self.filters.categories or []) if c],
            date_from=date_range.date_from,
            date_to=date_range.date_to,
        )


class PlanningError(ValueError):
    """The collaborator answered, but not with a usable plan."""


@dataclass
class PlannerContext:
    recent_categories: List[str] = field(default_factory=list)
    now: Optional[datetime] = None


class QueryPlanner:
    def __init__(self, nlu=None, timeout_sec: float = None):
        self.nlu = nlu
        self.timeout_sec = config.NLU_TIMEOUT_SEC if timeout_sec is None else timeout_sec
        self._executor = ThreadPoolExecutor(max_workers=2, thread_name_prefix="nlu") if nlu else None

    def is_complex(self, query: str) -> bool:
        if len(query.split()) > MAX_SIMPLE_TOKENS:
            return True
        return any(pattern.search(query) for pattern in COMPLEXITY_MARKERS.values())

    def plan(self, query: str, context: PlannerContext = None) -> QueryPlan:
        """Build a plan for ``query``. Never raises."""
        context = context or PlannerContext()
        now = context.now or datetime.now()
        query = (query or "").strip()

        try:
            if self.nlu is not None and self.is_complex(query):
                try:
                    return self._plan_with_nlu(query, context, now)
                except FutureTimeout:
                    logger.log_degraded_dependency("nlu", f"timed out after {self.timeout_sec}s")
                except (PlanningError, ValidationError) as e:
                    logger.log_degraded_dependency("nlu", f"unusable response: {e}")
                except Exception as e:
                    logger.log_degraded_dependency("nlu", repr(e))
            return self._plan_simple(query, context, now)
        except Exception as e:
            logger.error(f"Query planning failed, using raw query: {e}")
            return QueryPlan(original=query, enhanced_query=query, confidence=FALLBACK_CONFIDENCE)

    # Heuristic path

    def _plan_simple(self, query: str, context: PlannerContext, now: datetime) -> QueryPlan:
        lowered = query.lower()
        intents = []
        filters = SearchFilters()

        date_range = self.relative_date_range(lowered, now.date())
        if date_range:
            filters.date_from, filters.date_to = date_range
            intents.append("temporal_search")

        content_type = self.detect_content_type(lowered)
        if content_type:
            filters.content_types = [content_type]
            intents.append("content_type_filter")

        categories = self.detect_categories(lowered, context.recent_categories)
        if categories:
            filters.categories = categories
            intents.append("category_filter")

        return QueryPlan(
            original=query,
            enhanced_query=self.expand_synonyms(query),
            intents=intents,
            filters=filters,
            confidence=SIMPLE_CONFIDENCE,
            complex=False,
        )

    @staticmethod
    def relative_date_range(lowered: str, today: date) -> Optional[Tuple[date, date]]:
        """Inclusive date range for the first relative date phrase in the query."""
        for phrase in RELATIVE_DATES:
            if not re.search(rf"\b{phrase}\b", lowered):
                continue
            if phrase == "today":
                return today, today
            if phrase == "yesterday":
                yesterday = today - timedelta(days=1)
                return yesterday, yesterday
            if phrase == "last week":
                return today - timedelta(days=14), today - timedelta(days=7)
            if phrase == "this week":
                # weeks start on Sunday
                start = today - timedelta(days=(today.weekday() + 1) % 7)
                return start, today
        return None

    @staticmethod
    def detect_content_type(lowered: str) -> Optional[str]:
        for content_type, patterns in _CONTENT_TYPE_PATTERNS.items():
            if any(p.search(lowered) for p in patterns):
                return content_type
        return None

    @staticmethod
    def detect_categories(lowered: str, recent_categories: List[str]) -> List[str]:
        found = []
        for category in recent_categories or []:
            name = category.strip().lower()
            if not name:
                continue
            stem = name[:-1] if name.endswith("s") and len(name) > 3 else name
            if _keyword_pattern(stem).search(lowered) and category not in found:
                found.append(category)
        return found

    @staticmethod
    def expand_synonyms(query: str) -> str:
        lowered = query.lower().strip()
        if lowered in SYNONYMS:
            return SYNONYMS[lowered]

        for phrase, expansion in SYNONYMS.items():
            if phrase in lowered or (len(lowered) >= 3 and lowered in phrase):
                return f"{query} {expansion}"
        return query

    def suggest(self, partial_query: str, limit: int = 5) -> List[str]:
        """Canned completions for a partially typed query."""
        partial = (partial_query or "").strip().lower()
        if len(partial) < 2:
            return []
        return [s for s in SUGGESTIONS if partial in s][:limit]

    # NL path

    def build_prompt(self, query: str, context: PlannerContext, now: datetime) -> str:
        return PROMPT_TEMPLATE.format(
            query=query,
            today=now.date().isoformat(),
            categories=", ".join(context.recent_categories) or "none",
        )

    def _plan_with_nlu(self, query: str, context: PlannerContext, now: datetime) -> QueryPlan:
        prompt = self.build_prompt(query, context, now)
        future = self._executor.submit(self.nlu.analyze, prompt)
        try:
            raw = future.result(timeout=self.timeout_sec)
        except FutureTimeout:
            future.cancel()
            raise

        payload = self.parse_response(raw)

        enhanced = (payload.enhanced or "").strip()
        if len(enhanced) < 3 or "{" in enhanced:
            enhanced = query

        return QueryPlan(
            original=query,
            enhanced_query=enhanced,
            intents=list(payload.intents or []),
            filters=payload.to_filters(),
            confidence=payload.confidence if payload.confidence else NLU_DEFAULT_CONFIDENCE,
            complex=True,
        )

    @staticmethod
    def parse_response(raw: str) -> EnhancementPayload:
        """Validate the outermost JSON object of a model reply."""
        match = _JSON_OBJECT.search(raw or "")
        if not match:
            raise PlanningError("No JSON object in NL response")
        return EnhancementPayload.model_validate_json(match.group(0))

    def close(self):
        if self._executor is not None:
            self._executor.shutdown(wait=False)
