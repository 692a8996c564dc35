import json
import time
from datetime import date

import pytest

from lifeinbox.core.schema import CONTENT_TYPES
from lifeinbox.search.planner import (
    COMPLEXITY_MARKERS,
    CONTENT_TYPE_KEYWORDS,
    SIMPLE_CONFIDENCE,
    EnhancementPayload,
    PlannerContext,
    PlanningError,
    QueryPlanner,
)

from helpers import NOW, FakeNLU


@pytest.fixture
def context():
    return PlannerContext(recent_categories=["Finance", "Health"], now=NOW)


def nlu_reply(**overrides):
    payload = {
        "enhanced": "dentist appointment doctor consultation",
        "intents": ["find_appointment"],
        "filters": {"contentTypes": ["voice"], "dateRange": {"from": "2025-03-01", "to": "2025-03-10"},
                    "categories": ["Health"]},
        "confidence": 0.9,
    }
    payload.update(overrides)
    return f"Here you go:\n{json.dumps(payload)}\nAnything else?"


class TestLookupTables:

    def test_content_type_families_are_known_types(self):
        assert set(CONTENT_TYPE_KEYWORDS) == set(CONTENT_TYPES)

    def test_complexity_markers(self):
        assert set(COMPLEXITY_MARKERS) == {
            "question", "temporal_relation", "context_relation", "intent_verb", "entity_type",
        }


class TestClassification:

    @pytest.mark.parametrize("query", ["rent", "electricity bill", "gym last week"])
    def test_simple(self, query):
        assert not QueryPlanner().is_complex(query)

    @pytest.mark.parametrize("query", [
        "what did the dentist say",
        "notes before christmas",
        "dentist appointment",
        "find rent",
        "one two three four",
        "stuff about taxes",
    ])
    def test_complex(self, query):
        assert QueryPlanner().is_complex(query)


class TestHeuristics:

    def test_today(self, context):
        plan = QueryPlanner().plan("notes today", context)
        assert (plan.filters.date_from, plan.filters.date_to) == (date(2025, 3, 12), date(2025, 3, 12))
        assert "temporal_search" in plan.intents

    def test_yesterday(self, context):
        plan = QueryPlanner().plan("yesterday", context)
        assert plan.filters.date_from == plan.filters.date_to == date(2025, 3, 11)

    def test_last_week(self, context):
        plan = QueryPlanner().plan("last week", context)
        assert (plan.filters.date_from, plan.filters.date_to) == (date(2025, 2, 26), date(2025, 3, 5))

    def test_this_week_starts_on_sunday(self, context):
        plan = QueryPlanner().plan("this week", context)
        assert (plan.filters.date_from, plan.filters.date_to) == (date(2025, 3, 9), date(2025, 3, 12))

    @pytest.mark.parametrize("query, content_type", [
        ("voice memos", "voice"),
        ("photos", "image"),
        ("inbox", "email"),
        ("typed notes", "text"),
    ])
    def test_content_type(self, context, query, content_type):
        assert QueryPlanner().plan(query, context).filters.content_types == [content_type]

    def test_keywords_match_whole_words_only(self, context):
        assert QueryPlanner().plan("picnic", context).filters.content_types == []

    def test_recent_category_plural_tolerant(self, context):
        plan = QueryPlanner().plan("finances", context)
        assert plan.filters.categories == ["Finance"]
        assert "category_filter" in plan.intents

    def test_synonym_expansion_keeps_original_terms(self, context):
        plan = QueryPlanner().plan("contas de luz", context)

        assert plan.enhanced_query.startswith("contas de luz")
        assert "electricity" in plan.enhanced_query
        assert plan.original == "contas de luz"

    def test_unexpanded_query_is_unchanged(self, context):
        plan = QueryPlanner().plan("rent", context)
        assert plan.enhanced_query == "rent"
        assert plan.filters.is_empty()
        assert plan.confidence == SIMPLE_CONFIDENCE
        assert not plan.complex

    def test_complex_query_without_nlu_uses_heuristics(self, context):
        plan = QueryPlanner(nlu=None).plan("what did I say about rent yesterday", context)
        assert not plan.complex
        assert plan.filters.date_from == date(2025, 3, 11)


class TestNLPath:

    def test_structured_reply(self, context):
        nlu = FakeNLU(nlu_reply())
        plan = QueryPlanner(nlu=nlu).plan("when is my dentist appointment", context)

        assert plan.complex
        assert plan.enhanced_query == "dentist appointment doctor consultation"
        assert plan.intents == ["find_appointment"]
        assert plan.filters.content_types == ["voice"]
        assert plan.filters.categories == ["Health"]
        assert (plan.filters.date_from, plan.filters.date_to) == (date(2025, 3, 1), date(2025, 3, 10))
        assert plan.confidence == 0.9

    def test_prompt_carries_query_and_context(self, context):
        nlu = FakeNLU(nlu_reply())
        QueryPlanner(nlu=nlu).plan("when is my dentist appointment", context)

        assert '"when is my dentist appointment"' in nlu.prompts[0]
        assert "Finance, Health" in nlu.prompts[0]
        assert "2025-03-12" in nlu.prompts[0]

    def test_simple_query_skips_nlu(self, context):
        nlu = FakeNLU(nlu_reply())
        QueryPlanner(nlu=nlu).plan("rent", context)
        assert nlu.prompts == []

    @pytest.mark.parametrize("enhanced", ["", "ab", "{broken"])
    def test_unusable_enhanced_string_falls_back_to_query(self, context, enhanced):
        plan = QueryPlanner(nlu=FakeNLU(nlu_reply(enhanced=enhanced))).plan("find my gym notes", context)
        assert plan.enhanced_query == "find my gym notes"
        assert plan.complex

    def test_missing_confidence_defaults(self, context):
        plan = QueryPlanner(nlu=FakeNLU(nlu_reply(confidence=None))).plan("find my gym notes", context)
        assert plan.confidence == 0.7

    def test_placeholder_dates_ignored(self, context):
        reply = nlu_reply(filters={"dateRange": {"from": "YYYY-MM-DD", "to": "YYYY-MM-DD"}})
        plan = QueryPlanner(nlu=FakeNLU(reply)).plan("find my gym notes", context)
        assert plan.filters.date_from is None and plan.filters.date_to is None

    def test_unknown_content_types_dropped(self, context):
        reply = nlu_reply(filters={"contentTypes": ["hologram", "Image"]})
        plan = QueryPlanner(nlu=FakeNLU(reply)).plan("find my gym notes", context)
        assert plan.filters.content_types == ["image"]

    @pytest.mark.parametrize("nlu", [
        FakeNLU("I could not understand the question."),
        FakeNLU("{not json at all}"),
        FakeNLU(nlu_reply(confidence=7)),
        FakeNLU(nlu_reply(intents="not-a-list")),
        FakeNLU(error=ConnectionError("ollama unreachable")),
    ])
    def test_failures_fall_back_to_heuristics(self, context, nlu):
        plan = QueryPlanner(nlu=nlu).plan("find voice notes from yesterday", context)

        assert not plan.complex
        assert plan.confidence == SIMPLE_CONFIDENCE
        assert plan.filters.content_types == ["voice"]
        assert plan.filters.date_from == date(2025, 3, 11)

    def test_timeout_falls_back(self, context):
        class SlowNLU(FakeNLU):
            def analyze(self, prompt):
                time.sleep(1.0)
                return nlu_reply()

        started = time.monotonic()
        plan = QueryPlanner(nlu=SlowNLU(), timeout_sec=0.05).plan("find voice notes", context)

        assert time.monotonic() - started < 0.9
        assert not plan.complex
        assert plan.enhanced_query == "find voice notes"


class TestParseResponse:

    def test_outermost_object_extracted(self):
        payload = QueryPlanner.parse_response('noise {"enhanced": "rent bill", "filters": {}} trailer')
        assert isinstance(payload, EnhancementPayload)
        assert payload.enhanced == "rent bill"

    def test_no_object(self):
        with pytest.raises(PlanningError):
            QueryPlanner.parse_response("nothing here")


def test_plan_never_raises_on_odd_input(context):
    for query in ["", "   ", None, "{}", "🙂🙂🙂"]:
        plan = QueryPlanner(nlu=FakeNLU(error=RuntimeError("x"))).plan(query, context)
        assert plan.original == (query or "").strip()


def test_suggestions():
    planner = QueryPlanner()
    assert planner.suggest("meet") == ["meetings"]
    assert planner.suggest("ye") == ["yesterday"]
    assert planner.suggest("x") == []
