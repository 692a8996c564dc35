import pytest

from lifeinbox.core.schema import MatchType
from lifeinbox.search.lexical import (
    FIELD_WEIGHTS,
    PHONETIC_GROUPS,
    PHONETIC_WEIGHT,
    LexicalMatcher,
    levenshtein_distance,
    levenshtein_similarity,
    normalize_query,
    phonetic_code,
    phonetic_codes,
)

from helpers import make_record


class TestNormalizeQuery:

    def test_lowercases_and_strips_punctuation(self):
        assert normalize_query("Electricity, BILL!") == ["electricity", "bill"]

    def test_drops_single_characters(self):
        assert normalize_query("a b cd") == ["cd"]

    @pytest.mark.parametrize("query", ["", "   ", "?", None])
    def test_nothing_usable(self, query):
        assert normalize_query(query) == []


class TestLevenshtein:

    @pytest.mark.parametrize("a, b, expected", [
        ("kitten", "sitting", 3),
        ("", "abc", 3),
        ("same", "same", 0),
        ("flaw", "lawn", 2),
    ])
    def test_distance(self, a, b, expected):
        assert levenshtein_distance(a, b) == expected

    def test_similarity_normalised_by_longer_string(self):
        assert levenshtein_similarity("elektrisity", "electricity") == pytest.approx(1 - 2 / 11)

    def test_empty_strings_identical(self):
        assert levenshtein_similarity("", "") == 1.0

    @pytest.mark.parametrize("a, b", [
        ("elektrisity", "electricity"),
        ("bil", "bill"),
        ("meeting", "meating"),
        ("", "rent"),
        ("dentist", "dent"),
    ])
    def test_similarity_is_symmetric(self, a, b):
        assert levenshtein_similarity(a, b) == levenshtein_similarity(b, a)

    def test_zero_only_when_nothing_lines_up(self):
        assert levenshtein_similarity("abc", "xyz") == 0.0
        assert levenshtein_similarity("abc", "xbz") > 0.0

    def test_garbage_of_same_length_scores_below_identity(self):
        word = "meeting"
        garbage = "qzxvkpw"
        assert len(garbage) == len(word)
        assert levenshtein_similarity(word, garbage) < levenshtein_similarity(word, word) == 1.0


class TestPhoneticCode:

    @pytest.mark.parametrize("word, code", [
        ("meeting", "m352"),
        ("meating", "m352"),
        ("electricity", "e423"),
        ("elektrisity", "e423"),
        ("bill", "b400"),
        ("bil", "b400"),
    ])
    def test_codes(self, word, code):
        assert phonetic_code(word) == code

    def test_empty_word(self):
        assert phonetic_code("123") == ""

    def test_codes_for_text_skip_short_words(self):
        assert phonetic_codes("a bill") == {"b400"}

    def test_every_consonant_group_has_a_distinct_digit(self):
        digits = list(PHONETIC_GROUPS.values())
        assert len(digits) == len(set(digits))
        letters = "".join(PHONETIC_GROUPS)
        assert len(letters) == len(set(letters))
        assert not set(letters) & set("aeiouhwy")


def test_field_weights_cover_searchable_fields():
    assert set(FIELD_WEIGHTS) == {"raw_text", "summary", "category"}
    assert FIELD_WEIGHTS["raw_text"] > FIELD_WEIGHTS["summary"] > FIELD_WEIGHTS["category"]


class TestLexicalMatcher:

    @pytest.fixture
    def matcher(self):
        return LexicalMatcher()

    def test_misspelled_query_matches(self, matcher):
        bill = make_record("bill", "electricity bill due December 1st")

        candidates = matcher.search("elektrisity bil", [bill])

        best = max(candidates, key=lambda c: c.score)
        assert best.record is bill
        assert best.score >= 0.3
        assert best.strategy in (MatchType.LEXICAL, MatchType.PHONETIC)

    def test_misspelling_scores_as_expected(self, matcher):
        bill = make_record("bill", "electricity bill due December 1st")

        score = matcher.lexical_score(["elektrisity", "bil"], bill)

        # fuzzy hit (similarity 9/11, penalised) plus a substring hit, full coverage
        assert score == pytest.approx(((9 / 11) * 0.8 + 1.0) / 2)

    def test_substring_weight_by_field(self, matcher):
        in_text = make_record("t", "rent payment")
        in_summary = make_record("s", "note", summary="rent")
        in_category = make_record("c", "note", category="Rent")

        assert matcher.lexical_score(["rent"], in_text) == 1.0
        assert matcher.lexical_score(["rent"], in_summary) == 0.9
        assert matcher.lexical_score(["rent"], in_category) == 0.7

    def test_partial_coverage_penalised(self, matcher):
        record = make_record("r", "dentist on friday")
        assert matcher.lexical_score(["dentist", "zebra"], record) == pytest.approx(0.25)

    def test_sound_alike_match(self, matcher):
        meeting = make_record("m", "team meeting moved to thursday")

        candidates = matcher.search("meating", [meeting])

        phonetic = [c for c in candidates if c.strategy == MatchType.PHONETIC]
        assert phonetic and phonetic[0].score == pytest.approx(PHONETIC_WEIGHT)

    def test_strong_lexical_beats_phonetic(self, matcher):
        bill = make_record("bill", "electricity bill due December 1st")

        candidates = matcher.search("elektrisity bil", [bill])
        by_strategy = {c.strategy: c.score for c in candidates}

        assert by_strategy[MatchType.LEXICAL] > by_strategy[MatchType.PHONETIC]

    def test_below_min_score_dropped(self, matcher):
        record = make_record("r", "dentist on friday")
        assert matcher.search("zebra giraffe", [record]) == []

    def test_empty_pool(self, matcher):
        assert matcher.search("meeting", []) == []

    def test_empty_query(self, matcher):
        assert matcher.search("  ", [make_record("r", "anything")]) == []

    def test_results_sorted_best_first(self, matcher):
        exact = make_record("exact", "gym")
        fuzzy = make_record("fuzzy", "gyms and pools")
        candidates = matcher.search("gym", [fuzzy, exact])

        scores = [c.score for c in candidates]
        assert scores == sorted(scores, reverse=True)
