"""
Lexical matching - typo-tolerant and sound-alike matching over record text.

Two independent passes feed the ranker:
  * lexical: per query term, substring hits per field, else the best
    normalised Levenshtein similarity against any word in the record;
  * phonetic: a simplified Soundex code per word, so "meating" finds "meeting".
"""

import re
from typing import Dict, Iterable, List, Sequence

from ..core import config
from ..core.schema import MatchCandidate, MatchType, Record

_NON_ALNUM = re.compile(r"[^\w]", re.UNICODE)
_NON_ALPHA = re.compile(r"[^a-z\s]")

# Weight of a substring hit, by record field
FIELD_WEIGHTS: Dict[str, float] = {
    "raw_text": 1.0,
    "summary": 0.9,
    "category": 0.7,
}

FUZZY_THRESHOLD = 0.6
FUZZY_PENALTY = 0.8
PHONETIC_WEIGHT = 0.75
PHONETIC_CODE_LENGTH = 4

# Consonant groups of the phonetic code; vowels, h, w and y carry no digit
PHONETIC_GROUPS: Dict[str, str] = {
    "bfpv": "1",
    "cgjkqsxz": "2",
    "dt": "3",
    "l": "4",
    "mn": "5",
    "r": "6",
}
_LETTER_CODES: Dict[str, str] = {letter: digit for letters, digit in PHONETIC_GROUPS.items() for letter in letters}


def normalize_query(query: str) -> List[str]:
    """Lowercase alphanumeric tokens of length >= 2."""
    tokens = []
    for raw in (query or "").lower().split():
        token = _NON_ALNUM.sub("", raw).replace("_", "")
        if len(token) >= 2:
            tokens.append(token)
    return tokens


def levenshtein_distance(a: str, b: str) -> int:
    """Minimum number of single-character insertions, deletions and substitutions."""
    if len(a) < len(b):
        a, b = b, a
    if not b:
        return len(a)

    previous = list(range(len(b) + 1))
    for i, char_a in enumerate(a, start=1):
        current = [i]
        for j, char_b in enumerate(b, start=1):
            cost = 0 if char_a == char_b else 1
            current.append(min(
                previous[j] + 1,         # deletion
                current[j - 1] + 1,      # insertion
                previous[j - 1] + cost,  # substitution
            ))
        previous = current
    return previous[-1]


def levenshtein_similarity(a: str, b: str) -> float:
    """1 - distance / longer length. Identical strings (including two empty ones) score 1."""
    longest = max(len(a), len(b))
    if longest == 0:
        return 1.0
    return 1.0 - levenshtein_distance(a, b) / longest


def phonetic_code(word: str) -> str:
    """Simplified Soundex: first letter, then one digit per consonant group change, padded to 4."""
    word = re.sub(r"[^a-z]", "", (word or "").lower())
    if not word:
        return ""

    code = word[0]
    for prev, char in zip(word, word[1:]):
        digit = _LETTER_CODES.get(char)
        if digit and _LETTER_CODES.get(prev) != digit:
            code += digit

    return code[:PHONETIC_CODE_LENGTH].ljust(PHONETIC_CODE_LENGTH, "0")


def phonetic_codes(text: str) -> set:
    """Codes for every word in a text."""
    cleaned = _NON_ALPHA.sub(" ", (text or "").lower())
    return {phonetic_code(word) for word in cleaned.split() if len(word) >= 2}


def _words(texts: Iterable[str]) -> List[str]:
    words = []
    for text in texts:
        words.extend(w for w in (_NON_ALNUM.sub(" ", text).split()) if len(w) >= 2)
    return words


class LexicalMatcher:
    """Scores a query against a candidate pool with edit-distance and phonetic strategies."""

    def __init__(self, fuzzy_threshold: float = FUZZY_THRESHOLD, phonetic_weight: float = PHONETIC_WEIGHT):
        self.fuzzy_threshold = fuzzy_threshold
        self.phonetic_weight = phonetic_weight

    def search(self, query: str, candidate_pool: Sequence[Record], min_score: float = None) -> List[MatchCandidate]:
        """Return lexical and phonetic candidates scoring at least ``min_score``, best first."""
        min_score = config.LEXICAL_MIN_SCORE if min_score is None else min_score
        terms = normalize_query(query)
        if not terms or not candidate_pool:
            return []

        term_codes = [phonetic_code(term) for term in terms]
        candidates: List[MatchCandidate] = []

        for record in candidate_pool:
            lexical = self.lexical_score(terms, record)
            if lexical > 0 and lexical >= min_score:
                candidates.append(MatchCandidate(record, lexical, MatchType.LEXICAL))

            phonetic = self.phonetic_score(term_codes, record)
            if phonetic > 0 and phonetic >= min_score:
                candidates.append(MatchCandidate(record, phonetic, MatchType.PHONETIC))

        # sorted() is stable, so equal scores keep pool order
        return sorted(candidates, key=lambda c: c.score, reverse=True)

    def _fields(self, record: Record) -> Dict[str, str]:
        return {
            "raw_text": (record.raw_text or "").lower(),
            "summary": (record.summary or "").lower(),
            "category": (record.category or "").lower(),
        }

    def lexical_score(self, terms: Sequence[str], record: Record) -> float:
        """Mean term score times the share of terms that matched at all."""
        fields = self._fields(record)
        words = None
        total = 0.0
        matched = 0

        for term in terms:
            term_score = max(
                (weight for name, weight in FIELD_WEIGHTS.items() if term in fields[name]),
                default=0.0,
            )

            if term_score == 0.0:
                if words is None:
                    words = _words(fields.values())
                best = self.best_fuzzy_match(term, words)
                if best > self.fuzzy_threshold:
                    term_score = best * FUZZY_PENALTY

            if term_score > 0:
                matched += 1
                total += term_score

        coverage = matched / len(terms)
        return min(1.0, (total / len(terms)) * coverage)

    def best_fuzzy_match(self, term: str, words: Iterable[str]) -> float:
        best = 0.0
        for word in words:
            best = max(best, levenshtein_similarity(term, word))
            if best > 0.85:
                break
        return best

    def phonetic_score(self, term_codes: Sequence[str], record: Record) -> float:
        """Share of query terms with a sound-alike word in the record, scaled by the phonetic weight."""
        codes = phonetic_codes(" ".join(filter(None, (record.raw_text, record.summary, record.category))))
        if not codes:
            return 0.0

        hits = sum(1 for code in term_codes if code and code in codes)
        return (hits / len(term_codes)) * self.phonetic_weight
