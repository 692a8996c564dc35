"""
Test doubles and record builders shared across test modules.
"""

from datetime import datetime

from lifeinbox.agents.nlu import NLUnderstanding
from lifeinbox.core.schema import MatchType, RankedResult, Record

NOW = datetime(2025, 3, 12, 15, 30)  # a Wednesday


class FakeClock:
    """Monotonic clock that only moves when told to."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


class FakeNLU(NLUnderstanding):
    """Returns a canned reply, or raises a canned error."""

    def __init__(self, reply: str = "", error: Exception = None):
        self.reply = reply
        self.error = error
        self.prompts = []

    def analyze(self, prompt: str) -> str:
        self.prompts.append(prompt)
        if self.error is not None:
            raise self.error
        return self.reply


def make_record(record_id: str, raw_text: str = "note", category: str = None, summary: str = None,
                created_at: datetime = NOW, content_type: str = "text", user_id: str = "u1") -> Record:
    return Record(id=record_id, user_id=user_id, raw_text=raw_text, created_at=created_at,
                  summary=summary, category=category, content_type=content_type)


def make_results(count: int, match_type: MatchType = MatchType.LEXICAL):
    return [
        RankedResult(make_record(f"r{i}", f"result number {i}"), round(1.0 - i * 0.01, 2), match_type)
        for i in range(1, count + 1)
    ]
