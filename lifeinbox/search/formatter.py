"""
Result formatting for chat channels.

Every channel has a markup dialect and a hard message-length budget; pages are
rendered to fit the budget, with a continuation hint while more pages remain.
"""

import html
import re
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Dict, Optional, Sequence

from ..core import config
from ..core.schema import MatchType, RankedResult


@dataclass(frozen=True)
class Markup:
    bold: Callable[[str], str]
    italic: Callable[[str], str]
    code: Callable[[str], str]
    escape: Callable[[str], str]
    strip: Callable[[str], str]


_TAG_RE = re.compile(r"<[^>]*>|<[^>]*$|&[#\w]*$")

MARKUPS: Dict[str, Markup] = {
    "html": Markup(
        bold=lambda s: f"<b>{s}</b>",
        italic=lambda s: f"<i>{s}</i>",
        code=lambda s: f"<code>{s}</code>",
        escape=lambda s: html.escape(s, quote=False),
        strip=lambda s: _TAG_RE.sub("", s),
    ),
    "whatsapp": Markup(
        bold=lambda s: f"*{s}*",
        italic=lambda s: f"_{s}_",
        code=lambda s: f'"{s}"',
        escape=lambda s: s,
        strip=lambda s: s,
    ),
    "plain": Markup(
        bold=lambda s: s,
        italic=lambda s: s,
        code=lambda s: f'"{s}"',
        escape=lambda s: s,
        strip=lambda s: s,
    ),
}


@dataclass(frozen=True)
class ChannelProfile:
    name: str
    markup: str
    max_message_length: int
    preview_chars: int
    search_command: str
    more_command: str


CHANNELS: Dict[str, ChannelProfile] = {
    "telegram": ChannelProfile("telegram", "html", 4096, 120, "/search [query]", "/more"),
    "whatsapp": ChannelProfile("whatsapp", "whatsapp", 4096, 120, "search [query]", "more"),
    "plain": ChannelProfile("plain", "plain", 1600, 80, "search [query]", "more"),
}

DEFAULT_CATEGORY = "Uncategorized"
UNKNOWN_CATEGORY_ICON = "📁"

CATEGORY_ICONS: Dict[str, str] = {
    "Work": "💼",
    "Personal": "👤",
    "Shopping": "🛒",
    "Finance": "💰",
    "Health": "🏥",
    "Travel": "✈️",
    "Learning": "📚",
    "Education": "📚",
    "Entertainment": "🎬",
    "Food": "🍽️",
    "Home": "🏠",
    "Social": "👥",
    "Ideas": "💡",
    "Photos": "📷",
    "Documents": "📄",
    "Voice": "🎤",
    "Technology": "💻",
    "General": "📝",
    DEFAULT_CATEGORY: "📦",
}
_ICONS_BY_NAME = {name.lower(): icon for name, icon in CATEGORY_ICONS.items()}

MATCH_TYPE_DESCRIPTIONS: Dict[MatchType, str] = {
    MatchType.SEMANTIC: "Semantic match - related content",
    MatchType.LEXICAL: "Text match - similar wording",
    MatchType.PHONETIC: "Sounds-like match",
}

TRUNCATION_NOTICE = "... message truncated"


def get_channel(channel: str) -> ChannelProfile:
    try:
        return CHANNELS[channel]
    except KeyError:
        raise ValueError(f"Unknown channel: {channel}") from None


def category_icon(category: Optional[str]) -> str:
    if not category:
        return CATEGORY_ICONS[DEFAULT_CATEGORY]
    return _ICONS_BY_NAME.get(category.lower(), UNKNOWN_CATEGORY_ICON)


def relative_date(created_at: datetime, now: datetime) -> str:
    """Short date relative to now: today, yesterday, 3d ago, Mar 5, Mar 5, 2024."""
    days = (now.date() - created_at.date()).days
    if days == 0:
        return "today"
    if days == 1:
        return "yesterday"
    if 1 < days < 7:
        return f"{days}d ago"
    if created_at.year == now.year:
        return f"{created_at:%b} {created_at.day}"
    return f"{created_at:%b} {created_at.day}, {created_at.year}"


def preview(text: Optional[str], limit: int) -> str:
    text = " ".join((text or "").split())
    if not text:
        return "No content available"
    if len(text) <= limit:
        return text
    return f"{text[:limit]}..."


class ResultFormatter:
    """Renders ranked results and session conditions for a channel."""

    def __init__(self, page_size: int = None, clock: Callable[[], datetime] = datetime.now):
        self.page_size = page_size or config.SEARCH_PAGE_SIZE
        self.clock = clock

    def render(self, results: Sequence[RankedResult], channel: str, page: int = 0, query: str = "") -> str:
        """Render one page (0-based) of ranked results."""
        profile = get_channel(channel)
        m = MARKUPS[profile.markup]
        total = len(results)

        if total == 0:
            return self.render_no_results(query, channel)

        start = page * self.page_size
        batch = results[start:start + self.page_size]
        if not batch:
            return self.render_end_of_results(query, total, channel)

        end = start + len(batch)
        has_more = end < total
        now = self.clock()

        if page == 0:
            lines = [f"🔍 {m.bold('Search Results')} ({total} found)"]
        else:
            lines = [f"🔍 {m.bold('More Results')} ({start + 1}-{end} of {total})"]
        lines.append(f'Query: "{m.italic(m.escape(query))}"')
        lines.append("")

        for result in batch:
            lines.extend(self._render_item(result, profile, m, now))
            lines.append("")

        if has_more:
            lines.append(m.italic(f"... {total - end} more results available"))
            lines.append(f"💡 Use {m.code(profile.more_command)} to continue")
        elif page > 0:
            lines.append(f"✅ {m.italic('End of results')}")
        else:
            lines.append("💡 Use more specific terms to narrow your search.")

        return self._fit("\n".join(lines), profile, m)

    def _render_item(self, result: RankedResult, profile: ChannelProfile, m: Markup, now: datetime):
        record = result.record
        name = record.category or DEFAULT_CATEGORY
        percent = round(result.score * 100)

        return [
            f"{category_icon(record.category)} {m.bold(m.escape(name))}",
            f"📅 {relative_date(record.created_at, now)} • 🎯 {percent}%",
            f"💬 {m.escape(preview(record.display_text, profile.preview_chars))}",
            f"🔎 {m.italic(MATCH_TYPE_DESCRIPTIONS[result.match_type])}",
        ]

    def _fit(self, text: str, profile: ChannelProfile, m: Markup) -> str:
        """Cut a render on a line boundary so it fits the channel budget."""
        if len(text) <= profile.max_message_length:
            return text

        notice = "\n" + m.italic(TRUNCATION_NOTICE)
        cut = text[:profile.max_message_length - len(notice)]
        newline = cut.rfind("\n")
        if newline > 0:
            cut = cut[:newline]
        else:
            # no whole line fits; drop markup so no tag is left open or half cut
            cut = m.strip(cut)
        return cut + notice

    def render_no_results(self, query: str, channel: str) -> str:
        profile = get_channel(channel)
        m = MARKUPS[profile.markup]
        text = (
            f"🔍 {m.bold('Search Results')}\n\n"
            f'No results found for "{m.italic(m.escape(query))}"\n\n'
            f"💡 {m.bold('Try:')}\n"
            "• Different keywords\n"
            "• Broader terms\n"
            "• Check spelling\n"
            '• Search by type (e.g., "photos", "voice messages")'
        )
        return self._fit(text, profile, m)

    def render_end_of_results(self, query: str, total: int, channel: str) -> str:
        profile = get_channel(channel)
        m = MARKUPS[profile.markup]
        text = (
            f"✅ {m.bold('End of Results')}\n\n"
            f'You\'ve seen all {total} results for "{m.italic(m.escape(query))}".\n\n'
            f"💡 Try a new search with {m.code(profile.search_command)}."
        )
        return self._fit(text, profile, m)

    def render_expired(self, channel: str, timeout_sec: int = None) -> str:
        profile = get_channel(channel)
        m = MARKUPS[profile.markup]
        minutes = max(1, round((timeout_sec or config.SESSION_TIMEOUT_SEC) / 60))
        text = (
            f"⏰ {m.bold('Search Session Expired')}\n\n"
            f"Your previous search session has expired ({minutes} min timeout).\n\n"
            f"Please perform a new search with {m.code(profile.search_command)}."
        )
        return self._fit(text, profile, m)

    def render_no_session(self, channel: str) -> str:
        profile = get_channel(channel)
        m = MARKUPS[profile.markup]
        text = (
            f"ℹ️ {m.bold('No Active Search')}\n\n"
            "You need to perform a search first.\n\n"
            f"Use {m.code(profile.search_command)} to search your content, "
            f"then use {m.code(profile.more_command)} to see additional results."
        )
        return self._fit(text, profile, m)
