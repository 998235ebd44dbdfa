"""Tagged request/response codec used to talk to translation backends.

Requests wrap every fragment in an ``<item>`` element::

    <request>
    <item>Hello &amp; welcome</item>
    </request>

Backends answer with the original echoed next to its translation::

    <response>
    <item><original>Hello &amp; welcome</original><translated>Hallo</translated></item>
    </response>

Only ``& < > " '`` are entity-escaped. Whitespace and line breaks are payload
content and pass through untouched.
"""

from __future__ import annotations

import re
from collections import deque
from typing import Deque, Dict, List, Optional, Sequence

ITEM_PATTERN = re.compile(r"<item>(?P<body>.*?)</item>", re.DOTALL | re.IGNORECASE)
ORIGINAL_PATTERN = re.compile(
    r"<original>(?P<value>.*?)</original>", re.DOTALL | re.IGNORECASE
)
TRANSLATED_PATTERN = re.compile(
    r"<translated>(?P<value>.*?)</translated>", re.DOTALL | re.IGNORECASE
)
WHITESPACE_PATTERN = re.compile(r"\s+")

_ESCAPES = {
    "&": "&amp;",
    "<": "&lt;",
    ">": "&gt;",
    '"': "&quot;",
    "'": "&apos;",
}
_UNESCAPES = {entity: char for char, entity in _ESCAPES.items()}
_ESCAPE_PATTERN = re.compile("[&<>\"']")
_UNESCAPE_PATTERN = re.compile("|".join(re.escape(entity) for entity in _UNESCAPES))


def escape_text(text: str) -> str:
    return _ESCAPE_PATTERN.sub(lambda match: _ESCAPES[match.group(0)], text or "")


def unescape_text(text: str) -> str:
    # Single pass, so "&amp;lt;" decodes to "&lt;" and not "<".
    return _UNESCAPE_PATTERN.sub(lambda match: _UNESCAPES[match.group(0)], text or "")


def normalize_for_match(text: str) -> str:
    """Collapse whitespace runs and trim, used as the MatchIndex key."""

    return WHITESPACE_PATTERN.sub(" ", text or "").strip()


def encode_request(texts: Sequence[str]) -> str:
    """Wrap each fragment in an ``<item>`` and the lot in ``<request>``."""

    items = "\n".join(f"<item>{escape_text(text)}</item>" for text in texts)
    return f"<request>\n{items}\n</request>"


class MatchIndex:
    """Maps normalised fragment text to a FIFO queue of batch positions.

    Exact duplicates are resolved in first-seen order. This is a heuristic:
    a backend that reorders duplicate items can still get a plausible but
    wrong assignment.
    """

    def __init__(self, originals: Sequence[str]) -> None:
        self._queues: Dict[str, Deque[int]] = {}
        for index, text in enumerate(originals):
            self._queues.setdefault(normalize_for_match(text), deque()).append(index)

    def claim(self, original: str) -> Optional[int]:
        """Pop the next unmatched index for ``original``, if any."""

        queue = self._queues.get(normalize_for_match(original))
        if not queue:
            return None
        return queue.popleft()

    def pending(self) -> int:
        return sum(len(queue) for queue in self._queues.values())


def decode_response(reply: str, originals: Sequence[str]) -> List[Optional[str]]:
    """Match a backend reply back onto ``originals``.

    Returns an empty list when the reply holds no well-formed item, which
    tells the caller to use the degraded fallback. Otherwise the result has
    one slot per original; ``None`` means the original text is kept.
    """

    if not reply or "<item" not in reply.lower():
        return []

    index = MatchIndex(originals)
    translations: List[Optional[str]] = [None] * len(originals)
    parsed = 0

    for item in ITEM_PATTERN.finditer(reply):
        body = item.group("body")
        original_match = ORIGINAL_PATTERN.search(body)
        translated_match = TRANSLATED_PATTERN.search(body)
        if not original_match or not translated_match:
            continue
        parsed += 1

        original = unescape_text(original_match.group("value"))
        translated = unescape_text(translated_match.group("value"))
        if not original.strip():
            continue

        target = index.claim(original)
        if target is None:
            continue
        # Trim only to test for content; the stored value keeps its whitespace.
        if translated.strip():
            translations[target] = translated

    if not parsed:
        return []
    return translations


def encode_response(pairs: Sequence[tuple[str, str]]) -> str:
    """Build a reply in the response grammar from (original, translated) pairs."""

    items = "\n".join(
        f"<item><original>{escape_text(original)}</original>"
        f"<translated>{escape_text(translated)}</translated></item>"
        for original, translated in pairs
    )
    return f"<response>\n{items}\n</response>"


def decode_request(payload: str) -> List[str]:
    """Extract the fragment texts from a request payload."""

    return [unescape_text(match.group("body")) for match in ITEM_PATTERN.finditer(payload)]


def build_prompt(payload: str, target_language: str, source_language: str) -> str:
    """Instruction text wrapping a request payload for LLM backends."""

    source_text = (
        "the detected source language"
        if not source_language or source_language == "auto"
        else source_language
    )
    return (
        "You are a precise translation engine.\n"
        "Instructions:\n"
        f"- Task: Translate each <item> in the XML request from {source_text} "
        f"to {target_language}.\n"
        "- Format: Respond ONLY with XML and nothing else (no explanations, "
        "no comments, no extra text).\n"
        "- Mapping: For every <item> in <request>, return one <item> in "
        "<response> where <original> is the original text and <translated> "
        "is the translated text.\n"
        "- Preservation: Keep all HTML tags, attributes, whitespace, and line "
        "breaks exactly as in the original.\n"
        "- Code: Do not translate programming code, API calls, configuration "
        "samples, stack traces, or other technical snippets. Copy these parts "
        "exactly.\n"
        "\n"
        "Response schema:\n"
        "\n"
        "<response>\n"
        "<item>\n"
        "<original>...</original>\n"
        "<translated>...</translated>\n"
        "</item>\n"
        "</response>\n"
        "\n"
        "Request:\n"
        f"{payload}"
    )
