"""Batch building and text splitting utilities."""

from __future__ import annotations

import re
from typing import Iterable, List, Optional

from .structures import Batch, Group

DEFAULT_BATCH_MAX_CHARS = 64000
DEFAULT_BATCH_MAX_ITEMS = 20
DEFAULT_CHUNK_MAX_LENGTH = 2000

SENTENCE_ENDINGS = ".!?…‽。！？"
SENTENCE_PATTERN = re.compile(
    r".+?(?:[\.!?…‽。！？；؛](?:\s+|$)|$)", re.DOTALL
)


def _consume_pattern(pattern: re.Pattern[str], text: str) -> List[str]:
    """Split text by greedily consuming matches from the start of a string."""

    if not text:
        return []

    segments: List[str] = []
    index = 0
    length = len(text)
    while index < length:
        match = pattern.match(text, index)
        if not match:
            segments.append(text[index:])
            break
        end = match.end()
        if end == index:
            # Avoid zero-length loops by consuming at least one character.
            end += 1
        segments.append(text[index:end])
        index = end
    return segments


def _extend_over_whitespace(text: str, cut: int, limit: int) -> int:
    while cut < limit and cut < len(text) and text[cut].isspace():
        cut += 1
    return cut


def _soft_cut(text: str, limit: int) -> int:
    """Return the end of the first chunk of ``text``, at most ``limit`` long.

    Preference order: last line break, last sentence ending followed by
    whitespace, last space, then a hard cut at ``limit``.
    """

    window = text[:limit]

    newline = window.rfind("\n")
    if newline > 0:
        return newline + 1

    for idx in range(len(window) - 1, 0, -1):
        if window[idx] in SENTENCE_ENDINGS:
            follower = text[idx + 1] if idx + 1 < len(text) else ""
            if follower.isspace():
                return _extend_over_whitespace(text, idx + 1, limit)

    space = window.rfind(" ")
    if space > 0:
        return _extend_over_whitespace(text, space + 1, limit)

    return limit


def split_into_chunks(text: str, max_length: int = DEFAULT_CHUNK_MAX_LENGTH) -> List[str]:
    """Split a selection into chunks no longer than ``max_length``.

    Chunks concatenate back to exactly ``text``.
    """

    if not text:
        return []
    max_length = max(1, max_length)

    chunks: List[str] = []
    rest = text
    while len(rest) > max_length:
        cut = _soft_cut(rest, max_length)
        chunks.append(rest[:cut])
        rest = rest[cut:]
    if rest:
        chunks.append(rest)
    return chunks


def split_translation(translation: str, count: int) -> List[Optional[str]]:
    """Spread an unstructured reply evenly across ``count`` fragments.

    This is the degraded path used when a reply has no parseable items. The
    alignment is approximate; slots left as ``None`` keep their original.
    """

    if count <= 0:
        return []
    text = (translation or "").strip()
    if not text:
        return [None] * count
    if count == 1:
        return [text]

    sentences = [
        sentence.strip()
        for sentence in _consume_pattern(SENTENCE_PATTERN, text)
        if sentence.strip()
    ]
    if len(sentences) < count:
        return [*sentences, *([None] * (count - len(sentences)))]

    base, extra = divmod(len(sentences), count)
    slots: List[Optional[str]] = []
    cursor = 0
    for slot in range(count):
        size = base + (1 if slot < extra else 0)
        slots.append(" ".join(sentences[cursor:cursor + size]))
        cursor += size
    return slots


class BatchBuilder:
    """Packs whole groups into batches bounded by characters and item count.

    A group is never split. A group that alone exceeds a limit still becomes
    its own batch; the limits are soft ceilings and never truncate.
    """

    def __init__(
        self,
        max_chars: int = DEFAULT_BATCH_MAX_CHARS,
        max_items: int = DEFAULT_BATCH_MAX_ITEMS,
    ) -> None:
        self.max_chars = max(1, max_chars)
        self.max_items = max(1, max_items)

    def build(self, groups: Iterable[Group]) -> List[Batch]:
        batches: List[Batch] = []
        batch_groups: List[Group] = []
        running_chars = 0
        running_items = 0
        batch_id = 1

        for group in groups:
            if not group.fragments:
                continue
            size = group.char_count
            items = len(group.fragments)

            if batch_groups and (
                running_chars + size > self.max_chars
                or running_items + items > self.max_items
            ):
                batches.append(Batch(batch_id=batch_id, groups=batch_groups))
                batch_id += 1
                batch_groups = []
                running_chars = 0
                running_items = 0

            batch_groups.append(group)
            running_chars += size
            running_items += items

        if batch_groups:
            batches.append(Batch(batch_id=batch_id, groups=batch_groups))

        return batches
