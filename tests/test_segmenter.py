from __future__ import annotations

import itertools
from typing import List, Sequence

from babelbatch.segmenter import (
    BatchBuilder,
    split_into_chunks,
    split_translation,
)
from babelbatch.structures import Fragment, Group


def make_groups(layout: Sequence[Sequence[int]]) -> List[Group]:
    """Groups whose fragments have the given text lengths."""

    groups: List[Group] = []
    handle = itertools.count()
    for group_id, lengths in enumerate(layout, start=1):
        fragments = tuple(
            Fragment(fragment_id=next(handle), original_text="x" * length, group_id=group_id)
            for length in lengths
        )
        groups.append(Group(group_id=group_id, fragments=fragments))
    return groups


def test_item_limit_closes_batches() -> None:
    batches = BatchBuilder(max_chars=1000, max_items=2).build(make_groups([[5], [5], [5]]))

    assert [len(batch) for batch in batches] == [2, 1]
    assert [batch.batch_id for batch in batches] == [1, 2]


def test_char_limit_closes_batches() -> None:
    batches = BatchBuilder(max_chars=10, max_items=50).build(make_groups([[4], [4], [4], [6]]))

    assert [batch.group_ids for batch in batches] == [[1, 2], [3, 4]]
    assert all(batch.char_count <= 10 for batch in batches)


def test_oversized_group_forms_its_own_batch_untruncated() -> None:
    groups = make_groups([[3], [50], [3]])

    batches = BatchBuilder(max_chars=10, max_items=5).build(groups)

    assert [batch.group_ids for batch in batches] == [[1], [2], [3]]
    assert batches[1].texts == ["x" * 50]


def test_single_oversized_fragment_is_not_rejected() -> None:
    batches = BatchBuilder(max_chars=4, max_items=1).build(make_groups([[9]]))

    assert len(batches) == 1
    assert batches[0].char_count == 9


def test_group_larger_than_item_limit_stays_together() -> None:
    batches = BatchBuilder(max_chars=1000, max_items=2).build(make_groups([[1], [1, 1, 1], [1]]))

    assert [batch.group_ids for batch in batches] == [[1], [2], [3]]
    assert len(batches[1]) == 3


def test_batches_partition_the_groups_in_order() -> None:
    layout = [[3, 7], [12], [1, 1, 1, 1], [25], [2], [9, 9], [4]]
    groups = make_groups(layout)
    all_ids = [fragment.fragment_id for group in groups for fragment in group.fragments]

    for max_chars, max_items in itertools.product([1, 5, 10, 30, 1000], [1, 2, 3, 10]):
        batches = BatchBuilder(max_chars=max_chars, max_items=max_items).build(groups)

        batched_groups = [group for batch in batches for group in batch.groups]
        assert batched_groups == groups
        batched_ids = [fragment.fragment_id for batch in batches for fragment in batch.fragments]
        assert batched_ids == all_ids
        for batch in batches:
            if len(batch.groups) > 1:
                assert batch.char_count <= max_chars
                assert len(batch) <= max_items


def test_limits_are_clamped_to_one() -> None:
    builder = BatchBuilder(max_chars=0, max_items=-3)

    assert builder.max_chars == 1
    assert builder.max_items == 1
    assert len(builder.build(make_groups([[2], [2]]))) == 2


def test_split_into_chunks_keeps_short_text_whole() -> None:
    assert split_into_chunks("Short text.", 100) == ["Short text."]
    assert split_into_chunks("", 100) == []


def test_split_into_chunks_prefers_line_breaks() -> None:
    assert split_into_chunks("line one\nline two", 12) == ["line one\n", "line two"]


def test_split_into_chunks_falls_back_to_sentence_endings() -> None:
    assert split_into_chunks("Hello world. Next one here.", 15) == [
        "Hello world. ",
        "Next one here.",
    ]


def test_split_into_chunks_falls_back_to_spaces() -> None:
    assert split_into_chunks("alpha beta gamma", 8) == ["alpha ", "beta ", "gamma"]


def test_split_into_chunks_hard_cuts_without_boundaries() -> None:
    assert split_into_chunks("abcdefghij", 4) == ["abcd", "efgh", "ij"]


def test_split_into_chunks_is_lossless_and_bounded() -> None:
    text = (
        "First paragraph has a few sentences. It keeps going! Does it end?\n"
        "Second paragraph\twith tabs and   spaces, and a veryveryverylongword.\n\n"
        "Third."
    )
    for limit in (5, 11, 20, 37, 80):
        chunks = split_into_chunks(text, limit)

        assert "".join(chunks) == text
        assert all(0 < len(chunk) <= limit for chunk in chunks)


def test_split_translation_single_fragment_takes_everything() -> None:
    assert split_translation("  Alles. Zusammen.  ", 1) == ["Alles. Zusammen."]


def test_split_translation_spreads_sentences_evenly() -> None:
    assert split_translation("One. Two. Three. Four.", 2) == ["One. Two.", "Three. Four."]
    assert split_translation("A. B. C.", 2) == ["A. B.", "C."]


def test_split_translation_pads_missing_slots() -> None:
    assert split_translation("Only one.", 3) == ["Only one.", None, None]
    assert split_translation("   ", 2) == [None, None]
    assert split_translation("text", 0) == []
