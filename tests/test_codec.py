from __future__ import annotations

from babelbatch.codec import (
    MatchIndex,
    build_prompt,
    decode_request,
    decode_response,
    encode_request,
    encode_response,
    escape_text,
    normalize_for_match,
    unescape_text,
)


def test_encode_request_wraps_and_escapes_items() -> None:
    payload = encode_request(["Tom & Jerry", "<b>\"hi\"</b>", "it's"])

    assert payload == (
        "<request>\n"
        "<item>Tom &amp; Jerry</item>\n"
        "<item>&lt;b&gt;&quot;hi&quot;&lt;/b&gt;</item>\n"
        "<item>it&apos;s</item>\n"
        "</request>"
    )


def test_encode_request_keeps_whitespace_and_line_breaks() -> None:
    payload = encode_request(["  first line\nsecond\tline  "])

    assert "<item>  first line\nsecond\tline  </item>" in payload
    assert decode_request(payload) == ["  first line\nsecond\tline  "]


def test_unescape_is_single_pass() -> None:
    assert unescape_text("&amp;lt;") == "&lt;"
    assert unescape_text(escape_text("&lt; & <")) == "&lt; & <"


def test_normalize_for_match_collapses_whitespace() -> None:
    assert normalize_for_match("  Hello \n\t world  ") == "Hello world"


def test_decode_matches_unique_texts_in_original_order() -> None:
    texts = ["Hello", "Good <morning>", "Line one\nline two", "A & B"]
    reply = encode_response([(text, text + " -x") for text in texts])

    assert decode_response(reply, texts) == [text + " -x" for text in texts]


def test_decode_matches_even_when_reply_is_reordered() -> None:
    texts = ["one", "two", "three"]
    reply = encode_response([("three", "drei"), ("one", "eins"), ("two", "zwei")])

    assert decode_response(reply, texts) == ["eins", "zwei", "drei"]


def test_decode_resolves_duplicates_first_in_first_out() -> None:
    # Known limitation: identical originals are assigned in first-seen order,
    # whatever order the backend used for them.
    originals = ["a", "a", "b"]
    reply = encode_response([("a", "a-1"), ("b", "b-1"), ("a", "a-2")])

    assert decode_response(reply, originals) == ["a-1", "a-2", "b-1"]


def test_decode_without_items_returns_empty_result() -> None:
    assert decode_response("Hallo Welt.", ["Hello world."]) == []
    assert decode_response("", ["Hello"]) == []
    assert decode_response("<item>no fields here</item>", ["Hello"]) == []


def test_decode_leaves_blank_translations_unset() -> None:
    reply = encode_response([("Hello", "   "), ("World", "Welt")])

    assert decode_response(reply, ["Hello", "World"]) == [None, "Welt"]


def test_decode_keeps_translated_whitespace_verbatim() -> None:
    reply = encode_response([("Hello", "  Hallo\n")])

    assert decode_response(reply, ["Hello"]) == ["  Hallo\n"]


def test_decode_matches_on_normalised_original() -> None:
    reply = encode_response([("Hello   world", "Hallo Welt")])

    assert decode_response(reply, ["Hello\n world"]) == ["Hallo Welt"]


def test_decode_ignores_unknown_blank_and_surplus_items() -> None:
    reply = (
        "<response>"
        "<item><original></original><translated>noise</translated></item>"
        "<item><original>stranger</original><translated>Fremder</translated></item>"
        "<item><original>x</original><translated>X1</translated></item>"
        "<item><original>x</original><translated>X2</translated></item>"
        "</response>"
    )

    assert decode_response(reply, ["x"]) == ["X1"]


def test_decode_tolerates_chatter_and_tag_case() -> None:
    reply = (
        "Sure! Here is the translation:\n"
        "<RESPONSE><Item><Original>Cat</Original>"
        "<Translated>Katze</Translated></Item></RESPONSE>\nDone."
    )

    assert decode_response(reply, ["Cat"]) == ["Katze"]


def test_match_index_claims_in_fifo_order() -> None:
    index = MatchIndex(["x", "y", " x "])

    assert index.pending() == 3
    assert index.claim("x") == 0
    assert index.claim("x") == 2
    assert index.claim("x") is None
    assert index.claim("z") is None
    assert index.pending() == 1


def test_build_prompt_renders_auto_source_language() -> None:
    prompt = build_prompt("<request>\n</request>", "German", "auto")

    assert "from the detected source language to German" in prompt
    assert prompt.endswith("Request:\n<request>\n</request>")
    assert "from French to German" in build_prompt("", "German", "French")
