"""Tests for x_relay.text."""

import requests

from conftest import FakeUnfurler
from x_relay.models import Entities, Link, Mention, Tag
from x_relay.text import (
    EntitySpan,
    apply_spans,
    mention_spans,
    reconstruct,
    strip_shortener,
)
from x_relay.unfurl import PageMetadata


HASH_X = "[#x](https://twitter.com/hashtag/x?src=hash)"


class TestNoEntities:
    def test_none_returns_text_unchanged(self):
        text = "a &amp; b https://t.co/xyz"
        result = reconstruct(text, None, True)
        assert result.text == text
        assert result.preview is None

    def test_empty_entities_returns_text_unchanged(self):
        result = reconstruct("a &amp; b", Entities(), True)
        assert result.text == "a &amp; b"


class TestMentions:
    def test_reply_preamble_is_removed(self):
        text = "@alice @bob hello @carol"
        entities = Entities(mentions=[
            Mention(0, 6, "alice"),
            Mention(7, 11, "bob"),
            Mention(18, 24, "carol"),
        ])
        result = reconstruct(text, entities, False)
        assert result.text == "hello [@carol](https://twitter.com/carol)"

    def test_first_gap_ends_preamble_permanently(self):
        text = "@a hi @b @c"
        entities = Entities(mentions=[
            Mention(0, 2, "a"),
            Mention(6, 8, "b"),
            Mention(9, 11, "c"),
        ])
        result = reconstruct(text, entities, False)
        assert result.text == "hi [@b](https://twitter.com/b) [@c](https://twitter.com/c)"

    def test_mention_not_at_start_is_never_deleted(self):
        spans = mention_spans([Mention(3, 5, "a"), Mention(6, 8, "b")])
        assert all(s.replacement for s in spans)

    def test_display_name_is_used_when_known(self):
        entities = Entities(mentions=[Mention(4, 8, "bob", name="Bob B")])
        result = reconstruct("hey @bob", entities, False)
        assert result.text == "hey [@Bob B](https://twitter.com/bob)"

    def test_mentions_without_span_are_ignored(self):
        entities = Entities(mentions=[Mention(None, None, "bob")])
        assert reconstruct("hey @bob", entities, False).text == "hey @bob"


class TestLinks:
    TEXT = "read https://t.co/abc and https://t.co/def"
    LINKS = [
        Link(5, 21, "https://example.com/a"),
        Link(26, 42, "https://example.com/b"),
    ]

    def test_links_are_expanded(self):
        result = reconstruct(self.TEXT, Entities(urls=self.LINKS), False, FakeUnfurler())
        assert result.text == "read https://example.com/a and https://example.com/b"

    def test_last_link_provides_preview(self):
        unfurler = FakeUnfurler({
            "https://example.com/a": PageMetadata(open_graph_images=["https://img.example.com/a.png"]),
            "https://example.com/b": PageMetadata(twitter_card_images=["https://img.example.com/b.png"]),
        })
        result = reconstruct(self.TEXT, Entities(urls=self.LINKS), True, unfurler)
        assert result.preview == "https://img.example.com/b.png"
        assert sorted(unfurler.calls) == ["https://example.com/a", "https://example.com/b"]

    def test_no_preview_for_media_items(self):
        unfurler = FakeUnfurler({
            "https://example.com/b": PageMetadata(twitter_card_images=["https://img.example.com/b.png"]),
        })
        result = reconstruct(self.TEXT, Entities(urls=self.LINKS), False, unfurler)
        assert result.preview is None
        assert unfurler.calls == []

    def test_failed_lookup_is_isolated(self):
        unfurler = FakeUnfurler({
            "https://example.com/a": PageMetadata(open_graph_images=["https://img.example.com/a.png"]),
            "https://example.com/b": requests.ConnectionError("boom"),
        })
        result = reconstruct(self.TEXT, Entities(urls=self.LINKS), True, unfurler)
        assert result.text == "read https://example.com/a and https://example.com/b"
        assert result.preview == "https://img.example.com/a.png"

    def test_earlier_link_used_when_last_has_no_valid_image(self):
        unfurler = FakeUnfurler({
            "https://example.com/a": PageMetadata(open_graph_images=["//img.example.com/a.png"]),
            "https://example.com/b": PageMetadata(open_graph_images=["not-a-url"]),
        })
        result = reconstruct(self.TEXT, Entities(urls=self.LINKS), True, unfurler)
        assert result.preview == "https://img.example.com/a.png"

    def test_without_unfurler_links_still_expand(self):
        result = reconstruct(self.TEXT, Entities(urls=self.LINKS), True, None)
        assert result.text == "read https://example.com/a and https://example.com/b"
        assert result.preview is None


class TestTags:
    def test_hashtag(self):
        entities = Entities(hashtags=[Tag(7, 14, "python")])
        result = reconstruct("I love #python", entities, False)
        assert result.text == "I love [#python](https://twitter.com/hashtag/python?src=hash)"

    def test_cashtag(self):
        entities = Entities(cashtags=[Tag(4, 9, "TSLA")])
        result = reconstruct("buy $TSLA now", entities, False)
        assert result.text == "buy [$TSLA](https://twitter.com/search?q=%24TSLA&src=cashtag) now"

    def test_cashtag_at_offset_zero(self):
        entities = Entities(cashtags=[Tag(0, 5, "TSLA")])
        assert reconstruct("$TSLA up", entities, False).text.startswith("[$TSLA]")


class TestSpanApplication:
    def test_offsets_count_code_points(self):
        entities = Entities(hashtags=[Tag(2, 6, "tag")])
        result = reconstruct("😀 #tag", entities, False)
        assert result.text == "😀 [#tag](https://twitter.com/hashtag/tag?src=hash)"

    def test_length_matches_sum_of_replacements(self):
        text = "@a hi #x"
        spans = [EntitySpan(0, 3, ""), EntitySpan(6, 8, HASH_X)]
        expected = len(text) + sum(len(s.replacement) - (s.end - s.start) for s in spans)
        result = apply_spans(text, spans)
        assert len(result) == expected
        assert result == f"hi {HASH_X}"

    def test_spans_applied_in_start_order(self):
        spans = [EntitySpan(4, 5, "B"), EntitySpan(0, 1, "AA")]
        assert apply_spans("a b c", spans) == "AA b B"

    def test_html_entities_unescaped(self):
        entities = Entities(hashtags=[Tag(10, 12, "x")])
        result = reconstruct("a &amp; b #x &lt;3 &gt;", entities, False)
        assert result.text == f"a & b {HASH_X} <3 >"


class TestShortener:
    def test_trailing_media_link_removed(self):
        entities = Entities(mentions=[Mention(4, 8, "bob")])
        result = reconstruct("hey @bob look https://t.co/xyz", entities, False)
        assert result.text == "hey [@bob](https://twitter.com/bob) look "

    def test_truncates_at_first_occurrence(self):
        assert strip_shortener("a https://t.co/1 b https://t.co/2") == "a "

    def test_text_without_shortener_unchanged(self):
        assert strip_shortener("plain text") == "plain text"
