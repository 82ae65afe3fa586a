"""Tests for x_relay.filters."""

from conftest import FakeSubscriptionStore
from x_relay.feed import parse_payload
from x_relay.filters import flags_filter, get_filtered_subs, is_valid
from x_relay.flags import parse_flags
from x_relay.models import QUOTE, REPLY, RETWEET, FeedEvent, Item, Lookup


class TestIsValid:
    def test_valid(self, make_event):
        assert is_valid(make_event())

    def test_none(self):
        assert not is_valid(None)

    def test_missing_id(self, make_event):
        assert not is_valid(make_event(item_id=""))

    def test_missing_author(self, make_event):
        assert not is_valid(make_event(author_id=""))

    def test_author_not_in_lookup(self):
        event = FeedEvent(item=Item(id="1", author_id="9", text="x"), lookup=Lookup())
        assert not is_valid(event)

    def test_quoted_author_not_in_lookup(self, make_event, lookup):
        lookup.items["60"] = Item(id="60", author_id="404", text="q")
        assert not is_valid(make_event(references={QUOTE: "60"}))


class TestFlagsFilter:
    def test_notext_excludes_text(self, make_event):
        assert not flags_filter(parse_flags(["notext"]), make_event())

    def test_notext_keeps_media(self, make_event, photo):
        assert flags_filter(parse_flags(["notext"]), make_event(media=[photo]))

    def test_retweets_are_opt_in(self, make_event):
        event = make_event(references={RETWEET: "50"})
        assert not flags_filter(0, event)
        assert flags_filter(parse_flags(["retweets"]), event)

    def test_notext_keeps_retweet_of_media(self, make_event, lookup, bob, photo):
        lookup.users[bob.id] = bob
        lookup.media[photo.key] = photo
        lookup.items["50"] = Item(id="50", author_id=bob.id, text="pic", media_keys=[photo.key])
        event = make_event(references={RETWEET: "50"})
        assert flags_filter(parse_flags(["notext", "retweets"]), event)

    def test_noquotes(self, make_event, photo):
        event = make_event(media=[photo], references={QUOTE: "60"})
        assert not flags_filter(parse_flags(["noquotes"]), event)
        assert flags_filter(0, event)

    def test_reply_to_other_excluded_by_default(self, make_event, lookup):
        lookup.items["40"] = Item(id="40", author_id="2", text="parent")
        event = make_event(references={REPLY: "40"}, in_reply_to_user_id="2")
        assert not flags_filter(0, event)
        assert flags_filter(parse_flags(["replies"]), event)

    def test_self_thread_included(self, make_event, lookup):
        lookup.items["40"] = Item(id="40", author_id="1", text="parent")
        event = make_event(references={REPLY: "40"}, in_reply_to_user_id="1")
        assert flags_filter(0, event)

    def test_self_thread_with_unavailable_parent(self, make_event):
        event = make_event(references={REPLY: "40"}, in_reply_to_user_id="1")
        assert flags_filter(0, event)


class TestGetFilteredSubs:
    def test_invalid_item_dropped(self, subscription):
        store = FakeSubscriptionStore([subscription()])
        assert get_filtered_subs(None, store) == []

    def test_no_subscribers(self, make_event):
        assert get_filtered_subs(make_event(), FakeSubscriptionStore()) == []

    def test_per_subscription_flags(self, make_event, subscription):
        plain = subscription(channel_id="a")
        media_only = subscription(channel_id="b", flags=parse_flags(["notext"]))
        other_author = subscription(channel_id="c", author_id="2")
        store = FakeSubscriptionStore([plain, media_only, other_author])
        assert get_filtered_subs(make_event(), store) == [plain]

    def test_subscription_carries_message(self, make_event, subscription):
        sub = subscription(msg="new post!", is_dm=True)
        targets = get_filtered_subs(make_event(), FakeSubscriptionStore([sub]))
        assert targets[0].msg == "new post!"
        assert targets[0].is_dm

    def test_legacy_retweet_media_on_original(self, subscription):
        payload = {
            "id_str": "300",
            "text": "RT @alice: look",
            "user": {"id_str": "2", "name": "bob", "screen_name": "bob"},
            "retweeted_status": {
                "id_str": "299",
                "text": "look",
                "user": {"id_str": "1", "name": "Alice", "screen_name": "alice"},
                "extended_entities": {
                    "media": [{"id_str": "55", "type": "photo", "media_url_https": "https://pbs.twimg.com/media/x.jpg"}],
                },
            },
        }
        sub = subscription(author_id="2", flags=parse_flags(["notext", "retweets"]))
        assert get_filtered_subs(parse_payload(payload), FakeSubscriptionStore([sub])) == [sub]
