"""Pytest configuration and shared fixtures."""

import pytest

from x_relay.models import Author, FeedEvent, Item, Lookup, Media, Subscription
from x_relay.unfurl import PageMetadata


class FakeUnfurler:
    """按 URL 返回预设的元数据，值为异常时抛出。"""

    def __init__(self, pages=None):
        self.pages = pages or {}
        self.calls = []

    def fetch_metadata(self, url):
        self.calls.append(url)
        page = self.pages.get(url, PageMetadata())
        if isinstance(page, Exception):
            raise page
        return page


class FakeSubscriptionStore:
    def __init__(self, subs=None):
        self.subs = subs or []

    def get_subscriptions_for_author(self, author_id):
        return [s for s in self.subs if s.author_id == author_id]


class FakeUserStore:
    def __init__(self, ids=None):
        self.ids = list(ids or [])
        self.seen = []

    def get_all_source_ids(self):
        return list(self.ids)

    def record_seen(self, author):
        self.seen.append(author)


class FakeDispatcher:
    def __init__(self):
        self.sent = []

    def send(self, sub, message):
        self.sent.append((sub, message))
        return True


@pytest.fixture
def alice():
    return Author(id="1", name="Alice", username="alice", avatar="https://pbs.twimg.com/alice.jpg")


@pytest.fixture
def bob():
    return Author(id="2", name="bob", username="bob", avatar="https://pbs.twimg.com/bob.jpg")


@pytest.fixture
def lookup(alice, bob):
    return Lookup(users={alice.id: alice, bob.id: bob})


@pytest.fixture
def make_event(lookup):
    """生成 alice 发布的推文，可附带媒体与引用关系。"""

    def _make(text="hello", item_id="100", author_id="1", media=None, references=None, **kwargs):
        media = media or []
        for m in media:
            lookup.media[m.key] = m
        item = Item(
            id=item_id,
            author_id=author_id,
            text=text,
            media_keys=[m.key for m in media],
            references=references or {},
            **kwargs,
        )
        return FeedEvent(item=item, lookup=lookup)

    return _make


@pytest.fixture
def photo():
    return Media(key="3_1", type="photo", url="https://pbs.twimg.com/media/one.jpg")


@pytest.fixture
def subscription():
    def _make(flags=0, channel_id="chan-1", author_id="1", msg=None, is_dm=False):
        return Subscription(author_id=author_id, channel_id=channel_id, flags=flags, msg=msg, is_dm=is_dm)

    return _make
