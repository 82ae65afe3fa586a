"""Tests for x_relay.maintenance."""

import pytest
import requests

from x_relay.maintenance import make_user_lookup, users_sanity_check
from x_relay.models import Subscription
from x_relay.store import SubscriptionStore, UserStore


class PagedStore:
    """删除后列表会缩短，与真实存储一致。"""

    def __init__(self, ids, fail_delete=False):
        self.ids = list(ids)
        self.fail_delete = fail_delete
        self.deleted = []

    def get_users_for_sanity_check(self, limit, offset):
        return self.ids[offset:offset + limit]

    def bulk_delete_users(self, ids):
        if self.fail_delete:
            raise OSError("disk full")
        self.deleted.extend(ids)
        self.ids = [i for i in self.ids if i not in ids]
        return len(ids)


def _lookup(alive, broken=()):
    looked_up = []

    def lookup(user_id):
        looked_up.append(user_id)
        if user_id in broken:
            raise requests.HTTPError("401 Unauthorized")
        return user_id in alive

    lookup.looked_up = looked_up
    return lookup


class TestUsersSanityCheck:
    def test_walks_pages_and_deletes(self):
        store = PagedStore(["1", "2", "3", "4", "5"])
        sleeps = []
        deleted = users_sanity_check(store, _lookup({"1", "3"}), limit=2, delay=7, sleep=sleeps.append)
        assert deleted == 3
        assert store.deleted == ["2", "4", "5"]
        assert store.ids == ["1", "3"]
        assert sleeps == [7, 7]

    def test_every_user_checked_when_pages_shrink(self, tmp_path):
        subs = SubscriptionStore(tmp_path / "subscriptions.json")
        subs.load()
        for author_id in ("1", "2", "3", "4"):
            subs.add(Subscription(author_id=author_id, channel_id="a"))
        users = UserStore(tmp_path / "users.json", subs)
        users.load()

        lookup = _lookup(set())
        deleted = users_sanity_check(users, lookup, limit=2, delay=0, sleep=lambda s: None)
        assert sorted(lookup.looked_up) == ["1", "2", "3", "4"]
        assert deleted == 4
        assert subs.author_ids() == []

    def test_lookup_failure_keeps_user(self, tmp_path):
        subs = SubscriptionStore(tmp_path / "subscriptions.json")
        subs.load()
        subs.add(Subscription(author_id="1", channel_id="a"))
        subs.add(Subscription(author_id="2", channel_id="a"))
        users = UserStore(tmp_path / "users.json", subs)
        users.load()

        deleted = users_sanity_check(users, _lookup({"2"}, broken={"1"}), limit=10, delay=0, sleep=lambda s: None)
        assert deleted == 0
        assert subs.author_ids() == ["1", "2"]

    def test_empty_store(self):
        sleeps = []
        assert users_sanity_check(PagedStore([]), _lookup(set()), limit=10, delay=1, sleep=sleeps.append) == 0
        assert sleeps == []

    def test_delete_failure_aborts(self):
        store = PagedStore(["1", "2"], fail_delete=True)
        assert users_sanity_check(store, _lookup(set()), limit=10, delay=1, sleep=lambda s: None) == 0


class FakeResponse:
    def __init__(self, status_code=200, body=None):
        self.status_code = status_code
        self._body = body or {}

    def json(self):
        return self._body

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"HTTP {self.status_code}")


class FakeSession:
    def __init__(self, response):
        self.response = response
        self.urls = []

    def get(self, url, headers=None, timeout=None):
        self.urls.append(url)
        return self.response


class TestMakeUserLookup:
    def test_existing_user(self):
        session = FakeSession(FakeResponse(body={"data": {"id": "1"}}))
        assert make_user_lookup("token", session=session)("1") is True
        assert session.urls == ["https://api.twitter.com/2/users/1"]

    def test_not_found_status(self):
        assert make_user_lookup("token", session=FakeSession(FakeResponse(404)))("1") is False

    def test_not_found_errors_body(self):
        body = {"errors": [{"title": "Not Found Error", "detail": "Could not find user with id: [1]."}]}
        assert make_user_lookup("token", session=FakeSession(FakeResponse(body=body)))("1") is False

    @pytest.mark.parametrize("status", [401, 429, 503])
    def test_other_failures_raise(self, status):
        with pytest.raises(requests.HTTPError):
            make_user_lookup("token", session=FakeSession(FakeResponse(status)))("1")

    def test_auth_failure_deletes_nobody(self):
        store = PagedStore(["1", "2"])
        lookup = make_user_lookup("bad", session=FakeSession(FakeResponse(401)))
        assert users_sanity_check(store, lookup, limit=10, delay=0, sleep=lambda s: None) == 0
        assert store.deleted == []
