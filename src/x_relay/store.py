"""订阅与用户存储（JSON 文件）。"""

from __future__ import annotations

import json
import logging
import pathlib
import threading
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional

from .flags import flag_names, parse_flags
from .models import Author, Subscription


logger = logging.getLogger(__name__)


class JsonStore:
    """读写单个 JSON 文件，读取失败时从空数据开始。"""

    def __init__(self, path: pathlib.Path, default: Any):
        self.path = path
        self._default = default
        self._data: Any = default
        self._lock = threading.RLock()

    def load(self) -> None:
        with self._lock:
            if self.path.exists():
                try:
                    self._data = json.loads(self.path.read_text(encoding="utf-8"))
                except (OSError, ValueError) as e:
                    logger.error(f"加载 {self.path} 失败: {e}")
                    self._data = json.loads(json.dumps(self._default))
            else:
                self._data = json.loads(json.dumps(self._default))

    def save(self) -> None:
        with self._lock:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            content = json.dumps(self._data, ensure_ascii=False, indent=2)
            self.path.write_text(content, encoding="utf-8")


class SubscriptionStore(JsonStore):
    """
    订阅存储。

    文件结构：
    {"subscriptions": [{"twitter_id": "...", "channel_id": "...", "is_dm": false,
                        "flags": ["retweets"], "msg": null}]}
    """

    def __init__(self, path: pathlib.Path):
        super().__init__(path, {"subscriptions": []})

    def _records(self) -> List[Dict[str, Any]]:
        return self._data.setdefault("subscriptions", [])

    @staticmethod
    def _to_subscription(rec: Dict[str, Any]) -> Optional[Subscription]:
        try:
            flags = parse_flags(rec.get("flags") or [])
        except ValueError as e:
            logger.warning(f"忽略订阅 {rec}: {e}")
            return None
        return Subscription(
            author_id=str(rec.get("twitter_id") or ""),
            channel_id=str(rec.get("channel_id") or ""),
            flags=flags,
            is_dm=bool(rec.get("is_dm")),
            msg=rec.get("msg") or None,
        )

    def get_subscriptions_for_author(self, author_id: str) -> List[Subscription]:
        with self._lock:
            subs = [self._to_subscription(r) for r in self._records() if str(r.get("twitter_id")) == author_id]
        return [s for s in subs if s is not None and s.channel_id]

    def author_ids(self) -> List[str]:
        with self._lock:
            return sorted({str(r["twitter_id"]) for r in self._records() if r.get("twitter_id")})

    def add(self, sub: Subscription) -> None:
        """新增或更新（同一用户与频道只保留一条）。"""
        with self._lock:
            self.remove(sub.author_id, sub.channel_id, save=False)
            self._records().append({
                "twitter_id": sub.author_id,
                "channel_id": sub.channel_id,
                "is_dm": sub.is_dm,
                "flags": flag_names(sub.flags),
                "msg": sub.msg,
            })
            self.save()

    def remove(self, author_id: str, channel_id: str, save: bool = True) -> int:
        with self._lock:
            records = self._records()
            kept = [
                r for r in records
                if not (str(r.get("twitter_id")) == author_id and str(r.get("channel_id")) == channel_id)
            ]
            removed = len(records) - len(kept)
            self._data["subscriptions"] = kept
            if save and removed:
                self.save()
            return removed

    def remove_authors(self, author_ids: Iterable[str]) -> int:
        ids = set(author_ids)
        with self._lock:
            records = self._records()
            kept = [r for r in records if str(r.get("twitter_id")) not in ids]
            removed = len(records) - len(kept)
            self._data["subscriptions"] = kept
            if removed:
                self.save()
            return removed


class UserStore(JsonStore):
    """
    用户存储。

    文件结构：{"用户ID": {"username": ..., "name": ..., "avatar": ..., "last_seen": ...}}
    """

    def __init__(self, path: pathlib.Path, subscriptions: SubscriptionStore):
        super().__init__(path, {})
        self.subscriptions = subscriptions

    def get_all_source_ids(self) -> List[str]:
        """至少有一个订阅的用户 ID，每次都重新读取订阅文件。"""
        self.subscriptions.load()
        return self.subscriptions.author_ids()

    def record_seen(self, author: Author) -> None:
        now_iso = datetime.now(timezone.utc).replace(microsecond=0).isoformat()
        with self._lock:
            self._data[author.id] = {
                "username": author.username,
                "name": author.name,
                "avatar": author.avatar,
                "last_seen": now_iso,
            }
            self.save()

    def get_users_for_sanity_check(self, limit: int, offset: int) -> List[str]:
        """按 ID 排序，返回从第 offset 个开始的至多 limit 个用户 ID。"""
        with self._lock:
            ids = sorted(set(self._data) | set(self.subscriptions.author_ids()))
        return ids[offset:offset + limit]

    def bulk_delete_users(self, user_ids: Iterable[str]) -> int:
        """删除用户及其全部订阅，返回删除的用户数。"""
        ids = set(user_ids)
        with self._lock:
            known = ids & (set(self._data) | set(self.subscriptions.author_ids()))
            for user_id in ids:
                self._data.pop(user_id, None)
            self.save()
        self.subscriptions.remove_authors(ids)
        return len(known)
