"""订阅过滤。"""

from __future__ import annotations

import logging
from typing import List, Optional

from .embed import has_media
from .flags import is_set
from .models import QUOTE, REPLY, RETWEET, FeedEvent, Subscription


logger = logging.getLogger(__name__)


def is_valid(event: Optional[FeedEvent]) -> bool:
    """推文必须有 ID 和作者，且作者及被转推/引用推文的作者可在关联数据中找到。"""
    if event is None or event.item is None or event.lookup is None:
        return False
    item, lookup = event.item, event.lookup
    if not item.id or not item.author_id:
        return False
    if lookup.user(item.author_id) is None:
        return False
    for kind in (RETWEET, QUOTE):
        ref = lookup.referenced(item, kind)
        if ref is not None and lookup.user(ref.author_id) is None:
            return False
    return True


def _replied_author(event: FeedEvent) -> Optional[str]:
    replied = event.lookup.referenced(event.item, REPLY)
    if replied is not None:
        return replied.author_id
    return event.item.in_reply_to_user_id


def flags_filter(flags: int, event: FeedEvent) -> bool:
    """判断设置了 flags 的订阅是否接收这条推文。"""
    item = event.item
    if is_set(flags, "notext") and not has_media(item, event.lookup):
        return False
    if not is_set(flags, "retweets") and item.is_retweet:
        return False
    if is_set(flags, "noquotes") and item.is_quote:
        return False
    # 回复自己（推文串）不算回复
    if not is_set(flags, "replies") and item.is_reply and _replied_author(event) != item.author_id:
        return False
    return True


def get_filtered_subs(event: Optional[FeedEvent], store) -> List[Subscription]:
    """
    找出需要接收这条推文的订阅。

    Args:
        event: 推文流数据
        store: 提供 get_subscriptions_for_author(author_id) 的订阅存储

    Returns:
        通过过滤的订阅列表；推文无效或无人订阅时为空
    """
    if not is_valid(event):
        return []
    subs = store.get_subscriptions_for_author(event.item.author_id)
    if not subs:
        return []

    targets: List[Subscription] = []
    for sub in subs:
        if sub.is_dm:
            logger.debug(f"是否向私信 {sub.channel_id} 发送 {event.item.id}?")
        if flags_filter(sub.flags, event):
            if sub.is_dm:
                logger.debug(f"已加入 ({sub.channel_id}, 私信)")
            targets.append(sub)
    return targets
