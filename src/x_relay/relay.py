"""单条推文的处理流程：过滤 → 生成消息 → 发送。"""

from __future__ import annotations

import dataclasses
import logging
from typing import Optional

from .embed import compose_relationships
from .filters import get_filtered_subs
from .flags import is_set
from .models import FeedEvent, Message, Post, Subscription


logger = logging.getLogger(__name__)


def build_message(main: Post, quote: Optional[Post], sub: Subscription) -> Message:
    """
    为一个订阅组装消息。

    被引用推文与主推文图片相同时，去掉被引用推文的图片。
    """
    message = Message(posts=[main], content=sub.msg)
    if quote is not None and not is_set(sub.flags, "noquotes"):
        if quote.image and quote.image == main.image:
            quote = dataclasses.replace(quote, image=None)
        message.posts.append(quote)
    return message


class Relay:
    """将推文流数据转发到订阅的频道。"""

    def __init__(self, subscriptions, users, dispatcher, unfurler=None, workers: int = 8):
        self.subscriptions = subscriptions
        self.users = users
        self.dispatcher = dispatcher
        self.unfurler = unfurler
        self.workers = workers

    def handle(self, event: Optional[FeedEvent]) -> int:
        """
        处理一条推文。

        Returns:
            发送的订阅数
        """
        subs = get_filtered_subs(event, self.subscriptions)
        if not subs:
            logger.debug("丢弃一条推文")
            return 0

        item, lookup = event.item, event.lookup
        logger.info(f"收到推文 {item.id}，转发到 {len(subs)} 个订阅")
        posts = compose_relationships(item, lookup, self.unfurler, self.workers)
        main = posts[0]
        quote = posts[1] if len(posts) > 1 else None

        for sub in subs:
            self.dispatcher.send(sub, build_message(main, quote, sub))

        self.users.record_seen(lookup.user(item.author_id))
        return len(subs)
