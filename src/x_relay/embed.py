"""推文转换为嵌入消息。"""

from __future__ import annotations

import logging
from typing import List, Optional, Sequence

from .models import QUOTE, RETWEET, Author, Item, Lookup, Post, Variant
from .text import reconstruct


logger = logging.getLogger(__name__)

COLORS = {
    "text": 0x69B2D6,
    "video": 0x67D67D,
    "image": 0xD667CF,
    "images": 0x53A38D,
}

STATUS_URL = "https://twitter.com/{username}/status/{id}"

# 视频只取低于该码率的 mp4
MAX_BITRATE = 1000000


def has_media(item: Item, lookup: Lookup) -> bool:
    """推文自身带媒体，或转推的原推文带媒体。"""
    if lookup.media_for(item):
        return True
    retweeted = lookup.referenced(item, RETWEET)
    return retweeted is not None and bool(lookup.media_for(retweeted))


def classify(item: Item, lookup: Lookup) -> str:
    """返回 text / video / image / images 之一。"""
    media = lookup.media_for(item)
    if not media:
        return "text"
    if media[0].type in ("animated_gif", "video"):
        return "video"
    if len(media) == 1:
        return "image"
    return "images"


def _strip_query(url: str) -> str:
    idx = url.rfind("?")
    if idx != -1 and idx > url.rfind("/"):
        return url[:idx]
    return url


def select_video_url(variants: Sequence[Variant]) -> Optional[str]:
    """
    选出视频地址。

    保留遍历中最后一个码率低于 MAX_BITRATE 的 mp4，而不是码率最高的那个。
    """
    url = None
    for vid in variants:
        if vid.content_type == "video/mp4" and vid.bitrate is not None and vid.bitrate < MAX_BITRATE:
            url = _strip_query(vid.url)
    return url


def author_line(author: Author) -> str:
    if author.name == author.username:
        return f"@{author.username}"
    return f"{author.name} (@{author.username})"


def compose(item: Item, lookup: Lookup, unfurler=None, workers: int = 8) -> Post:
    """
    将一条推文转换为 Post。

    Args:
        item: 推文
        lookup: 关联数据，必须包含 item 的作者
        unfurler: 链接展开器（见 text.reconstruct）
        workers: 并发展开链接的线程数

    Returns:
        Post
    """
    author = lookup.user(item.author_id)
    if author is None:
        raise KeyError(f"推文 {item.id} 的作者 {item.author_id} 不在关联数据中")

    url = STATUS_URL.format(username=author.username, id=item.id)
    kind = classify(item, lookup)
    formatted = reconstruct(item.text, item.entities, kind == "text", unfurler, workers)

    post = Post(
        url=url,
        author_name=author_line(author),
        author_url=url,
        description=formatted.text,
        color=COLORS[kind] if author.color is None else author.color,
        thumbnail=author.avatar,
    )

    media = lookup.media_for(item)
    if kind == "text":
        post.image = formatted.preview
    elif kind == "video":
        post.video = select_video_url(media[0].variants)
        if post.video is None:
            logger.warning(f"视频推文 {item.id} 没有可用的视频地址: {media[0].variants}")
    elif kind == "image":
        post.image = media[0].url
    else:
        post.images = [m.url for m in media if m.url]

    return post


def compose_relationships(item: Item, lookup: Lookup, unfurler=None, workers: int = 8) -> List[Post]:
    """
    按转推 / 回复 / 引用关系生成一到两条 Post。

    - 转推：发送原推文，作者行追加 [RT BY @转推者]
    - 回复：作者行追加 [REPLY TO @被回复者]
    - 引用：追加被引用推文，作者行前加 [QUOTED]

    Returns:
        [主推文] 或 [主推文, 被引用推文]
    """
    retweet = lookup.referenced(item, RETWEET)
    if retweet is not None:
        main = compose(retweet, lookup, unfurler, workers)
        retweeter = lookup.user(item.author_id)
        main.author_name += f" [RT BY @{retweeter.username}]"
    else:
        main = compose(item, lookup, unfurler, workers)
        if item.in_reply_to_user_id:
            replied = lookup.user(item.in_reply_to_user_id)
            if replied is not None:
                main.author_name += f" [REPLY TO @{replied.username}]"
            else:
                logger.debug(f"推文 {item.id} 回复的用户 {item.in_reply_to_user_id} 不在关联数据中")

    quote = lookup.referenced(item, QUOTE)
    if quote is None:
        return [main]

    quoted = compose(quote, lookup, unfurler, workers)
    quoted.author_name = f"[QUOTED] {quoted.author_name}"
    return [main, quoted]
