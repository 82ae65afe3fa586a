"""推文流数据解析模块。

将推特接口下发的 JSON 转换为统一的 FeedEvent，支持两种结构：

v2 接口（filtered stream）：
{
    "data": {
        "id": "推文ID",
        "author_id": "作者ID",
        "text": "正文",
        "entities": {"mentions": [...], "urls": [...], "hashtags": [...], "cashtags": [...]},
        "attachments": {"media_keys": ["3_123"]},
        "referenced_tweets": [{"type": "retweeted|quoted|replied_to", "id": "..."}],
        "in_reply_to_user_id": "..."
    },
    "includes": {"users": [...], "tweets": [...], "media": [...]}
}

v1 旧接口：带 user / full_text / extended_tweet / extended_entities /
retweeted_status / quoted_status 的单个推文对象。
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from .models import (
    QUOTE,
    REPLY,
    RETWEET,
    Author,
    Entities,
    FeedEvent,
    Item,
    Link,
    Lookup,
    Media,
    Mention,
    Tag,
    Variant,
)


class FeedError(RuntimeError):
    """无法解析的推文流数据。"""


_V2_REFERENCE_TYPES = {
    "retweeted": RETWEET,
    "quoted": QUOTE,
    "replied_to": REPLY,
}


def parse_payload(payload: Any) -> Optional[FeedEvent]:
    """
    解析一条推文流数据。

    Args:
        payload: 已解码的 JSON

    Returns:
        FeedEvent；不含推文的数据（如仅有 errors）返回 None

    Raises:
        FeedError: payload 不是 JSON 对象
    """
    if not isinstance(payload, dict):
        raise FeedError(f"推文数据格式错误: {type(payload).__name__}")
    if "data" in payload:
        return _parse_v2(payload)
    if "user" in payload and ("id_str" in payload or "id" in payload):
        lookup = Lookup()
        item = _parse_v1_tweet(payload, lookup)
        return FeedEvent(item=item, lookup=lookup)
    return None


# ============================================================
# v2 接口
# ============================================================

def _parse_v2(payload: Dict[str, Any]) -> Optional[FeedEvent]:
    data = payload.get("data")
    if not isinstance(data, dict):
        return None
    includes = payload.get("includes") or {}

    lookup = Lookup()
    for u in includes.get("users") or []:
        author = _parse_v2_user(u)
        if author:
            lookup.users[author.id] = author
    for m in includes.get("media") or []:
        media = _parse_v2_media(m)
        if media:
            lookup.media[media.key] = media
    for t in includes.get("tweets") or []:
        ref = _parse_v2_tweet(t)
        if ref.id:
            lookup.items[ref.id] = ref

    return FeedEvent(item=_parse_v2_tweet(data), lookup=lookup)


def _parse_v2_user(u: Dict[str, Any]) -> Optional[Author]:
    user_id = str(u.get("id") or "")
    username = u.get("username") or ""
    if not user_id or not username:
        return None
    return Author(
        id=user_id,
        name=u.get("name") or username,
        username=username,
        avatar=u.get("profile_image_url"),
    )


def _parse_v2_media(m: Dict[str, Any]) -> Optional[Media]:
    key = m.get("media_key")
    if not key:
        return None
    variants = [
        Variant(
            content_type=v.get("content_type") or "",
            url=v.get("url") or "",
            bitrate=v.get("bit_rate"),
        )
        for v in m.get("variants") or []
        if v.get("url")
    ]
    return Media(
        key=key,
        type=m.get("type") or "",
        url=m.get("url"),
        preview_image_url=m.get("preview_image_url"),
        variants=variants,
    )


def _parse_v2_entities(e: Optional[Dict[str, Any]]) -> Optional[Entities]:
    if not e:
        return None
    return Entities(
        mentions=[
            Mention(start=m.get("start"), end=m.get("end"), username=m.get("username") or "")
            for m in e.get("mentions") or []
        ],
        urls=[
            Link(start=u.get("start"), end=u.get("end"), expanded_url=u.get("expanded_url") or "")
            for u in e.get("urls") or []
        ],
        hashtags=[
            Tag(start=h.get("start"), end=h.get("end"), tag=h.get("tag") or "")
            for h in e.get("hashtags") or []
        ],
        cashtags=[
            Tag(start=c.get("start"), end=c.get("end"), tag=c.get("tag") or "")
            for c in e.get("cashtags") or []
        ],
    )


def _parse_v2_tweet(t: Dict[str, Any]) -> Item:
    # 长推文的完整正文在 note_tweet 中
    note = t.get("note_tweet") or {}
    text = note.get("text") or t.get("text") or ""
    entities = note.get("entities") if note.get("text") else t.get("entities")

    references: Dict[str, str] = {}
    for ref in t.get("referenced_tweets") or []:
        kind = _V2_REFERENCE_TYPES.get(ref.get("type"))
        if kind and ref.get("id"):
            references[kind] = str(ref["id"])

    attachments = t.get("attachments") or {}
    reply_to = t.get("in_reply_to_user_id")
    return Item(
        id=str(t.get("id") or ""),
        author_id=str(t.get("author_id") or ""),
        text=text,
        entities=_parse_v2_entities(entities),
        media_keys=list(attachments.get("media_keys") or []),
        references=references,
        in_reply_to_user_id=str(reply_to) if reply_to else None,
    )


# ============================================================
# v1 旧接口
# ============================================================

def _indices(obj: Dict[str, Any]) -> List[Optional[int]]:
    indices = obj.get("indices") or []
    if len(indices) != 2:
        return [None, None]
    return indices


def _parse_v1_user(u: Dict[str, Any]) -> Author:
    color = u.get("profile_link_color")
    try:
        color_value = int(color, 16) if color else None
    except ValueError:
        color_value = None
    screen_name = u.get("screen_name") or ""
    return Author(
        id=str(u.get("id_str") or u.get("id") or ""),
        name=u.get("name") or screen_name,
        username=screen_name,
        avatar=u.get("profile_image_url_https"),
        color=color_value,
    )


def _parse_v1_entities(e: Optional[Dict[str, Any]]) -> Optional[Entities]:
    if not e:
        return None
    entities = Entities()
    for m in e.get("user_mentions") or []:
        start, end = _indices(m)
        entities.mentions.append(
            Mention(start=start, end=end, username=m.get("screen_name") or "", name=m.get("name"))
        )
    for u in e.get("urls") or []:
        start, end = _indices(u)
        entities.urls.append(Link(start=start, end=end, expanded_url=u.get("expanded_url") or ""))
    for h in e.get("hashtags") or []:
        start, end = _indices(h)
        entities.hashtags.append(Tag(start=start, end=end, tag=h.get("text") or ""))
    for s in e.get("symbols") or []:
        start, end = _indices(s)
        entities.cashtags.append(Tag(start=start, end=end, tag=s.get("text") or ""))
    return entities


def _parse_v1_media(m: Dict[str, Any]) -> Media:
    video_info = m.get("video_info") or {}
    variants = [
        Variant(
            content_type=v.get("content_type") or "",
            url=v.get("url") or "",
            bitrate=v.get("bitrate"),
        )
        for v in video_info.get("variants") or []
        if v.get("url")
    ]
    return Media(
        key=str(m.get("id_str") or m.get("id") or m.get("media_url_https") or ""),
        type=m.get("type") or "",
        url=m.get("media_url_https"),
        preview_image_url=m.get("media_url_https"),
        variants=variants,
    )


def _parse_v1_tweet(t: Dict[str, Any], lookup: Lookup) -> Item:
    """解析旧版推文，用户、媒体与被引用推文写入 lookup。"""
    author = _parse_v1_user(t.get("user") or {})
    if author.id:
        lookup.users[author.id] = author

    text = t.get("full_text") or t.get("text") or ""
    entities = t.get("entities")
    extended_entities = t.get("extended_entities")
    # 超过 140 字的推文内容在 extended_tweet 中
    extended = t.get("extended_tweet")
    if extended:
        text = extended.get("full_text") or extended.get("text") or text
        entities = extended.get("entities")
        extended_entities = extended.get("extended_entities")

    media_keys: List[str] = []
    for m in (extended_entities or {}).get("media") or []:
        media = _parse_v1_media(m)
        if media.key:
            lookup.media[media.key] = media
            media_keys.append(media.key)

    references: Dict[str, str] = {}
    for kind, field_name in ((RETWEET, "retweeted_status"), (QUOTE, "quoted_status")):
        ref = t.get(field_name)
        if isinstance(ref, dict):
            ref_item = _parse_v1_tweet(ref, lookup)
            if ref_item.id:
                lookup.items[ref_item.id] = ref_item
                references[kind] = ref_item.id

    reply_to = t.get("in_reply_to_user_id_str")
    if t.get("in_reply_to_status_id_str"):
        references[REPLY] = t["in_reply_to_status_id_str"]
    if reply_to and reply_to not in lookup.users and t.get("in_reply_to_screen_name"):
        screen_name = t["in_reply_to_screen_name"]
        lookup.users[reply_to] = Author(id=reply_to, name=screen_name, username=screen_name)

    return Item(
        id=str(t.get("id_str") or t.get("id") or ""),
        author_id=author.id,
        text=text,
        entities=_parse_v1_entities(entities),
        media_keys=media_keys,
        references=references,
        in_reply_to_user_id=reply_to or None,
    )
