"""推文正文重建。

按实体的码点区间替换正文：
- 开头连续的 @ 提及（回复前缀）删除，其余提及改为 Markdown 链接
- t.co 短链接替换为展开后的地址，纯文本推文顺便取得链接预览图
- #话题 与 $股票 标签改为搜索链接
"""

from __future__ import annotations

import logging
import unicodedata
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

from .models import Entities, Link, Mention
from .unfurl import PageMetadata, best_picture


logger = logging.getLogger(__name__)

SHORTENER_PREFIX = "https://t.co/"
PROFILE_URL = "https://twitter.com/{username}"
HASHTAG_URL = "https://twitter.com/hashtag/{tag}?src=hash"
CASHTAG_URL = "https://twitter.com/search?q=%24{tag}&src=cashtag"


@dataclass(frozen=True)
class EntitySpan:
    """正文中 [start, end) 区间的一次替换。"""

    start: int
    end: int
    replacement: str
    order: int = 0


@dataclass
class FormattedText:
    text: str
    preview: Optional[str] = None


def _nfc(text: str) -> str:
    return unicodedata.normalize("NFC", text)


def mention_spans(mentions: Sequence[Mention]) -> List[EntitySpan]:
    """
    生成提及的替换区间。

    从偏移 0 开始首尾相接的提及视为回复前缀，连同其后的一个空格一起删除；
    一旦出现不相接的提及，之后的所有提及都改写为链接。
    """
    spans: List[EntitySpan] = []
    in_replies = True
    reply_index = 0
    valid = [m for m in mentions if m.username and m.start is not None and m.end]
    for m in sorted(valid, key=lambda m: m.start):
        if in_replies and m.start == reply_index:
            spans.append(EntitySpan(m.start, m.end + 1, ""))
            reply_index = m.end + 1
        else:
            in_replies = False
            label = m.name or m.username
            url = PROFILE_URL.format(username=m.username)
            spans.append(EntitySpan(m.start, m.end, f"[@{label}]({url})"))
    return spans


def _unfurl_one(unfurler, link: Link) -> Optional[PageMetadata]:
    try:
        return unfurler.fetch_metadata(link.expanded_url)
    except Exception as e:
        logger.debug(f"链接展开失败 {link.expanded_url}: {e}")
        return None


def unfurl_links(unfurler, links: Sequence[Link], workers: int = 8) -> List[Optional[PageMetadata]]:
    """并发获取每个链接的网页元数据，单个失败只影响自身（结果为 None）。"""
    if unfurler is None or not links:
        return [None] * len(links)
    with ThreadPoolExecutor(max_workers=max(1, min(workers, len(links)))) as pool:
        return list(pool.map(lambda link: _unfurl_one(unfurler, link), links))


def link_spans(
    links: Sequence[Link],
    unfurler=None,
    is_text_only: bool = False,
    workers: int = 8,
) -> Tuple[List[EntitySpan], Optional[str]]:
    """
    生成链接的替换区间并挑选预览图。

    Returns:
        (替换区间列表, 预览图 URL 或 None)
    """
    valid = [link for link in links if link.expanded_url and link.start is not None and link.end is not None]
    # 带媒体的推文用不到预览图，不发请求
    metadata = unfurl_links(unfurler if is_text_only else None, valid, workers)

    spans: List[EntitySpan] = []
    preview: Optional[str] = None
    # 倒序扫描：正文中最后一个成功展开的链接优先作为预览
    for link, meta in reversed(list(zip(valid, metadata))):
        if preview is None and meta is not None:
            preview = best_picture(meta)
        spans.append(EntitySpan(link.start, link.end, link.expanded_url))
    return spans, preview


def tag_spans(entities: Entities) -> List[EntitySpan]:
    spans: List[EntitySpan] = []
    for h in entities.hashtags:
        if h.tag and h.start is not None and h.end:
            spans.append(EntitySpan(h.start, h.end, f"[#{h.tag}]({HASHTAG_URL.format(tag=h.tag)})"))
    for c in entities.cashtags:
        if c.tag and c.start is not None and c.end:
            spans.append(EntitySpan(c.start, c.end, f"[${c.tag}]({CASHTAG_URL.format(tag=c.tag)})"))
    return spans


def apply_spans(text: str, spans: Sequence[EntitySpan]) -> str:
    """按起点升序依次替换，offset 记录此前替换造成的长度变化。"""
    code_points = list(_nfc(text))
    offset = 0
    ordered = sorted(
        (EntitySpan(s.start, s.end, s.replacement, i) for i, s in enumerate(spans)),
        key=lambda s: (s.start, s.order),
    )
    for span in ordered:
        new = list(_nfc(span.replacement))
        code_points = (
            code_points[:span.start + offset]
            + new
            + code_points[span.end + offset:]
        )
        offset += len(new) - (span.end - span.start)
    return "".join(code_points)


def unescape_entities(text: str) -> str:
    return text.replace("&amp;", "&").replace("&gt;", ">").replace("&lt;", "<")


def strip_shortener(text: str) -> str:
    """截掉第一个 t.co 短链接及其之后的内容（推文末尾自动附加的媒体链接）。"""
    idx = text.find(SHORTENER_PREFIX)
    return text[:idx] if idx > -1 else text


def reconstruct(
    text: str,
    entities: Optional[Entities],
    is_text_only: bool,
    unfurler=None,
    workers: int = 8,
) -> FormattedText:
    """
    重建推文正文。

    Args:
        text: 原始正文
        entities: 实体列表，为空时原样返回
        is_text_only: 是否为纯文本推文（只有纯文本推文需要链接预览图）
        unfurler: 提供 fetch_metadata(url) 的对象，None 时不请求网络
        workers: 并发展开链接的线程数

    Returns:
        FormattedText
    """
    if entities is None or entities.is_empty():
        return FormattedText(text)

    spans = mention_spans(entities.mentions)
    url_spans, preview = link_spans(entities.urls, unfurler, is_text_only, workers)
    spans.extend(url_spans)
    spans.extend(tag_spans(entities))

    fixed = strip_shortener(unescape_entities(apply_spans(text, spans)))
    return FormattedText(fixed, preview)
