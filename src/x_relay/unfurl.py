"""链接展开：获取网页的 Open Graph / Twitter Card 图片。"""

from __future__ import annotations

import html
import re
from dataclasses import dataclass, field
from typing import List, Optional

import requests


USER_AGENT = "Mozilla/5.0 (compatible; x-relay/1.0)"

# 只读取网页开头部分，meta 标签都在 <head> 里
MAX_PAGE_BYTES = 256 * 1024

_META_RE = re.compile(r"<meta\b[^>]*>", re.IGNORECASE)
_ATTR_RE = re.compile(r'([a-zA-Z:-]+)\s*=\s*(?:"([^"]*)"|\'([^\']*)\')')

_OG_IMAGE_KEYS = ("og:image", "og:image:url", "og:image:secure_url")
_TWITTER_IMAGE_KEYS = ("twitter:image", "twitter:image:src")


@dataclass
class PageMetadata:
    open_graph_images: List[str] = field(default_factory=list)
    twitter_card_images: List[str] = field(default_factory=list)


def parse_metadata(page: str) -> PageMetadata:
    """
    从 HTML 中提取 <meta> 图片。

    Args:
        page: 网页 HTML

    Returns:
        PageMetadata，按出现顺序保存两类图片 URL
    """
    meta = PageMetadata()
    # 只解析 <head>，避免正文里的示例代码干扰
    end = page.lower().find("</head>")
    head = page if end == -1 else page[:end]

    for m in _META_RE.finditer(head):
        attrs = {}
        for a in _ATTR_RE.finditer(m.group(0)):
            attrs[a.group(1).lower()] = a.group(2) if a.group(2) is not None else a.group(3)
        key = (attrs.get("property") or attrs.get("name") or "").lower()
        content = html.unescape(attrs.get("content") or "").strip()
        if not content:
            continue
        if key in _OG_IMAGE_KEYS:
            if content not in meta.open_graph_images:
                meta.open_graph_images.append(content)
        elif key in _TWITTER_IMAGE_KEYS:
            if content not in meta.twitter_card_images:
                meta.twitter_card_images.append(content)

    return meta


def _is_valid_image(url: str) -> bool:
    if not url:
        return False
    if not url.startswith("http") and not url.startswith("//"):
        return False
    idx = url.find(".")
    # 首字符之后必须有 "."
    return 0 < idx < len(url) - 1


def best_picture(meta: Optional[PageMetadata]) -> Optional[str]:
    """挑选预览图：Twitter Card 优先于 Open Graph，协议相对地址补全为 https。"""
    if meta is None:
        return None
    images = [u for u in meta.twitter_card_images + meta.open_graph_images if _is_valid_image(u)]
    if not images:
        return None
    best = images[0]
    return f"https:{best}" if best.startswith("//") else best


class LinkUnfurler:
    """通过 HTTP 获取网页元数据。"""

    def __init__(
        self,
        timeout: int = 10,
        session: Optional[requests.Session] = None,
        max_bytes: int = MAX_PAGE_BYTES,
    ):
        self.timeout = timeout
        self.max_bytes = max_bytes
        if session is None:
            session = requests.Session()
            session.headers["User-Agent"] = USER_AGENT
        self.session = session

    def fetch_metadata(self, url: str) -> PageMetadata:
        """
        获取网页元数据。

        Raises:
            requests.RequestException: 请求失败或返回非 2xx
        """
        resp = self.session.get(url, timeout=self.timeout, allow_redirects=True, stream=True)
        with resp:
            resp.raise_for_status()
            content_type = resp.headers.get("Content-Type", "")
            if "html" not in content_type.lower():
                return PageMetadata()
            body = b""
            for chunk in resp.iter_content(chunk_size=16 * 1024):
                body += chunk
                if len(body) >= self.max_bytes:
                    break
            encoding = resp.encoding or "utf-8"
        return parse_metadata(body[:self.max_bytes].decode(encoding, errors="replace"))
