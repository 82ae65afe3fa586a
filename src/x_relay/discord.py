"""Discord 消息发送模块。"""

from __future__ import annotations

import logging
import threading
from typing import Any, Dict, List, Optional

import requests

from .models import Message, Post, Subscription


logger = logging.getLogger(__name__)

API_BASE = "https://discord.com/api/v10"

# 单条消息最多 10 个 embed
MAX_EMBEDS = 10
MAX_DESCRIPTION = 4096
MAX_CONTENT = 2000


# ============================================================
# 消息格式化
# ============================================================

def render_post(post: Post) -> List[Dict[str, Any]]:
    """
    将 Post 转换为 Discord embed。

    多图推文的其余图片放在 url 相同的额外 embed 中，Discord 会合并显示。
    """
    embed: Dict[str, Any] = {
        "url": post.url,
        "author": {"name": post.author_name, "url": post.author_url},
        "description": post.description[:MAX_DESCRIPTION],
        "color": post.color,
    }
    if post.thumbnail:
        embed["thumbnail"] = {"url": post.thumbnail}
    if post.image:
        embed["image"] = {"url": post.image}

    embeds = [embed]
    for i, img in enumerate(post.images):
        if i == 0:
            embed["image"] = {"url": img}
        else:
            embeds.append({"url": post.url, "image": {"url": img}})
    return embeds


def render_message(message: Message) -> Dict[str, Any]:
    embeds: List[Dict[str, Any]] = []
    lines: List[str] = []
    if message.content:
        lines.append(message.content)
    for post in message.posts:
        embeds.extend(render_post(post))
        # embed 不能播放视频，附上链接让 Discord 自行展开
        if post.video:
            lines.append(post.video)

    payload: Dict[str, Any] = {"embeds": embeds[:MAX_EMBEDS]}
    if lines:
        payload["content"] = "\n".join(lines)[:MAX_CONTENT]
    return payload


# ============================================================
# 发送
# ============================================================

class DiscordDispatcher:
    """Discord Bot 封装。"""

    def __init__(
        self,
        token: str,
        session: Optional[requests.Session] = None,
        api_base: str = API_BASE,
        timeout: int = 15,
    ):
        self.token = token
        self.session = session or requests.Session()
        self.api_base = api_base.rstrip("/")
        self.timeout = timeout
        self._dm_channels: Dict[str, str] = {}
        self._lock = threading.Lock()

    @property
    def _headers(self) -> Dict[str, str]:
        return {"Authorization": f"Bot {self.token}"}

    def _post(self, path: str, payload: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        url = f"{self.api_base}{path}"
        try:
            r = self.session.post(url, json=payload, headers=self._headers, timeout=self.timeout)
        except requests.RequestException as e:
            logger.error(f"请求 {path} 异常: {e}")
            return None
        if not r.ok:
            logger.error(f"请求 {path} 失败: HTTP {r.status_code} {r.text[:200]}")
            return None
        try:
            return r.json()
        except ValueError:
            return {}

    def dm_channel(self, user_id: str) -> Optional[str]:
        """获取（并缓存）与用户的私信频道。"""
        with self._lock:
            if user_id in self._dm_channels:
                return self._dm_channels[user_id]
        result = self._post("/users/@me/channels", {"recipient_id": user_id})
        if not result or not result.get("id"):
            return None
        with self._lock:
            self._dm_channels[user_id] = result["id"]
        return result["id"]

    def send_payload(self, channel_id: str, payload: Dict[str, Any]) -> bool:
        return self._post(f"/channels/{channel_id}/messages", payload) is not None

    def send(self, sub: Subscription, message: Message) -> bool:
        """
        向订阅的目标发送消息，失败只记录日志。

        Returns:
            是否发送成功
        """
        if not self.token:
            logger.error("未配置 Discord Token")
            return False
        channel_id = sub.channel_id
        if sub.is_dm:
            channel_id = self.dm_channel(sub.channel_id)
            if channel_id is None:
                logger.error(f"无法打开与 {sub.channel_id} 的私信")
                return False
        ok = self.send_payload(channel_id, render_message(message))
        if not ok:
            logger.error(f"发送到频道 {channel_id} 失败")
        return ok
