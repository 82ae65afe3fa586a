"""推特 v2 filtered stream 连接。

create() 同步订阅规则后在后台线程读取推文流，通过 listener 回调：
on_start() / on_data(event) / on_error(StreamError) / on_end()
"""

from __future__ import annotations

import json
import logging
import threading
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence

import requests

from .feed import FeedError, parse_payload


logger = logging.getLogger(__name__)

API_BASE = "https://api.twitter.com/2"

# 单条规则长度上限
MAX_RULE_LENGTH = 512

STREAM_PARAMS = {
    "expansions": ",".join([
        "author_id",
        "attachments.media_keys",
        "referenced_tweets.id",
        "referenced_tweets.id.author_id",
        "in_reply_to_user_id",
    ]),
    "tweet.fields": "author_id,entities,attachments,referenced_tweets,in_reply_to_user_id,note_tweet",
    "user.fields": "name,username,profile_image_url",
    "media.fields": "type,url,preview_image_url,variants,duration_ms",
}


@dataclass
class StreamError:
    """推文流错误。

    kind: "connect error" / "data error"
    inner_kind: "response"（接口返回错误）/ "request"（网络异常）
    """

    kind: str
    inner_kind: Optional[str] = None
    code: Optional[int] = None
    detail: Optional[str] = None
    message: Optional[str] = None

    @property
    def is_fatal(self) -> bool:
        # 420：请求过于频繁，只能重启进程
        return self.kind == "connect error" and self.inner_kind == "response" and self.code == 420


def build_rules(source_ids: Sequence[str], max_length: int = MAX_RULE_LENGTH) -> List[str]:
    """将用户 ID 拼成 "from:1 OR from:2" 形式的规则，每条不超过 max_length。"""
    rules: List[str] = []
    current = ""
    for source_id in source_ids:
        part = f"from:{source_id}"
        candidate = f"{current} OR {part}" if current else part
        if len(candidate) > max_length and current:
            rules.append(current)
            current = part
        else:
            current = candidate
    if current:
        rules.append(current)
    return rules


def _response_error(resp: requests.Response) -> StreamError:
    detail = resp.text[:200]
    try:
        body = resp.json()
        detail = body.get("detail") or body.get("title") or detail
    except ValueError:
        pass
    return StreamError(kind="connect error", inner_kind="response", code=resp.status_code, detail=detail)


class FeedStream:
    """推文流连接，同一时间只有一个读取线程有效。"""

    def __init__(
        self,
        bearer_token: str,
        listener,
        session: Optional[requests.Session] = None,
        api_base: str = API_BASE,
        timeout: int = 30,
    ):
        self.bearer_token = bearer_token
        self.listener = listener
        self.session = session or requests.Session()
        self.api_base = api_base.rstrip("/")
        self.timeout = timeout
        self._lock = threading.Lock()
        self._generation = 0
        self._response: Optional[requests.Response] = None
        self._thread: Optional[threading.Thread] = None

    @property
    def _headers(self) -> Dict[str, str]:
        return {"Authorization": f"Bearer {self.bearer_token}"}

    # ============================================================
    # 订阅规则
    # ============================================================

    def get_rules(self) -> List[Dict[str, Any]]:
        resp = self.session.get(f"{self.api_base}/tweets/search/stream/rules", headers=self._headers, timeout=self.timeout)
        resp.raise_for_status()
        return resp.json().get("data") or []

    def set_rules(self, source_ids: Sequence[str]) -> None:
        """用 source_ids 生成的规则替换现有规则。"""
        url = f"{self.api_base}/tweets/search/stream/rules"
        old_ids = [r["id"] for r in self.get_rules() if r.get("id")]
        if old_ids:
            resp = self.session.post(url, json={"delete": {"ids": old_ids}}, headers=self._headers, timeout=self.timeout)
            resp.raise_for_status()
        rules = build_rules(source_ids)
        if rules:
            payload = {"add": [{"value": value} for value in rules]}
            resp = self.session.post(url, json=payload, headers=self._headers, timeout=self.timeout)
            resp.raise_for_status()
        logger.info(f"已设置 {len(rules)} 条规则，共 {len(source_ids)} 个用户")

    # ============================================================
    # 连接
    # ============================================================

    def create(self, source_ids: Sequence[str]) -> None:
        """断开旧连接并在后台线程建立新连接。"""
        self.disconnected()
        with self._lock:
            self._generation += 1
            generation = self._generation
        self._thread = threading.Thread(
            target=self._run,
            args=(list(source_ids), generation),
            name=f"feed-stream-{generation}",
            daemon=True,
        )
        self._thread.start()

    def disconnected(self) -> None:
        """关闭当前连接，旧线程之后的回调全部忽略。"""
        with self._lock:
            self._generation += 1
            resp, self._response = self._response, None
        if resp is not None:
            resp.close()

    def _current(self, generation: int) -> bool:
        with self._lock:
            return generation == self._generation

    def _run(self, source_ids: List[str], generation: int) -> None:
        try:
            self.set_rules(source_ids)
            resp = self.session.get(
                f"{self.api_base}/tweets/search/stream",
                params=STREAM_PARAMS,
                headers=self._headers,
                stream=True,
                timeout=(self.timeout, 90),
            )
        except requests.HTTPError as e:
            if self._current(generation):
                self.listener.on_error(_response_error(e.response))
            return
        except requests.RequestException as e:
            if self._current(generation):
                self.listener.on_error(StreamError(kind="connect error", inner_kind="request", message=str(e)))
            return

        if resp.status_code != 200:
            resp.close()
            if self._current(generation):
                self.listener.on_error(_response_error(resp))
            return

        with self._lock:
            if generation != self._generation:
                resp.close()
                return
            self._response = resp

        # 加锁之后可能已被 disconnected() 取代
        if not self._current(generation):
            resp.close()
            return
        self.listener.on_start()
        try:
            for line in resp.iter_lines():
                if not self._current(generation):
                    return
                # 空行是心跳
                if not line:
                    continue
                self._handle_line(line)
        except requests.RequestException as e:
            if self._current(generation):
                logger.warning(f"推文流读取中断: {e}")
        finally:
            resp.close()

        if self._current(generation):
            self.listener.on_end()

    def _handle_line(self, line: bytes) -> None:
        try:
            payload = json.loads(line)
            event = parse_payload(payload)
        except (ValueError, FeedError) as e:
            logger.warning(f"无法解析推文流数据: {e}")
            return
        if event is None:
            errors = payload.get("errors")
            if not errors:
                logger.debug(f"忽略不含推文的数据: {payload}")
                return
            err = errors[0]
            self.listener.on_error(StreamError(
                kind="data error",
                inner_kind="response",
                detail=err.get("detail"),
                message=err.get("title"),
            ))
            return
        self.listener.on_data(event)
