"""用户清理：删除已注销或无法访问的推特账号。"""

from __future__ import annotations

import logging
import time
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, Optional

import requests

from .stream import API_BASE


logger = logging.getLogger(__name__)


def make_user_lookup(bearer_token: str, session: Optional[requests.Session] = None, timeout: int = 15) -> Callable[[str], bool]:
    """
    返回 lookup(user_id)。

    账号存在时为 True；只有明确的"不存在"（HTTP 404，或 200 但只有 errors 没有 data）为 False。

    Raises:
        requests.RequestException: 鉴权失败、限流、服务端错误或网络异常
    """
    session = session or requests.Session()
    headers = {"Authorization": f"Bearer {bearer_token}"}

    def lookup(user_id: str) -> bool:
        resp = session.get(f"{API_BASE}/users/{user_id}", headers=headers, timeout=timeout)
        if resp.status_code == 404:
            return False
        resp.raise_for_status()
        body = resp.json()
        if body.get("data"):
            return True
        if body.get("errors"):
            return False
        raise ValueError(f"无法识别的用户查询结果: {body}")

    return lookup


def _is_deleted(lookup: Callable[[str], bool], user_id: str) -> bool:
    try:
        return not lookup(user_id)
    except (requests.RequestException, ValueError) as e:
        logger.warning(f"查询用户 {user_id} 失败，保留该用户: {e}")
        return False


def users_sanity_check(
    store,
    lookup: Callable[[str], bool],
    limit: int,
    delay: float,
    sleep: Callable[[float], None] = time.sleep,
) -> int:
    """
    分页检查存储中的用户，删除确认已不存在的账号。

    删除会让后面的用户前移，所以下一页的起点只前进本页保留下来的人数。

    Args:
        store: 提供 get_users_for_sanity_check / bulk_delete_users 的用户存储
        lookup: 查询账号是否存在
        limit: 每页用户数
        delay: 两页之间的等待秒数
        sleep: 等待函数

    Returns:
        删除的用户数；批量删除出错时中止并返回 0
    """
    deleted_total = 0
    offset = 0
    while True:
        ids = store.get_users_for_sanity_check(limit, offset)
        if not ids:
            break
        logger.info(f"用户检查: {offset} -> {offset + len(ids)}")

        with ThreadPoolExecutor(max_workers=min(len(ids), 8)) as pool:
            deleted = list(pool.map(lambda user_id: _is_deleted(lookup, user_id), ids))
        to_delete = [user_id for user_id, d in zip(ids, deleted) if d]

        try:
            removed = store.bulk_delete_users(to_delete) if to_delete else 0
        except (OSError, ValueError) as e:
            logger.error(f"批量删除用户失败，检查中止: {e}")
            return 0

        deleted_total += removed
        logger.info(f"用户检查: {offset} -> {offset + len(ids)}，删除 {removed} 个无效用户")
        if len(ids) < limit:
            break
        offset += len(ids) - len(to_delete)
        sleep(delay)

    return deleted_total
