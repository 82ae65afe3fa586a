"""订阅选项。"""

from __future__ import annotations

from typing import Iterable, List


FLAGS = {
    "notext": 1 << 0,      # 不转发纯文本推文
    "retweets": 1 << 1,    # 转发转推
    "noquotes": 1 << 2,    # 不转发引用推文
    "replies": 1 << 3,     # 转发回复他人的推文
}


def is_set(flags: int, name: str) -> bool:
    return bool(flags & FLAGS[name])


def parse_flags(names: Iterable[str]) -> int:
    """将选项名列表转换为位掩码，遇到未知选项抛出 ValueError。"""
    flags = 0
    for name in names:
        if name not in FLAGS:
            raise ValueError(f"未知的订阅选项: {name}")
        flags |= FLAGS[name]
    return flags


def flag_names(flags: int) -> List[str]:
    return [name for name, bit in FLAGS.items() if flags & bit]
