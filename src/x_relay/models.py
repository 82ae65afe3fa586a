"""数据模型定义。"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Optional


# 引用关系类型
RETWEET = "retweet"
QUOTE = "quote"
REPLY = "reply"


@dataclass
class Author:
    """推文作者。"""

    id: str                                      # 用户 ID
    name: str                                    # 显示名
    username: str                                # 用户名（不含 @）
    avatar: Optional[str] = None                 # 头像 URL
    color: Optional[int] = None                  # 旧版接口的主页链接颜色


@dataclass
class Mention:
    start: int
    end: int
    username: str
    name: Optional[str] = None


@dataclass
class Link:
    start: int
    end: int
    expanded_url: str


@dataclass
class Tag:
    """话题标签或股票标签。"""

    start: int
    end: int
    tag: str


@dataclass
class Entities:
    """正文中的实体，偏移量按 Unicode 码点计算。"""

    mentions: List[Mention] = field(default_factory=list)
    urls: List[Link] = field(default_factory=list)
    hashtags: List[Tag] = field(default_factory=list)
    cashtags: List[Tag] = field(default_factory=list)

    def is_empty(self) -> bool:
        return not (self.mentions or self.urls or self.hashtags or self.cashtags)


@dataclass
class Variant:
    """视频的一个码率版本。"""

    content_type: str
    url: str
    bitrate: Optional[int] = None


@dataclass
class Media:
    """附件媒体。"""

    key: str                                     # media_key
    type: str                                    # photo / video / animated_gif
    url: Optional[str] = None                    # 图片 URL
    preview_image_url: Optional[str] = None      # 视频封面
    variants: List[Variant] = field(default_factory=list)


@dataclass
class Item:
    """标准化后的推文。

    新旧两版接口的数据都由 feed 模块转换成这个结构。
    """

    id: str
    author_id: str
    text: str
    entities: Optional[Entities] = None
    media_keys: List[str] = field(default_factory=list)
    # 引用关系: retweet / quote / reply -> 推文 ID
    references: Dict[str, str] = field(default_factory=dict)
    in_reply_to_user_id: Optional[str] = None

    @property
    def is_retweet(self) -> bool:
        return RETWEET in self.references

    @property
    def is_quote(self) -> bool:
        return QUOTE in self.references

    @property
    def is_reply(self) -> bool:
        return REPLY in self.references


@dataclass
class Lookup:
    """随推文一起下发的关联数据（用户、被引用推文、媒体）。"""

    users: Dict[str, Author] = field(default_factory=dict)
    items: Dict[str, Item] = field(default_factory=dict)
    media: Dict[str, Media] = field(default_factory=dict)

    def user(self, user_id: Optional[str]) -> Optional[Author]:
        if not user_id:
            return None
        return self.users.get(user_id)

    def referenced(self, item: Item, kind: str) -> Optional[Item]:
        """返回 item 按 kind 引用的推文，不在关联数据中时返回 None。"""
        ref_id = item.references.get(kind)
        if not ref_id:
            return None
        return self.items.get(ref_id)

    def media_for(self, item: Item) -> List[Media]:
        """返回 item 的全部附件；任何一个无法解析时返回空列表。"""
        if not item.media_keys:
            return []
        if not all(key in self.media for key in item.media_keys):
            return []
        return [self.media[key] for key in item.media_keys]


@dataclass
class FeedEvent:
    """推文流中的一条数据。"""

    item: Item
    lookup: Lookup


@dataclass
class Post:
    """一条待发送的嵌入消息。

    image / video / images 至多设置一项，纯文本推文三者都为空
    （或仅有链接预览图 image）。
    """

    url: str
    author_name: str
    author_url: str
    description: str
    color: int
    thumbnail: Optional[str] = None
    image: Optional[str] = None
    video: Optional[str] = None
    images: List[str] = field(default_factory=list)


@dataclass
class Subscription:
    """一个频道对某个用户的订阅。"""

    author_id: str                               # 被订阅的用户 ID
    channel_id: str                              # 目标频道（私信时为用户 ID）
    flags: int = 0
    is_dm: bool = False
    msg: Optional[str] = None                    # 固定附加消息


@dataclass
class Message:
    """发往单个频道的一条消息。"""

    posts: List[Post]
    content: Optional[str] = None
