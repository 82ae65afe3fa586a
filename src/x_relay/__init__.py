"""X/Twitter 推文转发模块。

通过推特 filtered stream 接收订阅用户的推文，转发到 Discord 频道。
"""

from .models import Author, FeedEvent, Item, Lookup, Post, Subscription
from .config import Config
from .feed import FeedError, parse_payload
from .text import reconstruct
from .embed import compose, compose_relationships
from .filters import get_filtered_subs
from .backoff import Backoff
from .stream import FeedStream, StreamError
from .lifecycle import StreamManager, StreamState
from .relay import Relay
from .discord import DiscordDispatcher
from .main import main, cli_main

__all__ = [
    "Author",
    "FeedEvent",
    "Item",
    "Lookup",
    "Post",
    "Subscription",
    "Config",
    "FeedError",
    "parse_payload",
    "reconstruct",
    "compose",
    "compose_relationships",
    "get_filtered_subs",
    "Backoff",
    "FeedStream",
    "StreamError",
    "StreamManager",
    "StreamState",
    "Relay",
    "DiscordDispatcher",
    "main",
    "cli_main",
]
