"""推文转发机器人主入口。"""

from __future__ import annotations

import argparse
import logging
import sys
from typing import List, Optional

from .backoff import Backoff
from .config import Config
from .discord import DiscordDispatcher
from .flags import flag_names, parse_flags
from .lifecycle import StreamManager
from .maintenance import make_user_lookup, users_sanity_check
from .models import Subscription
from .relay import Relay
from .store import SubscriptionStore, UserStore
from .stream import FeedStream
from .unfurl import LinkUnfurler


logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(message)s",
    handlers=[logging.StreamHandler(sys.stdout)],
)
logger = logging.getLogger(__name__)


def sanity_check(config: Config, users: UserStore) -> int:
    """清理无效用户，返回删除数。"""
    if config.disable_sanity_check:
        logger.info("已设置 DISABLE_SANITY_CHECK，跳过用户检查")
        return 0
    if config.users_batch_size is None or config.users_check_timeout is None:
        logger.error("USERS_BATCH_SIZE 或 USERS_CHECK_TIMEOUT 未设置为有效数字，用户检查中止")
        return 0

    logger.info("开始用户检查，用户较多时耗时较长，可在 .env 中关闭")
    deleted = users_sanity_check(
        users,
        make_user_lookup(config.twitter_token),
        limit=config.users_batch_size,
        delay=config.users_check_timeout * 3600,
    )
    logger.info(f"用户检查完成，删除 {deleted} 个无效用户")
    return deleted


def run(config: Config) -> int:
    """连接推文流并阻塞，直到收到无法恢复的错误。"""
    subscriptions = SubscriptionStore(config.subscriptions_file)
    subscriptions.load()
    users = UserStore(config.users_file, subscriptions)
    users.load()

    relay = Relay(
        subscriptions,
        users,
        DiscordDispatcher(config.discord_token),
        unfurler=LinkUnfurler(timeout=config.unfurl_timeout),
        workers=config.unfurl_workers,
    )
    manager = StreamManager(
        lambda listener: FeedStream(config.twitter_token, listener),
        users,
        relay.handle,
        backoff=Backoff(config.reconnect_start, config.max_reconnect_delay),
        disable_streams=config.disable_streams,
    )
    manager.create_stream()

    try:
        # 短超时轮询，保证 Ctrl+C 可以及时响应
        while not manager.wait(1):
            pass
    except KeyboardInterrupt:
        logger.info("收到中断信号，退出")
        manager.destroy_stream()
        return 0

    # 420 错误：退出进程，由外部进程管理器重启
    return 1


def manage_subscriptions(config: Config, args: argparse.Namespace) -> int:
    """添加或删除一条订阅，返回退出码。"""
    subscriptions = SubscriptionStore(config.subscriptions_file)
    subscriptions.load()

    if args.unsubscribe:
        author_id, channel_id = args.unsubscribe
        removed = subscriptions.remove(author_id, channel_id)
        if not removed:
            logger.warning(f"未找到订阅: {author_id} -> {channel_id}")
            return 1
        logger.info(f"已删除订阅: {author_id} -> {channel_id}")
        return 0

    author_id, channel_id = args.subscribe
    try:
        flags = parse_flags(args.flags)
    except ValueError as e:
        logger.error(f"订阅选项无效: {e}")
        return 2
    subscriptions.add(Subscription(
        author_id=author_id,
        channel_id=channel_id,
        flags=flags,
        is_dm=args.dm,
        msg=args.msg,
    ))
    logger.info(f"已添加订阅: {author_id} -> {channel_id} {flag_names(flags)}")
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    """主函数。"""
    parser = argparse.ArgumentParser(description="将推特用户的推文转发到 Discord 频道")
    parser.add_argument("--sanity-check", action="store_true", help="只执行一次用户清理后退出")
    group = parser.add_mutually_exclusive_group()
    group.add_argument("--subscribe", nargs=2, metavar=("TWITTER_ID", "CHANNEL_ID"), help="添加订阅后退出")
    group.add_argument("--unsubscribe", nargs=2, metavar=("TWITTER_ID", "CHANNEL_ID"), help="删除订阅后退出")
    parser.add_argument("--flags", nargs="*", default=[], help="订阅选项: notext retweets noquotes replies")
    parser.add_argument("--dm", action="store_true", help="CHANNEL_ID 为用户 ID，以私信发送")
    parser.add_argument("--msg", help="随推文发送的文字")
    args = parser.parse_args(argv)

    # 加载配置
    config = Config.from_env()
    logging.getLogger().setLevel(config.log_level)

    # 管理订阅不需要 token
    if args.subscribe or args.unsubscribe:
        config.ensure_dirs()
        return manage_subscriptions(config, args)

    errors = config.validate()
    if errors:
        for err in errors:
            logger.error(err)
        return 2
    config.ensure_dirs()

    if args.sanity_check:
        subscriptions = SubscriptionStore(config.subscriptions_file)
        subscriptions.load()
        users = UserStore(config.users_file, subscriptions)
        users.load()
        sanity_check(config, users)
        return 0

    return run(config)


def cli_main() -> None:
    """CLI 入口点。"""
    raise SystemExit(main())


if __name__ == "__main__":
    cli_main()
