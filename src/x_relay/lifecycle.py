"""推文流生命周期管理：连接、断线重连与退避。"""

from __future__ import annotations

import enum
import logging
import threading
from typing import Callable, Optional

from .backoff import Backoff
from .models import FeedEvent
from .stream import StreamError


logger = logging.getLogger(__name__)


class StreamState(enum.Enum):
    NO_STREAM = "no_stream"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"
    FATAL = "fatal"


class StreamManager:
    """
    管理唯一的推文流连接。

    - 断线或可恢复的错误后按 backoff 延迟重连，同一时间至多一个重连计时器
    - 连接成功后重置 backoff
    - 420 错误进入 FATAL 状态并设置 terminated，由外部退出进程
    """

    def __init__(
        self,
        stream_factory: Callable[["StreamManager"], object],
        users,
        on_item: Callable[[FeedEvent], None],
        backoff: Optional[Backoff] = None,
        disable_streams: bool = False,
        timer_factory: Callable[..., threading.Timer] = threading.Timer,
    ):
        """
        Args:
            stream_factory: 以本对象为 listener 创建 FeedStream
            users: 提供 get_all_source_ids() 的用户存储
            on_item: 处理单条推文
            backoff: 重连延迟（毫秒）
            disable_streams: 为 True 时不建立连接
            timer_factory: 计时器工厂，签名同 threading.Timer
        """
        self._stream_factory = stream_factory
        self._users = users
        self._on_item = on_item
        self.backoff = backoff or Backoff()
        self.disable_streams = disable_streams
        self._timer_factory = timer_factory

        self._lock = threading.RLock()
        self._stream = None
        self._timer: Optional[threading.Timer] = None
        self.state = StreamState.NO_STREAM
        self.terminated = threading.Event()

    @property
    def reconnect_pending(self) -> bool:
        with self._lock:
            return self._timer is not None

    # ============================================================
    # 建立连接
    # ============================================================

    def create_stream(self) -> None:
        """（重新）建立连接；已有重连计时器时忽略。"""
        with self._lock:
            if self.state is StreamState.FATAL:
                return
            if self._timer is not None:
                logger.info("收到建立连接的请求，但已在等待重连")
                return
            if self._stream is None:
                self._stream = self._stream_factory(self)
            stream = self._stream

        source_ids = self._users.get_all_source_ids()
        if not source_ids:
            logger.info("没有需要关注的用户，不建立连接")
            with self._lock:
                self.state = StreamState.NO_STREAM
            return

        if self.disable_streams:
            logger.warning("已设置 DISABLE_STREAMS，不建立连接")
            return

        with self._lock:
            self.state = StreamState.CONNECTING
        logger.info(f"正在连接推文流，关注 {len(source_ids)} 个用户")
        stream.create(source_ids)

    def destroy_stream(self) -> None:
        with self._lock:
            if self._stream is not None:
                self._stream.disconnected()

    def _reconnect(self) -> None:
        with self._lock:
            self._timer = None
        self.create_stream()

    def _schedule_reconnect(self) -> int:
        """替换现有计时器，返回本次延迟。调用方需持有锁。"""
        if self._timer is not None:
            self._timer.cancel()
        delay = self.backoff.value()
        self._timer = self._timer_factory(delay / 1000, self._reconnect)
        self._timer.daemon = True
        self._timer.start()
        self.backoff.increment()
        return delay

    # ============================================================
    # 回调
    # ============================================================

    def on_start(self) -> None:
        with self._lock:
            self.state = StreamState.CONNECTED
            self.backoff.reset()
        logger.info("推文流连接成功")

    def on_data(self, event: FeedEvent) -> None:
        try:
            self._on_item(event)
        except Exception:
            item_id = event.item.id if event and event.item else None
            logger.exception(f"处理推文 {item_id} 失败")

    def on_end(self) -> None:
        self.destroy_stream()
        with self._lock:
            if self.state is StreamState.FATAL:
                return
            self.state = StreamState.DISCONNECTED
            delay = self._schedule_reconnect()
        logger.warning(f"与推特的连接已断开，{delay}ms 后重连")

    def on_error(self, error: StreamError) -> None:
        if error.is_fatal:
            logger.error("收到 420 错误，退出进程等待重启")
            with self._lock:
                self.state = StreamState.FATAL
                if self._timer is not None:
                    self._timer.cancel()
                    self._timer = None
            self.destroy_stream()
            self.terminated.set()
            return

        self.destroy_stream()
        with self._lock:
            if self.state is StreamState.FATAL:
                return
            self.state = StreamState.DISCONNECTED
            delay = self._schedule_reconnect()
        if error.inner_kind == "response":
            logger.warning(f"推特错误 {error.code}: {error.detail}，{delay}ms 后重连")
        else:
            logger.warning(
                f"推文流错误 type={error.kind} inner={error.inner_kind} code={error.code} "
                f"detail={error.detail} message={error.message}，{delay}ms 后重连"
            )

    def wait(self, timeout: Optional[float] = None) -> bool:
        """阻塞直到进入 FATAL 状态。"""
        return self.terminated.wait(timeout)
