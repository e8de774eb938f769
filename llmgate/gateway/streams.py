"""
流生命周期管理

负责：
- 准入控制：活跃会话数达到上限时拒绝新会话（CapacityError）
- 按 event_id 登记/注销会话，注销在终止事件送出前恰好执行一次
- 协作式取消：stop_stream / stop_all_streams 设置会话的取消标记，
  消费循环在每次等待下一个事件时同时等待取消标记
- is_generating / get_stream_state 查询

每个会话由一个生产任务（迭代 provider）和消费循环组成，中间是一个有界队列。
"""

import asyncio
import threading
import time
import uuid
from contextlib import aclosing, asynccontextmanager
from dataclasses import dataclass
from typing import Any, AsyncIterator, Dict, List, Optional

from log import log

from .backends.interface import CompletionRequest, LLMProvider, StreamContext
from .errors import CapacityError, InvalidRequestError
from .events import AgentEvent, EndEvent, ErrorEvent, ResponseEvent
from .permissions import PermissionCorrelator

__all__ = [
    "DEFAULT_MAX_CONCURRENT_STREAMS",
    "StreamState",
    "StreamSession",
    "StreamLifecycleManager",
]

DEFAULT_MAX_CONCURRENT_STREAMS = 10

# 队列哨兵
_STREAM_DONE = object()
_CANCELLED = object()


@dataclass
class StreamState:
    """会话状态快照"""
    event_id: str
    provider_id: str
    model_id: str
    started_at: float
    is_generating: bool
    cancelled: bool

    def to_dict(self) -> Dict[str, Any]:
        return {
            "eventId": self.event_id,
            "providerId": self.provider_id,
            "modelId": self.model_id,
            "startedAt": self.started_at,
            "isGenerating": self.is_generating,
            "cancelled": self.cancelled,
        }


class StreamSession:
    """一次进行中的请求/响应交换"""

    def __init__(self, event_id: str, provider_id: str, model_id: str):
        self.event_id = event_id
        self.provider_id = provider_id
        self.model_id = model_id
        self.started_at = time.time()
        self.cancel_event = asyncio.Event()
        self.closed_event = asyncio.Event()
        self.released = False

    @property
    def cancelled(self) -> bool:
        return self.cancel_event.is_set()

    def cancel(self) -> None:
        self.cancel_event.set()

    async def wait_closed(self) -> None:
        await self.closed_event.wait()

    def state(self) -> StreamState:
        return StreamState(
            event_id=self.event_id,
            provider_id=self.provider_id,
            model_id=self.model_id,
            started_at=self.started_at,
            is_generating=not self.released,
            cancelled=self.cancelled,
        )

    def __repr__(self) -> str:
        return f"StreamSession({self.event_id}, {self.provider_id}/{self.model_id})"


class StreamLifecycleManager:
    """
    活跃会话注册表

    注册表只通过 open_session / release / 查询方法访问，所有修改都在同一把锁内完成。
    """

    def __init__(
        self,
        max_concurrent_streams: int = DEFAULT_MAX_CONCURRENT_STREAMS,
        permissions: Optional[PermissionCorrelator] = None,
        queue_size: int = 1,
    ):
        self._lock = threading.Lock()
        self._sessions: Dict[str, StreamSession] = {}
        self._max_concurrent_streams = self._check_ceiling(max_concurrent_streams)
        self.permissions = permissions if permissions is not None else PermissionCorrelator()
        self._queue_size = queue_size

    # ==================== 配置 ====================

    @staticmethod
    def _check_ceiling(value: int) -> int:
        if int(value) < 1:
            raise ValueError("max_concurrent_streams must be at least 1")
        return int(value)

    @property
    def max_concurrent_streams(self) -> int:
        return self._max_concurrent_streams

    @max_concurrent_streams.setter
    def max_concurrent_streams(self, value: int) -> None:
        self._max_concurrent_streams = self._check_ceiling(value)
        log.info(f"Max concurrent streams set to {self._max_concurrent_streams}", tag="STREAM")

    # ==================== 登记 / 注销 ====================

    def open_session(self, provider_id: str, model_id: str, event_id: Optional[str] = None) -> StreamSession:
        """
        准入并登记新会话

        Raises:
            CapacityError: 活跃会话数已达上限
            InvalidRequestError: event_id 已在使用
        """
        event_id = event_id or uuid.uuid4().hex
        with self._lock:
            if event_id in self._sessions:
                raise InvalidRequestError(f"Event id already active: {event_id}")
            if len(self._sessions) >= self._max_concurrent_streams:
                active = len(self._sessions)
                session = None
            else:
                session = StreamSession(event_id, provider_id, model_id)
                self._sessions[event_id] = session
                active = len(self._sessions)

        if session is None:
            log.warning(
                f"Rejected stream: {active}/{self._max_concurrent_streams} active",
                tag="STREAM",
                event_id=event_id,
            )
            raise CapacityError(
                f"Too many concurrent streams (max {self._max_concurrent_streams}). Try again later."
            )

        log.info(
            f"Stream opened for {provider_id}/{model_id} ({active}/{self._max_concurrent_streams} active)",
            tag="STREAM",
            event_id=event_id,
        )
        return session

    def release(self, session: StreamSession) -> bool:
        """
        注销会话，多次调用只有第一次生效

        Returns:
            本次调用是否真正执行了注销
        """
        with self._lock:
            if session.released:
                return False
            session.released = True
            if self._sessions.get(session.event_id) is session:
                del self._sessions[session.event_id]

        self.permissions.discard_session(session.event_id)
        session.closed_event.set()
        log.debug("Stream released", tag="STREAM", event_id=session.event_id)
        return True

    @asynccontextmanager
    async def session(self, provider_id: str, model_id: str, event_id: Optional[str] = None):
        """
        会话作用域：进入时准入登记，任何方式退出时注销

        Usage:
            async with manager.session("acme", "gpt") as session:
                async for event in manager.iterate_events(session, provider, request):
                    ...
        """
        session = self.open_session(provider_id, model_id, event_id)
        try:
            yield session
        finally:
            self.release(session)

    # ==================== 事件循环 ====================

    async def _produce(self, session: StreamSession, provider: LLMProvider,
                       request: CompletionRequest, queue: asyncio.Queue) -> None:
        context = StreamContext(session.event_id, session.cancel_event, self.permissions.wait_for_decision)
        events = provider.stream_completion(request, context)
        try:
            async for event in events:
                if isinstance(event, ResponseEvent) and event.permission_request is not None:
                    # 在 provider 继续执行之前登记，保证 wait_for_permission 能找到
                    self.permissions.register(session.event_id, event.permission_request)
                await queue.put(event)
                if isinstance(event, (EndEvent, ErrorEvent)):
                    break
        except Exception as e:
            log.error(f"Provider stream failed: {e}", tag="STREAM", event_id=session.event_id)
            await queue.put(ErrorEvent(error=str(e) or e.__class__.__name__))
        finally:
            aclose = getattr(events, "aclose", None)
            if aclose is not None:
                await aclose()
        await queue.put(_STREAM_DONE)

    @staticmethod
    async def _next_item(queue: asyncio.Queue, session: StreamSession) -> Any:
        """等待下一个事件或取消，先到者生效"""
        if session.cancelled:
            return _CANCELLED
        if not queue.empty():
            return queue.get_nowait()

        getter = asyncio.ensure_future(queue.get())
        stopper = asyncio.ensure_future(session.cancel_event.wait())
        try:
            await asyncio.wait((getter, stopper), return_when=asyncio.FIRST_COMPLETED)
        finally:
            stopper.cancel()
            if not getter.done():
                getter.cancel()

        if getter.done() and not getter.cancelled():
            return getter.result()
        return _CANCELLED

    async def iterate_events(
        self,
        session: StreamSession,
        provider: LLMProvider,
        request: CompletionRequest,
    ) -> AsyncIterator[AgentEvent]:
        """
        驱动 provider 并产出规范事件

        以恰好一个 EndEvent 结束；provider 出错时在 EndEvent 之前有一个 ErrorEvent。
        取消之后不再产出任何 ResponseEvent。会话在 EndEvent 送出前注销。
        """
        queue: asyncio.Queue = asyncio.Queue(maxsize=self._queue_size)
        producer = asyncio.ensure_future(self._produce(session, provider, request, queue))
        try:
            with log.timer("stream", tag="STREAM", event_id=session.event_id):
                while True:
                    item = await self._next_item(queue, session)
                    if item is _CANCELLED or item is _STREAM_DONE or session.cancelled:
                        break
                    if isinstance(item, EndEvent):
                        break
                    if isinstance(item, ErrorEvent):
                        yield item
                        break
                    yield item
        finally:
            try:
                if not producer.done():
                    producer.cancel()
                await asyncio.gather(producer, return_exceptions=True)
            finally:
                self.release(session)

        if session.cancelled:
            log.warning("Stream stopped by user", tag="STREAM", event_id=session.event_id)
        else:
            log.success("Stream finished", tag="STREAM", event_id=session.event_id)
        yield EndEvent(user_stop=session.cancelled)

    async def stream_completion(
        self,
        provider: LLMProvider,
        request: CompletionRequest,
    ) -> AsyncIterator[AgentEvent]:
        """以 request.event_id 准入并驱动一次完整会话"""
        async with self.session(provider.info.id, request.model_id, request.event_id) as session:
            async with aclosing(self.iterate_events(session, provider, request)) as events:
                async for event in events:
                    yield event

    # ==================== 取消 ====================

    async def stop_stream(self, event_id: str) -> bool:
        """
        请求停止指定会话

        Returns:
            会话存在时返回 True
        """
        with self._lock:
            session = self._sessions.get(event_id)
        if session is None:
            return False
        session.cancel()
        log.info("Stop requested", tag="STREAM", event_id=event_id)
        return True

    async def stop_all_streams(self, timeout: Optional[float] = None) -> int:
        """
        取消全部活跃会话并等待它们送出终止事件

        Args:
            timeout: 最长等待秒数，None 表示一直等待

        Returns:
            被取消的会话数
        """
        with self._lock:
            sessions = list(self._sessions.values())
        if not sessions:
            return 0

        for session in sessions:
            session.cancel()
        log.info(f"Stopping {len(sessions)} active stream(s)", tag="STREAM")

        waiters = asyncio.gather(*(session.wait_closed() for session in sessions))
        if timeout is None:
            await waiters
        else:
            try:
                await asyncio.wait_for(waiters, timeout)
            except asyncio.TimeoutError:
                log.warning(f"Timed out after {timeout}s waiting for streams to stop", tag="STREAM")
        return len(sessions)

    # ==================== 查询 ====================

    def is_generating(self, event_id: str) -> bool:
        with self._lock:
            return event_id in self._sessions

    def get_stream_state(self, event_id: str) -> Optional[StreamState]:
        with self._lock:
            session = self._sessions.get(event_id)
        return session.state() if session else None

    def list_streams(self) -> List[StreamState]:
        with self._lock:
            sessions = list(self._sessions.values())
        return [session.state() for session in sessions]

    @property
    def active_count(self) -> int:
        with self._lock:
            return len(self._sessions)
