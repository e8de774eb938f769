"""
权限关联器

provider 在执行工具前产出 permission-required 事件并挂起；外部调用方按 request_id
给出授权结果，结果只送达对应会话里挂起的那个 provider。

- 每个 request_id 只能被处理一次，处理后即移除
- 处理未知或已处理的 request_id 抛出 PermissionNotFoundError，不影响其它挂起项
- 会话结束时仍未处理的权限请求按拒绝处理并移除
"""

import asyncio
import threading
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from log import log

from .errors import PermissionNotFoundError
from .events import PermissionRequest

__all__ = ["PendingPermission", "PermissionCorrelator"]


@dataclass
class PendingPermission:
    request_id: str
    event_id: str
    session_id: Optional[str]
    tool_name: str
    description: str = ""
    permission_type: str = "write"
    options: List[Dict[str, Any]] = field(default_factory=list)
    rememberable: bool = True
    created_at: float = field(default_factory=time.time)
    _future: Optional[asyncio.Future] = field(default=None, repr=False, compare=False)
    _loop: Optional[asyncio.AbstractEventLoop] = field(default=None, repr=False, compare=False)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "requestId": self.request_id,
            "eventId": self.event_id,
            "sessionId": self.session_id,
            "toolName": self.tool_name,
            "description": self.description,
            "permissionType": self.permission_type,
            "options": self.options,
            "rememberable": self.rememberable,
            "createdAt": self.created_at,
        }


def _settle(future: asyncio.Future, granted: bool) -> None:
    if not future.done():
        future.set_result(granted)


def _deliver(pending: PendingPermission, granted: bool) -> None:
    if pending._loop.is_closed():
        return
    pending._loop.call_soon_threadsafe(_settle, pending._future, granted)


class PermissionCorrelator:
    """挂起权限表，以 request_id 为键"""

    def __init__(self):
        self._lock = threading.Lock()
        self._pending: Dict[str, PendingPermission] = {}
        # 已登记但会话尚未结束的请求，包括已处理的；provider 可能在处理之后才开始等待
        self._registered: Dict[str, PendingPermission] = {}

    def register(self, event_id: str, request: PermissionRequest) -> PendingPermission:
        """
        登记一个挂起的权限请求（必须在事件循环内调用）

        Raises:
            ValueError: request_id 已登记
        """
        loop = asyncio.get_running_loop()
        pending = PendingPermission(
            request_id=request.request_id,
            event_id=event_id,
            session_id=request.session_id,
            tool_name=request.tool_name,
            description=request.description,
            permission_type=request.permission_type,
            options=list(request.options),
            rememberable=request.rememberable,
            _future=loop.create_future(),
            _loop=loop,
        )
        with self._lock:
            if request.request_id in self._registered:
                raise ValueError(f"Permission request already registered: {request.request_id}")
            self._pending[request.request_id] = pending
            self._registered[request.request_id] = pending

        log.info(
            f"Permission required for tool {request.tool_name}",
            tag="PERMISSION",
            request_id=request.request_id,
            event_id=event_id,
        )
        return pending

    async def wait_for_decision(self, request_id: str) -> bool:
        """
        等待授权结果

        Raises:
            PermissionNotFoundError: request_id 未登记
        """
        with self._lock:
            pending = self._registered.get(request_id)
        if pending is None:
            raise PermissionNotFoundError(request_id)
        return await asyncio.shield(pending._future)

    def resolve(self, request_id: str, granted: bool) -> PendingPermission:
        """
        处理权限请求，可在任意线程调用

        Raises:
            PermissionNotFoundError: 未知或已处理
        """
        with self._lock:
            pending = self._pending.pop(request_id, None)
        if pending is None:
            log.warning(f"Permission request not pending: {request_id}", tag="PERMISSION")
            raise PermissionNotFoundError(request_id)

        _deliver(pending, granted)
        log.info(
            f"Permission {'granted' if granted else 'denied'} for tool {pending.tool_name}",
            tag="PERMISSION",
            request_id=request_id,
            event_id=pending.event_id,
        )
        return pending

    def discard_session(self, event_id: str) -> int:
        """会话结束：拒绝并移除该会话全部挂起请求，返回移除数量"""
        with self._lock:
            request_ids = [rid for rid, p in self._registered.items() if p.event_id == event_id]
            for rid in request_ids:
                self._registered.pop(rid)
            discarded = [self._pending.pop(rid) for rid in request_ids if rid in self._pending]

        for pending in discarded:
            _deliver(pending, False)
        if discarded:
            log.debug(f"Discarded {len(discarded)} pending permission(s)", tag="PERMISSION", event_id=event_id)
        return len(discarded)

    def get(self, request_id: str) -> Optional[PendingPermission]:
        with self._lock:
            return self._pending.get(request_id)

    def list_pending(self, event_id: Optional[str] = None) -> List[PendingPermission]:
        with self._lock:
            items = list(self._pending.values())
        if event_id is not None:
            items = [p for p in items if p.event_id == event_id]
        return items

    def __len__(self) -> int:
        with self._lock:
            return len(self._pending)
