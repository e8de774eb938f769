"""
日志模块 - 网关统一日志出口

用法：
    from log import log
    log.info("Stream opened", tag="STREAM", event_id=event_id)

级别（优先级 / 颜色）：
- debug     0  灰色      规范化、注销等细节
- info      1  白色      请求、会话开闭
- route     1  青色      模型路由决策
- success   1  绿色      流正常结束
- fallback  2  黄色      回退到默认 provider
- perf      2  紫色      流耗时
- warning   3  橙色      拒绝准入、用户停止、单个 provider 失败
- error     4  红色      provider 异常、未处理异常
- critical  5  红色加粗

环境变量：
- LOG_LEVEL     最低输出级别，默认 info
- LOG_FORMAT    json 时控制台输出 JSON Lines，默认 text
- LOG_FILE      设置后额外追加纯文本日志到该文件
- NO_COLOR / FORCE_COLOR  控制彩色输出

每条日志自动附带当前请求的 request_id（由中间件写入 ContextVar）。
"""

import contextvars
import json
import os
import sys
import threading
import time
from contextlib import contextmanager
from datetime import datetime
from typing import Any, Dict, List, NamedTuple, Optional


class Colors:
    """ANSI 颜色代码"""
    RESET = "\033[0m"
    BOLD = "\033[1m"
    DIM = "\033[2m"
    RED = "\033[31m"
    YELLOW = "\033[33m"
    WHITE = "\033[37m"
    BRIGHT_RED = "\033[91m"
    BRIGHT_GREEN = "\033[92m"
    BRIGHT_YELLOW = "\033[93m"
    BRIGHT_CYAN = "\033[96m"
    BRIGHT_MAGENTA = "\033[95m"


class LevelStyle(NamedTuple):
    priority: int
    color: str
    label: str


LEVELS: Dict[str, LevelStyle] = {
    "debug": LevelStyle(0, Colors.DIM + Colors.WHITE, "DEBUG"),
    "info": LevelStyle(1, Colors.WHITE, "INFO"),
    "route": LevelStyle(1, Colors.BRIGHT_CYAN, "ROUTE"),
    "success": LevelStyle(1, Colors.BRIGHT_GREEN, "SUCCESS"),
    "fallback": LevelStyle(2, Colors.BRIGHT_YELLOW, "FALLBACK"),
    "perf": LevelStyle(2, Colors.BRIGHT_MAGENTA, "PERF"),
    "warning": LevelStyle(3, Colors.YELLOW + Colors.BOLD, "WARNING"),
    "error": LevelStyle(4, Colors.RED, "ERROR"),
    "critical": LevelStyle(5, Colors.BRIGHT_RED + Colors.BOLD, "CRITICAL"),
}

# 兼容旧接口：级别名 -> 优先级
LOG_LEVELS = {name: style.priority for name, style in LEVELS.items()}

_STDERR_LEVELS = ("error", "critical")


def _supports_color() -> bool:
    if os.getenv("NO_COLOR"):
        return False
    if os.getenv("FORCE_COLOR"):
        return True
    return hasattr(sys.stdout, "isatty") and sys.stdout.isatty()


_color_enabled = _supports_color()
_structured_log_enabled = os.getenv("LOG_FORMAT", "text").lower() == "json"


def _threshold() -> int:
    return LOG_LEVELS.get(os.getenv("LOG_LEVEL", "info").lower(), LOG_LEVELS["info"])


# ==================== 请求上下文 ====================

# asyncio 任务各自继承创建时的上下文，并发请求之间互不干扰
_request_id_var: contextvars.ContextVar[Optional[str]] = contextvars.ContextVar(
    "gateway_request_id", default=None
)


def set_request_id(request_id: Optional[str]) -> contextvars.Token:
    """设置当前上下文的 request_id，返回可用于恢复的 token"""
    return _request_id_var.set(request_id)


def get_request_id() -> Optional[str]:
    return _request_id_var.get()


def clear_request_id(token: Optional[contextvars.Token] = None):
    """有 token 时恢复到设置之前的值，否则直接清空"""
    if token is not None:
        _request_id_var.reset(token)
    else:
        _request_id_var.set(None)


# ==================== 输出 ====================

class _FileSink:
    """LOG_FILE 纯文本追加；写入失败一次后停用，避免每条日志都报错"""

    def __init__(self):
        self._lock = threading.Lock()
        self._disabled = False

    def write(self, line: str) -> None:
        path = os.getenv("LOG_FILE")
        if self._disabled or not path:
            return
        try:
            with self._lock, open(path, "a", encoding="utf-8") as f:
                f.write(line + "\n")
        except OSError as e:
            self._disabled = True
            print(f"Warning: Disabling log file writing: {e}", file=sys.stderr)


_file_sink = _FileSink()


def _paint(text: str, color: str) -> str:
    return f"{color}{text}{Colors.RESET}" if _color_enabled else text


def _render_text(style: LevelStyle, now: datetime, message: str, tag: Optional[str],
                 extra: Dict[str, Any], colored: bool) -> str:
    clock = now.strftime("%H:%M:%S")
    fields = " ".join(f"{key}={value}" for key, value in extra.items())

    if not colored:
        parts = [f"[{clock}]", f"[{style.label}]"]
        if tag:
            parts.append(f"[{tag}]")
        line = " ".join(parts) + f" {message}"
        return f"{line} | {fields}" if fields else line

    parts = [_paint(f"[{clock}]", Colors.DIM), _paint(f"[{style.label}]", style.color)]
    if tag:
        parts.append(_paint(f"[{tag}]", Colors.BRIGHT_MAGENTA))
    line = " ".join(parts) + f" {message}"
    return f"{line} {_paint(f'| {fields}', Colors.DIM)}" if fields else line


def _emit(level: str, message: str, tag: Optional[str] = None, **extra):
    """
    核心日志函数

    Args:
        level: 级别名，见 LEVELS
        message: 日志消息
        tag: 模块标签（GATEWAY / ROUTER / STREAM / PERMISSION / CONFIG）
        **extra: 结构化字段
    """
    style = LEVELS.get(level.lower())
    if style is None:
        print(f"Warning: Unknown log level '{level}'", file=sys.stderr)
        return
    if style.priority < _threshold():
        return

    request_id = _request_id_var.get()
    if request_id and "request_id" not in extra:
        extra["request_id"] = request_id

    now = datetime.now()
    stream = sys.stderr if level in _STDERR_LEVELS else sys.stdout

    if _structured_log_enabled:
        entry: Dict[str, Any] = {"timestamp": now.isoformat(), "level": style.label, "message": message}
        if tag:
            entry["tag"] = tag
        entry.update(extra)
        print(json.dumps(entry, ensure_ascii=False, default=str), file=stream)
    else:
        print(_render_text(style, now, message, tag, extra, _color_enabled), file=stream)

    _file_sink.write(_render_text(style, now, message, tag, extra, colored=False))


# ==================== 性能指标 ====================

class _PerfRecorder:
    """按操作名保留最近的耗时样本（毫秒）"""

    MAX_SAMPLES = 1000

    def __init__(self):
        self._lock = threading.Lock()
        self._samples: Dict[str, List[float]] = {}

    def record(self, operation: str, duration_ms: float) -> None:
        with self._lock:
            samples = self._samples.setdefault(operation, [])
            samples.append(duration_ms)
            if len(samples) > self.MAX_SAMPLES:
                del samples[:-self.MAX_SAMPLES]

    def snapshot(self, operation: Optional[str] = None) -> Dict[str, Any]:
        with self._lock:
            if operation:
                return self._stats(operation, list(self._samples.get(operation, [])))
            return {op: self._stats(op, list(samples)) for op, samples in self._samples.items()}

    def clear(self, operation: Optional[str] = None) -> None:
        with self._lock:
            if operation:
                self._samples.pop(operation, None)
            else:
                self._samples.clear()

    @staticmethod
    def _stats(operation: str, samples: List[float]) -> Dict[str, Any]:
        if not samples:
            return {"operation": operation, "count": 0}

        ordered = sorted(samples)
        count = len(ordered)
        return {
            "operation": operation,
            "count": count,
            "min_ms": round(ordered[0], 2),
            "max_ms": round(ordered[-1], 2),
            "avg_ms": round(sum(ordered) / count, 2),
            "p50_ms": round(ordered[count // 2], 2),
            "p95_ms": round(ordered[int(count * 0.95)], 2) if count >= 20 else None,
        }


def _level_method(level: str, doc: str):
    def method(self, message: str, tag: Optional[str] = None, **extra):
        _emit(level, message, tag, **extra)
    method.__name__ = level
    method.__doc__ = doc
    return method


class Logger:
    """网关日志器：log.<level>(message, tag=..., **fields)"""

    def __init__(self):
        self._perf = _PerfRecorder()

    def __call__(self, level: str, message: str, tag: Optional[str] = None, **extra):
        _emit(level, message, tag, **extra)

    debug = _level_method("debug", "调试细节")
    info = _level_method("info", "一般信息")
    route = _level_method("route", "模型路由决策")
    success = _level_method("success", "成功完成")
    fallback = _level_method("fallback", "回退到默认值")
    perf = _level_method("perf", "性能数据")
    warning = _level_method("warning", "警告")
    error = _level_method("error", "错误")
    critical = _level_method("critical", "严重错误")

    @property
    def structured(self) -> bool:
        return _structured_log_enabled

    @contextmanager
    def timer(self, operation: str, tag: Optional[str] = None, **extra):
        """
        记录代码块耗时，结束时输出 perf 日志并保存样本

        Usage:
            with log.timer("stream", tag="STREAM", event_id=event_id):
                ...
        """
        started = time.perf_counter()
        try:
            yield
        finally:
            duration_ms = (time.perf_counter() - started) * 1000
            self.perf(
                f"{operation} completed in {duration_ms:.2f}ms",
                tag=tag,
                operation=operation,
                duration_ms=round(duration_ms, 2),
                **extra
            )
            self._perf.record(operation, duration_ms)

    def get_metrics(self, operation: Optional[str] = None) -> Dict[str, Any]:
        """耗时统计；不指定 operation 时返回全部操作"""
        return self._perf.snapshot(operation)

    def clear_metrics(self, operation: Optional[str] = None):
        self._perf.clear(operation)


log = Logger()

__all__ = [
    "log",
    "Logger",
    "LEVELS",
    "LOG_LEVELS",
    "Colors",
    "set_request_id",
    "get_request_id",
    "clear_request_id",
]
