"""
请求上下文（仅承载 trace_id）

用户身份不放入上下文：由控制器从 request.state 显式读取后传给服务层。
"""
from contextvars import ContextVar
from typing import Any

_request_ctx_var: ContextVar[dict[str, Any] | None] = ContextVar("request_ctx", default=None)

KEY_TRACE_ID = "trace_id"


def init(trace_id: str | None = None) -> None:
    """初始化当前协程的上下文，由 ASGIRecordMiddleware 在请求入口调用"""
    _request_ctx_var.set({})
    if trace_id is not None:
        set_trace_id(trace_id)


def clear() -> None:
    _request_ctx_var.set(None)


def set_val(key: str, value: Any) -> None:
    ctx = _request_ctx_var.get()
    if ctx is None:
        raise RuntimeError("Request context is not initialized. Call context.init() first.")
    ctx[key] = value


def get_val(key: str, default: Any = None) -> Any:
    ctx = _request_ctx_var.get()
    if ctx is None:
        return default
    return ctx.get(key, default)


def set_trace_id(trace_id: str) -> None:
    if not trace_id:
        raise ValueError("trace_id is mandatory and cannot be empty or None")
    if not isinstance(trace_id, str):
        raise ValueError("trace_id must be a string")
    set_val(KEY_TRACE_ID, trace_id)


def get_trace_id() -> str:
    return get_val(KEY_TRACE_ID, "-")
