import time
from dataclasses import dataclass, field

from fastapi.exceptions import RequestValidationError
from fastapi.responses import Response
from starlette.datastructures import MutableHeaders
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from internal.core.exception import AppException, errors, oauth_error_to_app_exception
from pkg.logger import logger
from pkg.oauth2.exceptions import OAuthError
from pkg.toolkit import context
from pkg.toolkit.exc import get_business_exec_tb, get_unexpected_exec_tb
from pkg.toolkit.inter import uuid7_hex
from pkg.toolkit.mask import mask_text
from pkg.toolkit.response import error_response


@dataclass
class _RequestContext:
    """请求上下文，封装中间件处理过程中的状态变量"""

    path: str
    method: str
    client_host: str
    query_string: str
    headers: MutableHeaders
    start_time: float = field(default_factory=time.perf_counter)
    trace_id: str = field(default_factory=uuid7_hex)
    response_started: bool = False

    def __post_init__(self):
        # trace_id 优先级：请求头 X-Trace-ID > uuid7
        header_trace_id = self.headers.get("X-Trace-ID")
        if header_trace_id:
            self.trace_id = header_trace_id

    @property
    def process_time(self) -> float:
        return time.perf_counter() - self.start_time

    def create_send_wrapper(self, send: Send):
        """在响应头中注入 X-Process-Time / X-Trace-ID"""

        async def send_wrapper(message: Message):
            if message["type"] == "http.response.start":
                self.response_started = True
                headers = MutableHeaders(scope=message)
                headers["X-Process-Time"] = f"{self.process_time:.4f}"
                headers["X-Trace-ID"] = self.trace_id
            await send(message)

        return send_wrapper


class ASGIRecordMiddleware:
    def __init__(self, app: ASGIApp):
        self.app = app

    @staticmethod
    def _log_exception(exc: Exception) -> None:
        if isinstance(exc, AppException):
            logger.warning(f"Business exception, exc={get_business_exec_tb(exc)}")
        elif isinstance(exc, OAuthError):
            # detail 可能包含第三方原始响应，只写日志
            logger.warning(
                f"OAuth exception, type={exc.__class__.__name__}, provider={exc.provider}, "
                f"detail={mask_text(exc.detail or '')}, exc={get_business_exec_tb(exc)}"
            )
        elif isinstance(exc, RequestValidationError):
            logger.warning(f"Validation Error: {exc}")
        else:
            logger.error(f"Unexpected exception, exc={get_unexpected_exec_tb(exc)}")

    @staticmethod
    def _build_error_response(exc: Exception) -> Response:
        if isinstance(exc, OAuthError):
            exc = oauth_error_to_app_exception(exc)

        if isinstance(exc, AppException):
            return error_response(error=exc.error, message=exc.message)
        elif isinstance(exc, RequestValidationError):
            return error_response(error=errors.BadRequest, message=f"Validation Error: {exc}")
        else:
            return error_response(error=errors.InternalServerError)

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        req_ctx = _RequestContext(
            path=scope["path"],
            method=scope["method"],
            client_host=(scope.get("client") or ("unknown",))[0],
            query_string=scope.get("query_string", b"").decode(),
            headers=MutableHeaders(scope=scope),
        )
        send_wrapper = req_ctx.create_send_wrapper(send)

        # 全局异常捕获，覆盖整个请求处理流程
        try:
            context.init(trace_id=req_ctx.trace_id)

            with logger.contextualize(trace_id=req_ctx.trace_id):
                # 回调地址的 query 中带有授权码，需要脱敏
                logger.info(
                    f"access log, ip={req_ctx.client_host}, method={req_ctx.method}, "
                    f"path={req_ctx.path}, query_string={mask_text(req_ctx.query_string)}"
                )
                await self.app(scope, receive, send_wrapper)
                logger.info(f"response log, processing time={req_ctx.process_time:.4f}s")

        except Exception as exc:
            with logger.contextualize(trace_id=req_ctx.trace_id):
                self._log_exception(exc)

                if not req_ctx.response_started:
                    error_resp = self._build_error_response(exc)
                    await error_resp(scope, receive, send_wrapper)
                else:
                    logger.critical(
                        f"Response already started, cannot send error response. trace_id={req_ctx.trace_id}"
                    )
        finally:
            context.clear()
