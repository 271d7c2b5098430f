from dataclasses import dataclass, field
from typing import Any

import httpx

from pkg.logger import logger
from pkg.toolkit.json import orjson_loads
from pkg.toolkit.mask import mask_mapping


@dataclass
class RequestResult:
    status_code: int | None = None
    response: httpx.Response | None = None
    error: str | None = None
    _json: Any = field(init=False, default=None)

    @property
    def success(self) -> bool:
        return self.error is None and self.status_code is not None and 200 <= self.status_code < 300

    @property
    def text(self) -> str:
        if not self.response:
            return ""
        return self.response.text

    def json(self) -> Any:
        if self._json is not None:
            return self._json
        if not self.response:
            return {}
        try:
            self._json = orjson_loads(self.response.content)
            return self._json
        except ValueError as e:
            raise RuntimeError(f"Failed to parse JSON: {e}") from e


class AsyncHttpClient:
    """
    基于 httpx 封装的异步客户端。

    - 所有请求都有超时上限，第三方接口卡死时快速失败
    - 请求日志中的敏感参数（token、secret、code）会被脱敏
    - 异常统一转换为 RequestResult.error，不向上抛出网络异常
    """

    def __init__(
        self,
        base_url: str = "",
        timeout: float = 10,
        headers: dict[str, str] | None = None,
        verify: bool = True,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.timeout = timeout
        self.default_headers = headers or {"Accept": "application/json"}
        self.client = httpx.AsyncClient(
            base_url=base_url,
            timeout=timeout,
            headers=self.default_headers,
            verify=verify,
            transport=transport,
        )

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def close(self):
        await self.client.aclose()

    async def _request(
        self,
        method: str,
        url: str,
        *,
        params: dict[str, Any] | None = None,
        data: dict[str, Any] | str | None = None,
        json: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
        timeout: float | None = None,
    ) -> RequestResult:
        url = url.strip()
        method = method.upper()
        logger.info(f"Req: {method} {url} | params={mask_mapping(params)}")

        try:
            response = await self.client.request(
                method=method,
                url=url,
                params=params,
                data=data,
                json=json,
                headers=headers or {},
                timeout=timeout or self.timeout,
            )

            err_msg = None
            if response.is_error:
                err_msg = f"HTTP {response.status_code}"

            return RequestResult(status_code=response.status_code, response=response, error=err_msg)

        except httpx.TimeoutException as exc:
            logger.error(f"Timeout to {method} {url}: {exc!r}")
            return RequestResult(status_code=0, error=f"Timeout: {exc!r}")
        except httpx.RequestError as exc:
            logger.error(f"RequestError to {method} {url}: {exc!r}")
            return RequestResult(status_code=0, error=f"Network Error: {exc!r}")

    async def get(self, url: str, **kwargs) -> RequestResult:
        return await self._request("GET", url, **kwargs)

    async def post(self, url: str, **kwargs) -> RequestResult:
        return await self._request("POST", url, **kwargs)
