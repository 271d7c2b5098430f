import datetime
from dataclasses import dataclass
from decimal import Decimal
from typing import Any

import orjson
from fastapi.responses import ORJSONResponse, RedirectResponse
from pydantic import BaseModel


# =========================================================
# 1. 定义状态码结构与全局状态码
# =========================================================

@dataclass(frozen=True)
class AppStatus:
    """
    应用状态对象基类
    将状态码与多语言文案绑定在一起
    """

    code: int
    message: dict[str, str]
    http_status: int = 200

    def get_msg(self, lang: str = "zh") -> str:
        """根据语言获取文案，默认回退到中文"""
        return self.message.get(lang) or self.message.get("zh", "")


@dataclass(frozen=True)
class AppError(AppStatus):
    """
    专门用于表示应用错误的子类 (继承自 AppStatus)
    """
    pass


class BaseCodes:
    """
    全局状态码定义
    不使用 Enum，直接使用类属性，方便代码跳转和类型提示
    """

    success = AppStatus(20000, {"zh": "", "en": ""})


# =========================================================
# 2. 高性能 JSON 响应类
# =========================================================


class CustomORJSONResponse(ORJSONResponse):
    """
    基于 orjson 的响应类，仅在 default 回调中处理特殊类型。
    """

    SERIALIZER_OPTIONS = (
        orjson.OPT_SERIALIZE_UUID
        | orjson.OPT_NAIVE_UTC
        | orjson.OPT_UTC_Z
        | orjson.OPT_OMIT_MICROSECONDS
        | orjson.OPT_NON_STR_KEYS
    )

    def render(self, content: Any) -> bytes:
        def default_serializer(obj: Any) -> Any:
            if isinstance(obj, Decimal):
                return str(obj)

            if isinstance(obj, bytes):
                return obj.decode("utf-8", "ignore")

            if isinstance(obj, datetime.timedelta):
                return obj.total_seconds()

            if isinstance(obj, (set, frozenset)):
                return list(obj)

            raise TypeError(f"Type {type(obj)} not serializable")

        try:
            return orjson.dumps(content, option=self.SERIALIZER_OPTIONS, default=default_serializer)
        except TypeError as e:
            raise ValueError(f"JSON serialization failed: {e}") from e


# =========================================================
# 3. 响应工厂
# =========================================================


class ResponseFactory:
    @staticmethod
    def _make_response(
        *, code: int, data: Any = None, message: str = "", http_status: int = 200
    ) -> CustomORJSONResponse:
        """基础响应构造器"""
        return CustomORJSONResponse(
            status_code=http_status,
            content={
                "code": code,
                "message": message,
                "data": data,
            },
        )

    @staticmethod
    def _process_success_data(data: dict | list | BaseModel | None) -> dict | list | None:
        """
        将成功响应的数据转换为 dict / list。

        Raises:
            TypeError: 如果数据类型不符合要求。
        """
        if isinstance(data, BaseModel):
            return data.model_dump(mode="json")

        if isinstance(data, list):
            return [item.model_dump(mode="json") if isinstance(item, BaseModel) else item for item in data]

        if isinstance(data, dict) or data is None:
            return data

        raise TypeError(
            f"Success response data must be a dict, a list, a Pydantic model instance, or None, "
            f"but received type: {type(data)}"
        )

    def success(self, *, data: dict | list | BaseModel | None = None, message: str = "") -> CustomORJSONResponse:
        data = self._process_success_data(data)
        return self._make_response(code=BaseCodes.success.code, data=data, message=message)

    def error(self, error: AppError, *, message: str = "", data: Any = None, lang: str = "zh") -> CustomORJSONResponse:
        """
        通用错误响应。

        Args:
            error: GlobalCodes 中定义的错误对象
            message: 自定义详细信息。如果传入，将拼接到默认文案后面。
            data: 附加数据
            lang: 语言代码 ('zh', 'en')，默认为 'zh'
        """
        base_msg = error.get_msg(lang)
        final_message = f"{base_msg}: {message}" if message else base_msg
        return self._make_response(code=error.code, message=final_message, data=data, http_status=error.http_status)


# 全局单例
response_factory = ResponseFactory()


# =========================================================
# 4. 工具函数
# =========================================================

def success_response(data: dict | list | BaseModel | None = None, message: str = "") -> CustomORJSONResponse:
    return response_factory.success(data=data, message=message)


def error_response(error: AppError, *, message: str = "", data: Any = None, lang: str = "zh") -> CustomORJSONResponse:
    return response_factory.error(error, message=message, data=data, lang=lang)


def redirect_response(url: str) -> RedirectResponse:
    """授权回调完成后跳回前端页面"""
    return RedirectResponse(url=url, status_code=302)
