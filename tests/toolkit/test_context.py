import asyncio

import anyio
import pytest

from pkg.toolkit.context import clear, get_trace_id, get_val, init, set_trace_id, set_val


@pytest.fixture(autouse=True)
def clean_context():
    clear()
    yield
    clear()


class TestRequestContext:
    def test_basic_lifecycle(self):
        """初始化后可以读写 trace_id"""
        init()
        set_trace_id("trace-123")

        assert get_trace_id() == "trace-123"

    def test_init_with_trace_id(self):
        init(trace_id="trace-abc")
        assert get_trace_id() == "trace-abc"

    def test_set_trace_id_validation_error(self):
        """trace_id 必须是非空字符串"""
        init()

        with pytest.raises(ValueError, match="trace_id is mandatory"):
            set_trace_id(None)

        with pytest.raises(ValueError, match="trace_id is mandatory"):
            set_trace_id("")

        with pytest.raises(ValueError, match="trace_id must be a string"):
            set_trace_id(123)

    def test_get_without_init(self):
        """未初始化时读取返回默认值"""
        assert get_trace_id() == "-"
        assert get_val("anything", "default") == "default"

    def test_set_without_init_raises_error(self):
        """未初始化时写入抛出 RuntimeError"""
        with pytest.raises(RuntimeError, match="Request context is not initialized"):
            set_val("temp_key", "temp_value")

    async def test_async_context_isolation(self):
        """并发请求之间的上下文互不干扰"""

        async def request_handler(trace_id: str, delay: float) -> str:
            init(trace_id=trace_id)
            await anyio.sleep(delay)
            return get_trace_id()

        task_a = asyncio.create_task(request_handler("trace-A", 0.05))
        task_b = asyncio.create_task(request_handler("trace-B", 0.01))

        assert await task_a == "trace-A"
        assert await task_b == "trace-B"
