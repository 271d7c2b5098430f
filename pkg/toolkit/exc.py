import traceback


def _get_last_exec_tb(exc: Exception, lines: int = 5) -> str:
    tb_lines = traceback.format_exception(type(exc), exc, exc.__traceback__)
    return "\n".join(tb_lines[-lines:]).strip()


def get_business_exec_tb(exc: Exception) -> str:
    """业务异常只保留最后几行，避免日志刷屏"""
    return _get_last_exec_tb(exc, lines=3)


def get_unexpected_exec_tb(exc: Exception) -> str:
    return _get_last_exec_tb(exc, lines=10)
