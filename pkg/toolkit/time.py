import datetime


def utc_now_naive() -> datetime.datetime:
    """
    获取当前 UTC 时间，不带时区信息（naive datetime），精度到秒。
    数据库中所有时间字段统一使用该格式。
    """
    return datetime.datetime.now(datetime.UTC).replace(microsecond=0, tzinfo=None)


def to_naive_utc(val: datetime.datetime) -> datetime.datetime:
    """
    将任意 datetime 转换为 naive UTC。
    - 有时区信息：先转换到 UTC 再去掉时区
    - 无时区信息：假定已经是 UTC
    """
    if val.tzinfo is not None:
        val = val.astimezone(datetime.UTC)
    return val.replace(tzinfo=None)


def naive_after_seconds(seconds: int | float, *, now: datetime.datetime | None = None) -> datetime.datetime:
    """返回 now + seconds 的 naive UTC 时间，常用于计算 token / state 的过期时间"""
    base = now if now is not None else utc_now_naive()
    return base + datetime.timedelta(seconds=seconds)


def format_iso_datetime(val: datetime.datetime, *, use_z: bool = True, timespec: str = "milliseconds") -> str:
    """
    将 datetime 对象格式化为 ISO 8601 字符串。
    - 有时区信息：保留时区并输出 ISO 格式
    - 无时区信息：假定为 UTC

    Args:
        val: 要格式化的 datetime 对象。
        use_z: 如果为 True 且时区为 UTC，输出 'Z' 格式；否则输出 '+00:00' 格式。
        timespec: 时间精度，可选值：'auto', 'seconds', 'milliseconds' 等。

    Returns:
        ISO 8601 格式的字符串。
    """
    if val.tzinfo is None:
        val = val.replace(tzinfo=datetime.UTC)

    iso_str = val.isoformat(timespec=timespec)

    if use_z and val.utcoffset() == datetime.timedelta(0):
        return iso_str.replace("+00:00", "Z")

    return iso_str
