def unique_list(values: list | tuple, exclude_none=True) -> list:
    seen = {}
    for value in values:
        if value is None and exclude_none:
            continue

        if value in seen:
            continue

        seen[value] = None

    return list(seen.keys())


def ensure_list(v) -> list:
    if v is None:
        return []
    if isinstance(v, (list, tuple)):
        return list(v)
    return [v]
