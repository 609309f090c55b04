import re
from typing import Union


def parse_duration(value: Union[str, int, float]) -> int:
    """
    Parse a duration like '15s', '10m', '1h' or a bare number of seconds.

    Config values may be written either way; plain integers (or numeric
    strings) are taken as seconds.
    """
    if isinstance(value, bool):
        raise ValueError("Invalid duration format")
    if isinstance(value, (int, float)):
        if value < 0:
            raise ValueError("Duration must not be negative")
        return int(value)
    if isinstance(value, str) and value.strip().isdigit():
        return int(value.strip())
    return parse_time(value)


def parse_time(time_str: str) -> int:
    """
    Parse a time string like '15s', '10m', '1h' into seconds.
    """
    if not isinstance(time_str, str):
        raise ValueError("Invalid time string format")

    match = re.fullmatch(r"\s*(\d+)\s*([smh])\s*", time_str)
    if not match:
        raise ValueError("Invalid time string format")

    value, unit = match.groups()
    value = int(value)

    if unit == "s":
        return value
    elif unit == "m":
        return value * 60
    elif unit == "h":
        return value * 3600
    else:
        # This should not be reached due to the regex
        raise ValueError("Invalid time unit")
