"""时区工具方法：支持根据配置动态获取当前时区。"""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Optional

from zoneinfo import ZoneInfo

from app.packages.idea_repo.core.config import get_settings


def get_timezone() -> ZoneInfo:
    """返回配置指定的时区信息。"""
    return get_settings().timezone_info


def now() -> datetime:
    """返回当前时区的时间。"""
    return datetime.now(get_timezone())


def isoformat(value: datetime) -> str:
    return value.isoformat(timespec="microseconds")


def parse_iso(value: Optional[str]) -> Optional[datetime]:
    """解析 ISO-8601 字符串，无法解析时返回 ``None``。"""
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except (TypeError, ValueError):
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=get_timezone())
    return parsed


def next_after(previous: Optional[str]) -> datetime:
    """返回当前时间，但保证严格晚于 ``previous``（时钟精度不足或回拨时顺延 1 微秒）。"""
    current = now()
    last = parse_iso(previous)
    if last is not None and current <= last:
        current = (last + timedelta(microseconds=1)).astimezone(get_timezone())
    return current
