"""
滚动玩家纪录

每台服务器保存当天、本周、本月出现过的最高在线人数。
周期切换时，纪录从当前采样值重新开始。
"""

from datetime import datetime
from typing import Optional

from .models import RollingRecord, ServerRecord
from .utils import from_minute_timestamp


def _roll(record: RollingRecord, numplayers: int, reset: bool):
    if reset:
        record.numplayers = numplayers
    else:
        record.numplayers = max(record.numplayers, numplayers)


def day_changed(previous: Optional[datetime], now: datetime) -> bool:
    """两个时间之间至少跨过一次本地午夜时返回 True"""
    return previous is None or now.date() > previous.date()


def week_changed(previous: Optional[datetime], now: datetime) -> bool:
    """周一的第一次更新返回 True"""
    if previous is None:
        return True
    return previous.weekday() != now.weekday() and now.weekday() == 0


def month_changed(previous: Optional[datetime], now: datetime) -> bool:
    if previous is None:
        return True
    return (previous.year, previous.month) != (now.year, now.month)


def update_records(server: ServerRecord, now: datetime):
    """
    把服务器当前的 numplayers 合并进滚动纪录

    必须在 Ping 之后、刷新 last_update 之前调用，
    因为 last_update 代表上一次采样的时间。

    Args:
        server: 原地更新的记录
        now: 本次采样时间
    """
    previous = from_minute_timestamp(server.last_update) if server.last_update >= 0 else None
    numplayers = server.numplayers

    _roll(server.daily_record, numplayers, day_changed(previous, now))
    _roll(server.weekly_record, numplayers, week_changed(previous, now))
    _roll(server.monthly_record, numplayers, month_changed(previous, now))
