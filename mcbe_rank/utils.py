"""
时间工具

所有持久化的时间戳都是“分钟时间戳”：自 Unix 纪元以来的整分钟数。
"""

from datetime import datetime
from typing import Optional


def minute_timestamp(now: Optional[datetime] = None) -> int:
    """
    把时间转换为分钟时间戳

    Args:
        now: 本地时间（naive datetime），默认当前时间

    Returns:
        自 Unix 纪元以来的整分钟数
    """
    if now is None:
        now = datetime.now()
    return int(now.timestamp() // 60)


def from_minute_timestamp(timestamp: int) -> datetime:
    """把分钟时间戳转换回本地时间（naive datetime）"""
    return datetime.fromtimestamp(timestamp * 60)
