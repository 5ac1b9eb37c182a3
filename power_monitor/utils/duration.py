"""时长格式化工具"""

from datetime import timedelta
from typing import Optional

LESS_THAN_A_MINUTE = '不到一分钟'
UNKNOWN_DURATION = '未知'


def format_duration(duration: Optional[timedelta]) -> str:
    """
    将上一状态持续时长格式化为可读文本

    不足一分钟（包括因时间戳乱序得到的负值）统一显示为"不到一分钟"，
    不会被取整为0。

    Args:
        duration: 持续时长，None表示未知

    Returns:
        str: 例如 "3小时5分钟"、"2天1小时"
    """
    if duration is None:
        return UNKNOWN_DURATION

    total_minutes = int(duration.total_seconds() // 60)
    if total_minutes < 1:
        return LESS_THAN_A_MINUTE

    days, remainder = divmod(total_minutes, 24 * 60)
    hours, minutes = divmod(remainder, 60)

    parts = []
    if days:
        parts.append(f"{days}天")
    if hours:
        parts.append(f"{hours}小时")
    if minutes and not days:
        parts.append(f"{minutes}分钟")

    return ''.join(parts) if parts else LESS_THAN_A_MINUTE
