"""时间工具函数"""

import time
from datetime import datetime, timedelta
from typing import Optional

from config.analysis_config import AnalysisConfig


def logical_day(timestamp: Optional[float] = None, boundary_hour: Optional[int] = None) -> str:
    """
    计算逻辑日

    逻辑日以 boundary_hour（默认凌晨 4 点）为分界，分界之前的时间算作前一天。
    例如 2025-01-02 03:30 属于 2025-01-01。

    Args:
        timestamp: Unix 时间戳（秒），默认当前时间
        boundary_hour: 分界小时

    Returns:
        YYYY-MM-DD 格式的日期字符串
    """
    if timestamp is None:
        timestamp = time.time()
    if boundary_hour is None:
        boundary_hour = AnalysisConfig.DAY_BOUNDARY_HOUR
    moment = datetime.fromtimestamp(timestamp) - timedelta(hours=boundary_hour)
    return moment.strftime("%Y-%m-%d")


def parse_video_timestamp(value) -> Optional[float]:
    """
    解析视频内时间位置

    支持 "MM:SS"、"HH:MM:SS"、带小数的秒数以及纯数字。

    Args:
        value: 时间字符串或数字

    Returns:
        秒数；无法解析或为负数时返回 None
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value) if value >= 0 else None

    text = str(value).strip()
    if not text:
        return None

    parts = text.split(':')
    if len(parts) > 3:
        return None
    try:
        numbers = [float(p) for p in parts]
    except ValueError:
        return None
    if any(n < 0 for n in numbers):
        return None
    # 除最高位外，分和秒都必须小于 60
    if any(n >= 60 for n in numbers[1:]):
        return None

    seconds = 0.0
    for n in numbers:
        seconds = seconds * 60 + n
    return seconds


def format_video_timestamp(seconds: float) -> str:
    """把秒数格式化为 MM:SS（超过一小时时为 HH:MM:SS）"""
    total = max(0, int(round(seconds)))
    hours, remainder = divmod(total, 3600)
    minutes, secs = divmod(remainder, 60)
    if hours:
        return f"{hours:02d}:{minutes:02d}:{secs:02d}"
    return f"{minutes:02d}:{secs:02d}"


def format_clock_time(timestamp: float) -> str:
    """把 Unix 时间戳格式化为本地时钟时间，如 "9:05 AM" """
    moment = datetime.fromtimestamp(timestamp)
    hour = moment.hour % 12 or 12
    suffix = "AM" if moment.hour < 12 else "PM"
    return f"{hour}:{moment.minute:02d} {suffix}"
