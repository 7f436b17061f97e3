"""屏幕采集能力接口"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Tuple


@dataclass
class Frame:
    """一帧原始画面（BGRA，行优先）"""
    data: bytes
    width: int
    height: int
    timestamp: float  # 采集时的 Unix 时间戳


class CaptureError(Exception):
    """采集会话错误基类"""

    def __init__(self, message: str, code: Optional[int] = None):
        super().__init__(message)
        self.code = code


class UserStoppedCapture(CaptureError):
    """用户主动停止了采集（不是错误，不重试）"""


class TransientCaptureError(CaptureError):
    """可重试的采集错误：没有显示器、显示器未就绪、被系统停止等"""


class FatalCaptureError(CaptureError):
    """不可重试的采集错误"""


# 系统采集框架返回的错误码分类
USER_STOPPED_CODES = {-3808, -3817}
TRANSIENT_CODES = {-3807, -3815, -3821}


def error_from_code(code: int, message: str = "") -> CaptureError:
    """
    将平台错误码映射为对应的异常类型

    Args:
        code: 平台错误码
        message: 错误描述

    Returns:
        对应分类的 CaptureError 实例
    """
    text = message or f"采集错误 {code}"
    if code in USER_STOPPED_CODES:
        return UserStoppedCapture(text, code)
    if code in TRANSIENT_CODES:
        return TransientCaptureError(text, code)
    return FatalCaptureError(text, code)


class SystemEvent(str, Enum):
    """影响录制的系统事件"""
    WILL_SLEEP = "will_sleep"
    DID_WAKE = "did_wake"
    SCREEN_LOCKED = "screen_locked"
    SCREEN_UNLOCKED = "screen_unlocked"
    SCREENSAVER_STARTED = "screensaver_started"
    SCREENSAVER_STOPPED = "screensaver_stopped"

    @property
    def is_pause(self) -> bool:
        return self in (SystemEvent.WILL_SLEEP, SystemEvent.SCREEN_LOCKED, SystemEvent.SCREENSAVER_STARTED)


def scaled_dimensions(width: int, height: int, target_height: int) -> Tuple[int, int]:
    """
    按屏幕比例计算输出尺寸（不放大，宽高均为偶数）

    Args:
        width: 源宽度
        height: 源高度
        target_height: 输出高度上限

    Returns:
        (输出宽度, 输出高度)
    """
    if width <= 0 or height <= 0:
        raise ValueError(f"无效的屏幕尺寸: {width}x{height}")
    out_height = min(height, target_height)
    out_width = round(width * out_height / height)
    # H.264 yuv420p 要求偶数尺寸
    out_width = max(2, out_width - out_width % 2)
    out_height = max(2, out_height - out_height % 2)
    return out_width, out_height


class CaptureSession(ABC):
    """
    一个打开的采集会话

    属性 source_width / source_height 为屏幕原始尺寸，
    output_width / output_height 为编码输出尺寸。
    """

    source_width: int
    source_height: int
    output_width: int
    output_height: int

    @abstractmethod
    def next_frame(self) -> Frame:
        """
        阻塞直到下一帧（按会话帧率节流）

        Raises:
            CaptureError: 会话出错
        """

    @abstractmethod
    def close(self) -> None:
        """关闭会话，释放底层资源"""


class CaptureSource(ABC):
    """屏幕采集源"""

    @abstractmethod
    def open_session(self, fps: int, target_height: int) -> CaptureSession:
        """
        对主显示器打开采集会话

        Args:
            fps: 采集帧率
            target_height: 输出高度上限

        Raises:
            CaptureError: 打开失败
        """
