"""基于 mss 的屏幕采集实现"""

import time
from typing import Optional

import mss
from mss.exception import ScreenShotError

from capture.interface import (
    CaptureSession,
    CaptureSource,
    Frame,
    TransientCaptureError,
    scaled_dimensions,
)


class MssCaptureSession(CaptureSession):
    """
    mss 采集会话

    mss 的句柄与线程绑定，会话的创建、取帧和关闭必须在同一个线程中进行。
    """

    def __init__(self, monitor_index: int, fps: int, target_height: int):
        try:
            self._sct = mss.mss()
        except ScreenShotError as e:
            raise TransientCaptureError(f"无法初始化屏幕采集: {e}")

        monitors = self._sct.monitors
        # monitors[0] 是所有屏幕的并集，monitors[1] 是主显示器
        if len(monitors) <= monitor_index:
            self._sct.close()
            raise TransientCaptureError(f"未找到显示器 {monitor_index}")

        self._monitor = dict(monitors[monitor_index])
        self.source_width = self._monitor["width"]
        self.source_height = self._monitor["height"]
        self.output_width, self.output_height = scaled_dimensions(
            self.source_width, self.source_height, target_height
        )
        self._interval = 1.0 / max(1, fps)
        self._next_due: Optional[float] = None

    def next_frame(self) -> Frame:
        if self._sct is None:
            raise TransientCaptureError("采集会话已关闭")

        now = time.monotonic()
        if self._next_due is not None and now < self._next_due:
            time.sleep(self._next_due - now)
            now = self._next_due
        self._next_due = now + self._interval

        try:
            shot = self._sct.grab(self._monitor)
        except ScreenShotError as e:
            raise TransientCaptureError(f"截屏失败: {e}")

        if shot.width != self.source_width or shot.height != self.source_height:
            # 分辨率变化，需要重新打开会话
            raise TransientCaptureError(
                f"显示器尺寸变化: {self.source_width}x{self.source_height} -> {shot.width}x{shot.height}"
            )

        return Frame(data=bytes(shot.bgra), width=shot.width, height=shot.height, timestamp=time.time())

    def close(self) -> None:
        if self._sct is not None:
            self._sct.close()
            self._sct = None


class MssCaptureSource(CaptureSource):
    """对主显示器截屏的采集源"""

    def __init__(self, monitor_index: int = 1):
        self.monitor_index = monitor_index

    def open_session(self, fps: int, target_height: int) -> MssCaptureSession:
        return MssCaptureSession(self.monitor_index, fps, target_height)
