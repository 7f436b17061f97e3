"""录制开关（可订阅的布尔状态）"""

import threading
import traceback
from typing import Callable, List

ToggleCallback = Callable[[bool], None]


class RecordingToggle:
    """
    录制开关

    值只在真正变化时通知订阅者。回调在调用 set() 的线程上执行，
    订阅者需要自行切换到自己的执行上下文。
    """

    def __init__(self, initial: bool = False):
        self._value = initial
        self._lock = threading.Lock()
        self._subscribers: List[ToggleCallback] = []

    @property
    def value(self) -> bool:
        with self._lock:
            return self._value

    def set(self, value: bool) -> bool:
        """
        设置开关

        Returns:
            值是否发生了变化
        """
        value = bool(value)
        with self._lock:
            if value == self._value:
                return False
            self._value = value
            subscribers = list(self._subscribers)

        for callback in subscribers:
            try:
                callback(value)
            except Exception as e:
                print(f"[Toggle] 订阅者回调失败: {e}")
                traceback.print_exc()
        return True

    def subscribe(self, callback: ToggleCallback) -> Callable[[], None]:
        """订阅变化，返回取消订阅函数"""
        with self._lock:
            self._subscribers.append(callback)

        def unsubscribe():
            with self._lock:
                if callback in self._subscribers:
                    self._subscribers.remove(callback)

        return unsubscribe
