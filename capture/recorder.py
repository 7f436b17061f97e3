"""屏幕录制引擎"""

import asyncio
import time
import traceback
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Callable, Optional, Set, Union

from capture.chunk_writer import ChunkWriter, ChunkWriterError, new_chunk_path
from capture.interface import (
    CaptureError,
    CaptureSession,
    CaptureSource,
    Frame,
    SystemEvent,
    TransientCaptureError,
    UserStoppedCapture,
)
from capture.toggle import RecordingToggle
from config.capture_config import CaptureConfig
from storage.interface import ChunkStore


class RecorderState(str, Enum):
    """录制引擎状态"""
    IDLE = "idle"
    STARTING = "starting"
    STREAMING = "streaming"
    FINISHING = "finishing"
    PAUSED = "paused"


class StopReason(str, Enum):
    """录制被禁用的原因"""
    USER = "user"
    FATAL_ERROR = "fatal_error"
    RETRIES_EXHAUSTED = "retries_exhausted"


WriterFactory = Callable[..., ChunkWriter]


@dataclass
class _OpenChunk:
    chunk_id: int
    file_path: Path
    writer: ChunkWriter
    frames: int = 0


class ScreenRecorder:
    """
    屏幕录制引擎

    所有状态变更都在同一个 asyncio 事件循环上执行；阻塞的采集调用在专用的单线程
    执行器中运行，编码和数据库调用在默认线程池中运行。任意时刻最多只有一个采集会话
    和一个打开的分块。

    录制开关的变化会被切换到事件循环上处理，系统睡眠/锁屏事件通过
    handle_system_event() 传入。
    """

    def __init__(
        self,
        store: ChunkStore,
        source: CaptureSource,
        toggle: RecordingToggle,
        writer_factory: Optional[WriterFactory] = None,
        chunk_seconds: Optional[float] = None,
        fps: Optional[int] = None,
        target_height: Optional[int] = None,
        max_start_attempts: Optional[int] = None,
        retry_base_delay: Optional[float] = None,
        wake_resume_delay: Optional[float] = None,
        unlock_resume_delay: Optional[float] = None,
        recordings_root: Optional[Path] = None
    ):
        self._store = store
        self._source = source
        self._toggle = toggle
        self._writer_factory = writer_factory or ChunkWriter

        self.chunk_seconds = chunk_seconds if chunk_seconds is not None else CaptureConfig.CHUNK_SECONDS
        self.fps = fps or CaptureConfig.FPS
        self.target_height = target_height or CaptureConfig.TARGET_HEIGHT
        self.max_start_attempts = max_start_attempts or CaptureConfig.MAX_START_ATTEMPTS
        self.retry_base_delay = retry_base_delay if retry_base_delay is not None else CaptureConfig.RETRY_BASE_DELAY
        self.wake_resume_delay = wake_resume_delay if wake_resume_delay is not None else CaptureConfig.WAKE_RESUME_DELAY
        self.unlock_resume_delay = unlock_resume_delay if unlock_resume_delay is not None else CaptureConfig.UNLOCK_RESUME_DELAY
        self.recordings_root = Path(recordings_root or CaptureConfig.RECORDINGS_ROOT)

        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._state = RecorderState.IDLE
        self._final_state = RecorderState.IDLE
        # 每次 start/stop 都会递增，旧会话据此判断自己已失效
        self._generation = 0
        self._accepting = False

        self._session: Optional[CaptureSession] = None
        self._session_task: Optional[asyncio.Task] = None
        self._stop_task: Optional[asyncio.Task] = None
        self._session_lock = asyncio.Lock()
        self._chunk_lock = asyncio.Lock()
        self._chunk: Optional[_OpenChunk] = None
        self._rotation_handle: Optional[asyncio.TimerHandle] = None

        self._resume_after_pause = False
        self._resume_handle: Optional[asyncio.TimerHandle] = None

        self._tasks: Set[asyncio.Task] = set()
        self._capture_executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="capture")
        self._unsubscribe: Optional[Callable[[], None]] = None

        self.last_stop_reason: Optional[StopReason] = None

    @property
    def state(self) -> RecorderState:
        return self._state

    @property
    def is_recording(self) -> bool:
        return self._state in (RecorderState.STARTING, RecorderState.STREAMING)

    @property
    def current_chunk_path(self) -> Optional[Path]:
        return self._chunk.file_path if self._chunk else None

    # ------------------------------------------------------------ 生命周期

    def attach(self):
        """绑定当前事件循环并监听录制开关（需在事件循环中调用）"""
        self._loop = asyncio.get_running_loop()
        if self._unsubscribe is None:
            self._unsubscribe = self._toggle.subscribe(self._on_toggle_changed)
        if self._toggle.value:
            self.start()

    async def shutdown(self):
        """停止录制并释放资源"""
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        self._resume_after_pause = False
        self._cancel_resume()
        task = self.stop()
        if task is not None:
            await task
        if self._tasks:
            await asyncio.wait(list(self._tasks))
        self._capture_executor.shutdown(wait=False)

    def start(self) -> Optional[asyncio.Task]:
        """
        开始录制

        已在启动或录制中时什么都不做。

        Returns:
            采集会话任务；无操作时返回 None
        """
        if self.is_recording:
            return None
        if self._loop is None:
            self._loop = asyncio.get_running_loop()

        self._cancel_resume()
        self._resume_after_pause = False
        self._generation += 1
        self._accepting = True
        self._state = RecorderState.STARTING
        self._session_task = self._spawn(self._run_session(self._generation))
        return self._session_task

    def stop(self) -> Optional[asyncio.Task]:
        """
        停止录制（幂等）

        调用返回前就不再接受新帧；分块收尾和会话关闭在返回的任务中完成。
        """
        return self._stop(RecorderState.IDLE)

    def _stop(self, final_state: RecorderState) -> Optional[asyncio.Task]:
        self._accepting = False
        self._cancel_rotation_timer()

        if self._state in (RecorderState.IDLE, RecorderState.PAUSED):
            return None
        if self._state == RecorderState.FINISHING:
            self._final_state = final_state
            return self._stop_task

        self._generation += 1
        self._state = RecorderState.FINISHING
        self._final_state = final_state
        self._stop_task = self._spawn(self._teardown(self._generation, self._session_task))
        return self._stop_task

    async def _teardown(self, generation: int, session_task: Optional[asyncio.Task]):
        async with self._chunk_lock:
            await self._finish_chunk_locked()

        if session_task is not None and session_task is not asyncio.current_task() and not session_task.done():
            await asyncio.wait([session_task])

        if self._generation == generation:
            self._state = self._final_state
            self._stop_task = None
            print(f"[Recorder] 录制已停止 ({self._state.value})")

    # ------------------------------------------------------------ 开关与系统事件

    def _on_toggle_changed(self, value: bool):
        # 可能在任意线程上被调用
        if self._loop is None or self._loop.is_closed():
            return
        self._loop.call_soon_threadsafe(self._apply_toggle, value)

    def _apply_toggle(self, value: bool):
        if value:
            self.last_stop_reason = None
            self.start()
            return
        self._resume_after_pause = False
        self._cancel_resume()
        if self._state == RecorderState.PAUSED:
            self._state = RecorderState.IDLE
        self.stop()

    def handle_system_event(self, event: Union[SystemEvent, str]):
        """
        处理睡眠/锁屏/屏保事件（需在事件循环中调用）

        暂停类事件：记录当前是否在录制，然后停止。
        恢复类事件：如果暂停前在录制且开关仍打开，延迟一段时间后重新开始。
        """
        event = SystemEvent(event)
        if self._loop is None:
            self._loop = asyncio.get_running_loop()

        if event.is_pause:
            self._cancel_resume()
            if self.is_recording:
                self._resume_after_pause = True
                print(f"[Recorder] {event.value}，暂停录制")
                self._stop(RecorderState.PAUSED)
            return

        if not self._resume_after_pause:
            return
        delay = self.wake_resume_delay if event == SystemEvent.DID_WAKE else self.unlock_resume_delay
        self._cancel_resume()
        self._resume_handle = self._loop.call_later(delay, self._resume_from_pause)

    def _resume_from_pause(self):
        self._resume_handle = None
        if not self._resume_after_pause:
            return
        self._resume_after_pause = False
        if not self._toggle.value:
            if self._state == RecorderState.PAUSED:
                self._state = RecorderState.IDLE
            return
        print("[Recorder] 恢复录制")
        self.start()

    def _cancel_resume(self):
        if self._resume_handle is not None:
            self._resume_handle.cancel()
            self._resume_handle = None

    def _disable(self, reason: StopReason):
        """停止录制并把开关置为关闭"""
        print(f"[Recorder] 录制已禁用: {reason.value}")
        self.last_stop_reason = reason
        self._resume_after_pause = False
        self._cancel_resume()
        self.stop()
        self._toggle.set(False)

    # ------------------------------------------------------------ 采集会话

    def _is_current(self, generation: int) -> bool:
        return self._accepting and generation == self._generation

    async def _run_session(self, generation: int):
        # 会话锁保证旧会话完全关闭后才会打开新会话
        async with self._session_lock:
            interrupted = False
            while self._is_current(generation):
                if interrupted:
                    # 会话刚中断，稍等再重新打开，避免反复失败时空转
                    await asyncio.sleep(self.retry_base_delay)
                    interrupted = False
                    if not self._is_current(generation):
                        return
                session = await self._open_session_with_retry(generation)
                if session is None:
                    return
                try:
                    if not self._is_current(generation):
                        return
                    self._session = session
                    self._state = RecorderState.STREAMING
                    print(
                        f"[Recorder] 开始录制 {session.source_width}x{session.source_height} -> "
                        f"{session.output_width}x{session.output_height} @ {self.fps}fps"
                    )
                    await self._frame_loop(session, generation)
                except TransientCaptureError as e:
                    print(f"[Recorder] 采集会话中断，重新打开: {e}")
                    interrupted = True
                    async with self._chunk_lock:
                        await self._finish_chunk_locked()
                    if self._is_current(generation):
                        self._state = RecorderState.STARTING
                except UserStoppedCapture:
                    self._disable(StopReason.USER)
                except CaptureError as e:
                    print(f"[Recorder] 采集会话出错: {e}")
                    self._disable(StopReason.FATAL_ERROR)
                except Exception as e:
                    print(f"[Recorder] 采集会话异常: {e}")
                    traceback.print_exc()
                    self._disable(StopReason.FATAL_ERROR)
                finally:
                    if self._session is session:
                        self._session = None
                    await self._close_session(session)

    async def _open_session_with_retry(self, generation: int) -> Optional[CaptureSession]:
        for attempt in range(1, self.max_start_attempts + 1):
            if not self._is_current(generation):
                return None
            try:
                return await self._loop.run_in_executor(
                    self._capture_executor, self._source.open_session, self.fps, self.target_height
                )
            except UserStoppedCapture:
                self._disable(StopReason.USER)
                return None
            except TransientCaptureError as e:
                print(f"[Recorder] 打开采集会话失败（第 {attempt}/{self.max_start_attempts} 次）: {e}")
                if attempt == self.max_start_attempts:
                    break
                await asyncio.sleep(self.retry_base_delay * attempt)
            except CaptureError as e:
                print(f"[Recorder] 打开采集会话失败: {e}")
                self._disable(StopReason.FATAL_ERROR)
                return None

        if self._is_current(generation):
            self._disable(StopReason.RETRIES_EXHAUSTED)
        return None

    async def _close_session(self, session: CaptureSession):
        try:
            await self._loop.run_in_executor(self._capture_executor, session.close)
        except Exception as e:
            print(f"[Recorder] 关闭采集会话失败: {e}")

    async def _frame_loop(self, session: CaptureSession, generation: int):
        while self._is_current(generation):
            frame = await self._loop.run_in_executor(self._capture_executor, session.next_frame)
            if not self._is_current(generation):
                break
            await self._handle_frame(frame, session, generation)

    async def _handle_frame(self, frame: Frame, session: CaptureSession, generation: int):
        async with self._chunk_lock:
            # stop() 可能在等待锁期间被调用
            if not self._is_current(generation):
                return
            if self._chunk is None:
                self._chunk = await self._open_chunk(session, generation)
                if self._chunk is None:
                    return

            chunk = self._chunk
            try:
                await self._loop.run_in_executor(None, chunk.writer.write_frame, frame.data)
            except ChunkWriterError as e:
                print(f"[Recorder] 写入帧失败: {e}")
                await self._finish_chunk_locked()
                return

            chunk.frames += 1

    # ------------------------------------------------------------ 分块

    async def _open_chunk(self, session: CaptureSession, generation: int) -> Optional[_OpenChunk]:
        now = time.time()
        file_path = new_chunk_path(self.recordings_root, now)
        try:
            chunk_id = await asyncio.to_thread(self._store.register_chunk, str(file_path), now)
        except Exception as e:
            print(f"[Recorder] 登记分块失败: {e}")
            traceback.print_exc()
            return None

        writer = self._writer_factory(
            file_path,
            session.source_width,
            session.source_height,
            session.output_width,
            session.output_height,
            self.fps
        )
        try:
            await asyncio.to_thread(writer.start)
        except ChunkWriterError as e:
            print(f"[Recorder] 启动分块编码失败: {e}")
            await self._store_call(self._store.mark_chunk_failed, str(file_path))
            return None

        self._rotation_handle = self._loop.call_later(self.chunk_seconds, self._on_rotation_timer, generation)
        return _OpenChunk(chunk_id=chunk_id, file_path=file_path, writer=writer)

    def _on_rotation_timer(self, generation: int):
        self._rotation_handle = None
        if self._is_current(generation):
            self._spawn(self._rotate(generation))

    async def _rotate(self, generation: int):
        async with self._chunk_lock:
            if not self._is_current(generation):
                return
            await self._finish_chunk_locked()
            # 定时轮换时立即打开下一个分块，避免帧间断
            session = self._session
            if session is not None and self._is_current(generation):
                self._chunk = await self._open_chunk(session, generation)

    async def _finish_chunk_locked(self):
        """结束当前分块（调用方需持有 _chunk_lock）"""
        chunk = self._chunk
        if chunk is None:
            return
        self._chunk = None
        self._cancel_rotation_timer()
        file_path = str(chunk.file_path)

        if chunk.frames == 0:
            await asyncio.to_thread(chunk.writer.abort)
            await self._store_call(self._store.mark_chunk_failed, file_path)
            print(f"[Recorder] 丢弃空分块: {chunk.file_path.name}")
            return

        ok = await asyncio.to_thread(chunk.writer.finish)
        if ok:
            await self._store_call(self._store.mark_chunk_completed, file_path, time.time())
            print(f"[Recorder] 分块完成: {chunk.file_path.name} ({chunk.frames} 帧)")
        else:
            await self._store_call(self._store.mark_chunk_failed, file_path)
            print(f"[Recorder] 分块编码失败: {chunk.file_path.name}")

    def _cancel_rotation_timer(self):
        if self._rotation_handle is not None:
            self._rotation_handle.cancel()
            self._rotation_handle = None

    # ------------------------------------------------------------ 工具

    async def _store_call(self, func, *args):
        try:
            return await asyncio.to_thread(func, *args)
        except Exception as e:
            print(f"[Recorder] 更新分块状态失败: {e}")
            traceback.print_exc()
            return None

    def _spawn(self, coro) -> asyncio.Task:
        task = self._loop.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task
