"""后端运行时：组装录制、调度和分析组件"""

from dataclasses import dataclass
from typing import Optional

from capture.mss_source import MssCaptureSource
from capture.recorder import ScreenRecorder
from capture.toggle import RecordingToggle
from config.capture_config import CaptureConfig
from log_writer.llm_logger import LLMCallLogger
from orchestration.dispatcher import AnalysisDispatcher
from orchestration.scheduler import BatchScheduler
from storage.interface import ChunkStore
from transform.transformer import VideoTransformer
from video_processing.interface import AnalysisService


@dataclass
class Runtime:
    """运行中的各组件"""
    store: ChunkStore
    toggle: RecordingToggle
    recorder: ScreenRecorder
    transformer: VideoTransformer
    service: AnalysisService
    dispatcher: AnalysisDispatcher
    scheduler: BatchScheduler

    def start(self):
        """启动录制监听和批次调度（需在事件循环中调用）"""
        self.recorder.attach()
        self.scheduler.start()

    async def shutdown(self):
        """停止录制和调度，等待进行中的批次结束"""
        await self.recorder.shutdown()
        await self.scheduler.stop()
        await self.dispatcher.wait_idle()
        self.store.close()


def build_runtime(
    store: Optional[ChunkStore] = None,
    service: Optional[AnalysisService] = None,
    record_on_start: Optional[bool] = None
) -> Runtime:
    """
    按配置创建运行时

    Args:
        store: 分块存储，默认连接 SeekDB
        service: 分析服务，默认使用 OpenRouter
        record_on_start: 启动时是否开启录制，默认读取 RECORD_ON_START
    """
    if store is None:
        from storage.seekdb_client import SeekDBClient
        store = SeekDBClient()

    transformer = VideoTransformer()
    if service is None:
        from video_processing.openrouter_processor import OpenRouterAnalysisService
        service = OpenRouterAnalysisService(transformer, LLMCallLogger(store))

    if record_on_start is None:
        record_on_start = CaptureConfig.RECORD_ON_START
    toggle = RecordingToggle(record_on_start)

    recorder = ScreenRecorder(store, MssCaptureSource(), toggle)
    dispatcher = AnalysisDispatcher(store, service, transformer)
    scheduler = BatchScheduler(store, dispatcher)

    return Runtime(
        store=store,
        toggle=toggle,
        recorder=recorder,
        transformer=transformer,
        service=service,
        dispatcher=dispatcher,
        scheduler=scheduler
    )
