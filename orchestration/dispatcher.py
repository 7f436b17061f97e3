"""批次分析调度"""

import asyncio
import time
import traceback
from pathlib import Path
from typing import Callable, List, Optional, Set

from config.analysis_config import AnalysisConfig
from orchestration.monitoring import MonitoringLogger
from storage.interface import ChunkStore
from storage.models import (
    ActivityCard,
    BatchStatus,
    RecordingChunk,
    TimelineCard,
    TimelineDistraction,
)
from transform.ffmpeg_tools import TransformError
from transform.transformer import VideoTransformer
from utils.time_utils import logical_day, parse_video_timestamp
from video_processing.interface import AnalysisService


class AnalysisDispatcher:
    """
    批次分析调度器

    对每个批次：检查内容时长 → 调用分析服务 → 替换当天的时间线卡片并生成摘要视频。
    批次状态只会被设置一次终态，失败的批次不会自动重试。
    多个批次可以同时处理，彼此独立。
    """

    def __init__(
        self,
        store: ChunkStore,
        service: AnalysisService,
        transformer: VideoTransformer,
        min_batch_duration: Optional[float] = None,
        main_pick_interval: Optional[int] = None,
        distraction_pick_interval: Optional[int] = None,
        day_boundary_hour: Optional[int] = None,
        monitor: Optional[MonitoringLogger] = None,
        clock: Callable[[], float] = time.time
    ):
        self._store = store
        self._service = service
        self._transformer = transformer
        self.min_batch_duration = (
            min_batch_duration if min_batch_duration is not None else AnalysisConfig.MIN_BATCH_DURATION
        )
        self.main_pick_interval = main_pick_interval or AnalysisConfig.MAIN_SUMMARY_PICK_INTERVAL
        self.distraction_pick_interval = distraction_pick_interval or AnalysisConfig.DISTRACTION_SUMMARY_PICK_INTERVAL
        self.day_boundary_hour = day_boundary_hour if day_boundary_hour is not None else AnalysisConfig.DAY_BOUNDARY_HOUR
        self._monitor = monitor or MonitoringLogger()
        self._clock = clock
        self._tasks: Set[asyncio.Task] = set()

    @property
    def in_flight(self) -> int:
        return len(self._tasks)

    def dispatch(self, batch_id: int) -> asyncio.Task:
        """派发批次（不等待结果）"""
        task = asyncio.get_running_loop().create_task(self._process_safely(batch_id))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def wait_idle(self):
        """等待所有已派发的批次处理结束"""
        while self._tasks:
            await asyncio.wait(list(self._tasks))

    async def _process_safely(self, batch_id: int) -> Optional[BatchStatus]:
        try:
            return await self.process_batch(batch_id)
        except Exception as e:
            print(f"[Dispatcher] 批次 {batch_id} 处理异常: {e}")
            traceback.print_exc()
            return None

    async def process_batch(self, batch_id: int) -> BatchStatus:
        """
        处理一个批次

        Returns:
            批次的终态
        """
        started = time.monotonic()
        stats = {'batch_id': batch_id, 'chunk_count': 0, 'content_duration': 0.0, 'cards_count': 0}

        chunks = await asyncio.to_thread(self._store.chunks_for_batch, batch_id)
        if not chunks:
            await asyncio.to_thread(self._store.update_batch_status, batch_id, BatchStatus.FAILED_EMPTY)
            return self._finish(stats, BatchStatus.FAILED_EMPTY, started)

        chunks = sorted(chunks, key=lambda c: c.start_ts)
        duration = sum(chunk.duration for chunk in chunks)
        stats['chunk_count'] = len(chunks)
        stats['content_duration'] = duration

        if duration < self.min_batch_duration:
            await asyncio.to_thread(self._store.update_batch_status, batch_id, BatchStatus.SKIPPED_SHORT)
            return self._finish(stats, BatchStatus.SKIPPED_SHORT, started)

        await asyncio.to_thread(self._store.update_batch_status, batch_id, BatchStatus.PROCESSING)
        print(f"[Dispatcher] 批次 {batch_id} 开始分析: {len(chunks)} 个分块，{duration:.0f} 秒")

        try:
            activity_cards = await self._service.analyze(batch_id, chunks)
            saved = await self._commit(batch_id, chunks, activity_cards)
        except Exception as e:
            reason = str(e) or type(e).__name__
            print(f"[Dispatcher] 批次 {batch_id} 失败: {reason}")
            await asyncio.to_thread(self._store.mark_batch_failed, batch_id, reason)
            stats['reason'] = reason
            return self._finish(stats, BatchStatus.FAILED, started)

        await asyncio.to_thread(self._store.update_batch_status, batch_id, BatchStatus.COMPLETED)
        stats['cards_count'] = len(saved)
        return self._finish(stats, BatchStatus.COMPLETED, started)

    def _finish(self, stats: dict, status: BatchStatus, started: float) -> BatchStatus:
        stats['status'] = status.value
        stats['processing_time'] = time.monotonic() - started
        self._monitor.log_batch_processing(stats)
        self._monitor.print_batch_stats(stats)
        return status

    async def _commit(
        self,
        batch_id: int,
        chunks: List[RecordingChunk],
        activity_cards: List[ActivityCard]
    ) -> List[TimelineCard]:
        """替换当前逻辑日的卡片：先删除，再生成视频产物，最后保存"""
        day = logical_day(self._clock(), self.day_boundary_hour)

        removed_paths = await asyncio.to_thread(self._store.delete_timeline_cards, day)
        if removed_paths:
            self._transformer.cleanup(removed_paths)

        timeline_cards = await self._build_timeline_cards(batch_id, day, chunks, activity_cards)
        if timeline_cards:
            await asyncio.to_thread(self._store.save_timeline_cards, batch_id, timeline_cards)
        print(f"[Dispatcher] 批次 {batch_id}: 保存 {len(timeline_cards)} 张卡片到 {day}")
        return timeline_cards

    async def _build_timeline_cards(
        self,
        batch_id: int,
        day: str,
        chunks: List[RecordingChunk],
        activity_cards: List[ActivityCard]
    ) -> List[TimelineCard]:
        base_ts = chunks[0].start_ts
        temp_files: List[Path] = []
        stitched: Optional[Path] = None
        stitched_duration = sum(chunk.duration for chunk in chunks)

        try:
            try:
                stitched = await self._transformer.stitch([chunk.file_path for chunk in chunks])
                temp_files.append(stitched)
                stitched_duration = await self._transformer.probe_duration(stitched)
            except TransformError as e:
                print(f"[Dispatcher] 批次 {batch_id}: 拼接视频失败，卡片将没有摘要视频: {e}")

            timeline_cards = []
            for index, card in enumerate(activity_cards):
                start = parse_video_timestamp(card.start_time)
                end = parse_video_timestamp(card.end_time)
                if start is None or end is None or end < start:
                    print(f"[Dispatcher] 批次 {batch_id}: 丢弃时间无效的卡片 '{card.title}' ({card.start_time}-{card.end_time})")
                    continue

                summary_path = None
                if stitched is not None:
                    summary_path = await self._summarize_range(
                        stitched, stitched_duration, start, end,
                        day, batch_id, index, None, self.main_pick_interval
                    )

                distractions = []
                for dist_index, dist in enumerate(card.distractions):
                    dist_start = parse_video_timestamp(dist.start_time)
                    dist_end = parse_video_timestamp(dist.end_time)
                    dist_path = None
                    if dist_start is None or dist_end is None or dist_end <= dist_start:
                        # 时间无效时保留文字，使用卡片的时间范围
                        dist_start, dist_end = start, end
                    elif stitched is not None:
                        dist_path = await self._summarize_range(
                            stitched, stitched_duration, dist_start, dist_end,
                            day, batch_id, index, dist_index, self.distraction_pick_interval
                        )
                    distractions.append(TimelineDistraction(
                        start_ts=base_ts + dist_start,
                        end_ts=base_ts + dist_end,
                        title=dist.title,
                        summary=dist.summary,
                        video_summary_path=dist_path
                    ))

                timeline_cards.append(TimelineCard(
                    batch_id=batch_id,
                    start_ts=base_ts + start,
                    end_ts=base_ts + end,
                    day=day,
                    title=card.title,
                    category=card.category,
                    subcategory=card.subcategory,
                    summary=card.summary,
                    detailed_summary=card.detailed_summary,
                    distractions=distractions,
                    video_summary_path=summary_path
                ))
            return timeline_cards
        finally:
            self._transformer.cleanup(temp_files)

    async def _summarize_range(
        self,
        stitched: Path,
        stitched_duration: float,
        start: float,
        end: float,
        day: str,
        batch_id: int,
        card_index: int,
        distraction_index: Optional[int],
        pick_interval: int
    ) -> Optional[str]:
        """提取区间并生成摘要视频，失败时返回 None"""
        start = min(start, stitched_duration)
        end = min(end, stitched_duration)
        if end - start <= 0:
            return None

        segment = None
        try:
            segment = await self._transformer.extract_segment(stitched, start, end - start)
            output = self._transformer.summary_output_path(day, batch_id, card_index, distraction_index)
            await self._transformer.generate_summary(segment, pick_interval, output)
            return str(output)
        except TransformError as e:
            print(f"[Dispatcher] 批次 {batch_id}: 生成摘要视频失败: {e}")
            return None
        finally:
            self._transformer.cleanup([segment])
