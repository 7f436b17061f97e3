"""批次调度器"""

import asyncio
import time
import traceback
from typing import List, Optional, Set

from config.analysis_config import AnalysisConfig
from orchestration.batching import create_batches, drop_accumulating_batch
from orchestration.dispatcher import AnalysisDispatcher
from storage.interface import ChunkStore


class BatchScheduler:
    """
    批次调度器

    启动时立即执行一次，之后按固定周期执行。每次执行读取未归批的已完成分块，
    切分批次、持久化，并把批次交给分析调度器（不等待分析完成）。
    上一次执行尚未结束时，新的执行会被跳过。
    """

    def __init__(
        self,
        store: ChunkStore,
        dispatcher: AnalysisDispatcher,
        check_interval: Optional[float] = None,
        target_duration: Optional[float] = None,
        max_gap: Optional[float] = None,
        max_lookback: Optional[float] = None
    ):
        self._store = store
        self._dispatcher = dispatcher
        self.check_interval = check_interval or AnalysisConfig.CHECK_INTERVAL
        self.target_duration = target_duration or AnalysisConfig.TARGET_BATCH_DURATION
        self.max_gap = max_gap if max_gap is not None else AnalysisConfig.MAX_GAP
        self.max_lookback = max_lookback or AnalysisConfig.MAX_LOOKBACK

        self._running = False
        self._task: Optional[asyncio.Task] = None
        self._triggers: Set[asyncio.Task] = set()

    @property
    def is_started(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self):
        """启动周期调度（需在事件循环中调用）"""
        if self.is_started:
            return
        self._task = asyncio.get_running_loop().create_task(self._run())
        print(f"[Scheduler] 已启动，周期 {self.check_interval:.0f} 秒")

    async def stop(self):
        """停止周期调度（已派发的批次分析不受影响）"""
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        print("[Scheduler] 已停止")

    def trigger_now(self) -> asyncio.Task:
        """立即执行一次调度"""
        task = asyncio.get_running_loop().create_task(self.process_recordings())
        self._triggers.add(task)
        task.add_done_callback(self._triggers.discard)
        return task

    async def _run(self):
        while True:
            try:
                await self.process_recordings()
            except Exception as e:
                print(f"[Scheduler] 调度执行失败: {e}")
                traceback.print_exc()
            await asyncio.sleep(self.check_interval)

    async def process_recordings(self) -> List[int]:
        """
        执行一次分批

        Returns:
            本次创建并派发的批次 ID 列表
        """
        if self._running:
            print("[Scheduler] 上一次调度仍在执行，跳过")
            return []
        self._running = True

        try:
            older_than = time.time() - self.max_lookback
            chunks = await asyncio.to_thread(self._store.fetch_unprocessed_chunks, older_than)
            if not chunks:
                return []

            batches = create_batches(chunks, self.target_duration, self.max_gap)
            ready = drop_accumulating_batch(batches, self.target_duration)
            if len(ready) < len(batches):
                print(f"[Scheduler] 最后一个批次仍在累积（{batches[-1].duration:.0f} 秒），留待下次处理")

            batch_ids = []
            for batch in ready:
                batch_id = await asyncio.to_thread(
                    self._store.save_batch, batch.start_ts, batch.end_ts, batch.chunk_ids
                )
                if batch_id is None:
                    continue
                print(f"[Scheduler] 创建批次 {batch_id}: {len(batch.chunks)} 个分块，{batch.duration:.0f} 秒")
                batch_ids.append(batch_id)
                self._dispatcher.dispatch(batch_id)
            return batch_ids
        finally:
            self._running = False
