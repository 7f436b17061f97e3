"""分块分批规则"""

from dataclasses import dataclass, field
from typing import List

from storage.models import RecordingChunk


@dataclass
class AnalysisBatch:
    """一次分批得到的候选批次（尚未持久化）"""
    chunks: List[RecordingChunk] = field(default_factory=list)
    start_ts: float = 0.0
    end_ts: float = 0.0

    @property
    def duration(self) -> float:
        """批次内容时长（各分块时长之和）"""
        return sum(chunk.duration for chunk in self.chunks)

    @property
    def chunk_ids(self) -> List[int]:
        return [chunk.chunk_id for chunk in self.chunks]


def _close_batch(bucket: List[RecordingChunk]) -> AnalysisBatch:
    return AnalysisBatch(
        chunks=bucket,
        start_ts=min(chunk.start_ts for chunk in bucket),
        end_ts=max(chunk.end_ts for chunk in bucket)
    )


def create_batches(
    chunks: List[RecordingChunk],
    target_duration: float,
    max_gap: float
) -> List[AnalysisBatch]:
    """
    按时间顺序把分块切分为批次

    依次扫描分块，遇到以下任一情况就结束当前批次、以当前分块开始新批次：
    - 与上一个分块结束时间的间隔超过 max_gap
    - 加入当前分块后内容时长会超过 target_duration

    Args:
        chunks: 分块列表（无需预先排序）
        target_duration: 目标批次时长（秒）
        max_gap: 相邻分块允许的最大间隔（秒）

    Returns:
        批次列表（按时间顺序）
    """
    if not chunks:
        return []

    ordered = sorted(chunks, key=lambda c: c.start_ts)
    batches: List[AnalysisBatch] = []
    bucket: List[RecordingChunk] = []
    bucket_duration = 0.0

    for chunk in ordered:
        if not bucket:
            bucket = [chunk]
            bucket_duration = chunk.duration
            continue

        gap = chunk.start_ts - bucket[-1].end_ts
        would_overflow = bucket_duration + chunk.duration > target_duration

        if gap > max_gap or would_overflow:
            batches.append(_close_batch(bucket))
            bucket = [chunk]
            bucket_duration = chunk.duration
        else:
            bucket.append(chunk)
            bucket_duration += chunk.duration

    if bucket:
        batches.append(_close_batch(bucket))
    return batches


def drop_accumulating_batch(batches: List[AnalysisBatch], target_duration: float) -> List[AnalysisBatch]:
    """
    去掉仍在累积中的最后一个批次

    最后形成的批次时长不足目标时长，说明后续分块可能还会加入，留到下次调度再处理。
    """
    if batches and batches[-1].duration < target_duration:
        return batches[:-1]
    return list(batches)
