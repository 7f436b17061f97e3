"""存储模块：数据模型、分块存储接口与 SeekDB 实现"""

from storage.interface import ChunkStore
from storage.models import (
    ActivityCard,
    Batch,
    BatchStatus,
    ChunkStatus,
    Distraction,
    LLMCallRecord,
    RecordingChunk,
    TimelineCard,
    TimelineDistraction,
)

__all__ = [
    'ActivityCard',
    'Batch',
    'BatchStatus',
    'ChunkStatus',
    'ChunkStore',
    'Distraction',
    'LLMCallRecord',
    'RecordingChunk',
    'TimelineCard',
    'TimelineDistraction',
]
