"""数据模型定义"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional


class ChunkStatus(str, Enum):
    """录制分块状态"""
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


class BatchStatus(str, Enum):
    """分析批次状态"""
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    SKIPPED_SHORT = "skipped_short"
    FAILED_EMPTY = "failed_empty"

    @property
    def is_terminal(self) -> bool:
        return self not in (BatchStatus.PENDING, BatchStatus.PROCESSING)


@dataclass
class RecordingChunk:
    """一个固定时长的录制分块"""
    chunk_id: int
    file_path: str
    start_ts: float  # 秒（Unix 时间戳）
    end_ts: float
    status: ChunkStatus = ChunkStatus.PENDING
    batch_id: Optional[int] = None

    @property
    def duration(self) -> float:
        return max(0.0, self.end_ts - self.start_ts)


@dataclass
class Batch:
    """一段连续分块组成的分析批次"""
    batch_id: int
    start_ts: float
    end_ts: float
    chunk_ids: List[int] = field(default_factory=list)
    status: BatchStatus = BatchStatus.PENDING
    reason: Optional[str] = None
    created_at: Optional[datetime] = None


@dataclass
class Distraction:
    """活动片段中的子事件（分析服务原始输出）"""
    start_time: str  # 拼接视频内的位置，如 "05:30"
    end_time: str
    title: str
    summary: str = ""


@dataclass
class ActivityCard:
    """分析服务对一个活动片段的原始输出，时间为拼接视频内的相对位置"""
    start_time: str
    end_time: str
    category: str
    subcategory: str
    title: str
    summary: str = ""
    detailed_summary: str = ""
    distractions: List[Distraction] = field(default_factory=list)


@dataclass
class TimelineDistraction:
    """落库的子事件，时间为墙钟时间"""
    start_ts: float
    end_ts: float
    title: str
    summary: str = ""
    video_summary_path: Optional[str] = None


@dataclass
class TimelineCard:
    """落库的时间线卡片（墙钟时间锚定）"""
    batch_id: int
    start_ts: float
    end_ts: float
    day: str  # 逻辑日 YYYY-MM-DD
    title: str
    category: str
    subcategory: str = ""
    summary: str = ""
    detailed_summary: str = ""
    distractions: List[TimelineDistraction] = field(default_factory=list)
    video_summary_path: Optional[str] = None
    card_id: Optional[int] = None


@dataclass
class LLMCallRecord:
    """一次分析服务调用的审计记录（只追加）"""
    provider: str
    operation: str
    status: str  # success / failure
    batch_id: Optional[int] = None
    call_group_id: Optional[str] = None
    attempt: int = 1
    model: Optional[str] = None
    latency_ms: Optional[int] = None
    http_status: Optional[int] = None
    request_method: Optional[str] = None
    request_url: Optional[str] = None
    request_headers: Optional[Dict[str, Any]] = None
    request_body: Optional[str] = None
    response_headers: Optional[Dict[str, Any]] = None
    response_body: Optional[str] = None
    error_domain: Optional[str] = None
    error_code: Optional[int] = None
    error_message: Optional[str] = None
    created_at: Optional[datetime] = None
