"""Pydantic 数据模型"""

from typing import Optional
from pydantic import BaseModel


class RecordingUpdate(BaseModel):
    """录制开关请求"""
    enabled: bool


class RecordingStatusResponse(BaseModel):
    """录制状态响应"""
    enabled: bool
    state: str
    last_stop_reason: Optional[str] = None
    current_chunk: Optional[str] = None


class SystemEventResponse(BaseModel):
    """系统事件响应"""
    event: str
    state: str


class DistractionResponse(BaseModel):
    """卡片内的子事件"""
    start_ts: float
    end_ts: float
    title: str
    summary: str
    video_summary_path: Optional[str] = None


class TimelineCardResponse(BaseModel):
    """时间线卡片"""
    card_id: Optional[int] = None
    batch_id: int
    start_ts: float
    end_ts: float
    day: str
    title: str
    category: str
    subcategory: str
    summary: str
    detailed_summary: str
    distractions: list[DistractionResponse]
    video_summary_path: Optional[str] = None


class TimelineResponse(BaseModel):
    """某天的时间线"""
    day: str
    cards: list[TimelineCardResponse]


class BatchResponse(BaseModel):
    """分析批次"""
    batch_id: int
    start_ts: float
    end_ts: float
    status: str
    reason: Optional[str] = None
    chunk_count: int


class BatchListResponse(BaseModel):
    """批次列表"""
    batches: list[BatchResponse]
