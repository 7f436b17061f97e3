"""分块存储接口定义"""

from abc import ABC, abstractmethod
from typing import List, Optional

from storage.models import (
    Batch,
    BatchStatus,
    LLMCallRecord,
    RecordingChunk,
    TimelineCard,
)


class ChunkStore(ABC):
    """
    分块存储接口

    持久化录制分块、分析批次、时间线卡片和 LLM 调用记录。
    所有方法都是阻塞调用，异步上下文中应通过 asyncio.to_thread 调用。
    """

    @abstractmethod
    def register_chunk(self, file_path: str, start_ts: float) -> int:
        """登记一个新分块（pending），返回分块 ID"""

    @abstractmethod
    def mark_chunk_completed(self, file_path: str, end_ts: Optional[float] = None) -> None:
        """分块写入成功，记录实际结束时间（默认当前时间）"""

    @abstractmethod
    def mark_chunk_failed(self, file_path: str) -> None:
        """分块写入失败"""

    @abstractmethod
    def fetch_unprocessed_chunks(self, older_than: float) -> List[RecordingChunk]:
        """
        获取已完成且未归入批次的分块

        Args:
            older_than: 只返回开始时间不早于该时间戳的分块

        Returns:
            按开始时间升序排列的分块列表
        """

    @abstractmethod
    def save_batch(self, start_ts: float, end_ts: float, chunk_ids: List[int]) -> Optional[int]:
        """保存批次及其分块关联，返回批次 ID（失败时返回 None）"""

    @abstractmethod
    def update_batch_status(self, batch_id: int, status: BatchStatus) -> None:
        """更新批次状态"""

    @abstractmethod
    def mark_batch_failed(self, batch_id: int, reason: str) -> None:
        """将批次标记为失败并记录原因"""

    @abstractmethod
    def chunks_for_batch(self, batch_id: int) -> List[RecordingChunk]:
        """获取批次中的分块（按开始时间升序）"""

    @abstractmethod
    def delete_timeline_cards(self, day: str) -> List[str]:
        """删除某逻辑日的全部时间线卡片，返回被删卡片引用的摘要视频路径"""

    @abstractmethod
    def save_timeline_cards(self, batch_id: int, cards: List[TimelineCard]) -> List[int]:
        """保存时间线卡片，返回卡片 ID 列表"""

    @abstractmethod
    def insert_llm_call(self, record: LLMCallRecord) -> None:
        """追加一条 LLM 调用审计记录"""

    @abstractmethod
    def fetch_timeline_cards(self, day: str) -> List[TimelineCard]:
        """获取某逻辑日的时间线卡片（按开始时间升序）"""

    @abstractmethod
    def fetch_recent_batches(self, limit: int = 50) -> List[Batch]:
        """获取最近创建的批次（新的在前）"""

    def close(self) -> None:
        """关闭资源"""
